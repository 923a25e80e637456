"""
Unified Logger System.

JSON-only structured logging for deployment jobs and their collaborators.
Every record carries the component that wrote it plus whatever job,
deployment and instance ids were bound when the logger was created, under
``customDimensions``.

Exports:
    ComponentType: Enum for component types
    LogLevel: Enum for log levels
    LogContext: Correlation ids bound to a logger
    JSONFormatter: Formatter emitting one JSON object per record
    LoggerFactory: Factory for creating loggers
    log_exceptions: Exception logging decorator

Environment:
    LOG_LEVEL       - Default level for every component (default: INFO)
    DEBUG_LOGGING   - "true" forces DEBUG regardless of LOG_LEVEL
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
import logging
import sys
import os
import json
from functools import wraps


# ============================================================================
# COMPONENT TYPES
# ============================================================================

class ComponentType(Enum):
    """Layers of the deployer; each gets its own logger namespace."""
    JOB = "job"                # Monitorable jobs (deploy, monitor, image)
    SERVICE = "service"        # Bundle builder, fleet provisioner, manifests
    REPOSITORY = "repository"  # Cloud adapters (blob, EC2, ELB, HTTP)
    FACTORY = "factory"        # Client/repository construction
    TRIGGER = "trigger"        # Job submission and polling surface


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        return getattr(logging, self.value)

    @classmethod
    def from_string(cls, level: str) -> 'LogLevel':
        """Case-insensitive; unknown names fall back to INFO."""
        try:
            return cls[level.strip().upper()]
        except KeyError:
            return cls.INFO


def _level_from_environment() -> LogLevel:
    if os.getenv('DEBUG_LOGGING', '').lower() == 'true':
        return LogLevel.DEBUG
    return LogLevel.from_string(os.getenv('LOG_LEVEL', 'INFO'))


# ============================================================================
# LOG CONTEXT
# ============================================================================

@dataclass(frozen=True)
class LogContext:
    """
    Correlation ids for one job's records.

    Sub-jobs carry their parent's job id so a whole deployment can be pulled
    out of the log stream with one query on ``parent_job_id`` or
    ``deployment_id``.
    """
    job_id: Optional[str] = None
    job_type: Optional[str] = None
    parent_job_id: Optional[str] = None
    deployment_id: Optional[str] = None
    server_id: Optional[str] = None
    instance_id: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()


class _ContextFilter(logging.Filter):
    """Merges the bound context and component into each record's custom dimensions."""

    def __init__(self, component_type: ComponentType, name: str):
        super().__init__()
        self.component_type = component_type
        self.component_name = name
        self.context: Optional[LogContext] = None

    def filter(self, record: logging.LogRecord) -> bool:
        dims: Dict[str, Any] = self.context.to_dict() if self.context else {}
        dims['component_type'] = self.component_type.value
        dims['component_name'] = self.component_name
        # Per-call extra={'custom_dimensions': ...} wins over bound context
        dims.update(getattr(record, 'custom_dimensions', None) or {})
        record.custom_dimensions = dims
        return True


# ============================================================================
# JSON FORMATTER
# ============================================================================

class JSONFormatter(logging.Formatter):
    """One JSON object per line so log shippers can parse it as-is."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'thread': record.threadName,
            'function': record.funcName,
            'line': record.lineno,
        }

        dims = getattr(record, 'custom_dimensions', None)
        if dims:
            log_obj['customDimensions'] = dims

        if record.exc_info and record.exc_info[0] is not None:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_obj, default=str)


# ============================================================================
# LOGGER FACTORY
# ============================================================================

class LoggerFactory:
    """
    Factory for creating component-specific loggers.

    Example:
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "BundleBuilder")
        logger.info("Writing bundle")

        job_logger = LoggerFactory.create_with_context(
            ComponentType.JOB, "DeployJob", job_id=job.job_id, deployment_id="dep-1"
        )
    """

    # Per-component overrides; components not listed use the environment level
    LEVEL_OVERRIDES: Dict[ComponentType, LogLevel] = {}

    @classmethod
    def level_for(cls, component_type: ComponentType) -> LogLevel:
        return cls.LEVEL_OVERRIDES.get(component_type, _level_from_environment())

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        level: Optional[LogLevel] = None
    ) -> logging.Logger:
        """
        Create (or re-fetch) the logger ``<component>.<name>``.

        Calling again with the same name returns the same logger with the
        new context bound; handlers are never duplicated.

        Args:
            component_type: Type of component
            name: Component name (e.g., "FleetProvisioner")
            context: Optional correlation ids
            level: Optional level overriding the component default

        Returns:
            Configured Python logger
        """
        log_level = (level or cls.level_for(component_type)).to_python_level()
        logger = logging.getLogger(f"{component_type.value}.{name}")
        logger.setLevel(log_level)

        if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter())
            logger.addHandler(handler)

        context_filter = next((f for f in logger.filters if isinstance(f, _ContextFilter)), None)
        if context_filter is None:
            context_filter = _ContextFilter(component_type, name)
            logger.addFilter(context_filter)
        context_filter.context = context if context and not context.is_empty else None

        return logger

    @classmethod
    def create_with_context(
        cls,
        component_type: ComponentType,
        name: str,
        job_id: Optional[str] = None,
        job_type: Optional[str] = None,
        deployment_id: Optional[str] = None,
        instance_id: Optional[str] = None,
        parent_job_id: Optional[str] = None
    ) -> logging.Logger:
        """
        Logger bound to one job.

        The logger name is suffixed with a short job id so concurrently
        running jobs never overwrite each other's context.
        """
        context = LogContext(
            job_id=job_id,
            job_type=job_type,
            deployment_id=deployment_id,
            instance_id=instance_id,
            parent_job_id=parent_job_id
        )
        logger_name = f"{name}.{job_id[:8]}" if job_id else name
        return cls.create_logger(component_type, logger_name, context=context)


# ============================================================================
# EXCEPTION DECORATOR
# ============================================================================

def log_exceptions(component_type: Optional[ComponentType] = None,
                   component_name: Optional[str] = None,
                   logger: Optional[logging.Logger] = None):
    """
    Log any exception escaping the wrapped call, then re-raise it.

    Usage:
        @log_exceptions(logger=logger)
        @log_exceptions(ComponentType.REPOSITORY, "ElbRepository")
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log = logger or LoggerFactory.create_logger(
                    component_type or ComponentType.SERVICE,
                    component_name or func.__module__ or "unknown"
                )
                log.error(
                    f"❌ {func.__qualname__} raised {type(e).__name__}: {e}",
                    exc_info=True,
                    extra={'custom_dimensions': {
                        'function_name': func.__qualname__,
                        'exception_type': type(e).__name__,
                    }}
                )
                raise
        return wrapper
    return decorator
