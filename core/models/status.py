# ============================================================================
# CORE MODELS - JOB STATUS
# ============================================================================
# STATUS: Core data models - progress record owned by one job
# PURPOSE: Mutable progress/result record plus frozen snapshots for pollers
# CREATED: 19 OCT 2026
# EXPORTS: Status, DeployStatus, StatusSnapshot, DeployStatusSnapshot
# DEPENDENCIES: pydantic, threading, util_logger
# ============================================================================

"""
Job Status Models - Owned Record and Read-Only Snapshots

Every job owns exactly one Status. Only the job's own thread mutates it;
pollers on other threads call ``snapshot()`` and receive a frozen pydantic
model, never the mutable record itself.

Rules enforced here:
    - percent_complete is clamped to [0, 100]
    - update() never lowers percent_complete (reset_progress is the only way down)
    - update() stays below 100; only complete(), fail() and cancel() reach 100
    - once completed, every mutation is ignored and logged at WARNING
    - fail() marks error and 100%; the runner marks completed after finalize

Usage:
    status = Status(name="Deploy to production")
    status.begin()
    status.update("Uploading bundle", 40)
    snap = status.snapshot()  # safe to hand to another thread
"""

import threading
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.enums import DeploymentState
from util_logger import LoggerFactory, ComponentType


logger = LoggerFactory.create_logger(ComponentType.JOB, "Status")

MAX_RUNNING_PERCENT = 99.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SNAPSHOTS - what pollers see
# ============================================================================

class StatusSnapshot(BaseModel):
    """
    Immutable copy of a Status at one instant.
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = Field(default=None, description="Human-readable job name")
    message: Optional[str] = Field(default=None, description="Latest progress or error message")
    percent_complete: float = Field(default=0.0, ge=0.0, le=100.0)
    error: bool = Field(default=False)
    completed: bool = Field(default=False)
    start_time: Optional[datetime] = Field(default=None)
    duration: Optional[float] = Field(default=None, description="Seconds from begin() to finish")
    exception_type: Optional[str] = Field(default=None)
    exception_details: Optional[str] = Field(default=None, description="Formatted traceback")
    initialized: datetime = Field(default_factory=_now)
    modified: datetime = Field(default_factory=_now)


class DeployStatusSnapshot(StatusSnapshot):
    """
    Snapshot of a DeployStatus, including fleet counters and warnings.
    """
    state: DeploymentState = Field(default=DeploymentState.PENDING)
    built: bool = Field(default=False)
    uploading: bool = Field(default=False)
    percent_uploaded: float = Field(default=0.0)
    num_servers_completed: int = Field(default=0)
    num_servers_remaining: int = Field(default=0)
    total_servers: int = Field(default=0)
    base_url: Optional[str] = Field(default=None)
    warnings: List[str] = Field(default_factory=list)
    unterminated_instance_ids: List[str] = Field(default_factory=list)
    failed_instance_count: int = Field(default=0)
    recreated_image_id: Optional[str] = Field(default=None)


# ============================================================================
# MUTABLE STATUS - owned by one job
# ============================================================================

class Status:
    """
    Progress/result record for a single job.

    Mutated only by the owning job's thread. The lock only guards the copy
    taken by ``snapshot()`` so a poller never sees a half-applied update.
    """

    snapshot_class = StatusSnapshot

    def __init__(self, name: Optional[str] = None):
        self._lock = threading.RLock()
        self.name = name
        self.message: Optional[str] = None
        self.percent_complete = 0.0
        self.error = False
        self.completed = False
        self.start_time: Optional[datetime] = None
        self.duration: Optional[float] = None
        self.exception_type: Optional[str] = None
        self.exception_details: Optional[str] = None
        self.initialized = _now()
        self.modified = self.initialized

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _is_frozen(self, operation: str) -> bool:
        if self.completed:
            logger.warning(
                f"⚠️ Ignoring {operation} on completed status '{self.name}' "
                f"(message={self.message!r})"
            )
            return True
        return False

    def _touch(self) -> None:
        self.modified = _now()

    @staticmethod
    def _clamp(percent: float) -> float:
        return max(0.0, min(100.0, float(percent)))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Record the start time. Called by the runner before job logic."""
        with self._lock:
            if self._is_frozen("begin"):
                return
            self.start_time = _now()
            self._touch()

    def update(self, message: Optional[str] = None, percent: Optional[float] = None) -> None:
        """
        Set the progress message and, optionally, advance the percentage.

        A percent lower than the current value is ignored. Values at or above
        100 are held at MAX_RUNNING_PERCENT until the job completes.
        """
        with self._lock:
            if self._is_frozen("update"):
                return
            if message is not None:
                self.message = message
            if percent is not None:
                target = min(self._clamp(percent), MAX_RUNNING_PERCENT)
                self.percent_complete = max(self.percent_complete, target)
            self._touch()

    def reset_progress(self, percent: float = 0.0) -> None:
        """Explicitly move the percentage, downward if need be."""
        with self._lock:
            if self._is_frozen("reset_progress"):
                return
            self.percent_complete = min(self._clamp(percent), MAX_RUNNING_PERCENT)
            self._touch()

    def fail(self, message: str, exception: Optional[BaseException] = None) -> None:
        """
        Mark the job errored.

        Sets error and 100%; ``completed`` is left to the runner so the
        finalize hook still runs against a live status.
        """
        with self._lock:
            if self._is_frozen("fail"):
                return
            self.error = True
            self.message = message
            self.percent_complete = 100.0
            if exception is not None:
                self.exception_type = type(exception).__name__
                self.exception_details = "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                )
            self._touch()

    def cancel(self, message: str) -> None:
        """Mark a job that will never run: errored, completed, 100%."""
        with self._lock:
            if self._is_frozen("cancel"):
                return
            self.error = True
            self.completed = True
            self.message = message
            self.percent_complete = 100.0
            self._touch()

    def complete(self, message: Optional[str] = None) -> None:
        """Terminal transition. Nothing changes after this."""
        with self._lock:
            if self._is_frozen("complete"):
                return
            if message is not None and not self.error:
                self.message = message
            if self.start_time is not None and self.duration is None:
                self.duration = (_now() - self.start_time).total_seconds()
            self.percent_complete = 100.0
            self.completed = True
            self._touch()

    def set_duration(self) -> None:
        with self._lock:
            if self._is_frozen("set_duration"):
                return
            if self.start_time is not None:
                self.duration = (_now() - self.start_time).total_seconds()
            self._touch()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _snapshot_fields(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'message': self.message,
            'percent_complete': self.percent_complete,
            'error': self.error,
            'completed': self.completed,
            'start_time': self.start_time,
            'duration': self.duration,
            'exception_type': self.exception_type,
            'exception_details': self.exception_details,
            'initialized': self.initialized,
            'modified': self.modified,
        }

    def snapshot(self) -> StatusSnapshot:
        """Frozen copy for pollers."""
        with self._lock:
            return self.snapshot_class(**self._snapshot_fields())

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, percent={self.percent_complete:.1f}, "
            f"error={self.error}, completed={self.completed}, message={self.message!r})"
        )


class DeployStatus(Status):
    """
    Status of a fleet deployment.

    Adds the deployment state machine value, bundle/upload flags, server
    counters, and the two lists an operator must see: warnings and instances
    that could not be terminated.
    """

    snapshot_class = DeployStatusSnapshot

    _DEPLOY_FIELDS = frozenset({
        'built', 'uploading', 'percent_uploaded', 'num_servers_completed',
        'num_servers_remaining', 'total_servers', 'base_url',
        'failed_instance_count', 'recreated_image_id',
    })

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self.state = DeploymentState.PENDING
        self.built = False
        self.uploading = False
        self.percent_uploaded = 0.0
        self.num_servers_completed = 0
        self.num_servers_remaining = 0
        self.total_servers = 0
        self.base_url: Optional[str] = None
        self.warnings: List[str] = []
        self.unterminated_instance_ids: List[str] = []
        self.failed_instance_count = 0
        self.recreated_image_id: Optional[str] = None

    def set_state(self, state: DeploymentState, message: Optional[str] = None,
                  percent: Optional[float] = None) -> None:
        with self._lock:
            if self._is_frozen(f"set_state({state.value})"):
                return
            self.state = state
            self.update(message, percent)

    def set_fields(self, **fields: Any) -> None:
        """Set deployment counters/flags by name."""
        unknown = set(fields) - self._DEPLOY_FIELDS
        if unknown:
            raise AttributeError(f"Unknown DeployStatus fields: {sorted(unknown)}")
        with self._lock:
            if self._is_frozen("set_fields"):
                return
            for key, value in fields.items():
                setattr(self, key, value)
            self._touch()

    def add_warning(self, warning: str) -> None:
        with self._lock:
            if self._is_frozen("add_warning"):
                return
            self.warnings.append(warning)
            self._touch()
        logger.warning(f"⚠️ {self.name}: {warning}")

    def add_unterminated(self, instance_ids: List[str]) -> None:
        """Flag instances for manual cleanup. Duplicates are dropped."""
        with self._lock:
            if self._is_frozen("add_unterminated"):
                return
            for instance_id in instance_ids:
                if instance_id not in self.unterminated_instance_ids:
                    self.unterminated_instance_ids.append(instance_id)
            self._touch()

    def fail(self, message: str, exception: Optional[BaseException] = None) -> None:
        with self._lock:
            if not self.completed:
                self.state = DeploymentState.ERROR
            super().fail(message, exception)

    def _snapshot_fields(self) -> Dict[str, Any]:
        fields = super()._snapshot_fields()
        fields.update({
            'state': self.state,
            'built': self.built,
            'uploading': self.uploading,
            'percent_uploaded': self.percent_uploaded,
            'num_servers_completed': self.num_servers_completed,
            'num_servers_remaining': self.num_servers_remaining,
            'total_servers': self.total_servers,
            'base_url': self.base_url,
            'warnings': list(self.warnings),
            'unterminated_instance_ids': list(self.unterminated_instance_ids),
            'failed_instance_count': self.failed_instance_count,
            'recreated_image_id': self.recreated_image_id,
        })
        return fields
