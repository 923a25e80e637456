"""
Job Error Handler.

``JobErrorHandler.handle_operation`` wraps one deployment stage: it logs the
failure with the stage's correlation ids, hands the exception to an optional
callback (usually "fail the job"), and re-raises unless told not to.
Contract violations are programming errors and always propagate.

``log_nested_error`` is for cleanup that fails after something else already
failed, e.g. instances that refuse to terminate after a launch error.

Exports:
    JobErrorHandler
    log_nested_error
"""

from contextlib import contextmanager
from typing import Optional, Callable, Any, Dict, Iterable
import logging

from exceptions import ContractViolationError


def _context(
    operation: str,
    job_id: Optional[str] = None,
    deployment_id: Optional[str] = None,
    instance_ids: Optional[Iterable[str]] = None,
    **fields: Any
) -> Dict[str, Any]:
    context: Dict[str, Any] = {'operation': operation}
    if job_id:
        context['job_id'] = job_id
    if deployment_id:
        context['deployment_id'] = deployment_id
    if instance_ids:
        context['instance_ids'] = list(instance_ids)
    context.update({k: v for k, v in fields.items() if v is not None})
    return context


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class JobErrorHandler:
    """
    Usage:
        with JobErrorHandler.handle_operation(
            self.logger,
            "build the bundle",
            job_id=self.job_id,
            on_error=lambda e: self._fail(f"Unexpected error: {e}", e),
            raise_on_error=False
        ):
            self._build_bundle()
    """

    @staticmethod
    @contextmanager
    def handle_operation(
        logger: logging.Logger,
        operation_name: str,
        job_id: Optional[str] = None,
        deployment_id: Optional[str] = None,
        instance_ids: Optional[list] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        raise_on_error: bool = True
    ):
        """
        Args:
            logger: Logger for the failure record
            operation_name: Human-readable stage description
            job_id: Optional job ID for context
            deployment_id: Optional deployment ID for context
            instance_ids: Optional compute instances the stage touches
            on_error: Called with the exception before any re-raise; its own
                failure is logged and never replaces the original error
            raise_on_error: Re-raise after handling

        Raises:
            ContractViolationError: Always
            Exception: The original error when raise_on_error is True
        """
        try:
            yield
        except ContractViolationError:
            raise
        except Exception as e:
            logger.error(
                f"❌ Operation failed: {operation_name} ({_describe(e)})",
                exc_info=logger.isEnabledFor(logging.DEBUG),
                extra={'custom_dimensions': _context(
                    operation_name, job_id, deployment_id, instance_ids,
                    error_type=type(e).__name__,
                    error_message=str(e)
                )}
            )

            if on_error is not None:
                try:
                    on_error(e)
                except Exception as callback_error:
                    log_nested_error(logger, e, callback_error, operation_name, job_id=job_id)

            if raise_on_error:
                raise


def log_nested_error(
    logger: logging.Logger,
    primary_error: BaseException,
    cleanup_error: BaseException,
    operation: str,
    job_id: Optional[str] = None,
    additional_context: Optional[Dict[str, Any]] = None
) -> None:
    """
    One error record carrying both the failure and the failed cleanup.

    Args:
        logger: Logger instance
        primary_error: The error that triggered cleanup
        cleanup_error: The error raised (or reported) by the cleanup
        operation: What was being cleaned up
        job_id: Optional job ID for context
        additional_context: Extra custom dimensions
    """
    context = _context(
        operation,
        job_id,
        nested_error=True,
        primary_error=_describe(primary_error),
        cleanup_error=_describe(cleanup_error),
    )
    context.update(additional_context or {})
    logger.error(
        f"❌ {operation} failed during cleanup. "
        f"PRIMARY: {_describe(primary_error)} | CLEANUP: {_describe(cleanup_error)}",
        extra={'custom_dimensions': context}
    )
