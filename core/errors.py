"""
Error Code Definitions and Classification.

Centralized error code management for deployment jobs, with retry
classification for callers and a deployment-category mapping that the
orchestrator uses to decide how a failure affects the run.

Key Features:
    - Explicit error codes for all deployment failure modes
    - Retry classification (PERMANENT, TRANSIENT, THROTTLING)
    - Category classification (validation through teardown, plus image recreation)
    - Fatality rules per category

Exports:
    ErrorCode: Standardized error codes enum
    ErrorClassification: Retry category enum
    DeploymentErrorCategory: Deployment taxonomy enum
    is_retryable: Helper to check if a fresh job could succeed
    get_error_category: Category for an error code
    is_fatal: Whether a category ends the deployment
    create_error_response: Standard error dict for pollers
"""

from enum import Enum
from typing import Dict, Any


class ErrorCode(str, Enum):
    """
    Standardized error codes for deployment failures.

    These codes are attached to job status and deployment summaries to
    provide explicit error classification for operators.
    """

    # ========================================================================
    # VALIDATION ERRORS - before any compute is allocated
    # ========================================================================
    INVALID_DESCRIPTOR = "INVALID_DESCRIPTOR"
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    INVALID_INSTANCE_TYPE = "INVALID_INSTANCE_TYPE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    BUCKET_NOT_WRITABLE = "BUCKET_NOT_WRITABLE"
    RUNNER_JAR_NOT_FOUND = "RUNNER_JAR_NOT_FOUND"
    CONFIG_ERROR = "CONFIG_ERROR"

    # ========================================================================
    # PROVISIONING ERRORS - instances may already exist
    # ========================================================================
    LAUNCH_REJECTED = "LAUNCH_REJECTED"
    INSTANCE_STATUS_CHECK_FAILED = "INSTANCE_STATUS_CHECK_FAILED"
    IP_ASSIGNMENT_TIMEOUT = "IP_ASSIGNMENT_TIMEOUT"
    TAGGING_FAILED = "TAGGING_FAILED"
    REGISTRATION_FAILED = "REGISTRATION_FAILED"

    # ========================================================================
    # HEALTH ERRORS
    # ========================================================================
    GRAPH_BUILD_FAILED = "GRAPH_BUILD_FAILED"
    SERVER_START_FAILED = "SERVER_START_FAILED"
    HEALTH_CHECK_TIMEOUT = "HEALTH_CHECK_TIMEOUT"
    NO_HEALTHY_INSTANCES = "NO_HEALTHY_INSTANCES"

    # ========================================================================
    # TRANSFER ERRORS
    # ========================================================================
    BUNDLE_BUILD_FAILED = "BUNDLE_BUILD_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    WIRE_TRANSFER_FAILED = "WIRE_TRANSFER_FAILED"

    # ========================================================================
    # TEARDOWN ERRORS
    # ========================================================================
    TERMINATION_FAILED = "TERMINATION_FAILED"
    DEREGISTRATION_FAILED = "DEREGISTRATION_FAILED"

    # ========================================================================
    # IMAGE ERRORS - fatal only under the FAIL recreation policy
    # ========================================================================
    IMAGE_RECREATION_FAILED = "IMAGE_RECREATION_FAILED"

    # ========================================================================
    # GENERIC ERRORS
    # ========================================================================
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class ErrorClassification(str, Enum):
    """
    Error classification for retry decisions.

    Jobs never retry themselves; this tells the caller whether submitting a
    fresh job is worth it.
    """

    PERMANENT = "PERMANENT"
    TRANSIENT = "TRANSIENT"
    THROTTLING = "THROTTLING"


class DeploymentErrorCategory(str, Enum):
    """Where in the deployment the failure happened."""

    VALIDATION = "VALIDATION"
    PROVISIONING = "PROVISIONING"
    HEALTH = "HEALTH"
    TRANSFER = "TRANSFER"
    TEARDOWN = "TEARDOWN"
    IMAGE = "IMAGE"
    UNKNOWN = "UNKNOWN"


_ERROR_CLASSIFICATION: Dict[ErrorCode, ErrorClassification] = {
    ErrorCode.INVALID_DESCRIPTOR: ErrorClassification.PERMANENT,
    ErrorCode.IMAGE_NOT_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.INVALID_INSTANCE_TYPE: ErrorClassification.PERMANENT,
    ErrorCode.PERMISSION_DENIED: ErrorClassification.PERMANENT,
    ErrorCode.BUCKET_NOT_WRITABLE: ErrorClassification.PERMANENT,
    ErrorCode.RUNNER_JAR_NOT_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.CONFIG_ERROR: ErrorClassification.PERMANENT,

    # Capacity shortages for an instance type come back as launch rejections
    ErrorCode.LAUNCH_REJECTED: ErrorClassification.THROTTLING,
    ErrorCode.INSTANCE_STATUS_CHECK_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.IP_ASSIGNMENT_TIMEOUT: ErrorClassification.TRANSIENT,
    ErrorCode.TAGGING_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.REGISTRATION_FAILED: ErrorClassification.TRANSIENT,

    ErrorCode.GRAPH_BUILD_FAILED: ErrorClassification.PERMANENT,
    ErrorCode.SERVER_START_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.HEALTH_CHECK_TIMEOUT: ErrorClassification.TRANSIENT,
    ErrorCode.NO_HEALTHY_INSTANCES: ErrorClassification.TRANSIENT,

    ErrorCode.BUNDLE_BUILD_FAILED: ErrorClassification.THROTTLING,
    ErrorCode.UPLOAD_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.WIRE_TRANSFER_FAILED: ErrorClassification.TRANSIENT,

    ErrorCode.TERMINATION_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.DEREGISTRATION_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.IMAGE_RECREATION_FAILED: ErrorClassification.TRANSIENT,

    ErrorCode.UNEXPECTED_ERROR: ErrorClassification.TRANSIENT,
}


_ERROR_CATEGORY: Dict[ErrorCode, DeploymentErrorCategory] = {
    ErrorCode.INVALID_DESCRIPTOR: DeploymentErrorCategory.VALIDATION,
    ErrorCode.IMAGE_NOT_FOUND: DeploymentErrorCategory.VALIDATION,
    ErrorCode.INVALID_INSTANCE_TYPE: DeploymentErrorCategory.VALIDATION,
    ErrorCode.PERMISSION_DENIED: DeploymentErrorCategory.VALIDATION,
    ErrorCode.BUCKET_NOT_WRITABLE: DeploymentErrorCategory.VALIDATION,
    ErrorCode.RUNNER_JAR_NOT_FOUND: DeploymentErrorCategory.VALIDATION,
    ErrorCode.CONFIG_ERROR: DeploymentErrorCategory.VALIDATION,
    ErrorCode.LAUNCH_REJECTED: DeploymentErrorCategory.PROVISIONING,
    ErrorCode.INSTANCE_STATUS_CHECK_FAILED: DeploymentErrorCategory.PROVISIONING,
    ErrorCode.IP_ASSIGNMENT_TIMEOUT: DeploymentErrorCategory.PROVISIONING,
    ErrorCode.TAGGING_FAILED: DeploymentErrorCategory.PROVISIONING,
    ErrorCode.REGISTRATION_FAILED: DeploymentErrorCategory.PROVISIONING,
    ErrorCode.GRAPH_BUILD_FAILED: DeploymentErrorCategory.HEALTH,
    ErrorCode.SERVER_START_FAILED: DeploymentErrorCategory.HEALTH,
    ErrorCode.HEALTH_CHECK_TIMEOUT: DeploymentErrorCategory.HEALTH,
    ErrorCode.NO_HEALTHY_INSTANCES: DeploymentErrorCategory.HEALTH,
    ErrorCode.BUNDLE_BUILD_FAILED: DeploymentErrorCategory.TRANSFER,
    ErrorCode.UPLOAD_FAILED: DeploymentErrorCategory.TRANSFER,
    ErrorCode.WIRE_TRANSFER_FAILED: DeploymentErrorCategory.TRANSFER,
    ErrorCode.TERMINATION_FAILED: DeploymentErrorCategory.TEARDOWN,
    ErrorCode.DEREGISTRATION_FAILED: DeploymentErrorCategory.TEARDOWN,
    ErrorCode.IMAGE_RECREATION_FAILED: DeploymentErrorCategory.IMAGE,
}


def is_retryable(error_code: ErrorCode) -> bool:
    """
    Determine if a fresh job could plausibly succeed after this error.

    Example:
        >>> is_retryable(ErrorCode.IMAGE_NOT_FOUND)
        False
        >>> is_retryable(ErrorCode.IP_ASSIGNMENT_TIMEOUT)
        True
    """
    classification = _ERROR_CLASSIFICATION.get(error_code, ErrorClassification.TRANSIENT)
    return classification != ErrorClassification.PERMANENT


def get_error_classification(error_code: ErrorCode) -> ErrorClassification:
    """Get the retry classification for an error code."""
    return _ERROR_CLASSIFICATION.get(error_code, ErrorClassification.TRANSIENT)


def get_error_category(error_code: ErrorCode) -> DeploymentErrorCategory:
    """Get the deployment category for an error code."""
    return _ERROR_CATEGORY.get(error_code, DeploymentErrorCategory.UNKNOWN)


def is_fatal(
    category: DeploymentErrorCategory,
    partial_batch: bool = False,
    fail_on_image_error: bool = False
) -> bool:
    """
    Decide whether an error in this category ends the deployment.

    Args:
        category: Deployment error category
        partial_batch: True when the error concerns one instance out of a
            batch of run servers (health errors are tolerated there)
        fail_on_image_error: True under the FAIL image recreation policy

    Returns:
        True if the deployment must fail

    Example:
        >>> is_fatal(DeploymentErrorCategory.TEARDOWN)
        False
        >>> is_fatal(DeploymentErrorCategory.HEALTH, partial_batch=True)
        False
        >>> is_fatal(DeploymentErrorCategory.HEALTH)
        True
        >>> is_fatal(DeploymentErrorCategory.IMAGE)
        False
    """
    if category == DeploymentErrorCategory.TEARDOWN:
        return False
    if category == DeploymentErrorCategory.IMAGE:
        return fail_on_image_error
    if category == DeploymentErrorCategory.HEALTH and partial_batch:
        return False
    return True


def create_error_response(
    error_code: ErrorCode,
    message: str,
    **kwargs: Any
) -> Dict[str, Any]:
    """
    Create a standardized error response dictionary.

    Example:
        >>> create_error_response(
        ...     ErrorCode.IMAGE_NOT_FOUND,
        ...     "AMI ami-123 is missing",
        ...     image_id="ami-123"
        ... )
        {
            "success": False,
            "error": "IMAGE_NOT_FOUND",
            "category": "VALIDATION",
            "message": "AMI ami-123 is missing",
            "retryable": False,
            "image_id": "ami-123"
        }
    """
    return {
        "success": False,
        "error": error_code.value,
        "category": get_error_category(error_code).value,
        "message": message,
        "retryable": is_retryable(error_code),
        **kwargs
    }
