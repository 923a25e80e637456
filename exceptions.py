# ============================================================================
# EXCEPTIONS
# ============================================================================
# STATUS: Shared - used by jobs, services and infrastructure
# PURPOSE: Distinguish contract violations from expected deployment failures
# EXPORTS: ContractViolationError, BusinessLogicError, ValidationError,
#          ProvisioningError, HealthCheckError, TransferError, TeardownError,
#          BundleBuildError, StorageError, ConfigurationError
# DEPENDENCIES: None (standard library only)
# ============================================================================

"""
Custom Exception Hierarchy

Distinguishes between:
1. Contract Violations (programming bugs that need fixing)
2. Business Logic Failures (expected runtime issues during a deployment)

Business failures are further split along the deployment error taxonomy so
the orchestrator can decide, per category, whether a failure is fatal,
partially tolerable, or only a warning.
"""

from typing import List, Optional


class ContractViolationError(TypeError):
    """
    Raised when component contracts are violated (programming bugs).

    These indicate:
    - A job constructed without an owner
    - Sub-jobs appended after execution started
    - A job run twice

    These should NEVER be caught and handled - they indicate bugs
    that need to be fixed in the code.
    """
    pass


class BusinessLogicError(Exception):
    """
    Base class for expected runtime failures.

    These are normal failures that occur during system operation
    and should be handled gracefully without crashing.
    """
    pass


class ValidationError(BusinessLogicError):
    """
    Descriptor or cloud configuration failed validation.

    Raised before any compute is allocated, so no cleanup is needed.

    Examples:
        - Machine image does not exist
        - Instance type not in the provider's enumeration
        - Bucket not writable with the deployment's credentials
    """
    pass


class ProvisioningError(BusinessLogicError):
    """
    The provider rejected a launch or instances never became reachable.

    Carries the instances that were created before the failure so the
    caller can terminate them.
    """

    def __init__(self, message: str, instances: Optional[List] = None):
        super().__init__(message)
        self.instances = list(instances or [])


class HealthCheckError(BusinessLogicError):
    """
    A launched instance reported failure or never reported ready.
    """
    pass


class TransferError(BusinessLogicError):
    """
    Bundle upload or graph wire-transfer failed.

    Examples:
        - Object storage upload rejected
        - Routing server answered something other than HTTP 201
    """
    pass


class TeardownError(BusinessLogicError):
    """
    Old or failed instances could not be deregistered or terminated.

    Never fatal for an otherwise successful deployment; surfaced as a
    warning with the affected instance ids.
    """

    def __init__(self, message: str, instance_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.instance_ids = list(instance_ids or [])


class BundleBuildError(BusinessLogicError):
    """
    Local failure while writing the deployment bundle (disk full, I/O error).
    """
    pass


class StorageError(BusinessLogicError):
    """
    Object storage operation failures other than uploads.

    Examples:
        - Container not found
        - Signed URL could not be generated
    """
    pass


class ConfigurationError(Exception):
    """
    System configuration error.

    These are typically fatal and indicate misconfiguration
    that prevents the system from operating.

    Examples:
        - Missing storage account name
        - Fleet deployment requested while EC2 deployment is disabled
    """
    pass
