"""
Job Registry - Explicit job registration.

All job classes are listed here explicitly. No decorators, no auto-discovery.
If it's not in ALL_JOBS, callers cannot look it up by type.

Registration Process:
    1. Create your job class in jobs/your_job.py (subclass MonitorableJob)
    2. Import it at the top of this file
    3. Add entry to ALL_JOBS dict keyed by its JobType

Exports:
    ALL_JOBS: Dict mapping JobType to job class
    get_job_class: Lookup with a clear error for unregistered types
    MonitorableJob, JobSnapshot: Base class and poller view
    JobRegistry, JobExecutor: Active-job tracking and the worker pool
"""

from typing import Dict, Type

from core.models import JobType

from .base import JobSnapshot, MonitorableJob
from .deploy import DeployJob
from .executor import JobExecutor
from .monitor_server import MonitorServerStatusJob
from .recreate_image import RecreateBuildImageJob
from .registry import JobRegistry

ALL_JOBS: Dict[JobType, Type[MonitorableJob]] = {
    JobType.DEPLOY_TO_OTP: DeployJob,
    JobType.MONITOR_SERVER_STATUS: MonitorServerStatusJob,
    JobType.RECREATE_BUILD_IMAGE: RecreateBuildImageJob,
}


def get_job_class(job_type: JobType) -> Type[MonitorableJob]:
    """
    Raises:
        ValueError: job_type has no registered class
    """
    if job_type not in ALL_JOBS:
        available = ", ".join(sorted(t.value for t in ALL_JOBS))
        raise ValueError(f"Unknown job type: '{job_type.value}'. Available: {available}")
    return ALL_JOBS[job_type]


__all__ = [
    'ALL_JOBS',
    'get_job_class',
    'MonitorableJob',
    'JobSnapshot',
    'DeployJob',
    'MonitorServerStatusJob',
    'RecreateBuildImageJob',
    'JobRegistry',
    'JobExecutor',
]
