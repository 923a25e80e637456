# ============================================================================
# JOB REGISTRY
# ============================================================================
# STATUS: Core component - active job tracking for pollers
# PURPOSE: Hold submitted jobs until a client has seen their terminal status
# CREATED: 19 OCT 2026
# EXPORTS: JobRegistry
# DEPENDENCIES: threading, jobs.base
# ENTRY_POINTS: JobRegistry.instance(), get_job(), retrieve_jobs_for_owner()
# ============================================================================

"""
Job Registry - Active Job Tracking

Jobs are registered when submitted and removed only after a poller has
received a snapshot showing them completed. A job that finishes while nobody
is watching stays visible until its owner next asks.

Pollers only ever receive JobSnapshot copies.
"""

import threading
from typing import Dict, List, Optional

from jobs.base import JobSnapshot, MonitorableJob
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.JOB, "JobRegistry")


class JobRegistry:
    """
    Thread-safe map of job id → job.

    Usage:
        registry = JobRegistry.instance()
        snap = registry.get_job(job_id)
        if snap and snap.completed:
            ...  # job is gone from the registry now
    """

    _instance: Optional['JobRegistry'] = None

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, MonitorableJob] = {}

    @classmethod
    def instance(cls) -> 'JobRegistry':
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, job: MonitorableJob) -> None:
        with self._lock:
            self._jobs[job.job_id] = job
        logger.debug(f"Registered job {job.job_id} ({job.job_type.value}) for {job.owner.user_id}")

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def get_job(self, job_id: str) -> Optional[JobSnapshot]:
        """
        Snapshot of one job, or None when unknown (or already retrieved after completing).
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            snapshot = job.snapshot()
            if snapshot.completed:
                del self._jobs[job_id]
                logger.debug(f"Job {job_id} retrieved after completion; removed")
        return snapshot

    def retrieve_jobs_for_owner(self, user_id: str) -> List[JobSnapshot]:
        """
        Snapshots of every registered job owned by ``user_id``, oldest first.
        Completed ones are removed once returned here.
        """
        snapshots: List[JobSnapshot] = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.owner.user_id != user_id:
                    continue
                snapshot = job.snapshot()
                snapshots.append(snapshot)
                if snapshot.completed:
                    del self._jobs[job_id]
        return snapshots

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()
