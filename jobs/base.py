"""
MonitorableJob - Abstract base class for all jobs.

A job is one unit of asynchronous work with an owner, a type tag, a Status
that pollers can snapshot, and an ordered list of sub-jobs that run only if
everything before them succeeded.

Execution contract (``run()``, never overridden):
    1. job_logic(); an uncaught exception becomes status.fail(...)
    2. errored → every sub-job is cancelled, none runs
    3. otherwise sub-jobs run in declaration order on this thread; the first
       sub-job error cancels the remaining siblings and the parent
    4. duration is recorded, job_finished() runs whatever happened
    5. status is completed (percent 100)

Nothing raises out of run() except a ContractViolationError for a second call.
A job never retries itself; callers that want a retry build a fresh job.

Exports:
    MonitorableJob: Abstract base class (ABC)
    JobSnapshot: Frozen view of a job for pollers

Dependencies:
    abc: Abstract Base Class
    threading: run-once guard
"""

import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.models import JobOwner, JobType, Status, StatusSnapshot
from core.utils import generate_job_id
from exceptions import ContractViolationError
from util_logger import LoggerFactory, ComponentType


class JobSnapshot(BaseModel):
    """What a poller sees for one job."""
    model_config = ConfigDict(frozen=True)

    job_id: str
    job_type: JobType
    name: str
    owner: str = Field(..., description="Owner user id")
    email: Optional[str] = None
    parent_job_id: Optional[str] = None
    parent_job_type: Optional[JobType] = None
    percent_complete: float
    message: Optional[str] = None
    completed: bool
    error: bool
    exception_details: Optional[str] = None
    status: StatusSnapshot
    sub_jobs: List["JobSnapshot"] = Field(default_factory=list)


JobSnapshot.model_rebuild()


def cancellation_message(job: "MonitorableJob") -> str:
    return f"Task cancelled due to error in {type(job).__name__} task"


class MonitorableJob(ABC):
    """
    Base class for in-process jobs.

    Subclasses set ``job_type`` (and ``status_class`` when they need a richer
    status), implement ``job_logic()`` and optionally ``job_finished()``.

    Usage:
        class BuildThing(MonitorableJob):
            job_type = JobType.SYSTEM_JOB

            def job_logic(self):
                self.status.update("Building", 50)

        job = BuildThing(JobOwner.system(), "Build thing")
        job.add_next_job(OtherJob(owner, "After"))
        JobExecutor.instance().submit(job)
    """

    job_type: JobType = JobType.UNKNOWN_TYPE
    status_class = Status

    def __init__(self, owner: JobOwner, name: str = "Unnamed Job", job_type: Optional[JobType] = None):
        if owner is None:
            raise ContractViolationError("MonitorableJob must be constructed with a non-null owner")
        if not isinstance(owner, JobOwner):
            raise ContractViolationError(f"owner must be a JobOwner, got {type(owner).__name__}")

        self.job_id = generate_job_id()
        self.owner = owner
        self.name = name
        if job_type is not None:
            self.job_type = job_type
        self.parent_job_id: Optional[str] = None
        self.parent_job_type: Optional[JobType] = None
        self.status = self.status_class(name)
        self._sub_jobs: List[MonitorableJob] = []
        self._started = False
        self._start_lock = threading.Lock()
        self.logger = LoggerFactory.create_with_context(
            ComponentType.JOB,
            type(self).__name__,
            job_id=self.job_id,
            job_type=self.job_type.value
        )

    # ========================================================================
    # SUB-JOBS
    # ========================================================================

    @property
    def sub_jobs(self) -> Tuple["MonitorableJob", ...]:
        return tuple(self._sub_jobs)

    @property
    def started(self) -> bool:
        return self._started

    def add_next_job(self, *jobs: "MonitorableJob") -> None:
        """
        Append sub-jobs to run after this job's own logic.

        Raises:
            ContractViolationError: This job has already started
        """
        if self._started:
            raise ContractViolationError(
                f"Cannot add sub-jobs to {type(self).__name__} {self.job_id} after it has started"
            )
        for job in jobs:
            job.parent_job_id = self.job_id
            job.parent_job_type = self.job_type
            self._sub_jobs.append(job)

    # ========================================================================
    # HOOKS
    # ========================================================================

    @abstractmethod
    def job_logic(self) -> None:
        """Core work. Report failure with ``self.status.fail(...)`` or by raising."""
        pass

    def job_finished(self) -> None:
        """Runs after job logic and sub-jobs, whatever the outcome."""
        pass

    # ========================================================================
    # RUNNER
    # ========================================================================

    def _mark_started(self) -> None:
        with self._start_lock:
            if self._started:
                raise ContractViolationError(f"{type(self).__name__} {self.job_id} has already run")
            self._started = True

    def cancel(self, message: str) -> None:
        """
        Mark this job (and its own sub-jobs) as never run.
        """
        with self._start_lock:
            self._started = True
        self.status.cancel(message)
        for job in self._sub_jobs:
            job.cancel(message)

    def run(self) -> None:
        self._mark_started()
        self.status.begin()
        self.logger.info(f"▶️ Starting {self.job_type.value} job '{self.name}'")

        try:
            self.job_logic()
        except Exception as e:
            self.logger.exception(f"❌ Job logic raised: {e}")
            self.status.fail(f"Job failed due to unhandled exception: {e}", e)

        if self.status.error:
            reason = cancellation_message(self)
            for job in self._sub_jobs:
                job.cancel(reason)
        else:
            self._run_sub_jobs()

        self.status.set_duration()
        try:
            self.job_finished()
        except Exception as e:
            self.logger.exception(f"❌ job_finished raised: {e}")
            if not self.status.error:
                self.status.fail(f"Job failed while finishing: {e}", e)

        self.status.complete()
        outcome = "errored" if self.status.error else "completed"
        self.logger.info(
            f"{'❌' if self.status.error else '✅'} {self.job_type.value} {self.job_id} {outcome} "
            f"in {self.status.duration or 0:.1f}s: {self.status.message}"
        )

    def _run_sub_jobs(self) -> None:
        total = len(self._sub_jobs)
        if total == 0:
            return
        base = self.status.percent_complete

        for index, job in enumerate(self._sub_jobs, start=1):
            self.status.update(
                f"Running sub-task {index}/{total}: {job.name}",
                base + (100.0 - base) * index / (total + 1)
            )
            try:
                job.run()
            except ContractViolationError as e:
                self.logger.error(f"❌ Sub-job {job.job_id[:8]} could not run: {e}")
                job.status.fail(str(e), e)
            if job.status.error:
                reason = cancellation_message(job)
                for remaining in self._sub_jobs[index:]:
                    remaining.cancel(reason)
                self.status.fail(reason)
                return

    # ========================================================================
    # SNAPSHOT
    # ========================================================================

    def snapshot(self) -> JobSnapshot:
        status = self.status.snapshot()
        return JobSnapshot(
            job_id=self.job_id,
            job_type=self.job_type,
            name=self.name,
            owner=self.owner.user_id,
            email=self.owner.email,
            parent_job_id=self.parent_job_id,
            parent_job_type=self.parent_job_type,
            percent_complete=status.percent_complete,
            message=status.message,
            completed=status.completed,
            error=status.error,
            exception_details=status.exception_details,
            status=status,
            sub_jobs=[job.snapshot() for job in self._sub_jobs],
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(job_id={self.job_id[:8]}, name={self.name!r}, status={self.status!r})"
