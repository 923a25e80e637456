"""
Job Executor - in-process trigger surface.

``submit()`` registers a job for polling and runs it on a worker thread. One
worker runs a whole job tree; sub-jobs never get their own thread.

Exports:
    JobExecutor
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Dict, Optional

from config import get_config
from jobs.base import MonitorableJob
from jobs.registry import JobRegistry
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "JobExecutor")


class JobExecutor:
    """
    Thread pool that runs submitted jobs.

    Usage:
        job_id = JobExecutor.instance().submit(DeployJob(descriptor, owner))
        JobRegistry.instance().get_job(job_id)
    """

    _instance: Optional['JobExecutor'] = None

    def __init__(self, registry: Optional[JobRegistry] = None, max_workers: Optional[int] = None):
        # An empty registry is falsy (__len__), so test identity
        self.registry = registry if registry is not None else JobRegistry.instance()
        self.max_workers = max_workers if max_workers is not None else get_config().job_executor_max_workers
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="job")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @classmethod
    def instance(cls) -> 'JobExecutor':
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def submit(self, job: MonitorableJob) -> str:
        """Register and start ``job``; returns its id immediately."""
        self.registry.register(job)
        future = self._pool.submit(self._run, job)
        with self._lock:
            self._prune()
            self._futures[job.job_id] = future
        logger.info(f"Submitted {job.job_type.value} job {job.job_id} for {job.owner.user_id}")
        return job.job_id

    def _prune(self) -> None:
        """Drop finished futures nobody waited on. Caller holds the lock."""
        for job_id in [k for k, f in self._futures.items() if f.done()]:
            del self._futures[job_id]

    @staticmethod
    def _run(job: MonitorableJob) -> None:
        try:
            job.run()
        except Exception as e:
            # run() only raises on contract violations (e.g. a job submitted twice)
            logger.error(f"❌ Job {job.job_id} could not run: {e}")
            raise

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until a submitted job's thread finishes.

        A finished job is forgotten at the next ``submit()``, after which
        waiting on it returns False like an unknown id.

        Returns:
            True when the job finished within ``timeout``
        """
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return False
        try:
            # The exception, if any, was already logged by _run
            future.exception(timeout=timeout)
        except FutureTimeoutError:
            return False
        with self._lock:
            self._futures.pop(job_id, None)
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
