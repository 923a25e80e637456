"""
MonitorableJob execution contract tests.
"""

import pytest

from core.models import JobOwner, JobType
from exceptions import ContractViolationError
from jobs.base import MonitorableJob, cancellation_message


class RecordingJob(MonitorableJob):
    """Appends its name to a shared log; optionally fails or raises."""

    job_type = JobType.SYSTEM_JOB

    def __init__(self, owner, name, log, fail=False, raise_error=False, percents=()):
        super().__init__(owner, name)
        self.log = log
        self.fail = fail
        self.raise_error = raise_error
        self.percents = percents
        self.finished = False

    def job_logic(self):
        self.log.append(self.name)
        for percent in self.percents:
            self.status.update(f"at {percent}", percent)
        if self.raise_error:
            raise RuntimeError("exploded")
        if self.fail:
            self.status.fail(f"{self.name} failed")

    def job_finished(self):
        self.finished = True


@pytest.fixture
def log():
    return []


class TestConstruction:

    def test_owner_required(self, log):
        with pytest.raises(ContractViolationError):
            RecordingJob(None, "x", log)

    def test_owner_must_be_job_owner(self, log):
        with pytest.raises(ContractViolationError):
            RecordingJob({"user_id": "u"}, "x", log)

    def test_ids_are_unique(self, owner, log):
        assert RecordingJob(owner, "a", log).job_id != RecordingJob(owner, "b", log).job_id


class TestRun:

    def test_successful_job_completes_at_100(self, owner, log):
        job = RecordingJob(owner, "solo", log, percents=(10, 50))
        job.run()
        assert job.status.completed and not job.status.error
        assert job.status.percent_complete == 100
        assert job.finished
        assert job.status.duration is not None

    def test_raising_logic_becomes_failure(self, owner, log):
        job = RecordingJob(owner, "boom", log, raise_error=True)
        job.run()
        assert job.status.error and job.status.completed
        assert job.status.message == "Job failed due to unhandled exception: exploded"
        assert job.status.exception_type == "RuntimeError"
        assert job.finished

    def test_run_twice_is_a_contract_violation(self, owner, log):
        job = RecordingJob(owner, "once", log)
        job.run()
        with pytest.raises(ContractViolationError):
            job.run()

    def test_cannot_add_sub_jobs_after_start(self, owner, log):
        job = RecordingJob(owner, "parent", log)
        job.run()
        with pytest.raises(ContractViolationError):
            job.add_next_job(RecordingJob(owner, "late", log))

    def test_finish_hook_failure_fails_a_healthy_job(self, owner, log):
        class BadFinish(RecordingJob):
            def job_finished(self):
                raise OSError("disk gone")

        job = BadFinish(owner, "bad", log)
        job.run()
        assert job.status.error
        assert "disk gone" in job.status.message


class TestSubJobs:

    def test_sub_jobs_run_in_order(self, owner, log):
        parent = RecordingJob(owner, "parent", log)
        parent.add_next_job(RecordingJob(owner, "first", log), RecordingJob(owner, "second", log))
        parent.run()
        assert log == ["parent", "first", "second"]
        assert all(j.status.completed and not j.status.error for j in parent.sub_jobs)
        assert parent.sub_jobs[0].parent_job_id == parent.job_id

    def test_parent_failure_cancels_all_sub_jobs(self, owner, log):
        parent = RecordingJob(owner, "parent", log, fail=True)
        children = [RecordingJob(owner, "a", log), RecordingJob(owner, "b", log)]
        parent.add_next_job(*children)
        parent.run()
        assert log == ["parent"]
        for child in children:
            assert child.status.error and child.status.completed
            assert child.status.message == cancellation_message(parent)
            assert not child.finished

    def test_sub_job_failure_cancels_rest_and_parent(self, owner, log):
        parent = RecordingJob(owner, "parent", log)
        first = RecordingJob(owner, "first", log)
        bad = RecordingJob(owner, "bad", log, fail=True)
        last = RecordingJob(owner, "last", log)
        parent.add_next_job(first, bad, last)
        parent.run()

        assert log == ["parent", "first", "bad"]
        assert not first.status.error
        assert last.status.error and last.status.message == "Task cancelled due to error in RecordingJob task"
        assert parent.status.error
        assert parent.status.message == cancellation_message(bad)
        assert parent.finished

    def test_nested_cancellation_reaches_grandchildren(self, owner, log):
        parent = RecordingJob(owner, "parent", log, fail=True)
        child = RecordingJob(owner, "child", log)
        grandchild = RecordingJob(owner, "grandchild", log)
        child.add_next_job(grandchild)
        parent.add_next_job(child)
        parent.run()
        assert grandchild.status.error and grandchild.status.completed

    def test_percent_never_decreases_across_sub_jobs(self, owner, log):
        seen = []

        class Watching(RecordingJob):
            def job_logic(self):
                super().job_logic()
                seen.append(parent.status.percent_complete)

        parent = RecordingJob(owner, "parent", log, percents=(40,))
        parent.add_next_job(*(Watching(owner, f"s{i}", log) for i in range(4)))
        parent.run()
        seen.append(parent.status.percent_complete)
        assert seen == sorted(seen)
        assert seen[-1] == 100


class TestSnapshot:

    def test_snapshot_includes_sub_jobs(self, owner, log):
        parent = RecordingJob(owner, "parent", log)
        parent.add_next_job(RecordingJob(owner, "child", log))
        parent.run()
        snap = parent.snapshot()
        assert snap.completed and not snap.error
        assert snap.owner == owner.user_id
        assert len(snap.sub_jobs) == 1
        assert snap.sub_jobs[0].parent_job_id == parent.job_id

    def test_system_owner(self, log):
        job = RecordingJob(JobOwner.system(), "sys", log)
        assert job.snapshot().owner == "system"
