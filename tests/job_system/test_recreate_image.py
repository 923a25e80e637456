"""
Build image recreation job tests.
"""

import pytest

from core.models import InstanceLifecycle, InstanceRecord, JobType, ServerRole
from jobs.base import MonitorableJob
from jobs.recreate_image import RecreateBuildImageJob
from tests.factories.model_factories import make_descriptor, make_fleet


class ParentJob(MonitorableJob):
    job_type = JobType.DEPLOY_TO_OTP

    def job_logic(self):
        pass


@pytest.fixture
def builder():
    return InstanceRecord(
        instance_id="i-builder",
        public_ip="54.0.0.1",
        state=InstanceLifecycle.RUNNING,
        role=ServerRole.BUILDER,
    )


@pytest.fixture
def descriptor():
    return make_descriptor(fleet=make_fleet(recreate_build_image=True), use_prebuilt_graph=False)


@pytest.fixture
def make_job(owner, builder, descriptor, compute, deployment_repository, fast_config):
    def _make(no_reboot=True):
        return RecreateBuildImageJob(
            owner, ParentJob(owner, "deploy"), descriptor, builder,
            compute, deployment_repository,
            no_reboot=no_reboot,
            deployment_config=fast_config
        )
    return _make


def test_creates_image_and_records_it(make_job, compute, deployment_repository, descriptor):
    job = make_job(no_reboot=False)
    job.run()
    assert not job.status.error
    assert job.image_id == "ami-new-1"
    assert compute.created_images == [("i-builder", False)]
    assert deployment_repository.get_build_image(descriptor.server_id) == "ami-new-1"


def test_previous_image_is_deregistered(make_job, compute, deployment_repository, descriptor):
    deployment_repository.update_build_image(descriptor.server_id, "ami-old")
    job = make_job()
    job.run()
    assert job.previous_image_id == "ami-old"
    assert compute.deregistered_images == ["ami-old"]


def test_deregistration_failure_is_only_a_warning(make_job, compute, deployment_repository, descriptor, monkeypatch):
    deployment_repository.update_build_image(descriptor.server_id, "ami-old")

    def refuse(image_id):
        raise RuntimeError("InvalidAMIID.Unavailable")

    monkeypatch.setattr(compute, "deregister_image", refuse)
    job = make_job()
    job.run()
    assert not job.status.error
    assert "WARNING" in job.status.message


def test_failed_image_state_fails_job(make_job, compute, deployment_repository, descriptor):
    compute.image_states = ["pending", "failed"]
    job = make_job()
    job.run()
    assert job.status.error
    assert deployment_repository.get_build_image(descriptor.server_id) is None


def test_image_that_never_becomes_available_times_out(make_job, compute):
    compute.image_states = ["pending"]
    job = make_job()
    job.run()
    assert job.status.error
    assert "not available" in job.status.message


def test_builder_is_never_terminated(make_job, compute):
    make_job().run()
    assert compute.terminated == []
