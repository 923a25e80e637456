"""
DeployJob end-to-end tests against in-memory fakes.

Instance numbering in FakeCompute is launch order: with a graph build the
builder is i-0001 (54.0.0.1) and run servers follow.
"""

import os
import threading

import pytest

from core.errors import ErrorCode
from core.models import (
    DeploymentState,
    FleetMode,
    ImageRecreationFailurePolicy,
    ServerRole,
)
from jobs.deploy import DeployJob
from tests.factories.fakes import FakeTransferClient, FakeUrlChecker
from tests.factories.model_factories import fast_deployment_config, make_descriptor, make_fleet


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def make_job(owner, storage, compute, load_balancer, status_client, url_checker,
             deployment_repository, fast_config, storage_config, work_dir):
    def _make(descriptor, config=None, transfer_client=None, **overrides):
        job = DeployJob(
            descriptor, owner,
            storage=overrides.get("storage", storage),
            compute=compute,
            load_balancer=load_balancer,
            status_client=status_client,
            transfer_client=transfer_client or FakeTransferClient(),
            url_checker=overrides.get("url_checker", url_checker),
            deployment_repository=deployment_repository,
            deployment_config=config or fast_config,
            storage_config=storage_config,
            temp_dir=str(work_dir)
        )
        status_client.nonce = job.nonce
        return job
    return _make


def _existing_fleet(compute, load_balancer, descriptor, count=2):
    ids = []
    for n in range(count):
        record = compute.add_existing(f"i-old{n}", {"serverId": descriptor.server_id, "jobId": "job-earlier"})
        ids.append(record.instance_id)
    load_balancer.targets.update(ids)
    return ids


def _summary(deployment_repository, descriptor):
    history = deployment_repository.get_history(descriptor.deployment_id)
    assert len(history) == 1
    return history[0]


# ============================================================================
# Successful fleet deployments
# ============================================================================

class TestFleetSuccess:

    def test_builder_kept_as_server(self, tmp_path, make_job, compute, load_balancer,
                                    events, deployment_repository, storage):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=3))
        old = _existing_fleet(compute, load_balancer, descriptor)
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert job.status.state == DeploymentState.DONE
        assert job.status.message == "Server setup is complete!"
        assert load_balancer.targets == {"i-0001", "i-0002", "i-0003"}
        assert set(old) <= set(compute.terminated)
        assert [r.count for r in compute.launch_requests] == [1, 2]
        assert compute.launch_requests[0].role == ServerRole.BUILDER

        kinds = [e[0] for e in events]
        assert kinds.index("register") < kinds.index("deregister")

        summary = _summary(deployment_repository, descriptor)
        assert summary.succeeded
        assert {i.instance_id for i in summary.instances} == {"i-0001", "i-0002", "i-0003"}
        assert summary.status.completed
        assert deployment_repository.get_deployed_to(descriptor.deployment_id) == descriptor.server_id
        assert job.status.base_url == descriptor.public_url

    def test_bundle_uploaded_with_latest_alias(self, tmp_path, make_job, storage):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet())
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert storage.exists("otp-bucket", job.bundle_builder.latest_key)
        assert job.status.built
        assert job.status.percent_uploaded == 100.0

    def test_prebuilt_graph_skips_builder(self, make_job, compute, load_balancer):
        descriptor = make_descriptor(fleet=make_fleet(instance_count=3), use_prebuilt_graph=True)
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert [r.count for r in compute.launch_requests] == [3]
        assert all(r.role == ServerRole.SERVER for r in compute.launch_requests)
        assert len(load_balancer.targets) == 3

    def test_single_instance_is_just_the_builder(self, tmp_path, make_job, compute, load_balancer):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=1))
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert [r.count for r in compute.launch_requests] == [1]
        assert load_balancer.targets == {"i-0001"}

    def test_separate_build_config_discards_builder_first(self, tmp_path, make_job, compute, load_balancer, events):
        descriptor = make_descriptor(
            tmp_path, fleet=make_fleet(instance_count=2, build_instance_type="c5.2xlarge")
        )
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert compute.launch_requests[0].instance_type == "c5.2xlarge"
        assert load_balancer.targets == {"i-0002", "i-0003"}
        assert events[:3] == [("launch", ["i-0001"]), ("terminate", ["i-0001"]), ("launch", ["i-0002", "i-0003"])]

    def test_add_mode_keeps_previous_fleet(self, tmp_path, make_job, compute, load_balancer):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=1), fleet_mode=FleetMode.ADD)
        old = _existing_fleet(compute, load_balancer, descriptor)
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert load_balancer.targets == set(old) | {"i-0001"}
        assert not set(old) & set(compute.terminated)

    def test_percent_and_states_progress(self, tmp_path, make_job, status_client):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=2))
        job = make_job(descriptor)
        seen = []
        original = status_client.fetch_status

        def watching(url):
            snap = job.status.snapshot()
            seen.append((snap.percent_complete, snap.state))
            return original(url)

        status_client.fetch_status = watching
        job.run()
        percents = [p for p, _ in seen]
        assert percents == sorted(percents)
        states = {s for _, s in seen}
        assert DeploymentState.BUILDING_GRAPH in states
        assert DeploymentState.STARTING_SERVERS in states
        assert job.status.percent_complete == 100

    def test_upload_progress_applied_on_job_thread(self, tmp_path, make_job, monkeypatch):
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
        writers = []
        original = job.status.set_fields

        def recording(**fields):
            if "percent_uploaded" in fields:
                writers.append((threading.current_thread(), fields["percent_uploaded"]))
            original(**fields)

        monkeypatch.setattr(job.status, "set_fields", recording)
        job.run()

        assert not job.status.error, job.status.message
        assert writers
        assert {thread for thread, _ in writers} == {threading.current_thread()}
        assert writers[-1][1] == 100.0
        assert job.status.percent_uploaded == 100.0

    def test_temporary_bundle_removed(self, tmp_path, make_job, work_dir):
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
        job.run()
        assert os.listdir(work_dir) == []


# ============================================================================
# Partial and total failures
# ============================================================================

class TestFleetFailures:

    def test_one_failed_server_is_a_warning(self, tmp_path, make_job, compute, load_balancer,
                                            status_client, deployment_repository):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=3))
        old = _existing_fleet(compute, load_balancer, descriptor)
        status_client.outcomes["54.0.0.3"] = "failed"
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert load_balancer.targets == {"i-0001", "i-0002"}
        assert "i-0003" in compute.terminated
        assert set(old) <= set(compute.terminated)
        assert job.status.failed_instance_count == 1
        assert "1 instance failed to start." in job.status.warnings
        summary = _summary(deployment_repository, descriptor)
        assert "1 instance failed to start." in summary.status.warnings

    def test_no_healthy_servers_keeps_previous_fleet(self, make_job, compute, load_balancer,
                                                     status_client, deployment_repository):
        descriptor = make_descriptor(fleet=make_fleet(instance_count=3), use_prebuilt_graph=True)
        old = _existing_fleet(compute, load_balancer, descriptor)
        status_client.default = "failed"
        job = make_job(descriptor)
        job.run()

        assert job.status.error
        assert job.status.message == "Job failed because no running instances remain."
        assert load_balancer.targets == set(old)
        assert not set(old) & set(compute.terminated)
        assert set(compute.terminated) == {"i-0001", "i-0002", "i-0003"}
        summary = _summary(deployment_repository, descriptor)
        assert summary.error_code == ErrorCode.NO_HEALTHY_INSTANCES
        assert summary.error["error"] == "NO_HEALTHY_INSTANCES"
        assert summary.error["category"] == "HEALTH"
        assert summary.error["retryable"] is True
        assert summary.error["deployment_id"] == descriptor.deployment_id
        assert summary.instances == []
        assert deployment_repository.get_deployed_to(descriptor.deployment_id) is None

    def test_builder_without_ip_is_terminated(self, tmp_path, make_job, compute, load_balancer, events):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet())
        compute.no_ip.add(1)
        job = make_job(descriptor)
        job.run()

        assert job.status.error
        assert job.error_code == ErrorCode.IP_ASSIGNMENT_TIMEOUT
        assert compute.terminated == ["i-0001"]
        assert "register" not in [e[0] for e in events]
        assert compute.live_ids() == set()

    def test_graph_build_failure(self, tmp_path, make_job, compute, status_client):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=3))
        status_client.default = "failed"
        job = make_job(descriptor)
        job.run()

        assert job.status.error
        assert job.status.message.startswith("Error encountered while building graph. Inspect build logs.")
        assert compute.terminated == ["i-0001"]
        assert len(compute.launch_requests) == 1

    def test_unterminated_instance_flagged_for_cleanup(self, make_job, compute, status_client,
                                                       deployment_repository):
        descriptor = make_descriptor(fleet=make_fleet(instance_count=2), use_prebuilt_graph=True)
        status_client.outcomes["54.0.0.2"] = "failed"
        compute.refuse_termination.add("i-0002")
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert job.status.unterminated_instance_ids == ["i-0002"]
        summary = _summary(deployment_repository, descriptor)
        assert summary.needs_manual_cleanup

    def test_registration_refused_tears_down_new_fleet(self, make_job, compute, load_balancer):
        descriptor = make_descriptor(fleet=make_fleet(instance_count=2), use_prebuilt_graph=True)
        old = _existing_fleet(compute, load_balancer, descriptor)
        load_balancer.refuse_register = True
        job = make_job(descriptor)
        job.run()

        assert job.status.error
        assert job.error_code == ErrorCode.REGISTRATION_FAILED
        assert {"i-0001", "i-0002"} <= set(compute.terminated)
        assert load_balancer.targets == set(old)

    def test_previous_instance_that_will_not_terminate(self, make_job, compute, load_balancer):
        descriptor = make_descriptor(fleet=make_fleet(instance_count=1), use_prebuilt_graph=True)
        old = _existing_fleet(compute, load_balancer, descriptor, count=1)
        compute.refuse_termination.add(old[0])
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert job.status.unterminated_instance_ids == old
        assert any("previous EC2 instances" in w for w in job.status.warnings)


# ============================================================================
# Build only and image recreation
# ============================================================================

class TestBuildAndImage:

    def test_build_only_terminates_builder(self, tmp_path, make_job, compute, events, deployment_repository):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=0), build_only=True)
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert job.status.message == "Graph build is complete!"
        assert compute.terminated == ["i-0001"]
        assert "register" not in [e[0] for e in events]
        assert _summary(deployment_repository, descriptor).succeeded

    def test_recreate_with_kept_builder_uses_no_reboot(self, tmp_path, make_job, compute,
                                                       load_balancer, deployment_repository):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(instance_count=2, recreate_build_image=True))
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert compute.created_images == [("i-0001", True)]
        assert job.status.recreated_image_id == "ami-new-1"
        assert "i-0001" in load_balancer.targets
        assert deployment_repository.get_build_image(descriptor.server_id) == "ami-new-1"

    def test_recreate_with_separate_builder_terminates_it_after(self, tmp_path, make_job, compute,
                                                                load_balancer):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(
            instance_count=1, build_instance_type="c5.2xlarge", recreate_build_image=True
        ))
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert compute.created_images == [("i-0001", False)]
        assert load_balancer.targets == {"i-0002"}
        assert "i-0001" in compute.terminated
        assert compute.live_ids() == {"i-0002"}

    def test_recreate_failure_warns_by_default(self, tmp_path, make_job, compute):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(recreate_build_image=True))
        compute.image_states = ["failed"]
        job = make_job(descriptor)
        job.run()

        assert not job.status.error, job.status.message
        assert any("image recreation failed" in w for w in job.status.warnings)
        assert job.status.recreated_image_id is None

    def test_recreate_failure_can_fail_deployment(self, tmp_path, make_job, compute, deployment_repository):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(recreate_build_image=True))
        compute.image_states = ["failed"]
        config = fast_deployment_config(image_recreation_failure_policy=ImageRecreationFailurePolicy.FAIL)
        job = make_job(descriptor, config=config)
        job.run()

        assert job.status.error
        assert job.error_code == ErrorCode.IMAGE_RECREATION_FAILED
        summary = _summary(deployment_repository, descriptor)
        assert summary.error["category"] == "IMAGE"
        assert summary.error["message"] == job.status.message


# ============================================================================
# Validation
# ============================================================================

class TestValidation:

    def test_unwritable_bucket(self, tmp_path, make_job, compute, storage):
        storage.writable = False
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
        job.run()
        assert job.status.error
        assert job.error_code == ErrorCode.BUCKET_NOT_WRITABLE
        assert compute.launch_requests == []

    def test_missing_runner_jar(self, tmp_path, make_job, compute):
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()), url_checker=FakeUrlChecker(available=False))
        job.run()
        assert job.status.error
        assert job.error_code == ErrorCode.RUNNER_JAR_NOT_FOUND
        assert compute.launch_requests == []

    def test_missing_image(self, tmp_path, make_job, compute):
        compute.images.clear()
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
        job.run()
        assert job.status.error
        assert "ami-run" in job.status.message
        assert compute.launch_requests == []

    def test_fleet_disabled(self, tmp_path, make_job, compute):
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()), config=fast_deployment_config(ec2_enabled=False))
        job.run()
        assert job.status.error
        assert "disabled" in job.status.message

    def test_inconsistent_descriptor(self, make_job, deployment_repository):
        descriptor = make_descriptor(fleet=make_fleet())
        job = make_job(descriptor)
        job.run()
        assert job.status.error
        assert job.error_code == ErrorCode.INVALID_DESCRIPTOR
        assert _summary(deployment_repository, descriptor).error_code == ErrorCode.INVALID_DESCRIPTOR

    def test_unexpected_exception_fails_job(self, tmp_path, make_job, compute, monkeypatch):
        def explode():
            raise RuntimeError("sts unreachable")
        monkeypatch.setattr(compute, "verify_credentials", explode)
        job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
        job.run()
        assert job.status.error
        assert job.status.completed
        assert "sts unreachable" in job.status.message


# ============================================================================
# Wire delivery
# ============================================================================

class TestWireDelivery:

    def test_posts_to_every_server(self, tmp_path, make_job, deployment_repository, work_dir):
        descriptor = make_descriptor(tmp_path)
        transfer = FakeTransferClient()
        job = make_job(descriptor, transfer_client=transfer)
        job.run()

        assert not job.status.error, job.status.message
        assert job.status.message == "Deployment complete!"
        assert transfer.posts == [f"{url}/routers/default" for url in descriptor.internal_urls]
        assert job.status.num_servers_completed == 2
        assert job.status.base_url == descriptor.public_url
        assert deployment_repository.get_deployed_to(descriptor.deployment_id) == descriptor.server_id
        assert os.listdir(work_dir) == []

    def test_non_201_stops_remaining_servers(self, tmp_path, make_job):
        descriptor = make_descriptor(tmp_path)
        first = f"{descriptor.internal_urls[0]}/routers/default"
        transfer = FakeTransferClient(codes={first: 500})
        job = make_job(descriptor, transfer_client=transfer)
        job.run()

        assert job.status.error
        assert job.status.message == "Got response code 500 from server due to graph build failed"
        assert transfer.posts == [first]
        assert job.error_code == ErrorCode.WIRE_TRANSFER_FAILED

    def test_wire_without_bucket_skips_upload(self, tmp_path, make_job, storage):
        descriptor = make_descriptor(tmp_path, bucket=None)
        job = make_job(descriptor)
        job.run()
        assert not job.status.error, job.status.message
        assert storage.calls == []


def test_snapshot_exposes_deploy_fields(tmp_path, make_job):
    job = make_job(make_descriptor(tmp_path, fleet=make_fleet()))
    job.run()
    snap = job.snapshot()
    assert snap.completed
    assert snap.status.state == DeploymentState.DONE
    assert snap.status.total_servers == 1
