"""
Deployment descriptor, fleet and summary model tests.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.models import (
    DeploymentDescriptor,
    DeployStatus,
    DeploySummary,
    FleetSpec,
    InstanceLifecycle,
    InstanceRecord,
    ServerRole,
    clean_name,
)
from tests.factories.model_factories import make_descriptor, make_fleet


# ============================================================================
# TestCleanName
# ============================================================================

class TestCleanName:

    @pytest.mark.parametrize("raw,expected", [
        ("Metro Transit (North)", "Metro_Transit_North"),
        ("already_clean-name", "already_clean-name"),
        ("  spaced  ", "spaced"),
        ("!!!", "unnamed"),
    ])
    def test_clean_name(self, raw, expected):
        assert clean_name(raw) == expected


# ============================================================================
# TestFleetSpec
# ============================================================================

class TestFleetSpec:

    def test_build_settings_default_to_run_settings(self):
        fleet = FleetSpec(**make_fleet())
        assert fleet.resolved_build_image_id == "ami-run"
        assert fleet.resolved_build_instance_type == "t3.large"
        assert not fleet.has_separate_graph_build_config()

    def test_different_build_type_is_separate_config(self):
        fleet = FleetSpec(**make_fleet(build_instance_type="c5.2xlarge"))
        assert fleet.has_separate_graph_build_config()

    def test_instance_count_is_bounded(self):
        with pytest.raises(PydanticValidationError):
            FleetSpec(**make_fleet(instance_count=101))
        with pytest.raises(PydanticValidationError):
            FleetSpec(**make_fleet(instance_count=-1))


# ============================================================================
# TestDescriptorConsistency
# ============================================================================

class TestDescriptorConsistency:

    def test_wire_descriptor_is_consistent(self, tmp_path):
        assert make_descriptor(tmp_path).consistency_problems() == []

    def test_fleet_descriptor_is_consistent(self, tmp_path):
        assert make_descriptor(tmp_path, fleet=make_fleet()).consistency_problems() == []

    def test_no_target_at_all(self, tmp_path):
        descriptor = make_descriptor(tmp_path, internal_urls=[])
        assert any("neither" in p for p in descriptor.consistency_problems())

    def test_fleet_needs_bucket(self, tmp_path):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(), bucket=None)
        assert any("bucket" in p for p in descriptor.consistency_problems())

    def test_build_only_and_prebuilt_are_exclusive(self, tmp_path):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(), build_only=True, use_prebuilt_graph=True)
        assert any("mutually exclusive" in p for p in descriptor.consistency_problems())

    def test_missing_feeds_reported_when_bundle_needed(self):
        descriptor = make_descriptor(fleet=make_fleet())
        assert any("feeds" in p for p in descriptor.consistency_problems())

    def test_prebuilt_graph_needs_no_feeds(self):
        descriptor = make_descriptor(fleet=make_fleet(), use_prebuilt_graph=True)
        assert not descriptor.needs_bundle_build
        assert descriptor.consistency_problems() == []

    def test_osm_required_unless_skipped_or_remote(self, tmp_path):
        descriptor = make_descriptor(tmp_path, skip_osm_extract=False)
        assert any("OSM" in p for p in descriptor.consistency_problems())
        remote = make_descriptor(tmp_path, skip_osm_extract=False, osm_extract_url="https://osm.test/x.pbf")
        assert remote.consistency_problems() == []

    def test_internal_urls_lose_trailing_slash(self, tmp_path):
        descriptor = make_descriptor(tmp_path, internal_urls=["http://a:8080/otp/"])
        assert descriptor.internal_urls == ["http://a:8080/otp"]

    def test_descriptor_is_frozen(self, tmp_path):
        descriptor = make_descriptor(tmp_path)
        with pytest.raises(PydanticValidationError):
            descriptor.build_only = True


# ============================================================================
# TestInstanceRecord
# ============================================================================

class TestInstanceRecord:

    def test_from_ec2(self):
        record = InstanceRecord.from_ec2({
            "InstanceId": "i-abc",
            "PublicIpAddress": "1.2.3.4",
            "State": {"Name": "running", "Code": 16},
            "InstanceType": "t3.large",
            "ImageId": "ami-run",
            "Tags": [{"Key": "serverId", "Value": "s1"}],
        }, role=ServerRole.BUILDER)
        assert record.instance_id == "i-abc"
        assert record.has_public_ip
        assert record.state == InstanceLifecycle.RUNNING
        assert record.tags == {"serverId": "s1"}
        assert record.role == ServerRole.BUILDER

    def test_no_public_ip(self):
        record = InstanceRecord.from_ec2({"InstanceId": "i-abc", "State": {"Name": "pending"}})
        assert not record.has_public_ip


# ============================================================================
# TestDeploySummary
# ============================================================================

class TestDeploySummary:

    def _summary(self, status: DeployStatus) -> DeploySummary:
        return DeploySummary(
            job_id="job-1",
            deployment_id="dep-1",
            server_id="server-1",
            status=status.snapshot(),
        )

    def test_success_without_cleanup(self):
        status = DeployStatus("deploy")
        status.complete("done")
        summary = self._summary(status)
        assert summary.succeeded
        assert not summary.needs_manual_cleanup

    def test_unterminated_instances_need_cleanup(self):
        status = DeployStatus("deploy")
        status.add_unterminated(["i-stuck"])
        status.fail("teardown failed")
        summary = self._summary(status)
        assert not summary.succeeded
        assert summary.needs_manual_cleanup

    def test_summary_is_frozen(self):
        summary = self._summary(DeployStatus("deploy"))
        with pytest.raises(PydanticValidationError):
            summary.job_id = "other"


def test_descriptor_round_trips_through_json(tmp_path):
    descriptor = make_descriptor(tmp_path, fleet=make_fleet())
    restored = DeploymentDescriptor.model_validate_json(descriptor.model_dump_json())
    assert restored == descriptor
