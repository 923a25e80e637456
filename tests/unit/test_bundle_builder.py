"""
Bundle build and upload tests.
"""

import json
import os
import zipfile

import pytest

from exceptions import BundleBuildError, TransferError
from services.bundle_builder import (
    BUILD_CONFIG_FILENAME,
    BUNDLE_FILENAME,
    OSM_FILENAME,
    ROUTER_CONFIG_FILENAME,
    BundleBuilder,
)
from tests.factories.model_factories import make_descriptor, make_feed_zip, make_fleet


@pytest.fixture
def descriptor(tmp_path):
    return make_descriptor(tmp_path, fleet=make_fleet(), project_name="Metro Transit")


@pytest.fixture
def builder(descriptor, storage, storage_config):
    return BundleBuilder(descriptor, "job-123", storage, storage_config)


class TestBuild:

    def test_entries_are_sorted_and_named(self, builder, tmp_path):
        artifact = builder.build(str(tmp_path / "bundle.zip"))
        with zipfile.ZipFile(artifact.path) as z:
            names = z.namelist()
        assert names == sorted(names)
        assert set(names) == {BUILD_CONFIG_FILENAME, ROUTER_CONFIG_FILENAME, "Main_Agency.zip"}
        assert artifact.entries == names

    def test_config_files_are_canonical_json(self, builder, tmp_path):
        artifact = builder.build(str(tmp_path / "bundle.zip"))
        with zipfile.ZipFile(artifact.path) as z:
            router = z.read(ROUTER_CONFIG_FILENAME).decode("utf-8")
        assert json.loads(router) == {"routingDefaults": {"walkSpeed": 1.3}}
        assert router == json.dumps(json.loads(router), sort_keys=True, indent=2)

    def test_same_inputs_give_identical_bytes(self, builder, tmp_path):
        first = builder.build(str(tmp_path / "a.zip"))
        second = builder.build(str(tmp_path / "b.zip"))
        assert first.sha256 == second.sha256
        assert first.size == second.size

    def test_osm_extract_is_included_when_not_skipped(self, tmp_path, storage, storage_config):
        osm = tmp_path / "region.osm.pbf"
        osm.write_bytes(b"\x00" * 4096)
        descriptor = make_descriptor(tmp_path, skip_osm_extract=False, osm_extract_path=str(osm))
        artifact = BundleBuilder(descriptor, "job-1", storage, storage_config).build(str(tmp_path / "x.zip"))
        with zipfile.ZipFile(artifact.path) as z:
            assert z.read(OSM_FILENAME) == b"\x00" * 4096

    def test_duplicate_feed_names_are_rejected(self, tmp_path, storage, storage_config):
        first = make_feed_zip(tmp_path, "one.zip")
        second = make_feed_zip(tmp_path, "two.zip")
        descriptor = make_descriptor(
            tmp_path,
            feeds=[{"name": "Bus Lines", "path": first}, {"name": "Bus  Lines!", "path": second}],
        )
        with pytest.raises(BundleBuildError):
            BundleBuilder(descriptor, "job-1", storage, storage_config).build(str(tmp_path / "x.zip"))

    def test_unreadable_feed_leaves_no_partial_file(self, tmp_path, storage, storage_config):
        descriptor = make_descriptor(tmp_path, feeds=[{"name": "Gone", "path": str(tmp_path / "missing.zip")}])
        target = tmp_path / "partial.zip"
        with pytest.raises(BundleBuildError):
            BundleBuilder(descriptor, "job-1", storage, storage_config).build(str(target))
        assert not target.exists()


class TestKeys:

    def test_job_folder_layout(self, builder, descriptor):
        assert builder.job_folder == f"bundles/{descriptor.project_id}/{descriptor.deployment_id}/job-123"
        assert builder.bundle_key == f"{builder.job_folder}/{BUNDLE_FILENAME}"

    def test_latest_alias_uses_lowercased_clean_project_name(self, builder, descriptor):
        assert builder.latest_key == f"bundles/{descriptor.project_id}/metro_transit-latest.zip"

    def test_preloaded_bundle_path_wins(self, tmp_path, storage, storage_config):
        descriptor = make_descriptor(tmp_path, fleet=make_fleet(), preloaded_bundle_path="bundles/p/old.zip")
        assert BundleBuilder(descriptor, "j", storage, storage_config).bundle_key == "bundles/p/old.zip"

    def test_container_falls_back_to_default(self, tmp_path, storage, storage_config):
        descriptor = make_descriptor(tmp_path, bucket=None)
        assert BundleBuilder(descriptor, "j", storage, storage_config).container == "otp-default"


class TestUpload:

    def test_upload_writes_bundle_config_and_alias(self, builder, storage, tmp_path):
        artifact = builder.build(str(tmp_path / "bundle.zip"))
        progress = []
        location = builder.upload(artifact, progress.append)

        assert storage.exists("otp-bucket", location.key)
        assert storage.exists("otp-bucket", location.router_config_key)
        assert storage.objects[("otp-bucket", builder.latest_key)] == storage.objects[("otp-bucket", location.key)]
        assert progress[-1] == 100.0
        assert progress == sorted(progress)

    def test_alias_refreshed_last(self, builder, storage, tmp_path):
        builder.upload(builder.build(str(tmp_path / "bundle.zip")))
        assert storage.calls[-1] == ("copy_object", builder.latest_key)

    def test_failed_upload_leaves_alias_untouched(self, builder, storage, tmp_path):
        storage.objects[("otp-bucket", builder.latest_key)] = b"previous"
        storage.fail_uploads = True
        with pytest.raises(TransferError):
            builder.upload(builder.build(str(tmp_path / "bundle.zip")))
        assert storage.objects[("otp-bucket", builder.latest_key)] == b"previous"

    def test_upload_without_storage_is_a_transfer_error(self, descriptor, storage_config, tmp_path):
        builder = BundleBuilder(descriptor, "j", None, storage_config)
        with pytest.raises(TransferError):
            builder.upload(builder.build(str(tmp_path / "bundle.zip")))

    def test_bundle_file_is_kept_for_caller(self, builder, tmp_path):
        artifact = builder.build(str(tmp_path / "bundle.zip"))
        builder.upload(artifact)
        assert os.path.exists(artifact.path)
