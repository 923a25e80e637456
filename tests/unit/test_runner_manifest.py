"""
Runner manifest and instance user data tests.
"""

import json

import pytest

from exceptions import ValidationError
from services.bundle_builder import BundleBuilder
from services.runner_manifest import (
    GRAPH_BUILD_MANIFEST_FILENAME,
    INSTANCE_MANIFEST_PATH,
    SERVER_MANIFEST_FILENAME,
    RunnerManifestService,
)
from tests.factories.fakes import FakeUrlChecker
from tests.factories.model_factories import make_descriptor, make_fleet


@pytest.fixture
def descriptor(tmp_path):
    return make_descriptor(tmp_path, fleet=make_fleet(), otp_version="otp-2.4.0")


@pytest.fixture
def bundles(descriptor, storage, storage_config):
    return BundleBuilder(descriptor, "job-42", storage, storage_config)


@pytest.fixture
def service(descriptor, bundles, storage, fast_config):
    return RunnerManifestService(descriptor, bundles, storage, "nonce-abc", deployment_config=fast_config)


class TestJar:

    def test_jar_url_uses_version(self, service, fast_config):
        assert service.jar_url == fast_config.jar_url("otp-2.4.0")
        assert service.jar_url.endswith("/otp-2.4.0.jar")

    def test_missing_jar_fails_validation(self, descriptor, bundles, storage, fast_config):
        service = RunnerManifestService(
            descriptor, bundles, storage, "n",
            url_checker=FakeUrlChecker(available=False),
            deployment_config=fast_config
        )
        with pytest.raises(ValidationError):
            service.check_jar()

    def test_no_checker_skips_check(self, service):
        service.check_jar()


class TestBuilderManifest:

    def test_builder_that_keeps_serving(self, service):
        manifest = service.build_manifest(graph_already_built=False, run_server=True)
        assert manifest.build_graph and manifest.run_server
        assert manifest.upload_graph
        assert manifest.nonce == "nonce-abc"
        assert manifest.graph_upload_url.endswith("sig=write")
        # bundle + build config + router config
        assert len(manifest.router_folder_downloads) == 3

    def test_builder_only(self, service):
        manifest = service.build_manifest(graph_already_built=False, run_server=False)
        assert manifest.build_graph and not manifest.run_server
        assert not manifest.upload_server_startup_logs
        assert len(manifest.router_folder_downloads) == 2

    def test_json_uses_camel_case(self, service):
        data = json.loads(service.build_manifest(False, True).to_json())
        assert data["buildGraph"] is True
        assert data["statusFileLocation"].endswith(".json")
        assert "graphObjUrl" in data
        assert "build_graph" not in data


class TestServerManifest:

    def test_server_fetches_graph_from_this_job(self, service, bundles):
        manifest = service.build_manifest(graph_already_built=True, run_server=True)
        assert not manifest.build_graph
        assert manifest.run_server
        assert bundles.job_folder in manifest.graph_obj_url

    def test_prebuilt_graph_server_has_no_graph_url(self, tmp_path, storage, storage_config, fast_config):
        descriptor = make_descriptor(fleet=make_fleet(), use_prebuilt_graph=True)
        bundles = BundleBuilder(descriptor, "job-1", storage, storage_config)
        service = RunnerManifestService(descriptor, bundles, storage, "n", deployment_config=fast_config)
        data = json.loads(service.build_manifest(True, True).to_json())
        assert "graphObjUrl" not in data

    def test_router_config_uploaded_once(self, service, storage, bundles):
        service.build_manifest(True, True)
        service.build_manifest(True, True)
        uploads = [c for c in storage.calls if c == ("upload_text", bundles.key_for("router-config.json"))]
        assert len(uploads) == 1


class TestUserData:

    def test_user_data_downloads_manifest_and_runs_runner(self, service, storage, bundles):
        user_data = service.prepare_user_data(graph_already_built=False, run_server=True)
        lines = user_data.splitlines()
        assert lines[0] == "#!/bin/bash"
        assert any(line.startswith("curl -fsSL") and INSTANCE_MANIFEST_PATH in line for line in lines)
        assert lines[-1] == f"otp-runner {INSTANCE_MANIFEST_PATH}"
        assert storage.exists(bundles.container, bundles.key_for(GRAPH_BUILD_MANIFEST_FILENAME))

    def test_server_user_data_uses_server_manifest(self, service, storage, bundles):
        service.prepare_user_data(graph_already_built=True)
        manifest = json.loads(storage.text(bundles.container, bundles.key_for(SERVER_MANIFEST_FILENAME)))
        assert manifest["runServer"] is True
        assert manifest["nonce"] == "nonce-abc"
