"""
Configuration loading tests.

Every setting is read from the environment once per get_config() singleton.
"""

import pytest
from pydantic import ValidationError

from config import AppConfig, DeploymentConfig, StorageConfig, debug_config, get_config, reset_config
from config.defaults import DeploymentDefaults, StorageDefaults
from core.models import ImageRecreationFailurePolicy


class TestDeploymentConfig:

    def test_defaults_when_environment_is_empty(self, clean_env):
        config = DeploymentConfig.from_environment()
        assert config.ec2_enabled is False
        assert config.status_path == "/status.json"
        assert config.graph_build_timeout_seconds == DeploymentDefaults.GRAPH_BUILD_TIMEOUT_SECONDS
        assert config.image_recreation_failure_policy == ImageRecreationFailurePolicy.WARN

    def test_reads_timeouts_and_flags(self, clean_env):
        clean_env.setenv("EC2_DEPLOYMENT_ENABLED", "true")
        clean_env.setenv("FLEET_JOIN_TIMEOUT_SECONDS", "120")
        clean_env.setenv("STATUS_POLL_INTERVAL_SECONDS", "0.5")
        clean_env.setenv("DEFAULT_OTP_VERSION", "otp-v2.0.0")
        config = DeploymentConfig.from_environment()
        assert config.ec2_enabled is True
        assert config.fleet_join_timeout_seconds == 120.0
        assert config.poll_interval_seconds == 0.5
        assert config.default_otp_version == "otp-v2.0.0"

    @pytest.mark.parametrize("raw", ["fail", "FAIL", "Fail"])
    def test_failure_policy_is_case_insensitive(self, clean_env, raw):
        clean_env.setenv("IMAGE_RECREATION_FAILURE_POLICY", raw)
        assert DeploymentConfig.from_environment().image_recreation_failure_policy == ImageRecreationFailurePolicy.FAIL

    def test_unknown_failure_policy_rejected(self, clean_env):
        clean_env.setenv("IMAGE_RECREATION_FAILURE_POLICY", "ignore")
        with pytest.raises(ValueError):
            DeploymentConfig.from_environment()

    def test_status_path_gets_leading_slash(self, clean_env):
        clean_env.setenv("SERVER_STATUS_PATH", "health/status.json")
        assert DeploymentConfig.from_environment().status_path == "/health/status.json"

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentConfig(server_start_timeout_seconds=0)

    def test_jar_url(self):
        config = DeploymentConfig(jar_repo_url="https://jars.example.org/")
        assert config.jar_url("otp-v1.4.0") == "https://jars.example.org/otp-v1.4.0.jar"


class TestStorageConfig:

    def test_unconfigured_by_default(self, clean_env):
        config = StorageConfig.from_environment()
        assert not config.is_configured
        assert config.default_container == StorageDefaults.DEFAULT_CONTAINER

    def test_account_name_configures(self, clean_env):
        clean_env.setenv("STORAGE_ACCOUNT_NAME", "otpartifacts")
        config = StorageConfig.from_environment()
        assert config.is_configured
        assert config.account_url == "https://otpartifacts.blob.core.windows.net"

    def test_connection_string_is_masked(self, clean_env):
        clean_env.setenv("AZURE_STORAGE_CONNECTION_STRING", "AccountKey=secret")
        config = StorageConfig.from_environment()
        assert config.is_configured
        assert config.debug_dict()["connection_string"] == "***MASKED***"
        assert "secret" not in repr(config)

    def test_blob_repository_refuses_unconfigured_storage(self, clean_env):
        from exceptions import ConfigurationError
        from infrastructure.blob import BlobRepository

        with pytest.raises(ConfigurationError):
            BlobRepository(StorageConfig.from_environment())

    def test_sas_validity_bounded(self):
        with pytest.raises(ValidationError):
            StorageConfig(sas_validity_hours=500)


class TestSingleton:

    def test_get_config_is_cached(self, clean_env):
        assert get_config() is get_config()

    def test_reset_rereads_environment(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "qa")
        assert get_config().environment == "qa"
        clean_env.setenv("ENVIRONMENT", "prod")
        assert get_config().environment == "qa"
        reset_config()
        assert get_config().environment == "prod"

    def test_app_config_composes_domains(self, clean_env):
        clean_env.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        clean_env.setenv("DEPLOYMENT_CONTAINER", "graphs")
        config = AppConfig.from_environment()
        assert config.aws_region == "eu-west-1"
        assert config.storage.default_container == "graphs"
        assert config.aws_profile is None

    def test_debug_config_sections(self, clean_env):
        info = debug_config()
        assert set(info) >= {"storage", "deployment", "aws_region", "environment"}
        assert info["deployment"]["image_recreation_failure_policy"] == "warn"
