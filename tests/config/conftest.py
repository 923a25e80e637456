"""
Config test fixtures - clean environment via monkeypatch.
"""

import pytest

from config import reset_config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all env vars that config modules might read, for isolation."""
    env_vars_to_clear = [
        "EC2_DEPLOYMENT_ENABLED", "EC2_EBS_OPTIMIZED", "OTP_RUNNER_BRANCH",
        "OTP_JAR_REPO_URL", "DEFAULT_OTP_VERSION", "SERVER_STATUS_PATH",
        "STATUS_POLL_INTERVAL_SECONDS", "GRAPH_BUILD_TIMEOUT_SECONDS",
        "SERVER_START_TIMEOUT_SECONDS", "IP_CHECK_INTERVAL_SECONDS",
        "IP_ASSIGNMENT_TIMEOUT_SECONDS", "FLEET_JOIN_TIMEOUT_SECONDS",
        "IMAGE_RECREATION_POLL_SECONDS", "IMAGE_RECREATION_TIMEOUT_SECONDS",
        "IMAGE_RECREATION_FAILURE_POLICY", "DEFAULT_INSTANCE_TYPE",
        "STORAGE_ACCOUNT_NAME", "AZURE_STORAGE_CONNECTION_STRING",
        "DEPLOYMENT_CONTAINER", "BUNDLE_PREFIX", "SAS_VALIDITY_HOURS",
        "UPLOAD_MAX_CONCURRENCY", "DEBUG_MODE", "ENVIRONMENT", "LOG_LEVEL",
        "JOB_EXECUTOR_MAX_WORKERS", "AWS_DEFAULT_REGION", "AWS_PROFILE",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield monkeypatch
    reset_config()
