"""
Fleet Deployment Configuration.

Feature flag, runner install settings, and every poll interval and timeout
used by the provisioner, health monitors, fleet join and image recreation.

Environment Variables:
    EC2_DEPLOYMENT_ENABLED            - Allow fleet deployments (default: false)
    EC2_EBS_OPTIMIZED                 - Launch EBS-optimized instances
    OTP_RUNNER_BRANCH                 - Git branch of otp-runner installed on instances
    OTP_JAR_REPO_URL                  - Base URL of routing-engine jars
    DEFAULT_OTP_VERSION               - Jar used when a deployment names none
    SERVER_STATUS_PATH                - HTTP path of the instance status file
    STATUS_POLL_INTERVAL_SECONDS      - Health monitor poll interval
    GRAPH_BUILD_TIMEOUT_SECONDS       - Builder monitor timeout
    SERVER_START_TIMEOUT_SECONDS      - Run server monitor timeout
    IP_CHECK_INTERVAL_SECONDS         - Public IP poll interval
    IP_ASSIGNMENT_TIMEOUT_SECONDS     - Public IP wait bound
    FLEET_JOIN_TIMEOUT_SECONDS        - Deadline for all run server monitors together
    IMAGE_RECREATION_POLL_SECONDS     - Image recreation join poll interval
    IMAGE_RECREATION_TIMEOUT_SECONDS  - Image recreation join bound
    IMAGE_RECREATION_FAILURE_POLICY   - warn | fail
    DEFAULT_INSTANCE_TYPE             - Instance type when a fleet names none

Exports:
    DeploymentConfig: Pydantic deployment configuration model
"""

import os

from pydantic import BaseModel, Field, field_validator

from core.models.enums import ImageRecreationFailurePolicy
from .defaults import DeploymentDefaults


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in ("true", "1", "yes")


class DeploymentConfig(BaseModel):
    """
    Fleet deployment configuration.
    """

    ec2_enabled: bool = Field(
        default=DeploymentDefaults.EC2_ENABLED,
        description="Fleet deployments are rejected during validation when false"
    )

    ebs_optimized: bool = Field(default=DeploymentDefaults.EBS_OPTIMIZED)

    # Runner install
    runner_branch: str = Field(default=DeploymentDefaults.RUNNER_BRANCH)
    runner_repo_url: str = Field(default=DeploymentDefaults.RUNNER_REPO_URL)
    node_version: str = Field(default=DeploymentDefaults.NODE_VERSION)
    jar_repo_url: str = Field(default=DeploymentDefaults.JAR_REPO_URL)
    default_otp_version: str = Field(default=DeploymentDefaults.DEFAULT_OTP_VERSION)

    # Instance status file
    instance_web_dir: str = Field(default=DeploymentDefaults.INSTANCE_WEB_DIR)
    status_file_name: str = Field(default=DeploymentDefaults.STATUS_FILE_NAME)
    status_path: str = Field(
        default=DeploymentDefaults.STATUS_PATH,
        description="Path polled at http://<public ip><status_path>"
    )

    # Health monitor
    poll_interval_seconds: float = Field(default=DeploymentDefaults.STATUS_POLL_INTERVAL_SECONDS, gt=0)
    status_request_timeout_seconds: float = Field(default=DeploymentDefaults.STATUS_REQUEST_TIMEOUT_SECONDS, gt=0)
    graph_build_timeout_seconds: float = Field(default=DeploymentDefaults.GRAPH_BUILD_TIMEOUT_SECONDS, gt=0)
    server_start_timeout_seconds: float = Field(default=DeploymentDefaults.SERVER_START_TIMEOUT_SECONDS, gt=0)
    runner_server_startup_timeout_seconds: int = Field(
        default=DeploymentDefaults.RUNNER_SERVER_STARTUP_TIMEOUT_SECONDS,
        description="Written into the runner manifest; the runner gives up on its own after this"
    )

    # Provisioner
    ip_check_interval_seconds: float = Field(default=DeploymentDefaults.IP_CHECK_INTERVAL_SECONDS, gt=0)
    ip_assignment_timeout_seconds: float = Field(default=DeploymentDefaults.IP_ASSIGNMENT_TIMEOUT_SECONDS, gt=0)

    # Fan-in
    fleet_join_timeout_seconds: float = Field(default=DeploymentDefaults.FLEET_JOIN_TIMEOUT_SECONDS, gt=0)

    # Image recreation
    image_recreation_poll_seconds: float = Field(default=DeploymentDefaults.IMAGE_RECREATION_POLL_SECONDS, gt=0)
    image_recreation_timeout_seconds: float = Field(default=DeploymentDefaults.IMAGE_RECREATION_TIMEOUT_SECONDS, gt=0)
    image_recreation_failure_policy: ImageRecreationFailurePolicy = Field(
        default=ImageRecreationFailurePolicy(DeploymentDefaults.IMAGE_RECREATION_FAILURE_POLICY),
        description="warn: append a warning; fail: error the deployment"
    )

    default_instance_type: str = Field(default=DeploymentDefaults.DEFAULT_INSTANCE_TYPE)

    wire_transfer_timeout_seconds: float = Field(default=DeploymentDefaults.WIRE_TRANSFER_TIMEOUT_SECONDS, gt=0)

    @field_validator('status_path')
    @classmethod
    def leading_slash(cls, v: str) -> str:
        return v if v.startswith('/') else f"/{v}"

    @property
    def instance_status_file(self) -> str:
        """Absolute path of the status file on the instance."""
        return f"{self.instance_web_dir}/{self.status_file_name}"

    def jar_url(self, otp_version: str) -> str:
        return f"{self.jar_repo_url.rstrip('/')}/{otp_version}.jar"

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        d = DeploymentDefaults
        return cls(
            ec2_enabled=_env_bool("EC2_DEPLOYMENT_ENABLED", d.EC2_ENABLED),
            ebs_optimized=_env_bool("EC2_EBS_OPTIMIZED", d.EBS_OPTIMIZED),
            runner_branch=os.environ.get("OTP_RUNNER_BRANCH", d.RUNNER_BRANCH),
            jar_repo_url=os.environ.get("OTP_JAR_REPO_URL", d.JAR_REPO_URL),
            default_otp_version=os.environ.get("DEFAULT_OTP_VERSION", d.DEFAULT_OTP_VERSION),
            status_path=os.environ.get("SERVER_STATUS_PATH", d.STATUS_PATH),
            poll_interval_seconds=float(
                os.environ.get("STATUS_POLL_INTERVAL_SECONDS", str(d.STATUS_POLL_INTERVAL_SECONDS))
            ),
            graph_build_timeout_seconds=float(
                os.environ.get("GRAPH_BUILD_TIMEOUT_SECONDS", str(d.GRAPH_BUILD_TIMEOUT_SECONDS))
            ),
            server_start_timeout_seconds=float(
                os.environ.get("SERVER_START_TIMEOUT_SECONDS", str(d.SERVER_START_TIMEOUT_SECONDS))
            ),
            ip_check_interval_seconds=float(
                os.environ.get("IP_CHECK_INTERVAL_SECONDS", str(d.IP_CHECK_INTERVAL_SECONDS))
            ),
            ip_assignment_timeout_seconds=float(
                os.environ.get("IP_ASSIGNMENT_TIMEOUT_SECONDS", str(d.IP_ASSIGNMENT_TIMEOUT_SECONDS))
            ),
            fleet_join_timeout_seconds=float(
                os.environ.get("FLEET_JOIN_TIMEOUT_SECONDS", str(d.FLEET_JOIN_TIMEOUT_SECONDS))
            ),
            image_recreation_poll_seconds=float(
                os.environ.get("IMAGE_RECREATION_POLL_SECONDS", str(d.IMAGE_RECREATION_POLL_SECONDS))
            ),
            image_recreation_timeout_seconds=float(
                os.environ.get("IMAGE_RECREATION_TIMEOUT_SECONDS", str(d.IMAGE_RECREATION_TIMEOUT_SECONDS))
            ),
            image_recreation_failure_policy=ImageRecreationFailurePolicy(
                os.environ.get("IMAGE_RECREATION_FAILURE_POLICY", d.IMAGE_RECREATION_FAILURE_POLICY).lower()
            ),
            default_instance_type=os.environ.get("DEFAULT_INSTANCE_TYPE", d.DEFAULT_INSTANCE_TYPE),
        )

    def debug_dict(self) -> dict:
        return {
            "ec2_enabled": self.ec2_enabled,
            "runner_branch": self.runner_branch,
            "default_otp_version": self.default_otp_version,
            "status_path": self.status_path,
            "graph_build_timeout_seconds": self.graph_build_timeout_seconds,
            "server_start_timeout_seconds": self.server_start_timeout_seconds,
            "fleet_join_timeout_seconds": self.fleet_join_timeout_seconds,
            "image_recreation_failure_policy": self.image_recreation_failure_policy.value,
        }
