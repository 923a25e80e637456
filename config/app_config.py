"""
Main Application Configuration.

Composes domain-specific configuration modules:
    - StorageConfig (Azure Blob account, container, bundle layout)
    - DeploymentConfig (fleet feature flag, runner, timeouts)

Exports:
    AppConfig: Main configuration class

Dependencies:
    pydantic: BaseModel for configuration validation
    config.storage_config: StorageConfig
    config.deployment_config: DeploymentConfig
    config.defaults: Default value constants

Pattern:
    Composition over inheritance - domain configs are composed, not inherited.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from .storage_config import StorageConfig
from .deployment_config import DeploymentConfig
from .defaults import AppDefaults


class AppConfig(BaseModel):
    """
    Application configuration - composition of domain configs.
    """

    # ========================================================================
    # Core Application Settings
    # ========================================================================

    debug_mode: bool = Field(
        default=AppDefaults.DEBUG_MODE,
        description="Verbose diagnostics. Set DEBUG_MODE=true to enable."
    )

    environment: str = Field(
        default=AppDefaults.ENVIRONMENT,
        description="Environment name (dev, qa, prod)",
        examples=["dev", "qa", "prod"]
    )

    log_level: str = Field(
        default=AppDefaults.LOG_LEVEL,
        examples=["DEBUG", "INFO", "WARNING", "ERROR"]
    )

    job_executor_max_workers: int = Field(
        default=AppDefaults.JOB_EXECUTOR_MAX_WORKERS,
        ge=1,
        le=64,
        description="Concurrent top-level job trees"
    )

    # ========================================================================
    # AWS (compute + load balancer)
    # ========================================================================

    aws_region: str = Field(
        default=AppDefaults.AWS_DEFAULT_REGION,
        description="Region used when a deployment does not name one"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        description="Named profile for the base boto3 session (None = default chain)"
    )

    # ========================================================================
    # Domain Configurations (Composition Pattern)
    # ========================================================================

    storage: StorageConfig = Field(
        default_factory=StorageConfig.from_environment,
        description="Object storage for bundles, manifests and graphs"
    )

    deployment: DeploymentConfig = Field(
        default_factory=DeploymentConfig.from_environment,
        description="Fleet deployment settings"
    )

    @classmethod
    def from_environment(cls) -> "AppConfig":
        """Load all configuration from environment variables."""
        return cls(
            debug_mode=os.environ.get("DEBUG_MODE", "false").lower() == "true",
            environment=os.environ.get("ENVIRONMENT", AppDefaults.ENVIRONMENT),
            log_level=os.environ.get("LOG_LEVEL", AppDefaults.LOG_LEVEL),
            job_executor_max_workers=int(
                os.environ.get("JOB_EXECUTOR_MAX_WORKERS", str(AppDefaults.JOB_EXECUTOR_MAX_WORKERS))
            ),
            aws_region=os.environ.get("AWS_DEFAULT_REGION", AppDefaults.AWS_DEFAULT_REGION),
            aws_profile=os.environ.get("AWS_PROFILE"),
            storage=StorageConfig.from_environment(),
            deployment=DeploymentConfig.from_environment(),
        )
