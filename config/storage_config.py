# ============================================================================
# STORAGE CONFIGURATION
# ============================================================================
# STATUS: Config - Azure Blob Storage for deployment artifacts
# PURPOSE: Account, container and key layout for bundles, manifests and graphs
# CREATED: 19 OCT 2026
# EXPORTS: StorageConfig
# DEPENDENCIES: pydantic, os
# SOURCE: Environment variables (STORAGE_ACCOUNT_NAME, AZURE_STORAGE_CONNECTION_STRING)
# ============================================================================

"""
Azure Storage Configuration - Deployment Artifacts

Two authentication paths, same as every other Azure client in this repo:
    - AZURE_STORAGE_CONNECTION_STRING set: account key auth (local dev, Azurite)
    - otherwise: DefaultAzureCredential against STORAGE_ACCOUNT_NAME

A deployment's ``bucket`` names the container; DEPLOYMENT_CONTAINER is used
when the descriptor leaves it empty.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from .defaults import StorageDefaults


class StorageConfig(BaseModel):
    """Object storage settings for the deployer."""

    account_name: str = Field(
        default=StorageDefaults.DEFAULT_ACCOUNT_NAME,
        description="Azure Storage account name (managed identity auth)"
    )

    connection_string: Optional[str] = Field(
        default=None,
        repr=False,
        description="Connection string; takes precedence over account_name when set"
    )

    default_container: str = Field(
        default=StorageDefaults.DEFAULT_CONTAINER,
        description="Container used when a deployment does not name one"
    )

    bundle_prefix: str = Field(
        default=StorageDefaults.BUNDLE_PREFIX,
        description="Top-level folder for bundles and per-job artifacts"
    )

    sas_validity_hours: int = Field(
        default=StorageDefaults.SAS_VALIDITY_HOURS,
        ge=1,
        le=168,
        description="Lifetime of signed URLs handed to instances (user delegation keys cap at 7 days)"
    )

    upload_max_concurrency: int = Field(
        default=StorageDefaults.UPLOAD_MAX_CONCURRENCY,
        ge=1,
        le=32,
        description="Parallel block uploads for large bundles"
    )

    @property
    def account_url(self) -> str:
        return f"https://{self.account_name}.blob.core.windows.net"

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string) or self.account_name != StorageDefaults.DEFAULT_ACCOUNT_NAME

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            account_name=os.environ.get("STORAGE_ACCOUNT_NAME", StorageDefaults.DEFAULT_ACCOUNT_NAME),
            connection_string=os.environ.get("AZURE_STORAGE_CONNECTION_STRING"),
            default_container=os.environ.get("DEPLOYMENT_CONTAINER", StorageDefaults.DEFAULT_CONTAINER),
            bundle_prefix=os.environ.get("BUNDLE_PREFIX", StorageDefaults.BUNDLE_PREFIX),
            sas_validity_hours=int(os.environ.get("SAS_VALIDITY_HOURS", str(StorageDefaults.SAS_VALIDITY_HOURS))),
            upload_max_concurrency=int(
                os.environ.get("UPLOAD_MAX_CONCURRENCY", str(StorageDefaults.UPLOAD_MAX_CONCURRENCY))
            ),
        )

    def debug_dict(self) -> dict:
        """Return debug-friendly configuration with secrets masked."""
        return {
            "account_name": self.account_name,
            "connection_string": "***MASKED***" if self.connection_string else None,
            "default_container": self.default_container,
            "bundle_prefix": self.bundle_prefix,
            "sas_validity_hours": self.sas_validity_hours,
        }
