# ============================================================================
# BLOB REPOSITORY
# ============================================================================
# STATUS: Infrastructure - Azure Blob Storage repository
# PURPOSE: Object storage for deployment bundles, runner manifests and graphs
# CREATED: 19 OCT 2026
# EXPORTS: BlobRepository (IObjectStorage implementation)
# DEPENDENCIES: azure-storage-blob, azure-identity, azure-core, config
# ENTRY_POINTS: BlobRepository.instance(), RepositoryFactory.create_object_storage()
# ============================================================================

"""
Blob Storage Repository - Central Authentication Point

Single point of authentication for all object storage used by deployments.
A deployment's ``bucket`` is a container in the configured account.

Authentication:
    - Connection string (AZURE_STORAGE_CONNECTION_STRING): account key auth,
      SAS tokens signed with the account key
    - Otherwise DefaultAzureCredential: managed identity / CLI / env vars,
      SAS tokens signed with a user delegation key

Instances never get credentials. They receive signed URLs in their runner
manifest: read-only for downloads, create/write for the graph upload.

Usage:
    from infrastructure.factory import RepositoryFactory

    storage = RepositoryFactory.create_object_storage()
    storage.upload_file('otp-deployments', 'bundles/p1/d1/j1/bundle.zip', '/tmp/bundle.zip')
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContainerClient,
    ContentSettings,
    generate_blob_sas,
)

from config import StorageConfig, get_config
from exceptions import ConfigurationError, StorageError
from infrastructure.interface_repository import IObjectStorage, ProgressCallback
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "BlobRepository")

WRITE_PROBE_PREFIX = ".write-probe"
COPY_POLL_SECONDS = 1.0
COPY_TIMEOUT_SECONDS = 300.0


class BlobRepository(IObjectStorage):
    """
    Azure Blob Storage implementation of IObjectStorage.

    Usage:
        # Get singleton instance
        storage = BlobRepository.instance()

        # Or through factory (recommended)
        storage = RepositoryFactory.create_object_storage()
    """

    _instance: Optional['BlobRepository'] = None

    def __init__(self, storage_config: Optional[StorageConfig] = None):
        config = storage_config or get_config().storage
        if not config.is_configured:
            raise ConfigurationError(
                "Object storage is not configured: set STORAGE_ACCOUNT_NAME or AZURE_STORAGE_CONNECTION_STRING"
            )
        self.config = config
        self._account_key: Optional[str] = None

        try:
            if config.connection_string:
                logger.info("Initializing BlobRepository with connection string")
                self.blob_service = BlobServiceClient.from_connection_string(config.connection_string)
                self._account_key = getattr(self.blob_service.credential, 'account_key', None)
            else:
                logger.info(
                    f"Initializing BlobRepository with DefaultAzureCredential for account: {config.account_name}"
                )
                self.credential = DefaultAzureCredential()
                self.blob_service = BlobServiceClient(
                    account_url=config.account_url,
                    credential=self.credential
                )
            self.storage_account = self.blob_service.account_name
        except Exception as e:
            logger.error(f"❌ Failed to initialize BlobRepository: {e}")
            raise

        self._container_clients: Dict[str, ContainerClient] = {}
        logger.info(f"✅ BlobRepository initialized for account: {self.storage_account}")

    @classmethod
    def instance(cls) -> 'BlobRepository':
        """Process-wide instance built from get_config()."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _get_container_client(self, container: str) -> ContainerClient:
        if container not in self._container_clients:
            self._container_clients[container] = self.blob_service.get_container_client(container)
            logger.debug(f"Created new container client for: {container}")
        return self._container_clients[container]

    # ========================================================================
    # WRITES
    # ========================================================================

    def upload_file(
        self,
        container: str,
        key: str,
        path: str,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        """
        Upload a local file.

        ``progress_callback(bytes_sent, total_bytes)`` is driven by the SDK's
        progress hook, once per transferred block.
        """
        blob_client = self._get_container_client(container).get_blob_client(key)
        logger.debug(f"Uploading file {path} → {container}/{key}")

        try:
            with open(path, 'rb') as data:
                blob_client.upload_blob(
                    data,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=content_type),
                    max_concurrency=self.config.upload_max_concurrency,
                    progress_hook=progress_callback
                )
            properties = blob_client.get_blob_properties()
        except Exception as e:
            logger.error(f"❌ Failed to upload {path} to {container}/{key}: {e}")
            raise

        logger.info(f"✅ Uploaded: {container}/{key} ({properties.size} bytes)")
        return {
            'container': container,
            'key': key,
            'size': properties.size,
            'etag': properties.etag,
            'last_modified': properties.last_modified.isoformat() if properties.last_modified else None,
        }

    def upload_text(
        self,
        container: str,
        key: str,
        text: str,
        content_type: str = "application/json"
    ) -> Dict[str, Any]:
        blob_client = self._get_container_client(container).get_blob_client(key)
        data = text.encode('utf-8')
        try:
            blob_client.upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type)
            )
        except Exception as e:
            logger.error(f"❌ Failed to write {container}/{key}: {e}")
            raise

        logger.info(f"✅ Wrote: {container}/{key} ({len(data)} bytes)")
        return {'container': container, 'key': key, 'size': len(data)}

    def copy_object(self, container: str, source_key: str, dest_key: str) -> Dict[str, Any]:
        """
        Server-side copy within one container, waiting for the copy to settle
        so the destination is readable when this returns.
        """
        container_client = self._get_container_client(container)
        source_url = container_client.get_blob_client(source_key).url
        dest_client = container_client.get_blob_client(dest_key)

        logger.debug(f"Copying blob: {container}/{source_key} → {container}/{dest_key}")
        try:
            copy_operation = dest_client.start_copy_from_url(source_url)
            copy_status = copy_operation.get('copy_status')
            started = time.monotonic()
            while copy_status == 'pending':
                if time.monotonic() - started > COPY_TIMEOUT_SECONDS:
                    dest_client.abort_copy(copy_operation.get('copy_id'))
                    raise StorageError(f"Copy to {container}/{dest_key} did not finish in {COPY_TIMEOUT_SECONDS}s")
                time.sleep(COPY_POLL_SECONDS)
                copy_status = dest_client.get_blob_properties().copy.status
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"❌ Failed to copy {container}/{source_key} → {dest_key}: {e}")
            raise

        if copy_status != 'success':
            raise StorageError(f"Copy to {container}/{dest_key} ended with status {copy_status}")

        logger.info(f"✅ Copied: {container}/{source_key} → {container}/{dest_key}")
        return {'copy_id': copy_operation.get('copy_id'), 'copy_status': copy_status}

    def delete(self, container: str, key: str) -> bool:
        try:
            self._get_container_client(container).get_blob_client(key).delete_blob()
            logger.info(f"Deleted blob: {container}/{key}")
            return True
        except ResourceNotFoundError:
            logger.warning(f"Blob not found for deletion: {container}/{key}")
            return False

    # ========================================================================
    # READS / CHECKS
    # ========================================================================

    def exists(self, container: str, key: str) -> bool:
        try:
            self._get_container_client(container).get_blob_client(key).get_blob_properties()
            return True
        except ResourceNotFoundError:
            return False

    def check_write_access(self, container: str) -> bool:
        """
        Write then delete a tiny probe blob.

        Returns False on authorization/not-found failures; other transport
        errors propagate.
        """
        probe_key = f"{WRITE_PROBE_PREFIX}/{uuid.uuid4()}"
        try:
            self.upload_text(container, probe_key, "ok", content_type="text/plain")
            self.delete(container, probe_key)
            return True
        except ResourceNotFoundError:
            logger.warning(f"⚠️ Container {container} does not exist")
            return False
        except HttpResponseError as e:
            if e.status_code in (401, 403):
                logger.warning(f"⚠️ No write permission on container {container}: {e.message}")
                return False
            raise

    # ========================================================================
    # SIGNED URLS
    # ========================================================================

    def get_read_url(self, container: str, key: str) -> str:
        return self._signed_url(container, key, BlobSasPermissions(read=True))

    def get_write_url(self, container: str, key: str) -> str:
        return self._signed_url(container, key, BlobSasPermissions(create=True, write=True))

    def _signed_url(self, container: str, key: str, permission: BlobSasPermissions) -> str:
        """
        Blob URL with a SAS token.

        Account key when available, otherwise a user delegation key (the
        identity needs 'Storage Blob Delegator').
        """
        blob_client = self._get_container_client(container).get_blob_client(key)
        start_time = datetime.now(timezone.utc) - timedelta(minutes=5)
        expiry_time = start_time + timedelta(hours=self.config.sas_validity_hours)

        sas_kwargs: Dict[str, Any] = {}
        if self._account_key:
            sas_kwargs['account_key'] = self._account_key
        else:
            try:
                sas_kwargs['user_delegation_key'] = self.blob_service.get_user_delegation_key(
                    key_start_time=start_time,
                    key_expiry_time=expiry_time
                )
            except AzureError as e:
                logger.error(f"❌ Failed to get user delegation key: {e}")
                raise StorageError(
                    f"Failed to generate user delegation key. "
                    f"Ensure the identity has 'Storage Blob Delegator' role: {e}"
                ) from e

        sas_token = generate_blob_sas(
            account_name=self.storage_account,
            container_name=container,
            blob_name=key,
            permission=permission,
            expiry=expiry_time,
            start=start_time,
            **sas_kwargs
        )
        logger.debug(f"Generated SAS URL for {container}/{key} (expires: {expiry_time.isoformat()})")
        return f"{blob_client.url}?{sas_token}"
