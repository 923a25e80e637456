# ============================================================================
# BUNDLE BUILDER SERVICE
# ============================================================================
# STATUS: Service - routing input packaging and upload
# PURPOSE: Write the deployment bundle zip and publish it to object storage
# CREATED: 19 OCT 2026
# EXPORTS: BundleBuilder, BundleArtifact, BundleLocation
# DEPENDENCIES: zipfile, pydantic, infrastructure.interface_repository
# ============================================================================

"""
Bundle Builder Service.

A bundle is one zip holding everything a graph build needs:

    build-config.json        sorted-key JSON from the descriptor
    <clean feed name>.zip    each GTFS feed, entries re-packed in sorted order
    osm.pbf                  OSM extract (omitted when instances download it)
    router-config.json       sorted-key JSON from the descriptor

Every entry carries the same fixed timestamp and permissions, so identical
inputs produce a byte-identical archive and an identical sha256.

Object layout (``bundle_prefix`` from StorageConfig):

    <prefix>/<project_id>/<deployment_id>/<job_id>/bundle.zip
    <prefix>/<project_id>/<deployment_id>/<job_id>/router-config.json
    <prefix>/<project_id>/<clean project name>-latest.zip

The ``-latest`` alias is copied only after the bundle and router config are
both uploaded, so a failed upload never moves it.
"""

import io
import json
import os
import shutil
import zipfile
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import StorageConfig, get_config
from core.models import DeploymentDescriptor, clean_name
from core.utils import sha256_file
from exceptions import BundleBuildError, TransferError
from infrastructure.interface_repository import IObjectStorage
from util_logger import LoggerFactory, ComponentType


FIXED_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
ENTRY_PERMISSIONS = 0o644 << 16
COPY_CHUNK_BYTES = 1024 * 1024

BUNDLE_FILENAME = "bundle.zip"
BUILD_CONFIG_FILENAME = "build-config.json"
ROUTER_CONFIG_FILENAME = "router-config.json"
OSM_FILENAME = "osm.pbf"


class BundleArtifact(BaseModel):
    """A bundle written to local disk."""
    model_config = ConfigDict(frozen=True)

    path: str
    size: int = Field(..., ge=0)
    sha256: str
    entries: List[str] = Field(default_factory=list)


class BundleLocation(BaseModel):
    """Where an uploaded bundle lives."""
    model_config = ConfigDict(frozen=True)

    container: str
    key: str
    folder: str
    router_config_key: str
    latest_key: str
    size: int = 0


def config_json(config: Dict[str, Any]) -> bytes:
    """Canonical JSON bytes for a generated config file."""
    return json.dumps(config, sort_keys=True, indent=2).encode('utf-8')


def _fixed_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=FIXED_ZIP_TIMESTAMP)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = ENTRY_PERMISSIONS
    info.create_system = 3
    return info


def normalize_feed(path: str) -> bytes:
    """
    Re-pack a feed zip with sorted entries and fixed timestamps.

    Directory entries are dropped; only file contents matter to the graph build.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(path, 'r') as source, zipfile.ZipFile(buffer, 'w') as target:
        for name in sorted(n for n in source.namelist() if not n.endswith('/')):
            target.writestr(_fixed_info(name), source.read(name))
    return buffer.getvalue()


class BundleBuilder:
    """
    Builds and uploads the bundle for one deployment job.

    Usage:
        builder = BundleBuilder(descriptor, job_id, storage)
        artifact = builder.build('/tmp/bundle.zip')
        location = builder.upload(artifact, progress_callback=on_percent)
    """

    def __init__(
        self,
        descriptor: DeploymentDescriptor,
        job_id: str,
        storage: Optional[IObjectStorage] = None,
        storage_config: Optional[StorageConfig] = None
    ):
        self.descriptor = descriptor
        self.job_id = job_id
        self.storage = storage
        self.storage_config = storage_config or get_config().storage
        self.logger = LoggerFactory.create_with_context(
            ComponentType.SERVICE,
            "BundleBuilder",
            job_id=job_id,
            deployment_id=descriptor.deployment_id
        )

    # ========================================================================
    # OBJECT KEYS
    # ========================================================================

    @property
    def container(self) -> str:
        return self.descriptor.bucket or self.storage_config.default_container

    @property
    def project_folder(self) -> str:
        return f"{self.storage_config.bundle_prefix}/{self.descriptor.project_id}"

    @property
    def job_folder(self) -> str:
        return f"{self.project_folder}/{self.descriptor.deployment_id}/{self.job_id}"

    @property
    def bundle_key(self) -> str:
        return self.descriptor.preloaded_bundle_path or f"{self.job_folder}/{BUNDLE_FILENAME}"

    @property
    def latest_key(self) -> str:
        return f"{self.project_folder}/{self.descriptor.clean_project_name.lower()}-latest.zip"

    def key_for(self, filename: str) -> str:
        return f"{self.job_folder}/{filename}"

    # ========================================================================
    # BUILD
    # ========================================================================

    def _entries(self) -> Dict[str, Any]:
        """
        Bundle entry name → bytes or source path.

        Raises:
            BundleBuildError: Two feeds clean to the same name
        """
        entries: Dict[str, Any] = {
            BUILD_CONFIG_FILENAME: config_json(self.descriptor.build_config),
            ROUTER_CONFIG_FILENAME: config_json(self.descriptor.router_config),
        }
        for feed in self.descriptor.feeds:
            name = f"{clean_name(feed.name)}.zip"
            if name in entries:
                raise BundleBuildError(f"Two feeds share the bundle name {name}")
            entries[name] = ('feed', feed.path)
        if self.descriptor.includes_osm_in_bundle:
            entries[OSM_FILENAME] = ('file', self.descriptor.osm_extract_path)
        return entries

    def build(self, path: str) -> BundleArtifact:
        """
        Write the bundle to ``path``.

        Raises:
            BundleBuildError: Any local I/O failure or unreadable feed; the
                partial file is removed
        """
        entries = self._entries()
        self.logger.info(f"Writing bundle with {len(entries)} entries → {path}")

        try:
            with zipfile.ZipFile(path, 'w') as bundle:
                for name in sorted(entries):
                    source = entries[name]
                    if isinstance(source, bytes):
                        bundle.writestr(_fixed_info(name), source)
                    elif source[0] == 'feed':
                        bundle.writestr(_fixed_info(name), normalize_feed(source[1]))
                    else:
                        info = _fixed_info(name)
                        # Known size lets zipfile pick zip64 for multi-GB extracts
                        info.file_size = os.path.getsize(source[1])
                        with open(source[1], 'rb') as src, bundle.open(info, 'w') as dst:
                            shutil.copyfileobj(src, dst, COPY_CHUNK_BYTES)
            size = os.path.getsize(path)
            digest = sha256_file(path)
        except (OSError, zipfile.BadZipFile) as e:
            self.logger.error(f"❌ Bundle build failed: {e}")
            if os.path.exists(path):
                os.remove(path)
            raise BundleBuildError(f"Could not write bundle: {e}") from e

        self.logger.info(f"✅ Bundle written: {size} bytes, sha256 {digest[:12]}")
        return BundleArtifact(path=path, size=size, sha256=digest, entries=sorted(entries))

    # ========================================================================
    # UPLOAD
    # ========================================================================

    def _require_storage(self) -> IObjectStorage:
        if self.storage is None:
            raise TransferError("No object storage configured for this deployment")
        return self.storage

    def upload(
        self,
        artifact: BundleArtifact,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> BundleLocation:
        """
        Upload the bundle, its router config, then refresh the -latest alias.

        Args:
            artifact: Result of build()
            progress_callback: Receives percent uploaded (0-100)

        Raises:
            TransferError: Any storage failure
        """
        storage = self._require_storage()
        bundle_key = f"{self.job_folder}/{BUNDLE_FILENAME}"
        router_config_key = self.key_for(ROUTER_CONFIG_FILENAME)

        def on_bytes(sent: int, total: Optional[int]) -> None:
            if progress_callback is None:
                return
            total = total or artifact.size
            progress_callback(100.0 * sent / total if total else 100.0)

        self.logger.info(f"Uploading bundle to {self.container}/{bundle_key}")
        try:
            storage.upload_file(
                self.container,
                bundle_key,
                artifact.path,
                content_type="application/zip",
                progress_callback=on_bytes
            )
            storage.upload_text(
                self.container,
                router_config_key,
                config_json(self.descriptor.router_config).decode('utf-8')
            )
            storage.copy_object(self.container, bundle_key, self.latest_key)
        except Exception as e:
            self.logger.error(f"❌ Bundle upload failed: {e}")
            raise TransferError(f"Failed to upload bundle to {self.container}/{bundle_key}: {e}") from e

        if progress_callback is not None:
            progress_callback(100.0)
        self.logger.info(f"✅ Bundle uploaded; alias {self.latest_key} refreshed")
        return BundleLocation(
            container=self.container,
            key=bundle_key,
            folder=self.job_folder,
            router_config_key=router_config_key,
            latest_key=self.latest_key,
            size=artifact.size
        )

    def upload_text(self, filename: str, contents: str, content_type: str = "application/json") -> str:
        """
        Write a small file into this job's folder.

        Returns:
            Object key written

        Raises:
            TransferError: Storage failure
        """
        storage = self._require_storage()
        key = self.key_for(filename)
        try:
            storage.upload_text(self.container, key, contents, content_type=content_type)
        except Exception as e:
            raise TransferError(f"Failed to write {self.container}/{key}: {e}") from e
        return key
