"""
Runner Manifest Service.

Instances are started from a stock image and configured entirely through
user data: a short bash script that clears stale artifacts from a previous
run, downloads this job's runner manifest, installs otp-runner and hands it
the manifest. The manifest tells the runner what to download, whether to
build a graph and/or start a server, where to write ``status.json`` and
which nonce to put in it.

Two manifests can exist per job:

    otp-runner-graph-build-manifest.json   graph builder (buildGraph=true)
    otp-runner-server-manifest.json        run servers (prebuilt graph)

Instances get no storage credentials; every URL in the manifest is signed.

Exports:
    RunnerManifest: Manifest model (camelCase on the wire)
    RunnerManifestService: Uploads manifests and renders user data
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import DeploymentConfig, get_config
from core.models import DeploymentDescriptor
from exceptions import ValidationError
from infrastructure.interface_repository import IObjectStorage, IUrlChecker
from services.bundle_builder import (
    BUILD_CONFIG_FILENAME,
    ROUTER_CONFIG_FILENAME,
    BundleBuilder,
    config_json,
)
from util_logger import LoggerFactory, ComponentType


GRAPH_BUILD_MANIFEST_FILENAME = "otp-runner-graph-build-manifest.json"
SERVER_MANIFEST_FILENAME = "otp-runner-server-manifest.json"
GRAPH_FILENAME = "Graph.obj"

INSTANCE_GRAPHS_FOLDER = "/var/otp/graphs"
INSTANCE_MANIFEST_PATH = "/var/otp/otp-runner-manifest.json"
INSTANCE_JAR_FOLDER = "/opt/otp"
RUNNER_LOG_FILE = "/var/log/otp-runner.log"
STALE_LOG_FILES = ("/var/log/otp-build.log", "/var/log/otp-server.log")


class RunnerManifest(BaseModel):
    """Configuration consumed by otp-runner on the instance."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    nonce: str
    jar_url: str
    jar_file: str
    graphs_folder: str = INSTANCE_GRAPHS_FOLDER
    graph_obj_url: Optional[str] = Field(default=None, description="Signed GET for the built graph")
    graph_upload_url: Optional[str] = Field(default=None, description="Signed PUT for the built graph")
    upload_path: str = Field(..., description="Job folder; log and report uploads go here")
    status_file_location: str
    otp_runner_log_file: str = RUNNER_LOG_FILE
    prefix_log_uploads_with_instance_id: bool = True
    server_startup_timeout_seconds: int
    upload_otp_runner_logs: bool = True
    build_graph: bool = False
    run_server: bool = False
    upload_graph: bool = False
    upload_graph_build_logs: bool = False
    upload_graph_build_report: bool = False
    upload_server_startup_logs: bool = False
    router_folder_downloads: List[str] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class RunnerManifestService:
    """
    Produces the user data for graph-builder and run-server launches of one job.

    Config files are uploaded at most once per job; the router config may
    already be in place from the bundle upload.
    """

    def __init__(
        self,
        descriptor: DeploymentDescriptor,
        bundle_builder: BundleBuilder,
        storage: IObjectStorage,
        nonce: str,
        url_checker: Optional[IUrlChecker] = None,
        deployment_config: Optional[DeploymentConfig] = None,
        router_config_uploaded: bool = False
    ):
        self.descriptor = descriptor
        self.bundles = bundle_builder
        self.storage = storage
        self.nonce = nonce
        self.url_checker = url_checker
        self.config = deployment_config or get_config().deployment
        self.router_config_uploaded = router_config_uploaded
        self.logger = LoggerFactory.create_with_context(
            ComponentType.SERVICE,
            "RunnerManifest",
            job_id=bundle_builder.job_id,
            deployment_id=descriptor.deployment_id
        )

    @property
    def jar_name(self) -> str:
        return f"{self.descriptor.otp_version or self.config.default_otp_version}.jar"

    @property
    def jar_url(self) -> str:
        return self.config.jar_url(self.descriptor.otp_version or self.config.default_otp_version)

    def check_jar(self) -> None:
        """
        Raises:
            ValidationError: The runner jar is not downloadable
        """
        if self.url_checker is None:
            return
        if not self.url_checker.is_available(self.jar_url):
            raise ValidationError(f"Requested OTP jar does not exist at {self.jar_url}")

    def _read_url(self, key: str) -> str:
        return self.storage.get_read_url(self.bundles.container, key)

    def _ensure_router_config(self) -> str:
        key = self.bundles.key_for(ROUTER_CONFIG_FILENAME)
        if not self.router_config_uploaded:
            self.bundles.upload_text(
                ROUTER_CONFIG_FILENAME,
                config_json(self.descriptor.router_config).decode('utf-8')
            )
            self.router_config_uploaded = True
        return self._read_url(key)

    def build_manifest(self, graph_already_built: bool, run_server: bool) -> RunnerManifest:
        """
        Assemble (and upload any config files needed by) one manifest.

        A graph builder downloads the bundle and build config; it also
        downloads the router config when it stays on as a run server.
        A run server downloads only the router config and fetches the graph
        built earlier in this job.
        """
        graph_key = self.bundles.key_for(GRAPH_FILENAME)
        common = dict(
            nonce=self.nonce,
            jar_url=self.jar_url,
            jar_file=f"{INSTANCE_JAR_FOLDER}/{self.jar_name}",
            upload_path=f"{self.bundles.container}/{self.bundles.job_folder}",
            status_file_location=self.config.instance_status_file,
            server_startup_timeout_seconds=self.config.runner_server_startup_timeout_seconds,
        )

        if not graph_already_built:
            build_config_key = self.bundles.upload_text(
                BUILD_CONFIG_FILENAME,
                config_json(self.descriptor.build_config).decode('utf-8')
            )
            downloads = [self._read_url(self.bundles.bundle_key), self._read_url(build_config_key)]
            if self.descriptor.osm_extract_url:
                downloads.append(self.descriptor.osm_extract_url)
            if run_server:
                downloads.append(self._ensure_router_config())
            return RunnerManifest(
                **common,
                graph_obj_url=self._read_url(graph_key),
                graph_upload_url=self.storage.get_write_url(self.bundles.container, graph_key),
                build_graph=True,
                run_server=run_server,
                upload_graph=True,
                upload_graph_build_logs=True,
                upload_graph_build_report=True,
                upload_server_startup_logs=run_server,
                router_folder_downloads=downloads,
            )

        # A prebuilt-graph image already has its graph on disk
        graph_url = None if self.descriptor.use_prebuilt_graph else self._read_url(graph_key)
        return RunnerManifest(
            **common,
            graph_obj_url=graph_url,
            build_graph=False,
            run_server=True,
            upload_server_startup_logs=True,
            router_folder_downloads=[self._ensure_router_config()],
        )

    def prepare_user_data(self, graph_already_built: bool, run_server: bool = True) -> str:
        """
        Upload the manifest for this launch and return the instance user data.

        Raises:
            TransferError: Manifest or config upload failed
        """
        manifest = self.build_manifest(graph_already_built, run_server)
        filename = SERVER_MANIFEST_FILENAME if graph_already_built else GRAPH_BUILD_MANIFEST_FILENAME
        key = self.bundles.upload_text(filename, manifest.to_json())
        self.logger.info(f"✅ Runner manifest uploaded: {key}")
        return self.render_user_data(self._read_url(key), manifest)

    def render_user_data(self, manifest_url: str, manifest: RunnerManifest) -> str:
        stale_files = [
            self.config.instance_status_file,
            INSTANCE_MANIFEST_PATH,
            manifest.jar_file,
            manifest.otp_runner_log_file,
            *STALE_LOG_FILES,
        ]
        lines = [
            "#!/bin/bash",
            'export PATH="$PATH:/home/ubuntu/.yarn/bin"',
            f'export PATH="$PATH:/home/ubuntu/.nvm/versions/node/{self.config.node_version}/bin"',
        ]
        lines.extend(f"rm {path} || echo '' > /dev/null" for path in stale_files)
        lines.append(f'curl -fsSL "{manifest_url}" -o {INSTANCE_MANIFEST_PATH}')
        lines.append(f"yarn global add {self.config.runner_repo_url}#{self.config.runner_branch}")
        lines.append(f"otp-runner {INSTANCE_MANIFEST_PATH}")
        return "\n".join(lines) + "\n"
