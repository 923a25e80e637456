# ============================================================================
# DEPLOY JOB
# ============================================================================
# STATUS: Core orchestrator - one deployment run from bundle to serving fleet
# PURPOSE: Drive the deployment state machine and own every fleet mutation
# CREATED: 19 OCT 2026
# EXPORTS: DeployJob
# DEPENDENCIES: concurrent.futures, services.*, jobs.monitor_server, jobs.recreate_image
# ENTRY_POINTS: JobExecutor.instance().submit(DeployJob(descriptor, owner))
# ============================================================================

"""
Deploy Job - Deployment Orchestrator.

State machine:

    VALIDATING → BUILDING_BUNDLE → BUILDING_GRAPH
        → (RECREATING_IMAGE ∥ STARTING_SERVERS) → SWAPPING_FLEET
        → TERMINATING_OLD → DONE
    any state → ERROR

Wire delivery (no fleet) stops after BUILDING_BUNDLE and POSTs the bundle to
each internal server in turn.

Fleet ownership:
    Only this job launches, registers, deregisters or terminates instances.
    Monitors and the image recreation job only read. Every instance launched
    by this run is tracked until it is either serving or terminated; on a
    failure before the swap the tracked instances are torn down, and any that
    refuse to terminate are listed in ``unterminated_instance_ids``.

Swap order:
    New instances are registered (and confirmed) before any previous
    instance is deregistered. A failure at or before the swap leaves the
    previous fleet serving.
"""

import os
import shutil
import tempfile
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional

from config import DeploymentConfig, StorageConfig, get_config
from core.error_handler import JobErrorHandler, log_nested_error
from core.errors import ErrorCode, create_error_response, get_error_category, is_fatal
from core.models import (
    DeploymentDescriptor,
    DeploymentState,
    DeployStatus,
    DeploySummary,
    FleetMode,
    ImageRecreationFailurePolicy,
    InstanceRecord,
    JobOwner,
    JobType,
    MonitorState,
    clean_name,
)
from core.utils import Deadline, generate_nonce
from exceptions import (
    BundleBuildError,
    BusinessLogicError,
    ProvisioningError,
    TeardownError,
    TransferError,
    ValidationError,
)
from infrastructure.interface_repository import (
    IComputeRepository,
    IDeploymentRepository,
    IGraphTransferClient,
    ILoadBalancerRepository,
    IObjectStorage,
    IServerStatusClient,
    IUrlChecker,
)
from jobs.base import MonitorableJob
from jobs.monitor_server import MonitorServerStatusJob
from jobs.recreate_image import RecreateBuildImageJob
from services.bundle_builder import BundleArtifact, BundleBuilder, BundleLocation
from services.fleet_provisioner import FleetProvisioner, TerminationResult
from services.runner_manifest import RunnerManifestService

_UPLOAD_PROGRESS_POLL_SECONDS = 0.5


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class DeployJob(MonitorableJob):
    """
    Deploys one routing server: bundle, graph, fleet, swap.

    Collaborators not passed in are created through RepositoryFactory when
    the job starts, so tests hand in fakes and production passes nothing.
    """

    job_type = JobType.DEPLOY_TO_OTP
    status_class = DeployStatus

    def __init__(
        self,
        descriptor: DeploymentDescriptor,
        owner: JobOwner,
        storage: Optional[IObjectStorage] = None,
        compute: Optional[IComputeRepository] = None,
        load_balancer: Optional[ILoadBalancerRepository] = None,
        status_client: Optional[IServerStatusClient] = None,
        transfer_client: Optional[IGraphTransferClient] = None,
        url_checker: Optional[IUrlChecker] = None,
        deployment_repository: Optional[IDeploymentRepository] = None,
        deployment_config: Optional[DeploymentConfig] = None,
        storage_config: Optional[StorageConfig] = None,
        temp_dir: Optional[str] = None
    ):
        super().__init__(owner, f"Deploy {descriptor.deployment_name} to {descriptor.server_id}")
        self.descriptor = descriptor
        self.storage = storage
        self.compute = compute
        self.load_balancer = load_balancer
        self.status_client = status_client
        self.transfer_client = transfer_client
        self.url_checker = url_checker
        self.deployment_repository = deployment_repository
        self.config = deployment_config or get_config().deployment
        self.storage_config = storage_config or get_config().storage
        self.temp_dir = temp_dir
        self.nonce = generate_nonce()

        self.bundle_builder: Optional[BundleBuilder] = None
        self.manifests: Optional[RunnerManifestService] = None
        self.provisioner: Optional[FleetProvisioner] = None

        self.error_code: Optional[ErrorCode] = None
        self.artifact: Optional[BundleArtifact] = None
        self.location: Optional[BundleLocation] = None
        self.previous_instances: List[InstanceRecord] = []
        self.serving_instances: List[InstanceRecord] = []
        self.builder_monitor: Optional[MonitorServerStatusJob] = None
        self.server_monitors: List[MonitorServerStatusJob] = []
        self.recreate_job: Optional[RecreateBuildImageJob] = None
        self.summary: Optional[DeploySummary] = None

        self._work_dir: Optional[str] = None
        self._recreate_pool: Optional[ThreadPoolExecutor] = None
        self._live: Dict[str, InstanceRecord] = {}
        self._upload_percent: Optional[float] = None
        self._swapped = False

    # ========================================================================
    # COLLABORATORS
    # ========================================================================

    def _resolve_collaborators(self) -> None:
        """Create whatever was not injected, then the per-job services."""
        d = self.descriptor
        needs_storage = d.uses_fleet or bool(d.bucket)
        needs_factory = (
            self.deployment_repository is None
            or (needs_storage and self.storage is None)
            or (d.uses_fleet and None in (self.compute, self.load_balancer, self.status_client, self.url_checker))
            or (not d.uses_fleet and self.transfer_client is None)
        )
        if needs_factory:
            from infrastructure.factory import RepositoryFactory

            if self.deployment_repository is None:
                self.deployment_repository = RepositoryFactory.create_deployment_repository()
            if needs_storage and self.storage is None:
                self.storage = RepositoryFactory.create_object_storage()
            if d.uses_fleet:
                if self.compute is None:
                    self.compute = RepositoryFactory.create_compute_repository(d.role_arn, d.region)
                if self.load_balancer is None:
                    self.load_balancer = RepositoryFactory.create_load_balancer_repository(d.role_arn, d.region)
                if self.status_client is None:
                    self.status_client = RepositoryFactory.create_status_client()
                if self.url_checker is None:
                    self.url_checker = RepositoryFactory.create_url_checker()
            elif self.transfer_client is None:
                self.transfer_client = RepositoryFactory.create_transfer_client()

        self.bundle_builder = BundleBuilder(d, self.job_id, self.storage, self.storage_config)
        if d.uses_fleet:
            self.manifests = RunnerManifestService(
                d, self.bundle_builder, self.storage, self.nonce,
                url_checker=self.url_checker,
                deployment_config=self.config
            )
            self.provisioner = FleetProvisioner(
                d, self.job_id, self.owner, self.compute,
                load_balancer=self.load_balancer,
                manifests=self.manifests,
                deployment_config=self.config
            )

    # ========================================================================
    # FAILURE AND TEARDOWN HELPERS
    # ========================================================================

    def _fail(self, message: str, exception: Optional[BaseException] = None,
              code: ErrorCode = ErrorCode.UNEXPECTED_ERROR) -> None:
        """Fail the job; a second failure is appended to the first message."""
        if self.status.error:
            message = f"{self.status.message} {message}"
        elif self.error_code is None:
            self.error_code = code
        self.logger.error(f"❌ [{code.value}] {message}")
        self.status.fail(message, exception)

    def _track(self, instances: List[InstanceRecord]) -> None:
        for instance in instances:
            self._live[instance.instance_id] = instance

    def _teardown(self, instances: List[InstanceRecord], what: str) -> TerminationResult:
        """Terminate new instances; failures become warnings plus manual-cleanup ids."""
        result = self.provisioner.terminate(instances)
        # Refusals are reported below; the instance is not retried.
        for instance in instances:
            self._live.pop(instance.instance_id, None)
        if not result.all_terminated:
            self.status.add_unterminated(result.failed)
            detail = "; ".join(result.errors)
            self.status.add_warning(
                f"Could not terminate {what} {result.failed}" + (f": {detail}" if detail else "")
            )
            if self.status.error:
                log_nested_error(
                    self.logger,
                    primary_error=BusinessLogicError(self.status.message),
                    cleanup_error=TeardownError(detail or "instances still running", result.failed),
                    operation=f"terminate {what}",
                    job_id=self.job_id,
                    additional_context={'deployment_id': self.descriptor.deployment_id}
                )
        return result

    def _run_stage(self, operation: str, stage: Callable[[], None]) -> bool:
        """
        Run one stage; an unexpected exception fails the job.

        Returns:
            True when the job is still healthy afterwards
        """
        with JobErrorHandler.handle_operation(
            self.logger,
            operation,
            job_id=self.job_id,
            deployment_id=self.descriptor.deployment_id,
            on_error=lambda e: self._fail(f"Unexpected error while trying to {operation}: {e}", e),
            raise_on_error=False
        ):
            stage()
        return not self.status.error

    # ========================================================================
    # JOB LOGIC
    # ========================================================================

    def job_logic(self) -> None:
        try:
            if not self._run_stage("validate the deployment", self._validate):
                return
            if self.descriptor.needs_bundle_build:
                if not self._run_stage("build the bundle", self._build_bundle):
                    return
            if self.descriptor.uses_fleet:
                self._run_stage("deploy the fleet", self._deploy_fleet)
            else:
                self._run_stage("deliver the graph to servers", self._deploy_over_wire)
        finally:
            self._join_image_recreation()
            self._release_instances()

        if not self.status.error:
            self.status.set_state(DeploymentState.DONE, self._completion_message(), 99)

    def _completion_message(self) -> str:
        if self.descriptor.build_only:
            message = "Graph build is complete!"
        elif self.descriptor.uses_fleet:
            message = "Server setup is complete!"
        else:
            message = "Deployment complete!"
        if self.status.warnings:
            message += f" (WARNING: {' '.join(self.status.warnings)})"
        return message

    # ------------------------------------------------------------------
    # VALIDATING
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        d = self.descriptor
        self.status.set_state(DeploymentState.VALIDATING, "Validating deployment", 2)

        problems = d.consistency_problems()
        if d.uses_fleet and not self.config.ec2_enabled:
            problems.append("Cloud fleet deployments are disabled (EC2_DEPLOYMENT_ENABLED)")
        if problems:
            self._fail(f"Invalid deployment: {'; '.join(problems)}", code=ErrorCode.INVALID_DESCRIPTOR)
            return

        self._resolve_collaborators()

        if self.storage is not None and d.bucket:
            if not self.storage.check_write_access(d.bucket):
                self._fail(f"Cannot write to bucket {d.bucket}", code=ErrorCode.BUCKET_NOT_WRITABLE)
                return

        if not d.uses_fleet:
            self.status.update("Deployment is valid", 5)
            return

        try:
            self.manifests.check_jar()
        except ValidationError as e:
            self._fail(str(e), e, code=ErrorCode.RUNNER_JAR_NOT_FOUND)
            return

        problems = self.provisioner.validate()
        if problems:
            self._fail(f"Fleet validation failed: {'; '.join(problems)}", code=ErrorCode.INVALID_DESCRIPTOR)
            return

        if d.fleet_mode == FleetMode.REPLACE and not d.build_only:
            self.previous_instances = self.provisioner.previous_instances()
            self.logger.info(
                f"Previous fleet for {d.server_id}: {[i.instance_id for i in self.previous_instances]}"
            )
        self.status.update("Deployment is valid", 5)

    # ------------------------------------------------------------------
    # BUILDING_BUNDLE
    # ------------------------------------------------------------------

    def _on_upload_progress(self, percent: float) -> None:
        # Runs on storage SDK threads; the job thread applies it
        self._upload_percent = percent

    def _apply_upload_progress(self) -> None:
        percent = self._upload_percent
        if percent is None:
            return
        self.status.set_fields(percent_uploaded=percent)
        self.status.update(percent=10 + percent * 0.2)

    def _upload_bundle(self) -> BundleLocation:
        """Upload on a helper thread while this thread publishes progress."""
        self._upload_percent = None
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"upload-{self.job_id[:8]}")
        try:
            future = pool.submit(self.bundle_builder.upload, self.artifact, self._on_upload_progress)
            while True:
                try:
                    location = future.result(timeout=_UPLOAD_PROGRESS_POLL_SECONDS)
                    break
                except FutureTimeoutError:
                    self._apply_upload_progress()
        finally:
            pool.shutdown(wait=True)
        self._apply_upload_progress()
        return location

    def _build_bundle(self) -> None:
        d = self.descriptor
        self.status.set_state(DeploymentState.BUILDING_BUNDLE, "Building bundle", 6)
        self._work_dir = tempfile.mkdtemp(prefix="otp-bundle-", dir=self.temp_dir)
        path = os.path.join(self._work_dir, f"{clean_name(d.deployment_name)}.zip")

        try:
            self.artifact = self.bundle_builder.build(path)
        except BundleBuildError as e:
            self._fail(f"Failed to build bundle: {e}", e, code=ErrorCode.BUNDLE_BUILD_FAILED)
            return
        self.status.set_fields(built=True)
        self.status.update(f"Bundle built ({self.artifact.size} bytes)", 10)

        if not (d.uses_fleet or d.bucket):
            return

        self.status.set_fields(uploading=True)
        self.status.update(f"Uploading bundle to {self.bundle_builder.container}")
        try:
            self.location = self._upload_bundle()
        except TransferError as e:
            self._fail(str(e), e, code=ErrorCode.UPLOAD_FAILED)
            return
        finally:
            self.status.set_fields(uploading=False)
        if self.manifests is not None:
            self.manifests.router_config_uploaded = True
        self.status.update(f"Bundle uploaded to {self.location.container}/{self.location.key}", 30)

    # ------------------------------------------------------------------
    # WIRE DELIVERY
    # ------------------------------------------------------------------

    def _deploy_over_wire(self) -> None:
        d = self.descriptor
        total = len(d.internal_urls)
        self.status.set_state(DeploymentState.STARTING_SERVERS, f"Deploying to {_plural(total, 'server')}", 30)
        self.status.set_fields(total_servers=total, num_servers_remaining=total)

        for index, base_url in enumerate(d.internal_urls):
            url = f"{base_url}/routers/{d.router_id}"
            self.status.update(f"Sending bundle to {url}")
            self.status.set_fields(uploading=True)
            try:
                code, body = self.transfer_client.post_bundle(url, self.artifact.path)
            except Exception as e:
                self._fail(f"Could not finish request to server {url}: {e}", e,
                           code=ErrorCode.WIRE_TRANSFER_FAILED)
                return
            finally:
                self.status.set_fields(uploading=False)

            if code != 201:
                self._fail(f"Got response code {code} from server due to {body}",
                           code=ErrorCode.WIRE_TRANSFER_FAILED)
                return
            self.status.set_fields(num_servers_completed=index + 1, num_servers_remaining=total - index - 1)
            self.status.update(f"Deployed to {base_url}", 30 + 65 * (index + 1) / total)
            self.logger.info(f"✅ Graph delivered to {url}")

        self.status.set_fields(base_url=d.public_url)

    # ------------------------------------------------------------------
    # FLEET
    # ------------------------------------------------------------------

    def _deploy_fleet(self) -> None:
        d = self.descriptor
        fleet = d.fleet
        kept: List[InstanceRecord] = []

        if d.use_prebuilt_graph:
            remaining = fleet.instance_count
        else:
            builder = self._build_graph()
            if builder is None:
                return
            if d.build_only:
                self.status.update("Graph build is complete! Terminating graph builder", 90)
                self._teardown([builder], "graph builder")
                return

            separate = fleet.has_separate_graph_build_config()
            if fleet.recreate_build_image:
                self._start_image_recreation(builder, no_reboot=not separate)
            if separate:
                remaining = max(fleet.instance_count, 1)
                if not fleet.recreate_build_image:
                    self._teardown([builder], "graph builder")
            else:
                kept.append(builder)
                remaining = max(fleet.instance_count - 1, 0)

        self.status.set_fields(
            total_servers=remaining + len(kept),
            num_servers_completed=len(kept),
            num_servers_remaining=remaining
        )
        started = self._start_servers(remaining)
        if started is None:
            return

        new_fleet = kept + started
        if not new_fleet:
            self._fail("Job failed because no running instances remain.", code=ErrorCode.NO_HEALTHY_INSTANCES)
            return
        self._swap_fleet(new_fleet)

    # ------------------------------------------------------------------
    # BUILDING_GRAPH
    # ------------------------------------------------------------------

    def _build_graph(self) -> Optional[InstanceRecord]:
        """Launch and watch the graph builder; None when the job failed."""
        self.status.set_state(DeploymentState.BUILDING_GRAPH, "Starting up graph building instance", 30)
        result = self.provisioner.launch(1, use_prebuilt_graph=False)
        self._track(result.instances)
        if not result.succeeded or not result.instances:
            self._fail(
                f"Failed to start graph building instance: {result.error or 'no instance returned'}",
                result.exception,
                code=result.error_code or ErrorCode.LAUNCH_REJECTED
            )
            return None

        builder = result.instances[0]
        self.status.update(f"Waiting for graph build on {builder.instance_id}", 32)
        self.builder_monitor = MonitorServerStatusJob(
            self.owner, self, builder,
            graph_already_built=False,
            status_client=self.status_client,
            nonce=self.nonce,
            deployment_config=self.config
        )
        self.builder_monitor.run()

        if not self.builder_monitor.ready:
            code = (ErrorCode.HEALTH_CHECK_TIMEOUT
                    if self.builder_monitor.state == MonitorState.TIMED_OUT
                    else ErrorCode.GRAPH_BUILD_FAILED)
            self._fail(
                "Error encountered while building graph. Inspect build logs. "
                f"({self.builder_monitor.status.message})",
                code=code
            )
            return None

        self.status.update("Graph build is complete!", 45)
        return builder

    # ------------------------------------------------------------------
    # RECREATING_IMAGE
    # ------------------------------------------------------------------

    def _start_image_recreation(self, builder: InstanceRecord, no_reboot: bool) -> None:
        self.status.set_state(
            DeploymentState.RECREATING_IMAGE,
            f"Recreating graph build image from {builder.instance_id}",
            46
        )
        self.recreate_job = RecreateBuildImageJob(
            self.owner, self, self.descriptor, builder,
            self.compute, self.deployment_repository,
            no_reboot=no_reboot,
            deployment_config=self.config
        )
        self._recreate_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"image-{self.job_id[:8]}")
        self._recreate_pool.submit(self.recreate_job.run)

    def _join_image_recreation(self) -> None:
        if self._recreate_pool is None:
            return
        job = self.recreate_job
        try:
            if not self.status.error:
                self.status.update("Waiting for graph build image recreation to finish", 95)
            deadline = Deadline(self.config.image_recreation_timeout_seconds + self.config.image_recreation_poll_seconds)
            while not job.status.completed and not deadline.expired:
                deadline.sleep(self.config.image_recreation_poll_seconds)

            problem = None
            code = ErrorCode.IMAGE_RECREATION_FAILED
            if not job.status.completed:
                problem = "Timed out waiting for graph build image recreation"
            elif job.status.error:
                problem = f"Graph build image recreation failed: {job.status.message}"
            else:
                self.status.set_fields(recreated_image_id=job.image_id)

            if problem is not None:
                fatal = is_fatal(
                    get_error_category(code),
                    fail_on_image_error=self.config.image_recreation_failure_policy == ImageRecreationFailurePolicy.FAIL
                )
                if fatal and not self.status.error:
                    self._fail(problem, code=code)
                else:
                    self.status.add_warning(problem)
        finally:
            self._recreate_pool.shutdown(wait=False)
            self._recreate_pool = None

    # ------------------------------------------------------------------
    # STARTING_SERVERS
    # ------------------------------------------------------------------

    def _start_servers(self, count: int) -> Optional[List[InstanceRecord]]:
        """
        Launch ``count`` run servers and wait for them as one batch.

        Returns:
            The servers that reported ready, or None when the launch failed
        """
        if count == 0:
            return []
        self.status.set_state(
            DeploymentState.STARTING_SERVERS,
            f"Spinning up {_plural(count, 'server instance')}",
            50
        )
        result = self.provisioner.launch(count, use_prebuilt_graph=True)
        self._track(result.instances)
        if not result.succeeded or not result.instances:
            self._fail(
                f"Failed to start server instances: {result.error or 'no instances returned'}",
                result.exception,
                code=result.error_code or ErrorCode.LAUNCH_REJECTED
            )
            return None

        instances = result.instances
        kept = self.status.num_servers_completed
        self.status.update(f"Waiting for {_plural(len(instances), 'instance')} to start the server", 55)
        group_deadline = Deadline(self.config.fleet_join_timeout_seconds)
        self.server_monitors = [
            MonitorServerStatusJob(
                self.owner, self, instance,
                graph_already_built=True,
                status_client=self.status_client,
                nonce=self.nonce,
                deployment_config=self.config,
                group_deadline=group_deadline
            )
            for instance in instances
        ]

        pool = ThreadPoolExecutor(max_workers=len(self.server_monitors), thread_name_prefix=f"monitor-{self.job_id[:8]}")
        try:
            futures = {pool.submit(monitor.run): monitor for monitor in self.server_monitors}
            pending = set(futures)
            while pending and not group_deadline.expired:
                _, pending = wait(pending, timeout=group_deadline.remaining, return_when=FIRST_COMPLETED)
                finished = len(futures) - len(pending)
                self.status.set_fields(
                    num_servers_completed=kept + finished,
                    num_servers_remaining=len(futures) - finished
                )
                self.status.update(percent=55 + 25 * finished / len(futures))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        healthy: List[InstanceRecord] = []
        failed = 0
        for future, monitor in futures.items():
            if future.done() and monitor.ready:
                healthy.append(monitor.instance)
                continue
            failed += 1
            code = (ErrorCode.HEALTH_CHECK_TIMEOUT if monitor.state in (MonitorState.PENDING, MonitorState.TIMED_OUT)
                    else ErrorCode.SERVER_START_FAILED)
            self.logger.warning(
                f"⚠️ [{code.value}] {monitor.instance.instance_id} did not start "
                f"({monitor.state.value}): {monitor.status.message}"
            )
            self._teardown([monitor.instance], "failed server instance")
            if is_fatal(get_error_category(code), partial_batch=True) and not self.status.error:
                self._fail(f"Server {monitor.instance.instance_id} failed to start: {monitor.status.message}", code=code)

        self.status.set_fields(failed_instance_count=failed)
        if failed:
            self.status.add_warning(f"{_plural(failed, 'instance')} failed to start.")
        self.status.update(f"{_plural(len(healthy), 'server')} ready", 80)
        return healthy

    # ------------------------------------------------------------------
    # SWAPPING_FLEET / TERMINATING_OLD
    # ------------------------------------------------------------------

    def _swap_fleet(self, new_fleet: List[InstanceRecord]) -> None:
        d = self.descriptor
        self.status.set_state(
            DeploymentState.SWAPPING_FLEET,
            f"Registering {_plural(len(new_fleet), 'instance')} with the target group",
            85
        )
        try:
            self.provisioner.register(new_fleet)
        except ProvisioningError as e:
            self._fail(str(e), e, code=ErrorCode.REGISTRATION_FAILED)
            return

        self._swapped = True
        self.serving_instances = new_fleet
        self.status.set_fields(num_servers_remaining=0, base_url=d.public_url)

        if d.fleet_mode != FleetMode.REPLACE or not self.previous_instances:
            return

        previous = self.previous_instances
        self.status.set_state(
            DeploymentState.TERMINATING_OLD,
            f"Deregistering and terminating {_plural(len(previous), 'previous instance')}",
            90
        )
        result = self.provisioner.deregister_and_terminate(previous)
        if not result.all_terminated:
            self.status.add_unterminated(result.failed)
            detail = "; ".join(result.errors)
            self.status.add_warning(
                f"Could not terminate previous EC2 instances {result.failed}" + (f": {detail}" if detail else "")
            )

    def _release_instances(self) -> None:
        """Tear down tracked instances that are not part of the serving fleet."""
        if not self._live or self.provisioner is None:
            return
        serving = {i.instance_id for i in self.serving_instances}
        leftovers = [i for i in self._live.values() if i.instance_id not in serving]
        if not leftovers:
            return
        what = "graph builder" if self._swapped else "new instances"
        self.logger.info(f"Releasing {[i.instance_id for i in leftovers]}")
        self._teardown(leftovers, what)

    # ========================================================================
    # FINALIZE
    # ========================================================================

    def job_finished(self) -> None:
        if self._work_dir is not None:
            try:
                shutil.rmtree(self._work_dir)
            except OSError as e:
                self.logger.warning(f"⚠️ Could not delete temporary bundle directory {self._work_dir}: {e}")
            self._work_dir = None

        d = self.descriptor
        final = self.status.snapshot().model_copy(update={'completed': True, 'percent_complete': 100.0})
        self.summary = DeploySummary(
            job_id=self.job_id,
            deployment_id=d.deployment_id,
            server_id=d.server_id,
            role_arn=d.role_arn,
            bucket=d.bucket,
            otp_version=d.otp_version or self.config.default_otp_version,
            build_artifacts_folder=self.bundle_builder.job_folder if self.bundle_builder and d.bucket else None,
            fleet=d.fleet,
            instances=self.serving_instances,
            status=final,
            error_code=self.error_code,
            error=create_error_response(
                self.error_code,
                self.status.message,
                job_id=self.job_id,
                deployment_id=d.deployment_id
            ) if self.error_code is not None else None
        )

        if self.deployment_repository is None:
            from infrastructure.factory import RepositoryFactory
            self.deployment_repository = RepositoryFactory.create_deployment_repository()
        self.deployment_repository.append_summary(d.deployment_id, self.summary)
        if not self.status.error:
            self.deployment_repository.record_deployed_to(d.deployment_id, d.server_id)
        self.logger.info(
            f"Deployment summary recorded for {d.deployment_id} "
            f"({'succeeded' if self.summary.succeeded else 'failed'})"
        )
