# ============================================================================
# FLEET PROVISIONER SERVICE
# ============================================================================
# STATUS: Service - compute instance lifecycle for one deployment job
# PURPOSE: Validate, launch, tag, await addresses, register and tear down instances
# CREATED: 19 OCT 2026
# EXPORTS: FleetProvisioner, LaunchResult, TerminationResult
# DEPENDENCIES: pydantic, infrastructure.interface_repository
# ============================================================================

"""
Fleet Provisioner Service.

``launch()`` never raises. Every failure comes back as an errored
LaunchResult that still lists every instance the provider created, so the
orchestrator can terminate them. Validation runs before the launch call and
a validation failure means no instance was started.

Teardown (``terminate``, ``deregister_and_terminate``) also never raises;
it reports which instances did not reach shutting-down/terminated so the
caller can flag them for manual cleanup.

Launch sequence:
    validate image + instance type
    prepare runner manifest / user data
    run_instances → status-ok waiter → tag each instance
    poll describe_instances every ip_check_interval_seconds until every
    instance has a public address or ip_assignment_timeout_seconds passes
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from config import DeploymentConfig, get_config
from core.errors import ErrorCode
from core.models import (
    DeploymentDescriptor,
    InstanceLifecycle,
    InstanceRecord,
    JobOwner,
    LaunchRequest,
    ServerRole,
)
from core.utils import Deadline
from exceptions import BusinessLogicError, ProvisioningError, ValidationError
from infrastructure.interface_repository import IComputeRepository, ILoadBalancerRepository
from services.runner_manifest import RunnerManifestService
from util_logger import LoggerFactory, ComponentType


# Provider state codes that mean "on its way out"
TERMINATION_OK_CODES = frozenset({32, 48})  # shutting-down, terminated


class LaunchResult(BaseModel):
    """Outcome of one launch() call."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    instances: List[InstanceRecord] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    exception: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def instance_ids(self) -> List[str]:
        return [i.instance_id for i in self.instances]


class TerminationResult(BaseModel):
    """Outcome of a teardown call."""
    model_config = ConfigDict(frozen=True)

    terminated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def all_terminated(self) -> bool:
        return not self.failed and not self.errors


InstanceRef = Union[InstanceRecord, str]


def _ids(instances: Sequence[InstanceRef]) -> List[str]:
    return [i.instance_id if isinstance(i, InstanceRecord) else i for i in instances]


class FleetProvisioner:
    """
    Compute side of one DeployJob.

    Only the orchestrator thread calls the mutating methods here.
    """

    def __init__(
        self,
        descriptor: DeploymentDescriptor,
        job_id: str,
        owner: JobOwner,
        compute: IComputeRepository,
        load_balancer: Optional[ILoadBalancerRepository] = None,
        manifests: Optional[RunnerManifestService] = None,
        deployment_config: Optional[DeploymentConfig] = None
    ):
        if descriptor.fleet is None:
            raise ValueError("FleetProvisioner requires a descriptor with a fleet")
        self.descriptor = descriptor
        self.fleet = descriptor.fleet
        self.job_id = job_id
        self.owner = owner
        self.compute = compute
        self.load_balancer = load_balancer
        self.manifests = manifests
        self.config = deployment_config or get_config().deployment
        self.logger = LoggerFactory.create_with_context(
            ComponentType.SERVICE,
            "FleetProvisioner",
            job_id=job_id,
            deployment_id=descriptor.deployment_id
        )

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def check_launch(self, image_id: str, instance_type: str) -> Optional[LaunchResult]:
        """Errored LaunchResult when the image or instance type is unusable, else None."""
        try:
            if not self.compute.image_exists(image_id):
                return LaunchResult(
                    error=f"Image {image_id} does not exist or is not accessible",
                    error_code=ErrorCode.IMAGE_NOT_FOUND
                )
            if instance_type not in self.compute.valid_instance_types():
                return LaunchResult(
                    error=f"Instance type {instance_type} is not a valid instance type",
                    error_code=ErrorCode.INVALID_INSTANCE_TYPE
                )
        except Exception as e:
            return LaunchResult(
                error=f"Could not validate launch settings: {e}",
                error_code=ErrorCode.PERMISSION_DENIED,
                exception=e
            )
        return None

    def validate(self) -> List[str]:
        """
        Everything checkable about the fleet before spending money.

        Returns:
            Problems found; empty when the fleet can be launched
        """
        problems: List[str] = []
        try:
            identity = self.compute.verify_credentials()
            self.logger.info(f"Compute credentials OK ({identity})")
        except ValidationError as e:
            return [str(e)]

        images = {self.fleet.run_image_id}
        types = {self.fleet.run_instance_type}
        if not self.descriptor.use_prebuilt_graph:
            images.add(self.fleet.resolved_build_image_id)
            types.add(self.fleet.resolved_build_instance_type)

        for image_id in sorted(images):
            if not self.compute.image_exists(image_id):
                problems.append(f"Image {image_id} does not exist or is not accessible")
        valid_types = self.compute.valid_instance_types()
        for instance_type in sorted(types):
            if instance_type not in valid_types:
                problems.append(f"Instance type {instance_type} is not a valid instance type")
        if self.fleet.subnet_id and not self.compute.subnet_exists(self.fleet.subnet_id):
            problems.append(f"Subnet {self.fleet.subnet_id} does not exist")
        if self.fleet.security_group_id and not self.compute.security_group_exists(self.fleet.security_group_id):
            problems.append(f"Security group {self.fleet.security_group_id} does not exist")
        if self.fleet.target_group_arn and self.load_balancer is not None:
            try:
                self.load_balancer.describe_target_ids(self.fleet.target_group_arn)
            except Exception as e:
                problems.append(f"Target group {self.fleet.target_group_arn} is not accessible: {e}")
        return problems

    # ========================================================================
    # LAUNCH
    # ========================================================================

    def _tags(self, role: ServerRole, index: int, launched_at: str) -> Dict[str, str]:
        d = self.descriptor
        return {
            'Name': f"{d.otp_version or self.config.default_otp_version} {d.deployment_name} "
                    f"{role.value} {index} {launched_at}",
            'projectId': d.project_id,
            'deploymentId': d.deployment_id,
            'jobId': self.job_id,
            'serverId': d.server_id,
            'routerId': d.router_id,
            'role': role.value,
            'user': self.owner.display_name,
        }

    def launch(self, count: int, use_prebuilt_graph: bool) -> LaunchResult:
        """
        Start ``count`` instances.

        Args:
            count: Instances wanted; 0 returns an empty success without any provider call
            use_prebuilt_graph: True for run servers that load an already-built
                graph; False for the graph builder

        Returns:
            LaunchResult; on error it lists every instance created so far
        """
        if count == 0:
            return LaunchResult()

        if use_prebuilt_graph:
            role = ServerRole.SERVER
            image_id, instance_type = self.fleet.run_image_id, self.fleet.run_instance_type
        else:
            role = ServerRole.BUILDER
            image_id = self.fleet.resolved_build_image_id
            instance_type = self.fleet.resolved_build_instance_type

        invalid = self.check_launch(image_id, instance_type)
        if invalid is not None:
            self.logger.error(f"❌ Launch validation failed: {invalid.error}")
            return invalid

        user_data = ""
        if self.manifests is not None:
            run_server = use_prebuilt_graph or not (
                self.descriptor.build_only or self.fleet.has_separate_graph_build_config()
            )
            try:
                user_data = self.manifests.prepare_user_data(
                    graph_already_built=use_prebuilt_graph,
                    run_server=run_server
                )
            except BusinessLogicError as e:
                return LaunchResult(
                    error=f"Could not prepare runner manifest: {e}",
                    error_code=ErrorCode.UPLOAD_FAILED,
                    exception=e
                )

        request = LaunchRequest(
            image_id=image_id,
            instance_type=instance_type,
            count=count,
            user_data=user_data,
            role=role,
            subnet_id=self.fleet.subnet_id,
            security_group_id=self.fleet.security_group_id,
            key_name=self.fleet.key_name,
            iam_instance_profile_arn=self.fleet.iam_instance_profile_arn,
            ebs_optimized=self.config.ebs_optimized,
        )

        instances: List[InstanceRecord] = []
        stage = "launch"
        code = ErrorCode.LAUNCH_REJECTED
        try:
            instances = self.compute.run_instances(request)
            ids = [i.instance_id for i in instances]

            stage, code = "status check", ErrorCode.INSTANCE_STATUS_CHECK_FAILED
            self.logger.info(f"Waiting for status checks on {ids}")
            self.compute.wait_until_status_ok(ids)

            stage, code = "tagging", ErrorCode.TAGGING_FAILED
            launched_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
            for index, instance_id in enumerate(ids, start=1):
                self.compute.tag_instances([instance_id], self._tags(role, index, launched_at))

            stage, code = "IP assignment", ErrorCode.IP_ASSIGNMENT_TIMEOUT
            instances = self._await_public_ips(instances)
        except ProvisioningError as e:
            observed = e.instances or instances
            self.logger.error(f"❌ Launch failed during {stage}: {e}")
            return LaunchResult(instances=observed, error=str(e), error_code=code, exception=e)
        except Exception as e:
            self.logger.error(f"❌ Launch failed during {stage}: {e}")
            return LaunchResult(
                instances=instances,
                error=f"Failed to start {role.value} instances during {stage}: {e}",
                error_code=code,
                exception=e
            )

        self.logger.info(
            f"✅ {len(instances)} {role.value} instance(s) up: "
            f"{[(i.instance_id, i.public_ip) for i in instances]}"
        )
        return LaunchResult(instances=[i.model_copy(update={'role': role}) for i in instances])

    def _await_public_ips(self, instances: List[InstanceRecord]) -> List[InstanceRecord]:
        """
        Raises:
            ProvisioningError: Timeout, or an instance died while waiting;
                carries the latest records for every launched instance
        """
        ids = [i.instance_id for i in instances]
        deadline = Deadline(self.config.ip_assignment_timeout_seconds)
        current = instances

        while True:
            current = self.compute.describe_instances(ids) or current
            dead = [i.instance_id for i in current
                    if i.state in (InstanceLifecycle.SHUTTING_DOWN, InstanceLifecycle.TERMINATED)]
            if dead:
                raise ProvisioningError(f"Instances {dead} stopped before receiving an IP address", instances=current)
            if all(i.has_public_ip for i in current):
                return current
            if deadline.expired:
                missing = [i.instance_id for i in current if not i.has_public_ip]
                raise ProvisioningError(
                    f"Instances {missing} did not receive a public IP within "
                    f"{self.config.ip_assignment_timeout_seconds:.0f} seconds",
                    instances=current
                )
            self.logger.debug(f"Waiting for public IPs on {ids}")
            deadline.sleep(self.config.ip_check_interval_seconds)

    # ========================================================================
    # TARGET GROUP
    # ========================================================================

    def register(self, instances: Sequence[InstanceRef]) -> None:
        """
        Register instances and confirm the target group lists every one of them.

        Raises:
            ProvisioningError: Registration refused or not confirmed
        """
        ids = _ids(instances)
        if not ids or not self.fleet.target_group_arn or self.load_balancer is None:
            return
        try:
            self.load_balancer.register_targets(self.fleet.target_group_arn, ids)
            registered = set(self.load_balancer.describe_target_ids(self.fleet.target_group_arn))
        except Exception as e:
            raise ProvisioningError(f"Could not register {ids} with target group: {e}") from e
        missing = [i for i in ids if i not in registered]
        if missing:
            raise ProvisioningError(f"Target group does not list {missing} after registration")
        self.logger.info(f"✅ Registered {ids} with {self.fleet.target_group_arn}")

    def previous_instances(self) -> List[InstanceRecord]:
        """Running instances tagged for this server by earlier jobs."""
        found = self.compute.find_instances(
            {'serverId': self.descriptor.server_id},
            states=[InstanceLifecycle.RUNNING]
        )
        return [i for i in found if i.tags.get('jobId') != self.job_id]

    # ========================================================================
    # TEARDOWN
    # ========================================================================

    def terminate(self, instances: Sequence[InstanceRef]) -> TerminationResult:
        ids = _ids(instances)
        if not ids:
            return TerminationResult()
        try:
            codes = self.compute.terminate_instances(ids)
        except Exception as e:
            self.logger.error(f"❌ Terminate call failed for {ids}: {e}")
            return TerminationResult(failed=ids, errors=[f"Terminate call failed: {e}"])

        terminated = [i for i in ids if codes.get(i) in TERMINATION_OK_CODES]
        failed = [i for i in ids if i not in terminated]
        if failed:
            self.logger.warning(f"⚠️ Instances not terminating: {failed} (codes {codes})")
        return TerminationResult(terminated=terminated, failed=failed)

    def deregister_and_terminate(self, instance_ids: Sequence[InstanceRef]) -> TerminationResult:
        """
        Remove instances from the target group, then terminate them.

        A deregistration failure is reported but termination still runs;
        a terminated target drops out of the group on its own.
        """
        ids = _ids(instance_ids)
        if not ids:
            return TerminationResult()
        errors: List[str] = []
        if self.fleet.target_group_arn and self.load_balancer is not None:
            try:
                self.load_balancer.deregister_targets(self.fleet.target_group_arn, ids)
            except Exception as e:
                self.logger.error(f"❌ Deregistration failed for {ids}: {e}")
                errors.append(f"Could not deregister {ids}: {e}")

        result = self.terminate(ids)
        return TerminationResult(
            terminated=result.terminated,
            failed=result.failed,
            errors=errors + result.errors
        )
