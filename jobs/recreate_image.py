"""
Build image recreation job.

Snapshots a graph builder that has just finished building into a new
machine image, so later deployments of the same server can start from an
image that already has the graph. Runs on its own single-worker pool while
the deploy job starts run servers; the deploy job joins it by polling
``status.completed``.

The builder is never terminated here. The deploy job does that after the
join when the builder is not staying on as a run server.

Exports:
    RecreateBuildImageJob
"""

from datetime import datetime, timezone
from typing import Optional

from config import DeploymentConfig, get_config
from core.models import DeploymentDescriptor, InstanceRecord, JobOwner, JobType, clean_name
from core.utils import Deadline
from infrastructure.interface_repository import IComputeRepository, IDeploymentRepository
from jobs.base import MonitorableJob


IMAGE_FAILED_STATES = frozenset({'failed', 'invalid', 'deregistered', 'error'})


class RecreateBuildImageJob(MonitorableJob):
    """Creates a build image from a finished graph builder."""

    job_type = JobType.RECREATE_BUILD_IMAGE

    def __init__(
        self,
        owner: JobOwner,
        deploy_job: MonitorableJob,
        descriptor: DeploymentDescriptor,
        builder: InstanceRecord,
        compute: IComputeRepository,
        deployment_repository: IDeploymentRepository,
        no_reboot: bool,
        deployment_config: Optional[DeploymentConfig] = None
    ):
        super().__init__(owner, f"Recreate build image from {builder.instance_id}")
        self.parent_job_id = deploy_job.job_id
        self.parent_job_type = deploy_job.job_type
        self.descriptor = descriptor
        self.builder = builder
        self.compute = compute
        self.deployment_repository = deployment_repository
        self.no_reboot = no_reboot
        self.config = deployment_config or get_config().deployment
        self.image_id: Optional[str] = None
        self.previous_image_id: Optional[str] = None

    def _image_name(self) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        return f"{clean_name(self.descriptor.deployment_name)}-{self.descriptor.server_id}-graph-build-{stamp}"

    def job_logic(self) -> None:
        self.status.update(f"Creating image from {self.builder.instance_id}", 10)
        self.image_id = self.compute.create_image(
            self.builder.instance_id,
            self._image_name(),
            f"Graph build image for deployment {self.descriptor.deployment_id} (job {self.parent_job_id})",
            self.no_reboot
        )

        deadline = Deadline(self.config.image_recreation_timeout_seconds)
        self.status.update(f"Waiting for image {self.image_id} to become available", 20)
        while True:
            state = self.compute.get_image_state(self.image_id)
            if state == 'available':
                break
            if state in IMAGE_FAILED_STATES:
                self.status.fail(f"Image {self.image_id} creation ended in state '{state}'")
                return
            if deadline.expired:
                self.status.fail(
                    f"Image {self.image_id} not available after "
                    f"{self.config.image_recreation_timeout_seconds:.0f} seconds"
                )
                return
            deadline.sleep(self.config.image_recreation_poll_seconds)

        self.previous_image_id = self.deployment_repository.update_build_image(
            self.descriptor.server_id, self.image_id
        )
        message = f"Created build image {self.image_id}"
        if self.previous_image_id and self.previous_image_id != self.image_id:
            try:
                self.compute.deregister_image(self.previous_image_id)
                message += f"; deregistered previous image {self.previous_image_id}"
            except Exception as e:
                self.logger.warning(f"⚠️ Could not deregister image {self.previous_image_id}: {e}")
                message += f" (WARNING: previous image {self.previous_image_id} was not deregistered)"
        self.status.update(message, 99)
        self.logger.info(f"✅ {message}")
