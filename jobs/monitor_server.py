"""
Server health monitor job.

One MonitorServerStatusJob watches one instance. It polls the status file
the runner writes on the instance until the report says ``running`` or
``failed``, or until its timeout (or the batch's shared deadline) passes.

    PENDING ──▶ READY       report.state == "running"
            ──▶ FAILED      report.state == "failed"
            ──▶ TIMED_OUT   deadline passed

Reports whose ``nonce`` differs from the deploy job's nonce were written by
an earlier run on a reused image and are ignored.

Monitors only read. Terminating a failed instance is the deploy job's call.

Exports:
    MonitorServerStatusJob
"""

from typing import Any, Dict, Optional

from config import DeploymentConfig, get_config
from core.models import InstanceRecord, JobOwner, JobType, MonitorState
from core.utils import Deadline
from exceptions import HealthCheckError
from infrastructure.interface_repository import IServerStatusClient
from jobs.base import MonitorableJob


class MonitorServerStatusJob(MonitorableJob):
    """Polls one instance until it is ready, failed or out of time."""

    job_type = JobType.MONITOR_SERVER_STATUS

    def __init__(
        self,
        owner: JobOwner,
        deploy_job: MonitorableJob,
        instance: InstanceRecord,
        graph_already_built: bool,
        status_client: IServerStatusClient,
        nonce: str,
        deployment_config: Optional[DeploymentConfig] = None,
        group_deadline: Optional[Deadline] = None
    ):
        super().__init__(owner, f"Monitor {instance.role.value} {instance.instance_id}")
        self.parent_job_id = deploy_job.job_id
        self.parent_job_type = deploy_job.job_type
        self.instance = instance
        self.graph_already_built = graph_already_built
        self.status_client = status_client
        self.nonce = nonce
        self.config = deployment_config or get_config().deployment
        self.group_deadline = group_deadline
        self.state = MonitorState.PENDING
        self.last_report: Optional[Dict[str, Any]] = None

    @property
    def status_url(self) -> str:
        return f"http://{self.instance.public_ip}{self.config.status_path}"

    @property
    def timeout_seconds(self) -> float:
        if self.graph_already_built:
            return self.config.server_start_timeout_seconds
        return self.config.graph_build_timeout_seconds

    @property
    def ready(self) -> bool:
        return self.state == MonitorState.READY

    def _trusted(self, report: Optional[Dict[str, Any]]) -> bool:
        if report is None:
            return False
        if report.get('nonce') != self.nonce:
            self.logger.debug(
                f"Ignoring status from {self.instance.instance_id} with nonce {report.get('nonce')!r}"
            )
            return False
        return True

    def job_logic(self) -> None:
        deadline = Deadline(self.timeout_seconds).earliest(self.group_deadline)
        url = self.status_url
        self.status.update(f"Waiting for {self.instance.instance_id} at {url}", 1)
        self.logger.info(f"Polling {url} (timeout {deadline.remaining:.0f}s)")

        while True:
            report = self.status_client.fetch_status(url)
            if self._trusted(report):
                self.last_report = report
                state = report.get('state')
                message = report.get('message')
                if state == 'running':
                    self.state = MonitorState.READY
                    self.status.update(message or f"{self.instance.instance_id} is ready", 99)
                    self.logger.info(f"✅ {self.instance.instance_id} ready")
                    return
                if state == 'failed':
                    self.state = MonitorState.FAILED
                    message = message or f"{self.instance.instance_id} reported failure"
                    self.status.fail(message, HealthCheckError(message))
                    self.logger.warning(f"⚠️ {self.instance.instance_id} failed: {message}")
                    return
                if message:
                    self.status.update(message)

            if deadline.expired:
                self.state = MonitorState.TIMED_OUT
                message = (
                    f"Timed out after {deadline.seconds:.0f}s waiting for "
                    f"{self.instance.instance_id} to report ready"
                )
                self.status.fail(message, HealthCheckError(message))
                self.logger.warning(f"⚠️ {self.instance.instance_id} timed out")
                return

            deadline.sleep(self.config.poll_interval_seconds)
