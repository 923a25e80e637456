"""
Deployment summary - audit record appended to a deployment's history.

Built once in ``DeployJob.job_finished()`` from the final status snapshot and
never mutated afterwards.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import ErrorCode
from core.models.deployment import FleetSpec
from core.models.instance import InstanceRecord
from core.models.status import DeployStatusSnapshot


class DeploySummary(BaseModel):
    """Final outcome of one deployment run."""
    model_config = ConfigDict(frozen=True)

    job_id: str
    deployment_id: str
    server_id: str
    role_arn: Optional[str] = None
    bucket: Optional[str] = None
    otp_version: Optional[str] = None
    build_artifacts_folder: Optional[str] = Field(
        default=None,
        description="Object storage folder holding the bundle, manifests and graph for this job"
    )
    fleet: Optional[FleetSpec] = None
    instances: List[InstanceRecord] = Field(
        default_factory=list,
        description="Instances serving traffic when the job finished"
    )
    status: DeployStatusSnapshot
    error_code: Optional[ErrorCode] = Field(default=None, description="First failure reason, when the run errored")
    error: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Standard error response (code, category, retryable) for pollers"
    )
    finish_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return not self.status.error

    @property
    def needs_manual_cleanup(self) -> bool:
        return bool(self.status.unterminated_instance_ids)
