"""
Compute instance record.

Created by the fleet provisioner from the provider's describe output.
Frozen - a state change produces a new record via ``model_copy(update=...)``.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.enums import InstanceLifecycle, ServerRole


class InstanceRecord(BaseModel):
    """One launched compute instance."""
    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(..., description="Provider instance id (i-...)")
    public_ip: Optional[str] = Field(default=None, description="Assigned asynchronously after launch")
    private_ip: Optional[str] = Field(default=None)
    state: InstanceLifecycle = Field(default=InstanceLifecycle.PENDING)
    instance_type: Optional[str] = Field(default=None)
    image_id: Optional[str] = Field(default=None)
    launch_time: Optional[datetime] = Field(default=None)
    tags: Dict[str, str] = Field(default_factory=dict)
    role: ServerRole = Field(default=ServerRole.SERVER)

    @property
    def has_public_ip(self) -> bool:
        return bool(self.public_ip)

    @classmethod
    def from_ec2(cls, instance: Dict[str, Any], role: Optional[ServerRole] = None) -> "InstanceRecord":
        """
        Build a record from one entry of an EC2 ``Reservations[].Instances[]`` list.
        """
        tags = {t['Key']: t['Value'] for t in instance.get('Tags', []) or []}
        if role is None:
            role = ServerRole(tags['role']) if tags.get('role') in ServerRole._value2member_map_ else ServerRole.SERVER
        return cls(
            instance_id=instance['InstanceId'],
            public_ip=instance.get('PublicIpAddress'),
            private_ip=instance.get('PrivateIpAddress'),
            state=InstanceLifecycle(instance.get('State', {}).get('Name', InstanceLifecycle.PENDING.value)),
            instance_type=instance.get('InstanceType'),
            image_id=instance.get('ImageId'),
            launch_time=instance.get('LaunchTime'),
            tags=tags,
            role=role,
        )

    def to_summary_dict(self) -> Dict[str, Any]:
        return {
            'instance_id': self.instance_id,
            'public_ip': self.public_ip,
            'instance_type': self.instance_type,
            'image_id': self.image_id,
            'role': self.role.value,
        }


class LaunchRequest(BaseModel):
    """Everything the compute provider needs to start a batch of identical instances."""
    model_config = ConfigDict(frozen=True)

    image_id: str
    instance_type: str
    count: int = Field(..., ge=1)
    user_data: str = Field(..., repr=False, description="Plain-text startup script; base64 encoding is the adapter's job")
    role: ServerRole = Field(default=ServerRole.SERVER)
    subnet_id: Optional[str] = None
    security_group_id: Optional[str] = None
    key_name: Optional[str] = None
    iam_instance_profile_arn: Optional[str] = None
    ebs_optimized: bool = False
