# ============================================================================
# EC2 REPOSITORY
# ============================================================================
# STATUS: Infrastructure - AWS EC2 compute adapter
# PURPOSE: Launch, tag, describe, terminate and image routing-server instances
# CREATED: 19 OCT 2026
# EXPORTS: Ec2Repository (IComputeRepository implementation)
# DEPENDENCIES: boto3, botocore
# ENTRY_POINTS: RepositoryFactory.create_compute_repository(role_arn, region)
# ============================================================================

"""
EC2 Repository - Compute Instances and Machine Images

Thin adapter over the boto3 EC2 client. Validation helpers translate the
provider's "not found"/"malformed" error codes into False so the provisioner
can fail fast before launching anything; every other ClientError propagates.
"""

from typing import Dict, List, Optional, Set

from botocore.exceptions import ClientError

from core.models import InstanceLifecycle, InstanceRecord, LaunchRequest
from exceptions import ValidationError
from infrastructure.interface_repository import IComputeRepository
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "Ec2Repository")

_IMAGE_NOT_FOUND_CODES = {'InvalidAMIID.NotFound', 'InvalidAMIID.Malformed', 'InvalidAMIID.Unavailable'}
_SUBNET_NOT_FOUND_CODES = {'InvalidSubnetID.NotFound', 'InvalidSubnetID.Malformed'}
_GROUP_NOT_FOUND_CODES = {'InvalidGroup.NotFound', 'InvalidGroupId.Malformed'}

STATUS_OK_WAITER_DELAY_SECONDS = 15
STATUS_OK_WAITER_MAX_ATTEMPTS = 80


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


class Ec2Repository(IComputeRepository):
    """
    EC2 implementation of IComputeRepository.

    One instance per (role, region); build through RepositoryFactory.
    """

    def __init__(self, ec2_client, sts_client=None):
        self.ec2 = ec2_client
        self.sts = sts_client
        self._instance_types: Optional[Set[str]] = None

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def verify_credentials(self) -> str:
        """
        Confirm the session can reach EC2.

        A DryRun describe answers ``DryRunOperation`` when permitted and
        ``UnauthorizedOperation`` when not.
        """
        identity = "unknown"
        if self.sts is not None:
            try:
                identity = self.sts.get_caller_identity()['Arn']
            except ClientError as e:
                raise ValidationError(f"AWS credentials rejected: {e}") from e

        try:
            self.ec2.describe_instances(DryRun=True, MaxResults=5)
        except ClientError as e:
            code = _error_code(e)
            if code != 'DryRunOperation':
                raise ValidationError(f"{identity} cannot describe EC2 instances ({code})") from e

        logger.debug(f"EC2 access verified for {identity}")
        return identity

    def image_exists(self, image_id: str) -> bool:
        try:
            images = self.ec2.describe_images(ImageIds=[image_id]).get('Images', [])
        except ClientError as e:
            if _error_code(e) in _IMAGE_NOT_FOUND_CODES:
                return False
            raise
        return len(images) > 0

    def valid_instance_types(self) -> Set[str]:
        """Instance type enumeration from the client's service model."""
        if self._instance_types is None:
            shape = self.ec2.meta.service_model.shape_for('InstanceType')
            self._instance_types = set(shape.enum)
        return self._instance_types

    def subnet_exists(self, subnet_id: str) -> bool:
        try:
            return len(self.ec2.describe_subnets(SubnetIds=[subnet_id]).get('Subnets', [])) > 0
        except ClientError as e:
            if _error_code(e) in _SUBNET_NOT_FOUND_CODES:
                return False
            raise

    def security_group_exists(self, security_group_id: str) -> bool:
        try:
            groups = self.ec2.describe_security_groups(GroupIds=[security_group_id]).get('SecurityGroups', [])
        except ClientError as e:
            if _error_code(e) in _GROUP_NOT_FOUND_CODES:
                return False
            raise
        return len(groups) > 0

    # ========================================================================
    # INSTANCES
    # ========================================================================

    def run_instances(self, request: LaunchRequest) -> List[InstanceRecord]:
        params = {
            'ImageId': request.image_id,
            'InstanceType': request.instance_type,
            'MinCount': request.count,
            'MaxCount': request.count,
            # botocore base64-encodes UserData for RunInstances
            'UserData': request.user_data,
            'InstanceInitiatedShutdownBehavior': 'terminate',
            'EbsOptimized': request.ebs_optimized,
        }
        if request.subnet_id:
            interface = {
                'DeviceIndex': 0,
                'SubnetId': request.subnet_id,
                'AssociatePublicIpAddress': True,
            }
            if request.security_group_id:
                interface['Groups'] = [request.security_group_id]
            params['NetworkInterfaces'] = [interface]
        elif request.security_group_id:
            params['SecurityGroupIds'] = [request.security_group_id]
        if request.iam_instance_profile_arn:
            params['IamInstanceProfile'] = {'Arn': request.iam_instance_profile_arn}
        if request.key_name:
            params['KeyName'] = request.key_name

        logger.info(
            f"Launching {request.count} x {request.instance_type} from {request.image_id} ({request.role.value})"
        )
        response = self.ec2.run_instances(**params)
        records = [InstanceRecord.from_ec2(i, role=request.role) for i in response.get('Instances', [])]
        logger.info(f"✅ Provider accepted launch: {[r.instance_id for r in records]}")
        return records

    def wait_until_status_ok(self, instance_ids: List[str]) -> None:
        waiter = self.ec2.get_waiter('instance_status_ok')
        waiter.wait(
            InstanceIds=instance_ids,
            WaiterConfig={
                'Delay': STATUS_OK_WAITER_DELAY_SECONDS,
                'MaxAttempts': STATUS_OK_WAITER_MAX_ATTEMPTS,
            }
        )

    def tag_instances(self, instance_ids: List[str], tags: Dict[str, str]) -> None:
        self.ec2.create_tags(
            Resources=instance_ids,
            Tags=[{'Key': k, 'Value': v} for k, v in tags.items()]
        )

    def _describe(self, **kwargs) -> List[InstanceRecord]:
        records: List[InstanceRecord] = []
        paginator = self.ec2.get_paginator('describe_instances')
        for page in paginator.paginate(**kwargs):
            for reservation in page.get('Reservations', []):
                for instance in reservation.get('Instances', []):
                    records.append(InstanceRecord.from_ec2(instance))
        return records

    def describe_instances(self, instance_ids: List[str]) -> List[InstanceRecord]:
        if not instance_ids:
            return []
        return self._describe(InstanceIds=instance_ids)

    def find_instances(
        self,
        tags: Dict[str, str],
        states: Optional[List[InstanceLifecycle]] = None
    ) -> List[InstanceRecord]:
        filters = [{'Name': f"tag:{k}", 'Values': [v]} for k, v in tags.items()]
        if states:
            filters.append({'Name': 'instance-state-name', 'Values': [s.value for s in states]})
        return self._describe(Filters=filters)

    def terminate_instances(self, instance_ids: List[str]) -> Dict[str, int]:
        if not instance_ids:
            return {}
        logger.info(f"Terminating instances: {instance_ids}")
        response = self.ec2.terminate_instances(InstanceIds=instance_ids)
        return {
            item['InstanceId']: item['CurrentState']['Code']
            for item in response.get('TerminatingInstances', [])
        }

    # ========================================================================
    # IMAGES
    # ========================================================================

    def create_image(self, instance_id: str, name: str, description: str, no_reboot: bool) -> str:
        response = self.ec2.create_image(
            InstanceId=instance_id,
            Name=name,
            Description=description,
            NoReboot=no_reboot
        )
        logger.info(f"✅ Image {response['ImageId']} requested from {instance_id}")
        return response['ImageId']

    def get_image_state(self, image_id: str) -> str:
        images = self.ec2.describe_images(ImageIds=[image_id]).get('Images', [])
        if not images:
            return 'failed'
        return images[0].get('State', 'pending')

    def deregister_image(self, image_id: str) -> None:
        self.ec2.deregister_image(ImageId=image_id)
        logger.info(f"Deregistered image {image_id}")
