"""
ELBv2 Repository - Target Group Membership.

Exports:
    ElbRepository: ILoadBalancerRepository over the boto3 elbv2 client
"""

from typing import List

from infrastructure.interface_repository import ILoadBalancerRepository
from util_logger import LoggerFactory, ComponentType, log_exceptions

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "ElbRepository")


class ElbRepository(ILoadBalancerRepository):
    """Registers/deregisters EC2 instances with an application load balancer target group."""

    def __init__(self, elbv2_client):
        self.elbv2 = elbv2_client

    @log_exceptions(logger=logger)
    def register_targets(self, target_group_arn: str, instance_ids: List[str]) -> None:
        if not instance_ids:
            return
        self.elbv2.register_targets(
            TargetGroupArn=target_group_arn,
            Targets=[{'Id': instance_id} for instance_id in instance_ids]
        )
        logger.info(f"✅ Registered {instance_ids} with {target_group_arn}")

    @log_exceptions(logger=logger)
    def deregister_targets(self, target_group_arn: str, instance_ids: List[str]) -> None:
        if not instance_ids:
            return
        self.elbv2.deregister_targets(
            TargetGroupArn=target_group_arn,
            Targets=[{'Id': instance_id} for instance_id in instance_ids]
        )
        logger.info(f"Deregistered {instance_ids} from {target_group_arn}")

    @log_exceptions(logger=logger)
    def describe_target_ids(self, target_group_arn: str) -> List[str]:
        response = self.elbv2.describe_target_health(TargetGroupArn=target_group_arn)
        return [d['Target']['Id'] for d in response.get('TargetHealthDescriptions', [])]
