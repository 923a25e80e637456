# ============================================================================
# REPOSITORY FACTORY
# ============================================================================
# STATUS: Infrastructure - Central factory for all repository instances
# PURPOSE: Single creation point for storage, compute, load balancer and HTTP adapters
# CREATED: 19 OCT 2026
# EXPORTS: RepositoryFactory (static factory methods)
# DEPENDENCIES: infrastructure/*, config
# ENTRY_POINTS: RepositoryFactory.create_*()
# ============================================================================

"""
Repository Factory - Central Creation Point

Jobs never construct adapters directly. DeployJob asks this factory for
whatever it was not handed explicitly, which is how tests substitute fakes:
pass the fake to the job and the factory is never consulted.

AWS clients are built through one shared AwsClientFactory so assumed-role
sessions are reused across the compute and load balancer repositories of a
deployment.
"""

from typing import Optional

from config import get_config
from util_logger import LoggerFactory, ComponentType

from .aws_clients import AwsClientFactory
from .blob import BlobRepository
from .deployment_repository import InMemoryDeploymentRepository
from .ec2 import Ec2Repository
from .elb import ElbRepository
from .http_clients import HttpGraphTransferClient, HttpServerStatusClient, HttpUrlChecker
from .interface_repository import (
    IComputeRepository,
    IDeploymentRepository,
    IGraphTransferClient,
    ILoadBalancerRepository,
    IObjectStorage,
    IServerStatusClient,
    IUrlChecker,
)

logger = LoggerFactory.create_logger(ComponentType.FACTORY, "RepositoryFactory")


class RepositoryFactory:
    """
    Factory for creating repository instances.

    Design Philosophy:
    - Single factory for all repository types
    - Callers depend on the interfaces, never on the concrete adapters
    """

    _aws: Optional[AwsClientFactory] = None

    @classmethod
    def aws(cls) -> AwsClientFactory:
        if cls._aws is None:
            cls._aws = AwsClientFactory()
        return cls._aws

    @staticmethod
    def create_object_storage() -> IObjectStorage:
        """Azure Blob Storage singleton."""
        logger.debug("📦 Creating BlobRepository...")
        return BlobRepository.instance()

    @classmethod
    def create_compute_repository(
        cls,
        role_arn: Optional[str] = None,
        region: Optional[str] = None
    ) -> IComputeRepository:
        logger.debug(f"📦 Creating Ec2Repository (role={role_arn}, region={region})")
        aws = cls.aws()
        return Ec2Repository(
            aws.client('ec2', role_arn=role_arn, region=region),
            sts_client=aws.client('sts', role_arn=role_arn, region=region)
        )

    @classmethod
    def create_load_balancer_repository(
        cls,
        role_arn: Optional[str] = None,
        region: Optional[str] = None
    ) -> ILoadBalancerRepository:
        logger.debug(f"📦 Creating ElbRepository (role={role_arn}, region={region})")
        return ElbRepository(cls.aws().client('elbv2', role_arn=role_arn, region=region))

    @staticmethod
    def create_status_client() -> IServerStatusClient:
        return HttpServerStatusClient(timeout=get_config().deployment.status_request_timeout_seconds)

    @staticmethod
    def create_transfer_client() -> IGraphTransferClient:
        return HttpGraphTransferClient(timeout=get_config().deployment.wire_transfer_timeout_seconds)

    @staticmethod
    def create_url_checker() -> IUrlChecker:
        return HttpUrlChecker()

    @staticmethod
    def create_deployment_repository() -> IDeploymentRepository:
        return InMemoryDeploymentRepository.instance()
