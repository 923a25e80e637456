"""
Infrastructure Package - Lazy Loading Implementation.

Concrete adapters pull in azure-storage-blob, boto3 and httpx and read
configuration when first constructed. Nothing is imported until a name is
accessed, so code (and tests) that only use the interfaces never load the
cloud SDKs.

Exports:
    RepositoryFactory
    BlobRepository, Ec2Repository, ElbRepository, AwsClientFactory
    HttpServerStatusClient, HttpGraphTransferClient, HttpUrlChecker
    InMemoryDeploymentRepository
    IObjectStorage, IComputeRepository, ILoadBalancerRepository,
    IServerStatusClient, IGraphTransferClient, IUrlChecker, IDeploymentRepository
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .factory import RepositoryFactory as _RepositoryFactory
    from .blob import BlobRepository as _BlobRepository
    from .ec2 import Ec2Repository as _Ec2Repository
    from .elb import ElbRepository as _ElbRepository


_LAZY_IMPORTS = {
    'RepositoryFactory': '.factory',
    'AwsClientFactory': '.aws_clients',
    'BlobRepository': '.blob',
    'Ec2Repository': '.ec2',
    'ElbRepository': '.elb',
    'HttpServerStatusClient': '.http_clients',
    'HttpGraphTransferClient': '.http_clients',
    'HttpUrlChecker': '.http_clients',
    'InMemoryDeploymentRepository': '.deployment_repository',
    'IObjectStorage': '.interface_repository',
    'IComputeRepository': '.interface_repository',
    'ILoadBalancerRepository': '.interface_repository',
    'IServerStatusClient': '.interface_repository',
    'IGraphTransferClient': '.interface_repository',
    'IUrlChecker': '.interface_repository',
    'IDeploymentRepository': '.interface_repository',
    'ProgressCallback': '.interface_repository',
}


def __getattr__(name: str):
    """
    Lazy import mechanism - only imports when actually accessed.
    """
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'infrastructure' has no attribute '{name}'")

    import importlib
    module = importlib.import_module(module_name, __name__)
    return getattr(module, name)


__all__ = list(_LAZY_IMPORTS)
