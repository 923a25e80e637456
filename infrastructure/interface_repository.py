"""
Repository Abstract Base Classes - Single Point of Truth.

Every cloud or persistence collaborator of the deployer is defined here and
nowhere else. Jobs and services depend on these interfaces only; concrete
adapters (Azure Blob, EC2, ELBv2, httpx) and test fakes implement them.

Philosophy: "Define once, enforce everywhere"

Exports:
    IObjectStorage: Bundle/manifest/graph storage
    IComputeRepository: Compute instances and machine images
    ILoadBalancerRepository: Target group membership
    IServerStatusClient: Instance-side status file reader
    IGraphTransferClient: Wire delivery of bundles
    IUrlChecker: Artifact reachability probe
    IDeploymentRepository: Deployment history and server records
    ProgressCallback: Upload progress signature
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from core.models import (
    DeploySummary,
    InstanceLifecycle,
    InstanceRecord,
    LaunchRequest,
)


# (bytes_sent, total_bytes)
ProgressCallback = Callable[[int, Optional[int]], None]


# ============================================================================
# OBJECT STORAGE
# ============================================================================

class IObjectStorage(ABC):
    """
    Object storage interface. ``container`` is the deployment's bucket.
    """

    @abstractmethod
    def upload_file(
        self,
        container: str,
        key: str,
        path: str,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        """Upload a local file, overwriting any object at ``key``."""
        pass

    @abstractmethod
    def upload_text(
        self,
        container: str,
        key: str,
        text: str,
        content_type: str = "application/json"
    ) -> Dict[str, Any]:
        """Upload a small text object."""
        pass

    @abstractmethod
    def copy_object(self, container: str, source_key: str, dest_key: str) -> Dict[str, Any]:
        """Server-side copy within one container."""
        pass

    @abstractmethod
    def exists(self, container: str, key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, container: str, key: str) -> bool:
        pass

    @abstractmethod
    def check_write_access(self, container: str) -> bool:
        """Write and delete a probe object. False when either is refused."""
        pass

    @abstractmethod
    def get_read_url(self, container: str, key: str) -> str:
        """Signed GET URL handed to instances."""
        pass

    @abstractmethod
    def get_write_url(self, container: str, key: str) -> str:
        """Signed PUT URL handed to graph builders for the graph upload."""
        pass


# ============================================================================
# COMPUTE
# ============================================================================

class IComputeRepository(ABC):
    """
    Compute provider interface (instances and machine images).
    """

    @abstractmethod
    def verify_credentials(self) -> str:
        """Return the caller identity; raise ValidationError when credentials are unusable."""
        pass

    @abstractmethod
    def image_exists(self, image_id: str) -> bool:
        pass

    @abstractmethod
    def valid_instance_types(self) -> Set[str]:
        """The provider's instance type enumeration."""
        pass

    @abstractmethod
    def subnet_exists(self, subnet_id: str) -> bool:
        pass

    @abstractmethod
    def security_group_exists(self, security_group_id: str) -> bool:
        pass

    @abstractmethod
    def run_instances(self, request: LaunchRequest) -> List[InstanceRecord]:
        """Start ``request.count`` instances. Returns immediately after the provider accepts."""
        pass

    @abstractmethod
    def wait_until_status_ok(self, instance_ids: List[str]) -> None:
        """Block on the provider's status-check waiter."""
        pass

    @abstractmethod
    def tag_instances(self, instance_ids: List[str], tags: Dict[str, str]) -> None:
        pass

    @abstractmethod
    def describe_instances(self, instance_ids: List[str]) -> List[InstanceRecord]:
        pass

    @abstractmethod
    def find_instances(
        self,
        tags: Dict[str, str],
        states: Optional[List[InstanceLifecycle]] = None
    ) -> List[InstanceRecord]:
        """Instances carrying every tag in ``tags`` and, optionally, in one of ``states``."""
        pass

    @abstractmethod
    def terminate_instances(self, instance_ids: List[str]) -> Dict[str, int]:
        """Terminate and return the provider's state code per instance id."""
        pass

    @abstractmethod
    def create_image(self, instance_id: str, name: str, description: str, no_reboot: bool) -> str:
        """Snapshot an instance into a machine image; returns the new image id."""
        pass

    @abstractmethod
    def get_image_state(self, image_id: str) -> str:
        """'pending' | 'available' | 'failed' | ..."""
        pass

    @abstractmethod
    def deregister_image(self, image_id: str) -> None:
        pass


# ============================================================================
# LOAD BALANCER
# ============================================================================

class ILoadBalancerRepository(ABC):
    """Target group membership."""

    @abstractmethod
    def register_targets(self, target_group_arn: str, instance_ids: List[str]) -> None:
        pass

    @abstractmethod
    def deregister_targets(self, target_group_arn: str, instance_ids: List[str]) -> None:
        pass

    @abstractmethod
    def describe_target_ids(self, target_group_arn: str) -> List[str]:
        pass


# ============================================================================
# INSTANCE STATUS / WIRE TRANSFER
# ============================================================================

class IServerStatusClient(ABC):
    """Reads the status file an instance serves over HTTP."""

    @abstractmethod
    def fetch_status(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Parsed status JSON, or None when the instance is not answering yet
        (connection refused, 404, malformed body).
        """
        pass


class IGraphTransferClient(ABC):
    """POSTs a bundle straight to a routing server."""

    @abstractmethod
    def post_bundle(self, url: str, bundle_path: str) -> Tuple[int, str]:
        """Returns (HTTP status code, response body)."""
        pass


class IUrlChecker(ABC):
    """Reachability probe for downloadable artifacts (the runner jar)."""

    @abstractmethod
    def is_available(self, url: str) -> bool:
        pass


# ============================================================================
# DEPLOYMENT HISTORY
# ============================================================================

class IDeploymentRepository(ABC):
    """
    Persistence for deployment outcomes. The document store that owns
    deployments is external; this is the slice the deployer writes to.
    """

    @abstractmethod
    def append_summary(self, deployment_id: str, summary: DeploySummary) -> None:
        pass

    @abstractmethod
    def get_history(self, deployment_id: str) -> List[DeploySummary]:
        pass

    @abstractmethod
    def record_deployed_to(self, deployment_id: str, server_id: str) -> None:
        pass

    @abstractmethod
    def get_deployed_to(self, deployment_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def update_build_image(self, server_id: str, image_id: str) -> Optional[str]:
        """Store a recreated build image; returns the image it replaced, if any."""
        pass
