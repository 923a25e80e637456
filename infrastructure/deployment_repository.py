"""
In-memory deployment history.

The document store that owns deployments and servers lives outside this
package. This repository keeps the slice the deployer writes (summaries,
``deployed_to``, recreated build images) in process memory, guarded by a
lock because health-monitor threads may read while the orchestrator writes.

Exports:
    InMemoryDeploymentRepository
"""

import threading
from typing import Dict, List, Optional

from core.models import DeploySummary
from infrastructure.interface_repository import IDeploymentRepository
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "DeploymentRepository")


class InMemoryDeploymentRepository(IDeploymentRepository):
    """Process-local IDeploymentRepository."""

    _instance: Optional['InMemoryDeploymentRepository'] = None

    def __init__(self):
        self._lock = threading.Lock()
        self._history: Dict[str, List[DeploySummary]] = {}
        self._deployed_to: Dict[str, str] = {}
        self._build_images: Dict[str, str] = {}

    @classmethod
    def instance(cls) -> 'InMemoryDeploymentRepository':
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def append_summary(self, deployment_id: str, summary: DeploySummary) -> None:
        with self._lock:
            self._history.setdefault(deployment_id, []).append(summary)
        logger.info(
            f"Recorded deployment summary for {deployment_id} "
            f"(job {summary.job_id[:8]}, error={summary.status.error})"
        )

    def get_history(self, deployment_id: str) -> List[DeploySummary]:
        with self._lock:
            return list(self._history.get(deployment_id, []))

    def record_deployed_to(self, deployment_id: str, server_id: str) -> None:
        with self._lock:
            self._deployed_to[deployment_id] = server_id

    def get_deployed_to(self, deployment_id: str) -> Optional[str]:
        with self._lock:
            return self._deployed_to.get(deployment_id)

    def update_build_image(self, server_id: str, image_id: str) -> Optional[str]:
        with self._lock:
            previous = self._build_images.get(server_id)
            self._build_images[server_id] = image_id
        logger.info(f"Build image for server {server_id}: {previous} → {image_id}")
        return previous

    def get_build_image(self, server_id: str) -> Optional[str]:
        with self._lock:
            return self._build_images.get(server_id)
