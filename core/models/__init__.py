"""
Core Data Models Package.

Pure data structures. Job behavior lives in ``jobs/``.

Exports:
    Status, DeployStatus: Mutable job-owned progress records
    StatusSnapshot, DeployStatusSnapshot: Frozen copies for pollers
    JobOwner: Job owner identity
    DeploymentDescriptor, FleetSpec, FeedReference: Deployment inputs
    InstanceRecord, LaunchRequest: Compute instance record and launch input
    DeploySummary: Audit record of one deployment
    JobType, DeploymentState, MonitorState, InstanceLifecycle, ServerRole,
    FleetMode, ImageRecreationFailurePolicy: Enums
"""

from .enums import (
    JobType,
    DeploymentState,
    MonitorState,
    InstanceLifecycle,
    ServerRole,
    FleetMode,
    ImageRecreationFailurePolicy,
)
from .status import (
    Status,
    DeployStatus,
    StatusSnapshot,
    DeployStatusSnapshot,
)
from .owner import JobOwner
from .deployment import (
    DeploymentDescriptor,
    FleetSpec,
    FeedReference,
    clean_name,
)
from .instance import InstanceRecord, LaunchRequest
from .summary import DeploySummary

__all__ = [
    'JobType',
    'DeploymentState',
    'MonitorState',
    'InstanceLifecycle',
    'ServerRole',
    'FleetMode',
    'ImageRecreationFailurePolicy',
    'Status',
    'DeployStatus',
    'StatusSnapshot',
    'DeployStatusSnapshot',
    'JobOwner',
    'DeploymentDescriptor',
    'FleetSpec',
    'FeedReference',
    'clean_name',
    'InstanceRecord',
    'LaunchRequest',
    'DeploySummary',
]
