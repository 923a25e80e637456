"""
Pure Enumeration Types for Core Framework.

Defines job types, deployment states and instance lifecycle values.
No business logic - pure type definitions only.

Exports:
    JobType: Job type tag
    DeploymentState: Fleet replacement state machine
    MonitorState: Server health monitor state machine
    InstanceLifecycle: Compute instance state as reported by the provider
    ServerRole: Role tag on launched instances
    FleetMode: Replace the previous fleet or add to it
    ImageRecreationFailurePolicy: What an image recreation failure does to the deployment
"""

from enum import Enum


class JobType(str, Enum):
    """
    Type tag carried by every job and shown to pollers.
    """

    UNKNOWN_TYPE = "unknown_type"
    SYSTEM_JOB = "system_job"
    DEPLOY_TO_OTP = "deploy_to_otp"
    MONITOR_SERVER_STATUS = "monitor_server_status"
    RECREATE_BUILD_IMAGE = "recreate_build_image"


class DeploymentState(str, Enum):
    """
    Fleet replacement states.

    State transitions:
    - VALIDATING -> BUILDING_BUNDLE -> BUILDING_GRAPH -> STARTING_SERVERS
      -> SWAPPING_FLEET -> TERMINATING_OLD -> DONE (normal flow)
    - RECREATING_IMAGE runs beside STARTING_SERVERS when requested
    - Any state -> ERROR
    """

    PENDING = "pending"
    VALIDATING = "validating"
    BUILDING_BUNDLE = "building_bundle"
    BUILDING_GRAPH = "building_graph"
    RECREATING_IMAGE = "recreating_image"
    STARTING_SERVERS = "starting_servers"
    SWAPPING_FLEET = "swapping_fleet"
    TERMINATING_OLD = "terminating_old"
    DONE = "done"
    ERROR = "error"


class MonitorState(str, Enum):
    """
    Health monitor states.

    State transitions:
    - PENDING -> READY
    - PENDING -> FAILED
    - PENDING -> TIMED_OUT
    """

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class InstanceLifecycle(str, Enum):
    """EC2 instance state names."""

    PENDING = "pending"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ServerRole(str, Enum):
    """Value of the ``role`` tag on launched instances."""

    BUILDER = "graph-builder"
    SERVER = "server"


class FleetMode(str, Enum):
    """
    REPLACE deregisters and terminates the previous fleet after the new one
    is registered. ADD leaves it running.
    """

    REPLACE = "replace"
    ADD = "add"


class ImageRecreationFailurePolicy(str, Enum):
    """
    WARN appends a warning to a deployment that otherwise succeeded.
    FAIL marks the deployment errored.
    """

    WARN = "warn"
    FAIL = "fail"
