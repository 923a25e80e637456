# ============================================================================
# CORE MODELS - DEPLOYMENT DESCRIPTOR
# ============================================================================
# STATUS: Core data models - immutable input to one deployment run
# PURPOSE: What to deploy (feeds, configs, OTP version) and where (cloud fleet)
# CREATED: 19 OCT 2026
# EXPORTS: DeploymentDescriptor, FleetSpec, FeedReference
# DEPENDENCIES: pydantic
# ============================================================================

"""
Deployment Descriptor Models

A DeploymentDescriptor is supplied when a DeployJob is constructed and never
changes for the life of that run. Two delivery modes are described:

    Fleet mode (``fleet`` is set):
        Bundle is uploaded to object storage, a graph-build instance is
        launched, run servers are started and swapped into the target group.

    Wire mode (``fleet`` is None, ``internal_urls`` non-empty):
        Bundle is POSTed straight to each routing server's router endpoint.

Field-level checks happen at construction. Cross-field consistency is
reported by ``consistency_problems()`` so the orchestrator can fail the job
during VALIDATING with every problem listed, rather than at construction.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models.enums import FleetMode


_CLEAN_NAME_PATTERN = re.compile(r'[^A-Za-z0-9_-]+')


def clean_name(name: str) -> str:
    """
    Filesystem/object-key safe version of a display name.

    Example:
        >>> clean_name("Metro Transit (North)")
        'Metro_Transit_North'
    """
    cleaned = _CLEAN_NAME_PATTERN.sub('_', name.strip()).strip('_')
    return cleaned or 'unnamed'


class FeedReference(BaseModel):
    """One GTFS feed file going into the bundle."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Feed display name; becomes <clean name>.zip in the bundle")
    path: str = Field(..., min_length=1, description="Local path of the feed zip")


class FleetSpec(BaseModel):
    """
    Cloud compute settings for fleet mode.

    Build and run image/type may differ; when they do the graph builder is
    discarded after the build instead of being kept on as a run server.
    """
    model_config = ConfigDict(frozen=True)

    build_image_id: Optional[str] = Field(default=None, description="AMI used for graph building (defaults to run image)")
    run_image_id: str = Field(..., description="AMI used for run servers")
    build_instance_type: Optional[str] = Field(default=None, description="Instance type for graph building (defaults to run type)")
    run_instance_type: str = Field(..., description="Instance type for run servers")
    instance_count: int = Field(default=1, ge=0, le=100, description="Total run servers wanted")
    subnet_id: Optional[str] = Field(default=None)
    security_group_id: Optional[str] = Field(default=None)
    target_group_arn: Optional[str] = Field(default=None, description="ELBv2 target group the fleet is registered with")
    key_name: Optional[str] = Field(default=None, description="EC2 key pair name")
    iam_instance_profile_arn: Optional[str] = Field(default=None)
    recreate_build_image: bool = Field(
        default=False,
        description="Snapshot the graph builder into a new build AMI so later runs can skip graph building"
    )

    @property
    def resolved_build_image_id(self) -> str:
        return self.build_image_id or self.run_image_id

    @property
    def resolved_build_instance_type(self) -> str:
        return self.build_instance_type or self.run_instance_type

    def has_separate_graph_build_config(self) -> bool:
        """True when the builder cannot double as a run server."""
        return (
            self.resolved_build_image_id != self.run_image_id
            or self.resolved_build_instance_type != self.run_instance_type
        )


class DeploymentDescriptor(BaseModel):
    """
    Immutable description of one deployment run.
    """
    model_config = ConfigDict(frozen=True)

    # Identity
    deployment_id: str = Field(..., min_length=1)
    deployment_name: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    project_name: str = Field(..., min_length=1)
    server_id: str = Field(..., min_length=1, description="Logical routing server this fleet serves")
    router_id: str = Field(default="default", min_length=1)

    # Cloud target
    role_arn: Optional[str] = Field(default=None, description="Cross-account role assumed for EC2/ELB calls")
    region: Optional[str] = Field(default=None)
    bucket: Optional[str] = Field(default=None, description="Object storage container for bundles and graphs")
    public_url: Optional[str] = Field(default=None, description="Base URL reported once the deployment succeeds")
    internal_urls: List[str] = Field(default_factory=list, description="Wire-delivery targets")
    fleet: Optional[FleetSpec] = Field(default=None)

    # Flags
    build_only: bool = Field(default=False, description="Build the graph, terminate the builder, stop")
    use_prebuilt_graph: bool = Field(default=False, description="Skip graph building; run image already has a graph")
    fleet_mode: FleetMode = Field(default=FleetMode.REPLACE)
    preloaded_bundle_path: Optional[str] = Field(
        default=None,
        description="Object key of an already-uploaded bundle; skips BUILDING_BUNDLE"
    )

    # Bundle inputs
    feeds: List[FeedReference] = Field(default_factory=list)
    osm_extract_path: Optional[str] = Field(default=None)
    osm_extract_url: Optional[str] = Field(default=None, description="Instances download OSM themselves when set")
    skip_osm_extract: bool = Field(default=False)
    build_config: Dict[str, Any] = Field(default_factory=dict)
    router_config: Dict[str, Any] = Field(default_factory=dict)
    otp_version: Optional[str] = Field(default=None, description="Jar name without .jar; config default when unset")

    @field_validator('internal_urls')
    @classmethod
    def strip_trailing_slashes(cls, v: List[str]) -> List[str]:
        return [url.rstrip('/') for url in v]

    @property
    def clean_project_name(self) -> str:
        return clean_name(self.project_name)

    @property
    def uses_fleet(self) -> bool:
        return self.fleet is not None

    @property
    def includes_osm_in_bundle(self) -> bool:
        return not (self.skip_osm_extract or self.osm_extract_url)

    @property
    def needs_bundle_build(self) -> bool:
        if self.fleet is None:
            return True
        return not self.use_prebuilt_graph and not self.preloaded_bundle_path

    def consistency_problems(self) -> List[str]:
        """
        Cross-field problems that make this descriptor undeployable.

        Returns:
            Human-readable problems; empty when consistent
        """
        problems: List[str] = []

        if self.fleet is None and not self.internal_urls:
            problems.append("Deployment has neither a cloud fleet nor internal server URLs")

        if self.fleet is not None:
            if not self.bucket:
                problems.append("Fleet deployment requires an object storage bucket")
            if self.build_only and self.use_prebuilt_graph:
                problems.append("build_only and use_prebuilt_graph are mutually exclusive")
            if not self.build_only and self.fleet.instance_count > 0 and not self.fleet.target_group_arn:
                problems.append("Run servers requested but no target group configured")
            if self.fleet.recreate_build_image and self.use_prebuilt_graph:
                problems.append("Cannot recreate the build image without building a graph")

        if self.fleet is None and (self.use_prebuilt_graph or self.preloaded_bundle_path):
            problems.append("Wire delivery always builds a fresh bundle")

        if self.needs_bundle_build:
            if not self.feeds:
                problems.append("No feeds supplied for the bundle")
            if self.includes_osm_in_bundle and not self.osm_extract_path:
                problems.append("OSM extract path missing (set skip_osm_extract or osm_extract_url)")

        return problems
