"""
Deployment services.

Stateless-per-job helpers the DeployJob composes: bundle assembly and upload,
runner manifests for instance bootstrap, and the compute fleet lifecycle.

Exports:
    BundleBuilder, BundleArtifact, BundleLocation
    RunnerManifestService, RunnerManifest
    FleetProvisioner, LaunchResult, TerminationResult
"""

from .bundle_builder import BundleArtifact, BundleBuilder, BundleLocation
from .fleet_provisioner import FleetProvisioner, LaunchResult, TerminationResult
from .runner_manifest import RunnerManifest, RunnerManifestService

__all__ = [
    'BundleBuilder',
    'BundleArtifact',
    'BundleLocation',
    'RunnerManifestService',
    'RunnerManifest',
    'FleetProvisioner',
    'LaunchResult',
    'TerminationResult',
]
