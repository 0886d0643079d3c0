"""shipwright.deploy — the deployment pipeline.

Key Concepts:
    PipelineConfig: Explicit configuration struct (pydantic), loaded from
        code, ``SHIPWRIGHT_*`` env vars or a YAML file.
    ManifestRenderer / ManifestSet: Typed document builders and the
        dependency-ordered set a run applies.
    ReadinessPoller: Bounded polling with cancellation.
    StageExecutor: Ordered stages, halt on first non-best-effort failure.
    DeploymentOrchestrator: Build → Containerize → Publish → RenderManifests
        → ApplyDependencies → AwaitDependencyReadiness → ApplyApplication
        → AwaitApplicationReadiness (→ Report).
    CommandBuilder, DockerImagePublisher, KubectlControlPlane: subprocess
        collaborators for the build tool, docker and kubectl.

Related Modules:
    - :mod:`shipwright.cli.deploy` — CLI commands (``shipwright deploy``)

Tags:
    deployment, kubernetes, docker, pipeline, shipwright
"""

from shipwright.deploy.backends import DATA_TIERS, MYSQL, POSTGRESQL, DataTierPreset, get_data_tier_preset
from shipwright.deploy.build import CommandBuilder
from shipwright.deploy.config import (
    ApplicationParams,
    BuildConfig,
    ContainerConfig,
    ControlPlaneConfig,
    DataTierParams,
    PipelineConfig,
    ReadinessBudget,
    ServiceParams,
    validate_pipeline_config,
)
from shipwright.deploy.container import DockerImagePublisher
from shipwright.deploy.control_plane import KubectlControlPlane
from shipwright.deploy.manifests import Manifest, ManifestRenderer, ManifestSet, TemplateKind, render_manifest_set
from shipwright.deploy.models import (
    ArtifactRef,
    ImageRef,
    OutcomeKind,
    PipelineOutcome,
    PipelineRun,
    PodStatus,
    RolloutStatus,
    StageResult,
    StageStatus,
)
from shipwright.deploy.orchestrator import PIPELINE_STAGES, DeploymentOrchestrator, StageName
from shipwright.deploy.readiness import CancellationToken, ReadinessCheck, ReadinessPoller
from shipwright.deploy.report import RunReporter
from shipwright.deploy.stages import Stage, StageExecutor

__all__ = [
    "ApplicationParams",
    "ArtifactRef",
    "BuildConfig",
    "CancellationToken",
    "CommandBuilder",
    "ContainerConfig",
    "ControlPlaneConfig",
    "DATA_TIERS",
    "DataTierParams",
    "DataTierPreset",
    "DeploymentOrchestrator",
    "DockerImagePublisher",
    "ImageRef",
    "KubectlControlPlane",
    "MYSQL",
    "Manifest",
    "ManifestRenderer",
    "ManifestSet",
    "OutcomeKind",
    "PIPELINE_STAGES",
    "POSTGRESQL",
    "PipelineConfig",
    "PipelineOutcome",
    "PipelineRun",
    "PodStatus",
    "ReadinessBudget",
    "ReadinessCheck",
    "ReadinessPoller",
    "RolloutStatus",
    "RunReporter",
    "ServiceParams",
    "Stage",
    "StageExecutor",
    "StageName",
    "StageResult",
    "StageStatus",
    "TemplateKind",
    "get_data_tier_preset",
    "render_manifest_set",
    "validate_pipeline_config",
]
