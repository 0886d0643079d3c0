"""
shipwright — deployment pipeline orchestration.

Builds an application artifact, packages and publishes it as a container
image, renders Kubernetes manifests for the application and its data tier,
applies them in dependency order and waits for each tier to become ready.

Packages:
    shipwright.core    errors, Result envelope, structured logging
    shipwright.deploy  configuration, renderer, poller, stage executor,
                       collaborators and the orchestrator
    shipwright.cli     ``shipwright`` command line
"""

__version__ = "0.1.0"

from shipwright.deploy.config import PipelineConfig
from shipwright.deploy.models import OutcomeKind, PipelineOutcome, PipelineRun, StageStatus
from shipwright.deploy.orchestrator import DeploymentOrchestrator

__all__ = [
    "__version__",
    "DeploymentOrchestrator",
    "OutcomeKind",
    "PipelineConfig",
    "PipelineOutcome",
    "PipelineRun",
    "StageStatus",
]
