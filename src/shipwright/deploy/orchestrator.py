"""Deployment orchestrator for shipwright.

Composes the collaborators, the manifest renderer, the readiness poller and
the stage executor into one linear pipeline:

    Build → Containerize → Publish → RenderManifests → ApplyDependencies
    → AwaitDependencyReadiness → ApplyApplication → AwaitApplicationReadiness
    → Report (only when a reporter is configured, best-effort)

Each stage's postcondition is the next stage's precondition; the first
failure halts the run and names the stage.

Key Concepts:
    DeploymentOrchestrator: Config + collaborators → ``PipelineRun``.
        Validates the configuration in the constructor, so an invalid
        config raises ``ConfigurationError`` before any run exists.
    Dependency readiness: at least one pod of each data tier observed in
        phase ``Running``. Tiers are awaited in configuration order.
    Application readiness: the control plane's own rollout convergence.
    Image tags: manifests pin the immutable per-run tag (the build id).
        The alias tag is pushed afterwards and its failure does not fail
        the Publish stage.

Architecture Decisions:
    - Data tier first: the application's health endpoint cannot pass
      against a missing database, so the ordering is enforced up front
      rather than diagnosed afterwards.
    - "Running" does not mean the database finished initialising. The
      application's readiness probe absorbs the remaining gap.
    - Artifact, image and manifests produced by earlier stages are held on
      the orchestrator for the duration of ``run()``; stages read them and
      nothing else shares them.

Related Modules:
    - :mod:`shipwright.deploy.stages` — Halt-on-failure execution
    - :mod:`shipwright.deploy.readiness` — Bounded polling, cancellation
    - :mod:`shipwright.deploy.manifests` — ManifestSet tiers
    - :mod:`shipwright.deploy.report` — Optional Report stage

Tags:
    orchestrator, pipeline, state-machine, deployment, kubernetes, shipwright
"""

from __future__ import annotations

import time
from enum import Enum
from typing import TYPE_CHECKING, Callable

from shipwright.core.errors import ShipwrightError
from shipwright.core.logging import LogContext, get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.config import PipelineConfig, validate_pipeline_config
from shipwright.deploy.manifests import ManifestSet, render_manifest_set
from shipwright.deploy.models import (
    ArtifactRef,
    ImageRef,
    PipelineOutcome,
    PipelineRun,
    RolloutStatus,
    StageStatus,
)
from shipwright.deploy.protocols import (
    BuildCollaborator,
    ContainerCollaborator,
    ControlPlaneCollaborator,
)
from shipwright.deploy.readiness import CancellationToken, ReadinessCheck, ReadinessPoller
from shipwright.deploy.stages import Stage, StageExecutor

if TYPE_CHECKING:
    from shipwright.deploy.report import RunReporter

logger = get_logger(__name__)

RUNNING_PHASE = "Running"


class StageName(str, Enum):
    """Pipeline states, in execution order."""

    BUILD = "Build"
    CONTAINERIZE = "Containerize"
    PUBLISH = "Publish"
    RENDER_MANIFESTS = "RenderManifests"
    APPLY_DEPENDENCIES = "ApplyDependencies"
    AWAIT_DEPENDENCY_READINESS = "AwaitDependencyReadiness"
    APPLY_APPLICATION = "ApplyApplication"
    AWAIT_APPLICATION_READINESS = "AwaitApplicationReadiness"
    REPORT = "Report"


PIPELINE_STAGES: tuple[StageName, ...] = tuple(s for s in StageName if s != StageName.REPORT)


def dependency_phase(pods: list) -> str:
    """Collapse a pod list into one observed phase for readiness comparison."""
    if not pods:
        return "NoPods"
    if any(pod.phase == RUNNING_PHASE for pod in pods):
        return RUNNING_PHASE
    return ",".join(sorted({pod.phase for pod in pods}))


class DeploymentOrchestrator:
    """Runs the deployment state machine for one configuration.

    Parameters
    ----------
    config
        Pipeline configuration. Validated here.
    builder
        Build collaborator.
    containers
        Image build/tag/push collaborator.
    control_plane
        Manifest apply and status collaborator.
    reporter
        Optional. Adds a best-effort ``Report`` stage.
    cancel_token
        Operator cancel, observed between stages and between poll attempts.
    sleep, clock
        Injectable time sources for tests.

    Raises
    ------
    ConfigurationError
        If ``config`` fails ``validate_pipeline_config``.

    Example::

        orchestrator = DeploymentOrchestrator(
            PipelineConfig.from_env(),
            builder=CommandBuilder(),
            containers=DockerImagePublisher(),
            control_plane=KubectlControlPlane(),
        )
        run = orchestrator.run()
        print(run.outcome)
    """

    def __init__(
        self,
        config: PipelineConfig,
        builder: BuildCollaborator,
        containers: ContainerCollaborator,
        control_plane: ControlPlaneCollaborator,
        reporter: RunReporter | None = None,
        cancel_token: CancellationToken | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        validate_pipeline_config(config)
        self.config = config
        self.builder = builder
        self.containers = containers
        self.control_plane = control_plane
        self.reporter = reporter
        self.cancel_token = cancel_token or CancellationToken()
        self._poller = ReadinessPoller(sleep=sleep, cancel_token=self.cancel_token)
        self._executor = StageExecutor(cancel_token=self.cancel_token, clock=clock)

        self._run: PipelineRun | None = None
        self._artifact: ArtifactRef | None = None
        self._image: ImageRef | None = None
        self._manifests: ManifestSet | None = None

    @property
    def manifests(self) -> ManifestSet | None:
        """Manifests rendered by the last run (None before RenderManifests)."""
        return self._manifests

    def stages(self) -> list[Stage]:
        """The stage list for one run, in order."""
        stages = [
            Stage(StageName.BUILD.value, self._build),
            Stage(StageName.CONTAINERIZE.value, self._containerize),
            Stage(StageName.PUBLISH.value, self._publish),
            Stage(StageName.RENDER_MANIFESTS.value, self._render_manifests),
            Stage(StageName.APPLY_DEPENDENCIES.value, self._apply_dependencies),
            Stage(StageName.AWAIT_DEPENDENCY_READINESS.value, self._await_dependencies),
            Stage(StageName.APPLY_APPLICATION.value, self._apply_application),
            Stage(StageName.AWAIT_APPLICATION_READINESS.value, self._await_application),
        ]
        if self.reporter is not None:
            stages.append(Stage(StageName.REPORT.value, self._report, best_effort=True))
        return stages

    def run(self) -> PipelineRun:
        """Execute the pipeline and return the finalized run."""
        cfg = self.config
        self._artifact = None
        self._image = None
        self._manifests = None
        self._run = PipelineRun(
            run_id=cfg.run_id,
            build_id=cfg.build_id,
            metadata={"namespace": cfg.namespace, "repository": cfg.image_repository},
        )

        with LogContext(run_id=cfg.run_id, build_id=cfg.build_id):
            logger.info(
                "pipeline.started",
                repository=cfg.image_repository,
                namespace=cfg.namespace,
                data_tiers=[tier.name for tier in cfg.data_tiers],
            )
            run = self._executor.run(self.stages(), self._run)
            self._write_final_report(run)
        return run

    # ------------------------------------------------------------------
    # Stage actions
    # ------------------------------------------------------------------

    def _build(self) -> Result[str]:
        match self.builder.build():
            case Ok(artifact):
                self._artifact = artifact
                output = f"artifact {artifact.path}"
                if artifact.test_report:
                    output += f" (test reports: {artifact.test_report})"
                return Ok(output)
            case Err(error):
                return Err(error)

    def _containerize(self) -> Result[str]:
        image = ImageRef(repository=self.config.image_repository, tag=self.config.build_id)
        self._image = self.containers.build_image(self._artifact, image)
        return Ok(f"built {self._image.reference}")

    def _publish(self) -> Result[str]:
        image = self._image
        pushed = self.containers.push(image)
        if pushed.is_err():
            return Err(pushed.error)
        self._run.image = image
        output = f"pushed {image.reference}"

        alias = self.config.alias_tag
        if alias:
            alias_result = self.containers.tag(image, alias).flat_map(self.containers.push)
            if alias_result.is_err():
                # manifests pin the immutable tag; a stale alias is cosmetic
                logger.warning(
                    "image.alias_failed",
                    alias=image.with_tag(alias).reference,
                    error=str(alias_result.error),
                )
                output += f"; alias {alias} not updated: {alias_result.error}"
            else:
                output += f"; alias {image.with_tag(alias).reference}"
        return Ok(output)

    def _render_manifests(self) -> Result[str]:
        self._manifests = render_manifest_set(self.config, self._image)
        return Ok(f"rendered {len(self._manifests)} documents: {', '.join(self._manifests.refs)}")

    def _apply_tier(self, manifests: ManifestSet) -> Result[str]:
        if not len(manifests):
            return Ok("nothing to apply")
        for manifest in manifests:
            result = self.control_plane.apply(manifest.text)
            if result.is_err():
                error = result.error
                if isinstance(error, ShipwrightError):
                    error.with_context(resource=manifest.ref)
                return Err(error)
            logger.info("manifest.applied", resource=manifest.ref)
        return Ok(f"applied {', '.join(manifests.refs)}")

    def _apply_dependencies(self) -> Result[str]:
        return self._apply_tier(self._manifests.dependency_tier())

    def _apply_application(self) -> Result[str]:
        return self._apply_tier(self._manifests.application_tier())

    def _await_dependencies(self) -> Result[str]:
        observed: list[str] = []
        for tier in self.config.data_tiers:
            selector = tier.selector
            check = ReadinessCheck.from_budget(selector, RUNNING_PHASE, self.config.dependency_readiness)
            result = self._poller.wait_until_ready(
                check, lambda selector=selector: dependency_phase(self.control_plane.list_pods(selector))
            )
            if result.is_err():
                return Err(result.error)
            observed.append(f"{tier.name} {result.value}")
        return Ok("; ".join(observed) if observed else "no dependency tier")

    def _await_application(self) -> Result[str]:
        name = self.config.application.name
        check = ReadinessCheck.from_budget(
            f"deployment/{name}", RolloutStatus.CONVERGED, self.config.application_readiness
        )
        result = self._poller.wait_until_ready(check, lambda: self.control_plane.get_rollout_status(name))
        if result.is_err():
            return Err(result.error)
        return Ok(f"deployment/{name} {RolloutStatus.CONVERGED.value}")

    def _report(self) -> Result[str]:
        # reached only when every pipeline stage succeeded
        path = self.reporter.write(self._run, outcome=PipelineOutcome.succeeded(), manifests=self._manifests)
        return Ok(f"report written to {path}")

    def _write_final_report(self, run: PipelineRun) -> None:
        """Failed and aborted runs skip the Report stage; still leave a summary behind."""
        if self.reporter is None:
            return
        report_stage = run.stage(StageName.REPORT.value)
        if report_stage is not None and report_stage.status != StageStatus.SKIPPED:
            return
        try:
            self.reporter.write(run, manifests=self._manifests)
        except OSError as exc:
            logger.warning("report.write_failed", error=str(exc))
