"""Value objects and the run aggregate for shipwright.

Pydantic v2 models for everything that flows between pipeline components:
the artifact produced by the build, the image reference published to the
registry, per-stage results, the terminal outcome, and the ``PipelineRun``
that owns them.

Key Concepts:
    ArtifactRef: Path of the built deployable plus an optional test report
        (archived, never parsed).
    ImageRef: ``repository`` + immutable per-run ``tag``. ``with_tag()``
        derives the mutable alias (``latest``) pointing at the same content.
    StageResult: Frozen record of one stage. Once appended to a run it is
        never changed.
    PipelineOutcome: ``Succeeded``, ``Failed(stage, reason)`` or ``Aborted``.
    PipelineRun: Ordered audit trail of StageResults + terminal outcome.
        ``finalize()`` may be called exactly once; afterwards every mutation
        raises ``RunFinalizedError``.

Architecture Decisions:
    - Frozen models for value objects: they are passed by copy between
      components and can be hashed/compared.
    - ``PipelineRun.stages`` is a tuple; ``record()`` replaces it instead of
      appending so no caller can mutate the audit trail in place.
    - ``finalize()`` follows the ``mark_complete()`` pattern: timestamps and
      duration are computed at finalization, not by the caller.

Related Modules:
    - :mod:`shipwright.deploy.stages` — Produces StageResults and finalizes runs
    - :mod:`shipwright.deploy.report` — Serialises finalized runs

Tags:
    models, pydantic, pipeline-run, audit-trail, shipwright
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from shipwright.core.errors import RunFinalizedError

# ---------------------------------------------------------------------------
# Collaborator value objects
# ---------------------------------------------------------------------------


class ArtifactRef(BaseModel):
    """A built deployable unit."""

    model_config = ConfigDict(frozen=True)

    path: str
    test_report: str | None = None


class ImageRef(BaseModel):
    """Container image reference ``repository:tag``."""

    model_config = ConfigDict(frozen=True)

    repository: str
    tag: str
    digest: str | None = None

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"

    def with_tag(self, tag: str) -> ImageRef:
        """Same content under another tag (digest is kept)."""
        return ImageRef(repository=self.repository, tag=tag, digest=self.digest)

    def __str__(self) -> str:
        return self.reference


class RolloutStatus(str, Enum):
    """Control-plane rollout status for a workload."""

    CONVERGED = "Converged"
    IN_PROGRESS = "InProgress"
    ERROR = "Error"


class PodStatus(BaseModel):
    """One pod as reported by ``list_pods``."""

    model_config = ConfigDict(frozen=True)

    name: str
    phase: str


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------


class StageStatus(str, Enum):
    """Recorded status of a single stage."""

    SUCCESS = "Success"
    FAILURE = "Failure"
    SKIPPED = "Skipped"


class StageResult(BaseModel):
    """Immutable record of one executed (or skipped) stage."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: StageStatus
    output: str = ""
    duration_ms: float = 0.0
    best_effort: bool = False
    error_kind: str | None = None

    @classmethod
    def skipped(cls, name: str, best_effort: bool = False) -> StageResult:
        return cls(name=name, status=StageStatus.SKIPPED, best_effort=best_effort)


class OutcomeKind(str, Enum):
    """Terminal outcome of a pipeline run."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ABORTED = "Aborted"


class PipelineOutcome(BaseModel):
    """Terminal outcome: ``Succeeded``, ``Failed(stage, reason)`` or ``Aborted``.

    ``stage`` names the failing (or interrupted) stage; ``error_kind`` is the
    error class name, e.g. ``PushError`` or ``ReadinessTimeoutError``.
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    stage: str | None = None
    reason: str | None = None
    error_kind: str | None = None

    @classmethod
    def succeeded(cls) -> PipelineOutcome:
        return cls(kind=OutcomeKind.SUCCEEDED)

    @classmethod
    def failed(cls, stage: str, reason: str, error_kind: str | None = None) -> PipelineOutcome:
        return cls(kind=OutcomeKind.FAILED, stage=stage, reason=reason, error_kind=error_kind)

    @classmethod
    def aborted(cls, stage: str | None = None, reason: str = "aborted") -> PipelineOutcome:
        return cls(
            kind=OutcomeKind.ABORTED,
            stage=stage,
            reason=reason,
            error_kind="PipelineAbortedError",
        )

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCEEDED

    def __str__(self) -> str:
        if self.kind == OutcomeKind.FAILED:
            return f"Failed({self.stage!r}, {self.error_kind or self.reason})"
        if self.kind == OutcomeKind.ABORTED and self.stage:
            return f"Aborted({self.stage!r})"
        return self.kind.value


# ---------------------------------------------------------------------------
# Run aggregate
# ---------------------------------------------------------------------------


class PipelineRun(BaseModel):
    """The top-level aggregate of one pipeline execution.

    Owned by a single orchestrator for its lifetime. Stages are appended with
    ``record()``; ``finalize()`` sets the outcome exactly once.

    Example::

        run = PipelineRun(run_id="3f9a0c1b2d4e", build_id="20240101120000")
        run.record(StageResult(name="Build", status=StageStatus.SUCCESS))
        run.finalize(PipelineOutcome.succeeded())
    """

    run_id: str
    build_id: str
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    stages: tuple[StageResult, ...] = ()
    outcome: PipelineOutcome | None = None
    image: ImageRef | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    _finalized: bool = PrivateAttr(default=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and self.is_finalized:
            raise RunFinalizedError(f"Run {self.run_id} is finalized; cannot set {name!r}")
        super().__setattr__(name, value)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def record(self, result: StageResult) -> None:
        """Append a stage result to the audit trail."""
        if self.is_finalized:
            raise RunFinalizedError(
                f"Run {self.run_id} is finalized; cannot record stage {result.name!r}"
            )
        self.stages = (*self.stages, result)

    def finalize(self, outcome: PipelineOutcome) -> None:
        """Set the terminal outcome and compute duration. Allowed once."""
        if self.is_finalized:
            raise RunFinalizedError(f"Run {self.run_id} is already finalized")
        self.outcome = outcome
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()
        self._finalized = True

    def stage(self, name: str) -> StageResult | None:
        """Look up a recorded stage by name."""
        for result in self.stages:
            if result.name == name:
                return result
        return None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.is_success

    @property
    def summary(self) -> str:
        counts = {status: 0 for status in StageStatus}
        for result in self.stages:
            counts[result.status] += 1
        outcome = str(self.outcome) if self.outcome else "Running"
        return (
            f"{outcome}: {counts[StageStatus.SUCCESS]} succeeded, "
            f"{counts[StageStatus.FAILURE]} failed, "
            f"{counts[StageStatus.SKIPPED]} skipped in {self.duration_seconds:.1f}s"
        )
