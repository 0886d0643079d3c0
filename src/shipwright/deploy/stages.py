"""Stage execution for shipwright.

Runs an ordered list of named stages and records one ``StageResult`` per
stage into a ``PipelineRun``.

Key Concepts:
    Stage: ``name`` + zero-argument ``action`` returning ``Result[str]`` +
        ``best_effort`` flag.
    StageExecutor.run(stages): Executes in order. The first failure of a
        non-best-effort stage halts the sequence; every later stage is
        recorded ``Skipped`` and the run is finalized ``Failed(stage, reason)``.
        Best-effort failures are recorded and the sequence continues.

Architecture Decisions:
    - No automatic rollback. A compensating action is just another stage.
    - Exceptions never escape an action: they are recorded as a Failure with
      the exception class name as the failure kind.
    - Cancellation is checked between stages only. A stage whose action
      returns (or raises) ``PipelineAbortedError`` is recorded as the
      interrupted stage and the run finalizes ``Aborted``.

Related Modules:
    - :mod:`shipwright.deploy.models` — StageResult, PipelineRun, PipelineOutcome
    - :mod:`shipwright.deploy.orchestrator` — Builds the stage list

Tags:
    stages, executor, pipeline, audit-trail, shipwright
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable

from shipwright.core.errors import PipelineAbortedError, ShipwrightError
from shipwright.core.logging import LogContext, get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.models import (
    PipelineOutcome,
    PipelineRun,
    StageResult,
    StageStatus,
)
from shipwright.deploy.readiness import CancellationToken

logger = get_logger(__name__)

StageAction = Callable[[], Result[str]]


@dataclass(frozen=True)
class Stage:
    """One named step of a pipeline."""

    name: str
    action: StageAction
    best_effort: bool = False


def _error_kind(error: Exception) -> str:
    if isinstance(error, ShipwrightError):
        return error.kind
    return type(error).__name__


def _error_text(error: Exception) -> str:
    if isinstance(error, ShipwrightError):
        return error.message
    return str(error) or type(error).__name__


class StageExecutor:
    """Run stages in order with halt-on-failure semantics.

    Parameters
    ----------
    cancel_token
        Checked before each stage starts.
    clock
        Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        cancel_token: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cancel_token = cancel_token
        self._clock = clock

    def run(self, stages: Sequence[Stage], run: PipelineRun | None = None) -> PipelineRun:
        """Execute ``stages`` and return the finalized run.

        Parameters
        ----------
        stages
            Stages in execution order.
        run
            Run to record into. A fresh one is created when omitted.

        Returns
        -------
        PipelineRun
            Finalized, with exactly one StageResult per stage.
        """
        if run is None:
            run = PipelineRun(run_id=uuid.uuid4().hex[:12], build_id="")

        outcome: PipelineOutcome | None = None

        for stage in stages:
            if outcome is not None:
                run.record(StageResult.skipped(stage.name, stage.best_effort))
                logger.debug("stage.skipped", stage=stage.name)
                continue

            if self._cancel_token is not None and self._cancel_token.is_cancelled:
                logger.warning("pipeline.aborted", before_stage=stage.name)
                outcome = PipelineOutcome.aborted(reason=self._cancel_token.reason or "aborted")
                run.record(StageResult.skipped(stage.name, stage.best_effort))
                continue

            result = self._execute(stage)
            run.record(result)

            if result.status == StageStatus.FAILURE:
                if result.error_kind == PipelineAbortedError.__name__:
                    outcome = PipelineOutcome.aborted(stage=stage.name, reason=result.output)
                elif not stage.best_effort:
                    outcome = PipelineOutcome.failed(
                        stage=stage.name,
                        reason=result.output,
                        error_kind=result.error_kind,
                    )

        run.finalize(outcome or PipelineOutcome.succeeded())
        logger.info(
            "pipeline.finalized",
            run_id=run.run_id,
            outcome=run.outcome.kind.value,
            failed_stage=run.outcome.stage,
            summary=run.summary,
        )
        return run

    def _execute(self, stage: Stage) -> StageResult:
        with LogContext(stage=stage.name):
            logger.info("stage.started", best_effort=stage.best_effort)
            started = self._clock()
            try:
                result = stage.action()
            except Exception as exc:
                # collaborator bugs are recorded, not propagated
                logger.exception("stage.crashed", error_type=type(exc).__name__)
                result = Err(exc)
            duration_ms = (self._clock() - started) * 1000

            match result:
                case Ok(output):
                    logger.info("stage.succeeded", duration_ms=round(duration_ms, 1))
                    return StageResult(
                        name=stage.name,
                        status=StageStatus.SUCCESS,
                        output=str(output or ""),
                        duration_ms=duration_ms,
                        best_effort=stage.best_effort,
                    )
                case Err(error):
                    kind = _error_kind(error)
                    log = logger.warning if stage.best_effort else logger.error
                    log("stage.failed", error_type=kind, error=_error_text(error))
                    return StageResult(
                        name=stage.name,
                        status=StageStatus.FAILURE,
                        output=_error_text(error),
                        duration_ms=duration_ms,
                        best_effort=stage.best_effort,
                        error_kind=kind,
                    )
