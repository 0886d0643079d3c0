"""Run reporting for shipwright.

Writes read-only views of a pipeline run to disk. Nothing here feeds back
into the run.

Output structure::

    {output_dir}/{run_id}/
    ├── summary.json      PipelineRun + outcome + service endpoint
    ├── summary.txt       human-readable status and per-stage table
    └── manifests.yaml    applied documents, Secret values redacted

Related Modules:
    - :mod:`shipwright.deploy.models` — PipelineRun serialised here
    - :mod:`shipwright.deploy.orchestrator` — Report stage and final report
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from shipwright.core.logging import get_logger
from shipwright.deploy.config import PipelineConfig
from shipwright.deploy.manifests import ManifestSet
from shipwright.deploy.models import PipelineOutcome, PipelineRun

logger = get_logger(__name__)


def service_endpoint(config: PipelineConfig) -> str:
    """In-cluster address of the application service."""
    svc = config.service
    port = svc.ports[0].port if svc.ports else config.application.container_port
    return f"http://{svc.name}.{config.namespace}.svc.cluster.local:{port}"


def render_summary(
    run: PipelineRun,
    outcome: PipelineOutcome | None = None,
    endpoint: str | None = None,
) -> str:
    """Plain-text view: status line, image, endpoint and one row per stage."""
    outcome = outcome or run.outcome
    lines = [
        f"Run {run.run_id} (build {run.build_id}): {outcome if outcome else 'Running'}",
    ]
    if outcome is not None and outcome.reason and not outcome.is_success:
        lines.append(f"Reason: {outcome.reason}")
    if run.image is not None:
        lines.append(f"Image: {run.image.reference}")
    if endpoint and outcome is not None and outcome.is_success:
        lines.append(f"Endpoint: {endpoint}")
    lines.append("")

    width = max((len(s.name) for s in run.stages), default=5)
    lines.append(f"{'Stage'.ljust(width)}  {'Status':<8}  {'Duration':>10}  Output")
    for stage in run.stages:
        duration = f"{stage.duration_ms:.0f}ms" if stage.status.value != "Skipped" else "-"
        output = stage.output.splitlines()[0] if stage.output else ""
        lines.append(f"{stage.name.ljust(width)}  {stage.status.value:<8}  {duration:>10}  {output}")
    return "\n".join(lines) + "\n"


class RunReporter:
    """Writes run artifacts under ``{output_dir}/{run_id}``.

    Parameters
    ----------
    output_dir
        Base directory for output.
    config
        Used for the service endpoint shown in summaries.
    """

    def __init__(self, output_dir: Path, config: PipelineConfig | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.endpoint = service_endpoint(config) if config is not None else None

    def run_dir(self, run_id: str) -> Path:
        d = self.output_dir / run_id
        d.mkdir(parents=True, exist_ok=True)
        return d

    def write(
        self,
        run: PipelineRun,
        outcome: PipelineOutcome | None = None,
        manifests: ManifestSet | None = None,
    ) -> Path:
        """Write all views of ``run``.

        Parameters
        ----------
        run
            The run, finalized or not.
        outcome
            Outcome to report when ``run`` is not finalized yet.

        Returns
        -------
        Path
            The run directory.
        """
        run_dir = self.run_dir(run.run_id)
        outcome = outcome or run.outcome

        self.write_summary(run_dir, run, outcome)
        (run_dir / "summary.txt").write_text(
            render_summary(run, outcome, self.endpoint), encoding="utf-8"
        )
        if manifests is not None and len(manifests):
            (run_dir / "manifests.yaml").write_text(manifests.to_yaml(redact=True), encoding="utf-8")

        logger.info("report.written", path=str(run_dir))
        return run_dir

    def write_summary(self, run_dir: Path, run: PipelineRun, outcome: PipelineOutcome | None) -> Path:
        """Write machine-readable summary JSON."""
        data: dict[str, Any] = run.model_dump(mode="json")
        data["outcome"] = outcome.model_dump(mode="json") if outcome is not None else None
        data["endpoint"] = self.endpoint
        path = run_dir / "summary.json"
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path
