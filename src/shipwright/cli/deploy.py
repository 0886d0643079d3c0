"""
CLI: ``shipwright deploy`` — pipeline commands.

Usage::

    shipwright deploy run                              # config from SHIPWRIGHT_* env vars
    shipwright deploy run -c pipeline.yaml             # config file (env vars override it)
    shipwright deploy run -c pipeline.yaml --build-id 1042 --insecure
    shipwright deploy run --json                       # finalized run as JSON on stdout

    shipwright deploy render -c pipeline.yaml          # print manifests (Secrets redacted)
    shipwright deploy presets                          # list data-tier presets

Exit code is 0 only when the run finalizes ``Succeeded``. Ctrl-C requests
an abort, observed at the next stage boundary or poll attempt.
"""

from __future__ import annotations

import json
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import typer
from rich.console import Console
from rich.table import Table

from shipwright.core.errors import ConfigurationError

app = typer.Typer(no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)


def _load_config(
    config_file: Path | None,
    build_id: str | None,
    output_dir: str | None,
    insecure: bool,
) -> Any:
    from shipwright.deploy.config import PipelineConfig, validate_pipeline_config

    overrides: dict[str, Any] = {}
    if build_id:
        overrides["build_id"] = build_id
    if output_dir:
        overrides["output_dir"] = output_dir

    try:
        if config_file is not None:
            config = PipelineConfig.from_file(config_file, **overrides)
        else:
            config = PipelineConfig.from_env(**overrides)
        if insecure:
            config.control_plane.insecure_skip_tls_verify = True
        validate_pipeline_config(config)
    except ConfigurationError as exc:
        err_console.print(f"[red]Configuration error:[/] {exc.summary}")
        for problem in exc.problems:
            err_console.print(f"  [red]•[/] {problem}")
        raise typer.Exit(code=1) from exc
    return config


@contextmanager
def _cancel_on_interrupt(token: Any) -> Iterator[None]:
    """Turn Ctrl-C into a cancellation request instead of a traceback."""

    def _handler(signum: int, frame: Any) -> None:
        err_console.print("\n[yellow]Abort requested — stopping at the next checkpoint.[/]")
        token.cancel("interrupted by operator")

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # not the main thread (e.g. embedded runners): leave SIGINT alone
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


# ── Run ──────────────────────────────────────────────────────────────────


@app.command("run")
def run_pipeline(
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help="Pipeline config YAML.", exists=True, dir_okay=False,
    ),
    build_id: str | None = typer.Option(None, "--build-id", "-b", help="Immutable image tag for this run."),
    insecure: bool = typer.Option(
        False, "--insecure", help="Skip TLS verification of the cluster API server.",
    ),
    output_dir: str | None = typer.Option(None, "--output", "-o", help="Report output directory."),
    no_report: bool = typer.Option(False, "--no-report", help="Do not write a run report."),
    json_out: bool = typer.Option(False, "--json", help="Output the finalized run as JSON."),
) -> None:
    """Build, publish and roll out the application.

    Stages: Build, Containerize, Publish, RenderManifests, ApplyDependencies,
    AwaitDependencyReadiness, ApplyApplication, AwaitApplicationReadiness,
    then a best-effort Report.

    The default dependency tier is a single MySQL store. To run MySQL and
    PostgreSQL side by side, list both in the config file:
    data_tiers: [{name: mysql, engine: mysql}, {name: postgres, engine: postgresql}]
    and set application.datasource_tier to the one the application uses.
    """
    from shipwright.deploy.build import CommandBuilder
    from shipwright.deploy.container import DockerImagePublisher
    from shipwright.deploy.control_plane import KubectlControlPlane
    from shipwright.deploy.orchestrator import DeploymentOrchestrator
    from shipwright.deploy.readiness import CancellationToken
    from shipwright.deploy.report import RunReporter

    config = _load_config(config_file, build_id, output_dir, insecure)
    token = CancellationToken()

    orchestrator = DeploymentOrchestrator(
        config,
        builder=CommandBuilder(config.build),
        containers=DockerImagePublisher(config.container),
        control_plane=KubectlControlPlane(config.control_plane),
        reporter=None if no_report else RunReporter(config.output_dir, config),
        cancel_token=token,
    )

    if not json_out:
        console.print(f"[bold]shipwright deploy[/] — run_id: {config.run_id}")
        console.print(f"  image:     {config.image_repository}:{config.build_id}")
        console.print(f"  namespace: {config.namespace}")
        if config.control_plane.insecure_skip_tls_verify:
            console.print("  [yellow]TLS verification disabled[/]")

    with _cancel_on_interrupt(token):
        run = orchestrator.run()

    if json_out:
        typer.echo(run.model_dump_json(indent=2))
    else:
        _print_run(run)

    if not run.succeeded:
        raise typer.Exit(code=1)


# ── Render ───────────────────────────────────────────────────────────────


@app.command("render")
def render(
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help="Pipeline config YAML.", exists=True, dir_okay=False,
    ),
    build_id: str | None = typer.Option(None, "--build-id", "-b", help="Image tag to pin."),
    tier: str | None = typer.Option(None, "--tier", help="Only 'dependency' or 'application'."),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Do not redact Secret values."),
) -> None:
    """Print the manifests a run would apply, in apply order."""
    from shipwright.deploy.manifests import render_manifest_set
    from shipwright.deploy.models import ImageRef

    config = _load_config(config_file, build_id, None, False)
    image = ImageRef(repository=config.image_repository, tag=config.build_id)
    manifests = render_manifest_set(config, image)
    if tier is not None:
        if tier not in ("dependency", "application"):
            err_console.print(f"[red]Unknown tier {tier!r}[/]")
            raise typer.Exit(code=1)
        manifests = manifests.tier(tier)
    typer.echo(manifests.to_yaml(redact=not show_secrets), nl=False)


# ── Presets ──────────────────────────────────────────────────────────────


@app.command("presets")
def list_presets(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List available data-tier presets."""
    from shipwright.deploy.backends import DATA_TIERS

    if json_out:
        out = {
            name: {
                "image": spec.image,
                "port": spec.port,
                "readiness_command": spec.readiness_command,
                "jdbc_url_template": spec.jdbc_url_template,
            }
            for name, spec in DATA_TIERS.items()
        }
        typer.echo(json.dumps(out, indent=2))
        return

    table = Table(title="Data-Tier Presets")
    table.add_column("Name", style="bold cyan")
    table.add_column("Image")
    table.add_column("Port")
    table.add_column("Readiness")
    table.add_column("Notes")

    for name, spec in DATA_TIERS.items():
        table.add_row(
            name,
            spec.image,
            str(spec.port),
            " ".join(spec.readiness_command),
            spec.notes or "—",
        )

    console.print(table)


# ── Output formatters ────────────────────────────────────────────────────


def _print_run(run: Any) -> None:
    """Pretty-print a finalized PipelineRun."""
    from shipwright.deploy.models import OutcomeKind, StageStatus

    table = Table(title=f"Pipeline Run {run.run_id}")
    table.add_column("Stage", style="bold")
    table.add_column("Status")
    table.add_column("Duration")
    table.add_column("Output")

    for stage in run.stages:
        status_style = {
            StageStatus.SUCCESS: "green",
            StageStatus.FAILURE: "yellow" if stage.best_effort else "red",
            StageStatus.SKIPPED: "dim",
        }.get(stage.status, "white")

        table.add_row(
            stage.name,
            f"[{status_style}]{stage.status.value}[/{status_style}]",
            f"{stage.duration_ms:.0f}ms" if stage.status != StageStatus.SKIPPED else "—",
            (stage.output.splitlines() or ["—"])[0],
        )

    console.print(table)

    outcome = run.outcome
    style = {
        OutcomeKind.SUCCEEDED: "green",
        OutcomeKind.FAILED: "red",
        OutcomeKind.ABORTED: "yellow",
    }.get(outcome.kind, "white")
    console.print(f"\n[bold {style}]{outcome}[/] — {run.summary}")
    if outcome.reason and not outcome.is_success:
        err_console.print(f"[{style}]{outcome.reason}[/]")
