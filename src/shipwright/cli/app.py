"""
Root Typer application for the shipwright CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from shipwright.core.logging import configure_logging

app = Typer(
    name="shipwright",
    help="shipwright — build, publish and roll out an application and its data tier.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("shipwright")
        except PackageNotFoundError:
            from shipwright import __version__ as v
        typer.echo(f"shipwright {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    log_json: bool | None = typer.Option(
        None, "--log-json/--log-console", help="Log format (default: JSON unless stderr is a tty)."
    ),
) -> None:
    """shipwright CLI — deployment pipeline runs, manifest rendering, data-tier presets."""
    configure_logging(level=log_level, json_format=log_json, service="shipwright")


# ── Sub-command registration ─────────────────────────────────────────────

from shipwright.cli.deploy import app as deploy_app  # noqa: E402

app.add_typer(deploy_app, name="deploy", help="Run the deployment pipeline and inspect its output.")
