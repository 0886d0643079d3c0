"""Tests for the shipwright CLI via CliRunner.

Collaborators are patched at their source modules with the in-memory fakes,
so ``deploy run`` exercises the real orchestrator without subprocesses.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from shipwright.cli.app import app
from tests._support import write_temp_yaml
from tests._support.fakes import FakeBuilder, FakeContainers, FakeControlPlane, registry_rejection

runner = CliRunner()

QUIET = ["--log-level", "CRITICAL"]


@pytest.fixture
def fakes():
    """Patch the three subprocess collaborators with fakes."""
    builder, containers, plane = FakeBuilder(), FakeContainers(), FakeControlPlane()
    with (
        patch("shipwright.deploy.build.CommandBuilder", return_value=builder),
        patch("shipwright.deploy.container.DockerImagePublisher", return_value=containers),
        patch("shipwright.deploy.control_plane.KubectlControlPlane", return_value=plane) as plane_cls,
    ):
        yield {"builder": builder, "containers": containers, "plane": plane, "plane_cls": plane_cls}


# ─── Root ────────────────────────────────────────────────────────────────


class TestRoot:
    """Root callback and help."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.startswith("shipwright ")

    def test_deploy_help(self):
        result = runner.invoke(app, ["deploy", "--help"])
        assert result.exit_code == 0
        for command in ("run", "render", "presets"):
            assert command in result.stdout

    def test_run_help_shows_two_tier_config(self):
        result = runner.invoke(app, ["deploy", "run", "--help"])
        assert result.exit_code == 0
        assert "postgresql" in result.stdout
        assert "datasource_tier" in result.stdout


# ─── Presets ─────────────────────────────────────────────────────────────


class TestPresetsCommand:
    """Tests for 'deploy presets'."""

    def test_json(self):
        result = runner.invoke(app, [*QUIET, "deploy", "presets", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["mysql"]["port"] == 3306
        assert data["postgresql"]["image"].startswith("postgres:")

    def test_table(self):
        result = runner.invoke(app, [*QUIET, "deploy", "presets"])
        assert result.exit_code == 0
        assert "Data-Tier Presets" in result.stdout
        assert "mysql" in result.stdout


# ─── Render ──────────────────────────────────────────────────────────────


class TestRenderCommand:
    """Tests for 'deploy render'."""

    @pytest.fixture
    def config_file(self, tmp_path):
        return write_temp_yaml(
            tmp_path,
            "pipeline",
            {
                "image_repository": "registry.example.com/petclinic",
                "namespace": "staging",
                "data_tiers": [{"name": "mysql", "password": "hunter2"}],
            },
        )

    def test_render_redacts_by_default(self, config_file):
        result = runner.invoke(app, [*QUIET, "deploy", "render", "-c", str(config_file), "-b", "1042"])
        assert result.exit_code == 0
        assert "hunter2" not in result.stdout
        assert "**********" in result.stdout
        assert "image: registry.example.com/petclinic:1042" in result.stdout

    def test_show_secrets(self, config_file):
        result = runner.invoke(
            app, [*QUIET, "deploy", "render", "-c", str(config_file), "-b", "1042", "--show-secrets"]
        )
        assert result.exit_code == 0
        assert "hunter2" in result.stdout

    def test_tier_filter(self, config_file):
        result = runner.invoke(
            app, [*QUIET, "deploy", "render", "-c", str(config_file), "-b", "1042", "--tier", "application"]
        )
        assert result.exit_code == 0
        assert result.stdout.count("kind: ") == 2
        assert "kind: Secret" not in result.stdout

    def test_unknown_tier(self, config_file):
        result = runner.invoke(app, [*QUIET, "deploy", "render", "-c", str(config_file), "--tier", "cache"])
        assert result.exit_code == 1

    def test_invalid_config(self, tmp_path):
        path = write_temp_yaml(tmp_path, "bad", {"application": {"replicas": 0}})
        result = runner.invoke(app, [*QUIET, "deploy", "render", "-c", str(path)])
        assert result.exit_code == 1
        assert "application.replicas must be >= 1" in result.output


# ─── Run ─────────────────────────────────────────────────────────────────


class TestRunCommand:
    """Tests for 'deploy run' with fake collaborators."""

    def test_successful_run(self, fakes, tmp_path):
        result = runner.invoke(app, [*QUIET, "deploy", "run", "-b", "1042", "-o", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "Succeeded" in result.stdout
        assert fakes["containers"].pushed[0] == "spring-petclinic:1042"
        assert len(fakes["plane"].applied) == 6

    def test_json_output(self, fakes, tmp_path):
        result = runner.invoke(
            app, [*QUIET, "deploy", "run", "-b", "1042", "-o", str(tmp_path), "--no-report", "--json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["outcome"]["kind"] == "Succeeded"
        assert [s["name"] for s in data["stages"]][-1] == "AwaitApplicationReadiness"
        assert len(data["stages"]) == 8

    def test_report_written(self, fakes, tmp_path):
        result = runner.invoke(app, [*QUIET, "deploy", "run", "-b", "1042", "-o", str(tmp_path), "--json"])
        assert result.exit_code == 0
        run_id = json.loads(result.stdout)["run_id"]
        assert (tmp_path / run_id / "summary.json").exists()

    def test_failed_run_exits_non_zero(self, fakes, tmp_path):
        fakes["containers"].push_failures["1042"] = registry_rejection()
        result = runner.invoke(
            app, [*QUIET, "deploy", "run", "-b", "1042", "-o", str(tmp_path), "--no-report", "--json"]
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["outcome"]["stage"] == "Publish"
        assert data["outcome"]["error_kind"] == "PushError"
        assert fakes["plane"].applied == []

    def test_insecure_flag_reaches_control_plane(self, fakes, tmp_path):
        result = runner.invoke(
            app, [*QUIET, "deploy", "run", "-b", "1042", "-o", str(tmp_path), "--no-report", "--insecure"]
        )
        assert result.exit_code == 0
        control_plane_config = fakes["plane_cls"].call_args.args[0]
        assert control_plane_config.insecure_skip_tls_verify is True

    def test_invalid_config_runs_nothing(self, fakes, tmp_path):
        path = write_temp_yaml(tmp_path, "bad", {"dependency_readiness": {"max_attempts": 0}})
        result = runner.invoke(app, [*QUIET, "deploy", "run", "-c", str(path)])
        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert fakes["builder"].calls == 0

    def test_env_config(self, fakes, tmp_path, monkeypatch):
        monkeypatch.setenv("SHIPWRIGHT_IMAGE_REPOSITORY", "registry.example.com/shop")
        monkeypatch.setenv("SHIPWRIGHT_BUILD_ID", "77")
        monkeypatch.setenv("SHIPWRIGHT_ALIAS_TAG", "")
        result = runner.invoke(app, [*QUIET, "deploy", "run", "-o", str(tmp_path), "--no-report"])
        assert result.exit_code == 0
        assert fakes["containers"].pushed == ["registry.example.com/shop:77"]
