"""Tests for shipwright.deploy.report and the data-tier presets."""

import json

from shipwright.deploy.backends import (
    DATA_TIERS,
    MYSQL,
    get_data_tier_preset,
    list_data_tier_presets,
)
from shipwright.deploy.config import DataTierParams, PipelineConfig
from shipwright.deploy.manifests import render_manifest_set
from shipwright.deploy.models import (
    ImageRef,
    PipelineOutcome,
    PipelineRun,
    StageResult,
    StageStatus,
)
from shipwright.deploy.report import RunReporter, render_summary, service_endpoint

IMAGE = ImageRef(repository="registry.example.com/petclinic", tag="20240101120000")


def _finished_run(outcome: PipelineOutcome) -> PipelineRun:
    run = PipelineRun(run_id="abc123", build_id="20240101120000", image=IMAGE)
    run.record(StageResult(name="Build", status=StageStatus.SUCCESS, output="artifact target/app.jar", duration_ms=1200))
    run.record(StageResult(name="Publish", status=StageStatus.FAILURE, output="denied", error_kind="PushError"))
    run.record(StageResult.skipped("RenderManifests"))
    run.finalize(outcome)
    return run


class TestPresets:
    """Data-tier presets."""

    def test_lookup_case_insensitive(self):
        assert get_data_tier_preset("MySQL") is MYSQL
        assert get_data_tier_preset("oracle") is None

    def test_list(self):
        assert [p.name for p in list_data_tier_presets()] == list(DATA_TIERS)

    def test_jdbc_url(self):
        assert MYSQL.jdbc_url("mysql", "petclinic") == "jdbc:mysql://mysql:3306/petclinic"
        assert DATA_TIERS["postgresql"].jdbc_url("db", "app", 6543) == "jdbc:postgresql://db:6543/app"


class TestServiceEndpoint:
    def test_default(self):
        config = PipelineConfig(namespace="staging")
        assert service_endpoint(config) == "http://petclinic.staging.svc.cluster.local:8080"

    def test_custom_port(self):
        config = PipelineConfig(service={"name": "web", "ports": [{"port": 80, "target_port": 8080}]})
        assert service_endpoint(config) == "http://web.default.svc.cluster.local:80"


class TestRenderSummary:
    """Plain-text summary."""

    def test_failed_run(self):
        run = _finished_run(PipelineOutcome.failed("Publish", "denied", "PushError"))
        text = render_summary(run)
        lines = text.splitlines()
        assert lines[0] == "Run abc123 (build 20240101120000): Failed('Publish', PushError)"
        assert "Reason: denied" in lines
        assert "Image: registry.example.com/petclinic:20240101120000" in lines
        assert any(line.startswith("Build") and "1200ms" in line for line in lines)
        assert any(line.startswith("RenderManifests") and "Skipped" in line for line in lines)

    def test_endpoint_only_on_success(self):
        endpoint = "http://petclinic.default.svc.cluster.local:8080"
        failed = _finished_run(PipelineOutcome.failed("Publish", "denied", "PushError"))
        assert endpoint not in render_summary(failed, endpoint=endpoint)

        run = PipelineRun(run_id="abc123", build_id="1")
        assert f"Endpoint: {endpoint}" in render_summary(run, PipelineOutcome.succeeded(), endpoint)


class TestRunReporter:
    """Files written per run."""

    def test_write_finalized_run(self, tmp_path):
        reporter = RunReporter(tmp_path, PipelineConfig())
        run = _finished_run(PipelineOutcome.failed("Publish", "denied", "PushError"))

        run_dir = reporter.write(run)

        assert run_dir == tmp_path / "abc123"
        summary = json.loads((run_dir / "summary.json").read_text())
        assert summary["run_id"] == "abc123"
        assert summary["outcome"]["kind"] == "Failed"
        assert summary["outcome"]["error_kind"] == "PushError"
        assert [s["status"] for s in summary["stages"]] == ["Success", "Failure", "Skipped"]
        assert (run_dir / "summary.txt").read_text().startswith("Run abc123")
        assert not (run_dir / "manifests.yaml").exists()

    def test_provisional_outcome_for_open_run(self, tmp_path):
        run = PipelineRun(run_id="open", build_id="1")
        run_dir = RunReporter(tmp_path).write(run, outcome=PipelineOutcome.succeeded())
        summary = json.loads((run_dir / "summary.json").read_text())
        assert summary["outcome"]["kind"] == "Succeeded"
        assert summary["endpoint"] is None
        assert not run.is_finalized

    def test_manifests_written_redacted(self, tmp_path):
        config = PipelineConfig(data_tiers=[DataTierParams(password="hunter2")])
        manifests = render_manifest_set(config, IMAGE)
        run = PipelineRun(run_id="abc123", build_id="1")

        run_dir = RunReporter(tmp_path, config).write(run, PipelineOutcome.succeeded(), manifests)

        text = (run_dir / "manifests.yaml").read_text()
        assert "hunter2" not in text
        assert "Deployment" in text
