"""
Shared pytest fixtures for shipwright tests.

This module provides:
- Fresh in-memory collaborators per test (see ``tests._support.fakes``)
- A fake clock whose ``sleep`` advances simulated time instantly
- A deterministic ``PipelineConfig`` and an orchestrator factory

Usage:
    def test_something(make_orchestrator, control_plane):
        control_plane.pod_phases = ["Pending", "Running"]
        run = make_orchestrator().run()
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
import structlog

from shipwright.deploy.config import PipelineConfig, ReadinessBudget
from shipwright.deploy.orchestrator import DeploymentOrchestrator
from tests._support.fakes import (
    BUILD_ID,
    REPOSITORY,
    RUN_ID,
    FakeBuilder,
    FakeClock,
    FakeContainers,
    FakeControlPlane,
)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_log_context():
    """Keep bound context and logging configuration from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def no_shipwright_env(monkeypatch: pytest.MonkeyPatch):
    """Ignore SHIPWRIGHT_* variables from the developer's shell."""
    for var in ("BUILD_ID", "IMAGE_REPOSITORY", "NAMESPACE", "ALIAS_TAG", "OUTPUT_DIR"):
        monkeypatch.delenv(f"SHIPWRIGHT_{var}", raising=False)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def containers() -> FakeContainers:
    return FakeContainers()


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


# =============================================================================
# Configuration / orchestrator
# =============================================================================


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    """Deterministic config: fixed build/run ids, 10s x 30 budgets."""
    return PipelineConfig(
        build_id=BUILD_ID,
        run_id=RUN_ID,
        image_repository=REPOSITORY,
        namespace="staging",
        dependency_readiness=ReadinessBudget(poll_interval_seconds=10, max_attempts=30),
        application_readiness=ReadinessBudget(poll_interval_seconds=10, max_attempts=30),
        output_dir=tmp_path / "deploy-results",
    )


@pytest.fixture
def make_orchestrator(
    pipeline_config: PipelineConfig,
    builder: FakeBuilder,
    containers: FakeContainers,
    control_plane: FakeControlPlane,
    fake_clock: FakeClock,
) -> Callable[..., DeploymentOrchestrator]:
    """Factory: ``make_orchestrator(config=..., reporter=..., cancel_token=...)``."""

    def _make(**kwargs: Any) -> DeploymentOrchestrator:
        options: dict[str, Any] = {
            "builder": builder,
            "containers": containers,
            "control_plane": control_plane,
            "sleep": fake_clock.sleep,
            "clock": fake_clock.monotonic,
        }
        options.update(kwargs)
        config = options.pop("config", pipeline_config)
        return DeploymentOrchestrator(config, **options)

    return _make
