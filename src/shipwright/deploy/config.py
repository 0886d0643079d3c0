"""Configuration models for shipwright.

Pydantic v2 configuration models for a deployment run. ``PipelineConfig`` is
the single explicit struct handed to the orchestrator at construction; no
pipeline state lives in module globals, so several configured pipelines can
run side by side in one process (tests do exactly that).

Key Concepts:
    PipelineConfig: Build identifier, image repository, namespace, the
        application / service / data-tier parameters, readiness budgets and
        the collaborator configs. Loads from ``SHIPWRIGHT_*`` env vars via
        ``from_env()`` or from a YAML document via ``from_file()``.
    ReadinessBudget: ``poll_interval_seconds`` × ``max_attempts``. Defaults to
        10s × 30 (five minutes).
    ControlPlaneConfig: kubectl binary, context, namespace and the single
        ``insecure_skip_tls_verify`` switch used by every control-plane call.
    validate_pipeline_config: The boundary check. Collects every violation
        and raises one ``ConfigurationError`` before any external effect.

Architecture Decisions:
    - Field types only, no range constraints on the models: range checks run
      in ``validate_pipeline_config`` so every problem is reported at once
      and always as a ``ConfigurationError``.
    - from_env() classmethod: explicit env-var parsing rather than
      ``pydantic-settings``. Override precedence: kwargs > env vars > file
      > field defaults.
    - Credentials are ``SecretStr`` so they never render in reprs or logs.

Related Modules:
    - :mod:`shipwright.deploy.orchestrator` — Consumer of PipelineConfig
    - :mod:`shipwright.deploy.backends` — Presets referenced by ``DataTierParams.engine``
    - :mod:`shipwright.deploy.manifests` — Renders the parameter models

Tags:
    config, settings, pydantic, yaml, environment, validation, shipwright
"""

from __future__ import annotations

import os
import re
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, model_validator

from shipwright.core.errors import ConfigurationError
from shipwright.deploy.backends import get_data_tier_preset

MI = 1024 * 1024
GI = 1024 * MI

_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")
_QUANTITY_PATTERN = re.compile(r"^[0-9]+(Ki|Mi|Gi|Ti|Pi|Ei|k|M|G|T|P|E)?$")

# selector keys owned by the renderer
RESERVED_APP_LABELS = frozenset({"app", "tier"})


def _default_build_id() -> str:
    return datetime.now(UTC).strftime("%Y%m%d%H%M%S")


# ---------------------------------------------------------------------------
# Manifest parameters
# ---------------------------------------------------------------------------


class ProbeParams(BaseModel):
    """HTTP probe settings for the application container."""

    path: str = "/actuator/health"
    initial_delay_seconds: int = 30
    period_seconds: int = 10
    timeout_seconds: int = 5
    failure_threshold: int = 3


class ResourceParams(BaseModel):
    """CPU in millicores, memory in bytes."""

    cpu_request_millicores: int = 250
    cpu_limit_millicores: int = 1000
    memory_request_bytes: int = 512 * MI
    memory_limit_bytes: int = 1 * GI


class PortMapping(BaseModel):
    """One service port: ``port`` on the service forwards to ``target_port``."""

    name: str = "http"
    protocol: Literal["TCP", "UDP", "SCTP"] = "TCP"
    port: int = 8080
    target_port: int = 8080


class ApplicationParams(BaseModel):
    """The application tier: one Deployment running the published image."""

    name: str = "petclinic"
    replicas: int = 1
    container_port: int = 8080
    resources: ResourceParams = Field(default_factory=ResourceParams)
    readiness_probe: ProbeParams = Field(default_factory=ProbeParams)
    liveness_probe: ProbeParams = Field(
        default_factory=lambda: ProbeParams(initial_delay_seconds=60, period_seconds=20)
    )
    env: dict[str, str] = Field(
        default_factory=lambda: {
            "SPRING_PROFILES_ACTIVE": "mysql",
            "SPRING_JPA_HIBERNATE_DDL-AUTO": "update",
        }
    )
    datasource_tier: str | None = Field(
        default="mysql",
        description="Data tier whose URL and credentials are injected as SPRING_DATASOURCE_*",
    )
    labels: dict[str, str] = Field(default_factory=dict)


class ServiceParams(BaseModel):
    """Service exposing the application (or a data tier)."""

    name: str = "petclinic"
    type: Literal["ClusterIP", "NodePort", "LoadBalancer"] = "LoadBalancer"
    selector: dict[str, str] = Field(
        default_factory=dict,
        description="Pod selector labels (defaults to app=<application name>)",
    )
    ports: list[PortMapping] = Field(default_factory=lambda: [PortMapping()])


class DataTierParams(BaseModel):
    """One data store in the dependency tier.

    ``image`` and ``port`` fall back to the preset named by ``engine``. ``port``
    is the Service port; the container always listens on the preset port.
    """

    name: str = "mysql"
    engine: str = "mysql"
    image: str | None = None
    port: int | None = None
    storage_size: str = "1Gi"
    storage_class: str | None = None
    database: str = "petclinic"
    username: SecretStr = SecretStr("petclinic")
    password: SecretStr = SecretStr("petclinic")
    root_password: SecretStr = SecretStr("root")

    @property
    def resolved_image(self) -> str:
        preset = get_data_tier_preset(self.engine)
        return self.image or (preset.image if preset else "")

    @property
    def resolved_port(self) -> int:
        """Port the Service exposes and the JDBC URL uses."""
        return self.port or self.container_port

    @property
    def container_port(self) -> int:
        """Port the data store listens on; fixed by the engine image."""
        preset = get_data_tier_preset(self.engine)
        return preset.port if preset else 0

    @property
    def selector(self) -> str:
        return f"app={self.name}"

    def credential(self, field_name: str) -> str:
        """Plaintext value of a credential field. Only the renderer calls this."""
        if field_name == "database":
            return self.database
        value = getattr(self, field_name)
        return value.get_secret_value()


class ReadinessBudget(BaseModel):
    """Bounded polling budget: ``max_attempts`` queries, ``poll_interval_seconds`` apart."""

    poll_interval_seconds: float = 10.0
    max_attempts: int = 30


# ---------------------------------------------------------------------------
# Collaborator configuration
# ---------------------------------------------------------------------------


class ControlPlaneConfig(BaseModel):
    """kubectl collaborator settings.

    ``insecure_skip_tls_verify`` applies to every call the collaborator makes.
    """

    kubectl: str = "kubectl"
    context: str | None = None
    namespace: str | None = None
    kubeconfig: str | None = None
    insecure_skip_tls_verify: bool = False
    request_timeout_seconds: int = 60


class ContainerConfig(BaseModel):
    """docker CLI collaborator settings."""

    docker: str = "docker"
    context_dir: str = "."
    dockerfile: str = "Dockerfile"
    artifact_build_arg: str | None = Field(
        default="ARTIFACT",
        description="Build arg receiving the artifact path (None to omit)",
    )
    build_args: dict[str, str] = Field(default_factory=dict)
    platform: str | None = None
    timeout_seconds: int = 1800


class BuildConfig(BaseModel):
    """Application build command settings."""

    command: list[str] = Field(default_factory=lambda: ["mvn", "-B", "clean", "package"])
    cwd: str = "."
    artifact_glob: str = "target/*.jar"
    test_report_glob: str | None = "target/surefire-reports/*.xml"
    env: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int = 1800


# ---------------------------------------------------------------------------
# Pipeline configuration
# ---------------------------------------------------------------------------


class PipelineConfig(BaseModel):
    """Configuration for one deployment pipeline run.

    Example::

        config = PipelineConfig(
            image_repository="registry.example.com/petclinic",
            namespace="staging",
            data_tiers=[DataTierParams(name="postgres", engine="postgresql")],
        )
    """

    # Identity
    build_id: str = Field(default="", description="Immutable image tag (UTC timestamp if empty)")
    run_id: str = Field(default="", description="Unique run identifier (auto-generated)")

    # Image
    image_repository: str = "spring-petclinic"
    alias_tag: str | None = Field(
        default="latest",
        description="Mutable alias pushed after the immutable tag (None disables)",
    )

    # Target
    namespace: str = "default"
    application: ApplicationParams = Field(default_factory=ApplicationParams)
    service: ServiceParams = Field(default_factory=ServiceParams)
    data_tiers: list[DataTierParams] = Field(default_factory=lambda: [DataTierParams()])

    # Readiness
    dependency_readiness: ReadinessBudget = Field(default_factory=ReadinessBudget)
    application_readiness: ReadinessBudget = Field(default_factory=ReadinessBudget)

    # Collaborators
    build: BuildConfig = Field(default_factory=BuildConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    control_plane: ControlPlaneConfig = Field(default_factory=ControlPlaneConfig)

    # Output
    output_dir: Path = Field(
        default=Path("deploy-results"),
        description="Directory for run summaries and rendered manifests",
    )

    @model_validator(mode="after")
    def _set_defaults(self) -> PipelineConfig:
        if not self.build_id:
            self.build_id = _default_build_id()
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:12]
        if self.control_plane.namespace is None:
            self.control_plane.namespace = self.namespace
        return self

    def data_tier(self, name: str) -> DataTierParams | None:
        for tier in self.data_tiers:
            if tier.name == name:
                return tier
        return None

    @classmethod
    def from_env(cls, **overrides: Any) -> PipelineConfig:
        """Create config from SHIPWRIGHT_* environment variables."""
        return cls._load({**_read_env(), **overrides})

    @classmethod
    def from_file(cls, path: str | Path, **overrides: Any) -> PipelineConfig:
        """Load a YAML config file, then apply env vars and keyword overrides.

        Env vars take precedence over file values, keyword overrides over both.
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config file {path}", cause=exc) from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file {path} is not valid YAML", cause=exc) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return cls._load({**data, **_read_env(), **overrides})

    @classmethod
    def _load(cls, values: dict[str, Any]) -> PipelineConfig:
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(
                "Invalid pipeline configuration",
                problems=[_format_validation_error(err) for err in exc.errors()],
                cause=exc,
            ) from exc


_ENV_MAP = {
    "build_id": "SHIPWRIGHT_BUILD_ID",
    "image_repository": "SHIPWRIGHT_IMAGE_REPOSITORY",
    "namespace": "SHIPWRIGHT_NAMESPACE",
    "alias_tag": "SHIPWRIGHT_ALIAS_TAG",
    "output_dir": "SHIPWRIGHT_OUTPUT_DIR",
}


def _read_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name, env_var in _ENV_MAP.items():
        env_val = os.environ.get(env_var)
        if env_val is not None:
            if field_name == "alias_tag":
                # empty string disables the alias push
                values[field_name] = env_val or None
            else:
                values[field_name] = env_val
    return values


def _format_validation_error(err: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location}: {err.get('msg', 'invalid value')}"


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------


def _check_port(problems: list[str], label: str, port: int | None) -> None:
    if port is None or not 1 <= port <= 65535:
        problems.append(f"{label} must be in 1..65535 (got {port})")


def _check_probe(problems: list[str], label: str, probe: ProbeParams) -> None:
    if not probe.path.startswith("/"):
        problems.append(f"{label}.path must start with '/' (got {probe.path!r})")
    if probe.initial_delay_seconds < 0:
        problems.append(f"{label}.initial_delay_seconds must be >= 0")
    if probe.period_seconds <= 0:
        problems.append(f"{label}.period_seconds must be > 0")
    if probe.timeout_seconds <= 0:
        problems.append(f"{label}.timeout_seconds must be > 0")
    if probe.failure_threshold < 1:
        problems.append(f"{label}.failure_threshold must be >= 1")


def _check_resources(problems: list[str], label: str, res: ResourceParams) -> None:
    for field_name in (
        "cpu_request_millicores",
        "cpu_limit_millicores",
        "memory_request_bytes",
        "memory_limit_bytes",
    ):
        if getattr(res, field_name) <= 0:
            problems.append(f"{label}.{field_name} must be > 0")
    if res.cpu_request_millicores > res.cpu_limit_millicores:
        problems.append(f"{label}: cpu request exceeds cpu limit")
    if res.memory_request_bytes > res.memory_limit_bytes:
        problems.append(f"{label}: memory request exceeds memory limit")


def _check_budget(problems: list[str], label: str, budget: ReadinessBudget) -> None:
    if budget.max_attempts < 1:
        problems.append(f"{label}.max_attempts must be >= 1 (got {budget.max_attempts})")
    if budget.poll_interval_seconds < 0:
        problems.append(f"{label}.poll_interval_seconds must be >= 0")


def _check_name(problems: list[str], label: str, name: str) -> None:
    if not _DNS_LABEL_PATTERN.match(name):
        problems.append(f"{label} {name!r} is not a valid DNS-1123 label")


def validate_pipeline_config(config: PipelineConfig) -> None:
    """Check every parameter the pipeline will use.

    Raises
    ------
    ConfigurationError
        Listing all violations found (``error.problems``).
    """
    problems: list[str] = []

    if not config.image_repository.strip():
        problems.append("image_repository must not be empty")
    if not _TAG_PATTERN.match(config.build_id):
        problems.append(f"build_id {config.build_id!r} is not a valid image tag")
    if config.alias_tag is not None:
        if not _TAG_PATTERN.match(config.alias_tag):
            problems.append(f"alias_tag {config.alias_tag!r} is not a valid image tag")
        elif config.alias_tag == config.build_id:
            problems.append("alias_tag must differ from build_id")
    _check_name(problems, "namespace", config.namespace)
    cp_namespace = config.control_plane.namespace
    if cp_namespace is not None and cp_namespace != config.namespace:
        problems.append(
            f"control_plane.namespace {cp_namespace!r} differs from namespace {config.namespace!r}"
        )

    app = config.application
    _check_name(problems, "application.name", app.name)
    if app.replicas < 1:
        problems.append(f"application.replicas must be >= 1 (got {app.replicas})")
    _check_port(problems, "application.container_port", app.container_port)
    _check_resources(problems, "application.resources", app.resources)
    _check_probe(problems, "application.readiness_probe", app.readiness_probe)
    _check_probe(problems, "application.liveness_probe", app.liveness_probe)
    reserved = sorted(RESERVED_APP_LABELS.intersection(app.labels))
    if reserved:
        problems.append(f"application.labels must not set reserved keys: {', '.join(reserved)}")

    svc = config.service
    _check_name(problems, "service.name", svc.name)
    if not svc.ports:
        problems.append("service.ports must not be empty")
    for index, mapping in enumerate(svc.ports):
        _check_port(problems, f"service.ports[{index}].port", mapping.port)
        _check_port(problems, f"service.ports[{index}].target_port", mapping.target_port)

    seen: set[str] = set()
    for index, tier in enumerate(config.data_tiers):
        label = f"data_tiers[{index}]"
        _check_name(problems, f"{label}.name", tier.name)
        if tier.name in seen:
            problems.append(f"{label}.name {tier.name!r} is duplicated")
        seen.add(tier.name)
        if tier.name == app.name or tier.name == svc.name:
            problems.append(f"{label}.name {tier.name!r} collides with the application tier")
        if get_data_tier_preset(tier.engine) is None:
            problems.append(f"{label}.engine {tier.engine!r} is not a known data tier")
            continue
        if not tier.resolved_image:
            problems.append(f"{label}.image must not be empty")
        _check_port(problems, f"{label}.port", tier.resolved_port)
        if not _QUANTITY_PATTERN.match(tier.storage_size) or tier.storage_size.startswith("0"):
            problems.append(f"{label}.storage_size {tier.storage_size!r} is not a positive quantity")

    if app.datasource_tier is not None and app.datasource_tier not in seen:
        problems.append(
            f"application.datasource_tier {app.datasource_tier!r} does not name a data tier"
        )

    _check_budget(problems, "dependency_readiness", config.dependency_readiness)
    _check_budget(problems, "application_readiness", config.application_readiness)

    if problems:
        raise ConfigurationError(
            "Invalid pipeline configuration",
            problems=problems,
        ).with_context(run_id=config.run_id)
