"""Manifest rendering for shipwright.

Builds Kubernetes manifests as plain document trees from typed parameters
and turns them into YAML text only at the boundary. No string templating:
every value lands in the tree as data, so quoting and escaping are PyYAML's
problem, not ours.

Key Concepts:
    TemplateKind: SECRET, STORAGE_CLAIM, DATA_DEPLOYMENT, SERVICE,
        APP_DEPLOYMENT. One builder per kind.
    ManifestRenderer.render(kind, params): Pure. Identical params always
        produce byte-identical text.
    Manifest: One rendered document with its kind, name, tier, declared
        dependencies (``Kind/name``) and a redacted rendering for archival.
    ManifestSet: Documents ordered so every dependency precedes its
        dependents (stable topological order).
    render_manifest_set: Composes every document a run applies from a
        ``PipelineConfig`` and the published image.

Architecture Decisions:
    - Parameter validation happens at the orchestrator boundary
      (``validate_pipeline_config``), not here; the renderer assumes
      well-formed input.
    - ``yaml.safe_dump(sort_keys=False)``: key order follows the builders,
      which is fixed, so output is deterministic.
    - Credentials reach manifests only through the Secret document.
      Deployments reference them with ``secretKeyRef``. The Secret's
      ``redacted_text`` is what gets written to disk or shown to users.
    - Manifests always pin the immutable per-run tag; the alias tag never
      appears here.

Related Modules:
    - :mod:`shipwright.deploy.config` — Parameter models
    - :mod:`shipwright.deploy.backends` — Data-tier presets
    - :mod:`shipwright.deploy.orchestrator` — Applies the ManifestSet tiers

Tags:
    manifests, kubernetes, yaml, rendering, deployment, shipwright
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

import yaml
from pydantic import BaseModel, ConfigDict

from shipwright.core.errors import ConfigurationError
from shipwright.core.logging import REDACTED, get_logger
from shipwright.deploy.backends import get_data_tier_preset
from shipwright.deploy.config import (
    MI,
    ApplicationParams,
    DataTierParams,
    PipelineConfig,
    ProbeParams,
    ResourceParams,
    ServiceParams,
)
from shipwright.deploy.models import ImageRef

logger = get_logger(__name__)

MANAGED_BY = "shipwright"
DEPENDENCY_TIER = "dependency"
APPLICATION_TIER = "application"


class TemplateKind(str, Enum):
    """Document kinds the renderer can build."""

    SECRET = "Secret"
    STORAGE_CLAIM = "PersistentVolumeClaim"
    DATA_DEPLOYMENT = "DataDeployment"
    SERVICE = "Service"
    APP_DEPLOYMENT = "Deployment"


class AppDeploymentParams(BaseModel):
    """Inputs for the application Deployment."""

    model_config = ConfigDict(frozen=True)

    application: ApplicationParams
    image: ImageRef
    datasource: DataTierParams | None = None


def secret_name(tier: DataTierParams) -> str:
    return f"{tier.name}-credentials"


def claim_name(tier: DataTierParams) -> str:
    return f"{tier.name}-data"


def ref(kind: str, name: str) -> str:
    """Dependency reference string ``Kind/name``."""
    return f"{kind}/{name}"


# ---------------------------------------------------------------------------
# Quantity helpers
# ---------------------------------------------------------------------------


def cpu_quantity(millicores: int) -> str:
    return f"{millicores}m"


def memory_quantity(num_bytes: int) -> str:
    if num_bytes % (1024 * MI) == 0:
        return f"{num_bytes // (1024 * MI)}Gi"
    if num_bytes % MI == 0:
        return f"{num_bytes // MI}Mi"
    return str(num_bytes)


# ---------------------------------------------------------------------------
# Document builders
# ---------------------------------------------------------------------------


class ManifestRenderer:
    """Typed builders for every document kind.

    Parameters
    ----------
    namespace
        Namespace written into every document's metadata.
    """

    def __init__(self, namespace: str = "default") -> None:
        self.namespace = namespace

    def _metadata(self, name: str, labels: dict[str, str]) -> dict[str, Any]:
        return {
            "name": name,
            "namespace": self.namespace,
            "labels": {**labels, "app.kubernetes.io/managed-by": MANAGED_BY},
        }

    def build(self, kind: TemplateKind, params: Any) -> dict[str, Any]:
        """Build the document tree for ``kind``."""
        builders = {
            TemplateKind.SECRET: self._secret,
            TemplateKind.STORAGE_CLAIM: self._storage_claim,
            TemplateKind.DATA_DEPLOYMENT: self._data_deployment,
            TemplateKind.SERVICE: self._service,
            TemplateKind.APP_DEPLOYMENT: self._app_deployment,
        }
        return builders[kind](params)

    def render(self, kind: TemplateKind, params: Any) -> str:
        """Render ``kind`` to YAML text. Deterministic and side-effect free."""
        return dump_document(self.build(kind, params))

    # ---- data tier ----

    def _secret(self, tier: DataTierParams) -> dict[str, Any]:
        preset = get_data_tier_preset(tier.engine)
        fields = list(dict.fromkeys(preset.credential_env.values()))
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": self._metadata(secret_name(tier), {"app": tier.name, "tier": "data"}),
            "type": "Opaque",
            "stringData": {name: tier.credential(name) for name in fields},
        }

    def _storage_claim(self, tier: DataTierParams) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": tier.storage_size}},
        }
        if tier.storage_class:
            spec["storageClassName"] = tier.storage_class
        return {
            "apiVersion": "v1",
            "kind": "PersistentVolumeClaim",
            "metadata": self._metadata(claim_name(tier), {"app": tier.name, "tier": "data"}),
            "spec": spec,
        }

    def _data_deployment(self, tier: DataTierParams) -> dict[str, Any]:
        preset = get_data_tier_preset(tier.engine)
        labels = {"app": tier.name, "tier": "data"}
        env: list[dict[str, Any]] = [
            {
                "name": env_name,
                "valueFrom": {"secretKeyRef": {"name": secret_name(tier), "key": field_name}},
            }
            for env_name, field_name in preset.credential_env.items()
        ]
        env.extend({"name": k, "value": v} for k, v in preset.extra_env.items())
        container = {
            "name": tier.name,
            "image": tier.resolved_image,
            "ports": [{"containerPort": tier.container_port, "name": "db"}],
            "env": env,
            "readinessProbe": {
                "exec": {"command": list(preset.readiness_command)},
                "initialDelaySeconds": 10,
                "periodSeconds": 5,
                "timeoutSeconds": 5,
            },
            "volumeMounts": [{"name": "data", "mountPath": preset.data_mount_path}],
        }
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": self._metadata(tier.name, labels),
            "spec": {
                "replicas": 1,
                # single RWO claim: never run old and new pods side by side
                "strategy": {"type": "Recreate"},
                "selector": {"matchLabels": {"app": tier.name}},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "containers": [container],
                        "volumes": [
                            {
                                "name": "data",
                                "persistentVolumeClaim": {"claimName": claim_name(tier)},
                            }
                        ],
                    },
                },
            },
        }

    # ---- shared ----

    def _service(self, params: ServiceParams) -> dict[str, Any]:
        selector = dict(params.selector) or {"app": params.name}
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": self._metadata(params.name, {"app": selector.get("app", params.name)}),
            "spec": {
                "type": params.type,
                "selector": selector,
                "ports": [
                    {
                        "name": mapping.name,
                        "protocol": mapping.protocol,
                        "port": mapping.port,
                        "targetPort": mapping.target_port,
                    }
                    for mapping in params.ports
                ],
            },
        }

    # ---- application tier ----

    def _app_deployment(self, params: AppDeploymentParams) -> dict[str, Any]:
        app = params.application
        labels = {**app.labels, "app": app.name, "tier": "application"}
        env: list[dict[str, Any]] = [{"name": k, "value": v} for k, v in app.env.items()]
        if params.datasource is not None:
            env.extend(_datasource_env(params.datasource))
        container = {
            "name": app.name,
            "image": params.image.reference,
            "imagePullPolicy": "IfNotPresent",
            "ports": [{"containerPort": app.container_port, "name": "http"}],
            "env": env,
            "resources": _resources(app.resources),
            "readinessProbe": _http_probe(app.readiness_probe, app.container_port),
            "livenessProbe": _http_probe(app.liveness_probe, app.container_port),
        }
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": self._metadata(app.name, labels),
            "spec": {
                "replicas": app.replicas,
                "selector": {"matchLabels": {"app": app.name}},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {"containers": [container]},
                },
            },
        }


def _resources(res: ResourceParams) -> dict[str, Any]:
    return {
        "requests": {
            "cpu": cpu_quantity(res.cpu_request_millicores),
            "memory": memory_quantity(res.memory_request_bytes),
        },
        "limits": {
            "cpu": cpu_quantity(res.cpu_limit_millicores),
            "memory": memory_quantity(res.memory_limit_bytes),
        },
    }


def _http_probe(probe: ProbeParams, port: int) -> dict[str, Any]:
    return {
        "httpGet": {"path": probe.path, "port": port},
        "initialDelaySeconds": probe.initial_delay_seconds,
        "periodSeconds": probe.period_seconds,
        "timeoutSeconds": probe.timeout_seconds,
        "failureThreshold": probe.failure_threshold,
    }


def _datasource_env(tier: DataTierParams) -> list[dict[str, Any]]:
    preset = get_data_tier_preset(tier.engine)

    def from_secret(key: str) -> dict[str, Any]:
        return {"secretKeyRef": {"name": secret_name(tier), "key": key}}

    return [
        {"name": "SPRING_DATASOURCE_URL", "value": preset.jdbc_url(tier.name, tier.database, tier.resolved_port)},
        {"name": "SPRING_DATASOURCE_USERNAME", "valueFrom": from_secret("username")},
        {"name": "SPRING_DATASOURCE_PASSWORD", "valueFrom": from_secret("password")},
    ]


def dump_document(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _redact(document: dict[str, Any]) -> dict[str, Any]:
    redacted = dict(document)
    for key in ("stringData", "data"):
        if key in redacted:
            redacted[key] = {name: REDACTED for name in redacted[key]}
    return redacted


# ---------------------------------------------------------------------------
# Manifest set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Manifest:
    """One rendered document."""

    kind: str
    name: str
    text: str
    tier: str = APPLICATION_TIER
    depends_on: tuple[str, ...] = ()
    redacted_text: str | None = None

    @property
    def ref(self) -> str:
        return ref(self.kind, self.name)

    @property
    def safe_text(self) -> str:
        """Text fit for logs, reports and terminals."""
        return self.redacted_text if self.redacted_text is not None else self.text

    @classmethod
    def from_document(
        cls,
        document: dict[str, Any],
        tier: str,
        depends_on: tuple[str, ...] = (),
    ) -> Manifest:
        kind = document["kind"]
        sensitive = kind == "Secret"
        return cls(
            kind=kind,
            name=document["metadata"]["name"],
            text=dump_document(document),
            tier=tier,
            depends_on=depends_on,
            redacted_text=dump_document(_redact(document)) if sensitive else None,
        )


@dataclass(frozen=True)
class ManifestSet:
    """Ordered collection of manifests.

    Construction reorders documents so each one follows everything it
    declares in ``depends_on``. Among documents with no ordering constraint
    the input order is kept. References to documents outside the set are
    ignored (they are assumed to exist already).

    Raises
    ------
    ConfigurationError
        If the declared dependencies form a cycle.
    """

    manifests: tuple[Manifest, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "manifests", _dependency_order(tuple(self.manifests)))

    def __iter__(self) -> Iterator[Manifest]:
        return iter(self.manifests)

    def __len__(self) -> int:
        return len(self.manifests)

    @property
    def refs(self) -> list[str]:
        return [m.ref for m in self.manifests]

    def find(self, kind: str, name: str) -> Manifest | None:
        for manifest in self.manifests:
            if manifest.kind == kind and manifest.name == name:
                return manifest
        return None

    def tier(self, tier: str) -> ManifestSet:
        return ManifestSet(tuple(m for m in self.manifests if m.tier == tier))

    def dependency_tier(self) -> ManifestSet:
        return self.tier(DEPENDENCY_TIER)

    def application_tier(self) -> ManifestSet:
        return self.tier(APPLICATION_TIER)

    def to_yaml(self, redact: bool = False) -> str:
        """Multi-document YAML, in apply order."""
        texts = [m.safe_text if redact else m.text for m in self.manifests]
        return "---\n" + "---\n".join(texts) if texts else ""


def _dependency_order(manifests: tuple[Manifest, ...]) -> tuple[Manifest, ...]:
    present = {m.ref for m in manifests}
    pending = list(manifests)
    emitted: set[str] = set()
    ordered: list[Manifest] = []
    while pending:
        for index, manifest in enumerate(pending):
            deps = [d for d in manifest.depends_on if d in present and d != manifest.ref]
            if all(d in emitted for d in deps):
                ordered.append(manifest)
                emitted.add(manifest.ref)
                del pending[index]
                break
        else:
            raise ConfigurationError(
                "Manifest dependencies form a cycle",
                problems=[f"{m.ref} -> {', '.join(m.depends_on)}" for m in pending],
            )
    return tuple(ordered)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def render_manifest_set(config: PipelineConfig, image: ImageRef) -> ManifestSet:
    """Render every document for one run.

    Parameters
    ----------
    config
        Validated pipeline configuration.
    image
        The published image. Its immutable tag is what the application
        Deployment pins.

    Returns
    -------
    ManifestSet
        Dependency tier (per data tier: Secret, claim, Deployment, Service)
        followed by the application tier (Deployment, Service).
    """
    renderer = ManifestRenderer(config.namespace)
    documents: list[Manifest] = []

    for tier in config.data_tiers:
        secret = renderer.build(TemplateKind.SECRET, tier)
        claim = renderer.build(TemplateKind.STORAGE_CLAIM, tier)
        deployment = renderer.build(TemplateKind.DATA_DEPLOYMENT, tier)
        service = renderer.build(
            TemplateKind.SERVICE,
            ServiceParams(
                name=tier.name,
                type="ClusterIP",
                selector={"app": tier.name},
                ports=[{"name": "db", "port": tier.resolved_port, "target_port": tier.container_port}],
            ),
        )
        documents.append(Manifest.from_document(secret, DEPENDENCY_TIER))
        documents.append(Manifest.from_document(claim, DEPENDENCY_TIER))
        documents.append(
            Manifest.from_document(
                deployment,
                DEPENDENCY_TIER,
                depends_on=(
                    ref("Secret", secret_name(tier)),
                    ref("PersistentVolumeClaim", claim_name(tier)),
                ),
            )
        )
        documents.append(Manifest.from_document(service, DEPENDENCY_TIER))

    app = config.application
    datasource = config.data_tier(app.datasource_tier) if app.datasource_tier else None
    app_doc = renderer.build(
        TemplateKind.APP_DEPLOYMENT,
        AppDeploymentParams(application=app, image=image, datasource=datasource),
    )
    app_deps = (ref("Secret", secret_name(datasource)),) if datasource else ()
    documents.append(Manifest.from_document(app_doc, APPLICATION_TIER, depends_on=app_deps))

    service_params = config.service
    if not service_params.selector:
        service_params = service_params.model_copy(update={"selector": {"app": app.name}})
    svc_doc = renderer.build(TemplateKind.SERVICE, service_params)
    documents.append(Manifest.from_document(svc_doc, APPLICATION_TIER))

    manifest_set = ManifestSet(tuple(documents))
    logger.debug("manifests.rendered", documents=manifest_set.refs, image=image.reference)
    return manifest_set
