"""Kubernetes control-plane collaborator for shipwright.

Talks to the cluster through the ``kubectl`` CLI (subprocess), the same way
:mod:`shipwright.deploy.container` talks to docker.

Key Concepts:
    KubectlControlPlane.apply(text): ``kubectl apply -f -`` with the manifest
        on stdin. Rejections come back as ``Err(ApplyError)``.
    KubectlControlPlane.get_rollout_status(name): Non-blocking
        ``kubectl rollout status --watch=false`` mapped onto
        ``RolloutStatus``.
    KubectlControlPlane.list_pods(selector): ``kubectl get pods -l`` as JSON,
        reduced to ``PodStatus(name, phase)``.

Architecture Decisions:
    - Connection settings, including ``insecure_skip_tls_verify``, live on
      ``ControlPlaneConfig`` and are added to every call by ``_base_cmd()``.
      Insecure mode is logged once, when the collaborator is created.
    - Status queries raise ``TransientQueryFailure`` when the API server
      cannot be reached, so the readiness poller counts the attempt as
      "not ready" instead of aborting.
    - Manifest text is never logged (Secrets travel through ``apply``).

Related Modules:
    - :mod:`shipwright.deploy.config` — ControlPlaneConfig
    - :mod:`shipwright.deploy.readiness` — Polls the status queries

Tags:
    kubernetes, kubectl, control-plane, rollout, subprocess, shipwright
"""

from __future__ import annotations

import json
import subprocess

from shipwright.core.errors import ApplyError, TransientQueryFailure
from shipwright.core.logging import get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.config import ControlPlaneConfig
from shipwright.deploy.models import PodStatus, RolloutStatus

logger = get_logger(__name__)

# stderr fragments meaning "could not talk to the API server"
_UNREACHABLE_MARKERS = (
    "unable to connect to the server",
    "connection refused",
    "i/o timeout",
    "tls handshake timeout",
    "no such host",
    "context deadline exceeded",
    "the server is currently unable to handle the request",
)


def _is_unreachable(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _UNREACHABLE_MARKERS)


class KubectlControlPlane:
    """Control-plane collaborator backed by kubectl.

    Parameters
    ----------
    config
        Binary, context, namespace, TLS and timeout settings.
    """

    def __init__(self, config: ControlPlaneConfig | None = None) -> None:
        self.config = config or ControlPlaneConfig()
        if self.config.insecure_skip_tls_verify:
            logger.warning(
                "control_plane.insecure_transport",
                context=self.config.context,
                detail="TLS verification of the API server is disabled for every call",
            )

    def _base_cmd(self) -> list[str]:
        cfg = self.config
        cmd = [cfg.kubectl]
        if cfg.kubeconfig:
            cmd += ["--kubeconfig", cfg.kubeconfig]
        if cfg.context:
            cmd += ["--context", cfg.context]
        if cfg.namespace:
            cmd += ["--namespace", cfg.namespace]
        if cfg.insecure_skip_tls_verify:
            cmd.append("--insecure-skip-tls-verify=true")
        cmd.append(f"--request-timeout={cfg.request_timeout_seconds}s")
        return cmd

    def _run(self, args: list[str], stdin: str | None = None) -> subprocess.CompletedProcess[str]:
        cmd = [*self._base_cmd(), *args]
        logger.debug("kubectl.exec", cmd=" ".join(cmd))
        return subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            # kubectl enforces request_timeout itself; this guards a hung binary
            timeout=self.config.request_timeout_seconds + 30,
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, manifest_text: str) -> Result[None]:
        """Apply one or more YAML documents."""
        try:
            result = self._run(["apply", "-f", "-"], stdin=manifest_text)
        except subprocess.TimeoutExpired as exc:
            return Err(ApplyError("kubectl apply timed out", cause=exc))
        except OSError as exc:
            return Err(ApplyError(f"kubectl could not be executed: {exc}", cause=exc))

        if result.returncode != 0:
            logger.error("manifest.apply_failed", exit_code=result.returncode)
            return Err(
                ApplyError(
                    f"kubectl apply failed (exit {result.returncode}): {result.stderr.strip()}"
                ).with_context(exit_code=result.returncode)
            )
        for line in result.stdout.splitlines():
            logger.info("manifest.applied", resource=line.strip())
        return Ok(None)

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------

    def get_rollout_status(self, resource_name: str) -> RolloutStatus:
        """Current rollout state of a Deployment (``name`` or ``kind/name``)."""
        target = resource_name if "/" in resource_name else f"deployment/{resource_name}"
        result = self._query(["rollout", "status", target, "--watch=false"])

        if result.returncode == 0:
            if "successfully rolled out" in result.stdout:
                return RolloutStatus.CONVERGED
            return RolloutStatus.IN_PROGRESS
        if _is_unreachable(result.stderr):
            raise TransientQueryFailure(f"rollout status for {target}: {result.stderr.strip()}")
        if "not found" in result.stderr.lower():
            # apply is asynchronous; the object may not be visible yet
            return RolloutStatus.IN_PROGRESS
        logger.warning("rollout.error", resource=target, stderr=result.stderr.strip())
        return RolloutStatus.ERROR

    def list_pods(self, selector: str) -> list[PodStatus]:
        """Pods matching a label selector with their phase."""
        result = self._query(["get", "pods", "--selector", selector, "--output", "json"])
        if result.returncode != 0:
            raise TransientQueryFailure(f"get pods -l {selector}: {result.stderr.strip()}")
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise TransientQueryFailure(f"get pods -l {selector}: unreadable output", cause=exc) from exc

        return [
            PodStatus(
                name=item.get("metadata", {}).get("name", ""),
                phase=item.get("status", {}).get("phase", "Unknown"),
            )
            for item in payload.get("items", [])
        ]

    def _query(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return self._run(args)
        except subprocess.TimeoutExpired as exc:
            raise TransientQueryFailure(f"kubectl {' '.join(args)} timed out", cause=exc) from exc
        except OSError as exc:
            raise TransientQueryFailure(f"kubectl could not be executed: {exc}", cause=exc) from exc
