"""Container image collaborator for shipwright.

Builds, tags and pushes images via the ``docker`` CLI (subprocess).
No ``docker-py`` dependency.

Key Concepts:
    DockerImagePublisher: ``build_image()``, ``tag()``, ``push()``.
    Immutable tag: the per-run build identifier. Pushing it again is
        idempotent (the registry answers "Layer already exists").
    Alias tag: mutable convenience tag (``latest``) pointing at the same
        content. Created with ``tag()`` and pushed after the immutable tag.

Architecture Decisions:
    - subprocess, not docker-py: works with any runtime exposing a
      ``docker`` CLI (Docker, Podman, Colima).
    - ``build_image`` raises ``ImageBuildError``; ``tag``/``push`` return
      ``Err`` so the orchestrator can treat an alias failure as non-fatal.
    - The artifact reaches the Dockerfile through a build arg, relative to
      the build context.

Related Modules:
    - :mod:`shipwright.deploy.config` — ContainerConfig
    - :mod:`shipwright.deploy.orchestrator` — Containerize / Publish stages

Tags:
    container, docker, image, registry, subprocess, shipwright
"""

from __future__ import annotations

import os
import shutil
import subprocess

from shipwright.core.errors import ImageBuildError, PushError, ShipwrightError
from shipwright.core.logging import get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.config import ContainerConfig
from shipwright.deploy.models import ArtifactRef, ImageRef

logger = get_logger(__name__)


class DockerImagePublisher:
    """Container collaborator backed by the docker CLI.

    Parameters
    ----------
    config
        Binary, build context, Dockerfile and build args.

    Example::

        publisher = DockerImagePublisher(ContainerConfig(context_dir="."))
        image = publisher.build_image(artifact, ImageRef(repository="registry/petclinic", tag="42"))
        publisher.push(image)
    """

    def __init__(self, config: ContainerConfig | None = None) -> None:
        self.config = config or ContainerConfig()

    def is_available(self) -> bool:
        """Check if the docker CLI is installed and the daemon is running."""
        docker = shutil.which(self.config.docker)
        if docker is None:
            return False
        try:
            result = subprocess.run([docker, "info"], capture_output=True, timeout=10)
            return result.returncode == 0
        except (subprocess.TimeoutExpired, OSError):
            return False

    # ------------------------------------------------------------------
    # Image operations
    # ------------------------------------------------------------------

    def build_image(self, artifact: ArtifactRef, image: ImageRef) -> ImageRef:
        """Build ``image`` from the configured Dockerfile.

        Raises
        ------
        ImageBuildError
            If ``docker build`` fails or times out.
        """
        cfg = self.config
        args = ["build", "--tag", image.reference, "--file", cfg.dockerfile]
        if cfg.artifact_build_arg:
            args += ["--build-arg", f"{cfg.artifact_build_arg}={self._artifact_arg(artifact)}"]
        for key, value in cfg.build_args.items():
            args += ["--build-arg", f"{key}={value}"]
        if cfg.platform:
            args += ["--platform", cfg.platform]
        args.append(cfg.context_dir)

        logger.info("image.build_started", image=image.reference, artifact=artifact.path)
        self._run_docker(args, timeout=cfg.timeout_seconds, error_cls=ImageBuildError)
        logger.info("image.built", image=image.reference)
        return image

    def tag(self, image: ImageRef, alias: str) -> Result[ImageRef]:
        """Point ``repository:alias`` at the same content as ``image``."""
        aliased = image.with_tag(alias)
        try:
            self._run_docker(["tag", image.reference, aliased.reference], error_cls=ImageBuildError)
        except ImageBuildError as exc:
            return Err(exc)
        return Ok(aliased)

    def push(self, image: ImageRef) -> Result[None]:
        """Push one tag. Re-pushing identical content is a no-op success."""
        logger.info("image.push_started", image=image.reference)
        try:
            self._run_docker(
                ["push", image.reference],
                timeout=self.config.timeout_seconds,
                error_cls=PushError,
            )
        except PushError as exc:
            logger.error("image.push_failed", image=image.reference, error=exc.message)
            return Err(exc)
        logger.info("image.pushed", image=image.reference)
        return Ok(None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _artifact_arg(self, artifact: ArtifactRef) -> str:
        context = os.path.abspath(self.config.context_dir)
        path = os.path.abspath(artifact.path)
        if os.path.commonpath([context, path]) == context:
            return os.path.relpath(path, context).replace(os.sep, "/")
        return artifact.path

    def _run_docker(
        self,
        args: list[str],
        timeout: int = 60,
        error_cls: type[ShipwrightError] = ImageBuildError,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker CLI command, raising ``error_cls`` on failure."""
        cmd = [self.config.docker, *args]
        logger.debug("docker.exec", cmd=" ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise error_cls(
                f"Docker command timed out after {timeout}s: {' '.join(args)}",
                cause=exc,
            ).with_context(command=" ".join(cmd)) from exc
        except OSError as exc:
            raise error_cls(
                f"Docker CLI {self.config.docker!r} could not be executed: {exc}",
                cause=exc,
            ).with_context(command=" ".join(cmd)) from exc

        if result.returncode != 0:
            raise error_cls(
                f"Docker command failed (exit {result.returncode}): "
                f"{' '.join(args)}\n{result.stderr.strip()}"
            ).with_context(command=" ".join(cmd), exit_code=result.returncode)
        return result
