"""Collaborator interfaces for the deployment orchestrator.

The orchestrator depends only on these protocols. Production
implementations live in :mod:`shipwright.deploy.build`,
:mod:`shipwright.deploy.container` and :mod:`shipwright.deploy.control_plane`;
tests pass in-memory fakes.

Failure conventions:
    - ``build``, ``push``, ``tag`` and ``apply`` return ``Err`` with a
      ``BuildError`` / ``PushError`` / ``ImageBuildError`` / ``ApplyError``
      carrying the collaborator's diagnostic text.
    - ``build_image`` raises ``ImageBuildError``.
    - ``get_rollout_status`` and ``list_pods`` raise ``TransientQueryFailure``
      when the control plane cannot be reached.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from shipwright.core.result import Result
from shipwright.deploy.models import ArtifactRef, ImageRef, PodStatus, RolloutStatus


@runtime_checkable
class BuildCollaborator(Protocol):
    """Turns source into a deployable artifact."""

    def build(self) -> Result[ArtifactRef]: ...


@runtime_checkable
class ContainerCollaborator(Protocol):
    """Builds and publishes container images.

    Pushing an already-pushed immutable tag must succeed as a no-op.
    """

    def build_image(self, artifact: ArtifactRef, image: ImageRef) -> ImageRef: ...

    def tag(self, image: ImageRef, alias: str) -> Result[ImageRef]: ...

    def push(self, image: ImageRef) -> Result[None]: ...


@runtime_checkable
class ControlPlaneCollaborator(Protocol):
    """Declarative apply target with eventually-consistent status queries."""

    def apply(self, manifest_text: str) -> Result[None]: ...

    def get_rollout_status(self, resource_name: str) -> RolloutStatus: ...

    def list_pods(self, selector: str) -> list[PodStatus]: ...
