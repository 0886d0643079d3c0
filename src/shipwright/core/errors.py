"""
Structured error types for the shipwright deployment pipeline.

Every failure the pipeline can report is a ``ShipwrightError`` subclass
carrying a category, a retryable flag, structured context and an optional
chained cause. The stage executor records the class name of the error as
the failure kind on the finalized run, so callers can tell a registry
rejection (``PushError``) from a readiness budget running out
(``ReadinessTimeoutError``) without parsing messages.

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │                     ShipwrightError                         │
        │       (category, retryable, context, cause)                 │
        ├────────────────────────────────────────────────────────────┤
        │  ConfigurationError    caught before any external effect    │
        │  BuildError            build collaborator failed            │
        │  ImageBuildError       container image build failed         │
        │  PushError             registry rejected the push           │
        │  ApplyError            control plane rejected a manifest    │
        │  ReadinessTimeoutError readiness budget exhausted           │
        │  TransientQueryFailure collaborator unreachable (polling)   │
        │  PipelineAbortedError  operator cancel observed             │
        │  RunFinalizedError     mutation of a finalized run          │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> error = PushError("denied: requested access to the resource is denied")
    >>> error.category
    <ErrorCategory.REGISTRY: 'REGISTRY'>
    >>> error.retryable
    False

    >>> error = ApplyError("admission webhook denied").with_context(stage="ApplyApplication")
    >>> error.context.stage
    'ApplyApplication'

Tags:
    error-handling, exception-hierarchy, deployment, shipwright
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    CONFIG = "CONFIG"  # Invalid parameters, caught up front
    BUILD = "BUILD"  # Application build command
    CONTAINER = "CONTAINER"  # Image build / tag
    REGISTRY = "REGISTRY"  # Image push
    CONTROL_PLANE = "CONTROL_PLANE"  # Manifest apply, status queries
    TIMEOUT = "TIMEOUT"  # Readiness budget exhausted
    TRANSIENT = "TRANSIENT"  # Unreachable collaborator while polling
    ABORTED = "ABORTED"  # Operator cancel
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only non-None fields end up in ``to_dict()``. Do not store credential
    values here; context is logged verbatim.
    """

    run_id: str | None = None
    stage: str | None = None
    resource: str | None = None
    image: str | None = None
    command: str | None = None
    exit_code: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["run_id", "stage", "resource", "image", "command", "exit_code"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ShipwrightError(Exception):
    """
    Base exception for all shipwright errors.

    Subclasses set ``default_category`` and ``default_retryable``; instances
    may override either. ``cause`` is chained onto ``__cause__`` so tracebacks
    keep the original exception.

    Examples:
        >>> error = ShipwrightError("unexpected state")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["error_type"]
        'ShipwrightError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    @property
    def kind(self) -> str:
        """Failure kind recorded on a finalized run."""
        return self.__class__.__name__

    def with_context(self, **kwargs: Any) -> ShipwrightError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ApplyError("Forbidden").with_context(resource="Deployment/petclinic")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.kind,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(ShipwrightError):
    """
    Invalid pipeline parameters.

    Raised at the orchestrator boundary before any collaborator is called.
    Never retryable. ``problems`` lists every violation found, not just the
    first one.
    """

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, *, problems: list[str] | None = None, **kwargs: Any):
        self.problems = list(problems or [])
        self.summary = message
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message, **kwargs)


# =============================================================================
# COLLABORATOR FAILURES
# =============================================================================


class BuildError(ShipwrightError):
    """The application build command failed or produced no artifact."""

    default_category = ErrorCategory.BUILD


class ImageBuildError(ShipwrightError):
    """The container image could not be built or tagged."""

    default_category = ErrorCategory.CONTAINER


class PushError(ShipwrightError):
    """The registry rejected an image push."""

    default_category = ErrorCategory.REGISTRY


class ApplyError(ShipwrightError):
    """The control plane rejected a manifest."""

    default_category = ErrorCategory.CONTROL_PLANE


# =============================================================================
# READINESS
# =============================================================================


class ReadinessTimeoutError(ShipwrightError):
    """
    Readiness was not reached within the polling budget.

    Fatal for the run but distinct from a hard collaborator error: it carries
    the last observed state and the number of attempts consumed.
    """

    default_category = ErrorCategory.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        last_observed: Any = None,
        attempts: int = 0,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.last_observed = last_observed
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["last_observed"] = str(self.last_observed) if self.last_observed is not None else None
        result["attempts"] = self.attempts
        return result


class TransientQueryFailure(ShipwrightError):
    """A status query could not reach the collaborator.

    Absorbed by the readiness poller as "not ready yet".
    """

    default_category = ErrorCategory.TRANSIENT
    default_retryable = True


# =============================================================================
# RUN LIFECYCLE
# =============================================================================


class PipelineAbortedError(ShipwrightError):
    """An operator cancel was observed at a checkpoint."""

    default_category = ErrorCategory.ABORTED


class RunFinalizedError(ShipwrightError):
    """Attempt to record into, or re-finalize, a finalized run."""

    default_category = ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ShipwrightError",
    "ConfigurationError",
    "BuildError",
    "ImageBuildError",
    "PushError",
    "ApplyError",
    "ReadinessTimeoutError",
    "TransientQueryFailure",
    "PipelineAbortedError",
    "RunFinalizedError",
]
