"""Cross-cutting primitives: error hierarchy, Result envelope, structured logging."""

from shipwright.core.errors import (
    ApplyError,
    BuildError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ImageBuildError,
    PipelineAbortedError,
    PushError,
    ReadinessTimeoutError,
    RunFinalizedError,
    ShipwrightError,
    TransientQueryFailure,
)
from shipwright.core.result import Err, Ok, Result, try_result

__all__ = [
    "ApplyError",
    "BuildError",
    "ConfigurationError",
    "Err",
    "ErrorCategory",
    "ErrorContext",
    "ImageBuildError",
    "Ok",
    "PipelineAbortedError",
    "PushError",
    "ReadinessTimeoutError",
    "Result",
    "RunFinalizedError",
    "ShipwrightError",
    "TransientQueryFailure",
    "try_result",
]
