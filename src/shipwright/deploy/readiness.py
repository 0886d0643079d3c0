"""Bounded readiness polling.

Example:
    >>> from shipwright.deploy.readiness import ReadinessCheck, ReadinessPoller
    >>>
    >>> check = ReadinessCheck("app=mysql", expected_state="Running", poll_interval=10, max_attempts=30)
    >>> result = ReadinessPoller().wait_until_ready(check, lambda: control_plane.pod_phase("app=mysql"))
    >>> result.is_ok()
    True

The poller queries, compares against the expected state and sleeps a fixed
interval between attempts. It never sleeps after a match or after the last
attempt. Query failures that are ``TransientQueryFailure`` count as "not
ready" and consume an attempt. Cancellation is observed before each query
and after each sleep, never during one.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from shipwright.core.errors import (
    ConfigurationError,
    PipelineAbortedError,
    ReadinessTimeoutError,
    TransientQueryFailure,
)
from shipwright.core.logging import get_logger
from shipwright.core.result import Err, Ok, Result
from shipwright.deploy.config import ReadinessBudget

logger = get_logger(__name__)


class CancellationToken:
    """Operator cancel signal, safe to trigger from another thread or a signal handler."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "aborted") -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise PipelineAbortedError(self._reason or "aborted")


@dataclass(frozen=True)
class ReadinessCheck:
    """What to wait for and how long.

    Only lives for the duration of one wait.

    Raises:
        ConfigurationError: ``max_attempts`` below 1 or a negative interval.
    """

    resource_selector: str
    expected_state: Any
    poll_interval: float = 10.0
    max_attempts: int = 30

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"ReadinessCheck for {self.resource_selector!r}: max_attempts must be >= 1 "
                f"(got {self.max_attempts})"
            )
        if self.poll_interval < 0:
            raise ConfigurationError(
                f"ReadinessCheck for {self.resource_selector!r}: poll_interval must be >= 0"
            )

    @classmethod
    def from_budget(cls, selector: str, expected: Any, budget: ReadinessBudget) -> ReadinessCheck:
        return cls(
            resource_selector=selector,
            expected_state=expected,
            poll_interval=budget.poll_interval_seconds,
            max_attempts=budget.max_attempts,
        )

    @property
    def max_wait_seconds(self) -> float:
        return self.poll_interval * (self.max_attempts - 1)


class ReadinessPoller:
    """Repeatedly evaluates a query until it matches or the budget runs out.

    Args:
        sleep: Blocking sleep function (injectable for tests)
        cancel_token: Checked before each attempt and after each sleep
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._sleep = sleep
        self._cancel_token = cancel_token

    def _cancelled(self) -> bool:
        return self._cancel_token is not None and self._cancel_token.is_cancelled

    def wait_until_ready(self, check: ReadinessCheck, query: Callable[[], Any]) -> Result[Any]:
        """Poll ``query`` until it returns ``check.expected_state``.

        Returns:
            ``Ok(observed)`` on a match, ``Err(ReadinessTimeoutError)`` when the
            budget is exhausted, ``Err(PipelineAbortedError)`` on cancel.
        """
        last_observed: Any = None
        last_failure: TransientQueryFailure | None = None

        for attempt in range(1, check.max_attempts + 1):
            if self._cancelled():
                return Err(self._aborted(check, attempt - 1))

            try:
                observed = query()
            except TransientQueryFailure as exc:
                last_failure = exc
                last_observed = f"query failed: {exc.message}"
                logger.warning(
                    "readiness.query_failed",
                    selector=check.resource_selector,
                    attempt=attempt,
                    max_attempts=check.max_attempts,
                    error=exc.message,
                )
            else:
                last_observed = observed
                last_failure = None
                if observed == check.expected_state:
                    logger.info(
                        "readiness.reached",
                        selector=check.resource_selector,
                        attempt=attempt,
                        observed=str(observed),
                    )
                    return Ok(observed)
                logger.info(
                    "readiness.attempt",
                    selector=check.resource_selector,
                    attempt=attempt,
                    max_attempts=check.max_attempts,
                    observed=str(observed),
                    expected=str(check.expected_state),
                )

            if attempt < check.max_attempts:
                self._sleep(check.poll_interval)
                if self._cancelled():
                    return Err(self._aborted(check, attempt))

        logger.warning(
            "readiness.timeout",
            selector=check.resource_selector,
            attempts=check.max_attempts,
            last_observed=str(last_observed),
        )
        return Err(
            ReadinessTimeoutError(
                f"{check.resource_selector} not {check.expected_state} after "
                f"{check.max_attempts} attempts (last observed: {last_observed})",
                last_observed=last_observed,
                attempts=check.max_attempts,
                cause=last_failure,
            ).with_context(resource=check.resource_selector)
        )

    def _aborted(self, check: ReadinessCheck, attempts: int) -> PipelineAbortedError:
        reason = self._cancel_token.reason if self._cancel_token else "aborted"
        logger.warning("readiness.aborted", selector=check.resource_selector, attempts=attempts)
        error = PipelineAbortedError(reason or "aborted")
        return error.with_context(resource=check.resource_selector, attempts=attempts)
