"""Tests for shipwright.deploy.readiness: bounded polling and cancellation."""

import threading

import pytest

from shipwright.core.errors import (
    ConfigurationError,
    PipelineAbortedError,
    ReadinessTimeoutError,
    TransientQueryFailure,
)
from shipwright.deploy.config import ReadinessBudget
from shipwright.deploy.readiness import CancellationToken, ReadinessCheck, ReadinessPoller


class ScriptedQuery:
    """Returns scripted observations; the last one repeats."""

    def __init__(self, *observations):
        self.observations = list(observations)
        self.calls = 0

    def __call__(self):
        value = self.observations[min(self.calls, len(self.observations) - 1)]
        self.calls += 1
        if isinstance(value, Exception):
            raise value
        return value


class TestReadinessCheck:
    """Test ReadinessCheck construction."""

    def test_defaults(self):
        check = ReadinessCheck("app=mysql", "Running")
        assert check.poll_interval == 10.0
        assert check.max_attempts == 30
        assert check.max_wait_seconds == 290.0

    def test_zero_attempts_rejected(self):
        with pytest.raises(ConfigurationError, match="max_attempts"):
            ReadinessCheck("app=mysql", "Running", max_attempts=0)

    def test_negative_interval_rejected(self):
        with pytest.raises(ConfigurationError, match="poll_interval"):
            ReadinessCheck("app=mysql", "Running", poll_interval=-1)

    def test_from_budget(self):
        check = ReadinessCheck.from_budget(
            "app=mysql", "Running", ReadinessBudget(poll_interval_seconds=2, max_attempts=5)
        )
        assert check.poll_interval == 2
        assert check.max_attempts == 5


class TestReadinessPoller:
    """Test wait_until_ready."""

    def test_ready_on_first_attempt(self, fake_clock):
        query = ScriptedQuery("Running")
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running"), query
        )
        assert result.unwrap() == "Running"
        assert query.calls == 1
        assert fake_clock.sleeps == []

    def test_short_circuits_at_match(self, fake_clock):
        """Match at attempt k: k queries, k-1 sleeps."""
        query = ScriptedQuery("Pending", "Pending", "Running")
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running", poll_interval=10, max_attempts=30), query
        )
        assert result.is_ok()
        assert query.calls == 3
        assert fake_clock.sleeps == [10, 10]

    def test_timeout_after_exactly_max_attempts(self, fake_clock):
        """Never ready: N queries and (N-1) x T of sleep."""
        query = ScriptedQuery("Pending")
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running", poll_interval=10, max_attempts=30), query
        )
        assert result.is_err()
        error = result.error
        assert isinstance(error, ReadinessTimeoutError)
        assert error.attempts == 30
        assert error.last_observed == "Pending"
        assert error.context.resource == "app=mysql"
        assert query.calls == 30
        assert len(fake_clock.sleeps) == 29
        assert fake_clock.now == 290

    def test_total_wait_within_budget(self, fake_clock):
        """A never-ready wait sleeps only between attempts: (N-1) x T, within N x T."""
        check = ReadinessCheck("app=mysql", "Running", poll_interval=3, max_attempts=4)
        ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(check, ScriptedQuery("Pending"))
        assert fake_clock.now == (check.max_attempts - 1) * check.poll_interval
        assert fake_clock.now <= check.max_attempts * check.poll_interval

    def test_single_attempt_never_sleeps(self, fake_clock):
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running", max_attempts=1), ScriptedQuery("Pending")
        )
        assert result.is_err()
        assert fake_clock.sleeps == []

    def test_transient_failures_consume_attempts(self, fake_clock):
        query = ScriptedQuery(
            TransientQueryFailure("connection refused"),
            TransientQueryFailure("connection refused"),
            "Running",
        )
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running", max_attempts=5), query
        )
        assert result.unwrap() == "Running"
        assert query.calls == 3

    def test_transient_failures_until_timeout(self, fake_clock):
        failure = TransientQueryFailure("unable to connect to the server")
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("app=mysql", "Running", max_attempts=3), ScriptedQuery(failure)
        )
        error = result.error
        assert isinstance(error, ReadinessTimeoutError)
        assert error.cause is failure
        assert "query failed" in error.last_observed

    def test_other_exceptions_propagate(self, fake_clock):
        with pytest.raises(KeyError):
            ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
                ReadinessCheck("app=mysql", "Running"), ScriptedQuery(KeyError("bug"))
            )

    def test_enum_expected_state(self, fake_clock):
        from shipwright.deploy.models import RolloutStatus

        query = ScriptedQuery(RolloutStatus.IN_PROGRESS, RolloutStatus.ERROR, RolloutStatus.CONVERGED)
        result = ReadinessPoller(sleep=fake_clock.sleep).wait_until_ready(
            ReadinessCheck("deployment/petclinic", RolloutStatus.CONVERGED), query
        )
        assert result.unwrap() == RolloutStatus.CONVERGED
        assert query.calls == 3


class TestCancellation:
    """Cancellation is observed before queries and after sleeps."""

    def test_token(self):
        token = CancellationToken()
        assert not token.is_cancelled
        token.raise_if_cancelled()
        token.cancel("operator")
        assert token.is_cancelled
        assert token.reason == "operator"
        with pytest.raises(PipelineAbortedError, match="operator"):
            token.raise_if_cancelled()

    def test_cancelled_before_first_query(self, fake_clock):
        token = CancellationToken()
        token.cancel("stop")
        query = ScriptedQuery("Running")
        result = ReadinessPoller(sleep=fake_clock.sleep, cancel_token=token).wait_until_ready(
            ReadinessCheck("app=mysql", "Running"), query
        )
        assert isinstance(result.error, PipelineAbortedError)
        assert query.calls == 0

    def test_cancel_during_sleep_stops_polling(self):
        token = CancellationToken()

        def sleep(seconds):
            token.cancel("operator")

        query = ScriptedQuery("Pending")
        result = ReadinessPoller(sleep=sleep, cancel_token=token).wait_until_ready(
            ReadinessCheck("app=mysql", "Running"), query
        )
        assert isinstance(result.error, PipelineAbortedError)
        assert result.error.message == "operator"
        assert result.error.context.metadata["attempts"] == 1
        assert query.calls == 1

    def test_cancel_from_other_thread(self):
        token = CancellationToken()
        thread = threading.Thread(target=token.cancel, args=("signal",))
        thread.start()
        thread.join()
        assert token.is_cancelled
