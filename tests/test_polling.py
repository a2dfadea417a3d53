"""Tests for the bounded convergence poller."""

import threading
from unittest.mock import Mock

import pytest

from poolshift.exceptions import ConvergenceTimeoutError, MigrationCancelled, PoolClientError
from poolshift.polling import ConvergencePoller

from tests.fakes import FakeClock


@pytest.fixture
def fast_poller(clock: FakeClock) -> ConvergencePoller:
    return ConvergencePoller(
        interval=1, deadline=5, sleep=clock.sleep, monotonic=clock.monotonic
    )


class TestConvergencePoller:
    """Evaluation, timeout and error semantics."""

    def test_returns_immediately_when_condition_holds(self, fast_poller, clock):
        condition = Mock(return_value=True)

        fast_poller.poll(condition)

        condition.assert_called_once_with()
        assert clock.sleeps == []

    def test_retries_at_interval_until_done(self, fast_poller, clock):
        condition = Mock(side_effect=[False, False, True])

        fast_poller.poll(condition)

        assert condition.call_count == 3
        assert clock.sleeps == [1, 1]

    def test_deadline_exceeded(self, fast_poller, clock):
        condition = Mock(return_value=False)

        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            fast_poller.poll(condition, description="pool web")

        error = exc_info.value
        assert error.interval == 1
        assert error.deadline == 5
        assert error.context["attempts"] == condition.call_count
        assert "pool web" in error.message
        assert sum(clock.sleeps) == 5

    def test_last_sleep_is_clamped_to_deadline(self, clock):
        poller = ConvergencePoller(
            interval=2, deadline=5, sleep=clock.sleep, monotonic=clock.monotonic
        )

        with pytest.raises(ConvergenceTimeoutError):
            poller.poll(Mock(return_value=False))

        assert clock.sleeps == [2, 2, 1]

    def test_condition_error_is_not_retried(self, fast_poller, clock):
        condition = Mock(side_effect=PoolClientError("list failed", status_code=500))

        with pytest.raises(PoolClientError):
            fast_poller.poll(condition)

        condition.assert_called_once_with()
        assert clock.sleeps == []

    def test_cancel_event_stops_polling(self, fast_poller, clock):
        cancel = threading.Event()

        def condition() -> bool:
            cancel.set()
            return False

        with pytest.raises(MigrationCancelled):
            fast_poller.poll(condition, cancel_event=cancel)

        assert clock.sleeps == [1]

    @pytest.mark.parametrize("interval,deadline", [(0, 5), (1, 0), (-1, 5)])
    def test_rejects_non_positive_timing(self, interval, deadline):
        with pytest.raises(ValueError):
            ConvergencePoller(interval=interval, deadline=deadline)
