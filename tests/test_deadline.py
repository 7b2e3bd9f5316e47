"""Tests for deadline and timeout contexts.

Covers:
- past deadlines: done at creation with DeadlineExceeded, no observer
- timeouts firing within a small margin
- parent cancellation preempting a longer timeout
- explicit cancel superseding the timer
- deadline() reporting and datetime/timedelta arguments
- far-future and non-finite deadlines
- timers unaffected by wall-clock steps
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta

import pytest

from ctxtree import (
    Canceled,
    ContextUsageError,
    DeadlineExceeded,
    DeadlineExceededError,
    background,
    with_cancel,
    with_deadline,
    with_timeout,
    with_value,
)
from helpers import PROMPT, wait_done


class TestPastDeadline:
    def test_past_deadline_is_done_immediately(self):
        ctx, cancel = with_deadline(background(), time.time() - 3600)
        assert ctx.done().is_fired
        assert ctx.err() is DeadlineExceeded
        assert ctx.propagator is None
        cancel()
        assert ctx.err() is DeadlineExceeded

    def test_negative_timeout(self):
        ctx, _ = with_timeout(background(), -1)
        assert ctx.done().is_fired
        assert ctx.err() is DeadlineExceeded

    def test_past_deadline_still_reported(self):
        when = time.time() - 10
        ctx, _ = with_deadline(background(), when)
        assert ctx.deadline() == (when, True)


class TestTimeout:
    def test_timeout_fires_with_deadline_exceeded(self):
        start = time.monotonic()
        ctx, cancel = with_timeout(background(), 0.001)
        assert wait_done(ctx)
        elapsed = time.monotonic() - start
        assert ctx.err() is DeadlineExceeded
        assert elapsed < 0.5
        cancel()

    def test_timeout_does_not_fire_early(self):
        ctx, cancel = with_timeout(background(), 0.1)
        assert ctx.done().wait(0.02) is False
        assert ctx.err() is None
        assert wait_done(ctx)
        assert ctx.err() is DeadlineExceeded
        cancel()

    def test_future_deadline(self):
        ctx, cancel = with_deadline(background(), time.time() + 0.01)
        assert wait_done(ctx)
        assert ctx.err() is DeadlineExceeded
        cancel()

    def test_deadline_error_is_timeout_error(self):
        ctx, _ = with_timeout(background(), 0.001)
        assert wait_done(ctx)
        assert isinstance(ctx.err(), DeadlineExceededError)
        assert isinstance(ctx.err(), TimeoutError)

    def test_deadline_propagates_to_children(self):
        parent, _ = with_timeout(background(), 0.01)
        child, cancel_child = with_cancel(parent)
        assert wait_done(child)
        assert parent.err() is DeadlineExceeded
        # The child was cancelled by its parent, not by its own deadline.
        assert child.err() is Canceled
        cancel_child()

    def test_none_parent_raises(self):
        with pytest.raises(ContextUsageError):
            with_timeout(None, 1)  # type: ignore[arg-type]
        with pytest.raises(ContextUsageError):
            with_deadline(None, time.time() + 1)  # type: ignore[arg-type]


class TestRace:
    def test_parent_cancel_preempts_longer_timeout(self):
        parent, cancel_parent = with_cancel(background())
        ctx, cancel = with_timeout(parent, 0.2)
        time.sleep(0.001)
        cancel_parent()
        assert wait_done(ctx)
        assert ctx.err() is Canceled
        # The timer passing later must not change the recorded reason.
        time.sleep(0.25)
        assert ctx.err() is Canceled
        cancel()

    def test_explicit_cancel_supersedes_timer(self):
        ctx, cancel = with_timeout(background(), 0.05)
        cancel()
        assert ctx.err() is Canceled
        time.sleep(0.1)
        assert ctx.err() is Canceled

    def test_shorter_child_timeout_wins(self):
        parent, cancel_parent = with_timeout(background(), 60)
        child, cancel_child = with_timeout(parent, 0.01)
        assert wait_done(child)
        assert child.err() is DeadlineExceeded
        assert parent.err() is None
        cancel_child()
        cancel_parent()

    def test_exactly_one_reason_recorded(self):
        for _ in range(20):
            ctx, cancel = with_timeout(background(), 0.001)
            time.sleep(0.001)
            cancel()
            assert wait_done(ctx)
            assert ctx.err() in (Canceled, DeadlineExceeded)


class TestDeadlineReporting:
    def test_deadline_reported(self):
        when = time.time() + 60
        ctx, cancel = with_deadline(background(), when)
        assert ctx.deadline() == (when, True)
        cancel()
        assert ctx.deadline() == (when, True)

    def test_timeout_deadline_is_absolute(self):
        before = time.time()
        ctx, cancel = with_timeout(background(), 30)
        when, ok = ctx.deadline()
        assert ok
        assert when is not None
        assert before + 30 <= when <= time.time() + 30
        cancel()

    def test_datetime_deadline(self):
        when = datetime.now() + timedelta(minutes=1)
        ctx, cancel = with_deadline(background(), when)
        assert ctx.deadline() == (when.timestamp(), True)
        cancel()

    def test_timedelta_timeout(self):
        ctx, cancel = with_timeout(background(), timedelta(milliseconds=5))
        assert wait_done(ctx)
        assert ctx.err() is DeadlineExceeded
        cancel()

    def test_value_child_reports_parent_deadline(self):
        when = time.time() + 60
        parent, cancel = with_deadline(background(), when)
        assert with_value(parent, "k", 1).deadline() == (when, True)
        cancel()


class TestExtremeDeadlines:
    @pytest.mark.parametrize(
        "derive",
        [
            lambda p: with_deadline(p, datetime(9999, 1, 1)),
            lambda p: with_timeout(p, 1e10),
        ],
        ids=["year-9999", "huge-timeout"],
    )
    def test_far_future_deadline_follows_parent(self, derive):
        parent, cancel_parent = with_cancel(background())
        ctx, cancel = derive(parent)
        # Give the observer time to reach its wait.
        assert ctx.done().wait(0.05) is False
        assert ctx.err() is None
        cancel_parent()
        assert wait_done(ctx)
        assert ctx.err() is Canceled
        assert ctx.propagator is not None
        assert ctx.propagator.join(PROMPT)
        cancel()

    def test_far_future_deadline_stays_pending(self):
        ctx, cancel = with_timeout(background(), 1e10)
        assert ctx.done().wait(0.05) is False
        assert ctx.propagator is not None
        assert ctx.propagator.retired is False
        cancel()
        assert ctx.err() is Canceled
        assert ctx.propagator.join(PROMPT)

    @pytest.mark.parametrize("when", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_deadline_rejected(self, when):
        with pytest.raises(ContextUsageError):
            with_deadline(background(), when)

    @pytest.mark.parametrize("timeout", [float("nan"), float("inf")])
    def test_non_finite_timeout_rejected(self, timeout):
        with pytest.raises(ContextUsageError):
            with_timeout(background(), timeout)


class TestClock:
    def test_wall_clock_step_does_not_delay_timer(self, monkeypatch):
        ctx, cancel = with_timeout(background(), 0.05)
        reported = ctx.deadline()
        real = time.time
        monkeypatch.setattr(time, "time", lambda: real() - 3600)
        assert wait_done(ctx)
        assert ctx.err() is DeadlineExceeded
        assert ctx.deadline() == reported
        cancel()

    def test_error_messages(self):
        assert str(DeadlineExceeded) == "deadline exceeded"
        assert str(Canceled) == "context canceled"
