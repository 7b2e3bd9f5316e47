"""Context tree: cancellation, deadlines and request-scoped values.

A context is handed down through a tree of operations. Whoever holds the
root can stop the whole tree with one call; every operation below it
polls or waits on its own context to learn when to stop.

Derivations:
- ``with_cancel(parent)``: cancellable child, returns ``(ctx, cancel)``
- ``with_deadline(parent, when)``: child that cancels itself at *when*
- ``with_timeout(parent, seconds)``: ``with_deadline`` relative to now
- ``with_value(parent, key, value)``: child carrying one key/value pair

Usage::

    ctx, cancel = with_timeout(background(), 5.0)
    try:
        for item in work:
            if ctx.done().is_fired:
                break
            process(item)
    finally:
        cancel()

    if ctx.err() is DeadlineExceeded:
        ...

Cancellation is cooperative. Firing a context only records the reason
and wakes waiters; it never interrupts running code.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Hashable
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from ctxtree.errors import Canceled, ContextError, ContextUsageError, DeadlineExceeded
from ctxtree.keys import check_key
from ctxtree.propagator import Propagator
from ctxtree.signal import Signal, SignalView

logger = logging.getLogger(__name__)

CancelFunc = Callable[[], None]


@runtime_checkable
class Context(Protocol):
    """Capabilities shared by every node in the tree."""

    def deadline(self) -> tuple[float | None, bool]:
        """Return ``(timestamp, True)`` if this node has a deadline, else ``(None, False)``."""
        ...

    def done(self) -> SignalView:
        """Signal that fires when work under this context should stop."""
        ...

    def err(self) -> ContextError | None:
        """None until ``done()`` fires, then Canceled or DeadlineExceeded."""
        ...

    def value(self, key: Hashable, default: Any = None) -> Any:
        """Value bound to *key* here or in an ancestor, else *default*."""
        ...


# ------------------------------------------------------------------ #
# Root
# ------------------------------------------------------------------ #


class _RootContext:
    __slots__ = ("_name",)

    _never = Signal.never().view()

    def __init__(self, name: str) -> None:
        self._name = name

    def deadline(self) -> tuple[float | None, bool]:
        return None, False

    def done(self) -> SignalView:
        return self._never

    def err(self) -> ContextError | None:
        return None

    def value(self, key: Hashable, default: Any = None) -> Any:
        return default

    def __repr__(self) -> str:
        return f"context.{self._name}()"


_background = _RootContext("background")
_todo = _RootContext("todo")


def background() -> Context:
    """Root context for top-level operations. Never cancelled."""
    return _background


def todo() -> Context:
    """Placeholder root for call sites that do not have a context yet."""
    return _todo


# ------------------------------------------------------------------ #
# Cancel
# ------------------------------------------------------------------ #


class _CancelContext:
    """Context with its own signal, fired by ``cancel()`` or by the parent."""

    def __init__(self, parent: Context) -> None:
        self._parent = parent
        self._lock = threading.Lock()
        self._signal = Signal()
        self._err: ContextError | None = None
        self._propagator: Propagator | None = None

    def deadline(self) -> tuple[float | None, bool]:
        return None, False

    def done(self) -> SignalView:
        return self._signal.view()

    def err(self) -> ContextError | None:
        with self._lock:
            return self._err

    def value(self, key: Hashable, default: Any = None) -> Any:
        return _lookup(self._parent, key, default)

    @property
    def propagator(self) -> Propagator | None:
        """Observer linking this node to its parent; None if never started."""
        return self._propagator

    def cancel(self) -> None:
        self._close(Canceled)

    def _close(self, err: ContextError) -> bool:
        """Record *err* and fire, unless already fired. First writer wins."""
        with self._lock:
            if self._err is not None:
                return False
            self._err = err
            pending = self._signal._trip()
        if pending:
            Signal._dispatch(pending)
        return True

    def _start(self, expires_at: float | None = None) -> None:
        parent_done = self._parent.done()
        if parent_done.is_fired:
            self._close(Canceled)
            return
        self._propagator = Propagator(self._signal, parent_done, self._close, expires_at)
        self._propagator.start()

    def __repr__(self) -> str:
        return f"{self._parent!r}.with_cancel"


def with_cancel(parent: Context) -> tuple[Context, CancelFunc]:
    """Derive a context that is cancelled by the returned function or by *parent*."""
    if parent is None:
        raise ContextUsageError("cannot create cancel context from a None parent")
    ctx = _CancelContext(parent)
    ctx._start()
    return ctx, ctx.cancel


# ------------------------------------------------------------------ #
# Deadline
# ------------------------------------------------------------------ #


class _DeadlineContext(_CancelContext):
    """Cancel context that also fires with DeadlineExceeded at a fixed time."""

    def __init__(self, parent: Context, when: float) -> None:
        super().__init__(parent)
        self._deadline = when

    def deadline(self) -> tuple[float | None, bool]:
        return self._deadline, True

    def __repr__(self) -> str:
        return f"{self._parent!r}.with_deadline({self._deadline:.3f})"


def with_deadline(parent: Context, when: float | datetime) -> tuple[Context, CancelFunc]:
    """Derive a context that is done at *when* at the latest.

    *when* is a POSIX timestamp or a datetime. A deadline already in the
    past yields a context that is done from the start. The timer itself
    runs on the monotonic clock; *when* is only what ``deadline()`` reports.
    """
    if parent is None:
        raise ContextUsageError("cannot create deadline context from a None parent")
    if isinstance(when, datetime):
        when = when.timestamp()

    when = float(when)
    if not math.isfinite(when):
        raise ContextUsageError(f"deadline must be a finite timestamp, got {when!r}")

    ctx = _DeadlineContext(parent, when)
    remaining = when - time.time()
    if remaining <= 0:
        ctx._close(DeadlineExceeded)
        logger.debug("deadline %s already passed at creation", when)
        return ctx, ctx.cancel

    ctx._start(time.monotonic() + remaining)
    return ctx, ctx.cancel


def with_timeout(parent: Context, timeout: float | timedelta) -> tuple[Context, CancelFunc]:
    """``with_deadline(parent, now + timeout)``; *timeout* in seconds or a timedelta."""
    if parent is None:
        raise ContextUsageError("cannot create timeout context from a None parent")
    if isinstance(timeout, timedelta):
        timeout = timeout.total_seconds()
    return with_deadline(parent, time.time() + timeout)


# ------------------------------------------------------------------ #
# Value
# ------------------------------------------------------------------ #


class _ValueContext:
    """Delegates everything to the parent except lookups of its own key."""

    __slots__ = ("_parent", "_key", "_val")

    def __init__(self, parent: Context, key: Hashable, val: Any) -> None:
        self._parent = parent
        self._key = key
        self._val = val

    def deadline(self) -> tuple[float | None, bool]:
        return self._parent.deadline()

    def done(self) -> SignalView:
        return self._parent.done()

    def err(self) -> ContextError | None:
        return self._parent.err()

    def value(self, key: Hashable, default: Any = None) -> Any:
        return _lookup(self, key, default)

    def __repr__(self) -> str:
        return f"{self._parent!r}.with_value({self._key!r}, {type(self._val).__name__})"


def with_value(parent: Context, key: Hashable, value: Any) -> Context:
    """Derive a context where *key* maps to *value*, shadowing ancestors."""
    if parent is None:
        raise ContextUsageError("cannot create value context from a None parent")
    check_key(key)
    return _ValueContext(parent, key, value)


def _lookup(ctx: Context, key: Hashable, default: Any) -> Any:
    # Value chains may be deeper than the recursion limit.
    while True:
        if isinstance(ctx, _ValueContext):
            if ctx._key == key:
                return ctx._val
            ctx = ctx._parent
        elif isinstance(ctx, _CancelContext):
            ctx = ctx._parent
        else:
            return ctx.value(key, default)
