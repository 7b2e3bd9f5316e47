"""One-shot broadcast signal used by every cancellable context.

A Signal starts unfired and can be fired exactly once. Any number of
threads can block on it, async code can await it, and callbacks can be
registered to run when it fires.

Usage::

    signal = Signal()

    # In a worker loop:
    if signal.is_fired:
        break

    # From whoever decides to stop:
    signal.fire()

Contexts never hand out the Signal itself. ``done()`` returns a
``SignalView``, which can observe but not fire.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable

import anyio

from ctxtree.errors import ContextUsageError

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for a callback registered with ``Signal.on_fire``."""

    __slots__ = ("_signal", "_key")

    def __init__(self, signal: Signal | None, key: int | None) -> None:
        self._signal = signal
        self._key = key

    def cancel(self) -> None:
        """Remove the callback. Safe to call more than once or after firing."""
        signal, self._signal = self._signal, None
        if signal is not None and self._key is not None:
            signal._unsubscribe(self._key)


class Signal:
    """Thread-safe one-shot notification with multiple observers."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._ids = itertools.count()
        self._inert = False

    @classmethod
    def never(cls) -> Signal:
        """Return a signal that can never fire.

        ``on_fire`` registers nothing on it, so any number of observers
        can subscribe without it accumulating state.
        """
        signal = cls()
        signal._inert = True
        return signal

    @property
    def is_fired(self) -> bool:
        """Whether the signal has fired."""
        return self._event.is_set()

    @property
    def can_fire(self) -> bool:
        return not self._inert

    @property
    def subscriber_count(self) -> int:
        """Number of callbacks still waiting for the signal to fire."""
        with self._lock:
            return len(self._callbacks)

    def fire(self) -> bool:
        """Fire the signal and run registered callbacks.

        Returns True for the call that fired it, False if it was already
        fired.
        """
        pending = self._trip()
        if pending is None:
            return False
        self._dispatch(pending)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until fired. Returns False if *timeout* elapsed first."""
        return self._event.wait(timeout)

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Await the signal without blocking the event loop.

        The waiter is a callback that wakes an event on the running loop,
        so no thread is parked per waiter. If the caller is cancelled or
        *timeout* elapses, the callback is removed before returning.
        """
        if self._event.is_set():
            return True
        loop = asyncio.get_running_loop()
        woken = asyncio.Event()

        def wake() -> None:
            try:
                loop.call_soon_threadsafe(woken.set)
            except RuntimeError:
                # Loop already closed; nobody is left to wake.
                pass

        sub = self.on_fire(wake)
        try:
            with anyio.move_on_after(timeout):
                await woken.wait()
        finally:
            sub.cancel()
        return self._event.is_set()

    def on_fire(self, callback: Callable[[], None]) -> Subscription:
        """Register *callback* to run once when the signal fires.

        If the signal already fired, the callback runs immediately in the
        calling thread.
        """
        if self._inert:
            return Subscription(None, None)
        with self._lock:
            if not self._event.is_set():
                key = next(self._ids)
                self._callbacks[key] = callback
                return Subscription(self, key)
        self._dispatch([callback])
        return Subscription(None, None)

    def view(self) -> SignalView:
        return SignalView(self)

    # ------------------------------------------------------------------ #
    # Two-phase firing, used by contexts that must record their error
    # under their own lock in the same step as the state transition.
    # ------------------------------------------------------------------ #

    def _trip(self) -> list[Callable[[], None]] | None:
        if self._inert:
            raise ContextUsageError("an inert signal can never fire")
        with self._lock:
            if self._event.is_set():
                return None
            self._event.set()
            pending = list(self._callbacks.values())
            self._callbacks.clear()
        return pending

    @staticmethod
    def _dispatch(callbacks: list[Callable[[], None]]) -> None:
        for cb in callbacks:
            try:
                cb()
            except Exception:  # noqa: BLE001
                logger.exception("Signal callback %r failed", cb)

    def _unsubscribe(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def __repr__(self) -> str:
        state = "fired" if self.is_fired else "inert" if self._inert else "pending"
        return f"<Signal {state}>"


class SignalView:
    """Observe-only facade over a Signal."""

    __slots__ = ("_signal",)

    def __init__(self, signal: Signal) -> None:
        self._signal = signal

    @property
    def is_fired(self) -> bool:
        return self._signal.is_fired

    @property
    def can_fire(self) -> bool:
        """False only for the root's signal, which never fires."""
        return self._signal.can_fire

    @property
    def subscriber_count(self) -> int:
        return self._signal.subscriber_count

    def wait(self, timeout: float | None = None) -> bool:
        return self._signal.wait(timeout)

    async def wait_async(self, timeout: float | None = None) -> bool:
        return await self._signal.wait_async(timeout)

    def on_fire(self, callback: Callable[[], None]) -> Subscription:
        return self._signal.on_fire(callback)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SignalView):
            return self._signal is other._signal
        return NotImplemented

    def __hash__(self) -> int:
        return id(self._signal)

    def __repr__(self) -> str:
        return f"SignalView({self._signal!r})"
