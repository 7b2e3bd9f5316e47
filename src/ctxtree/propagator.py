"""Background observer that links a context to its parent.

Each cancel or deadline context owns exactly one Propagator. It runs in
its own thread and waits for the first of:

1. the context's own signal firing (explicit cancel) -- retire
2. the parent's signal firing -- record Canceled, then retire
3. the deadline passing -- record DeadlineExceeded, then retire

The deadline is a ``time.monotonic()`` target, so stepping the system
clock does not move it. Waits longer than ``threading.TIMEOUT_MAX`` are
taken in slices.

Waiting is a single ``threading.Event.wait`` woken by fire callbacks on
the two signals, with the time left until the deadline as its timeout.
On retiring, the propagator removes its callback from the parent's
signal and forgets the parent, so a long-lived parent never keeps
retired children alive.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from ctxtree.config import get_settings
from ctxtree.errors import Canceled, ContextError, DeadlineExceeded

if TYPE_CHECKING:
    from ctxtree.signal import Signal, SignalView

logger = logging.getLogger(__name__)

_counter = itertools.count(1)


class Propagator:
    """Task handle for one context's observer thread."""

    def __init__(
        self,
        own: Signal,
        parent: SignalView,
        close: Callable[[ContextError], bool],
        deadline: float | None = None,
    ) -> None:
        """*deadline* is a ``time.monotonic()`` value, or None for no timer."""
        self._own: Signal | None = own
        self._parent: SignalView | None = parent
        self._close: Callable[[ContextError], bool] | None = close
        self._deadline = deadline
        self._wake = threading.Event()
        self.reason: ContextError | None = None

        settings = get_settings()
        self._thread = threading.Thread(
            target=self._run,
            name=f"{settings.thread_name_prefix}-{next(_counter)}",
            daemon=settings.daemon,
        )

    def start(self) -> None:
        self._thread.start()

    @property
    def retired(self) -> bool:
        """True once the observer thread has finished."""
        return self._thread.ident is not None and not self._thread.is_alive()

    @property
    def holds_parent(self) -> bool:
        return self._parent is not None

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the observer to retire. Returns False on timeout."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        own, parent, close = self._own, self._parent, self._close
        if own is None or parent is None or close is None:
            return
        name = self._thread.name
        logger.debug("%s started (deadline=%s)", name, self._deadline)

        own_sub = own.on_fire(self._wake.set)
        parent_sub = parent.on_fire(self._wake.set)
        try:
            while True:
                self._wake.clear()
                if own.is_fired:
                    break
                if parent.is_fired:
                    if close(Canceled):
                        self.reason = Canceled
                        logger.debug("%s propagated parent cancellation", name)
                    break
                timeout = None
                if self._deadline is not None:
                    timeout = self._deadline - time.monotonic()
                    if timeout <= 0:
                        if close(DeadlineExceeded):
                            self.reason = DeadlineExceeded
                            logger.debug("%s deadline exceeded", name)
                        break
                    timeout = min(timeout, threading.TIMEOUT_MAX)
                self._wake.wait(timeout)
        finally:
            parent_sub.cancel()
            own_sub.cancel()
            self._own = self._parent = self._close = None
            logger.debug("%s retired", name)
