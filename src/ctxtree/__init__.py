"""ctxtree -- cancellation, deadline and value propagation for trees of work.

Exposes the context API:
- ``background()`` / ``todo()`` -- root contexts
- ``with_cancel`` / ``with_deadline`` / ``with_timeout`` / ``with_value`` -- derivations
- ``Canceled`` / ``DeadlineExceeded`` -- reasons reported by ``ctx.err()``
- ``Signal`` -- the one-shot broadcast primitive behind ``ctx.done()``
"""

from ctxtree.config import PropagatorSettings, configure, get_settings
from ctxtree.context import (
    CancelFunc,
    Context,
    background,
    todo,
    with_cancel,
    with_deadline,
    with_timeout,
    with_value,
)
from ctxtree.errors import (
    Canceled,
    CanceledError,
    ContextError,
    ContextUsageError,
    DeadlineExceeded,
    DeadlineExceededError,
)
from ctxtree.keys import ContextKey
from ctxtree.signal import Signal, SignalView, Subscription

__all__ = [
    "CancelFunc",
    "Canceled",
    "CanceledError",
    "Context",
    "ContextError",
    "ContextKey",
    "ContextUsageError",
    "DeadlineExceeded",
    "DeadlineExceededError",
    "PropagatorSettings",
    "Signal",
    "SignalView",
    "Subscription",
    "background",
    "configure",
    "get_settings",
    "todo",
    "with_cancel",
    "with_deadline",
    "with_timeout",
    "with_value",
]
