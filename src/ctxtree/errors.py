"""Errors recorded by contexts and raised on misuse.

Cancellation is never raised by the core. A fired context records one of
the two singleton values below, and callers read it with ``ctx.err()``::

    if ctx.err() is DeadlineExceeded:
        ...

Misuse of the derivation API (a ``None`` parent, an unhashable key) is a
programming error and raises ``ContextUsageError`` immediately.
"""

from __future__ import annotations


class ContextError(Exception):
    """Base class for the reasons a context can be done."""


class CanceledError(ContextError):
    """The context, or one of its ancestors, was explicitly cancelled."""


class DeadlineExceededError(ContextError, TimeoutError):
    """The context's deadline passed before it was cancelled."""


class ContextUsageError(TypeError):
    """A context API was called with arguments it can never accept."""


Canceled = CanceledError("context canceled")
DeadlineExceeded = DeadlineExceededError("deadline exceeded")
