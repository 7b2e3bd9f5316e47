"""Shared test helpers: eventual-consistency waits and timing slack.

Propagation from a parent to its children happens on background
threads, so tests wait on the child's signal with a generous timeout
instead of sleeping for a fixed time.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from ctxtree import Context, with_cancel

# Upper bound for anything that should happen "promptly".
PROMPT = 2.0


def wait_done(ctx: Context, timeout: float = PROMPT) -> bool:
    """Block until *ctx* is done. Returns False on timeout."""
    return ctx.done().wait(timeout)


def eventually(predicate: Callable[[], bool], timeout: float = PROMPT) -> bool:
    """Poll *predicate* until it holds or *timeout* elapses.

    Only for state that has no signal to wait on (thread liveness,
    garbage collection).
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def chain(depth: int, root: Context) -> list[Context]:
    """Build *depth* nested cancel contexts under *root*; returns them root-first."""
    nodes = []
    ctx = root
    for _ in range(depth):
        ctx, _cancel = with_cancel(ctx)
        nodes.append(ctx)
    return nodes
