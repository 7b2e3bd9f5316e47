#!/usr/bin/env python3
"""Example: stopping a tree of workers with one context.

Starts a small tree of worker threads under a single timeout context.
Each worker derives its own child context, tags it with a worker id,
and loops until its context is done. Cancelling the root (or letting it
time out) stops every worker, and each one reports why it stopped.

Usage:
  uv run python examples/worker_tree.py
  uv run python examples/worker_tree.py --timeout 0.5 --workers 6
  uv run python examples/worker_tree.py --cancel-after 0.2
"""

import argparse
import logging
import threading
import time

from ctxtree import (
    Context,
    ContextKey,
    DeadlineExceeded,
    background,
    with_cancel,
    with_timeout,
    with_value,
)

WORKER_ID: ContextKey[int] = ContextKey("worker_id")


def worker(ctx: Context, step: float, results: dict[int, str]) -> None:
    wid = WORKER_ID.lookup(ctx, -1)
    ticks = 0
    while not ctx.done().wait(step):
        ticks += 1
    results[wid] = f"stopped after {ticks} ticks: {ctx.err()}"


def main(workers: int, timeout: float, cancel_after: float | None) -> None:
    root, cancel_root = with_timeout(background(), timeout)
    results: dict[int, str] = {}
    threads = []

    for wid in range(workers):
        child, _cancel = with_cancel(with_value(root, WORKER_ID, wid))
        t = threading.Thread(target=worker, args=(child, 0.01 * (wid + 1), results))
        t.start()
        threads.append(t)

    if cancel_after is not None:
        time.sleep(cancel_after)
        print(f"Cancelling root after {cancel_after}s")
        cancel_root()

    for t in threads:
        t.join()
    cancel_root()

    reason = "timed out" if root.err() is DeadlineExceeded else "was cancelled"
    print(f"Root {reason}")
    for wid in sorted(results):
        print(f"  worker {wid}: {results[wid]}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Context tree worker demo")
    parser.add_argument("--workers", type=int, default=4, help="Number of workers")
    parser.add_argument("--timeout", type=float, default=0.3, help="Root timeout in seconds")
    parser.add_argument(
        "--cancel-after",
        type=float,
        default=None,
        help="Cancel the root explicitly after this many seconds",
    )
    parser.add_argument("--debug", action="store_true", help="Log propagator activity")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(threadName)s %(message)s")

    main(args.workers, args.timeout, args.cancel_after)
