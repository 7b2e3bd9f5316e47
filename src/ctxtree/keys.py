"""Typed keys for values carried by contexts.

Any hashable value works as a key, but plain strings collide as soon as
two modules pick the same name. A ``ContextKey`` compares by identity,
so each module-level key is distinct no matter what it is called::

    REQUEST_ID: ContextKey[str] = ContextKey("request_id")

    ctx = with_value(background(), REQUEST_ID, "r-42")
    REQUEST_ID.lookup(ctx)  # "r-42"
"""

from __future__ import annotations

from collections.abc import Hashable
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload

from ctxtree.errors import ContextUsageError

if TYPE_CHECKING:
    from ctxtree.context import Context

T = TypeVar("T")
D = TypeVar("D")


class ContextKey(Generic[T]):
    """A distinct token naming one kind of context value."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    @overload
    def lookup(self, ctx: Context) -> T | None: ...

    @overload
    def lookup(self, ctx: Context, default: D) -> T | D: ...

    def lookup(self, ctx: Context, default: Any = None) -> Any:
        """Return the value bound to this key in *ctx*, or *default*."""
        return ctx.value(self, default)

    def __repr__(self) -> str:
        return f"ContextKey({self.name!r})"


def check_key(key: object) -> None:
    """Raise ContextUsageError if *key* cannot be used for value lookup."""
    if key is None:
        raise ContextUsageError("context key cannot be None")
    if not isinstance(key, Hashable):
        raise ContextUsageError(f"context key {key!r} is not hashable")
    try:
        hash(key)
    except TypeError as e:
        # Tuples holding lists pass the isinstance check but fail here.
        raise ContextUsageError(f"context key {key!r} is not hashable") from e
