"""Settings for the background propagator threads.

Settings come from the environment on first use and can be replaced
programmatically::

    from ctxtree.config import PropagatorSettings, configure

    configure(PropagatorSettings(thread_name_prefix="jobs-ctx", daemon=False))

Environment variables:
    CTXTREE_THREAD_NAME_PREFIX  -- name prefix for propagator threads
    CTXTREE_DAEMON_THREADS      -- "1"/"true"/"yes"/"on" for daemon threads
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class PropagatorSettings(BaseModel):
    """How propagator threads are created."""

    model_config = ConfigDict(frozen=True)

    thread_name_prefix: str = Field(
        "ctxtree-propagator", min_length=1, description="Propagator thread name prefix"
    )
    daemon: bool = Field(
        True, description="Run propagators as daemon threads so they never block exit"
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PropagatorSettings:
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        prefix = env.get("CTXTREE_THREAD_NAME_PREFIX")
        if prefix:
            values["thread_name_prefix"] = prefix
        daemon = env.get("CTXTREE_DAEMON_THREADS")
        if daemon is not None:
            values["daemon"] = daemon.strip().lower() in _TRUTHY
        return cls(**values)


_settings: PropagatorSettings | None = None
_settings_lock = threading.Lock()


def get_settings() -> PropagatorSettings:
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = PropagatorSettings.from_env()
        return _settings


def configure(settings: PropagatorSettings | None) -> None:
    """Replace the active settings. ``None`` reloads from the environment."""
    global _settings
    with _settings_lock:
        _settings = settings
