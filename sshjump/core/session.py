"""Per-session state shared by every component and the cleanup handler."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from sshjump.core.config import SessionConfig


@dataclass
class RegisteredResource:
    """A live resource and the action that releases it."""

    resource: Any
    release: Callable[[Any], None]


class SessionContext:
    """Explicit session state constructed before any resource is acquired.

    Components register each resource they acquire together with its release
    action; the cleanup manager takes the whole registry exactly once.

    Parameters
    ----------
    config : SessionConfig
        Immutable session input
    plugin_dir : Path
        Directory for port markers and the ephemeral keypair
    """

    def __init__(self, config: SessionConfig, plugin_dir: Path) -> None:
        self.config = config
        self.plugin_dir = plugin_dir
        self.resources: dict[str, RegisteredResource] = {}
        self.resources_lock = threading.Lock()

    def register(self, kind: str, resource: Any, release: Callable[[Any], None]) -> Any:
        """Record ``resource`` for teardown and return it."""
        with self.resources_lock:
            if kind in self.resources:
                raise RuntimeError(f"Resource '{kind}' already registered for this session")
            self.resources[kind] = RegisteredResource(resource=resource, release=release)
        return resource

    def get(self, kind: str) -> Any | None:
        with self.resources_lock:
            entry = self.resources.get(kind)
        return entry.resource if entry else None

    def take_all(self) -> dict[str, RegisteredResource]:
        """Atomically remove and return every registered resource."""
        with self.resources_lock:
            taken = dict(self.resources)
            self.resources.clear()
        return taken
