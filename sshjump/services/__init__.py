"""Session services: port locks, ephemeral keys, tunnel and final session."""

from __future__ import annotations

from sshjump.services.keys import EphemeralKeyPair, KeyManager
from sshjump.services.portlock import PortLock, PortLockManager
from sshjump.services.session import SessionRunner
from sshjump.services.tunnel import TunnelManager, TunnelProcess

__all__ = [
    "EphemeralKeyPair",
    "KeyManager",
    "PortLock",
    "PortLockManager",
    "SessionRunner",
    "TunnelManager",
    "TunnelProcess",
]
