"""Core ssh-jump functionality."""

from __future__ import annotations

from sshjump.core.signals import (
    get_cleanup_instance,
    set_cleanup_instance,
    setup_signal_handlers,
)

__all__ = [
    "setup_signal_handlers",
    "set_cleanup_instance",
    "get_cleanup_instance",
]
