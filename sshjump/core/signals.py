"""Signal and exit handling for guaranteed cleanup."""

from __future__ import annotations

import atexit
import signal
import threading
import types
from typing import Protocol


class CleanupHandler(Protocol):
    """Protocol for cleanup handler (SSHJump instance)."""

    def _cleanup_resources(
        self, signum: int | None = None, frame: types.FrameType | None = None
    ) -> None:
        """Handle cleanup resources."""
        ...


class CleanupInstanceManager:
    """Thread-safe manager for the cleanup instance.

    Uses a single reentrant lock to protect both getting and invoking the
    instance, so a second signal arriving mid-cleanup re-enters instead of
    deadlocking and the handler sees its own in-progress flag.
    """

    def __init__(self) -> None:
        """Initialize the cleanup instance manager."""
        self._lock = threading.RLock()
        self._instance: CleanupHandler | None = None

    def set(self, instance: CleanupHandler | None) -> None:
        """Set the cleanup instance.

        Parameters
        ----------
        instance : CleanupHandler | None
            The SSHJump instance that will handle cleanup
        """
        with self._lock:
            self._instance = instance

    def get(self) -> CleanupHandler | None:
        """Get the current cleanup instance.

        Returns
        -------
        CleanupHandler | None
            The SSHJump instance handling cleanup, or None if not set
        """
        with self._lock:
            return self._instance

    def cleanup_with_lock(self, signum: int | None, frame: types.FrameType | None) -> None:
        """Perform cleanup with lock protection against concurrent set(None) calls.

        Parameters
        ----------
        signum : int | None
            Signal number, or None when invoked at interpreter exit
        frame : types.FrameType | None
            Signal frame
        """
        with self._lock:
            instance = self._instance
            if instance is not None:
                instance._cleanup_resources(signum=signum, frame=frame)


_cleanup_manager = CleanupInstanceManager()

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)

_installed = False


def _signal_handler(signum: int, frame: types.FrameType | None) -> None:
    _cleanup_manager.cleanup_with_lock(signum=signum, frame=frame)


def _exit_handler() -> None:
    _cleanup_manager.cleanup_with_lock(signum=None, frame=None)


def setup_signal_handlers() -> None:
    """Route SIGINT, SIGTERM, SIGHUP and interpreter exit to the cleanup instance.

    Safe to call more than once; handlers are installed only the first time.
    """
    global _installed

    if _installed:
        return

    for signum in HANDLED_SIGNALS:
        signal.signal(signum, _signal_handler)

    atexit.register(_exit_handler)
    _installed = True


def set_cleanup_instance(instance: CleanupHandler | None) -> None:
    """Set the instance to handle cleanup for signal handlers.

    Parameters
    ----------
    instance : CleanupHandler | None
        The SSHJump instance that will handle cleanup
    """
    _cleanup_manager.set(instance)


def get_cleanup_instance() -> CleanupHandler | None:
    """Get the current cleanup instance.

    Returns
    -------
    CleanupHandler | None
        The SSHJump instance handling cleanup, or None if not set
    """
    return _cleanup_manager.get()
