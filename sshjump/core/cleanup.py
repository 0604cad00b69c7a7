from __future__ import annotations

import logging
import os
import signal
import sys
import threading
import types

from sshjump.core.session import RegisteredResource, SessionContext

TEARDOWN_ORDER = ("session", "tunnel", "port_lock", "bastion")
"""Release order: final session, port-forward process, port marker, bastion pod."""

SIGNAL_EXIT_CODES = {
    signal.SIGINT: 130,
    signal.SIGTERM: 143,
    signal.SIGHUP: 129,
}


class CleanupManager:
    """Tears down every resource of a session, best-effort and exactly once.

    Parameters
    ----------
    context : SessionContext
        Session whose registered resources are released
    cleanup_lock : threading.Lock | None
        Lock guarding the in-progress flag
    """

    def __init__(self, context: SessionContext, cleanup_lock: threading.Lock | None = None) -> None:
        self.context = context
        self.cleanup_lock = cleanup_lock or threading.Lock()
        self.cleanup_in_progress = False

    def cleanup_resources(
        self, signum: int | None = None, _frame: types.FrameType | None = None
    ) -> None:
        """Perform graceful cleanup of all resources.

        Parameters
        ----------
        signum : int | None
            Signal number if triggered by signal handler (e.g., signal.SIGINT)
        _frame : types.FrameType | None
            Current stack frame (unused but required by signal handler signature).

        Notes
        -----
        Exit codes when triggered by signal:
        - 130: SIGINT (Ctrl+C)
        - 143: SIGTERM (kill command)
        - 129: SIGHUP (terminal closed)
        - 1: Other signals

        Setting SSH_JUMP_NO_SIGNAL_EXIT=1 skips the exit after signal-driven
        cleanup, which lets tests drive the handler directly.
        """
        with self.cleanup_lock:
            if self.cleanup_in_progress:
                logging.debug("Cleanup already in progress")
                return
            self.cleanup_in_progress = True

        try:
            self.release_all()
        finally:
            with self.cleanup_lock:
                self.cleanup_in_progress = False

        if signum is not None and os.environ.get("SSH_JUMP_NO_SIGNAL_EXIT") != "1":
            sys.exit(SIGNAL_EXIT_CODES.get(signum, 1))

    def release_all(self) -> list[Exception]:
        """Release every registered resource in teardown order.

        Returns
        -------
        list[Exception]
            Failures encountered; they are logged at debug level and never raised

        Notes
        -----
        Resources are taken from the session atomically, so a second call
        finds nothing left and does nothing.
        """
        errors: list[Exception] = []
        resources = self.context.take_all()

        if not resources:
            logging.debug("No resources to clean up")
            return errors

        logging.debug("Cleaning up %s session resources...", len(resources))

        ordered = [kind for kind in TEARDOWN_ORDER if kind in resources]
        ordered.extend(kind for kind in resources if kind not in TEARDOWN_ORDER)

        for kind in ordered:
            self._release(kind, resources[kind], errors)

        if errors:
            logging.debug("Cleanup completed with %s errors", len(errors))
        else:
            logging.debug("Cleanup completed successfully")

        return errors

    def _release(self, kind: str, entry: RegisteredResource, errors: list[Exception]) -> None:
        try:
            entry.release(entry.resource)
        except Exception as e:
            logging.debug("Error releasing %s: %s", kind, e)
            errors.append(e)
