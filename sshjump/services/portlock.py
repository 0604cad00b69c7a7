"""Local port arbitration across concurrent sessions using marker files."""

import logging
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from sshjump.constants import DEFAULT_MAX_PORT_SCAN, LOCALHOST, LOCK_SUFFIX, MAX_VALID_PORT
from sshjump.core.exceptions import PortExhaustedError
from sshjump.utils import validate_port

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortLock:
    """Claim on a local port held for the lifetime of one session."""

    port: int
    marker_path: Path


def is_port_available(port: int) -> bool:
    """Check if a port is available for binding on localhost.

    Parameters
    ----------
    port : int
        Port number to check

    Returns
    -------
    bool
        True if port can be bound, False otherwise
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((LOCALHOST, port))
        sock.close()
        return True
    except OSError:
        return False


class PortLockManager:
    """Reserve local ports by creating ``{port}.lock`` markers.

    A marker is claimed with an exclusive create, so two sessions racing
    for the same candidate cannot both succeed. A claimed port that some
    other program already listens on is given back and skipped.

    Parameters
    ----------
    lock_dir : Path
        Directory holding the marker files
    max_scan : int
        Maximum number of candidate ports examined per acquire
    port_available : Callable[[int], bool]
        Bind check for a claimed candidate

    Attributes
    ----------
    lock_dir : Path
        Directory holding the marker files
    max_scan : int
        Maximum number of candidate ports examined per acquire
    """

    def __init__(
        self,
        lock_dir: Path,
        max_scan: int = DEFAULT_MAX_PORT_SCAN,
        port_available: Callable[[int], bool] = is_port_available,
    ) -> None:
        self.lock_dir = Path(lock_dir)
        self.max_scan = max_scan
        self.port_available = port_available

    def marker_path(self, port: int) -> Path:
        return self.lock_dir / f"{port}{LOCK_SUFFIX}"

    def is_locked(self, port: int) -> bool:
        return self.marker_path(port).exists()

    def acquire(self, start_port: int) -> PortLock:
        """Claim the first free port at or above ``start_port``.

        Parameters
        ----------
        start_port : int
            First candidate port

        Returns
        -------
        PortLock
            The claimed port and its marker

        Raises
        ------
        PortExhaustedError
            If no candidate within the scan bound is free
        """
        validate_port(start_port)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

        end_port = min(start_port + self.max_scan, MAX_VALID_PORT + 1)

        for port in range(start_port, end_port):
            marker = self.marker_path(port)
            if marker.exists():
                continue

            try:
                fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                logger.debug("Port %s claimed by another session, trying next", port)
                continue

            os.close(fd)

            if not self.port_available(port):
                logger.debug("Port %s is in use by another program, trying next", port)
                marker.unlink(missing_ok=True)
                continue

            logger.debug("Reserved local port %s (%s)", port, marker)
            return PortLock(port=port, marker_path=marker)

        raise PortExhaustedError(
            f"No free local port in range {start_port}-{end_port - 1}; "
            f"remove stale markers from {self.lock_dir}"
        )

    def release(self, port: int) -> None:
        """Delete the marker for ``port``; releasing twice is a no-op."""
        try:
            self.marker_path(port).unlink()
            logger.debug("Released local port %s", port)
        except FileNotFoundError:
            pass
