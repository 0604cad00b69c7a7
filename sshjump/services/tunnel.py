"""Background kubectl port-forward from a local port to the bastion."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import IO

from sshjump.constants import (
    BASTION_SSH_PORT,
    DEFAULT_TUNNEL_TIMEOUT_SECONDS,
    LOCALHOST,
    TUNNEL_POLL_INTERVAL_SECONDS,
)
from sshjump.core.exceptions import TunnelStartError
from sshjump.providers.kubernetes.bastion import BastionInstance
from sshjump.providers.kubernetes.kubectl import KubectlClient

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20
READER_JOIN_TIMEOUT_SECONDS = 1.0


@dataclass
class TunnelProcess:
    """Running port-forward owned by the session.

    Attributes
    ----------
    ready : threading.Event
        Set once kubectl reports it is forwarding from the local port
    stderr_tail : deque[str]
        Most recent stderr lines, kept for error reporting
    readers : list[threading.Thread]
        Threads draining the process output
    """

    pid: int
    local_port: int
    remote_port: int
    process: subprocess.Popen | None = None
    ready: threading.Event = field(default_factory=threading.Event)
    stderr_tail: deque[str] = field(default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES))
    readers: list[threading.Thread] = field(default_factory=list)

    @property
    def forwarding_banner(self) -> str:
        return f"Forwarding from {LOCALHOST}:{self.local_port} "


class TunnelManager:
    """Start and stop the local-to-bastion port-forward process.

    The tunnel counts as ready only when kubectl itself reports that it is
    forwarding from the reserved port; a connect to the port could reach an
    unrelated listener.

    Parameters
    ----------
    kubectl : KubectlClient
        Control-plane client scoped to the session's context
    timeout : float
        Seconds to wait for kubectl to report forwarding
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        timeout: float = DEFAULT_TUNNEL_TIMEOUT_SECONDS,
    ) -> None:
        self.kubectl = kubectl
        self.timeout = timeout

    def start(
        self,
        instance: BastionInstance,
        local_port: int,
        remote_port: int = BASTION_SSH_PORT,
    ) -> TunnelProcess:
        """Open the tunnel and wait until kubectl reports it is forwarding.

        Parameters
        ----------
        instance : BastionInstance
            Bastion to forward to
        local_port : int
            Reserved local port
        remote_port : int
            Bastion port (default: 22)

        Returns
        -------
        TunnelProcess
            Handle of the running forwarder

        Raises
        ------
        TunnelStartError
            If the forwarder exits or does not report readiness in time
        """
        logger.info(
            "Opening tunnel localhost:%s -> %s:%s...", local_port, instance.name, remote_port
        )

        try:
            process = self.kubectl.port_forward(
                instance.name,
                local_port,
                remote_port,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise TunnelStartError(f"Failed to start port-forward: {e}") from e

        tunnel = TunnelProcess(
            pid=process.pid,
            local_port=local_port,
            remote_port=remote_port,
            process=process,
        )

        try:
            self._start_readers(tunnel)
            self._wait_ready(instance, tunnel)
        except BaseException:
            self.stop(tunnel)
            raise

        return tunnel

    def _start_readers(self, tunnel: TunnelProcess) -> None:
        # both pipes are drained for the life of the process
        for target, stream in (
            (self._read_stdout, tunnel.process.stdout),
            (self._read_stderr, tunnel.process.stderr),
        ):
            if stream is None:
                continue
            reader = threading.Thread(target=target, args=(tunnel, stream), daemon=True)
            reader.start()
            tunnel.readers.append(reader)

    def _read_stdout(self, tunnel: TunnelProcess, stream: IO[str]) -> None:
        for line in stream:
            line = line.rstrip()
            if line.startswith(tunnel.forwarding_banner):
                tunnel.ready.set()
            logger.debug("%s", line, extra={"stream": "tunnel"})

    def _read_stderr(self, tunnel: TunnelProcess, stream: IO[str]) -> None:
        for line in stream:
            line = line.rstrip()
            tunnel.stderr_tail.append(line)
            logger.debug("%s", line, extra={"stream": "tunnel"})

    def _wait_ready(self, instance: BastionInstance, tunnel: TunnelProcess) -> None:
        process = tunnel.process
        deadline = time.monotonic() + self.timeout

        while not tunnel.ready.wait(TUNNEL_POLL_INTERVAL_SECONDS):
            returncode = process.poll()
            if returncode is not None:
                for reader in tunnel.readers:
                    reader.join(READER_JOIN_TIMEOUT_SECONDS)
                stderr = "\n".join(tunnel.stderr_tail)
                raise TunnelStartError(
                    f"Port-forward to {instance.name} exited with code {returncode}: {stderr}"
                )

            if time.monotonic() >= deadline:
                raise TunnelStartError(
                    f"Port-forward to {instance.name} not forwarding from "
                    f"localhost:{tunnel.local_port} after {self.timeout:g}s"
                )

        logger.debug("Tunnel pid %s forwarding from localhost:%s", tunnel.pid, tunnel.local_port)

    def stop(self, tunnel: TunnelProcess) -> None:
        """Send SIGTERM to the forwarder without waiting; errors are suppressed."""
        logger.debug("Stopping tunnel pid %s", tunnel.pid, extra={"stream": "tunnel"})

        try:
            if tunnel.process is not None:
                tunnel.process.send_signal(signal.SIGTERM)
            else:
                os.kill(tunnel.pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug("Ignoring error stopping tunnel pid %s: %s", tunnel.pid, e)
