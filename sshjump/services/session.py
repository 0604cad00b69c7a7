"""Final session through the bastion: interactive SSH relay or local port forward.

Both modes reach the bastion through the local tunnel at
``127.0.0.1:<allocated port>`` with the ephemeral key. Host-key checking is
relaxed for that hop only; the final destination connection in interactive
mode keeps the caller's normal host-key policy.

Classes
-------
SessionRunner
    Runs the requested mode in the foreground until it ends or is stopped
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from pathlib import Path

import paramiko
from sshtunnel import BaseSSHTunnelForwarderError, SSHTunnelForwarder

from sshjump.constants import BASTION_USER, LOCALHOST
from sshjump.core.config import SessionConfig
from sshjump.services.keys import EphemeralKeyPair
from sshjump.utils import require_binary, split_destination

logger = logging.getLogger(__name__)

BASTION_HOP_OPTIONS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "HostKeyAlgorithms=+ssh-rsa",
    "-o", "PubkeyAcceptedAlgorithms=+ssh-rsa",
    "-o", "LogLevel=ERROR",
]
"""Options for the bastion hop: the bastion is new every session, so its host
key is neither verified nor recorded, and minimal images may only offer ssh-rsa."""

SESSION_POLL_INTERVAL_SECONDS = 1.0


def validate_key_file(key_file: str) -> None:
    """Validate SSH key file exists and is accessible.

    Parameters
    ----------
    key_file : str
        Path to SSH private key file

    Raises
    ------
    FileNotFoundError
        If key file does not exist
    ValueError
        If the path is not a regular file
    PermissionError
        If key file is not readable
    """
    key_path = Path(key_file).expanduser()

    if not key_path.exists():
        raise FileNotFoundError(f"SSH key file not found: {key_file}")

    if not key_path.is_file():
        raise ValueError(f"SSH key path is not a file: {key_file}")

    if not os.access(key_path, os.R_OK):
        raise PermissionError(f"SSH key file is not readable: {key_file}")


def build_proxy_command(ssh_path: str, local_port: int, key_file: Path, user: str = BASTION_USER) -> str:
    """Build the ProxyCommand relaying stdio to ``%h:%p`` through the bastion."""
    argv = [
        ssh_path,
        f"{user}@{LOCALHOST}",
        "-p", str(local_port),
        "-i", str(key_file),
        "-o", "IdentitiesOnly=yes",
        *BASTION_HOP_OPTIONS,
        "-W", "%h:%p",
    ]
    return shlex.join(argv)


def build_interactive_command(
    config: SessionConfig,
    local_port: int,
    key_pair: EphemeralKeyPair,
    ssh_path: str = "ssh",
) -> list[str]:
    """Build the ssh argv for interactive mode.

    Parameters
    ----------
    config : SessionConfig
        Session configuration (destination, identity, port, extra args)
    local_port : int
        Local tunnel port reaching the bastion's SSH daemon
    key_pair : EphemeralKeyPair
        Ephemeral keypair authorized on the bastion
    ssh_path : str
        ssh executable

    Returns
    -------
    list[str]
        Full argv; extra arguments sit after the built-in options and before
        the destination so ssh does not treat them as a remote command
    """
    proxy = build_proxy_command(
        ssh_path, local_port, key_pair.private_key_path, config.bastion_user
    )

    cmd = [
        ssh_path,
        "-i", str(Path(config.identity_file).expanduser()),
        "-p", str(config.port),
        "-o", f"ProxyCommand={proxy}",
    ]

    if config.ssh_args:
        cmd.extend(shlex.split(config.ssh_args))

    cmd.append(config.destination)
    return cmd


class SessionRunner:
    """Run the final session in the foreground.

    Attributes
    ----------
    tunnel : SSHTunnelForwarder | None
        Active forwarder in port-forward mode
    process : subprocess.Popen | None
        Active ssh client in interactive mode
    """

    def __init__(self) -> None:
        self.tunnel: SSHTunnelForwarder | None = None
        self.process: subprocess.Popen | None = None
        self._stop_event = threading.Event()

    def run(self, config: SessionConfig, local_port: int, key_pair: EphemeralKeyPair) -> int:
        """Dispatch to the mode selected by ``config``.

        Returns
        -------
        int
            Exit status of the session
        """
        if config.port_forward_mode:
            return self.run_port_forward(config, local_port, key_pair)
        return self.run_interactive(config, local_port, key_pair)

    def run_interactive(self, config: SessionConfig, local_port: int, key_pair: EphemeralKeyPair) -> int:
        """Open an SSH session to the destination relayed through the bastion.

        Returns
        -------
        int
            Exit status of the ssh client
        """
        ssh_path = require_binary("ssh")
        cmd = build_interactive_command(config, local_port, key_pair, ssh_path)

        logger.info("Connecting to %s:%s via bastion...", config.destination, config.port)
        logger.debug("Running: %s", shlex.join(cmd))

        self.process = subprocess.Popen(cmd)
        try:
            return self.process.wait()
        finally:
            self.process = None

    def run_port_forward(self, config: SessionConfig, local_port: int, key_pair: EphemeralKeyPair) -> int:
        """Forward a local port to an internal host:port reachable from the bastion.

        Blocks until :meth:`stop` is called or the forwarder dies.

        Returns
        -------
        int
            0 when stopped on request, 1 if the forwarder was lost

        Raises
        ------
        RuntimeError
            If the forwarder cannot be started
        """
        forward = config.forward
        _, internal_host = split_destination(config.destination)
        validate_key_file(str(key_pair.private_key_path))

        logger.info(
            "Creating SSH tunnel localhost:%s -> %s:%s...",
            forward.local_port, internal_host, forward.remote_port,
        )

        try:
            tunnel = SSHTunnelForwarder(
                ssh_address_or_host=(LOCALHOST, local_port),
                ssh_username=config.bastion_user,
                ssh_pkey=str(key_pair.private_key_path),
                allow_agent=False,
                host_pkey_directories=[],
                remote_bind_address=(internal_host, forward.remote_port),
                local_bind_address=(LOCALHOST, forward.local_port),
            )
            tunnel.skip_tunnel_checkup = True

            tunnel.start()
            self.tunnel = tunnel
        except (BaseSSHTunnelForwarderError, paramiko.SSHException, OSError) as e:
            self.stop()
            raise RuntimeError(f"Failed to create SSH tunnel: {e}") from e

        logger.info(
            "SSH tunnel established: localhost:%s -> %s:%s (Ctrl+C to stop)",
            forward.local_port, internal_host, forward.remote_port,
            extra={"route": "stdout"},
        )

        while not self._stop_event.wait(SESSION_POLL_INTERVAL_SECONDS):
            if self.tunnel is None or not self.tunnel.is_active:
                logger.error("SSH tunnel to bastion was lost")
                self.stop()
                return 1

        return 0

    def stop(self) -> None:
        """Stop whichever session is running; safe to call repeatedly."""
        self._stop_event.set()

        if self.tunnel is not None:
            try:
                self.tunnel.stop()
            except (BaseSSHTunnelForwarderError, OSError) as e:
                logger.debug("Error stopping SSH tunnel: %s", e)
            self.tunnel = None

        if self.process is not None and self.process.poll() is None:
            try:
                self.process.terminate()
            except OSError as e:
                logger.debug("Error terminating ssh client: %s", e)
