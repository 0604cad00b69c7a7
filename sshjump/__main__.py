#!/usr/bin/env python3
"""ssh-jump - reach private hosts through an ephemeral in-cluster bastion."""

from __future__ import annotations

import logging
import os
import sys
import types
from pathlib import Path
from typing import Any, Callable

from sshjump.core.signals import set_cleanup_instance, setup_signal_handlers

setup_signal_handlers()

for _noisy_module in ["paramiko", "sshtunnel"]:
    logging.getLogger(_noisy_module).setLevel(logging.WARNING)

from sshjump.core.cleanup import SIGNAL_EXIT_CODES, CleanupManager  # noqa: E402
from sshjump.core.config import ConfigLoader, SessionConfig  # noqa: E402
from sshjump.core.exceptions import UsageError  # noqa: E402
from sshjump.core.session import SessionContext  # noqa: E402
from sshjump.providers.kubernetes import BastionManager, KubectlClient  # noqa: E402
from sshjump.services.keys import KeyManager  # noqa: E402
from sshjump.services.portlock import PortLockManager  # noqa: E402
from sshjump.services.session import SessionRunner  # noqa: E402
from sshjump.services.tunnel import TunnelManager  # noqa: E402
from sshjump.utils import DEST_NODE_PATTERN, get_plugin_dir, require_binary  # noqa: E402

logger = logging.getLogger(__name__)


class SSHJump:
    """Drive one jump session from port reservation to teardown.

    Parameters
    ----------
    kubectl_factory : Callable[[str | None], KubectlClient] | None
        Builds the control-plane client for a context
    bastion_manager_factory : Callable[[KubectlClient], BastionManager] | None
        Builds the bastion provisioner
    tunnel_manager_factory : Callable[..., TunnelManager] | None
        Builds the tunnel manager
    session_runner_factory : Callable[[], SessionRunner] | None
        Builds the final session runner
    port_lock_manager_factory : Callable[..., PortLockManager] | None
        Builds the local port arbiter for the plugin directory
    plugin_dir_getter : Callable[[], Path] | None
        Returns the plugin directory
    """

    def __init__(
        self,
        kubectl_factory: Callable[[str | None], KubectlClient] | None = None,
        bastion_manager_factory: Callable[[KubectlClient], BastionManager] | None = None,
        tunnel_manager_factory: Callable[..., TunnelManager] | None = None,
        session_runner_factory: Callable[[], SessionRunner] | None = None,
        port_lock_manager_factory: Callable[..., PortLockManager] | None = None,
        plugin_dir_getter: Callable[[], Path] | None = None,
    ) -> None:
        self._config_loader = ConfigLoader()
        self._kubectl_factory = kubectl_factory or (lambda context: KubectlClient(context=context))
        self._bastion_manager_factory = bastion_manager_factory or BastionManager
        self._tunnel_manager_factory = tunnel_manager_factory or TunnelManager
        self._session_runner_factory = session_runner_factory or SessionRunner
        self._port_lock_manager_factory = port_lock_manager_factory or PortLockManager
        self._plugin_dir_getter = plugin_dir_getter or get_plugin_dir
        self._cleanup_manager: CleanupManager | None = None
        self.context: SessionContext | None = None
        self.exit_code: int | None = None

        set_cleanup_instance(self)

    def _cleanup_resources(
        self, signum: int | None = None, frame: types.FrameType | None = None
    ) -> None:
        """Signal/exit hook: release the active session's resources."""
        if self._cleanup_manager is not None:
            self._cleanup_manager.cleanup_resources(signum=signum, _frame=frame)
        elif signum is not None and os.environ.get("SSH_JUMP_NO_SIGNAL_EXIT") != "1":
            sys.exit(SIGNAL_EXIT_CODES.get(signum, 1))

    def jump(
        self,
        dest_node: Any,
        identity: Any = None,
        context: Any = None,
        image: Any = None,
        port: Any = 22,
        port_forward: Any = None,
        args: Any = None,
        verbose: bool = False,
    ) -> None:
        """Open an SSH session or port forward to DEST_NODE through a temporary bastion.

        Parameters
        ----------
        dest_node : str
            Destination as user@host or host
        identity : str
            Identity file for the destination SSH hop (required)
        context : str | None
            kubectl context (default: current context)
        image : str | None
            Bastion container image
        port : int
            SSH port on the destination (default: 22)
        port_forward : str | None
            localPort:remotePort; switches to port-forward mode
        args : str | None
            Extra arguments for the final ssh invocation
        verbose : bool
            Enable debug logging
        """
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)
            logging.debug("Verbose mode enabled")

        config = self.build_config(
            dest_node=dest_node,
            identity=identity,
            context=context,
            image=image,
            port=port,
            port_forward=port_forward,
            args=args,
        )
        self.exit_code = self.run_session(config)

    def build_config(
        self,
        dest_node: Any,
        identity: Any = None,
        context: Any = None,
        image: Any = None,
        port: Any = 22,
        port_forward: Any = None,
        args: Any = None,
    ) -> SessionConfig:
        """Validate CLI values and merge them with file settings.

        Raises
        ------
        UsageError
            If arguments are missing or malformed; raised before any cluster contact
        """
        dest_node = str(dest_node)
        if not DEST_NODE_PATTERN.match(dest_node):
            raise UsageError(f"Invalid destination '{dest_node}'")

        if identity is None or identity is True or identity == "":
            raise UsageError("Identity file is required (-i, --identity)")

        identity = str(identity)
        if not Path(identity).expanduser().is_file():
            raise UsageError(f"Identity file not found: {identity}")

        if isinstance(port, bool):
            raise UsageError("Port requires a value (-P, --port)")
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise UsageError(f"Invalid port: {port}") from None

        for name, value in (("context", context), ("image", image), ("port-forward", port_forward), ("args", args)):
            if value is True:
                raise UsageError(f"--{name} requires a value")

        plugin_dir = self._plugin_dir_getter()

        try:
            settings = self._config_loader.load_config(plugin_dir=plugin_dir)
            return self._config_loader.build_session_config(
                settings,
                destination=dest_node,
                identity_file=identity,
                port=port,
                port_forward=str(port_forward) if port_forward is not None else None,
                ssh_args=str(args) if args is not None else None,
                context=str(context) if context is not None else None,
                image=str(image) if image is not None else None,
            )
        except ValueError as e:
            raise UsageError(str(e)) from e

    def run_session(self, config: SessionConfig) -> int:
        """Provision, connect and always tear down.

        Parameters
        ----------
        config : SessionConfig
            Validated session configuration

        Returns
        -------
        int
            Exit status of the final session
        """
        require_binary("kubectl")
        if not config.port_forward_mode:
            require_binary("ssh")

        plugin_dir = self._plugin_dir_getter()
        session = SessionContext(config, plugin_dir)
        self.context = session
        self._cleanup_manager = CleanupManager(session)

        try:
            kubectl = self._kubectl_factory(config.context)

            port_locks = self._port_lock_manager_factory(plugin_dir, max_scan=config.max_port_scan)
            port_lock = port_locks.acquire(config.start_port)
            session.register("port_lock", port_lock, lambda lock: port_locks.release(lock.port))
            logger.debug("Using local port %s", port_lock.port)

            key_manager = KeyManager(plugin_dir)
            key_pair = key_manager.ensure_key_pair()

            bastions = self._bastion_manager_factory(kubectl)
            instance = bastions.create(config)
            session.register("bastion", instance, bastions.destroy)

            bastions.wait_ready(
                instance,
                timeout=config.ready_timeout,
                poll_interval=config.poll_interval,
                strict=config.strict_ready,
            )

            key_manager.inject(kubectl, instance, key_pair.read_public_key(), config.bastion_user)

            tunnels = self._tunnel_manager_factory(kubectl, timeout=config.tunnel_timeout)
            tunnel = tunnels.start(instance, port_lock.port)
            session.register("tunnel", tunnel, tunnels.stop)

            runner = self._session_runner_factory()
            session.register("session", runner, lambda r: r.stop())

            return runner.run(config, port_lock.port, key_pair)
        finally:
            self._cleanup_manager.cleanup_resources()


def main() -> None:
    from sshjump.cli.main import main as cli_main

    cli_main()


if __name__ == "__main__":
    main()
