import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from sshjump.constants import (
    BASTION_USER,
    CONFIG_FILENAME,
    DEFAULT_BASTION_IMAGE,
    DEFAULT_MAX_PORT_SCAN,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_READY_TIMEOUT_SECONDS,
    DEFAULT_SSH_PORT,
    DEFAULT_START_PORT,
    DEFAULT_TUNNEL_TIMEOUT_SECONDS,
)
from sshjump.utils import validate_port

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardSpec:
    """Local-to-remote port pair for port-forward mode."""

    local_port: int
    remote_port: int

    @classmethod
    def parse(cls, spec: str) -> "ForwardSpec":
        """Parse a ``local:remote`` forward specification.

        Parameters
        ----------
        spec : str
            Forward spec such as ``37017:27017``

        Returns
        -------
        ForwardSpec
            Parsed port pair

        Raises
        ------
        ValueError
            If the spec is not two colon-separated valid port numbers
        """
        parts = str(spec).split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid port forward '{spec}': expected <localPort>:<remotePort>")

        try:
            local_port, remote_port = int(parts[0]), int(parts[1])
        except ValueError:
            raise ValueError(f"Invalid port forward '{spec}': ports must be numeric") from None

        validate_port(local_port)
        validate_port(remote_port)
        return cls(local_port=local_port, remote_port=remote_port)


@dataclass(frozen=True)
class SessionConfig:
    """Immutable input for one jump session.

    Attributes
    ----------
    destination : str
        ``user@host`` or bare host of the final target
    identity_file : str
        Identity file for the final destination SSH hop
    port : int
        SSH port on the final destination
    forward : ForwardSpec | None
        Port-forward pair; selects port-forward mode when set
    ssh_args : str | None
        Extra arguments appended to the final ssh invocation
    context : str | None
        kubectl context; None means the caller's current context
    image : str
        Bastion container image
    """

    destination: str
    identity_file: str
    port: int = DEFAULT_SSH_PORT
    forward: ForwardSpec | None = None
    ssh_args: str | None = None
    context: str | None = None
    image: str = DEFAULT_BASTION_IMAGE
    bastion_user: str = BASTION_USER
    start_port: int = DEFAULT_START_PORT
    max_port_scan: int = DEFAULT_MAX_PORT_SCAN
    ready_timeout: float = DEFAULT_READY_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    strict_ready: bool = True
    tunnel_timeout: float = DEFAULT_TUNNEL_TIMEOUT_SECONDS

    @property
    def port_forward_mode(self) -> bool:
        return self.forward is not None


class ConfigLoader:
    """Load optional YAML settings and merge them with built-in defaults."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS = {
            "image": DEFAULT_BASTION_IMAGE,
            "context": None,
            "bastion_user": BASTION_USER,
            "start_port": DEFAULT_START_PORT,
            "max_port_scan": DEFAULT_MAX_PORT_SCAN,
            "ready_timeout": DEFAULT_READY_TIMEOUT_SECONDS,
            "poll_interval": DEFAULT_POLL_INTERVAL_SECONDS,
            "strict_ready": True,
            "tunnel_timeout": DEFAULT_TUNNEL_TIMEOUT_SECONDS,
        }

    def load_config(self, config_path: str | None = None, plugin_dir: Path | None = None) -> dict[str, Any]:
        """Load configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks SSH_JUMP_CONFIG env var,
            then falls back to ``config.yaml`` in the plugin directory

        plugin_dir : Path | None
            Plugin directory used for the fallback location

        Returns
        -------
        dict[str, Any]
            Built-in defaults overlaid with the file's values, interpolations resolved
        """
        if config_path is None:
            config_path = os.environ.get("SSH_JUMP_CONFIG")

        if config_path is None and plugin_dir is not None:
            config_path = str(plugin_dir / CONFIG_FILENAME)

        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)

        if config_path is None or not Path(config_path).exists():
            return merged

        config_file = Path(config_path)

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return merged

        try:
            loaded = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration in {config_file} must be a mapping")

        unknown = sorted(set(loaded) - set(self.BUILT_IN_DEFAULTS))
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

        for key in self.BUILT_IN_DEFAULTS:
            if key in loaded:
                merged[key] = loaded[key]

        self.validate_config(merged)
        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate configuration types and ranges.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration to validate

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        if not isinstance(config.get("image"), str) or not config["image"]:
            raise ValueError("image must be a non-empty string")

        if config.get("context") is not None and not isinstance(config["context"], str):
            raise ValueError("context must be a string")

        if not isinstance(config.get("bastion_user"), str) or not config["bastion_user"]:
            raise ValueError("bastion_user must be a non-empty string")

        validate_port(config.get("start_port"))

        max_scan = config.get("max_port_scan")
        if isinstance(max_scan, bool) or not isinstance(max_scan, int) or max_scan < 1:
            raise ValueError("max_port_scan must be a positive integer")

        for field in ("ready_timeout", "poll_interval", "tunnel_timeout"):
            value = config.get(field)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"{field} must be a positive number")

        if not isinstance(config.get("strict_ready"), bool):
            raise ValueError("strict_ready must be a boolean")

    def build_session_config(
        self,
        settings: dict[str, Any],
        destination: str,
        identity_file: str,
        port: int = 22,
        port_forward: str | None = None,
        ssh_args: str | None = None,
        context: str | None = None,
        image: str | None = None,
    ) -> SessionConfig:
        """Combine file settings with CLI values into a SessionConfig.

        CLI values take precedence over file settings.
        """
        validate_port(port)

        return SessionConfig(
            destination=destination,
            identity_file=identity_file,
            port=port,
            forward=ForwardSpec.parse(port_forward) if port_forward else None,
            ssh_args=ssh_args,
            context=context if context is not None else settings["context"],
            image=image if image is not None else settings["image"],
            bastion_user=settings["bastion_user"],
            start_port=settings["start_port"],
            max_port_scan=settings["max_port_scan"],
            ready_timeout=float(settings["ready_timeout"]),
            poll_interval=float(settings["poll_interval"]),
            strict_ready=settings["strict_ready"],
            tunnel_timeout=float(settings["tunnel_timeout"]),
        )
