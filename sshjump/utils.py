"""Utility functions for ssh-jump."""

import os
import re
import shutil
import uuid
from pathlib import Path

from sshjump.constants import (
    BASTION_NAME_PREFIX,
    DEFAULT_PLUGIN_DIR,
    MAX_VALID_PORT,
    MIN_VALID_PORT,
)
from sshjump.core.exceptions import DependencyMissingError

DEST_NODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9@._-]*$")


def get_plugin_dir() -> Path:
    """Return the per-user plugin directory, creating it if needed.

    Returns
    -------
    Path
        ``$SSH_JUMP_DIR`` if set, otherwise ``~/.kube/kubectlssh``
    """
    plugin_dir = Path(os.environ.get("SSH_JUMP_DIR", DEFAULT_PLUGIN_DIR)).expanduser()
    plugin_dir.mkdir(parents=True, exist_ok=True)
    return plugin_dir


def generate_bastion_name() -> str:
    """Generate an unpredictable bastion pod name.

    Returns
    -------
    str
        Name of the form ``sshjump-<12 hex chars>``
    """
    return f"{BASTION_NAME_PREFIX}-{uuid.uuid4().hex[:12]}"


def require_binary(name: str) -> str:
    """Resolve an executable on PATH.

    Parameters
    ----------
    name : str
        Executable name

    Returns
    -------
    str
        Absolute path to the executable

    Raises
    ------
    DependencyMissingError
        If the executable cannot be found
    """
    path = shutil.which(name)
    if not path:
        raise DependencyMissingError(name)
    return path


def validate_port(port: int) -> None:
    """Validate port number is in valid range.

    Parameters
    ----------
    port : int
        Port number to validate

    Raises
    ------
    ValueError
        If port is not in valid range 1-65535
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Port must be between 1-65535, got {port}")
    if port < MIN_VALID_PORT or port > MAX_VALID_PORT:
        raise ValueError(f"Port must be between 1-65535, got {port}")


def split_destination(destination: str, default_user: str | None = None) -> tuple[str | None, str]:
    """Split ``user@host`` into its parts.

    Parameters
    ----------
    destination : str
        Destination in ``user@host`` or bare ``host`` form
    default_user : str | None
        User returned when the destination has no user part

    Returns
    -------
    tuple[str | None, str]
        (user, host)
    """
    if "@" in destination:
        user, host = destination.rsplit("@", 1)
        return user or default_user, host
    return default_user, destination
