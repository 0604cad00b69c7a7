"""Global constants for ssh-jump.

This module contains application-wide constants shared by the bastion,
tunnel and session components.
"""

from enum import Enum

DEFAULT_PLUGIN_DIR = "~/.kube/kubectlssh"
"""Per-user directory holding port markers and the ephemeral keypair.

Overridable with the SSH_JUMP_DIR environment variable.
"""

CONFIG_FILENAME = "config.yaml"
"""Name of the optional YAML configuration file inside the plugin directory."""

KEY_FILENAME = "id_rsa_sshjump"
"""File name of the ephemeral private key; the public half adds ``.pub``."""

KEY_BITS = 2048
"""RSA modulus size for the ephemeral keypair."""

LOCK_SUFFIX = ".lock"
"""Suffix of port marker files (``{port}.lock``)."""

DEFAULT_BASTION_IMAGE = "corbinu/ssh-server"
"""Minimal SSH server image used for the bastion pod."""

BASTION_NAME_PREFIX = "sshjump"
"""Prefix of generated bastion pod names."""

BASTION_SSH_PORT = 22
"""Port the SSH daemon listens on inside the bastion container."""

BASTION_USER = "root"
"""Administrative account on the bastion image."""

BASTION_LABELS = {
    "app": "sshjump",
    "app.kubernetes.io/managed-by": "ssh-jump",
}
"""Labels marking a pod as a jump-host instance for external inventory tooling."""

DEFAULT_SSH_PORT = 22

DEFAULT_START_PORT = 2222
"""First local port tried when reserving a tunnel port."""

DEFAULT_MAX_PORT_SCAN = 1000
"""Maximum number of candidate ports examined before giving up."""

DEFAULT_READY_TIMEOUT_SECONDS = 10.0
"""Upper bound on waiting for the bastion pod to reach the Running phase."""

DEFAULT_POLL_INTERVAL_SECONDS = 0.1

MIN_POLL_TIMEOUT_SECONDS = 0.5
"""Lower bound on the kubectl timeout of a single readiness poll near the deadline."""

DEFAULT_TUNNEL_TIMEOUT_SECONDS = 5.0
"""Upper bound on waiting for kubectl to report that the port-forward is listening."""

TUNNEL_POLL_INTERVAL_SECONDS = 0.1

KUBECTL_TIMEOUT_SECONDS = 60
"""Timeout for one-shot kubectl calls (create, get, exec, delete)."""

MIN_VALID_PORT = 1
MAX_VALID_PORT = 65535

LOCALHOST = "127.0.0.1"

EXIT_SUCCESS = 0
"""Exit code indicating successful program completion."""

EXIT_ERROR = 1
"""Exit code for usage errors, missing dependencies and setup failures."""


class PodPhase(str, Enum):
    """Pod phase values reported by the control plane."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"
