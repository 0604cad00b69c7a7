"""Exception hierarchy for ssh-jump.

Setup failures (everything raised before the final session starts) abort the
program. Cleanup failures are never raised; they are logged and swallowed by
the cleanup manager.
"""

from __future__ import annotations


class SSHJumpError(Exception):
    """Base exception for all ssh-jump errors."""


class UsageError(SSHJumpError):
    """Invalid or missing command-line arguments."""


class DependencyMissingError(SSHJumpError):
    """A required external client is not installed or not on PATH.

    Parameters
    ----------
    binary : str
        Name of the missing executable
    """

    def __init__(self, binary: str) -> None:
        self.binary = binary
        super().__init__(f"{binary} not found. Please install it or add it to your PATH.")


class PortExhaustedError(SSHJumpError):
    """No free local port was found within the bounded scan."""


class KubectlError(SSHJumpError):
    """A kubectl invocation failed.

    Parameters
    ----------
    message : str
        Human-readable description
    returncode : int | None
        Process exit code, or None if the process never ran to completion
    stderr : str
        Captured standard error output
    """

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ProvisioningTimeoutError(SSHJumpError):
    """The bastion did not reach the Running phase within the timeout."""


class InjectionError(SSHJumpError):
    """The ephemeral public key could not be written into the bastion."""


class TunnelStartError(SSHJumpError):
    """The local port-forward to the bastion could not be established."""


__all__ = [
    "SSHJumpError",
    "UsageError",
    "DependencyMissingError",
    "PortExhaustedError",
    "KubectlError",
    "ProvisioningTimeoutError",
    "InjectionError",
    "TunnelStartError",
]
