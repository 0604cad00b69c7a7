"""CLI entry point for ssh-jump."""

from __future__ import annotations

import logging
import os
import sys

import fire
import paramiko
from fire.core import FireExit

from sshjump.cli.parsing import USAGE, normalize_argv, wants_help
from sshjump.constants import EXIT_ERROR, EXIT_SUCCESS
from sshjump.core.exceptions import (
    DependencyMissingError,
    InjectionError,
    KubectlError,
    PortExhaustedError,
    ProvisioningTimeoutError,
    SSHJumpError,
    TunnelStartError,
    UsageError,
)
from sshjump.logging import StreamFormatter, StreamRoutingFilter


def get_sshjump_class() -> type:
    """Get SSHJump class on-demand to avoid circular imports.

    Returns
    -------
    type
        SSHJump class
    """
    from sshjump.__main__ import SSHJump

    return SSHJump


def print_usage(file=None) -> None:
    print(USAGE, file=file or sys.stderr)


def handle_usage_error(error: UsageError) -> None:
    """Print the problem and usage text, then exit 1."""
    print(f"Error: {error}\n", file=sys.stderr)
    print_usage()
    sys.exit(EXIT_ERROR)


def handle_dependency_error(error: DependencyMissingError, debug_mode: bool) -> None:
    """Handle a missing external client.

    Raises
    ------
    DependencyMissingError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Error: {error}", file=sys.stderr)
    if error.binary == "kubectl":
        print("  https://kubernetes.io/docs/tasks/tools/", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_setup_error(error: SSHJumpError, debug_mode: bool) -> None:
    """Handle a failure while preparing the session.

    Parameters
    ----------
    error : SSHJumpError
        The setup error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    SSHJumpError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Error: {error}\n", file=sys.stderr)

    if isinstance(error, ProvisioningTimeoutError):
        print("The bastion pod did not start in time. This usually means:", file=sys.stderr)
        print("  - The image is still being pulled", file=sys.stderr)
        print("  - No linux node has capacity for the pod", file=sys.stderr)
        print("Set ready_timeout or strict_ready: false in the config file.", file=sys.stderr)
    elif isinstance(error, InjectionError):
        print("Could not authorize the ephemeral key on the bastion.", file=sys.stderr)
        print("Check that the image has /bin/sh and an SSH daemon for root.", file=sys.stderr)
    elif isinstance(error, TunnelStartError):
        print("Could not forward a local port to the bastion.", file=sys.stderr)
        print("Check that you may port-forward pods in this context.", file=sys.stderr)
    elif isinstance(error, PortExhaustedError):
        print("Remove stale *.lock files if no other session is running.", file=sys.stderr)
    elif isinstance(error, KubectlError):
        print("Check your kubectl context and permissions:", file=sys.stderr)
        print("  kubectl config current-context", file=sys.stderr)
        print("  kubectl auth can-i create pods", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def handle_filesystem_error(error: OSError, debug_mode: bool) -> None:
    """Handle a local file that could not be read or written.

    Raises
    ------
    OSError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"File system error: cannot access {error.filename}: {error.strerror}", file=sys.stderr)
    print("Check permissions on the ssh-jump directory (SSH_JUMP_DIR).", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_ssh_error(error: Exception, debug_mode: bool) -> None:
    """Handle SSH connectivity error.

    Raises
    ------
    OSError, paramiko.SSHException
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"SSH connectivity error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_runtime_error(error: RuntimeError, debug_mode: bool) -> None:
    """Handle unexpected runtime error.

    Raises
    ------
    RuntimeError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise error

    print(f"Unexpected error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def configure_logging(debug_mode: bool) -> None:
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(StreamFormatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(StreamFormatter("%(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(
        level=logging.DEBUG if debug_mode else logging.INFO,
        handlers=[stdout_handler, stderr_handler],
        force=True,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ssh-jump command.

    Parameters
    ----------
    argv : list[str] | None
        Command-line arguments without the program name (default: sys.argv[1:])

    Notes
    -----
    Short flags are rewritten to ``--long=value`` form before Fire parses
    them, so values starting with a dash (e.g. ``-a "-v"``) survive.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    debug_mode = os.environ.get("SSH_JUMP_DEBUG") == "1"
    configure_logging(debug_mode)

    if wants_help(argv):
        print_usage(sys.stdout)
        sys.exit(EXIT_SUCCESS)

    try:
        command = normalize_argv(argv)
        app = get_sshjump_class()()
        fire.Fire(app.jump, command=command, name="ssh-jump")
    except FireExit as e:
        if e.code:
            print_usage()
            sys.exit(EXIT_ERROR)
        sys.exit(EXIT_SUCCESS)
    except UsageError as e:
        handle_usage_error(e)
    except DependencyMissingError as e:
        handle_dependency_error(e, debug_mode)
    except SSHJumpError as e:
        handle_setup_error(e, debug_mode)
    except OSError as e:
        if e.filename is not None:
            handle_filesystem_error(e, debug_mode)
        else:
            handle_ssh_error(e, debug_mode)
    except paramiko.SSHException as e:
        handle_ssh_error(e, debug_mode)
    except RuntimeError as e:
        handle_runtime_error(e, debug_mode)

    sys.exit(app.exit_code if app.exit_code is not None else EXIT_SUCCESS)
