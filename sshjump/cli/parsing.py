"""CLI argument normalization ahead of Fire."""

from __future__ import annotations

from sshjump.constants import DEFAULT_BASTION_IMAGE
from sshjump.core.exceptions import UsageError

USAGE = f"""\
Usage: ssh-jump <dest_node> [options]

Open an SSH session to <dest_node> (user@host or host) through a temporary
bastion pod, or forward a local port to a host reachable from the cluster.

Options:
  -i, --identity <file>        Identity file for the destination host (required)
  -c, --context <name>         kubectl context (default: current context)
      --image <image>          Bastion image (default: {DEFAULT_BASTION_IMAGE})
  -P, --port <port>            SSH port on the destination (default: 22)
      --port-forward <l:r>     Forward localhost:<l> to <dest host>:<r> instead of a shell
  -a, --args <args>            Extra arguments for the final ssh command
  -v, --verbose                Debug logging
  -h, --help                   Show this help

Environment:
  SSH_JUMP_DIR      Plugin directory (default: ~/.kube/kubectlssh)
  SSH_JUMP_CONFIG   Config file (default: <plugin dir>/config.yaml)
  SSH_JUMP_DEBUG    Set to 1 to trace every external command

Examples:
  ssh-jump admin@10.0.0.5 -i ~/.ssh/node.pem
  ssh-jump admin@10.0.0.5 -i ~/.ssh/node.pem --port-forward 37017:27017"""

SHORT_FLAGS = {
    "-i": "--identity",
    "-c": "--context",
    "-P": "--port",
    "-a": "--args",
    "-v": "--verbose",
}

VALUE_FLAGS = {
    "--identity",
    "--context",
    "--image",
    "--port",
    "--port-forward",
    "--port_forward",
    "--args",
}


FLAG_FLAGS = {"--verbose"}

HELP_FLAGS = {"-h", "--help"}


def wants_help(argv: list[str]) -> bool:
    """Return True if help was requested as an option rather than an option value."""
    tokens = iter(argv)
    for token in tokens:
        if token in HELP_FLAGS:
            return True
        if SHORT_FLAGS.get(token, token) in VALUE_FLAGS:
            next(tokens, None)
    return False


def normalize_argv(argv: list[str]) -> list[str]:
    """Validate the argument shape and rewrite options into ``--flag=value`` tokens.

    Parameters
    ----------
    argv : list[str]
        Raw arguments without the program name

    Returns
    -------
    list[str]
        The destination followed by normalized options, which Fire parses
        unambiguously

    Raises
    ------
    UsageError
        If an option is unknown or lacks a value, or if there is not exactly
        one destination
    """
    options: list[str] = []
    positionals: list[str] = []
    tokens = iter(argv)

    for token in tokens:
        if not token.startswith("-") or token == "-":
            positionals.append(token)
            continue

        name, has_value, inline_value = token.partition("=")
        flag = SHORT_FLAGS.get(name, name)

        if flag in VALUE_FLAGS:
            value = inline_value if has_value else next(tokens, None)
            if value is None:
                raise UsageError(f"Option {name} requires a value")
            options.append(f"{flag}={value}")
        elif flag in FLAG_FLAGS and not has_value:
            options.append(flag)
        else:
            raise UsageError(f"Unknown option: {token}")

    if not positionals:
        raise UsageError("Destination node is required")
    if len(positionals) > 1:
        raise UsageError(f"Unexpected argument: {positionals[1]}")

    return [positionals[0], *options]


__all__ = ["USAGE", "normalize_argv", "wants_help"]
