"""Logging helpers for the two output streams.

Every log record carries two optional extras:

``route``
    Which terminal stream the record belongs on. Only ``"stdout"`` is
    honoured explicitly; anything else lands on stderr so that stdout stays
    free for the interactive SSH session.
``stream``
    Which child process produced the line (``"tunnel"`` for the
    port-forward, ``"kubectl"`` for control-plane calls). Such lines are
    tagged so they can be told apart from ssh-jump's own messages.
"""

from __future__ import annotations

import logging

STREAM_TAGS = {
    "tunnel": "[tunnel]",
    "kubectl": "[kubectl]",
}


class StreamFormatter(logging.Formatter):
    """Prefix child-process output with the tag of the process it came from."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag = STREAM_TAGS.get(getattr(record, "stream", None))
        return f"{tag} {message}" if tag else message


class StreamRoutingFilter(logging.Filter):
    """Pass only the records routed to ``target``.

    Parameters
    ----------
    target : str
        Either "stdout" or "stderr"
    """

    def __init__(self, target: str) -> None:
        super().__init__()
        self.target = target

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "route", "stderr") == self.target


__all__ = ["STREAM_TAGS", "StreamFormatter", "StreamRoutingFilter"]
