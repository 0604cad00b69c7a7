"""Thin subprocess wrapper around the kubectl control-plane client."""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Any

from sshjump.constants import KUBECTL_TIMEOUT_SECONDS
from sshjump.core.exceptions import KubectlError
from sshjump.utils import require_binary

logger = logging.getLogger(__name__)


class KubectlClient:
    """Issue kubectl commands against a single context.

    Parameters
    ----------
    context : str | None
        kubectl context; None uses the caller's current context
    kubectl_path : str | None
        Path to the kubectl executable; resolved from PATH when None

    Attributes
    ----------
    context : str | None
        kubectl context passed as ``--context`` to every call
    kubectl_path : str
        Resolved kubectl executable
    """

    def __init__(self, context: str | None = None, kubectl_path: str | None = None) -> None:
        self.context = context
        self.kubectl_path = kubectl_path or require_binary("kubectl")

    def build_command(self, *args: str) -> list[str]:
        """Build a kubectl argv scoped to the configured context.

        Parameters
        ----------
        *args : str
            kubectl subcommand and arguments

        Returns
        -------
        list[str]
            Full argv
        """
        cmd = [self.kubectl_path]
        if self.context:
            cmd.extend(["--context", self.context])
        cmd.extend(args)
        return cmd

    def run(
        self,
        *args: str,
        input_data: str | None = None,
        timeout: float = KUBECTL_TIMEOUT_SECONDS,
    ) -> subprocess.CompletedProcess:
        """Run a one-shot kubectl command and return its result.

        Parameters
        ----------
        *args : str
            kubectl subcommand and arguments
        input_data : str | None
            Text fed to the process on stdin
        timeout : float
            Seconds to wait before giving up

        Returns
        -------
        subprocess.CompletedProcess
            Completed process with captured text output

        Raises
        ------
        KubectlError
            If kubectl exits non-zero, times out or cannot be started
        """
        cmd = self.build_command(*args)
        logger.debug("Running: %s", shlex.join(cmd), extra={"stream": "kubectl"})

        try:
            result = subprocess.run(
                cmd,
                input=input_data,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise KubectlError(f"kubectl {args[0]} timed out after {timeout:g}s") from e
        except OSError as e:
            raise KubectlError(f"Failed to run kubectl {args[0]}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.debug(
                "kubectl %s exited %d: %s", args[0], result.returncode, stderr,
                extra={"stream": "kubectl"},
            )
            raise KubectlError(
                f"kubectl {args[0]} failed: {stderr or 'exit code ' + str(result.returncode)}",
                returncode=result.returncode,
                stderr=stderr,
            )

        return result

    def create(self, manifest: str) -> None:
        """Create a resource from a YAML manifest passed on stdin."""
        self.run("create", "-f", "-", input_data=manifest)

    def get_pod_phase(self, name: str, timeout: float = KUBECTL_TIMEOUT_SECONDS) -> str:
        """Return the ``.status.phase`` of a pod (empty string if not reported)."""
        result = self.run("get", "pod", name, "-o", "jsonpath={.status.phase}", timeout=timeout)
        return result.stdout.strip()

    def delete_pod(self, name: str) -> None:
        """Force-delete a pod with zero grace period without waiting."""
        self.run(
            "delete", "pod", name,
            "--grace-period=0", "--force", "--wait=false", "--ignore-not-found",
        )

    def exec(self, name: str, command: list[str], input_data: str | None = None) -> str:
        """Run a command inside a pod's container and return its stdout."""
        result = self.run("exec", "-i", name, "--", *command, input_data=input_data)
        return result.stdout

    def port_forward(self, name: str, local_port: int, remote_port: int, **popen_kwargs: Any) -> subprocess.Popen:
        """Spawn a background ``kubectl port-forward`` bound to localhost.

        Parameters
        ----------
        name : str
            Pod name
        local_port : int
            Local port to listen on
        remote_port : int
            Pod port to forward to
        **popen_kwargs : Any
            Extra keyword arguments for subprocess.Popen

        Returns
        -------
        subprocess.Popen
            Handle of the running forwarder process
        """
        cmd = self.build_command(
            "port-forward", "--address", "127.0.0.1", f"pod/{name}", f"{local_port}:{remote_port}"
        )
        logger.debug("Running: %s", shlex.join(cmd), extra={"stream": "kubectl"})
        return subprocess.Popen(cmd, **popen_kwargs)
