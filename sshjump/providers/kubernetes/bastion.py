"""Ephemeral bastion pod provisioning and readiness polling."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import yaml

from sshjump.constants import (
    BASTION_LABELS,
    BASTION_SSH_PORT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_READY_TIMEOUT_SECONDS,
    MIN_POLL_TIMEOUT_SECONDS,
    PodPhase,
)
from sshjump.core.config import SessionConfig
from sshjump.core.exceptions import KubectlError, ProvisioningTimeoutError
from sshjump.providers.kubernetes.kubectl import KubectlClient
from sshjump.utils import generate_bastion_name

logger = logging.getLogger(__name__)


@dataclass
class BastionInstance:
    """A bastion pod owned by the current session."""

    name: str
    context: str | None
    image: str
    status: str = PodPhase.PENDING.value
    labels: dict[str, str] = field(default_factory=lambda: dict(BASTION_LABELS))

    @property
    def is_running(self) -> bool:
        return self.status == PodPhase.RUNNING.value


def build_pod_manifest(name: str, image: str, labels: dict[str, str]) -> dict[str, Any]:
    """Build the Pod manifest for a bastion.

    Parameters
    ----------
    name : str
        Pod name
    image : str
        Container image running an SSH daemon
    labels : dict[str, str]
        Labels identifying the pod as a jump host

    Returns
    -------
    dict[str, Any]
        Pod manifest ready to be serialized
    """
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "labels": dict(labels)},
        "spec": {
            "restartPolicy": "Never",
            "containers": [
                {
                    "name": "sshjump",
                    "image": image,
                    "ports": [{"containerPort": BASTION_SSH_PORT}],
                }
            ],
            "nodeSelector": {"kubernetes.io/os": "linux"},
        },
    }


class BastionManager:
    """Create, await and destroy the session's bastion pod.

    Parameters
    ----------
    kubectl : KubectlClient
        Control-plane client scoped to the session's context
    clock : Callable[[], float]
        Monotonic clock used for the readiness deadline
    sleep : Callable[[float], None]
        Sleep function used between readiness polls
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.kubectl = kubectl
        self.clock = clock
        self.sleep = sleep

    def create(self, config: SessionConfig) -> BastionInstance:
        """Submit a new bastion pod.

        Parameters
        ----------
        config : SessionConfig
            Session configuration providing image and context

        Returns
        -------
        BastionInstance
            Instance record for the created pod

        Raises
        ------
        KubectlError
            If the control plane rejects the pod
        """
        instance = BastionInstance(
            name=generate_bastion_name(),
            context=config.context,
            image=config.image,
        )
        manifest = build_pod_manifest(instance.name, instance.image, instance.labels)

        logger.info("Creating bastion pod %s (image %s)...", instance.name, instance.image)

        try:
            self.kubectl.create(yaml.safe_dump(manifest, sort_keys=False))
        except BaseException:
            # the pod may exist even if kubectl was interrupted
            self.destroy(instance)
            raise

        return instance

    def wait_ready(
        self,
        instance: BastionInstance,
        timeout: float = DEFAULT_READY_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        strict: bool = True,
    ) -> bool:
        """Poll the bastion until it is running or the timeout elapses.

        Parameters
        ----------
        instance : BastionInstance
            Bastion to poll; its ``status`` is updated on every poll
        timeout : float
            Maximum seconds to wait
        poll_interval : float
            Seconds between polls
        strict : bool
            Raise on timeout when True, otherwise log a warning and return False

        Returns
        -------
        bool
            True if the bastion reached the Running phase

        Raises
        ------
        ProvisioningTimeoutError
            If strict and the bastion is not running before the deadline
        """
        deadline = self.clock() + timeout

        while True:
            poll_timeout = max(deadline - self.clock(), MIN_POLL_TIMEOUT_SECONDS)
            try:
                phase = self.kubectl.get_pod_phase(instance.name, timeout=poll_timeout)
            except KubectlError as e:
                logger.debug("Status poll for %s failed: %s", instance.name, e)
                phase = ""

            if phase:
                instance.status = phase

            if instance.is_running:
                logger.info("Bastion pod %s is running", instance.name)
                return True

            if phase in (PodPhase.FAILED.value, PodPhase.SUCCEEDED.value):
                raise ProvisioningTimeoutError(
                    f"Bastion pod {instance.name} terminated with phase {phase}"
                )

            remaining = deadline - self.clock()
            if remaining <= 0:
                break

            self.sleep(min(poll_interval, remaining))

        message = f"Bastion pod {instance.name} not running after {timeout:g}s (phase: {instance.status})"
        if strict:
            raise ProvisioningTimeoutError(message)

        logger.warning("%s; continuing anyway", message)
        return False

    def destroy(self, instance: BastionInstance) -> None:
        """Force-delete the bastion; failures are logged and suppressed."""
        logger.info("Deleting bastion pod %s...", instance.name)

        try:
            self.kubectl.delete_pod(instance.name)
            instance.status = PodPhase.UNKNOWN.value
        except KubectlError as e:
            logger.debug("Ignoring error deleting bastion pod %s: %s", instance.name, e)
