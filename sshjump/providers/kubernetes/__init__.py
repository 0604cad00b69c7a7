"""Kubernetes control-plane integration via kubectl."""

from __future__ import annotations

from sshjump.providers.kubernetes.bastion import BastionInstance, BastionManager, build_pod_manifest
from sshjump.providers.kubernetes.kubectl import KubectlClient

__all__ = [
    "BastionInstance",
    "BastionManager",
    "KubectlClient",
    "build_pod_manifest",
]
