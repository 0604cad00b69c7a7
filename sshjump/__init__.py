"""ssh-jump: reach private hosts through an ephemeral Kubernetes bastion."""

__version__ = "0.1.0"
