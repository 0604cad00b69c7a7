"""Cluster providers hosting the ephemeral bastion."""
