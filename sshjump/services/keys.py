"""Ephemeral keypair bootstrap and injection into the bastion."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import paramiko

from sshjump.constants import BASTION_USER, KEY_BITS, KEY_FILENAME
from sshjump.core.exceptions import InjectionError, KubectlError
from sshjump.providers.kubernetes.bastion import BastionInstance
from sshjump.providers.kubernetes.kubectl import KubectlClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EphemeralKeyPair:
    """Reusable password-less keypair used only for the bastion hop."""

    private_key_path: Path
    public_key_path: Path

    def read_public_key(self) -> str:
        return self.public_key_path.read_text().strip()


def authorized_keys_path(user: str) -> str:
    """Return the authorized_keys path for the bastion account."""
    home = "/root" if user == "root" else f"/home/{user}"
    return f"{home}/.ssh/authorized_keys"


class KeyManager:
    """Generate the ephemeral keypair once and install it on bastions.

    Parameters
    ----------
    key_dir : Path
        Directory holding ``id_rsa_sshjump`` and ``id_rsa_sshjump.pub``
    """

    def __init__(self, key_dir: Path) -> None:
        self.key_dir = Path(key_dir)

    @property
    def key_pair(self) -> EphemeralKeyPair:
        private_key_path = self.key_dir / KEY_FILENAME
        return EphemeralKeyPair(
            private_key_path=private_key_path,
            public_key_path=private_key_path.with_name(f"{KEY_FILENAME}.pub"),
        )

    def ensure_key_pair(self) -> EphemeralKeyPair:
        """Generate the keypair if its public half does not exist yet.

        Returns
        -------
        EphemeralKeyPair
            Paths of the (possibly pre-existing) keypair
        """
        key_pair = self.key_pair

        if key_pair.public_key_path.exists():
            logger.debug("Reusing ephemeral keypair %s", key_pair.private_key_path)
            return key_pair

        logger.info("Generating ephemeral keypair %s...", key_pair.private_key_path)
        self.key_dir.mkdir(parents=True, exist_ok=True)

        key = paramiko.RSAKey.generate(KEY_BITS)
        key.write_private_key_file(str(key_pair.private_key_path))
        os.chmod(key_pair.private_key_path, 0o600)

        key_pair.public_key_path.write_text(f"{key.get_name()} {key.get_base64()} sshjump\n")

        return key_pair

    def inject(
        self,
        kubectl: KubectlClient,
        instance: BastionInstance,
        public_key: str,
        user: str = BASTION_USER,
    ) -> None:
        """Write ``public_key`` into the bastion user's authorized_keys.

        Parameters
        ----------
        kubectl : KubectlClient
            Control-plane client for the bastion's context
        instance : BastionInstance
            Target bastion
        public_key : str
            OpenSSH-format public key line
        user : str
            Bastion account to authorize

        Raises
        ------
        InjectionError
            If the key cannot be written; the session cannot authenticate without it
        """
        target = authorized_keys_path(user)
        ssh_dir = target.rsplit("/", 1)[0]
        script = (
            f"mkdir -p {ssh_dir} && chmod 700 {ssh_dir} && "
            f"cat > {target} && chmod 600 {target}"
        )

        logger.info("Installing ephemeral public key on %s...", instance.name)

        try:
            kubectl.exec(instance.name, ["/bin/sh", "-c", script], input_data=public_key + "\n")
        except KubectlError as e:
            raise InjectionError(
                f"Failed to install public key on bastion {instance.name}: {e}"
            ) from e
