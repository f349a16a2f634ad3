"""
Machine identity regeneration for cloned VMs.

A clone shares its template's machine id and SSH host keys. Regeneration
moves through three states::

    CLONED ──reset──▶ RESET ──regenerate──▶ REGENERATED

``reset`` deletes the identifiers, ``regenerate`` issues new ones and
restarts sshd. A run killed between the two leaves the host in ``RESET``
(no machine id, no host keys); the next run detects that and goes straight
to ``regenerate``. There is no rollback.
"""

import enum
import glob
import logging
import os
from pathlib import Path
from typing import List

from proxmox_vm_prep.config import AppConfig
from proxmox_vm_prep.errors import ExecutionError
from proxmox_vm_prep.host import Host

logger = logging.getLogger(__name__)


class IdentityState(enum.Enum):
    CLONED = "cloned"
    RESET = "reset"
    REGENERATED = "regenerated"


class IdentityRegenerationError(ExecutionError):
    """Raised when regeneration stops after the identifiers were removed."""

    pass


def host_key_files(config: AppConfig) -> List[str]:
    return sorted(glob.glob(os.path.join(config.SSH_DIR, "ssh_host_*")))


def detect_state(config: AppConfig) -> IdentityState:
    """
    Infer the identity state from the filesystem.

    A missing or empty machine id, or no host keys at all, can only mean an
    earlier run stopped after ``reset``.
    """
    try:
        machine_id = Path(config.MACHINE_ID).read_text().strip()
    except FileNotFoundError:
        machine_id = ""
    if not machine_id or not host_key_files(config):
        return IdentityState.RESET
    return IdentityState.CLONED


class IdentityRegenerator:
    """Drives one host through the regeneration state machine."""

    def __init__(self, host: Host) -> None:
        self.host = host
        self.config = host.config
        self.state = detect_state(self.config)

    def reset(self) -> None:
        """CLONED -> RESET: remove the machine id and SSH host keys."""
        if self.state is not IdentityState.CLONED:
            raise ValueError(f"Cannot reset from state {self.state.value}")
        keys = host_key_files(self.config)
        self.host.sudo(["rm", "-f", self.config.MACHINE_ID] + keys)
        logger.info("Removed %s and %d host key files", self.config.MACHINE_ID, len(keys))
        self.state = IdentityState.RESET

    def regenerate(self) -> None:
        """RESET -> REGENERATED: issue a new machine id and host keys."""
        if self.state is not IdentityState.RESET:
            raise ValueError(f"Cannot regenerate from state {self.state.value}")
        try:
            self.host.sudo(["systemd-machine-id-setup"])
            self.host.sudo(
                ["dpkg-reconfigure", "-f", "noninteractive", "openssh-server"]
            )
        except ExecutionError as e:
            raise IdentityRegenerationError(
                "Identifiers were removed but not regenerated; this host has no "
                "machine id or SSH host keys until --post-clone is re-run. "
                f"Cause: {e}"
            ) from e
        self.state = IdentityState.REGENERATED
        self.host.sudo(["systemctl", "restart", "ssh"])

    def run(self) -> IdentityState:
        """Advance to REGENERATED from wherever the host currently is."""
        if self.state is IdentityState.RESET:
            logger.warning("Found a host with no identifiers, resuming regeneration")
        if self.state is IdentityState.CLONED:
            self.reset()
        self.regenerate()
        return self.state
