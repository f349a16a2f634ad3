"""The machine being provisioned, as seen by the steps."""

import getpass
import logging
import os
import pwd
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from proxmox_vm_prep.command import Command, is_root, privileged, run_command
from proxmox_vm_prep.config import AppConfig
from proxmox_vm_prep.errors import ConfigurationError
from proxmox_vm_prep.gate import confirm, read_answer, read_secret

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]
Reader = Callable[[str], str]


class Host:
    """
    Everything a step needs to inspect or change the machine.

    Steps never call subprocess or prompt the terminal directly; they go
    through a Host so tests can swap in recording fakes.
    """

    def __init__(
        self,
        config: AppConfig,
        user: str,
        home: Path,
        as_root: bool = False,
        runner: Runner = run_command,
        reader: Reader = read_answer,
        secret_reader: Reader = read_secret,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.config = config
        self.user = user
        self.home = Path(home)
        self.as_root = as_root
        self._runner = runner
        self._reader = reader
        self._secret_reader = secret_reader
        self._which = which

    @classmethod
    def from_environment(cls, config: AppConfig) -> "Host":
        """Build a Host for the invoking user, looking through sudo."""
        as_root = is_root()
        user = os.environ.get("USER") or getpass.getuser()
        if as_root and os.environ.get("SUDO_USER"):
            user = os.environ["SUDO_USER"]
        try:
            home = Path(pwd.getpwnam(user).pw_dir)
        except KeyError:
            home = Path.home()
        return cls(config, user=user, home=home, as_root=as_root)

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------
    def run(self, cmd: Command, **kwargs) -> subprocess.CompletedProcess:
        kwargs.setdefault("timeout", self.config.COMMAND_TIMEOUT)
        return self._runner(cmd, **kwargs)

    def sudo(self, cmd: Command, **kwargs) -> subprocess.CompletedProcess:
        """Run a command that needs root."""
        return self.run(privileged(cmd, self.as_root), **kwargs)

    def as_user(self, cmd: List[str], **kwargs) -> subprocess.CompletedProcess:
        """Run a command as the target user, with HOME set to their home."""
        if self.as_root and self.user != "root":
            cmd = ["sudo", "-u", self.user, "-H"] + list(cmd)
        return self.run(cmd, **kwargs)

    def chown_to_user(self, path: Path) -> None:
        """Hand a file created while running as root back to the target user."""
        if self.as_root and self.user != "root":
            self.run(["chown", f"{self.user}:", str(path)])

    def refresh_sudo(self) -> None:
        """Ask for the sudo password up front, before a spinner takes the terminal."""
        if not self.as_root:
            self.run(["sudo", "-v"], check=False, capture_output=False)

    def has_command(self, name: str) -> bool:
        return self._which(name) is not None

    # ------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------
    def ask(self, question: str) -> str:
        return self._reader(question)

    def ask_secret(self, question: str) -> str:
        return self._secret_reader(question)

    def confirm(self, question: str) -> bool:
        return confirm(question, self._reader)

    # ------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------
    def groups(self) -> List[str]:
        """Groups the target user belongs to, read fresh from the group database."""
        return self.run(["id", "-nG", self.user]).stdout.split()

    def in_group(self, group: str) -> bool:
        return group in self.groups()

    def hostname(self) -> str:
        return self.run(["hostname"]).stdout.strip()

    # ------------------------------------------------------------
    # Files
    # ------------------------------------------------------------
    def user_path(self, relative: str) -> Path:
        return self.home / relative

    def read_file(self, path: str) -> str:
        """Read a text file, treating a missing file as empty."""
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Cannot read {path}: {e}") from e

    def write_system_file(self, path: str, content: str, mode: Optional[str] = None) -> None:
        """Replace a root-owned file via ``tee``."""
        self.sudo(["tee", path], input=content)
        if mode:
            self.sudo(["chmod", mode, path])

    def backup_system_file(self, path: str, suffix: str) -> Optional[str]:
        """Copy a root-owned file aside, keeping its permissions."""
        if not os.path.isfile(path):
            return None
        backup = f"{path}.bak.{suffix}"
        self.sudo(["cp", "-a", path, backup])
        logger.info("Backed up %s to %s", path, backup)
        return backup
