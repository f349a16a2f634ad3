import os
import shutil
import subprocess
from pathlib import Path

import pytest

from proxmox_vm_prep.config import AppConfig
from proxmox_vm_prep.errors import ExecutionError
from proxmox_vm_prep.host import Host


class FakeSystem:
    """
    In-memory stand-in for the commands the steps issue.

    Only the state the checks look at is modelled; every other command
    succeeds silently. Commands are recorded with sudo/env prefixes removed.
    """

    def __init__(self, config: AppConfig, home: Path, user: str = "alice") -> None:
        self.config = config
        self.home = home
        # HOME of the process itself; differs from home when started via sudo
        self.process_home = home
        self.current_home = home
        self.user = user
        self.groups = {user}
        self.installed = {"debian-archive-keyring"}
        self.commands = {"sudo", "curl", "python3"}
        self.hostname = "template"
        self.ufw_active = False
        self.failing = []
        self.answers = {}
        self.secret = ""
        self.questions = []
        self.calls = []
        self.raw_calls = []

    # ------------------------------------------------------------
    def fail(self, *prefix: str) -> None:
        self.failing.append(tuple(prefix))

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)

    def calls_to(self, *prefix: str):
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    # ------------------------------------------------------------
    def reader(self, question: str) -> str:
        self.questions.append(question)
        for needle, answer in self.answers.items():
            if needle in question:
                return answer
        return ""

    def secret_reader(self, question: str) -> str:
        self.questions.append(question)
        return self.secret

    def which(self, name: str):
        return f"/usr/bin/{name}" if name in self.commands else None

    # ------------------------------------------------------------
    def __call__(self, cmd, check=True, input=None, **kwargs):
        self.raw_calls.append((list(cmd), kwargs))
        args = list(cmd)
        if args and args[0] == "sudo" and len(args) > 1:
            args = args[1:]
        # sudo -u <user> -H switches HOME to the target user's home
        self.current_home = self.process_home
        if args[:1] == ["-u"] and args[2:3] == ["-H"]:
            self.current_home = self.home
            args = args[3:]
        if args and args[0] == "env":
            args = args[1:]
            while args and "=" in args[0]:
                args = args[1:]
        self.calls.append(args)

        for prefix in self.failing:
            if tuple(args[: len(prefix)]) == prefix:
                if check:
                    raise ExecutionError(f"Command failed (code 1): {' '.join(args)}")
                return subprocess.CompletedProcess(args, 1, "", "failed")

        stdout = self._dispatch(args, input)
        return subprocess.CompletedProcess(args, 0, stdout, "")

    def _dispatch(self, args, input):
        name = args[0] if args else ""
        if name == "id":
            return " ".join(sorted(self.groups)) + "\n"
        if name == "dpkg-query":
            return "".join(f"ii \t{p}\t1.0\n" for p in sorted(self.installed))
        if name == "apt-get" and args[1:2] == ["install"]:
            packages = [a for a in args[2:] if not a.startswith("-")]
            self.installed.update(packages)
            self.commands.update(packages)
            return ""
        if name == "su":
            if f"usermod -aG {self.config.ADMIN_GROUP}" in args[2]:
                self.groups.add(self.config.ADMIN_GROUP)
            return ""
        if name == "usermod":
            self.groups.add(args[2])
            return ""
        if name == "hostname":
            return self.hostname + "\n"
        if name == "hostnamectl":
            self.hostname = args[2]
            return ""
        if name == "ufw":
            if args[1:] == ["status"]:
                return "Status: active\n" if self.ufw_active else "Status: inactive\n"
            if args[1:] == ["--force", "enable"]:
                self.ufw_active = True
            return ""
        if name == "tee":
            Path(args[1]).parent.mkdir(parents=True, exist_ok=True)
            Path(args[1]).write_text(input or "", encoding="utf-8")
            return input or ""
        if name == "cp":
            shutil.copy(args[-2], args[-1])
            return ""
        if name == "rm":
            for path in args[2:]:
                if os.path.exists(path):
                    os.remove(path)
            return ""
        if name == "systemd-machine-id-setup":
            Path(self.config.MACHINE_ID).write_text("f" * 32 + "\n")
            return ""
        if name == "dpkg-reconfigure" and "openssh-server" in args:
            Path(self.config.SSH_DIR, "ssh_host_ed25519_key").write_text("new-key")
            return ""
        if name == "bash" and "nvm.sh" in args[-1]:
            return ""
        if name == "bash" and "install.sh" in args[-1]:
            nvm = self.current_home / self.config.NVM_DIR
            nvm.mkdir(parents=True, exist_ok=True)
            (nvm / "nvm.sh").write_text("# nvm\n")
            return ""
        if name == "python3" and args[1:4] == ["-m", "pip", "install"]:
            self.commands.add("pipx")
            return ""
        return ""


def make_config(tmp_path: Path, **overrides) -> AppConfig:
    etc = tmp_path / "etc"
    (etc / "apt" / "sources.list.d").mkdir(parents=True)
    (etc / "ssh").mkdir(parents=True)
    (etc / "sudoers.d").mkdir(parents=True)
    (etc / "apt" / "sources.list").write_text(
        "deb cdrom:[Debian GNU/Linux 12.5.0]/ bookworm main\n"
        "deb http://deb.debian.org/debian bookworm main\n"
    )
    (etc / "ssh" / "sshd_config").write_text(
        "Include /etc/ssh/sshd_config.d/*.conf\n"
        "#PermitRootLogin prohibit-password\n"
        "#PasswordAuthentication yes\n"
        "UsePAM yes\n"
    )
    (etc / "hosts").write_text("127.0.0.1 localhost\n127.0.1.1 template\n")

    settings = dict(
        SOURCES_LIST=str(etc / "apt" / "sources.list"),
        SOURCES_DIR=str(etc / "apt" / "sources.list.d"),
        SSHD_CONFIG=str(etc / "ssh" / "sshd_config"),
        SSH_DIR=str(etc / "ssh"),
        MACHINE_ID=str(etc / "machine-id"),
        HOSTS_FILE=str(etc / "hosts"),
        SUDOERS_DIR=str(etc / "sudoers.d"),
        LOG_FILE=str(tmp_path / "logs" / "prep.log"),
        PACKAGES=["curl", "git", "htop"],
    )
    settings.update(overrides)
    return AppConfig(**settings)


@pytest.fixture
def system(tmp_path):
    home = tmp_path / "home" / "alice"
    home.mkdir(parents=True)
    return FakeSystem(make_config(tmp_path), home)


@pytest.fixture
def host(system):
    return Host(
        system.config,
        user=system.user,
        home=system.home,
        runner=system,
        reader=system.reader,
        secret_reader=system.secret_reader,
        which=system.which,
    )


@pytest.fixture
def root_host(system):
    """The same machine, with the tool started through ``sudo``."""
    return Host(
        system.config,
        user=system.user,
        home=system.home,
        as_root=True,
        runner=system,
        reader=system.reader,
        secret_reader=system.secret_reader,
        which=system.which,
    )
