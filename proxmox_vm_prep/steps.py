"""
Provisioning steps.

Every step answers two questions: ``check`` (is the host already in the
desired state?) and ``apply`` (get it there). ``check`` must be cheap and
free of side effects; it is evaluated fresh on every run. ``apply`` may
return a short message for the status report, and signals trouble by
raising a ``SetupError`` subclass.
"""

import datetime
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from proxmox_vm_prep import apt
from proxmox_vm_prep.errors import (
    ConfigurationError,
    ExecutionError,
    MissingInputError,
    ValidationError,
)
from proxmox_vm_prep.host import Host
from proxmox_vm_prep.identity import IdentityRegenerator
from proxmox_vm_prep.packages import is_installed, query_installed, resolve_missing
from proxmox_vm_prep.textedit import (
    append_lines,
    harden_sshd,
    is_sshd_hardened,
    missing_lines,
    rewrite_hosts,
    valid_hostname,
)
from proxmox_vm_prep.ui import (
    print_message,
    print_step,
    print_success,
    print_warning,
    spinner,
)

logger = logging.getLogger(__name__)


class Step:
    """Base class for a single idempotent provisioning action."""

    name: str = ""
    title: str = ""
    # Question asked before apply; "{user}" is filled in
    prompt: Optional[str] = None
    # A failure in apply aborts the whole pipeline
    fatal: bool = False
    # False when check() cannot observe the result of apply()
    has_check: bool = True
    # Shown when check() passes; "{user}" is filled in
    satisfied: str = "Already configured"

    def question(self, host: Host) -> Optional[str]:
        return self.prompt.format(user=host.user) if self.prompt else None

    def satisfied_message(self, host: Host) -> str:
        return self.satisfied.format(user=host.user)

    def check(self, host: Host) -> bool:
        return False

    def apply(self, host: Host) -> Optional[str]:
        raise NotImplementedError


# ----------------------------------------------------------------
# Prep Phase
# ----------------------------------------------------------------
class EnsureSudo(Step):
    name = "ensure_sudo"
    title = "Sudo Access"
    prompt = "Add {user} to sudo group?"
    satisfied = "User {user} is already in sudo group"

    def check(self, host: Host) -> bool:
        return host.in_group(host.config.ADMIN_GROUP)

    def apply(self, host: Host) -> Optional[str]:
        config = host.config
        user = shlex.quote(host.user)
        # sudo ignores sudoers.d files whose names contain a dot
        sudoers = shlex.quote(f"{config.SUDOERS_DIR}/{host.user.replace('.', '_')}")
        rule = shlex.quote(f"{host.user} ALL=(ALL) NOPASSWD:ALL")
        script = (
            f"usermod -aG {config.ADMIN_GROUP} {user}"
            f" && echo {rule} > {sudoers}"
            f" && chmod 0440 {sudoers}"
            f" && visudo -c -f {sudoers}"
        )

        if host.as_root:
            if not host.has_command("sudo"):
                print_step("Installing sudo...")
                apt.install(host, ["sudo"])
            host.run(["sh", "-c", script])
        else:
            if not host.has_command("sudo"):
                print_step("Installing sudo...")
                host.run(["su", "-c", "apt-get install -y sudo", "root"], capture_output=False)
            print_message(f"Please enter root password to add {host.user} to sudo group:")
            host.run(["su", "-c", script, "root"], capture_output=False)

        print_success(f"User {host.user} added to sudo group. A logout/login may be required.")
        return f"{host.user} added to {config.ADMIN_GROUP}"


class InstallPackages(Step):
    """
    Install whatever part of the package catalog is missing.

    The registry is queried once and the missing packages go to apt in a
    single call. Failing to refresh the package lists is fatal.
    """

    name = "install_packages"
    title = "System Packages"
    fatal = True
    has_check = False

    def apply(self, host: Host) -> Optional[str]:
        apt.configure_apt_sources(host)
        apt.refresh_package_index(host)

        installed = query_installed(host)
        to_install = resolve_missing(host.config.PACKAGES, installed)
        if not to_install:
            print_success("All required packages are already installed.")
            return "nothing to install"

        print_step(f"Installing {len(to_install)} missing packages...")
        logger.info("Installing: %s", " ".join(to_install))
        apt.install(host, to_install)
        print_success(f"Installed {len(to_install)} packages")
        return f"installed {len(to_install)} packages"


class InstallNvm(Step):
    name = "install_nvm"
    title = "Node Version Manager"
    prompt = "Install nvm (Node Version Manager)?"
    satisfied = "nvm is already installed"

    def _nvm_script(self, host: Host) -> Path:
        return host.user_path(host.config.NVM_DIR) / "nvm.sh"

    def check(self, host: Host) -> bool:
        script = self._nvm_script(host)
        return script.is_file() and script.stat().st_size > 0

    def apply(self, host: Host) -> Optional[str]:
        nvm_dir = host.user_path(host.config.NVM_DIR)
        print_step("Running the nvm install script...")
        host.as_user(
            ["bash", "-c", f"set -o pipefail; curl -o- {host.config.NVM_INSTALL_URL} | bash"],
            capture_output=False,
        )
        print_step("Installing the latest Node.js LTS...")
        host.as_user(
            [
                "bash",
                "-c",
                f'export NVM_DIR="{nvm_dir}"; . "$NVM_DIR/nvm.sh"'
                " && nvm install --lts && npm install -g npm@latest",
            ],
            capture_output=False,
        )
        print_success("nvm and Node.js LTS installed")
        return "nvm + node LTS"


class InstallPipx(Step):
    name = "install_pipx"
    title = "pipx"
    prompt = "Install pipx for Python application management?"
    satisfied = "pipx is already installed"

    def check(self, host: Host) -> bool:
        return host.has_command("pipx")

    def apply(self, host: Host) -> Optional[str]:
        try:
            host.as_user(
                ["python3", "-m", "pip", "install", "--user", "pipx"], capture_output=False
            )
        except ExecutionError:
            # Debian marks the system interpreter as externally managed
            print_warning("pip refused a user install, using the Debian pipx package")
            apt.install(host, ["pipx"])
        host.as_user(["python3", "-m", "pipx", "ensurepath"])

        failed: List[str] = []
        for app in host.config.PIPX_APPS:
            print_step(f"pipx install {' '.join(app)}")
            try:
                host.as_user(["python3", "-m", "pipx", "install"] + app, capture_output=False)
            except ExecutionError:
                failed.append(" ".join(app))
        if failed:
            raise ExecutionError(f"pipx could not install: {', '.join(failed)}")

        print_success("pipx installed. Open a new shell to pick up ~/.local/bin")
        return "pipx + apps"


class DockerPostinstall(Step):
    name = "docker_postinstall"
    title = "Docker Post-Install"
    prompt = "Configure Docker for non-root user?"
    satisfied = "Docker post-install already completed"

    def check(self, host: Host) -> bool:
        return host.in_group(host.config.DOCKER_GROUP)

    def apply(self, host: Host) -> Optional[str]:
        host.sudo(["usermod", "-aG", host.config.DOCKER_GROUP, host.user])
        print_warning("You need to log out and back in for Docker group changes to take effect")
        return f"{host.user} added to {host.config.DOCKER_GROUP}"


class ShellCustomizations(Step):
    name = "shell_customizations"
    title = "Shell Customizations"

    satisfied = "Shell customizations already applied"

    def check(self, host: Host) -> bool:
        rc = host.user_path(host.config.SHELL_RC)
        return not missing_lines(host.read_file(str(rc)), host.config.ALIASES)

    def apply(self, host: Host) -> Optional[str]:
        rc = host.user_path(host.config.SHELL_RC)
        current = host.read_file(str(rc))
        added = missing_lines(current, host.config.ALIASES)
        created = not rc.exists()
        try:
            rc.write_text(append_lines(current, host.config.ALIASES), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot update {rc}: {e}") from e
        if created:
            host.chown_to_user(rc)
        print_success("Shell customizations applied")
        return f"{len(added)} aliases added"


class SecurityHardening(Step):
    """Unattended security upgrades plus an sshd that refuses passwords and root."""

    name = "security_hardening"
    title = "Security Hardening"
    prompt = "Enable basic security hardening?"
    satisfied = "Security hardening already applied"

    def check(self, host: Host) -> bool:
        config = host.config
        hardened = is_sshd_hardened(host.read_file(config.SSHD_CONFIG), config.SSH_HARDENING)
        return hardened and is_installed(host, "unattended-upgrades")

    def apply(self, host: Host) -> Optional[str]:
        config = host.config

        print_step("Configuring automatic security updates...")
        apt.install(host, ["unattended-upgrades"])
        host.sudo(["dpkg-reconfigure", "-plow", "unattended-upgrades"], capture_output=False)

        current = host.read_file(config.SSHD_CONFIG)
        hardened = harden_sshd(current, config.SSH_HARDENING)
        if hardened != current:
            ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
            backup = host.backup_system_file(config.SSHD_CONFIG, ts)
            host.write_system_file(config.SSHD_CONFIG, hardened)
            try:
                host.sudo(["sshd", "-t"])
            except ExecutionError as e:
                raise ConfigurationError(
                    f"sshd rejected the new configuration (backup: {backup}): {e}"
                ) from e
            host.sudo(["systemctl", "reload", "ssh"], check=False)

        print_warning("SSH password authentication and root login disabled")
        return "unattended-upgrades + sshd hardened"


# ----------------------------------------------------------------
# Post-Clone Phase
# ----------------------------------------------------------------
class RegenerateSystemIds(Step):
    name = "regenerate_system_ids"
    title = "System Identifiers"
    has_check = False

    def apply(self, host: Host) -> Optional[str]:
        print_step("Regenerating system identifiers...")
        host.refresh_sudo()
        with spinner("Regenerating machine id and SSH host keys..."):
            IdentityRegenerator(host).run()
        print_success("System identifiers regenerated")
        return "machine id + SSH host keys"


class ChangeHostname(Step):
    name = "change_hostname"
    title = "Hostname"
    has_check = False

    def apply(self, host: Host) -> Optional[str]:
        new_hostname = host.ask("Enter new hostname:").strip()
        if not new_hostname:
            raise MissingInputError("No hostname entered, keeping the current hostname")
        if not valid_hostname(new_hostname):
            raise ValidationError(f"'{new_hostname}' is not a valid hostname")

        if new_hostname == host.hostname():
            print_success(f"Hostname is already {new_hostname}")
            return "unchanged"

        host.sudo(["hostnamectl", "set-hostname", new_hostname])
        hosts_file = host.config.HOSTS_FILE
        host.write_system_file(hosts_file, rewrite_hosts(host.read_file(hosts_file), new_hostname))
        print_success(f"Hostname changed to {new_hostname}")
        return new_hostname


class InstallTailscale(Step):
    name = "install_tailscale"
    title = "Tailscale"
    prompt = "Install Tailscale?"
    satisfied = "Tailscale is already installed"

    def check(self, host: Host) -> bool:
        return host.has_command("tailscale")

    def apply(self, host: Host) -> Optional[str]:
        config = host.config

        print_step("Adding the Tailscale package repository...")
        host.sudo(["curl", "-fsSL", "-o", config.TAILSCALE_KEYRING, config.tailscale_keyring_url])
        host.sudo(["curl", "-fsSL", "-o", config.tailscale_list_path, config.tailscale_list_url])
        host.sudo(["apt-get", "update", "-qq"])
        apt.install(host, ["tailscale"])

        auth_key = host.ask_secret("Enter your Tailscale auth key:").strip()
        if not auth_key:
            print_warning("No auth key provided, run 'sudo tailscale up' manually when ready")
            return "installed, not connected"

        host.sudo(["tailscale", "up", "--auth-key", auth_key], redact=[auth_key])
        host.sudo(["systemctl", "enable", config.TAILSCALE_SERVICE])
        print_success("Tailscale is up")
        return "installed and connected"


class SetupFirewall(Step):
    name = "setup_firewall"
    title = "Firewall"
    prompt = "Enable UFW firewall?"
    satisfied = "UFW is already active"

    def check(self, host: Host) -> bool:
        status = host.sudo(["ufw", "status"], check=False)
        return "Status: active" in (status.stdout or "")

    def apply(self, host: Host) -> Optional[str]:
        for rule in host.config.FIREWALL_RULES:
            logger.info("ufw %s%s", " ".join(rule.args), f"  # {rule.comment}" if rule.comment else "")
            host.sudo(["ufw"] + rule.args)
        host.sudo(["ufw", "--force", "enable"])
        print_success("UFW firewall enabled")
        return f"{len(host.config.FIREWALL_RULES)} rules"
