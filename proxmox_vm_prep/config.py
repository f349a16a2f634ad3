"""Static configuration for both provisioning phases."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from proxmox_vm_prep import __version__


# ----------------------------------------------------------------
# Package Catalog
# ----------------------------------------------------------------
PREP_PACKAGES: List[str] = [
    # Base system
    "firmware-linux-nonfree",
    "aptitude",
    "software-properties-common",
    "apt-transport-https",
    "ca-certificates",
    "gnupg2",
    # Core tools
    "rsync",
    "curl",
    "wget",
    "git",
    "openssh-client",
    "bash-completion",
    "htop",
    "neovim",
    "jq",
    "tree",
    "net-tools",
    "dnsutils",
    "ncdu",
    "unzip",
    "zip",
    "mlocate",
    "make",
    "build-essential",
    # Dev environments
    "docker.io",
    "docker-compose",
    "python3",
    "python3-pip",
    "python3-venv",
    "nodejs",
    "npm",
    "rustc",
    "cargo",
    # Security & management
    "ufw",
    "fail2ban",
    "ansible",
    # Optional tools
    "tmux",
    "zsh",
    "fzf",
    "ripgrep",
    "bat",
    "exa",
]

SHELL_ALIASES: List[str] = [
    "alias ll='exa -alhF --git --group-directories-first'",
    "alias lt='exa -TF --git --ignore-glob=.git'",
    "alias cat='bat --paging=never'",
    'alias dps=\'docker ps --format "table {{.ID}}\\t{{.Image}}\\t{{.Status}}\\t{{.Names}}"\'',
    "alias k='kubectl'",
]


@dataclass
class FirewallRule:
    """A single ``ufw`` invocation, minus the ``ufw`` itself."""

    args: List[str]
    comment: str = ""


@dataclass
class AppConfig:
    """Global application configuration."""

    # Application info
    VERSION: str = __version__
    APP_NAME: str = "Proxmox VM Prep"
    APP_SUBTITLE: str = "Template Preparation & Post-Clone Utility"

    # Debian-specific settings
    DEBIAN_CODENAME: str = "bookworm"
    DEBIAN_MIRROR: str = "https://deb.debian.org/debian"
    DEBIAN_SECURITY_MIRROR: str = "https://security.debian.org/debian-security"
    DEBIAN_COMPONENTS: str = "main contrib non-free non-free-firmware"
    ARCHIVE_KEYRING_PACKAGE: str = "debian-archive-keyring"
    ARCHIVE_KEYRING: str = "/usr/share/keyrings/debian-archive-keyring.gpg"

    # System paths
    SOURCES_LIST: str = "/etc/apt/sources.list"
    SOURCES_DIR: str = "/etc/apt/sources.list.d"
    OFFICIAL_SOURCES_FILE: str = "debian-official.sources"
    SSHD_CONFIG: str = "/etc/ssh/sshd_config"
    SSH_DIR: str = "/etc/ssh"
    MACHINE_ID: str = "/etc/machine-id"
    HOSTS_FILE: str = "/etc/hosts"
    SUDOERS_DIR: str = "/etc/sudoers.d"

    # Paths relative to the target user's home
    NVM_DIR: str = ".nvm"
    SHELL_RC: str = ".bashrc"

    # Logging
    LOG_FILE: str = os.path.expanduser("~/proxmox_vm_prep_logs/proxmox_vm_prep.log")
    MAX_LOG_SIZE: int = 10 * 1024 * 1024  # 10MB

    # No timeout on network-bound commands; a hang blocks the run.
    COMMAND_TIMEOUT: Optional[int] = None

    # Groups
    ADMIN_GROUP: str = "sudo"
    DOCKER_GROUP: str = "docker"

    # Dev tooling
    NVM_INSTALL_URL: str = (
        "https://raw.githubusercontent.com/nvm-sh/nvm/v0.39.5/install.sh"
    )
    PIPX_APPS: List[List[str]] = field(
        default_factory=lambda: [
            ["--include-deps", "ansible"],
            ["poetry", "pre-commit", "black"],
        ]
    )

    # Tailscale
    TAILSCALE_PKG_URL: str = "https://pkgs.tailscale.com/stable/debian"
    TAILSCALE_KEYRING: str = "/usr/share/keyrings/tailscale-archive-keyring.gpg"
    TAILSCALE_LIST: str = "tailscale.list"
    TAILSCALE_SERVICE: str = "tailscaled"

    # Security settings
    SSH_HARDENING: List[str] = field(
        default_factory=lambda: ["PasswordAuthentication", "PermitRootLogin"]
    )
    FIREWALL_RULES: List[FirewallRule] = field(
        default_factory=lambda: [
            FirewallRule(["default", "deny", "incoming"]),
            FirewallRule(["default", "allow", "outgoing"]),
            FirewallRule(["allow", "OpenSSH"]),
            FirewallRule(["allow", "in", "on", "tailscale0"]),
            FirewallRule(["allow", "41641/udp"], "Tailscale"),
        ]
    )

    PACKAGES: List[str] = field(default_factory=lambda: list(PREP_PACKAGES))
    ALIASES: List[str] = field(default_factory=lambda: list(SHELL_ALIASES))

    @property
    def official_sources_path(self) -> str:
        return os.path.join(self.SOURCES_DIR, self.OFFICIAL_SOURCES_FILE)

    @property
    def tailscale_list_path(self) -> str:
        return os.path.join(self.SOURCES_DIR, self.TAILSCALE_LIST)

    @property
    def tailscale_keyring_url(self) -> str:
        return f"{self.TAILSCALE_PKG_URL}/{self.DEBIAN_CODENAME}.noarmor.gpg"

    @property
    def tailscale_list_url(self) -> str:
        return f"{self.TAILSCALE_PKG_URL}/{self.DEBIAN_CODENAME}.tailscale-keyring.list"
