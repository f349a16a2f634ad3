"""APT repository configuration and package manager calls."""

import glob
import logging
import os
from typing import List

from proxmox_vm_prep.config import AppConfig
from proxmox_vm_prep.errors import ExecutionError, FatalStepError
from proxmox_vm_prep.host import Host
from proxmox_vm_prep.packages import is_installed
from proxmox_vm_prep.textedit import comment_cdrom_sources
from proxmox_vm_prep.ui import print_step, print_success, print_warning, spinner

logger = logging.getLogger(__name__)

APT_ENV_ARGS = ["env", "DEBIAN_FRONTEND=noninteractive"]


def render_official_sources(config: AppConfig) -> str:
    """deb822 source entries for the Debian archive and security suites."""
    codename = config.DEBIAN_CODENAME
    return (
        f"# Debian {codename.capitalize()} base repository\n"
        "Types: deb\n"
        f"URIs: {config.DEBIAN_MIRROR}\n"
        f"Suites: {codename} {codename}-updates {codename}-backports\n"
        f"Components: {config.DEBIAN_COMPONENTS}\n"
        f"Signed-By: {config.ARCHIVE_KEYRING}\n"
        "\n"
        "# Debian Security updates\n"
        "Types: deb\n"
        f"URIs: {config.DEBIAN_SECURITY_MIRROR}\n"
        f"Suites: {codename}-security\n"
        f"Components: {config.DEBIAN_COMPONENTS}\n"
        f"Signed-By: {config.ARCHIVE_KEYRING}\n"
    )


def legacy_list_files(config: AppConfig) -> List[str]:
    """``*.list`` files to drop, keeping the repositories this tool adds itself."""
    keep = {config.TAILSCALE_LIST}
    return sorted(
        path
        for path in glob.glob(os.path.join(config.SOURCES_DIR, "*.list"))
        if os.path.basename(path) not in keep
    )


def refresh_package_index(host: Host) -> None:
    """
    Run ``apt-get update``.

    Raises:
        FatalStepError: If the package lists cannot be refreshed; nothing
            after this can trust the package index.
    """
    print_step("Updating package lists...")
    host.refresh_sudo()
    try:
        with spinner("Updating package lists..."):
            host.sudo(["apt-get", "update", "-qq"])
    except ExecutionError as e:
        raise FatalStepError(
            "Failed to update package lists. Please check your network connection."
        ) from e


def install(host: Host, packages: List[str]) -> None:
    """Install packages in a single apt call, showing apt's own progress."""
    host.sudo(
        APT_ENV_ARGS + ["apt-get", "install", "-y"] + packages, capture_output=False
    )


def configure_apt_sources(host: Host) -> None:
    """
    Point APT at the official Debian mirrors.

    Disables CD-ROM entries, writes the deb822 sources file and removes
    legacy ``.list`` files. Each part is best effort.
    """
    config = host.config
    print_step("Configuring APT repositories...")

    if not is_installed(host, config.ARCHIVE_KEYRING_PACKAGE):
        print_step(f"Installing {config.ARCHIVE_KEYRING_PACKAGE}...")
        try:
            host.sudo(["apt-get", "update", "-qq"])
            install(host, [config.ARCHIVE_KEYRING_PACKAGE])
        except ExecutionError as e:
            print_warning(f"Could not install {config.ARCHIVE_KEYRING_PACKAGE}: {e}")

    current = host.read_file(config.SOURCES_LIST)
    updated = comment_cdrom_sources(current)
    if updated != current:
        try:
            host.write_system_file(config.SOURCES_LIST, updated)
            logger.info("Disabled CD-ROM entries in %s", config.SOURCES_LIST)
        except ExecutionError as e:
            print_warning(f"Failed to disable CD-ROM sources: {e}")

    sources_path = config.official_sources_path
    content = render_official_sources(config)
    if host.read_file(sources_path) != content:
        try:
            host.write_system_file(sources_path, content, mode="0644")
        except ExecutionError as e:
            print_warning(f"Failed to write {sources_path}: {e}")

    stale = legacy_list_files(config)
    if stale:
        try:
            host.sudo(["rm", "-f"] + stale)
            logger.info("Removed legacy source lists: %s", ", ".join(stale))
        except ExecutionError as e:
            print_warning(f"Failed to remove legacy source lists: {e}")

    print_success("APT repositories configured")
