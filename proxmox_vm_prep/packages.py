"""Installed-package registry parsing and install-list resolution."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Set

from proxmox_vm_prep.host import Host

logger = logging.getLogger(__name__)

# Tab separated: status abbreviation, package name, version
REGISTRY_FORMAT = "${db:Status-Abbrev}\\t${Package}\\t${Version}\\n"


@dataclass(frozen=True)
class PackageRecord:
    """One line of the dpkg registry."""

    name: str
    version: str
    status: str

    @property
    def installed(self) -> bool:
        # Second status letter is the current state: i = installed
        return len(self.status) >= 2 and self.status[1] == "i"


def parse_registry(output: str) -> List[PackageRecord]:
    """
    Parse ``dpkg-query -W`` output produced with ``REGISTRY_FORMAT``.

    Lines that do not have exactly three tab separated fields are ignored.
    """
    records: List[PackageRecord] = []
    for line in output.splitlines():
        fields = line.split("\t")
        if len(fields) != 3:
            if line.strip():
                logger.debug("Ignoring unparseable registry line: %r", line)
            continue
        status, name, version = (f.strip() for f in fields)
        if not name:
            continue
        records.append(PackageRecord(name=name, version=version, status=status))
    return records


def installed_names(records: Iterable[PackageRecord]) -> Set[str]:
    return {record.name for record in records if record.installed}


def query_installed(host: Host) -> Set[str]:
    """Query the host's package registry once and return installed names."""
    result = host.run(["dpkg-query", "-W", "-f", REGISTRY_FORMAT], check=False)
    return installed_names(parse_registry(result.stdout or ""))


def is_installed(host: Host, package: str) -> bool:
    return package in query_installed(host)


def primary_token(entry: str) -> str:
    """
    The part of a catalog entry used for matching.

    Multi-word entries match on their first word only; the entry itself is
    still handed to the installer unchanged.
    """
    parts = entry.split()
    return parts[0] if parts else ""


def resolve_missing(catalog: Iterable[str], installed: Set[str]) -> List[str]:
    """
    Return catalog entries whose package is not installed.

    Args:
        catalog: Package entries in install order
        installed: Names of installed packages

    Returns:
        The missing entries, in catalog order, without duplicates.
    """
    missing: List[str] = []
    seen: Set[str] = set()
    for entry in catalog:
        token = primary_token(entry)
        if not token or entry in seen:
            continue
        seen.add(entry)
        if token != entry.strip():
            logger.warning(
                "Catalog entry %r is matched by %r only and passed to apt as-is",
                entry,
                token,
            )
        if token not in installed:
            missing.append(entry)
    return missing
