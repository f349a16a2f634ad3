"""
Pure rewrites of the text files the steps manage.

Each function takes the current file content and returns the new content,
leaving reading and (privileged) writing to the caller.
"""

import re
from typing import Dict, Iterable, List

HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def missing_lines(existing: str, lines: Iterable[str]) -> List[str]:
    """Lines that do not yet appear verbatim in ``existing``."""
    present = set(existing.splitlines())
    missing: List[str] = []
    for line in lines:
        if line not in present and line not in missing:
            missing.append(line)
    return missing


def append_lines(existing: str, lines: Iterable[str]) -> str:
    """Append the lines that are missing, one per line."""
    new = missing_lines(existing, lines)
    if not new:
        return existing
    if existing and not existing.endswith("\n"):
        existing += "\n"
    return existing + "\n".join(new) + "\n"


def comment_cdrom_sources(text: str) -> str:
    return re.sub(r"^(deb cdrom:)", r"#\1", text, flags=re.MULTILINE)


# ----------------------------------------------------------------
# sshd_config
# ----------------------------------------------------------------
def _split_at_match(lines: List[str]) -> int:
    for i, line in enumerate(lines):
        if re.match(r"^\s*Match\s", line, flags=re.IGNORECASE):
            return i
    return len(lines)


def sshd_settings(text: str) -> Dict[str, str]:
    """
    Effective global settings of an sshd_config.

    sshd honours the first occurrence of a keyword, and anything after the
    first ``Match`` line is conditional, so only the global section counts.
    """
    lines = text.splitlines()
    settings: Dict[str, str] = {}
    for line in lines[: _split_at_match(lines)]:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split(None, 1)
        key = parts[0].lower()
        if key not in settings:
            settings[key] = parts[1].strip() if len(parts) > 1 else ""
    return settings


def is_sshd_hardened(text: str, keywords: Iterable[str], value: str = "no") -> bool:
    settings = sshd_settings(text)
    return all(settings.get(k.lower(), "").lower() == value for k in keywords)


def harden_sshd(text: str, keywords: Iterable[str], value: str = "no") -> str:
    """
    Force ``keyword value`` for each keyword.

    Only the global section is touched: existing directives there,
    commented out or not, are rewritten in place, and keywords it lacks are
    added at its end. ``Match`` blocks are left as they are.
    """
    keywords = list(keywords)
    pattern = re.compile(
        r"^#?[ \t]*(" + "|".join(re.escape(k) for k in keywords) + r")\b.*$",
        flags=re.MULTILINE | re.IGNORECASE,
    )
    found = set()

    def _replace(match: "re.Match[str]") -> str:
        key = next(k for k in keywords if k.lower() == match.group(1).lower())
        found.add(key)
        return f"{key} {value}"

    lines = text.splitlines(keepends=True)
    at = _split_at_match(lines)
    head = pattern.sub(_replace, "".join(lines[:at]))
    tail = "".join(lines[at:])

    absent = [f"{k} {value}\n" for k in keywords if k not in found]
    if absent:
        if head and not head.endswith("\n"):
            head += "\n"
        head += "".join(absent)
    return head + tail


# ----------------------------------------------------------------
# Hostname
# ----------------------------------------------------------------
def valid_hostname(name: str) -> bool:
    """RFC 1123 hostname: dot separated labels, 253 characters at most."""
    if not name or len(name) > 253:
        return False
    return all(HOSTNAME_LABEL.match(label) for label in name.split("."))


def rewrite_hosts(text: str, hostname: str) -> str:
    """Point the ``127.0.1.1`` entry of /etc/hosts at ``hostname``."""
    entry = f"127.0.1.1 {hostname}"
    new, count = re.subn(r"^127\.0\.1\.1\b.*$", entry, text, flags=re.MULTILINE)
    if count:
        return new
    if text and not text.endswith("\n"):
        text += "\n"
    return text + entry + "\n"
