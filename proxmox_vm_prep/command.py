"""Command execution helpers."""

import logging
import os
import shlex
import subprocess
from typing import Dict, List, Optional, Sequence, Union

from proxmox_vm_prep.errors import ExecutionError

logger = logging.getLogger(__name__)

Command = Union[List[str], str]


def is_root() -> bool:
    return os.geteuid() == 0 if hasattr(os, "geteuid") else False


def privileged(cmd: Command, as_root: bool) -> Command:
    """Prefix a command with sudo unless the process already runs as root."""
    if as_root:
        return cmd
    if isinstance(cmd, str):
        return f"sudo {cmd}"
    return ["sudo"] + list(cmd)


def _display(cmd: Command, redact: Sequence[str]) -> str:
    cmd_str = cmd if isinstance(cmd, str) else " ".join(shlex.quote(c) for c in cmd)
    for secret in redact:
        if secret:
            cmd_str = cmd_str.replace(secret, "********")
    return cmd_str


def run_command(
    cmd: Command,
    env: Optional[Dict[str, str]] = None,
    shell: bool = False,
    check: bool = True,
    capture_output: bool = True,
    input: Optional[str] = None,
    timeout: Optional[int] = None,
    redact: Sequence[str] = (),
) -> subprocess.CompletedProcess:
    """
    Execute a system command and return the CompletedProcess.

    Interactive commands (password prompts, debconf dialogs, installers that
    draw progress bars) must run with ``capture_output=False`` so they own the
    terminal.

    Args:
        cmd: Command to execute (list or string)
        env: Environment variables
        shell: Run through ``/bin/sh``; required for pipelines
        check: Whether to raise on non-zero exit
        capture_output: Whether to capture stdout/stderr
        input: Text fed to the command's stdin
        timeout: Command timeout in seconds, None waits forever
        redact: Values to mask in the logged command line

    Returns:
        subprocess.CompletedProcess object

    Raises:
        ExecutionError: If the command cannot be started, times out, or
            exits non-zero while ``check`` is set
    """
    cmd_str = _display(cmd, redact)
    logger.debug("Executing: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            env=env or os.environ.copy(),
            shell=shell,
            check=check,
            text=True,
            capture_output=capture_output,
            input=input,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        error_msg = f"Command failed (code {e.returncode}): {cmd_str}"
        if e.stderr:
            error_msg += f"\nError: {e.stderr.strip()}"
        logger.info(error_msg)
        raise ExecutionError(error_msg, e.returncode) from e
    except subprocess.TimeoutExpired as e:
        error_msg = f"Command timed out after {timeout} seconds: {cmd_str}"
        logger.info(error_msg)
        raise ExecutionError(error_msg) from e
    except OSError as e:
        error_msg = f"Error executing command: {cmd_str}: {e}"
        logger.info(error_msg)
        raise ExecutionError(error_msg, 127) from e

    logger.debug("Exit code %s: %s", result.returncode, cmd_str)
    return result
