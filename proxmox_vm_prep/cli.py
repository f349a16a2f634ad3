"""Command-line entry point: pick a phase and run it."""

import argparse
import logging
import platform
import signal
import socket
import sys
from typing import Any, List, Optional

from proxmox_vm_prep.config import AppConfig
from proxmox_vm_prep.errors import FatalStepError
from proxmox_vm_prep.host import Host
from proxmox_vm_prep.log import setup_logging
from proxmox_vm_prep.pipelines import Phase, build_phases
from proxmox_vm_prep.runner import run_pipeline
from proxmox_vm_prep.ui import (
    NordColors,
    console,
    create_header,
    display_panel,
    print_error,
    print_step,
    print_warning,
    status_report,
)

logger = logging.getLogger(__name__)


def signal_handler(signum: int, frame: Optional[Any]) -> None:
    """
    Report a termination signal and exit.

    Nothing is cleaned up: a step cut short stays partially applied and its
    check decides what to do on the next run.
    """
    sig_name = f"signal {signum}"
    try:
        sig_name = signal.Signals(signum).name
    except ValueError:
        pass

    console.print()
    print_warning(f"Process interrupted by {sig_name}. Re-run the same phase to finish.")
    sys.exit(128 + signum)


def install_signal_handlers() -> None:
    for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGHUP):
        try:
            signal.signal(sig, signal_handler)
        except (AttributeError, ValueError):
            pass


def run_phase(phase: Phase, host: Host) -> int:
    """
    Run one phase and report on it.

    Returns:
        int: 0 unless a fatal step aborted the run
    """
    print_step(f"=== Running {phase.title.lower()} ===")
    try:
        result = run_pipeline(phase.steps, host)
    except FatalStepError as e:
        logger.info("Aborted %s: %s", phase.name, e)
        print_error(f"{phase.title} aborted.")
        return 1

    console.print()
    status_report(f"{host.config.APP_NAME}: {phase.title}", result.rows())

    actions = "\n".join(f"{i}. {item}" for i, item in enumerate(phase.recommendations, 1))
    display_panel(
        f"{phase.done_message} Recommended actions:\n{actions}",
        style=NordColors.GREEN if not result.failed else NordColors.YELLOW,
        title=phase.title,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxmox-vm-prep",
        description="Prepare a Debian VM as a Proxmox template, or personalise a clone.",
        allow_abbrev=False,
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--prep",
        dest="phase",
        action="store_const",
        const="prep",
        help="Run before converting the VM into a template",
    )
    group.add_argument(
        "--post-clone",
        dest="phase",
        action="store_const",
        const="post-clone",
        help="Run once on every new clone",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    args = build_parser().parse_args(argv)

    config = AppConfig()
    setup_logging(config.LOG_FILE, config.MAX_LOG_SIZE)
    install_signal_handlers()

    try:
        console.print(create_header(config.APP_NAME, config.VERSION, config.APP_SUBTITLE))
        host = Host.from_environment(config)
        print_step(f"System: {platform.system()} {platform.release()}")
        print_step(f"Hostname: {socket.gethostname()} | User: {host.user}")
        if host.as_root:
            print_warning(f"Running as root; home directory changes go to {host.home}")
        return run_phase(build_phases()[args.phase], host)

    except KeyboardInterrupt:
        print_warning("Process interrupted by user")
        return 130

    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        print_error(f"Unexpected error: {e}")
        console.print_exception()
        return 1
