"""Logging setup: rich console handler plus a size-rotated log file."""

import datetime
import gzip
import logging
import os
import shutil

from rich.logging import RichHandler

from proxmox_vm_prep.ui import console, logger as ui_logger, print_warning

LOGGER_NAME = "proxmox_vm_prep"


def rotate_log(log_file: str, max_size: int) -> None:
    """Gzip the log file aside when it grows past ``max_size`` bytes."""
    if not os.path.exists(log_file) or os.path.getsize(log_file) <= max_size:
        return

    ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    rotated = f"{log_file}.{ts}.gz"
    try:
        with open(log_file, "rb") as fin, gzip.open(rotated, "wb") as fout:
            shutil.copyfileobj(fin, fout)
        open(log_file, "w").close()
        console.print(f"Rotated log file to [path]{rotated}[/path]")
    except OSError as e:
        print_warning(f"Failed to rotate log file: {e}")


def setup_logging(log_file: str, max_size: int) -> logging.Logger:
    """
    Configure logging with a Rich console handler and file output.

    The console handler only shows warnings and errors; regular progress is
    already printed by the ``ui`` helpers. The file receives everything.

    Args:
        log_file: Path of the log file
        max_size: Size in bytes above which the previous log is rotated

    Returns:
        The package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    if logger.handlers:
        return logger

    console_handler = RichHandler(
        console=console, rich_tracebacks=True, markup=False, show_path=False
    )
    console_handler.setLevel(logging.WARNING)
    # ui helpers already printed their own records
    console_handler.addFilter(lambda record: record.name != ui_logger.name)
    logger.addHandler(console_handler)

    try:
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
        rotate_log(log_file, max_size)
        file_handler = logging.FileHandler(log_file)
    except OSError as e:
        print_warning(f"Logging setup failed: {e}")
        print_warning("Continuing without file logging...")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    logger.info("Logging initialized: %s", log_file)
    return logger
