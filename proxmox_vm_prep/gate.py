"""
Yes/no confirmation gate.

The gate is split in two: ``parse_confirmation`` decides what an answer
means and never touches the terminal, while ``confirm`` asks the question
through whatever reader the host was built with.
"""

import logging
from typing import Callable

from rich.prompt import Prompt

from proxmox_vm_prep.ui import console

logger = logging.getLogger(__name__)

DECLINE_ANSWERS = frozenset({"n", "no"})


def parse_confirmation(answer: str) -> bool:
    """
    Interpret a ``[Y/n]`` answer.

    Args:
        answer: Raw text typed by the user

    Returns:
        False only for ``n``/``no`` in any case, True for everything else
        including an empty answer.
    """
    return answer.strip().lower() not in DECLINE_ANSWERS


def read_answer(question: str) -> str:
    """Read one line from the terminal; end of input counts as empty."""
    try:
        return Prompt.ask(
            f"[prompt]{question}[/prompt]",
            console=console,
            default="",
            show_default=False,
        )
    except EOFError:
        console.print()
        return ""


def read_secret(question: str) -> str:
    try:
        return Prompt.ask(
            f"[prompt]{question}[/prompt]",
            console=console,
            default="",
            show_default=False,
            password=True,
        )
    except EOFError:
        console.print()
        return ""


def confirm(question: str, reader: Callable[[str], str] = read_answer) -> bool:
    """Ask a yes/no question that defaults to yes."""
    answer = reader(f"{question} [Y/n]")
    proceed = parse_confirmation(answer)
    logger.info("%s -> %r (%s)", question, answer, "proceed" if proceed else "declined")
    return proceed
