"""Nord-themed console output shared by every step."""

import logging
import shutil
from contextlib import contextmanager
from typing import Iterator, List, Tuple

import pyfiglet
from rich.align import Align
from rich.box import ROUNDED
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.style import Style
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------
# Nord-Themed Colors and Rich Console
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette for consistent theming throughout the application."""

    # Polar Night (dark background)
    POLAR_NIGHT_1: str = "#2E3440"
    POLAR_NIGHT_4: str = "#4C566A"

    # Snow Storm (light text)
    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"

    # Frost (blue accents)
    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"

    # Aurora (other accents)
    RED: str = "#BF616A"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"
    PURPLE: str = "#B48EAD"


console = Console(
    theme=Theme(
        {
            "info": f"bold {NordColors.FROST_2}",
            "warning": f"bold {NordColors.YELLOW}",
            "error": f"bold {NordColors.RED}",
            "success": f"bold {NordColors.GREEN}",
            "section": f"{NordColors.FROST_3} bold",
            "step": f"{NordColors.FROST_2}",
            "prompt": f"bold {NordColors.PURPLE}",
            "path": f"italic {NordColors.FROST_1}",
        }
    )
)


def create_header(app_name: str, version: str, subtitle: str) -> Panel:
    """
    Create an ASCII art header using Pyfiglet with a Nord-themed gradient.

    Returns:
        Panel: A Rich Panel containing the styled header.
    """
    fonts = ["slant", "small", "standard", "mini"]
    width = min(shutil.get_terminal_size().columns - 10, 80)
    ascii_art = ""

    for font in fonts:
        try:
            ascii_art = pyfiglet.Figlet(font=font, width=width).renderText(app_name)
        except pyfiglet.FontNotFound:
            logger.debug("Font %s not available", font)
            continue
        if ascii_art.strip():
            break

    if not ascii_art.strip():
        ascii_art = f"=== {app_name} ===\n"

    lines = [line for line in ascii_art.splitlines() if line.strip()]
    colors = [
        NordColors.FROST_1,
        NordColors.FROST_2,
        NordColors.FROST_3,
        NordColors.FROST_4,
    ]

    styled_text = ""
    for i, line in enumerate(lines):
        color = colors[i % len(colors)]
        # Square brackets in figlet output would be read as markup
        escaped_line = line.replace("[", "\\[").replace("]", "\\]")
        styled_text += f"[bold {color}]{escaped_line}[/]\n"

    border = f"[{NordColors.FROST_3}]{'━' * min(60, max(width - 5, 10))}[/]"
    return Panel(
        Text.from_markup(f"{border}\n{styled_text}{border}"),
        border_style=Style(color=NordColors.FROST_1),
        padding=(1, 2),
        box=ROUNDED,
        title=f"[bold {NordColors.SNOW_STORM_2}]v{version}[/]",
        title_align="right",
        subtitle=f"[bold {NordColors.SNOW_STORM_1}]{subtitle}[/]",
        subtitle_align="center",
    )


def print_message(
    text: str, style: str = NordColors.FROST_2, prefix: str = "•"
) -> None:
    """
    Print a styled message to the console and log it.

    Args:
        text: The message to print
        style: The color to use
        prefix: Symbol to prefix the message with
    """
    console.print(f"[{style}]{prefix} {escape(text)}[/{style}]", highlight=False)
    logger.info(text)


def print_step(text: str) -> None:
    print_message(text, NordColors.FROST_3, "➜")


def print_success(text: str) -> None:
    console.print(f"[{NordColors.GREEN}]✔ {escape(text)}[/]", highlight=False)
    logger.info("SUCCESS: %s", text)


def print_warning(text: str) -> None:
    console.print(f"[{NordColors.YELLOW}]⚠ {escape(text)}[/]", highlight=False)
    logger.warning(text)


def print_error(text: str) -> None:
    console.print(f"[{NordColors.RED}]✗ {escape(text)}[/]", highlight=False)
    logger.error(text)


def print_section(title: str) -> None:
    """Print a section header with decorative borders."""
    border = "═" * 60
    console.print()
    console.print(f"[bold {NordColors.FROST_3}]{border}[/]")
    console.print(f"[bold {NordColors.FROST_2}]  {title}[/]")
    console.print(f"[bold {NordColors.FROST_3}]{border}[/]")
    logger.info("--- %s ---", title)


def display_panel(message: str, style: str = NordColors.FROST_2, title: str = "") -> None:
    """Display a message inside a Rich panel."""
    console.print(
        Panel(
            Text.from_markup(f"[{style}]{message}[/]"),
            border_style=Style(color=style),
            padding=(1, 2),
            box=ROUNDED,
            title=f"[bold {style}]{title}[/]" if title else None,
        )
    )
    logger.info("PANEL (%s): %s", title or "Untitled", message)


@contextmanager
def spinner(description: str) -> Iterator[None]:
    """
    Show a spinner while a non-interactive command runs.

    Never wrap a command that reads from the terminal (password prompts,
    debconf dialogs) in a spinner; the live display would hide the prompt.
    """
    progress = Progress(
        SpinnerColumn(spinner_name="dots", style=f"bold {NordColors.FROST_1}"),
        TextColumn(f"[bold {NordColors.FROST_2}]{{task.description}}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    with progress:
        progress.add_task(description, total=None)
        yield


def status_report(title: str, rows: List[Tuple[str, str, str]]) -> None:
    """
    Display a table reporting the outcome of every step.

    Args:
        title: Table title
        rows: (step name, outcome, message) tuples in execution order
    """
    icons = {
        "applied": ("✓", "success"),
        "satisfied": ("✓", "success"),
        "declined": ("–", "step"),
        "skipped": ("–", "warning"),
        "failed": ("✗", "error"),
    }

    table = Table(
        show_header=True,
        header_style=f"bold {NordColors.FROST_1}",
        border_style=NordColors.FROST_3,
        box=ROUNDED,
        title=f"[bold {NordColors.FROST_2}]{title}[/]",
        title_justify="center",
        expand=True,
    )
    table.add_column("Step", style=f"bold {NordColors.FROST_2}")
    table.add_column("Status", justify="center")
    table.add_column("Message", style=f"{NordColors.SNOW_STORM_1}", ratio=3)

    counts = {key: 0 for key in icons}
    for name, outcome, message in rows:
        icon, style = icons.get(outcome, ("?", "step"))
        counts[outcome] = counts.get(outcome, 0) + 1
        table.add_row(name, f"[{style}]{icon} {outcome.upper()}[/]", escape(message))

    summary = Text()
    summary.append("Status Summary: ", style=f"bold {NordColors.FROST_3}")
    summary.append(
        f"{counts['applied'] + counts['satisfied']} Done",
        style=f"bold {NordColors.GREEN}",
    )
    summary.append(" | ")
    summary.append(f"{counts['failed']} Failed", style=f"bold {NordColors.RED}")
    summary.append(" | ")
    summary.append(
        f"{counts['declined'] + counts['skipped']} Skipped",
        style=f"bold {NordColors.POLAR_NIGHT_4}",
    )

    console.print(
        Panel(
            Group(table, Align.center(summary)),
            border_style=Style(color=NordColors.FROST_4),
            padding=(0, 1),
            box=ROUNDED,
        )
    )
