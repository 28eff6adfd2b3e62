"""
Rich logging utilities for the read-along system.
"""

from rich.console import Console
from rich.status import Status
from rich.theme import Theme

from voxtrack.utils.config import config

# Custom theme for VoxTrack
custom_theme = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "step": "blue bold",
        "debug": "dim",
        "highlight": "black on yellow",
    }
)

# Global console instance
console = Console(theme=custom_theme)


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]ℹ[/info] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓[/success] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[error]✗[/error] {message}")


def debug(message: str) -> None:
    """Print a debug message when debug logging is enabled."""
    if config.debug:
        console.print(f"[debug]· {message}[/debug]")


def step(message: str) -> None:
    """Print a step message."""
    console.print(f"[step]→[/step] {message}")


def header(message: str) -> None:
    """Print a header message."""
    console.print()
    console.rule(f"[bold]{message}[/bold]")
    console.print()


def status(message: str) -> Status:
    """Show a spinner while waiting on the speech service."""
    return console.status(f"[step]{message}[/step]", spinner="dots")
