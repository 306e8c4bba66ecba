"""Shared utilities for piprov CLI modules."""
from __future__ import annotations

import sys
from typing import Callable, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from piprov.core.command import CommandRunner, is_mock


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from piprov.core.logger import set_console_level, setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)
    set_console_level(verbose)


def get_runner(mock: Optional[bool] = None) -> CommandRunner:
    """Return a CommandRunner with mock defaults."""
    if mock is None:
        mock = is_mock()
    return CommandRunner(mock=mock)


def confirm_action(message: str, yes_flag: bool = False, mock: bool = False,
                   default: bool = False) -> bool:
    """Prompt user for confirmation unless --yes or mock mode.

    Without a terminal on stdin the prompt cannot be answered, so ``default``
    is returned instead.

    Args:
        message: Confirmation message to display
        yes_flag: Skip prompt if True (from --yes flag)
        mock: Skip prompt if True (mock mode)
        default: Answer used for an empty reply or a non-interactive run

    Returns:
        True if confirmed, False otherwise
    """
    if yes_flag or mock:
        return True
    if not sys.stdin.isatty():
        return default
    return typer.confirm(message, default=default)


def make_confirm(yes_flag: bool = False, mock: bool = False) -> Callable[..., bool]:
    """Bind --yes and mock mode into the ``confirm(message, default)`` callback services take."""
    def confirm(message: str, default: bool = False) -> bool:
        return confirm_action(message, yes_flag=yes_flag, mock=mock, default=default)
    return confirm


def format_validation_error(e: ValidationError) -> str:
    """One line per invalid field, without pydantic's URL footer."""
    lines = []
    for error in e.errors():
        message = error.get("msg", "")
        # Custom validators surface as "Value error, <message>"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        field = ".".join(str(part) for part in error.get("loc", ()))
        lines.append(f"{field}: {message}" if field else message)
    return "\n".join(lines)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    message = format_validation_error(e) if isinstance(e, ValidationError) else str(e)
    console.print(f"[red]Error:[/red] {message}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting.

    Args:
        console: Rich console for output
        message: Success message
        prefix: Prefix symbol (default: ✓)
    """
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting.

    Args:
        console: Rich console for output
        message: Error message
        prefix: Prefix symbol (default: ✗)
    """
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting.

    Args:
        console: Rich console for output
        message: Warning message
        prefix: Prefix symbol (default: ⚠)
    """
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting.

    Args:
        console: Rich console for output
        message: Info message
        prefix: Prefix symbol (default: ℹ)
    """
    console.print(f"[cyan]{prefix}[/cyan] {message}")
