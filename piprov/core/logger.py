"""Unified logging for piprov with console and file output."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Diagnostics go to stderr so command output stays clean on stdout
console = Console(stderr=True)

LOG_DIR = Path("/var/log/piprov")
LOG_FILE = LOG_DIR / "piprov.log"
ROOT_LOGGER = "piprov"

# Module loggers stay NOTSET and take their level from here
logging.getLogger(ROOT_LOGGER).setLevel(logging.INFO)

_file_logging_configured = False


def setup_file_logging(log_file: str = None, verbose: bool = False):
    """Set up file logging for provisioning runs.

    Args:
        log_file: Path to log file (defaults to /var/log/piprov/piprov.log)
        verbose: Enable debug-level logging

    Note:
        Creates log directory if it doesn't exist.
        Falls back to /tmp if /var/log/piprov is not writable.
    """
    global _file_logging_configured

    if _file_logging_configured:
        return

    target_log_file = Path(log_file) if log_file else LOG_FILE

    try:
        target_log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target_log_file)
    except PermissionError:
        target_log_file = Path("/tmp/piprov.log")
        try:
            file_handler = logging.FileHandler(target_log_file)
        except OSError as e:
            console.print(f"[yellow]⚠[/yellow] File logging disabled: {e}")
            return

    root_logger = logging.getLogger(ROOT_LOGGER)
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    _file_logging_configured = True

    root_logger.info(f"piprov logging initialized: {target_log_file}")


def set_console_level(verbose: bool = False):
    """Raise or lower the level of every piprov logger.

    Module loggers inherit from the ``piprov`` parent, so this also covers
    loggers created later by lazily imported services.
    """
    logging.getLogger(ROOT_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance with console output.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger with Rich console handler

    Note:
        File logging must be enabled separately via setup_file_logging()
    """
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        if not name.startswith(ROOT_LOGGER):
            logger.setLevel(logging.INFO)

    return logger
