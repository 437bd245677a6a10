"""Utility functions for the post-setup tool."""
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import typer

from postsetup.errors import BackupFailed, LogFileUnavailable

LOGGER_NAME = "postsetup"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
BACKUP_SUFFIX_FORMAT = "%Y%m%d%H%M%S%f"

LEVEL_COLORS = {
    "DEBUG": typer.colors.CYAN,
    "INFO": typer.colors.BLUE,
    "ERROR": typer.colors.RED,
}

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.DEBUG)


class ConsoleFormatter(logging.Formatter):
    """Formatter that colours the level name for terminal output."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        timestamp = self.formatTime(record, self.datefmt)
        color = LEVEL_COLORS.get(record.levelname)
        level = typer.style(record.levelname, fg=color, bold=True) if color else record.levelname
        return f"[{timestamp}] [{level}] {message}"


class ConsoleHandler(logging.Handler):
    """Write records through typer.echo so the current streams are used."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            typer.echo(self.format(record), err=record.levelno >= logging.ERROR)
        except Exception:
            self.handleError(record)


def command_exists(command: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(command) is not None


def is_root() -> bool:
    """Check if the script is running as root."""
    return os.geteuid() == 0


def log_info(message: str) -> None:
    """Log an informational message."""
    logger.info(message)


def log_action(message: str) -> None:
    """Log an action being performed."""
    logger.info(f"  -> {message}")


def log_debug(message: str) -> None:
    """Log a message only shown in verbose mode or in the log file."""
    logger.debug(message)


def log_error(message: str) -> None:
    """Log an error message."""
    logger.error(message)


def setup_logging(verbose: bool = False, log_file: Optional[Union[str, Path]] = None) -> None:
    """Setup logging configuration.

    Console output is filtered to INFO unless ``verbose`` is set. When a
    ``log_file`` is given every record, DEBUG included, is appended to it.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = ConsoleHandler(level=logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(ConsoleFormatter(datefmt=DATE_FORMAT))
    logger.addHandler(console)

    if log_file:
        add_log_file(log_file)


def add_log_file(log_file: Union[str, Path]) -> None:
    """Append every record, DEBUG included, to ``log_file``."""
    try:
        file_handler = logging.FileHandler(str(log_file), mode="a", encoding="utf-8")
    except OSError as e:
        raise LogFileUnavailable(f"Cannot open log file {log_file}: {e}") from e
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)


def backup_file(target: Union[str, Path]) -> Optional[Path]:
    """Copy ``target`` to a timestamped sibling before it is modified.

    Returns the backup path, or None when the target does not exist yet.
    Raises BackupFailed if the copy itself fails.
    """
    target = Path(target)
    if not target.exists():
        log_debug(f"No existing {target} to back up.")
        return None

    stamp = datetime.now().strftime(BACKUP_SUFFIX_FORMAT)
    backup = target.with_name(f"{target.name}.bak.{stamp}")
    counter = 1
    while backup.exists():
        backup = target.with_name(f"{target.name}.bak.{stamp}.{counter}")
        counter += 1
    try:
        shutil.copy2(str(target), str(backup))
    except OSError as e:
        raise BackupFailed(f"Could not back up {target}: {e}") from e

    log_debug(f"Backed up {target} to {backup}")
    return backup
