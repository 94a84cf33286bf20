"""
Logging configuration for the branch narrator action.

Provides rich-formatted console logging, and mirrors warnings and errors
as GitHub Actions workflow annotations when running inside a workflow.
"""

import logging
import sys
from typing import Optional, TextIO

from rich.console import Console
from rich.logging import RichHandler

_ROOT = "narrator_action"


def escape_command_data(value: str) -> str:
    """Escape a message for use in a ``::command::`` workflow line."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class AnnotationHandler(logging.Handler):
    """Emit WARNING and ERROR records as ``::warning::`` / ``::error::`` lines.

    The runner turns these into annotations on the workflow run page.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        super().__init__(level=logging.WARNING)
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            command = "error" if record.levelno >= logging.ERROR else "warning"
            stream = self.stream or sys.stdout
            stream.write(f"::{command}::{escape_command_data(record.getMessage())}\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[str] = None,
    github_actions: bool = False,
) -> logging.Logger:
    """
    Configure logging with rich handler for colored output.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Suppress all but ERROR level logging
        log_file: Optional file path to write logs to
        github_actions: Also emit workflow annotations for warnings/errors

    Returns:
        Configured logger instance for narrator_action
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    console = Console(stderr=True)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            rich_tracebacks=True,
            tracebacks_show_locals=verbose,
            markup=False,
            show_time=True,
            show_path=verbose,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        handlers.append(file_handler)

    if github_actions:
        handlers.append(AnnotationHandler())

    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations in one process do not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Module name (e.g., 'narrator_action.runner')
              If None, returns the root narrator_action logger

    Returns:
        Logger instance
    """
    if name is None:
        return logging.getLogger(_ROOT)

    if not name.startswith(_ROOT):
        name = f"{_ROOT}.{name}"

    return logging.getLogger(name)
