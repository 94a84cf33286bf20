"""Shared CLI helpers."""

from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from ..config import ActionConfig, load_config

console = Console()


def resolve_config(config: Optional[Path] = None, verbose: bool = False, **overrides: Any) -> ActionConfig:
    """Build configuration from the environment plus CLI options.

    ``--verbose`` can only turn debug logging on; a config file or
    ``NARRATOR_VERBOSE`` may also enable it.
    """
    if verbose:
        overrides["verbose"] = True
    return load_config(config_file=config, **overrides)


def find_document(directory: Path, filename: str) -> Path:
    """Locate *filename* in *directory*, or in one of its subdirectories.

    Accepts both a flat snapshot directory and a tree of downloaded
    artifacts (``<name>-facts/facts.json`` next to
    ``<name>-risk-report/risk-report.json``).
    """
    direct = directory / filename
    if direct.is_file():
        return direct
    matches = sorted(directory.rglob(filename))
    if not matches:
        raise typer.BadParameter(f"no {filename} under {directory}")
    return matches[0]
