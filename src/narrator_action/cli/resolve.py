"""Print the concrete analyzer version behind a version specifier."""

import json
from pathlib import Path
from typing import Optional

import typer

from ..exceptions import NarratorError
from ..logging_config import setup_logging
from ..version import VersionResolver
from . import app
from ._common import console, resolve_config


@app.command(name="resolve-version")
def resolve_version(
    spec: str = typer.Argument(..., help="Version or tag, e.g. latest or 1.4"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Resolve SPEC against the package registry.

    Falls back to SPEC itself when the registry cannot be reached.
    """
    setup_logging(verbose=verbose)
    try:
        settings = resolve_config(config=config, verbose=verbose)
    except NarratorError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if settings.verbose and not verbose:
        setup_logging(verbose=True)

    resolved = VersionResolver.from_config(settings).resolve(spec)
    if json_output:
        output = {"package": settings.analyzer_package, "requested": spec, "resolved": resolved}
        print(json.dumps(output, indent=2))
    else:
        console.print(f"{settings.analyzer_package}@{resolved}", highlight=False)
