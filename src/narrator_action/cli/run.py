"""The action entrypoint: one full run from workflow inputs."""

import json
from pathlib import Path
from typing import Optional

import typer

from ..actions import ActionsEnvironment
from ..exceptions import NarratorError
from ..logging_config import setup_logging
from ..pipeline import NarratorRun
from . import app
from ._common import console, resolve_config


@app.command(name="run")
def run(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    base_sha: Optional[str] = typer.Option(None, "--base", help="Base commit (defaults to the PR base)"),
    head_sha: Optional[str] = typer.Option(None, "--head", help="Head commit (defaults to the PR head)"),
    artifact_dir: Optional[Path] = typer.Option(
        None,
        "--artifact-dir",
        help="Store artifacts in this directory instead of the workflow artifact service",
        file_okay=False,
    ),
    fail_on_score: Optional[int] = typer.Option(
        None,
        "--fail-on-score",
        help="Fail when the risk score reaches this threshold",
        min=0,
        max=100,
    ),
    no_comment: bool = typer.Option(False, "--no-comment", help="Do not post a PR comment"),
    json_output: bool = typer.Option(False, "--json", help="Print the step outputs as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the analyzer, compare against the baseline and publish the report.

    Inputs are read from the workflow environment (``INPUT_*``), then
    ``NARRATOR_*`` variables, then the options given here.

    [bold cyan]Examples:[/bold cyan]

      narrator-action run

      narrator-action run --base main --head HEAD --artifact-dir .artifacts --json
    """
    environment = ActionsEnvironment()
    logger = setup_logging(verbose=verbose, github_actions=environment.is_github_actions)

    try:
        settings = resolve_config(
            config=config,
            verbose=verbose,
            base_sha=base_sha,
            head_sha=head_sha,
            artifact_dir=str(artifact_dir) if artifact_dir else None,
            fail_on_score=fail_on_score,
            comment=False if no_comment else None,
        )
        if settings.verbose and not verbose:
            logger = setup_logging(verbose=True, github_actions=environment.is_github_actions)
        outcome = NarratorRun(settings, environment).execute()
    except NarratorError as e:
        logger.error(str(e))
        if not e.recoverable:
            for line in e.diagnostics():
                logger.error(line)
        if e.recovery_hint:
            console.print(f"[dim]{e.recovery_hint}[/dim]")
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("Unexpected error in run")
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(outcome.outputs, indent=2))

    if outcome.failure_message:
        raise typer.Exit(1)
