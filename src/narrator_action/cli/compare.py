"""Offline delta between two snapshots, e.g. two downloaded artifact sets."""

import json
from pathlib import Path

import typer
from rich.table import Table

from ..artifacts import FACTS_FILE, RISK_REPORT_FILE, read_snapshot
from ..delta import DeltaComparator
from ..exceptions import NarratorError
from ..logging_config import setup_logging
from ..models import AnalysisSnapshot, DeltaResult
from . import app
from ._common import console, find_document


def _load(directory: Path) -> AnalysisSnapshot:
    return read_snapshot(find_document(directory, FACTS_FILE), find_document(directory, RISK_REPORT_FILE))


def _render_table(delta: DeltaResult) -> None:
    table = Table(title="Findings delta", show_header=True, header_style="bold")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    table.add_column("Finding IDs")
    for status, ids, style in (
        ("new", delta.new_finding_ids, "red"),
        ("resolved", delta.resolved_finding_ids, "green"),
        ("unchanged", delta.unchanged_finding_ids, "dim"),
    ):
        table.add_row(f"[{style}]{status}[/{style}]", str(len(ids)), ", ".join(sorted(ids)))
    console.print(table)

    sign = "+" if delta.score_delta > 0 else ""
    console.print(
        f"Risk score: {delta.baseline_risk_score} -> {delta.current_risk_score} ({sign}{delta.score_delta})"
    )
    if delta.new_flag_ids or delta.resolved_flag_ids:
        console.print(f"Flags: {len(delta.new_flag_ids)} new, {len(delta.resolved_flag_ids)} resolved")
    if delta.scope_warning:
        console.print(f"[yellow]Warning:[/yellow] {delta.scope_warning}")


@app.command(name="compare")
def compare(
    baseline: Path = typer.Argument(..., help="Baseline snapshot directory", exists=True, file_okay=False),
    current: Path = typer.Argument(..., help="Current snapshot directory", exists=True, file_okay=False),
    strict: bool = typer.Option(False, "--strict", help="Fail when the ranges have different bases"),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Show new, resolved and unchanged findings between two snapshots.

    Each directory holds ``facts.json`` and ``risk-report.json``, either
    directly or inside downloaded artifact folders.

    [bold cyan]Examples:[/bold cyan]

      narrator-action compare ./baseline ./current

      narrator-action compare ./baseline ./current --json
    """
    setup_logging(verbose=verbose)
    try:
        delta = DeltaComparator(strict=strict).compare(_load(baseline), _load(current))
    except NarratorError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] could not read snapshot: {e}")
        raise typer.Exit(1)

    if json_output:
        output = {"facts": delta.facts_delta(), "riskReport": delta.risk_delta()}
        print(json.dumps(output, indent=2))
        return
    _render_table(delta)
