"""
Branch Narrator Action - CI orchestration for the branch-narrator analyzer

Runs the analyzer over a pull request's commit range, reconciles the result
against a baseline from an earlier run, and publishes the report as a job
summary, a single PR comment, workflow artifacts and step outputs.
"""

__version__ = "0.3.0"

from .config import ActionConfig, load_config
from .delta import DeltaComparator, compare_snapshots
from .models import AnalysisRange, AnalysisSnapshot, DeltaResult
from .pipeline import NarratorRun, RunOutcome

__all__ = [
    "NarratorRun",  # Main entry point
    "RunOutcome",
    "ActionConfig",
    "load_config",
    "AnalysisRange",
    "AnalysisSnapshot",
    "DeltaResult",
    "DeltaComparator",
    "compare_snapshots",
]
