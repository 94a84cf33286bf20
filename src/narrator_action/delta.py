"""Delta reconciliation between a baseline snapshot and the current one.

Findings are matched by identity key:
  new       = current - baseline
  resolved  = baseline - current
  unchanged = baseline & current

The three sets partition the union of both snapshots' keys. Risk flags are
matched the same way by flag id. The comparison is pure: it depends only on
the key sets, never on document order.
"""

from typing import Optional

from .exceptions import ErrorCode, ScopeMismatchError
from .logging_config import get_logger
from .models import AnalysisRange, AnalysisSnapshot, DeltaResult

logger = get_logger(__name__)


def check_scope(baseline: AnalysisRange, current: AnalysisRange) -> Optional[str]:
    """Return a warning if the two ranges are not comparable, else None.

    Ranges are comparable when they share the same base commit. A different
    base means the baseline was computed against another point of the
    target branch (or another branch entirely), so findings that look new
    or resolved may come from changes outside this branch.
    """
    if baseline.same_base(current):
        return None
    return (
        f"Baseline range {baseline.short()} has a different base than the current range "
        f"{current.short()}; new and resolved findings may include changes outside this branch."
    )


class DeltaComparator:
    """Compute ``DeltaResult`` values.

    Args:
        strict: Raise ``ScopeMismatchError`` instead of attaching a warning
            when the snapshots' ranges are not comparable.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def compare(self, baseline: AnalysisSnapshot, current: AnalysisSnapshot) -> DeltaResult:
        warning = check_scope(baseline.range, current.range)
        if warning is not None:
            if self.strict:
                raise ScopeMismatchError(
                    message=warning,
                    code=ErrorCode.NA500,
                    context={"baseline": baseline.range.short(), "current": current.range.short()},
                    recoverable=False,
                    recovery_hint="Disable strict mode or publish a baseline from the same base commit",
                )
            logger.warning(warning)

        old_keys = baseline.finding_ids
        new_keys = current.finding_ids
        old_flags = baseline.risk_report.flag_ids
        new_flags = current.risk_report.flag_ids

        return DeltaResult(
            new_finding_ids=new_keys - old_keys,
            resolved_finding_ids=old_keys - new_keys,
            unchanged_finding_ids=old_keys & new_keys,
            scope_match=warning is None,
            scope_warning=warning,
            new_flag_ids=new_flags - old_flags,
            resolved_flag_ids=old_flags - new_flags,
            score_delta=current.risk_report.risk_score - baseline.risk_report.risk_score,
            baseline_range=baseline.range,
            baseline_generated_at=baseline.facts.generated_at,
            baseline_risk_score=baseline.risk_report.risk_score,
            baseline_flag_count=len(baseline.risk_report.flags),
            current_risk_score=current.risk_report.risk_score,
            current_flag_count=len(current.risk_report.flags),
        )


def compare_snapshots(
    baseline: AnalysisSnapshot, current: AnalysisSnapshot, strict: bool = False
) -> DeltaResult:
    """Convenience wrapper around ``DeltaComparator(strict).compare``."""
    return DeltaComparator(strict=strict).compare(baseline, current)
