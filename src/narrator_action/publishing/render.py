"""Markdown rendering for the step summary and the PR comment.

The analyzer's own ``pr-body`` narrative is the main content; these
functions add the version/range header, the delta section and the hidden
marker that identifies the comment for update-in-place.
"""

from dataclasses import dataclass
from typing import Optional

from ..models import DeltaResult

# Never change this string: existing comments are found by it.
COMMENT_MARKER = "<!-- branch-narrator:report -->"

# Delta id lists longer than this are summarized.
_MAX_LISTED_IDS = 20


@dataclass(frozen=True)
class RenderContext:
    """Metadata shown above the rendered report."""

    resolved_version: str
    base_sha: str
    head_sha: str
    owner: str = ""
    repo: str = ""


def short_sha(sha: str) -> str:
    return sha[:7]


def compare_link(owner: str, repo: str, base_sha: str, head_sha: str) -> str:
    return f"https://github.com/{owner}/{repo}/compare/{short_sha(base_sha)}...{short_sha(head_sha)}"


def render_header(context: RenderContext) -> str:
    if context.owner and context.repo:
        link = compare_link(context.owner, context.repo, context.base_sha, context.head_sha)
        rng = f"{short_sha(context.base_sha)}...{short_sha(context.head_sha)}"
        return f"**Version:** `{context.resolved_version}` | **Range:** [`{rng}`]({link})"
    return f"**Version:** `{context.resolved_version}`"


def _id_list(ids: frozenset[str]) -> str:
    ordered = sorted(ids)
    shown = ", ".join(f"`{i}`" for i in ordered[:_MAX_LISTED_IDS])
    if len(ordered) > _MAX_LISTED_IDS:
        shown += f" and {len(ordered) - _MAX_LISTED_IDS} more"
    return shown


def render_delta_section(delta: DeltaResult) -> str:
    """Summarize what changed since the baseline run."""
    lines = ["### Changes since baseline", ""]
    if delta.baseline_range is not None:
        lines.append(f"Baseline range: `{delta.baseline_range.short()}`")
        lines.append("")
    if delta.scope_warning:
        lines.append(f"> [!WARNING]\n> {delta.scope_warning}")
        lines.append("")

    lines.append("| | Findings | Flags |")
    lines.append("|---|---|---|")
    lines.append(f"| New | {len(delta.new_finding_ids)} | {len(delta.new_flag_ids)} |")
    lines.append(f"| Resolved | {len(delta.resolved_finding_ids)} | {len(delta.resolved_flag_ids)} |")
    lines.append(f"| Unchanged | {len(delta.unchanged_finding_ids)} | |")
    lines.append("")
    sign = "+" if delta.score_delta > 0 else ""
    lines.append(f"Risk score change: **{sign}{delta.score_delta}**")

    if delta.new_finding_ids:
        lines.append("")
        lines.append(f"New findings: {_id_list(delta.new_finding_ids)}")
    if delta.resolved_finding_ids:
        lines.append("")
        lines.append(f"Resolved findings: {_id_list(delta.resolved_finding_ids)}")
    return "\n".join(lines)


def _render(pr_body: str, context: Optional[RenderContext], delta: Optional[DeltaResult]) -> list[str]:
    lines: list[str] = []
    if context is not None:
        lines.append(render_header(context))
        lines.append("")
    lines.append(pr_body.rstrip())
    if delta is not None:
        lines.append("")
        lines.append(render_delta_section(delta))
    return lines


def render_step_summary(
    pr_body: str,
    context: Optional[RenderContext] = None,
    delta: Optional[DeltaResult] = None,
) -> str:
    """Render the job summary."""
    return "\n".join(_render(pr_body, context, delta)) + "\n"


def render_pr_comment(
    pr_body: str,
    context: Optional[RenderContext] = None,
    delta: Optional[DeltaResult] = None,
) -> str:
    """Render the PR comment body; the marker is always the first line."""
    return "\n".join([COMMENT_MARKER, "", *_render(pr_body, context, delta)]) + "\n"
