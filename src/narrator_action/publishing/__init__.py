"""Report rendering and publication."""

from .comments import Comment, CommentsClient, GitHubCommentsClient
from .publisher import ReportPublisher, ensure_marker, should_post_comment, upsert_comment
from .render import (
    COMMENT_MARKER,
    RenderContext,
    render_delta_section,
    render_pr_comment,
    render_step_summary,
)

__all__ = [
    "COMMENT_MARKER",
    "Comment",
    "CommentsClient",
    "GitHubCommentsClient",
    "RenderContext",
    "ReportPublisher",
    "ensure_marker",
    "render_delta_section",
    "render_pr_comment",
    "render_step_summary",
    "should_post_comment",
    "upsert_comment",
]
