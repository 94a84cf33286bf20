"""Publish the job summary and create-or-update the PR report comment.

The comment is found by scanning the PR's comments for ``COMMENT_MARKER``;
there is no stored comment id. The scan and the following create/update
are not atomic: two runs racing on the same PR can both see "no comment"
and both create one. Every later run updates the oldest marker comment and
deletes the others, so the PR converges to a single comment holding the
latest report.

Comment publishing is best-effort. The summary and the artifacts are the
authoritative outputs, so comment errors are logged and reported as
"not posted" rather than raised.
"""

from typing import Optional

import requests

from ..actions import ActionsEnvironment, PullRequestContext
from ..exceptions import CommentPublishError, ErrorCode
from ..logging_config import get_logger
from .comments import Comment, CommentsClient
from .render import COMMENT_MARKER

logger = get_logger(__name__)


def should_post_comment(is_fork: bool, comment_enabled: bool) -> bool:
    """Check if we should attempt to post a comment at all."""
    if not comment_enabled:
        logger.info("PR comment posting is disabled via input")
        return False
    if is_fork:
        logger.info("Skipping PR comment for fork PR (insufficient permissions)")
        return False
    return True


def ensure_marker(body: str) -> str:
    """Make the marker the first line of *body*."""
    if body.startswith(COMMENT_MARKER):
        return body
    return f"{COMMENT_MARKER}\n\n{body}"


def _is_permission_error(error: Exception) -> bool:
    if isinstance(error, requests.HTTPError) and error.response is not None:
        if error.response.status_code in (403, 404):
            return True
    message = str(error)
    return "Resource not accessible" in message or "403" in message or "Not Found" in message


class ReportPublisher:
    """Writes the job summary and maintains the single PR report comment."""

    def __init__(self, environment: ActionsEnvironment, comments: Optional[CommentsClient] = None):
        self.environment = environment
        self.comments = comments

    def publish_summary(self, markdown: str) -> bool:
        """Append the rendered report to the job summary."""
        try:
            written = self.environment.append_step_summary(markdown)
        except OSError as e:
            logger.warning(f"Failed to write Step Summary: {e}")
            return False
        if written:
            logger.info("Step Summary written successfully")
        else:
            logger.info("No step summary file available; skipping Step Summary")
        return written

    def publish_comment(self, body: str, pr: PullRequestContext) -> bool:
        """Create or update the marker comment on *pr*.

        Returns:
            Whether a comment with the latest content is now present.
        """
        if self.comments is None:
            logger.warning("GITHUB_TOKEN not available, skipping PR comment")
            return False

        body = ensure_marker(body)
        try:
            upsert_comment(self.comments, body, pr.number)
        except Exception as e:
            error = CommentPublishError(
                message=f"Failed to post PR comment: {e}",
                code=ErrorCode.NA600,
                context={"pr": pr.number, "repository": pr.repository},
            )
            if _is_permission_error(e):
                logger.warning(
                    "Insufficient permissions to post PR comment. This is expected for fork PRs."
                )
            else:
                logger.warning(str(error))
            return False

        logger.info("PR comment posted successfully")
        return True


def upsert_comment(comments: CommentsClient, body: str, number: int) -> Comment:
    """Update the oldest marker comment on PR *number*, or create one.

    Later marker comments, left behind by racing runs, are deleted.
    """
    existing = sorted(
        (c for c in comments.list_comments(number) if COMMENT_MARKER in c.body),
        key=lambda c: c.id,
    )
    if not existing:
        logger.info("Creating new comment")
        return comments.create_comment(number, body)

    target, duplicates = existing[0], existing[1:]
    logger.info(f"Updating existing comment (ID: {target.id})")
    updated = comments.update_comment(target.id, body)

    for extra in duplicates:
        try:
            comments.delete_comment(extra.id)
            logger.info(f"Deleted duplicate report comment (ID: {extra.id})")
        except requests.RequestException as e:
            logger.warning(f"Could not delete duplicate report comment {extra.id}: {e}")
    return updated
