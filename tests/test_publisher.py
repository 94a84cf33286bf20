"""Tests for idempotent report publication."""

import pytest
import requests

from conftest import FakeComments, FakeResponse
from narrator_action.actions import ActionsEnvironment, PullRequestContext
from narrator_action.publishing import (
    COMMENT_MARKER,
    Comment,
    ReportPublisher,
    ensure_marker,
    should_post_comment,
    upsert_comment,
)
from narrator_action.publishing.comments import MAX_PAGES, PER_PAGE, GitHubCommentsClient

PR = PullRequestContext(owner="acme", repo="widgets", number=7, base_sha="b", head_sha="h")


def _make_publisher(comments=None, environ=None):
    return ReportPublisher(ActionsEnvironment(environ=environ or {}), comments)


class TestShouldPostComment:
    def test_enabled(self):
        assert should_post_comment(is_fork=False, comment_enabled=True) is True

    def test_disabled(self):
        assert should_post_comment(is_fork=False, comment_enabled=False) is False

    def test_fork(self):
        assert should_post_comment(is_fork=True, comment_enabled=True) is False


class TestEnsureMarker:
    def test_adds_marker(self):
        assert ensure_marker("body").startswith(f"{COMMENT_MARKER}\n\n")

    def test_keeps_existing_marker(self):
        body = f"{COMMENT_MARKER}\n\nbody"
        assert ensure_marker(body) == body


class TestPublishComment:
    def test_creates_when_absent(self):
        comments = FakeComments([Comment(id=1, body="LGTM")])
        assert _make_publisher(comments).publish_comment("report v1", PR) is True
        report = [c for c in comments.comments if COMMENT_MARKER in c.body]
        assert len(report) == 1
        assert "report v1" in report[0].body

    def test_second_publish_updates(self):
        comments = FakeComments()
        publisher = _make_publisher(comments)
        publisher.publish_comment("report v1", PR)
        publisher.publish_comment("report v2", PR)
        report = [c for c in comments.comments if COMMENT_MARKER in c.body]
        assert len(report) == 1
        assert "report v2" in report[0].body
        assert [call[0] for call in comments.calls] == ["list", "create", "list", "update"]

    def test_duplicates_collapse_to_oldest(self):
        comments = FakeComments([
            Comment(id=5, body=f"{COMMENT_MARKER}\nold A"),
            Comment(id=3, body=f"{COMMENT_MARKER}\nold B"),
            Comment(id=4, body="unrelated"),
        ])
        assert _make_publisher(comments).publish_comment("fresh", PR) is True
        report = [c for c in comments.comments if COMMENT_MARKER in c.body]
        assert [c.id for c in report] == [3]
        assert "fresh" in report[0].body
        assert any(c.body == "unrelated" for c in comments.comments)

    def test_no_client(self, caplog):
        assert _make_publisher(None).publish_comment("report", PR) is False
        assert "GITHUB_TOKEN not available" in caplog.text

    def test_permission_error_is_not_fatal(self, caplog):
        class Forbidden(FakeComments):
            def create_comment(self, number, body):
                FakeResponse({}, status_code=403).raise_for_status()

        assert _make_publisher(Forbidden()).publish_comment("report", PR) is False
        assert "Insufficient permissions" in caplog.text

    def test_listing_failure_does_not_create(self):
        class Unlistable(FakeComments):
            def list_comments(self, number):
                raise requests.ConnectionError("down")

        comments = Unlistable()
        assert _make_publisher(comments).publish_comment("report", PR) is False
        assert comments.comments == []

    def test_failed_duplicate_delete_still_succeeds(self):
        class Undeletable(FakeComments):
            def delete_comment(self, comment_id):
                raise requests.HTTPError("nope")

        comments = Undeletable([Comment(id=1, body=COMMENT_MARKER), Comment(id=2, body=COMMENT_MARKER)])
        assert _make_publisher(comments).publish_comment("report", PR) is True


class TestPublishSummary:
    def test_writes_summary(self, tmp_path):
        summary = tmp_path / "summary.md"
        publisher = _make_publisher(environ={"GITHUB_STEP_SUMMARY": str(summary)})
        assert publisher.publish_summary("## Report") is True
        assert summary.read_text() == "## Report\n"

    def test_no_summary_file(self):
        assert _make_publisher().publish_summary("## Report") is False

    def test_unwritable_summary(self, tmp_path):
        publisher = _make_publisher(environ={"GITHUB_STEP_SUMMARY": str(tmp_path / "missing" / "s.md")})
        assert publisher.publish_summary("## Report") is False


class TestUpsertComment:
    def test_creates_with_given_client(self):
        comments = FakeComments()
        created = upsert_comment(comments, f"{COMMENT_MARKER}\n\nv1", 7)
        assert comments.calls == [("list", 7), ("create", 7)]
        assert created.body.endswith("v1")

    def test_updates_oldest_and_deletes_rest(self):
        comments = FakeComments([
            Comment(id=5, body=f"{COMMENT_MARKER}\n\nold"),
            Comment(id=3, body=f"{COMMENT_MARKER}\n\nolder"),
            Comment(id=4, body="LGTM"),
        ])
        updated = upsert_comment(comments, f"{COMMENT_MARKER}\n\nnew", 7)
        assert updated.id == 3
        assert ("delete", 5) in comments.calls
        assert [c.id for c in comments.comments] == [3, 4]


class PagedSession:
    """Serves `pages` full pages followed by a short one."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params))
        page = params["page"]
        size = PER_PAGE if page <= self.pages else 3
        start = (page - 1) * PER_PAGE
        return FakeResponse([{"id": start + i, "body": f"c{start + i}"} for i in range(size)])


class TestGitHubCommentsClient:
    def test_lists_until_short_page(self):
        session = PagedSession(pages=2)
        client = GitHubCommentsClient("acme/widgets", "tok", session=session)
        comments = client.list_comments(7)
        assert len(comments) == 2 * PER_PAGE + 3
        assert len(session.calls) == 3
        assert session.calls[0][0] == "https://api.github.com/repos/acme/widgets/issues/7/comments"

    def test_stops_at_page_limit(self):
        session = PagedSession(pages=MAX_PAGES + 5)
        client = GitHubCommentsClient("acme/widgets", "tok", session=session)
        assert len(client.list_comments(7)) == MAX_PAGES * PER_PAGE
        assert len(session.calls) == MAX_PAGES

    def test_http_error_propagates(self):
        class DeniedSession:
            def get(self, *args, **kwargs):
                return FakeResponse({"message": "Resource not accessible by integration"}, status_code=403)

        client = GitHubCommentsClient("acme/widgets", "tok", session=DeniedSession())
        with pytest.raises(requests.HTTPError) as exc_info:
            client.list_comments(7)
        assert exc_info.value.response.status_code == 403
