"""Shared test fixtures for the branch narrator action."""

import json
import logging
import os
import sys
from pathlib import Path

import pytest
import requests

from narrator_action.actions import ActionsEnvironment
from narrator_action.publishing import Comment, CommentsClient

FAKE_ANALYZER = Path(__file__).parent / "fake_analyzer.py"

BASE_SHA = "1111111aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
HEAD_SHA = "2222222bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"


def make_facts(finding_ids=("f-a", "f-b"), base=BASE_SHA, head=HEAD_SHA, blocking=False):
    return {
        "schemaVersion": "2.0",
        "generatedAt": "2025-01-01T00:00:00Z",
        "git": {"base": base, "head": head, "range": f"{base}..{head}"},
        "findings": [
            {
                "type": "file-summary",
                "kind": "file-summary",
                "category": "code",
                "confidence": "high",
                "evidence": [{"file": f"src/{fid}.ts", "excerpt": ""}],
                "findingId": fid,
            }
            for fid in finding_ids
        ],
        "actions": [{"id": "review", "category": "code", "blocking": blocking}],
    }


def make_risk(score=42, flag_ids=("flag-1",), base=BASE_SHA, head=HEAD_SHA):
    return {
        "schemaVersion": "1.0",
        "range": {"base": base, "head": head},
        "riskScore": score,
        "riskLevel": "high" if score >= 60 else "low",
        "flags": [
            {"flagId": fid, "ruleKey": fid, "category": "code", "score": 10, "effectiveScore": 10}
            for fid in flag_ids
        ],
    }


class FakeComments(CommentsClient):
    """In-memory issue comments for a single PR."""

    def __init__(self, comments=None):
        self.comments = list(comments or [])
        self.next_id = max((c.id for c in self.comments), default=0) + 1
        self.calls = []

    def list_comments(self, number):
        self.calls.append(("list", number))
        return list(self.comments)

    def create_comment(self, number, body):
        self.calls.append(("create", number))
        comment = Comment(id=self.next_id, body=body)
        self.next_id += 1
        self.comments.append(comment)
        return comment

    def update_comment(self, comment_id, body):
        self.calls.append(("update", comment_id))
        updated = Comment(id=comment_id, body=body)
        self.comments = [updated if c.id == comment_id else c for c in self.comments]
        return updated

    def delete_comment(self, comment_id):
        self.calls.append(("delete", comment_id))
        self.comments = [c for c in self.comments if c.id != comment_id]


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """setup_logging() disables propagation; restore it so caplog keeps working."""
    yield
    logger = logging.getLogger("narrator_action")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def analyzer_launcher():
    return [sys.executable, str(FAKE_ANALYZER)]


@pytest.fixture
def analyzer_env():
    """Environment for fake analyzer subprocesses; tests add FAKE_* keys."""
    env = dict(os.environ)
    for key in list(env):
        if key.startswith("FAKE_"):
            del env[key]
    return env


@pytest.fixture
def pr_event(tmp_path):
    """Write a pull_request event payload and return its path."""

    def _write(number=7, fork=False, base=BASE_SHA, head=HEAD_SHA):
        payload = {
            "pull_request": {
                "number": number,
                "base": {"sha": base},
                "head": {"sha": head, "repo": {"fork": fork}},
            },
            "repository": {"full_name": "acme/widgets"},
        }
        path = tmp_path / "event.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def actions_env(tmp_path, pr_event):
    """An ActionsEnvironment wired to temp output and summary files for a PR event."""

    def _make(fork=False, **extra):
        environ = {
            "GITHUB_ACTIONS": "true",
            "GITHUB_EVENT_NAME": "pull_request",
            "GITHUB_EVENT_PATH": str(pr_event(fork=fork)),
            "GITHUB_REPOSITORY": "acme/widgets",
            "GITHUB_OUTPUT": str(tmp_path / "output.txt"),
            "GITHUB_STEP_SUMMARY": str(tmp_path / "summary.md"),
            "GITHUB_TOKEN": "t0ken",
        }
        environ.update(extra)
        return ActionsEnvironment(environ=environ, stream=_Sink())

    return _make


class _Sink:
    """Collects workflow command lines."""

    def __init__(self):
        self.lines = []

    def write(self, text):
        self.lines.append(text)

    def flush(self):
        pass


@pytest.fixture
def snapshot_dir(tmp_path):
    """Write facts.json and risk-report.json into a new directory."""

    def _write(name, finding_ids=("f-a", "f-b"), score=42, flag_ids=("flag-1",), base=BASE_SHA):
        directory = tmp_path / name
        directory.mkdir()
        (directory / "facts.json").write_text(json.dumps(make_facts(finding_ids, base=base)), encoding="utf-8")
        (directory / "risk-report.json").write_text(
            json.dumps(make_risk(score, flag_ids, base=base)), encoding="utf-8"
        )
        return directory

    return _write
