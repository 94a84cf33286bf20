"""GitHub Actions platform plumbing: event context, outputs, step summary, log groups."""

import json
import os
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Optional, TextIO

from .exceptions import ErrorCode, PullRequestContextError
from .logging_config import escape_command_data, get_logger

logger = get_logger(__name__)

_PR_EVENTS = ("pull_request", "pull_request_target")


@dataclass(frozen=True)
class PullRequestContext:
    """The pull request a run reports on."""

    owner: str
    repo: str
    number: int
    base_sha: str
    head_sha: str
    is_fork: bool = False

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


class ActionsEnvironment:
    """Access to the runner's environment files and workflow commands.

    Outside a workflow (no ``GITHUB_ACTIONS``), outputs are kept in memory
    and the step summary is skipped.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, stream: Optional[TextIO] = None):
        self.environ = os.environ if environ is None else environ
        self._stream = stream
        self.outputs: dict[str, str] = {}

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stdout

    @property
    def is_github_actions(self) -> bool:
        return self.environ.get("GITHUB_ACTIONS") == "true"

    @property
    def is_pull_request_event(self) -> bool:
        return self.environ.get("GITHUB_EVENT_NAME", "") in _PR_EVENTS

    @property
    def token(self) -> Optional[str]:
        return self.environ.get("GITHUB_TOKEN") or self.environ.get("INPUT_GITHUB-TOKEN") or None

    @property
    def repository(self) -> Optional[str]:
        return self.environ.get("GITHUB_REPOSITORY") or None

    @property
    def api_url(self) -> str:
        return self.environ.get("GITHUB_API_URL", "https://api.github.com")

    # -- event context -------------------------------------------------------

    def pull_request(self) -> Optional[PullRequestContext]:
        """Extract the PR context from the event payload, or None."""
        event_name = self.environ.get("GITHUB_EVENT_NAME", "")
        if event_name not in _PR_EVENTS:
            logger.warning(f"Event is not pull_request (got: {event_name or 'none'})")
            return None

        event_path = self.environ.get("GITHUB_EVENT_PATH")
        if not event_path or not Path(event_path).is_file():
            logger.warning("No event payload available")
            return None

        with open(event_path, encoding="utf-8") as f:
            payload = json.load(f)

        pr = payload.get("pull_request")
        if not pr:
            logger.warning("No pull_request in payload")
            return None

        repository = self.repository or payload.get("repository", {}).get("full_name", "/")
        owner, _, repo = repository.partition("/")
        return PullRequestContext(
            owner=owner,
            repo=repo,
            number=int(pr["number"]),
            base_sha=pr.get("base", {}).get("sha", ""),
            head_sha=pr.get("head", {}).get("sha", ""),
            is_fork=bool((pr.get("head", {}).get("repo") or {}).get("fork", False)),
        )

    def require_pull_request(self) -> PullRequestContext:
        pr = self.pull_request()
        if pr is None:
            raise PullRequestContextError(
                message="Could not determine PR context. This action must run on pull_request events.",
                code=ErrorCode.NA700,
                recoverable=False,
                recovery_hint="Pass base-sha and head-sha explicitly to run outside pull_request events",
            )
        return pr

    # -- outputs and summary -------------------------------------------------------

    def set_output(self, name: str, value: str) -> None:
        """Record a step output, appending it to ``$GITHUB_OUTPUT`` when present."""
        self.outputs[name] = value
        output_file = self.environ.get("GITHUB_OUTPUT")
        if not output_file:
            return
        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        with open(output_file, "a", encoding="utf-8") as f:
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")

    def append_step_summary(self, markdown: str) -> bool:
        """Append to ``$GITHUB_STEP_SUMMARY``; return False when there is none."""
        summary_file = self.environ.get("GITHUB_STEP_SUMMARY")
        if not summary_file:
            return False
        with open(summary_file, "a", encoding="utf-8") as f:
            f.write(markdown)
            if not markdown.endswith("\n"):
                f.write("\n")
        return True

    @contextmanager
    def group(self, title: str) -> Iterator[None]:
        """Fold the enclosed log lines under *title* in the workflow log."""
        if not self.is_github_actions:
            logger.info(title)
            yield
            return
        self.stream.write(f"::group::{escape_command_data(title)}\n")
        self.stream.flush()
        try:
            yield
        finally:
            self.stream.write("::endgroup::\n")
            self.stream.flush()
