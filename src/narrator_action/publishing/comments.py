"""Issue-comment API used for the PR report comment."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

from ..logging_config import get_logger

logger = get_logger(__name__)

PER_PAGE = 100
# 20 pages of 100 comments; the report comment is posted early in a PR's life.
MAX_PAGES = 20


@dataclass(frozen=True)
class Comment:
    id: int
    body: str


class CommentsClient(ABC):
    """Minimal pull request comment operations."""

    @abstractmethod
    def list_comments(self, number: int) -> list[Comment]:
        """Return the PR's comments, oldest first."""

    @abstractmethod
    def create_comment(self, number: int, body: str) -> Comment:
        """Create a comment and return it."""

    @abstractmethod
    def update_comment(self, comment_id: int, body: str) -> Comment:
        """Replace a comment's body."""

    @abstractmethod
    def delete_comment(self, comment_id: int) -> None:
        """Delete a comment."""


class GitHubCommentsClient(CommentsClient):
    """Issue comments through the GitHub REST API."""

    def __init__(
        self,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repository}/{path}"

    def list_comments(self, number: int) -> list[Comment]:
        comments: list[Comment] = []
        for page in range(1, MAX_PAGES + 1):
            resp = self._session.get(
                self._url(f"issues/{number}/comments"),
                params={"per_page": PER_PAGE, "page": page},
                headers=self._headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            batch = resp.json()
            comments.extend(Comment(id=int(c["id"]), body=c.get("body") or "") for c in batch)
            if len(batch) < PER_PAGE:
                break
        else:
            logger.debug(f"Stopped listing comments after {MAX_PAGES} pages")
        return comments

    def create_comment(self, number: int, body: str) -> Comment:
        resp = self._session.post(
            self._url(f"issues/{number}/comments"),
            json={"body": body},
            headers=self._headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return Comment(id=int(data["id"]), body=data.get("body") or body)

    def update_comment(self, comment_id: int, body: str) -> Comment:
        resp = self._session.patch(
            self._url(f"issues/comments/{comment_id}"),
            json={"body": body},
            headers=self._headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return Comment(id=int(data.get("id", comment_id)), body=data.get("body") or body)

    def delete_comment(self, comment_id: int) -> None:
        resp = self._session.delete(
            self._url(f"issues/comments/{comment_id}"),
            headers=self._headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
