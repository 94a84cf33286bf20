"""Storage backends for run artifacts.

``LocalArtifactBackend`` keeps artifacts in a directory (local runs and
tests). ``GitHubArtifactBackend`` uploads through the workflow artifact
service and finds/downloads previous runs' artifacts through the REST API.
"""

import base64
import hashlib
import io
import json
import shutil
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import requests

from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArtifactRef:
    """A stored artifact located by name."""

    id: str
    name: str
    created_at: str = ""


class ArtifactBackend(ABC):
    """Abstract artifact storage."""

    @abstractmethod
    def upload(self, name: str, files: list[Path], root: Path) -> None:
        """Store *files* (paths under *root*) as artifact *name*, replacing any previous one."""

    @abstractmethod
    def find_latest(self, name: str) -> Optional[ArtifactRef]:
        """Return the most recent artifact called *name*, or None."""

    @abstractmethod
    def download(self, ref: ArtifactRef, dest: Path) -> None:
        """Extract the artifact's files into *dest*."""


def _safe_extract(archive: zipfile.ZipFile, dest: Path) -> None:
    base = dest.resolve()
    for member in archive.infolist():
        target = (dest / member.filename.replace("\\", "/").lstrip("/")).resolve()
        try:
            target.relative_to(base)
        except ValueError:
            raise ValueError(f"artifact member escapes destination: {member.filename}")
    archive.extractall(dest)


class LocalArtifactBackend(ArtifactBackend):
    """Artifacts as sub-directories of a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def upload(self, name: str, files: list[Path], root: Path) -> None:
        target = self.root / name
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True)
        for path in files:
            rel = path.relative_to(root)
            (target / rel).parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target / rel)

    def find_latest(self, name: str) -> Optional[ArtifactRef]:
        target = self.root / name
        if not target.is_dir():
            return None
        return ArtifactRef(id=name, name=name, created_at=str(target.stat().st_mtime))

    def download(self, ref: ArtifactRef, dest: Path) -> None:
        source = self.root / ref.id
        if not source.is_dir():
            raise FileNotFoundError(f"artifact {ref.name} not found in {self.root}")
        shutil.copytree(source, dest, dirs_exist_ok=True)


_ARTIFACT_SERVICE = "twirp/github.actions.results.api.v1.ArtifactService"


def _backend_ids(runtime_token: str) -> tuple[str, str]:
    """Read the workflow run and job backend ids from the runtime token's ``scp`` claim."""
    parts = runtime_token.split(".")
    if len(parts) != 3:
        raise ValueError("runtime token is not a JWT")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    claims = json.loads(base64.urlsafe_b64decode(payload))
    for scope in str(claims.get("scp", "")).split(" "):
        pieces = scope.split(":")
        if pieces[0] == "Actions.Results" and len(pieces) == 3:
            return pieces[1], pieces[2]
    raise ValueError("runtime token has no Actions.Results scope")


class GitHubArtifactBackend(ArtifactBackend):
    """Workflow artifacts (v4 artifact service + REST API).

    Args:
        repository: ``owner/repo``
        token: Token for the REST API (``GITHUB_TOKEN``)
        runtime_token: ``ACTIONS_RUNTIME_TOKEN`` of the running job
        results_url: ``ACTIONS_RESULTS_URL`` of the running job
    """

    def __init__(
        self,
        repository: str,
        token: str,
        runtime_token: str,
        results_url: str,
        api_url: str = "https://api.github.com",
        session: Optional[requests.Session] = None,
        timeout: float = 60,
    ):
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.results_url = results_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._runtime_token = runtime_token
        self._session = session or requests.Session()

    # -- upload ------------------------------------------------------------

    def upload(self, name: str, files: list[Path], root: Path) -> None:
        run_id, job_id = _backend_ids(self._runtime_token)
        ids = {"workflowRunBackendId": run_id, "workflowJobRunBackendId": job_id}

        self._delete_existing(name, ids)
        created = self._twirp("CreateArtifact", {**ids, "name": name, "version": 4})
        upload_url = created.get("signedUploadUrl")
        if not created.get("ok") or not upload_url:
            raise RuntimeError(f"artifact service refused to create {name}")

        data = self._zip(files, root)
        resp = self._session.put(
            upload_url,
            data=data,
            headers={"x-ms-blob-type": "BlockBlob", "Content-Type": "application/zip"},
            timeout=self.timeout,
        )
        resp.raise_for_status()

        finalized = self._twirp(
            "FinalizeArtifact",
            {**ids, "name": name, "size": str(len(data)), "hash": f"sha256:{hashlib.sha256(data).hexdigest()}"},
        )
        if not finalized.get("ok"):
            raise RuntimeError(f"artifact service refused to finalize {name}")
        logger.debug(f"Uploaded {name} ({len(data)} bytes, id {finalized.get('artifactId')})")

    def _delete_existing(self, name: str, ids: dict[str, str]) -> None:
        try:
            self._twirp("DeleteArtifact", {**ids, "name": name})
            logger.debug(f"Replaced existing artifact {name}")
        except requests.HTTPError as e:
            if e.response is None or e.response.status_code != 404:
                raise

    def _twirp(self, method: str, body: dict) -> dict:
        resp = self._session.post(
            f"{self.results_url}/{_ARTIFACT_SERVICE}/{method}",
            json=body,
            headers={"Authorization": f"Bearer {self._runtime_token}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def _zip(files: Iterable[Path], root: Path) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as archive:
            for path in files:
                archive.write(path, arcname=path.relative_to(root).as_posix())
        return buffer.getvalue()

    # -- lookup / download ---------------------------------------------------

    def _api_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def find_latest(self, name: str) -> Optional[ArtifactRef]:
        resp = self._session.get(
            f"{self.api_url}/repos/{self.repository}/actions/artifacts",
            params={"name": name, "per_page": 100},
            headers=self._api_headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        candidates = [
            a for a in resp.json().get("artifacts", [])
            if a.get("name") == name and not a.get("expired", False)
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda a: a.get("created_at") or "")
        return ArtifactRef(id=str(latest["id"]), name=name, created_at=latest.get("created_at") or "")

    def download(self, ref: ArtifactRef, dest: Path) -> None:
        resp = self._session.get(
            f"{self.api_url}/repos/{self.repository}/actions/artifacts/{ref.id}/zip",
            headers=self._api_headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        dest.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(io.BytesIO(resp.content)) as archive:
            _safe_extract(archive, dest)
