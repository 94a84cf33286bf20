"""Artifact publication and baseline retrieval."""

from .backends import ArtifactBackend, ArtifactRef, GitHubArtifactBackend, LocalArtifactBackend
from .store import FACTS_FILE, RISK_REPORT_FILE, ArtifactHandle, ArtifactNames, ArtifactStore, read_snapshot

__all__ = [
    "ArtifactBackend",
    "ArtifactRef",
    "LocalArtifactBackend",
    "GitHubArtifactBackend",
    "ArtifactHandle",
    "ArtifactNames",
    "ArtifactStore",
    "FACTS_FILE",
    "RISK_REPORT_FILE",
    "read_snapshot",
]
