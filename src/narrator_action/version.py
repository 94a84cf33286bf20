"""Resolve the requested analyzer version to a concrete, loggable version.

Resolution is diagnostic only: it makes logs and report headers show
``1.4.2`` instead of ``latest``. Any failure falls back to the requested
specifier and never blocks the run.
"""

from typing import Optional
from urllib.parse import quote

import requests

from .config import ActionConfig
from .exceptions import ErrorCode, VersionResolutionError
from .logging_config import get_logger

logger = get_logger(__name__)


class VersionResolver:
    """Look up the version behind a floating tag in the package registry."""

    def __init__(
        self,
        package: str,
        registry_url: str = "https://registry.npmjs.org",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.package = package
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ActionConfig, session: Optional[requests.Session] = None) -> "VersionResolver":
        return cls(
            package=config.analyzer_package,
            registry_url=config.registry_url,
            timeout=config.registry_timeout_seconds,
            session=session,
        )

    def resolve(self, spec: str) -> str:
        """Return the concrete version for *spec*, or *spec* itself on any failure."""
        try:
            return self._lookup(spec)
        except Exception as e:
            error = VersionResolutionError(
                message=f"Could not resolve {self.package}@{spec}: {e}",
                code=ErrorCode.NA100,
                context={"package": self.package, "spec": spec},
            )
            logger.debug(f"{error}; using it as-is")
            return spec

    def _lookup(self, spec: str) -> str:
        url = f"{self.registry_url}/{quote(self.package, safe='@')}/{quote(spec, safe='')}"
        resp = self._session.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        resp.raise_for_status()
        version = resp.json().get("version")
        if not isinstance(version, str) or not version:
            raise ValueError(f"registry response for {spec!r} has no version")
        logger.debug(f"Resolved {self.package}@{spec} -> {version}")
        return version
