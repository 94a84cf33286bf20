"""Run-scoped filesystem staging.

A ``RunContext`` owns the temporary directory used to stage artifact files
for the duration of one run. The directory is created on first use and
removed when the context exits, on success and on failure alike.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .logging_config import get_logger

logger = get_logger(__name__)


class RunContext:
    """Owner of the per-run staging directory.

    Usage::

        with RunContext() as ctx:
            path = ctx.staging_path("baseline", "facts")
    """

    def __init__(self, prefix: str = "branch-narrator-"):
        self._prefix = prefix
        self._root: Optional[Path] = None
        self._closed = False

    @property
    def root(self) -> Path:
        """The staging directory, created lazily."""
        if self._closed:
            raise RuntimeError("RunContext is closed")
        if self._root is None:
            self._root = Path(tempfile.mkdtemp(prefix=self._prefix))
            logger.debug(f"Created staging directory {self._root}")
        return self._root

    def staging_path(self, *parts: str) -> Path:
        """Return a fresh directory under the staging root."""
        path = self.root.joinpath(*parts)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def close(self) -> None:
        if self._root is not None:
            shutil.rmtree(self._root, ignore_errors=True)
            logger.debug(f"Removed staging directory {self._root}")
            self._root = None
        self._closed = True

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
