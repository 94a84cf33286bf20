"""Publish snapshots as artifacts and fetch a previous run's baseline.

Artifact names derive from a base name: ``{base}-facts``,
``{base}-risk-report`` and ``{base}-sarif``, each holding one document.
Upload failures are logged loudly but never abort the run; a baseline that
cannot be fetched completely degrades to "no baseline".
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..context import RunContext
from ..exceptions import ArtifactPublishError, BaselineUnavailableError, ErrorCode
from ..logging_config import get_logger
from ..models import AnalysisSnapshot
from .backends import ArtifactBackend

logger = get_logger(__name__)

FACTS_FILE = "facts.json"
RISK_REPORT_FILE = "risk-report.json"


def read_snapshot(facts_path: Path, risk_path: Path) -> AnalysisSnapshot:
    """Parse a snapshot from its facts and risk-report JSON files."""
    facts_doc = json.loads(facts_path.read_text(encoding="utf-8"))
    risk_doc = json.loads(risk_path.read_text(encoding="utf-8"))
    return AnalysisSnapshot.from_documents(facts_doc, risk_doc)


@dataclass(frozen=True)
class ArtifactNames:
    facts: str
    risk_report: str
    sarif: str

    @classmethod
    def for_base(cls, base: str) -> "ArtifactNames":
        return cls(facts=f"{base}-facts", risk_report=f"{base}-risk-report", sarif=f"{base}-sarif")


@dataclass
class ArtifactHandle:
    """Names of the artifacts a run published, and what went wrong."""

    facts_name: str
    risk_name: str
    sarif_name: Optional[str] = None
    errors: list[ArtifactPublishError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ArtifactStore:
    """Snapshot persistence on top of an ``ArtifactBackend``."""

    def __init__(self, backend: ArtifactBackend, context: RunContext):
        self.backend = backend
        self.context = context

    def publish(
        self,
        name: str,
        snapshot: AnalysisSnapshot,
        sarif_path: Optional[Path] = None,
    ) -> ArtifactHandle:
        """Upload the snapshot's documents (and SARIF, if produced) under *name*.

        Re-publishing under the same name replaces the previous artifacts.
        """
        names = ArtifactNames.for_base(name)
        handle = ArtifactHandle(facts_name=names.facts, risk_name=names.risk_report)

        staging = self.context.staging_path("publish", name)
        facts_path = staging / FACTS_FILE
        risk_path = staging / RISK_REPORT_FILE
        facts_path.write_text(json.dumps(snapshot.facts.raw, indent=2), encoding="utf-8")
        risk_path.write_text(json.dumps(snapshot.risk_report.raw, indent=2), encoding="utf-8")

        for artifact_name, path in ((names.facts, facts_path), (names.risk_report, risk_path)):
            error = self._upload(artifact_name, path)
            if error is not None:
                logger.error(f"{error} - downstream jobs expecting this artifact will not find it")
                handle.errors.append(error)

        if sarif_path is not None:
            error = self._upload(names.sarif, sarif_path)
            if error is None:
                handle.sarif_name = names.sarif
                logger.info(
                    "SARIF artifact uploaded. To upload to code scanning, use "
                    "github/codeql-action/upload-sarif in a subsequent step."
                )
            else:
                logger.warning(f"Failed to upload SARIF: {error}")
                handle.errors.append(error)

        if handle.ok:
            logger.info("Artifacts uploaded successfully")
        return handle

    def _upload(self, artifact_name: str, path: Path) -> Optional[ArtifactPublishError]:
        logger.info(f"Uploading {artifact_name}...")
        try:
            if not path.is_file():
                raise FileNotFoundError(f"{path} does not exist")
            self.backend.upload(artifact_name, [path], path.parent)
        except Exception as e:
            return ArtifactPublishError(
                message=f"Failed to upload artifact {artifact_name}: {e}",
                code=ErrorCode.NA401,
                context={"artifact": artifact_name, "path": str(path)},
            )
        return None

    def fetch_baseline(self, name: str) -> Optional[AnalysisSnapshot]:
        """Return the most recent snapshot published under *name*, or None.

        Both the facts and risk-report artifacts must be present; a partial
        baseline is never returned. Lookup, download and parse failures
        are logged and yield None.
        """
        names = ArtifactNames.for_base(name)
        logger.info(f"Looking for baseline artifacts: {names.facts}, {names.risk_report}")
        try:
            facts_ref = self.backend.find_latest(names.facts)
            risk_ref = self.backend.find_latest(names.risk_report)
            if facts_ref is None or risk_ref is None:
                raise BaselineUnavailableError(
                    message=(
                        f"Baseline artifacts not found (facts: {facts_ref is not None}, "
                        f"risk: {risk_ref is not None})"
                    ),
                    code=ErrorCode.NA400,
                    context={"baseline": name},
                )

            facts_dir = self.context.staging_path("baseline", name, "facts")
            risk_dir = self.context.staging_path("baseline", name, "risk")
            self.backend.download(facts_ref, facts_dir)
            self.backend.download(risk_ref, risk_dir)

            snapshot = read_snapshot(facts_dir / FACTS_FILE, risk_dir / RISK_REPORT_FILE)
        except BaselineUnavailableError as e:
            logger.info(f"{e.message}. Skipping delta mode.")
            return None
        except Exception as e:
            logger.warning(f"Failed to download baseline artifacts: {e}")
            return None

        logger.info(
            f"Baseline loaded: {len(snapshot.facts.findings)} findings over {snapshot.range.short()}"
        )
        return snapshot
