"""Data models for analyzer snapshots, deltas and run outputs.

Analyzer documents are parsed into typed records for the fields the action
relies on (identity keys, ranges, scores). The original JSON is kept on
each document as ``raw`` so artifacts and outputs republish exactly what
the analyzer produced.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .exceptions import OutputParseError

# Keys of a facts finding that have a typed home on Finding; everything
# else is kind-specific and goes into the payload.
_FINDING_CORE_KEYS = frozenset(
    {"type", "kind", "category", "confidence", "evidence", "findingId", "tags"}
)

RISK_LEVELS = ("low", "moderate", "elevated", "high", "critical")


def compute_identity_key(finding_type: str, kind: str, category: str, files: list[str]) -> str:
    """Return a stable SHA-256[:16] hex digest for a finding without a ``findingId``.

    Files are sorted so evidence ordering does not change the key.
    """
    key_parts = [finding_type, kind, category] + sorted(set(files))
    raw = "|".join(key_parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def _require(doc: Mapping[str, Any], key: str, expected: type, where: str) -> Any:
    value = doc.get(key)
    if not isinstance(value, expected):
        raise OutputParseError(
            f"{where}: expected '{key}' to be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def same_commit(a: str, b: str) -> bool:
    # Analyzers may echo abbreviated SHAs.
    return bool(a) and bool(b) and (a.startswith(b) or b.startswith(a))


@dataclass(frozen=True)
class AnalysisRange:
    """The commit range a snapshot describes."""

    base: str
    head: str
    mode: Optional[str] = None

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any], where: str) -> "AnalysisRange":
        base = _require(doc, "base", str, where)
        head = _require(doc, "head", str, where)
        mode = doc.get("mode")
        return cls(base=base, head=head, mode=mode if isinstance(mode, str) else None)

    def short(self) -> str:
        return f"{self.base[:7]}...{self.head[:7]}"

    def same_base(self, other: "AnalysisRange") -> bool:
        return same_commit(self.base, other.base)

    def matches(self, other: "AnalysisRange") -> bool:
        """Whether both ranges name the same base and head commits."""
        return same_commit(self.base, other.base) and same_commit(self.head, other.head)


@dataclass
class Evidence:
    """A file excerpt supporting a finding."""

    file: str
    excerpt: str = ""
    line: Optional[int] = None
    hunk: Optional[dict[str, int]] = None

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Evidence":
        line = doc.get("line")
        hunk = doc.get("hunk")
        return cls(
            file=str(doc.get("file", "")),
            excerpt=str(doc.get("excerpt", "")),
            line=line if isinstance(line, int) else None,
            hunk=dict(hunk) if isinstance(hunk, Mapping) else None,
        )


@dataclass(frozen=True)
class FindingPayload:
    """Kind-specific part of a finding, tagged by finding kind.

    Consumers that only need identity, category and evidence never look at
    the payload; renderers that understand a kind read ``data``.
    """

    kind: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Finding:
    """A single detected fact about the change, with a stable identity key."""

    identity_key: str
    type: str
    category: str
    confidence: str
    evidence: list[Evidence]
    payload: FindingPayload
    tags: list[str] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return self.payload.kind

    @property
    def files(self) -> list[str]:
        return [e.file for e in self.evidence if e.file]

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Finding":
        if not isinstance(doc, Mapping):
            raise OutputParseError(f"facts: finding must be an object, got {type(doc).__name__}")
        finding_type = str(doc.get("type", ""))
        kind = str(doc.get("kind", finding_type))
        category = str(doc.get("category", ""))
        evidence = [Evidence.from_dict(e) for e in doc.get("evidence") or [] if isinstance(e, Mapping)]

        identity_key = doc.get("findingId")
        if not isinstance(identity_key, str) or not identity_key:
            identity_key = compute_identity_key(
                finding_type, kind, category, [e.file for e in evidence]
            )

        extra = {k: v for k, v in doc.items() if k not in _FINDING_CORE_KEYS}
        return cls(
            identity_key=identity_key,
            type=finding_type,
            category=category,
            confidence=str(doc.get("confidence", "")),
            evidence=evidence,
            payload=FindingPayload(kind=kind, data=extra),
            tags=[str(t) for t in doc.get("tags") or []],
        )


@dataclass
class Action:
    """A follow-up the analyzer recommends before merging."""

    id: str
    category: str
    blocking: bool
    reason: str = ""
    triggers: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Action":
        return cls(
            id=str(doc.get("id", "")),
            category=str(doc.get("category", "")),
            blocking=bool(doc.get("blocking", False)),
            reason=str(doc.get("reason", "")),
            triggers=[str(t) for t in doc.get("triggers") or []],
        )


def _check_unique(keys: list[str], what: str) -> None:
    seen: set[str] = set()
    dupes: set[str] = set()
    for key in keys:
        if key in seen:
            dupes.add(key)
        seen.add(key)
    if dupes:
        raise OutputParseError(f"duplicate {what}: {', '.join(sorted(dupes))}")


@dataclass
class FactsDocument:
    """Structured facts output of the analyzer."""

    range: AnalysisRange
    findings: list[Finding]
    actions: list[Action]
    raw: dict[str, Any]

    @property
    def generated_at(self) -> Optional[str]:
        return self.raw.get("generatedAt")

    @property
    def finding_ids(self) -> frozenset[str]:
        return frozenset(f.identity_key for f in self.findings)

    @property
    def has_blocking(self) -> bool:
        return any(a.blocking for a in self.actions)

    @classmethod
    def from_dict(cls, doc: Any) -> "FactsDocument":
        if not isinstance(doc, dict):
            raise OutputParseError(f"facts: expected a JSON object, got {type(doc).__name__}")
        git = _require(doc, "git", dict, "facts")
        findings_raw = _require(doc, "findings", list, "facts")
        actions_raw = doc.get("actions") or []
        if not isinstance(actions_raw, list):
            raise OutputParseError("facts: expected 'actions' to be list")

        findings = [Finding.from_dict(f) for f in findings_raw]
        _check_unique([f.identity_key for f in findings], "finding ids")
        return cls(
            range=AnalysisRange.from_dict(git, "facts.git"),
            findings=findings,
            actions=[Action.from_dict(a) for a in actions_raw if isinstance(a, Mapping)],
            raw=doc,
        )


@dataclass
class RiskFlag:
    """A risk-report rule hit aggregating one or more findings."""

    flag_id: str
    rule_key: str
    category: str
    score: float
    effective_score: float
    title: str = ""
    related_finding_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "RiskFlag":
        if not isinstance(doc, Mapping):
            raise OutputParseError(f"risk-report: flag must be an object, got {type(doc).__name__}")
        flag_id = _require(doc, "flagId", str, "risk-report.flags[]")
        score = doc.get("score", 0)
        return cls(
            flag_id=flag_id,
            rule_key=str(doc.get("ruleKey", "")),
            category=str(doc.get("category", "")),
            score=float(score) if isinstance(score, (int, float)) else 0.0,
            effective_score=float(doc.get("effectiveScore", score) or 0),
            title=str(doc.get("title", "")),
            related_finding_ids=[str(i) for i in doc.get("relatedFindingIds") or []],
        )


@dataclass
class RiskReport:
    """Structured risk-report output of the analyzer."""

    range: AnalysisRange
    risk_score: int
    risk_level: str
    flags: list[RiskFlag]
    raw: dict[str, Any]

    @property
    def generated_at(self) -> Optional[str]:
        return self.raw.get("generatedAt")

    @property
    def flag_ids(self) -> frozenset[str]:
        return frozenset(f.flag_id for f in self.flags)

    @property
    def score_breakdown(self) -> Optional[dict[str, Any]]:
        breakdown = self.raw.get("scoreBreakdown")
        return breakdown if isinstance(breakdown, dict) else None

    @classmethod
    def from_dict(cls, doc: Any) -> "RiskReport":
        if not isinstance(doc, dict):
            raise OutputParseError(f"risk-report: expected a JSON object, got {type(doc).__name__}")
        range_doc = _require(doc, "range", dict, "risk-report")
        score = doc.get("riskScore")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise OutputParseError("risk-report: expected 'riskScore' to be a number")
        level = _require(doc, "riskLevel", str, "risk-report")
        flags = [RiskFlag.from_dict(f) for f in _require(doc, "flags", list, "risk-report")]
        _check_unique([f.flag_id for f in flags], "flag ids")
        return cls(
            range=AnalysisRange.from_dict(range_doc, "risk-report.range"),
            risk_score=int(round(score)),
            risk_level=level,
            flags=flags,
            raw=doc,
        )


@dataclass
class AnalysisSnapshot:
    """Paired facts and risk-report output of one analyzer run over one range."""

    facts: FactsDocument
    risk_report: RiskReport

    @property
    def range(self) -> AnalysisRange:
        return self.facts.range

    @property
    def finding_ids(self) -> frozenset[str]:
        return self.facts.finding_ids

    @classmethod
    def from_documents(cls, facts: Any, risk_report: Any) -> "AnalysisSnapshot":
        return cls(facts=FactsDocument.from_dict(facts), risk_report=RiskReport.from_dict(risk_report))


@dataclass(frozen=True)
class DeltaResult:
    """Set reconciliation between a baseline and the current snapshot.

    The three finding sets partition the union of both snapshots' keys.
    """

    new_finding_ids: frozenset[str]
    resolved_finding_ids: frozenset[str]
    unchanged_finding_ids: frozenset[str]
    scope_match: bool
    scope_warning: Optional[str] = None

    new_flag_ids: frozenset[str] = frozenset()
    resolved_flag_ids: frozenset[str] = frozenset()
    score_delta: int = 0

    baseline_range: Optional[AnalysisRange] = None
    baseline_generated_at: Optional[str] = None
    baseline_risk_score: int = 0
    baseline_flag_count: int = 0
    current_risk_score: int = 0
    current_flag_count: int = 0

    @property
    def baseline_finding_count(self) -> int:
        return len(self.resolved_finding_ids) + len(self.unchanged_finding_ids)

    @property
    def current_finding_count(self) -> int:
        return len(self.new_finding_ids) + len(self.unchanged_finding_ids)

    def facts_delta(self) -> dict[str, Any]:
        """The ``delta`` object embedded in the facts JSON output."""
        baseline: dict[str, Any] = {"findingsCount": self.baseline_finding_count}
        if self.baseline_generated_at:
            baseline["generatedAt"] = self.baseline_generated_at
        if self.baseline_range is not None:
            baseline["range"] = {"base": self.baseline_range.base, "head": self.baseline_range.head}
        doc: dict[str, Any] = {
            "baseline": baseline,
            "current": {"findingsCount": self.current_finding_count},
            "newFindings": sorted(self.new_finding_ids),
            "resolvedFindings": sorted(self.resolved_finding_ids),
            "unchangedFindings": sorted(self.unchanged_finding_ids),
            "scopeMatch": self.scope_match,
        }
        if self.scope_warning:
            doc["scopeWarning"] = self.scope_warning
        return doc

    def risk_delta(self) -> dict[str, Any]:
        """The ``delta`` object embedded in the risk-report JSON output."""
        baseline: dict[str, Any] = {
            "riskScore": self.baseline_risk_score,
            "flagsCount": self.baseline_flag_count,
        }
        if self.baseline_generated_at:
            baseline["generatedAt"] = self.baseline_generated_at
        doc: dict[str, Any] = {
            "baseline": baseline,
            "current": {"riskScore": self.current_risk_score, "flagsCount": self.current_flag_count},
            "newFlags": sorted(self.new_flag_ids),
            "resolvedFlags": sorted(self.resolved_flag_ids),
            "scoreDelta": self.score_delta,
            "scopeMatch": self.scope_match,
        }
        if self.scope_warning:
            doc["scopeWarning"] = self.scope_warning
        return doc


@dataclass(frozen=True)
class TruncatedOutput:
    """A value bounded for a size-limited channel.

    If ``truncated`` is false, ``value`` is identical to the source.
    """

    value: str
    truncated: bool
