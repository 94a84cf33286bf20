"""Run the external analyzer CLI and parse its outputs.

One subprocess is started per required output (facts, risk report,
narrative, and optionally SARIF). They run concurrently and are joined
fail-fast: the first failure terminates the remaining processes and is
raised, and no partial result is returned.

Every invocation is built from the same ``AnalysisRequest`` so the outputs
describe the identical change set; this is checked before launch and again
on the parsed documents.
"""

import json
import os
import subprocess
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .config import ActionConfig
from .exceptions import CommandExecutionError, ErrorCode, OutputParseError
from .logging_config import get_logger
from .models import AnalysisRange, AnalysisSnapshot, FactsDocument, RiskReport

logger = get_logger(__name__)


class OutputKind(Enum):
    FACTS = "facts"
    RISK_REPORT = "risk-report"
    PR_BODY = "pr-body"
    SARIF = "sarif"


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything that determines which change set the analyzer looks at."""

    range: AnalysisRange
    profile: str = "auto"
    exclude: tuple[str, ...] = ()
    include: tuple[str, ...] = ()
    max_file_bytes: Optional[int] = None
    max_diff_bytes: Optional[int] = None
    redact: bool = False

    # Output shaping; does not change the change set.
    max_findings: Optional[int] = None
    risk_only_categories: tuple[str, ...] = ()
    risk_exclude_categories: tuple[str, ...] = ()
    explain_score: bool = False
    max_evidence_lines: int = 5
    sarif: bool = False

    @classmethod
    def from_config(cls, config: ActionConfig, analysis_range: AnalysisRange) -> "AnalysisRequest":
        return cls(
            range=analysis_range,
            profile=config.profile,
            exclude=tuple(config.exclude),
            include=tuple(config.include),
            max_file_bytes=config.max_file_bytes,
            max_diff_bytes=config.max_diff_bytes,
            redact=config.redact,
            max_findings=config.max_findings,
            risk_only_categories=tuple(config.risk_only_categories),
            risk_exclude_categories=tuple(config.risk_exclude_categories),
            explain_score=config.explain_score,
            max_evidence_lines=config.max_evidence_lines,
            sarif=config.sarif_upload,
        )

    def scope_args(self) -> list[str]:
        """Range, filter and size-limit arguments shared by every invocation."""
        args = ["--mode", "branch", "--base", self.range.base, "--head", self.range.head]
        for pattern in self.include:
            args += ["--include", pattern]
        for pattern in self.exclude:
            args += ["--exclude", pattern]
        if self.max_file_bytes is not None:
            args += ["--max-file-bytes", str(self.max_file_bytes)]
        if self.max_diff_bytes is not None:
            args += ["--max-diff-bytes", str(self.max_diff_bytes)]
        if self.redact:
            args.append("--redact")
        return args

    def _risk_args(self) -> list[str]:
        args: list[str] = []
        if self.risk_only_categories:
            args += ["--only", ",".join(self.risk_only_categories)]
        if self.risk_exclude_categories:
            args += ["--exclude-categories", ",".join(self.risk_exclude_categories)]
        args += ["--max-evidence-lines", str(self.max_evidence_lines)]
        return args

    def command_args(self) -> dict[OutputKind, list[str]]:
        """Analyzer arguments (after the launcher) for each required output."""
        scope = self.scope_args()

        facts = ["facts", *scope, "--profile", self.profile, "--format", "json", "--no-timestamp"]
        if self.max_findings is not None:
            facts += ["--max-findings", str(self.max_findings)]

        risk = ["risk-report", *scope, "--format", "json", "--no-timestamp", *self._risk_args()]
        if self.explain_score:
            risk.append("--explain-score")

        commands = {
            OutputKind.FACTS: facts,
            OutputKind.RISK_REPORT: risk,
            OutputKind.PR_BODY: ["pr-body", *scope, "--profile", self.profile],
        }
        if self.sarif:
            commands[OutputKind.SARIF] = [
                "risk-report", *scope, "--format", "sarif", "--no-timestamp", *self._risk_args()
            ]
        return commands


@dataclass
class RunnerResult:
    snapshot: AnalysisSnapshot
    pr_body: str
    sarif_path: Optional[Path] = None


def _contains_run(argv: list[str], run: list[str]) -> bool:
    n = len(run)
    return any(argv[i:i + n] == run for i in range(len(argv) - n + 1))


class AnalysisRunner:
    """Invoke the analyzer once per output format and parse the results.

    Args:
        launcher: Command prefix that runs the analyzer, e.g.
            ``["npx", "-y", "@better-vibe/branch-narrator@1.4.2"]``
        timeout_seconds: Wall-clock limit for each subprocess
        env: Environment for the subprocesses (defaults to the current one)
    """

    def __init__(
        self,
        launcher: list[str],
        timeout_seconds: float = 600,
        env: Optional[dict[str, str]] = None,
    ):
        if not launcher:
            raise ValueError("launcher must not be empty")
        self.launcher = list(launcher)
        self.timeout_seconds = timeout_seconds
        self.env = env
        self._lock = threading.Lock()
        self._procs: dict[OutputKind, subprocess.Popen] = {}
        self._cancelled = threading.Event()

    @classmethod
    def from_config(cls, config: ActionConfig, version: Optional[str] = None) -> "AnalysisRunner":
        env = dict(os.environ)
        # Scoped packages must come from the public registry.
        env.setdefault("npm_config_registry", config.registry_url)
        return cls(
            launcher=[*config.analyzer_command, config.analyzer_spec(version)],
            timeout_seconds=config.command_timeout_seconds,
            env=env,
        )

    def run(self, request: AnalysisRequest, sarif_path: Optional[Path] = None) -> RunnerResult:
        """Run all required analyzer commands concurrently.

        Raises:
            CommandExecutionError: A subprocess exited non-zero, timed out or
                could not be started.
            OutputParseError: An output did not parse, or the outputs
                describe different ranges.
        """
        commands = {kind: self.launcher + args for kind, args in request.command_args().items()}
        self._check_consistent(commands, request)
        if request.sarif and sarif_path is None:
            raise ValueError("sarif_path is required when SARIF output is requested")

        self._cancelled.clear()
        self._procs.clear()
        logger.info(f"Running analyzer for {request.range.short()} ({len(commands)} commands)")

        with ThreadPoolExecutor(max_workers=len(commands), thread_name_prefix="analyzer") as executor:
            futures = {executor.submit(self._run_one, kind, argv): kind for kind, argv in commands.items()}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            failed = [f for f in done if f.exception() is not None]
            if failed:
                self._cancel_all()
                for future in pending:
                    future.cancel()
                # Remaining results are discarded.
                raise failed[0].exception()

        outputs: dict[OutputKind, Any] = {futures[f]: f.result() for f in futures}

        snapshot = AnalysisSnapshot(
            facts=outputs[OutputKind.FACTS], risk_report=outputs[OutputKind.RISK_REPORT]
        )
        self._check_ranges(snapshot, request.range)

        written_sarif: Optional[Path] = None
        if OutputKind.SARIF in outputs and sarif_path is not None:
            sarif_path.parent.mkdir(parents=True, exist_ok=True)
            sarif_path.write_text(outputs[OutputKind.SARIF], encoding="utf-8")
            written_sarif = sarif_path

        logger.info(
            f"Analysis complete: risk score {snapshot.risk_report.risk_score}, "
            f"{len(snapshot.risk_report.flags)} flags, {len(snapshot.facts.findings)} findings"
        )
        return RunnerResult(snapshot=snapshot, pr_body=outputs[OutputKind.PR_BODY], sarif_path=written_sarif)

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _check_consistent(commands: dict[OutputKind, list[str]], request: AnalysisRequest) -> None:
        scope = request.scope_args()
        for kind, argv in commands.items():
            if not _contains_run(argv, scope):
                raise ValueError(f"{kind.value} command does not carry the shared scope arguments")

    @staticmethod
    def _check_ranges(snapshot: AnalysisSnapshot, requested: AnalysisRange) -> None:
        for name, got in (("facts", snapshot.facts.range), ("risk-report", snapshot.risk_report.range)):
            if not got.matches(requested):
                raise OutputParseError(
                    f"{name} describes {got.short()}, expected {requested.short()}",
                    code=ErrorCode.NA301,
                )

    def _cancel_all(self) -> None:
        self._cancelled.set()
        with self._lock:
            procs = list(self._procs.values())
        for proc in procs:
            if proc.poll() is None:
                proc.kill()

    def _run_one(self, kind: OutputKind, argv: list[str]) -> Any:
        stdout = self._execute(kind, argv)
        return self._parse(kind, argv, stdout)

    def _execute(self, kind: OutputKind, argv: list[str]) -> str:
        logger.info(f"Running: {kind.value}")
        logger.debug(f"Executing: {' '.join(argv)}")
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self.env,
            )
        except OSError as e:
            raise CommandExecutionError(argv, f"could not start: {e}", code=ErrorCode.NA202)

        with self._lock:
            self._procs[kind] = proc
        if self._cancelled.is_set():
            proc.kill()

        try:
            # communicate() buffers the full output; large analyzer output is expected.
            stdout, stderr = proc.communicate(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
            raise CommandExecutionError(
                argv,
                f"timed out after {self.timeout_seconds}s",
                stdout=stdout,
                stderr=stderr,
                code=ErrorCode.NA201,
            )

        if stderr:
            logger.debug(f"{kind.value} stderr: {stderr.strip()[:1000]}")

        if proc.returncode != 0:
            reason = "cancelled" if self._cancelled.is_set() else f"exit code {proc.returncode}"
            if not self._cancelled.is_set():
                logger.error(f"Command failed: {kind.value} ({reason})")
            raise CommandExecutionError(
                argv, reason, exit_code=proc.returncode, stdout=stdout, stderr=stderr
            )
        return stdout

    @staticmethod
    def _parse(kind: OutputKind, argv: list[str], stdout: str) -> Any:
        if kind is OutputKind.PR_BODY:
            if not stdout.strip():
                raise OutputParseError("pr-body output is empty", command=argv, output=stdout)
            return stdout

        try:
            doc = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise OutputParseError(f"{kind.value} output is not JSON: {e}", command=argv, output=stdout)

        try:
            if kind is OutputKind.FACTS:
                return FactsDocument.from_dict(doc)
            if kind is OutputKind.RISK_REPORT:
                return RiskReport.from_dict(doc)
        except OutputParseError as e:
            raise OutputParseError(e.context.get("reason", e.message), command=argv, output=stdout)

        # SARIF is republished as-is; only its JSON well-formedness is checked.
        if not isinstance(doc, dict):
            raise OutputParseError("sarif output is not a JSON object", command=argv, output=stdout)
        return stdout
