"""Tests for concurrent analyzer invocation."""

import json
import time

import pytest

from conftest import BASE_SHA, HEAD_SHA
from narrator_action.config import ActionConfig
from narrator_action.exceptions import CommandExecutionError, ErrorCode, OutputParseError
from narrator_action.models import AnalysisRange
from narrator_action.runner import AnalysisRequest, AnalysisRunner, OutputKind

RANGE = AnalysisRange(base=BASE_SHA, head=HEAD_SHA, mode="branch")


def _make_runner(launcher, env, timeout=30):
    return AnalysisRunner(launcher, timeout_seconds=timeout, env=env)


class TestAnalysisRequest:
    def test_scope_args(self):
        request = AnalysisRequest(
            range=RANGE, include=("src/**",), exclude=("dist/**",), max_file_bytes=1000, redact=True
        )
        assert request.scope_args() == [
            "--mode", "branch", "--base", BASE_SHA, "--head", HEAD_SHA,
            "--include", "src/**", "--exclude", "dist/**", "--max-file-bytes", "1000", "--redact",
        ]

    def test_every_command_carries_scope(self):
        request = AnalysisRequest(range=RANGE, exclude=("*.lock",), sarif=True)
        scope = request.scope_args()
        commands = request.command_args()
        assert set(commands) == {OutputKind.FACTS, OutputKind.RISK_REPORT, OutputKind.PR_BODY, OutputKind.SARIF}
        for argv in commands.values():
            assert argv[1:1 + len(scope)] == scope

    def test_sarif_only_when_requested(self):
        assert OutputKind.SARIF not in AnalysisRequest(range=RANGE).command_args()

    def test_risk_options(self):
        request = AnalysisRequest(
            range=RANGE,
            risk_only_categories=("security", "db"),
            explain_score=True,
            max_evidence_lines=3,
        )
        risk = request.command_args()[OutputKind.RISK_REPORT]
        assert risk[0] == "risk-report"
        assert risk[risk.index("--only") + 1] == "security,db"
        assert risk[risk.index("--max-evidence-lines") + 1] == "3"
        assert "--explain-score" in risk
        assert "--no-timestamp" in risk

    def test_from_config(self):
        config = ActionConfig(exclude=["a"], max_findings=10, sarif_upload=True, profile="react")
        request = AnalysisRequest.from_config(config, RANGE)
        assert request.exclude == ("a",)
        assert request.max_findings == 10
        assert request.sarif is True
        facts = request.command_args()[OutputKind.FACTS]
        assert facts[facts.index("--profile") + 1] == "react"
        assert facts[facts.index("--max-findings") + 1] == "10"


class TestRunnerFromConfig:
    def test_launcher_pins_version(self):
        runner = AnalysisRunner.from_config(ActionConfig(), version="1.4.2")
        assert runner.launcher == ["npx", "-y", "@better-vibe/branch-narrator@1.4.2"]
        assert runner.timeout_seconds == 600

    def test_falls_back_to_requested_version(self):
        runner = AnalysisRunner.from_config(ActionConfig(branch_narrator_version="next"))
        assert runner.launcher[-1] == "@better-vibe/branch-narrator@next"

    def test_empty_launcher_rejected(self):
        with pytest.raises(ValueError):
            AnalysisRunner([])


class TestRun:
    def test_success(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_FINDINGS"] = "f-1,f-2,f-3"
        analyzer_env["FAKE_SCORE"] = "55"
        result = _make_runner(analyzer_launcher, analyzer_env).run(AnalysisRequest(range=RANGE))
        assert result.snapshot.finding_ids == frozenset({"f-1", "f-2", "f-3"})
        assert result.snapshot.risk_report.risk_score == 55
        assert "Risk score: 55" in result.pr_body
        assert result.sarif_path is None

    def test_large_output_is_not_truncated(self, analyzer_launcher, analyzer_env):
        # Roughly 35 MB of facts JSON.
        analyzer_env["FAKE_COUNT"] = "100000"
        result = _make_runner(analyzer_launcher, analyzer_env, timeout=120).run(AnalysisRequest(range=RANGE))
        assert len(result.snapshot.finding_ids) == 100000
        assert "f-99999" in result.snapshot.finding_ids

    def test_invocations_share_scope(self, analyzer_launcher, analyzer_env, tmp_path):
        log = tmp_path / "calls.jsonl"
        analyzer_env["FAKE_LOG"] = str(log)
        request = AnalysisRequest(range=RANGE, exclude=("dist/**",))
        _make_runner(analyzer_launcher, analyzer_env).run(request)

        calls = [json.loads(line) for line in log.read_text().splitlines()]
        assert sorted(c[0] for c in calls) == ["facts", "pr-body", "risk-report"]
        scope = request.scope_args()
        for argv in calls:
            assert argv[1:1 + len(scope)] == scope

    def test_sarif_written(self, analyzer_launcher, analyzer_env, tmp_path):
        sarif_path = tmp_path / "out" / "report.sarif"
        result = _make_runner(analyzer_launcher, analyzer_env).run(
            AnalysisRequest(range=RANGE, sarif=True), sarif_path=sarif_path
        )
        assert result.sarif_path == sarif_path
        assert json.loads(sarif_path.read_text())["version"] == "2.1.0"

    def test_sarif_requires_path(self, analyzer_launcher, analyzer_env):
        with pytest.raises(ValueError):
            _make_runner(analyzer_launcher, analyzer_env).run(AnalysisRequest(range=RANGE, sarif=True))

    def test_failed_command_is_fatal(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_FAIL"] = "risk-report"
        with pytest.raises(CommandExecutionError) as exc_info:
            _make_runner(analyzer_launcher, analyzer_env).run(AnalysisRequest(range=RANGE))
        err = exc_info.value
        assert err.code is ErrorCode.NA200
        assert err.exit_code == 1
        assert "risk-report" in err.context["command"]
        assert "simulated failure" in err.context["stderr"]

    def test_failure_cancels_siblings(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_FAIL"] = "facts"
        analyzer_env["FAKE_HANG"] = "pr-body"
        start = time.monotonic()
        with pytest.raises(CommandExecutionError):
            _make_runner(analyzer_launcher, analyzer_env, timeout=45).run(AnalysisRequest(range=RANGE))
        assert time.monotonic() - start < 30

    def test_timeout(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_HANG"] = "facts"
        with pytest.raises(CommandExecutionError) as exc_info:
            _make_runner(analyzer_launcher, analyzer_env, timeout=1).run(AnalysisRequest(range=RANGE))
        assert exc_info.value.code is ErrorCode.NA201

    def test_missing_executable(self, analyzer_env):
        runner = _make_runner(["/nonexistent/branch-narrator"], analyzer_env)
        with pytest.raises(CommandExecutionError) as exc_info:
            runner.run(AnalysisRequest(range=RANGE))
        assert exc_info.value.code is ErrorCode.NA202

    def test_unparseable_output(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_GARBAGE"] = "facts"
        with pytest.raises(OutputParseError) as exc_info:
            _make_runner(analyzer_launcher, analyzer_env).run(AnalysisRequest(range=RANGE))
        assert exc_info.value.context["output"].startswith("this is not json")

    def test_range_mismatch(self, analyzer_launcher, analyzer_env):
        analyzer_env["FAKE_ECHO_HEAD"] = "9999999"
        with pytest.raises(OutputParseError) as exc_info:
            _make_runner(analyzer_launcher, analyzer_env).run(AnalysisRequest(range=RANGE))
        assert exc_info.value.code is ErrorCode.NA301
