"""One action run, end to end.

Stages run strictly in order, each consuming only what earlier stages
produced:

    resolve version -> fetch baseline -> run analysis -> publish artifacts
    -> compute delta -> publish reports -> emit outputs -> threshold gate

Analyzer failures (and a scope mismatch in strict mode) propagate and fail
the run. Baseline, artifact and comment problems are handled where they
occur and only remove the corresponding part of the result. The score
threshold is checked last, so a failing score never suppresses the
summary, the comment or the artifacts.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .actions import ActionsEnvironment, PullRequestContext
from .artifacts import ArtifactBackend, ArtifactHandle, ArtifactStore, GitHubArtifactBackend, LocalArtifactBackend
from .config import ActionConfig
from .context import RunContext
from .delta import DeltaComparator
from .logging_config import get_logger
from .models import AnalysisRange, AnalysisSnapshot, DeltaResult
from .publishing import (
    CommentsClient,
    GitHubCommentsClient,
    RenderContext,
    ReportPublisher,
    render_pr_comment,
    render_step_summary,
    should_post_comment,
)
from .runner import AnalysisRequest, AnalysisRunner, RunnerResult
from .truncate import bound
from .version import VersionResolver

logger = get_logger(__name__)

DEFAULT_LOCAL_ARTIFACT_DIR = Path(".branch-narrator") / "artifacts"

RunnerFactory = Callable[[ActionConfig, str], AnalysisRunner]


@dataclass
class RunOutcome:
    """What a run produced, and whether it should be marked failed."""

    snapshot: AnalysisSnapshot
    resolved_version: str
    artifacts: ArtifactHandle
    outputs: dict[str, str] = field(default_factory=dict)
    delta: Optional[DeltaResult] = None
    comment_posted: bool = False
    failure_message: Optional[str] = None

    @property
    def risk_score(self) -> int:
        return self.snapshot.risk_report.risk_score

    @property
    def exit_code(self) -> int:
        return 1 if self.failure_message else 0


def select_backend(config: ActionConfig, environment: ActionsEnvironment) -> ArtifactBackend:
    """Pick the artifact backend for this run."""
    if config.artifact_dir:
        return LocalArtifactBackend(Path(config.artifact_dir))

    env = environment.environ
    runtime_token = env.get("ACTIONS_RUNTIME_TOKEN")
    results_url = env.get("ACTIONS_RESULTS_URL")
    if runtime_token and results_url and environment.repository:
        return GitHubArtifactBackend(
            repository=environment.repository,
            token=environment.token or "",
            runtime_token=runtime_token,
            results_url=results_url,
            api_url=environment.api_url,
        )

    message = f"Workflow artifact service unavailable; storing artifacts in {DEFAULT_LOCAL_ARTIFACT_DIR}"
    if environment.is_github_actions:
        # Nothing stored here outlives the job, so no later run can find a baseline.
        logger.warning(message)
    else:
        logger.info(message)
    return LocalArtifactBackend(DEFAULT_LOCAL_ARTIFACT_DIR)


def build_outputs(
    snapshot: AnalysisSnapshot,
    artifacts: ArtifactHandle,
    delta: Optional[DeltaResult],
    config: ActionConfig,
) -> dict[str, str]:
    """Compute step outputs. Delta outputs are absent, not zero, without a baseline."""
    risk = snapshot.risk_report
    facts = snapshot.facts
    limit = config.output_limit_bytes

    outputs = {
        "risk-score": str(risk.risk_score),
        "risk-level": risk.risk_level,
        "flag-count": str(len(risk.flags)),
        "findings-count": str(len(facts.findings)),
        "has-blocking": str(facts.has_blocking).lower(),
        "facts-artifact-name": artifacts.facts_name,
        "risk-artifact-name": artifacts.risk_name,
    }
    if artifacts.sarif_name:
        outputs["sarif-artifact-name"] = artifacts.sarif_name

    facts_doc = dict(facts.raw)
    risk_doc = dict(risk.raw)
    if delta is not None:
        facts_doc["delta"] = delta.facts_delta()
        risk_doc["delta"] = delta.risk_delta()
        outputs["delta-new-findings"] = str(len(delta.new_finding_ids))
        outputs["delta-resolved-findings"] = str(len(delta.resolved_finding_ids))

    if config.explain_score and risk.score_breakdown is not None:
        breakdown = bound(json.dumps(risk.score_breakdown), limit)
        if breakdown.truncated:
            logger.warning("score-breakdown output truncated")
        outputs["score-breakdown"] = breakdown.value

    for name, doc in (("facts", facts_doc), ("risk-report", risk_doc)):
        bounded = bound(json.dumps(doc), limit)
        if bounded.truncated:
            logger.warning(
                f"{name} output exceeds {limit} bytes and was truncated; "
                f"read the full document from the artifact instead"
            )
        outputs[name] = bounded.value
        outputs[f"{name}-truncated"] = str(bounded.truncated).lower()

    return outputs


class NarratorRun:
    """Coordinates one run. Collaborators can be injected for testing."""

    def __init__(
        self,
        config: ActionConfig,
        environment: Optional[ActionsEnvironment] = None,
        *,
        resolver: Optional[VersionResolver] = None,
        runner_factory: Optional[RunnerFactory] = None,
        backend: Optional[ArtifactBackend] = None,
        comments: Optional[CommentsClient] = None,
    ):
        self.config = config
        self.environment = environment or ActionsEnvironment()
        self.resolver = resolver or VersionResolver.from_config(config)
        self.runner_factory: RunnerFactory = runner_factory or (
            lambda cfg, version: AnalysisRunner.from_config(cfg, version)
        )
        self.backend = backend
        self.comments = comments

    def execute(self) -> RunOutcome:
        with RunContext() as context:
            return self._execute(context)

    def _resolve_range(self) -> tuple[AnalysisRange, Optional[PullRequestContext]]:
        config = self.config
        if config.base_sha and config.head_sha:
            pr = self.environment.pull_request() if self.environment.is_pull_request_event else None
            return AnalysisRange(base=config.base_sha, head=config.head_sha, mode="branch"), pr

        pr = self.environment.require_pull_request()
        logger.info(f"Analyzing PR #{pr.number}")
        if pr.is_fork:
            logger.info("PR is from a fork")
        base = config.base_sha or pr.base_sha
        head = config.head_sha or pr.head_sha
        return AnalysisRange(base=base, head=head, mode="branch"), pr

    def _comments_client(self, pr: PullRequestContext) -> Optional[CommentsClient]:
        if self.comments is not None:
            return self.comments
        token = self.environment.token
        if not token:
            return None
        return GitHubCommentsClient(pr.repository, token, api_url=self.environment.api_url)

    def _execute(self, context: RunContext) -> RunOutcome:
        config = self.config
        env = self.environment

        analysis_range, pr = self._resolve_range()
        logger.info(f"Base: {analysis_range.base[:7]}")
        logger.info(f"Head: {analysis_range.head[:7]}")

        version = self.resolver.resolve(config.branch_narrator_version)
        logger.info(f"Using branch-narrator@{config.branch_narrator_version} (resolved: {version})")

        store = ArtifactStore(self.backend or select_backend(config, env), context)

        baseline: Optional[AnalysisSnapshot] = None
        if config.delta_enabled:
            with env.group("Downloading baseline artifacts"):
                baseline = store.fetch_baseline(config.baseline_artifact)

        with env.group("Running branch-narrator analysis"):
            request = AnalysisRequest.from_config(config, analysis_range)
            sarif_path = Path(config.sarif_file) if config.sarif_upload else None
            result: RunnerResult = self.runner_factory(config, version).run(request, sarif_path=sarif_path)
        snapshot = result.snapshot

        with env.group("Uploading artifacts"):
            artifacts = store.publish(config.artifact_name, snapshot, result.sarif_path)

        delta: Optional[DeltaResult] = None
        if baseline is not None:
            delta = DeltaComparator(strict=config.since_strict).compare(baseline, snapshot)
            logger.info(
                f"Delta: {len(delta.new_finding_ids)} new, {len(delta.resolved_finding_ids)} resolved, "
                f"{len(delta.unchanged_finding_ids)} unchanged findings"
            )

        render_context = RenderContext(
            resolved_version=version,
            base_sha=analysis_range.base,
            head_sha=analysis_range.head,
            owner=pr.owner if pr else "",
            repo=pr.repo if pr else "",
        )

        outcome = RunOutcome(snapshot=snapshot, resolved_version=version, artifacts=artifacts, delta=delta)
        publisher = ReportPublisher(env, self._comments_client(pr) if pr else None)

        with env.group("Writing Step Summary"):
            publisher.publish_summary(render_step_summary(result.pr_body, render_context, delta))

        if pr is None:
            logger.info("No pull request context; skipping PR comment")
        elif should_post_comment(pr.is_fork, config.comment):
            with env.group("Posting PR comment"):
                body = render_pr_comment(result.pr_body, render_context, delta)
                outcome.comment_posted = publisher.publish_comment(body, pr)

        outcome.outputs = build_outputs(snapshot, artifacts, delta, config)
        for name, value in outcome.outputs.items():
            env.set_output(name, value)

        if config.fail_on_score is not None and outcome.risk_score >= config.fail_on_score:
            outcome.failure_message = f"Risk score {outcome.risk_score} >= threshold {config.fail_on_score}"
            logger.error(outcome.failure_message)
        else:
            logger.info("Branch Narrator Action completed successfully")

        return outcome
