"""Error taxonomy with error codes and recovery semantics.

Error Code Convention:
    NA1xx - Version resolution
    NA2xx - Analyzer command execution
    NA3xx - Analyzer output parsing
    NA4xx - Artifact storage
    NA5xx - Delta reconciliation
    NA6xx - Report publishing
    NA7xx - Platform context
    NA8xx - Configuration

Recoverable errors are caught where they originate, logged, and the run
continues in a degraded mode. Non-recoverable errors propagate to the CLI
and terminate the run with a non-zero status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Diagnostic excerpts attached to errors are cut to this many characters.
EXCERPT_CHARS = 1000

# Context keys shown with a fatal error, in display order.
DIAGNOSTIC_KEYS = ("command", "stderr", "stdout", "output")


class ErrorCode(Enum):
    """Structured error codes for observability and debugging."""

    # Version resolution (NA1xx)
    NA100 = "NA100"  # Registry lookup failed

    # Command execution (NA2xx)
    NA200 = "NA200"  # Non-zero exit
    NA201 = "NA201"  # Wall-clock timeout
    NA202 = "NA202"  # Executable could not be started

    # Output parsing (NA3xx)
    NA300 = "NA300"  # Stdout is not the expected structured format
    NA301 = "NA301"  # Outputs describe different change sets

    # Artifacts (NA4xx)
    NA400 = "NA400"  # Baseline unavailable
    NA401 = "NA401"  # Artifact upload failed

    # Delta (NA5xx)
    NA500 = "NA500"  # Baseline and current ranges are not comparable

    # Publishing (NA6xx)
    NA600 = "NA600"  # PR comment could not be created or updated

    # Platform context (NA7xx)
    NA700 = "NA700"  # Pull request context unavailable

    # Configuration (NA8xx)
    NA800 = "NA800"  # Invalid configuration value


def excerpt(text: Optional[str], limit: int = EXCERPT_CHARS) -> str:
    """Cut *text* for inclusion in an error message or log line."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text) - limit} more chars)"


@dataclass
class NarratorError(Exception):
    """Base exception with structured context.

    Attributes:
        message: Human-readable error description
        code: Structured error code for categorization
        context: Additional context (command, artifact name, etc.)
        recoverable: Whether the run can continue in a degraded mode
        recovery_hint: Suggested fix for the user
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def diagnostics(self) -> list[str]:
        """Context lines that help diagnose the failure, e.g. ``stderr: ...``."""
        lines = []
        for key in DIAGNOSTIC_KEYS:
            value = self.context.get(key)
            if value is None or value == "":
                continue
            text = str(value).strip()
            if key == "command" and text in self.message:
                continue
            lines.append(f"{key}: {text}")
        return lines

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }


class VersionResolutionError(NarratorError):
    """Registry lookup for the analyzer version failed (NA100)."""

    pass


class CommandExecutionError(NarratorError):
    """An analyzer subprocess failed, timed out, or could not start (NA2xx).

    Always fatal. The command line and cut-down stdout/stderr are kept in
    ``context`` for diagnosis.
    """

    def __init__(
        self,
        command: list[str],
        reason: str,
        *,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        code: ErrorCode = ErrorCode.NA200,
    ):
        super().__init__(
            message=f"Command failed: {' '.join(command)} ({reason})",
            code=code,
            context={
                "command": " ".join(command),
                "exit_code": exit_code,
                "stdout": excerpt(stdout),
                "stderr": excerpt(stderr),
            },
            recoverable=False,
            recovery_hint="Re-run the command locally with the same arguments to reproduce",
        )
        self.command = command
        self.exit_code = exit_code


class OutputParseError(NarratorError):
    """Analyzer output did not parse under the expected shape (NA3xx)."""

    def __init__(
        self,
        reason: str,
        *,
        command: Optional[list[str]] = None,
        output: str = "",
        code: ErrorCode = ErrorCode.NA300,
    ):
        context: dict[str, Any] = {"reason": reason, "output": excerpt(output)}
        if command:
            context["command"] = " ".join(command)
        super().__init__(
            message=f"Failed to parse analyzer output: {reason}",
            code=code,
            context=context,
            recoverable=False,
        )


class BaselineUnavailableError(NarratorError):
    """No usable baseline snapshot; delta mode is disabled (NA400)."""

    pass


class ArtifactPublishError(NarratorError):
    """An artifact could not be uploaded (NA401)."""

    pass


class ScopeMismatchError(NarratorError):
    """Baseline and current snapshots cover incomparable ranges (NA500).

    Advisory by default; raised as fatal only in strict mode.
    """

    pass


class CommentPublishError(NarratorError):
    """The PR comment could not be created or updated (NA600)."""

    pass


class PullRequestContextError(NarratorError):
    """The run is not attached to a pull request and no range was given (NA700)."""

    pass
