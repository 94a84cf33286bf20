"""Configuration loading and management for the branch narrator action.

Configuration sources are merged in priority order:
    1. Defaults (defined in ActionConfig)
    2. Project config (./branch-narrator.toml) or an explicit config file
    3. Workflow inputs (INPUT_* environment variables set by the runner)
    4. NARRATOR_* environment variables
    5. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(environ={"INPUT_FAIL-ON-SCORE": "70"})
    >>> config.fail_on_score
    70
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, get_type_hints

from .exceptions import ConfigFileError, InvalidConfigError

PROJECT_CONFIG_NAME = "branch-narrator.toml"

# Platform outputs are capped at 1 MiB each.
DEFAULT_OUTPUT_LIMIT_BYTES = 1024 * 1024

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


@dataclass(frozen=True)
class ActionConfig:
    """Configuration for one action run.

    Attributes:
        Analyzer selection:
            branch_narrator_version: Exact version or floating tag of the analyzer
            analyzer_package: Registry package name of the analyzer CLI
            analyzer_command: Launcher prefix used to run the package
            profile: Analyzer profile selector

        Commit range:
            base_sha / head_sha: Explicit range, overriding the PR event payload

        Filtering and limits (passed identically to every analyzer invocation):
            exclude / include: Glob filters
            risk_only_categories / risk_exclude_categories: Risk category filters
            max_file_bytes / max_diff_bytes: Size ceilings for analysis
            max_findings: Cap on findings in the facts output
            max_evidence_lines: Evidence lines kept per risk flag
            redact: Redact secrets from evidence
            explain_score: Ask the analyzer for a score breakdown

        Reporting:
            comment: Post/update the PR comment
            fail_on_score: Mark the run failed when risk score >= this value
            artifact_name: Base name for published artifacts
            sarif_upload / sarif_file: Produce and upload a SARIF document

        Delta mode:
            baseline_artifact: Base name of a previous run's artifacts
            since_strict: Treat a baseline scope mismatch as fatal

        Runtime:
            command_timeout_seconds: Wall-clock limit per analyzer subprocess
            registry_url / registry_timeout_seconds: Version lookup endpoint
            output_limit_bytes: Size ceiling of one platform output
            artifact_dir: Store artifacts in this directory instead of the
                workflow artifact service
    """

    # Analyzer selection
    branch_narrator_version: str = "latest"
    analyzer_package: str = "@better-vibe/branch-narrator"
    analyzer_command: list[str] = field(default_factory=lambda: ["npx", "-y"])
    profile: str = "auto"

    # Commit range
    base_sha: Optional[str] = None
    head_sha: Optional[str] = None

    # Filtering and limits
    exclude: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    risk_only_categories: list[str] = field(default_factory=list)
    risk_exclude_categories: list[str] = field(default_factory=list)
    max_file_bytes: Optional[int] = None
    max_diff_bytes: Optional[int] = None
    max_findings: Optional[int] = None
    max_evidence_lines: int = 5
    redact: bool = False
    explain_score: bool = False

    # Reporting
    comment: bool = True
    fail_on_score: Optional[int] = None
    artifact_name: str = "branch-narrator"
    sarif_upload: bool = False
    sarif_file: str = "branch-narrator.sarif"

    # Delta mode
    baseline_artifact: Optional[str] = None
    since_strict: bool = False

    # Runtime
    command_timeout_seconds: int = 600
    registry_url: str = "https://registry.npmjs.org"
    registry_timeout_seconds: float = 5.0
    output_limit_bytes: int = DEFAULT_OUTPUT_LIMIT_BYTES
    artifact_dir: Optional[str] = None
    verbose: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.branch_narrator_version.strip():
            raise InvalidConfigError(
                "branch_narrator_version", self.branch_narrator_version, "must not be empty"
            )
        if not self.analyzer_package.strip():
            raise InvalidConfigError("analyzer_package", self.analyzer_package, "must not be empty")
        if not self.artifact_name.strip():
            raise InvalidConfigError("artifact_name", self.artifact_name, "must not be empty")

        if self.fail_on_score is not None and not 0 <= self.fail_on_score <= 100:
            raise InvalidConfigError("fail_on_score", self.fail_on_score, "must be 0-100")

        for name in ("max_file_bytes", "max_diff_bytes", "max_findings"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise InvalidConfigError(name, value, "must be at least 1")

        if self.max_evidence_lines < 0:
            raise InvalidConfigError(
                "max_evidence_lines", self.max_evidence_lines, "must be non-negative"
            )
        if self.command_timeout_seconds < 1:
            raise InvalidConfigError(
                "command_timeout_seconds", self.command_timeout_seconds, "must be at least 1"
            )
        if self.registry_timeout_seconds <= 0:
            raise InvalidConfigError(
                "registry_timeout_seconds", self.registry_timeout_seconds, "must be positive"
            )
        if self.output_limit_bytes < 1:
            raise InvalidConfigError(
                "output_limit_bytes", self.output_limit_bytes, "must be at least 1"
            )

        overlap = set(self.risk_only_categories) & set(self.risk_exclude_categories)
        if overlap:
            raise InvalidConfigError(
                "risk_exclude_categories",
                ",".join(sorted(overlap)),
                "categories cannot be both included and excluded",
            )

    def analyzer_spec(self, version: Optional[str] = None) -> str:
        """Package specifier handed to the launcher, e.g. ``pkg@1.2.3``.

        *version* overrides the configured one, typically with the resolved version.
        """
        return f"{self.analyzer_package}@{version or self.branch_narrator_version}"

    @property
    def delta_enabled(self) -> bool:
        return bool(self.baseline_artifact)


def load_config(
    config_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ActionConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit TOML config file path. When omitted,
            ``./branch-narrator.toml`` is used if it exists.
        environ: Environment mapping (defaults to ``os.environ``)
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored.

    Returns:
        Validated ActionConfig instance

    Raises:
        ConfigFileError: If the config file is missing or malformed
        InvalidConfigError: If a value fails to parse or validate
    """
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = {}

    if config_file is not None:
        if not config_file.exists():
            raise ConfigFileError(config_file, "file not found")
        merged.update(_load_toml_file(config_file))
    else:
        project_config = Path.cwd() / PROJECT_CONFIG_NAME
        if project_config.exists():
            merged.update(_load_toml_file(project_config))

    merged.update(_load_input_vars(env))
    merged.update(_load_env_vars(env))
    merged.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(ActionConfig)}
    unknown = sorted(set(merged) - known)
    if unknown:
        raise InvalidConfigError(unknown[0], merged[unknown[0]], "unknown configuration key")

    return ActionConfig(**merged)


def _load_input_vars(env: Mapping[str, str]) -> dict[str, Any]:
    """Load workflow inputs from INPUT_* environment variables.

    The runner exposes an input ``fail-on-score`` as ``INPUT_FAIL-ON-SCORE``;
    the underscore spelling ``INPUT_FAIL_ON_SCORE`` is accepted as well.
    Empty strings mean the input was not set.
    """
    return _collect(env, lambda name: (
        f"INPUT_{name.replace('_', '-').upper()}",
        f"INPUT_{name.upper()}",
    ))


def _load_env_vars(env: Mapping[str, str]) -> dict[str, Any]:
    """Load configuration from NARRATOR_* environment variables."""
    return _collect(env, lambda name: (f"NARRATOR_{name.upper()}",))


def _collect(env: Mapping[str, str], keys_for) -> dict[str, Any]:
    type_hints = get_type_hints(ActionConfig)
    result: dict[str, Any] = {}

    for config_field in fields(ActionConfig):
        name = config_field.name
        for env_key in keys_for(name):
            raw = env.get(env_key)
            if raw is None or not raw.strip():
                continue
            try:
                result[name] = _parse_env_value(raw.strip(), type_hints[name])
            except ValueError as e:
                raise InvalidConfigError(name, raw, f"{env_key}: {e}")
            break

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Args:
        value: Raw string from environment
        type_hint: Type annotation from dataclass

    Returns:
        Parsed value

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]

    origin = getattr(type_hint, "__origin__", None)

    # Lists: comma- or newline-separated
    if origin is list or type_hint is list:
        return [item.strip() for item in re.split(r"[,\n]", value) if item.strip()]

    if type_hint is bool:
        lower = value.lower()
        if lower in _TRUE:
            return True
        if lower in _FALSE:
            return False
        raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    raise ValueError(f"unsupported type {type_hint!r}")


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load TOML file and return parsed dict.

    Keys may use the workflow spelling (``fail-on-score``); they are
    normalized to field names.
    """
    import tomllib

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigFileError(path, str(e))

    return {key.replace("-", "_"): value for key, value in raw.items()}
