"""Exception hierarchy for the branch narrator action."""

from .config import ConfigFileError, ConfigurationError, InvalidConfigError
from .taxonomy import (
    ArtifactPublishError,
    BaselineUnavailableError,
    CommandExecutionError,
    CommentPublishError,
    ErrorCode,
    NarratorError,
    OutputParseError,
    PullRequestContextError,
    ScopeMismatchError,
    VersionResolutionError,
    excerpt,
)

__all__ = [
    "NarratorError",
    "ErrorCode",
    "VersionResolutionError",
    "CommandExecutionError",
    "OutputParseError",
    "BaselineUnavailableError",
    "ArtifactPublishError",
    "ScopeMismatchError",
    "CommentPublishError",
    "PullRequestContextError",
    "ConfigurationError",
    "InvalidConfigError",
    "ConfigFileError",
    "excerpt",
]
