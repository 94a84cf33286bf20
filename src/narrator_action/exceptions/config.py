"""Configuration exceptions: invalid inputs and settings files."""

from pathlib import Path
from typing import Any, Optional

from .taxonomy import ErrorCode, NarratorError


class ConfigurationError(NarratorError):
    """Base class for configuration-related errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.NA800,
            context=details or {},
            recoverable=False,
        )


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {value!r} ({reason})",
            details={"key": key, "value": str(value), "reason": reason},
        )
        self.key = key
        self.value = value
        self.reason = reason


class ConfigFileError(ConfigurationError):
    """Raised when a TOML settings file is missing or malformed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(
            f"Invalid config file '{path}': {reason}",
            details={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason
