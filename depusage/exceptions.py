"""Custom exceptions for depusage."""

from __future__ import annotations

from pathlib import Path


class DepUsageError(Exception):
    """Base exception for all depusage errors."""


class ConfigurationError(DepUsageError):
    """Raised when a setting or a caller-supplied option is invalid."""


class InvalidRepositoryError(DepUsageError):
    """Raised when the repository root is missing, not a directory or not absolute."""


class UnknownEcosystemError(DepUsageError):
    """Raised when an ecosystem selector matches no supported ecosystem."""

    def __init__(self, selector: str, supported: list[str]):
        self.selector = selector
        self.supported = supported
        super().__init__(
            f"unknown ecosystem '{selector}'; supported: {', '.join(supported)}"
        )


class ManifestParseError(DepUsageError):
    """Raised when a manifest or lock file exists but cannot be parsed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"failed to parse {self.path}: {reason}")


class PathEscapeError(DepUsageError):
    """Raised when a read would resolve outside the repository root."""

    def __init__(self, root: Path | str, target: Path | str):
        self.root = str(root)
        self.target = str(target)
        super().__init__(f"path {self.target} escapes repository root {self.root}")


class AnalysisCancelledError(DepUsageError):
    """Raised when an analysis is cancelled before it completes."""
