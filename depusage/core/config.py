"""Runtime settings read from DEPUSAGE_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from depusage.exceptions import ConfigurationError

_LOG_FORMATS = ("console", "json")


def _env_int(name: str, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigurationError(f"{name} must be {bounds}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Limits and defaults for one analysis run."""

    max_scan_files: int = 2048
    max_manifests: int = 256
    max_file_bytes: int = 2 * 1024 * 1024
    min_usage_percent: int = 40
    log_level: str = "INFO"
    log_format: str = "console"

    @classmethod
    def from_env(cls) -> Settings:
        log_format = os.environ.get("DEPUSAGE_LOG_FORMAT", "console").strip().lower()
        if log_format not in _LOG_FORMATS:
            raise ConfigurationError(
                f"DEPUSAGE_LOG_FORMAT must be one of {', '.join(_LOG_FORMATS)}, got {log_format!r}"
            )
        return cls(
            max_scan_files=_env_int("DEPUSAGE_MAX_SCAN_FILES", 2048, minimum=1),
            max_manifests=_env_int("DEPUSAGE_MAX_MANIFESTS", 256, minimum=1),
            max_file_bytes=_env_int("DEPUSAGE_MAX_FILE_BYTES", 2 * 1024 * 1024, minimum=1),
            min_usage_percent=_env_int("DEPUSAGE_MIN_USAGE_PERCENT", 40, maximum=100),
            log_level=os.environ.get("DEPUSAGE_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_format=log_format,
        )

    def with_overrides(self, **changes: int | str | None) -> Settings:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
