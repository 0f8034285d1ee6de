"""Identifier normalization shared by every ecosystem."""

from __future__ import annotations

import re

_DASH_RUN = re.compile(r"-{2,}")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def normalize(raw: str | None) -> str:
    """Canonical form of a dependency identifier.

    Lower-cases, trims, maps ``_`` and ``.`` to ``-`` and collapses dash runs.
    Total and idempotent; ``""`` means "not a dependency".
    """
    if not raw:
        return ""
    value = raw.strip().lower().replace("_", "-").replace(".", "-")
    return _DASH_RUN.sub("-", value)


def camel_to_kebab(value: str) -> str:
    """``PhoenixLiveView`` -> ``phoenix-live-view``; ``HTTPClient`` -> ``http-client``."""
    return normalize(_CAMEL_BOUNDARY.sub("-", value.strip()))


def camel_to_snake(value: str) -> str:
    return camel_to_kebab(value).replace("-", "_")
