"""Reads confined to the repository root."""

from __future__ import annotations

from pathlib import Path

from depusage.core.cancel import CancelToken
from depusage.exceptions import PathEscapeError


def is_within(root: Path, target: Path) -> bool:
    """True when *target* is *root* or lies below it (both already resolved)."""
    return target == root or target.is_relative_to(root)


def read_file_under(root: Path, path: Path | str, cancel: CancelToken | None = None) -> str:
    """Read a UTF-8 text file that must resolve inside *root*.

    Relative paths are taken relative to *root*. Symlinks are followed before
    the containment check, so a link pointing outside the root is refused.
    Raises FileNotFoundError for missing files and PathEscapeError on escape.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()
    resolved_root = root.resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = resolved_root / candidate
    target = candidate.resolve()
    if not is_within(resolved_root, target):
        raise PathEscapeError(resolved_root, target)
    with open(target, encoding="utf-8", errors="replace") as fh:
        return fh.read()
