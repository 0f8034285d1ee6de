"""Workspace resolution: expand a repository into scan roots."""

from __future__ import annotations

import glob
import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from depusage.core.cancel import CancelToken
from depusage.core.safeio import is_within
from depusage.engine.ecosystems.base import EcosystemAdapter
from depusage.engine.models import ManifestData

log = structlog.get_logger("depusage.engine")


@dataclass
class WorkspaceLayout:
    """Scan roots in sorted order plus every manifest parsed on the way."""

    scan_roots: list[Path] = field(default_factory=list)
    manifests: list[ManifestData] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    capped: bool = False


def expand_member_pattern(repo_root: Path, pattern: str, adapter: EcosystemAdapter) -> list[Path]:
    """Directories matching *pattern* that sit strictly below *repo_root* and hold a manifest."""
    matches = []
    for hit in sorted(glob.glob(os.path.join(str(repo_root), pattern))):
        candidate = Path(hit).resolve()
        if not candidate.is_dir() or candidate == repo_root or not is_within(repo_root, candidate):
            continue
        if adapter.find_manifest(candidate) is None:
            continue
        matches.append(candidate)
    return matches


def discover_manifest_dirs(
    repo_root: Path, adapter: EcosystemAdapter, limit: int, cancel: CancelToken | None = None
) -> tuple[list[Path], bool]:
    """Walk the tree for directories holding a manifest; (dirs, capped)."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(repo_root):
        if cancel is not None:
            cancel.raise_if_cancelled()
        dirnames[:] = sorted(d for d in dirnames if d not in adapter.skip_dirs)
        if any(name in filenames for name in adapter.manifest_names):
            if len(found) >= limit:
                return found, True
            found.append(Path(dirpath))
    return found, False


def resolve_workspace(
    repo_root: Path,
    adapter: EcosystemAdapter,
    *,
    max_manifests: int,
    cancel: CancelToken | None = None,
) -> WorkspaceLayout:
    """Resolve the ordered, deduplicated scan roots for *repo_root*.

    With a root manifest, the root is scanned unless it only aggregates
    workspace members, and each member pattern contributes the matching
    member directories. Without one, manifests are discovered by walking the
    tree. Both paths stop at *max_manifests*.
    """
    layout = WorkspaceLayout()
    manifest_label = " or ".join(adapter.manifest_names)
    root_manifest = adapter.load_manifest(repo_root, repo_root, cancel)

    candidates: list[Path] = []
    if root_manifest.found:
        layout.manifests.append(root_manifest)
        if root_manifest.has_package or not root_manifest.workspace_members:
            candidates.append(repo_root)
        for pattern in root_manifest.workspace_members:
            if cancel is not None:
                cancel.raise_if_cancelled()
            members = expand_member_pattern(repo_root, pattern, adapter)
            if not members:
                log.warning("workspace.member_unresolved", pattern=pattern)
                layout.warnings.append(
                    f"workspace member pattern {pattern!r} did not resolve to a {manifest_label}"
                )
            candidates.extend(members)
    else:
        layout.warnings.append(f"{manifest_label} not found in analysis root")
        discovered, capped = discover_manifest_dirs(repo_root, adapter, max_manifests, cancel)
        layout.capped = capped
        candidates.extend(discovered)

    roots = sorted(set(candidates), key=lambda p: p.as_posix())
    if len(roots) > max_manifests:
        roots = roots[:max_manifests]
        layout.capped = True
    if layout.capped:
        log.warning("workspace.capped", limit=max_manifests)
        layout.warnings.append(f"manifest discovery capped at {max_manifests} manifests")

    if not roots:
        if root_manifest.found:
            layout.warnings.append(f"no {manifest_label} packages found for analysis")
        roots = [repo_root]

    for root in roots:
        if root == repo_root and root_manifest.found:
            continue
        manifest = adapter.load_manifest(repo_root, root, cancel)
        if manifest.found:
            layout.manifests.append(manifest)
    layout.scan_roots = roots
    return layout
