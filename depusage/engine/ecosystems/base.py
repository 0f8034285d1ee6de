"""Capability interface every ecosystem adapter implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from depusage.core.cancel import CancelToken
from depusage.core.safeio import read_file_under
from depusage.engine.models import FileExtraction, ManifestData
from depusage.engine.normalize import normalize

# Maps a raw module path to a dependency id ("" when excluded).
Resolve = Callable[[str], str]

COMMON_SKIP_DIRS = frozenset(
    {".cache", ".git", ".hg", ".idea", ".next", ".svn", "build", "dist", "node_modules", "out"}
)


def line_column(content: str, offset: int) -> tuple[int, int]:
    """1-based line and column of *offset* in *content*."""
    line = content.count("\n", 0, offset) + 1
    column = offset - (content.rfind("\n", 0, offset) + 1) + 1
    return line, column


def first_content_column(line: str) -> int:
    stripped = line.lstrip(" \t")
    return len(line) - len(stripped) + 1 if stripped else 1


def strip_line_comment(line: str, marker: str) -> str:
    index = line.find(marker)
    return line if index < 0 else line[:index]


class EcosystemAdapter(ABC):
    """Manifest grammar, import syntax and resolver hooks for one ecosystem."""

    id: str
    manifest_names: tuple[str, ...]
    source_extensions: frozenset[str]
    separator: str
    builtin_roots: frozenset[str] = frozenset()  # normalized
    self_markers: frozenset[str] = frozenset()
    skip_dirs: frozenset[str] = COMMON_SKIP_DIRS
    skip_nested_packages: bool = False
    # top-N also ranks declared dependencies that are never imported
    rank_declared: bool = False

    # ── manifests ────────────────────────────────────────────────────────

    @abstractmethod
    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        """Parse the manifest found at *manifest* (inside *package_dir*)."""

    def find_manifest(self, directory: Path) -> Path | None:
        for name in self.manifest_names:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    def load_manifest(
        self, repo_root: Path, package_dir: Path, cancel: CancelToken | None = None
    ) -> ManifestData:
        """Load the manifest in *package_dir*; ``found=False`` when there is none."""
        if cancel is not None:
            cancel.raise_if_cancelled()
        manifest = self.find_manifest(package_dir)
        if manifest is None:
            return ManifestData(path="", found=False, has_package=False)
        return self.parse_manifest(repo_root, package_dir, manifest)

    def read(self, repo_root: Path, path: Path) -> str | None:
        """Read an optional metadata file; None when it does not exist."""
        try:
            return read_file_under(repo_root, path)
        except FileNotFoundError:
            return None

    # ── imports ──────────────────────────────────────────────────────────

    @abstractmethod
    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        """Extract import records from one source file."""

    def is_source_file(self, name: str) -> bool:
        return Path(name).suffix in self.source_extensions

    # ── resolver hooks ───────────────────────────────────────────────────

    def root_segment(self, module_path: str) -> str:
        for part in module_path.split(self.separator):
            if part.strip():
                return part.strip()
        return ""

    def is_builtin(self, root: str, module_path: str) -> bool:
        return normalize(root) in self.builtin_roots

    def is_self_reference(self, root: str, module_path: str) -> bool:
        return root.lower() in self.self_markers

    def local_module_candidates(self, scan_root: Path, root: str) -> list[Path]:
        """Paths whose existence marks *root* as a module of the package itself."""
        return []

    def heuristic_candidates(self, module_path: str) -> list[str]:
        """Fallback dependency ids to try when the root segment is not declared."""
        return []
