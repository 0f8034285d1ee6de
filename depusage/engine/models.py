"""Data models for the usage resolution engine."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from depusage.report import Location


class DependencySource(Enum):
    DIRECT = "direct"
    DEV = "dev"


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency declared in one manifest.

    ``aliases`` holds the normalized names code may use for the dependency
    when they differ from ``canonical_id`` (Cargo ``package = "..."`` renames).
    """

    canonical_id: str
    aliases: frozenset[str] = frozenset()
    is_local_path: bool = False
    source: DependencySource = DependencySource.DIRECT


@dataclass(frozen=True)
class NamespaceBinding:
    """Namespace prefix owned by a dependency (e.g. a PSR-4 prefix from composer.lock)."""

    prefix: str  # lower-cased, no leading/trailing separator
    dependency_id: str


@dataclass(frozen=True)
class ImportRecord:
    dependency_id: str
    module_path: str
    exported_name: str
    local_binding_name: str
    location: Location
    wildcard: bool = False


@dataclass
class ManifestData:
    """What a single manifest (plus its lock/metadata file) declares."""

    path: str  # relative to the repository root, "" when not found
    found: bool = True
    has_package: bool = True
    declarations: list[DependencyDeclaration] = field(default_factory=list)
    namespace_bindings: list[NamespaceBinding] = field(default_factory=list)
    local_namespaces: set[str] = field(default_factory=set)
    workspace_members: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class DeclaredDependencies:
    """Declarations merged across every manifest of one analysis."""

    by_id: dict[str, DependencyDeclaration] = field(default_factory=dict)
    lookup: dict[str, str] = field(default_factory=dict)  # alias or canonical -> canonical
    namespace_bindings: list[NamespaceBinding] = field(default_factory=list)
    local_namespaces: set[str] = field(default_factory=set)

    def get(self, key: str) -> DependencyDeclaration | None:
        canonical = self.lookup.get(key)
        if canonical is None:
            return None
        return self.by_id.get(canonical)

    def external_ids(self) -> list[str]:
        return sorted(k for k, d in self.by_id.items() if not d.is_local_path)

    def renamed_aliases(self) -> dict[str, list[str]]:
        return {
            k: sorted(d.aliases)
            for k, d in sorted(self.by_id.items())
            if d.aliases and not d.is_local_path
        }


@dataclass
class FileExtraction:
    """Raw extractor output for one file, before usage counting."""

    imports: list[ImportRecord] = field(default_factory=list)
    grouped: Counter[str] = field(default_factory=Counter)  # dependency -> grouped statements
    dynamic: bool = False
    macro: bool = False


@dataclass
class FileScan:
    path: str
    imports: list[ImportRecord] = field(default_factory=list)
    symbol_occurrence_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class ScanState:
    """Mutable per-scan state threaded through the resolver."""

    unresolved_counts: Counter[str] = field(default_factory=Counter)
    local_module_cache: dict[tuple[Path, str], bool] = field(default_factory=dict)


@dataclass
class ScanResult:
    files: list[FileScan] = field(default_factory=list)
    unresolved_counts: dict[str, int] = field(default_factory=dict)
    renamed_aliases_by_dependency: dict[str, list[str]] = field(default_factory=dict)
    grouped_imports_by_dependency: Counter[str] = field(default_factory=Counter)
    dynamic_usage_by_dependency: Counter[str] = field(default_factory=Counter)
    macro_ambiguity: bool = False
    bounded: bool = False
    files_visited: int = 0
    skipped_large_files: int = 0
    skipped_nested_packages: int = 0
    warnings: list[str] = field(default_factory=list)
