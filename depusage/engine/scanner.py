"""Bounded source traversal feeding the extractor and the resolver."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from depusage.core.cancel import CancelToken
from depusage.core.config import Settings
from depusage.core.safeio import read_file_under
from depusage.engine.ecosystems.base import EcosystemAdapter
from depusage.engine.models import DeclaredDependencies, FileScan, ScanResult, ScanState
from depusage.engine.resolver import DependencyResolver
from depusage.engine.usage import PatternCache, count_usage

log = structlog.get_logger("depusage.engine")


class _Cap(Exception):
    """Internal: the file cap was hit; stop walking every remaining root."""


class SourceScanner:
    """Walk every scan root once and turn each source file into a FileScan.

    Directories that are themselves scan roots are skipped when walking an
    enclosing root, so each file is attributed to its nearest package.
    """

    def __init__(
        self,
        repo_root: Path,
        adapter: EcosystemAdapter,
        declared: DeclaredDependencies,
        settings: Settings,
        *,
        cancel: CancelToken | None = None,
        patterns: PatternCache | None = None,
    ) -> None:
        self.repo_root = repo_root
        self.adapter = adapter
        self.declared = declared
        self.settings = settings
        self.cancel = cancel
        self.patterns = patterns
        self.state = ScanState()
        self.resolver = DependencyResolver(adapter, declared, self.state)
        self.result = ScanResult(renamed_aliases_by_dependency=declared.renamed_aliases())

    def scan(self, scan_roots: list[Path]) -> ScanResult:
        roots = set(scan_roots)
        try:
            for root in scan_roots:
                self._walk(root, roots)
        except _Cap:
            self.result.bounded = True
            log.warning("scan.capped", limit=self.settings.max_scan_files)

        self._finish()
        return self.result

    # ── traversal ────────────────────────────────────────────────────────

    def _walk(self, scan_root: Path, roots: set[Path]) -> None:
        for dirpath, dirnames, filenames in os.walk(scan_root):
            self._check_cancel()
            current = Path(dirpath)
            kept = []
            for name in sorted(dirnames):
                if name in self.adapter.skip_dirs:
                    continue
                child = current / name
                if child in roots:
                    continue
                if self.adapter.skip_nested_packages and self.adapter.find_manifest(child) is not None:
                    self.result.skipped_nested_packages += 1
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                if not self.adapter.is_source_file(name):
                    continue
                self.result.files_visited += 1
                if self.result.files_visited > self.settings.max_scan_files:
                    raise _Cap()
                self._scan_file(scan_root, current / name)

    def _scan_file(self, scan_root: Path, path: Path) -> None:
        self._check_cancel()
        if path.stat().st_size > self.settings.max_file_bytes:
            self.result.skipped_large_files += 1
            return

        content = read_file_under(self.repo_root, path, self.cancel)
        rel = path.relative_to(self.repo_root).as_posix()
        extraction = self.adapter.extract_imports(content, rel, self.resolver.bind(scan_root))

        self.result.files.append(
            FileScan(
                path=rel,
                imports=extraction.imports,
                symbol_occurrence_counts=count_usage(content, extraction.imports, self.patterns),
            )
        )
        self.result.grouped_imports_by_dependency.update(extraction.grouped)
        if extraction.macro:
            self.result.macro_ambiguity = True
        if extraction.dynamic:
            for dependency in sorted({rec.dependency_id for rec in extraction.imports}):
                self.result.dynamic_usage_by_dependency[dependency] += 1

    def _check_cancel(self) -> None:
        if self.cancel is not None:
            self.cancel.raise_if_cancelled()

    # ── warnings ─────────────────────────────────────────────────────────

    def _finish(self) -> None:
        result = self.result
        result.unresolved_counts = dict(sorted(self.state.unresolved_counts.items()))
        label = self.adapter.id.capitalize()
        if not result.files:
            result.warnings.append(f"no {label} source files found for analysis")
        if result.skipped_large_files:
            result.warnings.append(
                f"skipped {result.skipped_large_files} {label} files larger than "
                f"{self.settings.max_file_bytes} bytes"
            )
        if result.skipped_nested_packages:
            result.warnings.append(
                f"skipped {result.skipped_nested_packages} nested package directories while scanning"
            )
        if result.bounded:
            result.warnings.append(
                f"{label} source scanning capped at {self.settings.max_scan_files} files"
            )
        if result.macro_ambiguity:
            result.warnings.append(
                f"{label} macro invocations detected; static attribution may be partial "
                "for macro-generated paths"
            )
        log.info(
            "scan.completed",
            files=len(result.files),
            bounded=result.bounded,
            unresolved=len(result.unresolved_counts),
        )


def scan_repository(
    repo_root: Path,
    adapter: EcosystemAdapter,
    scan_roots: list[Path],
    declared: DeclaredDependencies,
    settings: Settings | None = None,
    *,
    cancel: CancelToken | None = None,
    patterns: PatternCache | None = None,
) -> ScanResult:
    """Scan *scan_roots* (already resolved) under *repo_root*."""
    scanner = SourceScanner(
        repo_root,
        adapter,
        declared,
        settings if settings is not None else Settings(),
        cancel=cancel,
        patterns=patterns,
    )
    return scanner.scan(scan_roots)
