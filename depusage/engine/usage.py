"""Usage counting and per-dependency statistics."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from depusage.engine.models import FileScan, ImportRecord
from depusage.engine.normalize import normalize
from depusage.report import ImportUse, Location, SymbolUsage

TOP_SYMBOL_LIMIT = 5


class PatternCache:
    """Word-boundary patterns keyed by local binding name.

    Shared across every file of a run; cleared between independent runs.
    """

    def __init__(self) -> None:
        self._patterns: dict[str, re.Pattern[str]] = {}

    def get(self, local: str) -> re.Pattern[str]:
        pattern = self._patterns.get(local)
        if pattern is None:
            pattern = re.compile(r"\b" + re.escape(local) + r"\b")
            self._patterns[local] = pattern
        return pattern

    def clear(self) -> None:
        self._patterns.clear()

    def __len__(self) -> int:
        return len(self._patterns)


usage_patterns = PatternCache()


def count_usage(
    content: str,
    imports: Iterable[ImportRecord],
    patterns: PatternCache | None = None,
) -> dict[str, int]:
    """Occurrences of each bound local name, minus the imports that bound it."""
    patterns = patterns if patterns is not None else usage_patterns
    import_count: Counter[str] = Counter(
        rec.local_binding_name for rec in imports if not rec.wildcard and rec.local_binding_name
    )
    usage: dict[str, int] = {}
    for local, count in import_count.items():
        occurrences = len(patterns.get(local).findall(content)) - count
        usage[local] = max(occurrences, 0)
    return usage


@dataclass
class DependencyUsageStats:
    used_count: int = 0
    total_count: int = 0
    used_percent: float = 0.0
    top_symbols: list[SymbolUsage] = field(default_factory=list)
    used_imports: list[ImportUse] = field(default_factory=list)
    unused_imports: list[ImportUse] = field(default_factory=list)
    wildcard_import_count: int = 0

    @property
    def has_imports(self) -> bool:
        return self.total_count > 0


def _is_used(file: FileScan, rec: ImportRecord) -> bool:
    return rec.wildcard or file.symbol_occurrence_counts.get(rec.local_binding_name, 0) > 0


def _effective_count(file: FileScan, rec: ImportRecord) -> int:
    count = file.symbol_occurrence_counts.get(rec.local_binding_name, 0)
    if rec.wildcard and count == 0:
        return 1
    return count


def _location_key(loc: Location) -> tuple[str, int, int]:
    return (loc.file, loc.line, loc.column)


class _StatsAccumulator:
    def __init__(self) -> None:
        self.used: dict[tuple[str, str], list[Location]] = {}
        self.unused: dict[tuple[str, str], list[Location]] = {}
        self.used_symbols: set[str] = set()
        self.all_symbols: set[str] = set()
        self.symbol_counts: Counter[str] = Counter()
        self.symbol_modules: dict[str, str] = {}
        self.wildcards = 0

    def collect(self, file: FileScan, rec: ImportRecord) -> None:
        self.all_symbols.add(rec.exported_name)
        key = (rec.module_path, rec.exported_name)
        if _is_used(file, rec):
            self.used_symbols.add(rec.exported_name)
            count = _effective_count(file, rec)
            if count > 0:
                self.symbol_counts[rec.exported_name] += count
                self.symbol_modules.setdefault(rec.exported_name, rec.module_path)
            self.used.setdefault(key, []).append(rec.location)
        else:
            self.unused.setdefault(key, []).append(rec.location)
        if rec.wildcard:
            self.wildcards += 1

    def build(self) -> DependencyUsageStats:
        used_count = len(self.used_symbols)
        total_count = len(self.all_symbols)
        percent = used_count / total_count * 100 if total_count else 0.0

        # An import used in one file and idle in another is one used entry.
        for key, locations in self.unused.items():
            if key in self.used:
                self.used[key].extend(locations)

        top = sorted(self.symbol_counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return DependencyUsageStats(
            used_count=used_count,
            total_count=total_count,
            used_percent=percent,
            top_symbols=[
                SymbolUsage(name=name, module=self.symbol_modules.get(name, ""), count=count)
                for name, count in top[:TOP_SYMBOL_LIMIT]
            ],
            used_imports=_flatten(self.used),
            unused_imports=_flatten({k: v for k, v in self.unused.items() if k not in self.used}),
            wildcard_import_count=self.wildcards,
        )


def _flatten(entries: dict[tuple[str, str], list[Location]]) -> list[ImportUse]:
    items = []
    for (module, name), locations in sorted(entries.items()):
        unique = sorted(set(locations), key=_location_key)
        items.append(ImportUse(name=name, module=module, locations=unique))
    return items


def build_dependency_stats(dependency: str, files: Iterable[FileScan]) -> DependencyUsageStats:
    """Aggregate every import attributed to *dependency* across *files*."""
    target = normalize(dependency)
    acc = _StatsAccumulator()
    for file in files:
        for rec in file.imports:
            if normalize(rec.dependency_id) == target:
                acc.collect(file, rec)
    return acc.build()


def list_dependencies(files: Iterable[FileScan]) -> list[str]:
    """Sorted, normalized dependency ids that appear in any import."""
    found = {normalize(rec.dependency_id) for f in files for rec in f.imports if rec.dependency_id}
    return sorted(found)
