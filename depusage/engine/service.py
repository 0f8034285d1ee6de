"""Analysis service: runs the pipeline for one repository and ecosystem."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from depusage.core.cancel import CancelToken
from depusage.core.config import Settings
from depusage.engine.ecosystems import Ecosystem
from depusage.engine.loader import merge_manifests
from depusage.engine.models import ScanResult
from depusage.engine.normalize import normalize
from depusage.engine.scanner import scan_repository
from depusage.engine.scoring import (
    annotate_finding_confidence,
    annotate_removal_candidates,
    filter_findings_by_confidence,
    sort_reports_by_score,
)
from depusage.engine.usage import build_dependency_stats, list_dependencies, usage_patterns
from depusage.engine.workspace import resolve_workspace
from depusage.exceptions import ConfigurationError, InvalidRepositoryError
from depusage.report import (
    DependencyReport,
    Recommendation,
    RemovalCandidateWeights,
    Report,
    RiskCue,
    ScanMetadata,
    compute_summary,
)

log = structlog.get_logger("depusage.engine")

MAX_UNRESOLVED_WARNINGS = 5

_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

# ecosystem -> (cue code, message) used when wildcard imports are present
_WILDCARD_CUES = {
    Ecosystem.RUST: ("broad-imports", "found broad wildcard imports; prefer narrower symbol imports"),
    Ecosystem.PYTHON: ("broad-imports", "found {n} wildcard import(s) for this dependency"),
    Ecosystem.ELIXIR: ("broad-imports", "found {n} import/use directive(s) that bring the whole module into scope"),
    Ecosystem.RUBY: ("dynamic-require", "found {n} runtime require signal(s) for this gem"),
}


@dataclass
class AnalysisRequest:
    """Input of one analysis.

    ``repo_path`` must be absolute. Exactly one of ``dependency`` or
    ``top_n`` selects what is reported.
    """

    repo_path: str
    ecosystem: str
    dependency: str = ""
    top_n: int = 0
    weights: RemovalCandidateWeights | None = None
    min_usage_percent: int | None = None
    min_confidence: float = 0.0


def _validate_repo(repo_path: str) -> Path:
    path = Path(repo_path)
    if not path.is_absolute():
        raise InvalidRepositoryError(f"repository path must be absolute: {repo_path}")
    if not path.exists():
        raise InvalidRepositoryError(f"repository path does not exist: {repo_path}")
    if not path.is_dir():
        raise InvalidRepositoryError(f"repository path is not a directory: {repo_path}")
    return path.resolve()


def _validate_request(request: AnalysisRequest) -> None:
    if request.top_n < 0:
        raise ConfigurationError(f"top_n must be >= 0, got {request.top_n}")
    if request.min_usage_percent is not None and not 0 <= request.min_usage_percent <= 100:
        raise ConfigurationError(
            f"min_usage_percent must be between 0 and 100, got {request.min_usage_percent}"
        )
    if not 0 <= request.min_confidence <= 100:
        raise ConfigurationError(
            f"min_confidence must be between 0 and 100, got {request.min_confidence}"
        )


def summarize_unresolved(counts: dict[str, int], ecosystem: Ecosystem) -> list[str]:
    """Warnings for the most frequent unresolved identifiers only."""
    items = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:MAX_UNRESOLVED_WARNINGS]
    manifests = " or ".join(ecosystem.adapter.manifest_names)
    return [
        f"could not resolve {ecosystem.ident} import {name!r} from {manifests} ({count} import(s))"
        for name, count in items
    ]


def build_risk_cues(
    ecosystem: Ecosystem, dep: DependencyReport, scan: ScanResult
) -> list[RiskCue]:
    cues = []
    if dep.wildcard_import_count > 0 and ecosystem in _WILDCARD_CUES:
        code, message = _WILDCARD_CUES[ecosystem]
        cues.append(
            RiskCue(code=code, severity="medium", message=message.format(n=dep.wildcard_import_count))
        )
    grouped = scan.grouped_imports_by_dependency.get(dep.name, 0)
    if grouped > 0:
        cues.append(
            RiskCue(
                code="grouped-use-import",
                severity="medium",
                message=f"found {grouped} grouped import(s) for this dependency",
            )
        )
    if scan.renamed_aliases_by_dependency.get(dep.name):
        cues.append(
            RiskCue(
                code="renamed-crate",
                severity="low",
                message="dependency is imported via alias/package rename in the manifest",
            )
        )
    if scan.macro_ambiguity and dep.used_imports:
        cues.append(
            RiskCue(
                code="macro-ambiguity",
                severity="low",
                message="macro-heavy usage may reduce static import attribution precision",
            )
        )
    dynamic = scan.dynamic_usage_by_dependency.get(dep.name, 0)
    if dynamic > 0:
        cues.append(
            RiskCue(
                code="dynamic-loading",
                severity="high",
                message=(
                    f"found {dynamic} file(s) with dynamic/reflection usage that may hide "
                    "dependency references"
                ),
            )
        )
    return sorted(cues, key=lambda c: c.code)


def build_recommendations(
    ecosystem: Ecosystem, dep: DependencyReport, min_usage_percent: int
) -> list[Recommendation]:
    codes = {cue.code for cue in dep.risk_cues}
    recs = []
    if not dep.used_imports and dep.unused_imports:
        recs.append(
            Recommendation(
                code="remove-unused-dependency",
                priority="high",
                message=f"No used imports were detected for {dep.name!r}; consider removing it.",
                rationale="Unused dependencies increase attack and maintenance surface.",
            )
        )
    if "dynamic-loading" in codes:
        recs.append(
            Recommendation(
                code="review-dynamic-loading",
                priority="high",
                message=(
                    "Dynamic loading/reflection patterns were detected; manually review runtime "
                    "dependency usage."
                ),
                rationale="Static analysis can under-report usage when names are resolved dynamically.",
            )
        )
    # A require is always whole-module, so there is no explicit form to suggest.
    explicit_possible = ecosystem is not Ecosystem.RUBY
    if explicit_possible and ("grouped-use-import" in codes or dep.wildcard_import_count > 0):
        recs.append(
            Recommendation(
                code="prefer-explicit-imports",
                priority="medium",
                message="Replace wildcard or grouped imports with explicit symbol imports.",
                rationale="Explicit imports improve readability and analysis precision.",
            )
        )
    if dep.total_exports_count > 0 and 0 < dep.used_percent < min_usage_percent:
        recs.append(
            Recommendation(
                code="low-usage-dependency",
                priority="medium",
                message=f"Dependency {dep.name!r} has low observed usage ({dep.used_percent:.1f}%).",
                rationale="Low-usage dependencies are candidates for removal or replacement.",
            )
        )
    if "renamed-crate" in codes:
        recs.append(
            Recommendation(
                code="document-rename",
                priority="low",
                message="Document package rename mappings to avoid attribution confusion.",
                rationale="Renamed packages can hide real package identity in usage reports.",
            )
        )
    return sorted(recs, key=lambda r: (_PRIORITY_RANK[r.priority], r.code))


def build_dependency_report(
    ecosystem: Ecosystem, dependency: str, scan: ScanResult, min_usage_percent: int
) -> tuple[DependencyReport, list[str]]:
    """Report for one dependency plus any warnings it produced."""
    stats = build_dependency_stats(dependency, scan.files)
    dep = DependencyReport(
        name=dependency,
        language=ecosystem.ident,
        used_exports_count=stats.used_count,
        total_exports_count=stats.total_count,
        used_percent=round(stats.used_percent, 1),
        wildcard_import_count=stats.wildcard_import_count,
        top_used_symbols=stats.top_symbols,
        used_imports=stats.used_imports,
        unused_imports=stats.unused_imports,
    )
    dep.risk_cues = build_risk_cues(ecosystem, dep, scan)
    dep.recommendations = build_recommendations(ecosystem, dep, min_usage_percent)
    if stats.has_imports:
        return dep, []
    return dep, [f"no imports found for dependency {dependency!r}"]


def analyse(
    request: AnalysisRequest,
    *,
    settings: Settings | None = None,
    cancel: CancelToken | None = None,
) -> Report:
    """Run one analysis and return the report.

    Raises InvalidRepositoryError, UnknownEcosystemError, ManifestParseError,
    AnalysisCancelledError or OSError; every soft issue lands in
    ``Report.warnings`` instead.
    """
    settings = settings if settings is not None else Settings.from_env()
    _validate_request(request)
    repo_root = _validate_repo(request.repo_path)
    ecosystem = Ecosystem.from_selector(request.ecosystem)
    adapter = ecosystem.adapter
    min_usage = (
        request.min_usage_percent
        if request.min_usage_percent is not None
        else settings.min_usage_percent
    )

    t0 = time.monotonic()
    log.info("analysis.started", repo=str(repo_root), ecosystem=ecosystem.ident)
    usage_patterns.clear()

    layout = resolve_workspace(
        repo_root, adapter, max_manifests=settings.max_manifests, cancel=cancel
    )
    declared, manifest_warnings = merge_manifests(layout.manifests)
    scan = scan_repository(
        repo_root, adapter, layout.scan_roots, declared, settings, cancel=cancel
    )

    warnings = [*layout.warnings, *manifest_warnings, *scan.warnings]
    warnings.extend(summarize_unresolved(scan.unresolved_counts, ecosystem))

    dependency = normalize(request.dependency)
    reports: list[DependencyReport] = []
    if dependency:
        dep, dep_warnings = build_dependency_report(ecosystem, dependency, scan, min_usage)
        reports.append(dep)
        warnings.extend(dep_warnings)
    elif request.top_n > 0:
        candidates = set(list_dependencies(scan.files))
        if adapter.rank_declared:
            candidates.update(declared.external_ids())
        for name in sorted(candidates):
            dep, dep_warnings = build_dependency_report(ecosystem, name, scan, min_usage)
            reports.append(dep)
            warnings.extend(dep_warnings)
        if not reports:
            warnings.append("no dependency data available for top-N ranking")
    else:
        warnings.append("no dependency or top-N target provided")

    annotate_finding_confidence(reports)
    annotate_removal_candidates(reports, request.weights)
    reports = sort_reports_by_score(reports)
    if request.top_n > 0 and not dependency:
        reports = reports[: request.top_n]
    filter_findings_by_confidence(reports, request.min_confidence)

    result = Report(
        generated_at=datetime.now(timezone.utc),
        repo_path=str(repo_root),
        ecosystem=ecosystem.ident,
        dependencies=reports,
        summary=compute_summary(reports),
        scan=ScanMetadata(
            scan_roots=[_relative(repo_root, root) for root in layout.scan_roots],
            files_scanned=len(scan.files),
            bounded=scan.bounded,
            manifests_capped=layout.capped,
            skipped_large_files=scan.skipped_large_files,
            unresolved_imports=scan.unresolved_counts,
        ),
        warnings=sorted(set(warnings)),
    )
    log.info(
        "analysis.completed",
        ecosystem=ecosystem.ident,
        dependencies=len(reports),
        warnings=len(result.warnings),
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    return result


def _relative(repo_root: Path, path: Path) -> str:
    return path.relative_to(repo_root).as_posix()
