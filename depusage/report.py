"""Report schemas: the external output contract of an analysis."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "0.1.0"

Severity = Literal["low", "medium", "high"]


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    line: int
    column: int


class ImportUse(BaseModel):
    name: str
    module: str
    locations: list[Location] = Field(default_factory=list)
    confidence_score: float | None = None
    confidence_reason_codes: list[str] = Field(default_factory=list)


class SymbolUsage(BaseModel):
    name: str
    module: str = ""
    count: int


class RiskCue(BaseModel):
    code: str
    severity: Severity
    message: str
    confidence_score: float | None = None
    confidence_reason_codes: list[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    code: str
    priority: Severity
    message: str
    rationale: str = ""
    confidence_score: float | None = None
    confidence_reason_codes: list[str] = Field(default_factory=list)


class RemovalCandidateWeights(BaseModel):
    usage: float = 0.5
    impact: float = 0.3
    confidence: float = 0.2


class RemovalCandidate(BaseModel):
    score: float
    usage: float
    impact: float
    confidence: float
    weights: RemovalCandidateWeights
    rationale: list[str] = Field(default_factory=list)


class DependencyReport(BaseModel):
    name: str
    language: str
    used_exports_count: int = 0
    total_exports_count: int = 0
    used_percent: float = 0.0
    wildcard_import_count: int = 0
    top_used_symbols: list[SymbolUsage] = Field(default_factory=list)
    used_imports: list[ImportUse] = Field(default_factory=list)
    unused_imports: list[ImportUse] = Field(default_factory=list)
    risk_cues: list[RiskCue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    removal_candidate: RemovalCandidate | None = None


class Summary(BaseModel):
    dependency_count: int
    used_exports_count: int
    total_exports_count: int
    used_percent: float


class ScanMetadata(BaseModel):
    scan_roots: list[str] = Field(default_factory=list)
    files_scanned: int = 0
    bounded: bool = False
    manifests_capped: bool = False
    skipped_large_files: int = 0
    unresolved_imports: dict[str, int] = Field(default_factory=dict)


class Report(BaseModel):
    schema_version: str = SCHEMA_VERSION
    generated_at: datetime
    repo_path: str
    ecosystem: str
    dependencies: list[DependencyReport] = Field(default_factory=list)
    summary: Summary | None = None
    scan: ScanMetadata = Field(default_factory=ScanMetadata)
    warnings: list[str] = Field(default_factory=list)


def compute_summary(dependencies: list[DependencyReport]) -> Summary | None:
    """Aggregate export counts over all reported dependencies."""
    if not dependencies:
        return None
    used = sum(dep.used_exports_count for dep in dependencies)
    total = sum(dep.total_exports_count for dep in dependencies)
    percent = used / total * 100 if total > 0 else 0.0
    return Summary(
        dependency_count=len(dependencies),
        used_exports_count=used,
        total_exports_count=total,
        used_percent=round(percent, 1),
    )
