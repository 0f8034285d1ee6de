"""Removal-candidate scoring and finding confidence."""

from __future__ import annotations

import math

from depusage.report import DependencyReport, RemovalCandidate, RemovalCandidateWeights

DEFAULT_WEIGHTS = RemovalCandidateWeights(usage=0.5, impact=0.3, confidence=0.2)

REASON_MISSING_EXPORT_INVENTORY = "missing-export-inventory"
REASON_WILDCARD_IMPORT = "wildcard-import"
REASON_RISK_HIGH = "risk-high"
REASON_RISK_MEDIUM = "risk-medium"
REASON_RISK_LOW = "risk-low"

REASON_CODE_ORDER = (
    REASON_MISSING_EXPORT_INVENTORY,
    REASON_WILDCARD_IMPORT,
    REASON_RISK_HIGH,
    REASON_RISK_MEDIUM,
    REASON_RISK_LOW,
)

_RISK_PENALTIES = {
    "high": (20.0, REASON_RISK_HIGH),
    "medium": (12.0, REASON_RISK_MEDIUM),
    "low": (6.0, REASON_RISK_LOW),
}

UNKNOWN_USAGE_RATIONALE = "usage coverage unknown because total exports are unavailable"
WILDCARD_RATIONALE = "wildcard import usage reduces per-symbol confidence"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def normalize_weights(weights: RemovalCandidateWeights | None) -> RemovalCandidateWeights:
    """Scale weights to sum to 1; invalid triples fall back to the defaults."""
    if weights is None:
        return DEFAULT_WEIGHTS
    values = (weights.usage, weights.impact, weights.confidence)
    if not all(math.isfinite(v) for v in values) or any(v < 0 for v in values):
        return DEFAULT_WEIGHTS
    total = sum(values)
    if not math.isfinite(total) or total <= 0:
        return DEFAULT_WEIGHTS
    return RemovalCandidateWeights(
        usage=weights.usage / total,
        impact=weights.impact / total,
        confidence=weights.confidence / total,
    )


def parse_weights(raw: str) -> RemovalCandidateWeights:
    """Parse ``"usage,impact,confidence"`` into a weight triple.

    Raises ValueError when the string does not hold exactly three numbers.
    """
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"expected three comma-separated weights, got {raw!r}")
    usage, impact, confidence = (float(p) for p in parts)
    return RemovalCandidateWeights(usage=usage, impact=impact, confidence=confidence)


def confidence_assessment(dep: DependencyReport) -> tuple[float, list[str], list[str]]:
    """Return (penalty, reason codes, rationale) for one dependency."""
    penalty = 0.0
    codes: list[str] = []
    rationale: list[str] = []
    if dep.total_exports_count <= 0:
        penalty += 35
        codes.append(REASON_MISSING_EXPORT_INVENTORY)
    if dep.wildcard_import_count > 0:
        penalty += 15
        codes.append(REASON_WILDCARD_IMPORT)
        rationale.append(WILDCARD_RATIONALE)
    for cue in dep.risk_cues:
        amount, code = _RISK_PENALTIES[cue.severity]
        penalty += amount
        codes.append(code)
    return penalty, codes, rationale


def confidence_score(dep: DependencyReport) -> tuple[float, list[str]]:
    penalty, codes, _ = confidence_assessment(dep)
    ordered = [code for code in REASON_CODE_ORDER if code in codes]
    return round(_clamp(100 - penalty), 1), ordered


def annotate_finding_confidence(dependencies: list[DependencyReport]) -> None:
    """Stamp each finding with its dependency's confidence score and reasons."""
    for dep in dependencies:
        score, codes = confidence_score(dep)
        for finding in (*dep.unused_imports, *dep.risk_cues, *dep.recommendations):
            finding.confidence_score = score
            finding.confidence_reason_codes = list(codes)


def filter_findings_by_confidence(dependencies: list[DependencyReport], min_confidence: float) -> None:
    """Drop findings scored below *min_confidence*. Scores are not recomputed."""
    if min_confidence <= 0:
        return
    for dep in dependencies:
        dep.unused_imports = [f for f in dep.unused_imports if (f.confidence_score or 0) >= min_confidence]
        dep.risk_cues = [f for f in dep.risk_cues if (f.confidence_score or 0) >= min_confidence]
        dep.recommendations = [
            f for f in dep.recommendations if (f.confidence_score or 0) >= min_confidence
        ]


def _raw_impact(dep: DependencyReport) -> float:
    if dep.total_exports_count <= 0:
        return 0.0
    return float(max(dep.total_exports_count - dep.used_exports_count, 0))


def _build_candidate(
    dep: DependencyReport, max_impact: float, weights: RemovalCandidateWeights
) -> RemovalCandidate:
    usage_known = dep.total_exports_count > 0
    usage = _clamp(100 - dep.used_percent) if usage_known else 0.0
    impact = _clamp(_raw_impact(dep) / max_impact * 100) if max_impact > 0 else 0.0
    penalty, _, rationale = confidence_assessment(dep)
    confidence = _clamp(100 - penalty)
    if not usage_known:
        rationale.append(UNKNOWN_USAGE_RATIONALE)

    score = usage * weights.usage + impact * weights.impact + confidence * weights.confidence
    return RemovalCandidate(
        score=round(score, 1),
        usage=round(usage, 1),
        impact=round(impact, 1),
        confidence=round(confidence, 1),
        weights=weights,
        rationale=rationale,
    )


def annotate_removal_candidates(
    dependencies: list[DependencyReport], weights: RemovalCandidateWeights | None = None
) -> None:
    """Attach a removal-candidate score to every dependency report.

    Impact is relative: the dependency with the largest unused surface in
    *dependencies* scores 100 on that axis.
    """
    if not dependencies:
        return
    weights = normalize_weights(weights)
    max_impact = max(_raw_impact(dep) for dep in dependencies)
    for dep in dependencies:
        dep.removal_candidate = _build_candidate(dep, max_impact, weights)


def ranking_key(dep: DependencyReport) -> tuple[bool, float, str]:
    """Score descending, unknown usage last, then name ascending."""
    score = dep.removal_candidate.score if dep.removal_candidate is not None else 0.0
    return (dep.total_exports_count <= 0, -score, dep.name)


def sort_reports_by_score(dependencies: list[DependencyReport]) -> list[DependencyReport]:
    return sorted(dependencies, key=ranking_key)
