"""CLI entry point: depusage.

Subcommands:
    depusage analyse /path/to/repo --language rust --top 10
    depusage analyse /path/to/repo --dependency serde --format table
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from depusage.core.config import Settings
from depusage.core.logging import setup_logging
from depusage.engine.ecosystems import Ecosystem
from depusage.engine.scoring import parse_weights
from depusage.engine.service import AnalysisRequest, analyse
from depusage.exceptions import DepUsageError
from depusage.report import RemovalCandidateWeights, Report


def _weights_option(ctx: click.Context, param: click.Parameter, value: str | None) -> RemovalCandidateWeights | None:
    if value is None:
        return None
    try:
        return parse_weights(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


def _select_ecosystem(language: str, repo: Path) -> str:
    """Return the selector to analyse; ``auto`` picks the only detected ecosystem."""
    if language.lower() != "auto":
        return language
    detected = Ecosystem.detect(repo)
    if not detected:
        raise click.UsageError(f"no supported manifest found in {repo}; pass --language")
    if len(detected) > 1:
        names = ", ".join(m.ident for m in detected)
        raise click.UsageError(f"several ecosystems detected ({names}); pass --language")
    return detected[0].ident


def _render_table(report: Report) -> None:
    click.echo(f"{report.ecosystem} dependencies in {report.repo_path}:")
    for dep in report.dependencies:
        score = dep.removal_candidate.score if dep.removal_candidate is not None else 0.0
        cues = ",".join(c.code for c in dep.risk_cues) or "-"
        click.echo(
            f"  {dep.name:<32} {dep.used_exports_count:>4}/{dep.total_exports_count:<4} "
            f"{dep.used_percent:6.1f}%  score {score:5.1f}  {cues}"
        )
    if report.summary is not None:
        click.echo(
            f"\nTotal: {report.summary.used_exports_count}/{report.summary.total_exports_count} "
            f"exports used ({report.summary.used_percent:.1f}%)"
        )
    for warning in report.warnings:
        click.echo(f"warning: {warning}", err=True)


@click.group()
def main() -> None:
    """depusage: static dependency usage analysis."""


@main.command("analyse")
@click.argument("repo", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--language", "-l", default="auto", show_default=True, help="Ecosystem id or alias")
@click.option("--dependency", "-d", default="", help="Report a single dependency")
@click.option("--top", "top_n", type=click.IntRange(min=0), default=0, help="Rank the top N dependencies")
@click.option("--weights", callback=_weights_option, help="Removal weights as usage,impact,confidence")
@click.option("--min-usage", type=click.IntRange(0, 100), default=None, help="Low-usage threshold percent")
@click.option("--min-confidence", type=click.FloatRange(0, 100), default=0.0, help="Drop findings below this confidence")
@click.option("--format", "fmt", type=click.Choice(["json", "table"]), default="json", show_default=True)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def analyse_cmd(
    repo: Path,
    language: str,
    dependency: str,
    top_n: int,
    weights: RemovalCandidateWeights | None,
    min_usage: int | None,
    min_confidence: float,
    fmt: str,
    verbose: bool,
) -> None:
    """Analyse dependency usage in REPO."""
    if dependency and top_n:
        raise click.UsageError("--dependency and --top are mutually exclusive")
    if not dependency and not top_n:
        raise click.UsageError("pass either --dependency NAME or --top N")

    try:
        settings = Settings.from_env()
    except DepUsageError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    setup_logging(level="DEBUG" if verbose else settings.log_level, fmt=settings.log_format)

    repo = repo.resolve()
    request = AnalysisRequest(
        repo_path=str(repo),
        ecosystem=_select_ecosystem(language, repo),
        dependency=dependency,
        top_n=top_n,
        weights=weights,
        min_usage_percent=min_usage,
        min_confidence=min_confidence,
    )
    try:
        report = analyse(request, settings=settings)
    except (DepUsageError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if fmt == "json":
        click.echo(report.model_dump_json(indent=2))
    else:
        _render_table(report)


if __name__ == "__main__":
    main()
