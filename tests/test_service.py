"""End-to-end tests for the analysis service."""

from __future__ import annotations

import json

import pytest

from depusage.core.cancel import CancelToken
from depusage.core.config import Settings
from depusage.engine.ecosystems.rust import ADAPTER as RUST
from depusage.engine.loader import merge_manifests
from depusage.engine.scanner import scan_repository
from depusage.engine.scoring import UNKNOWN_USAGE_RATIONALE
from depusage.engine.service import AnalysisRequest, analyse
from depusage.engine.workspace import resolve_workspace
from depusage.exceptions import (
    AnalysisCancelledError,
    ConfigurationError,
    InvalidRepositoryError,
    ManifestParseError,
    UnknownEcosystemError,
)


def _run(root, ecosystem, **kwargs):
    return analyse(AnalysisRequest(repo_path=str(root), ecosystem=ecosystem, **kwargs), settings=Settings())


def _codes(items):
    return [item.code for item in items]


# ── Rust scenarios ───────────────────────────────────────────────────────


class TestRustScenarios:
    def test_wildcard_group_import(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nserde = "1.0"\n',
                "src/main.rs": "use serde::{Deserialize, *};\n\n#[derive(Deserialize)]\nstruct A;\n",
            }
        )
        report = _run(root, "rust", dependency="serde")
        (dep,) = report.dependencies
        assert dep.total_exports_count == 2
        assert dep.used_exports_count == 2
        assert dep.wildcard_import_count == 1
        assert any(u.name == "*" for u in dep.used_imports)
        assert "broad-imports" in _codes(dep.risk_cues)
        assert "grouped-use-import" in _codes(dep.risk_cues)
        assert "prefer-explicit-imports" in _codes(dep.recommendations)

    def test_renamed_crate(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": (
                    '[package]\nname = "app"\n[dependencies]\nb = { package = "a", version = "1" }\n'
                ),
                "src/main.rs": "use b::Thing;\n\nfn main() { let _ = Thing::new(); }\n",
            }
        )
        report = _run(root, "rust", dependency="a")
        (dep,) = report.dependencies
        assert dep.used_exports_count == 1
        assert [u.name for u in dep.used_imports] == ["Thing"]
        assert "renamed-crate" in _codes(dep.risk_cues)
        assert "document-rename" in _codes(dep.recommendations)

    def test_renamed_aliases_by_dependency(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nb = { package = "a" }\n',
                "src/main.rs": "use b::Thing;\n",
            }
        )
        layout = resolve_workspace(root, RUST, max_manifests=256)
        declared, _ = merge_manifests(layout.manifests)
        scan = scan_repository(root, RUST, layout.scan_roots, declared)
        assert scan.renamed_aliases_by_dependency == {"a": ["b"]}

    def test_workspace_members(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[workspace]\nmembers = ["crates/*"]\n',
                "crates/core/Cargo.toml": '[package]\nname = "core"\n[dependencies]\nanyhow = "1"\n',
                "crates/core/src/lib.rs": "use anyhow::Result;\npub fn f() -> Result<()> { Ok(()) }\n",
            }
        )
        report = _run(root, "rust", top_n=5)
        assert report.scan.scan_roots == ["crates/core"]
        assert [d.name for d in report.dependencies] == ["anyhow"]

    def test_undeclared_import_in_top_n(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nserde = "1"\n',
                "src/main.rs": (
                    "use serde::Serialize;\nuse rand::Rng;\n"
                    "#[derive(Serialize)]\nstruct A;\nfn f<R: Rng>() {}\n"
                ),
            }
        )
        report = _run(root, "rust", top_n=10)
        assert report.scan.unresolved_imports == {"rand": 1}
        assert sorted(d.name for d in report.dependencies) == ["rand", "serde"]
        assert any("'rand'" in w and "could not resolve" in w for w in report.warnings)

    def test_local_path_dependency_not_reported(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": (
                    '[package]\nname = "app"\n[dependencies]\nutil = { path = "../util" }\n'
                    'serde = "1"\n'
                ),
                "src/main.rs": "use util::helper;\nuse serde::Serialize;\n",
            }
        )
        report = _run(root, "rust", top_n=10)
        assert [d.name for d in report.dependencies] == ["serde"]
        assert report.scan.unresolved_imports == {}

    def test_unused_dependency_recommendation(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nregex = "1"\n',
                "src/main.rs": "use regex::Regex;\nfn main() {}\n",
            }
        )
        (dep,) = _run(root, "rust", dependency="regex").dependencies
        assert dep.used_exports_count == 0
        assert _codes(dep.recommendations)[0] == "remove-unused-dependency"
        assert dep.unused_imports[0].confidence_score is not None


# ── Other ecosystems ─────────────────────────────────────────────────────


class TestOtherEcosystems:
    def test_php(self, make_repo):
        root = make_repo(
            {
                "composer.json": json.dumps(
                    {"require": {"php": "^8.2", "monolog/monolog": "^3"}, "autoload": {"psr-4": {"App\\": "src/"}}}
                ),
                "composer.lock": json.dumps(
                    {"packages": [{"name": "monolog/monolog", "autoload": {"psr-4": {"Monolog\\": "src"}}}]}
                ),
                "src/Service.php": (
                    "<?php\nnamespace App;\nuse Monolog\\{Logger, Handler\\StreamHandler};\n"
                    "use App\\Models\\User;\n$log = new Logger('x');\n"
                ),
            }
        )
        report = _run(root, "php", top_n=5)
        (dep,) = report.dependencies
        assert dep.name == "monolog/monolog"
        assert dep.used_exports_count == 1
        assert dep.total_exports_count == 2
        assert "grouped-use-import" in _codes(dep.risk_cues)
        assert "low-usage-dependency" not in _codes(dep.recommendations)

    def test_python(self, make_repo):
        root = make_repo(
            {
                "pyproject.toml": '[project]\nname = "svc"\ndependencies = ["PyYAML", "httpx"]\n',
                "svc/__init__.py": "",
                "svc/app.py": (
                    "import os\nimport yaml\nfrom httpx import Client, AsyncClient\nfrom svc import util\n"
                    "cfg = yaml.safe_load('')\nc = Client()\n"
                ),
            }
        )
        report = _run(root, "py", top_n=5)
        names = {d.name: d for d in report.dependencies}
        assert set(names) == {"pyyaml", "httpx"}
        assert names["httpx"].used_percent == 50.0
        assert report.scan.unresolved_imports == {}

    def test_php_top_n_includes_declared_only(self, make_repo):
        root = make_repo(
            {
                "composer.json": json.dumps(
                    {"require": {"monolog/monolog": "^3", "guzzlehttp/guzzle": "^7"}}
                ),
                "composer.lock": json.dumps(
                    {"packages": [{"name": "monolog/monolog", "autoload": {"psr-4": {"Monolog\\": "src"}}}]}
                ),
                "src/Service.php": "<?php\nuse Monolog\\Logger;\n$log = new Logger('x');\n",
            }
        )
        report = _run(root, "php", top_n=10)
        assert [d.name for d in report.dependencies] == ["monolog/monolog", "guzzlehttp/guzzle"]
        guzzle = report.dependencies[1]
        assert guzzle.total_exports_count == 0
        assert UNKNOWN_USAGE_RATIONALE in guzzle.removal_candidate.rationale
        assert "no imports found for dependency 'guzzlehttp/guzzle'" in report.warnings

    def test_ruby_top_n_includes_declared_only(self, make_repo):
        root = make_repo(
            {
                "Gemfile": 'gem "faraday"\ngem "rake"\n',
                "lib/client.rb": 'require "faraday"\n',
            }
        )
        report = _run(root, "ruby", top_n=10)
        assert [d.name for d in report.dependencies] == ["faraday", "rake"]

    def test_rust_top_n_ranks_imported_only(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nserde = "1"\nregex = "1"\n',
                "src/main.rs": "use serde::Serialize;\n",
            }
        )
        assert [d.name for d in _run(root, "rust", top_n=10).dependencies] == ["serde"]

    def test_ruby(self, make_repo):
        root = make_repo(
            {
                "Gemfile": 'gem "faraday"\n',
                "lib/client.rb": 'require "faraday"\nrequire "json"\n',
            }
        )
        (dep,) = _run(root, "ruby", dependency="faraday").dependencies
        assert dep.used_exports_count == 1
        assert _codes(dep.risk_cues) == ["dynamic-require"]
        assert "prefer-explicit-imports" not in _codes(dep.recommendations)

    def test_elixir(self, make_repo):
        root = make_repo(
            {
                "mix.exs": "defmodule A.MixProject do\n  defp deps do\n    [{:jason, \"~> 1.4\"}]\n  end\nend\n",
                "lib/a.ex": "defmodule A do\n  alias Jason.Encoder\n  def f, do: Encoder.encode(1)\nend\n",
            }
        )
        (dep,) = _run(root, "elixir", dependency="jason").dependencies
        assert dep.used_exports_count == 1


# ── Requests and failures ────────────────────────────────────────────────


class TestAnalyseRequests:
    def test_relative_path_rejected(self):
        with pytest.raises(InvalidRepositoryError, match="absolute"):
            analyse(AnalysisRequest(repo_path="relative/path", ecosystem="rust"), settings=Settings())

    def test_missing_path_rejected(self, tmp_path):
        with pytest.raises(InvalidRepositoryError, match="does not exist"):
            _run(tmp_path / "missing", "rust", top_n=1)

    def test_file_path_rejected(self, tmp_path):
        (tmp_path / "f").write_text("")
        with pytest.raises(InvalidRepositoryError, match="not a directory"):
            _run(tmp_path / "f", "rust", top_n=1)

    def test_unknown_ecosystem(self, tmp_path):
        with pytest.raises(UnknownEcosystemError):
            _run(tmp_path, "cobol", top_n=1)

    def test_bad_request_values(self, tmp_path):
        with pytest.raises(ConfigurationError):
            _run(tmp_path, "rust", top_n=-1)
        with pytest.raises(ConfigurationError):
            _run(tmp_path, "rust", dependency="x", min_usage_percent=101)

    def test_malformed_manifest_aborts(self, make_repo):
        root = make_repo({"Cargo.toml": "[package\n"})
        with pytest.raises(ManifestParseError):
            _run(root, "rust", top_n=1)

    def test_cancelled(self, make_repo):
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n'})
        token = CancelToken()
        token.cancel()
        with pytest.raises(AnalysisCancelledError):
            analyse(
                AnalysisRequest(repo_path=str(root), ecosystem="rust", top_n=1),
                settings=Settings(),
                cancel=token,
            )

    def test_no_target_warns(self, make_repo):
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n', "src/main.rs": ""})
        report = _run(root, "rust")
        assert report.dependencies == []
        assert "no dependency or top-N target provided" in report.warnings
        assert report.summary is None

    def test_missing_dependency_warns(self, make_repo):
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n', "src/main.rs": ""})
        report = _run(root, "rust", dependency="serde")
        assert "no imports found for dependency 'serde'" in report.warnings
        assert report.dependencies[0].removal_candidate is not None

    def test_empty_top_n_warns(self, make_repo):
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n', "src/main.rs": ""})
        report = _run(root, "rust", top_n=3)
        assert "no dependency data available for top-N ranking" in report.warnings

    def test_top_n_truncates_and_orders(self, make_repo):
        deps = "\n".join(f'd{i} = "1"' for i in range(4))
        source = "\n".join(f"use d{i}::S{i};" for i in range(4)) + "\nfn f() { S0; S1; }\n"
        root = make_repo(
            {
                "Cargo.toml": f'[package]\nname = "a"\n[dependencies]\n{deps}\n',
                "src/main.rs": source,
            }
        )
        report = _run(root, "rust", top_n=2)
        assert [d.name for d in report.dependencies] == ["d2", "d3"]

    def test_warnings_sorted_and_unique(self, make_repo):
        root = make_repo({"src/main.rs": "use x::A;\nuse y::B;\n"})
        report = _run(root, "rust", top_n=5)
        assert report.warnings == sorted(set(report.warnings))

    def test_unresolved_warnings_limited_to_five(self, make_repo):
        source = "\n".join(f"use crate{i}::X;" for i in range(8))
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n', "src/main.rs": source})
        report = _run(root, "rust", top_n=10)
        assert len(report.scan.unresolved_imports) == 8
        assert sum("could not resolve" in w for w in report.warnings) == 5

    def test_min_confidence_filters_findings(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[dependencies]\nserde = "1"\n',
                "src/main.rs": "use serde::{Serialize, *};\n",
            }
        )
        report = _run(root, "rust", dependency="serde", min_confidence=99)
        (dep,) = report.dependencies
        assert dep.risk_cues == []
        assert dep.recommendations == []
        assert dep.removal_candidate.confidence < 99

    def test_report_serializes(self, make_repo):
        root = make_repo({"Cargo.toml": '[package]\nname = "a"\n', "src/main.rs": ""})
        data = json.loads(_run(root, "rust", top_n=1).model_dump_json())
        assert data["schema_version"] == "0.1.0"
        assert data["ecosystem"] == "rust"
        assert data["scan"]["scan_roots"] == ["."]
