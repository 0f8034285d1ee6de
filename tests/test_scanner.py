"""Tests for bounded source scanning."""

from __future__ import annotations

import json

import pytest

from depusage.core.cancel import CancelToken
from depusage.engine.ecosystems.php import ADAPTER as PHP
from depusage.engine.ecosystems.rust import ADAPTER as RUST
from depusage.engine.loader import merge_manifests
from depusage.engine.scanner import scan_repository
from depusage.engine.workspace import resolve_workspace
from depusage.exceptions import AnalysisCancelledError

CARGO = '[package]\nname = "app"\n[dependencies]\nserde = "1"\n'


def _scan(root, adapter, settings, cancel=None):
    layout = resolve_workspace(root, adapter, max_manifests=settings.max_manifests)
    declared, _ = merge_manifests(layout.manifests)
    return scan_repository(root, adapter, layout.scan_roots, declared, settings, cancel=cancel)


class TestScanRepository:
    def test_files_and_counts(self, make_repo, settings):
        root = make_repo(
            {
                "Cargo.toml": CARGO,
                "src/main.rs": "use serde::Serialize;\n#[derive(Serialize)]\nstruct A;\n",
                "src/lib.rs": "use rayon::prelude::*;\n",
                "target/debug/gen.rs": "use ignored::X;\n",
                "README.md": "not source",
            }
        )
        result = _scan(root, RUST, settings)
        assert [f.path for f in result.files] == ["src/lib.rs", "src/main.rs"]
        main = result.files[1]
        assert main.symbol_occurrence_counts == {"Serialize": 1}
        assert result.unresolved_counts == {"rayon": 1}
        assert not result.bounded
        assert result.files_visited == 2

    def test_bounded_traversal(self, make_repo, settings):
        files = {"Cargo.toml": CARGO}
        files.update({f"src/m{i:02d}.rs": "use serde::Serialize;\n" for i in range(12)})
        root = make_repo(files)
        limited = settings.with_overrides(max_scan_files=5)
        result = _scan(root, RUST, limited)
        assert result.bounded
        assert len(result.files) == 5
        assert "Rust source scanning capped at 5 files" in result.warnings

    def test_large_files_skipped(self, make_repo, settings):
        root = make_repo({"Cargo.toml": CARGO, "src/big.rs": "// " + "x" * 200, "src/ok.rs": ""})
        result = _scan(root, RUST, settings.with_overrides(max_file_bytes=100))
        assert [f.path for f in result.files] == ["src/ok.rs"]
        assert result.skipped_large_files == 1
        assert any("larger than 100 bytes" in w for w in result.warnings)

    def test_no_sources_warns(self, make_repo, settings):
        root = make_repo({"Cargo.toml": CARGO})
        result = _scan(root, RUST, settings)
        assert "no Rust source files found for analysis" in result.warnings

    def test_macro_flag_and_warning(self, make_repo, settings):
        root = make_repo({"Cargo.toml": CARGO, "src/main.rs": 'fn main() { println!("x"); }\n'})
        result = _scan(root, RUST, settings)
        assert result.macro_ambiguity
        assert any("macro invocations detected" in w for w in result.warnings)

    def test_member_files_attributed_once(self, make_repo, settings):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[workspace]\nmembers = ["crates/*"]\n',
                "src/main.rs": "",
                "crates/util/Cargo.toml": CARGO,
                "crates/util/src/lib.rs": "use serde::Serialize;\n",
            }
        )
        result = _scan(root, RUST, settings)
        paths = [f.path for f in result.files]
        assert paths.count("crates/util/src/lib.rs") == 1
        assert sorted(paths) == ["crates/util/src/lib.rs", "src/main.rs"]

    def test_nested_php_packages_skipped(self, make_repo, settings):
        root = make_repo(
            {
                "composer.json": json.dumps({"require": {"monolog/monolog": "^3"}}),
                "composer.lock": json.dumps({"packages": []}),
                "src/A.php": "<?php\nuse Monolog\\Logger;\n",
                "packages/inner/composer.json": "{}",
                "packages/inner/src/B.php": "<?php\n",
            }
        )
        result = _scan(root, PHP, settings)
        assert [f.path for f in result.files] == ["src/A.php"]
        assert result.skipped_nested_packages == 1
        assert any("nested package" in w for w in result.warnings)

    def test_dynamic_usage_per_dependency(self, make_repo, settings):
        root = make_repo(
            {
                "composer.json": json.dumps({"require": {"monolog/monolog": "^3"}}),
                "composer.lock": json.dumps(
                    {"packages": [{"name": "monolog/monolog", "autoload": {"psr-4": {"Monolog\\": "src"}}}]}
                ),
                "src/A.php": "<?php\nuse Monolog\\Logger;\n$c = 'X';\nnew $c();\n",
            }
        )
        result = _scan(root, PHP, settings)
        assert result.dynamic_usage_by_dependency["monolog/monolog"] == 1

    def test_cancelled(self, make_repo, settings):
        root = make_repo({"Cargo.toml": CARGO, "src/main.rs": ""})
        layout = resolve_workspace(root, RUST, max_manifests=256)
        declared, _ = merge_manifests(layout.manifests)
        token = CancelToken()
        token.cancel()
        with pytest.raises(AnalysisCancelledError):
            scan_repository(root, RUST, layout.scan_roots, declared, settings, cancel=token)
