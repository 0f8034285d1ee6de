"""Tests for workspace resolution and manifest merging."""

from __future__ import annotations

import json

import pytest

from depusage.core.cancel import CancelToken
from depusage.engine.ecosystems.php import ADAPTER as PHP
from depusage.engine.ecosystems.python import ADAPTER as PYTHON
from depusage.engine.ecosystems.rust import ADAPTER as RUST
from depusage.engine.loader import merge_manifests
from depusage.engine.models import (
    DependencyDeclaration,
    DependencySource,
    ManifestData,
    NamespaceBinding,
)
from depusage.engine.workspace import expand_member_pattern, resolve_workspace
from depusage.exceptions import AnalysisCancelledError

CRATE = '[package]\nname = "{name}"\n[dependencies]\n{deps}\n'


# ── Workspace resolution ─────────────────────────────────────────────────


class TestResolveWorkspace:
    def test_aggregator_root_excluded(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[workspace]\nmembers = ["crates/*"]\n',
                "crates/core/Cargo.toml": CRATE.format(name="core", deps='serde = "1"'),
                "crates/notes/README.md": "no manifest here",
            }
        )
        layout = resolve_workspace(root, RUST, max_manifests=256)
        assert layout.scan_roots == [root / "crates" / "core"]
        assert [m.path for m in layout.manifests] == ["Cargo.toml", "crates/core/Cargo.toml"]
        assert layout.warnings == []

    def test_root_with_package_is_included(self, make_repo):
        root = make_repo(
            {
                "Cargo.toml": '[package]\nname = "app"\n[workspace]\nmembers = ["tools/*"]\n',
                "tools/gen/Cargo.toml": CRATE.format(name="gen", deps=""),
            }
        )
        layout = resolve_workspace(root, RUST, max_manifests=256)
        assert layout.scan_roots == [root, root / "tools" / "gen"]

    def test_unresolved_pattern_warns(self, make_repo):
        root = make_repo({"Cargo.toml": '[workspace]\nmembers = ["missing/*"]\n'})
        layout = resolve_workspace(root, RUST, max_manifests=256)
        assert any("'missing/*' did not resolve" in w for w in layout.warnings)
        assert any("no Cargo.toml packages found" in w for w in layout.warnings)
        assert layout.scan_roots == [root]

    def test_escaping_pattern_dropped(self, tmp_path):
        outside = tmp_path / "outside"
        (outside / "evil").mkdir(parents=True)
        (outside / "evil" / "Cargo.toml").write_text(CRATE.format(name="evil", deps=""))
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / "Cargo.toml").write_text('[workspace]\nmembers = ["../outside/*"]\n')
        root = repo.resolve()
        assert expand_member_pattern(root, "../outside/*", RUST) == []
        layout = resolve_workspace(root, RUST, max_manifests=256)
        assert all(r.is_relative_to(root) for r in layout.scan_roots)

    def test_discovery_without_root_manifest(self, make_repo):
        root = make_repo(
            {
                "svc-a/pyproject.toml": '[project]\nname = "a"\ndependencies = ["httpx"]\n',
                "svc-b/requirements.txt": "flask\n",
                "node_modules/x/requirements.txt": "ignored\n",
            }
        )
        layout = resolve_workspace(root, PYTHON, max_manifests=256)
        assert layout.scan_roots == [root / "svc-a", root / "svc-b"]
        assert any("not found in analysis root" in w for w in layout.warnings)

    def test_discovery_capped(self, make_repo):
        root = make_repo({f"pkg{i}/requirements.txt": "flask\n" for i in range(5)})
        layout = resolve_workspace(root, PYTHON, max_manifests=2)
        assert layout.capped
        assert len(layout.scan_roots) == 2
        assert "manifest discovery capped at 2 manifests" in layout.warnings

    def test_member_cap(self, make_repo):
        files = {"Cargo.toml": '[workspace]\nmembers = ["crates/*"]\n'}
        for i in range(4):
            files[f"crates/c{i}/Cargo.toml"] = CRATE.format(name=f"c{i}", deps="")
        root = make_repo(files)
        layout = resolve_workspace(root, RUST, max_manifests=3)
        assert layout.capped
        assert [r.name for r in layout.scan_roots] == ["c0", "c1", "c2"]

    def test_missing_manifest_warns(self, make_repo):
        root = make_repo({"src/main.rs": "fn main() {}\n"})
        layout = resolve_workspace(root, RUST, max_manifests=256)
        assert layout.scan_roots == [root]
        assert "Cargo.toml not found in analysis root" in layout.warnings

    def test_cancelled(self, make_repo):
        root = make_repo({"Cargo.toml": CRATE.format(name="a", deps="")})
        token = CancelToken()
        token.cancel()
        with pytest.raises(AnalysisCancelledError):
            resolve_workspace(root, RUST, max_manifests=256, cancel=token)

    def test_php_missing_lock_propagates_warning(self, make_repo):
        root = make_repo({"composer.json": '{"require": {"monolog/monolog": "^3"}}'})
        layout = resolve_workspace(root, PHP, max_manifests=256)
        _, warnings = merge_manifests(layout.manifests)
        assert any("composer.lock not found" in w for w in warnings)


# ── Manifest merging ─────────────────────────────────────────────────────


class TestMergeManifests:
    def test_lookup_includes_aliases(self):
        manifest = ManifestData(
            path="Cargo.toml",
            declarations=[DependencyDeclaration(canonical_id="a", aliases=frozenset({"b"}))],
        )
        declared, warnings = merge_manifests([manifest])
        assert declared.get("b").canonical_id == "a"
        assert declared.renamed_aliases() == {"a": ["b"]}
        assert warnings == []

    def test_conflicting_alias_keeps_first_registry_binding(self):
        first = ManifestData(
            path="crates/x/Cargo.toml",
            declarations=[DependencyDeclaration(canonical_id="a", aliases=frozenset({"util"}))],
        )
        second = ManifestData(
            path="crates/y/Cargo.toml",
            declarations=[DependencyDeclaration(canonical_id="c", aliases=frozenset({"util"}))],
        )
        declared, warnings = merge_manifests([first, second])
        assert declared.lookup["util"] == "a"
        assert any("ambiguous dependency alias 'util'" in w for w in warnings)

    def test_local_binding_yields_to_registry(self):
        local = ManifestData(
            path="a/Cargo.toml",
            declarations=[
                DependencyDeclaration(canonical_id="x", aliases=frozenset({"util"}), is_local_path=True)
            ],
        )
        registry = ManifestData(
            path="b/Cargo.toml",
            declarations=[DependencyDeclaration(canonical_id="y", aliases=frozenset({"util"}))],
        )
        declared, warnings = merge_manifests([local, registry])
        assert declared.lookup["util"] == "y"
        assert warnings

    def test_same_dependency_merges_sources(self):
        dev = ManifestData(
            path="a",
            declarations=[DependencyDeclaration(canonical_id="x", source=DependencySource.DEV)],
        )
        direct = ManifestData(path="b", declarations=[DependencyDeclaration(canonical_id="x")])
        declared, _ = merge_manifests([dev, direct])
        assert declared.by_id["x"].source is DependencySource.DIRECT

    def test_local_in_one_manifest_registry_in_another(self):
        local = ManifestData(
            path="a", declarations=[DependencyDeclaration(canonical_id="x", is_local_path=True)]
        )
        registry = ManifestData(path="b", declarations=[DependencyDeclaration(canonical_id="x")])
        declared, _ = merge_manifests([local, registry])
        assert not declared.by_id["x"].is_local_path
        assert declared.external_ids() == ["x"]

    def test_bindings_longest_first(self):
        manifest = ManifestData(
            path="composer.json",
            namespace_bindings=[
                NamespaceBinding(prefix="symfony", dependency_id="symfony/symfony"),
                NamespaceBinding(prefix="symfony\\component\\console", dependency_id="symfony/console"),
            ],
        )
        declared, _ = merge_manifests([manifest])
        assert declared.namespace_bindings[0].dependency_id == "symfony/console"

    def test_conflicting_namespace_binding_warns(self):
        first = ManifestData(
            path="a/composer.json",
            declarations=[DependencyDeclaration(canonical_id="acme/one")],
            namespace_bindings=[NamespaceBinding(prefix="shared", dependency_id="acme/one")],
        )
        second = ManifestData(
            path="b/composer.json",
            declarations=[DependencyDeclaration(canonical_id="acme/two")],
            namespace_bindings=[NamespaceBinding(prefix="shared", dependency_id="acme/two")],
        )
        declared, warnings = merge_manifests([first, second])
        assert [(b.prefix, b.dependency_id) for b in declared.namespace_bindings] == [("shared", "acme/one")]
        assert warnings == ["ambiguous dependency alias 'shared' maps to multiple packages; using 'acme/one'"]

    def test_local_namespace_binding_yields_to_registry(self):
        local = ManifestData(
            path="a/composer.json",
            declarations=[DependencyDeclaration(canonical_id="acme/local", is_local_path=True)],
            namespace_bindings=[NamespaceBinding(prefix="shared", dependency_id="acme/local")],
        )
        registry = ManifestData(
            path="b/composer.json",
            declarations=[DependencyDeclaration(canonical_id="acme/two")],
            namespace_bindings=[NamespaceBinding(prefix="shared", dependency_id="acme/two")],
        )
        declared, warnings = merge_manifests([local, registry])
        assert declared.namespace_bindings[0].dependency_id == "acme/two"
        assert any("ambiguous dependency alias 'shared'" in w and "'acme/two'" in w for w in warnings)

    def test_repeated_namespace_binding_is_not_a_conflict(self):
        binding = NamespaceBinding(prefix="monolog", dependency_id="monolog/monolog")
        manifests = [ManifestData(path=p, namespace_bindings=[binding]) for p in ("a", "b")]
        declared, warnings = merge_manifests(manifests)
        assert len(declared.namespace_bindings) == 1
        assert warnings == []

    def test_php_members_with_conflicting_locks(self, make_repo):
        def lock(package):
            return json.dumps({"packages": [{"name": package, "autoload": {"psr-4": {"Shared\\": "src"}}}]})

        root = make_repo(
            {
                "a/composer.json": json.dumps({"require": {"acme/one": "^1"}}),
                "a/composer.lock": lock("acme/one"),
                "b/composer.json": json.dumps({"require": {"acme/two": "^1"}}),
                "b/composer.lock": lock("acme/two"),
            }
        )
        layout = resolve_workspace(root, PHP, max_manifests=256)
        declared, warnings = merge_manifests(layout.manifests)
        assert [b.dependency_id for b in declared.namespace_bindings] == ["acme/one"]
        assert any("ambiguous dependency alias 'shared'" in w for w in warnings)
