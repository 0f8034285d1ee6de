"""Dependency resolver: map a raw module path to a declared dependency id."""

from __future__ import annotations

from pathlib import Path

import structlog

from depusage.engine.ecosystems.base import EcosystemAdapter, Resolve
from depusage.engine.models import DeclaredDependencies, DependencyDeclaration, ScanState
from depusage.engine.normalize import normalize

log = structlog.get_logger("depusage.engine")


class DependencyResolver:
    """Decide whether an import names an external dependency.

    Rules are applied in order and the first match wins:

    1. empty path, not a dependency
    2. built-in / standard-library root, excluded
    3. self-referential root (``crate``, ``self``, relative import), excluded
    4. module that exists under the scan root's own tree, excluded
    5. longest namespace-binding prefix
    6. direct lookup of the normalized root segment
    7. ecosystem heuristics checked against the declarations
    8. unresolved: counted in ``state.unresolved_counts`` and returned as the
       normalized root so top-N ranking can still surface it

    Declarations that point at a local path never come back as a result.
    """

    def __init__(
        self,
        adapter: EcosystemAdapter,
        declared: DeclaredDependencies,
        state: ScanState | None = None,
    ) -> None:
        self.adapter = adapter
        self.declared = declared
        self.state = state if state is not None else ScanState()

    def resolve(self, module_path: str, scan_root: Path) -> str:
        path = module_path.strip()
        root = self.adapter.root_segment(path)
        nroot = normalize(root)
        if not nroot:
            return ""
        if self.adapter.is_builtin(root, path):
            return ""
        if self.adapter.is_self_reference(root, path):
            return ""

        key = path.strip(self.adapter.separator).lower()
        if self._is_local_namespace(key) or self._is_local_module(scan_root, root):
            return ""

        binding = self._match_binding(key)
        if binding is not None:
            return self._external_id(self.declared.get(binding) or _undeclared(binding))

        declaration = self.declared.get(nroot)
        if declaration is not None:
            return self._external_id(declaration)

        for candidate in self.adapter.heuristic_candidates(path):
            declaration = self.declared.get(normalize(candidate))
            if declaration is not None:
                return self._external_id(declaration)

        self.state.unresolved_counts[nroot] += 1
        log.debug("resolver.unresolved", module=path, root=nroot)
        return nroot

    def bind(self, scan_root: Path) -> Resolve:
        """Return a one-argument resolve function fixed to *scan_root*."""
        return lambda module_path: self.resolve(module_path, scan_root)

    # ── helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _external_id(declaration: DependencyDeclaration) -> str:
        return "" if declaration.is_local_path else declaration.canonical_id

    def _is_local_namespace(self, key: str) -> bool:
        sep = self.adapter.separator
        return any(key == ns or key.startswith(ns + sep) for ns in self.declared.local_namespaces)

    def _is_local_module(self, scan_root: Path, root: str) -> bool:
        cache_key = (scan_root, root)
        cached = self.state.local_module_cache.get(cache_key)
        if cached is None:
            cached = any(p.exists() for p in self.adapter.local_module_candidates(scan_root, root))
            self.state.local_module_cache[cache_key] = cached
        return cached

    def _match_binding(self, key: str) -> str | None:
        sep = self.adapter.separator
        for binding in self.declared.namespace_bindings:
            if key == binding.prefix or key.startswith(binding.prefix + sep):
                return binding.dependency_id
        return None


def _undeclared(dependency_id: str) -> DependencyDeclaration:
    # Lock files may bind namespaces of packages the manifest does not list
    # (transitive dependencies); those still resolve to the bound id.
    return DependencyDeclaration(canonical_id=dependency_id)
