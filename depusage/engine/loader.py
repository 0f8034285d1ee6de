"""Merge per-manifest declarations into one lookup for an analysis."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

import structlog

from depusage.engine.models import (
    DeclaredDependencies,
    DependencyDeclaration,
    DependencySource,
    ManifestData,
    NamespaceBinding,
)

log = structlog.get_logger("depusage.engine")


def _merge_declaration(existing: DependencyDeclaration, new: DependencyDeclaration) -> DependencyDeclaration:
    source = (
        DependencySource.DIRECT
        if DependencySource.DIRECT in (existing.source, new.source)
        else DependencySource.DEV
    )
    return replace(
        existing,
        aliases=existing.aliases | new.aliases,
        is_local_path=existing.is_local_path and new.is_local_path,
        source=source,
    )


def _is_local(declared: DeclaredDependencies, dependency_id: str) -> bool:
    decl = declared.by_id.get(dependency_id)
    return decl is not None and decl.is_local_path


def _ambiguous(key: str, chosen: str) -> str:
    log.warning("manifest.ambiguous_alias", alias=key, chosen=chosen)
    return f"ambiguous dependency alias {key!r} maps to multiple packages; using {chosen!r}"


def merge_manifests(manifests: Iterable[ManifestData]) -> tuple[DeclaredDependencies, list[str]]:
    """Combine manifests in order; returns the merged declarations and warnings.

    A name or namespace prefix that maps to two different canonical ids keeps
    the first-seen registry binding. A local-path binding yields to a later
    registry one. Either conflict adds an ambiguous-alias warning.
    """
    declared = DeclaredDependencies()
    warnings: list[str] = []
    raw_bindings: list[NamespaceBinding] = []

    for manifest in manifests:
        warnings.extend(manifest.warnings)
        declared.local_namespaces.update(manifest.local_namespaces)
        raw_bindings.extend(manifest.namespace_bindings)

        for decl in manifest.declarations:
            current = declared.by_id.get(decl.canonical_id)
            declared.by_id[decl.canonical_id] = (
                decl if current is None else _merge_declaration(current, decl)
            )
            for key in sorted({decl.canonical_id} | decl.aliases):
                owner = declared.lookup.get(key)
                if owner is None or owner == decl.canonical_id:
                    declared.lookup[key] = decl.canonical_id
                    continue
                owner_decl = declared.by_id[owner]
                if owner_decl.is_local_path and not decl.is_local_path:
                    declared.lookup[key] = decl.canonical_id
                    chosen = decl.canonical_id
                else:
                    chosen = owner
                warnings.append(_ambiguous(key, chosen))

    bindings: dict[str, str] = {}
    for binding in raw_bindings:
        current = bindings.get(binding.prefix)
        if current is None or current == binding.dependency_id:
            bindings[binding.prefix] = binding.dependency_id
            continue
        if _is_local(declared, current) and not _is_local(declared, binding.dependency_id):
            bindings[binding.prefix] = binding.dependency_id
        warnings.append(_ambiguous(binding.prefix, bindings[binding.prefix]))

    # Longest prefix first so the resolver can stop at the first match.
    declared.namespace_bindings = [
        NamespaceBinding(prefix=prefix, dependency_id=dep)
        for prefix, dep in sorted(bindings.items(), key=lambda kv: (-len(kv[0]), kv[0]))
    ]
    return declared, warnings
