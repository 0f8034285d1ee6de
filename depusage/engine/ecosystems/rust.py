"""Rust: Cargo.toml manifests and ``use`` / ``extern crate`` imports."""

from __future__ import annotations

import re
import sys
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from depusage.engine.ecosystems.base import (
    COMMON_SKIP_DIRS,
    EcosystemAdapter,
    Resolve,
    first_content_column,
    line_column,
    strip_line_comment,
)
from depusage.engine.models import (
    DependencyDeclaration,
    DependencySource,
    FileExtraction,
    ImportRecord,
    ManifestData,
)
from depusage.engine.normalize import normalize
from depusage.exceptions import ManifestParseError
from depusage.report import Location

_DEP_SECTIONS = {
    "dependencies": DependencySource.DIRECT,
    "build-dependencies": DependencySource.DIRECT,
    "dev-dependencies": DependencySource.DEV,
}

_USE_STMT_RE = re.compile(r"(?ms)^[ \t]*((?:pub(?:\([^)]*\))?\s+)?use\s+(.+?);)")
_EXTERN_CRATE_RE = re.compile(
    r"^\s*extern\s+crate\s+([A-Za-z_][A-Za-z0-9_]*)(?:\s+as\s+([A-Za-z_][A-Za-z0-9_]*))?\s*;"
)
_MACRO_INVOKE_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*!\s*[({\[]")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")


# ── Cargo.toml ──────────────────────────────────────────────────────────


def _declaration(key: str, spec: object, source: DependencySource) -> DependencyDeclaration | None:
    alias = normalize(key)
    if not alias:
        return None
    canonical = alias
    local = False
    if isinstance(spec, dict):
        package = spec.get("package")
        if isinstance(package, str) and package.strip():
            canonical = normalize(package)
        local = "path" in spec
    aliases = frozenset({alias}) if alias != canonical else frozenset()
    return DependencyDeclaration(
        canonical_id=canonical, aliases=aliases, is_local_path=local, source=source
    )


def _dependency_tables(data: dict) -> list[tuple[dict, DependencySource]]:
    tables: list[tuple[dict, DependencySource]] = []
    for section, source in _DEP_SECTIONS.items():
        tables.append((data.get(section, {}), source))
    for target in data.get("target", {}).values():
        if isinstance(target, dict):
            for section, source in _DEP_SECTIONS.items():
                tables.append((target.get(section, {}), source))
    workspace = data.get("workspace", {})
    if isinstance(workspace, dict):
        tables.append((workspace.get("dependencies", {}), DependencySource.DIRECT))
    return [(t, s) for t, s in tables if isinstance(t, dict)]


def parse_cargo_manifest(content: str, rel_path: str) -> ManifestData:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(rel_path, str(exc)) from exc

    declarations = []
    for table, source in _dependency_tables(data):
        for key, spec in sorted(table.items()):
            decl = _declaration(key, spec, source)
            if decl is not None:
                declarations.append(decl)

    workspace = data.get("workspace", {})
    members = workspace.get("members", []) if isinstance(workspace, dict) else []
    return ManifestData(
        path=rel_path,
        has_package="package" in data,
        declarations=declarations,
        workspace_members=[m for m in members if isinstance(m, str)],
    )


# ── use clauses ─────────────────────────────────────────────────────────


def split_top_level(value: str, sep: str = ",") -> list[str]:
    """Split on *sep* outside of braces."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(value):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth = max(depth - 1, 0)
        elif ch == sep and depth == 0:
            parts.append(value[start:i].strip())
            start = i + 1
    parts.append(value[start:].strip())
    return parts


def _join_path(prefix: str, value: str) -> str:
    prefix, value = prefix.strip(), value.strip()
    if not prefix:
        joined = value
    elif not value:
        joined = prefix
    else:
        joined = f"{prefix}::{value}"
    return joined.removeprefix("::")


def _last_segment(path: str) -> str:
    return path.rsplit("::", 1)[-1].strip()


def _expand_use_part(part: str, prefix: str, out: list[tuple[str, str, str, bool]]) -> None:
    """Append (path, symbol, local, wildcard) entries for one use-tree node."""
    part = part.strip()
    if not part:
        return

    if part.startswith("{") and part.endswith("}"):
        for segment in split_top_level(part[1:-1]):
            _expand_use_part(segment, prefix, out)
        return

    brace = part.find("::{")
    if brace >= 0 and part.endswith("}"):
        nested = _join_path(prefix, part[:brace])
        for segment in split_top_level(part[brace + 3 : -1]):
            _expand_use_part(segment, nested, out)
        return

    local = ""
    alias_at = part.rfind(" as ")
    if alias_at > 0:
        local = part[alias_at + 4 :].strip()
        part = part[:alias_at].strip()

    wildcard = part == "*" or part.endswith("::*")
    if part == "*":
        part, prefix = prefix, ""
    elif wildcard:
        part = part[:-3].strip()

    full_path = _join_path(prefix, part)
    symbol = _last_segment(full_path)
    if symbol.lower() == "self":
        full_path = prefix.removeprefix("::")
        symbol = _last_segment(prefix)
    if local.lower() == "self":
        local = _last_segment(prefix)
    if wildcard:
        symbol = "*"
    out.append((full_path, symbol, local, wildcard))


def _strip_comments(clause: str) -> str:
    return _LINE_COMMENT_RE.sub("", _BLOCK_COMMENT_RE.sub(" ", clause))


def parse_use_clause(clause: str) -> list[tuple[str, str, str, bool]]:
    """Expand ``a::{b, c::d as e, *}`` into flat (path, symbol, local, wildcard) entries."""
    entries: list[tuple[str, str, str, bool]] = []
    for part in split_top_level(_strip_comments(clause)):
        _expand_use_part(part, "", entries)
    return entries


class RustAdapter(EcosystemAdapter):
    id = "rust"
    manifest_names = ("Cargo.toml",)
    source_extensions = frozenset({".rs"})
    separator = "::"
    builtin_roots = frozenset({"alloc", "core", "proc-macro", "std", "test"})
    self_markers = frozenset({"crate", "self", "super"})
    skip_dirs = COMMON_SKIP_DIRS | {"target", "vendor"}

    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        rel = manifest.relative_to(repo_root).as_posix()
        content = self.read(repo_root, manifest) or ""
        return parse_cargo_manifest(content, rel)

    def local_module_candidates(self, scan_root: Path, root: str) -> list[Path]:
        return [scan_root / "src" / f"{root}.rs", scan_root / "src" / root / "mod.rs"]

    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        result = FileExtraction(macro=_MACRO_INVOKE_RE.search(content) is not None)

        for index, line in enumerate(content.split("\n")):
            match = _EXTERN_CRATE_RE.match(strip_line_comment(line, "//"))
            if not match:
                continue
            crate = match.group(1)
            dependency = resolve(crate)
            if not dependency:
                continue
            result.imports.append(
                ImportRecord(
                    dependency_id=dependency,
                    module_path=crate,
                    exported_name=crate,
                    local_binding_name=match.group(2) or crate,
                    location=Location(
                        file=file_path, line=index + 1, column=first_content_column(line)
                    ),
                )
            )

        for match in _USE_STMT_RE.finditer(content):
            clause = match.group(2).strip()
            line, column = line_column(content, match.start(1))
            grouped: set[str] = set()
            for path, symbol, local, wildcard in parse_use_clause(clause):
                if not path:
                    continue
                dependency = resolve(path)
                if not dependency:
                    continue
                module = path.removeprefix("::")
                name = "*" if wildcard else (symbol or _last_segment(module))
                result.imports.append(
                    ImportRecord(
                        dependency_id=dependency,
                        module_path=module,
                        exported_name=name,
                        local_binding_name=local or name,
                        location=Location(file=file_path, line=line, column=column),
                        wildcard=wildcard,
                    )
                )
                if "{" in clause:
                    grouped.add(dependency)
            result.grouped.update(grouped)
        return result


ADAPTER = RustAdapter()
