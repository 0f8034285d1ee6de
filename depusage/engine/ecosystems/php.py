"""PHP: composer.json / composer.lock and namespace ``use`` imports."""

from __future__ import annotations

import json
import re
from pathlib import Path

from depusage.engine.ecosystems.base import COMMON_SKIP_DIRS, EcosystemAdapter, Resolve, line_column
from depusage.engine.models import (
    DependencyDeclaration,
    DependencySource,
    FileExtraction,
    ImportRecord,
    ManifestData,
    NamespaceBinding,
)
from depusage.engine.normalize import camel_to_kebab, normalize
from depusage.exceptions import ManifestParseError, PathEscapeError
from depusage.report import Location

COMPOSER_JSON = "composer.json"
COMPOSER_LOCK = "composer.lock"

_USE_STMT_RE = re.compile(r"(?m)^[ \t]*(use\s+([^;]+);)")
_ALIAS_RE = re.compile(r"(?i)\s+as\s+")
_DYNAMIC_RE = re.compile(
    r"new\s+\$[A-Za-z_]"
    r"|\$[A-Za-z_][A-Za-z0-9_]*\s*::"
    r"|\b(?:class_exists|interface_exists|trait_exists|method_exists"
    r"|call_user_func|call_user_func_array)\s*\("
    r"|new\s+\\?ReflectionClass\b"
)


def namespace_key(value: str) -> str:
    """Lower-cased namespace without leading/trailing backslashes."""
    return value.strip().strip("\\").lower()


def is_pseudo_dependency(name: str) -> bool:
    return not name or name == "php" or name.startswith(("ext-", "lib-"))


def _load_json(content: str, rel_path: str) -> dict:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestParseError(rel_path, str(exc)) from exc
    if not isinstance(data, dict):
        raise ManifestParseError(rel_path, "expected a JSON object")
    return data


def _psr4_prefixes(section: object) -> list[str]:
    if not isinstance(section, dict):
        return []
    psr4 = section.get("psr-4", {})
    if not isinstance(psr4, dict):
        return []
    return [key for key in (namespace_key(ns) for ns in psr4) if key]


def parse_composer_manifest(content: str, rel_path: str) -> tuple[list[DependencyDeclaration], set[str]]:
    """Declarations (minus pseudo-dependencies) and the package's own PSR-4 prefixes."""
    data = _load_json(content, rel_path)
    declarations = []
    seen: set[str] = set()
    for section, source in (("require", DependencySource.DIRECT), ("require-dev", DependencySource.DEV)):
        table = data.get(section, {})
        if not isinstance(table, dict):
            continue
        for name in sorted(table):
            dep = normalize(name)
            if is_pseudo_dependency(dep) or dep in seen:
                continue
            seen.add(dep)
            declarations.append(DependencyDeclaration(canonical_id=dep, source=source))
    local_namespaces = set(_psr4_prefixes(data.get("autoload")))
    local_namespaces.update(_psr4_prefixes(data.get("autoload-dev")))
    return declarations, local_namespaces


def parse_composer_lock(content: str, rel_path: str) -> list[NamespaceBinding]:
    data = _load_json(content, rel_path)
    bindings = []
    for section in ("packages", "packages-dev"):
        packages = data.get(section) or []
        if not isinstance(packages, list):
            continue
        for package in packages:
            if not isinstance(package, dict):
                continue
            dep = normalize(package.get("name", ""))
            if not dep:
                continue
            for prefix in _psr4_prefixes(package.get("autoload")):
                bindings.append(NamespaceBinding(prefix=prefix, dependency_id=dep))
    return bindings


def _split_alias(value: str) -> tuple[str, str]:
    parts = _ALIAS_RE.split(value.strip(), maxsplit=1)
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip()
    return parts[0].strip(), ""


def _last_segment(module: str) -> str:
    return module.strip("\\").rsplit("\\", 1)[-1].strip()


def _parse_use_part(part: str, base: str) -> tuple[str, str] | None:
    """(module, local) for one ``use`` clause member, None when empty."""
    part = part.strip()
    lowered = part.lower()
    for keyword in ("function ", "const "):
        if lowered.startswith(keyword):
            part = part[len(keyword) :].strip()
            break
    module, local = _split_alias(part)
    if base:
        module = base + "\\" + module.strip("\\")
    module = module.strip().strip("\\")
    if not module:
        return None
    return module, local or _last_segment(module)


def parse_use_statement(statement: str) -> tuple[list[tuple[str, str]], bool]:
    """Expand one ``use`` statement into (module, local) pairs; flag braced groups."""
    statement = statement.strip()
    open_at = statement.find("{")
    close_at = statement.rfind("}")
    if 0 <= open_at < close_at:
        base = statement[:open_at].strip().strip("\\")
        lowered = base.lower()
        for keyword in ("function ", "const "):
            if lowered.startswith(keyword):
                base = base[len(keyword) :].strip()
                break
        parts = statement[open_at + 1 : close_at].split(",")
        return [p for p in (_parse_use_part(part, base) for part in parts) if p], True
    parts = statement.split(",")
    return [p for p in (_parse_use_part(part, "") for part in parts) if p], False


class PhpAdapter(EcosystemAdapter):
    id = "php"
    manifest_names = (COMPOSER_JSON,)
    source_extensions = frozenset({".php"})
    separator = "\\"
    skip_dirs = COMMON_SKIP_DIRS | {"vendor", ".turbo", "coverage", "tmp", "cache"}
    skip_nested_packages = True
    rank_declared = True

    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        rel = manifest.relative_to(repo_root).as_posix()
        content = self.read(repo_root, manifest) or ""
        declarations, local_namespaces = parse_composer_manifest(content, rel)
        data = ManifestData(path=rel, local_namespaces=local_namespaces)

        local_packages = self._path_repository_packages(repo_root, package_dir, content)
        data.declarations = [
            DependencyDeclaration(canonical_id=d.canonical_id, is_local_path=True, source=d.source)
            if d.canonical_id in local_packages
            else d
            for d in declarations
        ]

        lock_path = package_dir / COMPOSER_LOCK
        lock_rel = lock_path.relative_to(repo_root).as_posix()
        lock = self.read(repo_root, lock_path)
        if lock is None:
            data.warnings.append(
                f"{lock_rel} not found; namespace mappings fall back to vendor/package heuristics"
            )
        else:
            data.namespace_bindings = parse_composer_lock(lock, lock_rel)
        return data

    def _path_repository_packages(self, repo_root: Path, package_dir: Path, content: str) -> set[str]:
        """Package names served by ``{"type": "path"}`` repositories."""
        repositories = _load_json(content, COMPOSER_JSON).get("repositories", [])
        if isinstance(repositories, dict):
            repositories = list(repositories.values())
        names: set[str] = set()
        for repo in repositories if isinstance(repositories, list) else []:
            if not isinstance(repo, dict) or repo.get("type") != "path":
                continue
            url = repo.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            target = package_dir / url.strip() / COMPOSER_JSON
            try:
                nested = self.read(repo_root, target)
            except PathEscapeError:
                continue
            if nested is None:
                continue
            name = _load_json(nested, target.resolve().relative_to(repo_root).as_posix()).get("name")
            if isinstance(name, str) and name:
                names.add(normalize(name))
        return names

    def root_segment(self, module_path: str) -> str:
        return super().root_segment(module_path.strip().lstrip("\\"))

    def is_builtin(self, root: str, module_path: str) -> bool:
        # Un-namespaced names (Exception, DateTime, traits in the same file) live in
        # the global namespace and never belong to a Composer package.
        return "\\" not in module_path.strip().strip("\\")

    def heuristic_candidates(self, module_path: str) -> list[str]:
        parts = module_path.strip().strip("\\").split("\\")
        if len(parts) < 2:
            return []
        vendor = parts[0].strip().lower()
        name = camel_to_kebab(parts[1])
        if not vendor or not name:
            return []
        return [f"{vendor}/{name}"]

    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        result = FileExtraction(dynamic=_DYNAMIC_RE.search(content) is not None)
        for match in _USE_STMT_RE.finditer(content):
            line, column = line_column(content, match.start(1))
            pairs, grouped = parse_use_statement(match.group(2))
            grouped_deps: set[str] = set()
            for module, local in pairs:
                dependency = resolve(module)
                if not dependency:
                    continue
                result.imports.append(
                    ImportRecord(
                        dependency_id=dependency,
                        module_path=module,
                        exported_name=_last_segment(module) or local,
                        local_binding_name=local,
                        location=Location(file=file_path, line=line, column=column),
                    )
                )
                if grouped:
                    grouped_deps.add(dependency)
            result.grouped.update(grouped_deps)
        return result


ADAPTER = PhpAdapter()
