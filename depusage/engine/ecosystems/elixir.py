"""Elixir: mix.exs / mix.lock and ``alias``/``import``/``use``/``require``."""

from __future__ import annotations

import re
from pathlib import Path

from depusage.engine.ecosystems.base import COMMON_SKIP_DIRS, EcosystemAdapter, Resolve, line_column
from depusage.engine.models import (
    DependencyDeclaration,
    DependencySource,
    FileExtraction,
    ImportRecord,
    ManifestData,
)
from depusage.engine.normalize import camel_to_kebab, camel_to_snake, normalize
from depusage.report import Location

MIX_EXS = "mix.exs"
MIX_LOCK = "mix.lock"

_MODULE = r"[A-Z][A-Za-z0-9_]*(?:\.[A-Z][A-Za-z0-9_]*)*"
_DIRECTIVE_RE = re.compile(
    rf"(?m)^[ \t]*((alias|import|use|require)\s+({_MODULE})"
    rf"(?:\.\{{([^}}]*)\}})?"
    rf"(?:\s*,\s*as:\s*([A-Z][A-Za-z0-9_]*))?)"
)
_DEP_TUPLE_RE = re.compile(r"\{\s*:([a-zA-Z0-9_]+)\s*,([^{}]*)\}")
_APPS_PATH_RE = re.compile(r"""apps_path:\s*["']([^"']+)["']""")
_LOCK_KEY_RE = re.compile(r'"([a-z0-9_-]+)"\s*:')
_ONLY_RE = re.compile(r"\bonly:\s*(\[[^\]]*\]|:\w+)")
_DYNAMIC_RE = re.compile(
    r"\bapply\s*\(|\bModule\.concat\b|\bString\.to_(?:existing_)?atom\b"
    r"|\bCode\.eval_(?:string|quoted)\b|:erlang\.apply\b"
)

# Modules shipped with Elixir/OTP, normalized.
BUILTIN_ROOTS = frozenset(
    normalize(m)
    for m in (
        "Access Agent Application Atom Base Behaviour Bitwise Calendar Code Config Date DateTime "
        "DynamicSupervisor EEx Enum ExUnit Exception File Float Function GenEvent GenServer IEx "
        "IO Inspect Integer Kernel Keyword List Logger Macro Map MapSet Mix Module NaiveDateTime "
        "Node OptionParser PartitionSupervisor Path Port Process Protocol Range Record Regex "
        "Registry Stream String StringIO Supervisor System Task Time Tuple URI Version"
    ).split()
)


def parse_mix_exs(content: str, rel_path: str) -> ManifestData:
    apps_path = _APPS_PATH_RE.search(content)
    deps_at = content.find("defp deps")
    region = content[deps_at:] if deps_at >= 0 else content

    declarations = []
    seen: set[str] = set()
    for match in _DEP_TUPLE_RE.finditer(region):
        name = normalize(match.group(1))
        if not name or name == "elixir" or name in seen:
            continue
        seen.add(name)
        options = match.group(2)
        local = "path:" in options or re.search(r"in_umbrella:\s*true", options) is not None
        only = _ONLY_RE.search(options)
        dev = only is not None and ":prod" not in only.group(1)
        declarations.append(
            DependencyDeclaration(
                canonical_id=name,
                is_local_path=local,
                source=DependencySource.DEV if dev else DependencySource.DIRECT,
            )
        )

    members = [f"{apps_path.group(1).rstrip('/')}/*"] if apps_path else []
    return ManifestData(
        path=rel_path,
        has_package=apps_path is None,
        declarations=declarations,
        workspace_members=members,
    )


def parse_mix_lock(content: str) -> list[str]:
    return sorted({normalize(key) for key in _LOCK_KEY_RE.findall(content)} - {"", "elixir"})


class ElixirAdapter(EcosystemAdapter):
    id = "elixir"
    manifest_names = (MIX_EXS,)
    source_extensions = frozenset({".ex", ".exs"})
    separator = "."
    builtin_roots = BUILTIN_ROOTS
    skip_dirs = COMMON_SKIP_DIRS | {"_build", "deps", ".elixir_ls", "cover"}
    rank_declared = True

    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        rel = manifest.relative_to(repo_root).as_posix()
        data = parse_mix_exs(self.read(repo_root, manifest) or "", rel)
        if not data.declarations and data.has_package:
            lock = self.read(repo_root, package_dir / MIX_LOCK)
            if lock is not None:
                data.declarations = [DependencyDeclaration(canonical_id=n) for n in parse_mix_lock(lock)]
        return data

    def local_module_candidates(self, scan_root: Path, root: str) -> list[Path]:
        snake = camel_to_snake(root)
        return [scan_root / "lib" / f"{snake}.ex", scan_root / "lib" / snake]

    def heuristic_candidates(self, module_path: str) -> list[str]:
        parts = [p for p in module_path.split(".") if p]
        if not parts:
            return []
        candidates = [camel_to_kebab(parts[0])]
        if len(parts) > 1:
            candidates.append(camel_to_kebab(parts[0]) + "-" + camel_to_kebab(parts[1]))
        return candidates

    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        result = FileExtraction(dynamic=_DYNAMIC_RE.search(content) is not None)
        for match in _DIRECTIVE_RE.finditer(content):
            directive, base, group, alias = match.group(2, 3, 4, 5)
            line, column = line_column(content, match.start(1))
            location = Location(file=file_path, line=line, column=column)
            if directive == "use":
                result.macro = True

            if group is not None:
                modules = [f"{base}.{m.strip()}" for m in group.split(",") if m.strip()]
            else:
                modules = [base]

            grouped: set[str] = set()
            for module in modules:
                dependency = resolve(module)
                if not dependency:
                    continue
                # import/use inject functions and macros into scope, so no single
                # name proves the dependency is used.
                wildcard = directive in ("import", "use")
                local = alias if alias and group is None else module.rsplit(".", 1)[-1]
                result.imports.append(
                    ImportRecord(
                        dependency_id=dependency,
                        module_path=module,
                        exported_name=module,
                        local_binding_name=local,
                        location=location,
                        wildcard=wildcard,
                    )
                )
                if group is not None:
                    grouped.add(dependency)
            result.grouped.update(grouped)
        return result


ADAPTER = ElixirAdapter()
