"""Python: pyproject.toml / requirements files and ``import`` statements."""

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

# PEP 508 simplified: name followed by optional extras and version specifiers
_PEP508_RE = re.compile(
    r"^([A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?)"  # package name
    r"(\[[^\]]*\])?"  # optional extras [extra1,extra2]
    r"\s*"
    r"(.*)?$",  # version specifiers or "@ url"
)

_IMPORT_RE = re.compile(r"^\s*import\s+(.+)$")
_FROM_RE = re.compile(r"^\s*from\s+(\.*[A-Za-z_][A-Za-z0-9_.]*|\.+)\s+import\s+(.+)$")
_STATEMENT_START_RE = re.compile(r"^\s*(?:import|from)\s")
_DYNAMIC_RE = re.compile(r"\bimportlib\.import_module\s*\(|\b__import__\s*\(")

_EXTRA_REQUIREMENTS = ("requirements-dev.txt", "requirements-test.txt", "dev-requirements.txt")

# Import names whose distribution is published under a different name.
KNOWN_DISTRIBUTIONS = {
    "attr": "attrs",
    "bs4": "beautifulsoup4",
    "crypto": "pycryptodome",
    "cv2": "opencv-python",
    "dateutil": "python-dateutil",
    "docx": "python-docx",
    "dotenv": "python-dotenv",
    "fitz": "pymupdf",
    "git": "gitpython",
    "jose": "python-jose",
    "jwt": "pyjwt",
    "magic": "python-magic",
    "multipart": "python-multipart",
    "mysqldb": "mysqlclient",
    "openssl": "pyopenssl",
    "pil": "pillow",
    "serial": "pyserial",
    "skimage": "scikit-image",
    "sklearn": "scikit-learn",
    "yaml": "pyyaml",
    "zmq": "pyzmq",
}

STDLIB_ROOTS = frozenset(normalize(name) for name in sys.stdlib_module_names)


# ── manifests ───────────────────────────────────────────────────────────


def parse_requirement(raw: str) -> tuple[str, bool] | None:
    """(normalized name, is_local_path) for one PEP 508 string, None if unparsable."""
    line = raw.strip()
    marker_pos = line.find(";")
    if marker_pos != -1:
        line = line[:marker_pos].strip()
    m = _PEP508_RE.match(line)
    if not m:
        return None
    rest = (m.group(4) or "").strip()
    local = rest.startswith("@") and rest[1:].strip().startswith("file:")
    return normalize(m.group(1)), local


def _local_requirement_name(target: str) -> str:
    egg = re.search(r"#egg=([A-Za-z0-9._-]+)", target)
    if egg:
        return normalize(egg.group(1))
    return normalize(Path(target.removeprefix("file:").rstrip("/")).name)


def parse_requirements_file(content: str, source: DependencySource) -> list[DependencyDeclaration]:
    declarations = []
    for raw_line in content.splitlines():
        line = strip_line_comment(raw_line, " #").strip()
        if not line or line.startswith("#"):
            continue
        editable = line.startswith(("-e ", "--editable "))
        if editable:
            line = line.split(None, 1)[1].strip()
        elif line.startswith("-"):
            continue
        if line.startswith((".", "/", "file:")):
            name = _local_requirement_name(line)
            if name:
                declarations.append(
                    DependencyDeclaration(canonical_id=name, is_local_path=True, source=source)
                )
            continue
        if "://" in line and "@" not in line.split("://", 1)[0]:
            name = _local_requirement_name(line)
            if name:
                declarations.append(DependencyDeclaration(canonical_id=name, source=source))
            continue
        parsed = parse_requirement(line)
        if parsed is not None and parsed[0] != "python":
            declarations.append(
                DependencyDeclaration(canonical_id=parsed[0], is_local_path=parsed[1], source=source)
            )
    return declarations


def _poetry_declarations(tool: dict) -> list[DependencyDeclaration]:
    poetry = tool.get("poetry", {})
    if not isinstance(poetry, dict):
        return []
    tables = [(poetry.get("dependencies", {}), DependencySource.DIRECT)]
    tables.append((poetry.get("dev-dependencies", {}), DependencySource.DEV))
    for group in (poetry.get("group") or {}).values():
        if isinstance(group, dict):
            tables.append((group.get("dependencies", {}), DependencySource.DEV))
    declarations = []
    for table, source in tables:
        if not isinstance(table, dict):
            continue
        for name, spec in sorted(table.items()):
            dep = normalize(name)
            if dep and dep != "python":
                local = isinstance(spec, dict) and "path" in spec
                declarations.append(
                    DependencyDeclaration(canonical_id=dep, is_local_path=local, source=source)
                )
    return declarations


def parse_pyproject(content: str, rel_path: str) -> ManifestData:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(rel_path, str(exc)) from exc

    project = data.get("project", {})
    tool = data.get("tool", {})
    uv = tool.get("uv", {}) if isinstance(tool, dict) else {}

    entries: list[tuple[str, DependencySource]] = []
    entries += [(d, DependencySource.DIRECT) for d in project.get("dependencies", [])]
    for extra in (project.get("optional-dependencies") or {}).values():
        entries += [(d, DependencySource.DEV) for d in extra]
    for group in (data.get("dependency-groups") or {}).values():
        entries += [(d, DependencySource.DEV) for d in group]

    local_sources = {
        normalize(name)
        for name, spec in (uv.get("sources") or {}).items()
        if isinstance(spec, dict) and ("path" in spec or spec.get("workspace"))
    }

    declarations = []
    for raw, source in entries:
        if not isinstance(raw, str):  # {include-group = "..."} entries
            continue
        parsed = parse_requirement(raw)
        if parsed is None or parsed[0] == "python":
            continue
        name, local = parsed
        declarations.append(
            DependencyDeclaration(
                canonical_id=name, is_local_path=local or name in local_sources, source=source
            )
        )
    if isinstance(tool, dict):
        declarations += _poetry_declarations(tool)

    workspace = uv.get("workspace", {}) if isinstance(uv, dict) else {}
    members = workspace.get("members", []) if isinstance(workspace, dict) else []
    has_package = "project" in data or "poetry" in (tool if isinstance(tool, dict) else {})
    return ManifestData(
        path=rel_path,
        has_package=has_package,
        declarations=declarations,
        workspace_members=[m for m in members if isinstance(m, str)],
    )


# ── imports ─────────────────────────────────────────────────────────────


def _logical_lines(content: str):
    """Yield (line_no, column, text) per import statement, continuations joined.

    Statements sharing a line through ``;`` are yielded one by one.
    """
    lines = content.split("\n")
    i = 0
    while i < len(lines):
        start = i
        text = strip_line_comment(lines[i], "#").rstrip()
        if not _STATEMENT_START_RE.match(text):
            i += 1
            continue
        while i + 1 < len(lines) and (
            text.endswith("\\") or text.count("(") > text.count(")")
        ):
            i += 1
            text = text.removesuffix("\\") + " " + strip_line_comment(lines[i], "#").strip()

        raw = lines[start]
        offset = 0
        for statement in text.split(";"):
            found = raw.find(statement.strip(), offset) if statement.strip() else -1
            if found >= 0:
                offset = found + len(statement.strip())
            if _STATEMENT_START_RE.match(statement):
                column = found + 1 if found >= 0 else first_content_column(raw)
                yield start + 1, column, statement
        i += 1


def _split_names(value: str) -> list[str]:
    value = value.strip().removeprefix("(").removesuffix(")")
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_import_part(value: str) -> tuple[str, str]:
    pieces = value.split()
    if len(pieces) == 3 and pieces[1] == "as":
        return pieces[0], pieces[2]
    return (pieces[0] if pieces else ""), ""


class PythonAdapter(EcosystemAdapter):
    id = "python"
    manifest_names = ("pyproject.toml", "requirements.txt")
    source_extensions = frozenset({".py"})
    separator = "."
    builtin_roots = STDLIB_ROOTS
    skip_dirs = COMMON_SKIP_DIRS | {
        "__pycache__", ".venv", "venv", ".tox", ".nox", ".mypy_cache", ".pytest_cache", "site-packages",
    }

    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        rel = manifest.relative_to(repo_root).as_posix()
        content = self.read(repo_root, manifest) or ""
        if manifest.name == "pyproject.toml":
            data = parse_pyproject(content, rel)
            requirements = self.read(repo_root, package_dir / "requirements.txt")
            if requirements is not None:
                data.declarations += parse_requirements_file(requirements, DependencySource.DIRECT)
        else:
            data = ManifestData(
                path=rel,
                declarations=parse_requirements_file(content, DependencySource.DIRECT),
            )
        for name in _EXTRA_REQUIREMENTS:
            extra = self.read(repo_root, package_dir / name)
            if extra is not None:
                data.declarations += parse_requirements_file(extra, DependencySource.DEV)
        return data

    def root_segment(self, module_path: str) -> str:
        if module_path.strip().startswith("."):
            return "."
        return super().root_segment(module_path)

    def is_self_reference(self, root: str, module_path: str) -> bool:
        return module_path.strip().startswith(".")

    def local_module_candidates(self, scan_root: Path, root: str) -> list[Path]:
        return [
            scan_root / f"{root}.py",
            scan_root / root / "__init__.py",
            scan_root / "src" / f"{root}.py",
            scan_root / "src" / root / "__init__.py",
        ]

    def heuristic_candidates(self, module_path: str) -> list[str]:
        parts = [p for p in module_path.strip().split(".") if p]
        if not parts:
            return []
        root = normalize(parts[0])
        candidates = []
        if root in KNOWN_DISTRIBUTIONS:
            candidates.append(KNOWN_DISTRIBUTIONS[root])
        # Namespace packages: google.cloud.storage -> google-cloud-storage
        for end in range(len(parts), 1, -1):
            candidates.append("-".join(normalize(p) for p in parts[:end]))
        candidates += [f"py{root}", f"python-{root}", f"{root}-python"]
        return candidates

    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        result = FileExtraction(dynamic=_DYNAMIC_RE.search(content) is not None)
        for line_no, column, text in _logical_lines(content):
            location = Location(file=file_path, line=line_no, column=column)

            m = _IMPORT_RE.match(text)
            if m:
                for part in _split_names(m.group(1)):
                    module, local = _parse_import_part(part)
                    if not module:
                        continue
                    dependency = resolve(module)
                    if not dependency:
                        continue
                    result.imports.append(
                        ImportRecord(
                            dependency_id=dependency,
                            module_path=module,
                            exported_name=module,
                            local_binding_name=local or module.split(".")[0],
                            location=location,
                        )
                    )
                continue

            m = _FROM_RE.match(text)
            if not m:
                continue
            module = m.group(1)
            dependency = resolve(module)
            if not dependency:
                continue
            for part in _split_names(m.group(2)):
                symbol, local = _parse_import_part(part)
                if not symbol:
                    continue
                result.imports.append(
                    ImportRecord(
                        dependency_id=dependency,
                        module_path=module,
                        exported_name=symbol,
                        local_binding_name=local or symbol,
                        location=location,
                        wildcard=symbol == "*",
                    )
                )
        return result


ADAPTER = PythonAdapter()
