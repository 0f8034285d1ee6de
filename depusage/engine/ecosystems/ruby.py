"""Ruby: Gemfile / Gemfile.lock and ``require`` statements."""

from __future__ import annotations

import re
from pathlib import Path

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
    NamespaceBinding,
)
from depusage.engine.normalize import normalize
from depusage.report import Location

GEMFILE = "Gemfile"
GEMFILE_LOCK = "Gemfile.lock"

_GEM_RE = re.compile(r"""^\s*gem\s*\(?\s*["']([^"']+)["'](.*)$""")
_GROUP_RE = re.compile(r"^\s*group\s*\(?(.+?)\)?\s+do\b")
_BLOCK_RE = re.compile(r"^\s*(?:platforms?|install_if|source|git|path|github)\b.*\bdo\b")
_END_RE = re.compile(r"^\s*end\b")
_LOCK_SECTION_RE = re.compile(r"^([A-Z][A-Z ]*)$")
_LOCK_SPEC_RE = re.compile(r"^ {4}([A-Za-z0-9_.-]+) \(")
_LOCK_DEPENDENCY_RE = re.compile(r"^ {2}([A-Za-z0-9_.-]+)(?:!| |$)")
_REQUIRE_RE = re.compile(r"""^\s*(require|require_relative)\s*\(?\s*["']([^"']+)["']""")
_AUTOLOAD_RE = re.compile(r"""^\s*autoload\s*\(?\s*:\w+\s*,\s*["']([^"']+)["']""")
_DYNAMIC_RE = re.compile(
    r"\b(?:const_get|constantize|safe_constantize)\b"
    r"|(?m:^\s*require\b\s*\(?\s*[^\s\"'(])"
)

_DEV_GROUPS = ("development", "test")

# require paths that ship with Ruby itself.
STDLIB_PATHS = frozenset(
    normalize(p)
    for p in (
        "abbrev base64 benchmark bigdecimal cgi coverage csv date delegate digest drb english erb "
        "etc expect fcntl fiber fiddle fileutils find forwardable io/console io/nonblock io/wait "
        "ipaddr json logger matrix monitor mutex_m net/ftp net/http net/https net/imap net/pop "
        "net/protocol net/smtp nkf objspace observer open-uri open3 openssl optparse ostruct "
        "pathname pp prettyprint prime pstore psych pty racc rbconfig rdoc readline resolv ripper "
        "securerandom set shellwords singleton socket stringio strscan syslog tempfile thread time "
        "timeout tmpdir tsort un uri weakref yaml zlib rubygems bundler bundler/setup"
    ).split()
)

# Roots whose every sub-path is standard library.
STDLIB_ROOTS = frozenset(
    normalize(p)
    for p in "bigdecimal bundler cgi digest drb fiddle io json openssl psych racc rdoc ripper rubygems yaml".split()
)


def _is_dev_group(args: str) -> bool:
    return any(f":{g}" in args or f'"{g}"' in args for g in _DEV_GROUPS)


def parse_gemfile(content: str) -> list[DependencyDeclaration]:
    declarations = []
    # One entry per open block: True when the block is a development/test group.
    blocks: list[bool] = []
    for raw in content.splitlines():
        line = strip_line_comment(raw, "#")
        if not line.strip():
            continue
        group = _GROUP_RE.match(line)
        if group:
            blocks.append(_is_dev_group(group.group(1)))
            continue
        if _BLOCK_RE.match(line):
            blocks.append(False)
            continue
        if _END_RE.match(line):
            if blocks:
                blocks.pop()
            continue
        m = _GEM_RE.match(line)
        if not m:
            continue
        name = normalize(m.group(1))
        if not name or name == "bundler":
            continue
        options = m.group(2)
        dev = any(blocks) or bool(re.search(r"\bgroups?:\s*\[?[^\]]*(?::development|:test)", options))
        local = bool(re.search(r"(?:\bpath:|:path\s*=>)", options))
        declarations.append(
            DependencyDeclaration(
                canonical_id=name,
                is_local_path=local,
                source=DependencySource.DEV if dev else DependencySource.DIRECT,
            )
        )
    return declarations


def parse_gemfile_lock(content: str) -> tuple[set[str], set[str]]:
    """(gems served from PATH sources, names listed under DEPENDENCIES)."""
    path_gems: set[str] = set()
    dependencies: set[str] = set()
    section = ""
    for line in content.splitlines():
        header = _LOCK_SECTION_RE.match(line)
        if header:
            section = header.group(1).strip()
            continue
        if section == "PATH":
            spec = _LOCK_SPEC_RE.match(line)
            if spec:
                path_gems.add(normalize(spec.group(1)))
        elif section == "DEPENDENCIES":
            dep = _LOCK_DEPENDENCY_RE.match(line)
            if dep:
                dependencies.add(normalize(dep.group(1)))
    return path_gems, dependencies


class RubyAdapter(EcosystemAdapter):
    id = "ruby"
    manifest_names = (GEMFILE,)
    source_extensions = frozenset({".rb"})
    separator = "/"
    skip_dirs = COMMON_SKIP_DIRS | {"vendor", ".bundle", "tmp", "log", "coverage"}
    rank_declared = True

    def parse_manifest(self, repo_root: Path, package_dir: Path, manifest: Path) -> ManifestData:
        rel = manifest.relative_to(repo_root).as_posix()
        declarations = parse_gemfile(self.read(repo_root, manifest) or "")

        lock = self.read(repo_root, package_dir / GEMFILE_LOCK)
        if lock is not None:
            path_gems, locked = parse_gemfile_lock(lock)
            declared = {d.canonical_id for d in declarations}
            declarations = [
                DependencyDeclaration(canonical_id=d.canonical_id, is_local_path=True, source=d.source)
                if d.canonical_id in path_gems
                else d
                for d in declarations
            ]
            for name in sorted(locked - declared - {"bundler"}):
                declarations.append(
                    DependencyDeclaration(canonical_id=name, is_local_path=name in path_gems)
                )

        # Gems named a-b are usually required as "a/b".
        bindings = [
            NamespaceBinding(prefix=d.canonical_id.replace("-", "/"), dependency_id=d.canonical_id)
            for d in declarations
            if "-" in d.canonical_id
        ]
        return ManifestData(path=rel, declarations=declarations, namespace_bindings=bindings)

    def is_builtin(self, root: str, module_path: str) -> bool:
        return normalize(module_path) in STDLIB_PATHS or normalize(root) in STDLIB_ROOTS

    def local_module_candidates(self, scan_root: Path, root: str) -> list[Path]:
        return [scan_root / "lib" / f"{root}.rb", scan_root / "lib" / root, scan_root / f"{root}.rb"]

    def heuristic_candidates(self, module_path: str) -> list[str]:
        root = normalize(self.root_segment(module_path))
        candidates = [normalize(module_path).replace("/", "-")]
        if "-" in root:
            candidates.append(root.replace("-", ""))
        return candidates

    def extract_imports(self, content: str, file_path: str, resolve: Resolve) -> FileExtraction:
        result = FileExtraction(dynamic=_DYNAMIC_RE.search(content) is not None)
        for index, raw in enumerate(content.split("\n")):
            line = strip_line_comment(raw, "#")
            m = _REQUIRE_RE.match(line)
            if m:
                if m.group(1) == "require_relative":
                    continue
                module = m.group(2).strip()
            else:
                autoload = _AUTOLOAD_RE.match(line)
                if not autoload:
                    continue
                module = autoload.group(1).strip()
            dependency = resolve(module)
            if not dependency:
                continue
            name = module.rstrip("/").rsplit("/", 1)[-1] or dependency
            result.imports.append(
                ImportRecord(
                    dependency_id=dependency,
                    module_path=module,
                    exported_name=name,
                    local_binding_name=name,
                    location=Location(file=file_path, line=index + 1, column=first_content_column(raw)),
                    wildcard=True,
                )
            )
        return result


ADAPTER = RubyAdapter()
