"""Supported ecosystems and their adapters."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from depusage.engine.ecosystems import elixir, php, python, ruby, rust
from depusage.engine.ecosystems.base import EcosystemAdapter
from depusage.exceptions import UnknownEcosystemError


class Ecosystem(Enum):
    """Closed set of supported ecosystems. Each member carries one adapter."""

    RUST = ("rust", ("rs", "cargo"), rust.ADAPTER)
    PHP = ("php", ("php7", "php8"), php.ADAPTER)
    PYTHON = ("python", ("py",), python.ADAPTER)
    RUBY = ("ruby", ("rb",), ruby.ADAPTER)
    ELIXIR = ("elixir", ("ex", "mix"), elixir.ADAPTER)

    def __init__(self, ident: str, aliases: tuple[str, ...], adapter: EcosystemAdapter) -> None:
        self.ident = ident
        self.aliases = aliases
        self.adapter = adapter

    @classmethod
    def from_selector(cls, selector: str) -> Ecosystem:
        """Look up by id or alias, case-insensitively."""
        key = selector.strip().lower()
        for member in cls:
            if key == member.ident or key in member.aliases:
                return member
        raise UnknownEcosystemError(selector, [m.ident for m in cls])

    @classmethod
    def detect(cls, repo_root: Path) -> list[Ecosystem]:
        """Ecosystems whose manifest sits directly in *repo_root*."""
        return [m for m in cls if m.adapter.find_manifest(repo_root) is not None]
