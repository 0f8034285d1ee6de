"""Tests for identifier normalization."""

from __future__ import annotations

import pytest

from depusage.engine.normalize import camel_to_kebab, camel_to_snake, normalize

SAMPLES = [
    "",
    "  ",
    "Serde_JSON",
    "serde-json",
    "google.cloud.storage",
    "a__b..c",
    "_leading",
    "trailing_",
    "Symfony/Console",
    "PhoenixLiveView",
    "  Mixed_Case.Name  ",
]


class TestNormalize:
    @pytest.mark.parametrize("raw", SAMPLES)
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once

    def test_separators_collapse(self):
        assert normalize("Serde_JSON") == "serde-json"
        assert normalize("google.cloud.storage") == "google-cloud-storage"
        assert normalize("a__b..c") == "a-b-c"

    def test_trims_whitespace(self):
        assert normalize("  Flask  ") == "flask"

    def test_empty_and_none(self):
        assert normalize("") == ""
        assert normalize(None) == ""
        assert normalize("   ") == ""

    def test_keeps_vendor_slash(self):
        assert normalize("Symfony/Console") == "symfony/console"


class TestCamelCase:
    def test_kebab(self):
        assert camel_to_kebab("PhoenixLiveView") == "phoenix-live-view"
        assert camel_to_kebab("HTTPClient") == "http-client"
        assert camel_to_kebab("Jason") == "jason"

    def test_snake(self):
        assert camel_to_snake("PhoenixLiveView") == "phoenix_live_view"
