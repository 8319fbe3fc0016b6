"""Unit tests for the path_normalizer module."""
import pytest

from mod_translator.path_normalizer import is_path_under_root, item_path, normalize_fs_path, normalize_path


class TestNormalizePath:

    @pytest.mark.parametrize("raw", [
        "ThingDef/Steel.comps[0].label",
        "ThingDef.Steel.comps.0.label",
        "ThingDef\\Steel\\comps\\0\\label",
        " ThingDef . Steel .comps[ 0 ]. label ",
        "ThingDef..Steel.comps.[0].label.",
    ])
    def test_equivalent_spellings_normalize_identically(self, raw):
        assert normalize_path(raw) == "ThingDef.Steel.comps.0.label"

    @pytest.mark.parametrize("raw", [
        "a/b[1]/c",
        "rulesStrings[12]",
        "  x..y  ",
        "...",
        "single",
        "a[b[c]]",
        "comps[[0]]",
    ])
    def test_is_idempotent(self, raw):
        once = normalize_path(raw)
        assert normalize_path(once) == once

    def test_nested_brackets_resolve_in_one_pass(self):
        assert normalize_path("a[b[c]]") == "a.b.c"
        assert normalize_path("comps[[0]]") == "comps.0"

    def test_empty_input_stays_empty(self):
        assert normalize_path("") == ""

    def test_separator_only_input_returns_stripped_input(self):
        assert normalize_path(" ... ") == "..."

    def test_item_path_appends_index(self):
        assert item_path("Names/rulesStrings", 3) == "Names.rulesStrings.3"


class TestFileSystemPaths:

    def test_normalize_fs_path_drops_trailing_slash(self):
        assert normalize_fs_path("/mods/Foo/") == "/mods/Foo"

    def test_file_inside_root(self):
        assert is_path_under_root("/mods/Foo/Languages/English/Keyed/a.xml", "/mods/Foo")

    def test_containment_is_case_insensitive(self):
        assert is_path_under_root("/MODS/foo/a.xml", "/mods/Foo")

    def test_root_itself_is_inside(self):
        assert is_path_under_root("/mods/Foo/", "/mods/Foo")

    def test_sibling_with_common_prefix_is_outside(self):
        assert not is_path_under_root("/mods/FooBar/a.xml", "/mods/Foo")

    def test_empty_values_are_outside(self):
        assert not is_path_under_root("", "/mods/Foo")
        assert not is_path_under_root("/mods/Foo/a.xml", "")
