"""Unit tests for the glossary store."""
import json

import pytest

from mod_translator.glossary_store import GlossaryEntry, GlossaryStore


@pytest.fixture
def store(tmp_path):
    return GlossaryStore(str(tmp_path / "data" / "glossary.json"))


class TestGlossarySave:

    def test_save_groups_sorts_and_keeps_last_duplicate(self, store):
        result = store.save([
            GlossaryEntry("Steel", "Stahl", "German"),
            GlossaryEntry(" Wood ", " Bois ", " French "),
            GlossaryEntry("Steel", "Acier", "French"),
            GlossaryEntry("Steel", "Eisen", "german"),
            GlossaryEntry("", "x", "French"),
            GlossaryEntry("Stone", "", "French"),
        ])

        assert result.success
        with open(store.file_path, encoding="utf-8") as f:
            saved = json.load(f)
        assert saved == [
            {"source": "Steel", "translations": [
                {"language": "French", "target": "Acier"},
                {"language": "german", "target": "Eisen"},
            ]},
            {"source": "Wood", "translations": [{"language": "French", "target": "Bois"}]},
        ]

    def test_save_and_load_round_trip(self, store):
        entries = [GlossaryEntry("Steel", "Acier", "French"), GlossaryEntry("Wood", "Holz", "German")]
        store.save(entries)

        assert sorted(store.load(), key=lambda entry: entry.source) == entries


class TestGlossaryLoad:

    def test_missing_file_yields_nothing(self, store):
        assert store.load() == []

    def test_corrupt_file_yields_nothing(self, store, tmp_path):
        (tmp_path / "data").mkdir()
        with open(store.file_path, "w", encoding="utf-8") as f:
            f.write("{not json")

        assert store.load() == []

    def test_entries_with_empty_fields_are_dropped(self, store, tmp_path):
        (tmp_path / "data").mkdir()
        with open(store.file_path, "w", encoding="utf-8") as f:
            json.dump([
                {"source": "Steel", "translations": [
                    {"language": "French", "target": "Acier"},
                    {"language": "", "target": "Stahl"},
                    {"language": "German", "target": " "},
                ]},
                {"source": "", "translations": [{"language": "French", "target": "Rien"}]},
            ], f)

        assert store.load() == [GlossaryEntry("Steel", "Acier", "French")]


class TestGlossaryFor:

    def test_language_match_is_case_insensitive(self, store):
        store.save([GlossaryEntry("Steel", "Acier", "French"), GlossaryEntry("Wood", "Holz", "German")])

        assert store.glossary_for("french") == {"Steel": "Acier"}

    def test_unknown_language_yields_empty_glossary(self, store):
        store.save([GlossaryEntry("Steel", "Acier", "French")])

        assert store.glossary_for("Japanese") == {}
        assert store.glossary_for("") == {}
