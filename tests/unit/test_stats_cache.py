"""Unit tests for the stats cache."""
import pytest

from mod_translator.content_graph import Language, Owner
from mod_translator.extraction import extract
from mod_translator.snapshot import InMemoryContentGraph, InMemoryKeyedTable
from mod_translator.stats_cache import KeyedStats, StatsCache, StructuredStats
from tests.fakes import OWNER_ID


class CountingContentGraph(InMemoryContentGraph):

    def __init__(self, types):
        super().__init__(types, OWNER_ID)
        self.walks = 0
        self.fail = False

    def structural_types(self):
        if self.fail:
            raise RuntimeError("content graph unavailable")
        self.walks += 1
        return super().structural_types()


def _types(full_list_allowed=True):
    return {
        "ThingDef": {
            "leaves": [
                {"tag": "Steel.label", "path": "Steel/label", "value": "steel"},
                {"tag": "Steel.description", "path": "Steel/description", "value": "Strong."},
                {"tag": "Steel.empty", "path": "Steel/empty", "value": ""},
            ],
            "overrides": {"French": [{"path": "Steel.label", "text": "acier"}]},
        },
        "RulePackDef": {
            "leaves": [{"tag": "Names.rulesStrings", "path": "Names/rulesStrings",
                        "values": ["name->Bob", "name->Ann"],
                        "full_list_translation_allowed": full_list_allowed}],
            "overrides": {"French": [{"path": "Names.rulesStrings", "is_full_list": True,
                                      "full_list": ["nom->Bob", "nom->Ann"]}]},
        },
    }


@pytest.fixture
def keyed_table(keyed_source):
    return InMemoryKeyedTable({
        "English": [
            {"key": "Greeting", "text": "Hello", "source_path": keyed_source},
            {"key": "Farewell", "text": "Bye", "source_path": keyed_source},
            {"key": "Pending", "text": "Later", "source_path": keyed_source},
        ],
        "French": [
            {"key": "Greeting", "text": "Bonjour"},
            {"key": "Pending", "text": "Later", "is_placeholder": True},
        ],
    })


class TestStatsCache:

    def test_counts_match_extraction_rules(self, owner, english, french, keyed_table):
        cache = StatsCache(CountingContentGraph(_types()), keyed_table)

        structured, keyed = cache.get_or_build(owner, french, english)

        assert structured == StructuredStats(translatable_count=4, missing_count=1)
        assert keyed == KeyedStats(unique_key_count=3, missing_key_count=2)

    def test_disallowed_whole_list_override_leaves_elements_missing(self, owner, english, french, keyed_table):
        cache = StatsCache(CountingContentGraph(_types(full_list_allowed=False)), keyed_table)

        structured, _ = cache.get_or_build(owner, french, english)

        assert structured == StructuredStats(translatable_count=4, missing_count=3)

    def test_default_language_has_no_missing_keys(self, owner, english, keyed_table):
        cache = StatsCache(CountingContentGraph({}), keyed_table)

        _, keyed = cache.get_or_build(owner, Language("english"), english)

        assert keyed == KeyedStats(unique_key_count=3, missing_key_count=0)

    def test_results_are_cached_per_owner(self, owner, english, french, keyed_table):
        graph = CountingContentGraph(_types())
        cache = StatsCache(graph, keyed_table)

        first = cache.get_or_build(owner, french, english)
        second = cache.get_or_build(owner, french, english)

        assert first is second
        assert graph.walks == 1
        assert cache.cached_owner_ids() == [OWNER_ID]

    def test_language_change_clears_the_cache(self, owner, english, french, keyed_table):
        graph = CountingContentGraph(_types())
        cache = StatsCache(graph, keyed_table)
        cache.get_or_build(owner, french, english)

        cache.get_or_build(owner, Language("German"), english)
        cache.get_or_build(owner, french, english)

        assert graph.walks == 3

    def test_failure_returns_zeroes_and_keeps_other_owners(self, owner, english, french, keyed_table, mod_root):
        graph = CountingContentGraph(_types())
        cache = StatsCache(graph, keyed_table)
        cache.get_or_build(owner, french, english)

        graph.fail = True
        other = Owner(package_id="other.mod", name="Other", root_dir=mod_root)
        result = cache.get_or_build(other, french, english)

        assert result == (StructuredStats(), KeyedStats())
        assert cache.cached_owner_ids() == [OWNER_ID]

    def test_invalidate_forgets_everything(self, owner, english, french, keyed_table):
        cache = StatsCache(CountingContentGraph(_types()), keyed_table)
        cache.get_or_build(owner, french, english)

        cache.invalidate()

        assert cache.cached_owner_ids() == []

    def test_empty_keyed_override_counts_as_missing_like_extraction(self, owner, english, french, keyed_source):
        keyed_table = InMemoryKeyedTable({
            "English": [{"key": "Greeting", "text": "Hello", "source_path": keyed_source}],
            "French": [{"key": "Greeting", "text": ""}],
        })
        graph = InMemoryContentGraph({}, OWNER_ID)

        _, keyed = StatsCache(graph, keyed_table).get_or_build(owner, french, english)
        workset = extract(owner, [french], english, graph, keyed_table).worksets[0]

        assert keyed.missing_key_count == len(workset.pending_units()) == 1
