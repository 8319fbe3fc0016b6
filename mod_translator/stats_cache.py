"""Cached translation coverage counts per owner."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from mod_translator.content_graph import ContentGraph, KeyedTable, Language, LeafCandidate, Override, Owner
from mod_translator.extraction import (
    build_override_lookup,
    collect_owner_keyed_entries,
    element_override,
    existing_keyed_translation,
    has_scalar_translation,
    list_override,
    list_override_counts_as_translated,
)
from mod_translator.path_normalizer import item_path, normalize_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StructuredStats:
    translatable_count: int = 0
    missing_count: int = 0


@dataclass(frozen=True)
class KeyedStats:
    unique_key_count: int = 0
    missing_key_count: int = 0


def _count_collection(
        content_graph: ContentGraph,
        leaf: LeafCandidate,
        lookup: Dict[str, Override]
) -> Tuple[int, int]:
    collection_path = normalize_path(leaf.normalized_path)
    translatable_indexes = [
        index for index, value in enumerate(leaf.values or [])
        if content_graph.requires_translation(leaf, value or '')
    ]
    if not translatable_indexes:
        return 0, 0

    whole_list = list_override(lookup, collection_path)
    list_translated = list_override_counts_as_translated(
        whole_list, leaf.full_list_translation_allowed, leaf.owner_generated
    )

    missing = 0
    for index in translatable_indexes:
        item_override = element_override(lookup, item_path(collection_path, index))
        if item_override is not None and not item_override.is_placeholder:
            continue
        if list_translated and whole_list.full_list is not None and index < len(whole_list.full_list):
            continue
        missing += 1
    return len(translatable_indexes), missing


def build_structured_stats(owner: Owner, content_graph: ContentGraph, active_language: Language) -> StructuredStats:
    """Count translatable structured leaves and how many of them lack a translation."""
    translatable = 0
    missing = 0
    for type_name in content_graph.structural_types():
        try:
            lookup = build_override_lookup(content_graph, active_language, type_name, owner)
            type_translatable = 0
            type_missing = 0
            for leaf in content_graph.iter_leaves(type_name, owner):
                if not leaf.translation_allowed:
                    continue
                if leaf.is_collection:
                    leaf_translatable, leaf_missing = _count_collection(content_graph, leaf, lookup)
                    type_translatable += leaf_translatable
                    type_missing += leaf_missing
                    continue
                if not content_graph.requires_translation(leaf, leaf.value):
                    continue
                type_translatable += 1
                if not has_scalar_translation(lookup.get(normalize_path(leaf.normalized_path))):
                    type_missing += 1
        except Exception as exc:
            logger.warning("Stats traversal failed for %s: %s", type_name, exc, exc_info=True)
            continue
        translatable += type_translatable
        missing += type_missing
    return StructuredStats(translatable_count=translatable, missing_count=missing)


def build_keyed_stats(
        owner: Owner,
        keyed_table: KeyedTable,
        active_language: Language,
        default_language: Language
) -> KeyedStats:
    keys = [entry.key for entry in collect_owner_keyed_entries(owner, keyed_table, default_language)]
    if active_language.folder_name.casefold() == default_language.folder_name.casefold():
        return KeyedStats(unique_key_count=len(keys), missing_key_count=0)

    missing = sum(1 for key in keys if not existing_keyed_translation(keyed_table, active_language, key))
    return KeyedStats(unique_key_count=len(keys), missing_key_count=missing)


class StatsCache:
    """
    Per-owner coverage counts, valid for one (active, default) language pair.

    Switching either language clears the whole cache. A failure while
    building one owner's stats evicts only that owner and yields zeroes.
    """

    def __init__(self, content_graph: ContentGraph, keyed_table: KeyedTable):
        self._content_graph = content_graph
        self._keyed_table = keyed_table
        self._stats_by_owner: Dict[str, Tuple[StructuredStats, KeyedStats]] = {}
        self._language_cache_key: Optional[str] = None

    def _refresh_language_key(self, active_language: Language, default_language: Language) -> None:
        cache_key = f"{active_language.folder_name}|{default_language.folder_name}"
        if cache_key == self._language_cache_key:
            return
        self._stats_by_owner.clear()
        self._language_cache_key = cache_key

    def get_or_build(
            self,
            owner: Owner,
            active_language: Language,
            default_language: Language
    ) -> Tuple[StructuredStats, KeyedStats]:
        self._refresh_language_key(active_language, default_language)

        cached = self._stats_by_owner.get(owner.package_id)
        if cached is not None:
            return cached

        try:
            snapshot = (
                build_structured_stats(owner, self._content_graph, active_language),
                build_keyed_stats(owner, self._keyed_table, active_language, default_language),
            )
        except Exception as exc:
            self._stats_by_owner.pop(owner.package_id, None)
            logger.error("Failed to build stats for %s: %s", owner.package_id, exc, exc_info=True)
            return StructuredStats(), KeyedStats()

        self._stats_by_owner[owner.package_id] = snapshot
        return snapshot

    def invalidate(self) -> None:
        self._stats_by_owner.clear()
        self._language_cache_key = None

    def cached_owner_ids(self) -> List[str]:
        return sorted(self._stats_by_owner)
