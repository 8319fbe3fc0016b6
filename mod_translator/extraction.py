import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from mod_translator.content_graph import (
    ContentGraph,
    KeyedTable,
    Language,
    LeafCandidate,
    Override,
    Owner,
)
from mod_translator.path_normalizer import is_path_under_root, item_path, normalize_fs_path, normalize_path
from mod_translator.workset import KeyedUnit, StructuredUnit, Workset

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Outcome of an extraction run."""
    success: bool
    message: str = ''
    output_dir: Optional[str] = None
    worksets: List[Workset] = field(default_factory=list)


def list_override_counts_as_translated(
        list_override: Optional[Override],
        full_list_translation_allowed: bool,
        owner_generated: bool
) -> bool:
    """
    Decide whether a whole-list override already translates a collection.

    The list override only wins when the field permits whole-list translation,
    the override carries real text and the owning definition was authored
    rather than generated. In every other case each element stays pending
    unless it has its own override.
    """
    if list_override is None or not list_override.is_full_list:
        return False
    if not full_list_translation_allowed:
        return False
    if list_override.is_placeholder:
        return False
    return not owner_generated


def has_scalar_translation(override: Optional[Override]) -> bool:
    return override is not None and not override.is_full_list and not override.is_placeholder


def element_override(lookup: Dict[str, Override], element_path: str) -> Optional[Override]:
    """Return the element-level override for ``element_path``, ignoring whole-list records."""
    override = lookup.get(element_path)
    if override is None or override.is_full_list:
        return None
    return override


def list_override(lookup: Dict[str, Override], collection_path: str) -> Optional[Override]:
    override = lookup.get(collection_path)
    if override is None or not override.is_full_list:
        return None
    return override


def build_override_lookup(
        content_graph: ContentGraph,
        language: Language,
        type_name: str,
        owner: Owner
) -> Dict[str, Override]:
    """
    Index existing overrides of one structural type by normalized path.

    When two records normalize to the same path the first one is kept and
    the collision is logged.
    """
    lookup: Dict[str, Override] = {}
    for raw_path, override in content_graph.iter_overrides(language, type_name, owner):
        if override is None:
            continue
        normalized = normalize_path(raw_path)
        if not normalized:
            continue
        if normalized in lookup:
            logger.warning(
                "Override path collision for %s '%s' in %s; keeping the first record.",
                type_name, normalized, language.folder_name
            )
            continue
        lookup[normalized] = override
    return lookup


def collect_owner_keyed_entries(owner: Owner, keyed_table: KeyedTable, default_language: Language):
    """Yield default-language keyed entries whose source file lies inside the owner root, first key wins."""
    owner_root = normalize_fs_path(owner.root_dir)
    seen_keys: Set[str] = set()
    for entry in keyed_table.entries(default_language):
        if not entry.key or entry.key in seen_keys:
            continue
        if not entry.source_path or not is_path_under_root(entry.source_path, owner_root):
            continue
        seen_keys.add(entry.key)
        yield entry


def existing_keyed_translation(keyed_table: KeyedTable, language: Language, key: str) -> str:
    replacement = keyed_table.lookup(language, key)
    if replacement is None or replacement.is_placeholder:
        return ''
    return replacement.text or ''


def build_keyed_units(
        owner: Owner,
        keyed_table: KeyedTable,
        active_language: Language,
        default_language: Language
) -> List[KeyedUnit]:
    units = [
        KeyedUnit(
            tag=entry.key,
            original=entry.text or '',
            translation=existing_keyed_translation(keyed_table, active_language, entry.key),
        )
        for entry in collect_owner_keyed_entries(owner, keyed_table, default_language)
    ]
    units.sort(key=lambda unit: unit.tag)
    return units


def _scalar_unit(
        content_graph: ContentGraph,
        type_name: str,
        leaf: LeafCandidate,
        lookup: Dict[str, Override]
) -> Optional[StructuredUnit]:
    requires_translation = content_graph.requires_translation(leaf, leaf.value)
    override = lookup.get(normalize_path(leaf.normalized_path))
    has_translation = has_scalar_translation(override)
    if not requires_translation and not has_translation:
        return None

    if override is not None and override.applied:
        original = override.replaced_text or leaf.value or ''
    else:
        original = leaf.value or ''

    return StructuredUnit(
        tag=leaf.suggested_tag,
        original=original,
        translation=(override.text or '') if has_translation else '',
        group=type_name,
        is_collection_item=False,
    )


def _collection_units(
        content_graph: ContentGraph,
        type_name: str,
        leaf: LeafCandidate,
        lookup: Dict[str, Override]
) -> Iterable[Tuple[str, StructuredUnit]]:
    collection_path = normalize_path(leaf.normalized_path)
    whole_list = list_override(lookup, collection_path)
    list_translated = list_override_counts_as_translated(
        whole_list, leaf.full_list_translation_allowed, leaf.owner_generated
    )

    for index, raw_value in enumerate(leaf.values or []):
        value = raw_value or ''
        path = item_path(collection_path, index)
        tag = content_graph.suggest_item_tag(path) or f"{leaf.suggested_tag}.{index}"
        item_override = element_override(lookup, path)

        original = value
        if item_override is not None and item_override.applied and item_override.replaced_text:
            original = item_override.replaced_text
        elif whole_list is not None and whole_list.applied and whole_list.replaced_list is not None:
            replaced = whole_list.replaced_list[index] if index < len(whole_list.replaced_list) else None
            original = replaced if replaced is not None else value

        has_item_translation = item_override is not None and not item_override.is_placeholder
        has_list_translation = (
            list_translated
            and whole_list.full_list is not None
            and index < len(whole_list.full_list)
        )

        translation = ''
        if has_item_translation:
            translation = item_override.text or ''
        elif has_list_translation:
            translation = whole_list.full_list[index] or ''

        if not content_graph.requires_translation(leaf, value) and not (has_item_translation or has_list_translation):
            continue

        yield path, StructuredUnit(
            tag=tag,
            original=original,
            translation=translation,
            group=type_name,
            is_collection_item=True,
        )


def build_structured_units(
        owner: Owner,
        content_graph: ContentGraph,
        active_language: Language
) -> List[StructuredUnit]:
    """
    Walk every structural type and collect the owner's translatable leaves.

    A traversal failure in one type is logged and that type is skipped; units
    already produced by other types are kept.
    """
    units: List[StructuredUnit] = []

    for type_name in content_graph.structural_types():
        type_units: List[StructuredUnit] = []
        seen_paths: Set[str] = set()
        seen_tags: Set[str] = set()
        try:
            lookup = build_override_lookup(content_graph, active_language, type_name, owner)
            for leaf in content_graph.iter_leaves(type_name, owner):
                if not leaf.translation_allowed:
                    continue

                if leaf.is_collection:
                    candidates = list(_collection_units(content_graph, type_name, leaf, lookup))
                else:
                    unit = _scalar_unit(content_graph, type_name, leaf, lookup)
                    candidates = [(normalize_path(leaf.normalized_path), unit)] if unit else []

                for path, unit in candidates:
                    if not unit.tag:
                        logger.warning("Skipping %s leaf '%s' without a tag.", type_name, path)
                        continue
                    if path in seen_paths or unit.tag in seen_tags:
                        logger.warning(
                            "Duplicate %s entry '%s' (tag '%s'); keeping the first occurrence.",
                            type_name, path, unit.tag
                        )
                        continue
                    seen_paths.add(path)
                    seen_tags.add(unit.tag)
                    type_units.append(unit)
        except Exception as exc:
            logger.warning("Traversal failed for %s: %s", type_name, exc, exc_info=True)
            continue
        units.extend(type_units)

    units.sort(key=lambda unit: (unit.group, unit.tag))
    return units


def extract(
        owner: Owner,
        target_languages: Iterable[Language],
        default_language: Language,
        content_graph: ContentGraph,
        keyed_table: KeyedTable
) -> ExportResult:
    """
    Build one workset per requested target language.

    Args:
        owner: The content package to extract.
        target_languages: Requested languages; duplicates by folder name are dropped.
        default_language: The source language of the keyed table.
        content_graph: The structural definitions collaborator.
        keyed_table: The keyed-string collaborator.

    Returns:
        ExportResult with the worksets in request order.
    """
    languages = list(target_languages or [])
    if not languages:
        return ExportResult(success=False, message="No language selected.")

    exported_folders: Set[str] = set()
    worksets: List[Workset] = []
    try:
        for language in languages:
            if language is None or not language.folder_name:
                continue
            folder_key = language.folder_name.casefold()
            if folder_key in exported_folders:
                continue
            exported_folders.add(folder_key)

            logger.info("Extracting '%s' for language '%s'...", owner.public_id, language.folder_name)
            workset = Workset(
                language_folder=language.folder_name,
                language_name=language.name,
                keyed=build_keyed_units(owner, keyed_table, language, default_language),
                structured=build_structured_units(owner, content_graph, language),
            )
            logger.info(
                "Extracted %d keyed and %d structured unit(s) for '%s'.",
                len(workset.keyed), len(workset.structured), language.folder_name
            )
            worksets.append(workset)
    except Exception as exc:
        logger.error("Failed to extract translations for %s: %s", owner.public_id, exc, exc_info=True)
        return ExportResult(success=False, message=str(exc))

    if not worksets:
        return ExportResult(success=False, message="No valid language selected.")

    return ExportResult(success=True, message="OK", worksets=worksets)
