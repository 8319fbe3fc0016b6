"""
Content snapshots: a JSON image of a host's content graph and keyed table.

A snapshot lets the pipeline run outside the host. Its layout is::

    {
      "owner": {"package_id": "...", "name": "...", "root_dir": "...",
                "package_id_player_facing": "..."},
      "default_language": {"folder_name": "English", "display_name": "English"},
      "target_languages": [{"folder_name": "French", "display_name": "Français"}],
      "supported_version": "1.5",
      "keyed": {"English": [{"key": "...", "text": "...", "source_path": "..."}]},
      "types": {
        "ThingDef": {
          "leaves": [{"tag": "...", "path": "...", "value": "..."}],
          "overrides": {"French": [{"path": "...", "text": "..."}]},
          "item_tags": {"<normalized item path>": "<tag>"}
        }
      }
    }

Leaves may set ``values`` instead of ``value`` for collections, plus the
flags ``translation_allowed``, ``full_list_translation_allowed``,
``owner_generated``, ``requires_translation`` and ``owner`` (package id,
defaulting to the snapshot owner).
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import jsonschema

from mod_translator.content_graph import (
    ContentGraph,
    KeyedEntry,
    KeyedOverride,
    KeyedTable,
    Language,
    LeafCandidate,
    Override,
    Owner,
)
from mod_translator.errors import SnapshotError
from mod_translator.export_layout import DEFAULT_SUPPORTED_VERSION
from mod_translator.path_normalizer import normalize_path

logger = logging.getLogger(__name__)

_LANGUAGE_SCHEMA = {
    "type": "object",
    "properties": {
        "folder_name": {"type": "string", "minLength": 1},
        "display_name": {"type": "string"}
    },
    "required": ["folder_name"]
}

SNAPSHOT_SCHEMA = {
    "type": "object",
    "properties": {
        "owner": {
            "type": "object",
            "properties": {
                "package_id": {"type": "string", "minLength": 1},
                "name": {"type": "string"},
                "root_dir": {"type": "string"},
                "package_id_player_facing": {"type": "string"}
            },
            "required": ["package_id", "root_dir"]
        },
        "default_language": _LANGUAGE_SCHEMA,
        "target_languages": {"type": "array", "items": _LANGUAGE_SCHEMA},
        "supported_version": {"type": "string"},
        "keyed": {
            "type": "object",
            "additionalProperties": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "key": {"type": "string"},
                        "text": {"type": ["string", "null"]},
                        "source_path": {"type": "string"},
                        "is_placeholder": {"type": "boolean"}
                    },
                    "required": ["key"]
                }
            }
        },
        "types": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "leaves": {"type": "array", "items": {"type": "object"}},
                    "overrides": {
                        "type": "object",
                        "additionalProperties": {"type": "array", "items": {"type": "object"}}
                    },
                    "item_tags": {"type": "object", "additionalProperties": {"type": "string"}}
                }
            }
        }
    },
    "required": ["owner", "default_language"]
}


def _language(data: Dict[str, Any]) -> Language:
    return Language(folder_name=data["folder_name"], display_name=data.get("display_name", ''))


def _find_language_key(mapping: Dict[str, Any], language: Language) -> Optional[str]:
    if language.folder_name in mapping:
        return language.folder_name
    wanted = language.folder_name.casefold()
    for key in mapping:
        if key.casefold() == wanted:
            return key
    return None


class InMemoryContentGraph(ContentGraph):
    """ContentGraph over the ``types`` section of a snapshot."""

    def __init__(self, types: Dict[str, Dict[str, Any]], default_owner_id: str = ''):
        self._types = types or {}
        self._default_owner_id = default_owner_id
        self._item_tags: Dict[str, str] = {}
        for type_data in self._types.values():
            for path, tag in (type_data.get("item_tags") or {}).items():
                self._item_tags[normalize_path(path)] = tag

    def structural_types(self) -> Sequence[str]:
        return sorted(self._types)

    def iter_leaves(self, type_name: str, owner: Owner) -> Iterable[LeafCandidate]:
        type_data = self._types.get(type_name) or {}
        wanted = owner.package_id.casefold()
        for raw in type_data.get("leaves") or []:
            leaf_owner = raw.get("owner") or self._default_owner_id
            if leaf_owner.casefold() != wanted:
                continue
            is_collection = "values" in raw
            yield LeafCandidate(
                suggested_tag=raw.get("tag", ''),
                normalized_path=normalize_path(raw.get("path") or raw.get("tag", '')),
                is_collection=is_collection,
                value=None if is_collection else raw.get("value"),
                values=list(raw.get("values") or []),
                translation_allowed=raw.get("translation_allowed", True),
                full_list_translation_allowed=raw.get("full_list_translation_allowed", False),
                owner_generated=raw.get("owner_generated", False),
                context=raw,
            )

    def requires_translation(self, leaf: LeafCandidate, value: Optional[str]) -> bool:
        if not leaf.translation_allowed or not value or not value.strip():
            return False
        raw = leaf.context if isinstance(leaf.context, dict) else {}
        return bool(raw.get("requires_translation", True))

    def iter_overrides(self, language: Language, type_name: str, owner: Owner) -> Iterable[Tuple[str, Override]]:
        overrides = (self._types.get(type_name) or {}).get("overrides") or {}
        language_key = _find_language_key(overrides, language)
        if language_key is None:
            return
        for raw in overrides[language_key]:
            yield raw.get("path", ''), Override(
                text=raw.get("text"),
                is_full_list=raw.get("is_full_list", False),
                is_placeholder=raw.get("is_placeholder", False),
                applied=raw.get("applied", False),
                replaced_text=raw.get("replaced_text"),
                replaced_list=raw.get("replaced_list"),
                full_list=raw.get("full_list"),
            )

    def suggest_item_tag(self, normalized_item_path: str) -> Optional[str]:
        return self._item_tags.get(normalized_item_path)


class InMemoryKeyedTable(KeyedTable):
    """KeyedTable over the ``keyed`` section of a snapshot."""

    def __init__(self, keyed: Dict[str, List[Dict[str, Any]]]):
        self._keyed = keyed or {}
        self._index_by_language: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _raw_entries(self, language: Language) -> List[Dict[str, Any]]:
        language_key = _find_language_key(self._keyed, language)
        return self._keyed[language_key] if language_key is not None else []

    def entries(self, language: Language) -> Iterable[KeyedEntry]:
        for raw in self._raw_entries(language):
            yield KeyedEntry(key=raw["key"], text=raw.get("text") or '', source_path=raw.get("source_path", ''))

    def _index(self, language: Language) -> Dict[str, Dict[str, Any]]:
        language_key = _find_language_key(self._keyed, language)
        if language_key is None:
            return {}
        index = self._index_by_language.get(language_key)
        if index is None:
            # First entry wins on repeated keys.
            index = {}
            for raw in self._keyed[language_key]:
                index.setdefault(raw["key"], raw)
            self._index_by_language[language_key] = index
        return index

    def lookup(self, language: Language, key: str) -> Optional[KeyedOverride]:
        raw = self._index(language).get(key)
        if raw is None:
            return None
        return KeyedOverride(text=raw.get("text") or '', is_placeholder=raw.get("is_placeholder", False))


@dataclass
class ContentSnapshot:
    owner: Owner
    default_language: Language
    target_languages: List[Language] = field(default_factory=list)
    supported_version: str = DEFAULT_SUPPORTED_VERSION
    content_graph: Optional[ContentGraph] = None
    keyed_table: Optional[KeyedTable] = None


def parse_snapshot(data: Dict[str, Any], base_dir: str = '') -> ContentSnapshot:
    """
    Build a ContentSnapshot from already-decoded JSON.

    Relative ``root_dir`` and ``source_path`` values are resolved against ``base_dir``.

    Raises:
        SnapshotError: If the data does not match the snapshot schema.
    """
    try:
        jsonschema.validate(instance=data, schema=SNAPSHOT_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise SnapshotError(f"Invalid content snapshot: {schema_exc.message}") from schema_exc

    owner_data = data["owner"]
    owner = Owner(
        package_id=owner_data["package_id"],
        name=owner_data.get("name") or owner_data["package_id"],
        root_dir=os.path.join(base_dir, owner_data["root_dir"]),
        package_id_player_facing=owner_data.get("package_id_player_facing", ''),
    )

    keyed = {}
    for language_name, entries in (data.get("keyed") or {}).items():
        keyed[language_name] = [
            dict(entry, source_path=os.path.join(base_dir, entry["source_path"]))
            if entry.get("source_path") else entry
            for entry in entries
        ]

    return ContentSnapshot(
        owner=owner,
        default_language=_language(data["default_language"]),
        target_languages=[_language(item) for item in data.get("target_languages") or []],
        supported_version=data.get("supported_version") or DEFAULT_SUPPORTED_VERSION,
        content_graph=InMemoryContentGraph(data.get("types") or {}, owner.package_id),
        keyed_table=InMemoryKeyedTable(keyed),
    )


def load_snapshot(file_path: str) -> ContentSnapshot:
    """
    Read a snapshot file from disk.

    Raises:
        SnapshotError: If the file is missing, unreadable, or malformed.
    """
    if not os.path.exists(file_path):
        raise SnapshotError(f"Content snapshot '{file_path}' not found.")
    try:
        with open(file_path, 'r', encoding='utf-8') as snapshot_file:
            data = json.load(snapshot_file)
    except json.JSONDecodeError as json_exc:
        raise SnapshotError(f"Content snapshot '{file_path}' is not valid JSON: {json_exc}") from json_exc
    except OSError as os_exc:
        raise SnapshotError(f"Could not read content snapshot '{file_path}': {os_exc}") from os_exc

    snapshot = parse_snapshot(data, base_dir=os.path.dirname(os.path.abspath(file_path)))
    logger.info(
        "Loaded content snapshot for '%s' with %d structural type(s).",
        snapshot.owner.public_id, len(snapshot.content_graph.structural_types())
    )
    return snapshot
