"""Interfaces the host's content graph and keyed-string table must implement."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Language:
    """A target or source language, identified by its folder name."""
    folder_name: str
    display_name: str = ''

    @property
    def name(self) -> str:
        return self.display_name or self.folder_name


@dataclass(frozen=True)
class Owner:
    """The content package whose text is being extracted."""
    package_id: str
    name: str
    root_dir: str
    package_id_player_facing: str = ''

    @property
    def public_id(self) -> str:
        return self.package_id_player_facing or self.package_id


@dataclass
class LeafCandidate:
    """One translatable field reachable from a definition belonging to the owner."""
    suggested_tag: str
    normalized_path: str
    is_collection: bool = False
    value: Optional[str] = None
    values: List[Optional[str]] = field(default_factory=list)
    translation_allowed: bool = True
    full_list_translation_allowed: bool = False
    owner_generated: bool = False
    # Opaque host handle (field info, definition) for requires_translation.
    context: object = None


@dataclass
class Override:
    """An existing translation record for a normalized path."""
    text: Optional[str] = None
    is_full_list: bool = False
    is_placeholder: bool = False
    applied: bool = False
    replaced_text: Optional[str] = None
    replaced_list: Optional[List[Optional[str]]] = None
    full_list: Optional[List[Optional[str]]] = None


@dataclass(frozen=True)
class KeyedEntry:
    key: str
    text: str
    source_path: str


@dataclass(frozen=True)
class KeyedOverride:
    text: str
    is_placeholder: bool = False


class ContentGraph(ABC):
    """Read-only view of the host's structural definitions."""

    @abstractmethod
    def structural_types(self) -> Sequence[str]:
        """Names of all structural types that have data."""

    @abstractmethod
    def iter_leaves(self, type_name: str, owner: Owner) -> Iterable[LeafCandidate]:
        """Yield every candidate leaf of ``type_name`` belonging to ``owner``."""

    @abstractmethod
    def requires_translation(self, leaf: LeafCandidate, value: Optional[str]) -> bool:
        """Host policy: does this value need a translation at all."""

    @abstractmethod
    def iter_overrides(self, language: Language, type_name: str, owner: Owner) -> Iterable[Tuple[str, Override]]:
        """Yield ``(path, override)`` for existing translations of ``type_name`` in ``language``."""

    def suggest_item_tag(self, normalized_item_path: str) -> Optional[str]:
        """Optionally suggest a stable tag for one collection element."""
        return None


class KeyedTable(ABC):
    """Read-only view of the host's flat keyed-string tables."""

    @abstractmethod
    def entries(self, language: Language) -> Iterable[KeyedEntry]:
        """Yield every keyed entry loaded for ``language``."""

    @abstractmethod
    def lookup(self, language: Language, key: str) -> Optional[KeyedOverride]:
        """Return the existing entry for ``key`` in ``language``, if any."""
