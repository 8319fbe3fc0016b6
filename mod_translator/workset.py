"""In-memory intermediate representation of one target language's translation units."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

KEYED_KIND = 'K'
STRUCTURED_KIND = 'S'

# Per-unit JSON framing in the request payload (id, field names, quotes).
UNIT_CHAR_OVERHEAD = 48
MIN_UNIT_CHARS = 64


@dataclass
class KeyedUnit:
    """A unit from the flat keyed-string table."""
    tag: str
    original: str
    translation: str = ''


@dataclass
class StructuredUnit:
    """A unit addressed by a path inside a structural definition."""
    tag: str
    original: str
    translation: str = ''
    group: str = ''
    is_collection_item: bool = False


@dataclass(frozen=True)
class PendingUnit:
    """
    Handle to an untranslated unit, addressed by kind and index into its workset.

    The ``id`` is what the translation API sees and echoes back, e.g. ``K:0``.
    """
    id: str
    kind: str
    index: int
    tag: str
    original: str
    group: Optional[str] = None
    is_collection_item: Optional[bool] = None


def estimate_unit_chars(unit: PendingUnit) -> int:
    """Rough request size of one unit, never below MIN_UNIT_CHARS."""
    size = len(unit.tag or '') + len(unit.original or '') + len(unit.group or '') + UNIT_CHAR_OVERHEAD
    return max(MIN_UNIT_CHARS, size)


@dataclass
class Workset:
    """All units of one export for one target language."""
    language_folder: str
    language_name: str = ''
    keyed: List[KeyedUnit] = field(default_factory=list)
    structured: List[StructuredUnit] = field(default_factory=list)

    @property
    def display_language(self) -> str:
        return self.language_name or self.language_folder

    def pending_units(self) -> List[PendingUnit]:
        """Collect every unit whose translation is still empty, keyed units first."""
        pending: List[PendingUnit] = []
        for index, unit in enumerate(self.keyed):
            if unit.translation:
                continue
            pending.append(PendingUnit(
                id=f"{KEYED_KIND}:{index}",
                kind=KEYED_KIND,
                index=index,
                tag=unit.tag,
                original=unit.original,
            ))

        for index, unit in enumerate(self.structured):
            if unit.translation:
                continue
            pending.append(PendingUnit(
                id=f"{STRUCTURED_KIND}:{index}",
                kind=STRUCTURED_KIND,
                index=index,
                tag=unit.tag,
                original=unit.original,
                group=unit.group,
                is_collection_item=unit.is_collection_item,
            ))
        return pending

    def apply_translations(self, pending: List[PendingUnit], translations_by_id: Dict[str, str]) -> int:
        """
        Write translations back into the units the pending handles point at.

        Args:
            pending: The handles that were sent for translation.
            translations_by_id: Translated text keyed by handle id.

        Returns:
            The number of units that received a non-empty translation.
        """
        updated_count = 0
        for unit in pending:
            translated = translations_by_id.get(unit.id)
            if not translated:
                continue
            if unit.kind == KEYED_KIND:
                self.keyed[unit.index].translation = translated
            else:
                self.structured[unit.index].translation = translated
            updated_count += 1
        return updated_count

    def translated_count(self) -> int:
        return sum(1 for unit in self.keyed if unit.translation) + \
            sum(1 for unit in self.structured if unit.translation)
