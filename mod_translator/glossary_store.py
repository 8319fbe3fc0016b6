"""Flat source -> (language -> target) term table persisted as JSON."""
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GlossaryEntry:
    source: str
    target: str
    target_language: str


@dataclass
class GlossaryStoreResult:
    success: bool
    message: str = ''


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def normalize_entries(entries: Iterable[GlossaryEntry]) -> List[GlossaryEntry]:
    """Trim every field and drop entries missing a source, target or language."""
    normalized = []
    for entry in entries:
        if entry is None:
            continue
        cleaned = GlossaryEntry(
            source=_clean(entry.source),
            target=_clean(entry.target),
            target_language=_clean(entry.target_language),
        )
        if cleaned.source and cleaned.target and cleaned.target_language:
            normalized.append(cleaned)
    return normalized


def group_entries(entries: Iterable[GlossaryEntry]) -> List[Dict]:
    """
    Convert flat entries into the on-disk grouped layout.

    Duplicates of (source, language) collapse to the last one seen. Sources
    and languages are sorted ordinally so saved files diff cleanly.
    """
    latest: Dict[Tuple[str, str], GlossaryEntry] = {}
    for entry in normalize_entries(entries):
        latest[(entry.source, entry.target_language.casefold())] = entry

    by_source: Dict[str, List[GlossaryEntry]] = {}
    for entry in latest.values():
        by_source.setdefault(entry.source, []).append(entry)

    grouped = []
    for source in sorted(by_source):
        translations = sorted(by_source[source], key=lambda item: item.target_language)
        grouped.append({
            "source": source,
            "translations": [
                {"language": item.target_language, "target": item.target}
                for item in translations
            ],
        })
    return grouped


class GlossaryStore:
    """Loads and saves the glossary file; saves are serialized with a lock."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        self._save_lock = threading.Lock()

    def load(self) -> List[GlossaryEntry]:
        """
        Load all glossary entries from disk.

        Returns:
            A flat list of entries, empty when the file is missing or unreadable.
        """
        if not os.path.exists(self.file_path):
            logger.info("Glossary file '%s' not found; continuing without a glossary.", self.file_path)
            return []
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                content = f.read()
            if not content.strip():
                return []
            source_terms = json.loads(content)
        except json.JSONDecodeError as json_exc:
            logger.error("Error decoding JSON glossary file '%s': %s", self.file_path, json_exc)
            return []
        except OSError as io_exc:
            logger.error("Could not read glossary file '%s': %s", self.file_path, io_exc)
            return []

        if not isinstance(source_terms, list):
            logger.error("Glossary file '%s' must contain a JSON array.", self.file_path)
            return []

        raw_entries = []
        for source_term in source_terms:
            if not isinstance(source_term, dict):
                continue
            source = _clean(source_term.get('source'))
            for translation in source_term.get('translations') or []:
                if not isinstance(translation, dict):
                    continue
                raw_entries.append(GlossaryEntry(
                    source=source,
                    target=_clean(translation.get('target')),
                    target_language=_clean(translation.get('language')),
                ))
        return normalize_entries(raw_entries)

    def save(self, entries: Iterable[GlossaryEntry]) -> GlossaryStoreResult:
        grouped = group_entries(entries)
        with self._save_lock:
            try:
                directory = os.path.dirname(self.file_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                content = json.dumps(grouped, ensure_ascii=False, indent=2)
                with open(self.file_path, 'w', encoding='utf-8') as f:
                    f.write(content + '\n')
            except (OSError, TypeError, ValueError) as exc:
                logger.error("Failed to save glossary '%s': %s", self.file_path, exc)
                return GlossaryStoreResult(success=False, message=str(exc))
        logger.info("Saved %d glossary source term(s) to '%s'.", len(grouped), self.file_path)
        return GlossaryStoreResult(success=True, message="OK")

    def glossary_for(self, language_folder: str) -> Dict[str, str]:
        """Return ``{source: target}`` for one language, matched case-insensitively."""
        if not language_folder:
            return {}
        wanted = language_folder.strip().casefold()
        glossary: Dict[str, str] = {}
        for entry in self.load():
            if entry.target_language.casefold() == wanted:
                glossary[entry.source] = entry.target
        return glossary
