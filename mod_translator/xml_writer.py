"""Write translated worksets out as LanguageData XML files."""
import logging
import os
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Tuple

from lxml import etree

from mod_translator.workset import Workset

logger = logging.getLogger(__name__)

LANGUAGES_FOLDER = "Languages"
KEYED_FOLDER = "Keyed"
STRUCTURED_FOLDER = "DefInjected"
KEYED_FILE_NAME = "Keyed.xml"
ROOT_ELEMENT = "LanguageData"

_INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass
class WriteResult:
    success: bool
    message: str = ''
    written_entry_count: int = 0
    written_file_count: int = 0


def sanitize_tag(tag: str) -> str:
    """Turn a unit tag into an element name: ``]`` is dropped and ``[`` becomes ``.``."""
    return (tag or '').replace(']', '').replace('[', '.').strip()


def sanitize_file_name_part(name: str) -> str:
    cleaned = _INVALID_FILE_NAME_CHARS.sub('_', (name or '').strip())
    return cleaned or '_'


def _build_document(entries: List[Tuple[str, str]], file_label: str) -> Tuple[bytes, int]:
    """
    Build a LanguageData document in memory.

    Entries whose tag is not a valid XML element name, whose sanitized tag was
    already written, or whose text cannot be stored in XML, are skipped with a
    warning.

    Returns:
        The serialized document and the number of entries it holds.
    """
    root = etree.Element(ROOT_ELEMENT)
    written = 0
    element_names = set()
    for tag, text in entries:
        element_name = sanitize_tag(tag)
        if element_name in element_names:
            logger.warning("Skipping duplicate tag '%s' in %s: '%s' already written", tag, file_label, element_name)
            continue
        try:
            element = etree.SubElement(root, element_name)
        except ValueError as exc:
            logger.warning("Skipping invalid tag '%s' in %s: %s", tag, file_label, exc)
            continue
        try:
            element.text = text
        except ValueError as exc:
            root.remove(element)
            logger.warning("Skipping entry '%s' in %s: %s", tag, file_label, exc)
            continue
        element_names.add(element_name)
        written += 1

    document = etree.tostring(root, pretty_print=True, xml_declaration=True, encoding="utf-8")
    return document, written


def _write_document(file_path: str, document: bytes) -> None:
    os.makedirs(os.path.dirname(file_path), exist_ok=True)
    with open(file_path, 'wb') as xml_file:
        xml_file.write(document)


def write_workset(output_root: str, workset: Workset) -> WriteResult:
    """
    Write every translated unit of ``workset`` below ``output_root``.

    Keyed units go to ``Languages/<lang>/Keyed/Keyed.xml``; structured units go
    to one ``Languages/<lang>/DefInjected/<Group>/<Group>.xml`` per group.
    Groups without a writable entry produce no file.

    Args:
        output_root: The export directory.
        workset: The workset to write.

    Returns:
        WriteResult with entry and file counts.
    """
    if not output_root or not output_root.strip():
        return WriteResult(False, "Output directory is empty.")
    if workset is None or not workset.language_folder or not workset.language_folder.strip():
        return WriteResult(False, "Language folder is empty.")

    language_root = os.path.join(output_root, LANGUAGES_FOLDER, workset.language_folder)
    written_entries = 0
    written_files = 0

    try:
        keyed_entries = sorted(
            (unit.tag, unit.translation) for unit in workset.keyed if unit.tag and unit.translation
        )
        if keyed_entries:
            document, count = _build_document(keyed_entries, KEYED_FILE_NAME)
            if count:
                _write_document(os.path.join(language_root, KEYED_FOLDER, KEYED_FILE_NAME), document)
                written_entries += count
                written_files += 1

        by_group: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
        for unit in workset.structured:
            if unit.tag and unit.translation and unit.group:
                by_group[unit.group].append((unit.tag, unit.translation))

        for group in sorted(by_group):
            group_name = sanitize_file_name_part(group)
            file_label = f"{group_name}.xml"
            document, count = _build_document(sorted(by_group[group]), file_label)
            if not count:
                continue
            _write_document(os.path.join(language_root, STRUCTURED_FOLDER, group_name, file_label), document)
            written_entries += count
            written_files += 1
    except OSError as exc:
        logger.error("Failed to write XML for '%s': %s", workset.language_folder, exc)
        return WriteResult(False, str(exc), written_entries, written_files)

    logger.info(
        "Wrote %d entr%s in %d file(s) for '%s'.",
        written_entries, 'y' if written_entries == 1 else 'ies', written_files, workset.language_folder
    )
    return WriteResult(True, "OK", written_entries, written_files)
