import logging
import os
import re
from datetime import datetime
from typing import Optional, Sequence

from lxml import etree

from mod_translator.content_graph import Owner
from mod_translator.workset import Workset
from mod_translator.xml_writer import KEYED_FOLDER, LANGUAGES_FOLDER, STRUCTURED_FOLDER

logger = logging.getLogger(__name__)

ABOUT_FOLDER = "About"
ABOUT_FILE_NAME = "About.xml"
EXPORT_FOLDER_PREFIX = "TranslatorExport"
EXPORT_AUTHOR = "Translator"
DEFAULT_SUPPORTED_VERSION = "1.5"
EXPORT_TOKEN_FORMAT = "%Y%m%d_%H%M%S"

_INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_INVALID_PACKAGE_ID_CHARS = re.compile(r'[^\w.]')


def new_export_token(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(EXPORT_TOKEN_FORMAT)


def sanitize_export_name(value: str) -> str:
    if not value:
        return "unknown"
    return _INVALID_FILE_NAME_CHARS.sub('_', value)


def sanitize_package_id_part(value: str) -> str:
    """Lowercase ``value`` and keep letters, digits, dots and underscores."""
    if not value:
        return "unknown"
    result = _INVALID_PACKAGE_ID_CHARS.sub('_', value.lower()).strip('_')
    return result or "unknown"


def build_export_folder_name(owner: Owner, export_token: str) -> str:
    return f"{EXPORT_FOLDER_PREFIX}_{sanitize_export_name(owner.public_id)}_{export_token}"


def build_generated_package_id(owner: Owner, export_token: str) -> str:
    compact_token = export_token.replace('_', '')
    return f"translator.{sanitize_package_id_part(owner.public_id)}.{compact_token}"


def write_about_file(owner: Owner, output_dir: str, export_token: str,
                     supported_version: str = DEFAULT_SUPPORTED_VERSION) -> str:
    """Write ``About/About.xml`` describing the export as a package that loads after its owner."""
    root = etree.Element("ModMetaData")
    etree.SubElement(root, "packageId").text = build_generated_package_id(owner, export_token)
    etree.SubElement(root, "name").text = f"{owner.name} Translation"
    etree.SubElement(root, "description").text = f"Generated by Auto Translator for {owner.name}."
    etree.SubElement(root, "author").text = EXPORT_AUTHOR
    supported_versions_node = etree.SubElement(root, "supportedVersions")
    etree.SubElement(supported_versions_node, "li").text = supported_version
    load_after_node = etree.SubElement(root, "loadAfter")
    etree.SubElement(load_after_node, "li").text = owner.public_id

    about_path = os.path.join(output_dir, ABOUT_FOLDER, ABOUT_FILE_NAME)
    os.makedirs(os.path.dirname(about_path), exist_ok=True)
    tree = etree.ElementTree(root)
    tree.write(about_path, pretty_print=True, xml_declaration=True, encoding="utf-8")
    return about_path


def prepare_export_directory(
        owner: Owner,
        worksets: Sequence[Workset],
        exports_root: str,
        export_token: Optional[str] = None,
        supported_version: str = DEFAULT_SUPPORTED_VERSION
) -> str:
    """
    Create a fresh export directory for ``owner`` with its About file and language folders.

    Args:
        owner: The package being translated.
        worksets: One workset per target language.
        exports_root: Directory the export folder is created in.
        export_token: Timestamp token; the current time when omitted.
        supported_version: Game version listed in About.xml.

    Returns:
        The absolute path of the export directory.
    """
    token = export_token or new_export_token()
    output_dir = os.path.abspath(os.path.join(exports_root, build_export_folder_name(owner, token)))

    os.makedirs(os.path.join(output_dir, LANGUAGES_FOLDER), exist_ok=True)
    for workset in worksets:
        if not workset.language_folder:
            continue
        language_root = os.path.join(output_dir, LANGUAGES_FOLDER, workset.language_folder)
        os.makedirs(os.path.join(language_root, KEYED_FOLDER), exist_ok=True)
        os.makedirs(os.path.join(language_root, STRUCTURED_FOLDER), exist_ok=True)

    write_about_file(owner, output_dir, token, supported_version)
    logger.info("Prepared export directory: %s", output_dir)
    return output_dir
