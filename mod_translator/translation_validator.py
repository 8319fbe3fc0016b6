import json
import logging
import re
from collections import Counter
from typing import Dict, List, Sequence

import jsonschema

from mod_translator.errors import TranslationPayloadError, TranslationValidationError

logger = logging.getLogger(__name__)

# Shape every model response must have once the JSON object is extracted.
TRANSLATION_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "translations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "translation": {"type": ["string", "null"]}
                },
                "required": ["id", "translation"]
            }
        }
    },
    "required": ["translations"]
}

_PLACEHOLDER_REGEX = re.compile(r'\{([^{}]+)\}')


def extract_json_object(content: str) -> str:
    """
    Cut the outermost JSON object out of a model reply.

    Models sometimes wrap the object in prose or a markdown fence; everything
    before the first ``{`` and after the last ``}`` is dropped.
    """
    if not content:
        raise TranslationPayloadError("LLM response content is empty.", content)
    first = content.find('{')
    last = content.rfind('}')
    if first < 0 or last < first:
        raise TranslationPayloadError("LLM response does not contain a JSON object.", content)
    return content[first:last + 1]


def parse_translation_payload(content: str) -> List[Dict]:
    """
    Parse and schema-check a ``{"translations": [...]}`` reply.

    Raises:
        TranslationPayloadError: If the content is not valid JSON of the expected shape.
    """
    json_text = extract_json_object(content)
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError as json_exc:
        raise TranslationPayloadError(f"Invalid JSON in LLM response: {json_exc}", content) from json_exc

    try:
        jsonschema.validate(instance=payload, schema=TRANSLATION_RESPONSE_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise TranslationPayloadError(
            f"LLM response does not match the translation schema: {schema_exc.message}", content
        ) from schema_exc

    return payload["translations"]


def validate_translations(entries: List[Dict], requested_ids: Sequence[str]) -> Dict[str, str]:
    """
    Check a parsed reply against the ids that were requested.

    Unknown ids are logged and dropped; duplicate ids keep the last value.

    Args:
        entries: The ``translations`` list from the reply.
        requested_ids: Every id sent in the batch.

    Returns:
        Translation text keyed by id, covering exactly the requested ids.

    Raises:
        TranslationValidationError: If an id is missing or a translation is blank.
    """
    requested = set(requested_ids)
    translations: Dict[str, str] = {}
    id_counts = Counter()
    unknown_ids = []

    for entry in entries:
        entry_id = entry.get('id')
        if entry_id not in requested:
            unknown_ids.append(entry_id)
            continue
        id_counts[entry_id] += 1
        translations[entry_id] = entry.get('translation') or ''

    if unknown_ids:
        logger.warning("LLM response contained %d unknown id(s): %s", len(unknown_ids), unknown_ids[:10])
    duplicates = sorted(entry_id for entry_id, count in id_counts.items() if count > 1)
    if duplicates:
        logger.warning("LLM response repeated %d id(s); using the last value: %s", len(duplicates), duplicates[:10])

    missing = [entry_id for entry_id in requested_ids if entry_id not in translations]
    empty = [entry_id for entry_id, text in translations.items() if not text.strip()]
    if missing or empty:
        raise TranslationValidationError(
            f"Incomplete LLM translation payload: {len(missing)} missing id(s), {len(empty)} empty translation(s).",
            missing_count=len(missing),
            empty_count=len(empty),
        )
    return translations


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the multiset of ``{...}`` placeholders is identical between two strings.

    Reordering is allowed; repeating or dropping a placeholder is not.
    """
    base_placeholders = Counter(_PLACEHOLDER_REGEX.findall(base_string or ''))
    target_placeholders = Counter(_PLACEHOLDER_REGEX.findall(target_string or ''))
    return base_placeholders == target_placeholders
