import asyncio
import functools
import json
import logging
import random
from typing import Dict, List, Optional, Sequence

import tiktoken
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from mod_translator.app_config import AppConfig, ConfigValidationResult, api_base_url, validate_config
from mod_translator.errors import (
    BatchTranslationError,
    TranslationPayloadError,
    TranslatorError,
)
from mod_translator.translation_validator import (
    check_placeholder_parity,
    parse_translation_payload,
    validate_translations,
)
from mod_translator.workset import PendingUnit, estimate_unit_chars

logger = logging.getLogger(__name__)

MIN_RESPONSE_TOKENS = 1024
MAX_RESPONSE_TOKENS = 16384

TRANSLATION_SYSTEM_PROMPT = """
You are a professional game localization translator. Translate each entry's "original" text into the target language.

**Instructions**:
- **Preserve placeholders exactly**: keep tokens such as {0}, {1}, {name}, [PAWN_nameDef], escaped newline markers (\\n) and markup tags unchanged.
- **Keep punctuation and formatting**: do not add quotes, brackets or explanations.
- The "tag" and "group" fields are context only; never translate them.
- **Output JSON only** with the shape {"translations":[{"id":"...","translation":"..."}]} and include every id exactly once.
"""

GLOSSARY_INSTRUCTION = """
- **Glossary is mandatory**: whenever a glossary "source" term appears in an original text (matched case-insensitively), you MUST use the glossary "target" term in the translation.
"""

REPAIR_SYSTEM_PROMPT = """
You repair malformed JSON. Reformat the text you are given into valid JSON with the shape {"translations":[{"id":"...","translation":"..."}]}.
Preserve every id and every translation exactly as written. Do not translate, add, drop or reorder entries. Output JSON only.
"""


@functools.lru_cache(maxsize=8)
def _load_encoding(model_name: str):
    """
    Resolve a tiktoken encoding for ``model_name``.

    ``encoding_for_model`` can try to download data; when that is not possible
    the function falls back to ``cl100k_base`` and finally to None.
    """
    try:
        return tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            return tiktoken.get_encoding("cl100k_base")
        except Exception:
            return None


def count_tokens(text: str, model_name: str = 'gpt-4o-mini') -> int:
    """Count tokens in ``text``; whitespace splitting is the last resort."""
    encoding = _load_encoding(model_name)
    if encoding is None:
        return len(text.split())
    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def response_token_budget(units: Sequence[PendingUnit]) -> int:
    """Size max_tokens from the batch's character estimate, within fixed bounds."""
    estimated_chars = sum(estimate_unit_chars(unit) for unit in units)
    return max(MIN_RESPONSE_TOKENS, min(MAX_RESPONSE_TOKENS, estimated_chars))


def select_glossary_rules(
        units: Sequence[PendingUnit],
        glossary: Dict[str, str],
        max_rules: int,
        max_tokens: int,
        model_name: str
) -> List[Dict[str, str]]:
    """
    Pick the glossary rules to send with one batch.

    Terms that occur in the batch's originals come first, then the rest, each
    group in source order, until the rule count or token budget runs out.
    """
    if not glossary or max_rules <= 0:
        return []

    haystack = '\n'.join(unit.original for unit in units).casefold()
    relevant = sorted(source for source in glossary if source.casefold() in haystack)
    others = sorted(source for source in glossary if source.casefold() not in haystack)

    rules = []
    used_tokens = 0
    for source in relevant + others:
        if len(rules) >= max_rules:
            break
        rule = {"source": source, "target": glossary[source]}
        rule_tokens = count_tokens(f'"{source}" => "{glossary[source]}"', model_name)
        if used_tokens + rule_tokens > max_tokens:
            break
        rules.append(rule)
        used_tokens += rule_tokens
    return rules


def build_translation_messages(
        target_language: str,
        units: Sequence[PendingUnit],
        glossary_rules: List[Dict[str, str]]
) -> list:
    system_prompt = TRANSLATION_SYSTEM_PROMPT
    if glossary_rules:
        system_prompt += GLOSSARY_INSTRUCTION

    payload = {
        "target_language": target_language,
        "glossary": glossary_rules,
        "entries": [
            {
                "id": unit.id,
                "tag": unit.tag,
                "original": unit.original,
                "group": unit.group,
                "isCollectionItem": unit.is_collection_item,
            }
            for unit in units
        ],
    }
    user_prompt = json.dumps(payload, ensure_ascii=False, indent=2)
    return [
        ChatCompletionSystemMessageParam(role="system", content=system_prompt.strip()),
        ChatCompletionUserMessageParam(role="user", content=user_prompt),
    ]


def _retry_after_seconds(api_exc: Optional[Exception]) -> Optional[float]:
    response = getattr(api_exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    retry_after_header = headers.get("Retry-After") if hasattr(headers, "get") else None
    if not retry_after_header:
        return None
    if retry_after_header.isdigit():
        return float(retry_after_header)
    if retry_after_header.endswith("ms"):
        return float(retry_after_header[:-2]) / 1000
    return None


async def _handle_retry(attempt: int, max_attempts: int, base_delay: float, label: str,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Sleep before the next attempt, with exponential backoff and jitter.

    Args:
        attempt: The 1-based attempt that just failed.
        max_attempts: Total attempts allowed.
        base_delay: Base delay in seconds.
        label: What is being retried, for the log line.
        api_exc: The exception from the API, used for Retry-After.

    Returns:
        True if another attempt should be made.
    """
    if attempt >= max_attempts:
        logger.error("%s failed after %d attempt(s).", label, max_attempts)
        return False

    try:
        delay = _retry_after_seconds(api_exc)
    except ValueError as exc:
        logger.warning("Failed to parse Retry-After header: %s. Falling back to exponential backoff.", exc)
        delay = None
    if delay is None:
        delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)

    logger.info("Retrying %s in %.2f seconds (attempt %d/%d)", label, delay, attempt + 1, max_attempts)
    if delay > 0:
        await asyncio.sleep(delay)
    return True


class TranslationClient:
    """Sends batches of pending units to a chat-completion endpoint."""

    def __init__(
            self,
            api_url: str,
            api_key: str,
            model_name: str,
            request_timeout: float = 90.0,
            rate_limit_per_minute: int = 60,
            retry_base_delay: float = 1.0,
            max_glossary_rules: int = 200,
            max_glossary_tokens: int = 2000,
            openai_client: Optional[AsyncOpenAI] = None
    ):
        self.model_name = model_name
        self.request_timeout = request_timeout
        self.retry_base_delay = retry_base_delay
        self.max_glossary_rules = max_glossary_rules
        self.max_glossary_tokens = max_glossary_tokens
        # SDK retries are disabled; attempts are counted by translate_batch.
        self.client = openai_client or AsyncOpenAI(
            api_key=api_key,
            base_url=api_base_url(api_url),
            max_retries=0,
            timeout=request_timeout,
        )
        self.rate_limiter = AsyncLimiter(max_rate=max(1, rate_limit_per_minute), time_period=60)
        self.request_count = 0

    @classmethod
    def from_config(cls, config: AppConfig, openai_client: Optional[AsyncOpenAI] = None) -> "TranslationClient":
        return cls(
            api_url=config.api_url,
            api_key=config.api_key,
            model_name=config.model_name,
            request_timeout=config.request_timeout,
            rate_limit_per_minute=config.rate_limit_per_minute,
            retry_base_delay=config.retry_base_delay,
            max_glossary_rules=config.max_glossary_rules,
            max_glossary_tokens=config.max_glossary_tokens,
            openai_client=openai_client,
        )

    async def _complete(self, messages: list, max_tokens: int) -> str:
        async with self.rate_limiter:
            self.request_count += 1
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=0,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
                timeout=self.request_timeout,
            )
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise TranslationPayloadError("LLM response content is empty.", content)
        return content.strip()

    async def _repair_payload(self, raw_content: str, max_tokens: int) -> List[Dict]:
        logger.warning("LLM response was not valid translation JSON; requesting a repair.")
        messages = [
            ChatCompletionSystemMessageParam(role="system", content=REPAIR_SYSTEM_PROMPT.strip()),
            ChatCompletionUserMessageParam(role="user", content=raw_content),
        ]
        repaired = await self._complete(messages, max_tokens)
        return parse_translation_payload(repaired)

    async def _request_batch(
            self,
            target_language: str,
            units: Sequence[PendingUnit],
            glossary: Dict[str, str]
    ) -> Dict[str, str]:
        glossary_rules = select_glossary_rules(
            units, glossary, self.max_glossary_rules, self.max_glossary_tokens, self.model_name
        )
        messages = build_translation_messages(target_language, units, glossary_rules)
        max_tokens = response_token_budget(units)

        content = await self._complete(messages, max_tokens)
        try:
            entries = parse_translation_payload(content)
        except TranslationPayloadError:
            entries = await self._repair_payload(content, max_tokens)

        translations = validate_translations(entries, [unit.id for unit in units])
        for unit in units:
            if not check_placeholder_parity(unit.original, translations[unit.id]):
                logger.warning("Placeholder mismatch in translation of '%s' (%s).", unit.tag, unit.id)
        return translations

    async def translate_batch(
            self,
            target_language: str,
            units: Sequence[PendingUnit],
            glossary: Optional[Dict[str, str]],
            retry_count: int,
            batch_no: int = 0
    ) -> Dict[str, str]:
        """
        Translate one batch, retrying every failure up to ``retry_count`` more times.

        Each attempt starts from scratch; nothing from a failed attempt is kept.

        Returns:
            Translated text keyed by unit id.

        Raises:
            BatchTranslationError: If every attempt failed.
        """
        max_attempts = max(0, retry_count) + 1
        label = f"batch#{batch_no}"
        last_exception: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            api_exc = None
            try:
                translations = await self._request_batch(target_language, units, glossary or {})
                logger.debug("Translated %s (%d unit(s)) on attempt %d.", label, len(units), attempt)
                return translations
            except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as exc:
                logger.error("API error in %s: %s - %s", label, exc.__class__.__name__, exc)
                last_exception = exc
                api_exc = exc
            except TranslatorError as exc:
                logger.error("Invalid response for %s: %s", label, exc)
                last_exception = exc
            except asyncio.TimeoutError as exc:
                logger.error("Request timed out for %s.", label)
                last_exception = exc

            if not await _handle_retry(attempt, max_attempts, self.retry_base_delay, label, api_exc):
                break

        message = str(last_exception) if last_exception else "Unknown batch translation error."
        raise BatchTranslationError(batch_no, message or last_exception.__class__.__name__)

    async def probe(self) -> None:
        """Send a minimal 1-token request; raises on any non-2xx response."""
        async with self.rate_limiter:
            self.request_count += 1
            await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    ChatCompletionSystemMessageParam(role="system", content="Health check."),
                    ChatCompletionUserMessageParam(role="user", content="Reply with OK."),
                ],
                temperature=0,
                max_tokens=1,
                timeout=self.request_timeout,
            )


async def validate_connection(
        config: AppConfig,
        openai_client: Optional[AsyncOpenAI] = None
) -> ConfigValidationResult:
    """Validate the configuration and then probe the endpoint with a live request."""
    result = validate_config(config)
    if not result.success:
        return result

    client = TranslationClient.from_config(config, openai_client=openai_client)
    try:
        await client.probe()
    except APIStatusError as status_exc:
        return ConfigValidationResult(
            False, f"Config validation request failed ({status_exc.status_code}): {status_exc.message}"
        )
    except (OpenAIError, asyncio.TimeoutError) as exc:
        return ConfigValidationResult(False, f"Config validation request failed: {exc}")
    return ConfigValidationResult(True, "OK")
