import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from mod_translator.app_config import AppConfig
from mod_translator.errors import BatchTranslationError
from mod_translator.llm_client import TranslationClient
from mod_translator.workset import PendingUnit, Workset, estimate_unit_chars

logger = logging.getLogger(__name__)

MAX_REPORTED_FAILURES = 3
MAX_FAILURE_LENGTH = 180


@dataclass
class BatchRequest:
    batch_no: int
    units: List[PendingUnit] = field(default_factory=list)

    @property
    def estimated_chars(self) -> int:
        return sum(estimate_unit_chars(unit) for unit in self.units)


@dataclass
class TranslateResult:
    success: bool
    message: str = ''
    updated_count: int = 0
    failed_batches: List[str] = field(default_factory=list)


def schedule_batches(
        pending: Sequence[PendingUnit],
        max_units_per_batch: int,
        max_chars_per_batch: int
) -> List[BatchRequest]:
    """
    Greedily pack pending units into batches.

    A batch is closed when the next unit would push it past either the unit
    ceiling or the character ceiling. A unit that is larger than the
    character ceiling on its own still gets a batch of its own.

    Args:
        pending: Units in the order they should be sent.
        max_units_per_batch: Maximum number of units per batch.
        max_chars_per_batch: Maximum summed character estimate per batch.

    Returns:
        Batches numbered from 1 in creation order.
    """
    max_units = max(1, max_units_per_batch)
    batches: List[BatchRequest] = []
    current: List[PendingUnit] = []
    current_chars = 0

    for unit in pending:
        unit_chars = estimate_unit_chars(unit)
        too_many = len(current) + 1 > max_units
        too_large = current_chars + unit_chars > max_chars_per_batch
        if current and (too_many or too_large):
            batches.append(BatchRequest(batch_no=len(batches) + 1, units=current))
            current = []
            current_chars = 0
        current.append(unit)
        current_chars += unit_chars

    if current:
        batches.append(BatchRequest(batch_no=len(batches) + 1, units=current))
    return batches


def build_batch_failure_message(failed_batches: List[str]) -> str:
    shown = [
        f"{error[:MAX_FAILURE_LENGTH]}..." if len(error) > MAX_FAILURE_LENGTH else error
        for error in failed_batches[:MAX_REPORTED_FAILURES]
    ]
    message = " | ".join(shown)
    if len(failed_batches) > MAX_REPORTED_FAILURES:
        message += f" (+{len(failed_batches) - MAX_REPORTED_FAILURES} more)"
    return f"Some translation batches failed after retries: {message}"


async def _run_batch(
        client: TranslationClient,
        target_language: str,
        batch: BatchRequest,
        glossary: Dict[str, str],
        retry_count: int
) -> Dict[str, str]:
    return await client.translate_batch(
        target_language, batch.units, glossary, retry_count, batch_no=batch.batch_no
    )


async def translate_workset(
        workset: Workset,
        target_language: str,
        glossary: Optional[Dict[str, str]],
        config: AppConfig,
        client: TranslationClient
) -> TranslateResult:
    """
    Translate every pending unit of a workset in concurrency-bounded waves.

    At most ``config.concurrency`` batches are in flight; each wave finishes
    before the next starts. Translations are written into the workset only
    when every batch succeeded.

    Args:
        workset: The workset to fill in place.
        target_language: Language name used in the prompt.
        glossary: Mandatory source -> target terms for this language.
        config: Validated configuration.
        client: The translation client.

    Returns:
        TranslateResult describing the outcome.
    """
    pending = workset.pending_units()
    if not pending:
        logger.info("No pending entries for '%s'.", workset.language_folder)
        return TranslateResult(success=True, message="No pending entries.")

    batches = schedule_batches(pending, config.batch_size, config.max_batch_chars)
    concurrency = max(1, config.concurrency)
    logger.info(
        "Translating %d unit(s) for '%s' in %d batch(es), %d at a time.",
        len(pending), workset.language_folder, len(batches), concurrency
    )

    translated_by_id: Dict[str, str] = {}
    failed_batches: List[str] = []

    try:
        with tqdm(total=len(batches), desc=f"Translating {workset.language_folder}", unit="batch") as progress:
            for wave_start in range(0, len(batches), concurrency):
                wave = batches[wave_start:wave_start + concurrency]
                results = await asyncio.gather(
                    *(_run_batch(client, target_language, batch, glossary or {}, config.retry_count)
                      for batch in wave),
                    return_exceptions=True
                )
                for batch, result in zip(wave, results):
                    if isinstance(result, BatchTranslationError):
                        failed_batches.append(str(result))
                    elif isinstance(result, BaseException):
                        logger.error("Unexpected error in batch#%d: %s", batch.batch_no, result)
                        failed_batches.append(f"batch#{batch.batch_no}: {result}")
                    else:
                        translated_by_id.update(result)
                progress.update(len(wave))
    except Exception as exc:
        logger.error("Translation of '%s' aborted: %s", workset.language_folder, exc, exc_info=True)
        return TranslateResult(success=False, message=str(exc))

    if failed_batches:
        message = build_batch_failure_message(failed_batches)
        logger.error("Discarding all translations for '%s': %s", workset.language_folder, message)
        return TranslateResult(success=False, message=message, failed_batches=failed_batches)

    updated_count = workset.apply_translations(pending, translated_by_id)
    logger.info("Applied %d translation(s) to '%s'.", updated_count, workset.language_folder)
    return TranslateResult(success=True, message="OK", updated_count=updated_count)
