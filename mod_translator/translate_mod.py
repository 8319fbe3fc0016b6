import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from mod_translator.app_config import AppConfig, load_app_config, validate_config
from mod_translator.batch_scheduler import translate_workset
from mod_translator.content_graph import ContentGraph, KeyedTable, Language, Owner
from mod_translator.errors import ConfigurationError, TranslatorError
from mod_translator.export_layout import DEFAULT_SUPPORTED_VERSION, prepare_export_directory
from mod_translator.extraction import extract
from mod_translator.glossary_store import GlossaryStore
from mod_translator.llm_client import TranslationClient
from mod_translator.snapshot import load_snapshot
from mod_translator.xml_writer import write_workset

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL_FAILURE = "partial_failure"
STATUS_FAILURE = "failure"

MAX_DISPLAYED_FAILURES = 3
MAX_DISPLAYED_FAILURE_LENGTH = 160


@dataclass
class RunResult:
    status: str
    message: str = ''
    output_dir: Optional[str] = None
    failures: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == STATUS_SUCCESS


def build_failure_summary(failures: List[str]) -> str:
    top_failures = [
        f"{failure[:MAX_DISPLAYED_FAILURE_LENGTH]}..." if len(failure) > MAX_DISPLAYED_FAILURE_LENGTH else failure
        for failure in failures[:MAX_DISPLAYED_FAILURES]
    ]
    summary = " | ".join(top_failures)
    remaining = len(failures) - MAX_DISPLAYED_FAILURES
    if remaining > 0:
        summary += f" (+{remaining} more)"
    return summary


async def run_translation(
        owner: Owner,
        target_languages: Iterable[Language],
        default_language: Language,
        content_graph: ContentGraph,
        keyed_table: KeyedTable,
        config: AppConfig,
        glossary_store: Optional[GlossaryStore] = None,
        client: Optional[TranslationClient] = None,
        export_token: Optional[str] = None,
        supported_version: str = DEFAULT_SUPPORTED_VERSION
) -> RunResult:
    """
    Extract, translate and write back every requested language of ``owner``.

    Configuration problems fail the run before anything is extracted. Each
    target language is then handled on its own: a failed translation skips
    that language's write-back, and the remaining languages still run.

    Args:
        owner: The content package to translate.
        target_languages: Languages to produce.
        default_language: Source language of the keyed table.
        content_graph: The structural definitions collaborator.
        keyed_table: The keyed-string collaborator.
        config: Application configuration.
        glossary_store: Source of mandatory terms, if any.
        client: Translation client; built from ``config`` when omitted.
        export_token: Timestamp token for the export folder name.
        supported_version: Game version written to About.xml.

    Returns:
        RunResult with the overall status, the export directory and per-language failures.
    """
    if not config.dry_run:
        validation = validate_config(config)
        if not validation.success:
            logger.error("Translator configuration is invalid: %s", validation.message)
            return RunResult(STATUS_FAILURE, validation.message)

    export_result = extract(owner, target_languages, default_language, content_graph, keyed_table)
    if not export_result.success:
        return RunResult(STATUS_FAILURE, export_result.message or "Export failed.")

    worksets = [workset for workset in export_result.worksets if workset.language_folder]
    if not worksets:
        return RunResult(STATUS_FAILURE, "No worksets were generated.")

    try:
        output_dir = prepare_export_directory(
            owner, worksets, config.exports_root, export_token, supported_version
        )
    except OSError as exc:
        logger.error("Could not create the export directory: %s", exc)
        return RunResult(STATUS_FAILURE, f"Could not create the export directory: {exc}")

    if client is None and not config.dry_run:
        client = TranslationClient.from_config(config)

    failures: List[str] = []
    for workset in worksets:
        glossary = glossary_store.glossary_for(workset.language_folder) if glossary_store else {}

        if config.dry_run:
            logger.info(
                "Dry run: skipping translation of %d pending unit(s) for '%s'.",
                len(workset.pending_units()), workset.language_folder
            )
        else:
            translate_result = await translate_workset(
                workset, workset.display_language, glossary, config, client
            )
            if not translate_result.success:
                failures.append(f"{workset.language_folder}: {translate_result.message}")
                continue

        write_result = write_workset(output_dir, workset)
        if not write_result.success:
            failures.append(f"{workset.language_folder}/XML: {write_result.message}")

    if not failures:
        return RunResult(STATUS_SUCCESS, "Translation finished.", output_dir)

    summary = build_failure_summary(failures)
    status = STATUS_PARTIAL_FAILURE if len(failures) < len(worksets) else STATUS_FAILURE
    return RunResult(status, summary, output_dir, failures)


async def main() -> int:
    """
    Main function to orchestrate the translation process.

    Returns:
        The process exit code.
    """
    config = load_app_config()
    try:
        if not config.dry_run:
            validation = validate_config(config)
            if not validation.success:
                raise ConfigurationError(validation.message)
        snapshot = load_snapshot(config.snapshot_path)
    except TranslatorError as exc:
        logger.error("Cannot start translation: %s", exc)
        return 1

    glossary_store = GlossaryStore(config.glossary_file_path)
    target_languages = snapshot.target_languages
    if not target_languages:
        logger.error("The content snapshot lists no target languages.")
        return 1

    result = await run_translation(
        owner=snapshot.owner,
        target_languages=target_languages,
        default_language=snapshot.default_language,
        content_graph=snapshot.content_graph,
        keyed_table=snapshot.keyed_table,
        config=config,
        glossary_store=glossary_store,
        supported_version=snapshot.supported_version,
    )

    if result.success:
        logger.info("Translation finished. Output directory: %s", result.output_dir)
        return 0
    if result.output_dir:
        logger.error("Translation finished with failures: %s", result.message)
        logger.error("Output directory: %s", result.output_dir)
    else:
        logger.error("Translation failed: %s", result.message)
    return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except Exception as main_exc:
        logger.error("An unexpected error occurred during execution: %s", main_exc, exc_info=True)
        sys.exit(1)
