"""
Translation Manager Module

Coordinates a translation job:
- LanguageProcessor runs one language's remaining files on a worker pool
- TranslationManager runs every language of a job and retires finished ledgers
"""

import json
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from langsync.ai.exceptions import ManifestError, TranslationError
from langsync.ai.service import AIService
from langsync.config import MANIFEST_FILE_NAME, ApiSettings, RunContext, load_config
from langsync.core.jobs import CommandType, JobService, TranslationJob
from langsync.language_codes import LanguageTable, get_language_folder_name
from langsync.logger import get_logger
from langsync.translation.documents import INFO_FILE_NAME, create_info_file, ensure_directory
from langsync.translation.manifest import FingerprintManifest
from langsync.translation.models import FileOutcome, FileStatus
from langsync.translation.processor import NodeTranslationService
from langsync.translation.progress import ProgressCallback, ProgressTracker
from langsync.translation.verifier import VerificationService

logger = get_logger(__name__)

CANCELLED_BEFORE_PROCESSING = "Cancelled before processing"
DEBUG_ISSUES_REPORTED = "Debug issues reported (see debug log)"


def root_cause_message(error: BaseException) -> str:
    """Message of the innermost cause; our own error types already carry the useful message."""
    while error.__cause__ is not None and not isinstance(error, TranslationError):
        error = error.__cause__
    return str(error) or type(error).__name__


def job_mode(job: TranslationJob) -> str:
    if job.is_manifest_generation_mode:
        return "manifest"
    if job.is_fix_mode:
        return "debug" if job.is_debug_mode else "fix"
    return "new"


class LanguageProcessor:
    """Processes all remaining files of one language within a job."""

    def __init__(
        self,
        context: RunContext,
        languages: LanguageTable,
        ai_service: AIService,
        job_service: JobService,
        always_create_info_file: bool = False,
    ):
        self.context = context
        self.languages = languages
        self.ai_service = ai_service
        self.api_settings: ApiSettings = ai_service.api_settings
        self.job_service = job_service
        self.always_create_info_file = always_create_info_file
        self.verification_service = VerificationService(
            context, NodeTranslationService(ai_service, debug_dir=context.debug_dir)
        )

    def get_target_language_path(self, formal_name: str) -> Path:
        return self.context.languages_path / get_language_folder_name(formal_name)

    def _create_info_file_if_needed(self, target_language_path: Path, formal_name: str,
                                    language_code: str, cancel_event: Optional[threading.Event]) -> None:
        info_file = target_language_path / INFO_FILE_NAME
        if info_file.exists() and not self.always_create_info_file:
            return
        try:
            native_name = self.ai_service.get_native_language_name(formal_name, cancel_event)
        except TranslationError as e:
            # Info.xml stays missing and is retried on the next run
            logger.warning(f"Could not get the native name of {formal_name}, {INFO_FILE_NAME} not written: {e}")
            return
        create_info_file(target_language_path, formal_name, language_code, native_name)

    def _worker_count(self, job: TranslationJob) -> int:
        if job.is_manifest_generation_mode or job.is_fix_mode:
            return os.cpu_count() or 1
        return self.api_settings.max_concurrent_requests

    def _process_file(
        self,
        job: TranslationJob,
        relative_path: str,
        target_language_path: Path,
        formal_name: str,
        manifest: FingerprintManifest,
        debug_data: Dict[str, List[str]],
        cancel_event: Optional[threading.Event],
        tracker: ProgressTracker,
    ) -> FileOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return FileOutcome(relative_path, FileStatus.FAILED, CANCELLED_BEFORE_PROCESSING)

        tracker.file_started(relative_path, phase="manifest" if job.is_manifest_generation_mode else "translating")

        def on_items(processed: int, total: int) -> None:
            tracker.items_processed(relative_path, processed, total)

        try:
            if job.is_manifest_generation_mode:
                self.verification_service.generate_manifest_for_file(
                    relative_path, target_language_path, manifest, cancel_event)
            elif job.is_fix_mode:
                self.verification_service.verify_and_fix_file(
                    relative_path, target_language_path, formal_name, manifest,
                    is_debug_mode=job.is_debug_mode, debug_data=debug_data,
                    cancel_event=cancel_event, progress_callback=on_items)
            else:
                self.verification_service.translate_new_file(
                    relative_path, target_language_path, formal_name, manifest,
                    cancel_event=cancel_event, progress_callback=on_items)
            outcome = FileOutcome(relative_path, FileStatus.SUCCESS)
        except Exception as e:
            logger.debug(f"{relative_path} failed", exc_info=True)
            outcome = FileOutcome(relative_path, FileStatus.FAILED, root_cause_message(e))

        tracker.file_finished(relative_path, failed=outcome.failed)
        return outcome

    def _save_debug_report(self, job: TranslationJob, language_code: str,
                           debug_data: Dict[str, List[str]]) -> Path:
        ensure_directory(self.context.debug_dir)
        report_file = self.context.debug_dir / f"debug_fix_report_{job.job_id}_{language_code}.json"
        with open(report_file, 'w', encoding='utf-8') as f:
            json.dump(dict(sorted(debug_data.items())), f, indent=2, ensure_ascii=False)
        logger.info(f"Debug report saved to: {report_file}")
        return report_file

    def _log_summary(self, formal_name: str, outcomes: List[FileOutcome]) -> None:
        success_count = sum(1 for o in outcomes if not o.failed)
        failures = [o for o in outcomes if o.failed]
        logger.info(f"{success_count} files processed successfully for {formal_name}.")
        if failures:
            logger.warning(f"{len(failures)} files failed for {formal_name}:")
            for outcome in failures:
                logger.warning(f"    {outcome.file}: {outcome.error}")

    def process_language(
        self,
        job: TranslationJob,
        language_code: str,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[FileOutcome]:
        """
        Run the job's remaining files for one language and persist the result.

        The language's ledger list is replaced with exactly the files that
        failed, then the ledger and the language manifest are saved. Debug
        runs save the ledger only.

        Returns:
            One FileOutcome per processed file (empty for unsupported codes
            or when nothing is left to do)
        """
        formal_name = self.languages.get_formal_name(language_code)
        if formal_name is None:
            logger.warning(f"Language code '{language_code}' is not supported, skipping.")
            return []

        target_language_path = self.get_target_language_path(formal_name)
        if not job.is_debug_mode:
            ensure_directory(target_language_path)
        manifest_path = target_language_path / MANIFEST_FILE_NAME
        files_to_process = list(job.failed_files.get(language_code, []))

        try:
            manifest = FingerprintManifest.load(manifest_path)
        except ManifestError as e:
            # Proceeding would overwrite the unreadable manifest, so the whole language waits
            logger.error(str(e))
            outcomes = [FileOutcome(f, FileStatus.FAILED, str(e), formal_name) for f in files_to_process]
            self._log_summary(formal_name, outcomes)
            return outcomes

        if not (job.is_debug_mode or job.is_manifest_generation_mode):
            self._create_info_file_if_needed(target_language_path, formal_name, language_code, cancel_event)

        if not files_to_process:
            logger.info(f"Language '{formal_name}' has no files to process. Skipping.")
            return []

        logger.info(f"--- Processing {len(files_to_process)} file(s) for {formal_name} ---")
        tracker = ProgressTracker(language_code, formal_name, len(files_to_process),
                                  mode=job_mode(job), callback=progress_callback)
        debug_data: Dict[str, List[str]] = {}

        with ThreadPoolExecutor(max_workers=self._worker_count(job)) as executor:
            futures = [
                executor.submit(self._process_file, job, relative_path, target_language_path, formal_name,
                                manifest, debug_data, cancel_event, tracker)
                for relative_path in files_to_process
            ]
            outcomes = [future.result() for future in futures]

        if job.is_debug_mode and debug_data:
            self._save_debug_report(job, language_code, debug_data)
            outcomes = [
                FileOutcome(o.file, FileStatus.FAILED, DEBUG_ISSUES_REPORTED) if o.file in debug_data else o
                for o in outcomes
            ]

        for outcome in outcomes:
            outcome.language = formal_name

        job.failed_files[language_code] = [o.file for o in outcomes if o.failed]
        self.job_service.save_job(job)
        # Debug runs report only; the languages root stays untouched
        if not job.is_debug_mode:
            manifest.save(manifest_path)

        self._log_summary(formal_name, outcomes)
        return outcomes


class TranslationManager:
    """
    Runs translation jobs end to end.

    Features:
    - Processes each target language of a job in turn
    - Persists the ledger after every language so runs can be resumed
    - Deletes the ledger once no file is left
    """

    def __init__(
        self,
        context: RunContext,
        config: Optional[Dict[str, Any]] = None,
        ai_service: Optional[AIService] = None,
        languages: Optional[LanguageTable] = None,
    ):
        self.context = context
        self.config = config if config is not None else load_config()
        self.languages = languages or LanguageTable.from_config(self.config)
        self.ai_service = ai_service or AIService(
            ApiSettings.from_config(self.config), self.config, debug_dir=context.debug_dir
        )
        self.job_service = JobService(context, self.languages)
        self.language_processor = LanguageProcessor(
            context,
            self.languages,
            self.ai_service,
            self.job_service,
            always_create_info_file=bool(self.config.get('always_create_info_file', False)),
        )

    def process_job(
        self,
        job: TranslationJob,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[FileOutcome]:
        """Run every language of job and return all file outcomes."""
        if job.is_fix_mode:
            logger.info("Running in Debug & Fix mode." if job.is_debug_mode else "Running in Sync & Fix mode.")

        outcomes: List[FileOutcome] = []
        for language_code in job.target_languages:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Job {job.job_id} cancelled before {language_code}")
                break
            outcomes.extend(
                self.language_processor.process_language(job, language_code, cancel_event, progress_callback)
            )

        self._log_overall_summary(job, outcomes)
        return outcomes

    def _log_overall_summary(self, job: TranslationJob, outcomes: List[FileOutcome]) -> None:
        if len(job.target_languages) <= 1:
            return
        total_fail = sum(1 for o in outcomes if o.failed)
        logger.info(
            f"Overall Job Summary: {len(outcomes) - total_fail} succeeded, {total_fail} failed, "
            f"{len(outcomes)} processed."
        )
        for outcome in outcomes:
            if outcome.failed:
                logger.warning(f"    [{outcome.language}] {outcome.file}: {outcome.error}")

    def run_job(
        self,
        job: TranslationJob,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[FileOutcome]:
        """Process job, then delete its ledger if complete or leave it resumable."""
        outcomes = self.process_job(job, cancel_event, progress_callback)
        if job.is_complete():
            self.job_service.delete_job(job)
            logger.info(f"Job {job.job_id} completed")
        else:
            logger.info(f"Job {job.job_id} has unfinished files and can be resumed")
        token_usage = self.ai_service.get_total_token_usage()
        logger.info(f"Token usage: {token_usage['prompt_tokens']} prompt, "
                    f"{token_usage['completion_tokens']} completion")
        return outcomes

    def resume_job(
        self,
        job_id: str,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[List[FileOutcome]]:
        """Continue a stored ledger; None when no such ledger exists."""
        job = self.job_service.load_job(job_id)
        if job is None:
            logger.warning(f"No ledger found for job {job_id}")
            return None
        logger.info(f"Resuming job '{job.job_id}' for languages: {', '.join(job.target_languages)}")
        return self.run_job(job, cancel_event, progress_callback)

    def run_command(
        self,
        command: CommandType,
        language_codes: Sequence[str] = (),
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[FileOutcome]:
        """
        Validate the run context, build the jobs for command and run them in order.

        Raises:
            ConfigurationError: paths missing or no valid languages
        """
        self.context.validate()
        outcomes: List[FileOutcome] = []
        for job in self.job_service.get_jobs_for_command(command, language_codes):
            if cancel_event is not None and cancel_event.is_set():
                break
            outcomes.extend(self.run_job(job, cancel_event, progress_callback))
        return outcomes
