"""
Job ledger

A job is the persisted list of files each target language still needs. The
ledger is written after every language pass so an interrupted or partly
failed run can be resumed without redoing finished files.

Ledger file: <state dir>/<jobId>.json
    {"jobId": ..., "targetLanguages": [...], "failedFiles": {lang: [path, ...]},
     "isFixMode": false, "isDebugMode": false, "isManifestGenerationMode": false}
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from langsync.ai.exceptions import ConfigurationError
from langsync.config import RunContext
from langsync.language_codes import LanguageTable
from langsync.logger import get_logger
from langsync.translation.utils import normalize_path, relative_key

logger = get_logger(__name__)


class CommandType(str, Enum):
    NEW = "new"
    ALL = "all"
    SYNC_ALL = "sync-all"
    GENERATE_MANIFEST = "generate-manifest"
    FIX = "fix"
    DEBUG_FIX = "debug-fix"
    RESUME = "resume"


@dataclass
class TranslationJob:
    """Persistent state of one run."""
    job_id: str
    target_languages: List[str] = field(default_factory=list)
    failed_files: Dict[str, List[str]] = field(default_factory=dict)
    is_fix_mode: bool = False
    is_debug_mode: bool = False
    is_manifest_generation_mode: bool = False

    @property
    def job_type(self) -> str:
        if self.is_manifest_generation_mode:
            return "GenerateManifest"
        if self.is_fix_mode:
            return "Debug-Fix" if self.is_debug_mode else "Fix"
        return "New"

    def is_complete(self) -> bool:
        return all(not files for files in self.failed_files.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "targetLanguages": list(self.target_languages),
            "failedFiles": {lang: list(files) for lang, files in self.failed_files.items()},
            "isFixMode": self.is_fix_mode,
            "isDebugMode": self.is_debug_mode,
            "isManifestGenerationMode": self.is_manifest_generation_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranslationJob":
        return cls(
            job_id=data["jobId"],
            target_languages=list(data.get("targetLanguages", [])),
            failed_files={lang: [normalize_path(f) for f in files]
                          for lang, files in (data.get("failedFiles") or {}).items()},
            is_fix_mode=bool(data.get("isFixMode", False)),
            is_debug_mode=bool(data.get("isDebugMode", False)),
            is_manifest_generation_mode=bool(data.get("isManifestGenerationMode", False)),
        )


def make_job_id(job_type: str, languages: Sequence[str], now: Optional[datetime] = None) -> str:
    """job_{type}_{lang|multi}_{yyyyMMdd_HHmmss_fff}"""
    now = now or datetime.now()
    lang_identifier = languages[0] if len(languages) == 1 else "multi"
    return f"job_{job_type}_{lang_identifier}_{now.strftime('%Y%m%d_%H%M%S')}_{now.microsecond // 1000:03d}"


class JobService:
    """Creates, persists and loads ledgers under the run context's state directory."""

    def __init__(self, context: RunContext, languages: LanguageTable):
        self.context = context
        self.languages = languages

    @property
    def job_directory(self) -> Path:
        return self.context.state_dir

    def _job_file(self, job_id: str) -> Path:
        return self.job_directory / f"{job_id}.json"

    def list_template_files(self) -> List[str]:
        """Template-relative POSIX paths of every *.xml below the template root, in ordinal order."""
        template_path = self.context.template_path
        return sorted(relative_key(p, template_path) for p in template_path.rglob("*.xml") if p.is_file())

    def create_new_job(
        self,
        language_codes: Iterable[str],
        is_fix_mode: bool = False,
        is_debug_mode: bool = False,
        is_manifest_generation_mode: bool = False,
    ) -> TranslationJob:
        """
        Create and persist a job covering every template file for each valid language.

        Raises:
            ConfigurationError: none of the codes is a supported language
        """
        valid_languages = []
        for code in language_codes:
            canonical = self.languages.normalize_code(code)
            if canonical is None:
                logger.warning(f"Language code '{code}' is not supported and will be skipped.")
                continue
            if canonical not in valid_languages:
                valid_languages.append(canonical)

        if not valid_languages:
            raise ConfigurationError("No valid language codes provided.", code="no_valid_languages")

        all_files = self.list_template_files()
        job = TranslationJob(
            job_id="",
            target_languages=valid_languages,
            failed_files={lang: list(all_files) for lang in valid_languages},
            is_fix_mode=is_fix_mode,
            is_debug_mode=is_debug_mode,
            is_manifest_generation_mode=is_manifest_generation_mode,
        )
        job.job_id = make_job_id(job.job_type, valid_languages)

        logger.info(
            f"Starting new {job.job_type} job '{job.job_id}' for languages: {', '.join(valid_languages)} "
            f"({len(all_files)} files)"
        )
        self.save_job(job)
        return job

    def get_jobs_for_command(self, command: CommandType, language_codes: Sequence[str] = ()) -> List[TranslationJob]:
        """
        Turn a command and its language codes into the jobs to run.

        - new: one job for the given languages
        - all: one job for every supported language
        - sync-all: one fix job per supported language
        - fix / debug-fix / generate-manifest: one job per language; "all" expands to every language
        - resume: the most recently written ledger

        Raises:
            ConfigurationError: missing language codes or none valid
        """
        command = CommandType(command)

        if command == CommandType.NEW:
            if not language_codes:
                raise ConfigurationError("The new command requires at least one language code.",
                                         code="languages_required")
            return [self.create_new_job(language_codes)]

        if command == CommandType.ALL:
            return [self.create_new_job(self.languages.get_language_codes())]

        if command == CommandType.SYNC_ALL:
            logger.info("--- Creating Bulk Sync Jobs ---")
            return self._create_per_language_jobs(self.languages.get_language_codes(), is_fix_mode=True)

        if command in (CommandType.FIX, CommandType.DEBUG_FIX, CommandType.GENERATE_MANIFEST):
            if not language_codes:
                raise ConfigurationError(
                    f"The {command.value} command requires at least one language code or 'all'.",
                    code="languages_required",
                )
            if len(language_codes) == 1 and language_codes[0].lower() == "all":
                language_codes = self.languages.get_language_codes()
            is_manifest = command == CommandType.GENERATE_MANIFEST
            return self._create_per_language_jobs(
                language_codes,
                is_fix_mode=not is_manifest,
                is_debug_mode=command == CommandType.DEBUG_FIX,
                is_manifest_generation_mode=is_manifest,
            )

        # resume
        job_ids = self.get_resumable_job_ids()
        if not job_ids:
            logger.info("No incomplete jobs found to resume.")
            return []
        latest = max(job_ids, key=lambda job_id: self._job_file(job_id).stat().st_mtime)
        logger.info(f"Resuming job '{latest}'")
        job = self.load_job(latest)
        return [job] if job else []

    def _create_per_language_jobs(self, language_codes: Iterable[str], **modes) -> List[TranslationJob]:
        jobs = []
        for code in language_codes:
            try:
                jobs.append(self.create_new_job([code], **modes))
            except ConfigurationError as e:
                logger.warning(f"Skipping '{code}': {e}")
        if not jobs:
            raise ConfigurationError("No valid language codes provided.", code="no_valid_languages")
        return jobs

    def save_job(self, job: TranslationJob) -> Path:
        self.job_directory.mkdir(parents=True, exist_ok=True)
        job_file = self._job_file(job.job_id)
        tmp_file = job_file.with_name(job_file.name + ".tmp")
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(job.to_dict(), f, indent=2, ensure_ascii=False)
        tmp_file.replace(job_file)
        return job_file

    def load_job(self, job_id: str) -> Optional[TranslationJob]:
        """Load a ledger, or None when it does not exist."""
        job_file = self._job_file(job_id)
        if not job_file.exists():
            return None
        with open(job_file, 'r', encoding='utf-8') as f:
            return TranslationJob.from_dict(json.load(f))

    def delete_job(self, job: TranslationJob) -> None:
        job_file = self._job_file(job.job_id)
        if job_file.exists():
            job_file.unlink()
            logger.debug(f"Deleted ledger {job_file}")

    def get_resumable_job_ids(self) -> List[str]:
        """Ids of every ledger on disk, sorted (which is chronological within a job type)."""
        if not self.job_directory.is_dir():
            return []
        return sorted(p.stem for p in self.job_directory.glob("job_*.json"))
