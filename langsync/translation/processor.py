"""
Translation Processing Module

Turns TranslationItems into final element content through the oracle:
- Flattening items into {key}_{i} entries and reassembling the answers
- Placeholder-count repair loop with the corrective prompt
- Incremental (chunked, parallel) processing for large files
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from langsync.ai.exceptions import FormattingError, OperationCancelledError
from langsync.logger import get_logger
from langsync.translation import placeholders
from langsync.translation.models import TranslationItem
from langsync.translation.utils import chunk_dict

logger = get_logger(__name__)

ItemsProgressCallback = Callable[[int, int], None]


def flat_key(key: str, index: int) -> str:
    return f"{key}_{index}"


def flatten_items(items: Dict[str, TranslationItem]) -> Tuple[Dict[str, str], Dict[str, List[str]]]:
    """
    Flatten items into one entry per segment.

    Returns:
        Tuple of (flat key -> sanitized text, flat key -> placeholders of that segment)
    """
    flat_texts: Dict[str, str] = {}
    placeholder_map: Dict[str, List[str]] = {}
    for key, item in items.items():
        for i, text in enumerate(item.texts_to_translate):
            flat_texts[flat_key(key, i)] = text
            placeholder_map[flat_key(key, i)] = item.placeholders[i]
    return flat_texts, placeholder_map


def reassemble(items: Dict[str, TranslationItem], translated: Dict[str, str]) -> Dict[str, str]:
    """Restore placeholders and rebuild each item's content; list items become concatenated <li> elements."""
    final_translations: Dict[str, str] = {}
    for key, item in items.items():
        if item.is_list:
            parts = []
            for i, found in enumerate(item.placeholders):
                text = translated.get(flat_key(key, i))
                if text is not None:
                    parts.append(f"<li>{placeholders.restore(text, found)}</li>")
            final_translations[key] = "".join(parts)
        else:
            text = translated.get(flat_key(key, 0), "")
            final_translations[key] = placeholders.restore(text, item.placeholders[0])
    return final_translations


class NodeTranslationService:
    """Drives the oracle for a collection of nodes from one source file."""

    def __init__(self, ai_service, debug_dir: Optional[Path] = None):
        self.ai_service = ai_service
        self.api_settings = ai_service.api_settings
        self.debug_dir = Path(debug_dir) if debug_dir else ai_service.debug_dir

    def get_translations_for_items(
        self,
        items: Dict[str, TranslationItem],
        language_name: str,
        source_file: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, str]:
        """
        Translate items and return node key -> final content.

        Raises:
            FormattingError: placeholder counts still wrong after every corrective round
            TranslationError subclasses from the oracle client
        """
        flat_texts, placeholder_map = flatten_items(items)
        translated = self.ai_service.call_translation_api(
            flat_texts, language_name, source_file, is_fix_attempt=False, cancel_event=cancel_event
        )
        self._fix_formatting_errors(translated, flat_texts, placeholder_map, language_name,
                                    source_file, cancel_event)
        return reassemble(items, translated)

    @staticmethod
    def _find_formatting_errors(translated: Dict[str, str], flat_texts: Dict[str, str],
                                placeholder_map: Dict[str, List[str]]) -> Dict[str, str]:
        """Entries that are missing or whose token count differs from the source, mapped to their source text."""
        errors = {}
        for key, source_text in flat_texts.items():
            text = translated.get(key)
            if text is None or placeholders.count_tokens(text) != len(placeholder_map[key]):
                errors[key] = source_text
        return errors

    def _fix_formatting_errors(
        self,
        translated: Dict[str, str],
        flat_texts: Dict[str, str],
        placeholder_map: Dict[str, List[str]],
        language_name: str,
        source_file: str,
        cancel_event: Optional[threading.Event],
    ) -> None:
        """Resubmit broken entries with the corrective prompt, updating translated in place."""
        max_retries = self.api_settings.max_formatting_retries
        file_name = Path(source_file).name
        items_to_fix = self._find_formatting_errors(translated, flat_texts, placeholder_map)

        attempt = 0
        while items_to_fix and attempt < max_retries:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Cancelled during formatting repair", code="cancelled")
            attempt += 1
            logger.warning(
                f"File {file_name} has {len(items_to_fix)} formatting errors. "
                f"Attempting fix {attempt} of {max_retries}..."
            )
            fixed = self.ai_service.call_translation_api(
                items_to_fix, language_name, source_file, is_fix_attempt=True, cancel_event=cancel_event
            )
            translated.update(fixed)
            items_to_fix = self._find_formatting_errors(translated, flat_texts, placeholder_map)

        if items_to_fix:
            error_msg = (f"After {max_retries} attempts, {len(items_to_fix)} items in {file_name} "
                         f"still have formatting errors.")
            logger.error(error_msg)
            debug_file = self._save_formatting_error_debug_file(source_file, items_to_fix, translated,
                                                                placeholder_map)
            raise FormattingError(
                f"{error_msg} Debug info has been saved to {debug_file}.",
                code="formatting_error",
                details={"debug_file": str(debug_file), "keys": sorted(items_to_fix)},
            )

    def _save_formatting_error_debug_file(
        self,
        source_file: str,
        items_to_fix: Dict[str, str],
        translated: Dict[str, str],
        placeholder_map: Dict[str, List[str]],
    ) -> Path:
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        debug_file = self.debug_dir / f"{Path(source_file).stem}_{timestamp}_formatting_error.json"

        debug_data = {}
        for key, source_text in items_to_fix.items():
            incorrect = translated.get(key)
            debug_data[key] = {
                "OriginalText": source_text,
                "IncorrectTranslation": incorrect,
                "ExpectedPlaceholders": placeholder_map[key],
                "ActualPlaceholdersInTranslation": placeholders.find_tokens(incorrect or ""),
            }
        debug_file.write_text(json.dumps(debug_data, ensure_ascii=False, indent=2), encoding='utf-8')
        return debug_file

    def process_incrementally(
        self,
        items: Dict[str, TranslationItem],
        language_name: str,
        source_file: str,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ItemsProgressCallback] = None,
    ) -> Dict[str, str]:
        """
        Translate a large item set in api_batch_size chunks on a pool of
        max_concurrent_requests workers. The first failing chunk fails the
        whole file; chunks not yet started are cancelled.
        """
        total = len(items)
        chunks = chunk_dict(items, self.api_settings.api_batch_size)
        results: Dict[str, str] = {}
        processed = 0
        lock = threading.Lock()

        def run_chunk(chunk: Dict[str, TranslationItem]) -> Dict[str, str]:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Cancelled before the next chunk", code="cancelled")
            return self.get_translations_for_items(chunk, language_name, source_file, cancel_event)

        logger.info(f"Incremental processing of {Path(source_file).name}: {total} items in {len(chunks)} chunks")
        with ThreadPoolExecutor(max_workers=self.api_settings.max_concurrent_requests) as executor:
            futures = {executor.submit(run_chunk, chunk): len(chunk) for chunk in chunks}
            try:
                for future in as_completed(futures):
                    chunk_result = future.result()
                    with lock:
                        results.update(chunk_result)
                        processed += futures[future]
                        current = processed
                    logger.debug(f"  {Path(source_file).name}: {current}/{total} items")
                    if progress_callback:
                        progress_callback(current, total)
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        return results

    def translate_items(
        self,
        items: Dict[str, TranslationItem],
        language_name: str,
        source_file: str,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ItemsProgressCallback] = None,
    ) -> Dict[str, str]:
        """Pick incremental processing above incremental_processing_threshold items, a single pass otherwise."""
        if not items:
            return {}
        if len(items) > self.api_settings.incremental_processing_threshold:
            return self.process_incrementally(items, language_name, source_file, cancel_event, progress_callback)
        translations = self.get_translations_for_items(items, language_name, source_file, cancel_event)
        if progress_callback:
            progress_callback(len(items), len(items))
        return translations
