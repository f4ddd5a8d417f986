"""
Translation Progress Data Class

Contains the TranslationProgress dataclass handed to progress callbacks and
the ProgressTracker that file workers update concurrently.
"""

import threading
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional


@dataclass
class TranslationProgress:
    """Progress information for ongoing translation."""
    current_language: str
    current_language_name: str
    total_files: int
    completed_files: int
    failed_files: int = 0
    current_file: str = ""
    # Incremental (chunked) progress inside current_file
    processed_items: int = 0
    total_items: int = 0
    phase: str = "translating"       # "translating", "incremental", "fixing", "manifest", "completed"
    mode: str = ""                   # "new", "fix", "debug", "manifest"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


ProgressCallback = Callable[[TranslationProgress], None]


class ProgressTracker:
    """Thread-safe counters for one language pass, forwarded to an optional callback."""

    def __init__(self, language_code: str, language_name: str, total_files: int,
                 mode: str = "", callback: Optional[ProgressCallback] = None):
        self._lock = threading.Lock()
        self._callback = callback
        self._progress = TranslationProgress(
            current_language=language_code,
            current_language_name=language_name,
            total_files=total_files,
            completed_files=0,
            mode=mode,
        )

    def _emit(self, progress: TranslationProgress) -> None:
        if self._callback:
            self._callback(progress)

    def file_started(self, file: str, phase: str = "translating") -> None:
        with self._lock:
            self._progress.current_file = file
            self._progress.phase = phase
            self._progress.processed_items = 0
            self._progress.total_items = 0
            snapshot = TranslationProgress(**self._progress.to_dict())
        self._emit(snapshot)

    def items_processed(self, file: str, processed: int, total: int) -> None:
        with self._lock:
            self._progress.current_file = file
            self._progress.phase = "incremental"
            self._progress.processed_items = processed
            self._progress.total_items = total
            snapshot = TranslationProgress(**self._progress.to_dict())
        self._emit(snapshot)

    def file_finished(self, file: str, failed: bool = False) -> None:
        with self._lock:
            self._progress.completed_files += 1
            if failed:
                self._progress.failed_files += 1
            self._progress.current_file = file
            if self._progress.completed_files >= self._progress.total_files:
                self._progress.phase = "completed"
            snapshot = TranslationProgress(**self._progress.to_dict())
        self._emit(snapshot)
