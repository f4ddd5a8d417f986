"""
Asynchronous task helpers for long-running background runs (translation jobs).
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from langsync.core.jobs import TranslationJob
from langsync.logger import get_logger
from langsync.translation.manager import TranslationManager
from langsync.translation.progress import TranslationProgress

logger = get_logger(__name__)


@dataclass
class RunState:
    """In-memory representation of one background run of one or more jobs."""

    run_id: str
    command: str
    job_ids: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    state: str = "pending"  # pending|running|completed|incomplete|failed|cancelled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    outcomes: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    last_update: float = field(default_factory=time.time)
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)
    thread: Optional[threading.Thread] = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.state in ("completed", "incomplete", "failed", "cancelled")

    def request_cancel(self):
        """Mark this run as requested for cancellation."""
        self.cancel_event.set()
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "command": self.command,
            "job_ids": list(self.job_ids),
            "languages": list(self.languages),
            "state": self.state,
            "cancel_requested": self.cancel_event.is_set(),
            "created_at": self.created_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "progress": dict(self.progress),
            "outcomes": list(self.outcomes),
            "failure_count": sum(1 for o in self.outcomes if o.get("status") == "Failed"),
            "error": self.error,
            "last_update": self.last_update,
        }


_runs: Dict[str, RunState] = {}
_runs_lock = threading.Lock()
_RUN_RETENTION_SECONDS = 600  # Retain run info for 10 minutes after completion


def start_run(manager: TranslationManager, command: str, jobs: List[TranslationJob]) -> RunState:
    """
    Register a run for already-created jobs and launch it on a background thread.

    Returns:
        RunState for the new run (already registered and running in background).
    """
    run_state = RunState(
        run_id=uuid.uuid4().hex,
        command=command,
        job_ids=[job.job_id for job in jobs],
        languages=sorted({lang for job in jobs for lang in job.target_languages}),
    )

    with _runs_lock:
        _cleanup_runs_locked()
        _runs[run_state.run_id] = run_state

    thread = threading.Thread(
        target=_run_jobs,
        args=(manager, run_state, jobs),
        name=f"translation-run-{run_state.run_id}",
        daemon=True,
    )
    run_state.thread = thread
    thread.start()
    logger.info(
        "Run %s started (command=%s, jobs=%s)",
        run_state.run_id,
        command,
        ", ".join(run_state.job_ids),
    )
    return run_state


def get_run(run_id: str) -> Optional[RunState]:
    """Fetch a run by ID (if still retained)."""
    with _runs_lock:
        run_state = _runs.get(run_id)
        if run_state and run_state.finished_at and (time.time() - run_state.finished_at) > _RUN_RETENTION_SECONDS:
            _runs.pop(run_id, None)
            return None
        return run_state


def list_runs() -> List[RunState]:
    with _runs_lock:
        _cleanup_runs_locked()
        return sorted(_runs.values(), key=lambda r: r.created_at)


def cancel_run(run_id: str) -> bool:
    """
    Request cancellation of a running run.

    Returns:
        True if the run was found and cancellation requested, False otherwise.
    """
    with _runs_lock:
        run_state = _runs.get(run_id)
        if not run_state or run_state.finished:
            return False
        run_state.request_cancel()
    logger.info("Cancellation requested for run %s", run_id)
    return True


def wait_for_run(run_id: str, timeout: Optional[float] = None) -> Optional[RunState]:
    """Block until the run's thread has finished (or timeout expires)."""
    run_state = get_run(run_id)
    if run_state and run_state.thread:
        run_state.thread.join(timeout)
    return run_state


def _run_jobs(manager: TranslationManager, run_state: RunState, jobs: List[TranslationJob]):
    """Worker function executed in a background thread."""
    run_state.state = "running"
    run_state.started_at = time.time()
    run_state.last_update = run_state.started_at

    def on_progress(progress: TranslationProgress):
        with _runs_lock:
            run_state.progress = progress.to_dict()
            run_state.last_update = time.time()

    try:
        for job in jobs:
            if run_state.cancel_event.is_set():
                break
            outcomes = manager.run_job(job, run_state.cancel_event, on_progress)
            with _runs_lock:
                run_state.outcomes.extend(o.to_dict() for o in outcomes)

        if run_state.cancel_event.is_set():
            run_state.state = "cancelled"
        elif all(job.is_complete() for job in jobs):
            run_state.state = "completed"
        else:
            run_state.state = "incomplete"
        logger.info(
            "Run %s finished (state=%s, files=%s, failed=%s)",
            run_state.run_id,
            run_state.state,
            len(run_state.outcomes),
            sum(1 for o in run_state.outcomes if o["status"] == "Failed"),
        )
    except Exception as exc:
        run_state.state = "failed"
        run_state.error = f"{type(exc).__name__}: {exc}"
        logger.exception("Run %s failed: %s", run_state.run_id, run_state.error)
    finally:
        run_state.finished_at = time.time()
        run_state.last_update = run_state.finished_at


def _cleanup_runs_locked():
    """Remove finished runs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        run_id
        for run_id, run_state in _runs.items()
        if run_state.finished_at and (now - run_state.finished_at) > _RUN_RETENTION_SECONDS
    ]
    for run_id in expired:
        _runs.pop(run_id, None)
