"""Translation job API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from langsync.ai.exceptions import ConfigurationError
from langsync.ai.service import validate_ai_config
from langsync.core.jobs import CommandType, TranslationJob
from langsync.logger import get_logger
from langsync.translation.manager import TranslationManager
from langsync.web.tasks import cancel_run, get_run, list_runs, start_run

jobs_bp = Blueprint("jobs", __name__)
logger = get_logger(__name__)


def _manager() -> TranslationManager:
    return current_app.config["LANGSYNC_MANAGER"]


def _config_error_response(e: ConfigurationError):
    error_response = {"error": str(e), "code": e.code or "configuration_error"}
    if e.details:
        error_response["details"] = e.details
    return jsonify(error_response), 400


# Commands that never call the translation oracle
OFFLINE_COMMANDS = (CommandType.GENERATE_MANIFEST, CommandType.DEBUG_FIX)


def _needs_oracle(job: TranslationJob) -> bool:
    return not (job.is_debug_mode or job.is_manifest_generation_mode)


def _check_ready(manager: TranslationManager, needs_oracle: bool = True) -> None:
    """Raise ConfigurationError when a run could not start."""
    manager.context.validate()
    if needs_oracle and current_app.config.get("VALIDATE_AI_CONFIG", True):
        validate_ai_config(manager.config, manager.ai_service.api_settings)


@jobs_bp.get("")
def list_jobs():
    """Resumable ledgers on disk plus the runs this process knows about."""
    manager = _manager()
    return jsonify({
        "resumable": manager.job_service.get_resumable_job_ids(),
        "runs": [run_state.to_dict() for run_state in list_runs()],
    })


@jobs_bp.post("")
def start_jobs():
    """Create the jobs for a command and run them in the background."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    command = data.get("command")
    languages = data.get("languages") or []

    try:
        command_type = CommandType(command)
    except ValueError:
        valid = ", ".join(c.value for c in CommandType)
        return jsonify({"error": f"Unknown command '{command}'. Expected one of: {valid}"}), 400

    if not isinstance(languages, list) or not all(isinstance(code, str) and code.strip() for code in languages):
        return jsonify({"error": "languages must be a list of language codes"}), 400
    languages = [code.strip() for code in languages]

    manager = _manager()
    try:
        if command_type == CommandType.RESUME:
            jobs = manager.job_service.get_jobs_for_command(command_type, languages)
            _check_ready(manager, any(_needs_oracle(job) for job in jobs))
        else:
            _check_ready(manager, command_type not in OFFLINE_COMMANDS)
            jobs = manager.job_service.get_jobs_for_command(command_type, languages)
    except ConfigurationError as e:
        logger.warning("Cannot start %s: %s", command_type.value, e)
        return _config_error_response(e)

    if not jobs:
        return jsonify({"error": "No jobs to run", "code": "nothing_to_do"}), 404

    run_state = start_run(manager, command_type.value, jobs)
    return jsonify(run_state.to_dict()), 202


@jobs_bp.post("/<job_id>/resume")
def resume_job(job_id: str):
    """Continue a stored ledger in the background."""
    manager = _manager()
    job = manager.job_service.load_job(job_id)
    if job is None:
        return jsonify({"error": f"Job '{job_id}' not found"}), 404

    try:
        _check_ready(manager, _needs_oracle(job))
    except ConfigurationError as e:
        return _config_error_response(e)

    run_state = start_run(manager, CommandType.RESUME.value, [job])
    return jsonify(run_state.to_dict()), 202


@jobs_bp.get("/<job_id>")
def get_job_status(job_id: str):
    """A background run by run id, or a stored ledger by job id."""
    run_state = get_run(job_id)
    if run_state is not None:
        return jsonify(run_state.to_dict())

    job = _manager().job_service.load_job(job_id)
    if job is not None:
        payload = job.to_dict()
        payload["state"] = "resumable"
        return jsonify(payload)

    return jsonify({"error": f"Job '{job_id}' not found"}), 404


@jobs_bp.post("/<run_id>/cancel")
def cancel(run_id: str):
    """Request cooperative cancellation of a running run."""
    if get_run(run_id) is None:
        return jsonify({"error": f"Run '{run_id}' not found"}), 404
    if not cancel_run(run_id):
        return jsonify({"error": f"Run '{run_id}' has already finished"}), 409
    return jsonify({"run_id": run_id, "cancel_requested": True})
