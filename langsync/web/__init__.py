"""Web application package for langsync."""

from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask

from langsync.config import RunContext, initialize_app


def create_app(
    config: Optional[Dict[str, Any]] = None,
    base_dir: Optional[Path] = None,
    ai_service=None,
) -> Flask:
    """
    Application factory for the job API.

    Args:
        config: Configuration dict; loaded (and created on first run) when omitted
        base_dir: Directory relative template/languages paths and state folders resolve against
        ai_service: Oracle client to use instead of the configured HTTP provider
    """
    if config is None:
        config = initialize_app()

    from langsync.translation.manager import TranslationManager  # Import here to avoid circular imports
    from .app import build_app

    context = RunContext.from_config(config, base_dir)
    manager = TranslationManager(context, config, ai_service=ai_service)
    return build_app(manager)


__all__ = ["create_app"]
