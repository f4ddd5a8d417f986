"""
AI Translation Service Module

This module provides the oracle client used by the pipeline:
- AIService class for batching, retrying and parsing translation calls
- Configuration validation
- Incident files for answers that cannot be parsed

For provider-specific API implementations, see ai/providers.py
"""

import json
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from langsync.config import ApiSettings, BUILTIN_PROVIDER_DISPLAY_NAMES, DEFAULT_SYSTEM_MESSAGE, get_prompt, load_config
from langsync.logger import get_logger
from langsync.ai.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    OperationCancelledError,
    OracleTimeoutError,
    TRANSIENT_ERRORS,
)
from langsync.ai.key_store import PLACEHOLDER_KEY, ApiKeyStore, default_key_store
from langsync.translation.utils import chunk_dict, clean_api_response, parse_translation_object

logger = get_logger(__name__)


def _provider_display(provider: str) -> str:
    return BUILTIN_PROVIDER_DISPLAY_NAMES.get(provider, provider.replace('-', ' ').title())


def validate_ai_config(config: Dict[str, Any], api_settings: ApiSettings,
                       key_store: Optional[ApiKeyStore] = None) -> None:
    """
    Validate that the configured oracle provider can be called.

    Args:
        config: Loaded configuration
        api_settings: Settings naming the provider
        key_store: Where the API key is looked up; defaults to env var then config file

    Raises:
        ConfigurationError: If the provider block, key or model is missing.
    """
    provider = api_settings.provider
    provider_config = config.get(provider)
    if not isinstance(provider_config, dict) or not provider_config:
        raise ConfigurationError(
            f"AI provider '{provider}' configuration not found",
            code="ai_config_missing",
            details={"provider": provider}
        )

    key_store = key_store or default_key_store(provider)
    api_key = key_store.load_key() or provider_config.get('api_key', '')
    if not api_key or api_key == PLACEHOLDER_KEY:
        raise ConfigurationError(
            f"{_provider_display(provider)} API key not configured. "
            f"Set {provider.upper()}_API_KEY or the api_key field in the config file.",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "api_key"}
        )

    models = [m for m in provider_config.get('models', []) if m and isinstance(m, str)]
    if not api_settings.model_name and not models and not provider_config.get('model'):
        raise ConfigurationError(
            f"{_provider_display(provider)} model not configured",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "models"}
        )


class AIService:
    """Translation oracle client shared by every worker of a run."""

    def __init__(
        self,
        api_settings: Optional[ApiSettings] = None,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
        transport: Optional[Callable[[str], str]] = None,
        debug_dir: Optional[Path] = None,
        key_store: Optional[ApiKeyStore] = None,
    ):
        self.config = config if config is not None else load_config()
        self.api_settings = api_settings or ApiSettings.from_config(self.config)
        self.provider = self.api_settings.provider
        self.provider_config = self.config.get(self.provider, {}) or {}
        self.translation_config = self.config.get('translation', {}) or {}
        self.debug_dir = Path(debug_dir) if debug_dir else Path.cwd() / ".translator_debug"
        # transport(prompt) -> raw text; None means the configured HTTP provider
        self.transport = transport

        if api_key is None and transport is None:
            api_key = (key_store or default_key_store(self.provider)).load_key()
            if not api_key:
                api_key = self.provider_config.get('api_key', '')
        self.api_key = api_key or ''

        # Caps in-flight oracle calls across file workers and chunk workers alike
        self._request_slots = threading.BoundedSemaphore(self.api_settings.max_concurrent_requests)
        self._usage_lock = threading.Lock()
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        logger.info(f"Initialized AI service with provider: {self.provider}")

    def _get_model(self, provider_config: Dict[str, Any], default_model: str = "") -> str:
        """
        Get the model to use for translation.

        Priority:
        1. model_name from the api settings
        2. First model from 'models' array
        3. 'model' field (legacy)
        4. default_model
        """
        if self.api_settings.model_name:
            return self.api_settings.model_name

        models = provider_config.get('models', [])
        if models and isinstance(models, list) and models[0]:
            return models[0]

        return provider_config.get('model', default_model)

    def _get_system_message(self, default: str = DEFAULT_SYSTEM_MESSAGE) -> str:
        """Get system message from config or use default."""
        return self.translation_config.get('system_message', default)

    def record_token_usage(self, prompt_tokens: int, completion_tokens: int) -> None:
        with self._usage_lock:
            self.total_prompt_tokens += prompt_tokens or 0
            self.total_completion_tokens += completion_tokens or 0

    def get_total_token_usage(self) -> Dict[str, int]:
        """Get accumulated token usage."""
        with self._usage_lock:
            return {
                'prompt_tokens': self.total_prompt_tokens,
                'completion_tokens': self.total_completion_tokens,
            }

    def _call_ai_api_text(self, prompt: str) -> str:
        """Send one prompt to the oracle, holding a request slot for the duration of the call."""
        with self._request_slots:
            if self.transport is not None:
                return self.transport(prompt)
            from langsync.ai.providers import call_provider_api
            return call_provider_api(self, prompt)

    def _build_json_prompt(self, language_name: str, batch: Dict[str, str], is_fix_attempt: bool) -> str:
        prompt_name = 'json_fix_prompt' if is_fix_attempt else 'json_translation_prompt'
        template = get_prompt(prompt_name)['prompt']
        return template.format(
            language_name=language_name,
            json_content=json.dumps(batch, ensure_ascii=False, indent=2),
        )

    def _wait_before_retry(self, cancel_event: Optional[threading.Event]) -> None:
        delay = self.api_settings.retry_delay_seconds
        if cancel_event is None:
            time.sleep(delay)
        elif cancel_event.wait(delay):
            raise OperationCancelledError("Cancelled while waiting to retry the oracle call", code="cancelled")

    def _send_with_retry(self, prompt: str, cancel_event: Optional[threading.Event]) -> str:
        """Call the oracle, retrying timeouts and transport failures up to max_network_retries attempts."""
        max_attempts = max(1, self.api_settings.max_network_retries)
        attempt = 0
        while True:
            attempt += 1
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Cancelled before the oracle call", code="cancelled")
            try:
                return self._call_ai_api_text(prompt)
            except TRANSIENT_ERRORS as e:
                if attempt >= max_attempts:
                    if isinstance(e, OracleTimeoutError):
                        raise OracleTimeoutError(
                            f"API request timed out after {self.api_settings.api_timeout_minutes} minute(s).",
                            code="timeout",
                            details={"attempts": attempt},
                        ) from e
                    raise
                logger.warning(
                    f"  API request failed (Attempt {attempt}/{max_attempts}): {e}. "
                    f"Retrying in {self.api_settings.retry_delay_seconds} seconds..."
                )
                self._wait_before_retry(cancel_event)

    def _save_parsing_error(self, source_file: str, error: Exception, prompt: str, raw_response: Optional[str]) -> Path:
        """Write the prompt and raw answer of an unparseable response to the debug directory."""
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        debug_file = self.debug_dir / f"{Path(source_file).stem}_{timestamp}_parsing_error.json"
        debug_content = {
            "Error": "Failed to parse API response as JSON.",
            "ExceptionMessage": str(error),
            "Prompt": prompt,
            "RawResponse": raw_response if raw_response is not None else "Response was null.",
        }
        debug_file.write_text(json.dumps(debug_content, ensure_ascii=False, indent=2), encoding='utf-8')
        return debug_file

    def call_translation_api(
        self,
        texts: Dict[str, str],
        language_name: str,
        source_file: str,
        is_fix_attempt: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, str]:
        """
        Translate the values of texts into language_name.

        Texts are sent in batches of api_batch_size. Keys missing from the
        oracle's answer are simply absent from the result; the caller decides
        what to do about them.

        Args:
            texts: Flat key -> sanitized English text
            language_name: Formal target language name, e.g. "German (Germany)"
            source_file: Template file the texts come from (used for incident file names)
            is_fix_attempt: Use the corrective prompt
            cancel_event: Set to stop before the next batch or retry

        Returns:
            Flat key -> translated text

        Raises:
            OracleTimeoutError / OracleTransportError: retries exhausted
            MalformedResponseError: the answer held no usable JSON object
            OperationCancelledError: cancel_event was set
        """
        translated: Dict[str, str] = {}
        if not texts:
            return translated

        for batch in chunk_dict(texts, self.api_settings.api_batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Cancelled before the next translation batch", code="cancelled")

            prompt = self._build_json_prompt(language_name, batch, is_fix_attempt)
            logger.debug(f"  Sending {len(batch)} entries from {Path(source_file).name} (fix={is_fix_attempt})")

            raw_response = None
            try:
                raw_response = self._send_with_retry(prompt, cancel_event)
                translated.update(parse_translation_object(raw_response))
            except (ValueError, MalformedResponseError) as e:
                debug_file = self._save_parsing_error(source_file, e, prompt, raw_response)
                logger.error(f"Unparseable API response for {source_file}, saved to {debug_file}")
                raise MalformedResponseError(
                    f"Failed to parse API response for '{source_file}'. "
                    f"Raw response and prompt saved to '{debug_file}'.",
                    code="malformed_response",
                    details={"debug_file": str(debug_file)},
                ) from e

        return translated

    def generate_text(self, prompt: str, cancel_event: Optional[threading.Event] = None) -> str:
        """Send a free-form prompt and return the cleaned plain-text answer."""
        raw_response = self._send_with_retry(prompt, cancel_event)
        return clean_api_response(raw_response, is_json=False)

    def get_native_language_name(self, language_name: str,
                                 cancel_event: Optional[threading.Event] = None) -> str:
        """Ask the oracle for the native spelling of a formal language name."""
        prompt = get_prompt('native_name_prompt')['prompt'].format(language_name=language_name)
        return self.generate_text(prompt, cancel_event)
