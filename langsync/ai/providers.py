"""
AI Provider API Implementations

This module contains the HTTP calls for each translation oracle:
- Gemini (generateContent)
- OpenAI-compatible chat completions (OpenAI, DeepSeek, custom providers)

Each function takes an AIService instance and a prompt, returns the raw text
response. Transport problems are mapped onto the retryable error types;
everything else becomes a plain TranslationError.
"""

from typing import Any, Dict

import httpx

from langsync.logger import get_logger
from langsync.ai.exceptions import (
    TranslationError,
    OracleTimeoutError,
    OracleTransportError,
    MalformedResponseError,
)

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

GEMINI_SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]


def get_httpx_timeout(timeout_seconds: Any) -> httpx.Timeout:
    """
    Convert a timeout setting to an httpx.Timeout object.

    Args:
        timeout_seconds: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_seconds, dict):
        return httpx.Timeout(
            connect=timeout_seconds.get('connect', 10.0),
            write=timeout_seconds.get('write', 60.0),
            read=timeout_seconds.get('read', 600.0),
            pool=timeout_seconds.get('pool', 10.0),
        )
    timeout_value = float(timeout_seconds) if timeout_seconds else 600.0
    return httpx.Timeout(
        connect=10.0,
        write=60.0,
        read=timeout_value,
        pool=10.0,
    )


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Raise the error type matching an HTTP failure, with the provider's message."""
    status_code = e.response.status_code
    error_text = "Unknown error"

    try:
        error_json = e.response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
    except ValueError:
        error_text = e.response.text[:500] if e.response.text else "No details"

    message = f"{provider} API error ({status_code}): {error_text}"
    details = {"provider": provider, "status_code": status_code}
    if status_code in RETRYABLE_STATUS_CODES:
        raise OracleTransportError(message, code="http_retryable", details=details) from e
    raise TranslationError(message, code="http_error", details=details) from e


def _post_json(provider: str, url: str, timeout: float, body: Dict[str, Any],
               headers: Dict[str, str]) -> Dict[str, Any]:
    """POST a JSON body and return the decoded JSON envelope."""
    try:
        with httpx.Client(timeout=get_httpx_timeout(timeout)) as client:
            response = client.post(url, headers=headers, json=body)
            response.raise_for_status()
            return response.json()
    except httpx.HTTPStatusError as e:
        logger.debug(f"{provider} API HTTP error: {e.response.status_code} - {e.response.text[:500]}")
        handle_http_error(e, provider)
    except httpx.TimeoutException as e:
        raise OracleTimeoutError(f"{provider} API request timeout", code="timeout") from e
    except httpx.TransportError as e:
        raise OracleTransportError(f"{provider} API transport error: {e}", code="transport") from e
    except ValueError as e:
        raise MalformedResponseError(f"{provider} API returned a non-JSON envelope: {e}",
                                     code="malformed_envelope") from e


def call_gemini_api(service, prompt: str) -> str:
    """Call Gemini generateContent and return the text of the first candidate."""
    provider_config = service.provider_config
    model = service._get_model(provider_config, 'gemini-2.5-pro')
    api_url = provider_config.get('api_url', 'https://generativelanguage.googleapis.com/v1beta/models')
    url = f"{api_url.rstrip('/')}/{model}:generateContent"

    headers = {
        "x-goog-api-key": service.api_key,
        "Content-Type": "application/json",
    }
    body = {
        "contents": [{
            "parts": [{
                "text": prompt
            }]
        }],
        "safetySettings": [
            {"category": category, "threshold": "BLOCK_NONE"} for category in GEMINI_SAFETY_CATEGORIES
        ],
    }

    logger.debug(f"Calling Gemini API: {model}")
    result = _post_json("Gemini", url, service.api_settings.timeout_seconds, body, headers)

    usage_metadata = result.get('usageMetadata', {}) or {}
    prompt_tokens = usage_metadata.get('promptTokenCount', 0)
    completion_tokens = usage_metadata.get('candidatesTokenCount', 0)
    # Fallback: calculate from total if candidatesTokenCount is missing
    if completion_tokens == 0 and prompt_tokens > 0:
        total_tokens = usage_metadata.get('totalTokenCount', 0)
        if total_tokens > prompt_tokens:
            completion_tokens = total_tokens - prompt_tokens
    service.record_token_usage(prompt_tokens, completion_tokens)

    candidates = result.get('candidates') or []
    if candidates:
        content = candidates[0].get('content') or {}
        parts = content.get('parts') or []
        if parts:
            return "".join(part.get('text', '') for part in parts)

    raise MalformedResponseError(
        f"Unexpected Gemini API response format: {str(result)[:500]}",
        code="unexpected_format",
    )


def call_openai_compatible_api(service, prompt: str) -> str:
    """Call an OpenAI-compatible chat completions endpoint (OpenAI, DeepSeek, custom)."""
    provider = service.provider
    provider_config = service.provider_config
    model = service._get_model(provider_config, '')
    api_url = provider_config.get('api_url', '')

    if not api_url:
        raise TranslationError(f"Provider '{provider}' API URL not configured", code="ai_config_missing")
    if not model:
        raise TranslationError(f"Provider '{provider}' model not configured", code="ai_config_missing")

    headers = {
        "Authorization": f"Bearer {service.api_key}",
        "Content-Type": "application/json",
    }
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": service._get_system_message()},
            {"role": "user", "content": prompt},
        ],
    }

    logger.debug(f"  Calling {provider} API (model: {model}, url: {api_url})...")
    result = _post_json(provider, api_url, service.api_settings.timeout_seconds, body, headers)

    usage = result.get('usage', {}) or {}
    service.record_token_usage(usage.get('prompt_tokens', 0), usage.get('completion_tokens', 0))

    choices = result.get('choices') or []
    if choices:
        content = (choices[0].get('message') or {}).get('content') or ''
        logger.debug(f"  Received {len(content)} chars from {provider}")
        return content

    raise MalformedResponseError(f"No content in {provider} response", code="unexpected_format")


def call_provider_api(service, prompt: str) -> str:
    """Dispatch a prompt to the configured provider."""
    if service.provider == 'gemini':
        return call_gemini_api(service, prompt)
    return call_openai_compatible_api(service, prompt)
