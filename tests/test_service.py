"""Tests for the oracle client: batching, retries, parsing and provider envelopes."""

import json
import threading
import time

import httpx
import pytest

from langsync.ai import providers
from langsync.ai.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    OperationCancelledError,
    OracleTimeoutError,
    OracleTransportError,
    TranslationError,
)
from langsync.ai.key_store import ApiKeyStore, ChainedApiKeyStore, EnvironmentApiKeyStore
from langsync.ai.service import AIService, validate_ai_config
from langsync.config import ApiSettings


class StaticKeyStore(ApiKeyStore):

    def __init__(self, api_key=None):
        self.api_key = api_key

    def save_key(self, api_key):
        self.api_key = api_key

    def load_key(self):
        return self.api_key


def make_service(config, context, transport, **api_overrides):
    config["api"].update(api_overrides)
    return AIService(ApiSettings.from_config(config), config, transport=transport,
                     debug_dir=context.debug_dir)


class TestCallTranslationApi:

    def test_batches_by_api_batch_size(self, config, context, oracle):
        service = make_service(config, context, oracle, api_batch_size=2)
        texts = {f"k_{i}": f"text {i}" for i in range(5)}

        result = service.call_translation_api(texts, "German (Germany)", "Greetings.xml")

        assert result == {key: f"DE {text}" for key, text in texts.items()}
        assert [len(batch) for batch, _ in oracle.batches] == [2, 2, 1]

    def test_prompt_names_language_and_keeps_unicode(self, ai_service, oracle):
        ai_service.call_translation_api({"k_0": "Café"}, "French (France)", "a.xml")
        prompt = oracle.prompts[0]
        assert "from English to French (France)" in prompt
        assert '"Café"' in prompt

    def test_fix_prompt(self, ai_service, oracle):
        ai_service.call_translation_api({"k_0": "x"}, "German (Germany)", "a.xml", is_fix_attempt=True)
        assert oracle.batches == [({"k_0": "x"}, True)]

    def test_empty_input_makes_no_call(self, ai_service, oracle):
        assert ai_service.call_translation_api({}, "German (Germany)", "a.xml") == {}
        assert oracle.prompts == []

    def test_fenced_answer_is_parsed(self, config, context):
        service = make_service(config, context, lambda prompt: 'Sure!\n```json\n{"k_0": "Hallo"}\n```')
        assert service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml") == {"k_0": "Hallo"}

    def test_missing_keys_are_absent(self, config, context):
        service = make_service(config, context, lambda prompt: '{"k_0": "Hallo"}')
        result = service.call_translation_api({"k_0": "Hello", "k_1": "Bye"}, "German (Germany)", "a.xml")
        assert result == {"k_0": "Hallo"}


class TestRetries:

    def test_transient_failures_are_retried(self, config, context):
        calls = []

        def flaky(prompt):
            calls.append(prompt)
            if len(calls) < 3:
                raise OracleTransportError("503", code="http_retryable")
            return '{"k_0": "Hallo"}'

        service = make_service(config, context, flaky, max_network_retries=3)
        assert service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml") == {"k_0": "Hallo"}
        assert len(calls) == 3

    def test_timeout_after_all_attempts(self, config, context):
        calls = []

        def slow(prompt):
            calls.append(prompt)
            raise OracleTimeoutError("timeout", code="timeout")

        service = make_service(config, context, slow, max_network_retries=2, api_timeout_minutes=10)
        with pytest.raises(OracleTimeoutError, match=r"API request timed out after 10 minute\(s\)\."):
            service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml")
        assert len(calls) == 2

    def test_transport_error_after_all_attempts(self, config, context):
        def down(prompt):
            raise OracleTransportError("connection refused", code="transport")

        service = make_service(config, context, down, max_network_retries=2)
        with pytest.raises(OracleTransportError, match="connection refused"):
            service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml")

    def test_fatal_errors_are_not_retried(self, config, context):
        calls = []

        def forbidden(prompt):
            calls.append(prompt)
            raise TranslationError("Gemini API error (403): denied", code="http_error")

        service = make_service(config, context, forbidden, max_network_retries=3)
        with pytest.raises(TranslationError, match="403"):
            service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml")
        assert len(calls) == 1


class TestMalformedResponses:

    @pytest.mark.parametrize("answer", ["I cannot help with that.", "[1, 2, 3]", '{"k_0": '])
    def test_unparseable_answer_dumps_incident_without_retry(self, config, context, answer):
        calls = []

        def transport(prompt):
            calls.append(prompt)
            return answer

        service = make_service(config, context, transport)
        with pytest.raises(MalformedResponseError) as exc_info:
            service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "UI/Menu.xml")

        assert len(calls) == 1
        assert exc_info.value.code == "malformed_response"
        incidents = list(context.debug_dir.glob("Menu_*_parsing_error.json"))
        assert len(incidents) == 1
        dump = json.loads(incidents[0].read_text(encoding="utf-8"))
        assert dump["RawResponse"] == answer
        assert dump["Prompt"] == calls[0]
        assert dump["Error"] == "Failed to parse API response as JSON."


class TestCancellation:

    def test_set_event_stops_before_calling(self, ai_service, oracle):
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            ai_service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml", cancel_event=event)
        assert oracle.prompts == []

    def test_cancel_during_retry_wait(self, config, context):
        event = threading.Event()
        calls = []

        def failing(prompt):
            calls.append(prompt)
            event.set()
            raise OracleTransportError("reset", code="transport")

        service = make_service(config, context, failing, max_network_retries=5)
        with pytest.raises(OperationCancelledError):
            service.call_translation_api({"k_0": "Hello"}, "German (Germany)", "a.xml", cancel_event=event)
        assert len(calls) == 1


class TestConcurrencyLimit:

    def test_in_flight_calls_never_exceed_limit(self, config, context):
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def transport(prompt):
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.02)
            with lock:
                state["current"] -= 1
            return '{"k_0": "x"}'

        service = make_service(config, context, transport, max_concurrent_requests=2)
        threads = [
            threading.Thread(target=service.call_translation_api, args=({"k_0": "a"}, "German (Germany)", "a.xml"))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert state["peak"] <= 2


class TestNativeName:

    def test_quotes_are_stripped(self, ai_service):
        assert ai_service.get_native_language_name("German (Germany)") == "Deutsch"


class TestValidateAiConfig:

    def test_placeholder_key_is_rejected(self, config, api_settings):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_ai_config(config, api_settings, key_store=StaticKeyStore())
        assert exc_info.value.code == "ai_config_missing"
        assert exc_info.value.details["missing_field"] == "api_key"

    def test_key_from_store(self, config, api_settings):
        validate_ai_config(config, api_settings, key_store=StaticKeyStore("secret"))

    def test_missing_provider_block(self, config, api_settings):
        del config["gemini"]
        with pytest.raises(ConfigurationError):
            validate_ai_config(config, api_settings, key_store=StaticKeyStore("secret"))

    def test_missing_model(self, config):
        config["api"]["model_name"] = ""
        config["gemini"]["models"] = []
        settings = ApiSettings.from_config(config)
        with pytest.raises(ConfigurationError) as exc_info:
            validate_ai_config(config, settings, key_store=StaticKeyStore("secret"))
        assert exc_info.value.details["missing_field"] == "models"


class TestKeyStores:

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        store = ChainedApiKeyStore(EnvironmentApiKeyStore("GEMINI_API_KEY"), StaticKeyStore("from-file"))
        assert store.load_key() == "from-env"

    def test_falls_through_and_saves_to_writable(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        file_store = StaticKeyStore("from-file")
        store = ChainedApiKeyStore(EnvironmentApiKeyStore("GEMINI_API_KEY"), file_store)
        assert store.load_key() == "from-file"
        store.save_key("new")
        assert file_store.api_key == "new"

    def test_environment_store_is_read_only(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EnvironmentApiKeyStore("GEMINI_API_KEY").save_key("new")
        assert exc_info.value.code == "key_store_read_only"
        assert exc_info.value.details == {"variable": "GEMINI_API_KEY"}

    def test_chain_without_writable_store(self):
        store = ChainedApiKeyStore(EnvironmentApiKeyStore("GEMINI_API_KEY"))
        with pytest.raises(ConfigurationError) as exc_info:
            store.save_key("new")
        assert exc_info.value.code == "key_store_read_only"


class TestProviders:

    def test_gemini_envelope(self, config, api_settings, monkeypatch):
        captured = {}

        def fake_post(provider, url, timeout, body, headers):
            captured.update(url=url, headers=headers, body=body)
            return {
                "candidates": [{"content": {"parts": [{"text": '{"k_0": '}, {"text": '"Hallo"}'}]}}],
                "usageMetadata": {"promptTokenCount": 12, "totalTokenCount": 20},
            }

        monkeypatch.setattr(providers, "_post_json", fake_post)
        service = AIService(api_settings, config, api_key="secret")

        assert service._call_ai_api_text("prompt") == '{"k_0": "Hallo"}'
        assert captured["url"].endswith("/gemini-2.5-pro:generateContent")
        assert captured["headers"]["x-goog-api-key"] == "secret"
        assert service.get_total_token_usage() == {"prompt_tokens": 12, "completion_tokens": 8}

    def test_openai_envelope(self, config, monkeypatch):
        config["api"].update({"provider": "openai", "model_name": ""})

        def fake_post(provider, url, timeout, body, headers):
            assert body["model"] == "gpt-4o-mini"
            assert body["messages"][1]["content"] == "prompt"
            return {
                "choices": [{"message": {"content": "answer"}}],
                "usage": {"prompt_tokens": 3, "completion_tokens": 4},
            }

        monkeypatch.setattr(providers, "_post_json", fake_post)
        service = AIService(ApiSettings.from_config(config), config, api_key="secret")

        assert service._call_ai_api_text("prompt") == "answer"
        assert service.get_total_token_usage() == {"prompt_tokens": 3, "completion_tokens": 4}

    def test_empty_gemini_candidates(self, config, api_settings, monkeypatch):
        monkeypatch.setattr(providers, "_post_json", lambda *args: {"candidates": []})
        service = AIService(api_settings, config, api_key="secret")
        with pytest.raises(MalformedResponseError):
            service._call_ai_api_text("prompt")

    @pytest.mark.parametrize("status, error_type", [
        (429, OracleTransportError),
        (503, OracleTransportError),
        (401, TranslationError),
    ])
    def test_http_status_mapping(self, status, error_type):
        request = httpx.Request("POST", "https://example.invalid")
        response = httpx.Response(status, json={"error": {"message": "nope"}}, request=request)
        error = httpx.HTTPStatusError("failed", request=request, response=response)

        with pytest.raises(error_type, match=rf"Gemini API error \({status}\): nope") as exc_info:
            providers.handle_http_error(error, "Gemini")
        if status == 401:
            assert not isinstance(exc_info.value, OracleTransportError)
