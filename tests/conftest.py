"""Shared fixtures: a temporary template/languages tree and a scripted oracle."""

import copy
import json
import threading
from pathlib import Path

import pytest

from langsync.ai.service import AIService
from langsync.config import DEFAULT_CONFIG, ApiSettings, RunContext
from langsync.language_codes import LanguageTable

GREETINGS_XML = """<?xml version="1.0" encoding="utf-8"?>
<Language>
  <Greeting />
  <!-- <En>Hello <b>friend</b></En> -->
  <Farewell>Goodbye</Farewell>
  <!-- <En>Goodbye</En> -->
  <Tips />
  <!-- <En><li>Press [Key] to jump</li><li>Rest often</li></En> -->
  <Untranslated>Keep me</Untranslated>
</Language>
"""

MENU_XML = """<?xml version="1.0" encoding="utf-8"?>
<Language>
  <Start>Start game</Start>
  <!-- <En>Start game</En> -->
</Language>
"""

CREDITS_XML = """<?xml version="1.0" encoding="utf-8"?>
<Language>
  <Studio>Example Studio</Studio>
</Language>
"""


class FakeOracle:
    """
    Transport stand-in: prefixes every value with "DE " unless a test
    overrides translate() or respond().
    """

    FIX_MARKER = "translation correction assistant"
    NATIVE_MARKER = "What is the native name"

    def __init__(self, native_name="Deutsch"):
        self.native_name = native_name
        self.prompts = []
        self.batches = []
        self._lock = threading.Lock()

    @staticmethod
    def extract_batch(prompt):
        return json.loads(prompt[prompt.index("{"):])

    def is_fix(self, prompt):
        return self.FIX_MARKER in prompt

    def translate(self, key, text, is_fix):
        return f"DE {text}"

    def respond(self, prompt):
        batch = self.extract_batch(prompt)
        is_fix = self.is_fix(prompt)
        return json.dumps({key: self.translate(key, text, is_fix) for key, text in batch.items()},
                          ensure_ascii=False)

    def __call__(self, prompt):
        with self._lock:
            self.prompts.append(prompt)
        if self.NATIVE_MARKER in prompt:
            return f'"{self.native_name}"'
        with self._lock:
            self.batches.append((self.extract_batch(prompt), self.is_fix(prompt)))
        return self.respond(prompt)

    @property
    def translation_calls(self):
        return [p for p in self.prompts if self.NATIVE_MARKER not in p]


@pytest.fixture
def config():
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["api"].update({
        "retry_delay_seconds": 0,
        "max_concurrent_requests": 4,
        "api_batch_size": 50,
    })
    cfg["supported_languages"] = {
        "de": "German (Germany)",
        "ja": "Japanese (Japan)",
    }
    return cfg


@pytest.fixture
def api_settings(config):
    return ApiSettings.from_config(config)


@pytest.fixture
def languages(config):
    return LanguageTable.from_config(config)


@pytest.fixture
def context(tmp_path, config):
    ctx = RunContext.from_config(config, tmp_path)
    ctx.template_path.mkdir(parents=True)
    ctx.languages_path.mkdir(parents=True)
    (ctx.template_path / "Greetings.xml").write_text(GREETINGS_XML, encoding="utf-8")
    (ctx.template_path / "UI").mkdir()
    (ctx.template_path / "UI" / "Menu.xml").write_text(MENU_XML, encoding="utf-8")
    (ctx.template_path / "Credits.xml").write_text(CREDITS_XML, encoding="utf-8")
    return ctx


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def ai_service(config, api_settings, oracle, context):
    return AIService(api_settings, config, transport=oracle, debug_dir=context.debug_dir)


@pytest.fixture
def german_dir(context) -> Path:
    return context.languages_path / "German"
