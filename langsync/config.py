import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from langsync.ai.exceptions import ConfigurationError
from langsync.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_MESSAGE = "You are a professional video game translator. Return only valid JSON."

BUILTIN_PROVIDER_DISPLAY_NAMES = {
    "gemini": "Gemini",
    "openai": "OpenAI",
    "deepseek": "DeepSeek",
}

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent
CONFIG_DIR = BASE_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "config.json"

JOB_DIRECTORY_NAME = ".translator_jobs"
DEBUG_DIRECTORY_NAME = ".translator_debug"
MANIFEST_FILE_NAME = "translation_manifest.json"

# Default prompts
DEFAULT_PROMPTS = {
    "json_translation_prompt": {
        "version": "1.0",
        "description": "Translate the string values of a JSON object",
        "prompt": """You are an expert translator for a video game. Your task is to translate the string values in the following JSON object from English to {language_name}.
You must follow these rules precisely:
1. Return ONLY a valid JSON object. Do not include any other text or explanations.
2. Preserve the original JSON structure and all keys exactly.
3. Translate only the string values.
4. Ensure all string values are properly JSON-escaped.
5. **CRITICAL**: Preserve all placeholder tokens (e.g., `__p0__`, `__p1__`) exactly as they appear. Do not translate them.
Here is the JSON object to translate:
{json_content}"""
    },
    "json_fix_prompt": {
        "version": "1.0",
        "description": "Corrective retry after placeholder tokens were lost",
        "prompt": """You are a translation correction assistant. You previously failed to preserve placeholder tokens in a translation.
Your task is to translate the following JSON values from English to {language_name} again, this time following the rules correctly.

You must follow these rules precisely:
1. Return ONLY a valid JSON object.
2. **CRITICAL**: You MUST preserve all placeholder tokens (e.g., `__p0__`, `__p1__`) exactly as they appear in the original text. Do not translate them. This is the most important rule.
3. Preserve the original JSON structure and all keys exactly.

Here is the JSON object with the original English text that you must translate correctly:
{json_content}"""
    },
    "native_name_prompt": {
        "version": "1.0",
        "description": "Ask for the native name of a language",
        "prompt": """What is the native name for the language '{language_name}'? Provide only the name itself, without any additional text or explanation. For example, for 'Japanese (Japan)', you should return '日本語（日本）'."""
    },
}

# Default configuration template
DEFAULT_CONFIG = {
    "paths": {
        "template_base_path": "TranslationTemplate",
        "languages_base_path": "Languages",
    },
    "api": {
        "provider": "gemini",
        "model_name": "gemini-2.5-pro",
        "api_timeout_minutes": 10,
        "max_formatting_retries": 2,
        "max_network_retries": 3,
        "retry_delay_seconds": 5,
        "api_batch_size": 150,
        "max_concurrent_requests": 10,
        "incremental_processing_threshold": 250,
    },
    "gemini": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["gemini-2.5-pro", "gemini-2.5-flash"],
        "api_url": "https://generativelanguage.googleapis.com/v1beta/models",
    },
    "openai": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["gpt-4o-mini", "gpt-4o"],
        "api_url": "https://api.openai.com/v1/chat/completions",
    },
    "deepseek": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["deepseek-chat"],
        "api_url": "https://api.deepseek.com/chat/completions",
    },
    "supported_languages": {
        "de": "German (Germany)",
        "es": "Spanish (Spain)",
        "fr": "French (France)",
        "it": "Italian (Italy)",
        "ja": "Japanese (Japan)",
        "ko": "Korean (Korea)",
        "pl": "Polish (Poland)",
        "pt-BR": "Portuguese (Brazil)",
        "ru": "Russian (Russia)",
        "zh-CN": "Chinese (Simplified)",
    },
    "always_create_info_file": False,
    "log_mode": "info",
}


@dataclass
class ApiSettings:
    """Oracle call tuning, read from the "api" config section."""
    provider: str = "gemini"
    model_name: str = "gemini-2.5-pro"
    api_timeout_minutes: float = 10
    max_formatting_retries: int = 2
    max_network_retries: int = 3
    retry_delay_seconds: float = 5
    api_batch_size: int = 150
    max_concurrent_requests: int = 10
    incremental_processing_threshold: int = 250

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ApiSettings":
        section = config.get("api", {})
        known = {name: section[name] for name in cls.__dataclass_fields__ if name in section}
        settings = cls(**known)
        if settings.api_batch_size < 1 or settings.max_concurrent_requests < 1:
            raise ConfigurationError(
                "api_batch_size and max_concurrent_requests must be at least 1",
                code="invalid_api_settings",
            )
        return settings

    @property
    def timeout_seconds(self) -> float:
        return float(self.api_timeout_minutes) * 60


@dataclass
class RunContext:
    """Storage roots for one run. Passed explicitly to everything that touches disk."""
    base_dir: Path
    template_path: Path
    languages_path: Path
    state_dir: Path
    debug_dir: Path

    @classmethod
    def from_config(cls, config: Dict[str, Any], base_dir: Optional[Path] = None) -> "RunContext":
        base = Path(base_dir) if base_dir else Path.cwd()
        paths = config.get("paths", {})
        template = Path(paths.get("template_base_path", "TranslationTemplate"))
        languages = Path(paths.get("languages_base_path", "Languages"))
        return cls(
            base_dir=base,
            template_path=template if template.is_absolute() else base / template,
            languages_path=languages if languages.is_absolute() else base / languages,
            state_dir=base / JOB_DIRECTORY_NAME,
            debug_dir=base / DEBUG_DIRECTORY_NAME,
        )

    def validate(self) -> None:
        """Raise ConfigurationError unless both the template and languages roots exist."""
        missing = [str(p) for p in (self.template_path, self.languages_path) if not p.is_dir()]
        if missing:
            raise ConfigurationError(
                f"Configured directory path(s) do not exist: {', '.join(missing)}",
                code="paths_missing",
                details={"missing": missing},
            )


def get_config_file() -> Path:
    """Config file location, overridable with LANGSYNC_CONFIG."""
    override = os.environ.get("LANGSYNC_CONFIG")
    return Path(override) if override else CONFIG_FILE


def _merge_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing keys from DEFAULT_CONFIG, one level deep."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in config.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def create_default_config(config_file: Optional[Path] = None) -> Path:
    """Create the default config.json file."""
    config_file = Path(config_file) if config_file else get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4, ensure_ascii=False)
    logger.info(f"Created default config file: {config_file}")
    return config_file


def initialize_app(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Create the config file on first run and return the loaded configuration."""
    config_file = Path(config_file) if config_file else get_config_file()
    if not config_file.exists():
        logger.info("No config file found, writing defaults")
        create_default_config(config_file)
    return load_config(config_file)


def load_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the configuration, falling back to defaults when the file is absent or unreadable."""
    config_file = Path(config_file) if config_file else get_config_file()
    if not config_file.exists():
        logger.debug(f"Config file {config_file} not found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config file {config_file}: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not isinstance(config, dict):
        logger.warning(f"Config file {config_file} does not hold a JSON object, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    logger.debug(f"Configuration loaded from {config_file}")
    return _merge_defaults(config)


def save_config(config: Dict[str, Any], config_file: Optional[Path] = None):
    """Save the configuration to the config file."""
    config_file = Path(config_file) if config_file else get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=4, ensure_ascii=False)
    logger.info(f"Configuration saved to {config_file}")


def get_prompt(prompt_name: str = "json_translation_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    return DEFAULT_PROMPTS.get(prompt_name, DEFAULT_PROMPTS["json_translation_prompt"])
