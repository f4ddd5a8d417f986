"""
API key stores

The oracle key is read through a small capability interface so that the
pipeline never cares where the key lives. The outer layer picks one store at
startup; OS keychain backends can be added as further subclasses.
"""

import os
from pathlib import Path
from typing import Optional

from langsync.ai.exceptions import ConfigurationError
from langsync.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_KEY = "YOUR_API_KEY_HERE"


class ApiKeyStore:
    """Capability interface: save a secret, load it back."""

    writable = True

    def save_key(self, api_key: str) -> None:
        raise NotImplementedError

    def load_key(self) -> Optional[str]:
        raise NotImplementedError


class EnvironmentApiKeyStore(ApiKeyStore):
    """Read-only store backed by an environment variable such as GEMINI_API_KEY."""

    writable = False

    def __init__(self, variable: str = "GEMINI_API_KEY"):
        self.variable = variable

    def save_key(self, api_key: str) -> None:
        raise ConfigurationError(
            f"Set the {self.variable} environment variable instead",
            code="key_store_read_only",
            details={"variable": self.variable},
        )

    def load_key(self) -> Optional[str]:
        value = os.environ.get(self.variable, "").strip()
        return value or None


class ConfigApiKeyStore(ApiKeyStore):
    """Store backed by the provider block of the JSON config file."""

    def __init__(self, provider: str, config_file: Optional[Path] = None):
        self.provider = provider
        self.config_file = config_file

    def save_key(self, api_key: str) -> None:
        from langsync.config import load_config, save_config

        config = load_config(self.config_file)
        config.setdefault(self.provider, {})['api_key'] = api_key
        save_config(config, self.config_file)
        logger.info(f"API key for {self.provider} saved to config")

    def load_key(self) -> Optional[str]:
        from langsync.config import load_config

        api_key = load_config(self.config_file).get(self.provider, {}).get('api_key', '')
        if not api_key or api_key == PLACEHOLDER_KEY:
            return None
        return api_key


class ChainedApiKeyStore(ApiKeyStore):
    """First store that yields a key wins; saving goes to the first writable store."""

    def __init__(self, *stores: ApiKeyStore):
        self.stores = stores

    def save_key(self, api_key: str) -> None:
        for store in self.stores:
            if store.writable:
                store.save_key(api_key)
                return
        raise ConfigurationError("No writable API key store configured", code="key_store_read_only")

    def load_key(self) -> Optional[str]:
        for store in self.stores:
            api_key = store.load_key()
            if api_key:
                return api_key
        return None


def default_key_store(provider: str, config_file: Optional[Path] = None) -> ApiKeyStore:
    """Environment variable (<PROVIDER>_API_KEY) first, then the config file."""
    return ChainedApiKeyStore(
        EnvironmentApiKeyStore(f"{provider.upper()}_API_KEY"),
        ConfigApiKeyStore(provider, config_file),
    )
