"""
Supported language table and naming helpers.

Conventions:
- Language codes are BCP 47 style (de, pt-BR, zh-CN) and are matched case-insensitively.
- Each code maps to a formal, oracle-friendly name such as 'Japanese (Japan)'.
- A language's folder under the languages root is the formal name without its
  parenthesised qualifier: 'Japanese (Japan)' -> 'Japanese'.
"""

import re
from typing import Dict, List, Optional

_QUALIFIER_PATTERN = re.compile(r"\s*\([^)]*\)")


class LanguageTable:
    """Code -> formal name lookup loaded from the "supported_languages" config section."""

    def __init__(self, supported_languages: Dict[str, str]):
        self._languages = dict(supported_languages)
        self._by_lower = {code.lower(): code for code in self._languages}

    @classmethod
    def from_config(cls, config: Dict) -> "LanguageTable":
        return cls(config.get("supported_languages", {}))

    def get_language_codes(self) -> List[str]:
        return list(self._languages.keys())

    def items(self):
        return self._languages.items()

    def normalize_code(self, code: str) -> Optional[str]:
        """Return the configured spelling of a code, or None when unsupported."""
        if not code:
            return None
        return self._by_lower.get(code.strip().lower())

    def get_formal_name(self, code: str) -> Optional[str]:
        canonical = self.normalize_code(code)
        return self._languages[canonical] if canonical else None


def get_language_folder_name(formal_name: str) -> str:
    """
    Folder name for a language: the formal name without qualifiers.

    Example:
        >>> get_language_folder_name("Portuguese (Brazil)")
        'Portuguese'
    """
    folder = _QUALIFIER_PATTERN.sub("", formal_name).strip()
    return folder or formal_name.strip()
