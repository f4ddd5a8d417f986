"""
Placeholder codec

Markup tags (<...>) and bracket tokens ([...]) must survive translation
untouched. extract() swaps each occurrence, in order, for a positional token
__p{i}__; restore() puts the originals back by index.
"""

import re
from typing import List, Tuple

PLACEHOLDER_PATTERN = re.compile(r"<[^>]+>|\[[^\]]+\]")
TOKEN_PATTERN = re.compile(r"__p(\d+)__")


def extract(content: str) -> Tuple[str, List[str]]:
    """
    Replace non-translatable substrings with positional tokens.

    Returns:
        Tuple of (sanitized_text, placeholders) where placeholders[i] is the
        original substring behind __p{i}__.

    Example:
        >>> extract("Pick up the <item/> now")
        ('Pick up the __p0__ now', ['<item/>'])
    """
    placeholders: List[str] = []

    def _swap(match: re.Match) -> str:
        placeholders.append(match.group(0))
        return f"__p{len(placeholders) - 1}__"

    sanitized = PLACEHOLDER_PATTERN.sub(_swap, content)
    return sanitized, placeholders


def restore(translated: str, placeholders: List[str]) -> str:
    """
    Put original placeholders back into a translated string.

    Tokens whose index is out of range are left as they are.
    """
    if not placeholders:
        return translated

    def _swap_back(match: re.Match) -> str:
        index = int(match.group(1))
        if index < len(placeholders):
            return placeholders[index]
        return match.group(0)

    return TOKEN_PATTERN.sub(_swap_back, translated)


def find_tokens(text: str) -> List[str]:
    """All positional tokens in text, in order of appearance."""
    return [m.group(0) for m in TOKEN_PATTERN.finditer(text or "")]


def count_tokens(text: str) -> int:
    return len(find_tokens(text))
