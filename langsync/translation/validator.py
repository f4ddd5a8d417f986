"""
Translation Validation Module

Structural checks applied to an existing target node that has no stored
fingerprint yet (first verification pass):
- List vs scalar shape
- Placeholder multiset equality (order-independent)
- Segment count and non-blank target segments
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Tuple

from langsync.translation.models import TranslationItem


@dataclass
class StructureCheck:
    """Outcome of comparing a source item with the existing target item."""
    structure_same: bool
    placeholders_match: bool
    text_valid: bool
    source_blank: bool

    @property
    def is_valid(self) -> bool:
        # Blank source text carries nothing to translate, so only shape and tokens matter
        if self.source_blank:
            return self.structure_same and self.placeholders_match
        return self.structure_same and self.placeholders_match and self.text_valid

    def describe(self) -> str:
        return (
            f"Structure/content mismatch. Structure same: {self.structure_same}, "
            f"Placeholders match: {self.placeholders_match}, Text valid: {self.text_valid}."
        )


def _is_blank(text: str) -> bool:
    return not text or not text.strip()


_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_CLOSE = re.compile(r"\s+(/?>)$")


def normalize_placeholder(token: str) -> str:
    """Spell a tag token the way lxml serializes it, so '<item />' and '<item/>' compare equal."""
    if not token.startswith("<"):
        return token
    return _SPACE_BEFORE_CLOSE.sub(r"\1", _WHITESPACE.sub(" ", token))


def placeholders_match(source: List[List[str]], target: List[List[str]]) -> bool:
    """Compare all placeholders of two items as multisets."""
    return (Counter(normalize_placeholder(p) for group in source for p in group)
            == Counter(normalize_placeholder(p) for group in target for p in group))


def segments_valid(source_texts: List[str], target_texts: List[str]) -> bool:
    return len(source_texts) == len(target_texts) and not any(_is_blank(t) for t in target_texts)


def check_structure(source_item: TranslationItem, target_item: TranslationItem) -> StructureCheck:
    return StructureCheck(
        structure_same=source_item.is_list == target_item.is_list,
        placeholders_match=placeholders_match(source_item.placeholders, target_item.placeholders),
        text_valid=segments_valid(source_item.texts_to_translate, target_item.texts_to_translate),
        source_blank=all(_is_blank(t) for t in source_item.texts_to_translate),
    )


def validate_existing_translation(
    source_item: TranslationItem,
    target_item: TranslationItem,
) -> Tuple[bool, Optional[str]]:
    """
    Decide whether an existing, never-hashed target translation can be kept.

    Returns:
        Tuple of (is_valid, error_reason)
    """
    check = check_structure(source_item, target_item)
    if check.is_valid:
        return True, None
    return False, check.describe()
