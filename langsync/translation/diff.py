"""
Content extraction and diff engine

Finds the translatable leaf nodes of a source document (a leaf whose next
meaningful sibling is an <!-- <En>...</En> --> comment) and decides, against
an existing target document and its fingerprints, which of them need a
translation pass.
"""

import re
from typing import Dict, List, Optional, Tuple

from lxml import etree

from langsync.logger import get_logger
from langsync.translation import placeholders
from langsync.translation.documents import inner_xml, is_element, local_name, parse_fragment
from langsync.translation.manifest import content_hash
from langsync.translation.models import TranslationItem
from langsync.translation.validator import validate_existing_translation

logger = get_logger(__name__)

SOURCE_COMMENT_PATTERN = re.compile(r"<En>(.*)</En>", re.DOTALL)
LIST_ITEM_TAG = "li"


def _is_blank(text: Optional[str]) -> bool:
    return not text or not text.strip()


def find_source_comment(element) -> Tuple[bool, str]:
    """
    Look for the English source comment belonging to element.

    Scans forward through the following siblings. The search ends at the first
    element or at non-blank text, so the comment has to be the next meaningful
    sibling.

    Returns:
        Tuple of (found, content) where content is the stripped text inside <En>...</En>
    """
    if not _is_blank(element.tail):
        return False, ""

    node = element.getnext()
    while node is not None:
        if node.tag is etree.Comment:
            match = SOURCE_COMMENT_PATTERN.search(node.text or "")
            if match:
                return True, match.group(1).strip()
        elif is_element(node):
            break

        if not _is_blank(node.tail):
            break
        node = node.getnext()

    return False, ""


def create_translation_item(original_content: str) -> TranslationItem:
    """
    Split content into translatable segments.

    Content made of <li> elements becomes one segment per item; anything else,
    including content that is not well-formed markup, is a single segment.
    """
    item = TranslationItem(original_content=original_content)

    try:
        parsed = parse_fragment(original_content)
    except etree.XMLSyntaxError:
        logger.debug("Content is not well-formed markup, treating it as plain text")
        parsed = None

    if parsed is not None:
        list_items = [child for child in parsed if is_element(child) and child.tag == LIST_ITEM_TAG]
        if list_items:
            for li in list_items:
                sanitized, found = placeholders.extract(inner_xml(li))
                item.texts_to_translate.append(sanitized)
                item.placeholders.append(found)
            item.is_list = True
            return item

    sanitized, found = placeholders.extract(original_content)
    item.texts_to_translate = [sanitized]
    item.placeholders = [found]
    item.is_list = False
    return item


def iter_translatable_nodes(doc):
    """Yield (element, source_text) for every leaf element with an English source comment."""
    root = doc.getroot()
    if root is None:
        return
    for element in root.iter(tag=etree.Element):
        if any(is_element(child) for child in element):
            continue
        found, content = find_source_comment(element)
        if found:
            yield element, content


def get_translatable_items(
    source_doc,
    target_elements: Optional[Dict[str, etree._Element]] = None,
    file_hashes: Optional[Dict[str, str]] = None,
    debug_output: Optional[List[str]] = None,
) -> Dict[str, TranslationItem]:
    """
    Collect the nodes of source_doc that need a translation pass.

    Without target_elements (new file) every translatable node is returned.
    With target_elements each node is classified:
    - missing in the target -> translate
    - fingerprint stored -> skip when the source hash matches, re-translate otherwise
    - no fingerprint -> keep the target when it passes the structural checks

    Args:
        source_doc: Parsed English template document
        target_elements: Target root children by node key, or None for a new file
        file_hashes: Stored node key -> source hash for this file
        debug_output: Optional list that receives one human-readable reason per scheduled node

    Returns:
        Dict of node key -> TranslationItem, in document order

    Raises:
        ValueError: two translatable nodes share the same key
    """
    items_to_translate: Dict[str, TranslationItem] = {}

    for element, content in iter_translatable_nodes(source_doc):
        key = local_name(element)
        if key in items_to_translate:
            raise ValueError(f"Duplicate translatable node '{key}' in source document")

        if target_elements is not None:
            target_element = target_elements.get(key)
            if target_element is None:
                _add_reason(debug_output, key, "Target element not found.")
            else:
                stored_hash = file_hashes.get(key) if file_hashes else None
                if stored_hash is not None:
                    if stored_hash.lower() == content_hash(content):
                        continue
                    _add_reason(debug_output, key, "Source text changed (hash mismatch). Re-translating.")
                else:
                    is_valid, reason = validate_existing_translation(
                        create_translation_item(content),
                        create_translation_item(inner_xml(target_element)),
                    )
                    if is_valid:
                        continue
                    _add_reason(debug_output, key, reason)

        items_to_translate[key] = create_translation_item(content)

    return items_to_translate


def _add_reason(debug_output: Optional[List[str]], key: str, reason: str) -> None:
    if debug_output is not None:
        debug_output.append(f"'{key}': {reason}")


def update_element_translation(element, final_translation: str) -> None:
    """Replace the content of element with a translation, parsed as markup when possible."""
    try:
        parsed = parse_fragment(final_translation)
    except etree.XMLSyntaxError:
        parsed = None

    element.text = None
    for child in list(element):
        element.remove(child)

    if parsed is None:
        element.text = final_translation
        return

    element.text = parsed.text
    for child in list(parsed):
        element.append(child)
