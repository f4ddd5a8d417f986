"""
Translation utility functions for chunking, path normalization and JSON extraction.
"""

import json
import re
from itertools import islice
from pathlib import Path, PurePath
from typing import Dict, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar("T")

_JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```", re.MULTILINE)


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """
    Split an iterable into lists of at most size elements, keeping order.

    Example:
        >>> list(chunked([1, 2, 3], 2))
        [[1, 2], [3]]
    """
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


def chunk_dict(mapping: Dict[str, T], size: int) -> List[Dict[str, T]]:
    """Split a dict into ordered sub-dicts of at most size entries."""
    return [dict(chunk) for chunk in chunked(mapping.items(), size)]


def normalize_path(path) -> str:
    """
    Normalize a relative path for use as a key in manifests, ledgers and reports.

    Backslashes become forward slashes so keys written on one OS match on another.
    """
    return str(path).replace("\\", "/")


def relative_key(file_path: Path, base_path: Path) -> str:
    """Template-relative POSIX path of file_path."""
    return PurePath(Path(file_path).relative_to(base_path)).as_posix()


def match_json_object(text: str) -> Optional[str]:
    """
    Extract JSON object from mixed text using bracket matching.

    Args:
        text: Text potentially containing JSON object

    Returns:
        Extracted JSON object string, or None if not found
    """
    if not text:
        return None

    stack = []
    start = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue

        if char == '\\':
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char == '{':
            if not stack:
                start = i
            stack.append('{')
        elif char == '}':
            if stack:
                stack.pop()
                if not stack and start >= 0:
                    return text[start:i + 1]

    return None


def clean_api_response(raw_response: str, is_json: bool = True) -> str:
    """
    Strip the wrapping an LLM tends to add around its answer.

    For JSON answers: the body of a ```json fence, else the outermost {...}
    span. For plain answers: surrounding whitespace and quotes.
    """
    raw_response = raw_response or ""
    if is_json:
        match = _JSON_FENCE_PATTERN.search(raw_response)
        if match:
            return match.group(1).strip()

        extracted = match_json_object(raw_response)
        if extracted:
            return extracted.strip()

        start = raw_response.find('{')
        end = raw_response.rfind('}')
        if start != -1 and end > start:
            return raw_response[start:end + 1].strip()

    return raw_response.strip().strip('"')


def parse_translation_object(raw_response: str) -> Dict[str, str]:
    """
    Parse an oracle answer into key -> translated text.

    Non-string values are dropped.

    Raises:
        json.JSONDecodeError: the answer holds no parseable JSON object
        ValueError: the JSON is valid but not an object
    """
    data = json.loads(clean_api_response(raw_response))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return {str(key): value for key, value in data.items() if isinstance(value, str)}
