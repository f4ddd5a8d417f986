"""
Translation data classes shared across the pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass
class TranslationItem:
    """Unit of work extracted from one leaf node."""
    texts_to_translate: List[str] = field(default_factory=list)  # one per segment (one per <li> for lists)
    placeholders: List[List[str]] = field(default_factory=list)  # index-aligned with texts_to_translate
    is_list: bool = False
    original_content: str = ""  # untouched source text, the hash input


class FileStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass
class FileOutcome:
    """Result of one file operation in a language pass."""
    file: str
    status: FileStatus
    error: Optional[str] = None
    language: str = ""

    @property
    def failed(self) -> bool:
        return self.status == FileStatus.FAILED

    def to_dict(self):
        return {
            "language": self.language,
            "file": self.file,
            "status": self.status.value,
            "error": self.error,
        }
