"""
AI Module

This module provides the translation oracle client and related utilities.
AIService lives in langsync.ai.service; only the error types are re-exported
here so that config and logging can import them without a cycle.
"""

from langsync.ai.exceptions import (
    TranslationError,
    OracleTimeoutError,
    OracleTransportError,
    MalformedResponseError,
    FormattingError,
    OperationCancelledError,
    ConfigurationError,
    ManifestError,
)

__all__ = [
    'TranslationError',
    'OracleTimeoutError',
    'OracleTransportError',
    'MalformedResponseError',
    'FormattingError',
    'OperationCancelledError',
    'ConfigurationError',
    'ManifestError',
]
