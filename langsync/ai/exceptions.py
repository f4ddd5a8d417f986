"""
Error types

Oracle errors derive from TranslationError so callers can tell transient
failures (retried by the client) from fatal ones. Kept free of other
langsync imports so config, providers and service can all depend on it.
"""


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class OracleTimeoutError(TranslationError):
    """The oracle did not answer within the configured timeout. Retryable."""


class OracleTransportError(TranslationError):
    """Connection failure or a retryable HTTP status (429, 5xx)."""


class MalformedResponseError(TranslationError):
    """The oracle answered with something that is not the expected JSON object. Never retried."""


class FormattingError(TranslationError):
    """Placeholder tokens still wrong after all corrective resubmissions."""


class OperationCancelledError(TranslationError):
    """Cancellation was requested before the operation could finish."""


class ConfigurationError(TranslationError):
    """Missing paths, keys or settings. Fatal to the whole run."""


class ManifestError(TranslationError):
    """A fingerprint manifest file exists but cannot be read."""


TRANSIENT_ERRORS = (OracleTimeoutError, OracleTransportError)
