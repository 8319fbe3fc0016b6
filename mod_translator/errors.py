"""Exception types raised inside the translation pipeline."""
from typing import Optional


class TranslatorError(Exception):
    """Base exception for all translator errors."""


class ConfigurationError(TranslatorError):
    """Raised when the endpoint, key, model or tuning values are unusable."""


class TranslationPayloadError(TranslatorError):
    """Raised when a model response cannot be parsed into the expected JSON shape."""

    def __init__(self, message: str, raw_content: Optional[str] = None):
        super().__init__(message)
        self.raw_content = raw_content


class TranslationValidationError(TranslatorError):
    """Raised when a parsed response does not cover the requested ids."""

    def __init__(self, message: str, missing_count: int = 0, empty_count: int = 0):
        super().__init__(message)
        self.missing_count = missing_count
        self.empty_count = empty_count


class BatchTranslationError(TranslatorError):
    """Raised when a batch still fails after all retry attempts."""

    def __init__(self, batch_no: int, message: str):
        super().__init__(f"batch#{batch_no}: {message}")
        self.batch_no = batch_no


class SnapshotError(TranslatorError):
    """Raised when a content snapshot file is missing or malformed."""
