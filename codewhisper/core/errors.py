"""
Error taxonomy for the analysis engine.

Every failure that can cross the engine boundary is a CodeWhisperError
subclass carrying a stable ``code`` string. The protocol layer maps these
codes straight into error envelopes.
"""

from typing import Any


class CodeWhisperError(Exception):
    """Base class for all engine errors."""

    code = "InternalError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ParseError(CodeWhisperError):
    """Source could not be turned into a tree at all."""

    code = "ParseError"

    def __init__(self, reason: str, location: tuple[int, int] | None = None):
        details = {}
        if location is not None:
            details = {"line": location[0], "column": location[1]}
        super().__init__(reason, details)
        self.reason = reason
        self.location = location


class SizeLimitError(CodeWhisperError):
    """Input exceeds the configured maximum code size."""

    code = "SizeLimitError"

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Input of {size} bytes exceeds limit of {limit} bytes",
            {"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class ParseTimeoutError(CodeWhisperError):
    """Parsing ran past its wall-clock budget."""

    code = "TimeoutError"

    def __init__(self, budget: float):
        super().__init__(f"Parsing exceeded budget of {budget:.3f}s", {"budget": budget})
        self.budget = budget


class UnsupportedLanguageError(CodeWhisperError):
    """Language is not in the supported_languages allow-list."""

    code = "UnsupportedLanguage"

    def __init__(self, language: str, supported: list[str] | None = None):
        super().__init__(
            f"Unsupported language: {language}",
            {"language": language, "supported": supported or []},
        )
        self.language = language


class InvalidFeedbackTargetError(CodeWhisperError):
    """Feedback referenced a pattern id the store does not know."""

    code = "InvalidFeedbackTarget"

    def __init__(self, pattern_id: str):
        super().__init__(f"Unknown pattern id: {pattern_id}", {"pattern_id": pattern_id})
        self.pattern_id = pattern_id


class StoreCorruptionError(CodeWhisperError):
    """Persisted snapshot is unreadable or has an incompatible schema."""

    code = "StoreCorruption"


class InvalidRequestError(CodeWhisperError):
    """Malformed message envelope or payload."""

    code = "InvalidRequest"
