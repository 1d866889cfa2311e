"""
Core infrastructure components.

This module contains foundational infrastructure like logging, configuration
and the error taxonomy.
"""

from codewhisper.core.config import Config, load_config
from codewhisper.core.errors import (
    CodeWhisperError,
    InvalidFeedbackTargetError,
    InvalidRequestError,
    ParseError,
    ParseTimeoutError,
    SizeLimitError,
    StoreCorruptionError,
    UnsupportedLanguageError,
)
from codewhisper.core.logging import setup_logging

__all__ = [
    "Config",
    "load_config",
    "setup_logging",
    "CodeWhisperError",
    "InvalidFeedbackTargetError",
    "InvalidRequestError",
    "ParseError",
    "ParseTimeoutError",
    "SizeLimitError",
    "StoreCorruptionError",
    "UnsupportedLanguageError",
]
