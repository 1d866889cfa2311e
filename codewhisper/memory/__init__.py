"""
Pattern memory: the in-memory store and its snapshot persistence.
"""

from codewhisper.memory.models import (
    CodingPattern,
    FeedbackAction,
    FeedbackContext,
    FeedbackEvent,
)
from codewhisper.memory.persistence import SCHEMA_VERSION, SnapshotStorage
from codewhisper.memory.store import PatternStore

__all__ = [
    "CodingPattern",
    "FeedbackAction",
    "FeedbackContext",
    "FeedbackEvent",
    "PatternStore",
    "SCHEMA_VERSION",
    "SnapshotStorage",
]
