"""
Records held by the pattern store.

CodingPattern is the unit of learned knowledge; FeedbackEvent is the
immutable record of one user reaction to a suggestion built from it.
Both serialize to plain JSON-compatible dicts for the snapshot file.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from codewhisper.learning.extractor import PatternType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FeedbackAction(Enum):
    """User reactions to a suggestion."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"
    IGNORED = "ignored"


@dataclass(frozen=True)
class FeedbackContext:
    """Where and when feedback was given."""
    language: Optional[str] = None
    project: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "language": self.language,
            "project": self.project,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedbackContext":
        timestamp = data.get("timestamp")
        return cls(
            language=data.get("language"),
            project=data.get("project"),
            timestamp=parse_timestamp(timestamp) if timestamp else None,
        )


@dataclass(frozen=True)
class FeedbackEvent:
    """One user reaction to a pattern. Immutable once logged."""
    pattern_id: str
    action: FeedbackAction
    timestamp: datetime = field(default_factory=utc_now)
    reason: Optional[str] = None
    context: FeedbackContext = field(default_factory=FeedbackContext)
    modified_content: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pattern_id": self.pattern_id,
            "action": self.action.value,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict(),
        }
        if self.reason:
            data["reason"] = self.reason
        if self.modified_content is not None:
            data["modified_content"] = self.modified_content
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedbackEvent":
        return cls(
            pattern_id=data["pattern_id"],
            action=FeedbackAction(data["action"]),
            timestamp=parse_timestamp(data["timestamp"]),
            reason=data.get("reason"),
            context=FeedbackContext.from_dict(data.get("context") or {}),
            modified_content=data.get("modified_content"),
        )


@dataclass
class CodingPattern:
    """A learned structural/stylistic pattern."""
    id: str
    pattern_type: PatternType
    language: str
    signature: str
    confidence: float
    frequency: int
    first_seen: datetime
    last_seen: datetime
    last_touched: datetime
    source_files: list[str] = field(default_factory=list)
    feedback: list[FeedbackEvent] = field(default_factory=list)
    style_counts: dict[str, dict[str, int]] = field(default_factory=dict)
    example: str = ""
    retired: bool = False

    def tally_style(self, style: dict[str, str]) -> None:
        for attribute, value in style.items():
            counts = self.style_counts.setdefault(attribute, {})
            counts[value] = counts.get(value, 0) + 1

    def dominant_style(self) -> dict[str, str]:
        """Most frequently observed value per style attribute (ties: alphabetical)."""
        dominant = {}
        for attribute, counts in sorted(self.style_counts.items()):
            if counts:
                dominant[attribute] = min(counts.items(), key=lambda item: (-item[1], item[0]))[0]
        return dominant

    def feedback_counts(self) -> Counter:
        return Counter(event.action.value for event in self.feedback)

    def net_feedback(self) -> int:
        """Accepted minus rejected events."""
        counts = self.feedback_counts()
        return counts[FeedbackAction.ACCEPTED.value] - counts[FeedbackAction.REJECTED.value]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pattern_type": self.pattern_type.value,
            "language": self.language,
            "signature": self.signature,
            "confidence": self.confidence,
            "frequency": self.frequency,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "last_touched": self.last_touched.isoformat(),
            "source_files": list(self.source_files),
            "feedback": [event.to_dict() for event in self.feedback],
            "style_counts": {k: dict(v) for k, v in self.style_counts.items()},
            "example": self.example,
            "retired": self.retired,
        }

    def summary(self) -> dict[str, Any]:
        """Compact view without the feedback log, for API responses."""
        return {
            "id": self.id,
            "pattern_type": self.pattern_type.value,
            "language": self.language,
            "confidence": round(self.confidence, 4),
            "frequency": self.frequency,
            "example": self.example,
            "style": self.dominant_style(),
            "source_files": list(self.source_files),
            "retired": self.retired,
            "last_seen": self.last_seen.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CodingPattern":
        return cls(
            id=data["id"],
            pattern_type=PatternType(data["pattern_type"]),
            language=data["language"],
            signature=data["signature"],
            confidence=float(data["confidence"]),
            frequency=int(data["frequency"]),
            first_seen=parse_timestamp(data["first_seen"]),
            last_seen=parse_timestamp(data["last_seen"]),
            last_touched=parse_timestamp(data["last_touched"]),
            source_files=list(data.get("source_files", [])),
            feedback=[FeedbackEvent.from_dict(e) for e in data.get("feedback", [])],
            style_counts={k: dict(v) for k, v in data.get("style_counts", {}).items()},
            example=data.get("example", ""),
            retired=bool(data.get("retired", False)),
        )
