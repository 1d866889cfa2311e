"""
Suggestion generation.

Ranks stored patterns for an editing context. The generator only reads:
it works on detached copies from the store and a copy of the preference
model, so asking for suggestions never changes learned state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from codewhisper.core.config import EngineConfig, LearningConfig
from codewhisper.learning.extractor import PatternType
from codewhisper.learning.learner import UserPreferenceModel
from codewhisper.memory.models import CodingPattern
from codewhisper.memory.store import PatternStore
from codewhisper.parsing.base import normalize_language

logger = logging.getLogger(__name__)

_PATTERN_TYPE_VALUES = {pattern_type.value: pattern_type for pattern_type in PatternType}


@dataclass
class SuggestionContext:
    """What the user is working on."""
    language: str
    recent_patterns: list[str] = field(default_factory=list)
    max_results: Optional[int] = None
    confidence_threshold: Optional[float] = None


@dataclass
class Suggestion:
    """A ranked pattern suggestion."""
    pattern_id: str
    pattern_type: PatternType
    adjusted_score: float
    rationale: str
    example: str
    confidence: float
    frequency: int
    style: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "pattern_type": self.pattern_type.value,
            "adjusted_score": round(self.adjusted_score, 6),
            "rationale": self.rationale,
            "example": self.example,
            "confidence": round(self.confidence, 6),
            "frequency": self.frequency,
            "style": dict(self.style),
        }


class SuggestionGenerator:
    """Produces ranked suggestions from the store and learned preferences."""

    def __init__(
        self,
        store: PatternStore,
        preferences: Callable[[], UserPreferenceModel],
        engine_config: Optional[EngineConfig] = None,
        learning_config: Optional[LearningConfig] = None,
    ):
        self.store = store
        self.preferences = preferences
        self.engine_config = engine_config or EngineConfig()
        self.learning_config = learning_config or LearningConfig()

    def suggest(self, context: SuggestionContext) -> list[Suggestion]:
        """
        Rank patterns for a context.

        adjusted_score = confidence x language weight x type weight x
        (boost | penalty | 1). Results below the threshold are dropped; the
        rest are sorted by score, frequency and recency, then id.
        """
        language = normalize_language(context.language)
        threshold = context.confidence_threshold
        if threshold is None:
            threshold = self.engine_config.confidence_threshold
        limit = context.max_results
        if limit is None:
            limit = self.engine_config.max_suggestions
        if limit <= 0:
            return []

        prefs = self.preferences()
        wanted_types = self._recent_types(context.recent_patterns)

        scored: list[tuple[float, CodingPattern]] = []
        for pattern in self.store.query(language=language):
            if wanted_types and pattern.pattern_type not in wanted_types:
                continue
            score = (
                pattern.confidence
                * prefs.language_weight(pattern.language)
                * prefs.type_weight(pattern.pattern_type.value)
                * prefs.modifier(
                    pattern.id,
                    self.learning_config.preference_boost,
                    self.learning_config.avoidance_penalty,
                )
            )
            if score >= threshold:
                scored.append((score, pattern))

        scored.sort(key=lambda item: (
            -item[0],
            -item[1].frequency,
            -item[1].last_seen.timestamp(),
            item[1].id,
        ))

        suggestions = [
            Suggestion(
                pattern_id=pattern.id,
                pattern_type=pattern.pattern_type,
                adjusted_score=score,
                rationale=self._rationale(pattern, prefs),
                example=pattern.example,
                confidence=pattern.confidence,
                frequency=pattern.frequency,
                style=pattern.dominant_style(),
            )
            for score, pattern in scored[:limit]
        ]
        logger.debug(f"{len(suggestions)} suggestions for {language} from {len(scored)} candidates")
        return suggestions

    def _recent_types(self, recent: list[str]) -> set[PatternType]:
        """Pattern types of recently used patterns (ids or type names)."""
        types: set[PatternType] = set()
        for ref in recent:
            if ref in _PATTERN_TYPE_VALUES:
                types.add(_PATTERN_TYPE_VALUES[ref])
                continue
            pattern = self.store.get(ref)
            if pattern is not None:
                types.add(pattern.pattern_type)
        return types

    @staticmethod
    def _rationale(pattern: CodingPattern, prefs: UserPreferenceModel) -> str:
        files = len(pattern.source_files)
        parts = [
            f"{pattern.pattern_type.value.replace('_', ' ')} seen {pattern.frequency} "
            f"time{'s' if pattern.frequency != 1 else ''} in {files} file{'s' if files != 1 else ''}",
            f"confidence {pattern.confidence:.2f}",
        ]
        if pattern.id in prefs.preferred:
            parts.append("you usually accept this")
        elif pattern.id in prefs.avoided:
            parts.append("you often reject this")
        naming = pattern.dominant_style().get("naming_convention")
        if naming:
            parts.append(f"{naming} naming")
        return "; ".join(parts)
