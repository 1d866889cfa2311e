"""
Feedback learner.

Turns user reactions into confidence changes and preference weights, and
runs the forgetting pass that decays patterns nobody has touched recently.
All arithmetic is explicit:

- accepted: c' = c + (1 - c) * gain
- rejected: c' = c * penalty
- modified: c' = c * modify_factor, then the modified code is learned
- ignored:  no change; enough in a row force a decay pass
- decay:    c' = max(c * decay_factor, floor) for stale patterns
"""

import copy
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from codewhisper.core.config import LearningConfig
from codewhisper.core.errors import CodeWhisperError, InvalidFeedbackTargetError
from codewhisper.learning.extractor import CandidatePattern
from codewhisper.memory.models import FeedbackAction, FeedbackEvent, utc_now
from codewhisper.memory.store import PatternStore

logger = logging.getLogger(__name__)

# Parses modified content into candidates: (source, language) -> candidates
Reparser = Callable[[str, str], list[CandidatePattern]]


@dataclass
class UserPreferenceModel:
    """Learned weights and preferred/avoided pattern sets."""
    type_weights: dict[str, float] = field(default_factory=dict)
    language_weights: dict[str, float] = field(default_factory=dict)
    preferred: set[str] = field(default_factory=set)
    avoided: set[str] = field(default_factory=set)

    def type_weight(self, pattern_type: str) -> float:
        return self.type_weights.get(pattern_type, 1.0)

    def language_weight(self, language: str) -> float:
        return self.language_weights.get(language, 1.0)

    def modifier(self, pattern_id: str, boost: float, penalty: float) -> float:
        """Boost for preferred patterns, penalty for avoided ones, else 1."""
        if pattern_id in self.preferred:
            return boost
        if pattern_id in self.avoided:
            return penalty
        return 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_weights": dict(sorted(self.type_weights.items())),
            "language_weights": dict(sorted(self.language_weights.items())),
            "preferred": sorted(self.preferred),
            "avoided": sorted(self.avoided),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserPreferenceModel":
        return cls(
            type_weights={k: float(v) for k, v in data.get("type_weights", {}).items()},
            language_weights={k: float(v) for k, v in data.get("language_weights", {}).items()},
            preferred=set(data.get("preferred", [])),
            avoided=set(data.get("avoided", [])),
        )


@dataclass
class DecayReport:
    """Result of a forgetting pass."""
    examined: int = 0
    decayed: int = 0
    retired: int = 0
    retired_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "decayed": self.decayed,
            "retired": self.retired,
            "retired_ids": list(self.retired_ids),
        }


@dataclass
class FeedbackOutcome:
    """What applying one feedback event changed."""
    pattern_id: str
    action: FeedbackAction
    previous_confidence: float
    confidence: float
    retired: bool
    learned_pattern_ids: list[str] = field(default_factory=list)
    reparse_error: Optional[str] = None
    decay: Optional[DecayReport] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pattern_id": self.pattern_id,
            "action": self.action.value,
            "previous_confidence": round(self.previous_confidence, 6),
            "confidence": round(self.confidence, 6),
            "retired": self.retired,
            "learned_pattern_ids": list(self.learned_pattern_ids),
        }
        if self.reparse_error:
            data["reparse_error"] = self.reparse_error
        if self.decay is not None:
            data["decay"] = self.decay.to_dict()
        return data


class FeedbackLearner:
    """Applies feedback and decay to a PatternStore."""

    def __init__(
        self,
        store: PatternStore,
        config: Optional[LearningConfig] = None,
        reparse: Optional[Reparser] = None,
        preferences: Optional[UserPreferenceModel] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.config = config or LearningConfig()
        self.reparse = reparse
        self._preferences = preferences or UserPreferenceModel()
        self.clock = clock or utc_now
        self._ignore_streak = 0

    @property
    def preferences(self) -> UserPreferenceModel:
        """Read-only copy of the preference model."""
        with self.store.lock:
            return copy.deepcopy(self._preferences)

    @property
    def ignore_streak(self) -> int:
        return self._ignore_streak

    def replace_preferences(self, preferences: UserPreferenceModel) -> None:
        with self.store.lock:
            self._preferences = preferences
            self._ignore_streak = 0

    # ------------------------------------------------------------------ feedback

    def apply(self, event: FeedbackEvent) -> FeedbackOutcome:
        """
        Apply one feedback event.

        Raises:
            InvalidFeedbackTargetError: Unknown pattern id; nothing changes
        """
        if event.pattern_id not in self.store:
            raise InvalidFeedbackTargetError(event.pattern_id)

        candidates: list[CandidatePattern] = []
        reparse_error = None
        if event.action is FeedbackAction.MODIFIED and event.modified_content and self.reparse:
            language = event.context.language or self._language_of(event.pattern_id)
            try:
                candidates = self.reparse(event.modified_content, language)
            except CodeWhisperError as e:
                reparse_error = e.message
                logger.warning(f"Could not learn from modified content for {event.pattern_id}: {e.message}")

        cfg = self.config
        with self.store.lock:
            if event.pattern_id not in self.store:
                raise InvalidFeedbackTargetError(event.pattern_id)
            with self.store.editing(event.pattern_id) as pattern:
                previous = pattern.confidence
                pattern.feedback.append(event)
                if event.action is FeedbackAction.ACCEPTED:
                    pattern.confidence = previous + (1 - previous) * cfg.gain
                elif event.action is FeedbackAction.REJECTED:
                    pattern.confidence = previous * cfg.penalty
                elif event.action is FeedbackAction.MODIFIED:
                    pattern.confidence = previous * cfg.modify_factor

                if event.action is not FeedbackAction.IGNORED:
                    pattern.last_touched = event.timestamp
                if pattern.retired and pattern.confidence > cfg.forgetting_floor \
                        and event.action is FeedbackAction.ACCEPTED:
                    pattern.retired = False
                    logger.info(f"Revived pattern {pattern.id} after acceptance")
                net = pattern.net_feedback()
                pattern_type = pattern.pattern_type.value
                language = pattern.language

            if event.action in (FeedbackAction.ACCEPTED, FeedbackAction.REJECTED):
                step = cfg.weight_step if event.action is FeedbackAction.ACCEPTED else -cfg.weight_step
                self._nudge(self._preferences.type_weights, pattern_type, step)
                self._nudge(self._preferences.language_weights, language, step)
                self._update_preference_sets(event.pattern_id, net)

            decay_report = None
            if event.action is FeedbackAction.IGNORED:
                self._ignore_streak += 1
                if self._ignore_streak >= cfg.ignore_streak_threshold:
                    logger.info(f"{self._ignore_streak} ignored suggestions in a row; running decay")
                    decay_report = self.decay(event.timestamp)
                    self._ignore_streak = 0
            else:
                self._ignore_streak = 0

            learned = [self.store.upsert(candidate) for candidate in candidates]
            current = self.store.get(event.pattern_id)

        logger.debug(
            f"Feedback {event.action.value} on {event.pattern_id}: "
            f"{previous:.3f} -> {current.confidence:.3f}"
        )
        return FeedbackOutcome(
            pattern_id=event.pattern_id,
            action=event.action,
            previous_confidence=previous,
            confidence=current.confidence,
            retired=current.retired,
            learned_pattern_ids=learned,
            reparse_error=reparse_error,
            decay=decay_report,
        )

    def _language_of(self, pattern_id: str) -> str:
        pattern = self.store.get(pattern_id)
        return pattern.language if pattern is not None else ""

    def _nudge(self, weights: dict[str, float], key: str, step: float) -> None:
        value = weights.get(key, 1.0) + step
        weights[key] = min(self.config.max_weight, max(self.config.min_weight, value))

    def _update_preference_sets(self, pattern_id: str, net: int) -> None:
        threshold = self.config.preference_threshold
        prefs = self._preferences
        prefs.preferred.discard(pattern_id)
        prefs.avoided.discard(pattern_id)
        if net >= threshold:
            prefs.preferred.add(pattern_id)
        elif net <= -threshold:
            prefs.avoided.add(pattern_id)

    # ------------------------------------------------------------------ decay

    def decay(self, now: Optional[datetime] = None) -> DecayReport:
        """
        Forget stale patterns.

        Patterns untouched for longer than the recency window lose
        confidence (never below the floor); anything at or below the floor
        is retired.
        """
        now = now or self.clock()
        cfg = self.config
        window = timedelta(hours=cfg.recency_window_hours)
        report = DecayReport()

        with self.store.lock:
            for pattern in self.store.live_records():
                if pattern.retired:
                    continue
                report.examined += 1
                if now - pattern.last_touched > window and pattern.confidence > cfg.forgetting_floor:
                    pattern.confidence = max(pattern.confidence * cfg.decay_factor, cfg.forgetting_floor)
                    report.decayed += 1
                if pattern.confidence <= cfg.forgetting_floor:
                    pattern.retired = True
                    report.retired += 1
                    report.retired_ids.append(pattern.id)

        if report.decayed or report.retired:
            logger.info(f"Decay: {report.decayed} decayed, {report.retired} retired of {report.examined}")
        return report

    # ------------------------------------------------------------------ stats

    def feedback_stats(self) -> dict[str, Any]:
        """Totals per action, acceptance rate overall and per language, top rejection reasons."""
        actions: Counter = Counter()
        by_language: dict[str, Counter] = {}
        reasons: Counter = Counter()

        for pattern in self.store.query(include_retired=True):
            for event in pattern.feedback:
                actions[event.action.value] += 1
                language = event.context.language or pattern.language
                by_language.setdefault(language, Counter())[event.action.value] += 1
                if event.action is FeedbackAction.REJECTED and event.reason:
                    reasons[event.reason] += 1

        total = sum(actions.values())
        accepted = actions[FeedbackAction.ACCEPTED.value]
        return {
            "total": total,
            "accepted": accepted,
            "rejected": actions[FeedbackAction.REJECTED.value],
            "modified": actions[FeedbackAction.MODIFIED.value],
            "ignored": actions[FeedbackAction.IGNORED.value],
            "acceptance_rate": accepted / total if total else 0.0,
            "acceptance_by_language": {
                lang: counts[FeedbackAction.ACCEPTED.value] / sum(counts.values())
                for lang, counts in sorted(by_language.items())
            },
            "top_rejection_reasons": [reason for reason, _ in reasons.most_common(5)],
            "ignore_streak": self._ignore_streak,
        }
