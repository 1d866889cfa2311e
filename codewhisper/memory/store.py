"""
In-memory pattern store.

Deduplicates candidates by (language, structural signature), keeps the
confidence/frequency bookkeeping, and hands out detached copies so callers
can never mutate stored state behind the lock.
"""

import copy
import hashlib
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Optional

from codewhisper.core.errors import StoreCorruptionError
from codewhisper.learning.extractor import CandidatePattern, PatternType
from codewhisper.memory.models import CodingPattern, utc_now

logger = logging.getLogger(__name__)


def clamp_confidence(value: float) -> float:
    return min(1.0, max(0.0, value))


def pattern_id_for(language: str, signature: str) -> str:
    """Deterministic id for a (language, signature) pair."""
    digest = hashlib.sha1(f"{language}\0{signature}".encode("utf-8")).hexdigest()
    return f"pat_{digest[:12]}"


class PatternStore:
    """Thread-safe store of CodingPattern records."""

    def __init__(
        self,
        smoothing_alpha: float = 0.3,
        base_score: float = 0.5,
        forgetting_floor: float = 0.1,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.smoothing_alpha = smoothing_alpha
        self.base_score = base_score
        self.forgetting_floor = forgetting_floor
        self.clock = clock or utc_now
        self.lock = threading.RLock()
        self._patterns: dict[str, CodingPattern] = {}
        self._index: dict[tuple[str, str], str] = {}

    def __len__(self) -> int:
        with self.lock:
            return len(self._patterns)

    def __contains__(self, pattern_id: str) -> bool:
        with self.lock:
            return pattern_id in self._patterns

    def lookup(self, language: str, signature: str) -> Optional[str]:
        """Id of the record holding (language, signature), or None."""
        with self.lock:
            return self._index.get((language, signature))

    # ------------------------------------------------------------------ writes

    def upsert(self, candidate: CandidatePattern) -> str:
        """
        Merge a candidate into the store.

        A repeat sighting bumps frequency, smooths confidence toward the base
        score and tallies style; a novel signature is inserted at base score.

        Returns:
            Id of the (possibly new) pattern
        """
        with self.lock:
            now = self.clock()
            key = (candidate.language, candidate.signature)
            pattern_id = self._index.get(key)

            if pattern_id is not None:
                pattern = self._patterns[pattern_id]
                pattern.frequency += 1
                if candidate.source_file not in pattern.source_files:
                    pattern.source_files.append(candidate.source_file)
                alpha = self.smoothing_alpha
                pattern.confidence = clamp_confidence(
                    alpha * self.base_score + (1 - alpha) * pattern.confidence
                )
                pattern.tally_style(candidate.style)
                pattern.last_seen = now
                pattern.last_touched = now
                if pattern.retired and pattern.confidence > self.forgetting_floor:
                    pattern.retired = False
                    logger.info(f"Revived pattern {pattern_id} ({pattern.example})")
                return pattern_id

            pattern_id = self._allocate_id(candidate.language, candidate.signature)
            pattern = CodingPattern(
                id=pattern_id,
                pattern_type=candidate.pattern_type,
                language=candidate.language,
                signature=candidate.signature,
                confidence=clamp_confidence(self.base_score),
                frequency=1,
                first_seen=now,
                last_seen=now,
                last_touched=now,
                source_files=[candidate.source_file],
                example=candidate.example,
            )
            pattern.tally_style(candidate.style)
            self._patterns[pattern_id] = pattern
            self._index[key] = pattern_id
            logger.debug(f"New pattern {pattern_id}: {candidate.pattern_type.value} {candidate.example}")
            return pattern_id

    def _allocate_id(self, language: str, signature: str) -> str:
        base = pattern_id_for(language, signature)
        pattern_id = base
        suffix = 2
        while pattern_id in self._patterns:
            pattern_id = f"{base}_{suffix}"
            suffix += 1
        return pattern_id

    @contextmanager
    def editing(self, pattern_id: str) -> Iterator[CodingPattern]:
        """
        Hold the lock and yield the live record for in-place updates.

        Confidence is clamped to [0, 1] when the block exits.

        Raises:
            KeyError: Unknown pattern id
        """
        with self.lock:
            pattern = self._patterns[pattern_id]
            try:
                yield pattern
            finally:
                pattern.confidence = clamp_confidence(pattern.confidence)

    def live_records(self) -> list[CodingPattern]:
        """Live records in id order. Callers must hold ``lock`` while mutating them."""
        with self.lock:
            return [self._patterns[pid] for pid in sorted(self._patterns)]

    def clear(self) -> None:
        with self.lock:
            self._patterns.clear()
            self._index.clear()

    # ------------------------------------------------------------------ reads

    def get(self, pattern_id: str) -> Optional[CodingPattern]:
        """Detached copy of a pattern, or None."""
        with self.lock:
            pattern = self._patterns.get(pattern_id)
            return copy.deepcopy(pattern) if pattern is not None else None

    def query(
        self,
        language: Optional[str] = None,
        pattern_type: Optional[PatternType] = None,
        min_confidence: Optional[float] = None,
        include_retired: bool = False,
    ) -> list[CodingPattern]:
        """
        Detached copies of matching patterns.

        Sorted by confidence desc, frequency desc, id asc.
        """
        with self.lock:
            matches = [
                p for p in self._patterns.values()
                if (language is None or p.language == language)
                and (pattern_type is None or p.pattern_type is pattern_type)
                and (min_confidence is None or p.confidence >= min_confidence)
                and (include_retired or not p.retired)
            ]
            matches.sort(key=lambda p: (-p.confidence, -p.frequency, p.id))
            return copy.deepcopy(matches)

    def stats(self) -> dict[str, Any]:
        with self.lock:
            patterns = list(self._patterns.values())
            active = [p for p in patterns if not p.retired]
            by_language = Counter(p.language for p in active)
            by_type = Counter(p.pattern_type.value for p in active)
            average = sum(p.confidence for p in active) / len(active) if active else 0.0
            return {
                "total_patterns": len(patterns),
                "active_patterns": len(active),
                "retired_patterns": len(patterns) - len(active),
                "total_sightings": sum(p.frequency for p in patterns),
                "average_confidence": round(average, 4),
                "by_language": dict(sorted(by_language.items())),
                "by_type": dict(sorted(by_type.items())),
            }

    # ------------------------------------------------------------------ snapshots

    def snapshot(self) -> list[dict[str, Any]]:
        """Serializable copy of every record, in id order."""
        with self.lock:
            return [self._patterns[pid].to_dict() for pid in sorted(self._patterns)]

    @classmethod
    def from_snapshot(cls, records: list[dict[str, Any]], **kwargs: Any) -> "PatternStore":
        """
        Build a store from snapshot records.

        Raises:
            StoreCorruptionError: A record is malformed or duplicated
        """
        store = cls(**kwargs)
        store.restore(records)
        return store

    def restore(self, records: list[dict[str, Any]]) -> None:
        """
        Replace the contents with snapshot records.

        All records are validated before anything is replaced.

        Raises:
            StoreCorruptionError: A record is malformed or duplicated
        """
        patterns: dict[str, CodingPattern] = {}
        index: dict[tuple[str, str], str] = {}
        for record in records:
            try:
                pattern = CodingPattern.from_dict(record)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise StoreCorruptionError(f"Malformed pattern record: {e}") from e
            key = (pattern.language, pattern.signature)
            if pattern.id in patterns or key in index:
                raise StoreCorruptionError(f"Duplicate pattern record: {pattern.id}")
            pattern.confidence = clamp_confidence(pattern.confidence)
            patterns[pattern.id] = pattern
            index[key] = pattern.id
        with self.lock:
            self._patterns = patterns
            self._index = index

    def merge_records(self, records: list[dict[str, Any]]) -> int:
        """
        Import records from another snapshot.

        Records whose (language, signature) is already known keep the local
        record but add the imported frequency and source files.

        Returns:
            Number of new patterns added
        """
        incoming = PatternStore.from_snapshot(records)
        added = 0
        with self.lock:
            for pattern in incoming._patterns.values():
                key = (pattern.language, pattern.signature)
                existing_id = self._index.get(key)
                if existing_id is not None:
                    existing = self._patterns[existing_id]
                    existing.frequency += pattern.frequency
                    for source in pattern.source_files:
                        if source not in existing.source_files:
                            existing.source_files.append(source)
                    continue
                pattern.id = self._allocate_id(pattern.language, pattern.signature)
                self._patterns[pattern.id] = pattern
                self._index[key] = pattern.id
                added += 1
        return added
