"""
Engine facade.

One CodeWhisperEngine owns the front-end registry, the pattern store, the
feedback learner and the suggestion generator for a session. Persistence
happens only at the session boundaries: load_session(), save_checkpoint()
and close().
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from codewhisper.core.config import Config
from codewhisper.core.errors import CodeWhisperError, StoreCorruptionError
from codewhisper.learning.extractor import CandidatePattern, PatternExtractor, PatternType
from codewhisper.learning.learner import (
    DecayReport,
    FeedbackLearner,
    FeedbackOutcome,
    UserPreferenceModel,
)
from codewhisper.learning.metrics import analyze_formatting, analyze_structure
from codewhisper.memory.models import (
    CodingPattern,
    FeedbackAction,
    FeedbackContext,
    FeedbackEvent,
    utc_now,
)
from codewhisper.memory.persistence import SCHEMA_VERSION, SnapshotStorage, migrate
from codewhisper.memory.store import PatternStore
from codewhisper.parsing import create_registry
from codewhisper.parsing.base import detect_language, normalize_language
from codewhisper.suggestions.generator import Suggestion, SuggestionContext, SuggestionGenerator

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Outcome of analyzing one source text."""
    language: str
    source_file: str
    pattern_ids: list[str] = field(default_factory=list)
    candidates: int = 0
    new_patterns: int = 0
    diagnostics: list[dict[str, Any]] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.diagnostics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "language": self.language,
            "source_file": self.source_file,
            "pattern_ids": list(self.pattern_ids),
            "candidates": self.candidates,
            "new_patterns": self.new_patterns,
            "diagnostics": list(self.diagnostics),
            "partial": self.partial,
            "metrics": dict(self.metrics),
        }


@dataclass
class BatchItem:
    """One file for analyze_batch."""
    source: str
    language: Optional[str] = None
    source_file: str = "<memory>"


@dataclass
class BatchResult:
    """Outcome of analyze_batch."""
    results: list[AnalysisResult] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "errors": list(self.errors),
            "cancelled": self.cancelled,
        }


class CodeWhisperEngine:
    """Session-scoped owner of the learning components."""

    def __init__(
        self,
        config: Optional[Config] = None,
        storage: Optional[SnapshotStorage] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or Config()
        self.clock = clock or utc_now
        learning = self.config.learning

        self.registry = create_registry(self.config.engine)
        self.extractor = PatternExtractor()
        self.store = PatternStore(
            smoothing_alpha=learning.smoothing_alpha,
            base_score=learning.base_score,
            forgetting_floor=learning.forgetting_floor,
            clock=self.clock,
        )
        self.learner = FeedbackLearner(
            self.store,
            config=learning,
            reparse=self._reparse,
            clock=self.clock,
        )
        self.generator = SuggestionGenerator(
            self.store,
            preferences=lambda: self.learner.preferences,
            engine_config=self.config.engine,
            learning_config=learning,
        )

        if storage is None and self.config.storage.enabled:
            storage = SnapshotStorage(self.config.storage.path)
        self.storage = storage
        self._closed = False

    # ------------------------------------------------------------------ lifecycle

    def load_session(self) -> int:
        """
        Load the persisted snapshot.

        A corrupt or incompatible snapshot leaves the store empty and logs a
        warning rather than failing the session.

        Returns:
            Number of patterns loaded
        """
        if self.storage is None:
            return 0
        try:
            snapshot = self.storage.load()
            if snapshot is None:
                logger.info("No pattern snapshot yet; starting empty")
                return 0
            self._restore(snapshot)
        except StoreCorruptionError as e:
            logger.warning(f"Ignoring unusable pattern snapshot: {e.message}")
            self.store.clear()
            self.learner.replace_preferences(UserPreferenceModel())
            return 0
        return len(self.store)

    def save_checkpoint(self) -> Optional[Path]:
        """Write the current state to storage. Returns the path written, if any."""
        if self.storage is None:
            return None
        self.storage.save(self.export_data())
        return self.storage.path

    def close(self) -> None:
        """Save a final checkpoint. Safe to call more than once."""
        if self._closed:
            return
        self.save_checkpoint()
        self._closed = True
        logger.info("Engine session closed")

    def __enter__(self) -> "CodeWhisperEngine":
        self.load_session()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ analysis

    def analyze(
        self,
        source: str,
        language: Optional[str] = None,
        source_file: str = "<memory>",
    ) -> AnalysisResult:
        """
        Parse, extract and store patterns from one source text.

        Parsing and extraction finish before anything is stored, so a failing
        input leaves the store unchanged.

        Raises:
            SizeLimitError, UnsupportedLanguageError, ParseTimeoutError, ParseError
        """
        language = self._resolve_language(language, source_file)
        result = self.registry.parse(source, language, source_file)
        formatting = analyze_formatting(source)
        candidates = list(self.extractor.extract(result.tree, result.language, source_file, formatting))

        analysis = AnalysisResult(
            language=result.language,
            source_file=source_file,
            candidates=len(candidates),
            diagnostics=[d.to_dict() for d in result.diagnostics],
            metrics={
                "structure": analyze_structure(result.tree).to_dict(),
                "formatting": formatting.to_dict(),
            },
        )
        with self.store.lock:
            for candidate in candidates:
                is_new = self.store.lookup(candidate.language, candidate.signature) is None
                pattern_id = self.store.upsert(candidate)
                if is_new:
                    analysis.new_patterns += 1
                if pattern_id not in analysis.pattern_ids:
                    analysis.pattern_ids.append(pattern_id)

        logger.info(
            f"Analyzed {source_file} ({result.language}): {len(candidates)} candidates, "
            f"{analysis.new_patterns} new patterns"
        )
        return analysis

    def analyze_batch(
        self,
        items: Iterable[BatchItem],
        cancel: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Analyze several files, checking for cancellation between files.

        Per-file failures are collected instead of aborting the batch.
        """
        batch = BatchResult()
        for item in items:
            if cancel is not None and cancel.is_set():
                batch.cancelled = True
                logger.info(f"Batch cancelled after {len(batch.results)} files")
                break
            try:
                batch.results.append(self.analyze(item.source, item.language, item.source_file))
            except CodeWhisperError as e:
                logger.warning(f"Skipping {item.source_file}: {e.message}")
                error = e.to_dict()
                error["source_file"] = item.source_file
                batch.errors.append(error)
        return batch

    def _resolve_language(self, language: Optional[str], source_file: str) -> str:
        if language:
            return normalize_language(language)
        return detect_language(source_file)

    def _reparse(self, source: str, language: str) -> list[CandidatePattern]:
        result = self.registry.parse(source, language, "<modified>")
        return list(self.extractor.extract(result.tree, result.language, "<modified>", analyze_formatting(source)))

    # ------------------------------------------------------------------ learning

    def apply_feedback(
        self,
        pattern_id: str,
        action: FeedbackAction | str,
        reason: Optional[str] = None,
        context: Optional[FeedbackContext] = None,
        modified_content: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> FeedbackOutcome:
        """
        Record a user reaction to a pattern.

        Raises:
            InvalidFeedbackTargetError: Unknown pattern id
            ValueError: Unknown action name
        """
        event = FeedbackEvent(
            pattern_id=pattern_id,
            action=FeedbackAction(action),
            timestamp=timestamp or self.clock(),
            reason=reason,
            context=context or FeedbackContext(),
            modified_content=modified_content,
        )
        return self.learner.apply(event)

    def decay(self, now: Optional[datetime] = None) -> DecayReport:
        return self.learner.decay(now)

    def suggest(
        self,
        language: str,
        recent_patterns: Optional[list[str]] = None,
        max_results: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
    ) -> list[Suggestion]:
        context = SuggestionContext(
            language=language,
            recent_patterns=list(recent_patterns or []),
            max_results=max_results,
            confidence_threshold=confidence_threshold,
        )
        return self.generator.suggest(context)

    # ------------------------------------------------------------------ queries

    def validate_syntax(self, source: str, language: str) -> dict[str, Any]:
        """
        Check source for syntax problems without learning from it.

        Returns:
            {valid, message, diagnostics}
        """
        try:
            result = self.registry.parse(source, language, "<validate>")
        except CodeWhisperError as e:
            return {"valid": False, "message": e.message, "diagnostics": [e.details] if e.details else []}
        if result.diagnostics:
            first = result.diagnostics[0]
            return {
                "valid": False,
                "message": f"{first.message} at line {first.line}",
                "diagnostics": [d.to_dict() for d in result.diagnostics],
            }
        return {"valid": True, "message": "No syntax errors found", "diagnostics": []}

    def get_pattern(self, pattern_id: str) -> Optional[CodingPattern]:
        return self.store.get(pattern_id)

    def list_patterns(
        self,
        language: Optional[str] = None,
        pattern_type: Optional[str] = None,
        include_retired: bool = False,
    ) -> list[CodingPattern]:
        return self.store.query(
            language=normalize_language(language) if language else None,
            pattern_type=PatternType(pattern_type) if pattern_type else None,
            include_retired=include_retired,
        )

    def statistics(self) -> dict[str, Any]:
        stats = self.store.stats()
        stats["feedback"] = self.learner.feedback_stats()
        stats["preferences"] = self.learner.preferences.to_dict()
        stats["supported_languages"] = self.supported_languages()
        return stats

    def supported_languages(self) -> list[str]:
        return self.registry.languages()

    def detect_language(self, file_path: str | Path) -> str:
        return detect_language(file_path)

    # ------------------------------------------------------------------ export/import

    def export_data(self) -> dict[str, Any]:
        """Full learned state as a snapshot document."""
        with self.store.lock:
            return {
                "schema_version": SCHEMA_VERSION,
                "saved_at": self.clock().isoformat(),
                "patterns": self.store.snapshot(),
                "preferences": self.learner.preferences.to_dict(),
            }

    def import_data(self, snapshot: dict[str, Any], replace: bool = False) -> int:
        """
        Import a snapshot document.

        With replace the store and preferences are swapped for the imported
        ones; otherwise patterns are merged and local preferences kept.

        Returns:
            Number of patterns added

        Raises:
            StoreCorruptionError: Snapshot malformed or schema incompatible
        """
        if isinstance(snapshot, dict):
            snapshot = dict(snapshot)
        snapshot = migrate(snapshot)
        records = snapshot.get("patterns", [])
        if replace:
            self._restore(snapshot)
            added = len(self.store)
        else:
            added = self.store.merge_records(records)
        logger.info(f"Imported {added} patterns ({'replace' if replace else 'merge'})")
        return added

    def clear(self) -> None:
        """Forget everything learned in this session."""
        with self.store.lock:
            self.store.clear()
            self.learner.replace_preferences(UserPreferenceModel())
        logger.info("Cleared all learned patterns")

    def _restore(self, snapshot: dict[str, Any]) -> None:
        preferences = snapshot.get("preferences") or {}
        if not isinstance(preferences, dict):
            raise StoreCorruptionError("Snapshot preferences must be a mapping")
        try:
            model = UserPreferenceModel.from_dict(preferences)
        except (TypeError, ValueError, AttributeError) as e:
            raise StoreCorruptionError(f"Malformed preference model: {e}") from e
        with self.store.lock:
            self.store.restore(snapshot.get("patterns", []))
            self.learner.replace_preferences(model)

