"""
Tests for the engine facade.

Run with: pytest tests/
"""

import json
import threading
from pathlib import Path

import pytest

from codewhisper.core.config import Config
from codewhisper.core.errors import (
    InvalidFeedbackTargetError,
    SizeLimitError,
    StoreCorruptionError,
    UnsupportedLanguageError,
)
from codewhisper.engine import BatchItem, CodeWhisperEngine

from conftest import ADD_JS, FakeClock

SOURCE = "function f(a){ g(a); }\nlet x = 1;\n"


class TestAnalyze:
    """Tests for analyze and analyze_batch."""

    def test_repeat_analysis_counts_frequency(self, engine: CodeWhisperEngine) -> None:
        """Should merge the same shape seen in two files."""
        first = engine.analyze(ADD_JS, "javascript", "a.js")
        second = engine.analyze(ADD_JS, "javascript", "b.js")

        assert first.new_patterns == 1
        assert second.new_patterns == 0
        assert first.pattern_ids == second.pattern_ids
        pattern = engine.get_pattern(first.pattern_ids[0])
        assert pattern.frequency == 2
        assert pattern.source_files == ["a.js", "b.js"]

    def test_result_carries_metrics(self, engine: CodeWhisperEngine) -> None:
        """Should report structure and formatting metrics for the file."""
        result = engine.analyze("function f(x) {\n  if (x) { g(x); }\n}\n", "javascript", "a.js")

        structure = result.to_dict()["metrics"]["structure"]
        assert structure["function_count"] == 1
        assert structure["cyclomatic_complexity"] == 2
        assert structure["max_nesting_depth"] == 1
        assert result.metrics["formatting"]["line_count"] == 3

    def test_language_from_file_extension(self, engine: CodeWhisperEngine) -> None:
        result = engine.analyze("def f():\n    return 1\n", source_file="mod.py")

        assert result.language == "python"
        assert result.candidates == 1

    def test_oversized_input_changes_nothing(self, engine: CodeWhisperEngine) -> None:
        """Should reject inputs over max_code_size before storing anything."""
        engine.analyze(ADD_JS, "javascript", "a.js")
        before = engine.export_data()

        with pytest.raises(SizeLimitError):
            engine.analyze("x" * (engine.config.engine.max_code_size + 1), "javascript")

        assert engine.export_data() == before

    def test_unsupported_language(self, engine: CodeWhisperEngine) -> None:
        with pytest.raises(UnsupportedLanguageError):
            engine.analyze("IDENTIFICATION DIVISION.", "cobol")

    def test_partial_tree_is_still_learned(self, engine: CodeWhisperEngine) -> None:
        """Should store patterns from the recovered parts."""
        source = "function ok() { return 1; }\nlet = ;\nfunction also() { return 2; }\n"

        result = engine.analyze(source, "javascript", "a.js")

        assert result.partial is True
        assert result.diagnostics[0]["line"] == 2
        assert len(engine.store) >= 1

    def test_batch_collects_errors(self, engine: CodeWhisperEngine) -> None:
        """Should keep going past a failing file."""
        batch = engine.analyze_batch([
            BatchItem(ADD_JS, "javascript", "a.js"),
            BatchItem(")))", "javascript", "broken.js"),
            BatchItem("let x = 1;", None, "b.js"),
        ])

        assert [r.source_file for r in batch.results] == ["a.js", "b.js"]
        assert batch.errors[0]["code"] == "ParseError"
        assert batch.errors[0]["source_file"] == "broken.js"
        assert batch.cancelled is False

    def test_batch_cancellation(self, engine: CodeWhisperEngine) -> None:
        """Should stop before the next file once cancelled."""
        cancel = threading.Event()
        cancel.set()

        batch = engine.analyze_batch([BatchItem(ADD_JS, "javascript", "a.js")], cancel=cancel)

        assert batch.cancelled is True
        assert batch.results == []
        assert len(engine.store) == 0


class TestFeedbackThroughEngine:
    """Tests for apply_feedback and decay."""

    def test_accept_by_name(self, engine: CodeWhisperEngine) -> None:
        pattern_id = engine.analyze(ADD_JS, "javascript").pattern_ids[0]

        outcome = engine.apply_feedback(pattern_id, "accepted")

        assert outcome.confidence == pytest.approx(0.6)

    def test_unknown_action(self, engine: CodeWhisperEngine) -> None:
        pattern_id = engine.analyze(ADD_JS, "javascript").pattern_ids[0]

        with pytest.raises(ValueError):
            engine.apply_feedback(pattern_id, "loved")

    def test_unknown_pattern(self, engine: CodeWhisperEngine) -> None:
        with pytest.raises(InvalidFeedbackTargetError):
            engine.apply_feedback("pat_missing", "accepted")

    def test_modified_content_is_learned(self, engine: CodeWhisperEngine) -> None:
        """Should reparse modified content in the pattern's language."""
        pattern_id = engine.analyze(ADD_JS, "javascript").pattern_ids[0]

        outcome = engine.apply_feedback(
            pattern_id, "modified", modified_content="for (const x of xs) { use(x); }",
        )

        assert outcome.reparse_error is None
        assert outcome.learned_pattern_ids
        assert len(engine.store) > 1

    def test_decay_with_injected_time(self, engine: CodeWhisperEngine, clock: FakeClock) -> None:
        pattern_id = engine.analyze(ADD_JS, "javascript").pattern_ids[0]

        report = engine.decay(clock.advance(hours=200))

        assert report.decayed == 1
        assert engine.get_pattern(pattern_id).confidence == pytest.approx(0.45)


class TestQueries:
    """Tests for validate_syntax, list_patterns and statistics."""

    def test_valid_source(self, engine: CodeWhisperEngine) -> None:
        result = engine.validate_syntax(ADD_JS, "javascript")

        assert result == {"valid": True, "message": "No syntax errors found", "diagnostics": []}

    def test_recoverable_error(self, engine: CodeWhisperEngine) -> None:
        """Should point at the first problem."""
        source = "function ok() { return 1; }\nlet = ;\n"

        result = engine.validate_syntax(source, "javascript")

        assert result["valid"] is False
        assert result["message"].endswith("at line 2")

    def test_unrecoverable_error(self, engine: CodeWhisperEngine) -> None:
        result = engine.validate_syntax(")))", "javascript")

        assert result["valid"] is False
        assert result["diagnostics"] == [{"line": 1, "column": 0}]

    def test_validate_does_not_learn(self, engine: CodeWhisperEngine) -> None:
        engine.validate_syntax(ADD_JS, "javascript")

        assert len(engine.store) == 0

    def test_list_patterns_filters(self, engine: CodeWhisperEngine) -> None:
        engine.analyze(SOURCE, "javascript")

        assert len(engine.list_patterns(language="js")) == 3
        assert len(engine.list_patterns(pattern_type="function_call")) == 1
        with pytest.raises(ValueError):
            engine.list_patterns(pattern_type="nonsense")

    def test_statistics(self, engine: CodeWhisperEngine) -> None:
        engine.analyze(SOURCE, "javascript")

        stats = engine.statistics()

        assert stats["total_patterns"] == 3
        assert stats["feedback"]["total"] == 0
        assert stats["supported_languages"] == ["javascript", "typescript", "python", "rust"]
        assert set(stats["preferences"]) == {"type_weights", "language_weights", "preferred", "avoided"}

    def test_detect_language(self, engine: CodeWhisperEngine) -> None:
        assert engine.detect_language("src/lib.rs") == "rust"
        assert engine.detect_language("README") == "unknown"


class TestSession:
    """Tests for persistence at the session boundaries."""

    def test_storage_disabled(self, engine: CodeWhisperEngine) -> None:
        assert engine.storage is None
        assert engine.load_session() == 0
        assert engine.save_checkpoint() is None

    def test_close_and_reload(self, persistent_config: Config, clock: FakeClock) -> None:
        """Should restore patterns and preferences saved on close."""
        engine = CodeWhisperEngine(persistent_config, clock=clock)
        pattern_id = engine.analyze(ADD_JS, "javascript", "a.js").pattern_ids[0]
        engine.apply_feedback(pattern_id, "accepted")
        engine.apply_feedback(pattern_id, "accepted")
        engine.close()
        engine.close()

        reloaded = CodeWhisperEngine(persistent_config, clock=clock)
        assert reloaded.load_session() == 1
        assert reloaded.store.snapshot() == engine.store.snapshot()
        assert pattern_id in reloaded.learner.preferences.preferred

    def test_context_manager(self, persistent_config: Config, clock: FakeClock) -> None:
        with CodeWhisperEngine(persistent_config, clock=clock) as engine:
            engine.analyze(ADD_JS, "javascript")

        assert Path(persistent_config.storage.path).exists()
        with CodeWhisperEngine(persistent_config, clock=clock) as engine:
            assert len(engine.store) == 1

    def test_corrupt_snapshot_starts_empty(
        self, persistent_config: Config, clock: FakeClock, caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Should log a warning and continue with an empty store."""
        Path(persistent_config.storage.path).write_text("{broken", encoding="utf-8")
        engine = CodeWhisperEngine(persistent_config, clock=clock)

        with caplog.at_level("WARNING"):
            assert engine.load_session() == 0

        assert len(engine.store) == 0
        assert "Ignoring unusable pattern snapshot" in caplog.text


    def test_junk_v1_snapshot_starts_empty(self, persistent_config: Config, clock: FakeClock) -> None:
        """Should not crash on a v1 snapshot holding non-object records."""
        Path(persistent_config.storage.path).write_text(
            json.dumps({"schema_version": 1, "patterns": ["junk"]}), encoding="utf-8"
        )
        engine = CodeWhisperEngine(persistent_config, clock=clock)

        assert engine.load_session() == 0
        assert len(engine.store) == 0


class TestExportImport:
    """Tests for export_data, import_data and clear."""

    def test_merge_import(self, engine: CodeWhisperEngine, config: Config, clock: FakeClock) -> None:
        """Should add unknown patterns and fold known ones."""
        engine.analyze(ADD_JS, "javascript", "a.js")
        other = CodeWhisperEngine(config, clock=clock)
        other.analyze(SOURCE, "javascript", "b.js")
        other.analyze(ADD_JS, "javascript", "c.js")

        added = engine.import_data(other.export_data())

        assert added == 3
        assert len(engine.store) == 4

    def test_replace_import(self, engine: CodeWhisperEngine, config: Config, clock: FakeClock) -> None:
        """Should swap in the imported patterns and preferences."""
        engine.analyze(SOURCE, "javascript", "a.js")
        other = CodeWhisperEngine(config, clock=clock)
        pattern_id = other.analyze(ADD_JS, "javascript", "b.js").pattern_ids[0]
        other.apply_feedback(pattern_id, "accepted")
        other.apply_feedback(pattern_id, "accepted")

        added = engine.import_data(other.export_data(), replace=True)

        assert added == 1
        assert engine.store.snapshot() == other.store.snapshot()
        assert engine.learner.preferences == other.learner.preferences

    def test_bad_import_keeps_state(self, engine: CodeWhisperEngine) -> None:
        engine.analyze(ADD_JS, "javascript")
        before = engine.export_data()

        with pytest.raises(StoreCorruptionError):
            engine.import_data({"schema_version": 2, "patterns": [{"id": "pat_x"}]}, replace=True)

        assert engine.export_data() == before

    def test_junk_v1_import_raises(self, engine: CodeWhisperEngine) -> None:
        """Should report a malformed v1 document as corruption."""
        engine.analyze(ADD_JS, "javascript")
        before = engine.export_data()

        with pytest.raises(StoreCorruptionError):
            engine.import_data({"schema_version": 1, "patterns": ["junk"]})

        assert engine.export_data() == before

    def test_clear(self, engine: CodeWhisperEngine) -> None:
        pattern_id = engine.analyze(ADD_JS, "javascript").pattern_ids[0]
        engine.apply_feedback(pattern_id, "accepted")

        engine.clear()

        assert len(engine.store) == 0
        assert engine.learner.preferences.type_weights == {}


class TestConcurrency:
    """Tests for analysis and feedback running on several threads."""

    def test_analyze_and_feedback_on_one_pattern(self, engine: CodeWhisperEngine) -> None:
        """Should count every sighting and every feedback event exactly once."""
        pattern_id = engine.analyze(ADD_JS, "javascript", "seed.js").pattern_ids[0]
        threads_per_kind = 4
        rounds = 25
        start = threading.Barrier(threads_per_kind * 2)
        errors: list[BaseException] = []

        def analyze() -> None:
            start.wait()
            try:
                for _ in range(rounds):
                    engine.analyze(ADD_JS, "javascript", "a.js")
            except BaseException as e:
                errors.append(e)

        def accept() -> None:
            start.wait()
            try:
                for _ in range(rounds):
                    engine.apply_feedback(pattern_id, "accepted")
            except BaseException as e:
                errors.append(e)

        workers = [threading.Thread(target=analyze) for _ in range(threads_per_kind)]
        workers += [threading.Thread(target=accept) for _ in range(threads_per_kind)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert errors == []
        pattern = engine.get_pattern(pattern_id)
        assert pattern.frequency == 1 + threads_per_kind * rounds
        assert len(pattern.feedback) == threads_per_kind * rounds
        assert len(engine.store) == 1
