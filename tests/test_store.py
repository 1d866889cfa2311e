"""
Tests for the pattern store.

Run with: pytest tests/
"""

import pytest

from codewhisper.core.errors import StoreCorruptionError
from codewhisper.learning import PatternExtractor, PatternType
from codewhisper.memory import PatternStore
from codewhisper.memory.store import clamp_confidence, pattern_id_for
from codewhisper.parsing import EcmaScriptFrontEnd

from conftest import ADD_JS, FakeClock


def candidates(source: str, source_file: str):
    result = EcmaScriptFrontEnd().parse(source, source_file)
    return list(PatternExtractor().extract(result.tree, "javascript", source_file))


class TestUpsert:
    """Tests for PatternStore.upsert."""

    def test_same_shape_from_two_files(self, clock: FakeClock) -> None:
        """Should merge into one pattern with frequency 2 and both files."""
        store = PatternStore(clock=clock)

        first_id = store.upsert(candidates(ADD_JS, "a.js")[0])
        second_id = store.upsert(candidates(ADD_JS, "b.js")[0])

        assert first_id == second_id
        assert len(store) == 1
        pattern = store.get(first_id)
        assert pattern.frequency == 2
        assert pattern.source_files == ["a.js", "b.js"]
        assert pattern.confidence == pytest.approx(0.5)

    def test_repeat_in_same_file(self) -> None:
        """Should not duplicate source files."""
        store = PatternStore()
        candidate = candidates(ADD_JS, "a.js")[0]

        store.upsert(candidate)
        store.upsert(candidate)

        assert store.get(pattern_id_for("javascript", candidate.signature)).source_files == ["a.js"]

    def test_smoothing_toward_base_score(self) -> None:
        """Should move confidence toward base_score by alpha."""
        store = PatternStore(smoothing_alpha=0.3, base_score=0.5)
        candidate = candidates(ADD_JS, "a.js")[0]
        pattern_id = store.upsert(candidate)
        with store.editing(pattern_id) as pattern:
            pattern.confidence = 0.9

        store.upsert(candidate)

        assert store.get(pattern_id).confidence == pytest.approx(0.3 * 0.5 + 0.7 * 0.9)

    def test_sighting_refreshes_timestamps(self, clock: FakeClock) -> None:
        """Should update last_seen and last_touched but keep first_seen."""
        store = PatternStore(clock=clock)
        candidate = candidates(ADD_JS, "a.js")[0]
        pattern_id = store.upsert(candidate)
        started = clock.now

        later = clock.advance(hours=5)
        store.upsert(candidate)

        pattern = store.get(pattern_id)
        assert pattern.first_seen == started
        assert pattern.last_seen == later
        assert pattern.last_touched == later

    def test_style_tally(self) -> None:
        """Should count naming conventions across sightings."""
        store = PatternStore()
        store.upsert(candidates("function add(a,b){return a+b;}", "a.js")[0])
        store.upsert(candidates("function addAll(a,b){return a+b;}", "b.js")[0])
        pattern_id = store.upsert(candidates("function addMore(a,b){return a+b;}", "c.js")[0])

        pattern = store.get(pattern_id)
        assert pattern.style_counts["naming_convention"] == {"lowercase": 1, "camelCase": 2}
        assert pattern.dominant_style()["naming_convention"] == "camelCase"

    def test_ids_are_deterministic(self) -> None:
        """Should derive ids from language and signature."""
        candidate = candidates(ADD_JS, "a.js")[0]

        assert PatternStore().upsert(candidate) == PatternStore().upsert(candidate)
        assert pattern_id_for("javascript", candidate.signature).startswith("pat_")


class TestReads:
    """Tests for get, query and stats."""

    def test_get_returns_detached_copy(self) -> None:
        """Should not let callers mutate stored state."""
        store = PatternStore()
        pattern_id = store.upsert(candidates(ADD_JS, "a.js")[0])

        copy = store.get(pattern_id)
        copy.confidence = 0.0
        copy.source_files.append("evil.js")

        stored = store.get(pattern_id)
        assert stored.confidence == pytest.approx(0.5)
        assert stored.source_files == ["a.js"]

    def test_get_unknown(self) -> None:
        assert PatternStore().get("pat_missing") is None

    def test_query_filters_and_orders(self) -> None:
        """Should sort by confidence desc, frequency desc, id asc."""
        store = PatternStore()
        source = "import x from 'x';\nfunction f(a){ g(a); }\n"
        ids = [store.upsert(c) for c in candidates(source, "a.js")]
        with store.editing(ids[0]) as pattern:
            pattern.confidence = 0.9

        everything = store.query()
        assert [p.id for p in everything][0] == ids[0]

        calls = store.query(pattern_type=PatternType.FUNCTION_CALL)
        assert [p.pattern_type for p in calls] == [PatternType.FUNCTION_CALL]
        assert store.query(language="python") == []
        assert len(store.query(min_confidence=0.8)) == 1

    def test_query_excludes_retired(self) -> None:
        """Should hide retired patterns unless asked."""
        store = PatternStore()
        pattern_id = store.upsert(candidates(ADD_JS, "a.js")[0])
        with store.editing(pattern_id) as pattern:
            pattern.retired = True

        assert store.query() == []
        assert len(store.query(include_retired=True)) == 1

    def test_stats(self) -> None:
        store = PatternStore()
        store.upsert(candidates(ADD_JS, "a.js")[0])
        store.upsert(candidates(ADD_JS, "b.js")[0])

        stats = store.stats()
        assert stats["total_patterns"] == 1
        assert stats["total_sightings"] == 2
        assert stats["by_type"] == {"function_definition": 1}


class TestEditing:
    """Tests for in-place edits."""

    def test_confidence_is_clamped(self) -> None:
        """Should clamp confidence when the edit block exits."""
        store = PatternStore()
        pattern_id = store.upsert(candidates(ADD_JS, "a.js")[0])

        with store.editing(pattern_id) as pattern:
            pattern.confidence = 3.0

        assert store.get(pattern_id).confidence == 1.0
        assert clamp_confidence(-0.5) == 0.0

    def test_unknown_id(self) -> None:
        with pytest.raises(KeyError):
            with PatternStore().editing("pat_missing"):
                pass

    def test_sighting_revives_retired(self) -> None:
        """Should revive a retired pattern once confidence rises above the floor."""
        store = PatternStore(forgetting_floor=0.1)
        candidate = candidates(ADD_JS, "a.js")[0]
        pattern_id = store.upsert(candidate)
        with store.editing(pattern_id) as pattern:
            pattern.confidence = 0.1
            pattern.retired = True

        store.upsert(candidate)

        revived = store.get(pattern_id)
        assert revived.retired is False
        assert revived.confidence == pytest.approx(0.3 * 0.5 + 0.7 * 0.1)


class TestSnapshots:
    """Tests for snapshot round trips and merging."""

    def test_snapshot_restores_equal_state(self, clock: FakeClock) -> None:
        store = PatternStore(clock=clock)
        for c in candidates("function f(a){ g(a); }\nlet x = 1;\n", "a.js"):
            store.upsert(c)

        restored = PatternStore.from_snapshot(store.snapshot())

        assert restored.snapshot() == store.snapshot()

    def test_malformed_record(self) -> None:
        """Should raise StoreCorruptionError for a broken record."""
        with pytest.raises(StoreCorruptionError):
            PatternStore.from_snapshot([{"id": "pat_1"}])

    def test_duplicate_record(self) -> None:
        store = PatternStore()
        store.upsert(candidates(ADD_JS, "a.js")[0])
        record = store.snapshot()[0]

        with pytest.raises(StoreCorruptionError):
            PatternStore.from_snapshot([record, dict(record)])

    def test_failed_restore_keeps_contents(self) -> None:
        """Should leave the store untouched when a record is bad."""
        store = PatternStore()
        store.upsert(candidates(ADD_JS, "a.js")[0])

        with pytest.raises(StoreCorruptionError):
            store.restore([{"broken": True}])

        assert len(store) == 1

    def test_merge_records(self) -> None:
        """Should add new patterns and fold known ones into local records."""
        local = PatternStore()
        local.upsert(candidates(ADD_JS, "a.js")[0])
        other = PatternStore()
        other.upsert(candidates(ADD_JS, "b.js")[0])
        other.upsert(candidates("let x = 1;", "b.js")[0])

        added = local.merge_records(other.snapshot())

        assert added == 1
        assert len(local) == 2
        function = local.query(pattern_type=PatternType.FUNCTION_DEFINITION)[0]
        assert function.frequency == 2
        assert function.source_files == ["a.js", "b.js"]
