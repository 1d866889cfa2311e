"""
Tests for the envelope protocol.

Run with: pytest tests/
"""

import pytest

from codewhisper.api import MessageDispatcher, error_envelope, success_envelope
from codewhisper.engine import CodeWhisperEngine

from conftest import ADD_JS


@pytest.fixture
def dispatcher(engine: CodeWhisperEngine) -> MessageDispatcher:
    return MessageDispatcher(engine)


def analyze(dispatcher: MessageDispatcher, code: str = ADD_JS) -> str:
    response = dispatcher.handle({"type": "analyze", "payload": {"code": code, "language": "javascript"}})
    return response["data"]["pattern_ids"][0]


class TestEnvelopes:
    """Tests for envelope construction."""

    def test_success(self) -> None:
        assert success_envelope({"ok": 1}, "req-1") == {"type": "success", "data": {"ok": 1}, "id": "req-1"}
        assert "id" not in success_envelope(None)

    def test_error(self) -> None:
        envelope = error_envelope("ParseError", "bad", {"line": 1})

        assert envelope == {"type": "error", "code": "ParseError", "message": "bad", "details": {"line": 1}}


class TestDispatch:
    """Tests for MessageDispatcher.handle."""

    def test_analyze_echoes_id(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({
            "type": "analyze",
            "id": "42",
            "payload": {"code": ADD_JS, "language": "javascript", "file": "a.js"},
        })

        assert response["type"] == "success"
        assert response["id"] == "42"
        assert response["data"]["source_file"] == "a.js"
        assert response["data"]["new_patterns"] == 1

    def test_numeric_id_becomes_string(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "languages", "id": 7})

        assert response["id"] == "7"

    def test_unknown_type(self, dispatcher: MessageDispatcher) -> None:
        """Should answer with InvalidRequest and list the supported types."""
        response = dispatcher.handle({"type": "teleport", "id": "x"})

        assert response["type"] == "error"
        assert response["code"] == "InvalidRequest"
        assert response["id"] == "x"
        assert "analyze" in response["details"]["supported"]

    @pytest.mark.parametrize("envelope", [
        "not a dict",
        {"type": "analyze", "payload": []},
        {"type": "analyze", "payload": {}},
        {"type": "analyze", "payload": {"code": 123}},
        {"type": "suggest", "payload": {"language": "javascript", "max_results": True}},
        {"type": "feedback", "payload": {"pattern_id": "pat_x", "action": "loved"}},
        {"type": "decay", "payload": {"now": "yesterday"}},
    ])
    def test_malformed_requests(self, dispatcher: MessageDispatcher, envelope) -> None:
        """Should never raise for malformed input."""
        response = dispatcher.handle(envelope)

        assert response["type"] == "error"
        assert response["code"] == "InvalidRequest"

    def test_engine_errors_map_to_codes(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "analyze", "payload": {"code": ")))", "language": "javascript"}})
        assert response["code"] == "ParseError"

        response = dispatcher.handle({"type": "analyze", "payload": {"code": "x", "language": "cobol"}})
        assert response["code"] == "UnsupportedLanguage"

    def test_feedback_unknown_pattern(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({
            "type": "feedback",
            "payload": {"pattern_id": "pat_missing", "action": "accepted"},
        })

        assert response["type"] == "error"
        assert response["code"] == "InvalidFeedbackTarget"
        assert response["details"] == {"pattern_id": "pat_missing"}

    def test_feedback_and_suggest(self, dispatcher: MessageDispatcher) -> None:
        pattern_id = analyze(dispatcher)

        feedback = dispatcher.handle({
            "type": "feedback",
            "payload": {
                "pattern_id": pattern_id,
                "action": "accepted",
                "context": {"language": "javascript", "project": "demo"},
                "timestamp": "2024-01-02T00:00:00+00:00",
            },
        })
        suggest = dispatcher.handle({"type": "suggest", "payload": {"language": "javascript"}})

        assert feedback["data"]["confidence"] == pytest.approx(0.6)
        assert suggest["data"]["suggestions"][0]["pattern_id"] == pattern_id

    def test_internal_errors_are_wrapped(self, dispatcher: MessageDispatcher, monkeypatch) -> None:
        """Should turn unexpected exceptions into InternalError."""
        def explode() -> dict:
            raise RuntimeError("boom")

        monkeypatch.setattr(dispatcher.engine, "statistics", explode)

        response = dispatcher.handle({"type": "stats", "id": "s"})

        assert response == {"type": "error", "code": "InternalError", "message": "Internal error", "id": "s"}


class TestOtherMessages:
    """Tests for the remaining message types."""

    def test_validate(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "validate", "payload": {"code": ADD_JS, "language": "javascript"}})

        assert response["data"]["valid"] is True

    def test_languages_with_detection(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "languages", "payload": {"path": "src/app.tsx"}})

        assert response["data"]["detected"] == "typescript"
        assert "rust" in response["data"]["languages"]

    def test_analyze_batch(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "analyze_batch", "payload": {"files": [
            {"code": ADD_JS, "language": "javascript"},
            {"code": ")))", "language": "javascript", "file": "bad.js"},
        ]}})

        data = response["data"]
        assert data["results"][0]["source_file"] == "<memory:0>"
        assert data["errors"][0]["source_file"] == "bad.js"

    def test_export_and_import(self, dispatcher: MessageDispatcher, config, clock) -> None:
        analyze(dispatcher)
        exported = dispatcher.handle({"type": "export"})["data"]
        fresh = MessageDispatcher(CodeWhisperEngine(config, clock=clock))

        response = fresh.handle({"type": "import", "payload": {"data": exported, "replace": True}})

        assert response["data"] == {"imported": 1, "total_patterns": 1}

    def test_decay_and_stats(self, dispatcher: MessageDispatcher) -> None:
        analyze(dispatcher)

        decay = dispatcher.handle({"type": "decay", "payload": {"now": "2030-01-01T00:00:00+00:00"}})
        stats = dispatcher.handle({"type": "stats"})

        assert decay["data"]["decayed"] == 1
        assert stats["data"]["total_patterns"] == 1

    def test_save_without_storage(self, dispatcher: MessageDispatcher) -> None:
        response = dispatcher.handle({"type": "save"})

        assert response["data"] == {"saved": False, "path": None}
