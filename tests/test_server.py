"""
Tests for the HTTP server.

Run with: pytest tests/
"""

import pytest
from fastapi.testclient import TestClient

from codewhisper.api import create_app
from codewhisper.core.config import Config
from codewhisper.engine import CodeWhisperEngine

from conftest import ADD_JS


@pytest.fixture
def client(config: Config):
    with TestClient(create_app(lambda: CodeWhisperEngine(config))) as test_client:
        yield test_client


class TestServer:
    """Tests for the HTTP routes."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "total_patterns": 0,
            "active_patterns": 0,
            "persistence": False,
        }

    def test_message_round_trip(self, client: TestClient) -> None:
        """Should dispatch envelopes and return them as-is."""
        response = client.post("/message", json={
            "type": "analyze",
            "id": "r1",
            "payload": {"code": ADD_JS, "language": "javascript", "file": "a.js"},
        })

        body = response.json()
        assert response.status_code == 200
        assert body["type"] == "success"
        assert body["id"] == "r1"
        assert body["data"]["new_patterns"] == 1

    def test_message_error_envelope(self, client: TestClient) -> None:
        response = client.post("/message", json={"type": "nope"})

        assert response.status_code == 200
        assert response.json()["code"] == "InvalidRequest"

    def test_malformed_body(self, client: TestClient) -> None:
        response = client.post("/message", json={"payload": {}})

        assert response.status_code == 422

    def test_languages(self, client: TestClient) -> None:
        response = client.get("/languages")

        assert response.json() == {"languages": ["javascript", "typescript", "python", "rust"]}

    def test_patterns(self, client: TestClient) -> None:
        """Should list and fetch learned patterns."""
        client.post("/message", json={"type": "analyze", "payload": {"code": ADD_JS, "language": "js"}})

        listing = client.get("/patterns", params={"language": "javascript"}).json()["patterns"]
        assert len(listing) == 1
        pattern_id = listing[0]["id"]

        single = client.get(f"/patterns/{pattern_id}")
        assert single.status_code == 200
        assert single.json()["pattern_type"] == "function_definition"

    def test_unknown_pattern(self, client: TestClient) -> None:
        assert client.get("/patterns/pat_missing").status_code == 404

    def test_bad_pattern_type(self, client: TestClient) -> None:
        assert client.get("/patterns", params={"pattern_type": "bogus"}).status_code == 400
