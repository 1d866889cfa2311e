"""
Envelope protocol over the engine.

Requests are ``{type, payload, id?}``; responses are either
``{type: "success", data, id?}`` or ``{type: "error", code, message,
details?, id?}``. handle() never raises: every failure becomes an error
envelope.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from codewhisper.core.errors import CodeWhisperError, InvalidRequestError
from codewhisper.engine import BatchItem, CodeWhisperEngine
from codewhisper.memory.models import FeedbackAction, FeedbackContext, parse_timestamp

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Any]


def success_envelope(data: Any, request_id: Optional[str] = None) -> dict[str, Any]:
    envelope: dict[str, Any] = {"type": "success", "data": data}
    if request_id is not None:
        envelope["id"] = request_id
    return envelope


def error_envelope(
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    envelope: dict[str, Any] = {"type": "error", "code": code, "message": message}
    if details:
        envelope["details"] = details
    if request_id is not None:
        envelope["id"] = request_id
    return envelope


def _require(payload: dict[str, Any], key: str, kind: type | tuple[type, ...] = str) -> Any:
    value = payload.get(key)
    if value is None:
        raise InvalidRequestError(f"Missing required field: {key}", {"field": key})
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is not bool):
        raise InvalidRequestError(f"Invalid type for field: {key}", {"field": key})
    return value


def _optional(payload: dict[str, Any], key: str, kind: type | tuple[type, ...] = str) -> Any:
    if payload.get(key) is None:
        return None
    return _require(payload, key, kind)


def _timestamp(payload: dict[str, Any], key: str) -> Optional[datetime]:
    value = _optional(payload, key)
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise InvalidRequestError(f"Invalid timestamp for field: {key}", {"field": key}) from e


class MessageDispatcher:
    """Routes envelopes to engine operations."""

    def __init__(self, engine: CodeWhisperEngine):
        self.engine = engine
        self._handlers: dict[str, Handler] = {
            "analyze": self._analyze,
            "analyze_batch": self._analyze_batch,
            "feedback": self._feedback,
            "suggest": self._suggest,
            "decay": self._decay,
            "stats": self._stats,
            "validate": self._validate,
            "languages": self._languages,
            "export": self._export,
            "import": self._import,
            "save": self._save,
        }

    @property
    def message_types(self) -> list[str]:
        return sorted(self._handlers)

    def handle(self, envelope: Any) -> dict[str, Any]:
        """Process one request envelope and return the response envelope."""
        request_id = None
        try:
            if not isinstance(envelope, dict):
                raise InvalidRequestError("Envelope must be an object")
            request_id = envelope.get("id")
            if request_id is not None and not isinstance(request_id, str):
                request_id = str(request_id)
            message_type = envelope.get("type")
            handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
            if handler is None:
                raise InvalidRequestError(
                    f"Unknown message type: {message_type}",
                    {"supported": self.message_types},
                )
            payload = envelope.get("payload")
            if payload is None:
                payload = {}
            if not isinstance(payload, dict):
                raise InvalidRequestError("Payload must be an object")
            return success_envelope(handler(payload), request_id)
        except CodeWhisperError as e:
            logger.debug(f"Request failed with {e.code}: {e.message}")
            return error_envelope(e.code, e.message, e.details, request_id)
        except Exception as e:
            logger.exception(f"Unhandled error while processing message: {e}")
            return error_envelope("InternalError", "Internal error", None, request_id)

    # ------------------------------------------------------------------ handlers

    def _analyze(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = self.engine.analyze(
            _require(payload, "code"),
            _optional(payload, "language"),
            _optional(payload, "file") or "<memory>",
        )
        return result.to_dict()

    def _analyze_batch(self, payload: dict[str, Any]) -> dict[str, Any]:
        files = _require(payload, "files", list)
        items = []
        for index, entry in enumerate(files):
            if not isinstance(entry, dict):
                raise InvalidRequestError(f"files[{index}] must be an object", {"index": index})
            items.append(BatchItem(
                source=_require(entry, "code"),
                language=_optional(entry, "language"),
                source_file=_optional(entry, "file") or f"<memory:{index}>",
            ))
        return self.engine.analyze_batch(items).to_dict()

    def _feedback(self, payload: dict[str, Any]) -> dict[str, Any]:
        action_name = _require(payload, "action")
        try:
            action = FeedbackAction(action_name)
        except ValueError as e:
            raise InvalidRequestError(
                f"Unknown feedback action: {action_name}",
                {"supported": [a.value for a in FeedbackAction]},
            ) from e
        context_data = _optional(payload, "context", dict) or {}
        context = FeedbackContext(
            language=_optional(context_data, "language"),
            project=_optional(context_data, "project"),
            timestamp=_timestamp(context_data, "timestamp"),
        )
        outcome = self.engine.apply_feedback(
            _require(payload, "pattern_id"),
            action,
            reason=_optional(payload, "reason"),
            context=context,
            modified_content=_optional(payload, "modified_content"),
            timestamp=_timestamp(payload, "timestamp"),
        )
        return outcome.to_dict()

    def _suggest(self, payload: dict[str, Any]) -> dict[str, Any]:
        recent = _optional(payload, "recent_patterns", list) or []
        if not all(isinstance(ref, str) for ref in recent):
            raise InvalidRequestError("recent_patterns must be a list of strings")
        suggestions = self.engine.suggest(
            _require(payload, "language"),
            recent_patterns=recent,
            max_results=_optional(payload, "max_results", int),
            confidence_threshold=_optional(payload, "confidence_threshold", (int, float)),
        )
        return {"suggestions": [s.to_dict() for s in suggestions]}

    def _decay(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.engine.decay(_timestamp(payload, "now")).to_dict()

    def _stats(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.engine.statistics()

    def _validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.engine.validate_syntax(_require(payload, "code"), _require(payload, "language"))

    def _languages(self, payload: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {"languages": self.engine.supported_languages()}
        path = _optional(payload, "path")
        if path is not None:
            data["detected"] = self.engine.detect_language(path)
        return data

    def _export(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.engine.export_data()

    def _import(self, payload: dict[str, Any]) -> dict[str, Any]:
        snapshot = _require(payload, "data", dict)
        replace = _optional(payload, "replace", bool) or False
        added = self.engine.import_data(snapshot, replace=replace)
        return {"imported": added, "total_patterns": len(self.engine.store)}

    def _save(self, payload: dict[str, Any]) -> dict[str, Any]:
        path = self.engine.save_checkpoint()
        return {"saved": path is not None, "path": str(path) if path else None}
