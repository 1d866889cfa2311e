"""Pydantic models for API request/response schemas."""

from typing import Any

from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """Request envelope for the message endpoint."""
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class MessageResponse(BaseModel):
    """Success or error envelope."""
    type: str
    data: Any = None
    code: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None
    id: str | None = None


class PatternSummary(BaseModel):
    """Compact view of a stored pattern."""
    id: str
    pattern_type: str
    language: str
    confidence: float
    frequency: int
    example: str
    style: dict[str, str]
    source_files: list[str]
    retired: bool
    last_seen: str


class PatternsResponse(BaseModel):
    patterns: list[PatternSummary]


class LanguagesResponse(BaseModel):
    languages: list[str]


class HealthResponse(BaseModel):
    """Response for health check endpoint."""
    status: str
    total_patterns: int
    active_patterns: int
    persistence: bool
