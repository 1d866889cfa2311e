"""FastAPI server for CodeWhisper."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from codewhisper.api.models import (
    HealthResponse,
    LanguagesResponse,
    MessageRequest,
    MessageResponse,
    PatternSummary,
    PatternsResponse,
)
from codewhisper.api.protocol import MessageDispatcher
from codewhisper.core import load_config
from codewhisper.engine import CodeWhisperEngine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], CodeWhisperEngine]

# Global engine and dispatcher, set for the lifetime of the app
engine: CodeWhisperEngine | None = None
dispatcher: MessageDispatcher | None = None


def _default_engine() -> CodeWhisperEngine:
    return CodeWhisperEngine(load_config())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle."""
    global engine, dispatcher
    logger.info("Starting CodeWhisper API server")
    engine = app.state.engine_factory()
    loaded = engine.load_session()
    logger.info(f"Session loaded with {loaded} patterns")
    dispatcher = MessageDispatcher(engine)
    yield
    logger.info("Shutting down CodeWhisper API server")
    if engine:
        engine.close()
    engine = None
    dispatcher = None


def _require_engine() -> CodeWhisperEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Server not initialized")
    return engine


def create_app(engine_factory: Optional[EngineFactory] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="CodeWhisper API",
        description="Local pattern learning and suggestion engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine_factory = engine_factory or _default_engine

    @app.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        """Report engine status."""
        current = _require_engine()
        stats = current.store.stats()
        return HealthResponse(
            status="healthy",
            total_patterns=stats["total_patterns"],
            active_patterns=stats["active_patterns"],
            persistence=current.storage is not None,
        )

    @app.post("/message", response_model=MessageResponse)
    def handle_message(request: MessageRequest) -> JSONResponse:
        """Dispatch one protocol envelope."""
        if dispatcher is None:
            raise HTTPException(status_code=503, detail="Server not initialized")
        response = dispatcher.handle(request.model_dump(exclude_none=True))
        return JSONResponse(content=response)

    @app.get("/languages", response_model=LanguagesResponse)
    def list_languages() -> LanguagesResponse:
        return LanguagesResponse(languages=_require_engine().supported_languages())

    @app.get("/patterns", response_model=PatternsResponse)
    def list_patterns(
        language: str | None = None,
        pattern_type: str | None = None,
        include_retired: bool = False,
    ) -> PatternsResponse:
        """List learned patterns, best first."""
        current = _require_engine()
        try:
            patterns = current.list_patterns(language, pattern_type, include_retired)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown pattern type: {pattern_type}")
        return PatternsResponse(patterns=[PatternSummary(**p.summary()) for p in patterns])

    @app.get("/patterns/{pattern_id}", response_model=PatternSummary)
    def get_pattern(pattern_id: str) -> PatternSummary:
        pattern = _require_engine().get_pattern(pattern_id)
        if pattern is None:
            raise HTTPException(status_code=404, detail="Pattern not found")
        return PatternSummary(**pattern.summary())

    return app
