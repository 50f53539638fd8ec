"""FastAPI application exposing the conversation engine."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from conversation_engine.config import SENT_ITEMS_PATH, load_engine_config
from conversation_engine.db import init_db
from conversation_engine.errors import (
    ConversationEngineError,
    DraftNotEditable,
    DraftNotFound,
    NoProviderConfigured,
    PersistenceFailed,
    ProviderError,
    SendFailed,
    ThreadNotFound,
)
from conversation_engine.api.routes import router as threads_router
from conversation_engine.orchestrator import ConversationOrchestrator
from conversation_engine.outbound import JsonOutboxSender
from conversation_engine.utils.logger import get_logger
from conversation_engine.utils.tracing import init_tracing, shutdown_tracing

logger = get_logger("conversation_engine.api.server")

# most specific first
_STATUS_BY_ERROR: list[tuple[type[ConversationEngineError], int]] = [
    (ThreadNotFound, 404),
    (DraftNotFound, 404),
    (DraftNotEditable, 409),
    (SendFailed, 502),
    (ProviderError, 502),
    (NoProviderConfigured, 503),
    (PersistenceFailed, 503),
]


def status_for_error(exc: ConversationEngineError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def build_default_orchestrator() -> ConversationOrchestrator:
    """Orchestrator wired from environment config, with the JSON outbox as sender."""
    init_db()
    return ConversationOrchestrator.from_config(
        load_engine_config(),
        sender=JsonOutboxSender(SENT_ITEMS_PATH),
    )


@asynccontextmanager
async def _lifespan(app: FastAPI, create_orchestrator: bool = True):
    """Build the orchestrator in the server's event loop when none was injected."""
    init_tracing()
    if create_orchestrator:
        app.state.orchestrator = build_default_orchestrator()
        logger.info("api.lifespan.orchestrator_created")
    yield
    shutdown_tracing()


def create_app(orchestrator: ConversationOrchestrator | None = None) -> FastAPI:
    """
    Create the FastAPI app. If an orchestrator is passed (tests, embedding), it is used as-is;
    otherwise the lifespan builds one from the environment.
    """
    app = FastAPI(
        title="Email Conversation Engine",
        version="0.1.0",
        lifespan=lambda app: _lifespan(app, create_orchestrator=orchestrator is None),
    )
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    app.include_router(threads_router)

    @app.exception_handler(ConversationEngineError)
    async def engine_error_handler(request: Request, exc: ConversationEngineError) -> JSONResponse:
        status = status_for_error(exc)
        log = logger.error if status >= 500 else logger.info
        log(
            "api.request_failed",
            path=request.url.path,
            status_code=status,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=status,
            content={"detail": str(exc), "error": exc.kind},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
