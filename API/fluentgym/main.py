import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from fluentgym.api.events import router as events_router
from fluentgym.api.health import router as health_router
from fluentgym.api.sessions import router as sessions_router
from fluentgym.core.errors import (
    engine_exception_handler,
    http_exception_handler,
    request_id_middleware,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fluentgym.core.exceptions import EngineError
from fluentgym.core.logging import configure_logging
from fluentgym.core.settings import settings
from fluentgym.orchestrator.collaborators import LLMCompletionClient, LLMJudgmentClient
from fluentgym.orchestrator.session_manager import SessionManager
from fluentgym.runtime.persistence import SessionSnapshotStore


def build_session_manager() -> SessionManager:
    return SessionManager(
        completion=LLMCompletionClient(),
        judge=LLMJudgmentClient(),
        snapshot_sink=SessionSnapshotStore() if settings.persist_snapshots else None,
    )


def create_app(session_manager: SessionManager | None = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title="FluentGym Practice Engine", version="0.1.0")
    app.state.session_manager = session_manager or build_session_manager()
    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(events_router)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(EngineError, engine_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.on_event("shutdown")
    async def on_shutdown():
        app.state.session_manager.gate.disarm()

    return app


app = create_app()


def run() -> None:
    uvicorn.run("fluentgym.main:app", host=settings.app_host, port=settings.app_port)
