from fastapi import APIRouter, Depends

from fluentgym.api.sessions import get_session_manager
from fluentgym.core.resilience import get_breakers_status
from fluentgym.core.settings import settings
from fluentgym.orchestrator.session_manager import SessionManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(manager: SessionManager = Depends(get_session_manager)):
    session = manager.current_session
    return {
        "status": "ok",
        "service": "fluentgym-engine",
        "llm_provider": settings.llm_provider,
        "session_state": session.state.value if session else None,
        "gate_phase": manager.gate_state.phase,
        "circuit_breakers": get_breakers_status(),
    }
