from fastapi import APIRouter, Depends, Request

from fluentgym.data.catalog import PERSONALITIES, SCENARIOS, get_personality, get_scenario
from fluentgym.orchestrator.session_manager import SessionManager
from fluentgym.schemas.requests import EndSessionRequest, SendTurnRequest, StartSessionRequest
from fluentgym.schemas.session import (
    FeedbackReport,
    FluencyGateState,
    Personality,
    Scenario,
    Session,
    SessionMetrics,
    TurnResult,
)

router = APIRouter(tags=["sessions"])


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


@router.get("/catalog/scenarios", response_model=list[Scenario])
async def list_scenarios():
    return list(SCENARIOS.values())


@router.get("/catalog/personalities", response_model=list[Personality])
async def list_personalities():
    return list(PERSONALITIES.values())


@router.post("/session/start", response_model=Session)
async def start_session(payload: StartSessionRequest, manager: SessionManager = Depends(get_session_manager)):
    scenario = payload.scenario or (get_scenario(payload.scenario_id) if payload.scenario_id else None)
    personality = payload.personality or (get_personality(payload.personality_id) if payload.personality_id else None)
    return await manager.start_session(scenario, personality, payload.language)


@router.post("/session/turn", response_model=TurnResult)
async def send_turn(payload: SendTurnRequest, manager: SessionManager = Depends(get_session_manager)):
    return await manager.send_user_turn(payload.content, payload.elapsed_latency_ms, payload.hesitation_count)


@router.post("/session/end", response_model=FeedbackReport)
async def end_session(payload: EndSessionRequest, manager: SessionManager = Depends(get_session_manager)):
    return await manager.end_session(payload.reason)


@router.post("/session/reset")
async def reset_session(manager: SessionManager = Depends(get_session_manager)):
    await manager.reset()
    return {"success": True}


@router.get("/session", response_model=Session | None)
async def current_session(manager: SessionManager = Depends(get_session_manager)):
    return manager.current_session


@router.get("/session/metrics", response_model=SessionMetrics)
async def session_metrics(manager: SessionManager = Depends(get_session_manager)):
    return manager.get_session_metrics()


@router.get("/session/gate", response_model=FluencyGateState)
async def gate_state(manager: SessionManager = Depends(get_session_manager)):
    return manager.gate_state


@router.get("/session/report", response_model=FeedbackReport | None)
async def session_report(manager: SessionManager = Depends(get_session_manager)):
    return manager.report
