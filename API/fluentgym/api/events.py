from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from fluentgym.api.sessions import get_session_manager
from fluentgym.orchestrator.session_manager import SessionManager

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/stream")
async def stream_events(manager: SessionManager = Depends(get_session_manager)):
    queue = await manager.subscribe(replay_last=20)

    async def generator():
        try:
            while True:
                event = await queue.get()
                yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            await manager.unsubscribe(queue)

    return StreamingResponse(generator(), media_type="text/event-stream")
