"""Server-sent event streams for long-running jobs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from linkdesk.core.streams import StreamRegistry, get_stream_registry
from linkdesk.models import SessionUser
from linkdesk.web.auth import require_internal

router = APIRouter(prefix="/api/streams", tags=["streams"])


@router.get("/{session_id}")
async def stream(
    session_id: str,
    request: Request,
    user: SessionUser = Depends(require_internal),
    registry: StreamRegistry = Depends(get_stream_registry),
):
    """Live events published for ``session_id`` until the job closes the stream."""

    async def generate():
        async with registry.connect(session_id) as connection:
            yield ": connected\n\n"
            async for event in connection.events():
                if await request.is_disconnected():
                    break
                yield event.encode()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
