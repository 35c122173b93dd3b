"""Registry of live server-sent-event connections.

Long-running jobs publish progress to a session id; whichever HTTP stream is
currently connected for that id receives it. Connections register on entry
and are always removed on exit, so nothing leaks when a client drops.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

CLOSE_EVENT = "close"
HEARTBEAT_EVENT = "heartbeat"


@dataclass
class StreamEvent:
    event: str
    data: Any = None

    def encode(self) -> str:
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"


@dataclass
class StreamConnection:
    session_id: str
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)

    async def events(self, heartbeat_seconds: float = 30.0) -> AsyncIterator[StreamEvent]:
        """Yield events until a close event arrives; heartbeats fill idle gaps."""
        while True:
            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield StreamEvent(HEARTBEAT_EVENT, {"type": HEARTBEAT_EVENT})
                continue
            yield event
            if event.event == CLOSE_EVENT:
                return


class StreamRegistry:
    """Maps session ids to their live connection.

    A new connection for a session id replaces the previous one; the
    replaced connection is told to close.
    """

    def __init__(self):
        self._connections: dict[str, StreamConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._connections

    @asynccontextmanager
    async def connect(self, session_id: str) -> AsyncIterator[StreamConnection]:
        previous = self._connections.get(session_id)
        if previous is not None:
            previous.queue.put_nowait(StreamEvent(CLOSE_EVENT, {"reason": "replaced"}))

        connection = StreamConnection(session_id)
        self._connections[session_id] = connection
        logger.debug("Stream connected: %s (%d open)", session_id, len(self._connections))
        try:
            yield connection
        finally:
            # Only remove ourselves; a replacement may already be registered
            if self._connections.get(session_id) is connection:
                del self._connections[session_id]
            logger.debug("Stream disconnected: %s (%d open)", session_id, len(self._connections))

    def publish(self, session_id: str, event: str, data: Any = None) -> bool:
        """Queue an event for the session's stream. False if nobody is listening."""
        connection = self._connections.get(session_id)
        if connection is None:
            return False
        connection.queue.put_nowait(StreamEvent(event, data))
        return True

    def close(self, session_id: str, data: Any = None) -> bool:
        return self.publish(session_id, CLOSE_EVENT, data or {"reason": "completed"})


_registry: StreamRegistry | None = None


def get_stream_registry() -> StreamRegistry:
    global _registry
    if _registry is None:
        _registry = StreamRegistry()
    return _registry
