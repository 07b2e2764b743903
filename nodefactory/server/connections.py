from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from fastapi import WebSocket
from pydantic import BaseModel

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any, Any], Awaitable[None]]


class SocketMessage(BaseModel):
    """A single JSON frame exchanged over the websocket, in either direction."""

    event: str
    data: Any = None
    summary: Optional[Any] = None


class SocketSession:
    """
    One connected client.

    Handlers are registered per event name with ``on`` and invoked by
    ``dispatch`` with the frame's data and summary.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._handlers: Dict[str, EventHandler] = {}

    @property
    def address(self) -> Optional[str]:
        client = self.websocket.client
        return client.host if client else None

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event] = handler

    def handles(self, event: str) -> bool:
        return event in self._handlers

    async def emit(self, event: str, data: Any = None, summary: Any = None) -> None:
        message = SocketMessage(event=event, data=data, summary=summary)
        await self.websocket.send_json(message.model_dump(exclude_none=True))

    async def dispatch(self, message: SocketMessage) -> bool:
        """Run the handler for the frame's event. False if none is registered."""
        handler = self._handlers.get(message.event)
        if handler is None:
            return False

        await handler(message.data, message.summary)
        return True


class ConnectionManager:
    """
    Tracks live sockets and fans events out to all of them.

    A socket whose send fails is dropped, the others still receive the
    event.
    """

    def __init__(self) -> None:
        self._sessions: List[SocketSession] = []

    async def connect(self, websocket: WebSocket) -> SocketSession:
        await websocket.accept()

        session = SocketSession(websocket)
        self._sessions.append(session)

        logger.info(
            "[CONNECTIONS] Socket connected | address=%s | total=%d",
            session.address,
            len(self._sessions),
        )
        return session

    def disconnect(self, session: SocketSession) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
            logger.info(
                "[CONNECTIONS] Socket disconnected | address=%s | total=%d",
                session.address,
                len(self._sessions),
            )

    async def broadcast(self, event: str, data: Any = None, summary: Any = None) -> None:
        for session in list(self._sessions):
            try:
                await session.emit(event, data, summary)
            except Exception as e:
                logger.warning(
                    "[CONNECTIONS] Dropping socket after failed send | address=%s | error=%s",
                    session.address,
                    e,
                )
                self.disconnect(session)

    def __len__(self) -> int:
        return len(self._sessions)
