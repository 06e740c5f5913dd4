"""
CDP Session Management - Sessions and the transport interface.

A Session is a channel bound to one protocol target (a page or an
out-of-process iframe). It buffers incoming events in arrival order and
accepts commands. The Transport opens and closes sessions.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from browser_frames.cdp.events import ProtocolEvent, parse_event

logger = logging.getLogger("browser_frames")

_CLOSED = object()


class SessionStatus(Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class Session(ABC):
    """
    A bidirectional event/command channel bound to one protocol target.

    Events are queued by ``deliver``/``emit`` and consumed, strictly in
    arrival order, through ``events()``. Subclasses implement ``send``.
    """

    def __init__(self, session_id: str, target_id: str, target_type: str = "page"):
        self.session_id = session_id
        self.target_id = target_id
        self.target_type = target_type
        self.status = SessionStatus.ACTIVE
        self.created_at = time.time()
        self._inbox: asyncio.Queue = asyncio.Queue()

    def __repr__(self):
        return (
            f"<{type(self).__name__} session_id={self.session_id} "
            f"target_id={self.target_id} status={self.status.value}>"
        )

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def deliver(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Queue a raw CDP event; events the frame tree does not track are dropped."""
        event = parse_event(method, params)
        if event is not None:
            self.emit(event)

    def emit(self, event: ProtocolEvent) -> None:
        """Queue a typed event."""
        if not self.is_open:
            logger.debug(
                f"Dropping {type(event).__name__} for closed session",
                extra={"session_id": self.session_id},
            )
            return
        self._inbox.put_nowait(event)

    async def events(self) -> AsyncIterator[ProtocolEvent]:
        """Yield queued events in arrival order until the session closes."""
        while True:
            event = await self._inbox.get()
            try:
                if event is _CLOSED:
                    return
                yield event
            finally:
                self._inbox.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been consumed."""
        await self._inbox.join()

    def mark_closed(self) -> None:
        """Mark the session closed and end its event stream."""
        if not self.is_open:
            return
        self.status = SessionStatus.DISCONNECTED
        self._inbox.put_nowait(_CLOSED)
        logger.debug("Session closed", extra={"session_id": self.session_id})

    @abstractmethod
    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a command to this session's target and return its result."""


class Transport(ABC):
    """Opens and closes sessions on behalf of the frame manager."""

    @abstractmethod
    async def attach_session(self, target_id: str) -> Session:
        """Attach to ``target_id`` and return its session."""

    @abstractmethod
    async def detach_session(self, session: Session) -> None:
        """Detach ``session`` from its target."""
