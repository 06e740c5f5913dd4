"""
In-memory sessions and transport, plus page scripting helpers.

The helpers play the protocol events a browser would send when a page adds,
navigates or removes iframes, in the order Chrome sends them.
"""
import asyncio
from typing import Any, Dict, List, Optional

from browser_frames.cdp.events import (
    FrameAttached,
    FrameDetached,
    FrameNavigated,
    ProtocolEvent,
    TargetCreated,
    TargetDestroyed,
)
from browser_frames.cdp.session import Session, Transport
from browser_frames.core.errors import SessionAttachError

SERVER_PREFIX = "http://localhost:8907"
CROSS_PROCESS_PREFIX = "http://127.0.0.1:8907"
EMPTY_PAGE = f"{SERVER_PREFIX}/empty.html"


class FakeSession(Session):
    """Session that records commands and answers from a response table."""

    def __init__(self, session_id: str, target_id: str, target_type: str = "page"):
        super().__init__(session_id, target_id, target_type)
        self.sent: List[tuple] = []
        self.responses: Dict[str, Any] = {}

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.sent.append((method, params or {}))
        response = self.responses.get(method, {})
        if isinstance(response, Exception):
            raise response
        return response

    def sent_methods(self) -> List[str]:
        return [method for method, _ in self.sent]


class FakeTransport(Transport):
    """Transport whose attaches can be scripted, delayed or made to fail."""

    def __init__(self):
        self.attached: List[FakeSession] = []
        self.detached: List[Session] = []
        self.failures: Dict[str, Exception] = {}
        self._scripts: Dict[str, List[ProtocolEvent]] = {}
        self._gates: Dict[str, asyncio.Event] = {}

    def script(self, target_id: str, events: List[ProtocolEvent]) -> None:
        """Events the next session for ``target_id`` delivers right after attaching."""
        self._scripts[target_id] = list(events)

    def gate(self, target_id: str) -> asyncio.Event:
        """Hold attaches to ``target_id`` until the returned event is set."""
        event = asyncio.Event()
        self._gates[target_id] = event
        return event

    async def attach_session(self, target_id: str) -> FakeSession:
        gate = self._gates.get(target_id)
        if gate is not None:
            await gate.wait()
        if target_id in self.failures:
            raise self.failures[target_id]
        session = FakeSession(f"session-{target_id}-{len(self.attached) + 1}", target_id, "iframe")
        for event in self._scripts.pop(target_id, []):
            session.emit(event)
        self.attached.append(session)
        return session

    async def detach_session(self, session: Session) -> None:
        self.detached.append(session)
        session.mark_closed()


def attach_failure(target_id: str) -> SessionAttachError:
    return SessionAttachError("No target with given id found", target_id=target_id)


def attach_frame(session: Session, frame_id: str, url: str, parent_id: str = "main") -> None:
    """Add an in-process iframe and load ``url`` in it."""
    session.emit(FrameAttached(frame_id=frame_id, parent_id=parent_id))
    session.emit(FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id))


def navigate_frame(session: Session, frame_id: str, url: str, parent_id: str = "main") -> None:
    session.emit(FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id))


def detach_frame(session: Session, frame_id: str) -> None:
    session.emit(FrameDetached(frame_id=frame_id))


def attach_oop_frame(primary: Session, transport: FakeTransport, frame_id: str, url: str,
                     parent_id: str = "main", children: Optional[List[ProtocolEvent]] = None) -> None:
    """Add an iframe whose document loads in another process."""
    transport.script(frame_id, [
        FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id),
        *(children or []),
    ])
    primary.emit(FrameAttached(frame_id=frame_id, parent_id=parent_id))
    primary.emit(TargetCreated(target_id=frame_id, type="iframe", owning_frame_id=frame_id))


def navigate_out_of_process(primary: Session, transport: FakeTransport, frame_id: str, url: str,
                            parent_id: str = "main") -> None:
    """Navigate an in-process iframe to a cross-origin document."""
    transport.script(frame_id, [FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id)])
    primary.emit(FrameDetached(frame_id=frame_id, reason="swap"))
    primary.emit(TargetCreated(target_id=frame_id, type="iframe", owning_frame_id=frame_id))


def navigate_back_in_process(primary: Session, frame_id: str, url: str,
                             parent_id: str = "main") -> None:
    """Navigate an OOP iframe to a same-origin document."""
    primary.emit(FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id))
    primary.emit(TargetDestroyed(target_id=frame_id))


def frame_index(manager, frame) -> int:
    frames = manager.frames()
    return frames.index(frame) if frame in frames else -1
