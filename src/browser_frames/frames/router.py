"""
OOPIF Session Router - Binds out-of-process iframes to their own sessions.

Every iframe target announced by the browser is attached in its own task,
so a slow or failing attach never holds up events for other frames. A
finished attach is handed back to the frame manager, which commits the
rebinding as a single tree event; a failed one is reported back so the
manager can release the events it held for that frame.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from browser_frames.cdp.events import SessionAttachFailed, SessionReady, TargetCreated
from browser_frames.cdp.session import Session, Transport
from browser_frames.core.errors import BrowserFramesError, SessionAttachError
from browser_frames.frames.frame import Frame
from browser_frames.frames.tree import FrameTree

logger = logging.getLogger("browser_frames")

IFRAME_TARGET_TYPE = "iframe"

AdoptCallback = Callable[[Session, SessionReady], Awaitable[None]]
FailureCallback = Callable[[SessionAttachFailed], None]


class OOPIFSessionRouter:
    """Decides which targets are this page's OOP iframes and manages their sessions."""

    def __init__(self, tree: FrameTree, transport: Transport, adopt: AdoptCallback,
                 on_failed: FailureCallback, attach_timeout: float = 10.0):
        self._tree = tree
        self._transport = transport
        self._adopt = adopt
        self._on_failed = on_failed
        self._attach_timeout = attach_timeout
        # iframe targets currently alive, by target id
        self._targets: Dict[str, TargetCreated] = {}
        # attached sessions, by target id
        self._sessions: Dict[str, Session] = {}
        # attaches in flight, by owning frame id
        self._pending: Dict[str, asyncio.Task] = {}
        # attached but not yet committed to the tree, by owning frame id
        self._ready: Dict[str, Session] = {}
        self._detaching: Set[asyncio.Task] = set()

    def oopif_targets(self) -> List[str]:
        """Target ids of iframes currently hosted in their own session."""
        return [
            target_id for target_id, session in self._sessions.items()
            if session.is_open
        ]

    def session_for_target(self, target_id: str) -> Optional[Session]:
        return self._sessions.get(target_id)

    def has_pending(self, frame_id: str) -> bool:
        return frame_id in self._pending

    def pending_tasks(self) -> List[asyncio.Task]:
        tasks = [task for task in self._pending.values() if not task.done()]
        tasks.extend(task for task in self._detaching if not task.done())
        return tasks

    def on_target_created(self, event: TargetCreated) -> None:
        if event.type != IFRAME_TARGET_TYPE or not event.owning_frame_id:
            return
        self._targets[event.target_id] = event

        frame = self._tree.get(event.owning_frame_id)
        if frame is None:
            logger.debug(
                "iframe target for unknown frame, waiting for the frame",
                extra={"target_id": event.target_id}
            )
            return
        self._schedule(frame.id, event.target_id)

    def on_frame_seen(self, frame: Frame) -> None:
        """Retry classification for a frame that attached or navigated."""
        target = self._targets.get(frame.id)
        if target is None:
            return
        session = self._sessions.get(target.target_id)
        if session is not None and frame.session is session:
            return
        self._schedule(frame.id, target.target_id)

    def _schedule(self, frame_id: str, target_id: str) -> None:
        if frame_id in self._pending or target_id in self._sessions:
            return
        self._pending[frame_id] = asyncio.create_task(self._attach(frame_id, target_id))

    async def _attach(self, frame_id: str, target_id: str) -> Optional[Session]:
        try:
            session = await asyncio.wait_for(
                self._transport.attach_session(target_id),
                self._attach_timeout,
            )
        except asyncio.TimeoutError:
            error = SessionAttachError(
                f"Attach timed out after {self._attach_timeout:.1f}s",
                target_id=target_id,
                frame_id=frame_id,
            )
        except BrowserFramesError as e:
            error = e if isinstance(e, SessionAttachError) else SessionAttachError(
                f"Attach failed: {e.message}",
                target_id=target_id,
                frame_id=frame_id,
            )
        else:
            error = None

        if error is not None:
            # The frame keeps its current session; its next navigation retries.
            logger.warning(f"Dropping OOPIF attach: {error}")
            self._pending.pop(frame_id, None)
            self._on_failed(SessionAttachFailed(frame_id=frame_id, target_id=target_id))
            return None

        if target_id not in self._targets or frame_id not in self._tree:
            logger.debug(
                "iframe went away while attaching",
                extra={"target_id": target_id, "frame_id": frame_id}
            )
            self._pending.pop(frame_id, None)
            self._on_failed(SessionAttachFailed(frame_id=frame_id, target_id=target_id))
            await self._transport.detach_session(session)
            return None

        self._sessions[target_id] = session
        self._ready[frame_id] = session
        logger.info(
            "Attached OOPIF session",
            extra={"frame_id": frame_id, "target_id": target_id, "session_id": session.session_id}
        )
        await self._adopt(session, SessionReady(frame_id=frame_id, target_id=target_id))
        return session

    def take_ready(self, frame_id: str) -> Optional[Session]:
        """Claim the session attached for a frame, if one is waiting to be committed."""
        session = self._ready.pop(frame_id, None)
        if session is not None:
            self._pending.pop(frame_id, None)
        return session

    def on_target_destroyed(self, target_id: str) -> Optional[Session]:
        """
        Forget a destroyed iframe target.

        Returns:
            The session that served it, now closed, or None if it had none.
        """
        target = self._targets.pop(target_id, None)
        if target is not None and target.owning_frame_id:
            self._cancel_pending(target.owning_frame_id)

        session = self._sessions.pop(target_id, None)
        if session is not None:
            session.mark_closed()
            logger.info(
                "OOPIF session closed",
                extra={"target_id": target_id, "session_id": session.session_id}
            )
        return session

    def release_frames(self, frames: Iterable[Frame]) -> None:
        """Drop targets and sessions that belonged to removed frames."""
        for frame in frames:
            self._cancel_pending(frame.id)
            self._targets.pop(frame.id, None)
            session = self._sessions.pop(frame.id, None)
            if session is not None:
                self._detach_later(session)

    def drop_session(self, session: Session) -> None:
        """Detach a session whose frame moved back into its parent's process."""
        for target_id, candidate in list(self._sessions.items()):
            if candidate is session:
                del self._sessions[target_id]
                self._targets.pop(target_id, None)
        self._detach_later(session)

    def _cancel_pending(self, frame_id: str) -> None:
        task = self._pending.pop(frame_id, None)
        if task is not None and not task.done():
            task.cancel()
        session = self._ready.pop(frame_id, None)
        if session is not None:
            self._detach_later(session)

    def _detach_later(self, session: Session) -> None:
        if not session.is_open:
            return
        task = asyncio.create_task(self._detach(session))
        self._detaching.add(task)
        task.add_done_callback(self._detaching.discard)

    async def _detach(self, session: Session) -> None:
        try:
            await self._transport.detach_session(session)
        except BrowserFramesError as e:
            logger.debug(f"Detach failed: {e}", extra={"session_id": session.session_id})
        finally:
            session.mark_closed()

    def close(self) -> None:
        for task in list(self._pending.values()) + list(self._detaching):
            if not task.done():
                task.cancel()
        self._pending.clear()
        self._ready.clear()
        self._detaching.clear()
