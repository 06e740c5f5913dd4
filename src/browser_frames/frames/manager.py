"""
Frame Manager - Keeps one frame tree consistent across a page's sessions.

Each session's events are pumped, in arrival order, into a single mutation
queue. One task drains that queue and applies each event to the FrameTree
as one atomic update, then lets the wait registry look at the result.

Usage:
    client = CDPClient(await get_browser_ws_url())
    primary = await client.connect()

    async with FrameManager(client, primary) as manager:
        frame = await manager.wait_for_frame(
            lambda frame: frame.url.endswith("/oopif.html"),
            action=lambda: primary.send("Page.navigate", {"url": url}),
        )
        print(frame.is_oop_frame)
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from browser_frames.cdp.events import (
    ExecutionContextCreated,
    ExecutionContextDestroyed,
    ExecutionContextsCleared,
    FrameAttached,
    FrameDetached,
    FrameNavigated,
    ProtocolEvent,
    SessionAttachFailed,
    SessionReady,
    TargetCreated,
    TargetDestroyed,
)
from browser_frames.cdp.session import Session, Transport
from browser_frames.core.config import FrameTrackerConfig
from browser_frames.core.errors import (
    BrowserFramesError,
    FrameTimeoutError,
    OrphanFrameError,
    StaleFrameError,
)
from browser_frames.frames.execution_context import ExecutionContext
from browser_frames.frames.frame import Frame, FramePredicate
from browser_frames.frames.router import OOPIFSessionRouter
from browser_frames.frames.tree import FrameTree
from browser_frames.frames.waiters import FrameWaiter, FrameWaitRegistry

logger = logging.getLogger("browser_frames")

OOPIF_BOOTSTRAP_COMMANDS = ("Page.enable", "Runtime.enable", "Runtime.runIfWaitingForDebugger")


class FrameManager:
    """
    Tracks the frame tree of one page across its main and OOPIF sessions.

    Args:
        transport: Opens and closes OOPIF sessions.
        primary_session: The page's own session.
        config: Timeouts and debug flags. Uses defaults if not provided.
    """

    def __init__(self, transport: Transport, primary_session: Session,
                 config: Optional[FrameTrackerConfig] = None):
        self.config = config or FrameTrackerConfig()
        self.transport = transport
        self.primary_session = primary_session
        self._tree = FrameTree(primary_session)
        self._waiters = FrameWaitRegistry()
        self._router = OOPIFSessionRouter(
            self._tree,
            transport,
            self._adopt_session,
            lambda event: self.dispatch(self.primary_session, event),
            attach_timeout=self.config.attach_timeout,
        )
        self._queue: asyncio.Queue = asyncio.Queue()
        # events held back while the frame's OOPIF attach is in flight
        self._deferred: Dict[str, List[Tuple[Session, ProtocolEvent]]] = {}
        self._pumps: Dict[Session, asyncio.Task] = {}
        self._mutation_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> FrameManager:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Load the primary session's current frame tree and begin tracking."""
        if self._mutation_task is not None:
            return
        snapshot = await self._bootstrap(self.primary_session)
        for event in snapshot:
            self.dispatch(self.primary_session, event)
        self._start_pump(self.primary_session)
        self._mutation_task = asyncio.create_task(self._process_events())
        logger.info(
            "Frame tracking started",
            extra={"session_id": self.primary_session.session_id}
        )

    async def close(self) -> None:
        """Stop tracking; pending waits are cancelled."""
        self._router.close()
        tasks = list(self._pumps.values())
        if self._mutation_task is not None:
            tasks.append(self._mutation_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pumps.clear()
        self._deferred.clear()
        self._mutation_task = None
        self._waiters.cancel_all()

    # ------------------------------------------------------------------
    # Caller API
    # ------------------------------------------------------------------

    @property
    def tree(self) -> FrameTree:
        return self._tree

    @property
    def main_frame(self) -> Optional[Frame]:
        return self._tree.main_frame

    def frames(self) -> List[Frame]:
        """All frames, breadth-first from the main frame, children in attachment order."""
        return list(self._tree.frames())

    def frame(self, frame_id: str) -> Optional[Frame]:
        return self._tree.get(frame_id)

    def oopif_targets(self) -> List[str]:
        return self._router.oopif_targets()

    def async_wait_for_frame(self, predicate: FramePredicate) -> FrameWaiter:
        """
        Register a frame wait without blocking.

        The predicate is checked against the current frames straight away
        and again after every tree event until it matches.

        Returns:
            A handle that resolves to the first matching Frame; cancel it to
            stop waiting.
        """
        return self._waiters.register(predicate, self.frames())

    async def wait_for_frame(
        self,
        predicate: FramePredicate,
        timeout: Optional[float] = None,
        action: Optional[Callable[[], Any]] = None,
    ) -> Frame:
        """
        Wait until some frame satisfies ``predicate``.

        Args:
            predicate: Called with each Frame; truthy means match.
            timeout: Seconds to wait; defaults to ``config.default_timeout``.
            action: Optional callable run after the wait is registered, e.g.
                to add the iframe being waited for. May return an awaitable.

        The timeout bounds the whole call, the action included.

        Raises:
            FrameTimeoutError: Nothing matched in time.
        """
        if timeout is None:
            timeout = self.config.default_timeout

        waiter = self.async_wait_for_frame(predicate)

        async def run_and_wait() -> Frame:
            if action is not None:
                result = action()
                if inspect.isawaitable(result):
                    await result
            return await waiter.future

        try:
            return await asyncio.wait_for(run_and_wait(), timeout)
        except asyncio.TimeoutError as e:
            raise FrameTimeoutError(
                f"No frame matched within {timeout:.1f}s",
                timeout=timeout,
                method="wait_for_frame",
            ) from e
        finally:
            waiter.cancel()

    def dispatch(self, session: Session, event: ProtocolEvent) -> None:
        """Queue an event from ``session`` for the mutation task."""
        self._queue.put_nowait((session, event))

    async def settle(self) -> None:
        """Wait until all queued events and in-flight attaches have been applied."""
        while True:
            for session in list(self._pumps):
                await session.drain()
            await self._queue.join()
            pending = self._router.pending_tasks()
            if pending:
                await asyncio.wait(pending)
                continue
            if self._queue.empty():
                return

    # ------------------------------------------------------------------
    # Session plumbing
    # ------------------------------------------------------------------

    def _start_pump(self, session: Session) -> None:
        if session not in self._pumps:
            self._pumps[session] = asyncio.create_task(self._pump(session))

    async def _pump(self, session: Session) -> None:
        try:
            async for event in session.events():
                self.dispatch(session, event)
        finally:
            self._pumps.pop(session, None)
        if session is self.primary_session:
            self.dispatch(session, TargetDestroyed(target_id=session.target_id))

    async def _bootstrap(self, session: Session) -> List[ProtocolEvent]:
        """Enable the domains an OOPIF session needs and read its frame tree."""
        if session is not self.primary_session:
            for method in OOPIF_BOOTSTRAP_COMMANDS:
                try:
                    await session.send(method)
                except BrowserFramesError as e:
                    logger.warning(f"Session bootstrap failed: {e}")

        try:
            result = await session.send("Page.getFrameTree")
        except BrowserFramesError as e:
            logger.warning(f"Could not read frame tree: {e}")
            return []
        frame_tree = (result or {}).get("frameTree")
        if not frame_tree:
            return []
        return self._snapshot_events(frame_tree)

    def _snapshot_events(self, node: Dict[str, Any]) -> List[ProtocolEvent]:
        """Replay a ``Page.getFrameTree`` node as attach + navigate events."""
        frame_data = node.get("frame") or {}
        frame_id = frame_data.get("id")
        if not frame_id:
            return []
        parent_id = frame_data.get("parentId")
        events: List[ProtocolEvent] = [
            FrameAttached(frame_id=frame_id, parent_id=parent_id),
            FrameNavigated(
                frame_id=frame_id,
                url=frame_data.get("url", "") + frame_data.get("urlFragment", ""),
                parent_id=parent_id,
                name=frame_data.get("name", ""),
            ),
        ]
        for child in node.get("childFrames", []):
            events.extend(self._snapshot_events(child))
        return events

    async def _adopt_session(self, session: Session, ready: SessionReady) -> None:
        """Hand a freshly attached OOPIF session to the mutation queue."""
        snapshot = await self._bootstrap(session)
        self.dispatch(session, ready)
        for event in snapshot:
            self.dispatch(session, event)
        self._start_pump(session)

    # ------------------------------------------------------------------
    # Mutation path
    # ------------------------------------------------------------------

    async def _process_events(self) -> None:
        while True:
            session, event = await self._queue.get()
            try:
                self._apply(session, event)
            except OrphanFrameError as e:
                logger.error(f"Frame tree out of order: {e}")
            except BrowserFramesError as e:
                logger.warning(f"Dropped {type(event).__name__}: {e}")
            except Exception as e:
                logger.error(f"Error applying {type(event).__name__}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def _apply(self, session: Session, event: ProtocolEvent) -> None:
        """Apply one event to the tree, then re-check pending waits."""
        if self.config.debug:
            logger.debug(
                f"Frame event: {type(event).__name__}",
                extra={"session_id": session.session_id}
            )

        if isinstance(event, FrameAttached):
            self._on_frame_attached(session, event)
        elif isinstance(event, FrameNavigated):
            self._on_frame_navigated(session, event)
        elif isinstance(event, FrameDetached):
            self._on_frame_detached(event)
        elif isinstance(event, ExecutionContextCreated):
            if not self._defer(event.frame_id, session, event):
                self._on_execution_context_created(session, event)
        elif isinstance(event, ExecutionContextDestroyed):
            self._tree.contexts.remove(session.session_id, event.context_id)
        elif isinstance(event, ExecutionContextsCleared):
            self._tree.contexts.clear_session(session.session_id)
        elif isinstance(event, TargetCreated):
            self._router.on_target_created(event)
        elif isinstance(event, TargetDestroyed):
            self._on_target_destroyed(event)
        elif isinstance(event, SessionReady):
            self._on_session_ready(event)
        elif isinstance(event, SessionAttachFailed):
            logger.debug(
                "Releasing events held for a failed attach",
                extra={"frame_id": event.frame_id, "target_id": event.target_id}
            )

        self._replay_deferred()
        self._waiters.notify(self.frames())

    def _defer(self, frame_id: str, session: Session, event: ProtocolEvent) -> bool:
        """Hold ``event`` back if ``frame_id`` is waiting on an OOPIF attach."""
        if frame_id not in self._deferred and not self._router.has_pending(frame_id):
            return False
        self._deferred.setdefault(frame_id, []).append((session, event))
        return True

    def _replay_deferred(self) -> None:
        """Apply held events for every frame whose attach has settled."""
        for frame_id in list(self._deferred):
            if self._router.has_pending(frame_id):
                continue
            held = self._deferred.pop(frame_id)
            for session, event in held:
                frame = self._tree.get(frame_id)
                if frame is None:
                    break
                if isinstance(event, FrameNavigated):
                    # The attach outcome already decided the owning session.
                    self._tree.navigate(frame_id, event.url, name=event.name)
                else:
                    self._on_execution_context_created(session, event)

    def _on_frame_attached(self, session: Session, event: FrameAttached) -> None:
        if event.frame_id in self._tree:
            return
        frame = self._tree.attach(event.frame_id, event.parent_id, session)
        self._router.on_frame_seen(frame)

    def _on_frame_navigated(self, session: Session, event: FrameNavigated) -> None:
        frame = self._tree.get(event.frame_id)
        if frame is None:
            frame = self._attach_on_navigation(session, event)

        if self._defer(frame.id, session, event):
            return
        if frame.session is not session:
            self._reclaim_frame(session, frame)

        self._tree.navigate(frame.id, event.url, name=event.name)
        self._router.on_frame_seen(frame)

    def _attach_on_navigation(self, session: Session, event: FrameNavigated) -> Frame:
        if event.parent_id is None and self._tree.main_frame is None:
            return self._tree.attach(event.frame_id, None, session)
        if event.parent_id is not None and event.parent_id in self._tree:
            return self._tree.attach(event.frame_id, event.parent_id, session)
        raise StaleFrameError(
            "Navigation for a frame that is not in the tree",
            frame_id=event.frame_id,
            session_id=session.session_id,
        )

    def _reclaim_frame(self, session: Session, frame: Frame) -> None:
        """A frame navigated in its parent's process: take it back from its OOP session."""
        parent = frame.parent_frame()
        if parent is None or parent.session is not session:
            logger.debug(
                "Navigation from a session that does not own the frame",
                extra={"frame_id": frame.id, "session_id": session.session_id}
            )
            return
        previous = frame.session
        removed = self._tree.prune_descendants(frame.id)
        self._router.release_frames(removed)
        self._tree.rebind(frame.id, session)
        self._tree.contexts.clear_session(previous.session_id)
        self._router.drop_session(previous)

    def _on_frame_detached(self, event: FrameDetached) -> None:
        if event.is_swap:
            logger.debug("Frame swapped to another process", extra={"frame_id": event.frame_id})
            return
        removed = self._tree.detach(event.frame_id)
        self._router.release_frames(removed)

    def _on_execution_context_created(self, session: Session, event: ExecutionContextCreated) -> None:
        frame = self._tree.get(event.frame_id)
        if frame is None or frame.session is not session:
            logger.debug(
                "Ignoring execution context for a frame this session does not own",
                extra={"frame_id": event.frame_id, "session_id": session.session_id}
            )
            return
        self._tree.contexts.add(ExecutionContext(
            context_id=event.context_id,
            frame_id=event.frame_id,
            session_id=session.session_id,
            origin=event.origin,
            name=event.name,
            is_default=event.is_default,
            unique_id=event.unique_id,
        ))

    def _on_target_destroyed(self, event: TargetDestroyed) -> None:
        if event.target_id == self.primary_session.target_id:
            self.primary_session.mark_closed()
            removed = self._tree.release_session(self.primary_session)
            self._router.release_frames(removed)
            return
        closed = self._router.on_target_destroyed(event.target_id)
        if closed is not None:
            removed = self._tree.release_session(closed)
            self._router.release_frames(removed)

    def _on_session_ready(self, event: SessionReady) -> None:
        session = self._router.take_ready(event.frame_id)
        if session is None:
            return
        if event.frame_id not in self._tree:
            self._router.drop_session(session)
            return
        self._tree.rebind(event.frame_id, session)

