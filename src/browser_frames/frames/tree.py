"""
Frame Tree - The authoritative frame-id to Frame mapping for one page.

The tree has a single root (the main frame) and only grows by attaching a
new frame under a live parent, so it stays acyclic. Enumeration is
breadth-first from the root with children in attachment order.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterator, List, Optional

from browser_frames.cdp.session import Session
from browser_frames.core.errors import OrphanFrameError, StaleFrameError
from browser_frames.frames.execution_context import ExecutionContext, ExecutionContextRegistry
from browser_frames.frames.frame import Frame, FramePredicate

logger = logging.getLogger("browser_frames")


class FrameTree:
    """Owns every Frame of a page and enforces the tree invariants."""

    def __init__(self, primary_session: Session):
        self.primary_session = primary_session
        self.contexts = ExecutionContextRegistry()
        self._frames: Dict[str, Frame] = {}
        self._root_id: Optional[str] = None
        self._root_assigned = False

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, frame_id: str) -> bool:
        return frame_id in self._frames

    @property
    def main_frame(self) -> Optional[Frame]:
        return self._frames.get(self._root_id) if self._root_id else None

    def get(self, frame_id: str) -> Optional[Frame]:
        return self._frames.get(frame_id)

    def require(self, frame_id: str, method: str = "") -> Frame:
        """Get a live frame or raise StaleFrameError."""
        frame = self._frames.get(frame_id)
        if frame is None:
            raise StaleFrameError(
                "Frame is not in the tree",
                frame_id=frame_id,
                method=method or None,
            )
        return frame

    def attach(self, frame_id: str, parent_id: Optional[str], session: Session) -> Frame:
        """
        Insert a new frame as the last child of ``parent_id``.

        A frame without a parent becomes the root; that is allowed once per
        tree. Attaching an id that is already live returns the existing frame.

        Raises:
            OrphanFrameError: The parent is unknown, or a second root was offered.
        """
        existing = self._frames.get(frame_id)
        if existing is not None:
            logger.debug("Frame already attached", extra={"frame_id": frame_id})
            return existing

        if parent_id is None:
            if self._root_assigned:
                raise OrphanFrameError(
                    "Frame has no parent and the tree already has a root",
                    frame_id=frame_id,
                    method="attach",
                )
            frame = Frame(self, frame_id, None, session)
            self._frames[frame_id] = frame
            self._root_id = frame_id
            self._root_assigned = True
            logger.debug("Main frame attached", extra={"frame_id": frame_id})
            return frame

        parent = self._frames.get(parent_id)
        if parent is None:
            raise OrphanFrameError(
                f"Parent frame {parent_id} is not in the tree",
                parent_id=parent_id,
                frame_id=frame_id,
                method="attach",
            )

        frame = Frame(self, frame_id, parent_id, session)
        self._frames[frame_id] = frame
        parent._children.append(frame_id)
        logger.debug(
            "Frame attached",
            extra={"frame_id": frame_id, "parent_id": parent_id}
        )
        return frame

    def navigate(self, frame_id: str, url: str,
                 new_execution_context: Optional[ExecutionContext] = None,
                 name: Optional[str] = None) -> Frame:
        """Commit a navigation: update the URL and drop the old execution contexts."""
        frame = self.require(frame_id, "navigate")
        frame._url = url
        if name is not None:
            frame._name = name
        self.contexts.clear_frame(frame_id)
        if new_execution_context is not None:
            self.contexts.add(new_execution_context)
        logger.debug(f"Frame navigated to {url}", extra={"frame_id": frame_id})
        return frame

    def rebind(self, frame_id: str, session: Session) -> Frame:
        """Make ``session`` responsible for the frame."""
        frame = self.require(frame_id, "rebind")
        if frame._session is not session:
            frame._session = session
            logger.debug(
                "Frame rebound",
                extra={
                    "frame_id": frame_id,
                    "session_id": session.session_id,
                    "is_oop": frame.is_oop_frame,
                }
            )
        return frame

    def detach(self, frame_id: str) -> List[Frame]:
        """
        Remove a frame and all of its descendants.

        Unknown ids are ignored, since detach notifications can race with
        teardown.

        Returns:
            The removed frames, the detached frame first.
        """
        frame = self._frames.get(frame_id)
        if frame is None:
            return []

        removed = self._collect_subtree(frame)
        parent = self._frames.get(frame._parent_id) if frame._parent_id else None
        if parent is not None and frame_id in parent._children:
            parent._children.remove(frame_id)

        for node in removed:
            self._release(node)

        if frame_id == self._root_id:
            self._root_id = None

        logger.debug(
            "Frame detached",
            extra={"frame_id": frame_id, "removed": len(removed)}
        )
        return removed

    def prune_descendants(self, frame_id: str) -> List[Frame]:
        """Remove every descendant of a frame, keeping the frame itself."""
        frame = self._frames.get(frame_id)
        if frame is None:
            return []
        removed = []
        for child_id in frame._children[:]:
            removed.extend(self.detach(child_id))
        return removed

    def release_session(self, session: Session) -> List[Frame]:
        """
        Handle a closed session.

        Each frame rooted in the session keeps its place in the tree but
        loses its descendants and falls back to its parent's session. When
        the primary session closes the whole tree goes.

        Returns:
            The frames that were removed.
        """
        if session is self.primary_session:
            if self._root_id is None:
                return []
            return self.detach(self._root_id)

        removed = []
        for frame in self._session_roots(session):
            if frame._detached:
                continue
            removed.extend(self.prune_descendants(frame.id))
            parent = frame.parent_frame()
            self.rebind(frame.id, parent.session if parent else self.primary_session)
        self.contexts.clear_session(session.session_id)
        return removed

    def frames_in_session(self, session: Session) -> List[Frame]:
        return [frame for frame in self.frames() if frame._session is session]

    def find(self, predicate: FramePredicate) -> Optional[Frame]:
        """Return the first frame, in enumeration order, satisfying ``predicate``."""
        for frame in self.frames():
            if predicate(frame):
                return frame
        return None

    def frames(self) -> Iterator[Frame]:
        """
        Lazily enumerate frames breadth-first from the root.

        Each call starts a fresh walk. Child lists are copied as they are
        visited, so a mutation between two steps never breaks the walk.
        """
        if self._root_id is None:
            return
        queue = deque([self._root_id])
        while queue:
            frame = self._frames.get(queue.popleft())
            if frame is None:
                continue
            yield frame
            queue.extend(frame._children[:])

    def _session_roots(self, session: Session) -> List[Frame]:
        roots = []
        for frame in self.frames_in_session(session):
            parent = frame.parent_frame()
            if parent is None or parent._session is not session:
                roots.append(frame)
        return roots

    def _collect_subtree(self, frame: Frame) -> List[Frame]:
        nodes = [frame]
        index = 0
        while index < len(nodes):
            for child_id in nodes[index]._children:
                child = self._frames.get(child_id)
                if child is not None:
                    nodes.append(child)
            index += 1
        return nodes

    def _release(self, frame: Frame) -> None:
        self._frames.pop(frame.id, None)
        self.contexts.clear_frame(frame.id)
        frame._detached = True
