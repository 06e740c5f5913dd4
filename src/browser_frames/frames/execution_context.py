"""
Execution Context Registry - Maps frames to their script execution contexts.

Context ids are only unique within one session (one renderer process), so
every context is keyed by ``(session_id, context_id)``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger("browser_frames")

ContextKey = Tuple[str, int]


@dataclass
class ExecutionContext:
    """A script execution context created for a frame's document."""
    context_id: int
    frame_id: str
    session_id: str
    origin: str = ""
    name: str = ""
    is_default: bool = True
    unique_id: Optional[str] = None

    @property
    def key(self) -> ContextKey:
        return (self.session_id, self.context_id)


class ExecutionContextRegistry:
    """Tracks which execution contexts belong to which frame."""

    def __init__(self):
        self._contexts: Dict[ContextKey, ExecutionContext] = {}
        self._by_frame: Dict[str, List[ContextKey]] = {}
        self._defaults: Dict[str, ContextKey] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def add(self, context: ExecutionContext) -> None:
        """
        Register a context for its frame.

        A default context replaces the frame's previous default, so a frame
        never has more than one.
        """
        if context.key in self._contexts:
            self.remove(context.session_id, context.context_id)

        self._contexts[context.key] = context
        self._by_frame.setdefault(context.frame_id, []).append(context.key)

        if context.is_default:
            previous = self._defaults.get(context.frame_id)
            if previous is not None and previous != context.key:
                self.remove(*previous)
            self._defaults[context.frame_id] = context.key

        logger.debug(
            f"Execution context {context.context_id} created",
            extra={"frame_id": context.frame_id, "session_id": context.session_id}
        )

    def get(self, session_id: str, context_id: int) -> Optional[ExecutionContext]:
        return self._contexts.get((session_id, context_id))

    def default_for(self, frame_id: str) -> Optional[ExecutionContext]:
        """Get the frame's default context, or None until one is created."""
        key = self._defaults.get(frame_id)
        return self._contexts.get(key) if key else None

    def contexts_for(self, frame_id: str) -> List[ExecutionContext]:
        return [self._contexts[key] for key in self._by_frame.get(frame_id, [])]

    def remove(self, session_id: str, context_id: int) -> Optional[ExecutionContext]:
        """Remove a single context; unknown ids are ignored."""
        context = self._contexts.pop((session_id, context_id), None)
        if context is None:
            return None

        keys = self._by_frame.get(context.frame_id, [])
        if context.key in keys:
            keys.remove(context.key)
        if not keys:
            self._by_frame.pop(context.frame_id, None)
        if self._defaults.get(context.frame_id) == context.key:
            del self._defaults[context.frame_id]
        return context

    def clear_frame(self, frame_id: str) -> List[ExecutionContext]:
        """Drop every context of a frame (navigation or detach)."""
        removed = []
        for key in list(self._by_frame.get(frame_id, [])):
            context = self.remove(*key)
            if context is not None:
                removed.append(context)
        return removed

    def clear_session(self, session_id: str) -> List[ExecutionContext]:
        """Drop every context created by a session."""
        keys = [key for key in self._contexts if key[0] == session_id]
        return [context for context in (self.remove(*key) for key in keys) if context]
