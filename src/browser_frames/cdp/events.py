"""
CDP Events - Typed protocol events consumed by the frame tree.

Raw DevTools messages are translated into small dataclasses so the frame
manager never has to dig through nested ``params`` dictionaries.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass
class FrameAttached:
    frame_id: str
    parent_id: Optional[str] = None


@dataclass
class FrameNavigated:
    frame_id: str
    url: str
    parent_id: Optional[str] = None
    name: str = ""


@dataclass
class FrameDetached:
    frame_id: str
    reason: str = "remove"

    @property
    def is_swap(self) -> bool:
        """True when the frame's document is moving to another process."""
        return self.reason == "swap"


@dataclass
class ExecutionContextCreated:
    frame_id: str
    context_id: int
    origin: str = ""
    name: str = ""
    is_default: bool = True
    unique_id: Optional[str] = None


@dataclass
class ExecutionContextDestroyed:
    context_id: int


@dataclass
class ExecutionContextsCleared:
    pass


@dataclass
class TargetCreated:
    target_id: str
    type: str
    owning_frame_id: Optional[str] = None
    url: str = ""


@dataclass
class TargetDestroyed:
    target_id: str


@dataclass
class SessionReady:
    """Internal record: an OOPIF attach for ``frame_id`` has finished."""
    frame_id: str
    target_id: str


@dataclass
class SessionAttachFailed:
    """Internal record: an OOPIF attach for ``frame_id`` was given up."""
    frame_id: str
    target_id: str


ProtocolEvent = Union[
    FrameAttached,
    FrameNavigated,
    FrameDetached,
    ExecutionContextCreated,
    ExecutionContextDestroyed,
    ExecutionContextsCleared,
    TargetCreated,
    TargetDestroyed,
    SessionReady,
    SessionAttachFailed,
]


def parse_event(method: str, params: Optional[Dict[str, Any]] = None) -> Optional[ProtocolEvent]:
    """
    Translate a raw CDP event into a typed event.

    Args:
        method: CDP method name, e.g. ``Page.frameAttached``.
        params: The event's ``params`` object.

    Returns:
        The typed event, or None for events the frame tree does not track.
    """
    params = params or {}

    if method == "Page.frameAttached":
        frame_id = params.get("frameId")
        if not frame_id:
            return None
        return FrameAttached(frame_id=frame_id, parent_id=params.get("parentFrameId"))

    elif method == "Page.frameNavigated":
        frame_data = params.get("frame") or {}
        frame_id = frame_data.get("id")
        if not frame_id:
            return None
        url = frame_data.get("url", "") + frame_data.get("urlFragment", "")
        return FrameNavigated(
            frame_id=frame_id,
            url=url,
            parent_id=frame_data.get("parentId"),
            name=frame_data.get("name", ""),
        )

    elif method == "Page.frameDetached":
        frame_id = params.get("frameId")
        if not frame_id:
            return None
        return FrameDetached(frame_id=frame_id, reason=params.get("reason", "remove"))

    elif method == "Runtime.executionContextCreated":
        context = params.get("context") or {}
        aux_data = context.get("auxData") or {}
        frame_id = aux_data.get("frameId")
        if not frame_id or "id" not in context:
            return None
        return ExecutionContextCreated(
            frame_id=frame_id,
            context_id=context["id"],
            origin=context.get("origin", ""),
            name=context.get("name", ""),
            is_default=bool(aux_data.get("isDefault", False)),
            unique_id=context.get("uniqueId"),
        )

    elif method == "Runtime.executionContextDestroyed":
        if "executionContextId" not in params:
            return None
        return ExecutionContextDestroyed(context_id=params["executionContextId"])

    elif method == "Runtime.executionContextsCleared":
        return ExecutionContextsCleared()

    elif method == "Target.targetCreated":
        target_info = params.get("targetInfo") or {}
        target_id = target_info.get("targetId")
        if not target_id:
            return None
        target_type = target_info.get("type", "unknown")
        # An iframe target shares its id with the frame it hosts.
        owning_frame_id = target_id if target_type == "iframe" else None
        return TargetCreated(
            target_id=target_id,
            type=target_type,
            owning_frame_id=owning_frame_id,
            url=target_info.get("url", ""),
        )

    elif method in ("Target.targetDestroyed", "Target.detachedFromTarget"):
        target_id = params.get("targetId")
        if not target_id:
            return None
        return TargetDestroyed(target_id=target_id)

    return None
