"""
CDP Module - Protocol events, sessions and the WebSocket transport.
"""
from browser_frames.cdp.client import CDPClient, CDPSession, get_browser_ws_url
from browser_frames.cdp.events import (
    ExecutionContextCreated,
    ExecutionContextDestroyed,
    ExecutionContextsCleared,
    FrameAttached,
    FrameDetached,
    FrameNavigated,
    ProtocolEvent,
    TargetCreated,
    TargetDestroyed,
    parse_event,
)
from browser_frames.cdp.session import Session, SessionStatus, Transport

__all__ = [
    "CDPClient",
    "CDPSession",
    "get_browser_ws_url",
    "Session",
    "SessionStatus",
    "Transport",
    "ProtocolEvent",
    "FrameAttached",
    "FrameNavigated",
    "FrameDetached",
    "ExecutionContextCreated",
    "ExecutionContextDestroyed",
    "ExecutionContextsCleared",
    "TargetCreated",
    "TargetDestroyed",
    "parse_event",
]
