"""
Browser Frames - Frame tree tracking across out-of-process iframes over CDP.

This package keeps one consistent frame tree for a page whose iframes may be
rendered in separate processes, each reached through its own DevTools
session, and lets callers wait for a frame matching any predicate.

Usage:
    from browser_frames import CDPClient, FrameManager, get_browser_ws_url

    client = CDPClient(await get_browser_ws_url())
    page_session = await client.connect()

    async with FrameManager(client, page_session) as manager:
        frame = await manager.wait_for_frame(
            lambda frame: frame.url.endswith("/oopif.html"),
            timeout=10,
        )
        print(frame.is_oop_frame, [f.url for f in manager.frames()])

Non-blocking waits:
    waiter = manager.async_wait_for_frame(lambda frame: frame.name == "ads")
    ...
    frame = await waiter
"""
from browser_frames.cdp.client import CDPClient, CDPSession, get_browser_ws_url
from browser_frames.cdp.session import Session, SessionStatus, Transport
from browser_frames.core.config import FrameTrackerConfig, setup_logging
from browser_frames.core.errors import (
    BrowserFramesError,
    CDPConnectionError,
    CDPProtocolError,
    CDPTimeoutError,
    EvaluationError,
    FrameTimeoutError,
    OrphanFrameError,
    SessionAttachError,
    StaleFrameError,
)
from browser_frames.frames import (
    ExecutionContext,
    ExecutionContextRegistry,
    Frame,
    FrameManager,
    FrameTree,
    FrameWaiter,
    FrameWaitRegistry,
    OOPIFSessionRouter,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "FrameManager",
    "Frame",
    "FrameWaiter",
    "FrameTrackerConfig",
    "setup_logging",
    # Building blocks
    "FrameTree",
    "FrameWaitRegistry",
    "OOPIFSessionRouter",
    "ExecutionContext",
    "ExecutionContextRegistry",
    # Transport
    "CDPClient",
    "CDPSession",
    "Session",
    "SessionStatus",
    "Transport",
    "get_browser_ws_url",
    # Errors
    "BrowserFramesError",
    "OrphanFrameError",
    "StaleFrameError",
    "SessionAttachError",
    "FrameTimeoutError",
    "EvaluationError",
    "CDPConnectionError",
    "CDPTimeoutError",
    "CDPProtocolError",
    # Version
    "__version__",
]
