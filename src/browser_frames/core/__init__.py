"""
Core module - Errors and configuration.
"""
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

__all__ = [
    "FrameTrackerConfig",
    "setup_logging",
    "BrowserFramesError",
    "CDPConnectionError",
    "CDPProtocolError",
    "CDPTimeoutError",
    "EvaluationError",
    "FrameTimeoutError",
    "OrphanFrameError",
    "SessionAttachError",
    "StaleFrameError",
]
