"""
Browser Frames Error Taxonomy - Custom exception classes for frame tracking.

This module defines a hierarchy of exceptions for the frame tree, the OOPIF
session router and the CDP transport, so callers can tell transport and
ordering bugs apart from expected failures such as a wait timing out.
"""
from typing import Optional


class BrowserFramesError(Exception):
    """Base exception for all browser frames errors."""

    def __init__(self, message: str, session_id: Optional[str] = None,
                 target_id: Optional[str] = None, method: Optional[str] = None,
                 frame_id: Optional[str] = None, **context):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.target_id = target_id
        self.method = method
        self.frame_id = frame_id
        self.context = context

    def __str__(self):
        parts = [self.message]
        if self.frame_id:
            parts.append(f"frame_id={self.frame_id}")
        if self.session_id:
            parts.append(f"session_id={self.session_id}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        if self.method:
            parts.append(f"method={self.method}")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({context_str})")
        return " | ".join(parts)


class OrphanFrameError(BrowserFramesError):
    """Raised when a frame is attached under a parent that is not in the tree."""

    def __init__(self, message: str, parent_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.parent_id = parent_id


class StaleFrameError(BrowserFramesError):
    """Raised when an operation targets a frame that is no longer in the tree."""
    pass


class SessionAttachError(BrowserFramesError):
    """Raised when attaching a session to an out-of-process iframe target fails."""
    pass


class FrameTimeoutError(BrowserFramesError, TimeoutError):
    """
    Raised when no frame satisfied a wait predicate within the time budget.

    Also a builtin ``TimeoutError``, so ``except TimeoutError`` catches it.
    """

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class EvaluationError(BrowserFramesError):
    """Raised when a script evaluated in a frame throws or cannot run."""
    pass


class CDPConnectionError(BrowserFramesError):
    """Raised when connection to Chrome/CDP fails or is lost."""
    pass


class CDPTimeoutError(BrowserFramesError):
    """Raised when a CDP operation times out."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class CDPProtocolError(BrowserFramesError):
    """Raised when CDP returns an error response."""

    def __init__(self, message: str, code: Optional[int] = None,
                 cdp_error: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.cdp_error = cdp_error
