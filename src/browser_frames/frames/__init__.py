"""
Frames Module - Frame tree, OOPIF routing, execution contexts and frame waits.
"""
from browser_frames.frames.execution_context import ExecutionContext, ExecutionContextRegistry
from browser_frames.frames.frame import Frame, FramePredicate
from browser_frames.frames.manager import FrameManager
from browser_frames.frames.router import OOPIFSessionRouter
from browser_frames.frames.tree import FrameTree
from browser_frames.frames.waiters import FrameWaiter, FrameWaitRegistry

__all__ = [
    "ExecutionContext",
    "ExecutionContextRegistry",
    "Frame",
    "FramePredicate",
    "FrameManager",
    "FrameTree",
    "FrameWaiter",
    "FrameWaitRegistry",
    "OOPIFSessionRouter",
]
