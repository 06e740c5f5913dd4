"""
Frame Wait Registry - Predicate-based waiters resolved by frame tree events.

A waiter is evaluated once when registered and then once per committed tree
event. The first frame in enumeration order that satisfies its predicate
resolves it, after which it is removed and never evaluated again.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Dict, List, Optional

from browser_frames.frames.frame import Frame, FramePredicate

logger = logging.getLogger("browser_frames")

_waiter_ids = itertools.count(1)


class FrameWaiter:
    """
    Cancellable handle for a pending frame wait.

    Await the handle (or its ``future``) to get the matching Frame.
    """

    def __init__(self, registry: FrameWaitRegistry, predicate: FramePredicate):
        self.id = next(_waiter_ids)
        self.predicate = predicate
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._registry = registry

    def __await__(self):
        return self.future.__await__()

    def __repr__(self):
        state = "done" if self.future.done() else "pending"
        return f"<FrameWaiter id={self.id} {state}>"

    def done(self) -> bool:
        return self.future.done()

    def result(self) -> Frame:
        return self.future.result()

    def cancel(self) -> bool:
        """
        Cancel the wait.

        Returns:
            False if the waiter already resolved; its result stands.
        """
        return self._registry.cancel(self)

    def matches(self, frame: Frame) -> bool:
        """Evaluate the predicate; a predicate that raises counts as no match."""
        try:
            return bool(self.predicate(frame))
        except Exception as e:
            logger.debug(
                f"Frame predicate raised {type(e).__name__}: {e}",
                extra={"frame_id": frame.id, "waiter_id": self.id}
            )
            return False


class FrameWaitRegistry:
    """Holds pending waiters in registration order."""

    def __init__(self):
        self._waiters: Dict[int, FrameWaiter] = {}

    def __len__(self) -> int:
        return len(self._waiters)

    def register(self, predicate: FramePredicate, frames: List[Frame]) -> FrameWaiter:
        """
        Add a waiter and evaluate it against the current frames.

        Args:
            predicate: Called with each Frame; truthy means match.
            frames: Current frames in enumeration order.
        """
        waiter = FrameWaiter(self, predicate)
        self._waiters[waiter.id] = waiter
        self._evaluate(waiter, frames)
        return waiter

    def notify(self, frames: List[Frame]) -> int:
        """
        Evaluate every pending waiter against the committed tree state.

        Waiters are resolved in registration order.

        Returns:
            Number of waiters resolved.
        """
        resolved = 0
        for waiter in list(self._waiters.values()):
            if self._evaluate(waiter, frames):
                resolved += 1
        return resolved

    def cancel(self, waiter: FrameWaiter) -> bool:
        self._waiters.pop(waiter.id, None)
        if waiter.future.done():
            return False
        return waiter.future.cancel()

    def cancel_all(self, exc: Optional[BaseException] = None) -> None:
        """Fail (or cancel) every pending waiter, e.g. on shutdown."""
        waiters = list(self._waiters.values())
        self._waiters.clear()
        for waiter in waiters:
            if waiter.future.done():
                continue
            if exc is None:
                waiter.future.cancel()
            else:
                waiter.future.set_exception(exc)

    def _evaluate(self, waiter: FrameWaiter, frames: List[Frame]) -> bool:
        if waiter.future.done():
            self._waiters.pop(waiter.id, None)
            return False
        for frame in frames:
            if frame.is_detached:
                continue
            if waiter.matches(frame):
                self._waiters.pop(waiter.id, None)
                waiter.future.set_result(frame)
                logger.debug(
                    "Frame wait resolved",
                    extra={"frame_id": frame.id, "waiter_id": waiter.id}
                )
                return True
        return False
