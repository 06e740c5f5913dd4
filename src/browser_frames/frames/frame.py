"""
Frame - One node of the page's frame tree.

Frames are owned and mutated by the FrameTree; callers only read them.
Commands issued through a frame are routed to whichever session currently
hosts it, so the same call works for in-process and out-of-process frames.
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from browser_frames.core.errors import EvaluationError, StaleFrameError

if TYPE_CHECKING:
    from browser_frames.cdp.session import Session
    from browser_frames.frames.execution_context import ExecutionContext
    from browser_frames.frames.tree import FrameTree

logger = logging.getLogger("browser_frames")

CLICK_FUNCTION = """(selector) => {
    const element = document.querySelector(selector);
    if (!element) {
        return false;
    }
    element.scrollIntoView({block: 'center', inline: 'center'});
    element.click();
    return true;
}"""

FUNCTION_SOURCE = re.compile(r"^\s*(async\s+)?(function\b|\([^)]*\)\s*=>|[A-Za-z_$][\w$]*\s*=>)")


def is_function_source(source: str) -> bool:
    """True if ``source`` is a function or arrow function rather than an expression."""
    return FUNCTION_SOURCE.match(source) is not None


class Frame:
    """A document-hosting context: the main page or one of its iframes."""

    def __init__(self, tree: FrameTree, frame_id: str, parent_id: Optional[str],
                 session: Session):
        self._tree = tree
        self._id = frame_id
        self._parent_id = parent_id
        self._session = session
        self._url = ""
        self._name = ""
        self._children: List[str] = []
        self._detached = False

    def __repr__(self):
        return f"<Frame id={self._id} url={self._url!r} oop={self.is_oop_frame}>"

    @property
    def id(self) -> str:
        return self._id

    @property
    def parent_id(self) -> Optional[str]:
        return self._parent_id

    @property
    def url(self) -> str:
        """Last committed URL; empty until the frame first navigates."""
        return self._url

    @property
    def name(self) -> str:
        return self._name

    @property
    def session(self) -> Session:
        """The session currently responsible for this frame."""
        return self._session

    @property
    def is_oop_frame(self) -> bool:
        """True while the frame is hosted by a session other than the page's."""
        return self._session is not self._tree.primary_session

    @property
    def is_detached(self) -> bool:
        return self._detached

    @property
    def is_main_frame(self) -> bool:
        return self._parent_id is None

    @property
    def execution_context(self) -> Optional[ExecutionContext]:
        """The default execution context, absent after navigation until a new one arrives."""
        if self._detached:
            return None
        return self._tree.contexts.default_for(self._id)

    def child_frames(self) -> List[Frame]:
        """Child frames in attachment order."""
        children = []
        for child_id in self._children:
            child = self._tree.get(child_id)
            if child is not None:
                children.append(child)
        return children

    def parent_frame(self) -> Optional[Frame]:
        if self._parent_id is None:
            return None
        return self._tree.get(self._parent_id)

    def _ensure_attached(self, method: str) -> None:
        if self._detached:
            raise StaleFrameError(
                "Frame has been detached",
                frame_id=self._id,
                method=method,
            )

    def _require_context(self, method: str) -> ExecutionContext:
        self._ensure_attached(method)
        context = self.execution_context
        if context is None:
            raise EvaluationError(
                "Frame has no execution context yet",
                frame_id=self._id,
                session_id=self._session.session_id,
                method=method,
            )
        return context

    def _unwrap(self, result: Dict[str, Any], method: str) -> Any:
        details = result.get("exceptionDetails")
        if details:
            exception = details.get("exception") or {}
            text = exception.get("description") or details.get("text", "Script threw")
            raise EvaluationError(
                f"Evaluation failed: {text}",
                frame_id=self._id,
                session_id=self._session.session_id,
                method=method,
            )
        return result.get("result", {}).get("value")

    async def evaluate(self, expression: str, *args: Any) -> Any:
        """
        Evaluate a script in this frame's default context.

        Function source such as ``"(a, b) => a + b"`` is called with ``args``;
        anything else is evaluated as an expression.

        Args:
            expression: JavaScript expression or function source; promises are awaited.
            *args: JSON-serialisable arguments for function source.

        Returns:
            The JSON-serialisable value of the expression or call.
        """
        if is_function_source(expression):
            context = self._require_context("Runtime.callFunctionOn")
            result = await self._session.send("Runtime.callFunctionOn", {
                "functionDeclaration": expression,
                "executionContextId": context.context_id,
                "arguments": [{"value": arg} for arg in args],
                "returnByValue": True,
                "awaitPromise": True,
            })
            return self._unwrap(result, "Runtime.callFunctionOn")

        context = self._require_context("Runtime.evaluate")
        result = await self._session.send("Runtime.evaluate", {
            "expression": expression,
            "contextId": context.context_id,
            "returnByValue": True,
            "awaitPromise": True,
        })
        return self._unwrap(result, "Runtime.evaluate")

    async def click(self, selector: str) -> None:
        """Click the first element in this frame matching a CSS selector."""
        context = self._require_context("Runtime.callFunctionOn")
        result = await self._session.send("Runtime.callFunctionOn", {
            "functionDeclaration": CLICK_FUNCTION,
            "executionContextId": context.context_id,
            "arguments": [{"value": selector}],
            "returnByValue": True,
            "awaitPromise": True,
        })
        if not self._unwrap(result, "Runtime.callFunctionOn"):
            raise EvaluationError(
                f"No element matches selector {selector!r}",
                frame_id=self._id,
                method="Runtime.callFunctionOn",
            )
        logger.debug(f"Clicked {selector}", extra={"frame_id": self._id})


FramePredicate = Callable[[Frame], bool]
