"""
Out-of-process iframe scenarios.

Each test drives the frame manager with the event sequences Chrome emits
under site isolation, using the in-memory transport from tests.helpers.

Run with: pytest tests/test_oopif.py -v
"""
import asyncio

import pytest

from browser_frames.cdp.events import ExecutionContextCreated, FrameAttached, FrameNavigated
from browser_frames.core.errors import EvaluationError

from tests.helpers import (
    CROSS_PROCESS_PREFIX,
    EMPTY_PAGE,
    SERVER_PREFIX,
    attach_frame,
    attach_oop_frame,
    detach_frame,
    frame_index,
    navigate_back_in_process,
    navigate_frame,
    navigate_out_of_process,
)

CROSS_EMPTY_PAGE = f"{CROSS_PROCESS_PREFIX}/empty.html"


def _child(frame_id, parent_id, url):
    return [
        FrameAttached(frame_id=frame_id, parent_id=parent_id),
        FrameNavigated(frame_id=frame_id, url=url, parent_id=parent_id),
    ]


def second_frame(page):
    return lambda frame: frame_index(page, frame) == 1


async def attach_oop(page, primary_session, transport, frame_id="frame1", url=CROSS_EMPTY_PAGE, **kwargs):
    frame = await page.wait_for_frame(
        lambda f: f.id == frame_id and f.is_oop_frame,
        action=lambda: attach_oop_frame(primary_session, transport, frame_id, url, **kwargs),
    )
    await page.settle()
    return frame


# =============================================================================
# Frame tracking
# =============================================================================

class TestOOPIFTracking:
    """OOP iframes behave like any other frame in the tree."""

    @pytest.mark.asyncio
    async def test_treats_oop_and_normal_iframes_the_same(self, page, primary_session, transport):
        def both_attached():
            attach_frame(primary_session, "frame1", EMPTY_PAGE)
            attach_oop_frame(primary_session, transport, "frame2", CROSS_EMPTY_PAGE)

        await page.wait_for_frame(
            lambda frame: frame.id == "frame2" and frame.url.endswith("/empty.html"),
            action=both_attached,
        )

        children = page.main_frame.child_frames()
        assert [frame.id for frame in children] == ["frame1", "frame2"]
        assert [frame.is_oop_frame for frame in children] == [False, True]

    @pytest.mark.asyncio
    async def test_tracks_navigations_within_oop_iframes(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        assert frame_index(page, frame) == 1
        assert frame.url.endswith("/empty.html")

        navigate_frame(frame.session, "frame1", f"{CROSS_PROCESS_PREFIX}/frames/frame.html")
        await page.settle()

        assert frame.url.endswith("/frames/frame.html")
        assert frame.is_oop_frame

    @pytest.mark.asyncio
    async def test_oop_iframe_becomes_normal_again(self, page, primary_session, transport):
        frame = await page.wait_for_frame(
            second_frame(page),
            action=lambda: attach_frame(primary_session, "frame1", EMPTY_PAGE),
        )
        await page.settle()
        assert not frame.is_oop_frame

        navigate_out_of_process(primary_session, transport, "frame1", CROSS_EMPTY_PAGE)
        await page.settle()
        assert frame.is_oop_frame
        oop_session = frame.session

        navigate_back_in_process(primary_session, "frame1", EMPTY_PAGE)
        await page.settle()
        assert not frame.is_oop_frame
        assert frame.session is primary_session
        assert frame.url == EMPTY_PAGE

        assert len(page.frames()) == 2
        assert transport.detached == [oop_session]
        assert page.oopif_targets() == []

    @pytest.mark.asyncio
    async def test_frames_within_oop_frames(self, page, primary_session, transport):
        frame1_waiter = page.async_wait_for_frame(lambda frame: frame_index(page, frame) == 1)
        frame2_waiter = page.async_wait_for_frame(lambda frame: frame_index(page, frame) == 2)

        attach_oop_frame(
            primary_session, transport, "frame1", f"{CROSS_PROCESS_PREFIX}/frames/one-frame.html",
            children=_child("inner", "frame1", f"{CROSS_PROCESS_PREFIX}/frames/frame.html"),
        )
        frame1, frame2 = await asyncio.gather(frame1_waiter, frame2_waiter)
        await page.settle()

        assert frame1.url.endswith("/one-frame.html")
        assert frame2.url.endswith("/frames/frame.html")
        assert frame2.parent_frame() is frame1
        assert frame2.is_oop_frame

    @pytest.mark.asyncio
    async def test_oop_iframe_getting_detached(self, page, primary_session, transport):
        def attach_then_isolate():
            attach_frame(primary_session, "frame1", EMPTY_PAGE)
            navigate_out_of_process(primary_session, transport, "frame1", CROSS_EMPTY_PAGE)

        frame = await page.wait_for_frame(
            lambda f: frame_index(page, f) == 1 and f.is_oop_frame,
            action=attach_then_isolate,
        )
        await page.settle()
        oop_session = frame.session

        detach_frame(primary_session, "frame1")
        await page.settle()

        assert len(page.frames()) == 1
        assert frame.is_detached
        assert oop_session in transport.detached
        assert page.oopif_targets() == []

    @pytest.mark.asyncio
    async def test_keeps_track_of_frame_url(self, page, primary_session):
        frame = await page.wait_for_frame(
            second_frame(page),
            action=lambda: attach_frame(primary_session, "frame1", EMPTY_PAGE),
        )
        await page.settle()
        assert "/empty.html" in frame.url

        navigate_frame(primary_session, "frame1", EMPTY_PAGE)
        await page.settle()
        assert frame.url == EMPTY_PAGE

    @pytest.mark.asyncio
    async def test_report_oopif_frames(self, page, primary_session, transport):
        frame = await page.wait_for_frame(
            lambda f: f.url.endswith("/oopif.html"),
            action=lambda: attach_oop_frame(
                primary_session, transport, "frame1", f"{CROSS_PROCESS_PREFIX}/oopif.html"
            ),
        )
        await page.settle()

        assert frame.is_oop_frame
        assert page.oopif_targets() == ["frame1"]
        assert len(page.frames()) == 2

    @pytest.mark.asyncio
    async def test_frames_within_oop_iframes_lifecycle(self, page, primary_session, transport):
        oop_iframe = await attach_oop(page, primary_session, transport, url=f"{CROSS_PROCESS_PREFIX}/oopif.html")
        oop_session = oop_iframe.session

        attach_frame(oop_session, "inner", CROSS_EMPTY_PAGE, parent_id="frame1")
        await page.settle()
        inner = oop_iframe.child_frames()[0]
        assert inner.url.endswith("/empty.html")
        assert inner.session is oop_session

        navigate_frame(oop_session, "inner", f"{CROSS_PROCESS_PREFIX}/oopif.html", parent_id="frame1")
        await page.settle()
        assert inner.url.endswith("/oopif.html")

        detach_frame(oop_session, "inner")
        await page.settle()
        assert oop_iframe.child_frames() == []


# =============================================================================
# Sessions
# =============================================================================

class TestOOPIFSessions:
    """Commands for an OOP frame go to its own session."""

    @pytest.mark.asyncio
    async def test_attached_session_is_bootstrapped(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        assert frame.session.sent_methods()[:4] == [
            "Page.enable",
            "Runtime.enable",
            "Runtime.runIfWaitingForDebugger",
            "Page.getFrameTree",
        ]

    @pytest.mark.asyncio
    async def test_evaluate_in_oop_iframe(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        oop_session = frame.session
        oop_session.emit(ExecutionContextCreated(frame_id="frame1", context_id=3))
        await page.settle()

        oop_session.responses["Runtime.evaluate"] = {"result": {"type": "string", "value": "Test 123"}}
        result = await frame.evaluate("window._test")

        assert result == "Test 123"
        method, params = oop_session.sent[-1]
        assert method == "Runtime.evaluate"
        assert params["contextId"] == 3
        assert "Runtime.evaluate" not in primary_session.sent_methods()

    @pytest.mark.asyncio
    async def test_evaluate_function_in_oop_iframe(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        oop_session = frame.session
        oop_session.emit(ExecutionContextCreated(frame_id="frame1", context_id=3))
        await page.settle()

        oop_session.responses["Runtime.callFunctionOn"] = {"result": {"type": "string", "value": "Test 123"}}
        result = await frame.evaluate("(suffix) => window._test + suffix", " 123")

        assert result == "Test 123"
        method, params = oop_session.sent[-1]
        assert method == "Runtime.callFunctionOn"
        assert params["functionDeclaration"] == "(suffix) => window._test + suffix"
        assert params["executionContextId"] == 3
        assert params["arguments"] == [{"value": " 123"}]
        assert "Runtime.evaluate" not in oop_session.sent_methods()

    @pytest.mark.asyncio
    async def test_evaluate_reports_script_errors(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        frame.session.emit(ExecutionContextCreated(frame_id="frame1", context_id=3))
        await page.settle()

        frame.session.responses["Runtime.evaluate"] = {
            "result": {"type": "object"},
            "exceptionDetails": {"text": "Uncaught", "exception": {"description": "ReferenceError: x"}},
        }
        with pytest.raises(EvaluationError, match="ReferenceError"):
            await frame.evaluate("x")

    @pytest.mark.asyncio
    async def test_provides_access_to_elements(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        frame.session.emit(ExecutionContextCreated(frame_id="frame1", context_id=3))
        await page.settle()

        frame.session.responses["Runtime.callFunctionOn"] = {"result": {"type": "boolean", "value": True}}
        await frame.click("#test-button")

        method, params = frame.session.sent[-1]
        assert method == "Runtime.callFunctionOn"
        assert params["executionContextId"] == 3
        assert params["arguments"] == [{"value": "#test-button"}]

    @pytest.mark.asyncio
    async def test_click_missing_element(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        frame.session.emit(ExecutionContextCreated(frame_id="frame1", context_id=3))
        await page.settle()

        frame.session.responses["Runtime.callFunctionOn"] = {"result": {"type": "boolean", "value": False}}
        with pytest.raises(EvaluationError, match="No element matches"):
            await frame.click("#missing")

    @pytest.mark.asyncio
    async def test_evaluate_before_context_exists(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        with pytest.raises(EvaluationError):
            await frame.evaluate("1")

    @pytest.mark.asyncio
    async def test_main_session_context_is_ignored_for_oop_frame(self, page, primary_session, transport):
        frame = await attach_oop(page, primary_session, transport)
        primary_session.emit(ExecutionContextCreated(frame_id="frame1", context_id=9))
        frame.session.emit(ExecutionContextCreated(frame_id="main", context_id=10))
        await page.settle()

        assert frame.execution_context is None
        assert page.main_frame.execution_context is None


# =============================================================================
# Process swaps
# =============================================================================

class TestProcessSwaps:
    """Frames move between processes without losing their identity."""

    @pytest.mark.asyncio
    async def test_back_and_forth_keeps_oop_flag_consistent(self, page, primary_session, transport):
        attach_frame(primary_session, "frame1", EMPTY_PAGE)
        await page.settle()
        frame = page.frame("frame1")

        for round_trip in range(3):
            navigate_out_of_process(
                primary_session, transport, "frame1", f"{CROSS_EMPTY_PAGE}?round={round_trip}"
            )
            await page.settle()
            assert frame.is_oop_frame
            assert frame.session is not primary_session
            assert page.oopif_targets() == ["frame1"]

            navigate_back_in_process(primary_session, "frame1", f"{SERVER_PREFIX}/empty.html?round={round_trip}")
            await page.settle()
            assert not frame.is_oop_frame
            assert page.oopif_targets() == []

        assert page.frame("frame1") is frame
        assert len(transport.attached) == 3
        assert len(transport.detached) == 3

    @pytest.mark.asyncio
    async def test_returning_frame_loses_oop_children(self, page, primary_session, transport):
        frame = await attach_oop(
            page, primary_session, transport,
            children=_child("inner", "frame1", f"{CROSS_PROCESS_PREFIX}/frames/frame.html"),
        )
        assert [child.id for child in frame.child_frames()] == ["inner"]

        navigate_back_in_process(primary_session, "frame1", EMPTY_PAGE)
        await page.settle()

        assert frame.child_frames() == []
        assert [f.id for f in page.frames()] == ["main", "frame1"]
