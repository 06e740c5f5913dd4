#!/usr/bin/env python3
"""
Print the frame tree of the first page of a running Chrome.

Usage:
    python -m browser_frames --port 9222
    python -m browser_frames --wait-url /oopif.html --timeout 10
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List

from browser_frames.cdp.client import CDPClient, get_browser_ws_url
from browser_frames.core.config import FrameTrackerConfig, setup_logging
from browser_frames.core.errors import BrowserFramesError, FrameTimeoutError
from browser_frames.frames.frame import Frame
from browser_frames.frames.manager import FrameManager


def format_frame_tree(frame: Frame, depth: int = 0) -> List[str]:
    """Render a frame and its descendants, one indented line per frame."""
    marker = " [oop]" if frame.is_oop_frame else ""
    lines = [f"{'  ' * depth}{frame.id} {frame.url or '(no url)'}{marker}"]
    for child in frame.child_frames():
        lines.extend(format_frame_tree(child, depth + 1))
    return lines


async def inspect_frames(config: FrameTrackerConfig, wait_url: str | None = None) -> bool:
    """
    Connect to Chrome, print the frame tree and optionally wait for a frame.

    Returns:
        True on success, False if the wait timed out.
    """
    ws_url = await get_browser_ws_url(host=config.host, port=config.port)
    client = CDPClient(ws_url, config=config)
    page_session = await client.connect()

    try:
        async with FrameManager(client, page_session, config=config) as manager:
            if wait_url:
                try:
                    frame = await manager.wait_for_frame(
                        lambda frame: frame.url.endswith(wait_url),
                    )
                except FrameTimeoutError as e:
                    print(f"❌ {e}")
                    return False
                print(f"✅ Found frame {frame.id} ({'oop' if frame.is_oop_frame else 'in-process'})")

            await manager.settle()
            if manager.main_frame is None:
                print("(no frames)")
            else:
                print("\n".join(format_frame_tree(manager.main_frame)))
            return True
    finally:
        await client.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print the frame tree of a page over CDP.")
    parser.add_argument("--host", default="localhost", help="DevTools host (default: localhost).")
    parser.add_argument("--port", type=int, default=9222, help="DevTools port (default: 9222).")
    parser.add_argument(
        "--wait-url",
        default=None,
        help="Wait for a frame whose URL ends with this suffix before printing.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for --wait-url (default: 30).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> bool:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(logging.WARNING, debug=args.debug)
    config = FrameTrackerConfig(
        host=args.host,
        port=args.port,
        default_timeout=args.timeout,
        debug=args.debug,
    )
    try:
        return asyncio.run(inspect_frames(config, wait_url=args.wait_url))
    except BrowserFramesError as e:
        print(f"❌ {e}")
        return False


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
