"""
Configuration for frame tracking and the CDP transport.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger("browser_frames")


@dataclass
class FrameTrackerConfig:
    """Configuration options for the FrameManager and CDPClient."""

    host: str = "localhost"
    port: int = 9222
    default_timeout: float = 30.0
    attach_timeout: float = 10.0
    command_timeout: float = 30.0
    debug: bool = False


def setup_logging(level: int = logging.INFO, debug: bool = False):
    """Configure logging for browser frames."""
    if debug:
        level = logging.DEBUG

    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
