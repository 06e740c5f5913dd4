"""
Browser Frames Tests

Run all tests:
    pytest tests/ -v

Run specific test file:
    pytest tests/test_oopif.py -v

Run with coverage:
    pytest tests/ -v --cov=browser_frames

The suite drives the frame manager with in-memory sessions (tests/helpers.py),
so no Chrome instance is required.
"""
