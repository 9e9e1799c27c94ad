"""
Meet Recorder - unattended meeting attendance and capture.

This package provides:
- Speaker activity detection over the meeting page's participant tiles
- Audio, video and speaker-event capture pipelines driven from the page
- An automatic-leave watchdog with startup and post-speaker timeouts
- A single, idempotent graceful shutdown sequence for every exit path
"""

__version__ = "0.1.0"
