"""
videostream
===========

Live camera streaming between two peers over raw TCP.

A streamer captures frames, JPEG-encodes them into a single latest-frame
slot and pushes that slot to every connected viewer at a fixed cadence.
A viewer reads frames back, decodes them and shows them.

Components:
    - stream: buffer, codec, framing, server, client, capture, display
    - lifecycle: start/stop orchestration of streamer and viewer sessions
    - status: optional HTTP health/metrics endpoint
    - main: command line entry point

Example:
    videostream serve --port 8080
    videostream watch 192.168.1.5 --port 8080
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
