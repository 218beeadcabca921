"""
Stream Module
=============

Frame transport between a camera-side streamer and a viewer.

This module provides:
    - LatestFrameBuffer: Single-slot, latest-frame-wins holder
    - FrameSource: Encodes raw frames off the capture thread
    - StreamServer: Pushes the latest frame to every client at a fixed cadence
    - StreamClient: Receives, decodes and displays frames
    - FrameCodec: JPEG encode/decode
    - FramingMode: Wire framing (length-prefixed or raw JPEG stream)

Example:
    from videostream.stream import LatestFrameBuffer, StreamServer

    buffer = LatestFrameBuffer()
    server = StreamServer(buffer)
    await server.listen(port=8080)

    buffer.publish(jpeg_bytes)
"""

from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.capture import CameraCapture, SyntheticCapture
from videostream.stream.client import StreamClient, StreamClientMetrics
from videostream.stream.codec import DecodeError, EncodeError, FrameCodec
from videostream.stream.display import CallbackSink, DisplaySink, OpenCVWindowSink
from videostream.stream.errors import (
    BindError,
    CaptureError,
    ConnectError,
    ReadError,
    StreamError,
    TruncatedFrameError,
    WriteError,
)
from videostream.stream.frame import Frame
from videostream.stream.framing import FramingMode, JpegStreamSplitter
from videostream.stream.server import StreamServer, StreamServerMetrics
from videostream.stream.source import FrameSource


__all__ = [
    "Frame",
    "LatestFrameBuffer",
    "FrameSource",
    "CameraCapture",
    "SyntheticCapture",
    "StreamServer",
    "StreamServerMetrics",
    "StreamClient",
    "StreamClientMetrics",
    "FrameCodec",
    "EncodeError",
    "DecodeError",
    "DisplaySink",
    "CallbackSink",
    "OpenCVWindowSink",
    "FramingMode",
    "JpegStreamSplitter",
    "StreamError",
    "BindError",
    "ConnectError",
    "WriteError",
    "ReadError",
    "TruncatedFrameError",
    "CaptureError",
]
