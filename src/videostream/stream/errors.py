"""
Stream Errors
=============

Error taxonomy for the streaming layer.

Propagation Rules:
    - BindError / ConnectError: session establishment failed, reported
      once to the caller
    - WriteError: ends one server connection, siblings unaffected
    - ReadError / TruncatedFrameError: ends the client receive loop
    - CaptureError: capture device could not be opened
"""

from typing import Optional


class StreamError(Exception):
    """Base class for all streaming errors."""
    pass


class BindError(StreamError):
    """Raised when the server cannot open its listening port."""
    pass


class ConnectError(StreamError):
    """Raised when the client cannot reach the server."""
    pass


class WriteError(StreamError):
    """Raised when writing a frame to a connected peer fails."""
    pass


class ReadError(StreamError):
    """Raised when the receive loop cannot continue reading frames."""
    pass


class TruncatedFrameError(ReadError):
    """Raised when the peer disconnects in the middle of a frame payload."""

    def __init__(self, received: int, expected: Optional[int] = None) -> None:
        if expected is None:
            detail = f"{received} bytes of an incomplete image buffered"
        else:
            detail = f"expected {expected} bytes, received {received}"
        super().__init__(f"Connection closed mid-frame: {detail}")
        self.expected = expected
        self.received = received


class CaptureError(StreamError):
    """Raised when a capture device cannot be opened."""
    pass
