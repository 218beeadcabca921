"""
Latest Frame Buffer
===================

Single-slot, overwrite-on-write holder for the most recently encoded frame.

This module provides the LatestFrameBuffer class, which is the only
synchronization point between the frame producer (capture + encoder
threads) and the server's per-connection send loops.

Design Rules:
    - Holds at most one frame; a publish replaces it unconditionally
    - Never queues: an unread frame is discarded (coalesced) on publish
    - peek() does not consume, any number of readers may observe a frame
    - Lock is held for the reference swap only, never across I/O
"""

import logging
import threading
import time
from typing import Optional, Union

from videostream.stream.frame import Frame


logger = logging.getLogger(__name__)


class LatestFrameBuffer:
    """
    Thread-safe latest-frame-wins slot.

    Readers see either nothing (before the first publish) or one complete
    previously published frame, never a mix of two writes.

    Attributes:
        total_published: Number of frames ever published
        coalesced_count: Frames replaced before any reader peeked them

    Example:
        buffer = LatestFrameBuffer()

        # Producer (any thread)
        buffer.publish(jpeg_bytes)

        # Readers (any thread / task)
        frame = buffer.peek()
        if frame is not None:
            send(frame.payload)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[Frame] = None
        self._observed: bool = False
        self._total_published: int = 0
        self._coalesced_count: int = 0

    @property
    def total_published(self) -> int:
        """Total frames ever published."""
        return self._total_published

    @property
    def coalesced_count(self) -> int:
        """Frames overwritten without ever being peeked."""
        return self._coalesced_count

    def publish(self, payload: Union[bytes, bytearray, memoryview]) -> Frame:
        """
        Atomically replace the held frame.

        Args:
            payload: Encoded image bytes. Mutable buffers are copied so
                later writes by the caller cannot leak into the frame.

        Returns:
            The Frame now held by the buffer.
        """
        data = bytes(payload)
        with self._lock:
            sequence = self._total_published + 1
            frame = Frame(payload=data, sequence=sequence, timestamp=time.monotonic())
            if self._frame is not None and not self._observed:
                self._coalesced_count += 1
            self._frame = frame
            self._observed = False
            self._total_published = sequence
        return frame

    def peek(self) -> Optional[Frame]:
        """
        Return the current frame without consuming it.

        Returns:
            The most recently published Frame, or None if nothing has
            been published yet (or the buffer was cleared).
        """
        with self._lock:
            if self._frame is not None:
                self._observed = True
            return self._frame

    def clear(self) -> bool:
        """
        Drop the held frame.

        Returns:
            True if a frame was held.
        """
        with self._lock:
            had_frame = self._frame is not None
            self._frame = None
            self._observed = False
        if had_frame:
            logger.debug("Latest frame cleared")
        return had_frame

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with has_frame, total_published, coalesced_count,
            last_sequence, last_length
        """
        with self._lock:
            frame = self._frame
            return {
                "has_frame": frame is not None,
                "total_published": self._total_published,
                "coalesced_count": self._coalesced_count,
                "last_sequence": frame.sequence if frame else 0,
                "last_length": frame.length if frame else 0,
            }
