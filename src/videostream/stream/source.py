"""
Frame Source
============

Bridge from the capture pipeline to the LatestFrameBuffer.

The capture driver calls on_raw_frame() from its own thread for every raw
image. Encoding runs on a dedicated encoder thread so a slow encode never
stalls acquisition of the next raw frame.

Design Rules:
    - One pending raw frame slot, latest wins (no queue)
    - Exactly one encode in flight
    - Encode failures skip that frame only
"""

import logging
import threading
from typing import Callable, Optional, Tuple

import numpy as np

from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.codec import EncodeError, FrameCodec


logger = logging.getLogger(__name__)


class FrameSource:
    """
    Encodes raw frames off the capture path and publishes them.

    Attributes:
        buffer: Buffer that receives encoded frames
        codec: Codec used to encode raw pixels
        running: Whether the encoder thread is active

    Example:
        source = FrameSource(buffer, FrameCodec(quality=70))
        source.start()

        # From the capture thread
        source.on_raw_frame(bgr_image)

        source.stop()
    """

    def __init__(self, buffer: LatestFrameBuffer, codec: FrameCodec) -> None:
        self.buffer = buffer
        self.codec = codec

        self._cond = threading.Condition()
        self._pending: Optional[Tuple[Callable[..., bytes], Tuple]] = None
        self._running: bool = False
        self._thread: Optional[threading.Thread] = None

        self._frames_offered: int = 0
        self._frames_encoded: int = 0
        self._frames_skipped: int = 0
        self._encode_errors: int = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the encoder thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._encode_loop,
            name="frame-encoder",
            daemon=True,
        )
        self._thread.start()
        logger.info("FrameSource started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the encoder thread and drop any pending raw frame."""
        with self._cond:
            if not self._running:
                return
            self._running = False
            self._pending = None
            self._cond.notify_all()

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Encoder thread did not exit within timeout")
            self._thread = None
        logger.info("FrameSource stopped")

    def on_raw_frame(self, pixels: np.ndarray) -> None:
        """
        Hand a raw frame to the encoder.

        Never blocks on encoding. If the previous raw frame has not been
        picked up yet it is replaced.

        Args:
            pixels: Raw image (BGR or grayscale uint8 array)
        """
        self._offer(self.codec.encode, (pixels,))

    def on_nv21_frame(self, data: bytes, width: int, height: int) -> None:
        """
        Hand a planar NV21 frame to the encoder.

        Same replacement rules as on_raw_frame(); a buffer whose size does
        not match width x height is counted as an encode error.
        """
        self._offer(self.codec.encode_nv21, (data, width, height))

    def _offer(self, encode: Callable[..., bytes], args: Tuple) -> None:
        with self._cond:
            if not self._running:
                return
            self._frames_offered += 1
            if self._pending is not None:
                self._frames_skipped += 1
            self._pending = (encode, args)
            self._cond.notify()

    def _encode_loop(self) -> None:
        while True:
            with self._cond:
                while self._running and self._pending is None:
                    self._cond.wait()
                if not self._running:
                    return
                encode, args = self._pending
                self._pending = None

            try:
                payload = encode(*args)
            except EncodeError as e:
                self._encode_errors += 1
                logger.warning(f"Dropping raw frame, encode failed: {e}")
                continue

            self.buffer.publish(payload)
            self._frames_encoded += 1

    def metrics(self) -> dict:
        """
        Get source metrics for observability.

        Returns:
            Dict with frames_offered, frames_encoded, frames_skipped,
            encode_errors
        """
        return {
            "frames_offered": self._frames_offered,
            "frames_encoded": self._frames_encoded,
            "frames_skipped": self._frames_skipped,
            "encode_errors": self._encode_errors,
        }
