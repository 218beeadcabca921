"""
Frame Source Tests
==================

Encoding off the capture path with a single encode in flight.
"""

import threading
import time

import numpy as np

from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.codec import EncodeError
from videostream.stream.source import FrameSource


def _wait(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "condition not met in time"
        time.sleep(0.01)


class SlowCodec:
    """Codec stub that takes a while and records overlap."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def encode(self, pixels):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        time.sleep(self.delay)
        with self._lock:
            self.in_flight -= 1
        if pixels < 0:
            raise EncodeError("negative frame")
        return bytes([pixels])


class TestFrameSource:

    def test_publishes_encoded_frame(self, codec, sample_image):
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, codec)
        source.start()
        try:
            source.on_raw_frame(sample_image)
            _wait(lambda: buffer.peek() is not None)
        finally:
            source.stop()

        assert codec.decode(buffer.peek().payload).shape == sample_image.shape
        assert source.metrics()["frames_encoded"] == 1

    def test_frames_before_start_are_ignored(self, codec, sample_image):
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, codec)
        source.on_raw_frame(sample_image)

        assert source.metrics()["frames_offered"] == 0
        assert buffer.peek() is None

    def test_encode_error_skips_frame(self, codec):
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, codec)
        source.start()
        try:
            source.on_raw_frame(np.zeros((4, 4, 4), dtype=np.uint8))
            _wait(lambda: source.metrics()["encode_errors"] == 1)
        finally:
            source.stop()

        assert buffer.peek() is None

    def test_latest_raw_frame_wins_while_encoding(self):
        """Raw frames arriving during an encode replace each other."""
        buffer = LatestFrameBuffer()
        slow = SlowCodec()
        source = FrameSource(buffer, slow)
        source.start()
        try:
            for i in range(1, 6):
                source.on_raw_frame(i)
            _wait(lambda: sum(
                source.metrics()[key] for key in ("frames_encoded", "frames_skipped")
            ) == 5)
        finally:
            source.stop()

        metrics = source.metrics()
        assert buffer.peek().payload == bytes([5])
        assert metrics["frames_offered"] == 5
        assert metrics["frames_skipped"] >= 3
        assert slow.max_in_flight == 1

    def test_encoder_continues_after_error(self):
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, SlowCodec(delay=0.0))
        source.start()
        try:
            source.on_raw_frame(-1)
            _wait(lambda: source.metrics()["encode_errors"] == 1)
            source.on_raw_frame(7)
            _wait(lambda: buffer.peek() is not None)
        finally:
            source.stop()

        assert buffer.peek().payload == bytes([7])

    def test_stop_is_idempotent(self, codec):
        source = FrameSource(LatestFrameBuffer(), codec)
        source.start()
        source.stop()
        source.stop()
        assert source.running is False

    def test_nv21_frame_is_encoded(self, codec):
        width, height = 32, 16
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, codec)
        source.start()
        try:
            source.on_nv21_frame(bytes([128]) * (width * height * 3 // 2), width, height)
            _wait(lambda: buffer.peek() is not None)
        finally:
            source.stop()

        assert codec.decode(buffer.peek().payload).shape == (height, width, 3)

    def test_nv21_size_mismatch_is_an_encode_error(self, codec):
        buffer = LatestFrameBuffer()
        source = FrameSource(buffer, codec)
        source.start()
        try:
            source.on_nv21_frame(b"\x00" * 10, 32, 16)
            _wait(lambda: source.metrics()["encode_errors"] == 1)
        finally:
            source.stop()

        assert buffer.peek() is None
