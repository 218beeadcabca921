"""
Latest Frame Buffer Tests
=========================

Overwrite, coalescing and atomicity of the single-slot frame buffer.
"""

import threading

import pytest

from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.frame import Frame


class TestLatestFrameBuffer:
    """Tests for publish/peek semantics."""

    def test_empty_buffer_peeks_none(self):
        """Nothing published yet means no frame."""
        buffer = LatestFrameBuffer()
        assert buffer.peek() is None
        assert buffer.metrics()["has_frame"] is False

    def test_publish_then_peek(self):
        """A published payload is returned unchanged."""
        buffer = LatestFrameBuffer()
        frame = buffer.publish(b"abc")

        assert buffer.peek() is frame
        assert frame.payload == b"abc"
        assert frame.sequence == 1

    def test_peek_does_not_consume(self):
        """Several readers observe the same frame."""
        buffer = LatestFrameBuffer()
        buffer.publish(b"shared")

        assert buffer.peek().payload == b"shared"
        assert buffer.peek().payload == b"shared"

    def test_only_latest_is_observable(self):
        """N publishes before a peek expose only the Nth frame."""
        buffer = LatestFrameBuffer()
        for i in range(10):
            buffer.publish(bytes([i]) * (i + 1))

        frame = buffer.peek()
        assert frame.payload == bytes([9]) * 10
        assert frame.sequence == 10

    def test_unread_frames_are_counted_as_coalesced(self):
        """Frames replaced before any peek are counted."""
        buffer = LatestFrameBuffer()
        buffer.publish(b"1")
        buffer.publish(b"2")
        buffer.peek()
        buffer.publish(b"3")

        assert buffer.coalesced_count == 1
        assert buffer.total_published == 3

    def test_mutable_payload_is_copied(self):
        """Later writes to the caller's buffer do not leak into the frame."""
        buffer = LatestFrameBuffer()
        data = bytearray(b"original")
        buffer.publish(data)
        data[:] = b"changed!"

        assert buffer.peek().payload == b"original"

    def test_clear_drops_frame(self):
        """clear() empties the slot."""
        buffer = LatestFrameBuffer()
        buffer.publish(b"x")

        assert buffer.clear() is True
        assert buffer.peek() is None
        assert buffer.clear() is False

    def test_metrics(self):
        """Metrics reflect the held frame."""
        buffer = LatestFrameBuffer()
        buffer.publish(b"12345")

        metrics = buffer.metrics()
        assert metrics["has_frame"] is True
        assert metrics["last_sequence"] == 1
        assert metrics["last_length"] == 5


class TestConcurrentAccess:
    """Concurrent publish/peek never produce a torn frame."""

    def test_no_torn_reads(self):
        buffer = LatestFrameBuffer()
        published = {bytes([i]) * 4096 for i in range(32)}
        errors = []
        done = threading.Event()

        def writer(offset):
            for i in range(2000):
                buffer.publish(bytes([(offset + i) % 32]) * 4096)

        def reader():
            while not done.is_set():
                frame = buffer.peek()
                if frame is None:
                    continue
                if frame.payload not in published:
                    errors.append(frame.payload[:8])

        readers = [threading.Thread(target=reader) for _ in range(3)]
        writers = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
        for t in readers + writers:
            t.start()
        for t in writers:
            t.join()
        done.set()
        for t in readers:
            t.join()

        assert errors == []
        assert buffer.total_published == 6000


class TestFrame:
    """Tests for the Frame data model."""

    def test_length_and_repr(self):
        frame = Frame(payload=b"\x00" * 12, sequence=3, timestamp=1.5)
        assert frame.length == 12
        assert "length=12" in repr(frame)
        assert "\\x00" not in repr(frame)

    def test_frame_is_immutable(self):
        frame = Frame(payload=b"a", sequence=1, timestamp=0.0)
        with pytest.raises(AttributeError):
            frame.payload = b"b"
