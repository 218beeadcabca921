"""
Wire Framing Tests
==================

Length prefix encoding, length-prefixed reads and JPEG stream splitting.
"""

import asyncio
import struct

import pytest

from videostream.stream.errors import ReadError, TruncatedFrameError
from videostream.stream.framing import (
    MAX_FRAME_LENGTH,
    FramingMode,
    JpegStreamSplitter,
    encode_message,
    pack_header,
    read_frame,
    unpack_header,
)


def _read_all(data: bytes, max_length: int = MAX_FRAME_LENGTH):
    """Feed `data` to a fresh reader and read frames until the stream ends."""

    async def _run():
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()
        frames = []
        while True:
            payload = await read_frame(reader, max_length)
            if payload is None:
                return frames
            frames.append(payload)

    return asyncio.run(_run())


class TestLengthPrefix:
    """Tests for the 4-byte big-endian prefix."""

    @pytest.mark.parametrize("length", [0, 1, 255, 65536, MAX_FRAME_LENGTH])
    def test_header_round_trip(self, length):
        header = pack_header(length)
        assert len(header) == 4
        assert unpack_header(header) == length

    def test_header_is_big_endian(self):
        assert pack_header(0x01020304) == b"\x01\x02\x03\x04"

    @pytest.mark.parametrize("length", [-1, MAX_FRAME_LENGTH + 1])
    def test_header_out_of_range(self, length):
        with pytest.raises(ValueError):
            pack_header(length)

    def test_encode_message_modes(self):
        assert encode_message(b"abc") == b"\x00\x00\x00\x03abc"
        assert encode_message(b"abc", FramingMode.JPEG_STREAM) == b"abc"


class TestReadFrame:
    """Tests for read_frame on a stream reader."""

    @pytest.mark.parametrize("size", [0, 1, 100, 70000])
    def test_round_trip(self, size):
        payload = bytes(range(256)) * (size // 256) + bytes(size % 256)
        assert _read_all(encode_message(payload)) == [payload]

    def test_consecutive_frames_in_order(self):
        payloads = [b"first", b"", b"third" * 100]
        data = b"".join(encode_message(p) for p in payloads)
        assert _read_all(data) == payloads

    def test_empty_stream_is_normal_end(self):
        assert _read_all(b"") == []

    def test_partial_header_is_normal_end(self):
        assert _read_all(b"\x00\x00") == []

    def test_truncated_payload(self):
        data = struct.pack(">I", 1000) + b"x" * 10
        with pytest.raises(TruncatedFrameError) as exc_info:
            _read_all(data)

        assert exc_info.value.expected == 1000
        assert exc_info.value.received == 10

    def test_length_over_limit(self):
        with pytest.raises(ReadError):
            _read_all(encode_message(b"x" * 2048), max_length=1024)


class TestJpegStreamSplitter:
    """Tests for prefix-less JPEG boundary detection."""

    def test_split_back_to_back_images(self, jpeg_payloads):
        splitter = JpegStreamSplitter()
        assert splitter.feed(b"".join(jpeg_payloads)) == jpeg_payloads
        assert splitter.pending is False

    @pytest.mark.parametrize("chunk_size", [1, 7, 1000])
    def test_arbitrary_chunking(self, jpeg_payloads, chunk_size):
        data = b"".join(jpeg_payloads)
        splitter = JpegStreamSplitter()
        images = []
        for i in range(0, len(data), chunk_size):
            images.extend(splitter.feed(data[i:i + chunk_size]))

        assert images == jpeg_payloads

    def test_partial_image_is_pending(self, jpeg_payload):
        splitter = JpegStreamSplitter()
        assert splitter.feed(jpeg_payload[:-10]) == []
        assert splitter.pending is True
        assert splitter.feed(jpeg_payload[-10:]) == [jpeg_payload]

    def test_leading_garbage_is_discarded(self, jpeg_payload):
        splitter = JpegStreamSplitter()
        assert splitter.feed(b"noise" + jpeg_payload) == [jpeg_payload]
        assert splitter.discarded_bytes == 5

    def test_embedded_end_marker_in_segment(self, jpeg_payload):
        """An EOI inside a length-delimited segment does not end the image."""
        thumbnail = b"\xff\xd8\xff\xd9"
        app1 = b"\xff\xe1" + struct.pack(">H", len(thumbnail) + 2) + thumbnail
        image = jpeg_payload[:2] + app1 + jpeg_payload[2:]

        splitter = JpegStreamSplitter()
        assert splitter.feed(image) == [image]

    def test_resync_after_corrupt_start(self, jpeg_payload):
        splitter = JpegStreamSplitter()
        assert splitter.feed(b"\xff\xd8\x00\x00" + jpeg_payload) == [jpeg_payload]

    def test_oversized_image(self, jpeg_payload):
        splitter = JpegStreamSplitter(max_image_bytes=64)
        with pytest.raises(ReadError):
            splitter.feed(jpeg_payload[:-2])
