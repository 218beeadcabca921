"""
Wire Framing
============

Frame boundaries on the TCP byte stream.

Two incompatible framings exist on the wire:

    LENGTH_PREFIXED (canonical):
        [uint32 big-endian length][length bytes of JPEG]...

    JPEG_STREAM (compatibility):
        [JPEG][JPEG]... back to back with no prefix. The receiver finds
        boundaries from the JPEG marker structure (SOI ... EOI).

Both ends of a connection must use the same framing; nothing on the
wire identifies which one is in use.
"""

import asyncio
import logging
import struct
from enum import Enum
from typing import List, Optional

from videostream.stream.errors import ReadError, TruncatedFrameError


logger = logging.getLogger(__name__)


HEADER = struct.Struct(">I")
HEADER_SIZE = HEADER.size
MAX_FRAME_LENGTH = 0xFFFFFFFF

SOI = b"\xff\xd8"


class FramingMode(str, Enum):
    """Wire framing used by a server/client pair."""

    LENGTH_PREFIXED = "length_prefixed"
    JPEG_STREAM = "jpeg_stream"


# =============================================================================
# Length-prefixed framing
# =============================================================================

def pack_header(length: int) -> bytes:
    """
    Encode a payload length as the 4-byte wire prefix.

    Raises:
        ValueError: If length does not fit an unsigned 32-bit integer
    """
    if not 0 <= length <= MAX_FRAME_LENGTH:
        raise ValueError(f"Frame length out of range: {length}")
    return HEADER.pack(length)


def unpack_header(header: bytes) -> int:
    """Decode a 4-byte wire prefix into a payload length."""
    return HEADER.unpack(header)[0]


def encode_message(payload: bytes, mode: FramingMode = FramingMode.LENGTH_PREFIXED) -> bytes:
    """
    Build the bytes written to the wire for one frame.

    Args:
        payload: Encoded image bytes
        mode: Framing to apply

    Returns:
        Prefix + payload for LENGTH_PREFIXED, payload alone for JPEG_STREAM
    """
    if mode is FramingMode.JPEG_STREAM:
        return payload
    return pack_header(len(payload)) + payload


async def read_frame(
    reader: asyncio.StreamReader,
    max_length: int = MAX_FRAME_LENGTH,
) -> Optional[bytes]:
    """
    Read one length-prefixed frame.

    Args:
        reader: Connected stream reader
        max_length: Largest payload accepted

    Returns:
        The payload, or None if the stream ended before a complete header
        (peer closed between frames).

    Raises:
        TruncatedFrameError: Stream ended inside the payload
        ReadError: Announced length exceeds max_length
    """
    try:
        header = await reader.readexactly(HEADER_SIZE)
    except asyncio.IncompleteReadError as e:
        if e.partial:
            logger.debug(f"Stream ended inside header ({len(e.partial)} bytes)")
        return None

    length = unpack_header(header)
    if length > max_length:
        raise ReadError(f"Frame length {length} exceeds limit of {max_length} bytes")

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise TruncatedFrameError(len(e.partial), expected=length) from e


# =============================================================================
# JPEG stream framing
# =============================================================================

def _is_standalone_marker(code: int) -> bool:
    # TEM and RST0-7 carry no length field
    return code == 0x01 or 0xD0 <= code <= 0xD7


class JpegStreamSplitter:
    """
    Incremental splitter for back-to-back JPEG images.

    Walks the marker segments of each image (honoring segment lengths, so
    embedded thumbnails do not end an image early) and scans entropy-coded
    data for the next real marker, skipping stuffed 0xFF00 bytes and
    restart markers.

    Attributes:
        max_image_bytes: Largest image accepted before giving up
        discarded_bytes: Bytes dropped while resynchronizing

    Example:
        splitter = JpegStreamSplitter()
        for chunk in chunks:
            for image in splitter.feed(chunk):
                show(codec.decode(image))
    """

    def __init__(self, max_image_bytes: int = MAX_FRAME_LENGTH) -> None:
        self.max_image_bytes = max_image_bytes
        self.discarded_bytes: int = 0
        self._buf = bytearray()

    @property
    def pending(self) -> bool:
        """Whether a partially received image is buffered."""
        return self._buf.startswith(SOI)

    @property
    def buffered(self) -> int:
        """Number of bytes currently buffered."""
        return len(self._buf)

    def feed(self, data: bytes) -> List[bytes]:
        """
        Append received bytes and return every image now complete.

        Raises:
            ReadError: If an image grows past max_image_bytes without ending
        """
        self._buf += data
        images = []
        while True:
            image = self._next_image()
            if image is None:
                break
            images.append(image)

        if self.pending and len(self._buf) > self.max_image_bytes:
            raise ReadError(
                f"JPEG image exceeds limit of {self.max_image_bytes} bytes "
                f"without end marker"
            )
        return images

    def _next_image(self) -> Optional[bytes]:
        while True:
            start = self._buf.find(SOI)
            if start < 0:
                # Keep a trailing 0xFF, it may be the first half of an SOI
                keep = 1 if self._buf.endswith(b"\xff") else 0
                self._discard(len(self._buf) - keep)
                return None
            if start > 0:
                self._discard(start)

            end = self._find_end()
            if end is None:
                return None
            if end < 0:
                logger.warning("Corrupt JPEG structure in stream, resynchronizing")
                self._discard(len(SOI))
                continue

            image = bytes(self._buf[:end])
            del self._buf[:end]
            return image

    def _find_end(self) -> Optional[int]:
        """
        Locate the end of the image starting at offset 0.

        Returns:
            Offset just past EOI, None if more data is needed, or -1 if the
            bytes are not a well-formed JPEG.
        """
        buf = self._buf
        n = len(buf)
        pos = len(SOI)

        while True:
            if pos >= n:
                return None
            if buf[pos] != 0xFF:
                return -1
            # Fill bytes may precede a marker code
            while pos < n and buf[pos] == 0xFF:
                pos += 1
            if pos >= n:
                return None

            code = buf[pos]
            pos += 1
            if code == 0xD9:
                return pos
            if code == 0xD8 or code == 0x00:
                return -1
            if _is_standalone_marker(code):
                continue

            if pos + 2 > n:
                return None
            segment_length = (buf[pos] << 8) | buf[pos + 1]
            if segment_length < 2:
                return -1
            pos += segment_length

            if code != 0xDA:
                continue

            # Entropy-coded scan data follows SOS
            while True:
                idx = buf.find(b"\xff", pos)
                if idx < 0 or idx + 1 >= n:
                    return None
                following = buf[idx + 1]
                if following == 0xFF:
                    pos = idx + 1
                elif following == 0x00 or 0xD0 <= following <= 0xD7:
                    pos = idx + 2
                else:
                    pos = idx
                    break

    def _discard(self, count: int) -> None:
        if count <= 0:
            return
        del self._buf[:count]
        self.discarded_bytes += count
