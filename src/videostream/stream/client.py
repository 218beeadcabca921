"""
Stream Client
=============

TCP client receiving frames from a StreamServer.

This client:
    - Connects to a server's host and port
    - Reads frames in either wire framing (length-prefixed or JPEG stream)
    - Decodes each frame and hands the image to a DisplaySink
    - Skips frames that fail to decode

Example:
    client = StreamClient("192.168.1.5", 8080, sink=OpenCVWindowSink())

    # Blocks until the stream ends, stop() is called or an error occurs
    displayed = await client.run()

    # Or consume raw payloads
    async with client:
        async for payload in client:
            print(len(payload))

Design Rules:
    - One socket per client instance, closed on every exit path
    - Stream end between frames is a normal end, not an error
    - A stream lost mid-frame raises TruncatedFrameError
    - No automatic reconnection
    - stop() is final for the instance; a connect still in flight is closed
      as soon as it completes
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from videostream.stream.codec import DecodeError, FrameCodec
from videostream.stream.display import DisplaySink
from videostream.stream.errors import ConnectError, ReadError, TruncatedFrameError
from videostream.stream.framing import (
    HEADER_SIZE,
    FramingMode,
    JpegStreamSplitter,
    read_frame,
)


logger = logging.getLogger(__name__)


DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_MAX_FRAME_BYTES = 16 * 1024 * 1024
DEFAULT_READ_CHUNK_BYTES = 64 * 1024


class StreamClientMetrics:
    """Metrics for StreamClient observability."""

    __slots__ = (
        "frames_received",
        "frames_displayed",
        "decode_errors",
        "bytes_received",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.frames_displayed: int = 0
        self.decode_errors: int = 0
        self.bytes_received: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "frames_displayed": self.frames_displayed,
            "decode_errors": self.decode_errors,
            "bytes_received": self.bytes_received,
        }


class StreamClient:
    """
    Receives, decodes and displays a frame stream.

    Attributes:
        host: Server address
        port: Server port
        sink: DisplaySink receiving decoded images (required by run())
        codec: Codec used for decoding
        framing: Wire framing expected from the server
        metrics: Operational metrics
    """

    def __init__(
        self,
        host: str,
        port: int = 8080,
        sink: Optional[DisplaySink] = None,
        codec: Optional[FrameCodec] = None,
        framing: FramingMode = FramingMode.LENGTH_PREFIXED,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
        read_chunk_bytes: int = DEFAULT_READ_CHUNK_BYTES,
    ) -> None:
        """
        Initialize stream client.

        Args:
            host: Server host name or IP address
            port: Server port
            sink: Where decoded images go
            codec: Decoder, a default FrameCodec if omitted
            framing: LENGTH_PREFIXED (canonical) or JPEG_STREAM
            connect_timeout: Seconds allowed for the TCP connect
            max_frame_bytes: Largest frame accepted from the server
            read_chunk_bytes: Read size in JPEG_STREAM mode
        """
        self.host = host
        self.port = port
        self.sink = sink
        self.codec = codec or FrameCodec()
        self.framing = FramingMode(framing)
        self.connect_timeout = connect_timeout
        self.max_frame_bytes = max_frame_bytes
        self.read_chunk_bytes = read_chunk_bytes

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._active: bool = False
        self._stop_requested: bool = False

        self.metrics = StreamClientMetrics()

    @property
    def connected(self) -> bool:
        """Whether a socket is currently open."""
        return self._writer is not None and not self._writer.is_closing()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def connect(self) -> None:
        """
        Open the TCP connection.

        Raises:
            ConnectError: On refusal, timeout or unreachable host
        """
        if self.connected or self._stop_requested:
            return

        logger.info(f"Connecting to {self.address}...")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"Timed out connecting to {self.address} after {self.connect_timeout}s"
            ) from e
        except OSError as e:
            raise ConnectError(f"Cannot connect to {self.address}: {e}") from e

        if self._stop_requested:
            logger.info(f"Stop requested while connecting to {self.address}, closing")
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error closing connection to {self.address}: {e}")
            return

        self._reader, self._writer = reader, writer
        self._active = True
        logger.info(f"Connected to {self.address} (framing={self.framing.value})")

    async def disconnect(self) -> None:
        """Close the connection if open."""
        self._active = False
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing connection to {self.address}: {e}")
        logger.info(f"Disconnected from {self.address}")

    async def stop(self) -> None:
        """
        Stop receiving.

        Closing the socket wakes a read that is blocked waiting for data,
        so the receive loop exits promptly. A connect that has not finished
        yet is closed when it completes. The instance cannot be restarted.
        """
        self._stop_requested = True
        self._active = False
        await self.disconnect()

    async def run(self) -> int:
        """
        Receive, decode and display frames until the stream ends.

        Returns:
            Number of frames handed to the sink.

        Raises:
            ConnectError: If the connection cannot be established
            TruncatedFrameError: If the server vanished mid-frame
            ReadError: On other receive failures
        """
        if self.sink is None:
            raise ValueError("StreamClient.run requires a sink")

        try:
            async for payload in self:
                try:
                    image = self.codec.decode(payload)
                except DecodeError as e:
                    self.metrics.decode_errors += 1
                    logger.warning(f"Skipping undecodable frame: {e}")
                    continue

                self.sink.show(image)
                self.metrics.frames_displayed += 1
        finally:
            await self.disconnect()

        return self.metrics.frames_displayed

    def __aiter__(self) -> AsyncIterator[bytes]:
        """Iterate over raw frame payloads, connecting first if needed."""
        return self.frames()

    async def frames(self) -> AsyncIterator[bytes]:
        """
        Yield raw frame payloads in the configured framing.

        Ends normally when the server closes the stream between frames or
        when stop() is called.
        """
        await self.connect()
        if not self._active:
            return
        reader = self._reader

        if self.framing is FramingMode.JPEG_STREAM:
            payloads = self._read_jpeg_stream(reader)
        else:
            payloads = self._read_length_prefixed(reader)

        try:
            async for payload in payloads:
                self.metrics.frames_received += 1
                yield payload
        except ReadError:
            if not self._active:
                # Our own stop() closed the socket under a pending read
                return
            raise
        except OSError as e:
            if not self._active:
                return
            raise ReadError(f"Receive from {self.address} failed: {e}") from e

    async def _read_length_prefixed(self, reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
        while self._active:
            payload = await read_frame(reader, self.max_frame_bytes)
            if payload is None:
                if self._active:
                    logger.info(f"Stream from {self.address} ended")
                return
            self.metrics.bytes_received += len(payload) + HEADER_SIZE
            yield payload

    async def _read_jpeg_stream(self, reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
        splitter = JpegStreamSplitter(max_image_bytes=self.max_frame_bytes)
        while self._active:
            chunk = await reader.read(self.read_chunk_bytes)
            if not chunk:
                if splitter.pending:
                    raise TruncatedFrameError(splitter.buffered)
                if self._active:
                    logger.info(f"Stream from {self.address} ended")
                return

            self.metrics.bytes_received += len(chunk)
            for image in splitter.feed(chunk):
                yield image

    async def __aenter__(self) -> "StreamClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        """Async context manager exit."""
        await self.disconnect()
