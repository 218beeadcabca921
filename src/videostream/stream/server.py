"""
Stream Server
=============

TCP server pushing the latest frame to every connected client.

This module provides the StreamServer class which:
    - Binds a listening port and accepts any number of clients
    - Runs one independent send loop per connection
    - Paces each connection to one frame message per send interval
    - Contains write failures to the failing connection

Design Rules:
    - Always sends the newest frame available, never queues
    - Sends nothing while the buffer is empty (no heartbeat)
    - A stalled client never blocks accepts, other clients or the producer
    - Every accepted socket is closed by the task that owns it
"""

import asyncio
import logging
from typing import Optional, Set

from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.errors import BindError, WriteError
from videostream.stream.framing import FramingMode, encode_message


logger = logging.getLogger(__name__)


DEFAULT_PORT = 8080
DEFAULT_SEND_INTERVAL = 0.060


class StreamServerMetrics:
    """Metrics for StreamServer observability."""

    __slots__ = (
        "total_connections",
        "active_connections",
        "frames_sent",
        "bytes_sent",
        "write_errors",
    )

    def __init__(self) -> None:
        self.total_connections: int = 0
        self.active_connections: int = 0
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.write_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "total_connections": self.total_connections,
            "active_connections": self.active_connections,
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "write_errors": self.write_errors,
        }


class StreamServer:
    """
    Latest-frame TCP server.

    Attributes:
        buffer: LatestFrameBuffer read by every send loop
        send_interval: Seconds between send cycles per connection
        framing: Wire framing written to clients
        port: Bound port (None until listening)
        metrics: Operational metrics

    Example:
        buffer = LatestFrameBuffer()
        server = StreamServer(buffer)
        await server.listen(port=8080)

        # ... producer publishes into buffer ...

        await server.stop()
    """

    def __init__(
        self,
        buffer: LatestFrameBuffer,
        send_interval: float = DEFAULT_SEND_INTERVAL,
        framing: FramingMode = FramingMode.LENGTH_PREFIXED,
    ) -> None:
        """
        Initialize stream server.

        Args:
            buffer: Buffer holding the latest encoded frame
            send_interval: Fixed pause after every send cycle, in seconds
            framing: LENGTH_PREFIXED (canonical) or JPEG_STREAM
        """
        if send_interval <= 0:
            raise ValueError("send_interval must be > 0")

        self.buffer = buffer
        self.send_interval = send_interval
        self.framing = FramingMode(framing)

        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[asyncio.Task] = set()
        self._stopping: bool = False
        self._port: Optional[int] = None

        self.metrics = StreamServerMetrics()

    @property
    def listening(self) -> bool:
        """Whether the listening socket is open."""
        return self._server is not None and self._server.is_serving()

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (useful when listening on port 0)."""
        return self._port

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def listen(self, host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> None:
        """
        Bind and start accepting clients.

        Args:
            host: Interface to bind
            port: TCP port, 0 picks an ephemeral port

        Raises:
            BindError: If the port cannot be bound
            RuntimeError: If this server is already listening
        """
        if self._server is not None:
            raise RuntimeError("StreamServer is already listening")

        self._stopping = False
        try:
            self._server = await asyncio.start_server(self._handle_client, host, port)
        except OSError as e:
            raise BindError(f"Cannot listen on {host}:{port}: {e}") from e

        self._port = self._server.sockets[0].getsockname()[1]
        logger.info(
            f"StreamServer listening on {host}:{self._port} "
            f"(framing={self.framing.value}, interval={self.send_interval * 1000:.0f}ms)"
        )

    async def stop(self) -> None:
        """
        Stop accepting and terminate every send loop.

        Closes the listening socket, cancels all connection tasks and waits
        for them to release their sockets.
        """
        if self._server is None:
            return

        logger.info("StreamServer stopping...")
        self._stopping = True
        self._server.close()

        tasks = list(self._connections)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        logger.info("StreamServer stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Own one accepted connection for its whole life."""
        task = asyncio.current_task()
        peer = writer.get_extra_info("peername")

        if self._stopping:
            writer.close()
            return

        self._connections.add(task)
        self.metrics.total_connections += 1
        self.metrics.active_connections = len(self._connections)
        logger.info(f"Client connected: {peer}")

        try:
            await self._send_loop(reader, writer)
        except WriteError as e:
            self.metrics.write_errors += 1
            logger.warning(f"Client {peer} connection error: {e}")
        except asyncio.CancelledError:
            logger.debug(f"Send loop for {peer} cancelled")
            raise
        finally:
            self._connections.discard(task)
            self.metrics.active_connections = len(self._connections)
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error closing connection to {peer}: {e}")
            logger.info(f"Client disconnected: {peer}")

    async def _send_loop(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        # Clients never send data, so EOF on the read side means the peer left
        while not writer.is_closing() and not reader.at_eof():
            frame = self.buffer.peek()
            if frame is not None:
                await self._write_frame(writer, frame.payload)

            await asyncio.sleep(self.send_interval)

    async def _write_frame(self, writer: asyncio.StreamWriter, payload: bytes) -> None:
        message = encode_message(payload, self.framing)
        try:
            writer.write(message)
            await writer.drain()
        except OSError as e:
            raise WriteError(str(e) or type(e).__name__) from e

        self.metrics.frames_sent += 1
        self.metrics.bytes_sent += len(message)

    async def __aenter__(self) -> "StreamServer":
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()
