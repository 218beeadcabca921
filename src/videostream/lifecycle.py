"""
Lifecycle Controllers
=====================

Start/stop orchestration for the two roles.

    StreamController  (camera side)
        LatestFrameBuffer + FrameSource + capture driver + StreamServer,
        created together on start() and torn down together on stop().

    WatchController   (viewer side)
        At most one StreamClient session at a time. Starting a new session
        fully stops the previous one first.

Design Rules:
    - One buffer per streaming session, never shared across sessions
    - Session establishment failures surface once (raise or on_error)
    - No automatic reconnection after a lost stream
"""

import asyncio
import logging
from typing import Callable, Optional, Union

from videostream.config import CaptureConfig, ClientConfig, ServerConfig
from videostream.stream.buffer import LatestFrameBuffer
from videostream.stream.capture import CameraCapture, SyntheticCapture
from videostream.stream.client import StreamClient
from videostream.stream.codec import DEFAULT_JPEG_QUALITY, FrameCodec
from videostream.stream.display import DisplaySink
from videostream.stream.errors import ConnectError, ReadError, StreamError
from videostream.stream.server import StreamServer
from videostream.stream.source import FrameSource


logger = logging.getLogger(__name__)


ErrorCallback = Callable[[StreamError], None]

SESSION_STOP_GRACE = 1.0


# =============================================================================
# Capture Factory
# =============================================================================

def create_capture(
    config: CaptureConfig,
    source: FrameSource,
) -> Union[CameraCapture, SyntheticCapture]:
    """
    Create a capture driver based on config.

    Raises:
        ValueError: If the backend is unknown
    """
    backend = config.backend

    if backend == "camera":
        logger.info(f"Using CameraCapture (device {config.device_index})")
        return CameraCapture(
            source,
            device_index=config.device_index,
            width=config.width,
            height=config.height,
            fps=config.fps,
        )

    elif backend == "synthetic":
        logger.info(f"Using SyntheticCapture ({config.pixel_format})")
        return SyntheticCapture(
            source,
            width=config.width,
            height=config.height,
            fps=config.fps,
            pixel_format=config.pixel_format,
        )

    else:
        raise ValueError(f"Unknown capture backend: {backend}")


# =============================================================================
# Camera Side
# =============================================================================

class StreamController:
    """
    Owns one streaming session: buffer, encoder, capture and server.

    Attributes:
        server_config: Listening address, cadence and framing
        capture_config: Capture backend settings, or None when frames are
            fed externally through `source` / `buffer`
        on_error: Called once with the StreamError that failed start()
        buffer: LatestFrameBuffer of the running session (None when stopped)
        source: FrameSource of the running session
        server: StreamServer of the running session

    Example:
        controller = StreamController(settings.server, settings.capture)
        await controller.start()
        ...
        await controller.stop()
    """

    def __init__(
        self,
        server_config: ServerConfig,
        capture_config: Optional[CaptureConfig] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.server_config = server_config
        self.capture_config = capture_config
        self.on_error = on_error

        self.buffer: Optional[LatestFrameBuffer] = None
        self.source: Optional[FrameSource] = None
        self.capture: Optional[Union[CameraCapture, SyntheticCapture]] = None
        self.server: Optional[StreamServer] = None
        self._running: bool = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start a fresh session.

        A StreamError is passed to on_error once, after everything
        already started has been torn down, and then re-raised.

        Raises:
            BindError: If the server port is unavailable
            CaptureError: If the capture device cannot be opened
            ValueError: If the capture backend is unknown
        """
        if self._running:
            return

        quality = (
            self.capture_config.jpeg_quality if self.capture_config else DEFAULT_JPEG_QUALITY
        )
        self.buffer = LatestFrameBuffer()
        self.source = FrameSource(self.buffer, FrameCodec(quality=quality))
        self.server = StreamServer(
            self.buffer,
            send_interval=self.server_config.send_interval_ms / 1000.0,
            framing=self.server_config.framing,
        )

        try:
            self.source.start()
            if self.capture_config is not None:
                self.capture = create_capture(self.capture_config, self.source)
                self.capture.start()
            await self.server.listen(self.server_config.host, self.server_config.port)
        except StreamError as e:
            logger.error(f"Streaming session failed to start: {e}")
            await self._teardown()
            if self.on_error is not None:
                self.on_error(e)
            raise
        except ValueError as e:
            logger.error(f"Invalid streaming configuration: {e}")
            await self._teardown()
            raise

        self._running = True
        logger.info("Streaming session started")

    async def stop(self) -> None:
        """Stop the session and release every resource it owns."""
        if not self._running:
            return
        await self._teardown()
        logger.info("Streaming session stopped")

    async def _teardown(self) -> None:
        self._running = False

        if self.server is not None:
            await self.server.stop()
        if self.capture is not None:
            self.capture.stop()
            self.capture = None
        if self.source is not None:
            self.source.stop()
        if self.buffer is not None:
            self.buffer.clear()

    def metrics(self) -> dict:
        """Aggregate metrics of every component in the session."""
        return {
            "running": self._running,
            "port": self.server.port if self.server else None,
            "framing": self.server_config.framing.value,
            "capture_backend": self.capture_config.backend if self.capture_config else None,
            "frames_captured": self.capture.frames_captured if self.capture else 0,
            "server": self.server.metrics.to_dict() if self.server else {},
            "source": self.source.metrics() if self.source else {},
            "buffer": self.buffer.metrics() if self.buffer else {},
        }


# =============================================================================
# Viewer Side
# =============================================================================

class WatchController:
    """
    Runs at most one viewing session at a time.

    A failed connect or a lost stream is reported exactly once through
    on_error and the session ends; a new start() is needed to resume.

    Attributes:
        sink: DisplaySink receiving decoded images
        config: Client settings (timeouts, framing, limits)
        last_error: Error that ended the most recent session, if any

    Example:
        controller = WatchController(sink, settings.client, on_error=toast)
        await controller.start("192.168.1.5")
        await controller.wait()
    """

    def __init__(
        self,
        sink: DisplaySink,
        config: ClientConfig,
        on_error: Optional[ErrorCallback] = None,
        codec: Optional[FrameCodec] = None,
    ) -> None:
        self.sink = sink
        self.config = config
        self.on_error = on_error
        self.codec = codec or FrameCodec()
        self.last_error: Optional[StreamError] = None

        self._client: Optional[StreamClient] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        """Whether a session task is running."""
        return self._task is not None and not self._task.done()

    @property
    def client(self) -> Optional[StreamClient]:
        return self._client

    async def start(self, host: str, port: Optional[int] = None) -> StreamClient:
        """
        Start viewing host:port, replacing any running session.

        Returns:
            The StreamClient of the new session.
        """
        await self.stop()

        self.last_error = None
        client = StreamClient(
            host,
            port or self.config.port,
            sink=self.sink,
            codec=self.codec,
            framing=self.config.framing,
            connect_timeout=self.config.connect_timeout_seconds,
            max_frame_bytes=self.config.max_frame_bytes,
            read_chunk_bytes=self.config.read_chunk_bytes,
        )
        self._client = client
        self._task = asyncio.create_task(self._run_session(client), name="stream_client")
        return client

    async def stop(self) -> None:
        """
        Stop the running session, if any, and wait until its socket is closed.

        The session gets SESSION_STOP_GRACE seconds to end on its own after
        its client is stopped, so wait() still reports the frames it showed.
        Only a session that overruns the grace period is cancelled.
        """
        client, task = self._client, self._task
        self._client = None
        self._task = None

        if client is not None:
            await client.stop()
        if task is None:
            return

        if not task.done():
            await asyncio.wait({task}, timeout=SESSION_STOP_GRACE)
        if not task.done():
            logger.warning("Viewing session did not end after stop, cancelling")
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def wait(self) -> int:
        """
        Wait for the current session to end.

        Returns:
            Frames displayed by the session (0 if none was running).
        """
        task = self._task
        if task is None:
            return 0
        await asyncio.wait({task})
        if task.cancelled():
            return 0
        return task.result()

    async def _run_session(self, client: StreamClient) -> int:
        try:
            return await client.run()
        except (ConnectError, ReadError) as e:
            self.last_error = e
            logger.error(f"Viewing session for {client.address} ended: {e}")
            if self.on_error is not None:
                self.on_error(e)
            return client.metrics.frames_displayed
