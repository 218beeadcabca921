"""
Capture Drivers
===============

Raw frame producers feeding a FrameSource.

Backends:
    - camera: OpenCV VideoCapture device (USB / V4L2 / built-in webcam)
    - synthetic: Moving numpy test pattern, no hardware needed

Each driver runs its own daemon thread and hands every frame it produces
to source.on_raw_frame(), or to source.on_nv21_frame() for NV21 output.
"""

import logging
import threading
import time
from typing import Optional

import cv2
import numpy as np

from videostream.stream.codec import bgr_to_nv21
from videostream.stream.errors import CaptureError
from videostream.stream.source import FrameSource


logger = logging.getLogger(__name__)


PIXEL_FORMATS = ("bgr", "nv21")


class _CaptureThread:
    """Shared start/stop handling for capture drivers."""

    name = "capture"

    def __init__(self, source: FrameSource, fps: int) -> None:
        if fps < 1:
            raise ValueError("fps must be >= 1")
        self.source = source
        self.fps = fps
        self.frames_captured: int = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._open()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"{type(self).__name__} started at {self.fps} fps")

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"{type(self).__name__} thread did not exit within timeout")
        self._thread = None
        self._close()
        logger.info(f"{type(self).__name__} stopped after {self.frames_captured} frames")

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _run(self) -> None:
        raise NotImplementedError


class CameraCapture(_CaptureThread):
    """
    Captures frames from an OpenCV video device.

    Attributes:
        device_index: cv2.VideoCapture device index
        width: Requested frame width
        height: Requested frame height
        fps: Requested capture rate
    """

    name = "camera-capture"

    def __init__(
        self,
        source: FrameSource,
        device_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
    ) -> None:
        super().__init__(source, fps)
        self.device_index = device_index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    def _open(self) -> None:
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise CaptureError(f"Camera {self.device_index} could not be opened")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        capture.set(cv2.CAP_PROP_FPS, self.fps)
        self._capture = capture

    def _close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def _run(self) -> None:
        failures = 0
        while not self._stop_event.is_set():
            ok, frame = self._capture.read()
            if not ok:
                failures += 1
                if failures == 1 or failures % 100 == 0:
                    logger.warning(f"Camera read failed ({failures} consecutive)")
                self._stop_event.wait(1.0 / self.fps)
                continue

            failures = 0
            self.frames_captured += 1
            self.source.on_raw_frame(frame)


class SyntheticCapture(_CaptureThread):
    """
    Generates a moving test pattern.

    A gradient background with a bar sweeping across it and the frame
    counter drawn on top, so frame freshness is visible on the viewer.

    With pixel_format="nv21" frames are handed over as NV21 buffers, the
    layout phone camera pipelines deliver, instead of BGR arrays.
    """

    name = "synthetic-capture"

    def __init__(
        self,
        source: FrameSource,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        pixel_format: str = "bgr",
    ) -> None:
        if pixel_format not in PIXEL_FORMATS:
            raise ValueError(f"Unknown pixel format: {pixel_format}")
        if pixel_format == "nv21" and (width % 2 or height % 2):
            raise ValueError(f"NV21 needs even dimensions, got {width}x{height}")

        super().__init__(source, fps)
        self.width = width
        self.height = height
        self.pixel_format = pixel_format

        gradient = np.linspace(0, 255, width, dtype=np.uint8)
        self._background = np.zeros((height, width, 3), dtype=np.uint8)
        self._background[:, :, 0] = gradient
        self._background[:, :, 2] = gradient[::-1]

    def render(self, index: int) -> np.ndarray:
        """Render pattern frame number `index`."""
        frame = self._background.copy()
        bar_width = max(1, self.width // 16)
        x = (index * 8) % self.width
        frame[:, x:x + bar_width, 1] = 255
        cv2.putText(
            frame,
            f"#{index}",
            (10, max(20, self.height // 8)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.8,
            (255, 255, 255),
            2,
        )
        return frame

    def _run(self) -> None:
        interval = 1.0 / self.fps
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self.frames_captured += 1
            frame = self.render(self.frames_captured)
            if self.pixel_format == "nv21":
                self.source.on_nv21_frame(bgr_to_nv21(frame), self.width, self.height)
            else:
                self.source.on_raw_frame(frame)

            next_tick += interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                next_tick = time.monotonic()
                delay = 0
            self._stop_event.wait(delay)

