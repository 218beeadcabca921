"""
Display Sinks
=============

Exit point of the client pipeline: every successfully decoded image is
handed to a DisplaySink, synchronously, from the receive loop.

Sinks that need a specific thread (GUI toolkits) are responsible for
marshaling the image there themselves.
"""

import logging
from typing import Callable, Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class DisplaySink(Protocol):
    """Anything that can show a decoded BGR image."""

    def show(self, image: np.ndarray) -> None:
        ...


class CallbackSink:
    """Adapts a plain callable to the DisplaySink protocol."""

    def __init__(self, callback: Callable[[np.ndarray], None]) -> None:
        self._callback = callback

    def show(self, image: np.ndarray) -> None:
        self._callback(image)


class OpenCVWindowSink:
    """
    Shows frames in an OpenCV window.

    Must be driven from the thread that owns the window (the main thread
    on most platforms). Pressing q or ESC marks the sink closed and
    calls on_close.

    Attributes:
        window_name: Title of the window
        closed: True once the user asked to close the window
    """

    def __init__(
        self,
        window_name: str = "videostream",
        width: int = 960,
        height: int = 640,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self.window_name = window_name
        self.on_close = on_close
        self.closed: bool = False
        self._created: bool = False
        self._size = (width, height)

    def show(self, image: np.ndarray) -> None:
        if self.closed:
            return
        if not self._created:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.window_name, *self._size)
            self._created = True

        cv2.imshow(self.window_name, image)
        key = cv2.waitKey(1) & 0xFF
        if key == ord("q") or key == 27:
            logger.info("Viewer window close requested")
            self.closed = True
            if self.on_close is not None:
                self.on_close()

    def close(self) -> None:
        if self._created:
            cv2.destroyWindow(self.window_name)
            self._created = False
