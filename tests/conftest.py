"""
Test Configuration
==================

Pytest fixtures and test configuration for videostream.
"""

import asyncio

import numpy as np
import pytest

from videostream.stream.codec import FrameCodec


class RecordingSink:
    """DisplaySink that keeps every image it is shown."""

    def __init__(self) -> None:
        self.images = []

    def show(self, image) -> None:
        self.images.append(image)


def _test_image(width: int, height: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)
    image[:, :, 1] = rng.integers(0, 255, size=(height, width), dtype=np.uint8)
    return image


@pytest.fixture
def codec():
    """Default JPEG codec."""
    return FrameCodec(quality=70)


@pytest.fixture
def sample_image():
    """Provide a small BGR test image."""
    return _test_image(64, 48, seed=1)


@pytest.fixture
def jpeg_payload(codec, sample_image):
    """Provide one encoded JPEG frame."""
    return codec.encode(sample_image)


@pytest.fixture
def jpeg_payloads(codec):
    """Provide three distinct encoded JPEG frames."""
    return [codec.encode(_test_image(64, 48, seed=i)) for i in range(3)]


@pytest.fixture
def sink():
    """Provide a sink recording every displayed image."""
    return RecordingSink()


@pytest.fixture
def wait_until():
    """Provide an async poller that fails the test on timeout."""

    async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"Condition not met within {timeout}s")
            await asyncio.sleep(interval)

    return _wait_until


@pytest.fixture
def serve_bytes():
    """
    Provide a factory for one-shot raw TCP servers.

    Each accepted connection receives `data` verbatim, then the server
    closes it. Returns the asyncio server; its port is on sockets[0].
    """

    async def _serve_bytes(data: bytes):
        async def handle(reader, writer):
            writer.write(data)
            await writer.drain()
            writer.close()

        return await asyncio.start_server(handle, "127.0.0.1", 0)

    return _serve_bytes
