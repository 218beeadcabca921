"""
Status Endpoint Tests
=====================
"""

import asyncio

from fastapi.testclient import TestClient

from videostream.config import ServerConfig
from videostream.lifecycle import StreamController
from videostream.status import create_status_app


def _controller() -> StreamController:
    return StreamController(ServerConfig(host="127.0.0.1", port=0, send_interval_ms=10))


class TestStatusApp:

    def test_stopped_controller(self):
        client = TestClient(create_status_app(_controller()))

        root = client.get("/")
        assert root.status_code == 200
        assert root.json()["status"] == "stopped"
        assert root.json()["framing"] == "length_prefixed"

        assert client.get("/health").status_code == 503

    def test_running_controller(self):
        controller = _controller()
        client = TestClient(create_status_app(controller))

        async def _run():
            await controller.start()
            try:
                controller.buffer.publish(b"frame")
                health = await asyncio.to_thread(client.get, "/health")
                metrics = await asyncio.to_thread(client.get, "/metrics")
                return health, metrics.json()
            finally:
                await controller.stop()

        health, metrics = asyncio.run(_run())
        assert health.status_code == 200
        assert health.json()["status"] == "healthy"
        assert metrics["running"] is True
        assert metrics["port"] > 0
        assert metrics["buffer"]["total_published"] == 1
        assert "frames_sent" in metrics["server"]
