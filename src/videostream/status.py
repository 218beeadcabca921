"""
Status Endpoint
===============

Optional HTTP surface for a running StreamController.

Endpoints:
    GET  /         - Service information
    GET  /health   - Liveness probe (is process alive?)
    GET  /metrics  - Server, source and buffer metrics

The app is served by uvicorn on its own thread (see StatusServer) so it
never shares the streaming event loop.
"""

import logging
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from videostream import __version__
from videostream.lifecycle import StreamController


logger = logging.getLogger(__name__)


def create_status_app(controller: StreamController) -> FastAPI:
    """Build the FastAPI app reporting on `controller`."""
    started_at = time.time()

    app = FastAPI(
        title="videostream",
        description="Live TCP camera streamer status",
        version=__version__,
    )

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "videostream",
            "version": __version__,
            "status": "running" if controller.running else "stopped",
            "port": controller.server.port if controller.server else None,
            "framing": controller.server_config.framing.value,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Liveness probe.

        Returns 200 while the streaming session is running, 503 otherwise.
        """
        body = {
            "status": "healthy" if controller.running else "stopped",
            "uptime_seconds": round(time.time() - started_at, 1),
        }
        return JSONResponse(body, status_code=200 if controller.running else 503)

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Detailed metrics for observability."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - started_at, 1),
            **controller.metrics(),
        })

    return app


class StatusServer:
    """
    Runs the status app with uvicorn on a daemon thread.

    uvicorn only installs signal handlers on the main thread, so running
    it here leaves shutdown signals to the streaming event loop.
    """

    def __init__(self, controller: StreamController, host: str, port: int) -> None:
        config = uvicorn.Config(
            create_status_app(controller),
            host=host,
            port=port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None
        self.address = f"{host}:{port}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.run, name="status-http", daemon=True)
        self._thread.start()
        logger.info(f"Status endpoint on http://{self.address}")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout=timeout)
        self._thread = None
