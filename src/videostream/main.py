"""
videostream Command Line
========================

Entry point for both roles.

Commands:
    serve  - Capture, encode and stream frames to every connecting viewer
    watch  - Connect to a streamer and show its frames in a window

Usage:
    videostream serve --port 8080 --capture camera
    videostream serve --framing jpeg_stream --status
    videostream watch 192.168.1.5 --port 8080
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from videostream import __version__
from videostream.config import Settings, load_config, setup_logging
from videostream.lifecycle import StreamController, WatchController
from videostream.stream.display import OpenCVWindowSink
from videostream.stream.errors import StreamError
from videostream.stream.framing import FramingMode


logger = logging.getLogger(__name__)


# =============================================================================
# Argument Parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videostream",
        description="Live camera streaming over raw TCP",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--log-level", default=None, help="Override log level")

    framings = [mode.value for mode in FramingMode]
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Stream frames to viewers")
    serve.add_argument("--host", default=None, help="Bind host")
    serve.add_argument("--port", type=int, default=None, help="Bind port")
    serve.add_argument("--framing", choices=framings, default=None)
    serve.add_argument("--capture", choices=["camera", "synthetic"], default=None,
                       help="Capture backend")
    serve.add_argument("--camera-index", type=int, default=None)
    serve.add_argument("--interval-ms", type=int, default=None,
                       help="Pause between frames per viewer")
    serve.add_argument("--quality", type=int, default=None, help="JPEG quality 1-100")
    serve.add_argument("--status", action="store_true", help="Enable HTTP status endpoint")
    serve.add_argument("--status-port", type=int, default=None)

    watch = commands.add_parser("watch", help="View a stream")
    watch.add_argument("host", help="Streamer address")
    watch.add_argument("--port", type=int, default=None, help="Streamer port")
    watch.add_argument("--framing", choices=framings, default=None)
    watch.add_argument("--timeout", type=float, default=None, help="Connect timeout (seconds)")

    return parser


def _update(section, **values):
    changes = {key: value for key, value in values.items() if value is not None}
    return section.model_copy(update=changes) if changes else section


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Layer command line options over loaded settings."""
    updates = {}

    if args.log_level:
        updates["logging"] = _update(settings.logging, level=args.log_level)

    if args.command == "serve":
        updates["server"] = _update(
            settings.server,
            host=args.host,
            port=args.port,
            framing=FramingMode(args.framing) if args.framing else None,
            send_interval_ms=args.interval_ms,
        )
        updates["capture"] = _update(
            settings.capture,
            backend=args.capture,
            device_index=args.camera_index,
            jpeg_quality=args.quality,
        )
        updates["status"] = _update(
            settings.status,
            enabled=True if args.status else None,
            port=args.status_port,
        )

    elif args.command == "watch":
        updates["client"] = _update(
            settings.client,
            host=args.host,
            port=args.port,
            framing=FramingMode(args.framing) if args.framing else None,
            connect_timeout_seconds=args.timeout,
        )

    return settings.model_copy(update=updates)


# =============================================================================
# Signal Handlers
# =============================================================================

def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT / SIGTERM."""
    loop = asyncio.get_running_loop()

    def _handle_signal(signum, frame=None):
        logger.info(f"Received {signal.Signals(signum).name}, initiating graceful shutdown...")
        loop.call_soon_threadsafe(stop_event.set)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, _handle_signal)


# =============================================================================
# Commands
# =============================================================================

async def serve(settings: Settings) -> int:
    """Run a streaming session until interrupted."""
    from videostream.status import StatusServer

    controller = StreamController(settings.server, settings.capture)
    try:
        await controller.start()
    except StreamError as e:
        logger.error(f"Cannot start streaming: {e}")
        return 1

    status_server: Optional[StatusServer] = None
    if settings.status.enabled:
        status_server = StatusServer(controller, settings.status.host, settings.status.port)
        status_server.start()

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    try:
        await stop_event.wait()
    finally:
        if status_server is not None:
            status_server.stop()
        await controller.stop()

    return 0


async def watch(settings: Settings) -> int:
    """View a stream until it ends, the window closes or we are interrupted."""
    stop_event = asyncio.Event()
    sink = OpenCVWindowSink(
        window_name=f"videostream {settings.client.host}",
        on_close=stop_event.set,
    )
    controller = WatchController(sink, settings.client)

    _install_signal_handlers(stop_event)
    await controller.start(settings.client.host, settings.client.port)

    session = asyncio.create_task(controller.wait())
    stopper = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({session, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopper.cancel()
        await controller.stop()
        sink.close()

    displayed = await session
    logger.info(f"Viewer finished, {displayed} frames displayed")
    return 1 if controller.last_error else 0


# =============================================================================
# Main Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = apply_cli_overrides(load_config(args.config), args)
    setup_logging(settings)

    if args.command == "serve":
        return asyncio.run(serve(settings))
    return asyncio.run(watch(settings))


if __name__ == "__main__":
    sys.exit(main())
