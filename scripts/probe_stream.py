#!/usr/bin/env python3
"""
Stream Probe Script
===================

Standalone script to check a running streamer from the command line.

This script:
    1. Connects to a running `videostream serve`
    2. Receives and decodes frames for a configurable duration
    3. Logs receive stats every few seconds
    4. Reports a final summary (measured fps, bytes, decode errors)

Usage:
    python scripts/probe_stream.py --host 192.168.1.5 --duration 30
    python scripts/probe_stream.py --framing jpeg_stream
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from videostream.stream import CallbackSink, FramingMode, StreamClient, StreamError


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_probe(
    host: str,
    port: int,
    framing: FramingMode,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Receive frames for `duration` seconds and collect statistics.

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info(f"Probing {host}:{port} (framing={framing.value}) for {duration}s")
    logger.info("=" * 60)

    last_shape = {"value": None}
    client = StreamClient(
        host,
        port,
        sink=CallbackSink(lambda image: last_shape.update(value=image.shape)),
        framing=framing,
    )
    client_task = asyncio.create_task(client.run())

    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0
    error = None

    try:
        while not client_task.done():
            elapsed = time.time() - start_time
            if elapsed >= duration:
                logger.info(f"Probe duration ({duration}s) reached")
                break

            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                metrics = client.metrics
                frames_since_last = metrics.frames_received - last_frame_count
                fps = frames_since_last / time_since_report

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  Connected: {client.connected}")
                logger.info(f"  Frames received: {metrics.frames_received}")
                logger.info(f"  Current FPS: {fps:.1f}")
                logger.info(f"  Decode errors: {metrics.decode_errors}")
                logger.info(f"  Last frame shape: {last_shape['value']}")

                last_report_time = time.time()
                last_frame_count = metrics.frames_received

            await asyncio.sleep(0.5)
    finally:
        await client.stop()
        try:
            await asyncio.wait_for(client_task, timeout=5.0)
        except StreamError as e:
            error = e
            logger.error(f"Stream failed: {e}")
        except asyncio.TimeoutError:
            client_task.cancel()

    total_time = time.time() - start_time
    metrics = client.metrics
    avg_fps = metrics.frames_received / total_time if total_time > 0 else 0

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {metrics.frames_received}")
    logger.info(f"Frames displayed: {metrics.frames_displayed}")
    logger.info(f"Average FPS: {avg_fps:.1f}")
    logger.info(f"Bytes received: {metrics.bytes_received}")
    logger.info(f"Decode errors: {metrics.decode_errors}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames_received": metrics.frames_received,
        "avg_fps": avg_fps,
        "decode_errors": metrics.decode_errors,
        "error": str(error) if error else None,
    }


def main():
    parser = argparse.ArgumentParser(description="Probe a running videostream server")
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("VIDEOSTREAM_HOST", "127.0.0.1"),
        help="Streamer address",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("VIDEOSTREAM_PORT", "8080")),
        help="Streamer port (default: 8080)",
    )
    parser.add_argument(
        "--framing",
        choices=[mode.value for mode in FramingMode],
        default=FramingMode.LENGTH_PREFIXED.value,
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Probe duration in seconds (default: 30)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_probe(
        host=args.host,
        port=args.port,
        framing=FramingMode(args.framing),
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_received"] > 0 and result["error"] is None else 1)


if __name__ == "__main__":
    main()
