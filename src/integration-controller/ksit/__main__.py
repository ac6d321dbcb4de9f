"""Command line entry point: ``python -m ksit`` or ``ksit``.

Exits 0 on a clean shutdown and 1 when startup fails or the control-plane
API becomes unreachable while running.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn

from shared.config import Settings, StoreBackend, get_settings
from shared.observability import get_logger, setup_logging

from .errors import KsitError
from .main import create_app
from .runtime import ControlPlane

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ksit",
        description="Run the KSIT integration controller",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 8080)")
    parser.add_argument(
        "--disable-health-monitor",
        action="store_true",
        help="Do not run periodic cluster health checks",
    )
    parser.add_argument(
        "--disable-metrics",
        action="store_true",
        help="Do not expose Prometheus metrics",
    )
    parser.add_argument(
        "--store",
        choices=[b.value for b in StoreBackend],
        default=None,
        help="Declaration store backend (default: STORE_BACKEND or kubernetes)",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Apply command line overrides on top of environment settings."""
    settings = base or get_settings()
    update: dict = {}
    if args.host is not None:
        update["host"] = args.host
    if args.port is not None:
        update["port"] = args.port
    if args.store is not None:
        update["store_backend"] = StoreBackend(args.store)
    if args.disable_health_monitor:
        update["health_monitor_enabled"] = False
    if args.disable_metrics:
        update["observability"] = settings.observability.model_copy(
            update={"metrics_enabled": False}
        )
    return settings.model_copy(update=update)


async def serve(settings: Settings) -> int:
    """Run the HTTP server and controller until shutdown; return the exit code."""
    try:
        control_plane = ControlPlane(settings)
    except KsitError as e:
        logger.error("Controller setup failed", error=str(e))
        return 1

    app = create_app(settings, control_plane)
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    )

    async def watch_fatal() -> None:
        await control_plane.failed.wait()
        logger.error("Shutting down after fatal error", error=str(control_plane.fatal_error))
        server.should_exit = True

    watcher = asyncio.create_task(watch_fatal(), name="fatal-watcher")
    try:
        await server.serve()
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)

    if not server.started:
        logger.error("Controller startup failed")
        return 1
    if control_plane.fatal_error is not None:
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    return asyncio.run(serve(settings))


if __name__ == "__main__":
    sys.exit(main())
