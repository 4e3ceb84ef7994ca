"""
Main entry point for pagerelay.
"""

import argparse
import asyncio
import functools
import os
import signal

from aiohttp import web

from pagerelay.engine.pool import EnginePool
from pagerelay.proxy.server import create_app
from pagerelay.relay.upstream import create_upstream_client
from pagerelay.utils.config import Settings, get_settings
from pagerelay.utils.dotenv import load_dotenv_if_present
from pagerelay.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pagerelay",
        description="pagerelay - content-fetching relay backed by a headless browser",
    )
    parser.add_argument("--host", type=str, help="Bind address (default: server.host)")
    parser.add_argument("--port", type=int, help="Bind port (default: $PORT or server.port)")
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory holding settings.yaml / local.yaml",
    )
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--console-log",
        action="store_true",
        help="Human-readable console logs instead of JSON",
    )
    return parser.parse_args(argv)


def resolve_bind(args: argparse.Namespace, settings: Settings) -> tuple[str, int]:
    """Bind address: CLI flag, then plain PORT env var (port only), then settings."""
    host = args.host or settings.server.host
    if args.port is not None:
        return host, args.port
    env_port = os.environ.get("PORT", "").strip()
    if env_port.isdigit():
        return host, int(env_port)
    return host, settings.server.port


async def serve(settings: Settings, host: str, port: int) -> None:
    """Run the relay until SIGINT/SIGTERM, then shut the engine down once."""
    pool = EnginePool(settings.engine)
    app = create_app(settings, pool=pool, client=create_upstream_client(settings.upstream))

    logger.info(
        "Starting pagerelay",
        version=settings.general.version,
        host=host,
        port=port,
        relay_path=settings.server.relay_path,
    )

    runner = web.AppRunner(app)
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"Server is running on http://{host}:{port}")

        # Wait for shutdown signal
        stop_event = asyncio.Event()

        def handle_signal(sig: int) -> None:
            logger.info("Received shutdown signal", signal=sig)
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, functools.partial(handle_signal, sig))

        await stop_event.wait()
    finally:
        logger.info("Shutting down pagerelay")
        await runner.cleanup()
        # No-op when on_cleanup already ran
        await pool.shutdown()


def run(argv: list[str] | None = None) -> None:
    """Console script entry point."""
    load_dotenv_if_present()
    args = parse_args(argv)

    if args.config_dir:
        os.environ["PAGERELAY_CONFIG_DIR"] = args.config_dir
        get_settings.cache_clear()

    settings = get_settings()
    configure_logging(
        log_level=args.log_level,
        json_format=False if args.console_log else None,
    )

    host, port = resolve_bind(args, settings)
    try:
        asyncio.run(serve(settings, host, port))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
