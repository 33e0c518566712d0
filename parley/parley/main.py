from __future__ import annotations

"""Entry point for starting the Parley service."""

import argparse
import asyncio
import logging
import sys

import uvicorn

from parley import log_config

from .config import ensure_config, save_config
from .http.api import create_app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the Parley service")
    parser.add_argument("--host", default=None, help="Host to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to bind")
    parser.add_argument("--db", default=None, help="Path to the JSON store document")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--reconfigure",
        action="store_true",
        help="Write the resolved settings back to the config file",
    )
    return parser.parse_args(argv)


async def main_async(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    cfg = ensure_config()
    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    if args.db:
        cfg.store.path = args.db
    if args.reconfigure:
        save_config(cfg)

    log_config.setup_logging(cfg.log_level, debug=args.debug)
    logging.info("Using store at %s", cfg.store.path)

    try:
        app = create_app(cfg)
        config = uvicorn.Config(
            app, host=cfg.server.host, port=cfg.server.port, log_level="info"
        )
        server = uvicorn.Server(config)
        logging.info("Server listening on http://%s:%s", cfg.server.host, cfg.server.port)
        await server.serve()
    except Exception:
        logging.exception("Failed to start services")
        sys.exit(1)


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
