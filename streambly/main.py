"""
Process entrypoint serving the demo streams over HTTP.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Mapping, Optional

from .api.server import StreamDefinition, create_app
from .config import ServerSettings, load_settings
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


async def serve(settings: ServerSettings, catalog: Mapping[str, StreamDefinition]) -> None:
    """
    Run the control API inside an asyncio loop until interrupted.
    """

    import uvicorn

    app = create_app(catalog, settings=settings)
    server_config = uvicorn.Config(
        app=app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    LOG.info("Serving %d stream(s) on %s:%s", len(catalog), settings.host, settings.port)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Streambly demo server")
    parser.add_argument("--config", default=None, help="YAML settings file ($STREAMBLY_CONFIG)")
    parser.add_argument("--host", default=None, help="bind host for the API server")
    parser.add_argument("--port", type=int, default=None, help="bind port for the API server")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> ServerSettings:
    settings = load_settings(args.config)
    overrides = {key: value for key, value in (("host", args.host), ("port", args.port)) if value is not None}
    return settings.model_copy(update=overrides) if overrides else settings


def run(argv: Optional[list[str]] = None) -> None:
    from .apps import demo_catalog

    settings = build_settings(parse_args(argv))
    configure_logging(settings.log_level_value)

    try:
        asyncio.run(serve(settings, demo_catalog()))
    except KeyboardInterrupt:
        LOG.info("Server interrupted by user.")


if __name__ == "__main__":
    run()
