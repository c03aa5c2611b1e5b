"""Serve command for starting the relay."""

from __future__ import annotations

import typer
import uvicorn
from loguru import logger

from synthrelay.cli.common import configure_logging, load_config_or_exit
from synthrelay.core.bootstrap import relay_initializer

APP_IMPORT_STRING = "synthrelay.api.api:api"


def serve_command(
    log_level: int = typer.Option(
        0,
        "--log-level",
        help="Log level [0=INFO, 1=DEBUG, 2=ERROR, 3=CRITICAL].",
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug traces and diagnostics."
    ),
    dev: bool = typer.Option(
        False, "--dev", help="Run with uvicorn auto-reload for development."
    ),
) -> None:
    """Start the signaling relay."""
    if debug:
        log_level = 1

    config = load_config_or_exit()
    log_level_name = configure_logging(config=config, log_level=log_level, debug=debug)

    if dev:
        logger.info("Starting development server with hot reload.")
        uvicorn.run(
            APP_IMPORT_STRING,
            host=config.API_HOST,
            port=int(config.API_PORT),
            reload=True,
            log_level=log_level_name.lower(),
            access_log=False,
            server_header=False,
            date_header=False,
        )
        return

    if config.WORKERS > 1:
        # Every worker process builds its own runtime from the same config
        logger.info(f"Starting relay | Workers: {config.WORKERS} | Store: {config.STORE_PROVIDER}")
        uvicorn.run(
            APP_IMPORT_STRING,
            host=config.API_HOST,
            port=int(config.API_PORT),
            workers=config.WORKERS,
            log_level=log_level_name.lower(),
            access_log=False,
            server_header=False,
        )
        return

    relay_initializer.load_objects(config=config)

    from synthrelay.api.api import api

    logger.info(f"Starting relay | Host: {config.API_HOST} | Port: {config.API_PORT} | Store: {config.STORE_PROVIDER}")
    uvicorn.run(
        api,
        host=config.API_HOST,
        port=int(config.API_PORT),
        log_level=log_level_name.lower(),
        access_log=False,
        server_header=False,
    )
