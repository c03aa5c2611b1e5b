"""Shared CLI helpers for configuration, logging and runtime wiring."""

from __future__ import annotations

import logging
import sys

import typer
from loguru import logger
from rich.console import Console

from synthrelay.api.config.config_handler import ConfigHandler
from synthrelay.api.logger.levels import LOG_LEVEL_MAP
from synthrelay.api.logger.logger import InterceptHandler
from synthrelay.api.logger.msgs import errors
from synthrelay.api.models.config_model import Config

console = Console()

INFORMATIVE_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} | {message}"
)

COLOR_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level:<8}</level> | "
    "<dim>{name}:{function}:{line}</dim> | "
    "<level>{message}</level>"
)


def load_config_or_exit(config_handler: ConfigHandler | None = None) -> Config:
    """Build the config from config.toml and the environment, exit on invalid values."""
    handler = config_handler or ConfigHandler()
    if not handler.check_config():
        logger.debug(errors.ERROR_NO_CONFIG_FILE_FOUND(str(handler.config_toml_path)))

    try:
        return handler.build_config()
    except ValueError as e:
        logger.error(f"Invalid configuration | Error: {str(e)}")
        raise typer.Exit(code=1)


def configure_logging(*, config: Config | None, log_level: int, debug: bool) -> str:
    """
    Route stdlib logging (uvicorn, websockets, aiortc) through loguru and
    set up the console sink, plus a rotating file sink when a config is given.

    Returns:
        str: The resolved log level name.
    """
    if log_level not in LOG_LEVEL_MAP:
        logger.error("Invalid log level: {level}. Allowed: 0..3.", level=log_level)
        raise typer.Exit(code=1)

    log_level_name = LOG_LEVEL_MAP[log_level]

    intercept_handler = InterceptHandler()
    logging.basicConfig(handlers=[intercept_handler], level=log_level_name)
    logging.root.handlers = [intercept_handler]
    logging.root.setLevel(log_level_name)

    seen_roots: set[str] = set()
    for name in [
        *logging.root.manager.loggerDict.keys(),
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "websockets",
        "aiortc",
    ]:
        root_name = name.split(".")[0]
        if root_name in seen_roots:
            continue
        seen_roots.add(root_name)
        logging.getLogger(name).handlers = [intercept_handler]

    logger.remove()
    logger.add(
        sys.stdout,
        level=log_level_name,
        format=COLOR_LOG_FORMAT,
        colorize=True,
        backtrace=debug,
        diagnose=debug,
    )
    if config is not None and config.LOGS_PATH:
        logger.add(
            config.LOGS_PATH,
            rotation="10 MB",
            level=log_level_name,
            format=INFORMATIVE_LOG_FORMAT,
            colorize=False,
        )
    return log_level_name
