# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# logging_config.py
import logging
import os

from queuebot_app.apps.middleware.logging.uvicorn import UvicornAccessPathFilter


def _to_level(name: str, default: int) -> int:
    level = logging.getLevelName((name or "").upper())
    return level if isinstance(level, int) else default


def configure_logging(silenced_paths=("/health",), silenced_prefixes=()):
    # --- Root config ---
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT",
                           "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    level = _to_level(log_level_name, logging.INFO)

    # Make root the single source of truth
    logging.basicConfig(level=level, format=log_format, force=True)

    # Route warnings.warn(...) into logging
    logging.captureWarnings(True)

    # --- Normalize noisy / framework loggers ---
    desired_levels = {
        # uvicorn (run with log_config=None)
        "uvicorn": os.getenv("UVICORN_LEVEL", log_level_name),
        "uvicorn.error": os.getenv("UVICORN_ERROR_LEVEL", log_level_name),
        "uvicorn.access": os.getenv("UVICORN_ACCESS_LEVEL", "INFO"),

        # httpx logs every long-poll request at INFO
        "httpx": os.getenv("HTTPX_LEVEL", "WARNING"),
        "httpcore": os.getenv("HTTPCORE_LEVEL", "WARNING"),

        "asyncio": os.getenv("ASYNCIO_LEVEL", "WARNING"),
    }

    for name, lvl_name in desired_levels.items():
        lg = logging.getLogger(name)
        # Remove any handlers these libs may have attached (causes duplicates)
        for h in list(lg.handlers):
            lg.removeHandler(h)
        lg.propagate = True                 # bubble up to root only
        lg.setLevel(_to_level(lvl_name, level))

    access = logging.getLogger("uvicorn.access")
    for f in list(access.filters):
        if isinstance(f, UvicornAccessPathFilter):
            access.removeFilter(f)
    access.addFilter(UvicornAccessPathFilter(silenced_paths, silenced_prefixes))
