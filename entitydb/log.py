"""
Logging setup for EntityDB entry points.

Library modules only create module-level loggers; configuring handlers
is left to whatever process embeds EntityDB. The CLI calls
setup_logging() once at start-up.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: EntityDB settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
