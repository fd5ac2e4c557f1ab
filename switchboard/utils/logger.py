"""Utility for configuring project wide logging behaviour."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from switchboard.configs.schema import LoggingConfig

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s:%(name)s: %(message)s"


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Initialise logging handlers and adjust default noisy loggers."""
    config = config or LoggingConfig()
    logging.basicConfig(
        level=getattr(logging, config.level, logging.INFO),
        format=config.format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("discord").setLevel(getattr(logging, config.discord_level, logging.INFO))
    # The gateway logs every heartbeat at DEBUG; keep it quiet unless asked for.
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
