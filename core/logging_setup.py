"""
Logging setup shared by service entry points.
"""

import logging
from typing import Optional

from core.config import LoggingConfig


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure root logging from LoggingConfig (level, format, optional file)"""
    config = config or LoggingConfig.from_env()

    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
        handlers=handlers,
    )

    # Driver loggers are chatty at DEBUG
    for noisy in ("asyncio", "nats", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(logging.INFO, logging.getLogger().level))
