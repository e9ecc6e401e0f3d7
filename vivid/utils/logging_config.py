"""
Centralized logging configuration for the application.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

# Transport libraries that log every watch reconnect and token fetch at INFO
NOISY_LOGGERS = ('google.api_core.bidi', 'google.auth', 'urllib3', 'grpc')


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Route application logs to stderr.

    stdout is reserved for the MCP stdio transport, so nothing is logged there.

    Args:
        config: AppConfig instance, uses default if None
    """
    config = config or _default_config()

    logging.basicConfig(level=_level(config),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        handlers=[logging.StreamHandler(sys.stderr)])

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(_level(config), logging.WARNING))


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Module logger at the configured level.

    Args:
        name: Logger name (usually __name__)
        config: AppConfig instance, uses default if None
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(config or _default_config()))
    return logger


def _default_config() -> AppConfig:
    from .config import config
    return config


def _level(config: AppConfig) -> int:
    # Unknown LOG_LEVEL names fall back to INFO
    level = getattr(logging, config.log_level.upper(), None)
    return level if isinstance(level, int) else logging.INFO
