import logging
from typing import Optional

from services.common.core.logging_config import setup_logging as common_setup_logging

from ..config import FdkConfig, config

LOGGER_NAME = "fdk.runner"


def setup_logging(settings: Optional[FdkConfig] = None) -> logging.Logger:
    """
    Load the YAML logging config (or the JSON stdout fallback) and return the runner logger.
    """
    settings = settings or config
    common_setup_logging(settings.LOG_CONFIG_PATH, level=settings.LOG_LEVEL)
    return logging.getLogger(LOGGER_NAME)
