"""JSON logging for the security services."""

import logging
from typing import Union

from pythonjsonlogger import jsonlogger


def setup_logger(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Send records from all loggers to stderr as JSON."""
    logHandler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s',
                                         rename_fields={'levelname': 'level', 'asctime': 'timestamp'})
    logHandler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(logHandler)
    logger.setLevel(level)
    return logger
