"""Structured logging configuration."""

import logging
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger import jsonlogger

from assistant_hub.infra.config import config

LOGGER_NAME = "assistant_hub"

# Set per request by RequestIDMiddleware and the assistant pipeline
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)

# Libraries that log prompts, keys or SQL at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "sqlalchemy.engine")


class RequestContextFilter(logging.Filter):
    """Attach the current request and tenant ids to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        if not hasattr(record, "tenant_id"):
            record.tenant_id = tenant_id_var.get()
        return True


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure JSON logging for the ``assistant_hub`` logger tree.

    Level resolution: explicit ``level``, then ``LOG_LEVEL``, then DEBUG/INFO
    depending on ``DEBUG``.
    """
    logger = logging.getLogger(LOGGER_NAME)
    resolved = (level or config.LOG_LEVEL or ("DEBUG" if config.DEBUG else "INFO")).upper()
    logger.setLevel(resolved)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(request_id)s %(tenant_id)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    handler.addFilter(RequestContextFilter())
    logger.addHandler(handler)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


app_logger = setup_logging()
