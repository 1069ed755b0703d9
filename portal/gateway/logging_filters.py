"""Structured logging helpers for the portal.

Loggers obtained through ``get_logger`` emit one JSON object per record
(via ``python-json-logger``) and carry the current request id taken from
``REQUEST_ID_CTX``, so polling transitions and cancellation outcomes can be
correlated with the request that started them.
"""

import logging
from logging import Filter, LogRecord

from pythonjsonlogger import jsonlogger

from portal import settings
from .middleware import REQUEST_ID_CTX

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    Falls back to ``"-"`` so formatters can always reference
    ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True


def get_logger(name: str) -> logging.Logger:
    """Return a JSON logger for ``name``, configuring it on first use.

    Args:
        name: Dotted logger name, usually ``__name__``.

    Returns:
        logging.Logger: A logger with a JSON stream handler and the
        request-id filter attached exactly once.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        h.addFilter(RequestIdFilter())
        logger.addHandler(h)
        logger.setLevel(getattr(settings, "LOG_LEVEL", "INFO"))
    return logger
