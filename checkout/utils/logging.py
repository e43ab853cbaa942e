# checkout/utils/logging.py
import json
import logging
import sys
import traceback
from datetime import datetime, timezone

from checkout.utils.settings import LOG_FORMAT, LOG_LEVEL

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Jedna linia JSON na rekord, dla agregatorow logow."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "checkout",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "func": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_obj["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(log_obj)


def _configure_root():
    root = logging.getLogger("checkout")
    if root.handlers:
        return root

    handler = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root.addHandler(handler)
    root.setLevel(LOG_LEVEL)
    return root


def get_logger(name: str) -> logging.Logger:
    _configure_root()
    if not name.startswith("checkout"):
        name = f"checkout.{name}"
    return logging.getLogger(name)
