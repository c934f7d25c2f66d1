import os
import sys
from logging.config import dictConfig

from site_inventory.core.config import APP_ENV

LOG_LEVEL = os.getenv(
    "LOG_LEVEL",
    "DEBUG" if APP_ENV == "development" else "INFO",
).upper()

ACCESS_FORMAT = (
    "%(asctime)s | ACCESS | %(client_addr)s | %(method)s %(path)s"
    " -> %(status_code)s in %(process_time_ms)sms"
)


def _stdout_handler(formatter: str) -> dict:
    return {
        "class": "logging.StreamHandler",
        "stream": sys.stdout,
        "formatter": formatter,
    }


def build_logging_config(level: str = LOG_LEVEL) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            },
            "access": {"format": ACCESS_FORMAT},
        },
        "handlers": {
            "console": _stdout_handler("default"),
            "access_console": _stdout_handler("access"),
        },
        "loggers": {
            "site_inventory": {"level": level},
            # written by request_logging_middleware
            "access": {
                "handlers": ["access_console"],
                "level": "INFO",
                "propagate": False,
            },
            # duplicated by our own access log
            "uvicorn.access": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "apscheduler": {"level": "INFO"},
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }


def setup_logging():
    dictConfig(build_logging_config())
