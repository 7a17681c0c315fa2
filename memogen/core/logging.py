"""Process-wide logging: uvicorn formatters, one stdout handler for memogen."""

import sys
from logging.config import dictConfig
from typing import Any

from memogen.core.config import settings

# Packages that log job and pipeline activity through the memogen handler
APP_LOGGERS = ("memogen", "memogen.api", "memogen.jobs", "memogen.services")


def build_logging_config(level: str | None = None) -> dict[str, Any]:
    """Return a uvicorn-compatible dictConfig; *level* applies to the memogen loggers only."""
    app_level = (level or settings.log_level).upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s %(asctime)s [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s %(asctime)s [%(name)s] "%(request_line)s" %(status_code)s',
            },
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "default", "stream": sys.stderr, "level": "INFO"},
            "access": {"class": "logging.StreamHandler", "formatter": "access", "stream": sys.stdout, "level": "INFO"},
            "memogen": {"class": "logging.StreamHandler", "formatter": "default", "stream": sys.stdout, "level": app_level},
        },
        "loggers": {
            "root": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            **{name: {"handlers": ["memogen"], "level": app_level, "propagate": False} for name in APP_LOGGERS},
        },
    }


def setup_logging(level: str | None = None) -> None:
    """Configures application-wide logging using dictConfig."""
    dictConfig(build_logging_config(level))
