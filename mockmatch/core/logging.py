from __future__ import annotations

import json
import logging
import logging.config
from pathlib import Path
from typing import Any

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("apscheduler", "aiohttp.access", "httpx", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields land as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(settings) -> dict[str, Any]:
    level = (settings.log_level or "INFO").upper()
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json" if settings.log_json else "plain",
        },
    }
    if settings.log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "json",
            "filename": settings.log_file,
            "maxBytes": 5 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    loggers: dict[str, dict[str, Any]] = {name: {"level": "WARNING"} for name in _QUIET_LOGGERS}
    loggers["sqlalchemy.engine"] = {"level": "INFO" if settings.sql_echo else "WARNING"}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
            "json": {"()": JsonFormatter},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": level, "handlers": list(handlers)},
    }


_configured = False


def configure_logging(settings=None) -> None:
    """Install handlers once per process; later calls are no-ops."""
    global _configured
    if _configured:
        return
    if settings is None:
        from mockmatch.core.settings import get_settings

        settings = get_settings()
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_logging_config(settings))
    logging.captureWarnings(True)
    _configured = True


__all__ = ["JsonFormatter", "build_logging_config", "configure_logging"]
