import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from portal.core import context
from portal.core.settings import settings

ACTIVITY_LOGGER = "portal.activity"
_CONTEXT_FIELDS = ("request_id", "tenant_id", "actor_id", "actor_role")


class RequestContextFilter(logging.Filter):
    """Copy the current request/tenant/actor context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        current = context.current()
        for field in _CONTEXT_FIELDS:
            setattr(record, field, getattr(current, field))
        return True


class JsonFormatter(logging.Formatter):
    def __init__(self, stream_label: str = "app") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
        }
        payload.update({field: getattr(record, field, "-") for field in _CONTEXT_FIELDS})
        # Access-log entries carry their structured fields under ``activity``.
        activity = getattr(record, "activity", None)
        if activity:
            payload["activity"] = activity
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    # Local development reads better as plain text; every other environment ships JSON.
    app_formatter = "text" if settings.environment == "development" else "json"
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "app"},
                "activity_json": {"()": JsonFormatter, "stream_label": "activity"},
                "text": {
                    "format": "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s",
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": app_formatter,
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
                "activity": {
                    "class": "logging.StreamHandler",
                    "level": "INFO",
                    "formatter": "activity_json",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level},
                ACTIVITY_LOGGER: {"handlers": ["activity"], "level": "INFO", "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                # The request middleware already logs one line per request.
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": False},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s storage_provider=%s",
        settings.environment,
        settings.storage_provider,
    )


def get_activity_logger() -> logging.Logger:
    return logging.getLogger(ACTIVITY_LOGGER)
