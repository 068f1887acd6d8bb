import json
import logging
import logging.config
import os
from datetime import datetime, timezone

_EXTRA_KEYS = (
    "request_id",
    "actor_id",
    "path",
    "method",
    "status",
    "duration_ms",
    "event_id",
    "event_type",
    "user_id",
    "subscription_id",
)


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value) if key.endswith("_id") else value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging() -> None:
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JsonLogFormatter,
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            }
        },
        "root": {"handlers": ["default"], "level": os.getenv("LOG_LEVEL", "INFO")},
        # stripe-python logs every request at INFO; keep it at WARNING
        "loggers": {"stripe": {"level": "WARNING"}},
    }
    logging.config.dictConfig(logging_config)
