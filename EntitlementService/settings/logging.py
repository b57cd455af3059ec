"""
Logging configuration for structured JSON logging.

Log lines carry the active trace and span ids so they can be joined to
traces in the log aggregator.
"""

import os
import sys

from opentelemetry import trace
from pythonjsonlogger import jsonlogger

APP_LOGGERS = (
    "core",
    "api",
    "accounts",
    "plans",
    "entitlements",
    "activations",
    "subscriptions",
    "billing",
    "webhooks",
)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds trace context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_record["trace_id"] = format(span_context.trace_id, "032x")
            log_record["span_id"] = format(span_context.span_id, "016x")


def get_logging_config(environment: str = "development") -> dict:
    """
    Get logging configuration for the application.

    LOG_LEVEL overrides the environment default. LOG_FILE adds a rotating
    file handler next to the console handler.

    Args:
        environment: Environment name (development, production, test)

    Returns:
        Django logging configuration dictionary
    """
    default_level = "DEBUG" if environment == "development" else "INFO"
    log_level = os.environ.get("LOG_LEVEL", default_level).upper()
    log_file = os.environ.get("LOG_FILE")

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": sys.stdout,
        },
    }
    active_handlers = ["console"]
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
        active_handlers.append("file")

    loggers = {
        "django": {"handlers": active_handlers, "level": "INFO", "propagate": False},
        "django.request": {"handlers": active_handlers, "level": "WARNING", "propagate": False},
        "django.db.backends": {"handlers": active_handlers, "level": "WARNING", "propagate": False},
        "stripe": {"handlers": active_handlers, "level": "WARNING", "propagate": False},
    }
    for name in APP_LOGGERS:
        loggers[name] = {"handlers": active_handlers, "level": log_level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": CustomJsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(pathname)s %(lineno)d",
            },
            "simple": {
                "format": "{levelname} {message}",
                "style": "{",
            },
        },
        "handlers": handlers,
        "root": {
            "handlers": active_handlers,
            "level": log_level,
        },
        "loggers": loggers,
    }
