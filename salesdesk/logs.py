"""
Logging setup.

Plain text logs by default; LOG_JSON=1 switches to one JSON object per line
with sensitive keys redacted.
"""

import datetime
import json
import logging
import logging.config


class JSONFormatter(logging.Formatter):
    """
    JSON formatter.
    Recursively scrubs sensitive keys from structured log messages.
    """

    SENSITIVE_KEYS = {
        "password", "password_hash", "token", "csrf_token",
        "secret", "authorization", "cookie", "session",
    }

    def _scrub(self, data):
        if isinstance(data, dict):
            return {
                k: self._scrub(v) if str(k).lower() not in self.SENSITIVE_KEYS else "***REDACTED***"
                for k, v in data.items()
            }
        if isinstance(data, list):
            return [self._scrub(i) for i in data]
        return data

    def format(self, record):
        if isinstance(record.msg, dict):
            record.msg = self._scrub(record.msg)

        if isinstance(record.args, dict):
            record.args = self._scrub(record.args)

        log_record = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "lvl": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "line": record.lineno,
        }

        for attr in ("order_id", "user_id", "client_id"):
            if hasattr(record, attr):
                log_record[attr] = getattr(record, attr)

        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str, ensure_ascii=False)


def configure_logging(app) -> None:
    """Configure the salesdesk logger tree from app config."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    formatter = "json" if app.config.get("LOG_JSON") else "verbose"

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {name} {message}",
                "style": "{",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
        },
        "loggers": {
            "salesdesk": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    })
