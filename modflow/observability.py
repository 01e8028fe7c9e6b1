"""Logging setup driven by ``LoggingConfig`` (json | text)."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from modflow.config.schemas.observability import LoggingConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={...}`` fields are carried through."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": round(record.created, 3),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_"):
                payload[k] = v
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Install one handler on the engine logger; safe to call repeatedly."""
    cfg = cfg or LoggingConfig()
    log = logging.getLogger(cfg.logger)
    log.setLevel(_LEVELS[cfg.level])
    for h in list(log.handlers):
        if getattr(h, "_modflow", False):
            log.removeHandler(h)
    handler = logging.StreamHandler()
    handler._modflow = True  # type: ignore[attr-defined]
    if cfg.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    log.addHandler(handler)
    return log


__all__ = ["configure_logging", "JsonFormatter"]
