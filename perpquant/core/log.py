"""perpquant.core.log

Stdlib logging, configured once at the edge (CLI, embedding service).

Library modules only ever call ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from perpquant.core.config import LoggingConfig

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line. Extra fields passed via ``extra=`` are kept."""

    _RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k not in self._RESERVED and not k.startswith("_"):
                payload[k] = v
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, sort_keys=True)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Install a single stderr handler on the ``perpquant`` logger."""

    cfg = cfg or LoggingConfig()
    logger = logging.getLogger("perpquant")

    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if cfg.json_output else logging.Formatter(_PLAIN_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
