"""JSON log output for the planner; every record becomes one JSON object per line."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict

# Attributes passed through `extra=` by the planner modules.
EXTRA_ATTRS = (
    "mode",
    "target_mode",
    "simulation_years",
    "entities",
    "route_id",
    "class_code",
    "month_key",
    "study_path",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record carrying the planner context fields that are set."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (attr, getattr(record, attr)) for attr in EXTRA_ATTRS if getattr(record, attr, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def setup_logging(default_level: str | int = logging.INFO) -> None:
    """Send root logger output through ``JsonFormatter`` at ``LOG_LEVEL`` (default INFO)."""
    level = os.environ.get("LOG_LEVEL", default_level)
    root = logging.getLogger()
    root.setLevel(level)

    # Repeated calls only swap formatters on the handlers already installed.
    if any(isinstance(handler, logging.StreamHandler) for handler in root.handlers):
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
