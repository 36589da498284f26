"""
Structured Logging Configuration.

Supports two modes:
- text: Human-readable format for local builds
- json: Structured JSON format for CI builds (one object per line)

Set LOG_FORMAT environment variable to "json" for machine-readable output.
"""

import json
import logging
import os
import sys
from typing import Any, Dict

from scm_enricher.core.tracing import TracingContext


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings with tracing context.

    Automatically includes run_id, artifact and repository from TracingContext
    so a single entry's lookups can be filtered out of a run's log.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = TracingContext.get()

        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "run_id": ctx.get("run_id", ""),
            "artifact": ctx.get("artifact", ""),
            "repository": ctx.get("repository", ""),
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record)


def setup_logging(level: int = logging.INFO) -> None:
    """
    Setup structured logging for the enricher.

    Uses LOG_FORMAT env var to determine format:
    - "json": Structured JSON
    - "text" (default): Human-readable
    """
    root_logger = logging.getLogger()

    # Avoid adding multiple handlers
    if root_logger.handlers:
        return

    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)

    log_format = os.getenv("LOG_FORMAT", "text").lower()

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)

    root_logger.addHandler(handler)

    # Set lower level for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
