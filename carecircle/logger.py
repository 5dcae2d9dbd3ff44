"""
Structured JSON logging for the care circle Lambdas.

One JSON object per line, tagged with the Lambda request id once a handler has
bound it. Contact details and message bodies are PHI and are masked whatever
key they are passed under.
"""

import json
import logging
import os
import time
from contextvars import ContextVar

logger = logging.getLogger("carecircle")
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

PHI_FIELDS = frozenset({"phone", "email", "address", "message", "phone_number", "to_address"})
REDACTED = "[REDACTED]"

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def bind_request(context) -> None:
    """Tag subsequent log lines with the invocation's aws_request_id."""
    _request_id.set(getattr(context, "aws_request_id", None))


def _entry(level: str, event: str, fields: dict) -> str:
    entry = {"level": level, "event": event}
    request_id = _request_id.get()
    if request_id:
        entry["request_id"] = request_id
    for key, value in fields.items():
        entry[key] = REDACTED if key in PHI_FIELDS and value is not None else value
    return json.dumps(entry, default=str)


def log_info(event: str, **kwargs):
    """Never include PHI fields; known ones are masked anyway."""
    logger.info(_entry("INFO", event, kwargs))


def log_warning(event: str, **kwargs):
    logger.warning(_entry("WARNING", event, kwargs))


def log_error(event: str, error_code: str = None, **kwargs):
    logger.error(_entry("ERROR", event, {"error_code": error_code, **kwargs}))


class Timer:
    """Measures a block in milliseconds on the monotonic clock."""

    def __enter__(self):
        self.start = time.monotonic()
        return self

    def __exit__(self, *args):
        self.duration_ms = round((time.monotonic() - self.start) * 1000, 2)
