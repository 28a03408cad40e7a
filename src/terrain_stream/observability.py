from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Final, Iterator, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


@contextlib.contextmanager
def request_context(request_id: Optional[str] = None) -> Iterator[str]:
    """Tag every log record emitted inside the block with one request id."""

    resolved = (request_id or "").strip() or generate_request_id()
    token = _request_id_ctx.set(resolved)
    try:
        yield resolved
    finally:
        _request_id_ctx.reset(token)


# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "request_id"}

# Tile identity fields go at the top level of the payload.
_TILE_FIELDS: Final[tuple[str, ...]] = ("tile", "generation")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None) or get_request_id() or "-"
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        if timestamp.endswith("+00:00"):
            timestamp = timestamp[:-6] + "Z"

        extra: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS:
                continue
            extra[key] = value

        if record.exc_info:
            extra["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            extra["stack"] = self.formatStack(record.stack_info)

        payload: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname.lower(),
            "logger": record.name,
            "request_id": request_id,
            "message": record.getMessage(),
        }
        for key in _TILE_FIELDS:
            if key in extra:
                payload[key] = extra.pop(key)
        payload["extra"] = extra
        return json.dumps(payload, ensure_ascii=False, default=str)


_LOGGING_CONFIGURED = False
_ORIGINAL_LOG_RECORD_FACTORY = logging.getLogRecordFactory()


def _log_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _ORIGINAL_LOG_RECORD_FACTORY(*args, **kwargs)
    record.request_id = get_request_id() or "-"
    return record


def configure_logging(*, debug: bool = False, log_level: Optional[str] = None) -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = (log_level or ("DEBUG" if debug else "INFO")).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    logging.setLogRecordFactory(_log_record_factory)

    # httpx logs every request at INFO.
    for logger_name in ("httpx", "httpcore"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
