"""
Structured Logging Infrastructure

JSON log lines carry the request correlation id and, once a webhook has been
verified, the provider event id (evt_...) being processed. Values under
credential-like keys in ``extra_data`` are redacted before serialization.
"""
import logging
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any
from contextvars import ContextVar
from functools import wraps

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
event_id_var: ContextVar[str] = ContextVar("event_id", default="")

_service_name = "access-reconciler"

REDACTED = "***"
_SENSITIVE_KEY_PARTS = ("secret", "api_key", "apikey", "signature", "password", "token")


def redact(data: Any) -> Any:
    """Copy of ``data`` with credential-like keys masked, recursively."""
    if isinstance(data, dict):
        return {
            key: REDACTED if _is_sensitive(key) else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact(item) for item in data]
    return data


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower().replace("-", "_")
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": _service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field_name, var in (("correlation_id", correlation_id_var), ("event_id", event_id_var)):
            value = var.get()
            if value:
                entry[field_name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            entry["extra"] = redact(extra_data)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept ``extra_data``, a dict rendered under
    the "extra" key of the JSON line.
    """

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False,
             stacklevel=1, extra_data: dict[str, Any] | None = None, **kwargs) -> None:
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel + 1, **kwargs)


logging.setLoggerClass(StructuredLogger)


class ContextFilter(logging.Filter):
    """Exposes correlation_id and event_id to the plain-text format string"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.event_id = event_id_var.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "access-reconciler"
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines for production, plain text for local runs
        app_name: Service name stamped on every JSON log line
    """
    global _service_name
    _service_name = app_name
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s %(event_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Client libraries log every request at INFO
    for noisy in ("httpx", "httpcore", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation id for the current context, generating one when absent"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation id; a fresh one is generated and kept if none is set"""
    return correlation_id_var.get() or set_correlation_id()


def bind_event_id(event_id: str | None) -> None:
    """Attach the provider event id to every log line emitted in this context"""
    event_id_var.set(event_id or "")


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str):
    """Decorator that logs start, completion and failure of an awaited call with its duration"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            started = time.perf_counter()
            logger.debug(f"Starting {operation_name}", extra_data={"operation": operation_name})

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": round(time.perf_counter() - started, 4),
                        "error": str(e),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                extra_data={
                    "operation": operation_name,
                    "status": "completed",
                    "duration_seconds": round(time.perf_counter() - started, 4),
                },
            )
            return result

        return wrapper
    return decorator
