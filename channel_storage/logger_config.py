import datetime
import functools
import json
import logging
import sys
import traceback
from enum import Enum
from logging.handlers import RotatingFileHandler

from pydantic import BaseModel

from .helpers import summarize_payload
from .metrics_config import record_gateway_call

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)

_REDACTED_FIELDS = frozenset({"token", "private_key", "refresh_token"})


class ErrorCategory(Enum):
    """Severity classes for structured error logging."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


_CATEGORY_LEVELS = {
    ErrorCategory.CRITICAL: logging.CRITICAL,
    ErrorCategory.ERROR: logging.ERROR,
    ErrorCategory.WARNING: logging.WARNING,
    ErrorCategory.INFO: logging.INFO,
}


class StructuredLogFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.datetime.fromtimestamp(record.created, tz=datetime.timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        return json.dumps(entry, default=str)


# --- Logging Setup ---
gateway_call_logger = logging.getLogger("gateway_call_logger")
gateway_call_logger.setLevel(logging.INFO)
gateway_call_logger.addHandler(logging.NullHandler())
# Call logs go to the rotating file only, when one is configured
gateway_call_logger.propagate = False

error_logger = logging.getLogger("error_logger")
error_logger.setLevel(logging.INFO)
_error_handler = logging.StreamHandler(sys.stderr)
_error_handler.setFormatter(StructuredLogFormatter())
error_logger.addHandler(_error_handler)
error_logger.propagate = False


def setup_logging(level: str = "INFO", structured: bool = True, log_file: str | None = None):
    """Configure process logging for the gateway.

    Args:
        level: Root log level name.
        structured: Emit root records as JSON lines instead of plain text.
        log_file: When set, per-call logs are written to this rotating file
            (10MB per file, 5 backups).
    """
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    if structured:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.handlers[:] = [handler]

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        gateway_call_logger.addHandler(file_handler)


def log_structured_error(
    category: ErrorCategory,
    message: str,
    exception: BaseException | None = None,
    context: dict | None = None,
    operation: str | None = None,
    **kwargs,
):
    """Log an error with category, operation and context as structured fields."""
    extra = {"error_category": category.value}
    if operation:
        extra["operation"] = operation
    if exception is not None:
        extra["exception_type"] = type(exception).__name__
    extra.update(context or {})
    extra.update(kwargs)
    error_logger.log(
        _CATEGORY_LEVELS[category],
        message,
        exc_info=exception is not None,
        extra=extra,
    )


def _redact(value):
    if isinstance(value, dict):
        return {k: ("<redacted>" if k in _REDACTED_FIELDS and v else _redact(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(v) for v in value]
    return value


def describe_value(value) -> str:
    """Render a call argument or result for the call log.

    Byte payloads are summarized and secrets are redacted.
    """
    if isinstance(value, (bytes, bytearray)):
        return summarize_payload(value)
    if isinstance(value, BaseModel):
        dumped = value.model_dump(mode="python")
        for name, field_value in dumped.items():
            if isinstance(field_value, (bytes, bytearray)):
                dumped[name] = summarize_payload(field_value)
        return json.dumps(_redact(dumped), default=str)
    return repr(value)


# --- Decorator for Logging Gateway Calls with Metrics ---
def log_gateway_call(func):
    """Log a gateway operation's arguments, result and failure.

    The wrapped operation receives the channel as the ``channel`` keyword
    argument; it labels both the log lines and the call counter.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        func_name = getattr(func, "__name__", "unknown_function")
        channel = kwargs.get("channel", "")

        arg_str = ", ".join(describe_value(arg) for arg in args[1:])
        gateway_call_logger.info(f"[{channel}] Calling {func_name} with {arg_str}")
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            record_gateway_call(func_name, "error", channel)
            error_code = getattr(e, "error_code", None)
            gateway_call_logger.error(f"[{channel}] {func_name} raised {type(e).__name__}: {e}")
            category = ErrorCategory.WARNING if error_code else ErrorCategory.ERROR
            log_structured_error(
                category=category,
                message=f"Gateway call {func_name} failed: {e}",
                exception=e,
                operation="gateway_call",
                function=func_name,
                channel=channel,
                error_code=error_code,
            )
            raise

        record_gateway_call(func_name, "success", channel)
        gateway_call_logger.info(f"[{channel}] {func_name} returned: {describe_value(result)}")
        return result

    return wrapper
