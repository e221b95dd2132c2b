"""
Logging setup for the lot workflow service.

Two line formats share one set of context fields (lot, actor, event, request):

    readable   colored single line, the default under DEBUG / TESTING
    json       one object per line for log aggregation, the production default

LOG_FORMAT forces either; LOG_LEVEL sets the level. Every handler carries
TokenRedactionFilter, so access-token values and bearer credentials never
reach a log sink even when a message or request path embeds one.
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone

# ``extra`` keys the workflow services and middleware attach to records.
CONTEXT_KEYS = ("lot_id", "actor_id", "event_type", "seq", "request_id")
REQUEST_KEYS = ("method", "path", "status", "duration_ms", "remote_addr")

# Short labels for the readable format.
_READABLE_LABELS = {"lot_id": "lot", "actor_id": "actor", "event_type": "event", "request_id": "req"}

_TOKEN_PATTERNS = (
    re.compile(r"(?i)(token=)[^&\s\"']+"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"),
)
REDACTED = "[redacted]"


def redact(text: str) -> str:
    for pattern in _TOKEN_PATTERNS:
        text = pattern.sub(r"\1" + REDACTED, text)
    return text


class TokenRedactionFilter(logging.Filter):
    """Scrub token query values and bearer credentials from records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = redact(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        path = getattr(record, "path", None)
        if isinstance(path, str):
            record.path = redact(path)
        return True


def _context(record: logging.LogRecord, keys) -> dict:
    return {key: getattr(record, key) for key in keys if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields are top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, CONTEXT_KEYS))
        entry.update(_context(record, REQUEST_KEYS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message lot=.. actor=.. event=.. [12ms]``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        parts = [f"{ts} {level} {record.name}: {record.getMessage()}"]
        for key, value in _context(record, CONTEXT_KEYS).items():
            if key in _READABLE_LABELS:
                parts.append(f"{_READABLE_LABELS[key]}={value}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def select_formatter(app) -> logging.Formatter:
    """LOG_FORMAT wins; otherwise JSON outside DEBUG / TESTING."""
    fmt = (app.config.get("LOG_FORMAT") or "").lower()
    if not fmt:
        local = app.config.get("DEBUG", False) or app.config.get("TESTING", False)
        fmt = "readable" if local else "json"
    if fmt == "json":
        return JSONFormatter()
    if fmt == "readable":
        return ReadableFormatter(color=sys.stderr.isatty())
    raise ValueError(f"Unknown LOG_FORMAT {fmt!r}; expected 'json' or 'readable'")


def configure_logging(app):
    """Install a single redacting stderr handler on the root logger."""
    formatter = select_formatter(app)
    is_json = isinstance(formatter, JSONFormatter)

    level_name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("INFO" if is_json else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(TokenRedactionFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_json else "readable")
    return handler
