"""Logging setup for the tilemosaic CLI and service.

Mosaic records carry their request context (``project``, ``scene``, ``layer``,
``zoom``) as ``extra`` fields. The JSON formatter lifts those to top-level keys;
the console formatter prefixes them to the message.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, MutableMapping

CONTEXT_FIELDS = ("project", "scene", "layer", "zoom")

_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


@dataclass(frozen=True)
class LogOptions:
    """Console verbosity, JSON console output and an optional JSON log file."""

    verbose: int = 0
    quiet: bool = False
    log_file: Path | None = None
    json_console: bool = False


class ContextAdapter(logging.LoggerAdapter):
    """Attach fixed mosaic context to every record, keeping per-call extras."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def with_context(logger: logging.Logger, **context: Any) -> ContextAdapter:
    """Return ``logger`` bound to the given context fields (None values dropped)."""
    return ContextAdapter(
        logger, {key: value for key, value in context.items() if value is not None}
    )


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the known context fields set on a record."""
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


def _record_extra(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRIBUTES and key not in CONTEXT_FIELDS
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record; context fields at top level."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        payload.update(record_context(record))
        extra = _record_extra(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Prefix messages with ``[project/scene]`` style context when present."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = record_context(record)
        if not context:
            return message
        label = "/".join(str(context[field]) for field in CONTEXT_FIELDS if field in context)
        return f"[{label}] {message}"


def _console_level(options: LogOptions) -> int:
    if options.quiet:
        return logging.WARNING
    return logging.DEBUG if options.verbose > 0 else logging.INFO


def _reset_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def configure_logging(
    options: LogOptions, *, levels: Mapping[str, int] | None = None
) -> logging.Logger:
    """Install console (and file) handlers on the root logger and return it.

    ``levels`` sets per-logger thresholds, e.g. to quiet rasterio's debug output.
    """
    root = logging.getLogger()
    _reset_handlers(root)
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_console_level(options))
    console.setFormatter(
        JsonFormatter() if options.json_console else HumanFormatter("%(levelname)s: %(message)s")
    )
    root.addHandler(console)

    if options.log_file:
        options.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(options.log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    for name, level in (levels or {}).items():
        logging.getLogger(name).setLevel(level)
    return root
