from __future__ import annotations

import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

import orjson
import structlog


def _json_serializer(obj: Any, default: Any) -> str:
    """
    JSON serializer for structured logs.

    Decimal amounts are rendered as strings so exchange precision survives.
    """

    def _default(value: Any) -> Any:
        if isinstance(value, Decimal):
            return str(value)
        return default(value)

    return orjson.dumps(obj, default=_default).decode("utf-8")


def configure_logging(*, level: str = "INFO", log_file: Path | None = None) -> None:
    """
    Configure structured JSON logging for the whole process.

    Output goes to stdout and, when log_file is given, is appended to that
    file as well. Records from stdlib loggers (aiohttp, websockets) are
    rendered through the same JSON formatter.

    Call exactly once at process startup.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        # Merge context variables (service_id, order_id, symbol, etc.)
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(serializer=_json_serializer),
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(log_level)

    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(max(log_level, logging.INFO))


def bind_context(**values: Any) -> None:
    """
    Bind contextual information to all future log entries.

    Example:
        bind_context(service_id="countertrade", network="testnet")
    """
    structlog.contextvars.bind_contextvars(**values)
