"""structlog setup for the engine: colored console output plus a JSONL audit file.

Every record carries an ISO UTC timestamp and whatever context is bound with
``log_context`` (the CLI binds ``email_id`` while an email is processed).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import structlog

from conversation_engine.config import LOG_FILE, LOG_LEVEL, VERBOSE_LOGGING

BoundLogger = structlog.stdlib.BoundLogger

# HTTP clients and provider SDKs log each request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "urllib3", "sqlalchemy.engine")

_state = {"configured": False}


def _resolve_level(level: str | int | None) -> int:
    if level is None:
        if VERBOSE_LOGGING:
            return logging.DEBUG
        level = LOG_LEVEL
    if isinstance(level, int):
        return level
    if level.isdigit():
        return int(level)
    return getattr(logging, level.upper(), logging.INFO)


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _handler(handler: logging.Handler, renderer: Any, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain()))
    return handler


def configure_logging(level: str | int | None = None, log_file: Path | None = LOG_FILE, force: bool = False) -> None:
    """Install the console and JSONL handlers on the root logger. Runs once unless ``force``."""
    if _state["configured"] and not force:
        return
    effective = _resolve_level(level)

    handlers = [_handler(logging.StreamHandler(), structlog.dev.ConsoleRenderer(colors=True), effective)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), structlog.processors.JSONRenderer(), effective)
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(effective)
    for handler in handlers:
        root.addHandler(handler)
    logging.captureWarnings(True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(effective),
        cache_logger_on_first_use=True,
    )
    _state["configured"] = True


def get_logger(name: str = "conversation_engine", **bindings: Any) -> BoundLogger:
    configure_logging()
    logger = structlog.get_logger(name)
    return logger.bind(**bindings) if bindings else logger


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Bind context to every record logged inside the block (including from other modules)."""
    with structlog.contextvars.bound_contextvars(**context):
        yield


def log_ai_call(operation: str, email_id: str, outcome: str, **data: Any) -> None:
    """One AI-backed analysis operation. Failures log at WARNING with the error kind."""
    logger = get_logger("conversation_engine.ai", operation=operation, email_id=email_id)
    if outcome != "ok":
        logger.warning(f"ai_call.{outcome}", **data)
    elif VERBOSE_LOGGING and data:
        logger.debug("ai_call.ok", **data)
    else:
        logger.info("ai_call.ok")
