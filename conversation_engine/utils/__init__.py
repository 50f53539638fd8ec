"""Utility modules."""

from conversation_engine.utils.logger import configure_logging, get_logger, log_ai_call, log_context
from conversation_engine.utils.tracing import get_tracer, init_tracing, shutdown_tracing

__all__ = [
    "configure_logging",
    "get_logger",
    "log_ai_call",
    "log_context",
    "get_tracer",
    "init_tracing",
    "shutdown_tracing",
]
