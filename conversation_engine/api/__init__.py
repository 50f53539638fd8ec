"""HTTP API for the conversation engine."""

from conversation_engine.api.server import create_app

__all__ = ["create_app"]
