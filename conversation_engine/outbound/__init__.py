"""Outbound send: protocol and JSON-file mock implementation."""

from conversation_engine.outbound.mock import JsonOutboxSender
from conversation_engine.outbound.protocol import OutboundSender

__all__ = ["JsonOutboxSender", "OutboundSender"]
