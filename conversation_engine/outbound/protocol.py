"""Outbound send protocol."""

from typing import Any, Protocol


class OutboundSender(Protocol):
    """Performs the actual transmission of an approved reply.

    Implementations may be sync or async; the orchestrator awaits coroutines.
    Any exception means the reply was not sent.
    """

    def send(self, recipient: str, subject: str, body: str) -> Any:
        ...
