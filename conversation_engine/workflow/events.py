"""In-process "thread updated" notifications for UI and analytics consumers."""

import asyncio
from typing import Any, Awaitable, Callable, Union

from conversation_engine.models.conversation import ThreadUpdated
from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.workflow.events")

Subscriber = Callable[[ThreadUpdated], Union[None, Awaitable[None]]]


class ThreadEventBus:
    """Fan-out of ThreadUpdated events. Subscriber failures are logged, never raised."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a sync or async callback. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def publish(self, event: ThreadUpdated) -> None:
        for callback in list(self._subscribers):
            try:
                result: Any = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.exception(
                    "events.subscriber_error",
                    thread_id=event.thread_id,
                    subscriber=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                )
        logger.debug("events.published", thread_id=event.thread_id, state=event.state.value, reason=event.reason)
