"""
A simple, in-memory, async-friendly Event Bus.

The data sources in ``upswatch.sync`` evolve independently; the bus is
where their updates meet the presentation layer (CLI output, notifications).
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

# Type hint for an async callback that takes one argument
EventCallback = Callable[[Any], Awaitable[None]]

# Topics
SNAPSHOT_UPDATED = "snapshot.updated"
PREDICTIONS_UPDATED = "predictions.updated"
STATS_UPDATED = "stats.updated"
ALERTS_UPDATED = "alerts.updated"
ALERT_NOTIFICATION = "alerts.notification"
STREAM_STATE = "stream.state"


class EventBus:
    """
    A simple asynchronous event bus for pub/sub interactions.
    """
    def __init__(self):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)

    def subscribe(self, topic: str, callback: EventCallback) -> None:
        """
        Subscribes a callback to a specific topic.

        Args:
            topic: The topic to subscribe to (e.g., ``SNAPSHOT_UPDATED``).
            callback: An async function to be called when an event is published.
        """
        logger.debug(f"New subscription to topic: {topic}")
        self._subscribers[topic].append(callback)

    def unsubscribe(self, topic: str, callback: EventCallback) -> None:
        callbacks = self._subscribers.get(topic, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, data: Any) -> None:
        """
        Publishes an event to all subscribers of a topic.

        Subscriber failures are logged and never reach the publisher.

        Args:
            topic: The topic to publish the event to.
            data: The data payload of the event.
        """
        callbacks = list(self._subscribers.get(topic, []))
        if not callbacks:
            return

        logger.debug(f"Publishing event to topic '{topic}' for {len(callbacks)} subscribers.")
        results = await asyncio.gather(
            *(callback(data) for callback in callbacks),
            return_exceptions=True,
        )
        for callback, result in zip(callbacks, results):
            if isinstance(result, Exception):
                logger.error(
                    "Subscriber %s failed on topic '%s': %s",
                    getattr(callback, "__qualname__", repr(callback)),
                    topic,
                    result,
                )
