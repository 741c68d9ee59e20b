"""
Realtime change feed.

An in-process broadcaster that fans events out to WebSocket subscribers:

    orders                — every order insert/update (admin order list)
    messages:<order_id>   — new chat messages of one order

Subscribers get a bounded asyncio.Queue; publishing never blocks and drops
the oldest queued event for a slow subscriber.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any

from domain.constants import TOPIC_MESSAGES_PREFIX, TOPIC_ORDERS

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


def messages_topic(order_id: int) -> str:
    return f"{TOPIC_MESSAGES_PREFIX}{order_id}"


class EventBroadcaster:
    """Topic-keyed fan-out to asyncio queues."""

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[str, asyncio.Queue]] = {}

    def subscribe(self, topic: str) -> tuple[str, asyncio.Queue]:
        """Register a subscriber. Returns (subscriber_id, queue)."""
        sub_id = uuid.uuid4().hex[:8]
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        self._subscribers.setdefault(topic, {})[sub_id] = queue
        logger.info("Subscriber %s joined %s (total: %d)", sub_id, topic, len(self._subscribers[topic]))
        return sub_id, queue

    def unsubscribe(self, topic: str, sub_id: str) -> None:
        subs = self._subscribers.get(topic)
        if not subs:
            return
        subs.pop(sub_id, None)
        if not subs:
            del self._subscribers[topic]
        logger.info("Subscriber %s left %s", sub_id, topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, {}))

    def publish(self, topic: str, event: dict[str, Any]) -> int:
        """Send an event to every subscriber of a topic. Returns the number reached."""
        event = {**event, "topic": topic, "timestamp": time.time()}
        subs = list(self._subscribers.get(topic, {}).items())
        for _sub_id, queue in subs:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop oldest event to make room
                try:
                    queue.get_nowait()
                    queue.put_nowait(event)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    pass
        return len(subs)


# Global instance
broadcaster = EventBroadcaster()


def publish_order_change(order: dict, change: str) -> int:
    """change: "INSERT" | "UPDATE"."""
    return broadcaster.publish(TOPIC_ORDERS, {"type": "order_changed", "event": change, "order": order})


def publish_message(message: dict) -> int:
    return broadcaster.publish(
        messages_topic(message["order_id"]),
        {"type": "message_created", "message": message},
    )
