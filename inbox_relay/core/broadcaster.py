"""
In-process fan-out of conversation events to live subscribers.

Registry: contact_id -> set[Subscription]. Each subscription owns a bounded
queue; publish never blocks and never buffers for absent subscribers, so a
subscriber only sees events published after it registered. All mutation
happens on the event loop thread through subscribe/unsubscribe.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from inbox_relay.schemas.events import ConversationEvent, ConversationEventType

logger = logging.getLogger(__name__)


class Subscription:
    """One live output channel registered for a single contact_id."""

    def __init__(self, contact_id: str, queue_size: int) -> None:
        self.contact_id = contact_id
        self.queue: asyncio.Queue[Optional[ConversationEvent]] = asyncio.Queue(
            maxsize=queue_size
        )
        self.closed = False

    def close(self) -> None:
        """Mark closed and wake a reader blocked in next_event."""
        if self.closed:
            return
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def next_event(
        self, timeout: Optional[float] = None
    ) -> Optional[ConversationEvent]:
        """Wait for the next event; None on timeout or once the subscription is closed."""
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class Broadcaster:
    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscriptions: dict[str, set[Subscription]] = {}

    def subscribe(self, contact_id: str) -> Subscription:
        subscription = Subscription(contact_id, self._queue_size)
        self._subscriptions.setdefault(contact_id, set()).add(subscription)
        logger.debug("subscriber_added contact_id=%s", contact_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        subscribers = self._subscriptions.get(subscription.contact_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.contact_id]
        logger.debug("subscriber_removed contact_id=%s", subscription.contact_id)

    def subscriber_count(self, contact_id: Optional[str] = None) -> int:
        if contact_id is not None:
            return len(self._subscriptions.get(contact_id, ()))
        return sum(len(s) for s in self._subscriptions.values())

    def publish(self, contact_id: str, event: ConversationEvent) -> int:
        """
        Deliver event to every live subscriber of contact_id. Returns the number
        of deliveries. A subscriber whose queue is full is dropped.
        """
        subscribers = self._subscriptions.get(contact_id)
        if not subscribers:
            return 0
        delivered = 0
        for subscription in list(subscribers):
            if subscription.closed:
                self.unsubscribe(subscription)
                continue
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("subscriber_dropped contact_id=%s reason=queue_full", contact_id)
                self.unsubscribe(subscription)
        return delivered

    async def stream(
        self,
        contact_id: str,
        heartbeat: Optional[float] = None,
        idle_timeout: Optional[float] = None,
    ) -> AsyncIterator[Optional[ConversationEvent]]:
        """
        Subscribe and yield events for contact_id, starting with `connected`.

        With a heartbeat interval, None is yielded whenever that long passes
        without an event so the caller can keep the connection warm. The stream
        ends after idle_timeout seconds without events, or when the subscription
        is dropped. Closing the generator unregisters the subscription.
        """
        subscription = self.subscribe(contact_id)
        try:
            yield ConversationEvent(
                type=ConversationEventType.CONNECTED, contact_id=contact_id
            )
            wait = heartbeat if heartbeat is not None else idle_timeout
            idle = 0.0
            while True:
                event = await subscription.next_event(timeout=wait)
                if subscription.closed:
                    logger.debug("subscriber_stream_ended contact_id=%s", contact_id)
                    break
                if event is None:
                    idle += wait or 0.0
                    if idle_timeout is not None and idle >= idle_timeout:
                        logger.debug("subscriber_idle_timeout contact_id=%s", contact_id)
                        break
                    if heartbeat is not None:
                        yield None
                    continue
                idle = 0.0
                yield event
        finally:
            self.unsubscribe(subscription)
