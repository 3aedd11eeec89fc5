"""
realtime.py — In-process change feed.

Stands in for a document store's realtime listeners: routes publish a small
event after every committed write, and each subscriber gets its own queue of
events for the topics it asked for. Consumers (the balance event stream)
re-derive their view on every event they receive.

Topics are plain strings. Use group_topic() / user_topic() rather than
formatting them by hand.

Threading:
  - publish() never blocks. When a subscriber's queue is full the oldest
    pending event is dropped; consumers re-derive from the store, so only
    the fact that *something* changed matters.
  - cancel() detaches a subscription and wakes a consumer blocked in get().
"""

from __future__ import annotations

import itertools
import logging
import queue
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any

logger = logging.getLogger(__name__)


def group_topic(group_id: int) -> str:
    return f"group:{group_id}"


def user_topic(user_id: int) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True)
class ChangeEvent:
    """One committed change. `payload` is JSON-serialisable."""
    topic: str
    kind: str
    sequence: int
    payload: dict[str, Any] = field(default_factory=dict)
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "kind": self.kind,
            "sequence": self.sequence,
            "payload": self.payload,
            "published_at": self.published_at.isoformat(),
        }


# Sentinel pushed into a queue to wake a consumer after cancel().
_CLOSED = object()


class Subscription:
    """
    A consumer's handle on the feed.

    Use as a context manager so the subscription is cancelled when the
    consumer is torn down:

        with feed.subscribe(group_topic(7)) as sub:
            event = sub.get(timeout=5)
    """

    def __init__(self, feed: "ChangeFeed", topics: frozenset[str], maxsize: int) -> None:
        self._feed = feed
        self.topics = topics
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _offer(self, event: ChangeEvent) -> None:
        """Enqueues without blocking, dropping the oldest event if full."""
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    dropped = self._queue.get_nowait()
                    logger.debug("Subscriber queue full; dropped %r", dropped)
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """
        Blocks until an event arrives and returns it.

        Returns None when `timeout` elapses with nothing to deliver, or when
        the subscription has been cancelled.
        """
        if self._cancelled:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> list[ChangeEvent]:
        """Returns every event currently queued without blocking."""
        events: list[ChangeEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is not _CLOSED:
                events.append(item)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._feed._detach(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            pass

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class ChangeFeed:
    """Topic-based fan-out of ChangeEvents to per-subscriber queues."""

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)
        self._sequence = itertools.count(1)
        self._lock = RLock()

    def subscribe(self, *topics: str) -> Subscription:
        if not topics:
            raise ValueError("subscribe() needs at least one topic.")
        subscription = Subscription(self, frozenset(topics), self._maxsize)
        with self._lock:
            for topic in subscription.topics:
                self._subscribers[topic].add(subscription)
        return subscription

    def publish(self, topic: str, kind: str, payload: dict | None = None) -> ChangeEvent:
        with self._lock:
            event = ChangeEvent(
                topic=topic,
                kind=kind,
                sequence=next(self._sequence),
                payload=payload or {},
            )
            targets = list(self._subscribers.get(topic, ()))
        for subscription in targets:
            subscription._offer(event)
        logger.debug("Published %s on %s to %d subscriber(s)", kind, topic, len(targets))
        return event

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            for topic in subscription.topics:
                subscribers = self._subscribers.get(topic)
                if subscribers is None:
                    continue
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscribers[topic]
