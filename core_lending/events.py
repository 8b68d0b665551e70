"""
Change Feed Module

Typed row change events and an asyncio publish/subscribe feed. Backends
publish one ChangeEvent per committed mutation; consumers iterate a
Subscription:

    async with backend.feed.subscribe(tables={EntityKind.LOAN}) as changes:
        async for event in changes:
            store.apply(event)

Subscriptions are lazy (nothing is buffered before ``subscribe()``) and a
closed subscription can always be replaced by a fresh one.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime, timezone
import asyncio
import logging
import uuid


class ChangeType(Enum):
    """Row level mutation kinds, named like the realtime payloads"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityKind(Enum):
    """Closed set of entities carried by the feed; values are table names"""
    CLIENT = "clients"
    LOAN = "loans"
    REQUEST = "requests"
    ACCOUNTING_ENTRY = "accounting_entries"
    APP_META = "app_meta"

    @property
    def key_column(self) -> str:
        return "key" if self is EntityKind.APP_META else "id"


@dataclass
class ChangeEvent:
    """One committed row change"""
    change_type: ChangeType
    kind: EntityKind
    record: Dict[str, Any] = field(default_factory=dict)      # row after the change
    old_record: Dict[str, Any] = field(default_factory=dict)  # row before (UPDATE/DELETE)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def record_key(self) -> Optional[str]:
        """Primary key of the affected row"""
        column = self.kind.key_column
        value = self.record.get(column)
        if value is None:
            value = self.old_record.get(column)
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the realtime payload shape"""
        return {
            'eventType': self.change_type.value,
            'table': self.kind.value,
            'new': self.record,
            'old': self.old_record,
            'commit_timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeEvent':
        """Create from a realtime payload"""
        timestamp = data.get('commit_timestamp')
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            change_type=ChangeType(data['eventType']),
            kind=EntityKind(data['table']),
            record=data.get('new') or {},
            old_record=data.get('old') or {},
            timestamp=timestamp or datetime.now(timezone.utc),
            event_id=data.get('event_id') or str(uuid.uuid4())
        )


_CLOSED = object()


class Subscription:
    """
    Async iterator over the events matching a filter. Ends when closed.
    """

    def __init__(self, feed: 'ChangeFeed', tables: Optional[Set[EntityKind]] = None,
                 change_types: Optional[Set[ChangeType]] = None):
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self.tables = set(tables) if tables else None
        self.change_types = set(change_types) if change_types else None
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if self.tables is not None and event.kind not in self.tables:
            return False
        if self.change_types is not None and event.change_type not in self.change_types:
            return False
        return True

    def deliver(self, event: ChangeEvent) -> None:
        if not self.closed and self.matches(event):
            self._queue.put_nowait(event)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self) -> List[ChangeEvent]:
        """Take every event already delivered without waiting"""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                # Keep the end marker for a concurrent iterator
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> 'Subscription':
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> 'Subscription':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of ChangeEvents to every open subscription"""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self.logger = logging.getLogger("lending.events")

    def subscribe(self, tables: Optional[Set[EntityKind]] = None,
                  change_types: Optional[Set[ChangeType]] = None) -> Subscription:
        """Open a subscription; only events published afterwards are delivered"""
        subscription = Subscription(self, tables, change_types)
        self._subscriptions.append(subscription)
        self.logger.debug(f"Opened change subscription ({len(self._subscriptions)} active)")
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every matching subscription"""
        self.logger.debug(
            f"Publishing {event.change_type.value} on {event.kind.value}:{event.record_key}"
        )
        for subscription in list(self._subscriptions):
            subscription.deliver(event)

    def close(self) -> None:
        """End every open subscription"""
        for subscription in list(self._subscriptions):
            subscription.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            self.logger.warning("Subscription was already removed")
