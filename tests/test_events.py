"""
Tests for the change feed

Tests ChangeEvent payloads, subscription filtering, draining and closing.
"""

import asyncio
import pytest

from core_lending.events import ChangeEvent, ChangeFeed, ChangeType, EntityKind


def loan_event(change_type=ChangeType.INSERT, loan_id="l1"):
    return ChangeEvent(change_type, EntityKind.LOAN, record={"id": loan_id, "amount": "100"})


class TestChangeEvent:
    """Test ChangeEvent data class"""

    def test_record_key(self):
        assert loan_event().record_key == "l1"

    def test_record_key_from_old_record(self):
        """DELETE events carry the key in the old row"""
        event = ChangeEvent(ChangeType.DELETE, EntityKind.REQUEST, old_record={"id": 5})
        assert event.record_key == "5"

    def test_app_meta_key_column(self):
        event = ChangeEvent(ChangeType.UPDATE, EntityKind.APP_META,
                            record={"key": "initial_capital", "value": "10"})
        assert event.record_key == "initial_capital"

    def test_payload_round_trip(self):
        event = loan_event(ChangeType.UPDATE)
        payload = event.to_dict()

        assert payload["eventType"] == "UPDATE"
        assert payload["table"] == "loans"
        assert payload["new"] == {"id": "l1", "amount": "100"}

        restored = ChangeEvent.from_dict(payload)
        assert restored.change_type == event.change_type
        assert restored.kind == event.kind
        assert restored.record == event.record
        assert restored.timestamp == event.timestamp
        assert restored.event_id == event.event_id

    def test_from_realtime_payload_with_zulu_time(self):
        event = ChangeEvent.from_dict({
            "eventType": "DELETE", "table": "requests", "new": {}, "old": {"id": "r1"},
            "commit_timestamp": "2024-01-01T10:00:00Z"
        })
        assert event.record_key == "r1"
        assert event.timestamp.year == 2024


class TestChangeFeed:
    """Test publish/subscribe"""

    def test_subscriber_receives_events(self):
        feed = ChangeFeed()
        subscription = feed.subscribe()

        feed.publish(loan_event())
        feed.publish(loan_event(ChangeType.UPDATE))

        events = subscription.drain()
        assert [e.change_type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE]
        assert subscription.drain() == []

    def test_nothing_buffered_before_subscribe(self):
        feed = ChangeFeed()
        feed.publish(loan_event())
        subscription = feed.subscribe()
        assert subscription.pending == 0

    def test_table_filter(self):
        feed = ChangeFeed()
        requests_only = feed.subscribe(tables={EntityKind.REQUEST})

        feed.publish(loan_event())
        feed.publish(ChangeEvent(ChangeType.INSERT, EntityKind.REQUEST, record={"id": "r1"}))

        events = requests_only.drain()
        assert len(events) == 1
        assert events[0].kind is EntityKind.REQUEST

    def test_change_type_filter(self):
        feed = ChangeFeed()
        inserts = feed.subscribe(change_types={ChangeType.INSERT})

        feed.publish(loan_event(ChangeType.DELETE))
        feed.publish(loan_event(ChangeType.INSERT))

        assert [e.change_type for e in inserts.drain()] == [ChangeType.INSERT]

    def test_fan_out(self):
        feed = ChangeFeed()
        first, second = feed.subscribe(), feed.subscribe()
        feed.publish(loan_event())
        assert first.pending == 1
        assert second.pending == 1

    def test_close_removes_subscription(self):
        feed = ChangeFeed()
        subscription = feed.subscribe()
        assert feed.subscriber_count == 1

        subscription.close()
        feed.publish(loan_event())

        assert feed.subscriber_count == 0
        assert subscription.drain() == []

    @pytest.mark.asyncio
    async def test_async_iteration_ends_on_close(self):
        feed = ChangeFeed()
        received = []

        async def consume(subscription):
            async for event in subscription:
                received.append(event.record_key)

        subscription = feed.subscribe()
        task = asyncio.create_task(consume(subscription))
        feed.publish(loan_event(loan_id="a"))
        feed.publish(loan_event(loan_id="b"))
        await asyncio.sleep(0)
        feed.close()
        await asyncio.wait_for(task, timeout=1)

        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        feed = ChangeFeed()
        async with feed.subscribe() as subscription:
            assert feed.subscriber_count == 1
        assert subscription.closed
        assert feed.subscriber_count == 0
