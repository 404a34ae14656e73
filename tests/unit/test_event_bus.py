import asyncio
import logging

import pytest

from src.app.services.event_bus import SecurityEventBus
from src.domain.entities import AuditEvent


def make_event(action="auth.login"):
    return AuditEvent(action=action, resource_type="authentication", event_metadata={"severity": "low"})


@pytest.mark.asyncio
async def test_immediate_publish_commits_before_returning(event_bus, mock_uow):
    event = make_event()

    created = await event_bus.publish(event, immediate=True)

    assert created is event
    mock_uow.audit_events.create.assert_awaited_once_with(event)
    mock_uow.commit.assert_awaited_once()
    assert event_bus.pending == 0


@pytest.mark.asyncio
async def test_immediate_publish_raises_on_store_failure(event_bus, mock_uow):
    mock_uow.audit_events.create.side_effect = RuntimeError("db down")

    with pytest.raises(RuntimeError):
        await event_bus.publish(make_event(), immediate=True)


@pytest.mark.asyncio
async def test_deferred_publish_flushes_on_batch_size(event_bus, mock_uow):
    await event_bus.publish(make_event("data.read"), immediate=False)
    await event_bus.publish(make_event("data.read"), immediate=False)

    assert event_bus.pending == 2
    mock_uow.audit_events.create_many.assert_not_awaited()

    await event_bus.publish(make_event("data.read"), immediate=False)

    assert event_bus.pending == 0
    batch = mock_uow.audit_events.create_many.await_args.args[0]
    assert len(batch) == 3


@pytest.mark.asyncio
async def test_failed_flush_requeues_batch(event_bus, mock_uow):
    mock_uow.audit_events.create_many.side_effect = RuntimeError("db down")
    await event_bus.publish(make_event(), immediate=False)

    written = await event_bus.flush()

    assert written == 0
    assert event_bus.pending == 1

    mock_uow.audit_events.create_many.side_effect = None
    assert await event_bus.flush() == 1
    assert event_bus.pending == 0


@pytest.mark.asyncio
async def test_stop_flushes_remaining_events(event_bus, mock_uow):
    event_bus.start()
    assert event_bus.running

    await event_bus.publish(make_event(), immediate=False)
    await event_bus.stop()

    assert not event_bus.running
    assert event_bus.pending == 0
    mock_uow.audit_events.create_many.assert_awaited()


@pytest.mark.asyncio
async def test_periodic_flush_writes_queued_events(event_bus, mock_uow):
    async with event_bus:
        await event_bus.publish(make_event(), immediate=False)
        await asyncio.sleep(0.2)
        assert event_bus.pending == 0

    mock_uow.audit_events.create_many.assert_awaited()


@pytest.mark.asyncio
async def test_flush_with_empty_queue_is_noop(event_bus, mock_uow):
    assert await event_bus.flush() == 0
    mock_uow.audit_events.create_many.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_outage_drops_oldest_beyond_max_pending(uow_factory, mock_uow, caplog):
    mock_uow.audit_events.create_many.side_effect = RuntimeError("db down")
    bus = SecurityEventBus(uow_factory, batch_size=3, max_pending=10)
    events = [make_event(f"data.read.{i}") for i in range(500)]

    with caplog.at_level(logging.ERROR):
        for event in events:
            await bus.publish(event, immediate=False)

    assert bus.pending <= 10
    assert "dropped" in caplog.text

    mock_uow.audit_events.create_many.side_effect = None
    await bus.flush()

    # The newest events survive the outage
    flushed = mock_uow.audit_events.create_many.await_args.args[0]
    assert flushed[-1] is events[-1]
    assert events[0] not in flushed
    assert bus.pending == 0


def test_max_pending_never_below_batch_size(uow_factory):
    bus = SecurityEventBus(uow_factory, batch_size=50, max_pending=10)

    assert bus.max_pending == 50
