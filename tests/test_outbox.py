"""Relay of scheduling events from the outbox table to the event bus."""

from sqlalchemy import select

from app.modules.events.outbox import EventOutbox, SCHEDULE_REPLACED, TOPIC, relay_once
from app.platform.adapters.bus_noop import NoopEventBus


class BrokenBus:
    async def publish(self, topic, key, value, headers=None):
        raise ConnectionError("stream unavailable")


class TestRelay:
    async def test_schedule_write_is_published_once(self, session, scheduled_doctor):
        bus = NoopEventBus()
        assert await relay_once(session, bus) == 1
        topic, key, value = bus.published[0]
        assert (topic, key) == (TOPIC, str(scheduled_doctor.id))
        assert value["event_type"] == SCHEDULE_REPLACED
        assert value["payload"]["version"] == 1

        assert await relay_once(session, bus) == 0
        assert len(bus.published) == 1

    async def test_failed_publish_is_retried_later(self, session, scheduled_doctor):
        assert await relay_once(session, BrokenBus()) == 1
        row = (await session.execute(select(EventOutbox))).scalar_one()
        assert row.status == "pending"
        assert row.attempts == 1
        assert "stream unavailable" in row.last_error
        # backed off, so an immediate second pass finds nothing due
        assert await relay_once(session, NoopEventBus()) == 0
