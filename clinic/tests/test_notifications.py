"""
Tests for notification fan-out and the Redis Stream sink.
"""

import json
from unittest.mock import AsyncMock

import pytest

from ..background import BackgroundTasks
from ..models import EscalationEvent, NotificationEvent
from ..notifications import LoggingSink, NotificationDispatcher, RedisStreamSink, event_type_for
from shared.event_broker import EventBroker
from shared.events import EventTypes
from .conftest import PHONE, RecordingSink


@pytest.fixture
def booked_event():
    return NotificationEvent(
        appointment_id="APT1700000000000-1-3210",
        patient_name="Asha",
        doctor_name="Dr. John Carter",
        time="2:30 PM",
        date="2026-10-19",
        concern="Heart/Blood Pressure",
        phone=PHONE,
        status="confirmed",
    )


@pytest.fixture
def escalation_event():
    return EscalationEvent(user_id=PHONE, display_name="Asha", reason="EMERGENCY", message="chest pain")


@pytest.fixture
def mock_redis_client():
    client = AsyncMock()
    client.xadd = AsyncMock(return_value="1700000000000-0")
    return client


class TestEventTypes:

    def test_event_type_mapping(self, booked_event, escalation_event):
        from dataclasses import replace

        assert event_type_for(booked_event) == EventTypes.APPOINTMENT_BOOKED
        assert event_type_for(replace(booked_event, status="cancelled")) == EventTypes.APPOINTMENT_CANCELLED
        assert event_type_for(replace(booked_event, status="rescheduled")) == EventTypes.APPOINTMENT_RESCHEDULED
        assert event_type_for(escalation_event) == EventTypes.STAFF_ESCALATION

    def test_events_are_immutable(self, booked_event):
        with pytest.raises(Exception):
            booked_event.status = "cancelled"


class TestNotificationDispatcher:

    @pytest.mark.asyncio
    async def test_notify_schedules_every_sink(self, booked_event):
        tasks = BackgroundTasks()
        first, second = RecordingSink(), RecordingSink()
        dispatcher = NotificationDispatcher(tasks, timeout=1.0, sinks=[first])
        dispatcher.register(second)

        scheduled = dispatcher.notify(booked_event)
        assert scheduled == 2
        assert first.events == []

        await tasks.drain()
        assert first.events == [booked_event]
        assert second.events == [booked_event]

    @pytest.mark.asyncio
    async def test_slow_sink_times_out(self, booked_event):
        import asyncio

        class SlowSink:
            name = "slow"

            async def accept(self, event):
                await asyncio.sleep(10)

        tasks = BackgroundTasks()
        fast = RecordingSink()
        dispatcher = NotificationDispatcher(tasks, timeout=0.01, sinks=[SlowSink(), fast])

        dispatcher.notify(booked_event)
        await tasks.drain()

        assert fast.events == [booked_event]
        assert len(tasks) == 0

    def test_no_sinks_schedules_nothing(self, booked_event):
        dispatcher = NotificationDispatcher(BackgroundTasks())
        assert dispatcher.notify(booked_event) == 0
        assert dispatcher.sinks == []


class TestSinks:

    @pytest.mark.asyncio
    async def test_logging_sink(self, booked_event, escalation_event, caplog):
        sink = LoggingSink()
        with caplog.at_level("INFO"):
            await sink.accept(booked_event)
            await sink.accept(escalation_event)

        assert "APT1700000000000-1-3210 confirmed" in caplog.text
        assert "EMERGENCY" in caplog.text

    @pytest.mark.asyncio
    async def test_redis_stream_sink_publishes_booking(self, booked_event, mock_redis_client):
        sink = RedisStreamSink(EventBroker(mock_redis_client), "clinic:notifications")
        await sink.accept(booked_event)

        stream_key, fields = mock_redis_client.xadd.call_args[0]
        assert stream_key == "clinic:notifications"
        assert fields["event_type"] == EventTypes.APPOINTMENT_BOOKED
        assert fields["user_id"] == PHONE
        assert json.loads(fields["payload"])["doctor_name"] == "Dr. John Carter"

    @pytest.mark.asyncio
    async def test_redis_stream_sink_publishes_escalation(self, escalation_event, mock_redis_client):
        sink = RedisStreamSink(EventBroker(mock_redis_client), "clinic:notifications")
        await sink.accept(escalation_event)

        fields = mock_redis_client.xadd.call_args[0][1]
        assert fields["event_type"] == EventTypes.STAFF_ESCALATION
        assert json.loads(fields["payload"])["reason"] == "EMERGENCY"

    @pytest.mark.asyncio
    async def test_redis_failure_propagates_to_task_runner(self, booked_event, mock_redis_client):
        mock_redis_client.xadd.side_effect = ConnectionError("redis down")
        sink = RedisStreamSink(EventBroker(mock_redis_client), "clinic:notifications")

        with pytest.raises(ConnectionError):
            await sink.accept(booked_event)
