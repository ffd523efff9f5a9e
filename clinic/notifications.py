"""
Notification fan-out.

Booking changes and staff escalations are immutable events handed to every
registered sink. `NotificationDispatcher.notify` only schedules deliveries;
each sink runs in its own background task with a bounded timeout, so a slow
or broken sink never delays a reply or rolls back an appointment.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Union

from clinic.background import BackgroundTasks
from clinic.models import AppointmentStatus, EscalationEvent, NotificationEvent
from shared.event_broker import EventBroker
from shared.events import ClinicEvent, EventTypes

logger = logging.getLogger(__name__)

ClinicNotification = Union[NotificationEvent, EscalationEvent]


class NotificationSink(Protocol):
    name: str

    async def accept(self, event: ClinicNotification) -> None:
        ...


def event_type_for(event: ClinicNotification) -> str:
    if isinstance(event, EscalationEvent):
        return EventTypes.STAFF_ESCALATION
    if event.status == AppointmentStatus.CANCELLED.value:
        return EventTypes.APPOINTMENT_CANCELLED
    if event.status == AppointmentStatus.RESCHEDULED.value:
        return EventTypes.APPOINTMENT_RESCHEDULED
    return EventTypes.APPOINTMENT_BOOKED


class LoggingSink:
    """Writes a one-line summary of every event to the service log"""

    name = "log"

    async def accept(self, event: ClinicNotification) -> None:
        if isinstance(event, EscalationEvent):
            logger.warning(f" Staff needed for {event.display_name} ({event.user_id}): {event.reason}")
        else:
            logger.info(
                f" Appointment {event.appointment_id} {event.status}: "
                f"{event.patient_name} with {event.doctor_name} on {event.date} at {event.time}"
            )


class RedisStreamSink:
    """Publishes events to a Redis Stream for payment, SMS and staff workers"""

    name = "redis_stream"

    def __init__(self, broker: EventBroker, stream_key: str):
        self.broker = broker
        self.stream_key = stream_key

    async def accept(self, event: ClinicNotification) -> None:
        user_id = event.user_id if isinstance(event, EscalationEvent) else event.phone
        envelope = ClinicEvent(
            event_type=event_type_for(event),
            user_id=user_id,
            payload=event.to_dict(),
        )
        envelope.validate_payload()
        await self.broker.publish(self.stream_key, envelope)


class NotificationDispatcher:
    """Schedules one delivery per registered sink"""

    def __init__(
        self,
        tasks: BackgroundTasks,
        timeout: float = 5.0,
        sinks: Optional[Sequence[NotificationSink]] = None,
    ):
        self.tasks = tasks
        self.timeout = timeout
        self._sinks: List[NotificationSink] = list(sinks or [])

    @property
    def sinks(self) -> List[NotificationSink]:
        return list(self._sinks)

    def register(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)
        logger.info(f" Notification sink registered: {sink.name}")

    def notify(self, event: ClinicNotification) -> int:
        """
        Schedule `sink.accept(event)` on every sink and return immediately.

        Returns:
            Number of deliveries scheduled
        """
        kind = event_type_for(event)
        for sink in self._sinks:
            self.tasks.spawn(
                sink.accept(event),
                label=f"{sink.name} delivery of {kind}",
                timeout=self.timeout,
                kind="sink",
            )
        return len(self._sinks)
