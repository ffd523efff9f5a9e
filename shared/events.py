"""
Event envelope for clinic notifications.

Booking, cancellation, reschedule and escalation facts are published to a
Redis Stream in this envelope so downstream workers (payment links, SMS,
email, staff paging) can consume them independently.
"""

from dataclasses import dataclass, field
from typing import Dict, Any
import time
import json
import uuid


@dataclass
class ClinicEvent:
    """
    Standard envelope for every event leaving the intake service.
    """
    event_type: str
    user_id: str
    payload: Dict[str, Any]
    source: str = "clinic_intake"
    timestamp: float = field(default_factory=time.time)
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_redis_dict(self) -> Dict[str, str]:
        """
        Flatten to string values for XADD. Payload and metadata are JSON
        serialized.
        """
        return {
            "event_type": self.event_type,
            "user_id": self.user_id,
            "source": self.source,
            "timestamp": str(self.timestamp),
            "correlation_id": self.correlation_id,
            "payload": json.dumps(self.payload),
            "metadata": json.dumps(self.metadata),
        }

    def validate_payload(self) -> None:
        """Validate payload schema for critical event types."""
        required = {
            EventTypes.APPOINTMENT_BOOKED: ["appointment_id", "doctor_name", "time", "phone"],
            EventTypes.APPOINTMENT_CANCELLED: ["appointment_id"],
            EventTypes.APPOINTMENT_RESCHEDULED: ["appointment_id", "date", "time"],
            EventTypes.STAFF_ESCALATION: ["reason"],
        }

        fields = required.get(self.event_type)
        if fields:
            missing = [f for f in fields if f not in self.payload]
            if missing:
                raise ValueError(
                    f"Event {self.event_type} payload missing required fields: {missing}. "
                    f"Payload: {self.payload}"
                )


class EventTypes:
    # Booking lifecycle
    APPOINTMENT_BOOKED = "clinic.appointment.booked"
    APPOINTMENT_CANCELLED = "clinic.appointment.cancelled"
    APPOINTMENT_RESCHEDULED = "clinic.appointment.rescheduled"

    # Human handoff
    STAFF_ESCALATION = "clinic.staff.escalation"
