"""
Tests for ClinicEvent and EventTypes.
"""

import json

import pytest

from shared.events import ClinicEvent, EventTypes


class TestClinicEvent:
    """Tests for ClinicEvent dataclass."""

    def test_create_event_with_required_fields(self):
        """Defaults fill source, timestamp, correlation id and metadata."""
        event = ClinicEvent(
            event_type=EventTypes.STAFF_ESCALATION,
            user_id="+911111111111",
            payload={"reason": "HELP_REQUEST"},
        )

        assert event.source == "clinic_intake"
        assert event.timestamp > 0
        assert event.correlation_id
        assert event.metadata == {}

    def test_to_redis_dict_is_all_strings(self, sample_clinic_event):
        """XADD needs flat string values."""
        result = sample_clinic_event.to_redis_dict()

        for key, value in result.items():
            assert isinstance(value, str), f"{key} should be string"

        assert json.loads(result["payload"])["doctor_name"] == "Dr. Sarah Smith"
        assert json.loads(result["metadata"])["channel"] == "whatsapp"

    def test_validate_payload_accepts_complete_booking(self, sample_clinic_event):
        sample_clinic_event.validate_payload()

    def test_validate_payload_rejects_missing_fields(self):
        event = ClinicEvent(
            event_type=EventTypes.APPOINTMENT_RESCHEDULED,
            user_id="u1",
            payload={"appointment_id": "APT1"},
        )

        with pytest.raises(ValueError, match="missing required fields"):
            event.validate_payload()

    def test_unknown_event_types_are_not_validated(self):
        ClinicEvent(event_type="clinic.custom", user_id="u1", payload={}).validate_payload()


class TestEventTypes:
    """Event type names share the clinic namespace."""

    def test_all_types_namespaced(self):
        names = [v for k, v in vars(EventTypes).items() if k.isupper()]
        assert names
        assert all(name.startswith("clinic.") for name in names)
