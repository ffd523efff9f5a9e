"""
Pytest fixtures for shared module tests.
"""

import pytest
from unittest.mock import AsyncMock


@pytest.fixture
def mock_redis_client():
    """Create a mock Redis client."""
    client = AsyncMock()

    client.xadd = AsyncMock(return_value="1234567890-0")
    client.xrevrange = AsyncMock(return_value=[])
    client.xlen = AsyncMock(return_value=0)
    client.ping = AsyncMock(return_value=True)

    return client


@pytest.fixture
def sample_clinic_event():
    """Create a sample ClinicEvent for testing."""
    from shared.events import ClinicEvent, EventTypes

    return ClinicEvent(
        event_type=EventTypes.APPOINTMENT_BOOKED,
        user_id="+919876543210",
        payload={
            "appointment_id": "APT1700000000000-1-3210",
            "doctor_name": "Dr. Sarah Smith",
            "time": "2:00 PM",
            "phone": "+919876543210",
        },
        metadata={"channel": "whatsapp"},
    )
