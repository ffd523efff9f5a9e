"""
Test configuration and fixtures for clinic intake tests.

All clocks are fixed so slot dates, cancellation fees and dashboard buckets
are deterministic. Sinks and transports record instead of delivering.
"""

from datetime import datetime
from typing import List

import pytest

from clinic.analytics import AnalyticsCollector
from clinic.appointments import AppointmentStore, PatientRegistry
from clinic.assistant import ClinicAssistant
from clinic.background import BackgroundTasks
from clinic.booking import BookingService
from clinic.catalog import Catalog
from clinic.config import ClinicConfig
from clinic.notifications import NotificationDispatcher
from clinic.router import Router
from clinic.sessions import SessionStore
from clinic.steps import StepEngine
from clinic.transport import SendResult

# Monday morning
NOW = datetime(2026, 10, 19, 9, 0)
PHONE = "+919876543210"


class FakeClock:
    """Wall clock for the session store; advanced by hand"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent: List[tuple] = []

    async def send(self, user_id: str, text: str) -> SendResult:
        self.sent.append((user_id, text))
        if self.ok:
            return SendResult(ok=True)
        return SendResult(ok=False, error="gateway down")


class RecordingSink:
    name = "recording"

    def __init__(self):
        self.events = []

    async def accept(self, event) -> None:
        self.events.append(event)


@pytest.fixture
def test_config():
    """Test configuration fixture"""
    return ClinicConfig(
        redis_url="redis://localhost:6379",
        session_idle_timeout=1800,
        sweep_interval=60,
        send_timeout=1.0,
        sink_timeout=1.0,
        persistence_timeout=1.0,
        demo_mode=True,
    )


@pytest.fixture
def fixed_now():
    return lambda: NOW


@pytest.fixture
def session_clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def assistant(test_config, transport, sink, fixed_now, session_clock):
    """Fully wired assistant with a recording sink and transport"""
    return ClinicAssistant(
        test_config,
        transport,
        sinks=[sink],
        clock=fixed_now,
        session_clock=session_clock,
    )


@pytest.fixture
def components(test_config, fixed_now, session_clock):
    """
    Engine wiring with no sinks and no repository, so nothing is scheduled
    on an event loop and handlers can be driven synchronously.
    """
    tasks = BackgroundTasks()
    sessions = SessionStore(idle_timeout=test_config.session_idle_timeout, clock=session_clock)
    catalog = Catalog()
    store = AppointmentStore()
    patients = PatientRegistry()
    analytics = AnalyticsCollector(clock=fixed_now)
    notifier = NotificationDispatcher(tasks)
    booking = BookingService(test_config, catalog, store, patients, analytics, notifier, tasks, clock=fixed_now)
    engine = StepEngine(sessions, catalog, booking, store, patients, notifier, analytics, clock=fixed_now)
    router = Router(sessions, engine)
    return {
        "sessions": sessions,
        "catalog": catalog,
        "store": store,
        "patients": patients,
        "analytics": analytics,
        "booking": booking,
        "engine": engine,
        "router": router,
    }


@pytest.fixture
def router(components):
    return components["router"]


@pytest.fixture
def engine(components):
    return components["engine"]


@pytest.fixture
def sessions(components):
    return components["sessions"]


@pytest.fixture
def store(components):
    return components["store"]


def drive(router: Router, *texts: str, user_id: str = PHONE, display_name: str = "Asha"):
    """Send messages in order; return the last result"""
    result = None
    for text in texts:
        result = router.route(user_id, text, display_name)
    return result
