"""
Clinic assistant: the per-message entry point

Wires the stores, booking service, step engine and router together and owns
the concurrency contract. Each inbound message is handled in its own task;
work for one user is serialized by the SessionStore lock while different
users proceed in parallel. The reply is computed under the lock and the
outbound send is scheduled after the lock is released.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from clinic import messages
from clinic.analytics import AnalyticsCollector
from clinic.appointments import AppointmentStore, PatientRegistry
from clinic.background import BackgroundTasks
from clinic.booking import BookingService
from clinic.catalog import Catalog
from clinic.config import ClinicConfig
from clinic.errors import SessionStateError
from clinic.models import RouteKind, StepResult
from clinic.notifications import NotificationDispatcher, NotificationSink
from clinic.reconciliation import AppointmentView
from clinic.repository import PatientRepository
from clinic.router import Router
from clinic.sessions import SessionStore
from clinic.steps import StepEngine
from clinic.structured_logger import StructuredLogger
from clinic.transport import MessageTransport
from shared.observability import record_background_failure, set_active_sessions

logger = logging.getLogger(__name__)


class ClinicAssistant:
    """
    Conversational intake assistant for one clinic.

    Usage:
        assistant = ClinicAssistant(config, LoggingTransport())
        result = await assistant.on_message("+919876543210", "hi", "Asha")
    """

    def __init__(
        self,
        config: ClinicConfig,
        transport: MessageTransport,
        catalog: Optional[Catalog] = None,
        repository: Optional[PatientRepository] = None,
        sinks: Sequence[NotificationSink] = (),
        clock: Callable[[], datetime] = datetime.now,
        session_clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.transport = transport
        self.slog = StructuredLogger(logging.getLogger("clinic.events"))

        self.tasks = BackgroundTasks()
        self.sessions = SessionStore(idle_timeout=config.session_idle_timeout, clock=session_clock)
        self.catalog = catalog or Catalog()
        self.store = AppointmentStore()
        self.patients = PatientRegistry()
        self.analytics = AnalyticsCollector(clock=clock)
        self.notifier = NotificationDispatcher(self.tasks, timeout=config.sink_timeout, sinks=sinks)

        self.booking = BookingService(
            config,
            self.catalog,
            self.store,
            self.patients,
            self.analytics,
            self.notifier,
            self.tasks,
            repository=repository,
            structured_logger=self.slog,
            clock=clock,
        )
        self.engine = StepEngine(
            self.sessions,
            self.catalog,
            self.booking,
            self.store,
            self.patients,
            self.notifier,
            self.analytics,
            structured_logger=self.slog,
            log_transitions=config.log_state_transitions,
            clock=clock,
        )
        self.router = Router(self.sessions, self.engine, structured_logger=self.slog)
        self.view = AppointmentView(
            self.store,
            self.sessions,
            self.patients,
            self.analytics,
            placeholder=config.dashboard_placeholder,
            clock=clock,
        )

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #

    async def on_message(self, user_id: str, raw_text: str, display_name: Optional[str] = None) -> StepResult:
        """
        Process one inbound message and schedule its reply.

        Args:
            user_id: Sender identifier (phone number)
            raw_text: Message text as received
            display_name: Sender's display name, if the channel provides one

        Returns:
            The reply and where the conversation ended up
        """
        display_name = display_name or "Patient"
        self.analytics.track_inbound(user_id, display_name, raw_text)
        started = time.perf_counter()

        async with self.sessions.locked(user_id):
            try:
                result = self.router.route(user_id, raw_text, display_name)
            except SessionStateError as e:
                logger.warning(f"️ Session state error for {user_id}: {e}; restarting conversation")
                result = self._restart(user_id, display_name)
            except Exception as e:
                logger.error(f" Unexpected error handling message from {user_id}: {e}", exc_info=True)
                result = self._restart(user_id, display_name)

        self.analytics.track_route(result.route.value, time.perf_counter() - started)
        set_active_sessions(len(self.sessions))
        self.tasks.spawn(
            self._send(user_id, result.reply),
            label=f"reply to {user_id}",
            timeout=self.config.send_timeout,
            kind="send",
        )
        return result

    def _restart(self, user_id: str, display_name: str) -> StepResult:
        self.sessions.delete(user_id)
        result = self.engine.start_conversation(user_id, display_name, prefix=messages.apology())
        result.route = RouteKind.CONVERSATION_START
        return result

    async def _send(self, user_id: str, text: str) -> None:
        result = await self.transport.send(user_id, text)
        if result.ok:
            self.analytics.track_outbound()
        else:
            logger.warning(f"️ Reply to {user_id} not delivered: {result.error}")
            record_background_failure("send")

    # ------------------------------------------------------------------ #
    # Dashboard reads
    # ------------------------------------------------------------------ #

    def list_appointments(self) -> Dict[str, Any]:
        return self.view.list_appointments()

    def search_patients(self, query: str) -> Dict[str, Any]:
        return self.view.search_patients(query)

    def get_activity_feed(self, limit: int = 20) -> Dict[str, Any]:
        return self.view.activity_feed(limit)

    def get_metrics(self) -> Dict[str, Any]:
        return self.view.metrics()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def sweep(self) -> int:
        swept = await self.sessions.sweep_idle()
        set_active_sessions(len(self.sessions))
        return swept

    async def run_sweeper(self) -> None:
        await self.sessions.run_sweeper(self.config.sweep_interval)

    async def drain(self) -> None:
        """Wait for pending sends, notifications and writes"""
        await self.tasks.drain()

    async def shutdown(self, timeout: float = 5.0) -> None:
        pending = len(self.tasks)
        if pending:
            logger.info(f" Waiting for {pending} background tasks")
        try:
            await asyncio.wait_for(self.tasks.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"️ Background tasks still running after {timeout}s; cancelling")
            await self.tasks.cancel_all()
