"""
Booking service for the PinkHealth Clinic Intake Service

Turns completed session data into confirmed appointments and applies
cancellations and reschedules. Every write goes to the AppointmentStore
first, then the patient-history projection, then analytics, then exactly one
notification, and finally a background repository write. A repository
failure is logged and never fails the booking.
"""

import itertools
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from clinic.appointments import AppointmentStore, PatientRegistry
from clinic.analytics import AnalyticsCollector
from clinic.background import BackgroundTasks
from clinic.catalog import Catalog
from clinic.config import ClinicConfig
from clinic.errors import SessionStateError
from clinic.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    NotificationEvent,
    Session,
    SlotChoice,
)
from clinic.notifications import NotificationDispatcher
from clinic.repository import PatientRepository
from clinic.structured_logger import StructuredLogger

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    appointment: Appointment
    created: bool


class BookingService:
    """Owns appointment creation, cancellation and rescheduling"""

    def __init__(
        self,
        config: ClinicConfig,
        catalog: Catalog,
        store: AppointmentStore,
        patients: PatientRegistry,
        analytics: AnalyticsCollector,
        notifier: NotificationDispatcher,
        tasks: BackgroundTasks,
        repository: Optional[PatientRepository] = None,
        structured_logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.catalog = catalog
        self.store = store
        self.patients = patients
        self.analytics = analytics
        self.notifier = notifier
        self.tasks = tasks
        self.repository = repository
        self.slog = structured_logger or StructuredLogger(logger)
        self._clock = clock
        self._counter = itertools.count(1)

    def new_appointment_id(self, user_id: str) -> str:
        """APT<epoch-ms>-<counter>-<user tail>; the counter keeps same-millisecond ids apart"""
        tail = re.sub(r"\W", "", user_id)[-4:] or "anon"
        return f"APT{int(time.time() * 1000)}-{next(self._counter)}-{tail}"

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def create_appointment(self, session: Session) -> BookingResult:
        """
        Confirm the booking described by the session's data bag.

        Replaying the same (phone, doctor, date, time) returns the existing
        appointment with created=False and emits no notification.

        Raises:
            SessionStateError: No selected doctor or slot
        """
        data = session.data
        doctor = self.catalog.get(data.selected_doctor_id)
        slot = data.selected_slot
        if doctor is None or slot is None:
            raise SessionStateError("booking requires a selected doctor and slot", user_id=session.user_id)

        phone = session.user_id
        existing = self.store.find_duplicate(phone, doctor.id, slot.date, slot.time)
        if existing is not None:
            self.slog.booking(phone, existing.appointment_id, doctor.name, created=False)
            return BookingResult(appointment=existing, created=False)

        patient_name = data.patient_name or session.display_name
        appointment = Appointment(
            appointment_id=self.new_appointment_id(phone),
            user_id=session.user_id,
            patient_name=patient_name,
            phone=phone,
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            specialty=doctor.specialty,
            health_concern=data.health_concern,
            date=slot.date,
            day_label=slot.label,
            time=slot.time,
            fee=doctor.fee,
            created_at=self._clock().isoformat(),
            payment_link=f"{self.config.payment_link_base}/{doctor.fee}",
            booking_for_self=data.booking_for_self,
        )

        self.store.add(appointment)
        self.patients.attach_appointment(appointment, caller_name=session.display_name)
        self.analytics.track_booking(doctor.name, doctor.specialty)
        self.notifier.notify(NotificationEvent.from_appointment(appointment))
        self._persist(appointment, new=True)

        self.slog.booking(phone, appointment.appointment_id, doctor.name, created=True)
        return BookingResult(appointment=appointment, created=True)

    # ------------------------------------------------------------------ #
    # Modify
    # ------------------------------------------------------------------ #

    def _require(self, appointment_id: Optional[str]) -> Appointment:
        appointment = self.store.get(appointment_id)
        if appointment is None:
            raise SessionStateError(f"unknown appointment {appointment_id}")
        return appointment

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        """Mark an appointment cancelled; cancelling twice is a no-op"""
        appointment = self._require(appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            return appointment

        self.store.update(appointment_id, status=AppointmentStatus.CANCELLED.value)
        self.patients.attach_appointment(appointment)
        self.analytics.track_cancellation()
        self.notifier.notify(NotificationEvent.from_appointment(appointment))
        self._persist(appointment, new=False)

        logger.info(f" Appointment {appointment_id} cancelled")
        return appointment

    def reschedule_appointment(
        self,
        appointment_id: str,
        choice: SlotChoice,
        doctor: Optional[Doctor] = None,
    ) -> Appointment:
        """
        Move an appointment to a new slot, optionally with a different doctor.

        The appointment keeps its id and stays confirmed; the notification
        carries status "rescheduled".
        """
        appointment = self._require(appointment_id)
        if not appointment.is_active:
            raise SessionStateError(f"appointment {appointment_id} is {appointment.status}")

        changes = {"date": choice.date, "day_label": choice.label, "time": choice.time}
        if doctor is not None and doctor.id != appointment.doctor_id:
            changes.update(
                doctor_id=doctor.id,
                doctor_name=doctor.name,
                specialty=doctor.specialty,
                fee=doctor.fee,
                payment_link=f"{self.config.payment_link_base}/{doctor.fee}",
            )

        self.store.update(appointment_id, **changes)
        self.patients.attach_appointment(appointment)
        self.analytics.track_reschedule()
        self.notifier.notify(
            NotificationEvent.from_appointment(appointment, status=AppointmentStatus.RESCHEDULED.value)
        )
        self._persist(appointment, new=False)

        logger.info(f" Appointment {appointment_id} moved to {choice.date} {choice.time}")
        return appointment

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _persist(self, appointment: Appointment, new: bool) -> None:
        if self.repository is None:
            return
        self.tasks.spawn(
            self._write(appointment, new),
            label=f"persist {appointment.appointment_id}",
            timeout=self.config.persistence_timeout,
            kind="persistence",
        )

    async def _write(self, appointment: Appointment, new: bool) -> None:
        if new:
            record = self.patients.get(appointment.phone)
            await self.repository.create_patient({
                "phone": appointment.phone,
                "name": record.name if record else appointment.patient_name,
                "created_at": record.created_at if record else appointment.created_at,
            })
            await self.repository.create_appointment(appointment)
        else:
            await self.repository.update_appointment(appointment)
