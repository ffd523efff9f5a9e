"""
Appointment records and the patient registry.

`AppointmentStore` is the authoritative in-memory record of every appointment
the service has created. `PatientRegistry` is the patient-history projection:
one record per phone number carrying snapshots of that patient's appointments.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from clinic.models import Appointment, PatientStatus

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Authoritative appointment records, keyed by appointment id"""

    def __init__(self):
        self._records: Dict[str, Appointment] = {}

    def add(self, appointment: Appointment) -> Appointment:
        if appointment.appointment_id in self._records:
            raise ValueError(f"duplicate appointment id {appointment.appointment_id}")
        self._records[appointment.appointment_id] = appointment
        return appointment

    def get(self, appointment_id: Optional[str]) -> Optional[Appointment]:
        if appointment_id is None:
            return None
        return self._records.get(appointment_id)

    def find_duplicate(self, phone: str, doctor_id: str, date_iso: str, time: str) -> Optional[Appointment]:
        """Confirmed appointment for the same patient, doctor, day and time"""
        wanted_time = time.strip().lower()
        for appointment in self._records.values():
            if (
                appointment.is_active
                and appointment.phone == phone
                and appointment.doctor_id == doctor_id
                and appointment.date == date_iso
                and appointment.time.strip().lower() == wanted_time
            ):
                return appointment
        return None

    def for_phone(self, phone: str) -> List[Appointment]:
        return [a for a in self._records.values() if a.phone == phone]

    def active_for_phone(self, phone: str, today: date) -> List[Appointment]:
        """Confirmed appointments for a phone that are not in the past"""
        today_iso = today.isoformat()
        return [a for a in self.for_phone(phone) if a.is_active and a.date >= today_iso]

    def update(self, appointment_id: str, **changes: Any) -> Appointment:
        appointment = self._records.get(appointment_id)
        if appointment is None:
            raise KeyError(appointment_id)
        for key, value in changes.items():
            if not hasattr(appointment, key):
                raise AttributeError(f"Appointment has no field {key!r}")
            setattr(appointment, key, value)
        return appointment

    def all(self) -> List[Appointment]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class PatientRecord:
    phone: str
    name: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    last_visit: Optional[str] = None
    appointments: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PatientRegistry:
    """Patients keyed by phone with projected appointment snapshots"""

    def __init__(self):
        self._patients: Dict[str, PatientRecord] = {}

    def upsert(self, phone: str, name: Optional[str] = None) -> PatientRecord:
        record = self._patients.get(phone)
        if record is None:
            record = PatientRecord(phone=phone, name=name or "Patient")
            self._patients[phone] = record
            logger.info(f" New patient registered: {record.name} ({phone})")
        elif name and record.name in ("Patient", ""):
            record.name = name
        return record

    def attach_appointment(self, appointment: Appointment, caller_name: Optional[str] = None) -> PatientRecord:
        """
        Project (or refresh) an appointment snapshot onto the record for its phone.

        The record is named after the caller; a patient booked on someone
        else's behalf only appears on the appointment itself.
        """
        name = appointment.patient_name if appointment.booking_for_self else caller_name
        record = self.upsert(appointment.phone, name)
        snapshot = appointment.to_dict()
        for index, existing in enumerate(record.appointments):
            if existing.get("appointment_id") == appointment.appointment_id:
                record.appointments[index] = snapshot
                break
        else:
            record.appointments.append(snapshot)
        record.last_visit = appointment.date
        return record

    def get(self, phone: str) -> Optional[PatientRecord]:
        return self._patients.get(phone)

    def search(self, query: str) -> List[PatientRecord]:
        """Phone substring or case-insensitive name substring"""
        query = query.strip()
        if not query:
            return []
        lowered = query.lower()
        return [
            record for record in self._patients.values()
            if query in record.phone or lowered in record.name.lower()
        ]

    def all(self) -> List[PatientRecord]:
        return list(self._patients.values())

    def __len__(self) -> int:
        return len(self._patients)


def compute_patient_status(
    phone: str,
    store: AppointmentStore,
    registry: PatientRegistry,
    today: date,
) -> PatientStatus:
    """
    Snapshot what the clinic knows about a user at conversation start.

    Reads only in-memory state, so starting a conversation never waits on
    the repository.
    """
    record = registry.get(phone)
    history = store.for_phone(phone)
    active = store.active_for_phone(phone, today)

    known = record is not None or bool(history)
    return PatientStatus(
        is_new=not known,
        is_returning=known,
        has_active_appointments=bool(active),
        appointment_count=len(active),
        appointments=[a.to_dict() for a in active],
        patient_name=record.name if record else None,
    )
