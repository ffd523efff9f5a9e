"""
Patient and appointment persistence.

Documents are stored as JSON strings in Redis:

    clinic:patient:{phone}                  patient document
    clinic:appointment:{appointment_id}     appointment document
    clinic:patient:{phone}:appointments     list of appointment ids

Writes are issued from background tasks by the booking service; a failed
write is logged and never undoes an in-memory booking.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import redis.asyncio as redis

from clinic.errors import DependencyUnavailable
from clinic.models import Appointment

logger = logging.getLogger(__name__)

PATIENT_PREFIX = "clinic:patient:"
APPOINTMENT_PREFIX = "clinic:appointment:"


class PatientRepository(Protocol):
    async def create_patient(self, patient: Dict[str, Any]) -> None:
        ...

    async def find_patient_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        ...

    async def create_appointment(self, appointment: Appointment) -> None:
        ...

    async def update_appointment(self, appointment: Appointment) -> None:
        ...

    async def get_patient_appointments(self, phone: str, status: Optional[str] = None) -> List[Appointment]:
        ...


class RedisPatientRepository:
    """PatientRepository backed by redis.asyncio"""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    @staticmethod
    def _patient_key(phone: str) -> str:
        return f"{PATIENT_PREFIX}{phone}"

    @staticmethod
    def _appointment_key(appointment_id: str) -> str:
        return f"{APPOINTMENT_PREFIX}{appointment_id}"

    async def create_patient(self, patient: Dict[str, Any]) -> None:
        """Insert the patient document unless one already exists for the phone"""
        try:
            created = await self.redis.set(self._patient_key(patient["phone"]), json.dumps(patient), nx=True)
        except redis.RedisError as e:
            raise DependencyUnavailable("redis", str(e)) from e
        if created:
            logger.info(f" Persisted patient {patient['phone']}")

    async def find_patient_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.redis.get(self._patient_key(phone))
        except redis.RedisError as e:
            raise DependencyUnavailable("redis", str(e)) from e
        return json.loads(raw) if raw else None

    async def create_appointment(self, appointment: Appointment) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self._appointment_key(appointment.appointment_id), json.dumps(appointment.to_dict()))
                pipe.rpush(f"{self._patient_key(appointment.phone)}:appointments", appointment.appointment_id)
                await pipe.execute()
        except redis.RedisError as e:
            raise DependencyUnavailable("redis", str(e)) from e
        logger.info(f" Persisted appointment {appointment.appointment_id}")

    async def update_appointment(self, appointment: Appointment) -> None:
        try:
            await self.redis.set(
                self._appointment_key(appointment.appointment_id),
                json.dumps(appointment.to_dict()),
                xx=True,
            )
        except redis.RedisError as e:
            raise DependencyUnavailable("redis", str(e)) from e

    async def get_patient_appointments(self, phone: str, status: Optional[str] = None) -> List[Appointment]:
        """Appointments for a patient, optionally filtered by status"""
        try:
            ids = await self.redis.lrange(f"{self._patient_key(phone)}:appointments", 0, -1)
            if not ids:
                return []
            documents = await self.redis.mget([self._appointment_key(i) for i in ids])
        except redis.RedisError as e:
            raise DependencyUnavailable("redis", str(e)) from e

        appointments = [Appointment.from_dict(json.loads(doc)) for doc in documents if doc]
        if status is not None:
            appointments = [a for a in appointments if a.status == status]
        return appointments
