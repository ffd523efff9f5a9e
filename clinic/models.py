"""
Data models for the PinkHealth Clinic Intake Service

Contains enums, keyword tables, dataclasses, and Pydantic models for the
conversation engine and its HTTP surface.
"""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class ConversationStep(Enum):
    """FSM states for the booking conversation"""
    WELCOME_RESPONSE = "welcome_response"
    PATIENT_DETAILS = "patient_details"
    HEALTH_CONCERN = "health_concern"
    DOCTOR_SELECTION = "doctor_selection"
    TIME_SELECTION = "time_selection"
    CONFIRMATION = "confirmation"
    POST_BOOKING = "post_booking"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


class RouteKind(Enum):
    """How the router classified an inbound message"""
    EMERGENCY = "emergency"
    GLOBAL_COMMAND = "global_command"
    STEP_CONTINUATION = "step_continuation"
    CONVERSATION_START = "conversation_start"


class GlobalCommand(Enum):
    """Commands that work from any step"""
    MENU = "menu"
    BOOK = "book"
    STATUS = "status"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    DOCTORS = "doctors"
    DIRECTIONS = "directions"
    HELP = "help"
    TODAY = "today"
    TOMORROW = "tomorrow"
    HISTORY = "history"
    FEES = "fees"


class AppointmentStatus(Enum):
    """Appointment status values. RESCHEDULED only appears on notifications."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class WelcomeVariant(Enum):
    """Which welcome menu a fresh conversation gets"""
    SINGLE_APPOINTMENT = "single_appointment"
    MULTIPLE_APPOINTMENTS = "multiple_appointments"
    RETURNING = "returning"
    NEW = "new"


# ============================================================================
# Constants
# ============================================================================

# Matched as case-insensitive substrings; "help" is a global command instead
EMERGENCY_KEYWORDS: Tuple[str, ...] = (
    "emergency", "urgent", "critical", "chest pain", "heart attack", "stroke",
    "bleeding", "accident", "unconscious", "breathing problem", "severe pain",
    "ambulance", "911", "108",
)

GREETING_TOKENS = frozenset({"hi", "hello", "start"})

COMMAND_ALIASES: Dict[str, GlobalCommand] = {
    "menu": GlobalCommand.MENU,
    "options": GlobalCommand.MENU,
    "book": GlobalCommand.BOOK,
    "appointment": GlobalCommand.BOOK,
    "status": GlobalCommand.STATUS,
    "my appointments": GlobalCommand.STATUS,
    "cancel": GlobalCommand.CANCEL,
    "reschedule": GlobalCommand.RESCHEDULE,
    "doctors": GlobalCommand.DOCTORS,
    "doctor list": GlobalCommand.DOCTORS,
    "directions": GlobalCommand.DIRECTIONS,
    "location": GlobalCommand.DIRECTIONS,
    "help": GlobalCommand.HELP,
    "support": GlobalCommand.HELP,
    "today": GlobalCommand.TODAY,
    "tomorrow": GlobalCommand.TOMORROW,
    "history": GlobalCommand.HISTORY,
    "fees": GlobalCommand.FEES,
    "charges": GlobalCommand.FEES,
}

# Health concern menu: option -> (label, specialty key or None for special handling)
HEALTH_CONCERN_OPTIONS: Dict[str, Tuple[str, Optional[str]]] = {
    "1": ("Fever/Cold/Cough", "general"),
    "2": ("Pain/Injury", "general"),
    "3": ("General Health Check", "general"),
    "4": ("Heart/Blood Pressure", "cardiology"),
    "5": ("Bone/Joint Issues", "orthopedics"),
    "6": ("Eye Problems", "general"),
    "7": ("Dental Issues", "dental"),
    "8": ("Child Health", "general"),
    "9": ("Women's Health", "general"),
    "10": ("Specific Doctor Request", None),
    "11": ("Not Sure", None),
}

SPECIFIC_DOCTOR_OPTION = "10"
NOT_SURE_OPTION = "11"

DAY_LABELS = {0: "Today", 1: "Tomorrow", 2: "Day After"}


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class Slot:
    """One bookable slot offered by a doctor, relative to the booking day"""
    day_offset: int
    time: str

    @property
    def label(self) -> str:
        return DAY_LABELS.get(self.day_offset, f"In {self.day_offset} days")

    def display(self) -> str:
        return f"{self.label} at {self.time}"


@dataclass(frozen=True)
class Doctor:
    """Catalog entry. Immutable at runtime."""
    id: str
    name: str
    specialty: str
    specialty_key: str
    fee: int
    rating: float
    experience: int
    qualifications: str
    slots: Tuple[Slot, Slot, Slot]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "specialty": self.specialty,
            "fee": self.fee,
            "rating": self.rating,
            "experience": self.experience,
            "qualifications": self.qualifications,
            "slots": [slot.display() for slot in self.slots],
        }


@dataclass
class SlotChoice:
    """A concrete slot resolved against a calendar day"""
    date: str  # ISO date
    label: str
    time: str
    doctor_id: Optional[str] = None

    def display(self) -> str:
        return f"{self.label} at {self.time}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlotChoice":
        return cls(
            date=data["date"],
            label=data["label"],
            time=data["time"],
            doctor_id=data.get("doctor_id"),
        )


@dataclass
class PatientStatus:
    """Snapshot of what the clinic knows about a user at conversation start"""
    is_new: bool = True
    is_returning: bool = False
    has_active_appointments: bool = False
    appointment_count: int = 0
    appointments: List[Dict[str, Any]] = field(default_factory=list)
    patient_name: Optional[str] = None

    @property
    def welcome_variant(self) -> WelcomeVariant:
        if self.has_active_appointments:
            if self.appointment_count == 1:
                return WelcomeVariant.SINGLE_APPOINTMENT
            return WelcomeVariant.MULTIPLE_APPOINTMENTS
        if self.is_returning:
            return WelcomeVariant.RETURNING
        return WelcomeVariant.NEW

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionData:
    """Data bag collected over the course of a conversation"""
    patient_name: Optional[str] = None
    booking_for_self: bool = True
    patient_details: Optional[str] = None
    health_concern: Optional[str] = None
    specialty: Optional[str] = None
    selected_doctor_id: Optional[str] = None
    selected_slot: Optional[SlotChoice] = None
    last_appointment: Optional[Dict[str, Any]] = None
    target_appointment_id: Optional[str] = None
    triage_pending: bool = False
    reschedule_options: List[SlotChoice] = field(default_factory=list)

    @property
    def appointment_id(self) -> Optional[str]:
        if self.last_appointment:
            return self.last_appointment.get("appointment_id")
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Session:
    """Per-user conversational state, keyed by user identifier"""
    user_id: str
    step: ConversationStep
    data: SessionData = field(default_factory=SessionData)
    patient_status: Optional[PatientStatus] = None
    display_name: str = "Patient"
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.time() if now is None else now

    def is_idle(self, now: float, timeout: float) -> bool:
        return (now - self.last_activity) > timeout

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "step": self.step.value,
            "data": self.data.to_dict(),
            "patient_status": self.patient_status.to_dict() if self.patient_status else None,
            "display_name": self.display_name,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }


@dataclass
class Appointment:
    """Confirmed appointment record, owned by the booking service"""
    appointment_id: str
    user_id: str
    patient_name: str
    phone: str
    doctor_id: str
    doctor_name: str
    specialty: str
    health_concern: Optional[str]
    date: str  # ISO date
    day_label: str
    time: str
    fee: int
    status: str = AppointmentStatus.CONFIRMED.value
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    payment_link: Optional[str] = None
    booking_for_self: bool = True

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.CONFIRMED.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        return cls(**{key: data[key] for key in cls.__dataclass_fields__ if key in data})


@dataclass(frozen=True)
class NotificationEvent:
    """Immutable fact describing a booking change, broadcast to sinks"""
    appointment_id: str
    patient_name: str
    doctor_name: str
    time: str
    date: str
    concern: Optional[str]
    phone: str
    status: str

    @classmethod
    def from_appointment(cls, appointment: Appointment, status: Optional[str] = None) -> "NotificationEvent":
        return cls(
            appointment_id=appointment.appointment_id,
            patient_name=appointment.patient_name,
            doctor_name=appointment.doctor_name,
            time=appointment.time,
            date=appointment.date,
            concern=appointment.health_concern,
            phone=appointment.phone,
            status=status or appointment.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EscalationEvent:
    """Request for a human operator to pick up a conversation"""
    user_id: str
    display_name: str
    reason: str
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StepResult:
    """Outcome of processing one inbound message"""
    reply: str
    step: Optional[ConversationStep] = None
    route: Optional[RouteKind] = None
    ended: bool = False


# ============================================================================
# Pydantic Models for API
# ============================================================================

class InboundMessageRequest(BaseModel):
    """Inbound message delivered by the messaging transport"""
    user_id: str = Field(..., min_length=1, description="Sender identifier (phone number)")
    text: str = Field(..., min_length=1, description="Raw message text")
    display_name: Optional[str] = Field(None, description="Sender display name, if known")


class InboundMessageResponse(BaseModel):
    """Result of processing an inbound message"""
    accepted: bool = Field(..., description="Whether the message was processed")
    user_id: str = Field(..., description="Sender identifier")
    route: str = Field(..., description="Router classification")
    step: Optional[str] = Field(None, description="Conversation step after processing")
    ended: bool = Field(..., description="Whether the session ended")
    reply: str = Field(..., description="Reply queued for the sender")


class SessionStatusResponse(BaseModel):
    """Response model for session status query"""
    user_id: str = Field(..., description="Session key")
    step: str = Field(..., description="Current FSM state")
    data: Dict[str, Any] = Field(..., description="Collected conversation data")
    patient_status: Optional[Dict[str, Any]] = Field(None, description="Patient status snapshot")
    created_at: str = Field(..., description="Session creation timestamp")
    last_activity: str = Field(..., description="Last activity timestamp")
    expires_at: str = Field(..., description="Idle expiry timestamp")


class AppointmentListResponse(BaseModel):
    """Deduplicated appointments bucketed for the dashboard"""
    today: List[Dict[str, Any]] = Field(default_factory=list)
    tomorrow: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Dict[str, int] = Field(default_factory=dict)
    is_placeholder: bool = Field(False, description="True when no real appointments exist")
    timestamp: str = Field(..., description="Snapshot timestamp")


class PatientSearchResponse(BaseModel):
    """Patient search results"""
    query: str
    results: List[Dict[str, Any]]
    count: int
    timestamp: str


class ActivityFeedResponse(BaseModel):
    """Recent conversation activity"""
    activities: List[Dict[str, Any]]
    count: int
    timestamp: str


class DoctorListResponse(BaseModel):
    """Catalog listing"""
    doctors: List[Dict[str, Any]]


class HealthResponse(BaseModel):
    """Response model for health check"""
    status: str = Field(..., description="Service status: healthy/degraded/unhealthy")
    redis_connected: bool = Field(..., description="Redis connectivity status")
    config_valid: bool = Field(..., description="Configuration validation status")
    active_sessions: int = Field(..., description="Live conversation sessions")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
