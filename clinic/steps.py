"""
Step engine for the PinkHealth Clinic Intake Service

Enum-driven conversation state machine. Each ConversationStep has exactly one
handler and a fixed set of allowed successor steps; a handler either moves to
an allowed step, stays put by raising UserInputError (re-prompt), or ends the
conversation by deleting the session. Every path produces exactly one reply.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from clinic import messages
from clinic.analytics import AnalyticsCollector
from clinic.appointments import AppointmentStore, PatientRegistry, compute_patient_status
from clinic.booking import BookingService
from clinic.catalog import MENU_NUMBER, Catalog, classify_concern
from clinic.errors import SessionStateError, UserInputError
from clinic.models import (
    DAY_LABELS,
    HEALTH_CONCERN_OPTIONS,
    NOT_SURE_OPTION,
    SPECIFIC_DOCTOR_OPTION,
    Appointment,
    ConversationStep,
    Doctor,
    EscalationEvent,
    Session,
    SessionData,
    SlotChoice,
    StepResult,
    WelcomeVariant,
)
from clinic.notifications import NotificationDispatcher
from clinic.sessions import SessionStore
from clinic.structured_logger import StructuredLogger

logger = logging.getLogger(__name__)

S = ConversationStep

# Allowed successors per step. Ending a conversation deletes the session and
# is always allowed, so it does not appear here.
TRANSITIONS: Dict[ConversationStep, FrozenSet[ConversationStep]] = {
    S.WELCOME_RESPONSE: frozenset({
        S.WELCOME_RESPONSE, S.PATIENT_DETAILS, S.HEALTH_CONCERN,
        S.DOCTOR_SELECTION, S.TIME_SELECTION, S.RESCHEDULE, S.CANCEL,
    }),
    S.PATIENT_DETAILS: frozenset({S.HEALTH_CONCERN}),
    S.HEALTH_CONCERN: frozenset({S.HEALTH_CONCERN, S.DOCTOR_SELECTION, S.TIME_SELECTION}),
    S.DOCTOR_SELECTION: frozenset({S.TIME_SELECTION}),
    S.TIME_SELECTION: frozenset({S.CONFIRMATION}),
    S.CONFIRMATION: frozenset({S.POST_BOOKING, S.HEALTH_CONCERN}),
    S.POST_BOOKING: frozenset({S.POST_BOOKING, S.HEALTH_CONCERN}),
    S.RESCHEDULE: frozenset({S.RESCHEDULE, S.DOCTOR_SELECTION}),
    S.CANCEL: frozenset({S.RESCHEDULE}),
}

SLOT_PATTERN = re.compile(r"(?:slot\s*)?([123])")
DATE_PATTERN = re.compile(r"([0-9]{1,2})/([0-9]{1,2})/([0-9]{4})")
# Window menu entries still accepted while slot options are listed
WINDOW_SWITCH_OPTIONS = frozenset({"4", "5"})

LATE_CANCELLATION_FEE = 100


def parse_time(value: str) -> Tuple[int, int]:
    """'2:30 PM' -> (14, 30)"""
    parsed = datetime.strptime(value.strip().upper(), "%I:%M %p")
    return parsed.hour, parsed.minute


def appointment_start(appointment: Appointment) -> datetime:
    hour, minute = parse_time(appointment.time)
    return datetime.combine(date.fromisoformat(appointment.date), datetime.min.time()).replace(
        hour=hour, minute=minute
    )


def day_label(day: date, today: date) -> str:
    return DAY_LABELS.get((day - today).days, day.strftime("%a %d %b"))


def slot_choices(doctor: Doctor, today: date) -> List[SlotChoice]:
    """A doctor's three catalog slots resolved against today's date"""
    choices = []
    for slot in doctor.slots:
        day = today + timedelta(days=slot.day_offset)
        choices.append(SlotChoice(date=day.isoformat(), label=slot.label, time=slot.time, doctor_id=doctor.id))
    return choices


def cancellation_fee(appointment: Appointment, now: datetime) -> Tuple[int, str]:
    """
    Fee owed for cancelling now.

    Same-day cancellation costs the full consultation fee, less than 24 hours'
    notice costs a flat fee, otherwise cancellation is free.
    """
    if appointment.date <= now.date().isoformat():
        return appointment.fee, "same day cancellation"
    if appointment_start(appointment) - now < timedelta(hours=24):
        return LATE_CANCELLATION_FEE, "less than 24 hours notice"
    return 0, "24+ hours notice"


class StepEngine:
    """
    Conversation state machine.

    Handlers run synchronously under the caller's per-user lock; the only
    side effects that leave the process (notifications, persistence) are
    scheduled as background tasks by collaborators.
    """

    def __init__(
        self,
        sessions: SessionStore,
        catalog: Catalog,
        booking: BookingService,
        appointments: AppointmentStore,
        patients: PatientRegistry,
        notifier: NotificationDispatcher,
        analytics: AnalyticsCollector,
        structured_logger: Optional[StructuredLogger] = None,
        log_transitions: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.booking = booking
        self.appointments = appointments
        self.patients = patients
        self.notifier = notifier
        self.analytics = analytics
        self.slog = structured_logger or StructuredLogger(logger)
        self.log_transitions = log_transitions
        self._clock = clock

        self._handlers: Dict[ConversationStep, Callable[[Session, str], StepResult]] = {
            S.WELCOME_RESPONSE: self._handle_welcome_response,
            S.PATIENT_DETAILS: self._handle_patient_details,
            S.HEALTH_CONCERN: self._handle_health_concern,
            S.DOCTOR_SELECTION: self._handle_doctor_selection,
            S.TIME_SELECTION: self._handle_time_selection,
            S.CONFIRMATION: self._handle_confirmation,
            S.POST_BOOKING: self._handle_post_booking,
            S.RESCHEDULE: self._handle_reschedule,
            S.CANCEL: self._handle_cancel,
        }
        missing = set(ConversationStep) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for steps: {sorted(step.value for step in missing)}")
        missing = set(ConversationStep) - set(TRANSITIONS)
        if missing:
            raise RuntimeError(f"no transitions for steps: {sorted(step.value for step in missing)}")

    @property
    def today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def handle(self, session: Session, text: str) -> StepResult:
        """
        Run the handler for the session's current step.

        UserInputError becomes a re-prompt with the step unchanged.
        SessionStateError propagates so the caller can restart the conversation.
        """
        if session.patient_status is None:
            raise SessionStateError("session has no patient status", user_id=session.user_id)

        self.analytics.track_step(session.step.value)
        try:
            return self._handlers[session.step](session, text.strip())
        except UserInputError as e:
            return StepResult(reply=e.prompt, step=session.step)

    def _move(self, session: Session, target: ConversationStep, trigger: str) -> None:
        if target not in TRANSITIONS[session.step]:
            raise SessionStateError(
                f"illegal transition {session.step.value} -> {target.value}", user_id=session.user_id
            )
        if self.log_transitions:
            self.slog.state_transition(session.user_id, session.step.value, target.value, trigger)
        session.step = target

    def _end(self, session: Session, reply: str, trigger: str) -> StepResult:
        self.sessions.delete(session.user_id)
        if self.log_transitions:
            self.slog.state_transition(session.user_id, session.step.value, None, trigger)
        return StepResult(reply=reply, step=None, ended=True)

    def _reply(self, session: Session, reply: str) -> StepResult:
        return StepResult(reply=reply, step=session.step)

    # ------------------------------------------------------------------ #
    # Entry points (conversation start and global commands)
    # ------------------------------------------------------------------ #

    def new_session(self, user_id: str, display_name: str) -> Session:
        """Replace any session for the user with a fresh one at welcome_response"""
        step = S.WELCOME_RESPONSE
        status = compute_patient_status(user_id, self.appointments, self.patients, self.today)
        session = self.sessions.create(
            user_id,
            step,
            patient_status=status,
            display_name=display_name,
            data=SessionData(patient_name=status.patient_name or display_name),
        )
        if self.log_transitions:
            self.slog.state_transition(user_id, None, step.value, "session_created")
        return session

    def start_conversation(self, user_id: str, display_name: str, prefix: str = "") -> StepResult:
        session = self.new_session(user_id, display_name)
        status = session.patient_status
        variant = status.welcome_variant

        if variant is WelcomeVariant.SINGLE_APPOINTMENT:
            reply = messages.welcome_single(status.appointments[0])
        elif variant is WelcomeVariant.MULTIPLE_APPOINTMENTS:
            reply = messages.welcome_multiple(status.appointments)
        elif variant is WelcomeVariant.RETURNING:
            reply = messages.welcome_returning(session.data.patient_name)
        else:
            reply = messages.welcome_new()

        if prefix:
            reply = f"{prefix}\n\n{reply}"
        return self._reply(session, reply)

    def start_booking(self, session: Session, intro: Optional[str] = None, trigger: str = "book") -> StepResult:
        """Reset booking fields and show the health-concern menu"""
        data = session.data
        session.data = SessionData(
            patient_name=data.patient_name,
            booking_for_self=data.booking_for_self,
            patient_details=data.patient_details,
            last_appointment=data.last_appointment,
        )
        if session.step is not S.HEALTH_CONCERN:
            self._move(session, S.HEALTH_CONCERN, trigger)
        if intro:
            return self._reply(session, messages.health_concern_menu(intro))
        return self._reply(session, messages.health_concern_menu())

    def show_doctor_list(self, session: Session, trigger: str) -> StepResult:
        self._move(session, S.DOCTOR_SELECTION, trigger)
        return self._reply(session, messages.doctor_list(self.catalog.all()))

    def active_appointments(self, user_id: str) -> List[Appointment]:
        return self.appointments.active_for_phone(user_id, self.today)

    def start_reschedule(self, session: Session, appointment: Appointment, trigger: str = "reschedule") -> StepResult:
        session.data.target_appointment_id = appointment.appointment_id
        session.data.reschedule_options = []
        self._move(session, S.RESCHEDULE, trigger)
        return self._reply(session, messages.reschedule_intro(appointment.to_dict()))

    def start_cancel(self, session: Session, appointment: Appointment, trigger: str = "cancel") -> StepResult:
        session.data.target_appointment_id = appointment.appointment_id
        self._move(session, S.CANCEL, trigger)
        return self._reply(session, messages.cancel_intro(appointment.to_dict()))

    def escalate(self, user_id: str, display_name: str, reason: str, message: str = "") -> str:
        """Hand the conversation to staff; returns the reply for the user"""
        self.notifier.notify(EscalationEvent(user_id=user_id, display_name=display_name, reason=reason, message=message))
        self.analytics.track_escalation(reason)
        self.slog.escalation(user_id, reason)
        return messages.staff_escalation(reason)

    # ------------------------------------------------------------------ #
    # Step handlers
    # ------------------------------------------------------------------ #

    def _handle_welcome_response(self, session: Session, text: str) -> StepResult:
        status = session.patient_status
        variant = status.welcome_variant

        if variant is WelcomeVariant.SINGLE_APPOINTMENT:
            appointment = self._status_appointment(session, 0)
            if text == "1":
                return self._reply(session, messages.appointment_details(appointment.to_dict()))
            if text == "2":
                return self.start_reschedule(session, appointment, trigger="welcome_reschedule")
            if text == "3":
                return self.start_cancel(session, appointment, trigger="welcome_cancel")
            if text == "4":
                return self._reply(session, messages.directions())
            if text == "5":
                return self.start_booking(session, trigger="welcome_book_another")

        elif variant is WelcomeVariant.MULTIPLE_APPOINTMENTS:
            if text in ("1", "2"):
                appointment = self._status_appointment(session, int(text) - 1)
                session.data.target_appointment_id = appointment.appointment_id
                return self._reply(session, messages.appointment_details(appointment.to_dict()))
            if text == "3":
                return self.start_booking(session, trigger="welcome_book_new")
            if text == "4":
                return self._reply(session, messages.directions())

        elif variant is WelcomeVariant.RETURNING:
            if text == "1":
                return self.start_booking(session, trigger="welcome_book")
            if text == "2":
                return self._follow_up(session)
            if text == "3":
                history = [a.to_dict() for a in self.appointments.for_phone(session.user_id)]
                return self._reply(session, messages.appointment_history(session.data.patient_name, history))
            if text == "4":
                return self.show_doctor_list(session, trigger="welcome_browse_doctors")

        else:
            if text == "1":
                session.data.booking_for_self = True
                return self.start_booking(session, trigger="welcome_for_myself")
            if text == "2":
                session.data.booking_for_self = False
                self._move(session, S.PATIENT_DETAILS, "welcome_for_someone_else")
                return self._reply(session, messages.patient_details_prompt())
            if text == "3":
                reply = self.escalate(session.user_id, session.display_name, "NEW_PATIENT_QUESTIONS")
                return self._reply(session, reply)

        raise UserInputError(messages.invalid_welcome_option())

    def _status_appointment(self, session: Session, index: int) -> Appointment:
        """Live record for the index-th appointment in the welcome snapshot"""
        snapshot = session.patient_status.appointments
        if index >= len(snapshot):
            raise UserInputError(messages.invalid_welcome_option())
        appointment = self.appointments.get(snapshot[index]["appointment_id"])
        if appointment is None:
            raise SessionStateError("welcome snapshot references unknown appointment", user_id=session.user_id)
        return appointment

    def _follow_up(self, session: Session) -> StepResult:
        history = self.appointments.for_phone(session.user_id)
        doctor = self.catalog.get(history[-1].doctor_id) if history else None
        if doctor is None:
            return self.start_booking(session, trigger="welcome_follow_up")

        session.data.selected_doctor_id = doctor.id
        session.data.specialty = doctor.specialty_key
        session.data.health_concern = "Follow-up visit"
        self._move(session, S.TIME_SELECTION, "welcome_follow_up")
        return self._reply(session, messages.doctor_slots(doctor, slot_choices(doctor, self.today)))

    def _handle_patient_details(self, session: Session, text: str) -> StepResult:
        if not text:
            raise UserInputError(messages.patient_details_prompt())

        first_line = text.splitlines()[0].strip()
        session.data.patient_details = text
        session.data.patient_name = first_line or "Patient"
        session.data.booking_for_self = False
        return self.start_booking(
            session,
            intro=messages.patient_details_ack(session.data.patient_name),
            trigger="patient_details",
        )

    def _handle_health_concern(self, session: Session, text: str) -> StepResult:
        data = session.data
        lowered = text.lower()

        if data.triage_pending:
            return self._handle_triage(session, text)

        if not text:
            raise UserInputError(messages.health_concern_menu())

        if MENU_NUMBER.fullmatch(text):
            if text not in HEALTH_CONCERN_OPTIONS:
                raise UserInputError(messages.health_concern_menu("Please choose an option from 1 to 11."))
            label, specialty = HEALTH_CONCERN_OPTIONS[text]
            if text == SPECIFIC_DOCTOR_OPTION:
                return self.show_doctor_list(session, trigger="concern_specific_doctor")
            if text == NOT_SURE_OPTION:
                data.triage_pending = True
                return self._reply(session, messages.triage_menu())
            data.health_concern = label
            return self._recommend(session, specialty)

        if "not sure" in lowered:
            data.triage_pending = True
            return self._reply(session, messages.triage_menu())
        if "specific doctor" in lowered:
            return self.show_doctor_list(session, trigger="concern_specific_doctor")

        data.health_concern = text
        return self._recommend(session, classify_concern(text))

    def _handle_triage(self, session: Session, text: str) -> StepResult:
        data = session.data
        if text == "1":
            data.triage_pending = False
            data.health_concern = HEALTH_CONCERN_OPTIONS[NOT_SURE_OPTION][0]
            return self._recommend(session, "general")
        if text == "2":
            data.triage_pending = False
            reply = self.escalate(session.user_id, session.display_name, "TRIAGE_STAFF_REQUEST")
            return self._reply(session, reply)
        if text == "3":
            data.triage_pending = False
            return self._reply(session, messages.health_concern_menu())
        raise UserInputError(messages.triage_menu())

    def _recommend(self, session: Session, specialty: str) -> StepResult:
        doctor = self.catalog.recommend(specialty)
        session.data.specialty = doctor.specialty_key
        session.data.selected_doctor_id = doctor.id
        self._move(session, S.TIME_SELECTION, f"concern_{specialty}")
        return self._reply(session, messages.recommendation(doctor, slot_choices(doctor, self.today)))

    def _handle_doctor_selection(self, session: Session, text: str) -> StepResult:
        if MENU_NUMBER.fullmatch(text):
            doctor = self.catalog.by_menu_number(text)
        else:
            doctor = self.catalog.find_by_name(text)
        if doctor is None:
            raise UserInputError(messages.doctor_not_found())

        session.data.selected_doctor_id = doctor.id
        session.data.specialty = doctor.specialty_key
        self._move(session, S.TIME_SELECTION, "doctor_selected")
        return self._reply(session, messages.doctor_slots(doctor, slot_choices(doctor, self.today)))

    def _handle_time_selection(self, session: Session, text: str) -> StepResult:
        data = session.data
        doctor = self.catalog.get(data.selected_doctor_id)
        if doctor is None:
            raise SessionStateError("time selection without a selected doctor", user_id=session.user_id)

        match = SLOT_PATTERN.fullmatch(text.lower())
        if match is None:
            raise UserInputError(messages.invalid_slot())
        choice = slot_choices(doctor, self.today)[int(match.group(1)) - 1]

        if data.target_appointment_id:
            # Reschedule with a different doctor
            old_view = self._target_appointment(session).to_dict()
            moved = self.booking.reschedule_appointment(data.target_appointment_id, choice, doctor)
            return self._end(session, messages.rescheduled(old_view, moved.to_dict()), "rescheduled")

        data.selected_slot = choice
        self._move(session, S.CONFIRMATION, "slot_selected")
        patient_name = data.patient_name or session.display_name
        return self._reply(session, messages.confirmation(doctor, choice, patient_name, session.user_id))

    def _handle_confirmation(self, session: Session, text: str) -> StepResult:
        lowered = text.lower()
        if lowered == "1" or "confirm" in lowered or lowered == "yes":
            result = self.booking.create_appointment(session)
            snapshot = result.appointment.to_dict()
            session.data.last_appointment = snapshot
            self._move(session, S.POST_BOOKING, "booked" if result.created else "booking_replayed")
            return self._reply(session, messages.booked(snapshot, result.created))
        if lowered == "2" or "edit" in lowered:
            return self.start_booking(session, trigger="confirmation_edit")
        if lowered == "3" or lowered in ("no", "cancel booking"):
            return self._end(session, messages.booking_abandoned(), "booking_abandoned")
        raise UserInputError(messages.invalid_confirmation())

    def _handle_post_booking(self, session: Session, text: str) -> StepResult:
        appointment = session.data.last_appointment
        if appointment is None:
            raise SessionStateError("post_booking without an appointment", user_id=session.user_id)

        if text == "1":
            return self._reply(session, messages.add_to_calendar(appointment, self._calendar_link(appointment)))
        if text == "2":
            return self._reply(session, messages.directions(messages.POST_BOOKING_OPTIONS))
        if text == "3":
            return self._reply(session, messages.previsit_instructions(appointment))
        if text == "4":
            return self.start_booking(session, intro="📅 **Book Another Appointment**\n\nWhat brings you to the clinic this time?", trigger="book_another")
        if text == "5":
            return self._end(session, messages.goodbye(appointment), "done")
        raise UserInputError(messages.invalid_post_booking())

    def _calendar_link(self, appointment: Dict) -> str:
        hour, minute = parse_time(appointment["time"])
        start = datetime.combine(date.fromisoformat(appointment["date"]), datetime.min.time()).replace(
            hour=hour, minute=minute
        )
        end = start + timedelta(hours=1)
        return messages.calendar_link(appointment, start.strftime("%Y%m%dT%H%M%S"), end.strftime("%Y%m%dT%H%M%S"))

    def _target_appointment(self, session: Session) -> Appointment:
        appointment = self.appointments.get(session.data.target_appointment_id)
        if appointment is None:
            raise SessionStateError(f"{session.step.value} without a target appointment", user_id=session.user_id)
        return appointment

    def _handle_reschedule(self, session: Session, text: str) -> StepResult:
        data = session.data
        appointment = self._target_appointment(session)

        if data.reschedule_options:
            count = len(data.reschedule_options)
            if MENU_NUMBER.fullmatch(text) and 1 <= int(text) <= count:
                choice = data.reschedule_options[int(text) - 1]
                old_view = appointment.to_dict()
                moved = self.booking.reschedule_appointment(appointment.appointment_id, choice)
                return self._end(session, messages.rescheduled(old_view, moved.to_dict()), "rescheduled")
            if text in WINDOW_SWITCH_OPTIONS:
                data.reschedule_options = []
            elif not DATE_PATTERN.fullmatch(text):
                raise UserInputError(messages.invalid_reschedule_slot(count))

        today = self.today
        date_match = DATE_PATTERN.fullmatch(text)
        if date_match:
            day = self._parse_date(date_match)
            if day is None or day <= today:
                raise UserInputError(messages.invalid_date())
            return self._offer_slots(session, appointment, [day] * 3, f"on {day.strftime('%d/%m/%Y')}")

        if text == "1":
            tomorrow = today + timedelta(days=1)
            return self._offer_slots(session, appointment, [tomorrow] * 3, "Tomorrow")
        if text == "2":
            days = [today + timedelta(days=offset) for offset in (2, 3, 4)]
            return self._offer_slots(session, appointment, days, "This Week")
        if text == "3":
            next_monday = today + timedelta(days=7 - today.weekday())
            days = [next_monday + timedelta(days=offset) for offset in (0, 1, 2)]
            return self._offer_slots(session, appointment, days, "Next Week")
        if text == "4":
            return self._reply(session, messages.specific_date_prompt())
        if text == "5":
            return self.show_doctor_list(session, trigger="reschedule_different_doctor")
        raise UserInputError(messages.invalid_reschedule())

    @staticmethod
    def _parse_date(match: "re.Match") -> Optional[date]:
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    def _offer_slots(self, session: Session, appointment: Appointment, days: Sequence[date], window: str) -> StepResult:
        doctor = self.catalog.get(appointment.doctor_id)
        times = [slot.time for slot in doctor.slots] if doctor else [appointment.time] * 3
        today = self.today
        options = [
            SlotChoice(date=day.isoformat(), label=day_label(day, today), time=time, doctor_id=appointment.doctor_id)
            for day, time in zip(days, times)
        ]
        session.data.reschedule_options = options
        self._move(session, S.RESCHEDULE, f"reschedule_window_{window.lower().replace(' ', '_')}")
        return self._reply(session, messages.reschedule_slots(appointment.doctor_name, window, options))

    def _handle_cancel(self, session: Session, text: str) -> StepResult:
        appointment = self._target_appointment(session)

        if text == "1":
            fee, policy = cancellation_fee(appointment, self._clock())
            view = appointment.to_dict()
            self.booking.cancel_appointment(appointment.appointment_id)
            return self._end(session, messages.cancelled(view, fee, policy), "cancelled")
        if text == "2":
            return self.start_reschedule(session, appointment, trigger="cancel_reschedule_instead")
        if text == "3":
            return self._end(session, messages.appointment_kept(appointment.to_dict()), "kept")
        raise UserInputError(messages.invalid_cancel())
