"""
Inbound message router.

Classifies every message before any step handler sees it. Emergency keywords
win over everything, global commands win over step continuation, and a
greeting or a missing session starts a fresh conversation.
"""

import logging
import re
from typing import Callable, Dict, Optional, Tuple

from clinic import messages
from clinic.models import (
    COMMAND_ALIASES,
    EMERGENCY_KEYWORDS,
    GREETING_TOKENS,
    GlobalCommand,
    RouteKind,
    Session,
    StepResult,
)
from clinic.sessions import SessionStore
from clinic.steps import StepEngine
from clinic.structured_logger import StructuredLogger

logger = logging.getLogger(__name__)


# Digit keywords only match as whole tokens
_NUMERIC_KEYWORDS = re.compile(
    r"\b(?:" + "|".join(k for k in EMERGENCY_KEYWORDS if k.isdigit()) + r")\b"
)
_WORD_KEYWORDS = tuple(k for k in EMERGENCY_KEYWORDS if not k.isdigit())


def is_emergency(text: str) -> bool:
    lowered = text.lower()
    if any(keyword in lowered for keyword in _WORD_KEYWORDS):
        return True
    return _NUMERIC_KEYWORDS.search(lowered) is not None


def match_command(text: str) -> Optional[GlobalCommand]:
    return COMMAND_ALIASES.get(" ".join(text.lower().split()))


def classify(text: str, session: Optional[Session]) -> Tuple[RouteKind, Optional[GlobalCommand]]:
    """Pure classification; no side effects"""
    if is_emergency(text):
        return RouteKind.EMERGENCY, None
    command = match_command(text)
    if command is not None:
        return RouteKind.GLOBAL_COMMAND, command
    if session is None or session.patient_status is None or text.strip().lower() in GREETING_TOKENS:
        return RouteKind.CONVERSATION_START, None
    return RouteKind.STEP_CONTINUATION, None


class Router:
    """
    Applies the classification for one message.

    Must be called while holding the user's SessionStore lock.
    """

    def __init__(
        self,
        sessions: SessionStore,
        engine: StepEngine,
        structured_logger: Optional[StructuredLogger] = None,
    ):
        self.sessions = sessions
        self.engine = engine
        self.slog = structured_logger or StructuredLogger(logger)
        self._commands: Dict[GlobalCommand, Callable[[str, str, Optional[Session]], StepResult]] = {
            GlobalCommand.MENU: self._cmd_menu,
            GlobalCommand.BOOK: self._cmd_book,
            GlobalCommand.STATUS: self._cmd_status,
            GlobalCommand.CANCEL: self._cmd_cancel,
            GlobalCommand.RESCHEDULE: self._cmd_reschedule,
            GlobalCommand.DOCTORS: self._cmd_doctors,
            GlobalCommand.DIRECTIONS: self._cmd_directions,
            GlobalCommand.HELP: self._cmd_help,
            GlobalCommand.TODAY: self._cmd_today,
            GlobalCommand.TOMORROW: self._cmd_tomorrow,
            GlobalCommand.HISTORY: self._cmd_history,
            GlobalCommand.FEES: self._cmd_fees,
        }
        missing = set(GlobalCommand) - set(self._commands)
        if missing:
            raise RuntimeError(f"no handler for commands: {sorted(c.value for c in missing)}")

    def route(self, user_id: str, raw_text: str, display_name: str) -> StepResult:
        session = self.sessions.get(user_id)
        kind, command = classify(raw_text, session)
        self.slog.route_decision(user_id, kind.value, session.step.value if session else None)

        if kind is RouteKind.EMERGENCY:
            result = self._emergency(user_id, raw_text, display_name)
        elif kind is RouteKind.GLOBAL_COMMAND:
            result = self._commands[command](user_id, display_name, session)
        elif kind is RouteKind.CONVERSATION_START:
            result = self.engine.start_conversation(user_id, display_name)
        else:
            result = self.engine.handle(session, raw_text)

        self.sessions.touch(user_id)
        result.route = kind
        return result

    def _emergency(self, user_id: str, raw_text: str, display_name: str) -> StepResult:
        self.sessions.delete(user_id)
        self.engine.escalate(user_id, display_name, "EMERGENCY", raw_text)
        logger.warning(f" Emergency keywords from {user_id}; session cleared")
        return StepResult(reply=messages.emergency(), ended=True)

    # ------------------------------------------------------------------ #
    # Global commands. Each discards whatever step the user was in.
    # ------------------------------------------------------------------ #

    def _drop(self, user_id: str) -> None:
        self.sessions.delete(user_id)

    def _patient_name(self, user_id: str, display_name: str) -> str:
        record = self.engine.patients.get(user_id)
        return record.name if record else display_name

    def _cmd_menu(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        return StepResult(reply=messages.main_menu(), ended=True)

    def _cmd_book(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        fresh = self.engine.new_session(user_id, display_name)
        return self.engine.start_booking(fresh, trigger="command_book")

    def _pick_target(self, user_id: str, session: Optional[Session]):
        """Appointment the user was looking at, else their earliest upcoming one"""
        active = self.engine.active_appointments(user_id)
        if not active:
            return None
        preferred = session.data.target_appointment_id if session else None
        for appointment in active:
            if appointment.appointment_id == preferred:
                return appointment
        return min(active, key=lambda a: (a.date, a.created_at))

    def _cmd_cancel(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        target = self._pick_target(user_id, session)
        if target is None:
            self._drop(user_id)
            return StepResult(reply=messages.no_active_appointments(), ended=True)
        fresh = self.engine.new_session(user_id, display_name)
        return self.engine.start_cancel(fresh, target, trigger="command_cancel")

    def _cmd_reschedule(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        target = self._pick_target(user_id, session)
        if target is None:
            self._drop(user_id)
            return StepResult(reply=messages.no_active_appointments(), ended=True)
        fresh = self.engine.new_session(user_id, display_name)
        return self.engine.start_reschedule(fresh, target, trigger="command_reschedule")

    def _cmd_doctors(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        fresh = self.engine.new_session(user_id, display_name)
        return self.engine.show_doctor_list(fresh, trigger="command_doctors")

    def _cmd_status(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        active = [a.to_dict() for a in self.engine.active_appointments(user_id)]
        return StepResult(
            reply=messages.appointment_status(self._patient_name(user_id, display_name), active),
            ended=True,
        )

    def _cmd_directions(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        return StepResult(reply=messages.directions(), ended=True)

    def _cmd_help(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        step = session.step.value if session else "none"
        reply = self.engine.escalate(user_id, display_name, "HELP_REQUEST", f"requested help at step {step}")
        return StepResult(reply=reply, ended=True)

    def _cmd_today(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        today = self.engine.today.isoformat()
        own = [a.to_dict() for a in self.engine.appointments.for_phone(user_id) if a.date == today]
        open_slots = [
            (doctor, slot.time)
            for doctor in self.engine.catalog.all()
            for slot in doctor.slots
            if slot.day_offset == 0
        ]
        reply = messages.todays_schedule(self._patient_name(user_id, display_name), own, open_slots)
        return StepResult(reply=reply, ended=True)

    def _cmd_tomorrow(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        tomorrow = [
            (doctor, slot.time)
            for doctor in self.engine.catalog.all()
            for slot in doctor.slots
            if slot.day_offset == 1
        ]
        return StepResult(reply=messages.tomorrow_availability(tomorrow), ended=True)

    def _cmd_history(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        history = [a.to_dict() for a in self.engine.appointments.for_phone(user_id)]
        return StepResult(
            reply=messages.appointment_history(self._patient_name(user_id, display_name), history),
            ended=True,
        )

    def _cmd_fees(self, user_id: str, display_name: str, session: Optional[Session]) -> StepResult:
        self._drop(user_id)
        return StepResult(reply=messages.fee_structure(self.engine.catalog.fee_table()), ended=True)
