"""
Tests for inbound message routing: emergency override, global commands,
conversation start and step continuation.
"""

import pytest

from ..models import ConversationStep, GlobalCommand, RouteKind
from ..router import classify, is_emergency, match_command
from .conftest import PHONE, drive

S = ConversationStep


class TestClassification:
    """Pure classification, no side effects"""

    @pytest.mark.parametrize("text", [
        "emergency chest pain",
        "URGENT please",
        "my father had a Stroke",
        "call 108",
        "dial 911 now",
        "there's a lot of bleeding",
    ])
    def test_emergency_keywords(self, text):
        assert is_emergency(text)

    @pytest.mark.parametrize("text", [
        "Ravi Kumar\n9811122233",
        "25/10/2026",
        "1",
        "fever and cold",
    ])
    def test_non_emergencies(self, text):
        assert not is_emergency(text)

    def test_help_is_a_command_not_an_emergency(self):
        assert not is_emergency("help")
        assert match_command("help") is GlobalCommand.HELP

    @pytest.mark.parametrize("text,command", [
        ("menu", GlobalCommand.MENU),
        ("  Options ", GlobalCommand.MENU),
        ("My   Appointments", GlobalCommand.STATUS),
        ("doctor list", GlobalCommand.DOCTORS),
        ("charges", GlobalCommand.FEES),
        ("location", GlobalCommand.DIRECTIONS),
    ])
    def test_command_aliases(self, text, command):
        assert match_command(text) is command

    def test_commands_need_exact_match(self):
        assert match_command("book dr smith") is None

    def test_emergency_beats_command(self, engine):
        session = engine.new_session(PHONE, "Asha")
        assert classify("cancel, emergency!", session) == (RouteKind.EMERGENCY, None)

    def test_no_session_starts_conversation(self):
        assert classify("4", None) == (RouteKind.CONVERSATION_START, None)

    def test_greeting_restarts_existing_session(self, engine):
        session = engine.new_session(PHONE, "Asha")
        assert classify("Hello", session)[0] is RouteKind.CONVERSATION_START

    def test_step_continuation(self, engine):
        session = engine.new_session(PHONE, "Asha")
        assert classify("1", session) == (RouteKind.STEP_CONTINUATION, None)


class TestEmergency:
    """Emergency keywords preempt any step"""

    @pytest.mark.parametrize("prefix", [
        (),
        ("hi",),
        ("hi", "1"),
        ("hi", "1", "4"),
        ("hi", "1", "4", "1"),
        ("hi", "1", "4", "1", "1"),
    ])
    def test_emergency_clears_session(self, router, sessions, components, prefix):
        drive(router, *prefix)
        result = drive(router, "emergency chest pain")

        assert result.route is RouteKind.EMERGENCY
        assert result.ended is True
        assert "MEDICAL EMERGENCY DETECTED" in result.reply
        assert PHONE not in sessions
        assert components["analytics"].escalations["EMERGENCY"] == 1

    def test_hi_after_emergency_is_fresh_welcome(self, router, sessions):
        drive(router, "hi", "1", "4")
        drive(router, "emergency chest pain")

        result = drive(router, "hi")
        assert result.route is RouteKind.CONVERSATION_START
        assert result.step == S.WELCOME_RESPONSE
        assert "Welcome to PinkHealth Clinic" in result.reply
        assert sessions.get(PHONE).data.selected_doctor_id is None


class TestGlobalCommands:
    """Commands work from any step and discard the current one"""

    def test_menu_ends_session(self, router, sessions):
        drive(router, "hi", "1", "4")
        result = drive(router, "menu")
        assert result.route is RouteKind.GLOBAL_COMMAND
        assert result.ended is True
        assert "Main Menu" in result.reply
        assert PHONE not in sessions

    def test_book_from_mid_flow(self, router, sessions):
        drive(router, "hi", "1", "4", "1")
        result = drive(router, "book")
        assert result.step == S.HEALTH_CONCERN
        assert sessions.get(PHONE).data.selected_slot is None

    def test_doctors_lists_catalog(self, router):
        result = drive(router, "doctors")
        assert result.step == S.DOCTOR_SELECTION
        assert "5. Dr. Emma Davis" in result.reply

    def test_status_without_appointments(self, router):
        result = drive(router, "status")
        assert result.ended is True
        assert "don't have any upcoming appointments" in result.reply

    def test_status_lists_active(self, router, store):
        drive(router, "hi", "1", "4", "2", "1")
        result = drive(router, "status")
        assert store.all()[0].appointment_id in result.reply

    def test_cancel_without_appointments(self, router, sessions):
        drive(router, "hi")
        result = drive(router, "cancel")
        assert result.ended is True
        assert PHONE not in sessions

    def test_cancel_command_targets_appointment(self, router, store):
        drive(router, "hi", "1", "4", "2", "1")
        result = drive(router, "cancel")
        assert result.step == S.CANCEL

        drive(router, "1")
        assert store.all()[0].status == "cancelled"

    def test_cancel_prefers_managed_appointment(self, router, store):
        drive(router, "hi", "1", "4", "2", "1")
        drive(router, "book", "4", "3", "1")
        later = max(store.all(), key=lambda a: a.date)

        drive(router, "hi", "2")
        drive(router, "cancel", "1")

        assert store.get(later.appointment_id).status == "cancelled"
        assert sum(1 for a in store.all() if a.is_active) == 1

    def test_reschedule_command(self, router):
        drive(router, "hi", "1", "4", "2", "1")
        result = drive(router, "reschedule")
        assert result.step == S.RESCHEDULE
        assert "Current Appointment" in result.reply

    def test_help_escalates(self, router, components):
        drive(router, "hi", "1")
        result = drive(router, "help")
        assert result.ended is True
        assert "Connecting you to our clinic staff" in result.reply
        assert components["analytics"].escalations["HELP_REQUEST"] == 1

    @pytest.mark.parametrize("command,expected", [
        ("directions", "Location"),
        ("today", "Today's Schedule"),
        ("tomorrow", "Tomorrow's Availability"),
        ("history", "Appointment History"),
        ("fees", "Consultation Charges"),
    ])
    def test_informational_commands(self, router, sessions, command, expected):
        drive(router, "hi")
        result = drive(router, command)
        assert expected in result.reply
        assert result.ended is True
        assert PHONE not in sessions

    def test_today_shows_own_appointment(self, router):
        drive(router, "hi", "1", "4", "1", "1")
        result = drive(router, "today")
        assert "2:30 PM - Dr. John Carter (confirmed)" in result.reply

    def test_fee_ranges(self, router):
        result = drive(router, "fees")
        assert "General Medicine:** ₹450 - ₹500" in result.reply
        assert "Cardiology:** ₹800" in result.reply
