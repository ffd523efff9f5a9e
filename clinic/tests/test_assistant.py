"""
Tests for ClinicAssistant: per-user serialization, reply scheduling and
recovery from handler failures.
"""

import asyncio

import pytest

from ..models import ConversationStep, NotificationEvent, EscalationEvent, RouteKind
from .conftest import PHONE, RecordingTransport


async def send_all(assistant, *texts, user_id=PHONE):
    result = None
    for text in texts:
        result = await assistant.on_message(user_id, text, "Asha")
    return result


class TestMessageHandling:
    """End to end through on_message"""

    @pytest.mark.asyncio
    async def test_reply_is_sent_after_processing(self, assistant, transport):
        result = await assistant.on_message(PHONE, "hi", "Asha")
        await assistant.drain()

        assert result.route is RouteKind.CONVERSATION_START
        assert transport.sent == [(PHONE, result.reply)]
        assert assistant.analytics.outbound_messages == 1
        assert assistant.analytics.inbound_messages == 1

    @pytest.mark.asyncio
    async def test_booking_emits_exactly_one_notification(self, assistant, sink):
        await send_all(assistant, "hi", "1", "4", "1", "1")
        await assistant.drain()

        bookings = [e for e in sink.events if isinstance(e, NotificationEvent)]
        assert len(bookings) == 1
        assert bookings[0].doctor_name == "Dr. John Carter"
        assert len(assistant.list_appointments()["today"]) == 1

    @pytest.mark.asyncio
    async def test_emergency_notifies_staff(self, assistant, sink):
        await send_all(assistant, "hi", "1", "4")
        result = await assistant.on_message(PHONE, "emergency chest pain", "Asha")
        await assistant.drain()

        assert result.ended is True
        assert PHONE not in assistant.sessions
        escalations = [e for e in sink.events if isinstance(e, EscalationEvent)]
        assert escalations[0].reason == "EMERGENCY"
        assert escalations[0].message == "emergency chest pain"

        result = await assistant.on_message(PHONE, "hi", "Asha")
        assert "Welcome to PinkHealth Clinic" in result.reply
        assert result.step is ConversationStep.WELCOME_RESPONSE

    @pytest.mark.asyncio
    async def test_non_ascii_digit_reprompts_without_restart(self, assistant):
        await send_all(assistant, "hi", "1", "10")
        result = await assistant.on_message(PHONE, "²", "Asha")

        assert result.route is RouteKind.STEP_CONTINUATION
        assert result.step is ConversationStep.DOCTOR_SELECTION
        assert not result.reply.startswith("😔")
        assert assistant.sessions.get(PHONE).step is ConversationStep.DOCTOR_SELECTION

    @pytest.mark.asyncio
    async def test_missing_display_name_defaults(self, assistant):
        await assistant.on_message(PHONE, "hi")
        assert assistant.sessions.get(PHONE).display_name == "Patient"


class TestConcurrency:
    """Per-user serialization, cross-user parallelism"""

    @pytest.mark.asyncio
    async def test_simultaneous_confirmations_book_once(self, assistant):
        await send_all(assistant, "hi", "1", "4", "1")

        first, second = await asyncio.gather(
            assistant.on_message(PHONE, "1", "Asha"),
            assistant.on_message(PHONE, "1", "Asha"),
        )
        await assistant.drain()

        assert "Appointment Booked Successfully!" in first.reply
        assert "Add to Calendar" in second.reply
        assert len(assistant.store) == 1
        ids = {r["appointment_id"] for r in assistant.list_appointments()["today"]}
        assert len(ids) == 1

    @pytest.mark.asyncio
    async def test_two_users_book_the_same_slot(self, assistant):
        other = "+919812345678"
        await asyncio.gather(
            send_all(assistant, "hi", "1", "4", "1", "1"),
            send_all(assistant, "hi", "1", "4", "1", "1", user_id=other),
        )
        await assistant.drain()

        assert len(assistant.store) == 2
        assert {a.phone for a in assistant.store.all()} == {PHONE, other}
        assert len(assistant.list_appointments()["today"]) == 2

    @pytest.mark.asyncio
    async def test_sweep_does_not_interrupt_processing(self, assistant, session_clock):
        await send_all(assistant, "hi")
        session_clock.advance(assistant.config.session_idle_timeout + 1)

        async with assistant.sessions.locked(PHONE):
            sweep = asyncio.create_task(assistant.sweep())
            await asyncio.sleep(0)
            assert not sweep.done()
            assistant.sessions.touch(PHONE)

        assert await sweep == 0
        assert PHONE in assistant.sessions

    @pytest.mark.asyncio
    async def test_idle_session_is_swept(self, assistant, session_clock):
        await send_all(assistant, "hi", "1")
        session_clock.advance(assistant.config.session_idle_timeout + 1)

        assert await assistant.sweep() == 1
        result = await assistant.on_message(PHONE, "4", "Asha")
        assert result.route is RouteKind.CONVERSATION_START


class TestFailureRecovery:
    """Handler failures reset the conversation with an apology"""

    @pytest.mark.asyncio
    async def test_session_state_error_restarts(self, assistant):
        await send_all(assistant, "hi")
        assistant.sessions.get(PHONE).step = ConversationStep.POST_BOOKING

        result = await assistant.on_message(PHONE, "1", "Asha")

        assert result.route is RouteKind.CONVERSATION_START
        assert result.reply.startswith("😔 Sorry, something went wrong")
        assert "Welcome to PinkHealth Clinic" in result.reply
        assert assistant.sessions.get(PHONE).step is ConversationStep.WELCOME_RESPONSE

    @pytest.mark.asyncio
    async def test_unexpected_error_restarts(self, assistant, monkeypatch):
        await send_all(assistant, "hi", "1")

        def broken(specialty):
            raise RuntimeError("catalog exploded")

        monkeypatch.setattr(assistant.catalog, "recommend", broken)
        result = await assistant.on_message(PHONE, "4", "Asha")

        assert result.reply.startswith("😔 Sorry")
        assert assistant.sessions.get(PHONE).step is ConversationStep.WELCOME_RESPONSE

    @pytest.mark.asyncio
    async def test_failed_send_is_swallowed(self, test_config, fixed_now, session_clock):
        from ..assistant import ClinicAssistant

        failing = RecordingTransport(ok=False)
        assistant = ClinicAssistant(test_config, failing, clock=fixed_now, session_clock=session_clock)

        result = await assistant.on_message(PHONE, "hi", "Asha")
        await assistant.drain()

        assert result.step is ConversationStep.WELCOME_RESPONSE
        assert len(failing.sent) == 1
        assert assistant.analytics.outbound_messages == 0

    @pytest.mark.asyncio
    async def test_slow_send_times_out(self, test_config, fixed_now, session_clock):
        from ..assistant import ClinicAssistant

        class SlowTransport:
            async def send(self, user_id, text):
                await asyncio.sleep(10)

        test_config.send_timeout = 0.01
        assistant = ClinicAssistant(test_config, SlowTransport(), clock=fixed_now, session_clock=session_clock)

        await assistant.on_message(PHONE, "hi", "Asha")
        await assistant.drain()
        assert assistant.analytics.outbound_messages == 0

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stuck_tasks(self, test_config, fixed_now, session_clock):
        from ..assistant import ClinicAssistant

        class StuckTransport:
            async def send(self, user_id, text):
                await asyncio.sleep(10)

        test_config.send_timeout = 30
        assistant = ClinicAssistant(test_config, StuckTransport(), clock=fixed_now, session_clock=session_clock)

        await assistant.on_message(PHONE, "hi", "Asha")
        await assistant.shutdown(timeout=0.01)
        assert len(assistant.tasks) == 0
