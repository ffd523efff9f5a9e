"""
Tests for the deduplicated dashboard view.
"""

import pytest

from ..reconciliation import AppointmentView, dedup_key, merge_appointments, _day_offset
from .conftest import NOW, PHONE, drive


def record(**overrides):
    base = {
        "appointment_id": "APT1-1-3210",
        "phone": PHONE,
        "patient_name": "Asha",
        "doctor_name": "Dr. John Carter",
        "time": "2:30 PM",
        "date": "2026-10-19",
        "day_label": "Today",
        "status": "confirmed",
    }
    base.update(overrides)
    return base


@pytest.fixture
def view(components, fixed_now):
    return AppointmentView(
        components["store"],
        components["sessions"],
        components["patients"],
        components["analytics"],
        clock=fixed_now,
    )


class TestMergeAppointments:
    """The single merge function and its tie-break policy"""

    def test_dedup_key_normalizes(self):
        assert dedup_key(record(date="2026-10-19T14:30:00", time=" 2:30 pm ", doctor_name="DR. JOHN CARTER")) == (
            PHONE, "2026-10-19", "2:30 pm", "dr. john carter"
        )
        assert dedup_key(record(phone=None)) is None
        assert dedup_key(record(date=None)) is None

    def test_same_id_across_sources_collapses(self):
        merged = merge_appointments([
            ("store", [record()]),
            ("session", [record()]),
            ("history", [record()]),
        ])
        assert len(merged) == 1
        assert merged[0]["source"] == "store"

    def test_higher_precedence_wins_conflicts(self):
        merged = merge_appointments([
            ("store", [record(status="cancelled")]),
            ("history", [record(status="confirmed")]),
        ])
        assert merged[0]["status"] == "cancelled"

    def test_lower_precedence_fills_gaps(self):
        merged = merge_appointments([
            ("store", [record(patient_name=None)]),
            ("history", [record(patient_name="Asha", fee=800)]),
        ])
        assert merged[0]["patient_name"] == "Asha"
        assert merged[0]["fee"] == 800

    def test_records_without_id_match_by_key(self):
        merged = merge_appointments([
            ("store", [record()]),
            ("session", [record(appointment_id=None, time="2:30 pm")]),
        ])
        assert len(merged) == 1

    def test_same_slot_on_different_days_stays_separate(self):
        merged = merge_appointments([
            ("store", [
                record(appointment_id="APT1", date="2026-10-20", day_label="Tomorrow"),
                record(appointment_id="APT2", date="2026-10-19"),
            ]),
            ("history", [record(appointment_id=None, date="2026-10-19")]),
        ])
        assert [m["appointment_id"] for m in merged] == ["APT1", "APT2"]

    def test_different_slots_stay_separate(self):
        merged = merge_appointments([
            ("store", [record(), record(appointment_id="APT2", time="10:00 AM")]),
        ])
        assert len(merged) == 2

    @pytest.mark.parametrize("fields,expected", [
        ({"date": "2026-10-19"}, 0),
        ({"date": "2026-10-20T10:00:00"}, 1),
        ({"date": "Today", "day_label": None}, 0),
        ({"date": "Tomorrow", "day_label": None}, 1),
        ({"date": None, "day_label": "Tomorrow"}, 1),
        ({"date": "someday", "day_label": None}, None),
    ])
    def test_day_offset(self, fields, expected):
        assert _day_offset(record(**fields), NOW.date()) == expected


class TestAppointmentView:
    """Dashboard projections"""

    def test_empty_view_is_flagged(self, view):
        listing = view.list_appointments()
        assert listing["today"] == []
        assert listing["tomorrow"] == []
        assert listing["is_placeholder"] is True
        assert listing["stats"]["total"] == 0

    def test_placeholder_record_is_flagged(self, view):
        view.placeholder = True
        listing = view.list_appointments()
        assert len(listing["today"]) == 1
        assert listing["today"][0]["is_placeholder"] is True
        assert listing["stats"]["total"] == 0

    def test_booking_appears_once(self, view, router):
        drive(router, "hi", "1", "4", "1", "1")

        listing = view.list_appointments()
        assert listing["is_placeholder"] is False
        assert len(listing["today"]) == 1
        assert listing["today"][0]["doctor_name"] == "Dr. John Carter"
        assert listing["today"][0]["source"] == "store"
        assert listing["stats"] == {
            "total": 1, "today": 1, "tomorrow": 0, "this_week": 1, "confirmed": 1, "cancelled": 0,
        }

    def test_replayed_booking_appears_once(self, view, router, store):
        drive(router, "hi", "1", "4", "1", "1")
        result = drive(router, "book", "4", "1", "1")

        assert "already have this appointment booked" in result.reply
        assert len(store) == 1
        assert len(view.list_appointments()["today"]) == 1

    def test_rescheduled_and_rebooked_slot_both_listed(self, view, router, store):
        drive(router, "hi", "1", "4", "1", "1")
        drive(router, "reschedule", "1", "1")
        drive(router, "book", "4", "1", "1")

        assert sorted(a.date for a in store.all()) == ["2026-10-19", "2026-10-20"]
        listing = view.list_appointments()
        assert [r["time"] for r in listing["today"]] == ["2:30 PM"]
        assert [r["time"] for r in listing["tomorrow"]] == ["2:30 PM"]
        assert listing["stats"]["total"] == 2

    def test_cancelled_counted_but_not_listed(self, view, router):
        drive(router, "hi", "1", "4", "2", "1")
        drive(router, "cancel", "1")

        listing = view.list_appointments()
        assert listing["tomorrow"] == []
        assert listing["stats"]["cancelled"] == 1
        assert listing["stats"]["tomorrow"] == 1

    def test_buckets_sorted_by_time(self, view, router):
        drive(router, "hi", "1", "1", "1", "1")
        drive(router, "book", "4", "1", "1")

        times = [r["time"] for r in view.list_appointments()["today"]]
        assert times == ["2:00 PM", "2:30 PM"]

    def test_search_patients(self, view, router):
        drive(router, "hi", "1", "4", "1", "1")

        assert view.search_patients("asha")["count"] == 1
        assert view.search_patients("3210")["count"] == 1
        assert view.search_patients("nobody")["count"] == 0
        assert view.search_patients("")["results"] == []

    def test_activity_feed_and_metrics(self, view, components, router):
        components["analytics"].track_inbound(PHONE, "Asha", "hi")
        drive(router, "hi", "1", "4", "1", "1")

        feed = view.activity_feed(limit=5)
        assert feed["count"] == 1
        assert feed["activities"][0]["message"] == "hi"

        metrics = view.metrics()
        assert metrics["overview"]["appointments_booked"] == 1
        assert metrics["sessions"]["active"] == 1
        assert metrics["sessions"]["at_post_booking"] == 1
        assert metrics["appointments"]["stored"] == 1
