"""
Deduplicated dashboard view

Appointments can be visible in three places at once: the appointment store,
the data bag of a session sitting at post-booking, and the snapshots projected
onto patient records. The dashboard reads all of them through one merge so
every appointment shows up exactly once.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from clinic.analytics import AnalyticsCollector
from clinic.appointments import AppointmentStore, PatientRegistry
from clinic.models import AppointmentStatus, ConversationStep
from clinic.sessions import SessionStore
from clinic.steps import parse_time

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Source = Tuple[str, Iterable[Record]]

STORE_SOURCE = "store"
SESSION_SOURCE = "session"
HISTORY_SOURCE = "history"


def dedup_key(record: Record) -> Optional[Tuple[str, str, str, str]]:
    """(phone, date, time, doctor) identity; None when any part is missing"""
    phone = record.get("phone")
    day = record.get("date")
    time_ = record.get("time")
    doctor = record.get("doctor_name")
    if not phone or not day or not time_ or not doctor:
        return None
    return (
        str(phone),
        str(day).strip()[:10].lower(),
        str(time_).strip().lower(),
        str(doctor).strip().lower(),
    )


def _fill_missing(target: Record, other: Record) -> None:
    for key, value in other.items():
        if target.get(key) in (None, "") and value not in (None, ""):
            target[key] = value


def merge_appointments(sources: Sequence[Source]) -> List[Record]:
    """
    Merge appointment records from several sources.

    Sources are given in precedence order. A record matches an earlier one by
    appointment_id when both carry one, otherwise by (phone, date, time, doctor).
    Fields already set by a higher-precedence source are never overwritten;
    lower-precedence sources only fill gaps.

    Returns:
        Merged records in first-seen order, each tagged with its winning source
    """
    merged: List[Record] = []
    by_id: Dict[str, Record] = {}
    by_key: Dict[Tuple[str, str, str, str], Record] = {}

    for source_name, records in sources:
        for record in records:
            appointment_id = record.get("appointment_id")
            key = dedup_key(record)

            existing = by_id.get(appointment_id) if appointment_id else None
            if existing is None and key is not None:
                existing = by_key.get(key)

            if existing is not None:
                _fill_missing(existing, record)
            else:
                existing = dict(record)
                existing["source"] = source_name
                merged.append(existing)

            if existing.get("appointment_id"):
                by_id.setdefault(existing["appointment_id"], existing)
            if key is not None:
                by_key.setdefault(key, existing)

    return merged


def _day_offset(record: Record, today: date) -> Optional[int]:
    """Calendar days from today; literal Today/Tomorrow labels are taken as-is"""
    raw = record.get("date")
    label = str(record.get("day_label") or "").strip().lower()
    if isinstance(raw, str) and raw.strip().lower() in ("today", "tomorrow"):
        label = raw.strip().lower()
        raw = None

    if raw:
        try:
            return (date.fromisoformat(str(raw)[:10]) - today).days
        except ValueError:
            logger.debug(f"Unparseable appointment date {raw!r}")
    if label == "today":
        return 0
    if label == "tomorrow":
        return 1
    return None


def _time_order(record: Record) -> Tuple[int, int]:
    try:
        return parse_time(str(record.get("time") or ""))
    except ValueError:
        return (24, 0)


class AppointmentView:
    """Read-only dashboard projections over the in-memory stores"""

    def __init__(
        self,
        store: AppointmentStore,
        sessions: SessionStore,
        patients: PatientRegistry,
        analytics: AnalyticsCollector,
        placeholder: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.sessions = sessions
        self.patients = patients
        self.analytics = analytics
        self.placeholder = placeholder
        self._clock = clock

    def _session_records(self) -> List[Record]:
        return [
            dict(session.data.last_appointment)
            for session in self.sessions.sessions()
            if session.data.last_appointment
        ]

    def _history_records(self) -> List[Record]:
        return [
            dict(snapshot)
            for record in self.patients.all()
            for snapshot in record.appointments
        ]

    def collect(self) -> List[Record]:
        return merge_appointments([
            (STORE_SOURCE, [a.to_dict() for a in self.store.all()]),
            (SESSION_SOURCE, self._session_records()),
            (HISTORY_SOURCE, self._history_records()),
        ])

    def _placeholder_record(self, today: date) -> Record:
        return {
            "appointment_id": None,
            "patient_name": "No appointments yet",
            "doctor_name": None,
            "date": today.isoformat(),
            "day_label": "Today",
            "time": None,
            "status": None,
            "is_placeholder": True,
        }

    def list_appointments(self) -> Dict[str, Any]:
        """
        Today's and tomorrow's appointments plus summary stats.

        Cancelled appointments are counted in stats but left out of the buckets.
        """
        now = self._clock()
        today = now.date()
        records = self.collect()

        buckets: Dict[str, List[Record]] = {"today": [], "tomorrow": []}
        stats = {"total": len(records), "today": 0, "tomorrow": 0, "this_week": 0, "confirmed": 0, "cancelled": 0}

        for record in records:
            status = record.get("status")
            if status == AppointmentStatus.CANCELLED.value:
                stats["cancelled"] += 1
            else:
                stats["confirmed"] += 1

            offset = _day_offset(record, today)
            if offset is None:
                continue
            if 0 <= offset < 7:
                stats["this_week"] += 1
            if offset == 0:
                stats["today"] += 1
            elif offset == 1:
                stats["tomorrow"] += 1

            if status == AppointmentStatus.CANCELLED.value:
                continue
            if offset == 0:
                buckets["today"].append(record)
            elif offset == 1:
                buckets["tomorrow"].append(record)

        for bucket in buckets.values():
            bucket.sort(key=_time_order)

        is_placeholder = not records
        if is_placeholder and self.placeholder:
            buckets["today"].append(self._placeholder_record(today))

        return {
            "today": buckets["today"],
            "tomorrow": buckets["tomorrow"],
            "stats": stats,
            "is_placeholder": is_placeholder,
            "timestamp": now.isoformat(),
        }

    def search_patients(self, query: str) -> Dict[str, Any]:
        results = [record.to_dict() for record in self.patients.search(query)]
        return {
            "query": query,
            "results": results,
            "count": len(results),
            "timestamp": self._clock().isoformat(),
        }

    def activity_feed(self, limit: int = 20) -> Dict[str, Any]:
        activities = self.analytics.activity_feed(limit)
        return {
            "activities": activities,
            "count": len(activities),
            "timestamp": self._clock().isoformat(),
        }

    def metrics(self) -> Dict[str, Any]:
        snapshot = self.analytics.get_metrics()
        snapshot["sessions"] = {
            "active": len(self.sessions),
            "at_post_booking": sum(
                1 for s in self.sessions.sessions() if s.step is ConversationStep.POST_BOOKING
            ),
        }
        snapshot["appointments"]["stored"] = len(self.store)
        return snapshot
