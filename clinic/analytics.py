"""
Conversation and booking analytics.

In-process counters feeding the operator dashboard; every counter is also
mirrored to the Prometheus registry in `shared.observability`.
"""

import logging
import time
from collections import Counter, OrderedDict, deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from shared import observability

logger = logging.getLogger(__name__)

DAILY_BUCKETS = 7


class AnalyticsCollector:
    """
    Counters for messages, routing, steps, bookings and escalations.

    Args:
        activity_limit: Size of the recent-activity ring buffer
        clock: Returns "now" as a datetime (injectable for tests)
    """

    def __init__(self, activity_limit: int = 50, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self.start_time = time.time()

        self.inbound_messages = 0
        self.outbound_messages = 0
        self.unique_users: Set[str] = set()
        self.routes: Counter = Counter()
        self.step_visits: Counter = Counter()
        self.bookings_by_doctor: Counter = Counter()
        self.bookings_by_specialty: Counter = Counter()
        self.appointments_booked = 0
        self.cancellations = 0
        self.reschedules = 0
        self.escalations: Counter = Counter()
        self.peak_hours: Counter = Counter()
        self._daily: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._processing_total = 0.0
        self._processing_count = 0
        self._activity: Deque[Dict[str, Any]] = deque(maxlen=activity_limit)

    # ------------------------------------------------------------------ #
    # Tracking
    # ------------------------------------------------------------------ #

    def _day_bucket(self, now: datetime) -> Dict[str, Any]:
        key = now.date().isoformat()
        bucket = self._daily.get(key)
        if bucket is None:
            bucket = {"messages": 0, "bookings": 0, "users": set()}
            self._daily[key] = bucket
            while len(self._daily) > DAILY_BUCKETS:
                self._daily.popitem(last=False)
        return bucket

    def track_inbound(self, user_id: str, display_name: str, text: str) -> None:
        now = self._clock()
        self.inbound_messages += 1
        self.unique_users.add(user_id)
        self.peak_hours[now.hour] += 1
        bucket = self._day_bucket(now)
        bucket["messages"] += 1
        bucket["users"].add(user_id)
        self._activity.append({
            "user_id": user_id,
            "display_name": display_name,
            "message": text[:100],
            "timestamp": now.isoformat(),
        })
        observability.record_message("inbound")

    def track_outbound(self) -> None:
        self.outbound_messages += 1
        observability.record_message("outbound")

    def track_route(self, route: str, duration_seconds: Optional[float] = None) -> None:
        self.routes[route] += 1
        if duration_seconds is not None:
            self._processing_total += duration_seconds
            self._processing_count += 1
        observability.record_route(route, duration_seconds)

    def track_step(self, step: str) -> None:
        self.step_visits[step] += 1
        observability.record_step_visit(step)

    def track_booking(self, doctor_name: str, specialty: str) -> None:
        self.appointments_booked += 1
        self.bookings_by_doctor[doctor_name] += 1
        self.bookings_by_specialty[specialty] += 1
        self._day_bucket(self._clock())["bookings"] += 1
        observability.record_booking(doctor_name, specialty)
        logger.info(f" Analytics: appointment booked (total: {self.appointments_booked})")

    def track_cancellation(self) -> None:
        self.cancellations += 1
        observability.record_cancellation()

    def track_reschedule(self) -> None:
        self.reschedules += 1
        observability.record_reschedule()

    def track_escalation(self, reason: str) -> None:
        self.escalations[reason] += 1
        observability.record_escalation(reason)
        logger.info(f" Analytics: staff escalation tracked ({reason})")

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    @staticmethod
    def _percent(part: int, whole: int, digits: int = 1) -> str:
        if whole <= 0:
            return "0%"
        return f"{part / whole * 100:.{digits}f}%"

    def activity_feed(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent inbound messages, newest first"""
        return list(reversed(self._activity))[:limit]

    def get_metrics(self) -> Dict[str, Any]:
        uptime_minutes = int((time.time() - self.start_time) // 60)
        mean_ms = (
            self._processing_total / self._processing_count * 1000
            if self._processing_count else 0.0
        )
        escalations_total = sum(self.escalations.values())

        return {
            "overview": {
                "total_messages": self.inbound_messages,
                "outbound_messages": self.outbound_messages,
                "appointments_booked": self.appointments_booked,
                "unique_users": len(self.unique_users),
                "conversion_rate": self._percent(self.appointments_booked, self.inbound_messages, 2),
                "uptime": f"{uptime_minutes} minutes",
                "avg_processing_ms": round(mean_ms, 2),
            },
            "appointments": {
                "booked": self.appointments_booked,
                "cancelled": self.cancellations,
                "rescheduled": self.reschedules,
                "cancellation_rate": self._percent(self.cancellations, self.appointments_booked),
            },
            "popular": {
                "doctors": dict(self.bookings_by_doctor),
                "specialties": dict(self.bookings_by_specialty),
                "peak_hours": [
                    {"hour": f"{hour}:00", "messages": count}
                    for hour, count in self.peak_hours.most_common(3)
                ],
            },
            "support": {
                "staff_escalations": escalations_total,
                "by_reason": dict(self.escalations),
                "escalation_rate": self._percent(escalations_total, self.inbound_messages, 2),
            },
            "routes": dict(self.routes),
            "conversation_flow": dict(self.step_visits),
            "daily": [
                {
                    "date": day,
                    "messages": bucket["messages"],
                    "bookings": bucket["bookings"],
                    "unique_users": len(bucket["users"]),
                }
                for day, bucket in self._daily.items()
            ],
            "timestamp": self._clock().isoformat(),
        }
