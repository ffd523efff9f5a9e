import json
import logging
import time
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Lightweight structured logger that emits JSON log lines.

    Wraps a standard `logging.Logger` so existing handlers and formatters keep
    working while routing, transition and booking events stay machine-parseable.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def _log(
        self,
        level: str,
        event_type: str,
        message: str,
        user_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": time.time(),
            "event_type": event_type,
            "message": message,
        }

        if user_id is not None:
            entry["user_id"] = user_id

        if data:
            entry["data"] = dict(data)

        log_method = getattr(self.logger, level.lower(), self.logger.info)
        log_method(json.dumps(entry, default=str))

    # ------------------------------------------------------------------ #
    # Public helpers
    # ------------------------------------------------------------------ #

    def event(
        self,
        user_id: Optional[str],
        event_type: str,
        message: str,
        level: str = "INFO",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Generic structured event."""
        self._log(level=level, event_type=event_type, message=message, user_id=user_id, data=data)

    def route_decision(self, user_id: str, route: str, step: Optional[str]) -> None:
        self._log(
            level="INFO",
            event_type="route",
            message=f"{route} (step={step})",
            user_id=user_id,
            data={"route": route, "step": step},
        )

    def state_transition(
        self,
        user_id: str,
        old_state: Optional[str],
        new_state: Optional[str],
        trigger: str,
    ) -> None:
        """Structured log for state transitions."""
        self._log(
            level="INFO",
            event_type="state_transition",
            message=f"{old_state} -> {new_state} ({trigger})",
            user_id=user_id,
            data={"old_state": old_state, "new_state": new_state, "trigger": trigger},
        )

    def booking(self, user_id: str, appointment_id: str, doctor: str, created: bool) -> None:
        self._log(
            level="INFO",
            event_type="booking",
            message=f"{'Created' if created else 'Reused'} appointment {appointment_id} with {doctor}",
            user_id=user_id,
            data={"appointment_id": appointment_id, "doctor": doctor, "created": created},
        )

    def escalation(self, user_id: str, reason: str) -> None:
        self._log(
            level="WARNING",
            event_type="escalation",
            message=f"Staff escalation: {reason}",
            user_id=user_id,
            data={"reason": reason},
        )
