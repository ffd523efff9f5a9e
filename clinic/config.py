"""
Configuration for the PinkHealth Clinic Intake Service

All settings are read from CLINIC_* environment variables. Invalid numeric
values fall back to their defaults with a warning rather than aborting startup.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


@dataclass
class ClinicConfig:
    """
    Configuration for the clinic intake service.

    Attributes:
        redis_url: Redis connection URL (default: redis://localhost:6379/0)
        session_idle_timeout: Seconds of inactivity before a session is swept (default: 1800 = 30min)
        sweep_interval: Seconds between idle sweeps (default: 60)
        send_timeout: Bound on each outbound message send (default: 5.0)
        sink_timeout: Bound on each notification sink delivery (default: 5.0)
        persistence_timeout: Bound on each repository write (default: 3.0)
        gateway_url: Messaging gateway endpoint; None logs replies instead of sending
        payment_link_base: Prefix for generated payment links
        notification_stream: Redis stream that receives booking/escalation events
        demo_mode: Skip Redis persistence entirely (default: False)
        dashboard_placeholder: Return one flagged placeholder record when no appointments exist
        log_state_transitions: Log FSM state transitions (default: True)
        log_level: Root log level for the service
    """

    redis_url: str = "redis://localhost:6379/0"
    session_idle_timeout: int = 1800
    sweep_interval: int = 60
    send_timeout: float = 5.0
    sink_timeout: float = 5.0
    persistence_timeout: float = 3.0
    gateway_url: Optional[str] = None
    payment_link_base: str = "https://razorpay.me/pinkhealth"
    notification_stream: str = "clinic:notifications"
    demo_mode: bool = False
    dashboard_placeholder: bool = False
    log_state_transitions: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.session_idle_timeout <= 0:
            raise ValueError(
                f"session_idle_timeout must be positive, got {self.session_idle_timeout}"
            )

        if self.sweep_interval <= 0:
            raise ValueError(
                f"sweep_interval must be positive, got {self.sweep_interval}"
            )

        for name in ("send_timeout", "sink_timeout", "persistence_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if not self.redis_url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(
                f"redis_url must start with redis://, rediss://, or unix://, got {self.redis_url}"
            )

        self.payment_link_base = self.payment_link_base.rstrip("/")

        if self.log_state_transitions:
            logger.info(
                f" ClinicConfig loaded: redis_url={self.redis_url}, "
                f"idle_timeout={self.session_idle_timeout}s, sweep_interval={self.sweep_interval}s, "
                f"demo_mode={self.demo_mode}, gateway={'set' if self.gateway_url else 'log-only'}"
            )

    @staticmethod
    def from_env() -> "ClinicConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            CLINIC_REDIS_URL: Full Redis URL (overrides host/port/db)
            CLINIC_REDIS_HOST: Redis host (default: localhost)
            CLINIC_REDIS_PORT: Redis port (default: 6379)
            CLINIC_REDIS_DB: Redis database (default: 0)
            CLINIC_SESSION_IDLE_TIMEOUT: Idle timeout in seconds (default: 1800)
            CLINIC_SWEEP_INTERVAL: Sweep interval in seconds (default: 60)
            CLINIC_SEND_TIMEOUT: Outbound send timeout (default: 5.0)
            CLINIC_SINK_TIMEOUT: Notification sink timeout (default: 5.0)
            CLINIC_PERSISTENCE_TIMEOUT: Repository write timeout (default: 3.0)
            CLINIC_GATEWAY_URL: Messaging gateway endpoint (optional)
            CLINIC_PAYMENT_LINK_BASE: Payment link prefix
            CLINIC_NOTIFICATION_STREAM: Redis stream for events
            CLINIC_DEMO_MODE: Disable Redis persistence (default: false)
            CLINIC_DASHBOARD_PLACEHOLDER: Flagged placeholder when empty (default: false)
            CLINIC_LOG_STATE_TRANSITIONS: Log state transitions (default: true)
            CLINIC_LOG_LEVEL: Log level (default: INFO)

        Returns:
            ClinicConfig instance loaded from environment
        """
        redis_url = os.getenv("CLINIC_REDIS_URL")
        if not redis_url:
            redis_host = os.getenv("CLINIC_REDIS_HOST", "localhost")
            redis_port = _env_int("CLINIC_REDIS_PORT", 6379)
            redis_db = _env_int("CLINIC_REDIS_DB", 0)
            redis_url = f"redis://{redis_host}:{redis_port}/{redis_db}"

        return ClinicConfig(
            redis_url=redis_url,
            session_idle_timeout=_env_int("CLINIC_SESSION_IDLE_TIMEOUT", 1800),
            sweep_interval=_env_int("CLINIC_SWEEP_INTERVAL", 60),
            send_timeout=_env_float("CLINIC_SEND_TIMEOUT", 5.0),
            sink_timeout=_env_float("CLINIC_SINK_TIMEOUT", 5.0),
            persistence_timeout=_env_float("CLINIC_PERSISTENCE_TIMEOUT", 3.0),
            gateway_url=os.getenv("CLINIC_GATEWAY_URL") or None,
            payment_link_base=os.getenv("CLINIC_PAYMENT_LINK_BASE", "https://razorpay.me/pinkhealth"),
            notification_stream=os.getenv("CLINIC_NOTIFICATION_STREAM", "clinic:notifications"),
            demo_mode=_env_bool("CLINIC_DEMO_MODE", False),
            dashboard_placeholder=_env_bool("CLINIC_DASHBOARD_PLACEHOLDER", False),
            log_state_transitions=_env_bool("CLINIC_LOG_STATE_TRANSITIONS", True),
            log_level=os.getenv("CLINIC_LOG_LEVEL", "INFO").upper(),
        )
