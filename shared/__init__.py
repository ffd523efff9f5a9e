"""
Shared Utilities Module for the Clinic Intake Service

Infrastructure helpers used by the `clinic` package:
- Redis client factory and connection pooling
- Redis health check
- Event envelope and Redis Streams broker
- Prometheus metric definitions

Usage:
    from shared import get_redis_client, check_redis_health

    redis = await get_redis_client()
    health = await check_redis_health(redis)
    print(f"Redis status: {health.status}")
"""

from .redis_client import (
    get_redis_client,
    close_redis_client,
    ping_redis,
    RedisConfig,
)

from .health_check import (
    check_redis_health,
    HealthCheckResult,
)

from .events import (
    ClinicEvent,
    EventTypes,
)

from .event_broker import (
    EventBroker,
)

from .observability import (
    setup_metrics,
    get_metrics_response,
    record_message,
    record_route,
    record_step_visit,
    record_booking,
    record_cancellation,
    record_reschedule,
    record_escalation,
    record_background_failure,
    set_active_sessions,
)

__all__ = [
    # Redis client utilities
    "get_redis_client",
    "close_redis_client",
    "ping_redis",
    "RedisConfig",
    # Health check utilities
    "check_redis_health",
    "HealthCheckResult",
    # Event utilities
    "ClinicEvent",
    "EventTypes",
    "EventBroker",
    # Observability utilities
    "setup_metrics",
    "get_metrics_response",
    "record_message",
    "record_route",
    "record_step_visit",
    "record_booking",
    "record_cancellation",
    "record_reschedule",
    "record_escalation",
    "record_background_failure",
    "set_active_sessions",
]
