"""
Health Check Utilities for the Clinic Intake Service

All health checks return HealthCheckResult with standardized status codes:
- "healthy": Dependency is fully operational
- "degraded": Dependency answers but with issues
- "unhealthy": Dependency is not reachable

Usage:
    from shared.health_check import check_redis_health

    result = await check_redis_health(redis_client)
    if result.is_healthy():
        print(f"Redis is healthy (latency: {result.latency_ms}ms)")
"""

import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .redis_client import ping_redis

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    """
    Standardized health check result.

    Attributes:
        service_name: Name of the dependency being checked
        status: "healthy", "unhealthy", or "degraded"
        latency_ms: Response time in milliseconds
        details: Additional information (error messages, metrics, etc.)
        timestamp: Unix timestamp when check was performed
    """
    service_name: str
    status: str
    latency_ms: float
    details: Dict[str, Any]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def is_healthy(self) -> bool:
        return self.status == "healthy"


async def check_redis_health(redis_client: Optional[Any]) -> HealthCheckResult:
    """
    Check Redis connectivity.

    Args:
        redis_client: Redis client instance, or None when the service runs
            without Redis (demo mode or failed startup connection)

    Returns:
        HealthCheckResult: "unhealthy" when there is no client or PING fails
    """
    start_time = time.time()

    if redis_client is None:
        return HealthCheckResult(
            service_name="redis",
            status="unhealthy",
            latency_ms=0.0,
            details={"error": "Redis client not initialized"},
            timestamp=time.time(),
        )

    try:
        ping_success = await ping_redis(redis_client)
        latency_ms = (time.time() - start_time) * 1000
        if not ping_success:
            return HealthCheckResult(
                service_name="redis",
                status="unhealthy",
                latency_ms=latency_ms,
                details={"error": "PING command failed"},
                timestamp=time.time(),
            )

        return HealthCheckResult(
            service_name="redis",
            status="healthy" if latency_ms < 500 else "degraded",
            latency_ms=latency_ms,
            details={},
            timestamp=time.time(),
        )

    except Exception as e:
        latency_ms = (time.time() - start_time) * 1000
        logger.error(f"Redis health check failed: {e}")
        return HealthCheckResult(
            service_name="redis",
            status="unhealthy",
            latency_ms=latency_ms,
            details={"error": str(e)},
            timestamp=time.time(),
        )
