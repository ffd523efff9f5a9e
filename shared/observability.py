"""
Observability Module for the Clinic Intake Service

Provides:
- Prometheus metric definitions for conversations, bookings and escalations
- Recording helpers used by the analytics collector
- Exposition helper for the /metrics endpoint
"""

import os
import logging
from typing import Optional

from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)

logger = logging.getLogger(__name__)

_metrics_initialized = False


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Counters
MESSAGES_TOTAL = Counter(
    'clinic_messages_total',
    'Messages handled by the intake service',
    ['direction']
)

ROUTES_TOTAL = Counter(
    'clinic_routes_total',
    'Inbound messages by router classification',
    ['route']
)

STEP_VISITS_TOTAL = Counter(
    'clinic_step_visits_total',
    'Messages processed per conversation step',
    ['step']
)

BOOKINGS_TOTAL = Counter(
    'clinic_bookings_total',
    'Appointments created',
    ['doctor', 'specialty']
)

CANCELLATIONS_TOTAL = Counter(
    'clinic_cancellations_total',
    'Appointments cancelled'
)

RESCHEDULES_TOTAL = Counter(
    'clinic_reschedules_total',
    'Appointments rescheduled'
)

ESCALATIONS_TOTAL = Counter(
    'clinic_escalations_total',
    'Conversations escalated to staff',
    ['reason']
)

BACKGROUND_FAILURES_TOTAL = Counter(
    'clinic_background_failures_total',
    'Background sends, sink deliveries and persistence writes that failed',
    ['task']
)

# Histograms
PROCESSING_DURATION = Histogram(
    'clinic_message_processing_seconds',
    'Time from inbound message to reply',
    ['route'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)

# Gauges
ACTIVE_SESSIONS = Gauge(
    'clinic_active_sessions',
    'Number of live conversation sessions'
)

# Service info
SERVICE_INFO = Info(
    'clinic_service',
    'Service information'
)


def setup_metrics(service_name: str, service_version: str = "1.0.0"):
    """
    Publish service info once per process.

    Args:
        service_name: Name of the service
        service_version: Version string
    """
    global _metrics_initialized

    if _metrics_initialized:
        return

    SERVICE_INFO.info({
        'service': service_name,
        'version': service_version,
        'environment': os.getenv('DEPLOYMENT_ENV', 'development')
    })
    _metrics_initialized = True
    logger.info(f" Prometheus metrics initialized for {service_name}")


def get_metrics_response():
    """
    Get Prometheus metrics as HTTP response content.

    Returns:
        Tuple of (content_bytes, content_type) for HTTP response
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


# =============================================================================
# Metric Recording Utilities
# =============================================================================

def record_message(direction: str):
    """direction: inbound or outbound"""
    MESSAGES_TOTAL.labels(direction=direction).inc()


def record_route(route: str, duration_seconds: Optional[float] = None):
    ROUTES_TOTAL.labels(route=route).inc()
    if duration_seconds is not None:
        PROCESSING_DURATION.labels(route=route).observe(duration_seconds)


def record_step_visit(step: str):
    STEP_VISITS_TOTAL.labels(step=step).inc()


def record_booking(doctor: str, specialty: str):
    BOOKINGS_TOTAL.labels(doctor=doctor, specialty=specialty).inc()


def record_cancellation():
    CANCELLATIONS_TOTAL.inc()


def record_reschedule():
    RESCHEDULES_TOTAL.inc()


def record_escalation(reason: str):
    ESCALATIONS_TOTAL.labels(reason=reason).inc()


def record_background_failure(task: str):
    BACKGROUND_FAILURES_TOTAL.labels(task=task).inc()


def set_active_sessions(count: int):
    ACTIVE_SESSIONS.set(count)

