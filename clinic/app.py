"""
PinkHealth Clinic Intake Service - FastAPI Application

Inbound message webhook, session inspection and the staff dashboard API.
All conversation state lives in-process; Redis is optional and only backs
appointment persistence and the notification stream.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI, HTTPException, Query, Response

from clinic import __version__
from clinic.assistant import ClinicAssistant
from clinic.config import ClinicConfig
from clinic.models import (
    ActivityFeedResponse,
    AppointmentListResponse,
    DoctorListResponse,
    HealthResponse,
    InboundMessageRequest,
    InboundMessageResponse,
    PatientSearchResponse,
    SessionStatusResponse,
)
from clinic.notifications import LoggingSink, RedisStreamSink
from clinic.repository import RedisPatientRepository
from clinic.transport import HttpGatewayTransport, LoggingTransport
from shared.event_broker import EventBroker
from shared.health_check import check_redis_health
from shared.observability import get_metrics_response, setup_metrics
from shared.redis_client import close_redis_client, get_redis_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global state
config: Optional[ClinicConfig] = None
redis_client: Optional[redis.Redis] = None
assistant: Optional[ClinicAssistant] = None
transport = None
sweeper_task: Optional[asyncio.Task] = None
app_start_time: float = 0.0


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage service lifecycle (startup/shutdown)
    """
    global config, redis_client, assistant, transport, sweeper_task, app_start_time

    logger.info(" Starting PinkHealth Clinic Intake service...")
    app_start_time = time.time()

    # Load configuration
    try:
        config = ClinicConfig.from_env()
        logging.getLogger().setLevel(config.log_level)
        logger.info(" Configuration loaded")
    except Exception as e:
        logger.error(f" Failed to load configuration: {e}")
        raise

    setup_metrics("clinic-intake", __version__)

    # Initialize Redis client
    if config.demo_mode:
        logger.info(" Demo mode: Redis persistence disabled")
    else:
        try:
            redis_client = await get_redis_client(config.redis_url)
            logger.info(" Redis connected")
        except Exception as e:
            logger.warning(f"️ Redis connection failed: {e} - running degraded without persistence")
            redis_client = None

    sinks = [LoggingSink()]
    repository = None
    if redis_client is not None:
        repository = RedisPatientRepository(redis_client)
        sinks.append(RedisStreamSink(EventBroker(redis_client), config.notification_stream))

    if config.gateway_url:
        transport = HttpGatewayTransport(config.gateway_url, timeout=config.send_timeout)
        logger.info(f" Replies go to gateway {config.gateway_url}")
    else:
        transport = LoggingTransport()
        logger.info(" No gateway configured - replies are logged only")

    assistant = ClinicAssistant(config, transport, repository=repository, sinks=sinks)
    sweeper_task = asyncio.create_task(assistant.run_sweeper())

    logger.info(" PinkHealth Clinic Intake service ready")

    yield

    # Shutdown
    logger.info(" Shutting down PinkHealth Clinic Intake service...")

    if sweeper_task:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass

    if assistant:
        await assistant.shutdown(timeout=config.send_timeout)

    if isinstance(transport, HttpGatewayTransport):
        await transport.close()

    if redis_client:
        await close_redis_client()
        logger.info(" Redis connection closed")

    logger.info(" Service stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="PinkHealth Clinic Intake Service",
    description="Conversational appointment booking over a messaging channel",
    version=__version__,
    lifespan=lifespan
)


def _require_assistant() -> ClinicAssistant:
    if not assistant:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return assistant


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value).isoformat()


# ============================================================================
# Messaging Endpoints
# ============================================================================

@app.post("/api/v1/messages", response_model=InboundMessageResponse)
async def receive_message(request: InboundMessageRequest):
    """
    Inbound message webhook.

    Processes the message for its sender and queues the reply on the
    outbound transport.
    """
    service = _require_assistant()
    result = await service.on_message(request.user_id, request.text, request.display_name)

    return InboundMessageResponse(
        accepted=True,
        user_id=request.user_id,
        route=result.route.value,
        step=result.step.value if result.step else None,
        ended=result.ended,
        reply=result.reply,
    )


@app.get("/api/v1/session/{user_id}", response_model=SessionStatusResponse)
async def get_session_status(user_id: str):
    """
    Get status of a live conversation.

    Returns current step, collected data, and timestamps.
    """
    service = _require_assistant()
    session = service.sessions.get(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")

    snapshot = session.to_dict()
    return SessionStatusResponse(
        user_id=user_id,
        step=snapshot["step"],
        data=snapshot["data"],
        patient_status=snapshot["patient_status"],
        created_at=_timestamp(session.created_at),
        last_activity=_timestamp(session.last_activity),
        expires_at=_timestamp(service.sessions.expires_at(session)),
    )


@app.delete("/api/v1/session/{user_id}")
async def delete_session(user_id: str):
    """
    Delete a live conversation.

    Takes the user's lock so a message being processed finishes first.
    """
    service = _require_assistant()
    async with service.sessions.locked(user_id):
        deleted = service.sessions.delete(user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")

    logger.info(f" Session deleted: {user_id}")
    return {"message": "Session deleted successfully"}


# ============================================================================
# Dashboard Endpoints
# ============================================================================

@app.get("/api/appointments", response_model=AppointmentListResponse)
async def list_appointments():
    """Deduplicated appointments for today and tomorrow"""
    return AppointmentListResponse(**_require_assistant().list_appointments())


@app.get("/api/patients/search", response_model=PatientSearchResponse)
async def search_patients(query: str = Query("", description="Phone or name fragment")):
    return PatientSearchResponse(**_require_assistant().search_patients(query))


@app.get("/api/activity", response_model=ActivityFeedResponse)
async def activity_feed(limit: int = Query(20, ge=1, le=100)):
    return ActivityFeedResponse(**_require_assistant().get_activity_feed(limit))


@app.get("/api/metrics")
async def dashboard_metrics():
    """Analytics snapshot for the dashboard"""
    return _require_assistant().get_metrics()


@app.get("/api/doctors", response_model=DoctorListResponse)
async def list_doctors():
    service = _require_assistant()
    return DoctorListResponse(doctors=[doctor.to_dict() for doctor in service.catalog.all()])


# ============================================================================
# Operational Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Redis is optional: without it the service still converses, so a missing
    connection reports "degraded" rather than "unhealthy".
    """
    redis_health = await check_redis_health(redis_client)
    redis_connected = redis_health.is_healthy()
    config_valid = config is not None

    # Determine overall status
    if not config_valid or assistant is None:
        status = "unhealthy"
    elif not redis_connected:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        redis_connected=redis_connected,
        config_valid=config_valid,
        active_sessions=len(assistant.sessions) if assistant else 0,
        uptime_seconds=time.time() - app_start_time,
    )


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus exposition"""
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": "PinkHealth Clinic Intake",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "messages": "POST /api/v1/messages",
            "session": "GET/DELETE /api/v1/session/{user_id}",
            "appointments": "GET /api/appointments",
            "patients": "GET /api/patients/search?query=",
            "activity": "GET /api/activity",
            "dashboard_metrics": "GET /api/metrics",
            "doctors": "GET /api/doctors",
            "health": "GET /health",
            "metrics": "GET /metrics",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
