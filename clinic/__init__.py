"""
PinkHealth Clinic Intake Service - Conversational booking over a messaging channel

This service runs the clinic's chat assistant. Every inbound message is routed
through an emergency override, a global command table and a per-step state
machine that walks the patient from a welcome menu to a confirmed appointment.

Key Features:
- Enum-based conversation FSM with an explicit transition table
- Emergency keywords preempt any conversation state
- Per-user serialized message processing, parallel across users
- Idempotent appointment creation with fire-and-forget notifications
- Deduplicated dashboard view across appointment-bearing stores
- Idle session sweeping (30min default)

Architecture:
- FastAPI web framework for webhook and dashboard endpoints
- Redis for appointment persistence and notification streams
- Prometheus counters for analytics
- Pydantic models for API contracts
"""

__version__ = "1.0.0"
