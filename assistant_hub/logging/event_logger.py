"""Event logging service.

Pipeline events land in ``event_logs``: one row per provider call and one per
directive state change. Write failures propagate like any other data-store
error.
"""

import json
import uuid
from typing import Optional, Dict, Any
from sqlalchemy import text
from assistant_hub.infra.database import db_timestamp, get_db_session
from assistant_hub.infra.error_handler import ProviderError
from assistant_hub.models.directive import ActionResult, Directive

# Provider error text can echo request fragments; keep the stored copy short
MAX_ERROR_LENGTH = 300


async def log_event(
    tenant_id: str,
    event_type: str,
    provider: Optional[str] = None,
    status: str = "success",
    latency_ms: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
) -> None:
    """
    Log an event to event_logs table.

    Args:
        tenant_id: Tenant ID
        event_type: Event type (e.g., 'llm_call_completed', 'directive_proposed', 'directive_executed')
        provider: Provider name (e.g., 'openai', 'gemini')
        status: 'success' | 'failure'
        latency_ms: Latency in milliseconds
        payload: Additional payload (stored as JSON)
        session_id: Optional assistant session ID
    """
    with get_db_session(tenant_id) as session:
        session.execute(
            text("""
                INSERT INTO event_logs (
                    id, tenant_id, session_id, event_type, provider,
                    status, latency_ms, payload, created_at
                ) VALUES (
                    :id, :tenant_id, :session_id, :event_type, :provider,
                    :status, :latency_ms, :payload, :created_at
                )
            """),
            {
                "id": str(uuid.uuid4()),
                "tenant_id": tenant_id,
                "session_id": session_id,
                "event_type": event_type,
                "provider": provider,
                "status": status,
                "latency_ms": latency_ms,
                "payload": json.dumps(payload or {}, default=str),
                "created_at": db_timestamp(),
            }
        )


async def log_llm_call(
    tenant_id: str,
    provider: str,
    endpoint: str,
    latency_ms: int,
    error: Optional[ProviderError] = None,
    session_id: Optional[str] = None,
    role_tier: Optional[str] = None,
) -> None:
    """Record one provider call as ``llm_call_completed`` or ``llm_call_failed``."""
    payload: Dict[str, Any] = {"endpoint": endpoint}
    if role_tier:
        payload["role_tier"] = role_tier
    if error is not None:
        payload["category"] = error.category.value
        payload["error"] = error.message[:MAX_ERROR_LENGTH]

    await log_event(
        tenant_id=tenant_id,
        event_type="llm_call_failed" if error is not None else "llm_call_completed",
        provider=provider,
        status="failure" if error is not None else "success",
        latency_ms=latency_ms,
        payload=payload,
        session_id=session_id,
    )


async def log_directive(
    tenant_id: str,
    directive: Directive,
    result: Optional[ActionResult] = None,
    session_id: Optional[str] = None,
) -> None:
    """
    Record a directive state change.

    The event type follows the directive state: ``directive_proposed`` for
    proposed or awaiting confirmation, otherwise ``directive_<state>``.
    Only the directive type and outcome are stored; payloads stay in
    ``chatbot_actions``.
    """
    state = directive.state.value
    if state in ("proposed", "awaiting_confirmation"):
        event_type = "directive_proposed"
    else:
        event_type = f"directive_{state}"

    payload: Dict[str, Any] = {"directive_type": directive.type, "state": state}
    if result is not None:
        payload["message"] = result.message

    await log_event(
        tenant_id=tenant_id,
        event_type=event_type,
        status="failure" if result is not None and not result.success else "success",
        payload=payload,
        session_id=session_id,
    )
