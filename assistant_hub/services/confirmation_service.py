"""Confirmation gate for destructive directives.

A destructive directive is parked as ``awaiting_confirmation`` for its
session. A later message in the same session either confirms it (it is then
executed) or cancels it. State changes are conditional updates, so two
concurrent confirmations cannot both execute the same directive.
"""

import json
import logging
import re
import unicodedata
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import text

from assistant_hub.infra.database import db_timestamp, get_db_session, load_json
from assistant_hub.models.directive import Directive, DirectiveState, requires_confirmation

logger = logging.getLogger(__name__)

CONFIRM = "confirm"
CANCEL = "cancel"

AFFIRMATIONS = frozenset({
    "sim", "s", "yes", "y", "ok", "okay", "confirmo", "confirmar", "confirma", "confirmado",
    "pode", "pode sim", "sim pode", "sim confirmo", "isso", "claro", "confirm", "go ahead",
})
NEGATIONS = frozenset({
    "nao", "n", "no", "cancelar", "cancela", "cancelado", "nao quero", "deixa", "esquece",
    "cancel", "stop", "nope",
})


@dataclass
class PendingDirective:
    """A directive waiting for the actor to confirm it."""
    id: str
    directive: Directive
    actor_id: Optional[str]
    endpoint: str


def _normalize(message: str) -> str:
    folded = unicodedata.normalize("NFKD", message).encode("ascii", "ignore").decode("ascii")
    folded = re.sub(r"[^a-z0-9 ]", " ", folded.lower())
    return " ".join(folded.split())


def classify_reply(message: str, explicit: Optional[str] = None) -> Optional[str]:
    """
    Decide whether a message answers a pending confirmation.

    Args:
        message: The user's message
        explicit: ``confirm`` or ``cancel`` sent by the client UI, which wins

    Returns:
        CONFIRM, CANCEL or None when the message is about something else
    """
    if explicit in (CONFIRM, CANCEL):
        return explicit
    normalized = _normalize(message or "")
    if normalized in AFFIRMATIONS:
        return CONFIRM
    if normalized in NEGATIONS:
        return CANCEL
    return None


def get_pending(tenant_id: str, session_id: str) -> Optional[PendingDirective]:
    """Most recent directive awaiting confirmation in a session."""
    with get_db_session(tenant_id) as session:
        row = session.execute(
            text("""
                SELECT id, actor_id, endpoint, directive_type, payload
                FROM pending_directives
                WHERE tenant_id = :tenant_id AND session_id = :session_id AND state = :state
                ORDER BY created_at DESC
                LIMIT 1
            """),
            {
                "tenant_id": tenant_id,
                "session_id": session_id,
                "state": DirectiveState.AWAITING_CONFIRMATION.value,
            }
        ).fetchone()

    if not row:
        return None
    directive = Directive(
        type=row.directive_type,
        payload=load_json(row.payload),
        confirm_required=requires_confirmation(row.directive_type),
        state=DirectiveState.AWAITING_CONFIRMATION,
    )
    return PendingDirective(id=row.id, directive=directive, actor_id=row.actor_id, endpoint=row.endpoint)


def park(
    tenant_id: str,
    session_id: str,
    actor_id: Optional[str],
    endpoint: str,
    directive: Directive,
) -> str:
    """
    Store ``directive`` as awaiting confirmation, superseding older pending ones.

    Returns:
        Pending directive ID
    """
    pending_id = str(uuid.uuid4())
    now = db_timestamp()
    with get_db_session(tenant_id) as session:
        session.execute(
            text("""
                UPDATE pending_directives
                SET state = :cancelled, resolved_at = :now
                WHERE tenant_id = :tenant_id AND session_id = :session_id AND state = :awaiting
            """),
            {
                "cancelled": DirectiveState.CANCELLED.value,
                "awaiting": DirectiveState.AWAITING_CONFIRMATION.value,
                "now": now,
                "tenant_id": tenant_id,
                "session_id": session_id,
            }
        )
        session.execute(
            text("""
                INSERT INTO pending_directives (
                    id, tenant_id, session_id, actor_id, endpoint,
                    directive_type, payload, state, created_at
                ) VALUES (
                    :id, :tenant_id, :session_id, :actor_id, :endpoint,
                    :directive_type, :payload, :state, :now
                )
            """),
            {
                "id": pending_id,
                "tenant_id": tenant_id,
                "session_id": session_id,
                "actor_id": actor_id,
                "endpoint": endpoint,
                "directive_type": directive.type,
                "payload": json.dumps(directive.payload, default=str),
                "state": DirectiveState.AWAITING_CONFIRMATION.value,
                "now": now,
            }
        )

    directive.state = DirectiveState.AWAITING_CONFIRMATION
    logger.info(
        "Directive awaiting confirmation",
        extra={"tenant_id": tenant_id, "session_id": session_id, "directive_type": directive.type},
    )
    return pending_id


def transition(
    tenant_id: str,
    pending_id: str,
    from_state: DirectiveState,
    to_state: DirectiveState,
) -> bool:
    """
    Move a pending directive between states.

    Returns:
        False if the directive was no longer in ``from_state``
    """
    with get_db_session(tenant_id) as session:
        result = session.execute(
            text("""
                UPDATE pending_directives
                SET state = :to_state, resolved_at = :now
                WHERE id = :id AND tenant_id = :tenant_id AND state = :from_state
            """),
            {
                "to_state": to_state.value,
                "from_state": from_state.value,
                "now": db_timestamp(),
                "id": pending_id,
                "tenant_id": tenant_id,
            }
        )
    return result.rowcount == 1
