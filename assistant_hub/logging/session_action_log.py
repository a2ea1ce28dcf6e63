"""Append-only audit trail of executed directives, per assistant session."""

import json
import uuid
from typing import Optional
from sqlalchemy import text

from assistant_hub.infra.database import db_timestamp, get_db_session
from assistant_hub.models.directive import ActionResult, Directive


async def record(
    session_id: Optional[str],
    tenant_id: str,
    actor_id: Optional[str],
    directive: Directive,
    result: ActionResult,
) -> None:
    """
    Record one executed directive and bump the session's action counter.

    Called after the executor returns, whether the action succeeded or not.
    The counter is incremented in SQL so concurrent requests on the same
    session do not lose updates. Without a session id only the action row
    is written.

    Args:
        session_id: Assistant session ID, if the client sent one
        tenant_id: Tenant ID
        actor_id: Staff user or customer ID
        directive: The directive that was executed
        result: Executor outcome, stored alongside the payload
    """
    now = db_timestamp()
    with get_db_session(tenant_id) as session:
        session.execute(
            text("""
                INSERT INTO chatbot_actions (
                    id, session_id, tenant_id, actor_id, action_type,
                    action_data, success, result_message, executed_at
                ) VALUES (
                    :id, :session_id, :tenant_id, :actor_id, :action_type,
                    :action_data, :success, :result_message, :executed_at
                )
            """),
            {
                "id": str(uuid.uuid4()),
                "session_id": session_id,
                "tenant_id": tenant_id,
                "actor_id": actor_id,
                "action_type": directive.type,
                "action_data": json.dumps(directive.payload, default=str),
                "success": result.success,
                "result_message": result.message,
                "executed_at": now,
            }
        )

        if not session_id:
            return

        updated = session.execute(
            text("""
                UPDATE chatbot_sessions
                SET total_actions = total_actions + 1, updated_at = :now
                WHERE id = :session_id AND tenant_id = :tenant_id
            """),
            {"now": now, "session_id": session_id, "tenant_id": tenant_id}
        )
        if updated.rowcount == 0:
            session.execute(
                text("""
                    INSERT INTO chatbot_sessions (
                        id, tenant_id, actor_id, total_actions, transferred_to_human, started_at, updated_at
                    ) VALUES (
                        :session_id, :tenant_id, :actor_id, 1, FALSE, :now, :now
                    )
                """),
                {"session_id": session_id, "tenant_id": tenant_id, "actor_id": actor_id, "now": now}
            )


def count_actions(tenant_id: str, session_id: str) -> int:
    """Running total of directives attempted in a session."""
    with get_db_session(tenant_id) as session:
        total = session.execute(
            text("""
                SELECT total_actions FROM chatbot_sessions
                WHERE id = :session_id AND tenant_id = :tenant_id
            """),
            {"session_id": session_id, "tenant_id": tenant_id}
        ).scalar()
    return int(total or 0)


def remember_exchange(
    tenant_id: str,
    session_id: str,
    actor_id: Optional[str],
    question: str,
    answer: str,
) -> None:
    """Keep the latest question/answer pair on the session row for later rating."""
    now = db_timestamp()
    with get_db_session(tenant_id) as session:
        updated = session.execute(
            text("""
                UPDATE chatbot_sessions
                SET last_question = :question, last_answer = :answer, updated_at = :now
                WHERE id = :session_id AND tenant_id = :tenant_id
            """),
            {"question": question, "answer": answer, "now": now, "session_id": session_id, "tenant_id": tenant_id}
        )
        if updated.rowcount == 0:
            session.execute(
                text("""
                    INSERT INTO chatbot_sessions (
                        id, tenant_id, actor_id, total_actions, transferred_to_human,
                        last_question, last_answer, started_at, updated_at
                    ) VALUES (
                        :session_id, :tenant_id, :actor_id, 0, FALSE,
                        :question, :answer, :now, :now
                    )
                """),
                {
                    "session_id": session_id,
                    "tenant_id": tenant_id,
                    "actor_id": actor_id,
                    "question": question,
                    "answer": answer,
                    "now": now,
                }
            )
