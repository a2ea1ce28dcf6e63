"""Service to assemble the per-request conversation context.

Each role tier has its own independent query set. Every query is filtered by
tenant; end-customer queries are additionally filtered by the actor's own
customer id. Empty results degrade to zero or an empty list.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from assistant_hub.infra.database import as_date, as_float, get_db_session
from assistant_hub.models.context import Actor, ConversationContext, KnowledgeEntry, RoleTier
from assistant_hub.models.tenant import TenantAIConfig
from assistant_hub.services.proactive_alerts import EXPIRY_WINDOW_DAYS

logger = logging.getLogger(__name__)

KNOWLEDGE_BASE_LIMIT = 50
LEARNED_ANSWERS_LIMIT = 3
PREVIEW_LIMIT = 5


def _date_bounds(today: date) -> Dict[str, str]:
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    return {
        "today": today.isoformat(),
        "expiry_limit": (today + timedelta(days=EXPIRY_WINDOW_DAYS)).isoformat(),
        "month_start": month_start.isoformat(),
        "next_month_start": next_month.isoformat(),
    }


def _scalar(session: Session, sql: str, params: Dict[str, Any]) -> Any:
    return session.execute(text(sql), params).scalar()


def _count(session: Session, sql: str, params: Dict[str, Any]) -> int:
    return int(_scalar(session, sql, params) or 0)


def _money(session: Session, sql: str, params: Dict[str, Any]) -> float:
    return round(as_float(_scalar(session, sql, params)), 2)


def _iso(value: Any) -> Optional[str]:
    parsed = as_date(value)
    return parsed.isoformat() if parsed else None


# ---------------------------------------------------------------------------
# Tier query sets
# ---------------------------------------------------------------------------

def _operator_snapshot(session: Session, tenant_id: str, bounds: Dict[str, str]) -> Dict[str, Any]:
    params = {"tenant_id": tenant_id, **bounds}
    return {
        "total_admins": _count(session, """
            SELECT COUNT(*) FROM tenants
            WHERE parent_tenant_id = :tenant_id AND tenant_type = 'admin'
        """, params),
        "revenue_this_month": _money(session, """
            SELECT SUM(amount) FROM payments
            WHERE seller_tenant_id = :tenant_id AND status = 'paid'
              AND paid_at >= :month_start AND paid_at < :next_month_start
        """, params),
        "defaulting_admins": _count(session, """
            SELECT COUNT(DISTINCT buyer_tenant_id) FROM payments
            WHERE seller_tenant_id = :tenant_id AND status = 'pending' AND due_date < :today
        """, params),
    }


def _org_admin_snapshot(session: Session, tenant_id: str, bounds: Dict[str, str]) -> Dict[str, Any]:
    params = {"tenant_id": tenant_id, **bounds}
    return {
        "total_resellers": _count(session, """
            SELECT COUNT(*) FROM tenants
            WHERE parent_tenant_id = :tenant_id AND tenant_type = 'reseller'
        """, params),
        "total_customers": _count(session, """
            SELECT COUNT(*) FROM customers WHERE tenant_id = :tenant_id
        """, params),
        "overdue_charges": _count(session, """
            SELECT COUNT(*) FROM payments
            WHERE seller_tenant_id = :tenant_id AND status = 'pending' AND due_date < :today
        """, params),
        "revenue_this_month": _money(session, """
            SELECT SUM(amount) FROM payments
            WHERE seller_tenant_id = :tenant_id AND status = 'paid'
              AND paid_at >= :month_start AND paid_at < :next_month_start
        """, params),
    }


def _reseller_snapshot(session: Session, tenant_id: str, bounds: Dict[str, str]) -> Dict[str, Any]:
    params = {"tenant_id": tenant_id, **bounds}
    snapshot = {
        "total_customers": _count(session, """
            SELECT COUNT(*) FROM customers WHERE tenant_id = :tenant_id
        """, params),
        "active_services": _count(session, """
            SELECT COUNT(*) FROM customer_items
            WHERE tenant_id = :tenant_id AND status = 'active'
        """, params),
        "revenue_this_month": _money(session, """
            SELECT SUM(amount) FROM customer_charges
            WHERE tenant_id = :tenant_id AND status = 'paid'
              AND paid_at >= :month_start AND paid_at < :next_month_start
        """, params),
        "paid_this_month": _count(session, """
            SELECT COUNT(*) FROM customer_charges
            WHERE tenant_id = :tenant_id AND status = 'paid'
              AND paid_at >= :month_start AND paid_at < :next_month_start
        """, params),
        "overdue_charges": _count(session, """
            SELECT COUNT(*) FROM customer_charges
            WHERE tenant_id = :tenant_id AND status = 'pending' AND due_date < :today
        """, params),
        "pending_amount": _money(session, """
            SELECT SUM(amount) FROM customer_charges
            WHERE tenant_id = :tenant_id AND status = 'pending'
        """, params),
        "due_today": _count(session, """
            SELECT COUNT(*) FROM customer_charges
            WHERE tenant_id = :tenant_id AND status = 'pending' AND due_date = :today
        """, params),
        "expiring_services_count": _count(session, """
            SELECT COUNT(*) FROM customer_items
            WHERE tenant_id = :tenant_id AND status = 'active'
              AND expires_at >= :today AND expires_at <= :expiry_limit
        """, params),
    }

    rows = session.execute(
        text("""
            SELECT ci.product_name, ci.expires_at, c.full_name
            FROM customer_items ci
            JOIN customers c ON c.id = ci.customer_id AND c.tenant_id = ci.tenant_id
            WHERE ci.tenant_id = :tenant_id AND ci.status = 'active'
              AND ci.expires_at IS NOT NULL AND ci.expires_at >= :today
            ORDER BY ci.expires_at
            LIMIT :limit
        """),
        {**params, "limit": PREVIEW_LIMIT}
    ).fetchall()
    snapshot["expiring_services"] = [
        {"customer": row.full_name, "service": row.product_name, "expires_at": _iso(row.expires_at)}
        for row in rows
    ]
    return snapshot


def _empty_customer_snapshot() -> Dict[str, Any]:
    return {
        "services_count": 0,
        "plan_name": None,
        "next_due_date": None,
        "next_due_amount": 0.0,
        "days_until_due": None,
        "pending_charges": 0,
        "overdue_charges": 0,
        "overdue_amount": 0.0,
        "referral_balance": 0.0,
        "total_referrals": 0,
        "active_services": [],
        "expiring_services_count": 0,
    }


def _end_customer_snapshot(
    session: Session,
    tenant_id: str,
    customer_id: Optional[str],
    today: date,
    bounds: Dict[str, str],
) -> Dict[str, Any]:
    snapshot = _empty_customer_snapshot()
    if not customer_id:
        return snapshot

    customer = session.execute(
        text("""
            SELECT id, full_name FROM customers
            WHERE id = :customer_id AND tenant_id = :tenant_id
        """),
        {"customer_id": customer_id, "tenant_id": tenant_id}
    ).fetchone()
    if not customer:
        # No linked billing identity: nothing to report
        logger.info("End customer has no customer record", extra={"tenant_id": tenant_id})
        return snapshot

    snapshot["customer_name"] = customer.full_name
    params = {"tenant_id": tenant_id, "customer_id": customer_id, **bounds}

    services = session.execute(
        text("""
            SELECT product_name, plan_name, price, expires_at
            FROM customer_items
            WHERE tenant_id = :tenant_id AND customer_id = :customer_id AND status = 'active'
            ORDER BY expires_at
        """),
        params
    ).fetchall()
    snapshot["services_count"] = len(services)
    if services:
        snapshot["plan_name"] = services[0].plan_name or services[0].product_name
    snapshot["active_services"] = [
        {"service": row.product_name, "price": round(as_float(row.price), 2), "expires_at": _iso(row.expires_at)}
        for row in services[:PREVIEW_LIMIT]
    ]
    # Counted over every service; the preview above is for display only
    snapshot["expiring_services_count"] = _count(session, """
        SELECT COUNT(*) FROM customer_items
        WHERE tenant_id = :tenant_id AND customer_id = :customer_id AND status = 'active'
          AND expires_at >= :today AND expires_at <= :expiry_limit
    """, params)

    next_charge = session.execute(
        text("""
            SELECT amount, due_date FROM customer_charges
            WHERE tenant_id = :tenant_id AND customer_id = :customer_id
              AND status = 'pending' AND due_date >= :today
            ORDER BY due_date
            LIMIT 1
        """),
        params
    ).fetchone()
    if next_charge:
        due = as_date(next_charge.due_date)
        snapshot["next_due_date"] = due.isoformat()
        snapshot["next_due_amount"] = round(as_float(next_charge.amount), 2)
        snapshot["days_until_due"] = (due - today).days

    snapshot["pending_charges"] = _count(session, """
        SELECT COUNT(*) FROM customer_charges
        WHERE tenant_id = :tenant_id AND customer_id = :customer_id AND status = 'pending'
    """, params)
    snapshot["overdue_charges"] = _count(session, """
        SELECT COUNT(*) FROM customer_charges
        WHERE tenant_id = :tenant_id AND customer_id = :customer_id
          AND status = 'pending' AND due_date < :today
    """, params)
    snapshot["overdue_amount"] = _money(session, """
        SELECT SUM(amount) FROM customer_charges
        WHERE tenant_id = :tenant_id AND customer_id = :customer_id
          AND status = 'pending' AND due_date < :today
    """, params)

    referral = session.execute(
        text("""
            SELECT SUM(balance) AS balance, SUM(total_referrals) AS total_referrals
            FROM referral_links
            WHERE tenant_id = :tenant_id AND customer_id = :customer_id
        """),
        params
    ).fetchone()
    if referral:
        snapshot["referral_balance"] = round(as_float(referral.balance), 2)
        snapshot["total_referrals"] = int(referral.total_referrals or 0)

    return snapshot


def _expense_slice(session: Session, tenant_id: str, bounds: Dict[str, str]) -> Dict[str, Any]:
    params = {"tenant_id": tenant_id, "limit": PREVIEW_LIMIT, **bounds}

    def preview(where: str) -> List[Dict[str, Any]]:
        rows = session.execute(
            text(f"""
                SELECT e.id, e.description, e.amount, e.due_date, ec.name AS category
                FROM expenses e
                LEFT JOIN expense_categories ec ON ec.id = e.category_id AND ec.tenant_id = e.tenant_id
                WHERE e.tenant_id = :tenant_id AND {where}
                ORDER BY e.due_date
                LIMIT :limit
            """),
            params
        ).fetchall()
        return [
            {
                "id": row.id,
                "description": row.description,
                "amount": round(as_float(row.amount), 2),
                "due_date": _iso(row.due_date),
                "category": row.category,
            }
            for row in rows
        ]

    categories = session.execute(
        text("""
            SELECT name FROM expense_categories
            WHERE tenant_id = :tenant_id AND is_active = TRUE
            ORDER BY name
        """),
        params
    ).fetchall()

    return {
        "expenses_pending": preview("e.status = 'pending' AND e.due_date >= :today"),
        "expenses_overdue": preview("e.status = 'pending' AND e.due_date < :today"),
        "expenses_pending_count": _count(session, """
            SELECT COUNT(*) FROM expenses
            WHERE tenant_id = :tenant_id AND status = 'pending' AND due_date >= :today
        """, params),
        "expenses_overdue_count": _count(session, """
            SELECT COUNT(*) FROM expenses
            WHERE tenant_id = :tenant_id AND status = 'pending' AND due_date < :today
        """, params),
        "expenses_due_today": _count(session, """
            SELECT COUNT(*) FROM expenses
            WHERE tenant_id = :tenant_id AND status = 'pending' AND due_date = :today
        """, params),
        "expenses_month_total": _money(session, """
            SELECT SUM(amount) FROM expenses
            WHERE tenant_id = :tenant_id AND status != 'cancelled'
              AND due_date >= :month_start AND due_date < :next_month_start
        """, params),
        "expenses_month_paid": _money(session, """
            SELECT SUM(amount) FROM expenses
            WHERE tenant_id = :tenant_id AND status = 'paid'
              AND due_date >= :month_start AND due_date < :next_month_start
        """, params),
        "expenses_month_pending": _money(session, """
            SELECT SUM(amount) FROM expenses
            WHERE tenant_id = :tenant_id AND status = 'pending'
              AND due_date >= :month_start AND due_date < :next_month_start
        """, params),
        "expense_categories": [row.name for row in categories],
    }


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------

def load_knowledge_base(session: Session, tenant_id: str) -> List[KnowledgeEntry]:
    """Active FAQ, document and snippet entries, highest priority first."""
    rows = session.execute(
        text("""
            SELECT entry_type, question, answer, title, content, category
            FROM chatbot_knowledge_base
            WHERE tenant_id = :tenant_id AND is_active = TRUE
            ORDER BY priority DESC
            LIMIT :limit
        """),
        {"tenant_id": tenant_id, "limit": KNOWLEDGE_BASE_LIMIT}
    ).fetchall()

    entries = []
    for row in rows:
        if row.entry_type == "document":
            question, answer = f"[Document] {row.title or 'untitled'}", row.content
        elif row.entry_type == "snippet":
            question, answer = f"[{row.category or 'general'}]", row.content
        else:
            question, answer = row.question, row.answer
        if question and answer:
            entries.append(KnowledgeEntry(question=question, answer=answer))
    return entries


def load_learned_answers(session: Session, tenant_id: str) -> List[KnowledgeEntry]:
    """Highly rated past answers from earlier sessions."""
    rows = session.execute(
        text("""
            SELECT last_question, last_answer
            FROM chatbot_sessions
            WHERE tenant_id = :tenant_id AND rating >= 4
              AND last_question IS NOT NULL AND last_answer IS NOT NULL
            ORDER BY rating DESC, updated_at DESC
            LIMIT :limit
        """),
        {"tenant_id": tenant_id, "limit": LEARNED_ANSWERS_LIMIT}
    ).fetchall()
    return [KnowledgeEntry(question=row.last_question, answer=row.last_answer) for row in rows]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def assemble(
    tenant_id: str,
    actor_id: Optional[str],
    role_tier: RoleTier,
    ai_config: Optional[TenantAIConfig] = None,
    business_hours: Optional[str] = None,
    menu_options: Optional[List[Dict[str, Any]]] = None,
    today: Optional[date] = None,
) -> ConversationContext:
    """
    Build the ConversationContext for one request.

    Args:
        tenant_id: Owning tenant; every query is filtered by it
        actor_id: Staff user id, or the customer id for end customers
        role_tier: Selects the query set
        ai_config: Supplies personality and business description
        business_hours: Free-text opening hours from the request
        menu_options: Quick actions offered by the client
        today: Reference date (defaults to today)

    Returns:
        ConversationContext
    """
    today = today or date.today()
    bounds = _date_bounds(today)

    with get_db_session(tenant_id) as session:
        if role_tier == RoleTier.OPERATOR:
            snapshot = _operator_snapshot(session, tenant_id, bounds)
        elif role_tier == RoleTier.ORG_ADMIN:
            snapshot = _org_admin_snapshot(session, tenant_id, bounds)
        elif role_tier == RoleTier.RESELLER:
            snapshot = _reseller_snapshot(session, tenant_id, bounds)
        else:
            snapshot = _end_customer_snapshot(session, tenant_id, actor_id, today, bounds)

        if role_tier.is_staff:
            snapshot.update(_expense_slice(session, tenant_id, bounds))

        knowledge_base = load_knowledge_base(session, tenant_id)
        knowledge_base.extend(load_learned_answers(session, tenant_id))

    actor = Actor(
        actor_id=actor_id,
        role_tier=role_tier,
        display_name=snapshot.get("customer_name"),
    )

    return ConversationContext(
        tenant_id=tenant_id,
        actor=actor,
        business_snapshot=snapshot,
        knowledge_base=knowledge_base,
        personality_text=ai_config.personality if ai_config else None,
        business_description=ai_config.business_context if ai_config else None,
        business_hours=business_hours,
        menu_options=list(menu_options or []),
    )
