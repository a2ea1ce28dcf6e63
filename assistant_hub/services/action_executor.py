"""Action executor: validates and performs the side effect a directive describes.

Dispatch is a closed table of (validate, run) pairs. Validation is pure and
runs before any data-store access. Every statement is filtered by tenant, so
an id belonging to another tenant is simply "not found". Nothing raises past
``execute``; failures come back as ``ActionResult(success=False)``.
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assistant_hub.infra.config import config
from assistant_hub.infra.database import as_date, as_float, db_timestamp, get_db_session
from assistant_hub.infra.error_handler import ActionExecutionError, ActionValidationError
from assistant_hub.infra.metrics import action_execution_duration, actions_executed_total
from assistant_hub.models.context import RoleTier
from assistant_hub.models.directive import ActionResult, Directive

logger = logging.getLogger(__name__)

LIST_LIMIT = 20
MAX_POSTPONE_DAYS = 365
EXPENSE_STATUSES = ("pending", "overdue", "paid", "cancelled")


@dataclass
class ExecutionScope:
    """Who the directive runs for; narrows end-customer lookups to their own rows."""
    actor_id: Optional[str] = None
    role_tier: Optional[RoleTier] = None
    session_id: Optional[str] = None

    @property
    def customer_id(self) -> Optional[str]:
        return self.actor_id if self.role_tier == RoleTier.END_CUSTOMER else None


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------

def _require_text(payload: Dict[str, Any], field: str, max_length: int = 255) -> str:
    value = payload.get(field)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ActionValidationError(f"The field '{field}' is required.")
    value = value.strip()
    if len(value) > max_length:
        raise ActionValidationError(f"The field '{field}' is too long (max {max_length} characters).")
    return value


def _optional_text(payload: Dict[str, Any], field: str, max_length: int = 255) -> Optional[str]:
    if payload.get(field) in (None, ""):
        return None
    return _require_text(payload, field, max_length)


def parse_amount(value: Any, field: str = "amount") -> float:
    """
    Parse a positive money amount.

    Accepts numbers and strings such as ``1500``, ``1500.50``, ``1.500,50``
    or ``R$ 89,90``.
    """
    if isinstance(value, bool) or value is None:
        raise ActionValidationError(f"The field '{field}' must be a positive number.")
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        cleaned = value.replace("R$", "").replace(" ", "").strip()
        if "," in cleaned and "." in cleaned:
            if cleaned.rfind(",") > cleaned.rfind("."):
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        elif "," in cleaned:
            cleaned = cleaned.replace(",", ".")
        try:
            amount = float(cleaned)
        except ValueError:
            raise ActionValidationError(f"The field '{field}' must be a positive number, got '{value}'.")
    else:
        raise ActionValidationError(f"The field '{field}' must be a positive number.")
    if amount != amount or amount <= 0 or amount == float("inf"):
        raise ActionValidationError(f"The field '{field}' must be a positive number.")
    return round(amount, 2)


def parse_due_date(value: Any, field: str = "due_date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` date."""
    if not isinstance(value, str):
        raise ActionValidationError(f"The field '{field}' must be a date in YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ActionValidationError(f"The field '{field}' must be a date in YYYY-MM-DD format, got '{value}'.")


def parse_days(value: Any) -> int:
    if isinstance(value, bool):
        raise ActionValidationError("The field 'days' must be a positive whole number.")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ActionValidationError("The field 'days' must be a positive whole number.")
    if value > MAX_POSTPONE_DAYS:
        raise ActionValidationError(f"Expenses can be postponed by at most {MAX_POSTPONE_DAYS} days.")
    return value


def _money(amount: Any) -> str:
    return f"R$ {as_float(amount):.2f}"


# ---------------------------------------------------------------------------
# Tenant-scoped lookups
# ---------------------------------------------------------------------------

def _like_pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _pick_match(rows: List[Any], name: str, entity: str) -> Any:
    if len(rows) == 1 or (rows and config.NAME_MATCH_POLICY == "first"):
        return rows[0]
    candidates = ", ".join(row.full_name for row in rows[:5])
    raise ActionValidationError(f"Several {entity}s match '{name}': {candidates}. Which one did you mean?")


def find_customer(session: Session, tenant_id: str, customer_id: Optional[str], name: Optional[str]) -> Any:
    """
    Resolve a customer of ``tenant_id`` by id or by display name.

    Exact (case-insensitive) name matches win over partial ones. Several
    matches either fail or take the first, per ``NAME_MATCH_POLICY``.
    """
    if customer_id:
        row = session.execute(
            text("SELECT id, full_name FROM customers WHERE id = :id AND tenant_id = :tenant_id"),
            {"id": customer_id, "tenant_id": tenant_id}
        ).fetchone()
        if not row:
            raise ActionValidationError("Customer not found.")
        return row

    exact = session.execute(
        text("""
            SELECT id, full_name FROM customers
            WHERE tenant_id = :tenant_id AND LOWER(full_name) = :name
            ORDER BY full_name
        """),
        {"tenant_id": tenant_id, "name": name.lower()}
    ).fetchall()
    if exact:
        return _pick_match(exact, name, "customer")

    partial = session.execute(
        text("""
            SELECT id, full_name FROM customers
            WHERE tenant_id = :tenant_id AND LOWER(full_name) LIKE :pattern ESCAPE '\\'
            ORDER BY full_name
            LIMIT 6
        """),
        {"tenant_id": tenant_id, "pattern": _like_pattern(name)}
    ).fetchall()
    if not partial:
        raise ActionValidationError(f"No customer named '{name}' was found.")
    return _pick_match(partial, name, "customer")


def resolve_category(session: Session, tenant_id: str, name: str) -> Tuple[str, bool]:
    """
    Find an expense category by name (case-insensitive) or create it.

    The category insert is committed on its own; if the main write fails
    afterwards the new category simply stays unused.

    Returns:
        (category_id, created)
    """
    row = session.execute(
        text("""
            SELECT id FROM expense_categories
            WHERE tenant_id = :tenant_id AND LOWER(name) = :name
            ORDER BY created_at
            LIMIT 1
        """),
        {"tenant_id": tenant_id, "name": name.lower()}
    ).fetchone()
    if row:
        return row.id, False

    category_id = str(uuid.uuid4())
    session.execute(
        text("""
            INSERT INTO expense_categories (id, tenant_id, name, is_active, created_at)
            VALUES (:id, :tenant_id, :name, TRUE, :created_at)
        """),
        {"id": category_id, "tenant_id": tenant_id, "name": name, "created_at": db_timestamp()}
    )
    session.commit()
    return category_id, True


def _load_expense(session: Session, tenant_id: str, expense_id: str) -> Any:
    row = session.execute(
        text("""
            SELECT id, description, amount, due_date, status
            FROM expenses
            WHERE id = :id AND tenant_id = :tenant_id
        """),
        {"id": expense_id, "tenant_id": tenant_id}
    ).fetchone()
    if not row:
        raise ActionValidationError("Expense not found.")
    return row


def _expense_dict(row: Any) -> Dict[str, Any]:
    return {
        "id": row.id,
        "description": row.description,
        "amount": round(as_float(row.amount), 2),
        "due_date": as_date(row.due_date).isoformat() if row.due_date else None,
        "status": row.status,
    }


def _write(session: Session, sql: str, params: Dict[str, Any], what: str) -> int:
    """Run one mutating statement and commit it."""
    try:
        result = session.execute(text(sql), params)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Write failed", extra={"operation": what, "error": str(e)})
        raise ActionExecutionError(f"Could not {what} right now. Please try again.")
    return result.rowcount


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

def _validate_create_expense(payload: Dict[str, Any]) -> Dict[str, Any]:
    due = payload.get("due_date")
    return {
        "description": _require_text(payload, "description"),
        "amount": parse_amount(payload.get("amount")),
        "due_date": parse_due_date(due) if due not in (None, "") else date.today(),
        "category": _optional_text(payload, "category", 120),
        "supplier": _optional_text(payload, "supplier"),
        "notes": _optional_text(payload, "notes", 2000),
    }


def _create_expense(session, tenant_id, data, scope) -> ActionResult:
    category_id = None
    if data["category"]:
        category_id, _ = resolve_category(session, tenant_id, data["category"])

    expense_id = str(uuid.uuid4())
    now = db_timestamp()
    _write(session, """
        INSERT INTO expenses (
            id, tenant_id, category_id, description, amount, due_date,
            status, supplier, notes, created_at, updated_at
        ) VALUES (
            :id, :tenant_id, :category_id, :description, :amount, :due_date,
            'pending', :supplier, :notes, :now, :now
        )
    """, {
        "id": expense_id,
        "tenant_id": tenant_id,
        "category_id": category_id,
        "description": data["description"],
        "amount": data["amount"],
        "due_date": data["due_date"].isoformat(),
        "supplier": data["supplier"],
        "notes": data["notes"],
        "now": now,
    }, "create the expense")

    message = (
        f"Expense '{data['description']}' of {_money(data['amount'])} created, "
        f"due {data['due_date'].isoformat()}"
    )
    if data["category"]:
        message += f" in category '{data['category']}'"
    return ActionResult(True, message + ".", {
        "id": expense_id,
        "description": data["description"],
        "amount": data["amount"],
        "due_date": data["due_date"].isoformat(),
        "category": data["category"],
    })


def _validate_update_expense(payload: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": _require_text(payload, "id", 64)}
    if payload.get("description") not in (None, ""):
        data["description"] = _require_text(payload, "description")
    if payload.get("amount") not in (None, ""):
        data["amount"] = parse_amount(payload.get("amount"))
    if payload.get("due_date") not in (None, ""):
        data["due_date"] = parse_due_date(payload.get("due_date"))
    if payload.get("supplier") not in (None, ""):
        data["supplier"] = _require_text(payload, "supplier")
    if payload.get("category") not in (None, ""):
        data["category"] = _require_text(payload, "category", 120)
    if len(data) == 1:
        raise ActionValidationError("Tell me what to change: description, amount, due_date, supplier or category.")
    return data


def _update_expense(session, tenant_id, data, scope) -> ActionResult:
    expense = _load_expense(session, tenant_id, data["id"])

    values: Dict[str, Any] = {}
    for field in ("description", "amount", "supplier"):
        if field in data:
            values[field] = data[field]
    if "due_date" in data:
        values["due_date"] = data["due_date"].isoformat()
    if "category" in data:
        values["category_id"], _ = resolve_category(session, tenant_id, data["category"])

    assignments = ", ".join(f"{column} = :{column}" for column in values)
    _write(session, f"""
        UPDATE expenses SET {assignments}, updated_at = :now
        WHERE id = :id AND tenant_id = :tenant_id
    """, {**values, "now": db_timestamp(), "id": expense.id, "tenant_id": tenant_id}, "update the expense")

    changes = []
    if "description" in data:
        changes.append(f"description '{data['description']}'")
    if "amount" in data:
        changes.append(f"amount {_money(data['amount'])}")
    if "due_date" in data:
        changes.append(f"due date {data['due_date'].isoformat()}")
    if "supplier" in data:
        changes.append(f"supplier '{data['supplier']}'")
    if "category" in data:
        changes.append(f"category '{data['category']}'")
    return ActionResult(
        True,
        f"Expense '{expense.description}' updated: {', '.join(changes)}.",
        {"id": expense.id, **{k: (v.isoformat() if isinstance(v, date) else v) for k, v in data.items() if k != "id"}},
    )


def _validate_expense_id(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": _require_text(payload, "id", 64)}


def _delete_expense(session, tenant_id, data, scope) -> ActionResult:
    expense = _load_expense(session, tenant_id, data["id"])
    _write(session, """
        DELETE FROM expenses WHERE id = :id AND tenant_id = :tenant_id
    """, {"id": expense.id, "tenant_id": tenant_id}, "delete the expense")
    return ActionResult(
        True,
        f"Expense '{expense.description}' of {_money(expense.amount)} deleted.",
        {"id": expense.id},
    )


def _mark_paid(session, tenant_id, data, scope) -> ActionResult:
    expense = _load_expense(session, tenant_id, data["id"])
    if expense.status == "paid":
        return ActionResult(False, f"Expense '{expense.description}' is already paid.")
    if expense.status == "cancelled":
        return ActionResult(False, f"Expense '{expense.description}' is cancelled and cannot be paid.")
    now = db_timestamp()
    _write(session, """
        UPDATE expenses SET status = 'paid', paid_at = :now, updated_at = :now
        WHERE id = :id AND tenant_id = :tenant_id
    """, {"now": now, "id": expense.id, "tenant_id": tenant_id}, "mark the expense as paid")
    return ActionResult(
        True,
        f"Expense '{expense.description}' of {_money(expense.amount)} marked as paid.",
        {"id": expense.id, "status": "paid", "paid_at": now},
    )


def _validate_postpone(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": _require_text(payload, "id", 64), "days": parse_days(payload.get("days"))}


def _postpone(session, tenant_id, data, scope) -> ActionResult:
    expense = _load_expense(session, tenant_id, data["id"])
    if expense.status != "pending":
        return ActionResult(False, f"Only pending expenses can be postponed; '{expense.description}' is {expense.status}.")
    new_due = as_date(expense.due_date) + timedelta(days=data["days"])
    _write(session, """
        UPDATE expenses SET due_date = :due_date, updated_at = :now
        WHERE id = :id AND tenant_id = :tenant_id
    """, {
        "due_date": new_due.isoformat(),
        "now": db_timestamp(),
        "id": expense.id,
        "tenant_id": tenant_id,
    }, "postpone the expense")
    return ActionResult(
        True,
        f"Expense '{expense.description}' postponed by {data['days']} day(s) to {new_due.isoformat()}.",
        {"id": expense.id, "due_date": new_due.isoformat()},
    )


def _cancel_expense(session, tenant_id, data, scope) -> ActionResult:
    expense = _load_expense(session, tenant_id, data["id"])
    if expense.status == "cancelled":
        return ActionResult(False, f"Expense '{expense.description}' is already cancelled.")
    _write(session, """
        UPDATE expenses SET status = 'cancelled', updated_at = :now
        WHERE id = :id AND tenant_id = :tenant_id
    """, {"now": db_timestamp(), "id": expense.id, "tenant_id": tenant_id}, "cancel the expense")
    return ActionResult(
        True,
        f"Expense '{expense.description}' of {_money(expense.amount)} cancelled.",
        {"id": expense.id, "status": "cancelled"},
    )


def _validate_list_expenses(payload: Dict[str, Any]) -> Dict[str, Any]:
    status = (payload.get("status") or "").strip().lower() if isinstance(payload.get("status"), str) else ""
    if status and status not in EXPENSE_STATUSES:
        raise ActionValidationError(f"Unknown status '{status}'. Use one of: {', '.join(EXPENSE_STATUSES)}.")
    return {"status": status or None}


def _list_expenses(session, tenant_id, data, scope) -> ActionResult:
    params: Dict[str, Any] = {"tenant_id": tenant_id, "today": date.today().isoformat(), "limit": LIST_LIMIT}
    where = "tenant_id = :tenant_id"
    if data["status"] == "overdue":
        where += " AND status = 'pending' AND due_date < :today"
    elif data["status"]:
        where += " AND status = :status"
        params["status"] = data["status"]
    rows = session.execute(
        text(f"""
            SELECT id, description, amount, due_date, status
            FROM expenses
            WHERE {where}
            ORDER BY due_date
            LIMIT :limit
        """),
        params
    ).fetchall()
    expenses = [_expense_dict(row) for row in rows]
    label = f"{data['status']} " if data["status"] else ""
    return ActionResult(True, f"{len(expenses)} {label}expense(s) found.", {"expenses": expenses, "count": len(expenses)})


def _no_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {}


def _expense_summary(session, tenant_id, data, scope) -> ActionResult:
    today = date.today()
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    row = session.execute(
        text("""
            SELECT
                SUM(CASE WHEN status != 'cancelled' THEN amount ELSE 0 END) AS total,
                SUM(CASE WHEN status = 'paid' THEN amount ELSE 0 END) AS paid,
                SUM(CASE WHEN status = 'pending' THEN amount ELSE 0 END) AS pending,
                SUM(CASE WHEN status = 'pending' AND due_date < :today THEN amount ELSE 0 END) AS overdue
            FROM expenses
            WHERE tenant_id = :tenant_id AND due_date >= :month_start AND due_date < :next_month
        """),
        {
            "tenant_id": tenant_id,
            "today": today.isoformat(),
            "month_start": month_start.isoformat(),
            "next_month": next_month.isoformat(),
        }
    ).fetchone()
    summary = {
        "month": month_start.strftime("%Y-%m"),
        "total": round(as_float(row.total), 2),
        "paid": round(as_float(row.paid), 2),
        "pending": round(as_float(row.pending), 2),
        "overdue": round(as_float(row.overdue), 2),
    }
    return ActionResult(
        True,
        f"Expenses for {summary['month']}: total {_money(summary['total'])}, "
        f"paid {_money(summary['paid'])}, pending {_money(summary['pending'])}.",
        summary,
    )


# ---------------------------------------------------------------------------
# Customers and charges
# ---------------------------------------------------------------------------

def _validate_create_customer(payload: Dict[str, Any]) -> Dict[str, Any]:
    whatsapp = _optional_text(payload, "whatsapp", 40)
    if whatsapp:
        whatsapp = re.sub(r"\D", "", whatsapp)
        if len(whatsapp) < 10:
            raise ActionValidationError("The field 'whatsapp' must have at least 10 digits including area code.")
    email = _optional_text(payload, "email")
    if email and not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email):
        raise ActionValidationError(f"The field 'email' is not a valid address: '{email}'.")
    return {"full_name": _require_text(payload, "full_name"), "whatsapp": whatsapp, "email": email}


def _create_customer(session, tenant_id, data, scope) -> ActionResult:
    customer_id = str(uuid.uuid4())
    _write(session, """
        INSERT INTO customers (id, tenant_id, full_name, email, whatsapp, status, created_at)
        VALUES (:id, :tenant_id, :full_name, :email, :whatsapp, 'active', :now)
    """, {
        "id": customer_id,
        "tenant_id": tenant_id,
        "full_name": data["full_name"],
        "email": data["email"],
        "whatsapp": data["whatsapp"],
        "now": db_timestamp(),
    }, "create the customer")
    return ActionResult(
        True,
        f"Customer '{data['full_name']}' registered.",
        {"id": customer_id, **data},
    )


def _validate_create_charge(payload: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _optional_text(payload, "customer_id", 64)
    customer_name = _optional_text(payload, "customer_name")
    if not customer_id and not customer_name:
        raise ActionValidationError("Tell me which customer to charge (customer_id or customer_name).")
    due = payload.get("due_date")
    return {
        "customer_id": customer_id,
        "customer_name": customer_name,
        "amount": parse_amount(payload.get("amount")),
        "due_date": parse_due_date(due) if due not in (None, "") else date.today(),
        "description": _optional_text(payload, "description") or "Charge",
    }


def _create_charge(session, tenant_id, data, scope) -> ActionResult:
    customer = find_customer(session, tenant_id, data["customer_id"], data["customer_name"])
    charge_id = str(uuid.uuid4())
    _write(session, """
        INSERT INTO customer_charges (
            id, tenant_id, customer_id, description, amount, due_date, status, created_at
        ) VALUES (
            :id, :tenant_id, :customer_id, :description, :amount, :due_date, 'pending', :now
        )
    """, {
        "id": charge_id,
        "tenant_id": tenant_id,
        "customer_id": customer.id,
        "description": data["description"],
        "amount": data["amount"],
        "due_date": data["due_date"].isoformat(),
        "now": db_timestamp(),
    }, "create the charge")
    return ActionResult(
        True,
        f"Charge of {_money(data['amount'])} for {customer.full_name} created, due {data['due_date'].isoformat()}.",
        {
            "id": charge_id,
            "customer_id": customer.id,
            "customer_name": customer.full_name,
            "amount": data["amount"],
            "due_date": data["due_date"].isoformat(),
        },
    )


def _validate_list_customers(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"search": _optional_text(payload, "search", 120)}


def _list_customers(session, tenant_id, data, scope) -> ActionResult:
    params: Dict[str, Any] = {"tenant_id": tenant_id, "limit": LIST_LIMIT}
    where = "tenant_id = :tenant_id"
    if data["search"]:
        where += " AND LOWER(full_name) LIKE :pattern ESCAPE '\\'"
        params["pattern"] = _like_pattern(data["search"])
    rows = session.execute(
        text(f"""
            SELECT id, full_name, whatsapp, status FROM customers
            WHERE {where}
            ORDER BY full_name
            LIMIT :limit
        """),
        params
    ).fetchall()
    customers = [
        {"id": row.id, "full_name": row.full_name, "whatsapp": row.whatsapp, "status": row.status}
        for row in rows
    ]
    return ActionResult(True, f"{len(customers)} customer(s) found.", {"customers": customers, "count": len(customers)})


def _charge_rows(session: Session, tenant_id: str, customer_id: Optional[str]) -> List[Dict[str, Any]]:
    params: Dict[str, Any] = {"tenant_id": tenant_id, "limit": LIST_LIMIT}
    where = "cc.tenant_id = :tenant_id AND cc.status = 'pending'"
    if customer_id:
        where += " AND cc.customer_id = :customer_id"
        params["customer_id"] = customer_id
    rows = session.execute(
        text(f"""
            SELECT cc.id, cc.description, cc.amount, cc.due_date, c.full_name
            FROM customer_charges cc
            JOIN customers c ON c.id = cc.customer_id AND c.tenant_id = cc.tenant_id
            WHERE {where}
            ORDER BY cc.due_date
            LIMIT :limit
        """),
        params
    ).fetchall()
    return [
        {
            "id": row.id,
            "customer": row.full_name,
            "description": row.description,
            "amount": round(as_float(row.amount), 2),
            "due_date": as_date(row.due_date).isoformat(),
        }
        for row in rows
    ]


def _list_pending_charges(session, tenant_id, data, scope) -> ActionResult:
    charges = _charge_rows(session, tenant_id, None)
    total = round(sum(charge["amount"] for charge in charges), 2)
    return ActionResult(
        True,
        f"{len(charges)} pending charge(s) totalling {_money(total)}.",
        {"charges": charges, "count": len(charges), "total": total},
    )


def _list_resellers(session, tenant_id, data, scope) -> ActionResult:
    rows = session.execute(
        text("""
            SELECT id, name, status FROM tenants
            WHERE parent_tenant_id = :tenant_id AND tenant_type = 'reseller'
            ORDER BY name
            LIMIT :limit
        """),
        {"tenant_id": tenant_id, "limit": LIST_LIMIT}
    ).fetchall()
    resellers = [{"id": row.id, "name": row.name, "status": row.status} for row in rows]
    return ActionResult(True, f"{len(resellers)} reseller(s) found.", {"resellers": resellers, "count": len(resellers)})


# ---------------------------------------------------------------------------
# End-customer self service
# ---------------------------------------------------------------------------

def _require_customer(scope: ExecutionScope) -> str:
    if not scope.customer_id:
        raise ActionValidationError("I need to identify you as a customer before showing account details.")
    return scope.customer_id


def _show_plans(session, tenant_id, data, scope) -> ActionResult:
    rows = session.execute(
        text("""
            SELECT id, name, description, price, billing_cycle FROM services
            WHERE tenant_id = :tenant_id AND is_active = TRUE
            ORDER BY price
        """),
        {"tenant_id": tenant_id}
    ).fetchall()
    plans = [
        {
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "price": round(as_float(row.price), 2),
            "billing_cycle": row.billing_cycle,
        }
        for row in rows
    ]
    if not plans:
        return ActionResult(True, "There are no plans available right now.", {"plans": []})
    listing = "; ".join(f"{plan['name']} ({_money(plan['price'])})" for plan in plans)
    return ActionResult(True, f"Available plans: {listing}.", {"plans": plans})


def _show_services(session, tenant_id, data, scope) -> ActionResult:
    customer_id = _require_customer(scope)
    rows = session.execute(
        text("""
            SELECT id, product_name, plan_name, price, status, expires_at
            FROM customer_items
            WHERE tenant_id = :tenant_id AND customer_id = :customer_id
            ORDER BY expires_at
        """),
        {"tenant_id": tenant_id, "customer_id": customer_id}
    ).fetchall()
    services = [
        {
            "id": row.id,
            "service": row.product_name,
            "plan": row.plan_name,
            "price": round(as_float(row.price), 2),
            "status": row.status,
            "expires_at": as_date(row.expires_at).isoformat() if row.expires_at else None,
        }
        for row in rows
    ]
    return ActionResult(True, f"You have {len(services)} service(s).", {"services": services})


def _show_charges(session, tenant_id, data, scope) -> ActionResult:
    charges = _charge_rows(session, tenant_id, _require_customer(scope))
    total = round(sum(charge["amount"] for charge in charges), 2)
    return ActionResult(
        True,
        f"You have {len(charges)} open charge(s) totalling {_money(total)}.",
        {"charges": charges, "total": total},
    )


def _show_referral(session, tenant_id, data, scope) -> ActionResult:
    row = session.execute(
        text("""
            SELECT code, balance, total_referrals FROM referral_links
            WHERE tenant_id = :tenant_id AND customer_id = :customer_id
        """),
        {"tenant_id": tenant_id, "customer_id": _require_customer(scope)}
    ).fetchone()
    if not row:
        return ActionResult(True, "You do not have a referral link yet.", {"balance": 0.0, "total_referrals": 0})
    balance = round(as_float(row.balance), 2)
    return ActionResult(
        True,
        f"Referral balance {_money(balance)} from {row.total_referrals or 0} referral(s).",
        {"code": row.code, "balance": balance, "total_referrals": int(row.total_referrals or 0)},
    )


def _validate_generate_payment(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"charge_id": _require_text(payload, "charge_id", 64)}


def _generate_payment(session, tenant_id, data, scope) -> ActionResult:
    params = {"id": data["charge_id"], "tenant_id": tenant_id}
    where = "id = :id AND tenant_id = :tenant_id"
    if scope.role_tier == RoleTier.END_CUSTOMER:
        where += " AND customer_id = :customer_id"
        params["customer_id"] = _require_customer(scope)
    row = session.execute(
        text(f"""
            SELECT id, amount, due_date, status, payment_link
            FROM customer_charges
            WHERE {where}
        """),
        params
    ).fetchone()
    if not row:
        raise ActionValidationError("Charge not found.")
    if row.status != "pending":
        return ActionResult(False, f"This charge is {row.status}; there is nothing to pay.")
    due = as_date(row.due_date).isoformat()
    message = f"Charge of {_money(row.amount)} due {due}."
    if row.payment_link:
        message += f" Pay here: {row.payment_link}"
    return ActionResult(True, message, {
        "charge_id": row.id,
        "amount": round(as_float(row.amount), 2),
        "due_date": due,
        "payment_link": row.payment_link,
    })


def _validate_create_ticket(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "subject": _require_text(payload, "subject"),
        "message": _optional_text(payload, "message", 4000),
    }


def _create_ticket(session, tenant_id, data, scope) -> ActionResult:
    ticket_id = str(uuid.uuid4())
    _write(session, """
        INSERT INTO support_tickets (id, tenant_id, customer_id, session_id, subject, message, status, created_at)
        VALUES (:id, :tenant_id, :customer_id, :session_id, :subject, :message, 'open', :now)
    """, {
        "id": ticket_id,
        "tenant_id": tenant_id,
        "customer_id": scope.customer_id,
        "session_id": scope.session_id,
        "subject": data["subject"],
        "message": data["message"],
        "now": db_timestamp(),
    }, "open the ticket")
    return ActionResult(True, f"Support ticket '{data['subject']}' opened.", {"id": ticket_id, "subject": data["subject"]})


def _validate_transfer(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"reason": _optional_text(payload, "reason", 500)}


def _transfer_to_human(session, tenant_id, data, scope) -> ActionResult:
    if scope.session_id:
        updated = _write(session, """
            UPDATE chatbot_sessions SET transferred_to_human = TRUE, updated_at = :now
            WHERE id = :id AND tenant_id = :tenant_id
        """, {"now": db_timestamp(), "id": scope.session_id, "tenant_id": tenant_id}, "transfer the conversation")
        if not updated:
            _write(session, """
                INSERT INTO chatbot_sessions (id, tenant_id, actor_id, total_actions, transferred_to_human, started_at, updated_at)
                VALUES (:id, :tenant_id, :actor_id, 0, TRUE, :now, :now)
            """, {
                "id": scope.session_id,
                "tenant_id": tenant_id,
                "actor_id": scope.actor_id,
                "now": db_timestamp(),
            }, "transfer the conversation")
    return ActionResult(
        True,
        "A human agent will continue this conversation shortly.",
        {"session_id": scope.session_id, "reason": data["reason"]},
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

Validator = Callable[[Dict[str, Any]], Dict[str, Any]]
Runner = Callable[[Session, str, Dict[str, Any], ExecutionScope], ActionResult]

HANDLERS: Dict[str, Tuple[Validator, Runner]] = {
    "create-expense": (_validate_create_expense, _create_expense),
    "update-expense": (_validate_update_expense, _update_expense),
    "delete-expense": (_validate_expense_id, _delete_expense),
    "mark-paid": (_validate_expense_id, _mark_paid),
    "postpone": (_validate_postpone, _postpone),
    "cancel": (_validate_expense_id, _cancel_expense),
    "list-expenses": (_validate_list_expenses, _list_expenses),
    "expense-summary": (_no_fields, _expense_summary),
    "create-customer": (_validate_create_customer, _create_customer),
    "create-charge": (_validate_create_charge, _create_charge),
    "list-customers": (_validate_list_customers, _list_customers),
    "list-pending-charges": (_no_fields, _list_pending_charges),
    "list-resellers": (_no_fields, _list_resellers),
    "show-plans": (_no_fields, _show_plans),
    "show-services": (_no_fields, _show_services),
    "show-charges": (_no_fields, _show_charges),
    "show-referral": (_no_fields, _show_referral),
    "generate-payment": (_validate_generate_payment, _generate_payment),
    "create-ticket": (_validate_create_ticket, _create_ticket),
    "transfer-to-human": (_validate_transfer, _transfer_to_human),
}


async def execute(
    tenant_id: str,
    directive: Directive,
    scope: Optional[ExecutionScope] = None,
) -> ActionResult:
    """
    Validate and perform ``directive`` for ``tenant_id``.

    Args:
        tenant_id: Tenant every read and write is scoped to
        directive: Parsed directive (already confirmed if it needed to be)
        scope: Actor and session the directive runs for

    Returns:
        ActionResult; never raises
    """
    scope = scope or ExecutionScope()
    handler = HANDLERS.get(directive.type)
    if handler is None:
        return ActionResult(False, f"The action '{directive.type}' is not available.")
    validate, run = handler

    start_time = time.time()
    try:
        data = validate(directive.payload or {})
        with get_db_session(tenant_id) as session:
            result = run(session, tenant_id, data, scope)
    except ActionValidationError as e:
        result = ActionResult(False, e.message)
    except ActionExecutionError as e:
        result = ActionResult(False, e.message)
    except SQLAlchemyError as e:
        logger.error(
            "Directive execution failed",
            extra={"tenant_id": tenant_id, "directive_type": directive.type, "error": str(e)},
        )
        result = ActionResult(False, "Could not complete the action right now. Please try again.")
    except Exception as e:
        logger.error(
            "Unexpected error executing directive",
            extra={"tenant_id": tenant_id, "directive_type": directive.type, "error": str(e)},
            exc_info=True,
        )
        result = ActionResult(False, "Could not complete the action right now. Please try again.")

    actions_executed_total.labels(
        directive_type=directive.type,
        status="success" if result.success else "failure",
    ).inc()
    action_execution_duration.labels(directive_type=directive.type).observe(time.time() - start_time)
    return result
