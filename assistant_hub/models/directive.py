"""Directive grammar, lifecycle and execution result models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from assistant_hub.models.context import RoleTier


class DirectiveState(str, Enum):
    """Lifecycle of a directive parsed from an assistant reply."""
    PROPOSED = "proposed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


class Endpoint(str, Enum):
    """Assistant endpoints; each exposes its own directive set."""
    CHAT = "chat"
    CONTEXTUAL = "contextual"
    EXPENSES = "expenses"


@dataclass(frozen=True)
class DirectiveSpec:
    """Grammar entry for one directive type."""
    type: str
    description: str
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()
    example: str = "{}"


_SPECS = [
    DirectiveSpec(
        "create-expense", "Register a new expense",
        required=("description", "amount"),
        optional=("due_date", "category", "supplier", "notes"),
        example='{"description":"Aluguel","amount":1500,"due_date":"2025-01-05","category":"Rent"}',
    ),
    DirectiveSpec(
        "update-expense", "Change fields of an existing expense",
        required=("id",),
        optional=("description", "amount", "due_date", "category", "supplier"),
        example='{"id":"<expense id>","amount":1600}',
    ),
    DirectiveSpec("delete-expense", "Delete an expense", required=("id",), example='{"id":"<expense id>"}'),
    DirectiveSpec("mark-paid", "Mark an expense as paid", required=("id",), example='{"id":"<expense id>"}'),
    DirectiveSpec(
        "postpone", "Move an expense due date forward by a number of days",
        required=("id", "days"),
        example='{"id":"<expense id>","days":7}',
    ),
    DirectiveSpec("cancel", "Cancel an expense", required=("id",), example='{"id":"<expense id>"}'),
    DirectiveSpec(
        "list-expenses", "List expenses, optionally by status (pending, overdue, paid)",
        optional=("status",), example='{"status":"pending"}',
    ),
    DirectiveSpec("expense-summary", "Show this month's expense totals"),
    DirectiveSpec(
        "create-customer", "Register a new customer",
        required=("full_name",), optional=("whatsapp", "email"),
        example='{"full_name":"Maria Silva","whatsapp":"5511999999999"}',
    ),
    DirectiveSpec(
        "create-charge", "Create a charge for a customer (by id or name)",
        required=("amount",), optional=("customer_id", "customer_name", "due_date", "description"),
        example='{"customer_name":"Maria Silva","amount":89.9,"due_date":"2025-02-10"}',
    ),
    DirectiveSpec("list-customers", "List customers, optionally filtered by name", optional=("search",)),
    DirectiveSpec("list-pending-charges", "List charges awaiting payment"),
    DirectiveSpec("list-resellers", "List resellers under this organization"),
    DirectiveSpec("show-plans", "Show the plans available for purchase"),
    DirectiveSpec("show-services", "Show the customer's active services"),
    DirectiveSpec("show-charges", "Show the customer's open charges"),
    DirectiveSpec("show-referral", "Show the customer's referral balance"),
    DirectiveSpec(
        "generate-payment", "Send the payment details for an open charge",
        required=("charge_id",), example='{"charge_id":"<charge id>"}',
    ),
    DirectiveSpec(
        "create-ticket", "Open a support ticket",
        required=("subject",), optional=("message",),
        example='{"subject":"Login problem","message":"Cannot access the panel"}',
    ),
    DirectiveSpec(
        "transfer-to-human", "Hand the conversation to a human agent",
        optional=("reason",), example='{"reason":"customer asked for an agent"}',
    ),
]

DIRECTIVE_SPECS: Dict[str, DirectiveSpec] = {spec.type: spec for spec in _SPECS}

# Destructive or irreversible types; these wait for an explicit confirmation
DESTRUCTIVE_DIRECTIVES: FrozenSet[str] = frozenset({"delete-expense", "cancel", "mark-paid"})

EXPENSE_DIRECTIVES: FrozenSet[str] = frozenset({
    "create-expense", "update-expense", "delete-expense", "mark-paid",
    "postpone", "cancel", "list-expenses", "expense-summary",
})

CHAT_DIRECTIVES: FrozenSet[str] = frozenset({
    "show-plans", "show-services", "show-charges",
    "generate-payment", "create-ticket", "transfer-to-human",
})

_CONTEXTUAL_DIRECTIVES: Dict[RoleTier, FrozenSet[str]] = {
    RoleTier.OPERATOR: EXPENSE_DIRECTIVES | {"list-resellers"},
    RoleTier.ORG_ADMIN: EXPENSE_DIRECTIVES | {"list-resellers"},
    RoleTier.RESELLER: EXPENSE_DIRECTIVES | {
        "create-customer", "create-charge", "list-customers", "list-pending-charges",
    },
    RoleTier.END_CUSTOMER: CHAT_DIRECTIVES | {"show-referral"},
}


def directive_types_for(endpoint: Endpoint, role_tier: RoleTier) -> FrozenSet[str]:
    """Directive types the model may emit on ``endpoint`` for ``role_tier``."""
    if endpoint == Endpoint.EXPENSES:
        return EXPENSE_DIRECTIVES
    if endpoint == Endpoint.CHAT:
        return CHAT_DIRECTIVES
    return _CONTEXTUAL_DIRECTIVES[role_tier]


def requires_confirmation(directive_type: str) -> bool:
    return directive_type in DESTRUCTIVE_DIRECTIVES


@dataclass
class Directive:
    """A typed command extracted from model output."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    confirm_required: bool = False
    state: DirectiveState = DirectiveState.PROPOSED

    @classmethod
    def proposed(cls, directive_type: str, payload: Dict[str, Any]) -> "Directive":
        return cls(
            type=directive_type,
            payload=payload,
            confirm_required=requires_confirmation(directive_type),
        )

    def to_response(self) -> Dict[str, Any]:
        return {"type": self.type, "payload": self.payload, "confirmRequired": self.confirm_required}


@dataclass
class ActionResult:
    """Outcome of executing a directive. Always returned, never raised."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


@dataclass
class ParsedReply:
    """Model reply split into the user-visible text and an optional directive."""
    visible_message: str
    directive: Optional[Directive] = None


def grammar_for(directive_types) -> List[DirectiveSpec]:
    """Specs for ``directive_types`` in a stable order."""
    return [DIRECTIVE_SPECS[name] for name in sorted(directive_types)]
