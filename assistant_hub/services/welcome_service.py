"""Welcome message and quick-action menu per role tier."""

from typing import Any, Dict, List, Optional

from assistant_hub.models.context import ConversationContext, RoleTier

MENU_OPTIONS: Dict[RoleTier, List[Dict[str, str]]] = {
    RoleTier.OPERATOR: [
        {"id": "metrics", "label": "Platform overview", "action": "Show me the platform overview"},
        {"id": "resellers", "label": "Resellers", "action": "list-resellers"},
        {"id": "expenses", "label": "Expenses", "action": "expense-summary"},
    ],
    RoleTier.ORG_ADMIN: [
        {"id": "resellers", "label": "My resellers", "action": "list-resellers"},
        {"id": "overdue", "label": "Overdue payments", "action": "Which resellers are overdue?"},
        {"id": "expenses", "label": "Expenses", "action": "expense-summary"},
    ],
    RoleTier.RESELLER: [
        {"id": "customers", "label": "My customers", "action": "list-customers"},
        {"id": "charges", "label": "Pending charges", "action": "list-pending-charges"},
        {"id": "new_customer", "label": "New customer", "action": "I want to register a customer"},
        {"id": "expenses", "label": "Expenses", "action": "expense-summary"},
    ],
    RoleTier.END_CUSTOMER: [
        {"id": "services", "label": "My services", "action": "show-services"},
        {"id": "charges", "label": "My charges", "action": "show-charges"},
        {"id": "plans", "label": "Plans", "action": "show-plans"},
        {"id": "human", "label": "Talk to a person", "action": "transfer-to-human"},
    ],
}


def menu_for(role_tier: RoleTier) -> List[Dict[str, str]]:
    return [dict(option) for option in MENU_OPTIONS[role_tier]]


def welcome_message(context: ConversationContext) -> str:
    """Greeting with the most relevant figure for the actor's tier."""
    snapshot: Dict[str, Any] = context.business_snapshot
    tier = context.actor.role_tier
    name: Optional[str] = context.actor.display_name

    greeting = f"Hello, {name}!" if name else "Hello!"
    if tier == RoleTier.END_CUSTOMER:
        if snapshot.get("overdue_charges"):
            detail = f"You have {snapshot['overdue_charges']} overdue charge(s)."
        elif snapshot.get("next_due_date"):
            detail = f"Your next payment of R$ {snapshot.get('next_due_amount', 0):.2f} is due {snapshot['next_due_date']}."
        else:
            detail = "Your account is up to date."
    elif tier == RoleTier.RESELLER:
        detail = (
            f"You have {snapshot.get('total_customers', 0)} customer(s) and "
            f"{snapshot.get('overdue_charges', 0)} overdue charge(s)."
        )
    elif tier == RoleTier.ORG_ADMIN:
        detail = (
            f"You manage {snapshot.get('total_resellers', 0)} reseller(s); "
            f"revenue this month is R$ {snapshot.get('revenue_this_month', 0):.2f}."
        )
    else:
        detail = (
            f"The platform has {snapshot.get('total_admins', 0)} organization(s); "
            f"revenue this month is R$ {snapshot.get('revenue_this_month', 0):.2f}."
        )
    return f"{greeting} {detail} How can I help you today?"
