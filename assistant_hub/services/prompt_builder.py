"""Prompt composer: renders the system prompt and the conversation history."""

import tiktoken
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from assistant_hub.models.context import ConversationContext, RoleTier
from assistant_hub.models.directive import DESTRUCTIVE_DIRECTIVES, grammar_for
from assistant_hub.models.message import ChatMessage


# Used when the tenant has not configured a personality
DEFAULT_PERSONALITY_PROMPT = """You are the virtual assistant of a billing and customer management platform.
Be friendly, objective and professional. Keep answers short and practical.
Answer in the same language the user writes in (Brazilian Portuguese by default).
Format money as R$ with two decimals and dates as YYYY-MM-DD.
Only state figures that appear in the business data below; if something is not there, say you do not know."""

TIER_LABELS = {
    RoleTier.OPERATOR: "Platform operator (master)",
    RoleTier.ORG_ADMIN: "Organization administrator",
    RoleTier.RESELLER: "Reseller",
    RoleTier.END_CUSTOMER: "End customer",
}

SNAPSHOT_LABELS = {
    "total_admins": "Organizations (admins)",
    "defaulting_admins": "Organizations with overdue payments",
    "total_resellers": "Resellers",
    "total_customers": "Customers",
    "active_services": "Active services",
    "revenue_this_month": "Revenue this month (R$)",
    "paid_this_month": "Charges paid this month",
    "overdue_charges": "Overdue charges",
    "pending_amount": "Pending amount (R$)",
    "due_today": "Charges due today",
    "expiring_services": "Services expiring soon",
    "expiring_services_count": "Services expiring in the next 7 days",
    "customer_name": "Customer name",
    "services_count": "Active services",
    "plan_name": "Plan",
    "next_due_date": "Next due date",
    "next_due_amount": "Next due amount (R$)",
    "days_until_due": "Days until next due date",
    "pending_charges": "Pending charges",
    "overdue_amount": "Overdue amount (R$)",
    "referral_balance": "Referral balance (R$)",
    "total_referrals": "Referrals",
    "expenses_pending": "Upcoming expenses",
    "expenses_overdue": "Overdue expenses",
    "expenses_pending_count": "Pending expenses",
    "expenses_overdue_count": "Overdue expenses (count)",
    "expenses_due_today": "Expenses due today",
    "expenses_month_total": "Expenses this month (R$)",
    "expenses_month_paid": "Expenses paid this month (R$)",
    "expenses_month_pending": "Expenses still open this month (R$)",
    "expense_categories": "Expense categories",
}

# Message windows kept from the client-supplied history
CHAT_HISTORY_LIMIT = 20
CONTEXTUAL_HISTORY_LIMIT = 15
MAX_HISTORY_TOKENS = 3000


def _label(key: str) -> str:
    return SNAPSHOT_LABELS.get(key, key.replace("_", " ").capitalize())


def _format_value(value: Any) -> str:
    if value is None or value == "":
        return "none"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def render_snapshot(snapshot: Dict[str, Any]) -> List[str]:
    """Render the business snapshot as labeled lines; lists become indented items."""
    lines = []
    for key, value in snapshot.items():
        if isinstance(value, list):
            if not value:
                lines.append(f"- {_label(key)}: none")
                continue
            lines.append(f"- {_label(key)}:")
            for item in value:
                if isinstance(item, dict):
                    rendered = ", ".join(f"{k}: {_format_value(v)}" for k, v in item.items())
                else:
                    rendered = _format_value(item)
                lines.append(f"  * {rendered}")
        else:
            lines.append(f"- {_label(key)}: {_format_value(value)}")
    return lines


def render_grammar(directive_types: Iterable[str], menu_options: Optional[List[Dict[str, Any]]] = None) -> str:
    """Command grammar section: allowed directives with exact tag syntax."""
    specs = grammar_for(directive_types)
    lines = [
        "## Actions",
        "You can ask the system to perform ONE action by ending your reply with a single tag:",
        "[ACTION:<type>:<json-object>]",
        "Rules:",
        "- Emit at most one action tag per reply, and only as the very last thing in the reply.",
        "- The JSON object must be valid JSON on one line, using exactly the field names listed.",
        "- Never invent ids; use ids shown in the business data or ask the user.",
        "- Do not mention the tag; describe what will happen in plain words.",
    ]
    destructive = sorted(DESTRUCTIVE_DIRECTIVES.intersection(s.type for s in specs))
    if destructive:
        lines.append(
            f"- {', '.join(destructive)} need the user's confirmation: ask them to reply 'yes' to confirm."
        )
    lines.append("Available actions:")
    for spec in specs:
        fields = ", ".join(spec.required) if spec.required else "none"
        line = f"- {spec.type}: {spec.description}. Required fields: {fields}."
        if spec.optional:
            line += f" Optional: {', '.join(spec.optional)}."
        line += f" Example: [ACTION:{spec.type}:{spec.example}]"
        lines.append(line)

    if menu_options:
        lines.append("Quick menu shown to the user:")
        for option in menu_options:
            lines.append(f"- {option.get('label', '')} ({option.get('action', option.get('id', ''))})")
    return "\n".join(lines)


def compose(
    context: ConversationContext,
    directive_types: Iterable[str],
    personality_override: Optional[str] = None,
) -> str:
    """
    Render the system prompt for one request.

    Order (strict):
    1. Personality (override, tenant setting, or DEFAULT_PERSONALITY_PROMPT)
    2. Business description
    3. Business hours
    4. Actor identity
    5. Business snapshot
    6. Knowledge base
    7. Command grammar

    Sections 2, 3 and 6 are omitted when empty. The output is a pure function
    of the inputs.
    """
    sections = []

    personality = (personality_override or context.personality_text or "").strip()
    sections.append(personality or DEFAULT_PERSONALITY_PROMPT)

    if context.business_description and context.business_description.strip():
        sections.append(f"## About the business\n{context.business_description.strip()}")

    if context.business_hours and context.business_hours.strip():
        sections.append(f"## Business hours\n{context.business_hours.strip()}")

    actor = context.actor
    identity = [
        "## Who you are talking to",
        f"- Role: {TIER_LABELS[actor.role_tier]}",
    ]
    if actor.display_name:
        identity.append(f"- Name: {actor.display_name}")
    if actor.actor_id is None:
        identity.append("- Not identified; do not share account data.")
    sections.append("\n".join(identity))

    snapshot_lines = render_snapshot(context.business_snapshot)
    sections.append("## Business data\n" + ("\n".join(snapshot_lines) if snapshot_lines else "No data available."))

    if context.knowledge_base:
        qa = [f"Q: {entry.question}\nA: {entry.answer}" for entry in context.knowledge_base]
        sections.append("## Knowledge base\n" + "\n\n".join(qa))

    sections.append(render_grammar(directive_types, context.menu_options))

    return "\n\n".join(sections)


@lru_cache(maxsize=1)
def _get_encoding():
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception:
        # Tokenizer data unavailable (offline); fall back to the message window only
        return None


def build_history(
    previous_messages: List[ChatMessage],
    limit: int = CHAT_HISTORY_LIMIT,
    max_tokens: int = MAX_HISTORY_TOKENS,
) -> List[Dict[str, str]]:
    """
    Normalize client-supplied history for the gateway.

    Maps 'bot' to 'assistant', drops empty or unknown-role turns, keeps the
    last ``limit`` messages and then drops the oldest until the history fits
    ``max_tokens``.
    """
    normalized = []
    for msg in previous_messages:
        role = "assistant" if msg.role in ("assistant", "bot") else msg.role
        if role not in ("user", "assistant") or not msg.content.strip():
            continue
        normalized.append({"role": role, "content": msg.content})

    selected = normalized[-limit:] if limit else []

    encoding = _get_encoding()
    if encoding is None:
        return selected

    kept: List[Dict[str, str]] = []
    total_tokens = 0
    for msg in reversed(selected):
        msg_tokens = len(encoding.encode(msg["content"]))
        if total_tokens + msg_tokens > max_tokens:
            break
        kept.insert(0, msg)
        total_tokens += msg_tokens
    return kept
