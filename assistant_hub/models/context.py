"""Conversation context assembled per request."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RoleTier(str, Enum):
    """Organizational tiers, from platform operator down to end customer."""
    OPERATOR = "operator"
    ORG_ADMIN = "org_admin"
    RESELLER = "reseller"
    END_CUSTOMER = "end_customer"

    @property
    def is_staff(self) -> bool:
        return self is not RoleTier.END_CUSTOMER


@dataclass
class Actor:
    """The human talking to the assistant."""
    actor_id: Optional[str]
    role_tier: RoleTier
    display_name: Optional[str] = None


@dataclass
class KnowledgeEntry:
    """A question/answer pair used as grounding text."""
    question: str
    answer: str


@dataclass
class ConversationContext:
    """Everything the prompt needs about the tenant, the actor and their business."""
    tenant_id: str
    actor: Actor
    business_snapshot: Dict[str, Any] = field(default_factory=dict)
    knowledge_base: List[KnowledgeEntry] = field(default_factory=list)
    personality_text: Optional[str] = None
    business_description: Optional[str] = None
    business_hours: Optional[str] = None
    menu_options: List[Dict[str, Any]] = field(default_factory=list)
