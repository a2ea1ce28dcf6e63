from .context import Actor, ConversationContext, KnowledgeEntry, RoleTier
from .directive import ActionResult, Directive, DirectiveState, Endpoint, ParsedReply
from .message import ChatMessage
from .tenant import TenantAIConfig

__all__ = [
    "Actor",
    "ConversationContext",
    "KnowledgeEntry",
    "RoleTier",
    "ActionResult",
    "Directive",
    "DirectiveState",
    "Endpoint",
    "ParsedReply",
    "ChatMessage",
    "TenantAIConfig",
]
