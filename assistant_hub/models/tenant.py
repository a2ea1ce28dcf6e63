"""Per-request tenant AI configuration."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TenantAIConfig:
    """AI settings for one tenant, loaded fresh on every request."""
    tenant_id: str
    provider: str  # "openai" | "gemini"
    model: str  # as configured, normalized by the gateway
    max_tokens: int
    api_key: Optional[str]
    temperature: Optional[float] = None
    web_search: bool = False
    personality: Optional[str] = None  # free-form tone instructions
    business_context: Optional[str] = None  # free-form business description
