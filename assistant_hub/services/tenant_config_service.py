"""Service to load per-request tenant AI configuration from tenant settings."""

import logging
from typing import Dict, Optional

from sqlalchemy import text

from assistant_hub.infra.config import config
from assistant_hub.infra.database import get_db_session
from assistant_hub.models.tenant import TenantAIConfig

logger = logging.getLogger(__name__)

SETTING_KEYS = (
    "ai_provider",
    "ai_model",
    "ai_max_tokens",
    "ai_temperature",
    "ai_web_search",
    "openai_api_key",
    "gemini_api_key",
    "ai_chatbot_personality",
    "ai_chatbot_context",
)


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value) if value not in (None, "") else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_float(value: Optional[str]) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError:
        return None


def load_tenant_settings(tenant_id: str) -> Dict[str, str]:
    """Read the AI-related key/value settings of a tenant."""
    with get_db_session(tenant_id) as session:
        rows = session.execute(
            text("""
                SELECT key, value
                FROM tenant_settings
                WHERE tenant_id = :tenant_id
            """),
            {"tenant_id": tenant_id}
        ).fetchall()

    return {row.key: row.value for row in rows if row.key in SETTING_KEYS}


def get_tenant_ai_config(tenant_id: str, default_max_tokens: Optional[int] = None) -> TenantAIConfig:
    """
    Load the AI configuration of a tenant.

    Read fresh on every request and passed down the call chain; nothing is
    cached across requests. The provider value is kept verbatim so the gateway
    can reject unknown providers itself.

    Args:
        tenant_id: Tenant ID
        default_max_tokens: Endpoint-specific default output-token bound

    Returns:
        TenantAIConfig
    """
    settings = load_tenant_settings(tenant_id)

    provider = (settings.get("ai_provider") or config.DEFAULT_PROVIDER).strip().lower()
    api_key = settings.get(f"{provider}_api_key")

    return TenantAIConfig(
        tenant_id=tenant_id,
        provider=provider,
        model=settings.get("ai_model") or "",
        max_tokens=_parse_int(settings.get("ai_max_tokens"), default_max_tokens or config.DEFAULT_MAX_TOKENS),
        api_key=api_key,
        temperature=_parse_float(settings.get("ai_temperature")),
        web_search=(settings.get("ai_web_search") or "").strip().lower() == "true",
        personality=settings.get("ai_chatbot_personality") or None,
        business_context=settings.get("ai_chatbot_context") or None,
    )
