"""Uniform completion interface over the supported LLM providers.

Each provider is a strategy object owning its own wire format and failure
mapping. The gateway picks one from the tenant configuration, validates the
configuration before any network traffic, bounds the call with a timeout and
never retries.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from assistant_hub.adapters.vendor_adapter_gemini import GeminiBackend
from assistant_hub.adapters.vendor_adapter_openai import OpenAIChatBackend
from assistant_hub.infra.config import config
from assistant_hub.infra.error_handler import ConfigurationError, ProviderError, wrap_transport_error
from assistant_hub.infra.metrics import llm_calls_total, llm_call_duration
from assistant_hub.infra.timeout import LLM_CALL_TIMEOUT
from assistant_hub.models.tenant import TenantAIConfig

logger = logging.getLogger(__name__)


@dataclass
class CompletionOptions:
    """Per-call generation settings."""
    max_tokens: int = 800
    temperature: Optional[float] = None
    web_search: bool = False


class ProviderBackend(Protocol):
    name: str
    default_model: str
    model_prefixes: Tuple[str, ...]
    supports_web_search: bool

    async def complete(
        self,
        api_key: str,
        model: str,
        system_prompt: str,
        history: List[Dict[str, str]],
        user_message: str,
        options: CompletionOptions,
    ) -> str:
        ...


BACKENDS: Dict[str, ProviderBackend] = {
    "openai": OpenAIChatBackend(),
    "gemini": GeminiBackend(),
}


def get_backend(provider: Optional[str]) -> ProviderBackend:
    """
    Resolve the backend for a configured provider name.

    Raises:
        ConfigurationError: If the provider is not supported
    """
    backend = BACKENDS.get((provider or "").strip().lower())
    if backend is None:
        raise ConfigurationError(
            f"AI provider '{provider}' is not supported. Choose one of: {', '.join(sorted(BACKENDS))}.",
            provider=provider,
        )
    return backend


def normalize_model(model: Optional[str], backend: ProviderBackend) -> str:
    """
    Normalize a configured model identifier for ``backend``.

    Strips any ``vendor/`` namespace prefix and falls back to the backend's
    default model when the value is empty or not a model of that family.
    """
    name = (model or "").strip()
    if "/" in name:
        name = name.rsplit("/", 1)[-1]
    if not name or not name.lower().startswith(backend.model_prefixes):
        return backend.default_model
    return name


def resolve_options(ai_config: TenantAIConfig, backend: ProviderBackend) -> CompletionOptions:
    """Build call options from tenant configuration."""
    web_search = ai_config.web_search and backend.supports_web_search
    max_tokens = ai_config.max_tokens or config.DEFAULT_MAX_TOKENS
    if web_search:
        max_tokens = max(max_tokens, config.WEB_SEARCH_MIN_TOKENS)
    return CompletionOptions(
        max_tokens=max_tokens,
        temperature=ai_config.temperature,
        web_search=web_search,
    )


async def complete(
    ai_config: TenantAIConfig,
    system_prompt: str,
    history: List[Dict[str, str]],
    user_message: str,
    options: Optional[CompletionOptions] = None,
    timeout: float = LLM_CALL_TIMEOUT,
) -> str:
    """
    Run one completion against the tenant's configured provider.

    Args:
        ai_config: Tenant AI configuration for this request
        system_prompt: Composed system prompt
        history: Prior turns as {"role": "user"|"assistant", "content": str}
        user_message: Current user message
        options: Overrides for the options derived from ``ai_config``
        timeout: Seconds before the call is abandoned

    Returns:
        Raw reply text from the model

    Raises:
        ConfigurationError: Unknown provider or missing API key (no network call made)
        RateLimitedError: Provider answered 429
        AuthInvalidError: Provider rejected the key
        UnavailableError: Any other failure, including timeout
    """
    backend = get_backend(ai_config.provider)
    if not ai_config.api_key or not ai_config.api_key.strip():
        raise ConfigurationError(
            f"{backend.name} API key is not configured. Add it in the assistant settings.",
            provider=backend.name,
        )

    model = normalize_model(ai_config.model, backend)
    if options is None:
        options = resolve_options(ai_config, backend)
    elif options.web_search and not backend.supports_web_search:
        options = CompletionOptions(
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            web_search=False,
        )

    start_time = time.time()
    try:
        text = await asyncio.wait_for(
            backend.complete(
                ai_config.api_key.strip(), model, system_prompt, history, user_message, options
            ),
            timeout=timeout,
        )
    except ProviderError as e:
        llm_calls_total.labels(provider=backend.name, model=model, status=e.category.value).inc()
        logger.warning(
            "LLM call failed",
            extra={"provider": backend.name, "model": model, "category": e.category.value},
        )
        raise
    except (asyncio.TimeoutError, OSError) as e:
        llm_calls_total.labels(provider=backend.name, model=model, status="unavailable").inc()
        logger.error(
            "LLM call did not complete",
            extra={"provider": backend.name, "model": model, "error": str(e)},
        )
        raise wrap_transport_error(e, backend.name)

    elapsed = time.time() - start_time
    llm_calls_total.labels(provider=backend.name, model=model, status="success").inc()
    llm_call_duration.labels(provider=backend.name, model=model).observe(elapsed)
    logger.info(
        "LLM call completed",
        extra={"provider": backend.name, "model": model, "latency_ms": int(elapsed * 1000)},
    )
    return text
