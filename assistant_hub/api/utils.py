"""Request orchestration shared by the assistant endpoints."""

import logging
import time
from typing import Any, Dict, List, Optional

from assistant_hub.adapters import provider_gateway
from assistant_hub.api.models import ChatRequest, ChatResponse
from assistant_hub.infra.error_handler import ProviderError
from assistant_hub.infra.logging import tenant_id_var
from assistant_hub.infra.metrics import directives_total
from assistant_hub.infra.validation import InvalidRequestError, validate_message_text, validate_tenant_id
from assistant_hub.logging.event_logger import log_directive, log_llm_call
from assistant_hub.logging.session_action_log import record, remember_exchange
from assistant_hub.models.context import ConversationContext, RoleTier
from assistant_hub.models.directive import (
    ActionResult,
    Directive,
    DirectiveState,
    Endpoint,
    directive_types_for,
)
from assistant_hub.models.tenant import TenantAIConfig
from assistant_hub.services.action_executor import ExecutionScope, execute
from assistant_hub.services.confirmation_service import (
    CANCEL,
    PendingDirective,
    classify_reply,
    get_pending,
    park,
    transition,
)
from assistant_hub.services.context_assembler import assemble
from assistant_hub.services.directive_parser import parse
from assistant_hub.services.proactive_alerts import compute_alerts
from assistant_hub.services.prompt_builder import (
    CHAT_HISTORY_LIMIT,
    CONTEXTUAL_HISTORY_LIMIT,
    build_history,
    compose,
)
from assistant_hub.services.tenant_config_service import get_tenant_ai_config
from assistant_hub.services.welcome_service import menu_for, welcome_message

logger = logging.getLogger(__name__)

HISTORY_LIMITS = {
    Endpoint.CHAT: CHAT_HISTORY_LIMIT,
    Endpoint.CONTEXTUAL: CONTEXTUAL_HISTORY_LIMIT,
    Endpoint.EXPENSES: CONTEXTUAL_HISTORY_LIMIT,
}

# Expense conversations carry lists; give them a larger output bound
DEFAULT_MAX_TOKENS = {
    Endpoint.EXPENSES: 1000,
}

CONFIRMATION_PROMPT = "Please confirm: reply 'yes' to proceed or 'no' to cancel."
NO_SESSION_NOTICE = "This action needs a confirmation, which requires an active session. Nothing was changed."
CANCELLED_MESSAGE = "Action cancelled. Nothing was changed."
ALREADY_HANDLED_MESSAGE = "That action was already handled."


def resolve_role_tier(endpoint: Endpoint, request: ChatRequest) -> RoleTier:
    """
    Decide the role tier a request runs under.

    The public chat endpoint always serves end customers; the expense
    assistant is staff-only.

    Raises:
        InvalidRequestError: If the requested tier is not allowed on ``endpoint``
    """
    if endpoint == Endpoint.CHAT:
        return RoleTier.END_CUSTOMER
    if endpoint == Endpoint.EXPENSES:
        tier = request.role_tier or RoleTier.RESELLER
        if not tier.is_staff:
            raise InvalidRequestError("The expense assistant is only available to staff users")
        return tier
    return request.role_tier or RoleTier.END_CUSTOMER


def _combine(*parts: Optional[str]) -> str:
    return "\n\n".join(part for part in parts if part)


def _response(
    text: str,
    ai_config: TenantAIConfig,
    context: ConversationContext,
    directive: Optional[Directive] = None,
    result: Optional[ActionResult] = None,
    menu_options: Optional[List[Dict[str, Any]]] = None,
) -> ChatResponse:
    return ChatResponse(
        response=text,
        action=directive.to_response() if directive else None,
        action_result=result.to_response() if result else None,
        action_state=directive.state.value if directive else None,
        proactive_alerts=compute_alerts(context),
        menu_options=menu_options,
        provider=ai_config.provider,
    )


async def _run_directive(
    tenant_id: str,
    endpoint: Endpoint,
    directive: Directive,
    scope: ExecutionScope,
) -> ActionResult:
    """Execute, audit and count one directive."""
    result = await execute(tenant_id, directive, scope)
    directive.state = DirectiveState.EXECUTED
    await record(scope.session_id, tenant_id, scope.actor_id, directive, result)

    directives_total.labels(
        endpoint=endpoint.value,
        directive_type=directive.type,
        state=DirectiveState.EXECUTED.value,
    ).inc()
    await log_directive(tenant_id, directive, result=result, session_id=scope.session_id)
    return result


async def _resolve_pending(
    tenant_id: str,
    endpoint: Endpoint,
    pending: PendingDirective,
    message: str,
    reply: str,
    scope: ExecutionScope,
    ai_config: TenantAIConfig,
    context: ConversationContext,
) -> ChatResponse:
    """Confirm or cancel the directive waiting in this session. No provider call."""
    directive = pending.directive
    text = ALREADY_HANDLED_MESSAGE
    answered = None
    result = None

    if reply == CANCEL:
        if transition(tenant_id, pending.id, DirectiveState.AWAITING_CONFIRMATION, DirectiveState.CANCELLED):
            directive.state = DirectiveState.CANCELLED
            directives_total.labels(
                endpoint=endpoint.value,
                directive_type=directive.type,
                state=DirectiveState.CANCELLED.value,
            ).inc()
            await log_directive(tenant_id, directive, session_id=scope.session_id)
            text = CANCELLED_MESSAGE
            answered = directive
    # Only one concurrent confirmation wins the awaiting -> confirmed update
    elif transition(tenant_id, pending.id, DirectiveState.AWAITING_CONFIRMATION, DirectiveState.CONFIRMED):
        directive.state = DirectiveState.CONFIRMED
        result = await _run_directive(tenant_id, endpoint, directive, scope)
        transition(tenant_id, pending.id, DirectiveState.CONFIRMED, DirectiveState.EXECUTED)
        text = result.message
        answered = directive

    remember_exchange(tenant_id, scope.session_id, scope.actor_id, message, text)
    return _response(text, ai_config, context, directive=answered, result=result)


async def handle_assistant_request(endpoint: Endpoint, request: ChatRequest) -> ChatResponse:
    """
    Run one assistant turn.

    Flow:
    1. Validate tenant id and resolve the role tier
    2. Load tenant AI configuration (fresh, per request)
    3. Assemble the conversation context
    4. ``init`` requests: welcome message and menu, no provider call
    5. Resolve a pending confirmation in this session, if the message answers it
    6. Compose the prompt and call the provider
    7. Parse the reply; park destructive directives, execute the rest
    8. Record the action, compute alerts and build the response

    Raises:
        InvalidRequestError: Invalid tenant id, empty message or disallowed role tier
        ProviderError: Provider configuration or call failure
    """
    validate_tenant_id(request.tenant_id)
    tenant_id = request.tenant_id
    tenant_id_var.set(tenant_id)
    role_tier = resolve_role_tier(endpoint, request)

    ai_config = get_tenant_ai_config(tenant_id, default_max_tokens=DEFAULT_MAX_TOKENS.get(endpoint))
    if role_tier != RoleTier.OPERATOR:
        ai_config.web_search = False

    menu_options = [option.model_dump() for option in request.menu_options or []]
    context = assemble(
        tenant_id,
        request.actor_id,
        role_tier,
        ai_config=ai_config,
        business_hours=request.business_hours,
        menu_options=menu_options,
    )

    if request.action == "init":
        options = menu_options or menu_for(role_tier)
        return _response(welcome_message(context), ai_config, context, menu_options=options)

    message = validate_message_text(request.message)
    scope = ExecutionScope(actor_id=request.actor_id, role_tier=role_tier, session_id=request.session_id)

    if request.session_id:
        pending = get_pending(tenant_id, request.session_id)
        # A directive parked on one endpoint is only answered on that endpoint
        if pending and pending.actor_id == request.actor_id and pending.endpoint == endpoint.value:
            reply = classify_reply(message, request.confirmation)
            if reply:
                return await _resolve_pending(
                    tenant_id, endpoint, pending, message, reply, scope, ai_config, context
                )

    allowed_types = directive_types_for(endpoint, role_tier)
    backend = provider_gateway.get_backend(ai_config.provider)
    system_prompt = compose(context, allowed_types)
    history = build_history(request.previous_messages, limit=HISTORY_LIMITS[endpoint])

    start_time = time.time()
    try:
        raw_reply = await provider_gateway.complete(ai_config, system_prompt, history, message)
    except ProviderError as e:
        await log_llm_call(
            tenant_id,
            backend.name,
            endpoint.value,
            latency_ms=int((time.time() - start_time) * 1000),
            error=e,
            session_id=request.session_id,
            role_tier=role_tier.value,
        )
        raise

    await log_llm_call(
        tenant_id,
        backend.name,
        endpoint.value,
        latency_ms=int((time.time() - start_time) * 1000),
        session_id=request.session_id,
        role_tier=role_tier.value,
    )

    parsed = parse(raw_reply, allowed_types)
    directive = parsed.directive
    text = parsed.visible_message
    result = None

    if directive is not None and directive.confirm_required:
        if request.session_id:
            park(tenant_id, request.session_id, request.actor_id, endpoint.value, directive)
            text = _combine(text, CONFIRMATION_PROMPT)
        else:
            text = _combine(text, NO_SESSION_NOTICE)
        directives_total.labels(
            endpoint=endpoint.value,
            directive_type=directive.type,
            state=directive.state.value,
        ).inc()
        await log_directive(tenant_id, directive, session_id=request.session_id)
    elif directive is not None:
        result = await _run_directive(tenant_id, endpoint, directive, scope)
        if not text.strip():
            text = result.message

    if request.session_id and text:
        remember_exchange(tenant_id, request.session_id, request.actor_id, message, text)

    logger.info(
        "Assistant turn completed",
        extra={
            "tenant_id": tenant_id,
            "endpoint": endpoint.value,
            "role_tier": role_tier.value,
            "directive_type": directive.type if directive else None,
        },
    )
    return _response(text, ai_config, context, directive=directive, result=result)
