"""Assistant API router."""

from fastapi import APIRouter, HTTPException

from assistant_hub.api.models import ChatRequest, ChatResponse, ErrorResponse
from assistant_hub.api.utils import handle_assistant_request
from assistant_hub.infra.validation import InvalidRequestError
from assistant_hub.models.directive import Endpoint

router = APIRouter(prefix="/assistant", tags=["Assistant"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or provider not configured"},
    401: {"model": ErrorResponse, "description": "Provider rejected the tenant's API key"},
    429: {"model": ErrorResponse, "description": "Provider rate limit reached"},
    500: {"model": ErrorResponse, "description": "Provider unavailable or internal error"},
}


async def _handle(endpoint: Endpoint, request: ChatRequest) -> ChatResponse:
    try:
        return await handle_assistant_request(endpoint, request)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def public_chat(request: ChatRequest):
    """
    Public customer chat.

    Always runs as an end customer; ``actorId`` is the customer ID when the
    customer has been identified.

    **Example Request:**
    ```json
    {
        "message": "Quanto devo?",
        "previousMessages": [],
        "tenantId": "uuid",
        "actorId": "customer-uuid",
        "sessionId": "session-uuid"
    }
    ```
    """
    return await _handle(Endpoint.CHAT, request)


@router.post(
    "/contextual",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def contextual_assistant(request: ChatRequest):
    """
    Role-aware assistant for the dashboard.

    ``roleTier`` selects the business snapshot and directive set. Send
    ``action: "init"`` to receive the welcome message and menu without a
    model call.
    """
    return await _handle(Endpoint.CONTEXTUAL, request)


@router.post(
    "/expenses",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def expense_assistant(request: ChatRequest):
    """
    Expense assistant for staff users.

    Destructive actions (delete-expense, cancel, mark-paid) are returned with
    ``actionState: "awaiting_confirmation"`` and run only after the user
    confirms in the same session.
    """
    return await _handle(Endpoint.EXPENSES, request)
