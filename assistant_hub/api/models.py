"""API request/response models."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from assistant_hub.models.context import RoleTier
from assistant_hub.models.message import ChatMessage


class MenuOption(BaseModel):
    """A quick action offered to the user."""
    id: str = Field(..., example="charges")
    label: str = Field(..., example="My charges")
    action: str = Field(default="", example="show-charges")


class ChatRequest(BaseModel):
    """Request body shared by the assistant endpoints."""
    message: str = Field(default="", description="User message (may be empty for action='init')")
    previous_messages: List[ChatMessage] = Field(default_factory=list, alias="previousMessages")
    tenant_id: str = Field(..., alias="tenantId", description="UUID of the tenant")
    actor_id: Optional[str] = Field(None, alias="actorId", description="Staff user ID, or customer ID for end customers")
    session_id: Optional[str] = Field(None, alias="sessionId", description="Assistant session ID; required for confirmations")
    business_hours: Optional[str] = Field(None, alias="businessHours")
    menu_options: Optional[List[MenuOption]] = Field(None, alias="menuOptions")
    role_tier: Optional[RoleTier] = Field(None, alias="roleTier")
    confirmation: Optional[Literal["confirm", "cancel"]] = Field(
        None, description="Explicit answer to a pending confirmation"
    )
    action: Optional[Literal["init"]] = Field(None, description="'init' returns the welcome message and menu")

    model_config = {"populate_by_name": True}


class ActionModel(BaseModel):
    """Directive proposed by the assistant."""
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    confirm_required: bool = Field(..., alias="confirmRequired")

    model_config = {"populate_by_name": True}


class ActionResultModel(BaseModel):
    """Outcome of an executed directive."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None


class ChatResponse(BaseModel):
    """Response body shared by the assistant endpoints."""
    response: str = Field(..., description="Assistant reply with any action tag removed")
    action: Optional[ActionModel] = None
    action_result: Optional[ActionResultModel] = Field(None, alias="actionResult")
    action_state: Optional[str] = Field(None, alias="actionState", example="awaiting_confirmation")
    proactive_alerts: List[str] = Field(default_factory=list, alias="proactiveAlerts")
    menu_options: Optional[List[MenuOption]] = Field(None, alias="menuOptions")
    provider: str = Field(..., example="gemini")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    error: str
