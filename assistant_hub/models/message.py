"""Conversation message model."""

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One turn of prior conversation as sent by the client."""
    role: str = Field(..., description="'user' | 'assistant' ('bot' is accepted as 'assistant')")
    content: str = Field(default="", description="Message text")
