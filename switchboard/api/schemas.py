"""Pydantic schemas for API request and response validation."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessagePart(BaseModel):
    """One part of a multi-part chat message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["text", "file"]
    text: str | None = None
    name: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    url: str | None = None
    size: int | None = None

    def to_part(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Submit one user turn. `history` overrides stored thread history when given."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | list[MessagePart]
    metadata: dict[str, Any] = Field(default_factory=dict)
    thread_id: str | None = Field(default=None, alias="threadId")
    history: list[ChatMessage] | None = None


class ConfirmationDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    approved: bool
    edited_args: dict[str, Any] | None = Field(default=None, alias="editedArgs")


class ConfirmationResponse(BaseModel):
    success: bool
    message: str


class PendingConfirmationList(BaseModel):
    pending: list[dict[str, Any]]


class CancelResponse(BaseModel):
    success: bool
    message: str
