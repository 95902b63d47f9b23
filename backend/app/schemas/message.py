"""
NeighborHelp Backend: Pydantic Request/Response Schemas
========================================================

What:  Pydantic models defining the messaging API contract.
How:   FastAPI validates request bodies against these models, serializes
       responses through them, and generates the OpenAPI docs from them.
Who:   Used by route handlers and returned by MessageService.

Design Decision:
    Schemas are separate from SQLAlchemy models. The response never exposes
    encrypted_content; it carries `content`, the decrypted body (or the
    stale-key placeholder).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.message import MessagePriority


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class SendMessageRequest(BaseModel):
    """
    What:  Body of POST /api/messages.

    priority is a closed enum: unknown values are rejected with 422 before
    the service is called.
    """
    recipient_id: int = Field(description="Account ID of the recipient")
    resource_id: Optional[int] = Field(
        default=None,
        description="Resource listing the message is about (optional)",
    )
    subject: str = Field(min_length=1, max_length=255, description="Plain-text subject")
    content: str = Field(min_length=1, description="Message body; encrypted at rest")
    priority: MessagePriority = Field(default=MessagePriority.NORMAL)
    contact_method: Optional[str] = Field(default=None, max_length=50)
    sender_phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("subject", "content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Rejects whitespace-only subject or body."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PartyInfo(BaseModel):
    """Sender or recipient summary embedded in a message."""
    id: int
    username: str
    display_name: str
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class ResourceInfo(BaseModel):
    id: int
    title: str
    city: Optional[str] = None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    """
    What:  One message as seen by its sender or recipient.
    Who:   Returned by send, get, mark-as-read and (as items) by the lists.
    """
    id: int = Field(description="Message identifier")
    subject: str
    content: str = Field(
        description="Decrypted body, or a fixed placeholder if it was encrypted under a previous key"
    )
    priority: MessagePriority
    is_read: bool
    contact_method: Optional[str] = None
    sender_phone: Optional[str] = None
    created_at: datetime = Field(description="When the message was sent (UTC ISO 8601)")
    read_at: Optional[datetime] = Field(default=None, description="First time the recipient read it")
    sender: PartyInfo
    recipient: PartyInfo
    resource: Optional[ResourceInfo] = None


class MessageListResponse(BaseModel):
    """
    What:  Page of messages for inbox, sent and unread views.

    Pagination is offset-based (page, size) to match the web client.
    total_count is also sent in the X-Total-Count header.
    """
    messages: List[MessageResponse]
    total_count: int = Field(description="Total number of messages in this view")
    page: int = Field(description="Zero-based page index")
    size: int = Field(description="Page size requested")
    has_more: bool = Field(description="Whether another page exists")


class UnreadCountResponse(BaseModel):
    count: int = Field(description="Unread messages in the caller's inbox")


class MessageUserResponse(BaseModel):
    """An account the caller may address a message to."""
    id: int
    username: str
    display_name: str
    organization_name: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "You cannot send a message to yourself",
            "details": {"field": "recipient_id"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    notifier: str = Field(
        description="Email notifier: available, not_configured, circuit_open, unavailable"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
