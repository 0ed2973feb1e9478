"""Schemas for mentor chat conversations and messages."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ..models.chat_message import MAX_CONTENT_LENGTH


class ConversationRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    mentor_id: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    conversation_id: str
    sender_id: str
    content: str = Field(..., description="Message body, trimmed before storage")

    @field_validator("content")
    @classmethod
    def _clean_content(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Chat content is required")
        if len(cleaned) > MAX_CONTENT_LENGTH:
            raise ValueError(f"Chat cannot exceed {MAX_CONTENT_LENGTH} characters")
        return cleaned


class ChatMessageOut(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    is_paid: bool = False
    read_at: datetime | None = None
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int


class MessageListResponse(BaseModel):
    items: list[ChatMessageOut]
    pagination: Pagination


class ConversationOut(BaseModel):
    id: str
    student_id: str
    mentor_id: str
    total_messages: int
    last_message_at: datetime
    is_active: bool
    created_at: datetime
    last_message: ChatMessageOut | None = None


class ConversationListResponse(BaseModel):
    items: list[ConversationOut]


class SendMessageResponse(BaseModel):
    message: ChatMessageOut
    delivered_realtime: bool = Field(..., description="Whether a new-message event was pushed to subscribers")
