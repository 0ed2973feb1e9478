"""Mentor chat endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import chat as chat_schema
from ..services import chat as chat_service
from ..services.signaling import SignalingRelay, get_relay_or_none

router = APIRouter()


@router.post("/conversations", response_model=chat_schema.ConversationOut)
async def open_conversation(
    payload: chat_schema.ConversationRequest,
    session: AsyncSession = Depends(get_session),
) -> chat_schema.ConversationOut:
    """Get or create the conversation between a student and a mentor."""

    return await chat_service.open_conversation(payload, session)


@router.get("/conversations", response_model=chat_schema.ConversationListResponse)
async def list_conversations(
    user_id: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> chat_schema.ConversationListResponse:
    return await chat_service.list_conversations(user_id, session)


@router.get("/conversation/{conversation_id}/chats", response_model=chat_schema.MessageListResponse)
async def list_messages(
    conversation_id: str,
    user_id: str = Query(..., min_length=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=chat_service.DEFAULT_PAGE_SIZE, ge=1, le=chat_service.MAX_PAGE_SIZE),
    session: AsyncSession = Depends(get_session),
) -> chat_schema.MessageListResponse:
    """Return a page of a conversation's message history."""

    return await chat_service.list_messages(conversation_id, user_id, session, page=page, limit=limit)


@router.post("/send", response_model=chat_schema.SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: chat_schema.SendMessageRequest,
    session: AsyncSession = Depends(get_session),
    relay: SignalingRelay | None = Depends(get_relay_or_none),
) -> chat_schema.SendMessageResponse:
    """Store a message and push it to the conversation's live subscribers."""

    return await chat_service.send_message(payload, session, relay)


@router.put("/{chat_id}/read", response_model=chat_schema.ChatMessageOut)
async def mark_as_read(
    chat_id: str,
    user_id: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> chat_schema.ChatMessageOut:
    return await chat_service.mark_as_read(chat_id, user_id, session)
