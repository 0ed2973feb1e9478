"""Mentor chat persistence and realtime fan-out."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.chat_message import ChatMessage
from ..models.conversation import Conversation
from ..repositories import conversations as conversations_repo
from ..repositories import messages as messages_repo
from ..schemas import chat as schemas
from .signaling import SignalingRelay

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


async def open_conversation(
    payload: schemas.ConversationRequest,
    session: AsyncSession,
) -> schemas.ConversationOut:
    """Return the student/mentor conversation, creating it on first contact."""

    if payload.student_id == payload.mentor_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot open a conversation with yourself")

    async with session.begin():
        conversation, created = await conversations_repo.get_or_create(
            session,
            student_id=payload.student_id,
            mentor_id=payload.mentor_id,
            now=datetime.now(timezone.utc),
        )

    if created:
        logger.info("Conversation %s opened between %s and %s", conversation.id, payload.student_id, payload.mentor_id)
    return _conversation_out(conversation)


async def list_conversations(user_id: str, session: AsyncSession) -> schemas.ConversationListResponse:
    """Return the user's conversations with their latest message attached."""

    conversations = await conversations_repo.list_for_user(session, user_id)
    latest = await messages_repo.latest_for_conversations(session, [item.id for item in conversations])
    return schemas.ConversationListResponse(
        items=[_conversation_out(item, latest.get(item.id)) for item in conversations]
    )


async def list_messages(
    conversation_id: str,
    user_id: str,
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> schemas.MessageListResponse:
    """Return one page of history for a participant.

    Page 1 holds the newest ``limit`` messages; each page is ordered oldest first.
    """

    conversation = await _load_conversation(session, conversation_id, user_id)
    messages = await messages_repo.list_for_conversation(
        session, conversation.id, limit=limit, offset=(page - 1) * limit
    )
    total = await messages_repo.count_for_conversation(session, conversation.id)
    return schemas.MessageListResponse(
        items=[_message_out(item) for item in messages],
        pagination=schemas.Pagination(page=page, limit=limit, total=total),
    )


async def send_message(
    payload: schemas.SendMessageRequest,
    session: AsyncSession,
    relay: SignalingRelay | None,
) -> schemas.SendMessageResponse:
    """Persist a message, then notify the conversation's realtime subscribers.

    The message is stored regardless of whether the notification goes out.
    """

    now = datetime.now(timezone.utc)

    async with session.begin():
        conversation = await _load_conversation(session, payload.conversation_id, payload.sender_id)
        message = await messages_repo.create(
            session,
            conversation_id=conversation.id,
            sender_id=payload.sender_id,
            receiver_id=conversation.counterpart_of(payload.sender_id),
            content=payload.content,
            created_at=now,
        )
        conversation.total_messages = (conversation.total_messages or 0) + 1
        conversation.last_message_at = now
        session.add(conversation)

    out = _message_out(message)
    delivered = await _notify(relay, conversation.id, out)
    return schemas.SendMessageResponse(message=out, delivered_realtime=delivered)


async def mark_as_read(message_id: str, user_id: str, session: AsyncSession) -> schemas.ChatMessageOut:
    """Stamp ``read_at`` on a message addressed to ``user_id``."""

    async with session.begin():
        message = await messages_repo.get_by_id(session, message_id)
        if message is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
        if message.receiver_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the receiver can mark a chat as read")
        if message.read_at is None:
            message.read_at = datetime.now(timezone.utc)
            session.add(message)

    return _message_out(message)


async def _load_conversation(session: AsyncSession, conversation_id: str, user_id: str) -> Conversation:
    conversation = await conversations_repo.get_by_id(session, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if not conversation.has_participant(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this conversation")
    return conversation


async def _notify(relay: SignalingRelay | None, conversation_id: str, message: schemas.ChatMessageOut) -> bool:
    """Emit ``new-message``; a missing or failing relay only costs the realtime push."""

    if relay is None:
        logger.warning("Relay unavailable; conversation %s subscribers not notified", conversation_id)
        return False
    try:
        await relay.notify_new_message(conversation_id, message.model_dump(mode="json"))
    except Exception as exc:  # noqa: BLE001 - realtime push must not fail the request
        logger.exception("Failed to push new-message for conversation %s: %s", conversation_id, exc)
        return False
    return True


def _conversation_out(
    conversation: Conversation,
    last_message: ChatMessage | None = None,
) -> schemas.ConversationOut:
    return schemas.ConversationOut(
        id=conversation.id,
        student_id=conversation.student_id,
        mentor_id=conversation.mentor_id,
        total_messages=conversation.total_messages or 0,
        last_message_at=conversation.last_message_at,
        is_active=bool(conversation.is_active),
        created_at=conversation.created_at,
        last_message=_message_out(last_message) if last_message is not None else None,
    )


def _message_out(message: ChatMessage) -> schemas.ChatMessageOut:
    return schemas.ChatMessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        content=message.content,
        is_paid=bool(message.is_paid),
        read_at=message.read_at,
        created_at=message.created_at,
    )
