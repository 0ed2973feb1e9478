"""Chat message repository helpers."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..models.chat_message import ChatMessage


async def get_by_id(session: AsyncSession, message_id: str) -> ChatMessage | None:
    return await session.get(ChatMessage, message_id)


async def create(
    session: AsyncSession,
    *,
    conversation_id: str,
    sender_id: str,
    receiver_id: str,
    content: str,
    created_at: datetime,
) -> ChatMessage:
    """Insert a new message and flush so it has an identity."""

    message = ChatMessage(
        id=str(uuid4()),
        conversation_id=conversation_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        is_paid=False,
        created_at=created_at,
    )
    session.add(message)
    await session.flush()
    return message


def history_page_stmt(conversation_id: str, *, limit: int, offset: int) -> Select[tuple[ChatMessage]]:
    """One page of history counted back from the newest message."""

    return (
        select(ChatMessage)
        .where(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .offset(offset)
    )


async def list_for_conversation(
    session: AsyncSession,
    conversation_id: str,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[ChatMessage]:
    """Return a page of messages, oldest first within the page."""

    result = await session.execute(history_page_stmt(conversation_id, limit=limit, offset=offset))
    return list(reversed(result.scalars().all()))


async def count_for_conversation(session: AsyncSession, conversation_id: str) -> int:
    stmt = select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


def latest_per_conversation_stmt(conversation_ids: Sequence[str]) -> Select[tuple[ChatMessage]]:
    ranked = (
        select(
            ChatMessage,
            func.row_number()
            .over(
                partition_by=ChatMessage.conversation_id,
                order_by=(ChatMessage.created_at.desc(), ChatMessage.id.desc()),
            )
            .label("position"),
        )
        .where(ChatMessage.conversation_id.in_(conversation_ids))
        .subquery()
    )
    latest = aliased(ChatMessage, ranked)
    return select(latest).where(ranked.c.position == 1)


async def latest_for_conversations(
    session: AsyncSession,
    conversation_ids: Sequence[str],
) -> dict[str, ChatMessage]:
    """Map each conversation id to its most recent message."""

    if not conversation_ids:
        return {}
    result = await session.execute(latest_per_conversation_stmt(conversation_ids))
    return {message.conversation_id: message for message in result.scalars().all()}
