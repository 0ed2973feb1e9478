"""Conversation repository helpers."""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.conversation import Conversation

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, conversation_id: str) -> Conversation | None:
    """Return a conversation by identifier."""

    return await session.get(Conversation, conversation_id)


def pair_stmt(student_id: str, mentor_id: str) -> Select[tuple[Conversation]]:
    return select(Conversation).where(
        Conversation.student_id == student_id,
        Conversation.mentor_id == mentor_id,
    )


def user_conversations_stmt(user_id: str) -> Select[tuple[Conversation]]:
    """Active conversations involving the user, most recent activity first."""

    return (
        select(Conversation)
        .where(
            or_(Conversation.student_id == user_id, Conversation.mentor_id == user_id),
            Conversation.is_active.is_(True),
        )
        .order_by(Conversation.last_message_at.desc(), Conversation.id)
    )


async def get_or_create(
    session: AsyncSession,
    *,
    student_id: str,
    mentor_id: str,
    now: datetime,
) -> tuple[Conversation, bool]:
    """Fetch the conversation for a student/mentor pair, creating it when missing."""

    result = await session.execute(pair_stmt(student_id, mentor_id))
    conversation = result.scalar_one_or_none()
    if conversation is not None:
        return conversation, False

    conversation = Conversation(
        id=str(uuid4()),
        student_id=student_id,
        mentor_id=mentor_id,
        total_messages=0,
        last_message_at=now,
        is_active=True,
        created_at=now,
    )
    try:
        async with session.begin_nested():
            session.add(conversation)
            await session.flush()
    except IntegrityError:
        # A concurrent first contact inserted the pair after our lookup.
        logger.info("Conversation for %s/%s created concurrently; reusing it", student_id, mentor_id)
        result = await session.execute(pair_stmt(student_id, mentor_id))
        return result.scalar_one(), False
    return conversation, True


async def list_for_user(session: AsyncSession, user_id: str) -> list[Conversation]:
    result = await session.execute(user_conversations_stmt(user_id))
    return list(result.scalars().all())
