"""Mentor chat conversation model."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .chat_message import ChatMessage


class Conversation(Base):
    """One-to-one chat thread between a student and a mentor."""

    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("student_id", "mentor_id", name="uq_conversations_student_mentor"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    student_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    mentor_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    total_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    messages: Mapped[list["ChatMessage"]] = relationship("ChatMessage", back_populates="conversation")

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.student_id, self.mentor_id)

    def counterpart_of(self, user_id: str) -> str:
        """Return the other side of the conversation."""

        return self.mentor_id if user_id == self.student_id else self.student_id
