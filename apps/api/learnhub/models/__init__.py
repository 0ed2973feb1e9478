"""Expose ORM models."""
from .chat_message import ChatMessage
from .conversation import Conversation

__all__ = [
    "ChatMessage",
    "Conversation",
]
