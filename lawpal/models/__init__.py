"""Database models for user accounts and conversations."""

from lawpal.models.conversation import Base, Conversation, build_message
from lawpal.models.user import AccountState, User, normalize_email

__all__ = ["AccountState", "Base", "Conversation", "User", "build_message", "normalize_email"]
