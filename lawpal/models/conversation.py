"""
SQLAlchemy models for conversation persistence.

A conversation belongs to exactly one user and embeds its ordered message
list as a JSON array, so messages have no lifecycle of their own.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_CONVERSATION_TITLE = "New Conversation"
MESSAGE_SENDERS = ("user", "ai")


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models with async support."""

    pass


def build_message(sender: str | None, text: str | None) -> dict[str, Any]:
    """
    Build an embedded message with a server-side timestamp.

    Raises:
        ValueError: If sender or text is missing, or sender is not a known tag.
    """
    if not sender or not text:
        raise ValueError("sender and text are required")
    if sender not in MESSAGE_SENDERS:
        raise ValueError("sender must be 'user' or 'ai'")
    return {"sender": sender, "text": text, "ts": datetime.now(UTC).isoformat()}


class Conversation(Base):
    """
    A titled, ordered chat history owned by one user.

    Attributes:
        id: Unique conversation identifier (UUID)
        user_id: Owning user's ID
        title: Display title
        messages: JSON array of {sender, text, ts}
        created_at: Timestamp when the conversation was created
        updated_at: Timestamp of last update
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        default=DEFAULT_CONVERSATION_TITLE,
        nullable=False,
    )
    messages: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        default=list,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )

    @classmethod
    def create(cls, user_id: str, title: str | None = None) -> "Conversation":
        """Create a new, empty conversation for a user."""
        now = datetime.now(UTC)
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=(title or "").strip() or DEFAULT_CONVERSATION_TITLE,
            messages=[],
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert conversation to its API representation."""
        last_change = self.updated_at or self.created_at
        return {
            "id": self.id,
            "title": self.title,
            "date": last_change.isoformat() if last_change else None,
            "messages": [
                {"sender": m.get("sender"), "text": m.get("text"), "ts": m.get("ts")} for m in self.messages or []
            ],
        }

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, owner={self.user_id}, messages={len(self.messages or [])})>"
