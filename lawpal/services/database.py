"""
PostgreSQL database service for users and conversations.

Each operation runs in its own short session and commits before returning,
so every state transition is durable once the call completes. Errors are not
swallowed here: callers (and ultimately the global error handler) decide how
a failed write is reported.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lawpal.core.config import Settings, settings
from lawpal.models import Base, Conversation, User, normalize_email

logger = logging.getLogger("lawpal.database")


class Database:
    """
    Async PostgreSQL database service.

    Features:
    - Async connection pooling
    - Automatic table creation
    - Fixed-interval reconnect loop for the initial connection
    - Owner-scoped conversation operations
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or settings
        self.engine = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._connected = False
        self._connecting = False

    @property
    def is_available(self) -> bool:
        """Check if database is configured and connected."""
        return self._connected and self.engine is not None

    @property
    def state(self) -> str:
        if self.is_available:
            return "connected"
        if self._connecting:
            return "connecting"
        return "disconnected"

    async def connect(self) -> bool:
        """
        Establish connection to PostgreSQL and create tables if needed.

        Returns:
            True if connection successful, False otherwise.
        """
        try:
            self.engine = create_async_engine(
                self.config.DATABASE_URL,
                echo=False,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )
            self.session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._connected = True
            logger.info("Connected to database: %s", self.config.sanitize_url(self.config.DATABASE_URL))
            return True
        except Exception as e:
            logger.error("Failed to connect to database: %s", e)
            if self.engine is not None:
                await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            self._connected = False
            return False

    async def connect_with_retry(self) -> None:
        """Keep trying to connect at a fixed interval until it succeeds."""
        self._connecting = True
        try:
            while not await self.connect():
                logger.info(
                    "Retrying database connection in %s seconds...",
                    self.config.DATABASE_CONNECT_RETRY_SECONDS,
                )
                await asyncio.sleep(self.config.DATABASE_CONNECT_RETRY_SECONDS)
        finally:
            self._connecting = False

    async def close(self) -> None:
        """Close database connection pool."""
        if self.engine:
            await self.engine.dispose()
            self._connected = False
            logger.info("Database connection closed")

    def _session(self) -> AsyncSession:
        if not self.is_available or self.session_factory is None:
            raise RuntimeError("Database not connected")
        return self.session_factory()

    # =========================================================================
    # Users
    # =========================================================================

    async def get_user_by_id(self, user_id: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.email == normalize_email(email)))
            return result.scalar_one_or_none()

    async def create_user(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            sqlalchemy.exc.IntegrityError: If the email is already taken.
        """
        async with self._session() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
            logger.info("Created new user: %s", user.id)
            return user

    async def update_user(self, user_id: str, **fields: Any) -> bool:
        """Update user fields. Returns False if no such user exists."""
        async with self._session() as session:
            result = await session.execute(update(User).where(User.id == user_id).values(**fields))
            await session.commit()
            return result.rowcount > 0

    async def consume_verification_token(self, token: str, now: datetime) -> User | None:
        """
        Mark the account holding an unexpired verification token as verified.

        The row is locked while the token is cleared, so a token verifies at most once.
        """
        async with self._session() as session:
            result = await session.execute(
                select(User)
                .where(User.email_verification_token == token, User.email_verification_expires > now)
                .with_for_update()
            )
            user = result.scalar_one_or_none()
            if user is None:
                return None

            user.is_email_verified = True
            user.email_verification_token = None
            user.email_verification_expires = None
            await session.commit()
            return user

    @staticmethod
    def _reset_token_clause(token: str, now: datetime):
        # Reset is only honoured for verified accounts
        return (
            (User.reset_password_token == token)
            & (User.reset_password_expires > now)
            & User.is_email_verified.is_(True)
        )

    async def get_user_by_reset_token(self, token: str, now: datetime) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(User).where(self._reset_token_clause(token, now)))
            return result.scalar_one_or_none()

    async def consume_reset_token(self, token: str, now: datetime, password_hash: str) -> User | None:
        """Replace the password of the account holding an unexpired reset token and clear the token."""
        async with self._session() as session:
            result = await session.execute(
                select(User).where(self._reset_token_clause(token, now)).with_for_update()
            )
            user = result.scalar_one_or_none()
            if user is None:
                return None

            user.password_hash = password_hash
            user.reset_password_token = None
            user.reset_password_expires = None
            await session.commit()
            return user

    def _stale_users_clause(self):
        # Never finished email signup; OAuth accounts are passwordless by design
        return or_(
            User.is_email_verified.is_(False),
            (User.password_hash.is_(None)) & (User.provider.is_(None)),
        )

    async def count_stale_users(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(User).where(self._stale_users_clause()))
            return result.scalar_one()

    async def delete_stale_users(self) -> int:
        """Delete accounts that never completed signup. Returns the number removed."""
        async with self._session() as session:
            result = await session.execute(delete(User).where(self._stale_users_clause()))
            await session.commit()
            return result.rowcount

    # =========================================================================
    # Conversations (every query is scoped by owner)
    # =========================================================================

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.user_id == user_id).order_by(Conversation.updated_at.desc())
            )
            return list(result.scalars().all())

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._session() as session:
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            return conversation

    async def rename_conversation(self, conversation_id: str, user_id: str, title: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id, Conversation.user_id == user_id)
                .values(title=title, updated_at=datetime.now(UTC))
            )
            await session.commit()
            return result.rowcount > 0

    async def append_message(self, conversation_id: str, user_id: str, message: dict[str, Any]) -> bool:
        """Append a message; the row lock keeps concurrent appends in arrival order."""
        async with self._session() as session:
            result = await session.execute(
                select(Conversation)
                .where(Conversation.id == conversation_id, Conversation.user_id == user_id)
                .with_for_update()
            )
            conversation = result.scalar_one_or_none()
            if conversation is None:
                return False

            # Reassign so the JSON column is flagged as changed
            conversation.messages = [*conversation.messages, message]
            conversation.updated_at = datetime.now(UTC)
            await session.commit()
            return True

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user_id)
            )
            await session.commit()
            return result.rowcount > 0


# Global instance
database = Database()
