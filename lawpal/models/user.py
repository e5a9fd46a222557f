"""
SQLAlchemy model for user accounts.

Supports two ways in:
- Email signup (verify email first, then set a password)
- Google / GitHub OAuth (pre-verified, passwordless)
"""

import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lawpal.models.conversation import Base

OAUTH_PROVIDERS = ("google", "github")


class AccountState(str, enum.Enum):
    """Where an account sits in the signup flow."""

    PENDING_VERIFICATION = "pending-verification"
    VERIFIED_NO_PASSWORD = "verified-no-password"
    ACTIVE = "active"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class User(Base):
    """
    User account model.

    Attributes:
        id: UUID primary key
        name: Display name
        email: Unique, lower-cased email address (indexed)
        password_hash: bcrypt hash (None until the password is set, or for OAuth-only users)
        profile_photo: Relative upload URL or remote OAuth avatar URL
        is_email_verified: Whether the email address has been verified
        provider: OAuth provider that created or was linked to the account
        provider_id: Subject ID at the OAuth provider
        email_verification_token / email_verification_expires: Single-use verification token
        reset_password_token / reset_password_expires: Single-use password reset token
        created_at: Account creation timestamp
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_photo: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # OAuth fields
    provider: Mapped[str | None] = mapped_column(String(20), nullable=True)
    provider_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Single-use tokens
    email_verification_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    email_verification_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reset_password_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reset_password_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    @classmethod
    def new_local(
        cls,
        name: str | None,
        email: str | None,
        verification_token: str,
        verification_expires: datetime,
    ) -> "User":
        """
        Create an unverified account from the signup form.

        Raises:
            ValueError: If name or email is empty.
        """
        name = (name or "").strip()
        email = normalize_email(email)
        if not name or not email:
            raise ValueError("Name and email are required")

        return cls(
            id=str(uuid.uuid4()),
            name=name,
            email=email,
            password_hash=None,
            profile_photo="",
            is_email_verified=False,
            email_verification_token=verification_token,
            email_verification_expires=verification_expires,
            created_at=datetime.now(UTC),
        )

    @classmethod
    def new_oauth(
        cls,
        provider: str,
        provider_id: str,
        email: str,
        name: str | None = None,
        photo_url: str | None = None,
    ) -> "User":
        """
        Create a pre-verified account from an OAuth profile.

        Raises:
            ValueError: If the provider is unknown or the email is empty.
        """
        if provider not in OAUTH_PROVIDERS:
            raise ValueError(f"Unknown OAuth provider: {provider}")
        email = normalize_email(email)
        if not email:
            raise ValueError("Email is required")

        return cls(
            id=str(uuid.uuid4()),
            name=(name or "").strip() or "User",
            email=email,
            password_hash=None,
            profile_photo=photo_url or "",
            is_email_verified=True,
            provider=provider,
            provider_id=provider_id,
            created_at=datetime.now(UTC),
        )

    @property
    def state(self) -> AccountState:
        if not self.is_email_verified:
            return AccountState.PENDING_VERIFICATION
        if not self.password_hash:
            return AccountState.VERIFIED_NO_PASSWORD
        return AccountState.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Convert user to dictionary (excludes password hash and tokens)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "profile_photo": self.profile_photo or "",
            "is_email_verified": self.is_email_verified,
            "provider": self.provider,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, state={self.state.value})>"
