import os
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qs, urlparse

# Must be set before lawpal.core.config is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-0123456789")
os.environ.setdefault("EMAIL_PROVIDER", "console")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from lawpal.core.config import Settings
from lawpal.models import Conversation, User, normalize_email
from lawpal.services.email_service import EmailDeliveryError


class FakeDB:
    """In-memory stand-in for lawpal.services.database.Database."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.conversations: dict[str, Conversation] = {}
        self.is_available = True
        self.state = "connected"

    # Users

    async def get_user_by_id(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def _find_by_email(self, email: str) -> User | None:
        email = normalize_email(email)
        return next((u for u in self.users.values() if u.email == email), None)

    async def get_user_by_email(self, email: str) -> User | None:
        return self._find_by_email(email)

    async def create_user(self, user: User) -> User:
        if self._find_by_email(user.email):
            raise IntegrityError("INSERT INTO users", {}, Exception("duplicate key value"))
        self.users[user.id] = user
        return user

    async def update_user(self, user_id: str, **fields: Any) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        if "email" in fields:
            other = self._find_by_email(fields["email"])
            if other and other.id != user_id:
                raise IntegrityError("UPDATE users", {}, Exception("duplicate key value"))
        for key, value in fields.items():
            setattr(user, key, value)
        return True

    async def consume_verification_token(self, token: str, now: datetime) -> User | None:
        for user in self.users.values():
            if (
                user.email_verification_token == token
                and user.email_verification_expires is not None
                and user.email_verification_expires > now
            ):
                user.is_email_verified = True
                user.email_verification_token = None
                user.email_verification_expires = None
                return user
        return None

    def _find_by_reset_token(self, token: str, now: datetime) -> User | None:
        return next(
            (
                u
                for u in self.users.values()
                if u.reset_password_token == token
                and u.reset_password_expires is not None
                and u.reset_password_expires > now
                and u.is_email_verified
            ),
            None,
        )

    async def get_user_by_reset_token(self, token: str, now: datetime) -> User | None:
        return self._find_by_reset_token(token, now)

    async def consume_reset_token(self, token: str, now: datetime, password_hash: str) -> User | None:
        user = self._find_by_reset_token(token, now)
        if user is not None:
            user.password_hash = password_hash
            user.reset_password_token = None
            user.reset_password_expires = None
        return user

    # Conversations

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        owned = [c for c in self.conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    def _owned(self, conversation_id: str, user_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            return None
        return conversation

    async def rename_conversation(self, conversation_id: str, user_id: str, title: str) -> bool:
        conversation = self._owned(conversation_id, user_id)
        if conversation is None:
            return False
        conversation.title = title
        conversation.updated_at = datetime.now(UTC)
        return True

    async def append_message(self, conversation_id: str, user_id: str, message: dict[str, Any]) -> bool:
        conversation = self._owned(conversation_id, user_id)
        if conversation is None:
            return False
        conversation.messages = [*conversation.messages, message]
        conversation.updated_at = datetime.now(UTC)
        return True

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        if self._owned(conversation_id, user_id) is None:
            return False
        del self.conversations[conversation_id]
        return True


class FakeMailer:
    """Records outgoing mail; set `fail = True` to simulate a transport outage."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def _send(self, kind: str, email: str, link: str) -> None:
        if self.fail:
            raise EmailDeliveryError("transport down")
        self.sent.append((kind, email, link))

    async def send_verification_email(self, email: str, link: str) -> None:
        await self._send("verify", email, link)

    async def send_password_reset_email(self, email: str, link: str) -> None:
        await self._send("reset", email, link)

    def last_token(self) -> str:
        link = self.sent[-1][2]
        fragment_query = urlparse(link).fragment.split("?", 1)[1]
        return parse_qs(fragment_query)["token"][0]


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        ENVIRONMENT="development",
        FRONTEND_URL="https://app.lawpal.test,https://www.lawpal.test",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        PASSWORD_HASH_ROUNDS=4,
    )


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def auth_service(test_settings, fake_db, mailer):
    from lawpal.services.auth_service import AuthService

    return AuthService(config=test_settings, db=fake_db, mailer=mailer)


@pytest.fixture
def profile_service(test_settings, fake_db):
    from lawpal.services.profile_service import ProfileService

    return ProfileService(config=test_settings, db=fake_db)


@pytest.fixture
def conversation_service(fake_db):
    from lawpal.services.conversation_service import ConversationService

    return ConversationService(db=fake_db)


@pytest.fixture
def oauth_registry():
    return {}


@pytest.fixture
def client(auth_service, profile_service, conversation_service, oauth_registry):
    """TestClient wired to in-memory services (lifespan is not run)."""
    from lawpal.api import dependencies
    from lawpal.main import app

    app.dependency_overrides[dependencies.get_auth_service] = lambda: auth_service
    app.dependency_overrides[dependencies.get_profile_service] = lambda: profile_service
    app.dependency_overrides[dependencies.get_conversation_service] = lambda: conversation_service
    app.dependency_overrides[dependencies.get_oauth_providers] = lambda: oauth_registry
    app.dependency_overrides[dependencies.require_database] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_active_user(auth_service, mailer):
    """Factory driving a user through signup, verification and password setup."""

    async def _make(name="Alice", email="alice@example.com", password="longenough1"):
        result = await auth_service.signup(name, email)
        await auth_service.verify_email(mailer.last_token())
        return await auth_service.set_password(result.user.id, password)

    return _make
