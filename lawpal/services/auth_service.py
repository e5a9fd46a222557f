"""
Authentication service for user account management.

Account states: pending-verification -> verified-no-password -> active.

Handles:
- Signup with email verification (and idempotent re-signup)
- Password setup after verification, with auto-login
- Sign in with email/password
- Forgot / reset password
- OAuth account creation and linking
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from lawpal.core.config import Settings, settings
from lawpal.models import AccountState, User
from lawpal.services.email_service import EmailDeliveryError, EmailService
from lawpal.services.jwt_service import JWTService
from lawpal.services.oauth_providers import OAuthError, OAuthProfile

logger = logging.getLogger("lawpal.auth")

RESEND_VERIFICATION_MESSAGE = "If the email exists and is not verified, a verification email has been resent"


@dataclass
class SignupResult:
    """Outcome of a signup attempt."""

    user: User
    message: str
    created: bool = False
    require_password_setup: bool = False
    verification_token: str | None = None


class AuthService:
    """
    Service for user authentication and account management.

    Every transition persists before returning. Mail failures are non-fatal
    for signup but fatal for resend-verification and forgot-password, so a
    caller is never told an email went out when it did not.
    """

    def __init__(
        self,
        config: Settings | None = None,
        db=None,
        mailer: EmailService | None = None,
        tokens: JWTService | None = None,
    ):
        self.config = config or settings
        self._db = db
        self._mailer = mailer
        self._tokens = tokens

    @property
    def db(self):
        """Get database instance."""
        if self._db is None:
            from lawpal.services.database import database

            self._db = database
        return self._db

    @property
    def mailer(self) -> EmailService:
        if self._mailer is None:
            from lawpal.services.email_service import email_service

            self._mailer = email_service
        return self._mailer

    @property
    def tokens(self) -> JWTService:
        if self._tokens is None:
            from lawpal.services.jwt_service import jwt_service

            self._tokens = jwt_service
        return self._tokens

    # =========================================================================
    # Credentials
    # =========================================================================

    @staticmethod
    def hash_password(password: str, rounds: int = 10) -> str:
        """Hash a password using bcrypt."""
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    async def hash_password_async(self, password: str) -> str:
        # bcrypt blocks for the whole cost factor; run it in a worker thread
        return await asyncio.to_thread(self.hash_password, password, self.config.PASSWORD_HASH_ROUNDS)

    async def verify_password_async(self, plain_password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.verify_password, plain_password, hashed_password)

    @staticmethod
    def generate_token() -> str:
        """Generate a 32-byte random hex token for email verification or password reset."""
        return secrets.token_hex(32)

    def issue_session_token(self, user: User) -> str:
        return self.tokens.create_access_token(user.id)

    def _require_password_length(self, password: str, message: str = "Password must be at least {n} characters"):
        if len(password) < self.config.PASSWORD_MIN_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=message.format(n=self.config.PASSWORD_MIN_LENGTH),
            )

    def _new_verification(self) -> tuple[str, datetime]:
        expires = datetime.now(UTC) + timedelta(hours=self.config.VERIFICATION_TOKEN_EXPIRE_HOURS)
        return self.generate_token(), expires

    def _verification_link(self, token: str) -> str:
        return f"{self.config.frontend_base_url}/#/signup?token={token}"

    def _reset_link(self, token: str) -> str:
        return f"{self.config.frontend_base_url}/#/reset-password?token={token}"

    # =========================================================================
    # Signup & Verification
    # =========================================================================

    async def signup(self, name: str | None, email: str | None) -> SignupResult:
        """
        Start (or resume) an email signup.

        - Unknown email: create a pending account and email a verification link.
        - Pending account: refresh the name, regenerate the token and resend.
        - Verified without password: point the caller at password setup.
        - Active account: reject as duplicate.

        Raises:
            HTTPException: 400 if fields are missing or the email is already registered.
        """
        if not (name or "").strip() or not (email or "").strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name and email are required",
            )

        existing = await self.db.get_user_by_email(email)
        if existing:
            if existing.state == AccountState.VERIFIED_NO_PASSWORD:
                return SignupResult(
                    user=existing,
                    message="Email verified. Please set your password.",
                    require_password_setup=True,
                )
            if existing.state == AccountState.ACTIVE:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Email already registered",
                )

            token, expires = self._new_verification()
            existing.name = name.strip()
            existing.email_verification_token = token
            existing.email_verification_expires = expires
            await self.db.update_user(
                existing.id,
                name=existing.name,
                email_verification_token=token,
                email_verification_expires=expires,
            )
            await self._send_verification_best_effort(existing.email, token)
            return SignupResult(user=existing, message="Verification email resent", verification_token=token)

        token, expires = self._new_verification()
        user = User.new_local(name, email, token, expires)
        try:
            user = await self.db.create_user(user)
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already exists",
            ) from None

        await self._send_verification_best_effort(user.email, token)
        return SignupResult(user=user, message="Verification email sent", created=True, verification_token=token)

    async def _send_verification_best_effort(self, email: str, token: str) -> None:
        try:
            await self.mailer.send_verification_email(email, self._verification_link(token))
            logger.info("Verification email sent to %s", email)
        except EmailDeliveryError as e:
            # The account exists; the user can ask for another email later
            logger.error("Failed to send verification email to %s: %s", email, e)

    async def verify_email(self, token: str | None) -> User:
        """
        Verify an email address with a single-use token.

        Raises:
            HTTPException: 400 if the token is missing, unknown or expired.
        """
        if not token:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Verification token is required",
            )

        user = await self.db.consume_verification_token(token, datetime.now(UTC))
        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired verification token",
            )

        logger.info("Email verified for user %s", user.id)
        return user

    async def resend_verification(self, email: str | None) -> str:
        """
        Resend the verification email.

        Unknown and already-verified addresses get the same generic answer
        and no email, so the response does not reveal whether an account exists.

        Raises:
            HTTPException: 400 if email missing, 500 if the email could not be sent.
        """
        if not (email or "").strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is required",
            )

        user = await self.db.get_user_by_email(email)
        if not user or user.is_email_verified:
            return RESEND_VERIFICATION_MESSAGE

        token, expires = self._new_verification()
        await self.db.update_user(user.id, email_verification_token=token, email_verification_expires=expires)

        try:
            await self.mailer.send_verification_email(user.email, self._verification_link(token))
        except EmailDeliveryError as e:
            logger.error("Failed to resend verification email to %s: %s", user.email, e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to resend verification email. Please try again later.",
            ) from None

        return RESEND_VERIFICATION_MESSAGE

    # =========================================================================
    # Password Setup & Sign In
    # =========================================================================

    async def set_password(self, user_id: str | None, password: str | None) -> tuple[User, str]:
        """
        Set the first password on a verified account and log the user in.

        Returns:
            The user and a fresh session token.

        Raises:
            HTTPException: 400 on invalid input, unverified email or a password
                that is already set; 404 if the user does not exist.
        """
        if not user_id or not password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User ID and password are required",
            )
        self._require_password_length(password)

        user = await self.db.get_user_by_id(user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        if user.state == AccountState.PENDING_VERIFICATION:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please verify your email first",
            )
        if user.state == AccountState.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Password already set. Please sign in or reset your password.",
            )

        user.password_hash = await self.hash_password_async(password)
        await self.db.update_user(user.id, password_hash=user.password_hash)

        logger.info("Password set for user %s", user.id)
        return user, self.issue_session_token(user)

    async def signin(self, email: str | None, password: str | None) -> tuple[User, str]:
        """
        Sign in with email and password.

        Raises:
            HTTPException: 400 if fields missing; 401 for bad credentials,
                unfinished setup or unverified email.
        """
        if not (email or "").strip() or not password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email and password are required",
            )

        user = await self.db.get_user_by_email(email)
        if not user:
            logger.info("Sign in failed - unknown email")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        if not user.password_hash:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Please complete your account setup first",
            )

        if not await self.verify_password_async(password, user.password_hash):
            logger.info("Sign in failed for user %s - invalid password", user.id)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        if not user.is_email_verified:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Please verify your email before signing in",
            )

        logger.info("Successful sign in for user %s", user.id)
        return user, self.issue_session_token(user)

    # =========================================================================
    # Password Reset
    # =========================================================================

    async def forgot_password(self, email: str | None) -> str:
        """
        Email a password reset link.

        Unlike resend-verification this reports unknown addresses explicitly.

        Returns:
            The issued reset token.

        Raises:
            HTTPException: 400 if email missing or not yet verified, 404 if unknown,
                500 if the email could not be sent.
        """
        if not (email or "").strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is required",
            )

        user = await self.db.get_user_by_email(email)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User does not exist",
            )
        if user.state == AccountState.PENDING_VERIFICATION:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please verify your email first",
            )

        token = self.generate_token()
        expires = datetime.now(UTC) + timedelta(minutes=self.config.RESET_TOKEN_EXPIRE_MINUTES)
        await self.db.update_user(user.id, reset_password_token=token, reset_password_expires=expires)

        try:
            await self.mailer.send_password_reset_email(user.email, self._reset_link(token))
        except EmailDeliveryError as e:
            logger.error("Failed to send reset email to %s: %s", user.email, e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to send reset email. Please try again later.",
            ) from None

        return token

    async def reset_password(self, token: str | None, password: str | None) -> User:
        """
        Replace the password using a single-use reset token.

        Raises:
            HTTPException: 400 on missing fields, short password, or an invalid/expired token.
        """
        if not token or not password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Token and password are required",
            )
        self._require_password_length(password)

        invalid = HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired reset token",
        )
        now = datetime.now(UTC)
        if not await self.db.get_user_by_reset_token(token, now):
            raise invalid

        password_hash = await self.hash_password_async(password)
        # The token may have been used while hashing; consuming it is the atomic step
        user = await self.db.consume_reset_token(token, now, password_hash)
        if not user:
            raise invalid

        logger.info("Password reset for user %s", user.id)
        return user

    # =========================================================================
    # OAuth
    # =========================================================================

    async def oauth_login(self, profile: OAuthProfile) -> User:
        """
        Find, create or link the account for an OAuth profile.

        - Unknown email: create a pre-verified account owned by the provider.
        - Existing account without a provider: link it and mark the email verified.
        - Existing account already linked: sign in as-is.

        Raises:
            OAuthError: if the provider has not verified the email address.
        """
        if not profile.email_verified:
            raise OAuthError(f"{profile.provider} email {profile.email} is not verified")

        user = await self.db.get_user_by_email(profile.email)

        if not user:
            user = User.new_oauth(
                provider=profile.provider,
                provider_id=profile.provider_id,
                email=profile.email,
                name=profile.name,
                photo_url=profile.photo_url,
            )
            try:
                user = await self.db.create_user(user)
            except IntegrityError:
                # Created concurrently (e.g. a double-clicked callback)
                user = await self.db.get_user_by_email(profile.email)
                if not user:
                    raise
            logger.info("Created %s account %s", profile.provider, user.id)
        elif not user.provider:
            user.provider = profile.provider
            user.provider_id = profile.provider_id
            user.is_email_verified = True
            user.email_verification_token = None
            user.email_verification_expires = None
            await self.db.update_user(
                user.id,
                provider=user.provider,
                provider_id=user.provider_id,
                is_email_verified=True,
                email_verification_token=None,
                email_verification_expires=None,
            )
            logger.info("Linked %s to existing account %s", profile.provider, user.id)

        return user


# Global instance
auth_service = AuthService()
