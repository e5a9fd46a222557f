"""
JWT token service.

Issues the 7-day session (bearer) tokens and the short-lived signed `state`
values used by the OAuth redirect handshake.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from lawpal.core.config import Settings, settings


class JWTService:
    """
    Service for creating and validating JWT tokens.

    Token types:
    - access: session token carrying the user's ID in `sub`
    - oauth_state: CSRF state for an OAuth redirect, bound to one provider
    """

    TOKEN_TYPE_ACCESS = "access"
    TOKEN_TYPE_OAUTH_STATE = "oauth_state"

    def __init__(self, config: Settings | None = None):
        self.config = config or settings

    def _encode(self, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, self.config.JWT_SECRET_KEY, algorithm=self.config.JWT_ALGORITHM)

    def create_access_token(self, user_id: str) -> str:
        """
        Create a session token.

        Args:
            user_id: User's unique identifier.

        Returns:
            Encoded JWT access token.
        """
        now = datetime.now(UTC)
        return self._encode(
            {
                "sub": user_id,
                "type": self.TOKEN_TYPE_ACCESS,
                "iat": now,
                "exp": now + timedelta(days=self.config.JWT_EXPIRE_DAYS),
            }
        )

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded payload if valid, None if the signature is bad or the token expired.
        """
        try:
            return jwt.decode(
                token,
                self.config.JWT_SECRET_KEY,
                algorithms=[self.config.JWT_ALGORITHM],
            )
        except JWTError:
            return None

    def verify_access_token(self, token: str) -> dict[str, Any] | None:
        """Verify a session token specifically."""
        payload = self.verify_token(token)
        if payload and payload.get("type") == self.TOKEN_TYPE_ACCESS and payload.get("sub"):
            return payload
        return None

    def create_state_token(self, provider: str) -> str:
        now = datetime.now(UTC)
        return self._encode(
            {
                "provider": provider,
                "type": self.TOKEN_TYPE_OAUTH_STATE,
                "iat": now,
                "exp": now + timedelta(minutes=self.config.OAUTH_STATE_EXPIRE_MINUTES),
            }
        )

    def verify_state_token(self, token: str | None, provider: str) -> bool:
        if not token:
            return False
        payload = self.verify_token(token)
        return bool(
            payload and payload.get("type") == self.TOKEN_TYPE_OAUTH_STATE and payload.get("provider") == provider
        )


# Global instance
jwt_service = JWTService()
