"""
Dependency providers for API routes.

Routes receive their services through these functions, so tests can swap
any of them with `app.dependency_overrides`.
"""

from fastapi import HTTPException, status

from lawpal.services.auth_service import AuthService, auth_service
from lawpal.services.conversation_service import ConversationService, conversation_service
from lawpal.services.database import database
from lawpal.services.jwt_service import JWTService, jwt_service
from lawpal.services.oauth_providers import OAuthProvider, oauth_providers
from lawpal.services.profile_service import ProfileService, profile_service


def get_auth_service() -> AuthService:
    return auth_service


def get_profile_service() -> ProfileService:
    return profile_service


def get_conversation_service() -> ConversationService:
    return conversation_service


def get_jwt_service() -> JWTService:
    return jwt_service


def get_oauth_providers() -> dict[str, OAuthProvider]:
    return oauth_providers


def require_database() -> None:
    """
    Guard for routes that touch the database.

    Raises:
        HTTPException: 503 while the database is not connected.
    """
    if not database.is_available:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": "Database not connected. Please try again shortly.",
                "databaseState": database.state,
            },
        )
