"""
Bearer-token authentication for protected routes.

Every protected route depends on `get_current_user_id`, which extracts the
`Authorization: Bearer <jwt>` header, verifies signature and expiry, and
hands the token's subject (the user id) to the handler.
"""

from fastapi import Header, HTTPException, status


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract Bearer token from Authorization header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return None


async def get_current_user_id(authorization: str | None = Header(None)) -> str:
    """
    Resolve the authenticated user's id from the session token.

    Raises:
        HTTPException: 401 if the header is absent/malformed or the token is invalid or expired.
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Import here to avoid circular imports
    from lawpal.services.jwt_service import jwt_service

    payload = jwt_service.verify_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload["sub"]
