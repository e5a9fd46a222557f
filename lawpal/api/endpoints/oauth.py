"""
OAuth redirect handshake for Google and GitHub.

`GET /auth/<provider>` sends the browser to the provider with a signed
`state`; the callback exchanges the code, finds or links the account and
redirects back to the frontend carrying the session token.
"""

import logging
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from lawpal.api.dependencies import get_auth_service, get_jwt_service, get_oauth_providers, require_database
from lawpal.services.auth_service import AuthService
from lawpal.services.jwt_service import JWTService
from lawpal.services.oauth_providers import OAuthError, OAuthProvider

logger = logging.getLogger("lawpal.oauth")

router = APIRouter()


def _configured_provider(name: str, providers: dict[str, OAuthProvider]) -> OAuthProvider:
    provider = providers.get(name)
    if provider is None or not provider.is_configured:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{name.capitalize()} sign-in is not configured",
        )
    return provider


def _failure_redirect(auth: AuthService, provider_name: str) -> RedirectResponse:
    return RedirectResponse(
        f"{auth.config.frontend_base_url}/#/signin?error={provider_name}_failed",
        status_code=status.HTTP_302_FOUND,
    )


def start_login(provider_name: str, providers: dict[str, OAuthProvider], tokens: JWTService) -> RedirectResponse:
    provider = _configured_provider(provider_name, providers)
    state = tokens.create_state_token(provider.name)
    return RedirectResponse(provider.authorization_url(state), status_code=status.HTTP_302_FOUND)


async def finish_login(
    provider_name: str,
    code: str | None,
    state: str | None,
    error: str | None,
    providers: dict[str, OAuthProvider],
    auth: AuthService,
    tokens: JWTService,
) -> RedirectResponse:
    """
    Complete the handshake. Every failure ends in the frontend's sign-in page
    with `error=<provider>_failed`; details go to the log only.
    """
    provider = _configured_provider(provider_name, providers)

    if error or not code:
        logger.warning("%s callback without code (error=%s)", provider.name, error)
        return _failure_redirect(auth, provider.name)

    if not tokens.verify_state_token(state, provider.name):
        logger.warning("%s callback with invalid state", provider.name)
        return _failure_redirect(auth, provider.name)

    try:
        profile = await provider.exchange_code_for_profile(code)
        user = await auth.oauth_login(profile)
    except (OAuthError, httpx.HTTPError, ValueError, SQLAlchemyError) as e:
        logger.error("%s OAuth login failed: %s", provider.name, e)
        return _failure_redirect(auth, provider.name)

    session_token = auth.issue_session_token(user)
    query = urlencode({"token": session_token})
    return RedirectResponse(
        f"{auth.config.frontend_base_url}/?{query}#/oauth-finish",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/google")
async def google_login(
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    tokens: JWTService = Depends(get_jwt_service),
) -> RedirectResponse:
    """Redirect to Google's consent screen."""
    return start_login("google", providers, tokens)


@router.get("/google/callback", dependencies=[Depends(require_database)])
async def google_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    auth: AuthService = Depends(get_auth_service),
    tokens: JWTService = Depends(get_jwt_service),
) -> RedirectResponse:
    return await finish_login("google", code, state, error, providers, auth, tokens)


@router.get("/github")
async def github_login(
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    tokens: JWTService = Depends(get_jwt_service),
) -> RedirectResponse:
    """Redirect to GitHub's authorization page."""
    return start_login("github", providers, tokens)


@router.get("/github/callback", dependencies=[Depends(require_database)])
async def github_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    auth: AuthService = Depends(get_auth_service),
    tokens: JWTService = Depends(get_jwt_service),
) -> RedirectResponse:
    return await finish_login("github", code, state, error, providers, auth, tokens)
