"""
OAuth providers for the redirect-based sign-in handshake.

Each provider knows how to build its authorization URL, exchange a callback
code for the user's profile, and normalise that profile. Account creation and
linking is shared and lives in AuthService.oauth_login.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from lawpal.core.config import Settings, settings

logger = logging.getLogger("lawpal.oauth")


class OAuthError(Exception):
    """Raised when a provider handshake fails or returns an unusable profile."""


@dataclass
class OAuthProfile:
    """Provider-independent view of an OAuth user."""

    provider: str
    provider_id: str
    email: str
    name: str
    photo_url: str = ""
    email_verified: bool = False


class OAuthProvider(ABC):
    """Abstract base class for OAuth providers."""

    name: str
    authorize_endpoint: str
    token_endpoint: str
    scopes: tuple[str, ...]

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        callback_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=15.0)

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> dict[str, Any]:
        response = await client.post(
            self.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.callback_url,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        tokens = response.json()
        if "error" in tokens:
            raise OAuthError(f"{self.name} token exchange failed: {tokens['error']}")
        return tokens

    @abstractmethod
    async def exchange_code_for_profile(self, code: str) -> OAuthProfile:
        """Exchange a callback code for the user's normalised profile."""
        pass

    @abstractmethod
    def normalize_profile(self, raw: dict[str, Any]) -> OAuthProfile:
        """Map the provider's raw profile data to an OAuthProfile."""
        pass


class GoogleProvider(OAuthProvider):
    """Google OAuth 2.0 / OpenID Connect."""

    name = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    scopes = ("openid", "profile", "email")

    async def exchange_code_for_profile(self, code: str) -> OAuthProfile:
        async with self._client() as client:
            tokens = await self._exchange_code(client, code)

        raw_id_token = tokens.get("id_token")
        if not raw_id_token:
            raise OAuthError("Google did not return an ID token")

        try:
            # google-auth verification is synchronous (fetches signing certs)
            idinfo = await asyncio.to_thread(
                google_id_token.verify_oauth2_token,
                raw_id_token,
                google_requests.Request(),
                self.client_id,
            )
        except ValueError as e:
            raise OAuthError(f"Invalid Google ID token: {e}") from e

        return self.normalize_profile(idinfo)

    def normalize_profile(self, raw: dict[str, Any]) -> OAuthProfile:
        subject = raw.get("sub")
        if not subject:
            raise OAuthError("No subject in Google profile")

        email = (raw.get("email") or "").strip().lower()
        if not email:
            raise OAuthError("No email from Google")

        # ID tokens carry a bool, the userinfo endpoint has used the string "true"
        verified = raw.get("email_verified") in (True, "true")
        if not verified:
            raise OAuthError("Google email is not verified")

        return OAuthProfile(
            provider=self.name,
            provider_id=str(subject),
            email=email,
            name=raw.get("name") or raw.get("given_name") or "User",
            photo_url=raw.get("picture") or "",
            email_verified=True,
        )


class GitHubProvider(OAuthProvider):
    """GitHub OAuth apps."""

    name = "github"
    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    api_base = "https://api.github.com"
    scopes = ("user:email",)

    async def exchange_code_for_profile(self, code: str) -> OAuthProfile:
        async with self._client() as client:
            tokens = await self._exchange_code(client, code)
            access_token = tokens.get("access_token")
            if not access_token:
                raise OAuthError("GitHub did not return an access token")

            headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"}
            user_response = await client.get(f"{self.api_base}/user", headers=headers)
            user_response.raise_for_status()

            # Emails need the user:email scope; a private primary email is only visible here
            emails_response = await client.get(f"{self.api_base}/user/emails", headers=headers)
            emails = emails_response.json() if emails_response.status_code == 200 else []

        return self.normalize_profile({"user": user_response.json(), "emails": emails})

    def normalize_profile(self, raw: dict[str, Any]) -> OAuthProfile:
        user = raw.get("user") or {}
        if not user.get("id"):
            raise OAuthError("No user id in GitHub profile")

        emails = raw.get("emails") if isinstance(raw.get("emails"), list) else []
        if not any(isinstance(e, dict) and e.get("email") for e in emails):
            raise OAuthError("No email from GitHub")

        # The public profile email carries no verification flag, so only /user/emails counts
        verified = [e for e in emails if isinstance(e, dict) and e.get("email") and e.get("verified") is True]
        if not verified:
            raise OAuthError("GitHub email is not verified")
        chosen = next((e for e in verified if e.get("primary")), verified[0])

        return OAuthProfile(
            provider=self.name,
            provider_id=str(user["id"]),
            email=chosen["email"].strip().lower(),
            name=user.get("name") or user.get("login") or "User",
            photo_url=user.get("avatar_url") or "",
            email_verified=True,
        )


def build_providers(config: Settings | None = None) -> dict[str, OAuthProvider]:
    """Build the provider registry from configuration."""
    config = config or settings
    providers: list[OAuthProvider] = [
        GoogleProvider(config.GOOGLE_CLIENT_ID, config.GOOGLE_CLIENT_SECRET, config.GOOGLE_CALLBACK_URL),
        GitHubProvider(config.GITHUB_CLIENT_ID, config.GITHUB_CLIENT_SECRET, config.GITHUB_CALLBACK_URL),
    ]
    for provider in providers:
        if not provider.is_configured:
            logger.info("%s OAuth not configured", provider.name)
    return {provider.name: provider for provider in providers}


oauth_providers = build_providers()
