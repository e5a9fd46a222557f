import secrets
from urllib.parse import urlparse, urlunparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Always allowed for local frontend development
DEV_FRONTEND_ORIGIN = "http://localhost:5173"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "LawPal"
    ENVIRONMENT: str = "production"  # "development" echoes tokens in auth responses
    LOG_LEVEL: str = "INFO"

    # Database Configuration
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/lawpal"
    DATABASE_CONNECT_RETRY_SECONDS: float = 5.0

    # Redis (optional - only used for rate limiting)
    REDIS_URL: str | None = None

    # JWT Configuration
    JWT_SECRET_KEY: str | None = None
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7
    OAUTH_STATE_EXPIRE_MINUTES: int = 10

    # Credentials
    PASSWORD_HASH_ROUNDS: int = 10
    PASSWORD_MIN_LENGTH: int = 8
    VERIFICATION_TOKEN_EXPIRE_HOURS: int = 24
    RESET_TOKEN_EXPIRE_MINUTES: int = 60

    # Frontend (comma separated; the first entry is used to build links)
    FRONTEND_URL: str = DEV_FRONTEND_ORIGIN

    # Google OAuth Configuration
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_CALLBACK_URL: str = "http://localhost:5000/auth/google/callback"

    # GitHub OAuth Configuration
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None
    GITHUB_CALLBACK_URL: str = "http://localhost:5000/auth/github/callback"

    # Email Service Configuration
    EMAIL_PROVIDER: str = "sendgrid"  # sendgrid, smtp, console
    EMAIL_FROM: str = "LawPal <no-reply@lawpal.app>"
    SENDGRID_API_KEY: str | None = None
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None

    # Profile photo uploads
    UPLOAD_DIR: str = "uploads"
    MAX_PHOTO_SIZE_BYTES: int = 5 * 1024 * 1024

    # Rate Limiting Configuration (disabled by default)
    ENABLE_RATE_LIMITING: bool = False
    RATE_LIMIT_GLOBAL_PER_MINUTE: int = 300
    RATE_LIMIT_PER_USER_PER_MINUTE: int = 30
    RATE_LIMIT_CREDENTIAL_PER_MINUTE: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @model_validator(mode="after")
    def validate_security_config(self) -> "Settings":
        """Make sure a JWT signing key exists, generating a throwaway one for development."""
        if not self.JWT_SECRET_KEY:
            self.JWT_SECRET_KEY = secrets.token_urlsafe(32)
            print(
                "\n" + "=" * 70 + "\n"
                "WARNING: JWT_SECRET_KEY not set! Auto-generated for this session.\n"
                "This key will change on restart, invalidating all session tokens.\n"
                "Set JWT_SECRET_KEY in .env for production!\n" + "=" * 70 + "\n"
            )
        elif len(self.JWT_SECRET_KEY) < 32:
            print("\nWARNING: JWT_SECRET_KEY is too short (< 32 chars). Use a longer key for better security.\n")
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def frontend_urls(self) -> list[str]:
        return [url.strip().rstrip("/") for url in self.FRONTEND_URL.split(",") if url.strip()]

    @property
    def frontend_base_url(self) -> str:
        """The frontend URL used in email and OAuth redirect links."""
        urls = self.frontend_urls
        return urls[0] if urls else DEV_FRONTEND_ORIGIN

    @property
    def cors_origins(self) -> list[str]:
        origins = [DEV_FRONTEND_ORIGIN]
        for url in self.frontend_urls:
            if url not in origins:
                origins.append(url)
        return origins

    @staticmethod
    def sanitize_url(url: str | None) -> str:
        """
        Remove credentials from URL for safe logging.

        Args:
            url: URL that may contain credentials.

        Returns:
            URL with password masked as *****.
        """
        if not url:
            return "not configured"

        try:
            parsed = urlparse(url)
            if parsed.password:
                netloc = parsed.hostname or ""
                if parsed.username:
                    netloc = f"{parsed.username}:*****@{netloc}"
                if parsed.port:
                    netloc = f"{netloc}:{parsed.port}"
                return urlunparse(parsed._replace(netloc=netloc))
            return url
        except ValueError:
            return "invalid URL"


settings = Settings()
