"""
Pydantic schemas for authentication API requests and responses.

Request fields are optional so that missing values reach the service layer
and produce the same messages as empty ones.
"""

from lawpal.schemas.base import APIModel

# =============================================================================
# Signup & Verification
# =============================================================================


class SignupRequest(APIModel):
    """Start an email signup."""

    name: str | None = None
    email: str | None = None


class SignupResponse(APIModel):
    """Response after signup, a resend, or a continue-setup instruction."""

    success: bool = True
    message: str
    user_id: str
    require_password_setup: bool | None = None
    verification_token: str | None = None


class VerifyEmailRequest(APIModel):
    token: str | None = None


class VerifiedUser(APIModel):
    id: str
    name: str
    email: str
    is_email_verified: bool


class VerifyEmailResponse(APIModel):
    success: bool = True
    message: str = "Email verified successfully"
    user: VerifiedUser


class EmailRequest(APIModel):
    """Request carrying only an email (resend-verification, forgot-password)."""

    email: str | None = None


# =============================================================================
# Password & Sign In
# =============================================================================


class SetPasswordRequest(APIModel):
    user_id: str | None = None
    password: str | None = None


class SigninRequest(APIModel):
    email: str | None = None
    password: str | None = None


class SessionUser(APIModel):
    id: str
    name: str
    email: str


class SessionResponse(APIModel):
    """Response carrying a freshly issued session token."""

    success: bool = True
    message: str
    user: SessionUser
    token: str


class ForgotPasswordResponse(APIModel):
    success: bool = True
    message: str = "Password reset link sent to your email"
    reset_token: str | None = None


class ResetPasswordRequest(APIModel):
    token: str | None = None
    password: str | None = None
