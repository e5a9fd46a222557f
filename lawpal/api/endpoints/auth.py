"""
Authentication API endpoints.

Provides email signup with verification, password setup, sign in,
and password reset. OAuth lives in oauth.py.
"""

from fastapi import APIRouter, Depends, Response, status

from lawpal.api.dependencies import get_auth_service, require_database
from lawpal.schemas.auth import (
    EmailRequest,
    ForgotPasswordResponse,
    ResetPasswordRequest,
    SessionResponse,
    SessionUser,
    SetPasswordRequest,
    SigninRequest,
    SignupRequest,
    SignupResponse,
    VerifiedUser,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from lawpal.schemas.base import MessageResponse
from lawpal.services.auth_service import AuthService

router = APIRouter()


# =============================================================================
# Signup & Verification
# =============================================================================


@router.post(
    "/signup",
    response_model=SignupResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_database)],
)
async def signup(
    request: SignupRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    """
    Start an email signup.

    A new account answers 201; resending to a pending account or telling a
    verified account to finish setup answers 200.

    **Request Body:**
    ```json
    {
        "name": "Alice",
        "email": "alice@example.com"
    }
    ```
    """
    result = await auth.signup(request.name, request.email)
    if not result.created:
        response.status_code = status.HTTP_200_OK

    return SignupResponse(
        message=result.message,
        user_id=result.user.id,
        require_password_setup=result.require_password_setup or None,
        verification_token=result.verification_token if auth.config.is_development else None,
    )


@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    dependencies=[Depends(require_database)],
)
async def verify_email(
    request: VerifyEmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> VerifyEmailResponse:
    """Verify an email address with the token from the verification link."""
    user = await auth.verify_email(request.token)
    return VerifyEmailResponse(user=VerifiedUser.model_validate(user))


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    dependencies=[Depends(require_database)],
)
async def resend_verification(
    request: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """
    Resend the verification email.

    The answer is the same whether or not the address belongs to an
    unverified account.
    """
    message = await auth.resend_verification(request.email)
    return MessageResponse(message=message)


# =============================================================================
# Password Setup & Sign In
# =============================================================================


@router.post(
    "/set-password",
    response_model=SessionResponse,
    dependencies=[Depends(require_database)],
)
async def set_password(
    request: SetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """
    Set the first password on a verified account.

    Signs the user in: the response carries a session token.

    **Request Body:**
    ```json
    {
        "userId": "4f6c...",
        "password": "longenough1"
    }
    ```
    """
    user, token = await auth.set_password(request.user_id, request.password)
    return SessionResponse(
        message="Password set successfully",
        user=SessionUser.model_validate(user),
        token=token,
    )


@router.post(
    "/signin",
    response_model=SessionResponse,
    dependencies=[Depends(require_database)],
)
async def signin(
    request: SigninRequest,
    auth: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """
    Sign in with email and password.

    **Using the token:**
    ```
    Authorization: Bearer eyJ...
    ```
    """
    user, token = await auth.signin(request.email, request.password)
    return SessionResponse(
        message="Signed in successfully",
        user=SessionUser.model_validate(user),
        token=token,
    )


@router.post("/signout", response_model=MessageResponse)
async def signout() -> MessageResponse:
    """Sessions are stateless; the client just drops its token."""
    return MessageResponse(message="Signed out successfully")


# =============================================================================
# Password Reset
# =============================================================================


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_database)],
)
async def forgot_password(
    request: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ForgotPasswordResponse:
    """Email a password reset link. Unknown addresses answer 404."""
    token = await auth.forgot_password(request.email)
    return ForgotPasswordResponse(reset_token=token if auth.config.is_development else None)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(require_database)],
)
async def reset_password(
    request: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password using the token from the reset link."""
    await auth.reset_password(request.token, request.password)
    return MessageResponse(message="Password reset successfully")
