"""
Profile API endpoints.

All routes require `Authorization: Bearer <jwt>`.
"""

from fastapi import APIRouter, Depends, File, UploadFile

from lawpal.api.dependencies import get_profile_service, require_database
from lawpal.core.security import get_current_user_id
from lawpal.schemas.base import MessageResponse
from lawpal.schemas.profile import (
    ChangePasswordRequest,
    PhotoUploadResponse,
    ProfileResponse,
    ProfileUser,
    UpdateEmailRequest,
    UpdateEmailResponse,
    UpdateNameRequest,
    UpdateNameResponse,
)
from lawpal.services.profile_service import ProfileService

router = APIRouter(dependencies=[Depends(require_database)])


@router.get("", response_model=ProfileResponse)
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> ProfileResponse:
    """Get the signed-in user's name, email and photo."""
    user = await profiles.get_profile(user_id)
    return ProfileResponse(user=ProfileUser.model_validate(user))


@router.put("/name", response_model=UpdateNameResponse)
async def update_name(
    request: UpdateNameRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> UpdateNameResponse:
    user = await profiles.update_name(user_id, request.name)
    return UpdateNameResponse(name=user.name)


@router.put("/email", response_model=UpdateEmailResponse)
async def update_email(
    request: UpdateEmailRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> UpdateEmailResponse:
    user = await profiles.update_email(user_id, request.email)
    return UpdateEmailResponse(email=user.email)


@router.put("/password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> MessageResponse:
    """
    Change the password.

    **Request Body:**
    ```json
    {
        "currentPassword": "old-password",
        "newPassword": "new-password"
    }
    ```
    """
    await profiles.change_password(user_id, request.current_password, request.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/photo", response_model=PhotoUploadResponse)
async def upload_photo(
    photo: UploadFile | None = File(None),
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> PhotoUploadResponse:
    """
    Upload a profile photo (multipart field `photo`).

    jpeg, jpg, png, gif or webp, up to MAX_PHOTO_SIZE_BYTES. Replaces and
    deletes the previous uploaded photo.
    """
    if photo is None:
        data, filename, content_type = b"", None, None
    else:
        # One byte past the limit is enough to reject oversized files
        data = await photo.read(profiles.config.MAX_PHOTO_SIZE_BYTES + 1)
        filename, content_type = photo.filename, photo.content_type

    user = await profiles.upload_photo(user_id, filename, content_type, data)
    return PhotoUploadResponse(photo_url=user.profile_photo)
