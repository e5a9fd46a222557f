"""Pydantic schemas for the profile endpoints."""

from lawpal.schemas.base import APIModel


class ProfileUser(APIModel):
    name: str = ""
    email: str = ""
    profile_photo: str = ""


class ProfileResponse(APIModel):
    success: bool = True
    user: ProfileUser


class UpdateNameRequest(APIModel):
    name: str | None = None


class UpdateNameResponse(APIModel):
    success: bool = True
    message: str = "Name updated successfully"
    name: str


class UpdateEmailRequest(APIModel):
    email: str | None = None


class UpdateEmailResponse(APIModel):
    success: bool = True
    message: str = "Email updated successfully"
    email: str


class ChangePasswordRequest(APIModel):
    current_password: str | None = None
    new_password: str | None = None


class PhotoUploadResponse(APIModel):
    success: bool = True
    message: str = "Profile photo updated successfully"
    photo_url: str
