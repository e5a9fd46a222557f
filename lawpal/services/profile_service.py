"""
Profile management for the signed-in user.

Name, email and password edits, plus profile photo uploads stored under
UPLOAD_DIR and served from /uploads.
"""

import asyncio
import logging
import secrets
import time
from pathlib import Path

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from lawpal.core.config import Settings, settings
from lawpal.models import User, normalize_email
from lawpal.services.auth_service import AuthService

logger = logging.getLogger("lawpal.profile")

UPLOADS_URL_PREFIX = "/uploads/"
PHOTO_SUBDIR = "profiles"
ALLOWED_PHOTO_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".webp")
ALLOWED_PHOTO_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")


class ProfileService:
    """Read and edit the profile of an authenticated user."""

    def __init__(self, config: Settings | None = None, db=None):
        self.config = config or settings
        self._db = db

    @property
    def db(self):
        """Get database instance."""
        if self._db is None:
            from lawpal.services.database import database

            self._db = database
        return self._db

    @property
    def upload_root(self) -> Path:
        return Path(self.config.UPLOAD_DIR)

    async def _require_user(self, user_id: str) -> User:
        user = await self.db.get_user_by_id(user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    async def get_profile(self, user_id: str) -> User:
        return await self._require_user(user_id)

    async def update_name(self, user_id: str, name: str | None) -> User:
        name = (name or "").strip()
        if not name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name is required",
            )

        user = await self._require_user(user_id)
        user.name = name
        await self.db.update_user(user.id, name=name)
        return user

    async def update_email(self, user_id: str, email: str | None) -> User:
        """
        Change the account email.

        Raises:
            HTTPException: 400 if missing or owned by another account, 404 if the user is gone.
        """
        email = normalize_email(email)
        if not email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is required",
            )

        user = await self._require_user(user_id)
        if email == user.email:
            return user

        other = await self.db.get_user_by_email(email)
        if other and other.id != user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already in use",
            )

        try:
            await self.db.update_user(user.id, email=email)
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already in use",
            ) from None

        user.email = email
        logger.info("Email changed for user %s", user.id)
        return user

    async def change_password(self, user_id: str, current_password: str | None, new_password: str | None) -> None:
        """
        Change the password after checking the current one.

        Raises:
            HTTPException: 400 on missing fields, short password, no password set
                or a wrong current password; 404 if the user is gone.
        """
        if not current_password or not new_password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password and new password are required",
            )
        if len(new_password) < self.config.PASSWORD_MIN_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"New password must be at least {self.config.PASSWORD_MIN_LENGTH} characters",
            )

        user = await self._require_user(user_id)
        if not user.password_hash:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No password set for this account. Please reset your password.",
            )
        if not await asyncio.to_thread(AuthService.verify_password, current_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect",
            )

        password_hash = await asyncio.to_thread(AuthService.hash_password, new_password, self.config.PASSWORD_HASH_ROUNDS)
        await self.db.update_user(user.id, password_hash=password_hash)
        logger.info("Password changed for user %s", user.id)

    # =========================================================================
    # Photos
    # =========================================================================

    def validate_photo(self, filename: str | None, content_type: str | None, size: int) -> str:
        """
        Check an uploaded photo and return its normalised extension.

        Raises:
            HTTPException: 400 if the file is missing, not an allowed image type, or too large.
        """
        if not filename or size == 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No photo uploaded",
            )

        extension = Path(filename).suffix.lower()
        if extension not in ALLOWED_PHOTO_EXTENSIONS or (content_type or "").lower() not in ALLOWED_PHOTO_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only image files (jpeg, jpg, png, gif, webp) are allowed",
            )

        if size > self.config.MAX_PHOTO_SIZE_BYTES:
            limit_mb = self.config.MAX_PHOTO_SIZE_BYTES // (1024 * 1024)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Photo must be at most {limit_mb}MB",
            )
        return extension

    def _local_photo_path(self, photo_url: str | None) -> Path | None:
        """Map a stored /uploads/... URL back to a file under UPLOAD_DIR. Remote URLs map to None."""
        if not photo_url or not photo_url.startswith(UPLOADS_URL_PREFIX):
            return None

        root = self.upload_root.resolve()
        path = (root / photo_url[len(UPLOADS_URL_PREFIX) :]).resolve()
        if not path.is_relative_to(root):
            return None
        return path

    async def upload_photo(
        self,
        user_id: str,
        filename: str | None,
        content_type: str | None,
        data: bytes,
    ) -> User:
        """
        Store a new profile photo and delete the previous local one.

        Returns:
            The updated user, whose `profile_photo` is the new /uploads URL.
        """
        extension = self.validate_photo(filename, content_type, len(data))
        user = await self._require_user(user_id)

        stored_name = f"profile-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"
        target = self.upload_root / PHOTO_SUBDIR / stored_name

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)

        previous = self._local_photo_path(user.profile_photo)
        photo_url = f"{UPLOADS_URL_PREFIX}{PHOTO_SUBDIR}/{stored_name}"
        await self.db.update_user(user.id, profile_photo=photo_url)
        user.profile_photo = photo_url

        if previous is not None:
            try:
                await asyncio.to_thread(previous.unlink, True)
            except OSError as e:
                logger.warning("Could not delete old profile photo %s: %s", previous, e)

        logger.info("Profile photo updated for user %s", user.id)
        return user


# Global instance
profile_service = ProfileService()
