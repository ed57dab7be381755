"""
Account page operations: profile, contact details, selfie and profile photo.

Profile rows are normally created by a platform trigger on signup. Writes
therefore update first and fall back to inserting when no row exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fotota.auth import AuthUser
from fotota.db import DbClient, Profile
from fotota.photos import PhotoCounts, PhotoService
from fotota.queue import MatchRequest, MatchRequestQueue
from fotota.storage import StorageClient, StorageError
from fotota.uploads import (
    MAX_PROFILE_PHOTO_BYTES,
    InvalidUpload,
    Upload,
    ensure_image,
    file_extension,
)

logger = logging.getLogger(__name__)

SELFIE_NAME = "selfie-registrasi"
PROFILE_PHOTO_NAME = "profile-photo"


def selfie_path(user_id: str, filename: str) -> str:
    return f"{user_id}/{SELFIE_NAME}.{file_extension(filename)}"


def profile_photo_path(user_id: str, filename: str) -> str:
    return f"{user_id}/{PROFILE_PHOTO_NAME}.{file_extension(filename)}"


def blank_profile(user: AuthUser) -> Profile:
    return Profile(user_id=user.id, email=user.email, full_name=user.full_name or "")


def save_profile_fields(db: DbClient, user: AuthUser, **changes) -> Profile:
    """Update the user's profile row, inserting it first when missing."""
    updated = db.update_profile(user.id, **changes)
    if updated:
        return updated
    profile = blank_profile(user)
    for key, value in changes.items():
        setattr(profile, key, value)
    return db.create_profile(profile)


@dataclass
class AccountView:
    profile: Profile
    selfie_url: Optional[str]
    profile_photo_url: Optional[str]
    stats: PhotoCounts


class AccountService:
    def __init__(
        self,
        db: DbClient,
        selfie_storage: StorageClient,
        photos: PhotoService,
        queue: MatchRequestQueue,
        *,
        signed_url_ttl: int = 3600,
    ):
        self.db = db
        self.selfie_storage = selfie_storage
        self.photos = photos
        self.queue = queue
        self.signed_url_ttl = signed_url_ttl

    def get_or_create_profile(self, user: AuthUser) -> Profile:
        profile = self.db.get_profile(user.id)
        if profile:
            return profile
        logger.info("Creating missing profile for user %s", user.id)
        return self.db.create_profile(blank_profile(user))

    def _signed_url(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        try:
            return self.selfie_storage.presign_get(path, expires_in=self.signed_url_ttl)
        except StorageError:
            logger.warning("Error generating signed URL for %s", path, exc_info=True)
            return None

    def account_view(self, user: AuthUser) -> AccountView:
        profile = self.get_or_create_profile(user)
        return AccountView(
            profile=profile,
            selfie_url=self._signed_url(profile.selfie_url),
            profile_photo_url=self._signed_url(profile.profile_photo_url),
            stats=self.photos.action_counts(user),
        )

    def update_contact(
        self, user: AuthUser, phone: Optional[str], location: Optional[str]
    ) -> Profile:
        return save_profile_fields(
            self.db,
            user,
            phone=(phone or "").strip() or None,
            location=(location or "").strip() or None,
        )

    def update_selfie(self, user: AuthUser, upload: Upload) -> AccountView:
        content_type = ensure_image(upload)
        path = selfie_path(user.id, upload.filename)
        self.selfie_storage.upload(path, upload.data, content_type=content_type, upsert=True)
        save_profile_fields(self.db, user, selfie_url=path)
        self.queue.enqueue(MatchRequest(user_id=user.id, selfie_path=path, reason="selfie-updated"))
        logger.info("Selfie updated for user %s", user.id)
        return self.account_view(user)

    def update_profile_photo(self, user: AuthUser, upload: Upload) -> AccountView:
        if upload.size > MAX_PROFILE_PHOTO_BYTES:
            raise InvalidUpload("Maximum file size is 1MB")
        content_type = ensure_image(upload)
        path = profile_photo_path(user.id, upload.filename)
        self.selfie_storage.upload(path, upload.data, content_type=content_type, upsert=True)
        save_profile_fields(self.db, user, profile_photo_url=path)
        logger.info("Profile photo updated for user %s", user.id)
        return self.account_view(user)
