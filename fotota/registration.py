"""
Two-step registration: account details checked against the employee
whitelist, then signup with a selfie for the face matcher.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from fotota.account import save_profile_fields, selfie_path
from fotota.auth import AuthClient, AuthSession, wait_for_session
from fotota.db import DbClient, WhitelistEntry
from fotota.queue import MatchRequest, MatchRequestQueue
from fotota.storage import StorageClient
from fotota.uploads import Upload, ensure_image

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class RegistrationError(Exception):
    pass


class NotWhitelisted(RegistrationError):
    pass


class RegistrationService:
    def __init__(
        self,
        auth: AuthClient,
        db: DbClient,
        selfie_storage: StorageClient,
        queue: MatchRequestQueue,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.auth = auth
        self.db = db
        self.selfie_storage = selfie_storage
        self.queue = queue
        self.sleep = sleep

    def validate_info(self, name: str, email: str, password: str) -> WhitelistEntry:
        if not (name or "").strip() or not (email or "").strip() or not password:
            raise RegistrationError("Please complete all fields")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise RegistrationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        employee = self.db.find_whitelisted(email.strip())
        if not employee:
            raise NotWhitelisted("Email is not registered, use your company email")
        return employee

    def register(
        self, name: str, email: str, password: str, selfie: Optional[Upload]
    ) -> AuthSession:
        if selfie is None or not selfie.data:
            raise RegistrationError("Please upload a selfie for face verification")
        content_type = ensure_image(selfie)
        self.validate_info(name, email, password)

        name = name.strip()
        email = email.strip()
        session = self.auth.sign_up(email, password, name)
        user = wait_for_session(self.auth, session.access_token, sleep=self.sleep)
        session.user = user

        try:
            save_profile_fields(
                self.db,
                user,
                full_name=name,
                email=email,
                phone=None,
                location=None,
                selfie_url=None,
                profile_photo_url=None,
            )
        except Exception:
            # The auth account exists at this point; keep going.
            logger.warning("Error creating profile for user %s", user.id, exc_info=True)

        path = selfie_path(user.id, selfie.filename)
        self.selfie_storage.upload(path, selfie.data, content_type=content_type, upsert=True)

        try:
            self.db.add_selfie(user.id, path)
        except Exception:
            logger.warning("Error saving selfie record for user %s", user.id, exc_info=True)
        try:
            save_profile_fields(self.db, user, selfie_url=path)
        except Exception:
            logger.warning(
                "Error linking selfie to profile for user %s", user.id, exc_info=True
            )

        self.queue.enqueue(MatchRequest(user_id=user.id, selfie_path=path, reason="registration"))
        logger.info("Registered user %s", user.id)
        return session
