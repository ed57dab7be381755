"""
The user's photo feed: documentation photos from the shared bucket,
overlaid with the user's confirm/reject decisions.

Matching itself happens in the external matcher. Until it reports scores,
every listed photo carries the same placeholder match score.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Literal, Optional

from fotota.auth import AuthUser
from fotota.db import DbClient, PhotoActionType
from fotota.queue import MatchRequest, MatchRequestQueue
from fotota.storage import StorageClient

logger = logging.getLogger(__name__)

PLACEHOLDER_MATCH_SCORE = 95
FEED_LIST_LIMIT = 100
MAX_SIGNING_WORKERS = 8

PhotoFilter = Literal["all", "pending", "confirmed"]


class PhotoNotFound(Exception):
    pass


class SelfieRequired(Exception):
    pass


@dataclass
class Photo:
    id: str
    path: str
    url: str
    thumbnail_url: str
    location: Optional[str] = None
    date: Optional[str] = None
    is_confirmed: bool = False
    is_pending: bool = True
    has_watermark: bool = True
    match_score: Optional[int] = PLACEHOLDER_MATCH_SCORE


@dataclass
class PhotoCounts:
    total: int
    pending: int
    confirmed: int


def apply_actions(photos: list[Photo], actions: dict[str, PhotoActionType]) -> list[Photo]:
    """Confirmed photos lose the watermark; rejected ones leave the feed."""
    result: list[Photo] = []
    for photo in photos:
        action = actions.get(photo.id)
        if action == PhotoActionType.REJECTED:
            continue
        if action == PhotoActionType.CONFIRMED:
            photo = replace(
                photo, is_confirmed=True, is_pending=False, has_watermark=False
            )
        result.append(photo)
    return result


def filter_photos(photos: list[Photo], photo_filter: PhotoFilter = "all") -> list[Photo]:
    if photo_filter == "pending":
        return [photo for photo in photos if photo.is_pending]
    if photo_filter == "confirmed":
        return [photo for photo in photos if photo.is_confirmed]
    return list(photos)


def count_photos(photos: list[Photo]) -> PhotoCounts:
    return PhotoCounts(
        total=len(photos),
        pending=sum(1 for photo in photos if photo.is_pending),
        confirmed=sum(1 for photo in photos if photo.is_confirmed),
    )


class PhotoService:
    def __init__(
        self,
        storage: StorageClient,
        db: DbClient,
        queue: MatchRequestQueue,
        *,
        signed_url_ttl: int = 3600,
    ):
        self.storage = storage
        self.db = db
        self.queue = queue
        self.signed_url_ttl = signed_url_ttl

    def list_bucket_photos(self) -> list[Photo]:
        """List root-level files and sign their URLs in parallel."""
        files = [
            obj
            for obj in self.storage.list("", limit=FEED_LIST_LIMIT, offset=0)
            if obj.is_file
        ]
        if not files:
            return []

        def _sign(obj) -> Photo:
            url = self.storage.presign_get(obj.name, expires_in=self.signed_url_ttl)
            return Photo(id=obj.id, path=obj.name, url=url, thumbnail_url=url)

        with ThreadPoolExecutor(max_workers=min(MAX_SIGNING_WORKERS, len(files))) as pool:
            return list(pool.map(_sign, files))

    def load_feed(self, user: AuthUser) -> list[Photo]:
        photos = self.list_bucket_photos()
        actions = self.db.list_photo_actions(user.id)
        return apply_actions(photos, actions)

    def _bucket_photo_ids(self) -> set[str]:
        return {
            obj.id
            for obj in self.storage.list("", limit=FEED_LIST_LIMIT, offset=0)
            if obj.is_file
        }

    def _ensure_photo(self, photo_id: str) -> None:
        if photo_id not in self._bucket_photo_ids():
            raise PhotoNotFound(photo_id)

    def confirm(self, user: AuthUser, photo_id: str) -> None:
        self._ensure_photo(photo_id)
        self.db.record_photo_action(user.id, photo_id, PhotoActionType.CONFIRMED)
        logger.info("User %s confirmed photo %s", user.id, photo_id)

    def reject(self, user: AuthUser, photo_id: str) -> None:
        self._ensure_photo(photo_id)
        self.db.record_photo_action(user.id, photo_id, PhotoActionType.REJECTED)
        logger.info("User %s rejected photo %s", user.id, photo_id)

    def action_counts(self, user: AuthUser) -> PhotoCounts:
        """Stats for the account page, without signing any URLs."""
        photo_ids = self._bucket_photo_ids()
        actions = {
            photo_id: action
            for photo_id, action in self.db.list_photo_actions(user.id).items()
            if photo_id in photo_ids
        }
        confirmed = sum(1 for a in actions.values() if a == PhotoActionType.CONFIRMED)
        rejected = len(actions) - confirmed
        total = len(photo_ids) - rejected
        return PhotoCounts(total=total, pending=total - confirmed, confirmed=confirmed)

    def request_search(self, user: AuthUser) -> MatchRequest:
        profile = self.db.get_profile(user.id)
        if not profile or not profile.selfie_url:
            raise SelfieRequired("Upload a selfie before searching")
        request = MatchRequest(
            user_id=user.id, selfie_path=profile.selfie_url, reason="search"
        )
        self.queue.enqueue(request)
        logger.info("Queued match search for user %s", user.id)
        return request
