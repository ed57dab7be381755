"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from fotota.account import AccountService
from fotota.auth import AuthClient, AuthError, AuthUser, InMemoryAuthClient, SupabaseAuthClient
from fotota.config import get_settings
from fotota.db import DbClient, InMemoryDbClient, PostgresDbClient
from fotota.explorer import FileExplorer
from fotota.photos import PhotoService
from fotota.queue import InMemoryMatchRequestQueue, MatchRequestQueue, RedisMatchRequestQueue
from fotota.registration import RegistrationService
from fotota.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

_auth_client: AuthClient | None = None
_db_client: DbClient | None = None
_photo_storage: StorageClient | None = None
_selfie_storage: StorageClient | None = None
_queue_client: MatchRequestQueue | None = None


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.supabase_url:
        _auth_client = InMemoryAuthClient(admin_emails=settings.admin_email_set)
    else:
        _auth_client = SupabaseAuthClient(
            settings.supabase_url,
            settings.supabase_anon_key or "",
            settings.admin_email_set,
        )
    return _auth_client


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so table state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def _build_storage(bucket: str) -> StorageClient:
    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_endpoint:
        return InMemoryStorageClient(bucket=bucket)
    return S3StorageClient(
        bucket=bucket,
        region=settings.storage_region or "",
        endpoint=settings.storage_endpoint or "",
        access_key_id=settings.storage_access_key_id or "",
        secret_access_key=settings.storage_secret_access_key or "",
    )


def get_photo_storage() -> StorageClient:
    global _photo_storage
    if _photo_storage:
        return _photo_storage
    _photo_storage = _build_storage(get_settings().photo_bucket)
    return _photo_storage


def get_selfie_storage() -> StorageClient:
    global _selfie_storage
    if _selfie_storage:
        return _selfie_storage
    _selfie_storage = _build_storage(get_settings().selfie_bucket)
    return _selfie_storage


def get_queue_client() -> MatchRequestQueue:
    """
    Return a singleton queue client for handing match requests to the matcher.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisMatchRequestQueue(
            url=settings.redis_url,
            queue_key=settings.match_queue_key,
        )
    else:
        _queue_client = InMemoryMatchRequestQueue()
    return _queue_client


def get_photo_service(
    storage: StorageClient = Depends(get_photo_storage),
    db: DbClient = Depends(get_db_client),
    queue: MatchRequestQueue = Depends(get_queue_client),
) -> PhotoService:
    return PhotoService(
        storage, db, queue, signed_url_ttl=get_settings().signed_url_ttl_seconds
    )


def get_account_service(
    db: DbClient = Depends(get_db_client),
    selfie_storage: StorageClient = Depends(get_selfie_storage),
    photos: PhotoService = Depends(get_photo_service),
    queue: MatchRequestQueue = Depends(get_queue_client),
) -> AccountService:
    return AccountService(
        db,
        selfie_storage,
        photos,
        queue,
        signed_url_ttl=get_settings().signed_url_ttl_seconds,
    )


def get_registration_service(
    auth: AuthClient = Depends(get_auth_client),
    db: DbClient = Depends(get_db_client),
    selfie_storage: StorageClient = Depends(get_selfie_storage),
    queue: MatchRequestQueue = Depends(get_queue_client),
) -> RegistrationService:
    return RegistrationService(auth, db, selfie_storage, queue)


def get_file_explorer(
    storage: StorageClient = Depends(get_photo_storage),
) -> FileExplorer:
    return FileExplorer(storage, signed_url_ttl=get_settings().signed_url_ttl_seconds)


def get_access_token(authorization: Optional[str] = Header(None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return token.strip()


def get_current_user(
    token: str = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
) -> AuthUser:
    try:
        user = auth.get_user(token)
    except AuthError as exc:
        logger.exception("Session lookup failed")
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if not user:
        raise HTTPException(status_code=401, detail="Session expired")
    return user


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not user.is_admin:
        raise HTTPException(
            status_code=403, detail="You do not have access to the admin dashboard"
        )
    return user


def reset_clients() -> None:
    """Drop cached clients so the next request rebuilds them from settings."""
    global _auth_client, _db_client, _photo_storage, _selfie_storage, _queue_client
    _auth_client = None
    _db_client = None
    _photo_storage = None
    _selfie_storage = None
    _queue_client = None
