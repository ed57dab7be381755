"""
HTTP routes for the Fotota API.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from fotota.account import AccountService, AccountView
from fotota.auth import AuthClient, AuthError, AuthSession, AuthUser, EmailAlreadyRegistered
from fotota.dependencies import (
    get_access_token,
    get_account_service,
    get_auth_client,
    get_current_user,
    get_file_explorer,
    get_photo_service,
    get_registration_service,
    require_admin,
)
from fotota.explorer import FileExplorer, format_file_size, parent_path
from fotota.photos import (
    PhotoNotFound,
    PhotoService,
    SelfieRequired,
    count_photos,
    filter_photos,
)
from fotota.registration import NotWhitelisted, RegistrationError, RegistrationService
from fotota.schemas import (
    AccountResponse,
    ContactUpdateRequest,
    CreateFolderRequest,
    DeleteFilesRequest,
    DeleteFilesResponse,
    ExplorerItemResponse,
    ExplorerListingResponse,
    LoginRequest,
    MatchRequestResponse,
    PhotoCountsResponse,
    PhotoFeedResponse,
    PhotoResponse,
    ProfileResponse,
    RegisterInfoRequest,
    RegisterInfoResponse,
    SessionResponse,
    SignUrlResponse,
    StatusResponse,
    UploadFilesResponse,
    UserResponse,
)
from fotota.storage import ObjectAlreadyExists, StorageError
from fotota.uploads import InvalidUpload, Upload

logger = logging.getLogger(__name__)

router = APIRouter()

# Most specific first.
_ERROR_STATUS = (
    (EmailAlreadyRegistered, 409),
    (AuthError, 401),
    (NotWhitelisted, 403),
    (RegistrationError, 400),
    (InvalidUpload, 400),
    (SelfieRequired, 400),
    (PhotoNotFound, 404),
    (ObjectAlreadyExists, 409),
    (StorageError, 502),
)

_HANDLED = tuple(exc_type for exc_type, _ in _ERROR_STATUS)


def _http_error(exc: Exception) -> HTTPException:
    for exc_type, status_code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            if status_code >= 500:
                logger.exception("Backend call failed: %s", exc)
            if isinstance(exc, EmailAlreadyRegistered):
                return HTTPException(
                    status_code=status_code,
                    detail="Email already registered. Please log in.",
                )
            if isinstance(exc, PhotoNotFound):
                return HTTPException(status_code=status_code, detail="Photo not found")
            if isinstance(exc, ObjectAlreadyExists):
                return HTTPException(
                    status_code=status_code, detail=f"{exc} already exists"
                )
            return HTTPException(status_code=status_code, detail=str(exc))
    raise exc


def _user_response(user: AuthUser) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        display_name=user.display_name,
        is_admin=user.is_admin,
        home=user.home,
    )


def _session_response(session: AuthSession) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user=_user_response(session.user),
    )


def _account_response(view: AccountView) -> AccountResponse:
    profile = view.profile
    return AccountResponse(
        profile=ProfileResponse(
            user_id=profile.user_id,
            email=profile.email,
            full_name=profile.full_name,
            phone=profile.phone,
            location=profile.location,
            selfie_url=profile.selfie_url,
            profile_photo_url=profile.profile_photo_url,
        ),
        selfie_signed_url=view.selfie_url,
        profile_photo_signed_url=view.profile_photo_url,
        stats=PhotoCountsResponse(
            total=view.stats.total,
            pending=view.stats.pending,
            confirmed=view.stats.confirmed,
        ),
    )


async def _read_upload(file: UploadFile) -> Upload:
    return Upload(
        filename=file.filename or "",
        data=await file.read(),
        content_type=file.content_type,
    )


@router.get("/healthz", response_model=StatusResponse)
def healthz():
    return StatusResponse(status="ok")


# --- Auth & registration ---


@router.post("/auth/register/validate", response_model=RegisterInfoResponse)
def validate_registration(
    payload: RegisterInfoRequest,
    registration: RegistrationService = Depends(get_registration_service),
):
    """
    Step one of the wizard: required fields, password length and whitelist.
    """
    try:
        registration.validate_info(payload.name, payload.email, payload.password)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return RegisterInfoResponse(status="ok", next_step="selfie")


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
async def register(
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    selfie: Optional[UploadFile] = File(None),
    registration: RegistrationService = Depends(get_registration_service),
):
    upload = await _read_upload(selfie) if selfie is not None else None
    try:
        session = await run_in_threadpool(
            registration.register, name, email, password, upload
        )
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _session_response(session)


@router.post("/auth/login", response_model=SessionResponse)
def login(payload: LoginRequest, auth: AuthClient = Depends(get_auth_client)):
    try:
        session = auth.sign_in(payload.email.strip(), payload.password)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _session_response(session)


@router.post("/auth/logout", response_model=StatusResponse)
def logout(
    token: str = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
):
    try:
        auth.sign_out(token)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="ok")


@router.get("/auth/session", response_model=UserResponse)
def current_session(user: AuthUser = Depends(get_current_user)):
    return _user_response(user)


# --- Photos ---


@router.get("/photos", response_model=PhotoFeedResponse)
def photo_feed(
    filter: Literal["all", "pending", "confirmed"] = Query("all"),
    user: AuthUser = Depends(get_current_user),
    photos: PhotoService = Depends(get_photo_service),
):
    try:
        feed = photos.load_feed(user)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    counts = count_photos(feed)
    return PhotoFeedResponse(
        filter=filter,
        photos=[
            PhotoResponse(
                id=photo.id,
                path=photo.path,
                url=photo.url,
                thumbnail_url=photo.thumbnail_url,
                location=photo.location,
                date=photo.date,
                is_confirmed=photo.is_confirmed,
                is_pending=photo.is_pending,
                has_watermark=photo.has_watermark,
                match_score=photo.match_score,
            )
            for photo in filter_photos(feed, filter)
        ],
        counts=PhotoCountsResponse(
            total=counts.total, pending=counts.pending, confirmed=counts.confirmed
        ),
    )


@router.post("/photos/search", response_model=MatchRequestResponse, status_code=202)
def search_photos(
    user: AuthUser = Depends(get_current_user),
    photos: PhotoService = Depends(get_photo_service),
):
    try:
        request = photos.request_search(user)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return MatchRequestResponse(
        status="queued", user_id=request.user_id, reason=request.reason
    )


@router.post("/photos/{photo_id}/confirm", response_model=StatusResponse)
def confirm_photo(
    photo_id: str,
    user: AuthUser = Depends(get_current_user),
    photos: PhotoService = Depends(get_photo_service),
):
    try:
        photos.confirm(user, photo_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="ok", detail="Photo added to your collection")


@router.post("/photos/{photo_id}/reject", response_model=StatusResponse)
def reject_photo(
    photo_id: str,
    user: AuthUser = Depends(get_current_user),
    photos: PhotoService = Depends(get_photo_service),
):
    try:
        photos.reject(user, photo_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="ok", detail="The matcher will learn from your feedback")


# --- Account ---


@router.get("/account", response_model=AccountResponse)
def get_account(
    user: AuthUser = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    try:
        view = account.account_view(user)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _account_response(view)


@router.patch("/account", response_model=AccountResponse)
def update_account(
    payload: ContactUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    try:
        account.update_contact(user, payload.phone, payload.location)
        view = account.account_view(user)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _account_response(view)


@router.post("/account/selfie", response_model=AccountResponse)
async def update_selfie(
    file: UploadFile = File(...),
    user: AuthUser = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    upload = await _read_upload(file)
    try:
        view = await run_in_threadpool(account.update_selfie, user, upload)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _account_response(view)


@router.post("/account/profile-photo", response_model=AccountResponse)
async def update_profile_photo(
    file: UploadFile = File(...),
    user: AuthUser = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    upload = await _read_upload(file)
    try:
        view = await run_in_threadpool(account.update_profile_photo, user, upload)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return _account_response(view)


# --- Admin file explorer ---


@router.get("/admin/files", response_model=ExplorerListingResponse)
def list_files(
    path: str = Query("", description="Folder path inside the photo bucket"),
    q: str = Query("", description="Case-insensitive name filter"),
    admin: AuthUser = Depends(require_admin),
    explorer: FileExplorer = Depends(get_file_explorer),
):
    path = path.strip("/")
    try:
        items = explorer.list(path, q)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return ExplorerListingResponse(
        path=path,
        parent_path=parent_path(path) if path else None,
        items=[
            ExplorerItemResponse(
                name=item.name,
                path=item.path,
                type=item.type,
                size=item.size,
                size_label=format_file_size(item.size) if item.type == "file" else "",
                last_modified=item.last_modified,
            )
            for item in items
        ],
    )


@router.post("/admin/files", response_model=UploadFilesResponse, status_code=201)
async def upload_files(
    path: str = Form(""),
    files: list[UploadFile] = File(...),
    admin: AuthUser = Depends(require_admin),
    explorer: FileExplorer = Depends(get_file_explorer),
):
    uploads = [await _read_upload(file) for file in files]
    try:
        uploaded = await run_in_threadpool(explorer.upload_files, path, uploads)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return UploadFilesResponse(uploaded=uploaded)


@router.post("/admin/folders", response_model=StatusResponse, status_code=201)
def create_folder(
    payload: CreateFolderRequest,
    admin: AuthUser = Depends(require_admin),
    explorer: FileExplorer = Depends(get_file_explorer),
):
    try:
        folder = explorer.create_folder(payload.path, payload.name)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="ok", detail=folder)


@router.post("/admin/files/delete", response_model=DeleteFilesResponse)
def delete_files(
    payload: DeleteFilesRequest,
    admin: AuthUser = Depends(require_admin),
    explorer: FileExplorer = Depends(get_file_explorer),
):
    try:
        deleted = explorer.delete_files(payload.paths)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return DeleteFilesResponse(deleted=deleted)


@router.get("/admin/files/sign-url", response_model=SignUrlResponse)
def sign_file_url(
    path: str = Query(..., min_length=1, description="Object path in the photo bucket"),
    admin: AuthUser = Depends(require_admin),
    explorer: FileExplorer = Depends(get_file_explorer),
):
    try:
        url = explorer.signed_url(path)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return SignUrlResponse(url=url)
