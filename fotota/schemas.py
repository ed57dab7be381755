"""
Pydantic schemas for the Fotota API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class RegisterInfoRequest(BaseModel):
    name: str = Field("", max_length=200)
    email: str = Field("", max_length=320)
    password: str = Field("", max_length=200)


class RegisterInfoResponse(BaseModel):
    status: Literal["ok"]
    next_step: Literal["selfie"]


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=200)


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    display_name: str
    is_admin: bool
    home: str


class SessionResponse(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: UserResponse


class StatusResponse(BaseModel):
    status: Literal["ok"]
    detail: Optional[str] = None


class PhotoResponse(BaseModel):
    id: str
    path: str
    url: str
    thumbnail_url: str
    location: Optional[str] = None
    date: Optional[str] = None
    is_confirmed: bool
    is_pending: bool
    has_watermark: bool
    match_score: Optional[int] = None


class PhotoCountsResponse(BaseModel):
    total: int
    pending: int
    confirmed: int


class PhotoFeedResponse(BaseModel):
    filter: Literal["all", "pending", "confirmed"]
    photos: list[PhotoResponse]
    counts: PhotoCountsResponse


class MatchRequestResponse(BaseModel):
    status: Literal["queued"]
    user_id: str
    reason: str


class ProfileResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    selfie_url: Optional[str] = None
    profile_photo_url: Optional[str] = None


class AccountResponse(BaseModel):
    profile: ProfileResponse
    selfie_signed_url: Optional[str] = None
    profile_photo_signed_url: Optional[str] = None
    stats: PhotoCountsResponse


class ContactUpdateRequest(BaseModel):
    phone: Optional[str] = Field(None, max_length=64)
    location: Optional[str] = Field(None, max_length=200)


class ExplorerItemResponse(BaseModel):
    name: str
    path: str
    type: Literal["file", "folder"]
    size: Optional[int] = None
    size_label: str = ""
    last_modified: Optional[str] = None


class ExplorerListingResponse(BaseModel):
    path: str
    parent_path: Optional[str] = None
    items: list[ExplorerItemResponse]


class CreateFolderRequest(BaseModel):
    path: str = ""
    name: str = Field("", max_length=200)


class DeleteFilesRequest(BaseModel):
    paths: list[str] = Field(default_factory=list)


class UploadFilesResponse(BaseModel):
    uploaded: list[str]


class DeleteFilesResponse(BaseModel):
    deleted: int


class SignUrlResponse(BaseModel):
    url: str
