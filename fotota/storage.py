"""
Storage abstraction for S3-compatible buckets and in-memory testing.

A listing returns the direct children of a prefix. Folders come back as
entries without an ``id``, the way the hosted storage API reports them.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class ObjectAlreadyExists(StorageError):
    pass


@dataclass
class StorageObject:
    name: str
    id: Optional[str] = None
    size: Optional[int] = None
    updated_at: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.id is not None


class StorageClient(Protocol):
    """Defines the operations the API needs from one bucket."""

    bucket: str

    def list(
        self, prefix: str = "", *, limit: int = 100, offset: int = 0
    ) -> list[StorageObject]:
        ...

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> None:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def remove(self, paths: list[str]) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _children(prefix: str, keys: list[str]) -> tuple[list[str], list[str]]:
    """Split keys under ``prefix`` into direct file names and folder names."""
    base = f"{prefix.strip('/')}/" if prefix.strip("/") else ""
    files: list[str] = []
    folders: list[str] = []
    for key in keys:
        if not key.startswith(base):
            continue
        rest = key[len(base):]
        if not rest:
            continue
        head, sep, _ = rest.partition("/")
        if sep:
            if head not in folders:
                folders.append(head)
        else:
            files.append(head)
    return files, folders


@dataclass
class InMemoryStorageClient:
    """Test double for a single bucket."""

    bucket: str = "test-bucket"
    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    fail_paths: set = field(default_factory=set)

    def list(
        self, prefix: str = "", *, limit: int = 100, offset: int = 0
    ) -> list[StorageObject]:
        files, folders = _children(prefix, list(self.stored_objects))
        base = f"{prefix.strip('/')}/" if prefix.strip("/") else ""
        entries = [StorageObject(name=name) for name in folders]
        for name in files:
            stored = self.stored_objects[base + name]
            entries.append(
                StorageObject(
                    name=name,
                    id=stored["id"],
                    size=len(stored["data"]),
                    updated_at=stored["updated_at"],
                    content_type=stored["content_type"],
                )
            )
        entries.sort(key=lambda entry: entry.name)
        return entries[offset:offset + limit]

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> None:
        if path in self.fail_paths:
            raise StorageError(f"Upload rejected for {path}")
        if not upsert and path in self.stored_objects:
            raise ObjectAlreadyExists(path)
        self.stored_objects[path] = {
            "id": uuid.uuid4().hex,
            "data": bytes(data),
            "content_type": content_type,
            "updated_at": _now_iso(),
        }

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        if path in self.fail_paths:
            raise StorageError(f"Cannot sign {path}")
        return f"{self.base_url}/{self.bucket}/{path}?op=get&expires={expires_in}"

    def remove(self, paths: list[str]) -> None:
        for path in paths:
            self.stored_objects.pop(path, None)

    def exists(self, path: str) -> bool:
        return path in self.stored_objects

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored["data"]


@dataclass
class S3StorageClient:
    """
    Client for one bucket of an S3-compatible storage endpoint.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def list(
        self, prefix: str = "", *, limit: int = 100, offset: int = 0
    ) -> list[StorageObject]:
        base = f"{prefix.strip('/')}/" if prefix.strip("/") else ""
        entries: list[StorageObject] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket, Prefix=base, Delimiter="/"
            ):
                for common in page.get("CommonPrefixes", []):
                    name = common["Prefix"][len(base):].rstrip("/")
                    if name:
                        entries.append(StorageObject(name=name))
                for item in page.get("Contents", []):
                    name = item["Key"][len(base):]
                    if not name:
                        continue
                    entries.append(
                        StorageObject(
                            name=name,
                            id=item["Key"],
                            size=item.get("Size"),
                            updated_at=item["LastModified"].isoformat()
                            if item.get("LastModified")
                            else None,
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to list {self.bucket}/{base}") from exc
        entries.sort(key=lambda entry: entry.name)
        return entries[offset:offset + limit]

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> None:
        if not upsert and self.exists(path):
            raise ObjectAlreadyExists(path)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=3600",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {self.bucket}/{path}") from exc

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign {self.bucket}/{path}") from exc

    def remove(self, paths: list[str]) -> None:
        if not paths:
            return
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": path} for path in paths], "Quiet": True},
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to remove objects from {self.bucket}") from exc
        errors = response.get("Errors") or []
        if errors:
            raise StorageError(
                f"Failed to remove {len(errors)} object(s) from {self.bucket}"
            )

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
            return True
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to stat {self.bucket}/{path}") from exc
