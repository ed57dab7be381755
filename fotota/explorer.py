"""
Admin file explorer over the photo bucket.

Object storage has no real folders. A listing is turned into explorer items
by convention: a name containing "/" contributes its first segment as a
folder, a name without "." is a folder, everything else is a file.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from fotota.storage import StorageClient, StorageObject
from fotota.uploads import InvalidUpload, Upload

logger = logging.getLogger(__name__)

LIST_LIMIT = 100
ALLOWED_UPLOAD_EXTENSIONS = (".jpg", ".png")
FOLDER_PLACEHOLDER = ".keep"
SIZE_UNITS = ("Bytes", "KB", "MB", "GB")
MAX_UPLOAD_WORKERS = 8


@dataclass
class ExplorerItem:
    name: str
    path: str
    type: Literal["file", "folder"]
    size: Optional[int] = None
    last_modified: Optional[str] = None


def join_path(path: str, name: str) -> str:
    return f"{path}/{name}" if path else name


def parent_path(path: str) -> str:
    if not path:
        return ""
    parts = path.split("/")
    parts.pop()
    return "/".join(parts)


def synthesize_listing(path: str, objects: Iterable[StorageObject]) -> list[ExplorerItem]:
    items: list[ExplorerItem] = []
    folders: list[str] = []
    for obj in objects:
        if "/" in obj.name:
            folder = obj.name.split("/")[0]
            if folder not in folders:
                folders.append(folder)
        elif "." not in obj.name:
            if obj.name not in folders:
                folders.append(obj.name)
        else:
            items.append(
                ExplorerItem(
                    name=obj.name,
                    path=join_path(path, obj.name),
                    type="file",
                    size=obj.size,
                    last_modified=obj.updated_at,
                )
            )
    for folder in folders:
        items.append(ExplorerItem(name=folder, path=join_path(path, folder), type="folder"))
    return items


def search(items: Iterable[ExplorerItem], term: str) -> list[ExplorerItem]:
    needle = (term or "").lower()
    return [item for item in items if needle in item.name.lower()]


def format_file_size(size: Optional[int]) -> str:
    if not size:
        return ""
    index = 0
    while size >= math.pow(1024, index + 1) and index < len(SIZE_UNITS) - 1:
        index += 1
    return f"{size / math.pow(1024, index):.2f} {SIZE_UNITS[index]}"


def _has_allowed_extension(filename: str) -> bool:
    lowered = filename.lower()
    dot = lowered.rfind(".")
    return dot != -1 and lowered[dot:] in ALLOWED_UPLOAD_EXTENSIONS


class FileExplorer:
    """Explorer operations against a single bucket."""

    def __init__(self, storage: StorageClient, *, signed_url_ttl: int = 3600):
        self.storage = storage
        self.signed_url_ttl = signed_url_ttl

    def list(self, path: str = "", term: str = "") -> list[ExplorerItem]:
        path = path.strip("/")
        objects = self.storage.list(path, limit=LIST_LIMIT, offset=0)
        items = synthesize_listing(path, objects)
        return search(items, term) if term else items

    def upload_files(self, path: str, files: list[Upload]) -> list[str]:
        if not files:
            return []
        for upload in files:
            if not _has_allowed_extension(upload.filename):
                raise InvalidUpload(f"File {upload.filename} must be .jpg or .png")

        path = path.strip("/")

        def _upload(upload: Upload) -> str:
            file_path = join_path(path, upload.filename)
            self.storage.upload(
                file_path,
                upload.data,
                content_type=upload.content_type or "application/octet-stream",
                upsert=False,
            )
            return file_path

        with ThreadPoolExecutor(max_workers=min(MAX_UPLOAD_WORKERS, len(files))) as pool:
            uploaded = list(pool.map(_upload, files))
        logger.info("Uploaded %d file(s) to %s/%s", len(uploaded), self.storage.bucket, path)
        return uploaded

    def create_folder(self, path: str, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidUpload("Enter a valid folder name")
        placeholder = join_path(join_path(path.strip("/"), name), FOLDER_PLACEHOLDER)
        self.storage.upload(placeholder, b"", content_type="text/plain", upsert=False)
        logger.info("Created folder %s in %s", placeholder, self.storage.bucket)
        return join_path(path.strip("/"), name)

    def delete_files(self, paths: list[str]) -> int:
        if not paths:
            return 0
        self.storage.remove(list(paths))
        logger.info("Removed %d object(s) from %s", len(paths), self.storage.bucket)
        return len(paths)

    def signed_url(self, path: str) -> str:
        return self.storage.presign_get(path, expires_in=self.signed_url_ttl)
