"""
Uploaded file handling shared by the registration, account and explorer flows.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image as PIL_Image
from PIL import UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_PROFILE_PHOTO_BYTES = 1024 * 1024


class InvalidUpload(Exception):
    pass


@dataclass
class Upload:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def file_extension(filename: str, default: str = "jpg") -> str:
    """Extension after the last dot, or ``default`` when there is none."""
    name = (filename or "").rsplit("/", 1)[-1]
    if "." not in name:
        return default
    ext = name.rsplit(".", 1)[-1]
    return ext or default


def ensure_image(upload: Upload) -> str:
    """
    Verify that the upload decodes as an image. Returns the MIME type to store it with.
    """
    if upload.content_type and not upload.content_type.startswith("image/"):
        raise InvalidUpload(f"{upload.filename} is not an image")
    try:
        with PIL_Image.open(io.BytesIO(upload.data)) as image:
            image.verify()
            mime = PIL_Image.MIME.get(image.format or "")
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidUpload(f"{upload.filename} is not a readable image") from exc
    return upload.content_type or mime or "application/octet-stream"
