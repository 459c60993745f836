"""Uploaded file wrapper and media type checks for message media and response files."""

from __future__ import annotations

import io
import mimetypes
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import ValidationFailure

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "heic", "heif"}
ALLOWED_VIDEO_EXTENSIONS = {"mp4", "mov", "m4v", "webm"}


@dataclass(frozen=True)
class FileUpload:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return ""
        return self.filename.rsplit(".", 1)[1].lower()

    @classmethod
    def from_file_storage(cls, file_storage) -> Optional["FileUpload"]:
        """Wrap a werkzeug FileStorage; returns None when no file was chosen."""
        if not file_storage or not getattr(file_storage, "filename", ""):
            return None
        file_storage.stream.seek(0)
        data = file_storage.read()
        content_type = (
            file_storage.mimetype
            or mimetypes.guess_type(file_storage.filename)[0]
            or "application/octet-stream"
        )
        return cls(filename=file_storage.filename, data=data, content_type=content_type)


def ensure_image(upload: FileUpload) -> None:
    if upload.extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationFailure("Image messages need a jpg, png, webp, gif or heic file.")
    if upload.extension in {"heic", "heif"}:
        # Pillow cannot decode HEIC without a plugin.
        return
    try:
        with Image.open(io.BytesIO(upload.data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationFailure("Uploaded file is not a readable image.") from exc


def ensure_video(upload: FileUpload) -> None:
    if upload.extension in ALLOWED_VIDEO_EXTENSIONS or upload.content_type.startswith("video/"):
        return
    raise ValidationFailure("Video messages need an mp4, mov or webm file.")
