"""Object storage for message media and challenge response files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from flask import current_app, has_app_context
from werkzeug.utils import secure_filename

from .errors import RemoteFailure, ValidationFailure

UPLOADS_URL_PREFIX = "/uploads"


def object_path(kind: str, record_id: str, filename: str, subpath: Optional[str] = None) -> str:
    """Return `{kind}/{record_id}/{subpath}/{filename}` with a sanitised filename."""
    fname = secure_filename(filename or "")
    if not fname:
        raise ValidationFailure("Uploaded file needs a usable filename.")
    parts = [kind, secure_filename(record_id)]
    if subpath:
        parts.append(secure_filename(subpath))
    parts.append(fname)
    return "/".join(part for part in parts if part)


def get_object_store():
    """Supabase Storage when the client is configured, else the local uploads folder."""
    if has_app_context():
        client = current_app.config.get("SUPABASE_CLIENT") if current_app.config.get("USE_SUPABASE") else None
        if client:
            config = current_app.config["DAYDROP"]
            return SupabaseObjectStore(client, config.media_bucket)
        return LocalObjectStore(Path(current_app.config["UPLOAD_FOLDER"]))
    raise RuntimeError("Object store requires an application context")


class SupabaseObjectStore:
    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        storage = self.client.storage.from_(self.bucket)
        options = {"content-type": content_type or "application/octet-stream", "upsert": "true"}
        try:
            storage.upload(path, data, options)
            return storage.get_public_url(path)
        except Exception as exc:
            err_txt = str(exc)
            if exc.args and isinstance(exc.args[0], dict):
                err_txt = json.dumps(exc.args[0])
            current_app.logger.error("Supabase upload failed for %s: %s", path, err_txt)
            raise RemoteFailure(
                "Upload failed. Please try again.",
                payload={"error": "upload_failed"},
            ) from exc


class LocalObjectStore:
    """Writes under UPLOAD_FOLDER; files are served by the `/uploads/<path>` route."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValidationFailure("Upload path escapes the uploads folder.")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            current_app.logger.error("Local upload failed for %s: %s", path, exc)
            raise RemoteFailure(
                "Upload failed. Please try again.",
                payload={"error": "upload_failed"},
            ) from exc
        return f"{UPLOADS_URL_PREFIX}/{path}"
