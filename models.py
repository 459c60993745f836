"""Database models for the local Daydrop content store (used when Supabase is off)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func

from extensions import db


class Message(db.Model):
    """A dated message dropped by the admin; `views` is an append-only JSON list."""

    __tablename__ = "messages"

    id = db.Column(db.String(80), primary_key=True)
    text = db.Column(db.Text, nullable=False, default="")
    date = db.Column(db.Date, index=True, nullable=False)
    type = db.Column(db.String(10), nullable=False, default="text")
    media_url = db.Column(db.String(500), nullable=True)
    views = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "date": self.date,
            "type": self.type,
            "media_url": self.media_url or "",
            "views": list(self.views or []),
            "created_at": _ensure_aware(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Message id={self.id!r} date={self.date} type={self.type!r}>"


class Challenge(db.Model):
    """A dated prompt; `responses` maps user id to that user's latest answer."""

    __tablename__ = "challenges"

    id = db.Column(db.String(80), primary_key=True)
    prompt = db.Column(db.Text, nullable=False, default="")
    date = db.Column(db.Date, index=True, nullable=False)
    responses = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "date": self.date,
            "responses": dict(self.responses or {}),
            "created_at": _ensure_aware(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Challenge id={self.id!r} date={self.date}>"


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
