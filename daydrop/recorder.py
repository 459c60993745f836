"""Idempotent recording of message views and challenge responses."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from flask import current_app, has_app_context

from .errors import DaydropError, NotFound, Unauthenticated, ValidationFailure
from .identity import Identity
from .media import FileUpload
from .repository import CHALLENGES, MESSAGES
from .storage import object_path
from .text import clean_text

DEFAULT_VIEW_WINDOW = timedelta(seconds=60)


def record_view(
    repository,
    message_id: str,
    user: Identity,
    *,
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_VIEW_WINDOW,
    token: Optional[str] = None,
) -> bool:
    """Append a ViewEvent unless this user viewed within ``window`` (or reused ``token``).

    Returns False when the message is missing or the store write fails; view
    recording never surfaces an error to the viewer.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    try:
        message = repository.get_by_id(MESSAGES, message_id)
    except DaydropError as exc:
        _log("warning", "Could not load message %s to record a view: %s", message_id, exc)
        return False
    if not message:
        _log("info", "View not recorded; message %s does not exist", message_id)
        return False

    views = message.get("views") or []
    if has_recent_view(views, user.uid, now, window) or (token and _token_seen(views, token)):
        return True

    event: Dict[str, Any] = {
        "user_id": user.uid,
        "display_name": user.display_name,
        "email": user.email,
        "timestamp": now.isoformat(),
    }
    if token:
        event["token"] = token
    try:
        repository.append_to_field(MESSAGES, message_id, "views", event)
    except DaydropError as exc:
        _log("warning", "Could not record view on %s: %s", message_id, exc)
        return False
    return True


def has_recent_view(views: List[dict], user_id: str, now: datetime, window: timedelta = DEFAULT_VIEW_WINDOW) -> bool:
    for view in views:
        if view.get("user_id") != user_id:
            continue
        viewed_at = parse_timestamp(view.get("timestamp"))
        if viewed_at is not None and now - viewed_at <= window:
            return True
    return False


def collapse_views(views: List[dict]) -> List[dict]:
    """Keep the most recent view per user, ordered by each user's first appearance."""
    latest: Dict[Any, dict] = {}
    for view in views:
        key = view.get("user_id")
        kept = latest.get(key)
        if kept is None or _sort_key(view) >= _sort_key(kept):
            latest[key] = view
    return list(latest.values())


def deduplicate_views(repository, message_id: str) -> List[dict]:
    """Replace a message's views with one entry per user; running it twice is a no-op."""
    message = repository.get_by_id(MESSAGES, message_id)
    if not message:
        raise NotFound(f"Message {message_id} not found")
    views = message.get("views") or []
    collapsed = collapse_views(views)
    if collapsed != views:
        repository.update_field(MESSAGES, message_id, "views", collapsed)
    return collapsed


def deduplicate_all_views(repository) -> Dict[str, int]:
    summary = {"messages": 0, "updated": 0, "removed": 0}
    for message in repository.list_all(MESSAGES):
        summary["messages"] += 1
        views = message.get("views") or []
        collapsed = collapse_views(views)
        if collapsed == views:
            continue
        repository.update_field(MESSAGES, message["id"], "views", collapsed)
        summary["updated"] += 1
        summary["removed"] += len(views) - len(collapsed)
    return summary


def record_response(
    repository,
    store,
    challenge_id: str,
    user: Optional[Identity],
    text: Optional[str] = None,
    upload: Optional[FileUpload] = None,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """Set `responses.<uid>` on the challenge; the file, if any, is uploaded first."""
    if user is None:
        raise Unauthenticated("Please sign in to respond to a challenge.")

    cleaned = clean_text(text)
    if not cleaned and upload is None:
        raise ValidationFailure("Write a response or attach a file.")

    challenge = repository.get_by_id(CHALLENGES, challenge_id)
    if not challenge:
        raise NotFound(f"Challenge {challenge_id} not found")

    file_url = ""
    if upload is not None:
        path = object_path(CHALLENGES, challenge_id, upload.filename, subpath=user.uid)
        file_url = store.upload(path, upload.data, upload.content_type)

    response = {
        "text": cleaned,
        "file_url": file_url,
        "display_name": user.display_name,
        "photo_url": user.photo_url,
        "timestamp": _as_utc(now or datetime.now(timezone.utc)).isoformat(),
    }
    repository.update_field(CHALLENGES, challenge_id, f"responses.{user.uid}", response)
    return response


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    if not value:
        return None
    try:
        return _as_utc(date_parser.isoparse(str(value)))
    except (ValueError, OverflowError):
        return None


def _sort_key(view: dict) -> datetime:
    return parse_timestamp(view.get("timestamp")) or datetime.min.replace(tzinfo=timezone.utc)


def _token_seen(views: List[dict], token: str) -> bool:
    return any(view.get("token") == token for view in views)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _log(level: str, message: str, *args) -> None:
    if not has_app_context():
        return
    getattr(current_app.logger, level)(message, *args)
