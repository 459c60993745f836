"""Content administration, calendar and day-detail helpers built on the repository."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Tuple

from flask import current_app

from .clock import ReferenceClock
from .config import TripConfig
from .errors import Forbidden, ValidationFailure
from .identity import Identity
from .media import FileUpload, ensure_image, ensure_video
from .repository import CHALLENGES, MESSAGES, new_record_id
from .storage import object_path
from .text import clean_text
from .unlock import UnlockPolicy, coerce_day

MESSAGE_TYPES = ("text", "image", "video")
CLOCK_KEY = "DAYDROP_CLOCK"


def get_config() -> TripConfig:
    return current_app.config["DAYDROP"]


def get_clock() -> ReferenceClock:
    """Return the app's clock; tests swap in one with a frozen now_provider."""
    clock = current_app.config.get(CLOCK_KEY)
    if clock is None:
        config = get_config()
        clock = ReferenceClock(config.reference_timezone, config.unlock_cutoff_hour)
        current_app.config[CLOCK_KEY] = clock
    return clock


def get_policy() -> UnlockPolicy:
    config = get_config()
    return UnlockPolicy(get_clock(), config.trip_start, config.trip_end)


def create_message(
    repository,
    store,
    config: TripConfig,
    *,
    text: Optional[str],
    day: Any,
    message_type: Optional[str] = "text",
    media: Optional[FileUpload] = None,
    now: Optional[datetime] = None,
) -> str:
    """Validate everything up front, upload media, then write the message."""
    cleaned = clean_text(text)
    message_day = coerce_day(day)
    message_type = (message_type or "text").strip().lower()

    if not cleaned or message_day is None:
        raise ValidationFailure("Please fill all required fields.")
    if message_type not in MESSAGE_TYPES:
        raise ValidationFailure("Message type must be text, image or video.")
    if message_type in ("image", "video") and media is None:
        raise ValidationFailure("Please upload a file for image or video message.")
    _require_trip_day(config, message_day)
    if message_type == "image":
        ensure_image(media)
    elif message_type == "video":
        ensure_video(media)

    created_at = now or datetime.now(timezone.utc)
    message_id = new_record_id(MESSAGES, message_day, created_at)

    media_url = ""
    if media is not None and message_type != "text":
        # An upload that succeeds before a failed write leaves an orphaned file.
        media_url = store.upload(
            object_path(MESSAGES, message_id, media.filename),
            media.data,
            media.content_type,
        )

    return repository.create(
        MESSAGES,
        {
            "id": message_id,
            "text": cleaned,
            "date": message_day,
            "type": message_type,
            "media_url": media_url,
            "views": [],
            "created_at": created_at,
        },
    )


def create_challenge(
    repository,
    config: TripConfig,
    *,
    prompt: Optional[str],
    day: Any,
    now: Optional[datetime] = None,
) -> str:
    cleaned = clean_text(prompt)
    challenge_day = coerce_day(day)
    if not cleaned or challenge_day is None:
        raise ValidationFailure("Please fill all required fields.")
    _require_trip_day(config, challenge_day)

    created_at = now or datetime.now(timezone.utc)
    return repository.create(
        CHALLENGES,
        {
            "id": new_record_id(CHALLENGES, challenge_day, created_at),
            "prompt": cleaned,
            "date": challenge_day,
            "responses": {},
            "created_at": created_at,
        },
    )


def list_content(repository) -> Dict[str, list]:
    return {
        "messages": [serialize_message(record) for record in repository.list_all(MESSAGES)],
        "challenges": [serialize_challenge(record) for record in repository.list_all(CHALLENGES)],
    }


def parse_month(raw_value: Optional[str], fallback: date) -> Tuple[int, int]:
    """Parse `YYYY-MM`; blank input falls back to the given day's month."""
    if raw_value is None or raw_value.strip() == "":
        return fallback.year, fallback.month
    try:
        year_text, month_text = raw_value.strip().split("-", 1)
        year, month = int(year_text), int(month_text)
    except ValueError as exc:
        raise ValidationFailure("Month must look like YYYY-MM.") from exc
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise ValidationFailure("Month must look like YYYY-MM.")
    return year, month


def calendar_month(repository, policy: UnlockPolicy, year: int, month: int) -> dict:
    message_days = {record["date"] for record in repository.list_all(MESSAGES)}
    challenge_days = {record["date"] for record in repository.list_all(CHALLENGES)}

    weeks = []
    for week in policy.month_grid(year, month):
        row = []
        for cell in week:
            day = cell["date"]
            row.append(
                {
                    **cell,
                    "date": day.isoformat(),
                    "has_message": cell["in_range"] and day in message_days,
                    "has_challenge": cell["in_range"] and day in challenge_days,
                }
            )
        weeks.append(row)

    return {
        "month": f"{year:04d}-{month:02d}",
        "reference_day": policy.clock.reference_day().isoformat(),
        "trip_start": policy.trip_start.isoformat(),
        "trip_end": policy.trip_end.isoformat(),
        "weeks": weeks,
    }


def day_detail(repository, policy: UnlockPolicy, raw_day: Any, user: Optional[Identity]) -> dict:
    day = coerce_day(raw_day)
    if day is None:
        raise ValidationFailure("Day must look like YYYY-MM-DD.")
    if not policy.is_clickable(day):
        raise Forbidden(
            "This day is still locked.",
            payload={"error": "day_locked", "day": day.isoformat()},
        )
    return {
        "date": day.isoformat(),
        "messages": [serialize_message(record) for record in repository.list_by_date(MESSAGES, day)],
        "challenges": [
            serialize_challenge(record, user) for record in repository.list_by_date(CHALLENGES, day)
        ],
    }


def serialize_message(record: dict) -> dict:
    return {
        "id": record.get("id"),
        "text": record.get("text") or "",
        "date": _iso(record.get("date")),
        "type": record.get("type") or "text",
        "media_url": record.get("media_url") or "",
        "views": list(record.get("views") or []),
        "created_at": _iso(record.get("created_at")),
    }


def serialize_challenge(record: dict, user: Optional[Identity] = None) -> dict:
    responses = dict(record.get("responses") or {})
    payload = {
        "id": record.get("id"),
        "prompt": record.get("prompt") or "",
        "date": _iso(record.get("date")),
        "responses": responses,
        "created_at": _iso(record.get("created_at")),
    }
    if user is not None:
        payload["responded"] = user.uid in responses
    return payload


def _require_trip_day(config: TripConfig, day: date) -> None:
    if not config.trip_start <= day <= config.trip_end:
        raise ValidationFailure("Date must be within the trip range.")


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)
