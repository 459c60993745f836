"""Deploy-time constants for Daydrop (trip window, reference zone, unlock cutoff)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from typing import FrozenSet, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

DEFAULT_TRIP_START = date(2025, 5, 13)
DEFAULT_TRIP_END = date(2025, 6, 27)
DEFAULT_REFERENCE_TIMEZONE = "Asia/Tokyo"
DEFAULT_UNLOCK_CUTOFF_HOUR = 7
DEFAULT_VIEW_DEDUP_SECONDS = 60
DEFAULT_MEDIA_BUCKET = "daydrop-media"


@dataclass(frozen=True)
class TripConfig:
    trip_start: date = DEFAULT_TRIP_START
    trip_end: date = DEFAULT_TRIP_END
    reference_timezone: str = DEFAULT_REFERENCE_TIMEZONE
    unlock_cutoff_hour: int = DEFAULT_UNLOCK_CUTOFF_HOUR
    admin_emails: FrozenSet[str] = field(default_factory=frozenset)
    view_dedup_seconds: int = DEFAULT_VIEW_DEDUP_SECONDS
    media_bucket: str = DEFAULT_MEDIA_BUCKET


def load_trip_config(environ: Optional[Mapping[str, str]] = None, logger=None) -> TripConfig:
    """Build a TripConfig from DAYDROP_* environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ

    trip_start = _parse_date_setting(env, "DAYDROP_TRIP_START", DEFAULT_TRIP_START, logger)
    trip_end = _parse_date_setting(env, "DAYDROP_TRIP_END", DEFAULT_TRIP_END, logger)
    if trip_end < trip_start:
        _warn(
            logger,
            "DAYDROP_TRIP_END %s is before DAYDROP_TRIP_START %s. Using defaults.",
            trip_end,
            trip_start,
        )
        trip_start, trip_end = DEFAULT_TRIP_START, DEFAULT_TRIP_END

    cutoff = _parse_int_setting(env, "DAYDROP_UNLOCK_CUTOFF_HOUR", DEFAULT_UNLOCK_CUTOFF_HOUR, logger)
    if not 0 <= cutoff <= 23:
        _warn(logger, "DAYDROP_UNLOCK_CUTOFF_HOUR must be 0-23, got %s. Using default.", cutoff)
        cutoff = DEFAULT_UNLOCK_CUTOFF_HOUR

    dedup_seconds = max(
        0,
        _parse_int_setting(env, "DAYDROP_VIEW_DEDUP_SECONDS", DEFAULT_VIEW_DEDUP_SECONDS, logger),
    )

    return TripConfig(
        trip_start=trip_start,
        trip_end=trip_end,
        reference_timezone=_parse_zone_setting(env, "DAYDROP_REFERENCE_TIMEZONE", DEFAULT_REFERENCE_TIMEZONE, logger),
        unlock_cutoff_hour=cutoff,
        admin_emails=parse_admin_emails(env.get("DAYDROP_ADMIN_EMAILS")),
        view_dedup_seconds=dedup_seconds,
        media_bucket=(env.get("DAYDROP_MEDIA_BUCKET") or DEFAULT_MEDIA_BUCKET).strip(),
    )


def parse_admin_emails(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def _parse_date_setting(env: Mapping[str, str], name: str, default: date, logger) -> date:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return date_parser.isoparse(raw.strip()).date()
    except (ValueError, OverflowError):
        _warn(logger, "Invalid %s value: %r. Using default %s.", name, raw, default)
        return default


def _parse_zone_setting(env: Mapping[str, str], name: str, default: str, logger) -> str:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        _warn(logger, "Invalid %s value: %r. Using default %s.", name, raw, default)
        return default
    return raw


def _parse_int_setting(env: Mapping[str, str], name: str, default: int, logger) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        _warn(logger, "Invalid %s value: %r. Using default %s.", name, raw, default)
        return default


def _warn(logger, message: str, *args) -> None:
    if logger:
        logger.warning(message, *args)
