"""Content repository for dated messages and challenges (Supabase, with a SQL fallback)."""

from __future__ import annotations

import copy
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified

from extensions import db
from models import Challenge, Message

from .errors import NotFound, RemoteFailure, ValidationFailure

MESSAGES = "messages"
CHALLENGES = "challenges"
KINDS = (MESSAGES, CHALLENGES)

KIND_PREFIXES = {MESSAGES: "message", CHALLENGES: "challenge"}

# Supabase Postgres functions doing per-document atomic JSON updates.
APPEND_RPC = "daydrop_append_json"
SET_PATH_RPC = "daydrop_set_json_path"

_MODELS = {MESSAGES: Message, CHALLENGES: Challenge}
_WRITABLE_FIELDS = {
    MESSAGES: {"text", "date", "type", "media_url", "views"},
    CHALLENGES: {"prompt", "date", "responses"},
}


def new_record_id(kind: str, day: date, created_at: Optional[datetime] = None) -> str:
    """`{kind}_{ISO-date}_{creation-ms}` so several records can share a day."""
    _check_kind(kind)
    moment = created_at or datetime.now(timezone.utc)
    stamp = int(moment.timestamp() * 1000)
    return f"{KIND_PREFIXES[kind]}_{day.isoformat()}_{stamp}"


def get_content_repository():
    """Return the Supabase-backed repository when enabled, else the SQL one."""
    client = _get_supabase_client()
    if client:
        return SupabaseContentRepository(client)
    return SqlContentRepository()


class SqlContentRepository:
    """SQLAlchemy store; JSON field updates run inside one locked transaction."""

    def list_all(self, kind: str) -> List[dict]:
        model = _model_for(kind)
        rows = self._read(
            lambda: model.query.order_by(model.date.asc(), model.created_at.asc()).all(),
            f"listing {kind}",
        )
        return [row.to_record() for row in rows]

    def list_by_date(self, kind: str, day: date) -> List[dict]:
        model = _model_for(kind)
        rows = self._read(
            lambda: model.query.filter_by(date=day).order_by(model.created_at.asc()).all(),
            f"listing {kind} for {day.isoformat()}",
        )
        return [row.to_record() for row in rows]

    def get_by_id(self, kind: str, record_id: str) -> Optional[dict]:
        model = _model_for(kind)
        row = self._read(lambda: db.session.get(model, record_id), f"loading {record_id}")
        return row.to_record() if row else None

    def create(self, kind: str, record: dict) -> str:
        model = _model_for(kind)
        fields = {key: value for key, value in record.items() if key in _WRITABLE_FIELDS[kind]}
        created_at = record.get("created_at") or datetime.now(timezone.utc)
        record_id = record.get("id") or new_record_id(kind, fields["date"], created_at)
        row = model(id=record_id, created_at=created_at, **fields)
        db.session.add(row)
        self._commit(f"creating {KIND_PREFIXES[kind]}")
        return record_id

    def update_field(self, kind: str, record_id: str, field_path: str, value: Any) -> None:
        top, rest = _split_path(kind, field_path)
        row = self._locked_row(kind, record_id)
        if not rest:
            setattr(row, top, value)
        else:
            current = copy.deepcopy(getattr(row, top) or {})
            _assign_path(current, rest, value)
            setattr(row, top, current)
        flag_modified(row, top)
        self._commit(f"updating {field_path}")

    def append_to_field(self, kind: str, record_id: str, field_path: str, value: Any) -> None:
        top, rest = _split_path(kind, field_path)
        if rest:
            raise ValidationFailure(f"Cannot append to nested field {field_path!r}")
        row = self._locked_row(kind, record_id)
        items = list(getattr(row, top) or [])
        items.append(value)
        setattr(row, top, items)
        flag_modified(row, top)
        self._commit(f"appending to {field_path}")

    def _locked_row(self, kind: str, record_id: str):
        model = _model_for(kind)
        stmt = select(model).where(model.id == record_id).with_for_update()
        row = self._read(lambda: db.session.execute(stmt).scalar_one_or_none(), f"locking {record_id}")
        if row is None:
            raise NotFound(f"{KIND_PREFIXES[kind].title()} {record_id} not found")
        return row

    def _read(self, query, action: str):
        try:
            return query()
        except SQLAlchemyError as exc:
            db.session.rollback()
            _log_exception("Daydrop SQL error while %s: %s", action, exc)
            raise RemoteFailure(
                "The content store is unavailable right now. Please try again.",
                payload={"error": "store_unavailable"},
            ) from exc

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            _log_exception("Daydrop SQL error while %s: %s", action, exc)
            raise RemoteFailure("Could not save changes. Please try again.") from exc


class SupabaseContentRepository:
    """Supabase tables `messages` / `challenges`; nested writes go through RPCs."""

    def __init__(self, client):
        self.client = client

    def list_all(self, kind: str) -> List[dict]:
        _check_kind(kind)
        query = (
            self.client.table(kind)
            .select("*")
            .order("date", desc=False)
            .order("created_at", desc=False)
        )
        rows = self._execute(query, f"listing {kind}")
        return [_normalize_row(kind, row) for row in rows]

    def list_by_date(self, kind: str, day: date) -> List[dict]:
        _check_kind(kind)
        query = (
            self.client.table(kind)
            .select("*")
            .eq("date", day.isoformat())
            .order("created_at", desc=False)
        )
        rows = self._execute(query, f"listing {kind} for {day.isoformat()}")
        return [_normalize_row(kind, row) for row in rows]

    def get_by_id(self, kind: str, record_id: str) -> Optional[dict]:
        _check_kind(kind)
        query = self.client.table(kind).select("*").eq("id", record_id).limit(1)
        rows = self._execute(query, f"loading {record_id}")
        return _normalize_row(kind, rows[0]) if rows else None

    def create(self, kind: str, record: dict) -> str:
        _check_kind(kind)
        created_at = record.get("created_at") or datetime.now(timezone.utc)
        fields = {key: value for key, value in record.items() if key in _WRITABLE_FIELDS[kind]}
        record_id = record.get("id") or new_record_id(kind, fields["date"], created_at)
        payload = {
            **fields,
            "id": record_id,
            "date": fields["date"].isoformat(),
            "created_at": created_at.isoformat(),
        }
        self._execute(self.client.table(kind).insert(payload), f"creating {record_id}")
        return record_id

    def update_field(self, kind: str, record_id: str, field_path: str, value: Any) -> None:
        top, rest = _split_path(kind, field_path)
        if not rest:
            if isinstance(value, date):
                value = value.isoformat()
            query = self.client.table(kind).update({top: value}).eq("id", record_id)
            rows = self._execute(query, f"updating {field_path} on {record_id}")
            if not rows:
                raise NotFound(f"{KIND_PREFIXES[kind].title()} {record_id} not found")
            return

        params = {
            "p_table": kind,
            "p_id": record_id,
            "p_path": [top, *rest],
            "p_value": value,
        }
        found = self._execute(self.client.rpc(SET_PATH_RPC, params), f"setting {field_path} on {record_id}")
        if found is False:
            raise NotFound(f"{KIND_PREFIXES[kind].title()} {record_id} not found")

    def append_to_field(self, kind: str, record_id: str, field_path: str, value: Any) -> None:
        top, rest = _split_path(kind, field_path)
        if rest:
            raise ValidationFailure(f"Cannot append to nested field {field_path!r}")
        params = {"p_table": kind, "p_id": record_id, "p_field": top, "p_value": value}
        found = self._execute(self.client.rpc(APPEND_RPC, params), f"appending to {field_path} on {record_id}")
        if found is False:
            raise NotFound(f"{KIND_PREFIXES[kind].title()} {record_id} not found")

    def _execute(self, query, action: str):
        try:
            resp = query.execute()
        except Exception as exc:
            _log_exception("Daydrop Supabase error while %s: %s", action, exc)
            raise RemoteFailure(
                "The content store is unavailable right now. Please try again.",
                payload={"error": "store_unavailable"},
            ) from exc
        data = getattr(resp, "data", None)
        return [] if data is None else data


def _normalize_row(kind: str, row: Dict[str, Any]) -> dict:
    record = dict(row)
    record["date"] = _parse_date(row.get("date"))
    record["created_at"] = _parse_datetime(row.get("created_at"))
    if kind == MESSAGES:
        record["views"] = list(row.get("views") or [])
        record["media_url"] = row.get("media_url") or ""
    else:
        record["responses"] = dict(row.get("responses") or {})
    return record


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.isoparse(str(value)).date()
    except (ValueError, OverflowError):
        return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _split_path(kind: str, field_path: str):
    _check_kind(kind)
    parts = [part for part in (field_path or "").split(".") if part]
    if not parts or parts[0] not in _WRITABLE_FIELDS[kind]:
        raise ValidationFailure(f"Field {field_path!r} cannot be updated on {kind}")
    return parts[0], parts[1:]


def _assign_path(container: dict, path: List[str], value: Any) -> None:
    node = container
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


def _model_for(kind: str):
    _check_kind(kind)
    return _MODELS[kind]


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValueError(f"Unknown content kind: {kind!r}")


def _get_supabase_client():
    if not has_app_context():
        return None
    if not current_app.config.get("USE_SUPABASE"):
        return None
    client = current_app.config.get("SUPABASE_CLIENT")
    return client if client else None


def _log_exception(message: str, *args) -> None:
    if not has_app_context():
        return
    current_app.logger.exception(message, *args)
