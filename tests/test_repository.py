"""Tests for the SQL and Supabase content repositories."""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from daydrop.errors import NotFound, RemoteFailure, ValidationFailure
from daydrop.repository import (
    APPEND_RPC,
    CHALLENGES,
    MESSAGES,
    SET_PATH_RPC,
    SqlContentRepository,
    SupabaseContentRepository,
    get_content_repository,
    new_record_id,
)
from extensions import db

CREATED = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestNewRecordId:
    def test_pattern(self):
        assert new_record_id(MESSAGES, date(2025, 5, 13), CREATED) == "message_2025-05-13_1746100800000"
        assert new_record_id(CHALLENGES, date(2025, 5, 13), CREATED).startswith("challenge_2025-05-13_")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            new_record_id("photos", date(2025, 5, 13), CREATED)


class TestSqlContentRepository:
    """Tests for the local SQLAlchemy store."""

    def test_same_day_records_do_not_collide(self, repository):
        first = repository.create(MESSAGES, {"text": "a", "date": date(2025, 5, 13), "type": "text"})
        second = repository.create(
            MESSAGES,
            {"text": "b", "date": date(2025, 5, 13), "type": "text", "created_at": datetime(2030, 1, 1, tzinfo=timezone.utc)},
        )
        assert first != second
        assert [record["text"] for record in repository.list_by_date(MESSAGES, date(2025, 5, 13))] == ["a", "b"]

    def test_list_all_orders_by_date(self, repository):
        repository.create(CHALLENGES, {"prompt": "later", "date": date(2025, 6, 2)})
        repository.create(CHALLENGES, {"prompt": "earlier", "date": date(2025, 5, 20)})
        assert [record["prompt"] for record in repository.list_all(CHALLENGES)] == ["earlier", "later"]

    def test_list_by_date_filters(self, repository):
        repository.create(MESSAGES, {"text": "today", "date": date(2025, 6, 1), "type": "text"})
        repository.create(MESSAGES, {"text": "tomorrow", "date": date(2025, 6, 2), "type": "text"})
        assert [record["text"] for record in repository.list_by_date(MESSAGES, date(2025, 6, 1))] == ["today"]

    def test_get_by_id_missing(self, repository):
        assert repository.get_by_id(MESSAGES, "message_2025-06-01_1") is None

    def test_update_nested_key_keeps_siblings(self, repository):
        record_id = repository.create(CHALLENGES, {"prompt": "p", "date": date(2025, 6, 1), "responses": {"x": {"text": "keep"}}})
        repository.update_field(CHALLENGES, record_id, "responses.y", {"text": "new"})
        assert repository.get_by_id(CHALLENGES, record_id)["responses"] == {"x": {"text": "keep"}, "y": {"text": "new"}}

    def test_append_to_list(self, repository):
        record_id = repository.create(MESSAGES, {"text": "m", "date": date(2025, 6, 1), "type": "text", "views": [{"user_id": "a"}]})
        repository.append_to_field(MESSAGES, record_id, "views", {"user_id": "b"})
        assert repository.get_by_id(MESSAGES, record_id)["views"] == [{"user_id": "a"}, {"user_id": "b"}]

    def test_update_missing_record(self, repository):
        with pytest.raises(NotFound):
            repository.update_field(MESSAGES, "nope", "views", [])

    def test_unknown_field_is_rejected(self, repository):
        record_id = repository.create(MESSAGES, {"text": "m", "date": date(2025, 6, 1), "type": "text"})
        with pytest.raises(ValidationFailure):
            repository.update_field(MESSAGES, record_id, "id", "other")

    def test_read_errors_become_remote_failures(self, repository, monkeypatch):
        def _db_down(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("db down"))

        monkeypatch.setattr(db.session, "get", _db_down)
        with pytest.raises(RemoteFailure) as excinfo:
            repository.get_by_id(MESSAGES, "message_2025-06-01_1")
        assert excinfo.value.payload == {"error": "store_unavailable"}

    def test_locked_row_errors_become_remote_failures(self, repository, monkeypatch):
        record_id = repository.create(MESSAGES, {"text": "m", "date": date(2025, 6, 1), "type": "text"})

        def _db_down(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("db down"))

        monkeypatch.setattr(db.session, "execute", _db_down)
        with pytest.raises(RemoteFailure):
            repository.append_to_field(MESSAGES, record_id, "views", {"user_id": "a"})

    def test_created_at_is_timezone_aware(self, repository):
        record_id = repository.create(MESSAGES, {"text": "m", "date": date(2025, 6, 1), "type": "text", "created_at": CREATED})
        assert repository.get_by_id(MESSAGES, record_id)["created_at"].tzinfo is not None


def _supabase_client(rows=None):
    client = MagicMock()
    response = MagicMock()
    response.data = rows if rows is not None else []
    query = client.table.return_value
    for method in ("select", "eq", "order", "limit", "insert", "update"):
        getattr(query, method).return_value = query
    query.execute.return_value = response
    return client, query


class TestSupabaseContentRepository:
    """Tests for the Supabase store against a mocked client."""

    def test_list_by_date_filters_on_iso_date(self):
        client, query = _supabase_client(
            [{"id": "message_2025-06-01_1", "text": "hi", "date": "2025-06-01", "type": "text", "views": None, "created_at": "2025-05-01T12:00:00+00:00"}]
        )
        records = SupabaseContentRepository(client).list_by_date(MESSAGES, date(2025, 6, 1))

        client.table.assert_called_with(MESSAGES)
        query.eq.assert_called_with("date", "2025-06-01")
        assert records[0]["date"] == date(2025, 6, 1)
        assert records[0]["views"] == []
        assert records[0]["created_at"] == CREATED

    def test_create_serializes_dates(self):
        client, query = _supabase_client([{}])
        record_id = SupabaseContentRepository(client).create(
            CHALLENGES,
            {"prompt": "p", "date": date(2025, 6, 1), "responses": {}, "created_at": CREATED},
        )
        payload = query.insert.call_args[0][0]
        assert payload["id"] == record_id == "challenge_2025-06-01_1746100800000"
        assert payload["date"] == "2025-06-01"
        assert payload["created_at"] == CREATED.isoformat()

    def test_append_goes_through_rpc(self):
        client, _ = _supabase_client()
        client.rpc.return_value.execute.return_value.data = True
        SupabaseContentRepository(client).append_to_field(MESSAGES, "m1", "views", {"user_id": "a"})
        client.rpc.assert_called_once_with(
            APPEND_RPC,
            {"p_table": MESSAGES, "p_id": "m1", "p_field": "views", "p_value": {"user_id": "a"}},
        )

    def test_nested_update_goes_through_rpc(self):
        client, _ = _supabase_client()
        client.rpc.return_value.execute.return_value.data = True
        SupabaseContentRepository(client).update_field(CHALLENGES, "c1", "responses.u1", {"text": "x"})
        client.rpc.assert_called_once_with(
            SET_PATH_RPC,
            {"p_table": CHALLENGES, "p_id": "c1", "p_path": ["responses", "u1"], "p_value": {"text": "x"}},
        )

    def test_rpc_reporting_missing_row(self):
        client, _ = _supabase_client()
        client.rpc.return_value.execute.return_value.data = False
        with pytest.raises(NotFound):
            SupabaseContentRepository(client).append_to_field(MESSAGES, "m1", "views", {})

    def test_top_level_update_missing_row(self):
        client, query = _supabase_client([])
        with pytest.raises(NotFound):
            SupabaseContentRepository(client).update_field(MESSAGES, "m1", "views", [])
        query.update.assert_called_with({"views": []})

    def test_client_errors_become_remote_failures(self, app_ctx):
        client, query = _supabase_client()
        query.execute.side_effect = RuntimeError("connection reset")
        with pytest.raises(RemoteFailure):
            SupabaseContentRepository(client).list_all(MESSAGES)


class TestGetContentRepository:
    def test_sql_when_supabase_is_off(self, app_ctx):
        assert isinstance(get_content_repository(), SqlContentRepository)

    def test_supabase_when_enabled(self, app_ctx):
        app_ctx.config["USE_SUPABASE"] = True
        app_ctx.config["SUPABASE_CLIENT"] = MagicMock()
        assert isinstance(get_content_repository(), SupabaseContentRepository)
