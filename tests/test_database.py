from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from usergate.database import (
    SERVER_TIMESTAMP,
    ConcurrentModificationError,
    Database,
    DocumentNotFoundError,
    StoreError,
    resolve_database_path,
)

START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def database(tmp_path: Path, clock: FakeClock) -> Database:
    db_path = tmp_path / "usergate.sqlite3"
    db = Database(db_path, clock=clock)
    db.initialize()
    return db


def test_insert_assigns_id_and_server_timestamp(database: Database) -> None:
    document = database.insert("users", {"name": "철수", "email": "a@b.com"})

    assert len(document.id) == 20
    assert document.id.isalnum()
    assert document.created_at == START
    assert document.version == 1

    stored = database.get("users", document.id)
    assert stored is not None
    assert stored.data == {"name": "철수", "email": "a@b.com"}
    assert stored.created_at == START


def test_insert_without_timestamp(database: Database) -> None:
    document = database.insert("users", {"name": "legacy"}, created_at=None)

    stored = database.get("users", document.id)
    assert stored is not None
    assert stored.created_at is None
    assert repr(SERVER_TIMESTAMP) == "SERVER_TIMESTAMP"


def test_query_matches_field_equality_in_insertion_order(database: Database, clock: FakeClock) -> None:
    first = database.insert("users", {"name": "철수", "email": "one@example.com"})
    clock.advance(seconds=1)
    database.insert("users", {"name": "영희", "email": "two@example.com"})
    clock.advance(seconds=1)
    third = database.insert("users", {"name": "철수", "email": "three@example.com"})

    matches = database.query("users", "name", "철수")
    assert [doc.id for doc in matches] == [first.id, third.id]

    limited = database.query("users", "name", "철수", limit=1)
    assert [doc.id for doc in limited] == [first.id]

    assert database.query("users", "name", "민수") == []


def test_collections_are_isolated(database: Database) -> None:
    database.insert("users", {"name": "철수"})
    database.insert("archived", {"name": "철수"})

    assert len(database.query("users", "name", "철수")) == 1
    assert len(database.list_documents("archived")) == 1


def test_query_rejects_bad_arguments(database: Database) -> None:
    with pytest.raises(ValueError):
        database.query("users", 'na"me', "x")
    with pytest.raises(ValueError):
        database.query("users", "name", "x", limit=0)


def test_update_merges_fields_and_bumps_version(database: Database, clock: FakeClock) -> None:
    document = database.insert("users", {"name": "철수", "email": "a@b.com"})
    clock.advance(seconds=30)

    updated = database.update_by_id("users", document.id, {"email": "new@b.com", "age": 30})

    assert updated.version == 2
    assert updated.created_at == START
    assert updated.data == {"name": "철수", "email": "new@b.com", "age": 30}
    stored = database.get("users", document.id)
    assert stored is not None
    assert stored.data == updated.data
    assert stored.version == 2


def test_update_with_stale_version_is_rejected(database: Database) -> None:
    document = database.insert("users", {"name": "철수", "email": "a@b.com"})
    database.update_by_id("users", document.id, {"email": "first@b.com"}, expected_version=1)

    with pytest.raises(ConcurrentModificationError):
        database.update_by_id("users", document.id, {"email": "second@b.com"}, expected_version=1)

    stored = database.get("users", document.id)
    assert stored is not None
    assert stored.data["email"] == "first@b.com"


def test_update_missing_document(database: Database) -> None:
    with pytest.raises(DocumentNotFoundError):
        database.update_by_id("users", "does-not-exist", {"email": "a@b.com"})
    with pytest.raises(ConcurrentModificationError):
        database.update_by_id("users", "does-not-exist", {"email": "a@b.com"}, expected_version=1)


def test_delete_by_id(database: Database) -> None:
    document = database.insert("users", {"name": "철수"})

    assert database.delete_by_id("users", document.id) is True
    assert database.get("users", document.id) is None
    assert database.delete_by_id("users", document.id) is False


def test_delete_with_stale_version_keeps_document(database: Database) -> None:
    document = database.insert("users", {"name": "철수"})
    database.update_by_id("users", document.id, {"email": "a@b.com"})

    with pytest.raises(ConcurrentModificationError):
        database.delete_by_id("users", document.id, expected_version=1)

    assert database.get("users", document.id) is not None


def test_now_uses_injected_clock(database: Database, clock: FakeClock) -> None:
    assert database.now() == START
    clock.advance(minutes=5)
    assert database.now() == START + timedelta(minutes=5)


def test_default_clock_is_timezone_aware(tmp_path: Path) -> None:
    database = Database(tmp_path / "clock.sqlite3")
    assert database.now().tzinfo is not None


def test_sqlite_failures_surface_as_store_error(database: Database) -> None:
    conn = sqlite3.connect(database.path)
    try:
        conn.execute("DROP TABLE documents")
        conn.commit()
    finally:
        conn.close()

    with pytest.raises(StoreError):
        database.insert("users", {"name": "철수"})


def test_resolve_database_path_prefers_env(tmp_path: Path) -> None:
    explicit = tmp_path / "custom.sqlite3"
    assert resolve_database_path(str(explicit)) == explicit.resolve()
    assert resolve_database_path(None).name == "usergate.sqlite3"
