"""SQLite-backed document store for user records."""
from __future__ import annotations

import json
import secrets
import sqlite3
import string
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from .models import Document

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20


class StoreError(RuntimeError):
    """Raised when the underlying database fails to complete an operation."""


class DocumentNotFoundError(LookupError):
    """Raised when a document addressed by id does not exist."""


class ConcurrentModificationError(RuntimeError):
    """Raised when a document changed after the caller last read it."""


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()
"""Placeholder replaced by the database clock reading at write time."""

Timestamp = Union[datetime, _ServerTimestamp, None]


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "usergate.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _generate_document_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def _json_path(field: str) -> str:
    if not field or '"' in field:
        raise ValueError(f"Unsupported field name {field!r}")
    return f'$."{field}"'


class Database:
    """Simple wrapper around SQLite exposing a document-collection API.

    Documents are JSON objects grouped by collection. The database owns the
    clock used for creation timestamps so that callers never supply their
    own notion of "now" for stored data.
    """

    def __init__(self, path: Path, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._clock = clock or _current_timestamp

    @property
    def path(self) -> Path:
        return self._path

    def now(self) -> datetime:
        """Return the current time according to the database clock."""

        return self._clock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open database at {self._path}: {exc}") from exc
        try:
            with conn:
                if immediate:
                    conn.execute("BEGIN IMMEDIATE")
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT,
                    updated_at TEXT,
                    version INTEGER NOT NULL DEFAULT 1
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
                """
            )

    # ------------------------------------------------------------------
    # Document operations
    # ------------------------------------------------------------------
    def insert(
        self,
        collection: str,
        fields: Mapping[str, Any],
        *,
        created_at: Timestamp = SERVER_TIMESTAMP,
    ) -> Document:
        """Store a new document and return it with its generated id.

        ``created_at`` defaults to the database clock. Passing ``None`` stores a
        document without a creation timestamp, as found in imported data.
        """

        if isinstance(created_at, _ServerTimestamp):
            stamp: Optional[datetime] = self.now()
        else:
            stamp = created_at

        data = dict(fields)
        document_id = _generate_document_id()
        serialized_stamp = _serialize_datetime(stamp) if stamp is not None else None

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents (id, collection, data, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, 1)
                """,
                (
                    document_id,
                    collection,
                    json.dumps(data, ensure_ascii=False),
                    serialized_stamp,
                    serialized_stamp,
                ),
            )

        return Document(id=document_id, data=data, created_at=stamp, version=1)

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND id = ?",
                (collection, document_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def query(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return documents whose ``field`` equals ``value`` in insertion order."""

        sql = (
            "SELECT * FROM documents WHERE collection = ? AND json_extract(data, ?) = ? "
            "ORDER BY rowid"
        )
        params: List[Any] = [collection, _json_path(field), value]
        if limit is not None:
            if limit < 1:
                raise ValueError("limit must be a positive integer")
            sql += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def list_documents(self, collection: str) -> List[Document]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def update_by_id(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Document:
        """Merge ``fields`` into an existing document.

        When ``expected_version`` is given the write only happens if the stored
        document still carries that version.
        """

        with self._transaction(immediate=True) as conn:
            row = self._fetch_for_write(conn, collection, document_id, expected_version)
            data = json.loads(row["data"])
            data.update(fields)
            conn.execute(
                """
                UPDATE documents
                   SET data = ?, updated_at = ?, version = version + 1
                 WHERE collection = ? AND id = ?
                """,
                (
                    json.dumps(data, ensure_ascii=False),
                    _serialize_datetime(self.now()),
                    collection,
                    document_id,
                ),
            )

        return Document(
            id=document_id,
            data=data,
            created_at=_parse_datetime(row["created_at"]),
            version=int(row["version"]) + 1,
        )

    def delete_by_id(
        self,
        collection: str,
        document_id: str,
        *,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Remove a document. Returns ``False`` when it did not exist."""

        with self._transaction(immediate=True) as conn:
            if expected_version is not None:
                self._fetch_for_write(conn, collection, document_id, expected_version)
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, document_id),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fetch_for_write(
        self,
        conn: sqlite3.Connection,
        collection: str,
        document_id: str,
        expected_version: Optional[int],
    ) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM documents WHERE collection = ? AND id = ?",
            (collection, document_id),
        ).fetchone()
        if row is None:
            if expected_version is not None:
                raise ConcurrentModificationError(
                    f"Document {document_id} was removed by another writer"
                )
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if expected_version is not None and int(row["version"]) != expected_version:
            raise ConcurrentModificationError(
                f"Document {document_id} is at version {row['version']}, expected {expected_version}"
            )
        return row

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        data: Dict[str, Any] = json.loads(row["data"])
        return Document(
            id=str(row["id"]),
            data=data,
            created_at=_parse_datetime(row["created_at"]),
            version=int(row["version"]),
        )


__all__ = [
    "ConcurrentModificationError",
    "Database",
    "DocumentNotFoundError",
    "SERVER_TIMESTAMP",
    "StoreError",
    "resolve_database_path",
]
