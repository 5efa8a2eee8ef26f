"""Hierarchical document store used by every admin operation.

Documents live at slash separated paths (``collection/doc/sub-collection/doc``).
Two backends share the same contract: an in-memory store for tests and local
runs, and a SQLAlchemy backed store that keeps each document as one JSON row.
Neither backend enforces field uniqueness; callers that need a natural key
check it with :meth:`DocumentStore.query` before writing.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Generator, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Protocol
from uuid import uuid4

from alembic import command
from alembic.config import Config
from sqlalchemy import ColumnElement, Engine, Select, func, select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, sessionmaker

from attendance_admin.db import SessionLocal
from attendance_admin.errors import BatchCommitError, DocumentNotFoundError
from attendance_admin.models import StoredDocument
from attendance_admin.settings import get_settings

logger = logging.getLogger("attendance_admin.store")

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def join_path(*segments: str) -> str:
    parts = [str(segment).strip("/") for segment in segments]
    if not parts or any(not part for part in parts):
        raise ValueError("Path segments must be non-empty.")
    return "/".join(parts)


def split_document_path(path: str) -> tuple[str, str]:
    parts = path.strip("/").split("/")
    if len(parts) < 2 or len(parts) % 2 != 0 or any(not part for part in parts):
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


def _new_document_id() -> str:
    return uuid4().hex[:20]


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data or {})

    def get(self, field: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field, default)


@dataclass(frozen=True)
class BatchOperation:
    kind: Literal["set", "update", "delete"]
    path: str
    data: dict[str, Any] | None = None
    merge: bool = False


class WriteBatch:
    """Collects writes and applies them all-or-nothing on :meth:`commit`."""

    def __init__(self, apply: Callable[[tuple[BatchOperation, ...]], None]) -> None:
        self._apply = apply
        self._operations: list[BatchOperation] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> WriteBatch:
        split_document_path(path)
        self._operations.append(BatchOperation("set", path, dict(data), merge))
        return self

    def update(self, path: str, data: Mapping[str, Any]) -> WriteBatch:
        split_document_path(path)
        self._operations.append(BatchOperation("update", path, dict(data)))
        return self

    def delete(self, path: str) -> WriteBatch:
        split_document_path(path)
        self._operations.append(BatchOperation("delete", path))
        return self

    def commit(self) -> int:
        if self._committed:
            raise RuntimeError("Batch already committed.")
        operations = tuple(self._operations)
        self._apply(operations)
        self._committed = True
        return len(operations)


class DocumentStore(Protocol):
    def get(self, path: str) -> DocumentSnapshot: ...

    def query(
        self,
        collection: str,
        *,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None: ...

    def update(self, path: str, data: Mapping[str, Any]) -> None: ...

    def delete(self, path: str) -> None: ...

    def batch(self) -> WriteBatch: ...


def _apply_fields(
    data: Mapping[str, Any],
    *,
    base: Mapping[str, Any] | None,
    now: datetime,
) -> dict[str, Any]:
    merged: dict[str, Any] = copy.deepcopy(dict(base)) if base else {}
    for key, value in data.items():
        if value is DELETE_FIELD:
            merged.pop(key, None)
        elif value is SERVER_TIMESTAMP:
            merged[key] = now
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _order_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float, Decimal)):
        return (1, float(value))
    if isinstance(value, datetime):
        return (2, value.timestamp())
    if isinstance(value, str):
        return (3, value)
    return (4, str(value))


def _select(
    snapshots: Iterable[DocumentSnapshot],
    *,
    where: tuple[str, Any] | None,
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[DocumentSnapshot]:
    items = list(snapshots)
    if where is not None:
        field, expected = where
        items = [item for item in items if field in (item.data or {}) and item.get(field) == expected]
    if order_by is not None:
        # documents without the ordering field are left out of ordered scans
        items = [item for item in items if item.get(order_by) is not None]
        items.sort(key=lambda item: _order_key(item.get(order_by)), reverse=descending)
    if limit is not None:
        items = items[: max(0, limit)]
    return items


class InMemoryDocumentStore:
    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._clock = clock or _utcnow

    def _snapshot(self, collection: str, document_id: str) -> DocumentSnapshot:
        data = self._collections.get(collection, {}).get(document_id)
        return DocumentSnapshot(
            path=join_path(collection, document_id),
            id=document_id,
            data=copy.deepcopy(data) if data is not None else None,
        )

    def get(self, path: str) -> DocumentSnapshot:
        collection, document_id = split_document_path(path)
        return self._snapshot(collection, document_id)

    def query(
        self,
        collection: str,
        *,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        documents = self._collections.get(collection.strip("/"), {})
        snapshots = [self._snapshot(collection.strip("/"), doc_id) for doc_id in documents]
        return _select(snapshots, where=where, order_by=order_by, descending=descending, limit=limit)

    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        document_id = _new_document_id()
        self.set(join_path(collection, document_id), data)
        return document_id

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        collection, document_id = split_document_path(path)
        documents = self._collections.setdefault(collection, {})
        base = documents.get(document_id) if merge else None
        documents[document_id] = _apply_fields(data, base=base, now=self._clock())

    def update(self, path: str, data: Mapping[str, Any]) -> None:
        collection, document_id = split_document_path(path)
        documents = self._collections.get(collection, {})
        if document_id not in documents:
            raise DocumentNotFoundError(path)
        documents[document_id] = _apply_fields(data, base=documents[document_id], now=self._clock())

    def delete(self, path: str) -> None:
        collection, document_id = split_document_path(path)
        self._collections.get(collection, {}).pop(document_id, None)

    def batch(self) -> WriteBatch:
        return WriteBatch(self._apply_batch)

    def _apply_batch(self, operations: tuple[BatchOperation, ...]) -> None:
        previous = copy.deepcopy(self._collections)
        try:
            for operation in operations:
                if operation.kind == "set":
                    self.set(operation.path, operation.data or {}, merge=operation.merge)
                elif operation.kind == "update":
                    self.update(operation.path, operation.data or {})
                else:
                    self.delete(operation.path)
        except Exception as exc:
            self._collections = previous
            raise BatchCommitError(f"Batch of {len(operations)} writes was rolled back: {exc}") from exc


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
        delta = aware - datetime(1970, 1, 1, tzinfo=timezone.utc)
        seconds = delta.days * 86400 + delta.seconds
        return {"seconds": seconds, "nanoseconds": delta.microseconds * 1000}
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_value(item) for item in value]
    return value


def _json_path(field: str) -> str:
    return '$."{}"'.format(field.replace('"', '\\"'))


def _sqlite_json_type(value: Any) -> tuple[str, ...]:
    if isinstance(value, bool):
        return ("true",) if value else ("false",)
    if isinstance(value, (int, float)):
        return ("integer", "real")
    return ("text",)


def _field_equals(dialect: str, field: str, value: Any) -> ColumnElement[bool] | None:
    """SQL predicate for ``data[field] == value``; ``None`` when it must run in Python.

    Only scalar values are pushed down. The JSON type is part of the match so
    ``"1000"`` and ``1000`` stay different values, as in the in-memory store.
    """
    if value is None or not isinstance(value, (str, bool, int, float)):
        return None
    if dialect == "postgresql":
        return type_coerce(StoredDocument.data, JSONB).contains({field: value})
    if dialect == "sqlite":
        path = _json_path(field)
        json_type = func.json_type(StoredDocument.data, path)
        if isinstance(value, bool):
            return json_type == _sqlite_json_type(value)[0]
        return json_type.in_(_sqlite_json_type(value)) & (func.json_extract(StoredDocument.data, path) == value)
    return None


def _field_order(dialect: str, field: str) -> tuple[ColumnElement[Any], ColumnElement[bool]] | None:
    """Sort expression for ``data[field]`` and the filter that drops documents without it."""
    if dialect == "postgresql":
        value = type_coerce(StoredDocument.data, JSONB)[field]
        return value, func.jsonb_typeof(value) != "null"
    if dialect == "sqlite":
        value = func.json_extract(StoredDocument.data, _json_path(field))
        return value, value.is_not(None)
    return None


class SqlDocumentStore:
    """Documents as JSON rows; timestamps are stored as ``{seconds, nanoseconds}``."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    @staticmethod
    def _row(db: Session, collection: str, document_id: str) -> StoredDocument | None:
        return db.scalar(
            select(StoredDocument).where(
                StoredDocument.collection_path == collection,
                StoredDocument.document_id == document_id,
            )
        )

    @staticmethod
    def _to_snapshot(row: StoredDocument) -> DocumentSnapshot:
        return DocumentSnapshot(
            path=join_path(row.collection_path, row.document_id),
            id=row.document_id,
            data=copy.deepcopy(row.data or {}),
        )

    def get(self, path: str) -> DocumentSnapshot:
        collection, document_id = split_document_path(path)
        with self._session_factory() as db:
            row = self._row(db, collection, document_id)
            if row is None:
                return DocumentSnapshot(path=join_path(collection, document_id), id=document_id, data=None)
            return self._to_snapshot(row)

    def query(
        self,
        collection: str,
        *,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        if where is not None:
            where = (where[0], _to_json_value(where[1]))
        statement = select(StoredDocument).where(StoredDocument.collection_path == collection.strip("/"))
        with self._session_factory() as db:
            pushed = self._push_down(
                statement,
                db.get_bind().dialect.name,
                where=where,
                order_by=order_by,
                descending=descending,
                limit=limit,
            )
            if pushed is not None:
                return [self._to_snapshot(row) for row in db.scalars(pushed).all()]

            logger.debug(
                "document_query_scanned",
                extra={"collection": collection, "where_field": where[0] if where else None},
            )
            rows = db.scalars(statement.order_by(StoredDocument.id)).all()
            snapshots = [self._to_snapshot(row) for row in rows]
        return _select(snapshots, where=where, order_by=order_by, descending=descending, limit=limit)

    @staticmethod
    def _push_down(
        statement: Select[tuple[StoredDocument]],
        dialect: str,
        *,
        where: tuple[str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> Select[tuple[StoredDocument]] | None:
        if where is not None:
            condition = _field_equals(dialect, *where)
            if condition is None:
                return None
            statement = statement.where(condition)
        if order_by is not None:
            ordering = _field_order(dialect, order_by)
            if ordering is None:
                return None
            value, present = ordering
            statement = statement.where(present).order_by(value.desc() if descending else value.asc())
        statement = statement.order_by(StoredDocument.id)
        if limit is not None:
            statement = statement.limit(max(0, limit))
        return statement

    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        document_id = _new_document_id()
        self.set(join_path(collection, document_id), data)
        return document_id

    def _write(self, db: Session, operation: BatchOperation) -> None:
        collection, document_id = split_document_path(operation.path)
        row = self._row(db, collection, document_id)
        now = self._clock()

        if operation.kind == "delete":
            if row is not None:
                db.delete(row)
            return

        if operation.kind == "update" and row is None:
            raise DocumentNotFoundError(operation.path)

        base = row.data if row is not None and (operation.kind == "update" or operation.merge) else None
        merged = _to_json_value(_apply_fields(operation.data or {}, base=base, now=now))
        if row is None:
            db.add(StoredDocument(collection_path=collection, document_id=document_id, data=merged))
        else:
            row.data = merged

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self._apply_batch((BatchOperation("set", path, dict(data), merge),), wrap_errors=False)

    def update(self, path: str, data: Mapping[str, Any]) -> None:
        self._apply_batch((BatchOperation("update", path, dict(data)),), wrap_errors=False)

    def delete(self, path: str) -> None:
        self._apply_batch((BatchOperation("delete", path),), wrap_errors=False)

    def batch(self) -> WriteBatch:
        return WriteBatch(self._apply_batch)

    def _apply_batch(self, operations: tuple[BatchOperation, ...], *, wrap_errors: bool = True) -> None:
        with self._session_factory() as db:
            try:
                for operation in operations:
                    self._write(db, operation)
                    db.flush()
                db.commit()
            except Exception as exc:
                db.rollback()
                if not wrap_errors:
                    raise
                raise BatchCommitError(f"Batch of {len(operations)} writes was rolled back: {exc}") from exc


def migration_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return config


def create_schema(bind: Engine) -> None:
    """Upgrade the database behind ``bind`` to the latest Alembic revision."""
    config = migration_config()
    with bind.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
    logger.info("document_schema_upgraded", extra={"dialect": bind.dialect.name})


@lru_cache
def get_memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


def get_store() -> Generator[DocumentStore, None, None]:
    if get_settings().document_store_backend.strip().lower() == "memory":
        yield get_memory_store()
        return
    yield SqlDocumentStore(SessionLocal)
