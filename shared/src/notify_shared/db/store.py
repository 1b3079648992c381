"""Document store: get/set/update/query/batch over the ``documents`` table.

Documents are plain JSON dicts. Equality filters on string values are
pushed into SQL as JSON path lookups; every filter is then applied again
on the decoded documents, so the same filter semantics hold on PostgreSQL
and SQLite.
"""

import json
import logging
import operator
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import JSON, ColumnElement, select, type_coerce, update
from sqlalchemy.orm import Session

from notify_shared.db.models import Document
from notify_shared.errors import NotFoundError

logger = logging.getLogger(__name__)

Filter = tuple[str, str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

_MISSING = object()


def get_field(data: dict[str, Any], path: str) -> Any:
    """Read a dotted field path from a document, ``_MISSING`` if absent."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _json_path(path: str) -> Any:
    return type_coerce(Document.data, JSON)[tuple(path.split("."))]


def _equals_clause(path: str, value: Any) -> ColumnElement[bool]:
    """SQL predicate for ``data.<path> == value`` on a string or boolean value."""
    if isinstance(value, bool):
        return _json_path(path).as_boolean() == value
    if isinstance(value, str):
        return _json_path(path).as_string() == value
    raise ValueError(f"Cannot compare {path!r} in SQL against {type(value).__name__}")


def _sort_key(value: Any) -> tuple[int, Any]:
    """Numbers, then booleans, then strings, then anything else by its JSON text."""
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (2, value)
    return (3, json.dumps(value, sort_keys=True, default=str))


def _matches(data: dict[str, Any], filters: Sequence[Filter]) -> bool:
    for field, op, expected in filters:
        value = get_field(data, field)
        if value is _MISSING:
            return False
        try:
            if not _OPERATORS[op](value, expected):
                return False
        except TypeError:
            return False
    return True


class DocumentStore:
    """Data access for JSON documents with a constructor-injected session.

    Writes are flushed but never committed here; the caller owns the
    transaction, except for :meth:`WriteBatch.commit`.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        row = self._session.get(Document, (collection, doc_id))
        if row is None:
            return None
        return dict(row.data)

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        *,
        merge: bool = False,
    ) -> dict[str, Any]:
        """Create or replace a document; ``merge`` keeps unspecified fields."""
        row = self._session.get(Document, (collection, doc_id))
        if row is None:
            row = Document(collection=collection, doc_id=doc_id, data=dict(data))
            self._session.add(row)
        elif merge:
            row.data = {**row.data, **data}
        else:
            row.data = dict(data)
        self._session.flush()
        return dict(row.data)

    def update(
        self, collection: str, doc_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Shallow-merge *changes* into an existing document.

        Returns None if the document does not exist.
        """
        row = self._session.get(Document, (collection, doc_id))
        if row is None:
            return None
        row.data = {**row.data, **changes}
        self._session.flush()
        return dict(row.data)

    def update_if(
        self,
        collection: str,
        doc_id: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Merge *changes* only while the stored document still holds *expected*.

        The check and the write are a single UPDATE, so when two sessions
        race on the same document at most one of them succeeds. *expected*
        maps field paths to string or boolean values. Returns the updated
        document, or None when it is missing or no longer matches.
        """
        row = self._session.get(Document, (collection, doc_id))
        if row is None:
            return None
        data = {**row.data, **changes}
        stmt = (
            update(Document)
            .where(
                Document.collection == collection,
                Document.doc_id == doc_id,
                *(_equals_clause(path, value) for path, value in expected.items()),
            )
            .values(data=data)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.expire(row)
        if result.rowcount != 1:
            return None
        return data

    def delete(self, collection: str, doc_id: str) -> bool:
        row = self._session.get(Document, (collection, doc_id))
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Store a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(doc_id, data)`` pairs matching every filter.

        Results are sorted by *order_by* (documents where the field is
        missing or null go last) and then by ``doc_id``, so equal keys come
        back in a stable order on every call.
        """
        for _, op, _ in filters:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported query operator: {op!r}")

        stmt = select(Document).where(Document.collection == collection)
        for field, op, expected in filters:
            if op == "==" and isinstance(expected, str):
                stmt = stmt.where(_equals_clause(field, expected))
        rows = self._session.scalars(stmt).all()
        results = [
            (row.doc_id, dict(row.data))
            for row in rows
            if _matches(row.data, filters)
        ]

        results.sort(key=lambda item: item[0])
        if order_by is not None:
            present: list[tuple[str, dict[str, Any]]] = []
            absent: list[tuple[str, dict[str, Any]]] = []
            for item in results:
                value = get_field(item[1], order_by)
                if value is _MISSING or value is None:
                    absent.append(item)
                else:
                    present.append(item)
            present.sort(
                key=lambda item: _sort_key(get_field(item[1], order_by)), reverse=descending
            )
            results = present + absent

        if limit is not None:
            results = results[:limit]
        return results

    def batch(self) -> "WriteBatch":
        return WriteBatch(self, self._session)


class WriteBatch:
    """A set of writes committed together or not at all.

    Updates are checked against existing documents before any write is
    applied, so a batch that targets a missing document changes nothing.
    """

    def __init__(self, store: DocumentStore, session: Session) -> None:
        self._store = store
        self._session = session
        self._ops: list[tuple[str, str, str, dict[str, Any] | None]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> "WriteBatch":
        self._ops.append(("merge" if merge else "set", collection, doc_id, data))
        return self

    def update(
        self, collection: str, doc_id: str, changes: dict[str, Any]
    ) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, changes))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None))
        return self

    def commit(self) -> int:
        """Apply all staged writes in one transaction.

        Returns the number of writes applied. Raises NotFoundError when an
        update targets a missing document.
        """
        store = self._store
        written: set[tuple[str, str]] = set()
        for kind, collection, doc_id, _ in self._ops:
            key = (collection, doc_id)
            if kind in ("set", "merge"):
                written.add(key)
            elif kind == "delete":
                written.discard(key)
            elif key not in written and store.get(collection, doc_id) is None:
                raise NotFoundError(
                    f"Cannot update missing document {collection}/{doc_id}"
                )

        session = self._session
        try:
            for kind, collection, doc_id, data in self._ops:
                if kind == "set":
                    store.set(collection, doc_id, data or {})
                elif kind == "merge":
                    store.set(collection, doc_id, data or {}, merge=True)
                elif kind == "update":
                    store.update(collection, doc_id, data or {})
                else:
                    store.delete(collection, doc_id)
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("Batch commit failed", extra={"writes": len(self._ops)})
            raise

        applied = len(self._ops)
        self._ops.clear()
        return applied
