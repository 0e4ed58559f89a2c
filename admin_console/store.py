"""
Document store abstraction with in-memory, SQLAlchemy and Firestore implementations.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Sequence

from google.api_core import exceptions as google_exceptions
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# (field, operator, value); only equality is supported.
Filter = tuple[str, str, Any]
# (field, "asc" | "desc")
OrderBy = tuple[str, str]


class DocumentStoreError(Exception):
    """Raised when the backing store fails a read or write."""


class DocumentStore(Protocol):
    """Interface for document access. Documents are dicts carrying their `id`."""

    def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[dict]:
        ...

    def upsert(
        self, collection: str, doc_id: str, fields: dict, *, merge: bool = False
    ) -> None:
        ...

    def add(self, collection: str, fields: dict) -> str:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...


def timestamp() -> str:
    """Current UTC time as an ISO-8601 string; sorts lexicographically."""
    return datetime.now(timezone.utc).isoformat()


def _check_filters(filters: Optional[Sequence[Filter]]) -> None:
    for field_name, op, _ in filters or ():
        if op != "==":
            raise ValueError(f"Unsupported filter operator {op!r} on {field_name}")


def _sort_key(field_name: str):
    def key(doc: dict):
        value = doc.get(field_name)
        return (value is not None, value if value is not None else "")

    return key


def apply_query(
    docs: list[dict],
    filters: Optional[Sequence[Filter]] = None,
    order_by: Optional[OrderBy] = None,
    limit: Optional[int] = None,
    start_after: Optional[str] = None,
) -> list[dict]:
    """
    Evaluate a query over already-loaded documents.

    Missing fields sort before present ones in ascending order. An unknown
    `start_after` cursor yields an empty result rather than restarting.
    """
    _check_filters(filters)
    results = [
        doc
        for doc in docs
        if all(doc.get(name) == value for name, _, value in filters or ())
    ]
    if order_by:
        field_name, direction = order_by
        results.sort(key=_sort_key(field_name), reverse=direction == "desc")
    if start_after is not None:
        ids = [doc["id"] for doc in results]
        if start_after not in ids:
            return []
        results = results[ids.index(start_after) + 1 :]
    if limit is not None:
        results = results[:limit]
    return results


@dataclass
class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    collections: Dict[str, Dict[str, dict]] = field(default_factory=dict)

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return {**copy.deepcopy(data), "id": doc_id}

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[dict]:
        docs = [
            {**copy.deepcopy(data), "id": doc_id}
            for doc_id, data in self._collection(collection).items()
        ]
        return apply_query(docs, filters, order_by, limit, start_after)

    def upsert(
        self, collection: str, doc_id: str, fields: dict, *, merge: bool = False
    ) -> None:
        docs = self._collection(collection)
        payload = {k: copy.deepcopy(v) for k, v in fields.items() if k != "id"}
        if merge and doc_id in docs:
            docs[doc_id].update(payload)
        else:
            docs[doc_id] = payload

    def add(self, collection: str, fields: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.upsert(collection, doc_id, fields)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation storing one JSON row per document.

    Accepts any SQLAlchemy URL (e.g., Postgres, or SQLite for tests). Queries
    load the collection and evaluate filters/ordering in process; collections
    in this console are small.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("database_url is required for SqlDocumentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                if not row:
                    return None
                return {**row.data, "id": row.doc_id}
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to read {collection}/{doc_id}") from e

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[dict]:
        try:
            with self.Session() as session:
                stmt = select(DocumentRow).where(DocumentRow.collection == collection)
                rows = session.execute(stmt).scalars().all()
                docs = [{**row.data, "id": row.doc_id} for row in rows]
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to query {collection}") from e
        return apply_query(docs, filters, order_by, limit, start_after)

    def upsert(
        self, collection: str, doc_id: str, fields: dict, *, merge: bool = False
    ) -> None:
        payload = {k: v for k, v in fields.items() if k != "id"}
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                if row:
                    # Reassign so SQLAlchemy notices the JSON change.
                    row.data = {**row.data, **payload} if merge else payload
                    row.updated_at = time.time()
                else:
                    session.add(
                        DocumentRow(
                            collection=collection,
                            doc_id=doc_id,
                            data=payload,
                            updated_at=time.time(),
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to write {collection}/{doc_id}") from e

    def add(self, collection: str, fields: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.upsert(collection, doc_id, fields)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                if row:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Failed to delete {collection}/{doc_id}") from e


class FirestoreDocumentStore:
    """Cloud Firestore implementation using the firebase_admin client."""

    def __init__(self, client=None):
        if client is None:
            from firebase_admin import firestore

            client = firestore.client()
        self._client = client

    @staticmethod
    def _to_dict(snapshot) -> dict:
        return {**(snapshot.to_dict() or {}), "id": snapshot.id}

    def get_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            snapshot = self._client.collection(collection).document(doc_id).get()
        except google_exceptions.GoogleAPIError as e:
            raise DocumentStoreError(f"Failed to read {collection}/{doc_id}") from e
        if not snapshot.exists:
            return None
        return self._to_dict(snapshot)

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> list[dict]:
        from google.cloud.firestore_v1 import Query
        from google.cloud.firestore_v1.base_query import FieldFilter

        _check_filters(filters)
        ref = self._client.collection(collection)
        query = ref
        try:
            for field_name, op, value in filters or ():
                query = query.where(filter=FieldFilter(field_name, op, value))
            if order_by:
                field_name, direction = order_by
                query = query.order_by(
                    field_name,
                    direction=Query.DESCENDING
                    if direction == "desc"
                    else Query.ASCENDING,
                )
            if start_after is not None:
                cursor = ref.document(start_after).get()
                if not cursor.exists:
                    return []
                query = query.start_after(cursor)
            if limit is not None:
                query = query.limit(limit)
            return [self._to_dict(snapshot) for snapshot in query.stream()]
        except google_exceptions.GoogleAPIError as e:
            raise DocumentStoreError(f"Failed to query {collection}") from e

    def upsert(
        self, collection: str, doc_id: str, fields: dict, *, merge: bool = False
    ) -> None:
        payload = {k: v for k, v in fields.items() if k != "id"}
        try:
            self._client.collection(collection).document(doc_id).set(
                payload, merge=merge
            )
        except google_exceptions.GoogleAPIError as e:
            raise DocumentStoreError(f"Failed to write {collection}/{doc_id}") from e

    def add(self, collection: str, fields: dict) -> str:
        try:
            _, doc_ref = self._client.collection(collection).add(
                {k: v for k, v in fields.items() if k != "id"}
            )
        except google_exceptions.GoogleAPIError as e:
            raise DocumentStoreError(f"Failed to add to {collection}") from e
        return doc_ref.id

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self._client.collection(collection).document(doc_id).delete()
        except google_exceptions.GoogleAPIError as e:
            raise DocumentStoreError(f"Failed to delete {collection}/{doc_id}") from e


@dataclass
class Page:
    items: list[dict]
    next_cursor: Optional[str] = None


def paginate(
    store: DocumentStore,
    collection: str,
    *,
    order_by: OrderBy,
    page_size: int,
    cursor: Optional[str] = None,
    filters: Optional[Sequence[Filter]] = None,
) -> Page:
    """
    Fetch one page of an ordered query.

    Reads one document past the page to learn whether another page exists;
    the cursor for the next page is the id of the last returned document.
    """
    docs = store.query(
        collection,
        filters=filters,
        order_by=order_by,
        limit=page_size + 1,
        start_after=cursor,
    )
    items = docs[:page_size]
    next_cursor = items[-1]["id"] if len(docs) > page_size and items else None
    return Page(items=items, next_cursor=next_cursor)
