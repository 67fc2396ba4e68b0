from __future__ import annotations

import asyncio
import json
import re
import uuid
from enum import Enum
from typing import Any, Mapping, Optional

import mysql.connector
import structlog

from ..core.exceptions import DuplicateDocumentError, StoreUnavailable
from ..database.connection import DatabaseConnection
from ..database.mysql_base import ER_DUP_ENTRY, db_cursor, fetchall, fetchone
from .document_store import Document, DocumentStore

log = structlog.get_logger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _scalar(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _row_to_document(row: Mapping[str, Any]) -> Document:
    body = row["body"]
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    doc = json.loads(body) if isinstance(body, str) else dict(body)
    doc["id"] = row["doc_id"]
    return doc


class MySQLDocumentStore(DocumentStore):
    """Document store over a single MySQL table holding JSON bodies.

    mysql-connector is blocking, so each call runs on a worker thread.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await asyncio.to_thread(self._get, collection, doc_id)

    async def create(self, collection: str, document: Mapping[str, Any], *, lock_key: Optional[str] = None) -> str:
        return await asyncio.to_thread(self._create, collection, dict(document), lock_key)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        release_lock: bool = False,
    ) -> bool:
        return await asyncio.to_thread(self._update, collection, doc_id, dict(fields), release_lock)

    async def query(self, collection: str, filters: Mapping[str, Any]) -> list[Document]:
        return await asyncio.to_thread(self._query, collection, dict(filters))

    def _get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    SELECT doc_id, body
                    FROM documents
                    WHERE collection=%s AND doc_id=%s
                    """,
                    (collection, doc_id),
                )
                r = fetchone(cur)
        except mysql.connector.Error as exc:
            raise StoreUnavailable("Temporarily unable to read records") from exc
        return _row_to_document(r) if r else None

    def _create(self, collection: str, document: dict, lock_key: Optional[str]) -> str:
        doc_id = uuid.uuid4().hex
        document.pop("id", None)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO documents(doc_id, collection, lock_key, body)
                    VALUES(%s,%s,%s,%s)
                    """,
                    (doc_id, collection, lock_key, json.dumps(document, default=_scalar)),
                )
        except mysql.connector.IntegrityError as exc:
            if exc.errno == ER_DUP_ENTRY and lock_key is not None:
                raise DuplicateDocumentError(collection, lock_key) from exc
            raise StoreUnavailable("Temporarily unable to record time") from exc
        except mysql.connector.Error as exc:
            raise StoreUnavailable("Temporarily unable to record time") from exc
        log.debug("document_created", collection=collection, doc_id=doc_id, lock_key=lock_key)
        return doc_id

    def _update(self, collection: str, doc_id: str, fields: dict, release_lock: bool) -> bool:
        # JSON_MERGE_PATCH drops keys set to null, which matches "optional field absent".
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    UPDATE documents
                    SET body=JSON_MERGE_PATCH(body, %s),
                        lock_key=IF(%s, NULL, lock_key)
                    WHERE collection=%s AND doc_id=%s
                    """,
                    (json.dumps(fields, default=_scalar), bool(release_lock), collection, doc_id),
                )
                return cur.rowcount > 0
        except mysql.connector.Error as exc:
            raise StoreUnavailable("Temporarily unable to record time") from exc

    def _query(self, collection: str, filters: dict) -> list[Document]:
        clauses = ["collection=%s"]
        params: list[object] = [collection]

        for field, value in filters.items():
            if not _FIELD_RE.match(field):
                raise ValueError(f"Invalid filter field: {field!r}")
            path = f"JSON_UNQUOTE(JSON_EXTRACT(body, '$.{field}'))"
            if isinstance(value, (list, tuple, set, frozenset)):
                values = [str(_scalar(v)) for v in value]
                if not values:
                    return []
                clauses.append(f"{path} IN ({','.join(['%s'] * len(values))})")
                params.extend(values)
            else:
                clauses.append(f"{path}=%s")
                params.append(str(_scalar(value)))

        where = " AND ".join(clauses)

        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    f"""
                    SELECT doc_id, body
                    FROM documents
                    WHERE {where}
                    ORDER BY created_at ASC
                    """,
                    tuple(params),
                )
                rows = fetchall(cur)
        except mysql.connector.Error as exc:
            raise StoreUnavailable("Temporarily unable to read records") from exc
        return [_row_to_document(r) for r in rows]
