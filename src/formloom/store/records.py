from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import uuid4

from formloom.exceptions import PersistenceError
from formloom.store.database import Database


class RecordStore:
    """
    Typed-document persistence backed by SQLite in local/dev.
    Records are flat dicts; ``id``, ``created_at``, ``updated_at`` and
    ``permissions`` are managed here. FirestoreRecordStore mirrors this interface.
    """

    def __init__(self, db: Database):
        self.db = db

    def create_record(
        self,
        collection: str,
        data: dict[str, Any],
        permissions: Optional[list[str]] = None,
        record_id: Optional[str] = None,
    ) -> dict[str, Any]:
        record_id = record_id or uuid4().hex
        now = datetime.now(UTC).isoformat()
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at", "permissions")}
        try:
            with self.db._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO records (collection, id, data_json, permissions_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        collection,
                        record_id,
                        json.dumps(payload, ensure_ascii=False, default=str),
                        json.dumps(permissions or []),
                        now,
                        now,
                    ),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to create {collection} record: {exc}") from exc
        return self._compose(record_id, payload, permissions or [], now, now)

    def update_record(self, collection: str, record_id: str, partial: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(UTC).isoformat()
        try:
            with self.db._connect() as conn:
                row = conn.execute(
                    "SELECT data_json, permissions_json, created_at FROM records WHERE collection = ? AND id = ?",
                    (collection, record_id),
                ).fetchone()
                if row is None:
                    raise PersistenceError(f"{collection} record {record_id} not found")
                data = json.loads(row[0])
                data.update({k: v for k, v in partial.items() if k not in ("id", "created_at", "updated_at")})
                conn.execute(
                    "UPDATE records SET data_json = ?, updated_at = ? WHERE collection = ? AND id = ?",
                    (json.dumps(data, ensure_ascii=False, default=str), now, collection, record_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to update {collection} record {record_id}: {exc}") from exc
        return self._compose(record_id, data, json.loads(row[1]), row[2], now)

    def get_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        with self.db._connect() as conn:
            row = conn.execute(
                """
                SELECT id, data_json, permissions_json, created_at, updated_at
                FROM records WHERE collection = ? AND id = ?
                """,
                (collection, record_id),
            ).fetchone()
        if row is None:
            return None
        return self._compose(row[0], json.loads(row[1]), json.loads(row[2]), row[3], row[4])

    def query_records(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        created_before: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Equality filters on top-level fields; a list/tuple value means "any of".
        Newest first.
        """
        clauses = ["collection = ?"]
        params: list[Any] = [collection]
        for field, value in (filters or {}).items():
            path = f"$.{field}"
            if isinstance(value, (list, tuple, set)):
                values = list(value)
                if not values:
                    return []
                clauses.append(f"json_extract(data_json, ?) IN ({', '.join('?' for _ in values)})")
                params.extend([path, *values])
            else:
                clauses.append("json_extract(data_json, ?) = ?")
                params.extend([path, value])
        if created_before:
            clauses.append("created_at < ?")
            params.append(created_before)

        query = f"""
            SELECT id, data_json, permissions_json, created_at, updated_at
            FROM records WHERE {' AND '.join(clauses)}
            ORDER BY created_at DESC
        """
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))

        with self.db._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._compose(r[0], json.loads(r[1]), json.loads(r[2]), r[3], r[4]) for r in rows]

    def delete_record(self, collection: str, record_id: str) -> bool:
        try:
            with self.db._connect() as conn:
                cur = conn.execute("DELETE FROM records WHERE collection = ? AND id = ?", (collection, record_id))
                conn.commit()
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete {collection} record {record_id}: {exc}") from exc

    @staticmethod
    def _compose(
        record_id: str,
        data: dict[str, Any],
        permissions: list[str],
        created_at: str,
        updated_at: str,
    ) -> dict[str, Any]:
        return {
            **data,
            "id": record_id,
            "permissions": permissions,
            "created_at": created_at,
            "updated_at": updated_at,
        }
