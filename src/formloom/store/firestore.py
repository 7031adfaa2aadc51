from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional
from uuid import uuid4

from formloom.exceptions import PersistenceError


class FirestoreRecordStore:
    """
    Firestore-backed record store.
    Mirrors the RecordStore interface used by the import service and repositories.
    """

    def __init__(
        self,
        *,
        project_id: Optional[str] = None,
        database: str = "(default)",
        collection_prefix: str = "formloom",
    ):
        try:
            from google.api_core.exceptions import GoogleAPICallError, NotFound
            from google.cloud import firestore
        except Exception as exc:  # pragma: no cover - depends on optional runtime deps
            raise RuntimeError(
                "Firestore backend requested but google-cloud-firestore is not installed"
            ) from exc

        client_kwargs: dict[str, Any] = {}
        if project_id:
            client_kwargs["project"] = project_id
        if database and database != "(default)":
            client_kwargs["database"] = database

        try:
            self._client = firestore.Client(**client_kwargs)
        except TypeError:
            client_kwargs.pop("database", None)
            self._client = firestore.Client(**client_kwargs)

        self._api_error_exc = GoogleAPICallError
        self._not_found_exc = NotFound
        self._prefix = str(collection_prefix).strip() or "formloom"

    def _collection(self, name: str):
        return self._client.collection(f"{self._prefix}_{name}")

    def create_record(
        self,
        collection: str,
        data: dict[str, Any],
        permissions: Optional[list[str]] = None,
        record_id: Optional[str] = None,
    ) -> dict[str, Any]:
        record_id = record_id or uuid4().hex
        now = datetime.now(UTC).isoformat()
        doc = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at", "permissions")}
        doc.update({"permissions": list(permissions or []), "created_at": now, "updated_at": now})
        try:
            self._collection(collection).document(record_id).create(doc)
        except self._api_error_exc as exc:
            raise PersistenceError(f"Failed to create {collection} record: {exc}") from exc
        return {**doc, "id": record_id}

    def update_record(self, collection: str, record_id: str, partial: dict[str, Any]) -> dict[str, Any]:
        changes = {k: v for k, v in partial.items() if k not in ("id", "created_at", "updated_at")}
        changes["updated_at"] = datetime.now(UTC).isoformat()
        doc_ref = self._collection(collection).document(record_id)
        try:
            doc_ref.update(changes)
        except self._not_found_exc as exc:
            raise PersistenceError(f"{collection} record {record_id} not found") from exc
        except self._api_error_exc as exc:
            raise PersistenceError(f"Failed to update {collection} record {record_id}: {exc}") from exc
        return self.get_record(collection, record_id) or {**changes, "id": record_id}

    def get_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        doc = self._collection(collection).document(record_id).get()
        if not doc.exists:
            return None
        return {**(doc.to_dict() or {}), "id": doc.id}

    def query_records(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        created_before: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        query = self._collection(collection)
        for field, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                values = list(value)
                if not values:
                    return []
                query = query.where(field_path=field, op_string="in", value=values)
            else:
                query = query.where(field_path=field, op_string="==", value=value)
        if created_before:
            query = query.where(field_path="created_at", op_string="<", value=created_before)

        items: list[dict[str, Any]] = []
        for doc in query.stream():
            items.append({**(doc.to_dict() or {}), "id": doc.id})
        # Sorted client side; ordering server side would need a composite index per filter set.
        items.sort(key=lambda item: str(item.get("created_at") or ""), reverse=True)
        if limit:
            items = items[: int(limit)]
        return items

    def delete_record(self, collection: str, record_id: str) -> bool:
        doc_ref = self._collection(collection).document(record_id)
        if not doc_ref.get().exists:
            return False
        try:
            doc_ref.delete()
        except self._api_error_exc as exc:
            raise PersistenceError(f"Failed to delete {collection} record {record_id}: {exc}") from exc
        return True
