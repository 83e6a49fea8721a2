"""Reusable Firebase Firestore client manager for CRUD, query and reservation operations."""

from datetime import datetime, timezone
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from google.cloud import firestore
from google.oauth2 import service_account


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


class FirebaseClientManager:
    """Encapsulates Firestore client setup and common data operations."""

    def __init__(self, project_id: Optional[str] = None, credentials_path: Optional[str] = None) -> None:
        """Initialize Firestore client.

        Args:
            project_id: Optional Google Cloud project id override.
            credentials_path: Optional path to Firebase service account json file.
        """
        try:
            if credentials_path:
                credentials = service_account.Credentials.from_service_account_file(credentials_path)
                self._client = firestore.Client(project=project_id, credentials=credentials)
            else:
                self._client = firestore.Client(project=project_id) if project_id else firestore.Client()
            logger.info("FirebaseClientManager initialized for project_id=%s", project_id)
        except Exception:
            logger.exception("Failed to initialize Firebase Firestore client.")
            raise

    @classmethod
    def from_settings(cls, settings) -> "FirebaseClientManager":
        if settings.firebase_credentials_path and not os.path.exists(settings.firebase_credentials_path):
            logger.warning("Firebase credentials file missing path=%s", settings.firebase_credentials_path)
        return cls(
            project_id=settings.firebase_project_id,
            credentials_path=settings.firebase_credentials_path,
        )

    def _build_query(self, collection_name: str, filters: Optional[Sequence[FilterTuple]]):
        query = self._client.collection(collection_name)
        for field_name, operator, value in filters or []:
            query = query.where(field_name, operator, value)
        return query

    def set_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        merge: bool = False,
    ) -> Dict[str, Any]:
        """Create or replace a Firestore document.

        Args:
            collection_name: Target collection.
            document_id: Firestore document id.
            payload: Document payload.
            merge: If true, merge with existing fields.

        Returns:
            Dict[str, Any]: Persisted document payload.
        """
        try:
            ref = self._client.collection(collection_name).document(document_id)
            safe_payload = dict(payload)
            safe_payload["updated_at"] = safe_payload.get("updated_at", _utc_now())
            safe_payload["created_at"] = safe_payload.get("created_at", _utc_now())
            ref.set(safe_payload, merge=merge)
            snapshot = ref.get()
            return snapshot.to_dict() or {}
        except Exception:
            logger.exception(
                "Failed to set document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get one Firestore document by id."""
        try:
            snapshot = self._client.collection(collection_name).document(document_id).get()
            if not snapshot.exists:
                return None
            data = snapshot.to_dict() or {}
            data["id"] = snapshot.id
            return data
        except Exception:
            logger.exception(
                "Failed to get document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def update_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Merge fields into an existing Firestore document."""
        try:
            ref = self._client.collection(collection_name).document(document_id)
            safe_payload = dict(payload)
            safe_payload["updated_at"] = _utc_now()
            ref.set(safe_payload, merge=True)
            snapshot = ref.get()
            return snapshot.to_dict() or {}
        except Exception:
            logger.exception(
                "Failed to update document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Run a filtered query and return document payloads.

        Args:
            collection_name: Target collection.
            filters: Sequence of tuples `(field, op, value)`.
            order_by: Optional field name for sorting.
            limit: Optional maximum result count.
        """
        try:
            query = self._build_query(collection_name, filters)
            if order_by:
                query = query.order_by(order_by)
            if limit is not None:
                query = query.limit(limit)

            documents: List[Dict[str, Any]] = []
            for snapshot in query.stream():
                payload = snapshot.to_dict() or {}
                payload["id"] = snapshot.id
                documents.append(payload)
            return documents
        except Exception:
            logger.exception("Failed query for collection=%s", collection_name)
            raise

    def count_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
    ) -> int:
        """Return the number of documents matching ``filters`` with a server-side count."""
        try:
            results = self._build_query(collection_name, filters).count().get()
            return int(results[0][0].value) if results else 0
        except Exception:
            logger.exception("Failed count for collection=%s", collection_name)
            raise

    def reserve_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        lock_collection: str,
        lock_id: str,
        conflict_filters: Sequence[FilterTuple],
        is_free: Callable[[List[Dict[str, Any]]], bool],
    ) -> bool:
        """Write ``payload`` only if ``is_free`` accepts the conflicting documents.

        The read of the lock document, the conflict query and both writes run
        in one transaction. Bumping the lock version makes any concurrent
        reservation for the same ``lock_id`` retry and see this write.
        Returns ``False`` without writing when ``is_free`` rejects.
        """
        lock_ref = self._client.collection(lock_collection).document(lock_id)
        target_ref = self._client.collection(collection_name).document(document_id)
        conflict_query = self._build_query(collection_name, conflict_filters)

        @firestore.transactional
        def _reserve(transaction) -> bool:
            lock_snapshot = lock_ref.get(transaction=transaction)
            lock_version = int((lock_snapshot.to_dict() or {}).get("version", 0)) if lock_snapshot.exists else 0
            existing: List[Dict[str, Any]] = []
            for snapshot in transaction.get(conflict_query):
                data = snapshot.to_dict() or {}
                data["id"] = snapshot.id
                existing.append(data)
            if not is_free(existing):
                return False
            now = _utc_now()
            safe_payload = dict(payload)
            safe_payload["updated_at"] = now
            safe_payload["created_at"] = safe_payload.get("created_at", now)
            transaction.set(target_ref, safe_payload)
            transaction.set(lock_ref, {"version": lock_version + 1, "updated_at": now})
            return True

        try:
            return _reserve(self._client.transaction())
        except Exception:
            logger.exception(
                "Failed reservation collection=%s document_id=%s lock_id=%s",
                collection_name,
                document_id,
                lock_id,
            )
            raise
