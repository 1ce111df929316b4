import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from rakgame.core.error_handler import AppError, AuthenticationError, DatabaseError, NetworkError
from rakgame.core.firebase_manager import FirebaseManager
from rakgame.core.models import UserIdentity, utc_now_iso

logger = logging.getLogger(__name__)

NETWORK_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.RetryError,
    requests.exceptions.ConnectionError,
    ConnectionError,
)


class FirebaseService:
    """
    Remote persistence API over Firestore.

    Every call requires a signed-in user. Creates are stamped with the user's id
    and reads are scoped to it. Backend exceptions surface as ``NetworkError``
    or ``DatabaseError`` with the backend status name as ``error_code``.
    """

    def __init__(self, manager: FirebaseManager):
        self.manager = manager

    @property
    def db(self):
        return self.manager.db

    def get_current_user(self) -> Optional[UserIdentity]:
        return self.manager.get_current_user()

    def _require_user(self) -> UserIdentity:
        user = self.get_current_user()
        if not user:
            raise AuthenticationError("Not authenticated", error_code='UNAUTHENTICATED')
        return user

    @staticmethod
    def _wrap_error(error: Exception, action: str) -> AppError:
        if isinstance(error, AppError):
            return error
        if isinstance(error, NETWORK_ERRORS):
            return NetworkError(f"Failed to {action}: {str(error)}", error_code='UNAVAILABLE')
        status = getattr(error, 'grpc_status_code', None)
        code = status.name if status is not None else None
        return DatabaseError(f"Failed to {action}: {str(error)}", error_code=code)

    @staticmethod
    def _to_record(snapshot) -> Dict[str, Any]:
        data = snapshot.to_dict() or {}
        data['id'] = snapshot.id
        return data

    def _owned_document(self, collection: str, doc_id: str, user: UserIdentity):
        """Return the document reference after checking it exists and belongs to user"""
        doc_ref = self.db.collection(collection).document(doc_id)
        snapshot = doc_ref.get()
        if not snapshot.exists:
            raise DatabaseError(f"Document {doc_id} not found in {collection}", error_code='NOT_FOUND')
        if (snapshot.to_dict() or {}).get('user_id') != user.id:
            raise DatabaseError(
                f"Document {doc_id} in {collection} belongs to another user",
                error_code='PERMISSION_DENIED'
            )
        return doc_ref

    def _create_document(self, collection: str, fields: Dict[str, Any], user: UserIdentity) -> Dict[str, Any]:
        doc_ref = self.db.collection(collection).document()
        data = {**fields, 'user_id': user.id, 'created_at': utc_now_iso()}
        data.pop('id', None)
        doc_ref.set(data)
        return {**data, 'id': doc_ref.id}

    async def create(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new document in the specified collection

        Args:
            collection: Name of the collection
            fields: Document data

        Returns:
            Dict[str, Any]: The stored document, including its id
        """
        user = self._require_user()
        try:
            record = await asyncio.to_thread(self._create_document, collection, fields, user)
        except Exception as e:
            logger.error(f"Error creating document in {collection}: {str(e)}")
            raise self._wrap_error(e, f"create document in {collection}")
        logger.info(f"Created document {record['id']} in {collection}")
        return record

    def _get_document(self, collection: str, doc_id: str, user: UserIdentity) -> Optional[Dict[str, Any]]:
        snapshot = self.db.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        record = self._to_record(snapshot)
        return record if record.get('user_id') == user.id else None

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get one of the current user's documents by id"""
        user = self._require_user()
        try:
            return await asyncio.to_thread(self._get_document, collection, doc_id, user)
        except Exception as e:
            logger.error(f"Error getting document {doc_id} from {collection}: {str(e)}")
            raise self._wrap_error(e, f"get document {doc_id}")

    def _update_document(self, collection: str, doc_id: str, fields: Dict[str, Any],
                         user: UserIdentity) -> Dict[str, Any]:
        doc_ref = self._owned_document(collection, doc_id, user)
        changes = {key: value for key, value in fields.items() if key not in ('id', 'user_id', 'created_at')}
        doc_ref.update(changes)
        return self._to_record(doc_ref.get())

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a document and return its stored state

        Args:
            collection: Name of the collection
            doc_id: ID of the document
            fields: Fields to overwrite
        """
        user = self._require_user()
        try:
            record = await asyncio.to_thread(self._update_document, collection, doc_id, fields, user)
        except Exception as e:
            logger.error(f"Error updating document {doc_id} in {collection}: {str(e)}")
            raise self._wrap_error(e, f"update document {doc_id}")
        logger.info(f"Updated document {doc_id} in {collection}")
        return record

    def _delete_document(self, collection: str, doc_id: str, user: UserIdentity) -> None:
        self._owned_document(collection, doc_id, user).delete()

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document from the specified collection"""
        user = self._require_user()
        try:
            await asyncio.to_thread(self._delete_document, collection, doc_id, user)
        except Exception as e:
            logger.error(f"Error deleting document {doc_id} from {collection}: {str(e)}")
            raise self._wrap_error(e, f"delete document {doc_id}")
        logger.info(f"Deleted document {doc_id} from {collection}")

    def _list_documents(self, collection: str, user: UserIdentity, filters: Optional[Dict[str, Any]],
                        order_by: Optional[str], descending: bool, limit: Optional[int]) -> List[Dict[str, Any]]:
        query = self.db.collection(collection).where(
            filter=firestore.FieldFilter('user_id', '==', user.id)
        )

        for field, value in (filters or {}).items():
            query = query.where(filter=firestore.FieldFilter(field, '==', value))

        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)

        if limit:
            query = query.limit(limit)

        return [self._to_record(doc) for doc in query.stream()]

    async def list(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        List the current user's documents with optional filters

        The Firestore client blocks, so every call runs on a worker thread and
        the event loop stays free while it waits.

        Args:
            collection: Name of the collection
            filters: Optional dictionary of field-value pairs to filter by
            order_by: Optional field to order results by
            descending: Order from highest to lowest
            limit: Optional maximum number of results to return
        """
        user = self._require_user()
        try:
            return await asyncio.to_thread(
                self._list_documents, collection, user, filters, order_by, descending, limit
            )
        except Exception as e:
            logger.error(f"Error listing documents from {collection}: {str(e)}")
            raise self._wrap_error(e, f"list {collection}")

    def subscribe_to_changes(self, collection: str, on_change: Callable[[], None]) -> Callable[[], None]:
        """
        Call ``on_change`` whenever one of the user's documents in the collection
        is inserted, updated or deleted.

        Firestore delivers snapshots on a background thread; when subscribed from
        inside an event loop the callback is handed back to that loop.

        Returns:
            A callable that cancels the subscription
        """
        user = self._require_user()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        initial = [True]

        def _on_snapshot(docs, changes, read_time):
            # the first snapshot is the current contents, not a change
            if initial[0]:
                initial[0] = False
                return
            if loop is not None:
                if not loop.is_closed():
                    loop.call_soon_threadsafe(on_change)
            else:
                on_change()

        query = self.db.collection(collection).where(
            filter=firestore.FieldFilter('user_id', '==', user.id)
        )
        watch = query.on_snapshot(_on_snapshot)
        logger.info(f"Subscribed to changes in {collection}")
        return watch.unsubscribe
