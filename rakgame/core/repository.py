"""
Optimistic record repositories.

A repository holds the in-memory list of one collection (games or sellers) as
shown to the user. Every mutation is applied to that list first and then either
sent to Firestore (online) or handed to the sync queue (offline). Server
responses, queue replays and realtime change notifications bring the list back
in line with the backend, which always wins.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Set, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from config.feature_flags import is_feature_enabled
from rakgame.core.error_handler import (
    AppError,
    AuthenticationError,
    DatabaseError,
    NetworkError,
    RemoteError,
    ValidationError,
)
from rakgame.core.models import BaseModel, UserIdentity, is_temp_id, new_temp_id, utc_now_iso
from rakgame.sync.queue import OperationType, ReplayEvent, SyncOperation, SyncQueue

T = TypeVar('T', bound=BaseModel)

logger = logging.getLogger(__name__)


@dataclass
class _RecordLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class OptimisticRepository(Generic[T]):
    """Optimistic view of one Firestore collection"""

    model: Type[T]
    record_kind: str = ''
    label: str = 'Record'
    order_by: Optional[str] = None
    descending: bool = False

    def __init__(self, remote, queue: SyncQueue, connectivity, notifier, collection: Optional[str] = None):
        self.remote = remote
        self.queue = queue
        self.connectivity = connectivity
        self.notifier = notifier
        self.collection = collection or self.record_kind
        self.loading = False
        self.error: Optional[Exception] = None
        self._records: List[T] = []
        # temporary id -> permanent id, once the server has confirmed a create
        self._aliases: Dict[str, str] = {}
        # permanent id -> temporary id it replaced, so both share one write lock
        self._origins: Dict[str, str] = {}
        self._unconfirmed: Set[str] = set()
        self._queued_creates: Set[str] = set()
        self._locks: Dict[str, _RecordLock] = {}
        self._unsubscribe = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_again = False
        queue.add_listener(self._on_replay)

    # ------------------------------------------------------------------ view

    @property
    def records(self) -> List[T]:
        return list(self._records)

    def resolve_id(self, record_id: str) -> str:
        return self._aliases.get(record_id, record_id)

    def get(self, record_id: str) -> Optional[T]:
        index = self._index_of(self.resolve_id(record_id))
        return self._records[index] if index is not None else None

    def _index_of(self, record_id: str) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    def _insert_optimistic(self, record: T) -> None:
        self._records.insert(0, record)

    def _sort(self) -> None:
        """Reorder after a change; the server order is kept by default"""
        pass

    def _replace(self, record_id: str, record: T) -> bool:
        """Swap the record stored under record_id for record, in place"""
        index = self._index_of(record_id)
        if index is None:
            return False
        self._records[index] = record
        if record.id != record_id:
            # a refetch may already have brought in the confirmed record
            self._records = [
                existing for position, existing in enumerate(self._records)
                if existing.id != record.id or position == index
            ]
        self._sort()
        return True

    def _remove(self, record_id: str) -> None:
        self._records = [record for record in self._records if record.id != record_id]

    def _confirm(self, temp_id: str, record: T) -> None:
        """Replace a temporary record by the one the server stored"""
        self._aliases[temp_id] = record.id
        self._origins[record.id] = temp_id
        self._unconfirmed.discard(temp_id)
        self._queued_creates.discard(temp_id)
        self._replace(temp_id, record)
        # writes queued against the temporary id while the create was in flight
        self.queue.retarget(temp_id, record.id)

    # ------------------------------------------------------------ conversion

    def _to_model(self, data: Dict[str, Any]) -> T:
        return self.model.from_dict(data)

    def _validated(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.model.fields_model.model_validate(data).to_dict()
        except PydanticValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
            )
            raise ValidationError(messages, error_code='INVALID_INPUT', details=e.errors()) from e

    def _validate_update(self, current: T, fields: Dict[str, Any]) -> Dict[str, Any]:
        editable = self.model.fields_model.model_fields
        unknown = [key for key in fields if key not in editable]
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}", error_code='INVALID_INPUT')
        base = {key: value for key, value in current.to_dict().items() if key in editable}
        validated = self._validated({**base, **fields})
        return {key: validated[key] for key in fields}

    # ---------------------------------------------------------------- guards

    def _require_user(self) -> UserIdentity:
        user = self.remote.get_current_user()
        if not user:
            raise AuthenticationError("Not authenticated", error_code='UNAUTHENTICATED')
        return user

    def _is_online(self) -> bool:
        return self.connectivity.is_online

    def _ensure_can_queue(self) -> None:
        if not is_feature_enabled('offline_sync'):
            raise NetworkError("You are offline", error_code='UNAVAILABLE')

    def _lock_key(self, record_id: str) -> str:
        return self._origins.get(record_id, record_id)

    @asynccontextmanager
    async def _record_lock(self, record_id: str):
        """Serialize remote writes for one record, in call order"""
        key = self._lock_key(record_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _RecordLock()
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0:
                self._locks.pop(key, None)

    def _enqueue(self, action: str, record_id: Optional[str] = None,
                 data: Optional[Dict[str, Any]] = None, client_id: Optional[str] = None) -> None:
        self.queue.enqueue(SyncOperation(
            type=OperationType.for_action(action, self.record_kind),
            id=record_id,
            data=data,
            client_id=client_id
        ))

    async def _fail(self, error: Exception) -> None:
        """Report a failed live write, resync from the server and raise"""
        reported = error if isinstance(error, AppError) else RemoteError(str(error))
        self.notifier.report_error(reported)
        await self._safe_refresh()
        if reported is error:
            raise error
        raise reported from error

    # ------------------------------------------------------------ mutations

    async def create(self, fields: Dict[str, Any]) -> T:
        """
        Add a record.

        The record appears immediately under a temporary id. Online, it is
        replaced by the server's copy once stored; offline, the create is queued
        and the temporary record stays until the queue replays it.
        """
        user = self._require_user()
        payload = self._validated(fields)
        online = self._is_online()
        if not online:
            self._ensure_can_queue()

        temp_id = new_temp_id()
        optimistic = self._to_model({**payload, 'id': temp_id, 'user_id': user.id, 'created_at': utc_now_iso()})
        self._insert_optimistic(optimistic)
        self._sort()
        self._unconfirmed.add(temp_id)

        if not online:
            self._enqueue('create', data=payload, client_id=temp_id)
            self._queued_creates.add(temp_id)
            self.notifier.info(f"{self.label} will be synced when online")
            return optimistic

        async with self._record_lock(temp_id):
            try:
                data = await self.remote.create(self.collection, payload)
            except Exception as e:
                self._unconfirmed.discard(temp_id)
                self._remove(temp_id)
                await self._fail(e)
            record = self._to_model(data)
            self._confirm(temp_id, record)

        self.notifier.success(f"{self.label} added successfully")
        return record

    async def update(self, record_id: str, fields: Dict[str, Any]) -> T:
        """Apply fields to a record now and send them to the server (or queue them)"""
        self._require_user()
        current = self.get(record_id)
        if current is None:
            raise ValidationError(f"{self.label} {record_id} not found", error_code='NOT_FOUND')
        payload = self._validate_update(current, fields)
        online = self._is_online()
        if not online:
            self._ensure_can_queue()

        optimistic = self._to_model({**current.to_dict(), **payload})
        self._replace(current.id, optimistic)

        if not online:
            self._enqueue('update', record_id=current.id, data=payload)
            self.notifier.info("Changes will be synced when online")
            return optimistic

        async with self._record_lock(current.id):
            target = self.resolve_id(current.id)
            if is_temp_id(target):
                if target in self._queued_creates:
                    self._enqueue('update', record_id=target, data=payload)
                    self.notifier.info("Changes will be synced when online")
                    return self.get(target) or optimistic
                await self._fail(DatabaseError(
                    f"{self.label} has not been saved yet", error_code='NOT_FOUND'
                ))
            if self.queue.has_pending(target):
                # earlier offline edits must reach the server first
                self._enqueue('update', record_id=target, data=payload)
                self.notifier.info("Changes will be synced when online")
                return self.get(target) or optimistic
            try:
                data = await self.remote.update(self.collection, target, payload)
            except Exception as e:
                await self._fail(e)
            record = self._to_model(data)
            self._replace(target, record)

        self.notifier.success(f"{self.label} updated successfully")
        return record

    async def delete(self, record_id: str) -> None:
        """
        Remove a record now and delete it on the server (or queue the delete).

        A failed live delete is not undone locally; the corrective refetch
        restores whatever the server still has.
        """
        self._require_user()
        current_id = self.resolve_id(record_id)
        online = self._is_online()
        if not online:
            self._ensure_can_queue()

        self._remove(current_id)

        if not online:
            self._enqueue('delete', record_id=current_id)
            self.notifier.info("Deletion will be synced when online")
            return

        async with self._record_lock(current_id):
            target = self.resolve_id(current_id)
            if is_temp_id(target):
                if target in self._queued_creates:
                    self._enqueue('delete', record_id=target)
                    self.notifier.info("Deletion will be synced when online")
                else:
                    # never reached the server
                    self._unconfirmed.discard(target)
                return
            if self.queue.has_pending(target):
                self._enqueue('delete', record_id=target)
                self.notifier.info("Deletion will be synced when online")
                return
            try:
                await self.remote.delete(self.collection, target)
            except Exception as e:
                await self._fail(e)

        self.notifier.success(f"{self.label} deleted successfully")

    # --------------------------------------------------------- reconciliation

    async def _fetch(self) -> List[T]:
        rows = await self.remote.list(self.collection, order_by=self.order_by, descending=self.descending)
        return [self._to_model(row) for row in rows]

    async def refresh(self) -> List[T]:
        """Reload the collection from the server; pending temporary records are kept"""
        self.loading = True
        try:
            fetched = await self._fetch()
        except Exception as e:
            self.error = e
            raise
        finally:
            self.loading = False

        fetched_ids = {record.id for record in fetched}
        pending = [
            record for record in self._records
            if record.id in self._unconfirmed and record.id not in fetched_ids
        ]
        self._records = pending + fetched
        self._sort()
        self.error = None
        logger.debug(f"Refreshed {self.collection}: {len(fetched)} record(s), {len(pending)} pending")
        return self.records

    async def _safe_refresh(self) -> None:
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"Error refreshing {self.collection}: {str(e)}")

    def _on_remote_change(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_again = True
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_until_settled())

    async def _refresh_until_settled(self) -> None:
        while True:
            self._refresh_again = False
            await self._safe_refresh()
            if not self._refresh_again:
                break

    def _on_replay(self, event: ReplayEvent) -> None:
        operation = event.queued.operation
        if operation.type.record_kind != self.record_kind:
            return

        if event.kind == 'dropped':
            if operation.client_id:
                self._unconfirmed.discard(operation.client_id)
                self._queued_creates.discard(operation.client_id)
            return

        if not event.record:
            return
        record = self._to_model(event.record)
        if operation.client_id:
            self._confirm(operation.client_id, record)
        elif operation.id:
            self._replace(operation.id, record)

    async def start(self) -> None:
        """Load the collection and subscribe to realtime changes"""
        await self._safe_refresh()
        if self._unsubscribe is None and is_feature_enabled('realtime_updates'):
            try:
                self._unsubscribe = self.remote.subscribe_to_changes(self.collection, self._on_remote_change)
            except Exception as e:
                logger.error(f"Error subscribing to {self.collection} changes: {str(e)}")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def on_reconnected(self, result) -> None:
        """Reconnect listener: resync after the queue has been drained"""
        await self._safe_refresh()
