"""
Local mutation queue.

Write operations that cannot be sent to Firestore right away are kept here, in
enqueue order, and persisted to local storage after every change so they
survive restarts. ``drain`` replays them once connectivity returns.
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from rakgame.core.error_handler import PermanentDropError, QueueReplayError, log_error
from rakgame.core.models import is_temp_id
from rakgame.sync.local_storage import LocalStorage, LocalStorageError

logger = logging.getLogger(__name__)

QUEUE_KEY = 'rakgame_sync_queue'
MAX_RETRIES = 3


class OperationType(str, Enum):
    CREATE_GAME = 'create_game'
    UPDATE_GAME = 'update_game'
    DELETE_GAME = 'delete_game'
    CREATE_SELLER = 'create_seller'
    UPDATE_SELLER = 'update_seller'
    DELETE_SELLER = 'delete_seller'

    @property
    def action(self) -> str:
        return self.value.split('_', 1)[0]

    @property
    def record_kind(self) -> str:
        return self.value.split('_', 1)[1] + 's'

    @classmethod
    def for_action(cls, action: str, record_kind: str) -> 'OperationType':
        return cls(f"{action}_{record_kind.rstrip('s')}")


class SyncOperation(BaseModel):
    """A single write intent against the games or sellers collection"""
    type: OperationType
    id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    client_id: Optional[str] = None

    @model_validator(mode='after')
    def _check_shape(self) -> 'SyncOperation':
        action = self.type.action
        if action == 'create':
            if self.id is not None or self.data is None:
                raise ValueError("create operations carry data and no target id")
        elif action == 'update':
            if not self.id or self.data is None:
                raise ValueError("update operations need a target id and data")
        elif not self.id or self.data is not None:
            raise ValueError("delete operations need a target id and no data")
        return self


class QueuedOperation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    operation: SyncOperation
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    retries: int = 0


@dataclass(frozen=True)
class DrainResult:
    succeeded: int = 0
    failed: int = 0


@dataclass(frozen=True)
class ReplayEvent:
    """Published after each replayed or permanently dropped operation"""
    kind: str  # 'replayed' or 'dropped'
    queued: QueuedOperation
    record: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None


ReplayListener = Callable[[ReplayEvent], None]


class SyncQueue:
    """Durable FIFO of pending writes with bounded retry"""

    def __init__(
        self,
        storage: LocalStorage,
        remote,
        collections: Optional[Dict[str, str]] = None,
        queue_key: str = QUEUE_KEY,
        max_retries: int = MAX_RETRIES
    ):
        self.storage = storage
        self.remote = remote
        self.collections = collections or {'games': 'games', 'sellers': 'sellers'}
        self.queue_key = queue_key
        self.max_retries = max_retries
        self._listeners: List[ReplayListener] = []
        self._processing = False
        # operations snapshotted by a running drain and not yet replayed
        self._draining: Deque[QueuedOperation] = deque()
        self._queue: List[QueuedOperation] = self._load_queue()

    def _load_queue(self) -> List[QueuedOperation]:
        try:
            stored = self.storage.get_item(self.queue_key)
        except LocalStorageError as e:
            logger.error(f"Error loading sync queue: {str(e)}")
            return []

        if not stored:
            return []

        try:
            raw = json.loads(stored)
            if not isinstance(raw, list):
                raise ValueError("sync queue is not a list")
            queue = [QueuedOperation.model_validate(item) for item in raw]
        except (TypeError, ValueError) as e:
            logger.error(f"Discarding unreadable sync queue: {str(e)}")
            return []

        logger.info(f"Loaded {len(queue)} pending operation(s)")
        return queue

    def _save_queue(self) -> None:
        try:
            unsent = list(self._draining) + self._queue
            payload = json.dumps([queued.model_dump(mode='json') for queued in unsent])
            self.storage.set_item(self.queue_key, payload)
        except (LocalStorageError, TypeError, ValueError) as e:
            logger.error(f"Error saving sync queue: {str(e)}")

    def add_listener(self, listener: ReplayListener) -> None:
        self._listeners.append(listener)

    def _publish(self, event: ReplayEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Sync queue listener failed")

    def enqueue(self, operation: SyncOperation) -> QueuedOperation:
        """Append an operation and persist the queue"""
        queued = QueuedOperation(operation=operation)
        self._queue.append(queued)
        self._save_queue()
        logger.info(f"Queued {operation.type.value} ({queued.id})")
        return queued

    async def drain(self) -> DrainResult:
        """
        Replay every queued operation in order.

        Operations that fail are moved to the tail of the queue until they have
        failed ``max_retries`` times, after which they are dropped and counted as
        failed. Returns ``DrainResult(0, 0)`` without doing anything when a drain
        is already running or the queue is empty.
        """
        if self._processing or not self._queue:
            return DrainResult()

        self._processing = True
        succeeded = 0
        failed = 0
        try:
            pending = self._draining
            pending.extend(self._queue)
            self._queue = []

            while pending:
                # stays at the head of the persisted queue until it has been replayed
                queued = pending[0]
                try:
                    record = await self._execute_operation(queued.operation)
                except Exception as e:
                    pending.popleft()
                    queued.retries += 1
                    if queued.retries < self.max_retries:
                        logger.warning(
                            f"Replay of {queued.operation.type.value} ({queued.id}) failed, "
                            f"attempt {queued.retries}/{self.max_retries}: {str(e)}"
                        )
                        self._queue.append(queued)
                    else:
                        failed += 1
                        dropped = PermanentDropError(
                            f"Dropping {queued.operation.type.value} ({queued.id}) after {queued.retries} attempts: {str(e)}",
                            error_code='RETRY_LIMIT_EXCEEDED',
                            details=queued.operation.model_dump(mode='json')
                        )
                        log_error(dropped, context=dropped.details)
                        self._publish(ReplayEvent('dropped', queued, error=dropped))
                    self._save_queue()
                    continue

                pending.popleft()
                succeeded += 1
                client_id = queued.operation.client_id
                if client_id and record and record.get('id'):
                    self._rewrite_target(client_id, record['id'], pending)
                self._save_queue()
                self._publish(ReplayEvent('replayed', queued, record))
        finally:
            if self._draining:
                # interrupted: unreplayed operations keep their place at the head
                self._queue = list(self._draining) + self._queue
                self._draining.clear()
            self._save_queue()
            self._processing = False

        logger.info(f"Sync queue drained: {succeeded} succeeded, {failed} failed, {len(self._queue)} pending")
        return DrainResult(succeeded, failed)

    def _rewrite_target(self, temp_id: str, record_id: str, pending: Deque[QueuedOperation]) -> None:
        """Point operations queued against a now-confirmed temporary id at the real record"""
        for queued in list(pending) + self._queue:
            if queued.operation.id == temp_id:
                queued.operation.id = record_id

    def has_pending(self, record_id: str) -> bool:
        """Whether an operation not yet replayed still targets record_id"""
        return any(queued.operation.id == record_id for queued in list(self._draining) + self._queue)

    def retarget(self, temp_id: str, record_id: str) -> None:
        """Point queued operations at the permanent id of a record confirmed outside the queue"""
        if self.has_pending(temp_id):
            self._rewrite_target(temp_id, record_id, self._draining)
            self._save_queue()

    async def _execute_operation(self, operation: SyncOperation) -> Optional[Dict[str, Any]]:
        kind = operation.type
        collection = self.collections[kind.record_kind]

        if kind.action == 'create':
            return await self.remote.create(collection, operation.data)

        if is_temp_id(operation.id):
            raise QueueReplayError(
                f"Record {operation.id} has not been created yet",
                error_code='UNRESOLVED_TEMP_ID'
            )

        if kind.action == 'update':
            return await self.remote.update(collection, operation.id, operation.data)

        await self.remote.delete(collection, operation.id)
        return None

    def length(self) -> int:
        return len(self._queue)

    def is_processing(self) -> bool:
        return self._processing

    def peek(self) -> List[QueuedOperation]:
        """Copies of the queued operations, oldest first"""
        return [queued.model_copy(deep=True) for queued in self._queue]

    def clear(self) -> None:
        """Drop every pending operation (logout/reset)"""
        self._queue = []
        self._save_queue()
