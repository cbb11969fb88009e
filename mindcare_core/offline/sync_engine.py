# =============================================================================
# mindcare_core/offline/sync_engine.py
# Serialized Background Flush to the Remote Store
# =============================================================================
"""
SyncQueue - decouples a write from remote-flush latency.

Features:
- FIFO of full collection snapshots, flushed one at a time
- At most one drain task per queue
- A failed item goes back to the front and draining stops; the next
  enqueue starts a new drain that retries it first
- Status callbacks (syncing / synced / pending)

There is no timer-based retry and no backoff: during an outage nothing is
flushed until another write arrives or ``drain()`` is called explicitly.
"""

from __future__ import annotations
import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional
import logging

from mindcare_core.errors import MindCareError

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Sync status broadcast to subscribers."""
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    PENDING = "pending"


@dataclass
class SyncItem:
    """A snapshot waiting to be written to the remote store."""
    document_name: str
    snapshot: Any
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=datetime.now)


@dataclass
class SyncState:
    """Current sync state."""
    status: SyncStatus = SyncStatus.IDLE
    is_draining: bool = False
    last_flush: Optional[datetime] = None
    last_error: Optional[str] = None
    failed_count: int = 0
    total_flushed: int = 0


class SyncQueue:
    """
    Flushes queued snapshots to the remote store in order.

    Usage:
        queue = SyncQueue(remote_store)
        queue.enqueue("patients.json", patients)   # returns immediately
        await queue.wait_until_idle()
    """

    def __init__(self, remote_store):
        self._remote_store = remote_store
        self._queue: Deque[SyncItem] = deque()
        self._state = SyncState()
        self._drain_task: Optional[asyncio.Task] = None
        self._in_flight: Optional[SyncItem] = None
        self._callbacks: List[Callable[[SyncStatus], None]] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def status(self) -> SyncStatus:
        return self._state.status

    @property
    def is_draining(self) -> bool:
        return self._state.is_draining

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> Optional[SyncItem]:
        """The snapshot being uploaded right now, if any."""
        return self._in_flight

    def pending_items(self) -> List[SyncItem]:
        """Queued items, head first."""
        return list(self._queue)

    def has_pending(self, document_name: str) -> bool:
        """True if a snapshot of this document has not reached the remote store yet."""
        if self._in_flight is not None and self._in_flight.document_name == document_name:
            return True
        return any(item.document_name == document_name for item in self._queue)

    def enqueue(self, document_name: str, snapshot: Any) -> None:
        """
        Queue a snapshot and start draining unless a drain is running.

        Must be called from within a running event loop.
        """
        self._queue.append(SyncItem(document_name=document_name, snapshot=snapshot))
        logger.debug(f"Queued '{document_name}' ({len(self._queue)} pending)")

        if not self._state.is_draining:
            # Set before scheduling so a second enqueue cannot start another loop
            self._state.is_draining = True
            self._drain_task = asyncio.get_running_loop().create_task(self._drain_loop())

    async def drain(self) -> bool:
        """
        Flush everything queued now.

        If a drain is already running, waits for it instead of starting another.

        Returns:
            True if the queue is empty afterwards
        """
        if self._state.is_draining:
            await self.wait_until_idle()
            return not self._queue

        if not self._queue:
            return True

        self._state.is_draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain_loop())
        return await asyncio.shield(self._drain_task)

    async def _drain_loop(self) -> bool:
        self._set_status(SyncStatus.SYNCING)
        try:
            while self._queue:
                item = self._queue.popleft()
                item.attempts += 1
                self._in_flight = item
                try:
                    await self._remote_store.save_document(item.document_name, item.snapshot)
                except Exception as e:
                    self._in_flight = None
                    self._queue.appendleft(item)
                    self._state.failed_count += 1
                    self._state.last_error = str(e)
                    if isinstance(e, MindCareError):
                        logger.warning(f"Flush of '{item.document_name}' failed, {len(self._queue)} pending: {e}")
                    else:
                        logger.error(f"Unexpected error flushing '{item.document_name}': {e}", exc_info=True)
                    self._state.is_draining = False
                    self._set_status(SyncStatus.PENDING)
                    return False

                self._in_flight = None
                self._state.last_flush = datetime.now()
                self._state.total_flushed += 1
                logger.debug(f"Flushed '{item.document_name}'")

            self._state.is_draining = False
            self._state.last_error = None
            self._set_status(SyncStatus.SYNCED)
            return True
        finally:
            self._in_flight = None
            self._state.is_draining = False

    async def wait_until_idle(self) -> None:
        """Wait for the running drain (if any) to finish or stop on failure."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    def subscribe(self, callback: Callable[[SyncStatus], None]) -> None:
        """Register a callback for sync status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable[[SyncStatus], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _set_status(self, status: SyncStatus) -> None:
        self._state.status = status
        for callback in self._callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "status": self._state.status.value,
            "is_draining": self._state.is_draining,
            "pending_count": self.pending_count,
            "last_flush": self._state.last_flush.isoformat() if self._state.last_flush else None,
            "last_error": self._state.last_error,
            "failed_count": self._state.failed_count,
            "total_flushed": self._state.total_flushed,
        }
