"""
Security Event Bus

Single write path to the audit store with two delivery modes:
- immediate: committed before publish() returns (critical path, pattern
  detection reads it back right away)
- deferred: queued in memory and written in batches, on size threshold or
  on the periodic flush timer; a store outage can hold at most max_pending
  events, the oldest are dropped beyond that
"""

import asyncio
import contextlib
import logging
from typing import List, Optional

from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.entities import AuditEvent

logger = logging.getLogger(__name__)


class SecurityEventBus:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        batch_size: int = 50,
        flush_interval: float = 10.0,
        max_pending: int = 5000,
    ):
        self.uow_factory = uow_factory
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.max_pending = max(max_pending, batch_size)
        self._queue: List[AuditEvent] = []
        self._flush_lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def running(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    async def publish(self, event: AuditEvent, immediate: bool = True) -> AuditEvent:
        """
        Publish an audit event.

        Immediate publishes raise on store failure; deferred publishes never
        raise (a failed batch is re-queued and retried on the next flush).
        """
        if immediate:
            async with self.uow_factory() as uow:
                created = await uow.audit_events.create(event)
                await uow.commit()
            return created

        self._queue.append(event)
        if len(self._queue) >= self.batch_size:
            await self.flush()
        return event

    async def flush(self) -> int:
        """Write all queued events in one batch. Returns the number written."""
        async with self._flush_lock:
            if not self._queue:
                return 0

            batch = self._queue
            self._queue = []

            try:
                async with self.uow_factory() as uow:
                    await uow.audit_events.create_many(batch)
                    await uow.commit()
            except Exception:
                logger.exception(f"Failed to flush {len(batch)} audit events, re-queued")
                self._queue[:0] = batch
                self._trim_queue()
                return 0

            logger.debug(f"Flushed {len(batch)} audit events")
            return len(batch)

    def _trim_queue(self) -> None:
        overflow = len(self._queue) - self.max_pending
        if overflow > 0:
            del self._queue[:overflow]
            logger.error(f"Audit event queue over {self.max_pending}, dropped {overflow} oldest events")

    def start(self) -> None:
        """Start the periodic flush task (idempotent)."""
        if self.running:
            return
        self._flush_task = asyncio.create_task(self._periodic_flush())
        logger.info(f"Audit event bus started (flush every {self.flush_interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic flush task and write whatever is still queued."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task
            self._flush_task = None
            logger.info("Audit event bus stopped")
        await self.flush()

    async def _periodic_flush(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            await self.flush()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()
