"""
audit/recorder.py -- Fire-and-forget audit trail of who did what.

Route handlers call record() after they have built their response. record()
only builds the entry and puts it on an asyncio.Queue; a single worker task,
started and stopped by the app lifespan, writes entries to the Transactions
table through the data-access gateway in a worker thread.

Failure policy: the audit trail must never change the outcome of a request.
Every persistence error is caught in the worker and logged with the entry id
and route (never the payload). A full queue logs the dropped entry instead of
blocking the handler. Nothing is discarded without a log line.

Verbosity: mutating routes are always recorded. Read-only routes pass
read_only=True and are recorded only when audit verbosity is "high"
(LOGGING=high).

Layer rule: no imports from api/ or auth/. The gateway is injected.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger("homeinv.audit")

NO_ACTOR = "none"
_TABLE = "Transactions"


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable audit row. payload is already serialized JSON text."""

    id: str
    route: str
    payload: str
    actor: str
    timestamp: str

    def to_params(self) -> dict:
        return {
            "ID": self.id,
            "Route": self.route,
            "RequestPayload": self.payload,
            "AuthenticatedUsername": self.actor,
            "CreatedAt": self.timestamp,
        }


def build_entry(route: str, payload, actor: str | None) -> AuditLogEntry:
    """Create an entry with a fresh id; absent actors become the 'none' sentinel."""
    return AuditLogEntry(
        id=str(uuid.uuid4()),
        route=route,
        payload=json.dumps(payload, default=str, sort_keys=True),
        actor=actor or NO_ACTOR,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class AuditRecorder:
    """Queue-backed background writer for AuditLogEntry rows.

    Usage (inside the app lifespan):
        recorder = AuditRecorder(store, record_reads=settings.audit_reads)
        await recorder.start()
        ...
        recorder.record("POST /api/inventory", params, identity.username)
        ...
        await recorder.stop()   # drains pending entries first
    """

    def __init__(self, gateway, record_reads: bool = False, max_pending: int = 1000) -> None:
        self._gateway = gateway
        self.record_reads = record_reads
        self._max_pending = max_pending
        self._queue: asyncio.Queue[AuditLogEntry] | None = None
        self._worker: asyncio.Task | None = None

    def record(self, route: str, payload, actor: str | None, *, read_only: bool = False) -> AuditLogEntry | None:
        """Queue an audit entry and return immediately.

        Returns the queued entry, or None when it was skipped (read-only route
        at normal verbosity) or dropped (queue full / recorder not started).
        Never raises. Call from the event loop thread (async route handlers);
        asyncio.Queue is not thread-safe.
        """
        if read_only and not self.record_reads:
            return None
        try:
            entry = build_entry(route, payload, actor)
        except (TypeError, ValueError):
            logger.exception("Audit entry for %s could not be serialized; skipped", route)
            return None
        if self._queue is None:
            logger.warning("Audit recorder not running; dropped entry %s for %s", entry.id, route)
            return None
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning("Audit queue full; dropped entry %s for %s", entry.id, route)
            return None
        return entry

    async def start(self) -> None:
        """Create the queue and the worker task on the running event loop."""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue(maxsize=self._max_pending)
        self._worker = asyncio.create_task(self._run(), name="audit-recorder")
        self._worker.add_done_callback(self._on_worker_done)

    async def drain(self) -> None:
        """Wait until every queued entry has been persisted or logged as failed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain pending entries, then cancel the worker."""
        if self._worker is None:
            return
        if not self._worker.done():
            await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            entry = await self._queue.get()
            try:
                await asyncio.to_thread(self._persist, entry)
            except Exception:
                logger.exception("Audit write failed for entry %s (%s)", entry.id, entry.route)
            finally:
                self._queue.task_done()

    def _persist(self, entry: AuditLogEntry) -> None:
        self._gateway.execute_query(_TABLE, "CREATE", entry.to_params())

    @staticmethod
    def _on_worker_done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Audit worker stopped unexpectedly", exc_info=task.exception())
