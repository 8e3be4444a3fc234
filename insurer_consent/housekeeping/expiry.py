from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from anyio import to_thread

from insurer_consent.core.config import settings
from insurer_consent.core.correlation import correlation_scope
from insurer_consent.core.metrics import inc_consents_rejected
from insurer_consent.db.session import SessionLocal
from insurer_consent.repositories.consents import expire_due
from insurer_consent.utils import timeutil

class ExpirySweeper:
    """
    Periodically applies the time-based consent transitions in bulk.

    Reads already apply them lazily, one consent at a time; the sweep keeps
    stored state honest for consents nobody reads.
    """

    def __init__(self, interval_seconds: int = 60, session_factory=SessionLocal) -> None:
        self.interval = interval_seconds
        self._session_factory = session_factory
        self._task: asyncio.Task | None = None
        self._stopping = False

    async def start(self) -> None:
        if self._task:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")

    async def stop(self) -> None:
        self._stopping = True
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None

    async def _run(self) -> None:
        log = logging.getLogger("expiry")
        while not self._stopping:
            # Each pass gets its own id so its log lines can be grouped
            with correlation_scope():
                try:
                    count = await to_thread.run_sync(self.expire_once)
                    if count:
                        log.info("expired consents", extra={"count": count})
                except Exception:
                    log.exception("expiry sweep failed")
            await asyncio.sleep(self.interval)

    def expire_once(self) -> int:
        now = timeutil.utcnow()
        awaiting_cutoff = now - timedelta(seconds=settings.CONSENT_AUTHORISATION_TIMEOUT_SECONDS)
        db = self._session_factory()
        try:
            counts = expire_due(db, now=now, awaiting_cutoff=awaiting_cutoff)
        finally:
            db.close()
        for reason_code, count in counts.items():
            if count:
                inc_consents_rejected(reason_code, count)
        return sum(counts.values())
