"""
Idempotency record stores.

Both backends expose the same async API and the same atomic primitive: a
``claim`` that inserts a PENDING record only if the (namespace, key) pair is
free. Losing the claim hands back whatever record is already there so the
caller can replay it or report a conflict.
"""
from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from anyio import to_thread
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from insurer_consent.cache.redis_client import build_redis
from insurer_consent.core.config import Settings, settings
from insurer_consent.core.errors import IdempotencyStorageError
from insurer_consent.db.session import SessionLocal
from insurer_consent.models.idempotency import IdempotencyRecord
from insurer_consent.utils import timeutil

log = logging.getLogger(__name__)

STATE_PENDING = "PENDING"
STATE_COMPLETED = "COMPLETED"


@dataclass
class IdempotencyEntry:
    key: str
    request_fingerprint: str
    state: str
    status_code: Optional[int] = None
    response_body: Optional[bytes] = None
    response_headers: Optional[Dict[str, str]] = None

    @property
    def completed(self) -> bool:
        return self.state == STATE_COMPLETED


ClaimResult = Tuple[bool, Optional[IdempotencyEntry]]


class IdempotencyStore(Protocol):
    async def claim(self, namespace: str, key: str, fingerprint: str) -> ClaimResult: ...

    async def get(self, namespace: str, key: str) -> Optional[IdempotencyEntry]: ...

    async def complete(
        self, namespace: str, key: str, status_code: int, body: bytes, headers: Optional[Dict[str, str]] = None
    ) -> None: ...

    async def release(self, namespace: str, key: str) -> None: ...


class SqlIdempotencyStore:
    """
    Backed by ``idempotency_records``; the composite primary key is the uniqueness guard.

    A PENDING row older than ``lock_seconds`` belongs to a request that never
    completed or released it, and the next claim takes it over.
    """

    def __init__(self, session_factory: Callable[[], Session], lock_seconds: int = 60) -> None:
        self._session_factory = session_factory
        self.lock_seconds = lock_seconds

    async def claim(self, namespace: str, key: str, fingerprint: str) -> ClaimResult:
        return await to_thread.run_sync(self._claim, namespace, key, fingerprint)

    async def get(self, namespace: str, key: str) -> Optional[IdempotencyEntry]:
        return await to_thread.run_sync(self._get, namespace, key)

    async def complete(
        self, namespace: str, key: str, status_code: int, body: bytes, headers: Optional[Dict[str, str]] = None
    ) -> None:
        await to_thread.run_sync(self._complete, namespace, key, status_code, body, headers)

    async def release(self, namespace: str, key: str) -> None:
        await to_thread.run_sync(self._release, namespace, key)

    def _claim(self, namespace: str, key: str, fingerprint: str) -> ClaimResult:
        now = timeutil.utcnow()
        try:
            with self._session_factory() as db:
                db.add(IdempotencyRecord(
                    namespace=namespace,
                    id=key,
                    state=STATE_PENDING,
                    request_fingerprint=fingerprint,
                    created_at=now,
                    updated_at=now,
                ))
                try:
                    db.commit()
                    return True, None
                except IntegrityError:
                    db.rollback()

                if self._take_over_stale(db, namespace, key, fingerprint, now):
                    log.warning("took over abandoned idempotency claim", extra={"idempotency_key": key})
                    return True, None
                return False, self._select(db, namespace, key)
        except SQLAlchemyError as e:
            raise IdempotencyStorageError("could not claim the idempotency key") from e

    def _take_over_stale(self, db: Session, namespace: str, key: str, fingerprint: str, now) -> bool:
        stmt = (
            update(IdempotencyRecord)
            .where(IdempotencyRecord.namespace == namespace)
            .where(IdempotencyRecord.id == key)
            .where(IdempotencyRecord.state == STATE_PENDING)
            .where(IdempotencyRecord.updated_at < now - timedelta(seconds=self.lock_seconds))
            .values(request_fingerprint=fingerprint, created_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        taken = db.execute(stmt).rowcount == 1
        db.commit()
        return taken

    def _get(self, namespace: str, key: str) -> Optional[IdempotencyEntry]:
        try:
            with self._session_factory() as db:
                return self._select(db, namespace, key)
        except SQLAlchemyError as e:
            raise IdempotencyStorageError("error fetching the idempotency record") from e

    def _complete(
        self, namespace: str, key: str, status_code: int, body: bytes, headers: Optional[Dict[str, str]] = None
    ) -> None:
        stmt = (
            update(IdempotencyRecord)
            .where(IdempotencyRecord.namespace == namespace)
            .where(IdempotencyRecord.id == key)
            .where(IdempotencyRecord.state == STATE_PENDING)
            .values(state=STATE_COMPLETED, status_code=status_code, response_body=body,
                    response_headers=headers, updated_at=timeutil.utcnow())
        )
        try:
            with self._session_factory() as db:
                db.execute(stmt)
                db.commit()
        except SQLAlchemyError as e:
            raise IdempotencyStorageError("could not save the idempotency record") from e

    def _release(self, namespace: str, key: str) -> None:
        stmt = (
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.namespace == namespace)
            .where(IdempotencyRecord.id == key)
            .where(IdempotencyRecord.state == STATE_PENDING)
        )
        try:
            with self._session_factory() as db:
                db.execute(stmt)
                db.commit()
        except SQLAlchemyError as e:
            raise IdempotencyStorageError("could not release the idempotency key") from e

    @staticmethod
    def _select(db: Session, namespace: str, key: str) -> Optional[IdempotencyEntry]:
        rec = db.execute(
            select(IdempotencyRecord).where(IdempotencyRecord.namespace == namespace, IdempotencyRecord.id == key)
        ).scalars().first()
        if rec is None:
            return None
        return IdempotencyEntry(
            key=rec.id,
            request_fingerprint=rec.request_fingerprint,
            state=rec.state,
            status_code=rec.status_code,
            response_body=rec.response_body,
            response_headers=rec.response_headers,
        )


class RedisIdempotencyStore:
    """SET NX claims with a short lock TTL; completed entries live for ``ttl_seconds``."""

    def __init__(self, redis: Redis, ttl_seconds: int = 24 * 60 * 60, lock_seconds: int = 60) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds
        self.lock_seconds = lock_seconds

    @staticmethod
    def _key(namespace: str, key: str) -> str:
        return f"idem:{namespace}:{key}"

    async def claim(self, namespace: str, key: str, fingerprint: str) -> ClaimResult:
        value = json.dumps({"state": STATE_PENDING, "request_fingerprint": fingerprint})
        try:
            ok = await self._redis.set(self._key(namespace, key), value, nx=True, ex=self.lock_seconds)
        except RedisError as e:
            raise IdempotencyStorageError("could not claim the idempotency key") from e
        if ok:
            return True, None
        return False, await self.get(namespace, key)

    async def get(self, namespace: str, key: str) -> Optional[IdempotencyEntry]:
        try:
            raw = await self._redis.get(self._key(namespace, key))
        except RedisError as e:
            raise IdempotencyStorageError("error fetching the idempotency record") from e
        if not raw:
            return None
        data: Dict[str, Any] = json.loads(raw)
        body = data.get("response_body")
        return IdempotencyEntry(
            key=key,
            request_fingerprint=data["request_fingerprint"],
            state=data["state"],
            status_code=data.get("status_code"),
            response_body=base64.b64decode(body) if body is not None else None,
            response_headers=data.get("response_headers"),
        )

    async def complete(
        self, namespace: str, key: str, status_code: int, body: bytes, headers: Optional[Dict[str, str]] = None
    ) -> None:
        current = await self.get(namespace, key)
        if current is None or current.completed:
            return
        value = json.dumps({
            "state": STATE_COMPLETED,
            "request_fingerprint": current.request_fingerprint,
            "status_code": status_code,
            "response_body": base64.b64encode(body).decode("ascii"),
            "response_headers": headers,
        })
        try:
            await self._redis.set(self._key(namespace, key), value, ex=self.ttl_seconds)
        except RedisError as e:
            raise IdempotencyStorageError("could not save the idempotency record") from e

    async def release(self, namespace: str, key: str) -> None:
        try:
            await self._redis.delete(self._key(namespace, key))
        except RedisError as e:
            raise IdempotencyStorageError("could not release the idempotency key") from e


def build_idempotency_store(cfg: Settings = settings) -> IdempotencyStore:
    if cfg.IDEMPOTENCY_BACKEND == "redis":
        return RedisIdempotencyStore(
            build_redis(cfg.REDIS_URL),
            ttl_seconds=cfg.IDEMPOTENCY_TTL_SECONDS,
            lock_seconds=cfg.IDEMPOTENCY_LOCK_SECONDS,
        )
    if cfg.IDEMPOTENCY_BACKEND != "sql":
        raise ValueError(f"unknown IDEMPOTENCY_BACKEND {cfg.IDEMPOTENCY_BACKEND!r}")
    return SqlIdempotencyStore(SessionLocal, lock_seconds=cfg.IDEMPOTENCY_LOCK_SECONDS)
