"""
Exactly-once execution for mutating endpoints keyed by ``X-Idempotency-Key``.

Two halves cooperate through ``request.state``:

* ``idempotency_guard`` is a route dependency. It requires the header,
  fingerprints the raw body, and atomically claims the key before the handler
  runs. A lost claim replays the stored response or fails with a conflict.
* ``IdempotencyMiddleware`` captures the handler's response. It completes the
  claimed record on a cacheable status and releases it otherwise.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from insurer_consent.core.config import settings
from insurer_consent.core.errors import (
    IdempotencyInProgress,
    IdempotencyKeyMissing,
    IdempotencyPayloadMismatch,
    IdempotencyStorageError,
)
from insurer_consent.core.metrics import inc_idempotency_replays
from insurer_consent.security.jwt import get_current_client, tenant_of
from insurer_consent.utils.hashutils import payload_fingerprint
from insurer_consent.utils.idempotency import IdempotencyEntry, IdempotencyStore

log = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "X-Idempotency-Key"
REPLAYED_HEADER = "Idempotency-Replayed"
# Response headers stored with the body so a replay matches the first response
REPLAYABLE_HEADERS = ("content-type", "location")


@dataclass(frozen=True)
class IdempotencyClaim:
    namespace: str
    key: str


class IdempotentReplay(Exception):
    """Short-circuits the route with a previously stored response."""

    def __init__(self, entry: IdempotencyEntry):
        self.entry = entry
        super().__init__(entry.key)


def _store(request: Request) -> IdempotencyStore:
    return request.app.state.idempotency_store


async def _wait_for_completion(store: IdempotencyStore, namespace: str, key: str) -> Optional[IdempotencyEntry]:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.IDEMPOTENCY_WAIT_SECONDS
    entry = await store.get(namespace, key)
    while entry is not None and not entry.completed and loop.time() < deadline:
        await asyncio.sleep(settings.IDEMPOTENCY_POLL_INTERVAL_SECONDS)
        entry = await store.get(namespace, key)
    return entry


async def idempotency_guard(
    request: Request,
    client: Dict[str, Any] = Depends(get_current_client),
) -> None:
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if not key:
        raise IdempotencyKeyMissing()

    body = await request.body()
    fingerprint = payload_fingerprint(body)
    namespace = f"{tenant_of(client)}:{client['tpp_client_id']}"
    store = _store(request)

    # Second pass only happens if the holder released the key while we looked at it
    for _ in range(2):
        claimed, existing = await store.claim(namespace, key, fingerprint)
        if claimed:
            request.state.idempotency_claim = IdempotencyClaim(namespace=namespace, key=key)
            return

        if existing is not None and not existing.completed and existing.request_fingerprint == fingerprint:
            existing = await _wait_for_completion(store, namespace, key)
        if existing is None:
            continue

        if existing.request_fingerprint != fingerprint:
            log.info("mismatched idempotent request payload", extra={"idempotency_key": key})
            raise IdempotencyPayloadMismatch()

        if existing.completed:
            log.info("returning cached idempotency response", extra={"idempotency_key": key})
            inc_idempotency_replays()
            raise IdempotentReplay(existing)

        raise IdempotencyInProgress()

    raise IdempotencyInProgress()


async def idempotent_replay_handler(request: Request, exc: IdempotentReplay):
    entry = exc.entry
    headers = {**(entry.response_headers or {}), REPLAYED_HEADER: "true"}
    if not entry.response_body:
        return Response(status_code=entry.status_code or 200, headers=headers)
    return Response(
        content=entry.response_body,
        status_code=entry.status_code or 200,
        media_type="application/json",
        headers=headers,
    )


class IdempotencyMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, cacheable_status_codes: Iterable[int] | None = None):
        super().__init__(app)
        self.cacheable_status_codes = set(cacheable_status_codes or (200, 201, 202))

    async def dispatch(self, request: Request, call_next):
        try:
            response: Response = await call_next(request)
        except Exception:
            await self._release(request)
            raise

        claim: Optional[IdempotencyClaim] = getattr(request.state, "idempotency_claim", None)
        if claim is None:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        store = _store(request)
        try:
            if response.status_code in self.cacheable_status_codes:
                stable = {name: response.headers[name] for name in REPLAYABLE_HEADERS if name in response.headers}
                await store.complete(claim.namespace, claim.key, response.status_code, body, stable)
            else:
                await store.release(claim.namespace, claim.key)
        except IdempotencyStorageError:
            # The handler already succeeded; bookkeeping failures must not change the response
            log.error("failed to store idempotent response", extra={"idempotency_key": claim.key}, exc_info=True)

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )

    @staticmethod
    async def _release(request: Request) -> None:
        claim: Optional[IdempotencyClaim] = getattr(request.state, "idempotency_claim", None)
        if claim is None:
            return
        try:
            await _store(request).release(claim.namespace, claim.key)
        except IdempotencyStorageError:
            log.error("failed to release idempotency key", extra={"idempotency_key": claim.key}, exc_info=True)
