from __future__ import annotations
import hashlib

def payload_fingerprint(body: bytes) -> str:
    # Hash the raw bytes as received; no re-serialisation, so key order counts
    return hashlib.sha256(body).hexdigest()
