"""
Consent <-> OAuth scope binding.

The authorization layer has no first-class consent field, so the consent id
travels inside the scope string as a dynamic scope::

    openid consents consent:urn:insurer:consent:7c1e...

Scope strings are parsed into tagged tokens instead of being split ad hoc at
each call site.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple
from uuid import UUID

from insurer_consent.core.config import settings

CONSENT_SCOPE_NAME = "consent"
CONSENTS_SCOPE = "consents"  # static scope for the consent API itself


@dataclass(frozen=True)
class ScopeToken:
    raw: str
    name: str
    value: Optional[str] = None  # set only for dynamic scopes

    @property
    def is_dynamic(self) -> bool:
        return self.value is not None


def _classify(raw: str) -> ScopeToken:
    prefix = f"{CONSENT_SCOPE_NAME}:"
    if raw.startswith(prefix):
        return ScopeToken(raw=raw, name=CONSENT_SCOPE_NAME, value=raw[len(prefix):])
    return ScopeToken(raw=raw, name=raw)


def parse_scopes(scope: str | None) -> List[ScopeToken]:
    if not scope:
        return []
    return [_classify(raw) for raw in scope.split(" ") if raw]


def consent_urn(consent_id: UUID | str) -> str:
    return f"{settings.CONSENT_URN_PREFIX}{consent_id}"


def strip_urn(value: str) -> str:
    prefix = settings.CONSENT_URN_PREFIX
    return value[len(prefix):] if value.startswith(prefix) else value


def encode_consent_scope(consent_id: UUID | str) -> str:
    return f"{CONSENT_SCOPE_NAME}:{consent_urn(strip_urn(str(consent_id)))}"


def decode_consent_id(scope: str | None) -> Tuple[str, bool]:
    """Return the raw consent id carried by the first ``consent:`` token, if any."""
    for token in parse_scopes(scope):
        if token.name == CONSENT_SCOPE_NAME and token.value:
            return strip_urn(token.value), True
    return "", False
