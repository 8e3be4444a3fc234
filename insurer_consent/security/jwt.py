from __future__ import annotations
import time
from typing import Any, Dict, Iterable, Optional, Set
import httpx
import jwt
from anyio import to_thread
from fastapi import Header, HTTPException, Request, status
from insurer_consent.core.config import settings

# Either role lets a third party create and read its consents
TPP_ROLES: Set[str] = {"tpp", "consents:create"}
# Held by the authorization server that reports the user's decision
AUTHORISATION_SERVER_ROLES: Set[str] = {"consents:authorise"}


class OIDCKeyCache:
    """
    Discovery document and signing keys for one issuer.

    Built once per application and kept on ``app.state.key_cache``. The
    discovery document is refreshed after ``config_ttl`` seconds and each
    signing key (by ``kid``) after ``key_ttl`` seconds.
    """

    def __init__(
        self,
        issuer: str,
        wellknown_url: Optional[str] = None,
        config_ttl: int = 300,
        key_ttl: int = 300,
        http_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.issuer = issuer
        self.wellknown_url = wellknown_url or f"{issuer.rstrip('/')}/.well-known/openid-configuration"
        self.config_ttl = config_ttl
        self.key_ttl = key_ttl
        self.http_timeout = http_timeout
        self._transport = transport
        self._conf: Optional[Dict[str, Any]] = None
        self._conf_exp: float = 0.0
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._jwk_client: Optional[jwt.PyJWKClient] = None
        self._jwks_uri: Optional[str] = None

    async def get_oidc_conf(self) -> Dict[str, Any]:
        now = time.time()
        if self._conf and now < self._conf_exp:
            return self._conf
        async with httpx.AsyncClient(timeout=self.http_timeout, transport=self._transport) as client:
            r = await client.get(self.wellknown_url)
            if r.status_code != 200:
                raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="oidc_config_unavailable")
            conf = r.json()
        self._conf = conf
        self._conf_exp = now + self.config_ttl
        return conf

    async def get_signing_key(self, token: str):
        kid = jwt.get_unverified_header(token).get("kid")

        now = time.time()
        cached = self._keys.get(kid) if kid else None
        if cached and cached["exp"] > now:
            return cached["key"]

        conf = await self.get_oidc_conf()
        jwks_uri = conf.get("jwks_uri")
        if not jwks_uri:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="jwks_unavailable")

        if self._jwk_client is None or self._jwks_uri != jwks_uri:
            self._jwk_client = jwt.PyJWKClient(jwks_uri, timeout=int(self.http_timeout))
            self._jwks_uri = jwks_uri
        # PyJWKClient fetches with blocking urllib
        signing_key = await to_thread.run_sync(self._jwk_client.get_signing_key_from_jwt, token)
        key = signing_key.key

        if kid:
            self._keys[kid] = {"key": key, "exp": now + self.key_ttl}
        return key

    def clear(self) -> None:
        self._conf = None
        self._conf_exp = 0.0
        self._keys.clear()
        self._jwk_client = None
        self._jwks_uri = None


def build_key_cache() -> OIDCKeyCache:
    return OIDCKeyCache(
        issuer=settings.KEYCLOAK_ISSUER,
        wellknown_url=settings.KEYCLOAK_WELLKNOWN_URL or None,
        config_ttl=settings.OIDC_CONFIG_TTL_SECONDS,
        key_ttl=settings.JWKS_KEY_TTL_SECONDS,
    )


def _collect_roles(payload: Dict[str, Any]) -> Set[str]:
    roles: Set[str] = set()
    # Realm roles
    realm = payload.get("realm_access", {}) or {}
    roles.update(realm.get("roles", []) or [])
    # Client roles for the audience client(s) and the authorized party
    ra = payload.get("resource_access", {}) or {}
    aud = payload.get("aud")
    clients = list(aud) if isinstance(aud, list) else [aud]
    clients.append(payload.get("azp"))
    for c in clients:
        if isinstance(c, str):
            roles.update((ra.get(c, {}) or {}).get("roles", []) or [])
    return roles


def _require_roles(roles: Iterable[str], required: Set[str]) -> None:
    if required.isdisjoint(roles):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_permissions")


def _client_id_from(payload: Dict[str, Any]) -> Optional[str]:
    # azp is the most stable; fall back to client_id, then the first audience
    if isinstance(payload.get("azp"), str):
        return payload["azp"]
    if isinstance(payload.get("client_id"), str):
        return payload["client_id"]
    aud = payload.get("aud")
    if isinstance(aud, str):
        return aud
    if isinstance(aud, list) and aud:
        return aud[0]
    return None


async def _decode_bearer(request: Request, authorization: Optional[str]) -> Dict[str, Any]:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    token = authorization.split(" ", 1)[1]

    key_cache: OIDCKeyCache = request.app.state.key_cache
    try:
        key = await key_cache.get_signing_key(token)
        return jwt.decode(
            token,
            key=key,
            algorithms=["RS256"],
            audience=settings.KEYCLOAK_AUDIENCE,
            issuer=settings.KEYCLOAK_ISSUER,
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token_expired")
    except jwt.InvalidAudienceError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_audience")
    except jwt.InvalidIssuerError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_issuer")
    except jwt.PyJWKClientError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="jwks_fetch_failed")
    except jwt.PyJWTError:
        # covers signature errors, decode errors, invalid claims, etc.
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    except httpx.HTTPError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="jwks_fetch_failed")


async def _authenticate(request: Request, authorization: Optional[str], required: Set[str]) -> Dict[str, Any]:
    # Optional development bypass
    if settings.SKIP_JWT:
        return {
            "tpp_client_id": "dev-bypass",
            "tenant_id": settings.DEFAULT_TENANT_ID,
            "roles": sorted(required),
            "sub": None,
            "scope": "",
            "raw": {},
        }

    payload = await _decode_bearer(request, authorization)
    roles = _collect_roles(payload)
    _require_roles(roles, required)

    tpp_client_id = _client_id_from(payload)
    if not tpp_client_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="client_id_missing")

    return {
        "tpp_client_id": tpp_client_id,
        "tenant_id": payload.get("tenant_id"),
        "roles": sorted(roles),
        "sub": payload.get("sub"),
        "scope": payload.get("scope", ""),
        "raw": payload,
    }


async def get_current_client(request: Request, Authorization: Optional[str] = Header(None)):
    return await _authenticate(request, Authorization, TPP_ROLES)


async def get_authorisation_server(request: Request, Authorization: Optional[str] = Header(None)):
    return await _authenticate(request, Authorization, AUTHORISATION_SERVER_ROLES)


def tenant_of(client: Dict[str, Any]) -> str:
    """Every consent lives in a tenant; tokens without the claim fall into the default one."""
    return client.get("tenant_id") or settings.DEFAULT_TENANT_ID
