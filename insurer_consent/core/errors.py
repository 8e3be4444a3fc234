from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi import status as http
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from insurer_consent.core.correlation import get_correlation_id

logger = logging.getLogger(__name__)

# Map our short string details → human messages (expand as needed)
_MESSAGES = {
    "invalid_token": "The access token is invalid.",
    "token_expired": "The access token has expired.",
    "invalid_audience": "The token audience is not accepted.",
    "invalid_issuer": "The token issuer is not accepted.",
    "insufficient_permissions": "The access token lacks the required role.",
    "client_id_missing": "The access token does not identify a client.",
    "oidc_config_unavailable": "The identity provider configuration is unavailable.",
    "jwks_unavailable": "The identity provider signing keys are unavailable.",
    "jwks_fetch_failed": "The identity provider signing keys could not be fetched.",
    "forbidden": "You do not have permission to perform this action.",
    "not_found": "The requested resource was not found.",
}


class ConsentServiceError(Exception):
    """Base for typed domain errors; translated to the error envelope at the boundary."""

    code = "unprocessable"
    status_code = 422
    message = "The request could not be processed."

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class ConsentNotFound(ConsentServiceError):
    code = "not_found"
    status_code = http.HTTP_404_NOT_FOUND
    message = "The requested resource was not found."


class ConsentAccessDenied(ConsentNotFound):
    # Same code and message as not-found so existence does not leak
    pass


class InvalidPermissions(ConsentServiceError):
    code = "invalid_permissions"
    message = "The requested permissions are invalid."

    def __init__(self, message: str, rule: str):
        self.rule = rule
        super().__init__(message, details={"rule": rule})


class ResourcesReadAlone(InvalidPermissions):
    code = "resources_read_alone"
    status_code = http.HTTP_400_BAD_REQUEST

    def __init__(self):
        super().__init__("RESOURCES_READ cannot be requested alone", rule="resources_read_alone")


class InvalidExpiration(ConsentServiceError):
    code = "invalid_expiration"
    status_code = http.HTTP_400_BAD_REQUEST
    message = "The expiration date time is invalid."


class AlreadyRejected(ConsentServiceError):
    code = "consent_already_rejected"
    message = "The consent is already rejected."


class ConsentStateConflict(ConsentServiceError):
    code = "invalid_state"
    status_code = http.HTTP_409_CONFLICT
    message = "The resource is not in a valid state for this operation."


class IdempotencyKeyMissing(ConsentServiceError):
    code = "idempotency_key_missing"
    message = "X-Idempotency-Key header is required."


class IdempotencyPayloadMismatch(ConsentServiceError):
    code = "idempotency_conflict"
    status_code = http.HTTP_409_CONFLICT
    message = "The request payload does not match the previous request for this idempotency key."


class IdempotencyInProgress(ConsentServiceError):
    code = "idempotency_in_progress"
    status_code = http.HTTP_409_CONFLICT
    message = "A request with this idempotency key is still being processed."


class IdempotencyStorageError(ConsentServiceError):
    code = "idempotency_unavailable"
    status_code = http.HTTP_503_SERVICE_UNAVAILABLE
    message = "The idempotency store is unavailable."


def _normalize_detail(detail: Any) -> str:
    if isinstance(detail, dict) and "detail" in detail:
        return str(detail["detail"])
    return str(detail)

def _build_error(code: str, status_code: int, message: Optional[str] = None,
                 details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "code": code,
        "http_status": status_code,
        "message": message or _MESSAGES.get(code, code),
        "correlation_id": get_correlation_id(),
    }
    if details is not None:
        body["details"] = details
    return {"error": body}

async def consent_error_handler(request: Request, exc: ConsentServiceError):
    logger.info("returning domain error code=%s status=%d", exc.code, exc.status_code)
    payload = _build_error(exc.code, exc.status_code, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=payload)

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _normalize_detail(exc.detail)
    payload = _build_error(code, exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    payload = _build_error(
        "validation_error",
        422,
        "One or more fields failed validation.",
        details=jsonable_encoder(exc.errors()),
    )
    return JSONResponse(status_code=422, content=payload)

async def unhandled_exception_handler(request: Request, exc: Exception):
    # Avoid leaking internals; logs will carry the stacktrace
    logger.error("unhandled_exception", exc_info=exc)
    payload = _build_error("server_error", http.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")
    return JSONResponse(status_code=http.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
