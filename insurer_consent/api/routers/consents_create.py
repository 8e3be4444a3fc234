from __future__ import annotations
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from insurer_consent.api.schemas.consents import ConsentCreateRequest, ConsentResponse
from insurer_consent.core.correlation import get_correlation_id
from insurer_consent.db.deps import get_db
from insurer_consent.middleware.idempotency import idempotency_guard
from insurer_consent.security.jwt import get_current_client, tenant_of
from insurer_consent.services.consent_service import create_consent

router = APIRouter(prefix="/consents", tags=["consents"])

COMMON_HEADERS = {
    "X-Request-ID": {
        "description": "Correlation ID for tracing.",
        "schema": {"type": "string"},
    },
}

CREATE_RESPONSES = {
    201: {"description": "Created", "headers": {**COMMON_HEADERS, "Location": {"description": "Resource path", "schema": {"type": "string"}}}},
    400: {"description": "Invalid expiration or RESOURCES_READ requested alone", "headers": COMMON_HEADERS},
    409: {"description": "Idempotency key reused with another payload or still in flight", "headers": COMMON_HEADERS},
    422: {"description": "Invalid permissions or missing X-Idempotency-Key", "headers": COMMON_HEADERS},
}

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a consent",
    response_model=ConsentResponse,
    responses=CREATE_RESPONSES,
    dependencies=[Depends(idempotency_guard)],
)
def create_consent_endpoint(
    payload: ConsentCreateRequest,
    response: Response,
    client=Depends(get_current_client),
    db: Session = Depends(get_db),
):
    obj = create_consent(
        db,
        client_id=client["tpp_client_id"],
        tenant_id=tenant_of(client),
        permissions=payload.permissions,
        expires_at=payload.expiration_at,
        user_document=payload.logged_user.document,
        business_document=payload.business_entity.document if payload.business_entity else None,
    )
    resp = ConsentResponse.from_model(obj, correlation_id=get_correlation_id())
    response.headers["Location"] = resp.links.self
    return resp
