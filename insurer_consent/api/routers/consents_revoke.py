from __future__ import annotations
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from insurer_consent.db.deps import get_db
from insurer_consent.security.jwt import get_current_client, tenant_of
from insurer_consent.services.consent_service import delete_consent

router = APIRouter(prefix="/consents", tags=["consents"])

@router.delete(
    "/{consent_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Revoke or reject a consent",
)
def delete_consent_endpoint(
    consent_id: str,
    db: Session = Depends(get_db),
    client=Depends(get_current_client),
):
    # AUTHORISED consents are revoked, anything else is rejected; both end in REJECTED
    delete_consent(db, consent_id, tenant_of(client), client_id=client["tpp_client_id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
