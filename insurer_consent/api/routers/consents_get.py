from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from insurer_consent.api.schemas.consents import ConsentResponse
from insurer_consent.core.correlation import get_correlation_id
from insurer_consent.db.deps import get_db
from insurer_consent.security.jwt import get_current_client, tenant_of
from insurer_consent.services.consent_service import get_consent

router = APIRouter(prefix="/consents", tags=["consents"])

@router.get("/{consent_id}", response_model=ConsentResponse, summary="Get consent detail")
def get_consent_detail(
    consent_id: str,
    db: Session = Depends(get_db),
    client=Depends(get_current_client),
):
    # Accepts the URN or the bare UUID; time-based transitions are applied before returning
    obj = get_consent(db, consent_id, tenant_of(client), client_id=client["tpp_client_id"])
    return ConsentResponse.from_model(obj, correlation_id=get_correlation_id())
