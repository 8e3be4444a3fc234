from __future__ import annotations
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from insurer_consent.api.schemas.consents import (
    AuthorisationDecisionRequest,
    AuthorisationDecisionResponse,
    ConsentResponse,
    Rejection,
)
from insurer_consent.core.correlation import get_correlation_id
from insurer_consent.core.errors import ConsentNotFound
from insurer_consent.db.deps import get_db
from insurer_consent.models.consent import RejectedBy, RejectionReasonCode
from insurer_consent.security.jwt import get_authorisation_server, tenant_of
from insurer_consent.services.consent_service import authorise_consent, get_consent, reject_consent
from insurer_consent.services.scope import decode_consent_id, encode_consent_scope

log = logging.getLogger(__name__)

router = APIRouter(prefix="/authorisations", tags=["authorisations"])

@router.post("", response_model=AuthorisationDecisionResponse, summary="Record the user's consent decision")
def record_decision(
    payload: AuthorisationDecisionRequest,
    db: Session = Depends(get_db),
    server=Depends(get_authorisation_server),
):
    consent_id, found = decode_consent_id(payload.scope)
    if not found:
        log.info("authorisation decision without a consent scope")
        raise ConsentNotFound("The scope does not reference a consent.")

    # The authorization server acts for the user, not for the owning client
    consent = get_consent(db, consent_id, tenant_of(server))

    if payload.decision == "approved":
        consent = authorise_consent(db, consent)
    else:
        consent = reject_consent(
            db,
            consent,
            Rejection(
                rejected_by=RejectedBy.USER,
                reason_code=RejectionReasonCode.CUSTOMER_MANUALLY_REJECTED,
                additional_info="customer rejected the authorisation",
            ),
        )

    base = ConsentResponse.from_model(consent, correlation_id=get_correlation_id())
    return AuthorisationDecisionResponse(**base.model_dump(), consent_scope=encode_consent_scope(consent.id))
