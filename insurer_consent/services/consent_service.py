# insurer_consent/services/consent_service.py
from __future__ import annotations

import logging
from uuid import UUID, uuid4
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from insurer_consent.core.config import settings
from insurer_consent.core.errors import (
    AlreadyRejected,
    ConsentAccessDenied,
    ConsentNotFound,
    ConsentStateConflict,
    InvalidExpiration,
)
from insurer_consent.core.metrics import inc_consents_authorised, inc_consents_created, inc_consents_rejected
from insurer_consent.models.consent import Consent, ConsentStatus, RejectedBy, RejectionReasonCode, Relation
from insurer_consent.repositories import consents as consents_repo
from insurer_consent.repositories.users import find_by_document
from insurer_consent.api.schemas.consents import Document, Rejection
from insurer_consent.services.permissions import normalize_permissions, validate_permissions
from insurer_consent.services.scope import strip_urn
from insurer_consent.utils import timeutil
from insurer_consent.utils.page import Page, Pagination

log = logging.getLogger(__name__)


def _validate_expiration(expires_at: datetime, now: datetime) -> datetime:
    expires_at = timeutil.ensure_utc(expires_at)
    max_allowed = timeutil.add_years(now, settings.CONSENT_MAX_VALIDITY_YEARS)
    if expires_at <= now or expires_at > max_allowed:
        raise InvalidExpiration(
            f"expiration must be after now and no later than {settings.CONSENT_MAX_VALIDITY_YEARS} year(s) from now"
        )
    return expires_at


def _resolve_owner(
    db: Session, tenant_id: str, user_document: Document, business_document: Optional[Document]
) -> Optional[UUID]:
    # Best-effort: an unknown document simply leaves the owner unset
    owner_id = None
    user = find_by_document(db, tenant_id=tenant_id, cpf=user_document.identification)
    if user is not None:
        owner_id = user.id
    if business_document is not None:
        business = find_by_document(db, tenant_id=tenant_id, cnpj=business_document.identification)
        if business is not None:
            owner_id = business.id
    return owner_id


def _parse_consent_id(consent_id: str | UUID) -> UUID:
    if isinstance(consent_id, UUID):
        return consent_id
    try:
        return UUID(strip_urn(consent_id))
    except ValueError:
        raise ConsentNotFound() from None


def create_consent(
    db: Session,
    *,
    client_id: str,
    tenant_id: str,
    permissions: Iterable[str],
    expires_at: datetime,
    user_document: Document,
    business_document: Optional[Document] = None,
) -> Consent:
    """
    Validate and persist a new consent in AWAITING_AUTHORISATION.

    Raises:
        InvalidPermissions: the permission set breaks a combination rule.
        InvalidExpiration: ``expires_at`` is not in (now, now + max validity].
    """
    perms = normalize_permissions(permissions)
    validate_permissions(perms)

    now = timeutil.utcnow()
    expires_at = _validate_expiration(expires_at, now)

    consent = Consent(
        id=uuid4(),
        tenant_id=tenant_id,
        client_id=client_id,
        owner_id=_resolve_owner(db, tenant_id, user_document, business_document),
        status=ConsentStatus.AWAITING_AUTHORISATION.value,
        permissions=perms,
        user_identification=user_document.identification,
        user_rel=Relation(user_document.rel).value,
        business_identification=business_document.identification if business_document else None,
        business_rel=Relation(business_document.rel).value if business_document else None,
        expires_at=expires_at,
        status_updated_at=now,
        created_at=now,
        updated_at=now,
    )
    consents_repo.create(db, consent)

    # count successful creation exactly once (not on idempotent replays)
    inc_consents_created()
    log.info("consent created", extra={"consent_id": str(consent.id), "status": consent.status})
    return consent


def get_consent(db: Session, consent_id: str | UUID, tenant_id: str, client_id: Optional[str] = None) -> Consent:
    """
    Fetch a consent, enforce client ownership when a caller client is known,
    then apply the time-based automation before returning it.
    """
    obj = consents_repo.get_by_id(db, _parse_consent_id(consent_id), tenant_id)
    if obj is None:
        raise ConsentNotFound()

    if client_id is not None and obj.client_id != client_id:
        log.info("consent access denied consent_id=%s", obj.id)
        raise ConsentAccessDenied()

    return run_automations(db, obj)


def list_consents(db: Session, owner_id: UUID, tenant_id: str, pagination: Pagination) -> Page[Consent]:
    page = consents_repo.list_by_owner(db, owner_id=owner_id, tenant_id=tenant_id, pagination=pagination)
    page.records = [run_automations(db, c) for c in page.records]
    return page


def run_automations(db: Session, consent: Consent) -> Consent:
    """Lazily apply time-triggered transitions. A no-op once the guards stop holding."""
    now = timeutil.utcnow()
    status = consent.status

    if status == ConsentStatus.AWAITING_AUTHORISATION.value:
        deadline = consent.created_at + timedelta(seconds=settings.CONSENT_AUTHORISATION_TIMEOUT_SECONDS)
        if now > deadline:
            log.info("consent awaiting authorisation for too long consent_id=%s", consent.id)
            rejection = Rejection(
                rejected_by=RejectedBy.USER,
                reason_code=RejectionReasonCode.CONSENT_EXPIRED,
                additional_info="consent awaiting authorisation for too long",
            )
            return _automated_reject(db, consent, rejection)

    elif status == ConsentStatus.AUTHORISED.value:
        if now > consent.expires_at:
            log.info("consent reached expiration consent_id=%s", consent.id)
            rejection = Rejection(
                rejected_by=RejectedBy.ASPSP,
                reason_code=RejectionReasonCode.CONSENT_MAX_DATE_REACHED,
                additional_info="consent reached expiration",
            )
            return _automated_reject(db, consent, rejection)

    return consent


def _automated_reject(db: Session, consent: Consent, rejection: Rejection) -> Consent:
    updated = _transition(db, consent, ConsentStatus.REJECTED, rejection)
    if updated is None:
        # Someone else moved it first (sweeper or a concurrent read); serve what is stored now
        current = consents_repo.get_by_id(db, consent.id, consent.tenant_id)
        if current is None:
            raise ConsentNotFound()
        db.refresh(current)
        return current
    return updated


def authorise_consent(db: Session, consent: Consent) -> Consent:
    if consent.status == ConsentStatus.REJECTED.value:
        raise AlreadyRejected()
    if consent.status != ConsentStatus.AWAITING_AUTHORISATION.value:
        raise ConsentStateConflict("consent is not in the awaiting authorisation status")

    updated = _transition(db, consent, ConsentStatus.AUTHORISED)
    if updated is None:
        raise ConsentStateConflict("consent status changed while authorising")
    inc_consents_authorised()
    return updated


def reject_consent(db: Session, consent: Consent, rejection: Rejection) -> Consent:
    if consent.status == ConsentStatus.REJECTED.value:
        raise AlreadyRejected()

    updated = _transition(db, consent, ConsentStatus.REJECTED, rejection)
    if updated is None:
        current = consents_repo.get_by_id(db, consent.id, consent.tenant_id)
        if current is not None:
            db.refresh(current)
        if current is None or current.status == ConsentStatus.REJECTED.value:
            raise AlreadyRejected()
        raise ConsentStateConflict("consent status changed while rejecting")
    return updated


def reject_consent_by_id(
    db: Session,
    consent_id: str | UUID,
    tenant_id: str,
    rejection: Rejection,
    client_id: Optional[str] = None,
) -> Consent:
    consent = get_consent(db, consent_id, tenant_id, client_id=client_id)
    return reject_consent(db, consent, rejection)


def delete_consent(db: Session, consent_id: str | UUID, tenant_id: str, client_id: Optional[str] = None) -> Consent:
    consent = get_consent(db, consent_id, tenant_id, client_id=client_id)

    rejection = Rejection(
        rejected_by=RejectedBy.USER,
        reason_code=RejectionReasonCode.CUSTOMER_MANUALLY_REJECTED,
        additional_info="customer manually rejected consent",
    )
    if consent.status == ConsentStatus.AUTHORISED.value:
        rejection = Rejection(
            rejected_by=RejectedBy.USER,
            reason_code=RejectionReasonCode.CUSTOMER_MANUALLY_REVOKED,
            additional_info="customer manually revoked consent after authorisation",
        )
    return reject_consent(db, consent, rejection)


def _transition(
    db: Session, consent: Consent, new_status: ConsentStatus, rejection: Optional[Rejection] = None
) -> Optional[Consent]:
    updated = consents_repo.transition_status(
        db,
        consent_id=consent.id,
        tenant_id=consent.tenant_id,
        expected_status=consent.status,
        new_status=new_status.value,
        now=timeutil.utcnow(),
        rejection=rejection.model_dump(mode="json") if rejection else None,
    )
    if updated is None:
        log.warning(
            "consent transition lost race consent_id=%s expected=%s target=%s",
            consent.id, consent.status, new_status.value,
        )
        return None

    log.info(
        "consent status changed",
        extra={
            "consent_id": str(updated.id),
            "status": updated.status,
            "reason_code": rejection.reason_code.value if rejection else None,
        },
    )
    if rejection is not None:
        inc_consents_rejected(rejection.reason_code.value)
    return updated
