from typing import Any, Dict, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from insurer_consent.models.consent import Consent, ConsentStatus, RejectedBy, RejectionReasonCode
from insurer_consent.utils.page import Page, Pagination

def create(db: Session, consent: Consent) -> Consent:
    db.add(consent)
    db.commit()
    db.refresh(consent)
    return consent

def get_by_id(db: Session, consent_id: UUID, tenant_id: str) -> Optional[Consent]:
    stmt = select(Consent).where(Consent.id == consent_id, Consent.tenant_id == tenant_id)
    return db.execute(stmt).scalars().first()

def list_by_owner(db: Session, *, owner_id: UUID, tenant_id: str, pagination: Pagination) -> Page[Consent]:
    base = select(Consent).where(Consent.tenant_id == tenant_id, Consent.owner_id == owner_id)
    records = db.execute(
        base.order_by(Consent.created_at.desc()).limit(pagination.limit).offset(pagination.offset)
    ).scalars().all()
    total = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    return Page(records=list(records), total_records=int(total), pagination=pagination)

def transition_status(
    db: Session,
    *,
    consent_id: UUID,
    tenant_id: str,
    expected_status: str,
    new_status: str,
    now: datetime,
    rejection: Optional[Dict[str, Any]] = None,
) -> Optional[Consent]:
    """
    Compare-and-swap status change. The UPDATE only matches while the row still
    has ``expected_status``; returns None when another writer got there first.
    """
    values: Dict[str, Any] = {"status": new_status, "status_updated_at": now, "updated_at": now}
    if rejection is not None:
        values["rejection"] = rejection
    stmt = (
        update(Consent)
        .where(Consent.id == consent_id)
        .where(Consent.tenant_id == tenant_id)
        .where(Consent.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    db.commit()
    if not res.rowcount:
        return None
    obj = get_by_id(db, consent_id, tenant_id)
    if obj is not None:
        db.refresh(obj)
    return obj


def expire_due(db: Session, *, now: datetime, awaiting_cutoff: datetime) -> Dict[str, int]:
    """
    Set-based version of the read-path automation, same predicates:
    AWAITING_AUTHORISATION created before ``awaiting_cutoff`` and AUTHORISED past
    ``expires_at`` both move to REJECTED. Returns affected rows per reason code.
    """
    stale_awaiting = (
        update(Consent)
        .where(Consent.status == ConsentStatus.AWAITING_AUTHORISATION.value)
        .where(Consent.created_at < awaiting_cutoff)
        .values(
            status=ConsentStatus.REJECTED.value,
            rejection={
                "rejected_by": RejectedBy.USER.value,
                "reason_code": RejectionReasonCode.CONSENT_EXPIRED.value,
                "additional_info": "consent awaiting authorisation for too long",
            },
            status_updated_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    past_expiry = (
        update(Consent)
        .where(Consent.status == ConsentStatus.AUTHORISED.value)
        .where(Consent.expires_at < now)
        .values(
            status=ConsentStatus.REJECTED.value,
            rejection={
                "rejected_by": RejectedBy.ASPSP.value,
                "reason_code": RejectionReasonCode.CONSENT_MAX_DATE_REACHED.value,
                "additional_info": "consent reached expiration",
            },
            status_updated_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    counts = {
        RejectionReasonCode.CONSENT_EXPIRED.value: int(db.execute(stale_awaiting).rowcount or 0),
        RejectionReasonCode.CONSENT_MAX_DATE_REACHED.value: int(db.execute(past_expiry).rowcount or 0),
    }
    db.commit()
    return counts
