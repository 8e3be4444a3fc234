import uuid
from enum import Enum
from sqlalchemy import Column, String, Text, Uuid, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from insurer_consent.db.base import Base
from insurer_consent.db.types import UTCDateTime

_JSON = JSON().with_variant(JSONB(), "postgresql")


class ConsentStatus(str, Enum):
    AWAITING_AUTHORISATION = "AWAITING_AUTHORISATION"
    AUTHORISED = "AUTHORISED"
    REJECTED = "REJECTED"
    CONSUMED = "CONSUMED"


class Relation(str, Enum):
    CPF = "CPF"    # natural person
    CNPJ = "CNPJ"  # legal entity


class RejectedBy(str, Enum):
    USER = "USER"
    ASPSP = "ASPSP"
    TPP = "TPP"


class RejectionReasonCode(str, Enum):
    CONSENT_EXPIRED = "CONSENT_EXPIRED"
    CUSTOMER_MANUALLY_REJECTED = "CUSTOMER_MANUALLY_REJECTED"
    CUSTOMER_MANUALLY_REVOKED = "CUSTOMER_MANUALLY_REVOKED"
    CONSENT_MAX_DATE_REACHED = "CONSENT_MAX_DATE_REACHED"
    CONSENT_TECHNICAL_ISSUE = "CONSENT_TECHNICAL_ISSUE"
    INTERNAL_SECURITY_REASON = "INTERNAL_SECURITY_REASON"


class Consent(Base):
    __tablename__ = "consents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)

    client_id = Column(Text, nullable=False, index=True)
    owner_id = Column(Uuid(as_uuid=True), nullable=True)

    status = Column(String(32), nullable=False, index=True)  # ConsentStatus value
    permissions = Column(_JSON, nullable=False)              # ["RESOURCES_READ", ...]

    user_identification = Column(Text, nullable=False)
    user_rel = Column(String(8), nullable=False)
    business_identification = Column(Text, nullable=True)
    business_rel = Column(String(8), nullable=True)

    rejection = Column(_JSON, nullable=True)  # {rejected_by, reason_code, additional_info}

    expires_at = Column(UTCDateTime, nullable=False, index=True)
    status_updated_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

# Quick indices for common filters:
Index("idx_consents_tenant", Consent.tenant_id)
Index("idx_consents_owner", Consent.tenant_id, Consent.owner_id)
Index("idx_consents_created_at", Consent.created_at)
