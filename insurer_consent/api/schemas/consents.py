from __future__ import annotations
from typing import List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel, Field

from insurer_consent.models.consent import Consent, ConsentStatus, RejectedBy, RejectionReasonCode, Relation
from insurer_consent.services.scope import consent_urn


class Document(BaseModel):
    identification: str = Field(min_length=1, max_length=14)
    rel: Relation

class LoggedUser(BaseModel):
    document: Document

class BusinessEntity(BaseModel):
    document: Document

class Rejection(BaseModel):
    rejected_by: RejectedBy
    reason_code: RejectionReasonCode
    additional_info: Optional[str] = None

class ConsentCreateRequest(BaseModel):
    # Plain strings so unknown tokens reach the permission rules and get a domain error
    permissions: List[str]
    expiration_at: datetime
    logged_user: LoggedUser
    business_entity: Optional[BusinessEntity] = None

class ConsentLinks(BaseModel):
    self: str

class ConsentResponse(BaseModel):
    consent_id: str  # URN form
    status: ConsentStatus
    permissions: List[str]
    expires_at: datetime
    status_updated_at: datetime
    created_at: datetime
    updated_at: datetime
    rejection: Optional[Rejection] = None
    links: ConsentLinks
    correlation_id: Optional[str] = None

    @classmethod
    def from_model(cls, obj: Consent, correlation_id: Optional[str] = None) -> "ConsentResponse":
        urn = consent_urn(obj.id)
        return cls(
            consent_id=urn,
            status=obj.status,
            permissions=list(obj.permissions or []),
            expires_at=obj.expires_at,
            status_updated_at=obj.status_updated_at,
            created_at=obj.created_at,
            updated_at=obj.updated_at,
            rejection=Rejection(**obj.rejection) if obj.rejection else None,
            links=ConsentLinks(self=f"/consents/{urn}"),
            correlation_id=correlation_id,
        )


class AuthorisationDecisionRequest(BaseModel):
    scope: str = Field(min_length=1, description="Space-separated scopes carrying a consent:<urn> token")
    decision: Literal["approved", "denied"]

class AuthorisationDecisionResponse(ConsentResponse):
    consent_scope: str

