"""
Tests for the consent lifecycle service.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0
from insurer_consent.api.schemas.consents import Document, Rejection
from insurer_consent.core.errors import (
    AlreadyRejected,
    ConsentAccessDenied,
    ConsentNotFound,
    ConsentStateConflict,
    InvalidExpiration,
    InvalidPermissions,
    ResourcesReadAlone,
)
from insurer_consent.models.consent import Consent, ConsentStatus, RejectedBy, RejectionReasonCode, Relation
from insurer_consent.models.user import User
from insurer_consent.services import consent_service
from insurer_consent.services.scope import consent_urn
from insurer_consent.utils.page import Pagination

CPF = Document(identification="76109277673", rel=Relation.CPF)
CNPJ = Document(identification="50685362006773", rel=Relation.CNPJ)
READ_PERSONAL = ["RESOURCES_READ", "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ"]


def _create(db, permissions=None, days=30, client_id="tpp-1", tenant_id="default", **kwargs):
    return consent_service.create_consent(
        db,
        client_id=client_id,
        tenant_id=tenant_id,
        permissions=permissions or READ_PERSONAL,
        expires_at=T0 + timedelta(days=days),
        user_document=kwargs.pop("user_document", CPF),
        **kwargs,
    )


class TestCreateConsent:
    def test_new_consent_awaits_authorisation(self, db, clock):
        consent = _create(db)

        assert consent.status == ConsentStatus.AWAITING_AUTHORISATION.value
        assert consent.permissions == READ_PERSONAL
        assert consent.created_at == consent.updated_at == consent.status_updated_at == T0
        assert consent.expires_at == T0 + timedelta(days=30)
        assert consent.rejection is None

    def test_permissions_are_deduplicated(self, db, clock):
        consent = _create(db, permissions=READ_PERSONAL + ["RESOURCES_READ"])
        assert consent.permissions == READ_PERSONAL

    def test_resources_read_alone(self, db, clock):
        with pytest.raises(ResourcesReadAlone):
            _create(db, permissions=["RESOURCES_READ"])

    def test_invalid_permissions_persist_nothing(self, db, clock):
        with pytest.raises(InvalidPermissions):
            _create(db, permissions=["RESOURCES_READ", "QUOTE_AUTO_READ"])
        assert db.query(Consent).count() == 0

    def test_expiration_too_far(self, db, clock):
        with pytest.raises(InvalidExpiration):
            _create(db, days=400)

    def test_expiration_at_the_limit(self, db, clock):
        consent = _create(db, days=365)
        assert consent.expires_at == T0 + timedelta(days=365)

    @pytest.mark.parametrize(
        "now, limit",
        [
            # The year ahead contains Feb 29, so it is 366 days long
            (datetime(2027, 6, 1, 12, 0, tzinfo=timezone.utc), datetime(2028, 6, 1, 12, 0, tzinfo=timezone.utc)),
            (datetime(2028, 2, 29, 9, 30, tzinfo=timezone.utc), datetime(2029, 2, 28, 9, 30, tzinfo=timezone.utc)),
        ],
    )
    def test_expiration_limit_is_one_calendar_year(self, db, clock, now, limit):
        clock.now = now

        consent = consent_service.create_consent(
            db, client_id="tpp-1", tenant_id="default", permissions=READ_PERSONAL,
            expires_at=limit, user_document=CPF,
        )
        assert consent.expires_at == limit

        with pytest.raises(InvalidExpiration):
            consent_service.create_consent(
                db, client_id="tpp-1", tenant_id="default", permissions=READ_PERSONAL,
                expires_at=limit + timedelta(seconds=1), user_document=CPF,
            )

    def test_expiration_in_the_past(self, db, clock):
        with pytest.raises(InvalidExpiration):
            _create(db, days=-1)

    def test_expiration_now_is_rejected(self, db, clock):
        with pytest.raises(InvalidExpiration):
            _create(db, days=0)

    def test_owner_resolved_from_cpf(self, db, clock):
        person = User(tenant_id="default", cpf=CPF.identification, username="ana")
        db.add(person)
        db.commit()

        consent = _create(db)
        assert consent.owner_id == person.id

    def test_business_document_overrides_owner(self, db, clock):
        person = User(tenant_id="default", cpf=CPF.identification)
        company = User(tenant_id="default", cpf="00000000000", cnpj=CNPJ.identification)
        db.add_all([person, company])
        db.commit()

        consent = _create(db, business_document=CNPJ)
        assert consent.owner_id == company.id
        assert consent.business_identification == CNPJ.identification
        assert consent.business_rel == "CNPJ"

    def test_owner_from_other_tenant_is_ignored(self, db, clock):
        db.add(User(tenant_id="other", cpf=CPF.identification))
        db.commit()

        assert _create(db).owner_id is None

    def test_cross_tenant_owner_is_found(self, db, clock):
        shared = User(tenant_id="other", cross_tenant=True, cpf=CPF.identification)
        db.add(shared)
        db.commit()

        assert _create(db).owner_id == shared.id

    def test_unknown_owner_leaves_it_unset(self, db, clock):
        assert _create(db).owner_id is None


class TestGetConsent:
    def test_by_urn_and_by_uuid(self, db, clock):
        consent = _create(db)

        assert consent_service.get_consent(db, consent_urn(consent.id), "default").id == consent.id
        assert consent_service.get_consent(db, str(consent.id), "default").id == consent.id
        assert consent_service.get_consent(db, consent.id, "default").id == consent.id

    def test_unknown_id(self, db, clock):
        with pytest.raises(ConsentNotFound):
            consent_service.get_consent(db, uuid.uuid4(), "default")

    def test_malformed_id_is_not_found(self, db, clock):
        with pytest.raises(ConsentNotFound):
            consent_service.get_consent(db, "urn:insurer:consent:not-a-uuid", "default")

    def test_other_tenant_cannot_see_it(self, db, clock):
        consent = _create(db)
        with pytest.raises(ConsentNotFound):
            consent_service.get_consent(db, consent.id, "other")

    def test_other_client_is_denied_as_not_found(self, db, clock):
        consent = _create(db)
        with pytest.raises(ConsentAccessDenied) as exc:
            consent_service.get_consent(db, consent.id, "default", client_id="tpp-2")
        assert isinstance(exc.value, ConsentNotFound)
        assert exc.value.code == "not_found"


class TestAutomations:
    def test_awaiting_for_too_long_is_rejected(self, db, clock):
        consent = _create(db)
        clock.advance(hours=1, seconds=1)

        got = consent_service.get_consent(db, consent.id, "default")

        assert got.status == ConsentStatus.REJECTED.value
        assert got.rejection["reason_code"] == RejectionReasonCode.CONSENT_EXPIRED.value
        assert got.rejection["rejected_by"] == RejectedBy.USER.value
        assert got.status_updated_at == clock.now

    def test_awaiting_exactly_one_hour_is_untouched(self, db, clock):
        consent = _create(db)
        clock.advance(hours=1)

        got = consent_service.get_consent(db, consent.id, "default")
        assert got.status == ConsentStatus.AWAITING_AUTHORISATION.value

    def test_authorised_past_expiry_is_rejected(self, db, clock):
        consent = consent_service.authorise_consent(db, _create(db))
        clock.advance(days=30, seconds=1)

        got = consent_service.get_consent(db, consent.id, "default")

        assert got.status == ConsentStatus.REJECTED.value
        assert got.rejection["reason_code"] == RejectionReasonCode.CONSENT_MAX_DATE_REACHED.value
        assert got.rejection["rejected_by"] == RejectedBy.ASPSP.value

    def test_authorised_within_validity_is_untouched(self, db, clock):
        consent = consent_service.authorise_consent(db, _create(db))
        clock.advance(days=29)

        got = consent_service.get_consent(db, consent.id, "default")
        assert got.status == ConsentStatus.AUTHORISED.value

    def test_running_twice_changes_nothing_more(self, db, clock):
        consent = _create(db)
        clock.advance(hours=2)

        first = consent_service.run_automations(db, consent)
        snapshot = (first.status, first.status_updated_at, first.updated_at, dict(first.rejection))
        second = consent_service.run_automations(db, first)

        assert (second.status, second.status_updated_at, second.updated_at, dict(second.rejection)) == snapshot

    def test_stale_copy_serves_stored_state(self, db, clock):
        consent = _create(db)
        stale = consent_service.get_consent(db, consent.id, "default")
        db.expunge(stale)

        clock.advance(hours=2)
        consent_service.run_automations(db, consent_service.get_consent(db, consent.id, "default"))
        clock.advance(minutes=5)

        # Transition already happened; the stale copy's CAS loses and the stored record comes back
        got = consent_service.run_automations(db, stale)
        assert got.status == ConsentStatus.REJECTED.value
        assert got.status_updated_at == T0 + timedelta(hours=2)


class TestTransitions:
    def test_authorise(self, db, clock):
        consent = _create(db)
        clock.advance(minutes=5)

        got = consent_service.authorise_consent(db, consent)

        assert got.status == ConsentStatus.AUTHORISED.value
        assert got.status_updated_at == T0 + timedelta(minutes=5)
        assert got.created_at == T0

    def test_authorise_twice_conflicts(self, db, clock):
        consent = consent_service.authorise_consent(db, _create(db))
        with pytest.raises(ConsentStateConflict):
            consent_service.authorise_consent(db, consent)

    def test_rejected_is_terminal(self, db, clock):
        rejection = Rejection(rejected_by=RejectedBy.TPP, reason_code=RejectionReasonCode.CONSENT_TECHNICAL_ISSUE)
        consent = consent_service.reject_consent(db, _create(db), rejection)

        with pytest.raises(AlreadyRejected):
            consent_service.reject_consent(db, consent, rejection)
        with pytest.raises(AlreadyRejected):
            consent_service.authorise_consent(db, consent)

    def test_reject_by_id_checks_client(self, db, clock):
        consent = _create(db)
        rejection = Rejection(rejected_by=RejectedBy.TPP, reason_code=RejectionReasonCode.CONSENT_TECHNICAL_ISSUE)

        with pytest.raises(ConsentNotFound):
            consent_service.reject_consent_by_id(db, consent.id, "default", rejection, client_id="tpp-2")

        got = consent_service.reject_consent_by_id(db, consent_urn(consent.id), "default", rejection, client_id="tpp-1")
        assert got.rejection == {
            "rejected_by": "TPP",
            "reason_code": "CONSENT_TECHNICAL_ISSUE",
            "additional_info": None,
        }

    def test_lost_race_on_authorise(self, db, clock):
        consent = _create(db)
        stale = consent_service.get_consent(db, consent.id, "default")
        db.expunge(stale)
        consent_service.authorise_consent(db, consent_service.get_consent(db, consent.id, "default"))

        with pytest.raises(ConsentStateConflict):
            consent_service.authorise_consent(db, stale)

    def test_lost_race_on_reject_against_rejection(self, db, clock):
        rejection = Rejection(rejected_by=RejectedBy.USER, reason_code=RejectionReasonCode.CUSTOMER_MANUALLY_REJECTED)
        consent = _create(db)
        stale = consent_service.get_consent(db, consent.id, "default")
        db.expunge(stale)
        consent_service.reject_consent(db, consent_service.get_consent(db, consent.id, "default"), rejection)

        with pytest.raises(AlreadyRejected):
            consent_service.reject_consent(db, stale, rejection)

    def test_lost_race_on_reject_against_authorisation(self, db, clock):
        rejection = Rejection(rejected_by=RejectedBy.USER, reason_code=RejectionReasonCode.CUSTOMER_MANUALLY_REJECTED)
        consent = _create(db)
        stale = consent_service.get_consent(db, consent.id, "default")
        db.expunge(stale)
        consent_service.authorise_consent(db, consent_service.get_consent(db, consent.id, "default"))

        with pytest.raises(ConsentStateConflict):
            consent_service.reject_consent(db, stale, rejection)


class TestDeleteConsent:
    def test_awaiting_consent_is_rejected(self, db, clock):
        consent = _create(db)

        got = consent_service.delete_consent(db, consent.id, "default", client_id="tpp-1")

        assert got.status == ConsentStatus.REJECTED.value
        assert got.rejection["reason_code"] == RejectionReasonCode.CUSTOMER_MANUALLY_REJECTED.value
        assert got.rejection["rejected_by"] == RejectedBy.USER.value

    def test_authorised_consent_is_revoked(self, db, clock):
        consent = consent_service.authorise_consent(db, _create(db))

        got = consent_service.delete_consent(db, consent.id, "default", client_id="tpp-1")

        assert got.status == ConsentStatus.REJECTED.value
        assert got.rejection["reason_code"] == RejectionReasonCode.CUSTOMER_MANUALLY_REVOKED.value

    def test_deleting_twice(self, db, clock):
        consent = _create(db)
        consent_service.delete_consent(db, consent.id, "default")
        with pytest.raises(AlreadyRejected):
            consent_service.delete_consent(db, consent.id, "default")

    def test_expired_authorisation_is_already_rejected(self, db, clock):
        consent = consent_service.authorise_consent(db, _create(db))
        clock.advance(days=31)

        # The read inside delete applies the expiry first
        with pytest.raises(AlreadyRejected):
            consent_service.delete_consent(db, consent.id, "default")


class TestListConsents:
    def test_lists_owner_consents_newest_first(self, db, clock):
        owner = User(tenant_id="default", cpf=CPF.identification)
        db.add(owner)
        db.commit()

        first = _create(db)
        clock.advance(minutes=1)
        second = _create(db)
        _create(db, user_document=Document(identification="11111111111", rel=Relation.CPF))

        page = consent_service.list_consents(db, owner.id, "default", Pagination(number=1, size=25))

        assert [c.id for c in page.records] == [second.id, first.id]
        assert page.total_records == 2
        assert page.total_pages == 1

    def test_listing_applies_automations(self, db, clock):
        owner = User(tenant_id="default", cpf=CPF.identification)
        db.add(owner)
        db.commit()
        _create(db)
        clock.advance(hours=3)

        page = consent_service.list_consents(db, owner.id, "default", Pagination())
        assert [c.status for c in page.records] == [ConsentStatus.REJECTED.value]

    def test_pagination(self, db, clock):
        owner = User(tenant_id="default", cpf=CPF.identification)
        db.add(owner)
        db.commit()
        for _ in range(3):
            _create(db)
            clock.advance(seconds=1)

        page = consent_service.list_consents(db, owner.id, "default", Pagination(number=2, size=2))
        assert len(page.records) == 1
        assert page.total_records == 3
        assert page.total_pages == 2
