"""
Tests for the permission catalogue and combination rules.
"""

import itertools

import pytest

from insurer_consent.core.errors import InvalidPermissions, ResourcesReadAlone
from insurer_consent.services.permissions import (
    ALLOWED,
    CATEGORY_2,
    CATEGORY_2_PRODUCT_GROUPS,
    CATEGORY_3,
    CATEGORY_3_GROUPS,
    P,
    category_3_groups_of,
    normalize_permissions,
    validate_permissions,
)


def _values(perms):
    return [p.value for p in perms]


class TestCatalogue:
    def test_categories_are_disjoint(self):
        assert not CATEGORY_2 & CATEGORY_3

    def test_every_allowed_permission_has_a_category(self):
        assert ALLOWED == CATEGORY_2 | CATEGORY_3

    def test_category_3_groups_do_not_overlap(self):
        for (a, ga), (b, gb) in itertools.combinations(CATEGORY_3_GROUPS.items(), 2):
            assert not ga & gb, f"{a} and {b} share permissions"

    def test_every_product_group_includes_resources_read(self):
        for name, group in CATEGORY_2_PRODUCT_GROUPS.items():
            assert P.RESOURCES_READ in group, name


class TestNormalize:
    def test_drops_duplicates_and_keeps_order(self):
        assert normalize_permissions(["B", "A", "B", "C", "A"]) == ["B", "A", "C"]

    def test_accepts_enum_members(self):
        assert normalize_permissions([P.RESOURCES_READ, "RESOURCES_READ"]) == ["RESOURCES_READ"]


class TestCategory2:
    def test_resources_read_alone_is_rejected(self):
        with pytest.raises(ResourcesReadAlone) as exc:
            validate_permissions(["RESOURCES_READ"])
        assert exc.value.status_code == 400
        assert exc.value.rule == "resources_read_alone"

    def test_duplicated_resources_read_is_still_alone(self):
        with pytest.raises(ResourcesReadAlone):
            validate_permissions(["RESOURCES_READ", "RESOURCES_READ"])

    @pytest.mark.parametrize("perm", sorted(p.value for p in CATEGORY_2 - {P.RESOURCES_READ}))
    def test_resources_read_plus_one_is_accepted(self, perm):
        validate_permissions(["RESOURCES_READ", perm])

    @pytest.mark.parametrize("perm", sorted(p.value for p in CATEGORY_2 - {P.RESOURCES_READ}))
    def test_missing_resources_read_is_rejected(self, perm):
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions([perm])
        assert exc.value.rule == "resources_read_required"

    def test_product_groups_combine_freely(self):
        validate_permissions(
            [
                "RESOURCES_READ",
                "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ",
                "DAMAGES_AND_PEOPLE_AUTO_READ",
                "PENSION_PLAN_MOVEMENTS_READ",
                "CAPITALIZATION_TITLE_EVENTS_READ",
            ]
        )

    def test_whole_catalogue_is_accepted(self):
        validate_permissions(_values(CATEGORY_2))


class TestCategory3:
    @pytest.mark.parametrize("name", sorted(CATEGORY_3_GROUPS))
    def test_full_group_is_accepted(self, name):
        validate_permissions(_values(CATEGORY_3_GROUPS[name]))

    @pytest.mark.parametrize(
        "name", sorted(n for n, g in CATEGORY_3_GROUPS.items() if len(g) > 1)
    )
    def test_every_proper_subset_is_rejected(self, name):
        group = sorted(CATEGORY_3_GROUPS[name], key=lambda p: p.value)
        for size in range(1, len(group)):
            for subset in itertools.combinations(group, size):
                with pytest.raises(InvalidPermissions) as exc:
                    validate_permissions(_values(subset))
                assert exc.value.rule == "incomplete_category"

    def test_two_groups_are_rejected(self):
        perms = _values(CATEGORY_3_GROUPS["quote_auto"]) + _values(CATEGORY_3_GROUPS["quote_auto_lead"])
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions(perms)
        assert exc.value.rule == "multiple_categories"
        assert "quote_auto" in exc.value.message
        assert "quote_auto_lead" in exc.value.message

    def test_endorsement_request_stands_alone(self):
        validate_permissions(["ENDORSEMENT_REQUEST_CREATE"])

    def test_groups_of_reports_each_touched_group_once(self):
        perms = set(CATEGORY_3_GROUPS["quote_person_life"]) | {P.PERSON_WITHDRAWAL_CREATE}
        assert category_3_groups_of(perms) == ["person_withdrawal", "quote_person_life"]


class TestMixingAndUnknowns:
    @pytest.mark.parametrize(
        "category_3",
        [
            ["ENDORSEMENT_REQUEST_CREATE"],
            ["QUOTE_AUTO_LEAD_CREATE", "QUOTE_AUTO_LEAD_UPDATE"],
            ["QUOTE_PERSON_LIFE_READ"],
        ],
    )
    def test_category_2_and_3_never_mix(self, category_3):
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions(["RESOURCES_READ", "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ", *category_3])
        assert exc.value.rule == "mixed_categories"

    def test_resources_read_with_category_3_is_mixing(self):
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions(["RESOURCES_READ", "PERSON_WITHDRAWAL_CREATE"])
        assert exc.value.rule == "mixed_categories"

    def test_unknown_permission(self):
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions(["RESOURCES_READ", "ACCOUNTS_READ"])
        assert exc.value.rule == "unknown_permission"
        assert exc.value.status_code == 422

    def test_empty_request(self):
        with pytest.raises(InvalidPermissions) as exc:
            validate_permissions([])
        assert exc.value.rule == "empty"
