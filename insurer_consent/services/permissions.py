"""
Permission catalogue and combination rules for consent creation.

Permissions live in two disjoint universes:

* Category 2: broad read permissions. They combine freely, but a consent must
  carry ``RESOURCES_READ`` plus at least one other permission.
* Category 3: narrow, mostly write-style permissions split into named
  sub-groups. A consent covers exactly one sub-group, requested in full.

The two categories can never be requested together.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Tuple

from insurer_consent.core.errors import InvalidPermissions, ResourcesReadAlone


class Permission(str, Enum):
    CAPITALIZATION_TITLE_EVENTS_READ = "CAPITALIZATION_TITLE_EVENTS_READ"
    CAPITALIZATION_TITLE_PLANINFO_READ = "CAPITALIZATION_TITLE_PLANINFO_READ"
    CAPITALIZATION_TITLE_READ = "CAPITALIZATION_TITLE_READ"
    CAPITALIZATION_TITLE_SETTLEMENTS_READ = "CAPITALIZATION_TITLE_SETTLEMENTS_READ"
    CAPITALIZATION_TITLE_WITHDRAWAL_CREATE = "CAPITALIZATION_TITLE_WITHDRAWAL_CREATE"
    CLAIM_NOTIFICATION_REQUEST_DAMAGE_CREATE = "CLAIM_NOTIFICATION_REQUEST_DAMAGE_CREATE"
    CLAIM_NOTIFICATION_REQUEST_PERSON_CREATE = "CLAIM_NOTIFICATION_REQUEST_PERSON_CREATE"
    CONTRACT_LIFE_PENSION_CREATE = "CONTRACT_LIFE_PENSION_CREATE"
    CONTRACT_LIFE_PENSION_LEAD_CREATE = "CONTRACT_LIFE_PENSION_LEAD_CREATE"
    CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_CREATE = "CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_CREATE"
    CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_UPDATE = "CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_UPDATE"
    CONTRACT_LIFE_PENSION_LEAD_UPDATE = "CONTRACT_LIFE_PENSION_LEAD_UPDATE"
    CONTRACT_LIFE_PENSION_READ = "CONTRACT_LIFE_PENSION_READ"
    CONTRACT_LIFE_PENSION_UPDATE = "CONTRACT_LIFE_PENSION_UPDATE"
    CONTRACT_PENSION_PLAN_LEAD_CREATE = "CONTRACT_PENSION_PLAN_LEAD_CREATE"
    CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_CREATE = "CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_CREATE"
    CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_UPDATE = "CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_UPDATE"
    CONTRACT_PENSION_PLAN_LEAD_UPDATE = "CONTRACT_PENSION_PLAN_LEAD_UPDATE"
    CUSTOMERS_BUSINESS_ADDITIONALINFO_READ = "CUSTOMERS_BUSINESS_ADDITIONALINFO_READ"
    CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ = "CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ"
    CUSTOMERS_BUSINESS_QUALIFICATION_READ = "CUSTOMERS_BUSINESS_QUALIFICATION_READ"
    CUSTOMERS_PERSONAL_ADDITIONALINFO_READ = "CUSTOMERS_PERSONAL_ADDITIONALINFO_READ"
    CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ = "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ"
    CUSTOMERS_PERSONAL_QUALIFICATION_READ = "CUSTOMERS_PERSONAL_QUALIFICATION_READ"
    DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_CLAIM_READ = "DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_CLAIM_READ"
    DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_PREMIUM_READ = "DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_READ = "DAMAGES_AND_PEOPLE_ACCEPTANCE_AND_BRANCHES_ABROAD_READ"
    DAMAGES_AND_PEOPLE_AUTO_CLAIM_READ = "DAMAGES_AND_PEOPLE_AUTO_CLAIM_READ"
    DAMAGES_AND_PEOPLE_AUTO_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_AUTO_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_AUTO_PREMIUM_READ = "DAMAGES_AND_PEOPLE_AUTO_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_AUTO_READ = "DAMAGES_AND_PEOPLE_AUTO_READ"
    DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_CLAIM_READ = "DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_CLAIM_READ"
    DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_PREMIUM_READ = "DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_READ = "DAMAGES_AND_PEOPLE_FINANCIAL_RISKS_READ"
    DAMAGES_AND_PEOPLE_HOUSING_CLAIM_READ = "DAMAGES_AND_PEOPLE_HOUSING_CLAIM_READ"
    DAMAGES_AND_PEOPLE_HOUSING_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_HOUSING_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_HOUSING_PREMIUM_READ = "DAMAGES_AND_PEOPLE_HOUSING_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_HOUSING_READ = "DAMAGES_AND_PEOPLE_HOUSING_READ"
    DAMAGES_AND_PEOPLE_PATRIMONIAL_CLAIM_READ = "DAMAGES_AND_PEOPLE_PATRIMONIAL_CLAIM_READ"
    DAMAGES_AND_PEOPLE_PATRIMONIAL_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_PATRIMONIAL_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_PATRIMONIAL_PREMIUM_READ = "DAMAGES_AND_PEOPLE_PATRIMONIAL_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_PATRIMONIAL_READ = "DAMAGES_AND_PEOPLE_PATRIMONIAL_READ"
    DAMAGES_AND_PEOPLE_PERSON_CLAIM_READ = "DAMAGES_AND_PEOPLE_PERSON_CLAIM_READ"
    DAMAGES_AND_PEOPLE_PERSON_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_PERSON_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_PERSON_PREMIUM_READ = "DAMAGES_AND_PEOPLE_PERSON_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_PERSON_READ = "DAMAGES_AND_PEOPLE_PERSON_READ"
    DAMAGES_AND_PEOPLE_RESPONSIBILITY_CLAIM_READ = "DAMAGES_AND_PEOPLE_RESPONSIBILITY_CLAIM_READ"
    DAMAGES_AND_PEOPLE_RESPONSIBILITY_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_RESPONSIBILITY_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_RESPONSIBILITY_PREMIUM_READ = "DAMAGES_AND_PEOPLE_RESPONSIBILITY_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_RESPONSIBILITY_READ = "DAMAGES_AND_PEOPLE_RESPONSIBILITY_READ"
    DAMAGES_AND_PEOPLE_RURAL_CLAIM_READ = "DAMAGES_AND_PEOPLE_RURAL_CLAIM_READ"
    DAMAGES_AND_PEOPLE_RURAL_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_RURAL_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_RURAL_PREMIUM_READ = "DAMAGES_AND_PEOPLE_RURAL_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_RURAL_READ = "DAMAGES_AND_PEOPLE_RURAL_READ"
    DAMAGES_AND_PEOPLE_TRANSPORT_CLAIM_READ = "DAMAGES_AND_PEOPLE_TRANSPORT_CLAIM_READ"
    DAMAGES_AND_PEOPLE_TRANSPORT_POLICYINFO_READ = "DAMAGES_AND_PEOPLE_TRANSPORT_POLICYINFO_READ"
    DAMAGES_AND_PEOPLE_TRANSPORT_PREMIUM_READ = "DAMAGES_AND_PEOPLE_TRANSPORT_PREMIUM_READ"
    DAMAGES_AND_PEOPLE_TRANSPORT_READ = "DAMAGES_AND_PEOPLE_TRANSPORT_READ"
    ENDORSEMENT_REQUEST_CREATE = "ENDORSEMENT_REQUEST_CREATE"
    FINANCIAL_ASSISTANCE_CONTRACTINFO_READ = "FINANCIAL_ASSISTANCE_CONTRACTINFO_READ"
    FINANCIAL_ASSISTANCE_MOVEMENTS_READ = "FINANCIAL_ASSISTANCE_MOVEMENTS_READ"
    FINANCIAL_ASSISTANCE_READ = "FINANCIAL_ASSISTANCE_READ"
    LIFE_PENSION_CLAIM = "LIFE_PENSION_CLAIM"
    LIFE_PENSION_CONTRACTINFO_READ = "LIFE_PENSION_CONTRACTINFO_READ"
    LIFE_PENSION_MOVEMENTS_READ = "LIFE_PENSION_MOVEMENTS_READ"
    LIFE_PENSION_PORTABILITIES_READ = "LIFE_PENSION_PORTABILITIES_READ"
    LIFE_PENSION_READ = "LIFE_PENSION_READ"
    LIFE_PENSION_WITHDRAWALS_READ = "LIFE_PENSION_WITHDRAWALS_READ"
    PENSION_PLAN_CLAIM = "PENSION_PLAN_CLAIM"
    PENSION_PLAN_CONTRACTINFO_READ = "PENSION_PLAN_CONTRACTINFO_READ"
    PENSION_PLAN_MOVEMENTS_READ = "PENSION_PLAN_MOVEMENTS_READ"
    PENSION_PLAN_PORTABILITIES_READ = "PENSION_PLAN_PORTABILITIES_READ"
    PENSION_PLAN_READ = "PENSION_PLAN_READ"
    PENSION_PLAN_WITHDRAWALS_READ = "PENSION_PLAN_WITHDRAWALS_READ"
    PENSION_WITHDRAWAL_CREATE = "PENSION_WITHDRAWAL_CREATE"
    PENSION_WITHDRAWAL_LEAD_CREATE = "PENSION_WITHDRAWAL_LEAD_CREATE"
    PERSON_WITHDRAWAL_CREATE = "PERSON_WITHDRAWAL_CREATE"
    QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_CREATE = "QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_CREATE"
    QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_UPDATE = "QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_UPDATE"
    QUOTE_AUTO_CREATE = "QUOTE_AUTO_CREATE"
    QUOTE_AUTO_LEAD_CREATE = "QUOTE_AUTO_LEAD_CREATE"
    QUOTE_AUTO_LEAD_UPDATE = "QUOTE_AUTO_LEAD_UPDATE"
    QUOTE_AUTO_READ = "QUOTE_AUTO_READ"
    QUOTE_AUTO_UPDATE = "QUOTE_AUTO_UPDATE"
    QUOTE_CAPITALIZATION_TITLE_CREATE = "QUOTE_CAPITALIZATION_TITLE_CREATE"
    QUOTE_CAPITALIZATION_TITLE_LEAD_CREATE = "QUOTE_CAPITALIZATION_TITLE_LEAD_CREATE"
    QUOTE_CAPITALIZATION_TITLE_LEAD_UPDATE = "QUOTE_CAPITALIZATION_TITLE_LEAD_UPDATE"
    QUOTE_CAPITALIZATION_TITLE_RAFFLE_CREATE = "QUOTE_CAPITALIZATION_TITLE_RAFFLE_CREATE"
    QUOTE_CAPITALIZATION_TITLE_READ = "QUOTE_CAPITALIZATION_TITLE_READ"
    QUOTE_CAPITALIZATION_TITLE_UPDATE = "QUOTE_CAPITALIZATION_TITLE_UPDATE"
    QUOTE_FINANCIAL_RISK_LEAD_CREATE = "QUOTE_FINANCIAL_RISK_LEAD_CREATE"
    QUOTE_FINANCIAL_RISK_LEAD_UPDATE = "QUOTE_FINANCIAL_RISK_LEAD_UPDATE"
    QUOTE_HOUSING_LEAD_CREATE = "QUOTE_HOUSING_LEAD_CREATE"
    QUOTE_HOUSING_LEAD_UPDATE = "QUOTE_HOUSING_LEAD_UPDATE"
    QUOTE_PATRIMONIAL_BUSINESS_CREATE = "QUOTE_PATRIMONIAL_BUSINESS_CREATE"
    QUOTE_PATRIMONIAL_BUSINESS_READ = "QUOTE_PATRIMONIAL_BUSINESS_READ"
    QUOTE_PATRIMONIAL_BUSINESS_UPDATE = "QUOTE_PATRIMONIAL_BUSINESS_UPDATE"
    QUOTE_PATRIMONIAL_CONDOMINIUM_CREATE = "QUOTE_PATRIMONIAL_CONDOMINIUM_CREATE"
    QUOTE_PATRIMONIAL_CONDOMINIUM_READ = "QUOTE_PATRIMONIAL_CONDOMINIUM_READ"
    QUOTE_PATRIMONIAL_CONDOMINIUM_UPDATE = "QUOTE_PATRIMONIAL_CONDOMINIUM_UPDATE"
    QUOTE_PATRIMONIAL_DIVERSE_RISKS_CREATE = "QUOTE_PATRIMONIAL_DIVERSE_RISKS_CREATE"
    QUOTE_PATRIMONIAL_DIVERSE_RISKS_READ = "QUOTE_PATRIMONIAL_DIVERSE_RISKS_READ"
    QUOTE_PATRIMONIAL_DIVERSE_RISKS_UPDATE = "QUOTE_PATRIMONIAL_DIVERSE_RISKS_UPDATE"
    QUOTE_PATRIMONIAL_HOME_CREATE = "QUOTE_PATRIMONIAL_HOME_CREATE"
    QUOTE_PATRIMONIAL_HOME_READ = "QUOTE_PATRIMONIAL_HOME_READ"
    QUOTE_PATRIMONIAL_HOME_UPDATE = "QUOTE_PATRIMONIAL_HOME_UPDATE"
    QUOTE_PATRIMONIAL_LEAD_CREATE = "QUOTE_PATRIMONIAL_LEAD_CREATE"
    QUOTE_PATRIMONIAL_LEAD_UPDATE = "QUOTE_PATRIMONIAL_LEAD_UPDATE"
    QUOTE_PERSON_LEAD_CREATE = "QUOTE_PERSON_LEAD_CREATE"
    QUOTE_PERSON_LEAD_UPDATE = "QUOTE_PERSON_LEAD_UPDATE"
    QUOTE_PERSON_LIFE_CREATE = "QUOTE_PERSON_LIFE_CREATE"
    QUOTE_PERSON_LIFE_READ = "QUOTE_PERSON_LIFE_READ"
    QUOTE_PERSON_LIFE_UPDATE = "QUOTE_PERSON_LIFE_UPDATE"
    QUOTE_PERSON_TRAVEL_CREATE = "QUOTE_PERSON_TRAVEL_CREATE"
    QUOTE_PERSON_TRAVEL_READ = "QUOTE_PERSON_TRAVEL_READ"
    QUOTE_PERSON_TRAVEL_UPDATE = "QUOTE_PERSON_TRAVEL_UPDATE"
    QUOTE_RESPONSIBILITY_LEAD_CREATE = "QUOTE_RESPONSIBILITY_LEAD_CREATE"
    QUOTE_RESPONSIBILITY_LEAD_UPDATE = "QUOTE_RESPONSIBILITY_LEAD_UPDATE"
    QUOTE_RURAL_LEAD_CREATE = "QUOTE_RURAL_LEAD_CREATE"
    QUOTE_RURAL_LEAD_UPDATE = "QUOTE_RURAL_LEAD_UPDATE"
    QUOTE_TRANSPORT_LEAD_CREATE = "QUOTE_TRANSPORT_LEAD_CREATE"
    QUOTE_TRANSPORT_LEAD_UPDATE = "QUOTE_TRANSPORT_LEAD_UPDATE"
    RESOURCES_READ = "RESOURCES_READ"


P = Permission

# Category 2 per-product groups. Used for display; validation treats Category 2 as one flat group.
CATEGORY_2_PRODUCT_GROUPS: Dict[str, Tuple[Permission, ...]] = {
    "personal_registration_data": (
        P.RESOURCES_READ,
        P.CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ,
        P.CUSTOMERS_PERSONAL_QUALIFICATION_READ,
        P.CUSTOMERS_PERSONAL_ADDITIONALINFO_READ,
    ),
    "business_registration_data": (
        P.RESOURCES_READ,
        P.CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ,
        P.CUSTOMERS_BUSINESS_QUALIFICATION_READ,
        P.CUSTOMERS_BUSINESS_ADDITIONALINFO_READ,
    ),
    "capitalization_title": (
        P.RESOURCES_READ,
        P.CAPITALIZATION_TITLE_READ,
        P.CAPITALIZATION_TITLE_PLANINFO_READ,
        P.CAPITALIZATION_TITLE_EVENTS_READ,
        P.CAPITALIZATION_TITLE_SETTLEMENTS_READ,
    ),
    "pension_plan": (
        P.RESOURCES_READ,
        P.PENSION_PLAN_READ,
        P.PENSION_PLAN_CONTRACTINFO_READ,
        P.PENSION_PLAN_MOVEMENTS_READ,
        P.PENSION_PLAN_PORTABILITIES_READ,
        P.PENSION_PLAN_WITHDRAWALS_READ,
        P.PENSION_PLAN_CLAIM,
    ),
    "life_pension": (
        P.RESOURCES_READ,
        P.LIFE_PENSION_READ,
        P.LIFE_PENSION_CONTRACTINFO_READ,
        P.LIFE_PENSION_MOVEMENTS_READ,
        P.LIFE_PENSION_PORTABILITIES_READ,
        P.LIFE_PENSION_WITHDRAWALS_READ,
        P.LIFE_PENSION_CLAIM,
    ),
    "financial_assistance": (
        P.RESOURCES_READ,
        P.FINANCIAL_ASSISTANCE_READ,
        P.FINANCIAL_ASSISTANCE_CONTRACTINFO_READ,
        P.FINANCIAL_ASSISTANCE_MOVEMENTS_READ,
    ),
}

for _product in (
    "PATRIMONIAL",
    "RESPONSIBILITY",
    "TRANSPORT",
    "FINANCIAL_RISKS",
    "RURAL",
    "AUTO",
    "HOUSING",
    "ACCEPTANCE_AND_BRANCHES_ABROAD",
    "PERSON",
):
    CATEGORY_2_PRODUCT_GROUPS[f"damages_and_people_{_product.lower()}"] = (
        P.RESOURCES_READ,
        P[f"DAMAGES_AND_PEOPLE_{_product}_READ"],
        P[f"DAMAGES_AND_PEOPLE_{_product}_POLICYINFO_READ"],
        P[f"DAMAGES_AND_PEOPLE_{_product}_PREMIUM_READ"],
        P[f"DAMAGES_AND_PEOPLE_{_product}_CLAIM_READ"],
    )

CATEGORY_2: FrozenSet[Permission] = frozenset(
    p for group in CATEGORY_2_PRODUCT_GROUPS.values() for p in group
)

CATEGORY_3_GROUPS: Dict[str, FrozenSet[Permission]] = {
    name: frozenset(perms)
    for name, perms in {
        "claim_notification_request_damage": (P.CLAIM_NOTIFICATION_REQUEST_DAMAGE_CREATE,),
        "claim_notification_request_person": (P.CLAIM_NOTIFICATION_REQUEST_PERSON_CREATE,),
        "endorsement_request": (P.ENDORSEMENT_REQUEST_CREATE,),
        "quote_patrimonial_lead": (P.QUOTE_PATRIMONIAL_LEAD_CREATE, P.QUOTE_PATRIMONIAL_LEAD_UPDATE),
        "quote_patrimonial_home": (
            P.QUOTE_PATRIMONIAL_HOME_READ,
            P.QUOTE_PATRIMONIAL_HOME_CREATE,
            P.QUOTE_PATRIMONIAL_HOME_UPDATE,
        ),
        "quote_patrimonial_condominium": (
            P.QUOTE_PATRIMONIAL_CONDOMINIUM_READ,
            P.QUOTE_PATRIMONIAL_CONDOMINIUM_CREATE,
            P.QUOTE_PATRIMONIAL_CONDOMINIUM_UPDATE,
        ),
        "quote_patrimonial_business": (
            P.QUOTE_PATRIMONIAL_BUSINESS_READ,
            P.QUOTE_PATRIMONIAL_BUSINESS_CREATE,
            P.QUOTE_PATRIMONIAL_BUSINESS_UPDATE,
        ),
        "quote_patrimonial_diverse_risks": (
            P.QUOTE_PATRIMONIAL_DIVERSE_RISKS_READ,
            P.QUOTE_PATRIMONIAL_DIVERSE_RISKS_CREATE,
            P.QUOTE_PATRIMONIAL_DIVERSE_RISKS_UPDATE,
        ),
        "quote_acceptance_and_branches_abroad_lead": (
            P.QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_CREATE,
            P.QUOTE_ACCEPTANCE_AND_BRANCHES_ABROAD_LEAD_UPDATE,
        ),
        "quote_auto_lead": (P.QUOTE_AUTO_LEAD_CREATE, P.QUOTE_AUTO_LEAD_UPDATE),
        "quote_auto": (P.QUOTE_AUTO_READ, P.QUOTE_AUTO_CREATE, P.QUOTE_AUTO_UPDATE),
        "quote_financial_risk_lead": (P.QUOTE_FINANCIAL_RISK_LEAD_CREATE, P.QUOTE_FINANCIAL_RISK_LEAD_UPDATE),
        "quote_housing_lead": (P.QUOTE_HOUSING_LEAD_CREATE, P.QUOTE_HOUSING_LEAD_UPDATE),
        "quote_responsibility_lead": (P.QUOTE_RESPONSIBILITY_LEAD_CREATE, P.QUOTE_RESPONSIBILITY_LEAD_UPDATE),
        "quote_rural_lead": (P.QUOTE_RURAL_LEAD_CREATE, P.QUOTE_RURAL_LEAD_UPDATE),
        "quote_transport_lead": (P.QUOTE_TRANSPORT_LEAD_CREATE, P.QUOTE_TRANSPORT_LEAD_UPDATE),
        "quote_person_lead": (P.QUOTE_PERSON_LEAD_CREATE, P.QUOTE_PERSON_LEAD_UPDATE),
        "quote_person_life": (P.QUOTE_PERSON_LIFE_READ, P.QUOTE_PERSON_LIFE_CREATE, P.QUOTE_PERSON_LIFE_UPDATE),
        "quote_person_travel": (
            P.QUOTE_PERSON_TRAVEL_READ,
            P.QUOTE_PERSON_TRAVEL_CREATE,
            P.QUOTE_PERSON_TRAVEL_UPDATE,
        ),
        "quote_capitalization_title_lead": (
            P.QUOTE_CAPITALIZATION_TITLE_LEAD_CREATE,
            P.QUOTE_CAPITALIZATION_TITLE_LEAD_UPDATE,
        ),
        "quote_capitalization_title": (
            P.QUOTE_CAPITALIZATION_TITLE_READ,
            P.QUOTE_CAPITALIZATION_TITLE_CREATE,
            P.QUOTE_CAPITALIZATION_TITLE_UPDATE,
        ),
        "quote_capitalization_title_raffle": (P.QUOTE_CAPITALIZATION_TITLE_RAFFLE_CREATE,),
        "contract_pension_plan_lead": (P.CONTRACT_PENSION_PLAN_LEAD_CREATE, P.CONTRACT_PENSION_PLAN_LEAD_UPDATE),
        "contract_pension_plan_lead_portability": (
            P.CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_CREATE,
            P.CONTRACT_PENSION_PLAN_LEAD_PORTABILITY_UPDATE,
        ),
        "contract_life_pension_lead": (P.CONTRACT_LIFE_PENSION_LEAD_CREATE, P.CONTRACT_LIFE_PENSION_LEAD_UPDATE),
        "contract_life_pension": (
            P.CONTRACT_LIFE_PENSION_CREATE,
            P.CONTRACT_LIFE_PENSION_UPDATE,
            P.CONTRACT_LIFE_PENSION_READ,
        ),
        "contract_life_pension_lead_portability": (
            P.CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_CREATE,
            P.CONTRACT_LIFE_PENSION_LEAD_PORTABILITY_UPDATE,
        ),
        "pension_withdrawal": (P.PENSION_WITHDRAWAL_CREATE,),
        "pension_withdrawal_lead": (P.PENSION_WITHDRAWAL_LEAD_CREATE,),
        "capitalization_title_withdrawal": (P.CAPITALIZATION_TITLE_WITHDRAWAL_CREATE,),
        "person_withdrawal": (P.PERSON_WITHDRAWAL_CREATE,),
    }.items()
}

CATEGORY_3: FrozenSet[Permission] = frozenset(p for group in CATEGORY_3_GROUPS.values() for p in group)

ALLOWED: FrozenSet[Permission] = CATEGORY_2 | CATEGORY_3 | {P.ENDORSEMENT_REQUEST_CREATE}

_BY_VALUE: Dict[str, Permission] = {p.value: p for p in Permission}


def normalize_permissions(requested: Iterable[str]) -> List[str]:
    """Drop duplicates, keep first-seen order."""
    return list(dict.fromkeys(str(getattr(p, "value", p)) for p in requested))


def category_3_groups_of(permissions: Iterable[Permission]) -> List[str]:
    touched = {name for name, group in CATEGORY_3_GROUPS.items() if group & set(permissions)}
    return sorted(touched)


def validate_permissions(requested: Iterable[str]) -> None:
    """Raise InvalidPermissions unless ``requested`` is a legal permission set as a whole."""
    tokens = normalize_permissions(requested)
    if not tokens:
        raise InvalidPermissions("at least one permission must be requested", rule="empty")

    perms: set[Permission] = set()
    for token in tokens:
        perm = _BY_VALUE.get(token)
        if perm is None or perm not in ALLOWED:
            raise InvalidPermissions(f"permission {token} is not allowed", rule="unknown_permission")
        perms.add(perm)

    is_category_2 = bool(perms & CATEGORY_2)
    is_category_3 = bool(perms & CATEGORY_3)
    if is_category_2 and is_category_3:
        raise InvalidPermissions(
            "cannot request category 2 and category 3 permissions in the same consent",
            rule="mixed_categories",
        )

    if is_category_2:
        _validate_category_2(perms)
        return

    if is_category_3:
        _validate_category_3(perms)
        return

    # Only reachable if ALLOWED ever grows beyond the two categories
    raise InvalidPermissions("permissions do not belong to any category", rule="no_category")


def _validate_category_2(perms: set[Permission]) -> None:
    if P.RESOURCES_READ not in perms:
        raise InvalidPermissions("RESOURCES_READ is required for category 2 permissions", rule="resources_read_required")
    if len(perms) == 1:
        raise ResourcesReadAlone()


def _validate_category_3(perms: set[Permission]) -> None:
    groups = category_3_groups_of(perms)
    if len(groups) != 1:
        raise InvalidPermissions(
            "permissions of different category 3 groups were requested: " + ", ".join(groups),
            rule="multiple_categories",
        )

    missing = CATEGORY_3_GROUPS[groups[0]] - perms
    if missing:
        raise InvalidPermissions(
            f"all permissions of {groups[0]} must be requested together; missing "
            + ", ".join(sorted(p.value for p in missing)),
            rule="incomplete_category",
        )
