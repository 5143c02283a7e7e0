"""
Unit tests for incremental account updates.
"""
from datetime import date
from typing import Any

import pytest

from merchant_onboarding.core.diff import (
    build_account_update,
    build_person_update,
    diff_attributes,
    requested_capabilities,
)
from merchant_onboarding.domain.profiles import ComplianceProfile

CREATOR_ID = "c0ffee00-0000-4000-8000-000000000001"


def make_profile(**overrides: Any) -> ComplianceProfile:
    fields: dict[str, Any] = {
        "id": "6f1b0a52-3a57-4f5f-9d43-0d4c8a9b1e10",
        "creator_id": CREATOR_ID,
        "country_code": "US",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "+14155550100",
        "birthday": date(1990, 5, 17),
        "individual_tax_id": "1234",
        "street_address": "1 Market St",
        "city": "San Francisco",
        "state": "CA",
        "zip_code": "94105",
    }
    fields.update(overrides)
    return ComplianceProfile(**fields)


def make_company(**overrides: Any) -> ComplianceProfile:
    fields: dict[str, Any] = {
        "legal_entity_type": "company",
        "business_type": "llc",
        "business_name": "Ada Studio LLC",
        "business_tax_id": "12-3456789",
        "business_phone": "+14155550199",
    }
    fields.update(overrides)
    return make_profile(**fields)


class TestDiffAttributes:
    """Test suite for the recursive diff."""

    @pytest.mark.unit
    def test_nested_changes_only(self) -> None:
        current = {"a": 1, "b": {"c": 2, "d": 3}, "e": {"f": 4}}
        last = {"a": 1, "b": {"c": 2, "d": 30}, "e": {"f": 4}}

        assert diff_attributes(current, last) == {"b": {"d": 3}}

    @pytest.mark.unit
    def test_new_keys_are_sent_and_removed_keys_are_not(self) -> None:
        assert diff_attributes({"a": 1, "new": 2}, {"a": 1, "gone": 3}) == {"new": 2}

    @pytest.mark.unit
    def test_empty_sections_are_dropped(self) -> None:
        assert diff_attributes({"a": {}}, {}) == {}


class TestRequestedCapabilities:
    """Test suite for capability requests."""

    @pytest.mark.unit
    def test_union_keeps_vendor_capabilities(self) -> None:
        capabilities = requested_capabilities(
            ["card_payments", "transfers"], ["transfers", "tax_reporting_us_1099_k"]
        )

        assert capabilities == {
            "card_payments": {"requested": True},
            "transfers": {"requested": True},
            "tax_reporting_us_1099_k": {"requested": True},
        }


class TestBuildAccountUpdate:
    """Test suite for account update payloads."""

    @pytest.mark.unit
    def test_without_previous_profile_sends_everything(self) -> None:
        update = build_account_update(None, make_profile(), creator_id=CREATOR_ID)

        assert update["individual"]["first_name"] == "Ada"
        assert update["business_type"] == "individual"
        assert update["capabilities"] == {
            "card_payments": {"requested": True},
            "transfers": {"requested": True},
        }

    @pytest.mark.unit
    def test_unchanged_profile_resends_only_unlocked_sections(self) -> None:
        profile = make_profile()

        update = build_account_update(profile, profile, creator_id=CREATOR_ID)

        assert set(update) == {"metadata", "business_profile", "individual", "capabilities"}
        assert update["individual"] == {"email": "ada@example.com", "phone": "+14155550100"}
        assert update["metadata"] == {
            "creator_id": CREATOR_ID,
            "compliance_profile_id": profile.id,
        }

    @pytest.mark.unit
    def test_changed_address_field(self) -> None:
        update = build_account_update(
            make_profile(), make_profile(city="Oakland"), creator_id=CREATOR_ID
        )

        assert update["individual"]["address"] == {"city": "Oakland"}
        assert "first_name" not in update["individual"]

    @pytest.mark.unit
    def test_dob_change_sends_full_date(self) -> None:
        update = build_account_update(
            make_profile(),
            make_profile(birthday=date(1990, 6, 17)),
            creator_id=CREATOR_ID,
        )

        assert update["individual"]["dob"] == {"day": 17, "month": 6, "year": 1990}

    @pytest.mark.unit
    def test_full_ssn_replaces_last_4(self) -> None:
        update = build_account_update(
            make_profile(individual_tax_id="1234"),
            make_profile(individual_tax_id="123456789"),
            creator_id=CREATOR_ID,
        )

        assert update["individual"]["id_number"] == "123456789"
        assert "ssn_last_4" not in update["individual"]

    @pytest.mark.unit
    def test_company_to_individual_renames_company(self) -> None:
        update = build_account_update(make_company(), make_profile(), creator_id=CREATOR_ID)

        assert update["business_type"] == "individual"
        assert update["individual"]["first_name"] == "Ada"
        assert update["company"] == {"name": "Ada Lovelace"}

    @pytest.mark.unit
    def test_individual_to_company_sends_company(self) -> None:
        update = build_account_update(make_profile(), make_company(), creator_id=CREATOR_ID)

        assert update["business_type"] == "company"
        assert update["company"]["name"] == "Ada Studio LLC"
        assert "individual" not in update

    @pytest.mark.unit
    def test_sole_proprietorship_structure_is_set(self) -> None:
        previous = make_company(business_type="sole_proprietorship")

        update = build_account_update(previous, previous, creator_id=CREATOR_ID)

        assert update["company"]["structure"] == "sole_proprietorship"

    @pytest.mark.unit
    def test_leaving_sole_proprietorship_clears_structure(self) -> None:
        update = build_account_update(
            make_company(business_type="sole_proprietorship"),
            make_company(business_type="llc"),
            creator_id=CREATOR_ID,
        )

        assert update["company"]["structure"] == ""

    @pytest.mark.unit
    def test_capabilities_include_existing_vendor_capabilities(self) -> None:
        update = build_account_update(
            make_profile(),
            make_profile(),
            creator_id=CREATOR_ID,
            vendor_capabilities=["card_payments", "transfers", "us_bank_account_ach_payments"],
        )

        assert update["capabilities"]["us_bank_account_ach_payments"] == {"requested": True}


class TestBuildPersonUpdate:
    """Test suite for representative updates."""

    @pytest.mark.unit
    def test_without_previous_sends_representative(self) -> None:
        update = build_person_update(None, make_company())

        assert update["relationship"]["representative"] is True

    @pytest.mark.unit
    def test_changed_dob_sends_full_date(self) -> None:
        update = build_person_update(make_company(), make_company(birthday=date(1991, 5, 17)))

        assert update["dob"] == {"day": 17, "month": 5, "year": 1991}
        assert "first_name" not in update
