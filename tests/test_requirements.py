"""
Unit tests for requirement parsing.
"""
from datetime import datetime, timezone

import pytest

from merchant_onboarding.core.requirements import (
    normalise_stripe_field,
    parse_requirements,
    person_requirement_ids,
)
from merchant_onboarding.domain.fields import RequirementKind, classify_requirement
from merchant_onboarding.integrations.vendor_objects import Requirements

CURRENT_DEADLINE = 1735689600  # 2025-01-01
FUTURE_DEADLINE = 1767225600  # 2026-01-01


def as_datetime(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


def by_field(parsed):
    return {requirement.field: requirement for requirement in parsed}


class TestParseRequirements:
    """Test suite for parse_requirements."""

    @pytest.mark.unit
    def test_each_tier_uses_its_own_deadline(self) -> None:
        parsed = by_field(
            parse_requirements(
                Requirements(
                    currently_due=["individual.first_name"], current_deadline=CURRENT_DEADLINE
                ),
                Requirements(
                    currently_due=["individual.last_name"],
                    eventually_due=["company.tax_id"],
                    current_deadline=FUTURE_DEADLINE,
                ),
            )
        )

        assert parsed["individual.first_name"].due_at == as_datetime(CURRENT_DEADLINE)
        assert parsed["individual.last_name"].due_at == as_datetime(FUTURE_DEADLINE)
        # Future eventually_due only matters past volume thresholds.
        assert "business.tax_id" not in parsed

    @pytest.mark.unit
    def test_dob_parts_collapse_into_one_field(self) -> None:
        parsed = parse_requirements(
            Requirements(
                currently_due=["individual.dob.day", "individual.dob.month"],
                past_due=["individual.dob.year"],
            )
        )

        assert [requirement.field for requirement in parsed] == ["individual.dob"]

    @pytest.mark.unit
    def test_full_tax_id_wins_over_partial(self) -> None:
        parsed = parse_requirements(
            Requirements(currently_due=["individual.ssn_last_4", "individual.id_number"])
        )

        assert len(parsed) == 1
        assert parsed[0].field == "individual.tax_id"
        assert parsed[0].partial is False

    @pytest.mark.unit
    def test_ssn_last_4_alone_is_partial(self) -> None:
        parsed = parse_requirements(Requirements(past_due=["individual.ssn_last_4"]))

        assert parsed[0].partial is True
        assert parsed[0].kind is RequirementKind.KYC

    @pytest.mark.unit
    def test_earliest_deadline_wins_on_merge(self) -> None:
        parsed = parse_requirements(
            Requirements(currently_due=["individual.dob.day"], current_deadline=FUTURE_DEADLINE),
            Requirements(currently_due=["individual.dob.month"], current_deadline=CURRENT_DEADLINE),
        )

        assert parsed[0].due_at == as_datetime(CURRENT_DEADLINE)

    @pytest.mark.unit
    def test_known_person_fields_become_individual_fields(self) -> None:
        parsed = parse_requirements(
            Requirements(currently_due=["person_1AbC.dob.day", "person_2XyZ.first_name"]),
            known_person_ids=["person_1AbC"],
        )

        fields = [requirement.field for requirement in parsed]
        assert fields == ["individual.dob", "person_2XyZ.first_name"]

    @pytest.mark.unit
    def test_representative_fields_become_individual_fields(self) -> None:
        parsed = parse_requirements(Requirements(currently_due=["representative.id_number"]))

        assert parsed[0].field == "individual.tax_id"
        assert parsed[0].stripe_field == "representative.id_number"

    @pytest.mark.unit
    def test_alternative_fields_are_tracked(self) -> None:
        parsed = by_field(
            parse_requirements(
                Requirements.model_validate(
                    {
                        "alternatives": [
                            {
                                "alternative_fields_due": ["individual.verification.document"],
                                "original_fields_due": ["individual.id_number"],
                            }
                        ]
                    }
                )
            )
        )

        assert "individual.stripe_identity_document_id" in parsed

    @pytest.mark.unit
    def test_errors_are_attached(self) -> None:
        parsed = parse_requirements(
            Requirements.model_validate(
                {
                    "past_due": ["individual.verification.document"],
                    "errors": [
                        {
                            "requirement": "individual.verification.document",
                            "code": "verification_document_expired",
                            "reason": "The document is expired.",
                        }
                    ],
                }
            )
        )

        assert parsed[0].error == {
            "code": "verification_document_expired",
            "reason": "The document is expired.",
        }

    @pytest.mark.unit
    def test_interventions_keep_their_field(self) -> None:
        parsed = by_field(
            parse_requirements(
                Requirements(
                    currently_due=[
                        "interv_1AbC.credit_review.business_details",
                        "interv_2XyZ.rejection_appeal",
                    ]
                )
            )
        )

        assert parsed["interv_1AbC.credit_review.business_details"].kind is RequirementKind.REMEDIATION
        assert parsed["interv_2XyZ.rejection_appeal"].kind is RequirementKind.SUSPENSION

    @pytest.mark.unit
    def test_unknown_fields_are_kept_verbatim(self) -> None:
        parsed = parse_requirements(Requirements(currently_due=["settings.new_thing"]))

        assert parsed[0].field == "settings.new_thing"

    @pytest.mark.unit
    def test_none_tiers_decode_as_empty(self) -> None:
        requirements = Requirements.model_validate({"currently_due": None, "errors": None})

        assert parse_requirements(requirements) == []


class TestFieldHelpers:
    """Test suite for field normalisation helpers."""

    @pytest.mark.unit
    def test_person_requirement_ids_in_order(self) -> None:
        ids = person_requirement_ids(
            Requirements(currently_due=["person_B.dob.day", "individual.email"]),
            Requirements(eventually_due=["person_A.first_name", "person_B.email"]),
        )

        assert ids == ["person_B", "person_A"]

    @pytest.mark.unit
    def test_normalise_unknown_person_is_untouched(self) -> None:
        assert normalise_stripe_field("person_X.email") == "person_X.email"
        assert normalise_stripe_field("person_X.email", ["person_X"]) == "individual.email"

    @pytest.mark.unit
    def test_unlisted_intervention_is_remediation(self) -> None:
        assert classify_requirement("interv_9.something_new") is RequirementKind.REMEDIATION
        assert classify_requirement("individual.email") is RequirementKind.KYC
