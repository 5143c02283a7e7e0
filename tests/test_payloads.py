"""
Unit tests for Stripe account payloads.
"""
from calendar import timegm
from datetime import date, datetime
from typing import Any

import pytest

from merchant_onboarding.config.countries import COUNTRIES, BankShape, country_config
from merchant_onboarding.core.payloads import (
    account_payload,
    bank_account_payload,
    company_payload,
    creation_payload,
    person_payload,
    representative_payload,
    strip_values,
)
from merchant_onboarding.domain.profiles import (
    BankAccountDetails,
    ComplianceProfile,
    TermsAcceptance,
)


def make_profile(**overrides: Any) -> ComplianceProfile:
    fields: dict[str, Any] = {
        "id": "6f1b0a52-3a57-4f5f-9d43-0d4c8a9b1e10",
        "creator_id": "c0ffee00-0000-4000-8000-000000000001",
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


def make_bank_account(**overrides: Any) -> BankAccountDetails:
    fields: dict[str, Any] = {
        "id": "0b6f1c1e-7d3a-4c55-9a57-7a1b7c0fd3e2",
        "creator_id": "c0ffee00-0000-4000-8000-000000000001",
        "country": "US",
        "currency": "usd",
        "account_number": "000123456789",
        "routing_number": "110000000",
    }
    fields.update(overrides)
    return BankAccountDetails(**fields)


TERMS = TermsAcceptance(id="tos_1", ip="203.0.113.7", accepted_at=datetime(2024, 1, 15, 10, 30))


# Stripe's connect countries and the currency their payouts settle in.
CHARGE_COUNTRY_CURRENCIES = {
    "AE": "aed", "AT": "eur", "AU": "aud", "BE": "eur", "BG": "bgn",
    "BR": None, "CA": "cad", "CH": "chf", "CY": "eur", "CZ": "czk",
    "DE": "eur", "DK": "dkk", "EE": "eur", "ES": "eur", "FI": "eur",
    "FR": "eur", "GB": "gbp", "GI": "gbp", "GR": "eur", "HK": "hkd",
    "HR": "eur", "HU": "huf", "IE": "eur", "IT": "eur", "JP": "jpy",
    "LI": "chf", "LT": "eur", "LU": "eur", "LV": "eur", "MT": "eur",
    "NL": "eur", "NO": "nok", "NZ": "nzd", "PL": "pln", "PT": "eur",
    "RO": "ron", "SE": "sek", "SG": "sgd", "SI": "eur", "SK": "eur",
    "US": "usd",
}

PAYOUTS_ONLY_COUNTRY_CURRENCIES = {
    "AG": "xcd", "AL": "all", "AM": "amd", "AO": "aoa", "AR": "ars",
    "AZ": "azn", "BA": "bam", "BD": "bdt", "BH": "bhd", "BJ": "xof",
    "BN": "bnd", "BO": "bob", "BS": "bsd", "BT": "btn", "BW": "bwp",
    "CI": "xof", "CL": "clp", "CO": "cop", "CR": "crc", "DO": "dop",
    "DZ": "dzd", "EC": "usd", "EG": "egp", "ET": "etb", "GA": "xaf",
    "GH": "ghs", "GT": "gtq", "GY": "gyd", "ID": "idr", "IL": "ils",
    "IN": "inr", "IS": "eur", "JM": "jmd", "JO": "jod", "KE": "kes",
    "KH": "khr", "KR": "krw", "KW": "kwd", "KZ": "kzt", "LA": "lak",
    "LC": "xcd", "LK": "lkr", "MA": "mad", "MC": "eur", "MD": "mdl",
    "MG": "mga", "MK": "mkd", "MN": "mnt", "MO": "mop", "MU": "mur",
    "MX": "mxn", "MY": "myr", "MZ": "mzn", "NA": "nad", "NE": "xof",
    "NG": "ngn", "OM": "omr", "PA": "usd", "PE": "pen", "PH": "php",
    "PK": "pkr", "PY": "pyg", "QA": "qar", "RS": "rsd", "RW": "rwf",
    "SA": "sar", "SM": "eur", "SN": "xof", "SV": "usd", "TH": "thb",
    "TN": "tnd", "TR": "try", "TT": "ttd", "TW": "twd", "TZ": "tzs",
    "UY": "uyu", "UZ": "uzs", "VN": "vnd", "ZA": "zar",
}

IBAN_COUNTRIES = {
    "AE", "AL", "AT", "AZ", "BA", "BE", "BG", "BH", "CH", "CR", "CY", "CZ",
    "DE", "DK", "DO", "EE", "EG", "ES", "FI", "FR", "GI", "GR", "GT", "HR",
    "HU", "IE", "IL", "IS", "IT", "JO", "KW", "KZ", "LI", "LT", "LU", "LV",
    "MC", "MD", "MK", "MT", "MU", "NL", "NO", "PK", "PL", "PT", "QA", "RO",
    "RS", "SA", "SE", "SI", "SK", "SM", "SV", "TN", "TR",
}


class TestCountryConfig:
    """Test suite for the country table."""

    @pytest.mark.unit
    def test_table_lists_every_supported_country(self) -> None:
        expected = set(CHARGE_COUNTRY_CURRENCIES) | set(PAYOUTS_ONLY_COUNTRY_CURRENCIES)
        assert set(COUNTRIES) == expected
        assert IBAN_COUNTRIES <= expected

    @pytest.mark.unit
    @pytest.mark.parametrize("code", sorted(COUNTRIES))
    def test_country_rules(self, code: str) -> None:
        """Each country maps to its currency, capability tier and bank shape."""
        config = country_config(code)
        assert config is not None
        assert config.code == code

        if code in PAYOUTS_ONLY_COUNTRY_CURRENCIES:
            assert config.currency == PAYOUTS_ONLY_COUNTRY_CURRENCIES[code]
            assert config.cross_border_payouts_only is True
            assert config.capabilities == ["transfers"]
        else:
            assert config.currency == CHARGE_COUNTRY_CURRENCIES[code]
            assert config.cross_border_payouts_only is False
            assert config.capabilities == ["card_payments", "transfers"]

        expected_shape = BankShape.IBAN if code in IBAN_COUNTRIES else BankShape.ROUTING_AND_ACCOUNT
        assert config.bank_shape is expected_shape
        assert config.requires_account_type is (code in {"CL", "CO"})
        assert config.requires_account_holder_name is (code in {"ID", "JP", "VN"})

    @pytest.mark.unit
    @pytest.mark.parametrize("code", sorted(COUNTRIES))
    def test_bank_account_payload_per_country(self, code: str) -> None:
        """Only the bank fields a country uses reach Stripe."""
        bank_account = make_bank_account(
            country=code,
            currency="usd",
            account_number="DE89 3704 0044 0532 0130 00",
            routing_number="110000000",
            account_type="checking",
            account_holder_name="Ada Lovelace",
        )

        payload = bank_account_payload(bank_account, code)
        details = payload["bank_account"]

        assert details["country"] == code
        assert details["account_number"] == "DE89370400440532013000"
        assert ("routing_number" in details) is (code not in IBAN_COUNTRIES)
        assert ("account_type" in details) is (code in {"CL", "CO"})
        assert ("account_holder_name" in details) is (code in {"ID", "JP", "VN"})
        assert payload["settings"]["payouts"]["schedule"] == {"interval": "manual"}
        assert payload["settings"]["payouts"]["debit_negative_balances"] is (
            code in CHARGE_COUNTRY_CURRENCIES
        )

    @pytest.mark.unit
    def test_lookup_is_case_insensitive(self) -> None:
        assert country_config("us") is COUNTRIES["US"]

    @pytest.mark.unit
    def test_unknown_and_currencyless_countries(self) -> None:
        assert country_config("XX") is None
        assert country_config(None) is None
        assert COUNTRIES["BR"].currency is None


class TestPersonPayload:
    """Test suite for the individual block."""

    @pytest.mark.unit
    def test_us_individual(self) -> None:
        person = person_payload(make_profile())

        assert person["first_name"] == "Ada"
        assert person["dob"] == {"day": 17, "month": 5, "year": 1990}
        assert person["address"] == {
            "line1": "1 Market St",
            "line2": None,
            "city": "San Francisco",
            "state": "CA",
            "postal_code": "94105",
            "country": "US",
        }
        assert person["ssn_last_4"] == "1234"
        assert "id_number" not in person
        assert "relationship" not in person

    @pytest.mark.unit
    def test_us_full_ssn_is_sent_as_id_number(self) -> None:
        person = person_payload(make_profile(individual_tax_id="123456789"))

        assert person["id_number"] == "123456789"
        assert "ssn_last_4" not in person

    @pytest.mark.unit
    def test_non_us_tax_id_is_always_id_number(self) -> None:
        person = person_payload(
            make_profile(country_code="GB", individual_tax_id="1234", state=None)
        )

        assert person["id_number"] == "1234"
        assert "state" not in person["address"]

    @pytest.mark.unit
    def test_whitespace_is_stripped(self) -> None:
        person = person_payload(make_profile(first_name="  Ada ", city=" San Francisco\n"))

        assert person["first_name"] == "Ada"
        assert person["address"]["city"] == "San Francisco"

    @pytest.mark.unit
    def test_japanese_script_addresses(self) -> None:
        person = person_payload(
            make_profile(
                country_code="JP",
                first_name_kanji="太郎",
                last_name_kanji="山田",
                first_name_kana="タロウ",
                last_name_kana="ヤマダ",
                building_number="1-2-3",
                street_address_kanji="千代田区",
                street_address_kana="チヨダク",
                zip_code="1000001",
                individual_tax_id=None,
            )
        )

        assert "address" not in person
        assert person["first_name_kanji"] == "太郎"
        assert person["address_kanji"] == {
            "line1": "1-2-3",
            "line2": "千代田区",
            "postal_code": "1000001",
        }
        assert person["address_kana"]["line2"] == "チヨダク"

    @pytest.mark.unit
    def test_canadian_individual_carries_job_title(self) -> None:
        person = person_payload(make_profile(country_code="CA", job_title=None))

        assert person["relationship"] == {"title": "CEO"}

    @pytest.mark.unit
    def test_nationality_where_required(self) -> None:
        person = person_payload(make_profile(country_code="SG", nationality="SG"))

        assert person["nationality"] == "SG"

    @pytest.mark.unit
    def test_representative_relationship(self) -> None:
        person = representative_payload(make_profile(job_title=" "))

        assert person["relationship"] == {
            "representative": True,
            "owner": True,
            "title": "CEO",
            "percent_ownership": 100,
        }


class TestCompanyPayload:
    """Test suite for company accounts."""

    @pytest.mark.unit
    def test_us_sole_proprietorship_structure(self) -> None:
        company = company_payload(
            make_profile(
                legal_entity_type="company",
                business_type="sole_proprietorship",
                business_name="Ada Studio",
                business_tax_id="12-3456789",
            )
        )

        assert company["name"] == "Ada Studio"
        assert company["structure"] == "sole_proprietorship"
        assert company["directors_provided"] is True
        assert company["executives_provided"] is True

    @pytest.mark.unit
    def test_uae_company_declares_structure_and_vat(self) -> None:
        profile = make_profile(
            country_code="AE",
            legal_entity_type="company",
            business_type="llc",
            business_name="Falcon Media",
            business_country_code="AE",
            business_vat_id="100000000000003",
            business_phone="+971500000000",
        )

        company = company_payload(profile)
        payload = account_payload(profile, creator_id="creator_1")

        assert company["structure"] == "llc"
        assert company["vat_id"] == "100000000000003"
        assert payload["business_profile"]["support_phone"] == "+971500000000"

    @pytest.mark.unit
    def test_canadian_non_profit(self) -> None:
        profile = make_profile(
            country_code="CA",
            legal_entity_type="company",
            business_type="non_profit",
            business_name="Maple Trust",
            business_country_code="CA",
        )

        payload = account_payload(profile, creator_id="creator_1")

        assert payload["business_type"] == "non_profit"
        assert payload["company"]["structure"] == ""
        assert "individual" not in payload


class TestAccountPayload:
    """Test suite for account creation payloads."""

    @pytest.mark.unit
    def test_us_creation_payload(self) -> None:
        payload = creation_payload(
            make_profile(),
            make_bank_account(account_number="0001 2345-6789"),
            TERMS,
            creator_id="creator_1",
            business_profile_url="https://example.com/ada",
        )

        assert payload["type"] == "custom"
        assert payload["country"] == "US"
        assert payload["default_currency"] == "usd"
        assert payload["requested_capabilities"] == ["card_payments", "transfers"]
        assert payload["business_type"] == "individual"
        assert payload["business_profile"] == {
            "name": "Ada Lovelace",
            "url": "https://example.com/ada",
            "product_description": "Ada Lovelace",
        }
        assert payload["tos_acceptance"] == {
            "date": timegm(datetime(2024, 1, 15, 10, 30).utctimetuple()),
            "ip": "203.0.113.7",
        }
        assert payload["metadata"] == {
            "creator_id": "creator_1",
            "compliance_profile_id": "6f1b0a52-3a57-4f5f-9d43-0d4c8a9b1e10",
            "tos_agreement_id": "tos_1",
            "bank_account_id": "0b6f1c1e-7d3a-4c55-9a57-7a1b7c0fd3e2",
        }
        assert payload["bank_account"] == {
            "country": "US",
            "currency": "usd",
            "account_number": "000123456789",
            "routing_number": "110000000",
        }
        assert payload["settings"]["payouts"] == {
            "schedule": {"interval": "manual"},
            "debit_negative_balances": True,
        }

    @pytest.mark.unit
    def test_cross_border_payouts_only(self) -> None:
        payload = creation_payload(
            make_profile(country_code="MX", individual_tax_id=None),
            make_bank_account(country="MX", currency="mxn", routing_number=None),
            TERMS,
            creator_id="creator_1",
        )

        assert payload["requested_capabilities"] == ["transfers"]
        assert payload["tos_acceptance"]["service_agreement"] == "recipient"
        assert payload["settings"]["payouts"]["debit_negative_balances"] is False

    @pytest.mark.unit
    def test_iban_country_omits_routing_number(self) -> None:
        payload = bank_account_payload(
            make_bank_account(
                country="DE",
                currency="eur",
                account_number="DE89 3704 0044 0532 0130 00",
                routing_number="37040044",
            ),
            "DE",
        )

        assert payload["bank_account"] == {
            "country": "DE",
            "currency": "eur",
            "account_number": "DE89370400440532013000",
        }

    @pytest.mark.unit
    def test_account_type_and_holder_name_where_required(self) -> None:
        chile = bank_account_payload(
            make_bank_account(country="CL", currency="clp", account_type="checking"), "CL"
        )
        japan = bank_account_payload(
            make_bank_account(country="JP", currency="jpy", account_holder_name="ヤマダ タロウ"),
            "JP",
        )

        assert chile["bank_account"]["account_type"] == "checking"
        assert "account_holder_name" not in chile["bank_account"]
        assert japan["bank_account"]["account_holder_name"] == "ヤマダ タロウ"

    @pytest.mark.unit
    def test_bank_payload_keeps_existing_metadata(self) -> None:
        payload = bank_account_payload(
            make_bank_account(), "US", metadata={"creator_id": "creator_1"}
        )

        assert payload["metadata"] == {
            "creator_id": "creator_1",
            "bank_account_id": "0b6f1c1e-7d3a-4c55-9a57-7a1b7c0fd3e2",
        }

    @pytest.mark.unit
    def test_strip_values_recurses(self) -> None:
        assert strip_values({"a": " x ", "b": [" y"], "c": {"d": "z "}, "e": 1}) == {
            "a": "x",
            "b": ["y"],
            "c": {"d": "z"},
            "e": 1,
        }
