"""
Stripe custom account payloads built from onboarding snapshots.

Every function here is pure: it takes immutable snapshots plus the static
country table and returns the nested dict Stripe expects. Country-specific
shape comes from ``CountryConfig`` flags rather than per-country branches.
"""
from calendar import timegm
from typing import Any, Dict, Mapping, Optional

from merchant_onboarding.config.countries import (
    DEFAULT_RELATIONSHIP_TITLE,
    BankShape,
    CountryConfig,
    country_config,
)
from merchant_onboarding.domain.profiles import (
    BankAccountDetails,
    BusinessTypes,
    ComplianceProfile,
    TermsAcceptance,
)

RECIPIENT_SERVICE_AGREEMENT = "recipient"
MANUAL_PAYOUT_SCHEDULE = {"interval": "manual"}


def strip_values(value: Any) -> Any:
    """Recursively trim whitespace from every string in a payload."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return {key: strip_values(item) for key, item in value.items()}
    if isinstance(value, list):
        return [strip_values(item) for item in value]
    return value


def deep_merge(base: Dict[str, Any], other: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``other`` into a copy of ``base``; nested dicts are merged, not replaced."""
    merged = dict(base)
    for key, value in other.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def config_for(country_code: Optional[str]) -> CountryConfig:
    """Country rules, or an empty rule set for unmapped countries."""
    return country_config(country_code) or CountryConfig(code=(country_code or "").upper(), currency=None)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def dob_payload(profile: ComplianceProfile) -> Optional[Dict[str, int]]:
    if profile.birthday is None:
        return None
    return {
        "day": profile.birthday.day,
        "month": profile.birthday.month,
        "year": profile.birthday.year,
    }


def _address(
    line1: Optional[str],
    city: Optional[str],
    state: Optional[str],
    postal_code: Optional[str],
    country: Optional[str],
    config: CountryConfig,
) -> Dict[str, Any]:
    address: Dict[str, Any] = {
        "line1": line1,
        "line2": None,
        "city": city,
        "postal_code": postal_code,
        "country": country,
    }
    if config.has_state:
        address["state"] = state
    return address


def _japanese_address(building: Optional[str], street: Optional[str], postal_code: Optional[str]):
    return {"line1": building, "line2": street, "postal_code": postal_code}


def person_payload(profile: ComplianceProfile) -> Dict[str, Any]:
    """
    The ``individual`` block, also used for a company's representative.

    US tax ids of exactly four digits are the SSN last 4; anything longer is
    the full number. Other countries always send the full id number.
    """
    config = config_for(profile.country_code)
    legal_config = config_for(profile.legal_entity_country_code)

    person: Dict[str, Any] = {
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "email": profile.email,
        "phone": profile.phone,
    }
    dob = dob_payload(profile)
    if dob is not None:
        person["dob"] = dob

    if legal_config.relationship_title_on_individual:
        person["relationship"] = {"title": profile.job_title or DEFAULT_RELATIONSHIP_TITLE}

    if config.uses_japanese_script:
        person.update(
            first_name_kanji=profile.first_name_kanji,
            last_name_kanji=profile.last_name_kanji,
            first_name_kana=profile.first_name_kana,
            last_name_kana=profile.last_name_kana,
            address_kanji=_japanese_address(
                profile.building_number, profile.street_address_kanji, profile.zip_code
            ),
            address_kana=_japanese_address(
                profile.building_number, profile.street_address_kana, profile.zip_code
            ),
        )
    else:
        person["address"] = _address(
            profile.street_address,
            profile.city,
            profile.state,
            profile.zip_code,
            profile.country_code,
            config,
        )

    tax_id = _blank_to_none(profile.individual_tax_id)
    if tax_id is not None:
        tax_id = tax_id.strip()
        if config.accepts_ssn_last_4 and len(tax_id) == 4:
            person["ssn_last_4"] = tax_id
        elif not config.accepts_ssn_last_4 or len(tax_id) > 4:
            person["id_number"] = tax_id

    if config.requires_nationality:
        person["nationality"] = profile.nationality

    return strip_values(person)


def representative_payload(profile: ComplianceProfile) -> Dict[str, Any]:
    """Person payload for the representative and sole owner of a company."""
    relationship = {
        "representative": True,
        "owner": True,
        "title": (profile.job_title or "").strip() or DEFAULT_RELATIONSHIP_TITLE,
        "percent_ownership": 100,
    }
    return deep_merge(person_payload(profile), {"relationship": relationship})


def is_us_sole_proprietorship(profile: ComplianceProfile) -> bool:
    config = config_for(profile.country_code)
    return (
        profile.is_company
        and config.supports_sole_proprietorship
        and profile.business_type == BusinessTypes.SOLE_PROPRIETORSHIP
    )


def company_payload(profile: ComplianceProfile) -> Dict[str, Any]:
    """The ``company`` block of a company account."""
    config = config_for(profile.country_code)
    legal_config = config_for(profile.legal_entity_country_code)

    company: Dict[str, Any] = {
        "name": _blank_to_none(profile.business_name),
        "address": _address(
            profile.business_street_address or profile.street_address,
            profile.business_city or profile.city,
            profile.business_state or profile.state,
            profile.business_zip_code or profile.zip_code,
            profile.legal_entity_country_code,
            legal_config,
        ),
        "tax_id": _blank_to_none(profile.business_tax_id),
        "phone": profile.business_phone,
        "directors_provided": True,
        "executives_provided": True,
    }

    if config.uses_japanese_script:
        postal_code = profile.business_zip_code or profile.zip_code
        company.update(
            name_kanji=profile.business_name_kanji,
            name_kana=profile.business_name_kana,
            address_kanji=_japanese_address(
                profile.business_building_number, profile.business_street_address_kanji, postal_code
            ),
            address_kana=_japanese_address(
                profile.business_building_number, profile.business_street_address_kana, postal_code
            ),
        )

    if legal_config.declares_company_structure:
        if legal_config.has_non_profit_business_type and profile.business_type == BusinessTypes.NON_PROFIT:
            # Stripe derives non-profit structure from business_type.
            company["structure"] = ""
        else:
            company["structure"] = profile.business_type
        if legal_config.requires_company_vat_id:
            company["vat_id"] = profile.business_vat_id
    elif is_us_sole_proprietorship(profile):
        company["structure"] = BusinessTypes.SOLE_PROPRIETORSHIP

    return strip_values(company)


def business_type_for(profile: ComplianceProfile) -> str:
    if not profile.is_company:
        return "individual"
    legal_config = config_for(profile.legal_entity_country_code)
    if (
        legal_config.has_non_profit_business_type
        and profile.business_type in BusinessTypes.CANADIAN_NON_PROFITS
    ):
        return "non_profit"
    return "company"


def terms_payload(terms: TermsAcceptance, profile: ComplianceProfile) -> Dict[str, Any]:
    tos: Dict[str, Any] = {
        "date": timegm(terms.accepted_at.utctimetuple()),
        "ip": terms.ip,
    }
    if config_for(profile.legal_entity_country_code).cross_border_payouts_only:
        tos["service_agreement"] = RECIPIENT_SERVICE_AGREEMENT
    return tos


def account_payload(
    profile: ComplianceProfile,
    *,
    creator_id: str,
    business_profile_url: Optional[str] = None,
    terms: Optional[TermsAcceptance] = None,
) -> Dict[str, Any]:
    """
    Identity sections of an account: business profile, individual or company
    block, terms acceptance and the metadata references to local records.
    """
    legal_config = config_for(profile.legal_entity_country_code)

    payload: Dict[str, Any] = {
        "metadata": {
            "creator_id": creator_id,
            "compliance_profile_id": profile.id,
        },
        "business_type": business_type_for(profile),
        "business_profile": {
            "name": profile.legal_entity_name,
            "url": business_profile_url,
            "product_description": profile.legal_entity_name,
        },
    }
    if legal_config.requires_support_phone:
        payload["business_profile"]["support_phone"] = profile.business_phone or profile.phone

    if terms is not None:
        payload["tos_acceptance"] = terms_payload(terms, profile)
        payload["metadata"]["tos_agreement_id"] = terms.id

    if profile.is_company:
        payload["company"] = company_payload(profile)
    else:
        payload["individual"] = person_payload(profile)

    return strip_values(payload)


def _compact_account_number(account_number: str) -> str:
    return account_number.replace(" ", "").replace("-", "")


def bank_account_payload(
    bank_account: BankAccountDetails,
    legal_entity_country_code: Optional[str],
    metadata: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Bank destination plus payout settings.

    Args:
        bank_account: Active bank account snapshot
        legal_entity_country_code: Country whose bank rules apply
        metadata: Existing account metadata to carry over

    Returns:
        Dict[str, Any]: ``metadata``, ``bank_account`` and ``settings`` sections
    """
    config = config_for(legal_entity_country_code)

    details: Dict[str, Any] = {
        "country": bank_account.country,
        "currency": bank_account.currency,
        "account_number": _compact_account_number(bank_account.account_number),
    }
    if config.bank_shape is BankShape.ROUTING_AND_ACCOUNT and bank_account.routing_number:
        details["routing_number"] = bank_account.routing_number
    if config.requires_account_type and bank_account.account_type:
        details["account_type"] = bank_account.account_type
    if config.requires_account_holder_name and bank_account.account_holder_name:
        details["account_holder_name"] = bank_account.account_holder_name

    return strip_values(
        {
            "metadata": {**dict(metadata or {}), "bank_account_id": bank_account.id},
            "bank_account": details,
            "settings": {
                "payouts": {
                    "schedule": dict(MANUAL_PAYOUT_SCHEDULE),
                    "debit_negative_balances": config.can_accept_charges,
                },
            },
        }
    )


def creation_payload(
    profile: ComplianceProfile,
    bank_account: BankAccountDetails,
    terms: TermsAcceptance,
    *,
    creator_id: str,
    business_profile_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Full ``Account.create`` payload for a custom connected account."""
    config = config_for(profile.legal_entity_country_code)
    payload: Dict[str, Any] = {
        "type": "custom",
        "requested_capabilities": config.capabilities,
        "country": config.code,
        "default_currency": config.currency,
    }
    payload = deep_merge(
        payload,
        account_payload(
            profile,
            creator_id=creator_id,
            business_profile_url=business_profile_url,
            terms=terms,
        ),
    )
    return deep_merge(payload, bank_account_payload(bank_account, config.code))
