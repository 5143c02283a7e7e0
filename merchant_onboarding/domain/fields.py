"""
Internal compliance field names and their mapping from Stripe requirements.

Stripe reports outstanding verification work as dotted requirement strings
(``individual.dob.day``, ``company.tax_id``, ``interv_abc.credit_review``).
This module translates them into the field names creators see in their
settings and classifies the ones that are not plain KYC data.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class ComplianceFields:
    """Names of the compliance fields a creator can be asked to provide."""

    BANK_ACCOUNT = "bank_account"
    TOS_ACCEPTANCE = "tos_acceptance"
    BUSINESS_PROFILE_URL = "business_profile_url"
    PRODUCT_DESCRIPTION = "product_description"

    INDIVIDUAL_FIRST_NAME = "individual.first_name"
    INDIVIDUAL_LAST_NAME = "individual.last_name"
    INDIVIDUAL_DOB = "individual.dob"
    INDIVIDUAL_TAX_ID = "individual.tax_id"
    INDIVIDUAL_PHONE = "individual.phone"
    INDIVIDUAL_EMAIL = "individual.email"
    INDIVIDUAL_NATIONALITY = "individual.nationality"
    INDIVIDUAL_STREET = "individual.address.street"
    INDIVIDUAL_CITY = "individual.address.city"
    INDIVIDUAL_STATE = "individual.address.state"
    INDIVIDUAL_ZIP_CODE = "individual.address.zip_code"
    INDIVIDUAL_JOB_TITLE = "individual.job_title"
    INDIVIDUAL_IDENTITY_DOCUMENT = "individual.stripe_identity_document_id"
    INDIVIDUAL_ADDITIONAL_DOCUMENT = "individual.stripe_additional_document_id"
    INDIVIDUAL_ENHANCED_VERIFICATION = "individual.stripe_enhanced_identity_verification"
    INDIVIDUAL_FIRST_NAME_KANJI = "individual.first_name_kanji"
    INDIVIDUAL_LAST_NAME_KANJI = "individual.last_name_kanji"
    INDIVIDUAL_FIRST_NAME_KANA = "individual.first_name_kana"
    INDIVIDUAL_LAST_NAME_KANA = "individual.last_name_kana"
    INDIVIDUAL_ADDRESS_KANJI = "individual.address_kanji"
    INDIVIDUAL_ADDRESS_KANA = "individual.address_kana"

    BUSINESS_NAME = "business.name"
    BUSINESS_TAX_ID = "business.tax_id"
    BUSINESS_PHONE = "business.phone"
    BUSINESS_VAT_NUMBER = "business.vat_number"
    BUSINESS_STRUCTURE = "business.structure"
    BUSINESS_STREET = "business.address.street"
    BUSINESS_CITY = "business.address.city"
    BUSINESS_STATE = "business.address.state"
    BUSINESS_ZIP_CODE = "business.address.zip_code"
    BUSINESS_COMPANY_DOCUMENT = "business.stripe_company_document_id"
    BUSINESS_NAME_KANJI = "business.name_kanji"
    BUSINESS_NAME_KANA = "business.name_kana"
    BUSINESS_ADDRESS_KANJI = "business.address_kanji"
    BUSINESS_ADDRESS_KANA = "business.address_kana"
    BUSINESS_DIRECTORS = "business.directors_provided"
    BUSINESS_EXECUTIVES = "business.executives_provided"
    BUSINESS_OWNERS = "business.owners_provided"


F = ComplianceFields

# Stripe requirement -> (internal field, only needs to be partially provided).
# Person requirements are normalised to the ``individual.`` prefix first.
_STRIPE_FIELD_MAP: Dict[str, Tuple[str, bool]] = {
    "external_account": (F.BANK_ACCOUNT, False),
    "tos_acceptance.date": (F.TOS_ACCEPTANCE, False),
    "tos_acceptance.ip": (F.TOS_ACCEPTANCE, False),
    "business_profile.url": (F.BUSINESS_PROFILE_URL, False),
    "business_profile.product_description": (F.PRODUCT_DESCRIPTION, False),
    "business_profile.mcc": (F.PRODUCT_DESCRIPTION, False),
    "individual.first_name": (F.INDIVIDUAL_FIRST_NAME, False),
    "individual.last_name": (F.INDIVIDUAL_LAST_NAME, False),
    "individual.dob.day": (F.INDIVIDUAL_DOB, False),
    "individual.dob.month": (F.INDIVIDUAL_DOB, False),
    "individual.dob.year": (F.INDIVIDUAL_DOB, False),
    "individual.id_number": (F.INDIVIDUAL_TAX_ID, False),
    "individual.ssn_last_4": (F.INDIVIDUAL_TAX_ID, True),
    "individual.phone": (F.INDIVIDUAL_PHONE, False),
    "individual.email": (F.INDIVIDUAL_EMAIL, False),
    "individual.nationality": (F.INDIVIDUAL_NATIONALITY, False),
    "individual.address.line1": (F.INDIVIDUAL_STREET, False),
    "individual.address.city": (F.INDIVIDUAL_CITY, False),
    "individual.address.state": (F.INDIVIDUAL_STATE, False),
    "individual.address.postal_code": (F.INDIVIDUAL_ZIP_CODE, False),
    "individual.relationship.title": (F.INDIVIDUAL_JOB_TITLE, False),
    "individual.verification.document": (F.INDIVIDUAL_IDENTITY_DOCUMENT, False),
    "individual.verification.additional_document": (F.INDIVIDUAL_ADDITIONAL_DOCUMENT, False),
    "individual.verification.proof_of_liveness": (F.INDIVIDUAL_ENHANCED_VERIFICATION, False),
    "individual.first_name_kanji": (F.INDIVIDUAL_FIRST_NAME_KANJI, False),
    "individual.last_name_kanji": (F.INDIVIDUAL_LAST_NAME_KANJI, False),
    "individual.first_name_kana": (F.INDIVIDUAL_FIRST_NAME_KANA, False),
    "individual.last_name_kana": (F.INDIVIDUAL_LAST_NAME_KANA, False),
    "individual.address_kanji.line1": (F.INDIVIDUAL_ADDRESS_KANJI, False),
    "individual.address_kanji.line2": (F.INDIVIDUAL_ADDRESS_KANJI, False),
    "individual.address_kanji.postal_code": (F.INDIVIDUAL_ADDRESS_KANJI, False),
    "individual.address_kana.line1": (F.INDIVIDUAL_ADDRESS_KANA, False),
    "individual.address_kana.line2": (F.INDIVIDUAL_ADDRESS_KANA, False),
    "individual.address_kana.postal_code": (F.INDIVIDUAL_ADDRESS_KANA, False),
    "company.name": (F.BUSINESS_NAME, False),
    "company.tax_id": (F.BUSINESS_TAX_ID, False),
    "company.phone": (F.BUSINESS_PHONE, False),
    "company.vat_id": (F.BUSINESS_VAT_NUMBER, False),
    "company.structure": (F.BUSINESS_STRUCTURE, False),
    "company.address.line1": (F.BUSINESS_STREET, False),
    "company.address.city": (F.BUSINESS_CITY, False),
    "company.address.state": (F.BUSINESS_STATE, False),
    "company.address.postal_code": (F.BUSINESS_ZIP_CODE, False),
    "company.verification.document": (F.BUSINESS_COMPANY_DOCUMENT, False),
    "company.name_kanji": (F.BUSINESS_NAME_KANJI, False),
    "company.name_kana": (F.BUSINESS_NAME_KANA, False),
    "company.address_kanji.line1": (F.BUSINESS_ADDRESS_KANJI, False),
    "company.address_kanji.postal_code": (F.BUSINESS_ADDRESS_KANJI, False),
    "company.address_kana.line1": (F.BUSINESS_ADDRESS_KANA, False),
    "company.address_kana.postal_code": (F.BUSINESS_ADDRESS_KANA, False),
    "company.directors_provided": (F.BUSINESS_DIRECTORS, False),
    "company.executives_provided": (F.BUSINESS_EXECUTIVES, False),
    "company.owners_provided": (F.BUSINESS_OWNERS, False),
}

PERSON_REQUIREMENT = re.compile(r"^(?P<person_id>person_\w+?)\.(?P<rest>.+)$")
REPRESENTATIVE_REQUIREMENT = re.compile(r"^representative\.(?P<rest>.+)$")


def map_stripe_field(stripe_field: str) -> Tuple[str, bool]:
    """
    Translate a normalised Stripe requirement into an internal field.

    Unknown requirements come back verbatim so they stay visible to
    operators instead of being dropped.

    Returns:
        Tuple of (internal field name, only needs partial value)
    """
    mapped = _STRIPE_FIELD_MAP.get(stripe_field)
    if mapped is None:
        return stripe_field, False
    return mapped


class RequirementKind(Enum):
    """What reconciling a requirement should lead to."""

    KYC = "kyc"
    REMEDIATION = "remediation"
    SUSPENSION = "suspension"


@dataclass(frozen=True)
class InterventionPattern:
    category: str
    kind: RequirementKind
    description: str


# Risk interventions arrive as ``interv_<id>.<category>[.<detail>]``.
INTERVENTION_REQUIREMENT = re.compile(r"^interv_[A-Za-z0-9]+\.(?P<category>[a-z_]+)")

INTERVENTION_PATTERNS: Tuple[InterventionPattern, ...] = (
    InterventionPattern(
        "rejection_appeal",
        RequirementKind.SUSPENSION,
        "Account rejected by Stripe; only an appeal remains.",
    ),
    InterventionPattern(
        "supportability_rejection_appeal",
        RequirementKind.SUSPENSION,
        "Business is not supportable under Stripe's terms.",
    ),
    InterventionPattern(
        "intellectual_property_usage",
        RequirementKind.REMEDIATION,
        "Stripe needs to review use of third-party intellectual property.",
    ),
    InterventionPattern(
        "identity_verification",
        RequirementKind.REMEDIATION,
        "Stripe challenges the identity on the account.",
    ),
    InterventionPattern(
        "credit_review",
        RequirementKind.REMEDIATION,
        "Stripe needs information to complete a credit review.",
    ),
    InterventionPattern(
        "supportability",
        RequirementKind.REMEDIATION,
        "Stripe needs information about the business model.",
    ),
)
_INTERVENTIONS_BY_CATEGORY = {pattern.category: pattern for pattern in INTERVENTION_PATTERNS}


def intervention_category(stripe_field: str) -> Optional[str]:
    match = INTERVENTION_REQUIREMENT.match(stripe_field)
    return match.group("category") if match else None


def classify_requirement(stripe_field: str) -> RequirementKind:
    """
    Classify a raw Stripe requirement.

    Interventions with an unlisted category are still remediation requests:
    Stripe collects them through its hosted remediation flow.
    """
    category = intervention_category(stripe_field)
    if category is None:
        return RequirementKind.KYC
    pattern = _INTERVENTIONS_BY_CATEGORY.get(category)
    if pattern is None:
        return RequirementKind.REMEDIATION
    return pattern.kind


def is_document_verification_error(code: Optional[str]) -> bool:
    return bool(code) and code.startswith("verification_document")


VERIFICATION_ERROR_MESSAGES: Dict[str, str] = {
    "verification_directors_mismatch": (
        "The provided directors on the account could not be verified. Correct any errors on "
        "the provided directors or upload a document that matches the provided information."
    ),
    "verification_document_address_mismatch": (
        "The address on the ID document doesn't match the address provided on the account. "
        "Please verify and correct the provided address on the account, or upload a document "
        "with address that matches the account."
    ),
    "verification_document_corrupt": (
        "The document verification failed as the file was corrupt. Please provide a clearly "
        "legible color document, 10 MB or less in size, in JPG or PNG format."
    ),
    "verification_document_dob_mismatch": (
        "The date of birth on the ID document doesn't match the date of birth provided on the "
        "account. Please verify and correct the provided date of birth on the account, or "
        "upload a document with date of birth that matches the account."
    ),
    "verification_document_expired": (
        "The issue or expiry date is missing on the document, or the document is expired."
    ),
    "verification_document_fraudulent": (
        "The document might have been altered so it could not be verified."
    ),
    "verification_document_id_number_mismatch": (
        "The ID number on the ID document doesn't match the ID number provided on the account."
    ),
    "verification_document_name_mismatch": (
        "The name on the ID document doesn't match the name provided on the account. Please "
        "verify and correct the provided name on the account, or upload a document with name "
        "that matches the account."
    ),
    "verification_document_not_readable": (
        "The document verification failed as it was not readable. Please provide a valid "
        "color image, 10 MB or less in size, in JPG or PNG format."
    ),
    "verification_failed_address_match": (
        "The address on the document doesn't match the address on the account."
    ),
    "verification_failed_id_number_match": (
        "The ID number on the document doesn't match the ID number on the account."
    ),
    "verification_failed_keyed_identity": (
        "The identity information you entered cannot be verified. Please correct any errors "
        "or upload a document that matches the identity fields (e.g., name and date of birth) "
        "that you entered."
    ),
    "verification_failed_name_match": (
        "The name on the document doesn't match the name on the account."
    ),
    "verification_failed_other": "There was a problem with your identity verification.",
    "verification_failed_residential_address": (
        "We could not verify that the person resides at the provided address. The address "
        "must be a valid physical address where the individual resides and cannot be a P.O. Box."
    ),
    "verification_failed_tax_id_match": (
        "The tax ID that you provided couldn't be verified with the IRS. Please correct any "
        "possible errors in the company name or tax ID, or upload a document that contains "
        "those fields."
    ),
    "verification_missing_owners": (
        "We have identified owners that haven't been added on the account. Add any missing "
        "owners to the account."
    ),
}
