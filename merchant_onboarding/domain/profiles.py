"""
Immutable snapshots of a creator's onboarding data.

The payload mapper and the update builder are pure functions over these
snapshots, so the previous state of an account can be reconstructed and
diffed without touching the database or the vendor.
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LegalEntityType(str, Enum):
    """Top-level legal entity of a compliance profile."""

    INDIVIDUAL = "individual"
    COMPANY = "company"


class BusinessTypes:
    """Legal subtypes of company profiles."""

    LLC = "llc"
    PARTNERSHIP = "partnership"
    CORPORATION = "corporation"
    SOLE_PROPRIETORSHIP = "sole_proprietorship"
    NON_PROFIT = "non_profit"
    REGISTERED_CHARITY = "registered_charity"

    CANADIAN_NON_PROFITS = (NON_PROFIT, REGISTERED_CHARITY)


class ComplianceProfile(BaseModel):
    """A creator's declared legal identity at one point in time."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    creator_id: str
    legal_entity_type: LegalEntityType = LegalEntityType.INDIVIDUAL
    business_type: Optional[str] = None
    country_code: Optional[str] = None

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birthday: Optional[date] = None
    job_title: Optional[str] = None
    nationality: Optional[str] = None
    individual_tax_id: Optional[str] = None

    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    # Japanese accounts
    first_name_kanji: Optional[str] = None
    last_name_kanji: Optional[str] = None
    first_name_kana: Optional[str] = None
    last_name_kana: Optional[str] = None
    building_number: Optional[str] = None
    street_address_kanji: Optional[str] = None
    street_address_kana: Optional[str] = None

    business_name: Optional[str] = None
    business_name_kanji: Optional[str] = None
    business_name_kana: Optional[str] = None
    business_street_address: Optional[str] = None
    business_city: Optional[str] = None
    business_state: Optional[str] = None
    business_zip_code: Optional[str] = None
    business_country_code: Optional[str] = None
    business_phone: Optional[str] = None
    business_tax_id: Optional[str] = None
    business_vat_id: Optional[str] = None
    business_building_number: Optional[str] = None
    business_street_address_kanji: Optional[str] = None
    business_street_address_kana: Optional[str] = None

    @property
    def is_company(self) -> bool:
        return self.legal_entity_type == LegalEntityType.COMPANY

    @property
    def is_individual(self) -> bool:
        return self.legal_entity_type == LegalEntityType.INDIVIDUAL

    @property
    def legal_entity_country_code(self) -> Optional[str]:
        """Country the legal entity is registered in."""
        if self.is_company and self.business_country_code:
            return self.business_country_code
        return self.country_code

    @property
    def legal_entity_name(self) -> str:
        if self.is_company and self.business_name:
            return self.business_name
        return self.first_and_last_name

    @property
    def first_and_last_name(self) -> str:
        return " ".join(
            part.strip() for part in (self.first_name, self.last_name) if part and part.strip()
        )


class BankAccountDetails(BaseModel):
    """Destination for payouts, as entered by the creator."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    creator_id: str
    country: str
    currency: str
    account_number: str
    routing_number: Optional[str] = None
    account_type: Optional[str] = None
    account_holder_name: Optional[str] = None
    stripe_external_account_id: Optional[str] = None
    stripe_fingerprint: Optional[str] = None


class TermsAcceptance(BaseModel):
    """The creator's acceptance of the platform terms."""

    model_config = ConfigDict(frozen=True)

    id: str
    ip: str
    accepted_at: datetime = Field(..., description="When the terms were agreed to (naive UTC)")
