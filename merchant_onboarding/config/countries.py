"""
Per-country configuration for Stripe custom connect accounts.

Each supported legal-entity country maps to the currency its payouts settle
in, the capability tier Stripe allows for it, and the shape of the bank
details and addresses the account payloads must carry.

Countries without an entry here cannot be provisioned.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

REQUESTED_CAPABILITIES: List[str] = ["card_payments", "transfers"]
CROSS_BORDER_PAYOUTS_ONLY_CAPABILITIES: List[str] = ["transfers"]

# Title used for the representative person of company accounts when the
# creator did not give one.
DEFAULT_RELATIONSHIP_TITLE = "CEO"


class BankShape(Enum):
    """How a country identifies a bank destination."""

    ROUTING_AND_ACCOUNT = "routing_and_account"
    IBAN = "iban"


@dataclass(frozen=True)
class CountryConfig:
    """Static payload rules for one legal-entity country."""

    code: str
    currency: Optional[str]
    cross_border_payouts_only: bool = False
    bank_shape: BankShape = BankShape.ROUTING_AND_ACCOUNT
    requires_account_type: bool = False
    requires_account_holder_name: bool = False
    has_state: bool = False
    uses_japanese_script: bool = False
    requires_nationality: bool = False
    requires_support_phone: bool = False
    relationship_title_on_individual: bool = False
    accepts_ssn_last_4: bool = False
    declares_company_structure: bool = False
    requires_company_vat_id: bool = False
    supports_sole_proprietorship: bool = False
    has_non_profit_business_type: bool = False
    requires_full_name_aliases: bool = False

    @property
    def capabilities(self) -> List[str]:
        if self.cross_border_payouts_only:
            return list(CROSS_BORDER_PAYOUTS_ONLY_CAPABILITIES)
        return list(REQUESTED_CAPABILITIES)

    @property
    def can_accept_charges(self) -> bool:
        return not self.cross_border_payouts_only


# Countries where Stripe supports custom connect accounts with charges.
_CONNECT_CURRENCIES: Dict[str, Optional[str]] = {
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

# Countries where Stripe only supports payouts (recipient service agreement).
_CROSS_BORDER_CURRENCIES: Dict[str, str] = {
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

_IBAN_COUNTRIES = {
    "AE", "AL", "AT", "AZ", "BA", "BE", "BG", "BH", "CH", "CR", "CY", "CZ",
    "DE", "DK", "DO", "EE", "EG", "ES", "FI", "FR", "GI", "GR", "GT", "HR",
    "HU", "IE", "IL", "IS", "IT", "JO", "KW", "KZ", "LI", "LT", "LU", "LV",
    "MC", "MD", "MK", "MT", "MU", "NL", "NO", "PK", "PL", "PT", "QA", "RO",
    "RS", "SA", "SE", "SI", "SK", "SM", "SV", "TN", "TR",
}
_STATE_COUNTRIES = {"AE", "AU", "BR", "CA", "IE", "IN", "MX", "MY", "NG", "US"}
_ACCOUNT_TYPE_COUNTRIES = {"CL", "CO"}
_ACCOUNT_HOLDER_NAME_COUNTRIES = {"ID", "JP", "VN"}
_NATIONALITY_COUNTRIES = {"AE", "BD", "PK", "SG"}
_SUPPORT_PHONE_COUNTRIES = {"AE", "CA"}
_COMPANY_STRUCTURE_COUNTRIES = {"AE", "CA"}


def _build(code: str, currency: Optional[str], cross_border: bool) -> CountryConfig:
    return CountryConfig(
        code=code,
        currency=currency,
        cross_border_payouts_only=cross_border,
        bank_shape=BankShape.IBAN if code in _IBAN_COUNTRIES else BankShape.ROUTING_AND_ACCOUNT,
        requires_account_type=code in _ACCOUNT_TYPE_COUNTRIES,
        requires_account_holder_name=code in _ACCOUNT_HOLDER_NAME_COUNTRIES,
        has_state=code in _STATE_COUNTRIES,
        uses_japanese_script=code == "JP",
        requires_nationality=code in _NATIONALITY_COUNTRIES,
        requires_support_phone=code in _SUPPORT_PHONE_COUNTRIES,
        relationship_title_on_individual=code == "CA",
        accepts_ssn_last_4=code == "US",
        declares_company_structure=code in _COMPANY_STRUCTURE_COUNTRIES,
        requires_company_vat_id=code == "AE",
        supports_sole_proprietorship=code == "US",
        has_non_profit_business_type=code == "CA",
        requires_full_name_aliases=code == "SG",
    )


COUNTRIES: Dict[str, CountryConfig] = {
    **{code: _build(code, cur, False) for code, cur in _CONNECT_CURRENCIES.items()},
    **{code: _build(code, cur, True) for code, cur in _CROSS_BORDER_CURRENCIES.items()},
}


def country_config(country_code: Optional[str]) -> Optional[CountryConfig]:
    """Look up the configuration for an ISO alpha-2 country code."""
    if not country_code:
        return None
    return COUNTRIES.get(country_code.upper())
