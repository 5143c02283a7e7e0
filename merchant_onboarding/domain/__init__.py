"""Domain snapshots and compliance field vocabulary."""
from .fields import ComplianceFields, RequirementKind, classify_requirement, map_stripe_field
from .profiles import (
    BankAccountDetails,
    BusinessTypes,
    ComplianceProfile,
    LegalEntityType,
    TermsAcceptance,
)

__all__ = [
    "BankAccountDetails",
    "BusinessTypes",
    "ComplianceFields",
    "ComplianceProfile",
    "LegalEntityType",
    "RequirementKind",
    "TermsAcceptance",
    "classify_requirement",
    "map_stripe_field",
]
