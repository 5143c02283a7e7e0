"""
Typed views of the Stripe objects this service reads.

Stripe responses and webhook payloads are decoded into these models instead
of being probed attribute by attribute. Every field has a safe default and
unknown fields are ignored, so new or missing attributes in a payload never
break decoding.
"""
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _VendorObject(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RequirementError(_VendorObject):
    requirement: str = ""
    code: str = ""
    reason: str = ""


class RequirementAlternative(_VendorObject):
    alternative_fields_due: List[str] = Field(default_factory=list)
    original_fields_due: List[str] = Field(default_factory=list)


class Requirements(_VendorObject):
    """One tier of requirements (``requirements`` or ``future_requirements``)."""

    currently_due: List[str] = Field(default_factory=list)
    eventually_due: List[str] = Field(default_factory=list)
    past_due: List[str] = Field(default_factory=list)
    pending_verification: List[str] = Field(default_factory=list)
    current_deadline: Optional[int] = None
    disabled_reason: Optional[str] = None
    errors: List[RequirementError] = Field(default_factory=list)
    alternatives: List[RequirementAlternative] = Field(default_factory=list)

    @field_validator(
        "currently_due", "eventually_due", "past_due", "pending_verification",
        "errors", "alternatives",
        mode="before",
    )
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def error_for(self, requirement: str) -> Optional[RequirementError]:
        for error in self.errors:
            if error.requirement == requirement:
                return error
        return None

    @property
    def outstanding(self) -> bool:
        return bool(self.currently_due or self.eventually_due or self.past_due)


class Verification(_VendorObject):
    status: Optional[str] = None


class VendorPerson(_VendorObject):
    id: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    verification: Verification = Field(default_factory=Verification)

    @field_validator("verification", mode="before")
    @classmethod
    def none_as_unknown(cls, v: Any) -> Any:
        return {} if v is None else v


class ExternalAccount(_VendorObject):
    id: str = ""
    fingerprint: Optional[str] = None
    last4: Optional[str] = None


class ExternalAccountList(_VendorObject):
    data: List[ExternalAccount] = Field(default_factory=list)


class VendorAccount(_VendorObject):
    """A Stripe connected account."""

    id: str = ""
    object: str = "account"
    type: Optional[str] = None
    country: Optional[str] = None
    default_currency: Optional[str] = None
    business_type: Optional[str] = None
    charges_enabled: Optional[bool] = None
    payouts_enabled: Optional[bool] = None
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)
    requirements: Requirements = Field(default_factory=Requirements)
    future_requirements: Requirements = Field(default_factory=Requirements)
    individual: Optional[VendorPerson] = None
    external_accounts: ExternalAccountList = Field(default_factory=ExternalAccountList)

    @field_validator(
        "capabilities", "metadata", "requirements", "future_requirements", "external_accounts",
        mode="before",
    )
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def first_external_account(self) -> Optional[ExternalAccount]:
        return self.external_accounts.data[0] if self.external_accounts.data else None


class VendorCapability(_VendorObject):
    """A single capability of a connected account (``capability.updated``)."""

    id: str = ""
    object: str = "capability"
    account: Optional[str] = None
    status: Optional[str] = None
    requirements: Requirements = Field(default_factory=Requirements)
    future_requirements: Requirements = Field(default_factory=Requirements)

    @field_validator("requirements", "future_requirements", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


def as_mapping(obj: Any) -> Mapping[str, Any]:
    """
    Turn a Stripe SDK object into a plain mapping for decoding.

    Older SDKs return dict subclasses; newer ones expose ``to_dict``.
    """
    if isinstance(obj, Mapping):
        return obj
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if to_dict is None:
        raise TypeError(f"Cannot decode vendor object of type {type(obj).__name__}")
    return to_dict()
