"""
Minimal update payloads for existing Stripe accounts.

Stripe rejects unchanged values for fields it has locked after verification,
so updates only carry what differs from the snapshot Stripe last received.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from merchant_onboarding.domain.profiles import ComplianceProfile, TermsAcceptance

from .payloads import (
    account_payload,
    config_for,
    is_us_sole_proprietorship,
    person_payload,
    representative_payload,
)


def diff_attributes(current: Mapping[str, Any], last: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Keep the parts of ``current`` that are absent from or differ from ``last``.

    Nested dicts are compared key by key and dropped when nothing in them
    changed. Keys only present in ``last`` are never sent.
    """
    diff: Dict[str, Any] = {}
    for key, value in current.items():
        if key not in last:
            if isinstance(value, Mapping) and not value:
                continue
            diff[key] = value
            continue

        previous = last[key]
        if isinstance(value, Mapping) and isinstance(previous, Mapping):
            nested = diff_attributes(value, previous)
            if nested:
                diff[key] = nested
        elif value != previous:
            if isinstance(value, Mapping) and not value:
                continue
            diff[key] = value
    return diff


def requested_capabilities(
    country_capabilities: Iterable[str], vendor_capabilities: Iterable[str]
) -> Dict[str, Dict[str, bool]]:
    """
    Capabilities to request on update.

    The country's capabilities plus any the account already has, so
    capabilities requested outside onboarding are never dropped.
    """
    names: List[str] = list(country_capabilities)
    for name in vendor_capabilities:
        if name not in names:
            names.append(name)
    return {name: {"requested": True} for name in names}


def build_account_update(
    previous: Optional[ComplianceProfile],
    current: ComplianceProfile,
    *,
    creator_id: str,
    business_profile_url: Optional[str] = None,
    terms: Optional[TermsAcceptance] = None,
    vendor_capabilities: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Build the ``Account.modify`` payload moving Stripe from ``previous`` to ``current``.

    Args:
        previous: Profile Stripe last received, or None when it is unknown
        current: The creator's current profile
        creator_id: Local creator id for metadata
        business_profile_url: Creator's public profile url
        terms: Latest terms acceptance
        vendor_capabilities: Capability names already on the Stripe account

    Returns:
        Dict[str, Any]: Update payload with only changed sections
    """
    current_attributes = account_payload(
        current,
        creator_id=creator_id,
        business_profile_url=business_profile_url,
        terms=terms,
    )
    if previous is None:
        diff = dict(current_attributes)
    else:
        last_attributes = account_payload(
            previous,
            creator_id=creator_id,
            business_profile_url=business_profile_url,
        )
        # Metadata and business profile are always resent.
        last_attributes["metadata"] = {}
        last_attributes["business_profile"] = {}
        if current.is_company:
            last_attributes.pop("individual", None)
        else:
            last_attributes.pop("company", None)

        last_individual = last_attributes.get("individual")
        if last_individual:
            last_individual["email"] = None
            last_individual["phone"] = None
            if config_for(current.legal_entity_country_code).relationship_title_on_individual:
                last_individual["relationship"] = None
        last_company = last_attributes.get("company")
        if last_company:
            last_company["directors_provided"] = None
            last_company["executives_provided"] = None

        diff = diff_attributes(current_attributes, last_attributes)

    individual = diff.get("individual")
    if individual:
        # A new full id number supersedes any last-4 value still on file.
        if individual.get("id_number"):
            individual.pop("ssn_last_4", None)
        if "dob" in individual:
            individual["dob"] = current_attributes["individual"]["dob"]

    if previous is not None and previous.is_company and current.is_individual:
        # Stripe keeps using the company name for payouts, so mirror the person.
        diff["company"] = {"name": current.first_and_last_name}

    if is_us_sole_proprietorship(current):
        diff.setdefault("company", {})["structure"] = "sole_proprietorship"
    elif (
        current.is_company
        and previous is not None
        and is_us_sole_proprietorship(previous)
        and not config_for(current.legal_entity_country_code).declares_company_structure
    ):
        diff.setdefault("company", {})["structure"] = ""

    diff["capabilities"] = requested_capabilities(
        config_for(current.legal_entity_country_code).capabilities, vendor_capabilities
    )
    return diff


def build_person_update(
    previous: Optional[ComplianceProfile], current: ComplianceProfile
) -> Dict[str, Any]:
    """Update payload for a company's representative person."""
    current_attributes = representative_payload(current)
    if previous is None:
        return current_attributes

    last_attributes = person_payload(previous)
    last_attributes["email"] = None
    last_attributes["phone"] = None
    diff = diff_attributes(current_attributes, last_attributes)
    if "dob" in diff:
        diff["dob"] = current_attributes["dob"]
    return diff
