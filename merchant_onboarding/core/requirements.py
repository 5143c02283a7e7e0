"""
Parse Stripe requirement tiers into internal compliance requests.

``parse_requirements`` is pure: it takes the decoded ``requirements`` and
``future_requirements`` tiers plus the ids of persons known to belong to
the account, and returns one entry per internal field.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Collection, Dict, Iterator, List, Optional

from merchant_onboarding.database.models import from_epoch
from merchant_onboarding.domain.fields import (
    PERSON_REQUIREMENT,
    REPRESENTATIVE_REQUIREMENT,
    ComplianceFields,
    RequirementKind,
    classify_requirement,
    map_stripe_field,
)
from merchant_onboarding.integrations.vendor_objects import Requirements

INDIVIDUAL_PREFIX = "individual."


@dataclass(frozen=True)
class ParsedRequirement:
    field: str
    stripe_field: str
    due_at: Optional[datetime]
    partial: bool
    error: Optional[Dict[str, str]]
    kind: RequirementKind

    @property
    def is_bank_account(self) -> bool:
        return self.field == ComplianceFields.BANK_ACCOUNT


def _tier_fields(tier: Requirements, include_eventually_due: bool) -> Iterator[str]:
    yield from tier.currently_due
    if include_eventually_due:
        yield from tier.eventually_due
    yield from tier.past_due
    for alternative in tier.alternatives:
        yield from alternative.alternative_fields_due


def person_requirement_ids(*tiers: Requirements) -> List[str]:
    """Ids of persons referenced by requirements, in first-seen order."""
    person_ids: List[str] = []
    for tier in tiers:
        for stripe_field in _tier_fields(tier, include_eventually_due=True):
            match = PERSON_REQUIREMENT.match(stripe_field)
            if match and match.group("person_id") not in person_ids:
                person_ids.append(match.group("person_id"))
    return person_ids


def normalise_stripe_field(stripe_field: str, known_person_ids: Collection[str] = ()) -> str:
    """
    Rewrite person requirements to the ``individual.`` namespace.

    ``person_xxx.dob.day`` becomes ``individual.dob.day`` when ``person_xxx``
    is a person on the account; unknown persons are left untouched.
    """
    match = PERSON_REQUIREMENT.match(stripe_field)
    if match and match.group("person_id") in known_person_ids:
        return INDIVIDUAL_PREFIX + match.group("rest")
    match = REPRESENTATIVE_REQUIREMENT.match(stripe_field)
    if match:
        return INDIVIDUAL_PREFIX + match.group("rest")
    return stripe_field


def _merge(existing: ParsedRequirement, other: ParsedRequirement) -> ParsedRequirement:
    due_dates = [due for due in (existing.due_at, other.due_at) if due is not None]
    return replace(
        existing,
        # A full value also satisfies a partial one.
        partial=existing.partial and other.partial,
        due_at=min(due_dates) if due_dates else None,
        error=existing.error or other.error,
    )


def parse_requirements(
    requirements: Requirements,
    future_requirements: Optional[Requirements] = None,
    known_person_ids: Collection[str] = (),
) -> List[ParsedRequirement]:
    """
    Turn requirement tiers into deduplicated internal requirements.

    ``future_requirements.eventually_due`` is skipped: it lists data Stripe
    will only need past volume thresholds that most accounts never reach.
    Alternative fields are tracked with the deadline of their own tier.

    Args:
        requirements: Current requirement tier
        future_requirements: Future requirement tier
        known_person_ids: Person ids that belong to the account

    Returns:
        List[ParsedRequirement]: One entry per internal field, in first-seen order
    """
    future_requirements = future_requirements or Requirements()
    parsed: Dict[str, ParsedRequirement] = {}

    for tier, include_eventually_due in ((requirements, True), (future_requirements, False)):
        due_at = from_epoch(tier.current_deadline)
        for stripe_field in _tier_fields(tier, include_eventually_due):
            normalised = normalise_stripe_field(stripe_field, known_person_ids)
            kind = classify_requirement(normalised)
            if kind is RequirementKind.KYC:
                field, partial = map_stripe_field(normalised)
            else:
                field, partial = normalised, False

            vendor_error = (
                requirements.error_for(stripe_field)
                or future_requirements.error_for(stripe_field)
            )
            entry = ParsedRequirement(
                field=field,
                stripe_field=stripe_field,
                due_at=due_at,
                partial=partial,
                error={"code": vendor_error.code, "reason": vendor_error.reason}
                if vendor_error
                else None,
                kind=kind,
            )
            if field in parsed:
                parsed[field] = _merge(parsed[field], entry)
            else:
                parsed[field] = entry

    return list(parsed.values())
