"""Merchant account provisioning and webhook reconciliation."""
from .account_manager import MerchantAccountManager
from .diff import build_account_update, build_person_update, diff_attributes
from .errors import (
    AlreadyHasAccountError,
    MalformedEventError,
    MerchantRegistrationError,
    NotReadyError,
    UnknownAccountError,
)
from .notifications import NotificationKind, Notifier
from .outbox import OutboxPublisher
from .payloads import (
    account_payload,
    bank_account_payload,
    company_payload,
    creation_payload,
    person_payload,
    strip_values,
)
from .reconciliation import EventReconciler
from .requirements import ParsedRequirement, parse_requirements

__all__ = [
    "AlreadyHasAccountError",
    "EventReconciler",
    "MalformedEventError",
    "MerchantAccountManager",
    "MerchantRegistrationError",
    "NotReadyError",
    "NotificationKind",
    "Notifier",
    "OutboxPublisher",
    "ParsedRequirement",
    "UnknownAccountError",
    "account_payload",
    "bank_account_payload",
    "build_account_update",
    "build_person_update",
    "company_payload",
    "creation_payload",
    "diff_attributes",
    "parse_requirements",
    "person_payload",
    "strip_values",
]
