"""Errors raised by merchant account provisioning and reconciliation."""
from typing import Optional


class MerchantRegistrationError(Exception):
    """Base exception for merchant registration failures."""

    def __init__(self, message: str, creator_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.creator_id = creator_id


class NotReadyError(MerchantRegistrationError):
    """The creator lacks a prerequisite for provisioning; no vendor call was made."""

    pass


class AlreadyHasAccountError(MerchantRegistrationError):
    """The creator already has a live merchant account."""

    pass


class UnknownAccountError(MerchantRegistrationError):
    """A webhook referenced a Stripe account with no local merchant account."""

    def __init__(self, stripe_account_id: str):
        super().__init__(f"No merchant account for Stripe account {stripe_account_id}")
        self.stripe_account_id = stripe_account_id


class MalformedEventError(MerchantRegistrationError):
    """A webhook event does not carry the object its type promises."""

    def __init__(self, event_id: Optional[str], expected_object: str):
        super().__init__(f"Stripe event {event_id} does not contain a '{expected_object}' object")
        self.event_id = event_id
        self.expected_object = expected_object
