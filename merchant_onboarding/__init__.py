"""Stripe Connect merchant onboarding and compliance reconciliation."""

__version__ = "0.1.0"
