"""Configuration package for merchant onboarding."""
from .countries import COUNTRIES, BankShape, CountryConfig, country_config
from .settings import Settings, get_settings

__all__ = [
    "COUNTRIES",
    "BankShape",
    "CountryConfig",
    "Settings",
    "country_config",
    "get_settings",
]
