"""Database package for merchant onboarding."""
from .connection import close_db, get_db, get_engine, get_session_factory, init_db
from .models import (
    BankAccount,
    Base,
    ComplianceInfoRequest,
    ComplianceProfileRecord,
    Creator,
    MerchantAccount,
    OutboxEvent,
    TosAgreement,
    utcnow,
)

__all__ = [
    "BankAccount",
    "Base",
    "ComplianceInfoRequest",
    "ComplianceProfileRecord",
    "Creator",
    "MerchantAccount",
    "OutboxEvent",
    "TosAgreement",
    "close_db",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
    "utcnow",
]
