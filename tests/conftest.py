"""
Pytest configuration and fixtures.
"""
import os

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import uuid  # noqa: E402
from datetime import timedelta  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from merchant_onboarding.database.models import (  # noqa: E402
    BankAccount,
    Base,
    ComplianceProfileRecord,
    Creator,
    MerchantAccount,
    TosAgreement,
    utcnow,
)
from merchant_onboarding.integrations.stripe_client import StripeClient  # noqa: E402
from merchant_onboarding.integrations.vendor_objects import VendorAccount  # noqa: E402

STRIPE_ACCOUNT_ID = "acct_1TestMerchant"

US_INDIVIDUAL: Dict[str, Any] = {
    "legal_entity_type": "individual",
    "country_code": "US",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "+14155550100",
    "birthday": "1990-05-17",
    "individual_tax_id": "1234",
    "street_address": "1 Market St",
    "city": "San Francisco",
    "state": "CA",
    "zip_code": "94105",
}

US_BANK_ACCOUNT: Dict[str, Any] = {
    "country": "US",
    "currency": "usd",
    "account_number": "000123456789",
    "routing_number": "110000000",
}


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """In-memory SQLite database shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def stripe_client() -> AsyncMock:
    """Stripe client double; no request leaves the test."""
    client = AsyncMock(spec=StripeClient)
    client.list_persons.return_value = []
    client.create_account.return_value = VendorAccount.model_validate(
        {
            "id": STRIPE_ACCOUNT_ID,
            "object": "account",
            "type": "custom",
            "external_accounts": {"data": [{"id": "ba_1TestBank", "fingerprint": "fp_test"}]},
        }
    )
    return client


@pytest.fixture
def make_creator(test_db: AsyncSession) -> Callable[..., Awaitable[Creator]]:
    """
    Build a creator with the onboarding records provisioning needs.

    Profile and bank fields can be overridden; pass ``None`` to leave a
    record out.
    """

    async def _make(
        profile: Optional[Dict[str, Any]] = None,
        bank_account: Optional[Dict[str, Any]] = None,
        with_profile: bool = True,
        with_bank_account: bool = True,
        with_terms: bool = True,
        **creator_fields: Any,
    ) -> Creator:
        creator = Creator(
            id=uuid.uuid4(),
            email="creator@example.com",
            business_profile_url="https://example.com/ada",
            status="active",
            **creator_fields,
        )
        test_db.add(creator)
        await test_db.flush()

        if with_terms:
            test_db.add(TosAgreement(creator_id=creator.id, ip="203.0.113.7"))
        if with_profile:
            test_db.add(
                ComplianceProfileRecord(
                    creator_id=creator.id, data={**US_INDIVIDUAL, **(profile or {})}
                )
            )
        if with_bank_account:
            test_db.add(
                BankAccount(creator_id=creator.id, **{**US_BANK_ACCOUNT, **(bank_account or {})})
            )
        await test_db.flush()
        return creator

    return _make


@pytest.fixture
def make_merchant_account(test_db: AsyncSession) -> Callable[..., Awaitable[MerchantAccount]]:
    """Attach a fully provisioned Stripe merchant account to a creator."""

    async def _make(
        creator: Creator,
        stripe_account_id: str = STRIPE_ACCOUNT_ID,
        alive: bool = True,
    ) -> MerchantAccount:
        merchant_account = MerchantAccount(
            id=uuid.uuid4(),
            creator_id=creator.id,
            charge_processor_merchant_id=stripe_account_id,
            country="US",
            currency="usd",
            charge_processor_alive_at=utcnow() - timedelta(days=1) if alive else None,
        )
        test_db.add(merchant_account)
        await test_db.flush()
        return merchant_account

    return _make
