"""
Stripe merchant account provisioning.

Orchestrates the account lifecycle for a creator:
1. Check prerequisites (terms, compliance profile, country, bank account)
2. Create the local merchant account row
3. Create the custom account at Stripe
4. Attach the company representative / Singapore name aliases
5. Mark the account alive and store the bank account's Stripe ids

Updates are diffed against the profile Stripe last received, which is
found through the ids stored in the Stripe account metadata.
"""
import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_onboarding.config import country_config, get_settings
from merchant_onboarding.database.models import (
    STRIPE_CHARGE_PROCESSOR_ID,
    BankAccount,
    ComplianceInfoRequest,
    ComplianceProfileRecord,
    Creator,
    MerchantAccount,
    TosAgreement,
    utcnow,
)
from merchant_onboarding.domain.fields import ComplianceFields
from merchant_onboarding.domain.profiles import ComplianceProfile
from merchant_onboarding.integrations.stripe_client import (
    StripeClient,
    VendorError,
    VendorRejectionError,
)
from merchant_onboarding.integrations.vendor_objects import VendorAccount
from merchant_onboarding.monitoring.metrics import metrics

from .diff import build_account_update, build_person_update
from .errors import AlreadyHasAccountError, NotReadyError
from .notifications import NotificationKind, Notifier
from .payloads import bank_account_payload, creation_payload, representative_payload

logger = structlog.get_logger(__name__)

# Fragments of Stripe rejection messages caused by the bank details themselves.
INVALID_BANK_ACCOUNT_MESSAGES = (
    "Invalid account number",
    "couldn't find that transit",
    "previous attempts to deliver payouts",
)


def is_invalid_bank_account_error(error: VendorRejectionError) -> bool:
    messages = [error.message]
    if error.original_error is not None:
        messages.append(str(error.original_error))
    return any(
        fragment in message for message in messages for fragment in INVALID_BANK_ACCOUNT_MESSAGES
    )


class MerchantAccountManager:
    """
    Creates and maintains a creator's Stripe custom connected account.

    All database changes are made on the given session and flushed; the
    caller owns the transaction.
    """

    def __init__(
        self,
        db: AsyncSession,
        stripe_client: Optional[StripeClient] = None,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize account manager.

        Args:
            db: Database session
            stripe_client: Optional Stripe client instance
            notifier: Optional notifier writing to the same session
        """
        self.db = db
        self.stripe_client = stripe_client or StripeClient()
        self.notifier = notifier or Notifier(db)
        self.settings = get_settings()

    async def _get_creator(self, creator_id: uuid.UUID) -> Creator:
        creator = await self.db.get(Creator, creator_id)
        if creator is None:
            raise NotReadyError(f"Creator {creator_id} does not exist", str(creator_id))
        return creator

    async def current_profile(self, creator_id: uuid.UUID) -> Optional[ComplianceProfileRecord]:
        stmt = (
            select(ComplianceProfileRecord)
            .where(ComplianceProfileRecord.creator_id == creator_id)
            .where(ComplianceProfileRecord.deleted_at.is_(None))
            .order_by(ComplianceProfileRecord.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _profile_snapshot(self, profile_id: Optional[str]) -> Optional[ComplianceProfile]:
        """Load any profile version, including superseded ones."""
        if not profile_id:
            return None
        try:
            record = await self.db.get(ComplianceProfileRecord, uuid.UUID(profile_id))
        except ValueError:
            return None
        return record.to_snapshot() if record else None

    async def active_bank_account(self, creator_id: uuid.UUID) -> Optional[BankAccount]:
        stmt = (
            select(BankAccount)
            .where(BankAccount.creator_id == creator_id)
            .where(BankAccount.deleted_at.is_(None))
            .order_by(BankAccount.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _latest_terms(self, creator_id: uuid.UUID) -> Optional[TosAgreement]:
        stmt = (
            select(TosAgreement)
            .where(TosAgreement.creator_id == creator_id)
            .order_by(TosAgreement.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _alive_merchant_accounts(self, creator_id: uuid.UUID) -> list[MerchantAccount]:
        stmt = (
            select(MerchantAccount)
            .where(MerchantAccount.creator_id == creator_id)
            .where(MerchantAccount.charge_processor_id == STRIPE_CHARGE_PROCESSOR_ID)
            .where(MerchantAccount.deleted_at.is_(None))
            .order_by(MerchantAccount.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def stripe_account(self, creator_id: uuid.UUID) -> Optional[MerchantAccount]:
        """The creator's fully provisioned Stripe account, if any."""
        for merchant_account in reversed(await self._alive_merchant_accounts(creator_id)):
            if (
                merchant_account.charge_processor_alive
                and merchant_account.charge_processor_merchant_id
            ):
                return merchant_account
        return None

    async def _require_stripe_account(self, creator_id: uuid.UUID) -> MerchantAccount:
        merchant_account = await self.stripe_account(creator_id)
        if merchant_account is None:
            raise NotReadyError(
                f"Creator {creator_id} does not have a Stripe merchant account", str(creator_id)
            )
        return merchant_account

    def _not_ready(self, creator_id: uuid.UUID, reason: str) -> NotReadyError:
        logger.warning("merchant_account_not_ready", creator_id=str(creator_id), reason=reason)
        metrics.record_provisioning("not_ready")
        return NotReadyError(f"Creator {creator_id} {reason}", str(creator_id))

    async def create_account(
        self, creator_id: uuid.UUID, from_admin: bool = False
    ) -> MerchantAccount:
        """
        Provision a Stripe custom account for a creator.

        Args:
            creator_id: Creator to provision
            from_admin: Administrative override; only a fully provisioned
                account blocks creation and half-provisioned leftovers are
                deleted

        Returns:
            MerchantAccount: The live merchant account

        Raises:
            AlreadyHasAccountError: If the creator already has an account
            NotReadyError: If a prerequisite is missing (no vendor call made)
            VendorError: If Stripe rejects or fails the creation
        """
        creator = await self._get_creator(creator_id)
        log = logger.bind(creator_id=str(creator_id), from_admin=from_admin)

        alive_accounts = await self._alive_merchant_accounts(creator_id)
        if from_admin:
            blocking = [account for account in alive_accounts if account.charge_processor_alive]
        else:
            blocking = alive_accounts
        if blocking:
            metrics.record_provisioning("already_has_account")
            raise AlreadyHasAccountError(
                f"Creator {creator_id} already has a Stripe merchant account", str(creator_id)
            )

        terms = await self._latest_terms(creator_id)
        if terms is None:
            raise self._not_ready(creator_id, "has not agreed to the terms of service")

        profile_record = await self.current_profile(creator_id)
        if profile_record is None:
            raise self._not_ready(creator_id, "does not have a compliance profile")
        profile = profile_record.to_snapshot()

        country_code = profile.legal_entity_country_code
        if not country_code:
            raise self._not_ready(creator_id, "does not have a legal entity country")
        config = country_config(country_code)
        if config is None or not config.currency:
            raise self._not_ready(
                creator_id, f"has no default currency defined for {country_code.upper()}"
            )

        bank_account = await self.active_bank_account(creator_id)
        if bank_account is None:
            raise self._not_ready(creator_id, "does not have a bank account")

        # Stripe test mode only accepts USD bank accounts, so the check is
        # limited to production.
        if self.settings.is_production and bank_account.currency != config.currency:
            raise self._not_ready(
                creator_id,
                f"has a {bank_account.currency} bank account for {config.code} ({config.currency})",
            )

        for leftover in alive_accounts:
            log.info("deleting_unprovisioned_merchant_account", merchant_account_id=str(leftover.id))
            leftover.mark_deleted()

        params = creation_payload(
            profile,
            bank_account.to_snapshot(),
            terms.to_snapshot(),
            creator_id=str(creator.id),
            business_profile_url=creator.business_profile_url,
        )

        merchant_account = MerchantAccount(
            id=uuid.uuid4(),
            creator_id=creator.id,
            charge_processor_id=STRIPE_CHARGE_PROCESSOR_ID,
            country=config.code,
            currency=config.currency,
        )
        self.db.add(merchant_account)
        await self.db.flush()

        try:
            vendor_account = await self.stripe_client.create_account(
                params, idempotency_key=f"merchant-account-{merchant_account.id}"
            )
        except VendorError as e:
            merchant_account.mark_deleted()
            await self.db.flush()
            metrics.record_provisioning("rejected")
            log.error("merchant_account_creation_failed", error=e.message, error_code=e.code)
            raise

        merchant_account.charge_processor_merchant_id = vendor_account.id
        await self.db.flush()

        if profile.is_company:
            await self.stripe_client.create_person(vendor_account.id, representative_payload(profile))

        if config.requires_full_name_aliases:
            persons = await self.stripe_client.list_persons(vendor_account.id)
            if persons:
                await self.stripe_client.update_person(
                    vendor_account.id, persons[-1].id, {"full_name_aliases": [""]}
                )

        merchant_account.charge_processor_alive_at = utcnow()
        self._save_external_account(bank_account, vendor_account)
        await self.db.flush()

        metrics.record_provisioning("created")
        log.info(
            "merchant_account_created",
            merchant_account_id=str(merchant_account.id),
            stripe_account_id=vendor_account.id,
            country=merchant_account.country,
            currency=merchant_account.currency,
        )
        return merchant_account

    @staticmethod
    def _save_external_account(bank_account: BankAccount, vendor_account: VendorAccount) -> bool:
        # Stripe replaces the external account on update, so there is only one.
        external_account = vendor_account.first_external_account
        if external_account is None:
            return False
        bank_account.stripe_connect_account_id = vendor_account.id
        bank_account.stripe_external_account_id = external_account.id
        bank_account.stripe_fingerprint = external_account.fingerprint
        return True

    async def update_account(self, creator_id: uuid.UUID) -> VendorAccount:
        """
        Push the creator's current compliance profile to Stripe.

        Only sections that changed since the profile referenced in the
        account metadata are sent.

        Raises:
            NotReadyError: If the creator has no live account or profile
        """
        creator = await self._get_creator(creator_id)
        merchant_account = await self._require_stripe_account(creator_id)
        profile_record = await self.current_profile(creator_id)
        if profile_record is None:
            raise NotReadyError(
                f"Creator {creator_id} does not have a compliance profile", str(creator_id)
            )
        current = profile_record.to_snapshot()

        stripe_account_id = merchant_account.charge_processor_merchant_id
        vendor_account = await self.stripe_client.retrieve_account(stripe_account_id)
        previous = await self._profile_snapshot(vendor_account.metadata.get("compliance_profile_id"))
        terms = await self._latest_terms(creator_id)

        params = build_account_update(
            previous,
            current,
            creator_id=str(creator.id),
            business_profile_url=creator.business_profile_url,
            terms=terms.to_snapshot() if terms else None,
            vendor_capabilities=list(vendor_account.capabilities),
        )
        updated = await self.stripe_client.update_account(stripe_account_id, params)

        if current.is_company:
            persons = await self.stripe_client.list_persons(stripe_account_id)
            if persons:
                await self.stripe_client.update_person(
                    stripe_account_id, persons[-1].id, build_person_update(previous, current)
                )
            else:
                await self.stripe_client.create_person(
                    stripe_account_id, representative_payload(current)
                )

        logger.info(
            "merchant_account_updated",
            creator_id=str(creator_id),
            stripe_account_id=stripe_account_id,
            sections=sorted(params),
        )
        return updated

    async def update_bank_account(self, creator_id: uuid.UUID) -> bool:
        """
        Send the creator's active bank account to Stripe if it changed.

        Returns:
            bool: True if Stripe accepted a new bank account

        Raises:
            NotReadyError: If the creator has no live account or bank account
            VendorRejectionError: If Stripe rejected it for another reason
        """
        merchant_account = await self._require_stripe_account(creator_id)
        bank_account = await self.active_bank_account(creator_id)
        if bank_account is None:
            raise NotReadyError(
                f"Creator {creator_id} does not have a bank account", str(creator_id)
            )

        stripe_account_id = merchant_account.charge_processor_merchant_id
        vendor_account = await self.stripe_client.retrieve_account(stripe_account_id)
        if vendor_account.metadata.get("bank_account_id") == str(bank_account.id):
            metrics.record_bank_account_sync("unchanged")
            logger.info(
                "bank_account_unchanged",
                creator_id=str(creator_id),
                bank_account_id=str(bank_account.id),
            )
            return False

        profile_record = await self.current_profile(creator_id)
        country_code = (
            profile_record.to_snapshot().legal_entity_country_code
            if profile_record
            else merchant_account.country
        )
        params = bank_account_payload(
            bank_account.to_snapshot(), country_code, metadata=vendor_account.metadata
        )

        try:
            updated = await self.stripe_client.update_account(stripe_account_id, params)
        except VendorRejectionError as e:
            metrics.record_bank_account_sync("rejected")
            if not is_invalid_bank_account_error(e):
                raise
            logger.warning(
                "bank_account_rejected",
                creator_id=str(creator_id),
                bank_account_id=str(bank_account.id),
                error=e.message,
            )
            self.notifier.enqueue(creator_id, NotificationKind.INVALID_BANK_ACCOUNT)
            await self.db.flush()
            return False

        self._save_external_account(bank_account, updated)
        await self.db.flush()

        metrics.record_bank_account_sync("updated")
        logger.info(
            "bank_account_updated",
            creator_id=str(creator_id),
            bank_account_id=str(bank_account.id),
            stripe_external_account_id=bank_account.stripe_external_account_id,
        )
        return True

    async def delete_account(self, merchant_account_id: uuid.UUID) -> bool:
        """
        Delete a merchant account at Stripe.

        Returns:
            bool: Whether Stripe deleted the account
        """
        merchant_account = await self.db.get(MerchantAccount, merchant_account_id)
        if merchant_account is None or not merchant_account.charge_processor_merchant_id:
            raise NotReadyError(f"Merchant account {merchant_account_id} is not at Stripe")

        deleted = await self.stripe_client.delete_account(
            merchant_account.charge_processor_merchant_id
        )
        if deleted:
            merchant_account.charge_processor_deleted_at = utcnow()
            await self.db.flush()

        logger.info(
            "merchant_account_deleted",
            merchant_account_id=str(merchant_account_id),
            deleted=deleted,
        )
        return deleted

    async def handle_new_compliance_profile(self, creator_id: uuid.UUID) -> Optional[VendorAccount]:
        """Push a new compliance profile to Stripe when the creator has an account."""
        if await self.stripe_account(creator_id) is None:
            return None
        return await self.update_account(creator_id)

    async def handle_new_bank_account(self, creator_id: uuid.UUID) -> bool:
        """
        Push a new bank account to Stripe when the creator has an account.

        Open bank account requests are resolved once Stripe accepts it.
        """
        if await self.stripe_account(creator_id) is None:
            return False
        updated = await self.update_bank_account(creator_id)
        if updated:
            stmt = (
                select(ComplianceInfoRequest)
                .where(ComplianceInfoRequest.creator_id == creator_id)
                .where(ComplianceInfoRequest.state == ComplianceInfoRequest.REQUESTED)
                .where(ComplianceInfoRequest.field_needed == ComplianceFields.BANK_ACCOUNT)
            )
            result = await self.db.execute(stmt)
            for request in result.scalars().all():
                request.mark_provided()
            await self.db.flush()
        return updated
