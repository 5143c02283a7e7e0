"""
Reconciliation of Stripe Connect webhook events.

Handles:
- account.updated: requirements, verification, charges/payouts transitions
- capability.updated: requirements of a single capability
- account.application.deauthorized: deactivation of the local account

Events are applied idempotently: requests are keyed by field, so a
redelivered event reuses the rows the first delivery created.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_onboarding.config import get_settings
from merchant_onboarding.database.models import (
    STRIPE_CHARGE_PROCESSOR_ID,
    ComplianceInfoRequest,
    Creator,
    MerchantAccount,
    utcnow,
)
from merchant_onboarding.domain.fields import (
    ComplianceFields,
    RequirementKind,
    intervention_category,
    is_document_verification_error,
)
from merchant_onboarding.integrations.stripe_client import StripeClient, VendorError
from merchant_onboarding.integrations.vendor_objects import (
    Requirements,
    VendorAccount,
    VendorCapability,
    VendorPerson,
)
from merchant_onboarding.integrations.webhook_handler import WebhookHandler
from merchant_onboarding.monitoring.metrics import metrics

from .account_manager import MerchantAccountManager
from .errors import MalformedEventError, NotReadyError, UnknownAccountError
from .notifications import NotificationKind, Notifier
from .requirements import ParsedRequirement, parse_requirements, person_requirement_ids

logger = structlog.get_logger(__name__)

ACCOUNT_UPDATED = "account.updated"
CAPABILITY_UPDATED = "capability.updated"
ACCOUNT_DEAUTHORIZED = "account.application.deauthorized"

# Account types Stripe manages itself; this service never provisions them.
UNPROVISIONED_ACCOUNT_TYPES = frozenset({"standard"})

# Disabled reasons caused by requirements the creator can act on.
REQUIREMENT_DISABLED_REASONS = frozenset(
    {"action_required.requested_capabilities", "requirements.past_due"}
)

# Creators in these states get no compliance emails. A risk suspension is
# terminal, so later events for the account only record requests.
SILENCED_CREATOR_STATUSES = frozenset({"deleted", "suspended_for_fraud", "suspended_for_risk"})

PERSON_LOOKUP_LIMIT = 100


def _ignored(reason: str, **details: Any) -> Dict[str, Any]:
    return {"status": "ignored", "reason": reason, **details}


class EventReconciler:
    """
    Applies Stripe account events to local compliance state.

    All changes are made on the given session and flushed; the caller owns
    the transaction.
    """

    def __init__(
        self,
        db: AsyncSession,
        stripe_client: Optional[StripeClient] = None,
        account_manager: Optional[MerchantAccountManager] = None,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize event reconciler.

        Args:
            db: Database session
            stripe_client: Optional Stripe client instance
            account_manager: Optional manager used for bank account syncs
            notifier: Optional notifier writing to the same session
        """
        self.db = db
        self.stripe_client = stripe_client or StripeClient()
        self.notifier = notifier or Notifier(db)
        self.account_manager = account_manager or MerchantAccountManager(
            db, stripe_client=self.stripe_client, notifier=self.notifier
        )
        self.settings = get_settings()

    def register(self, webhook_handler: WebhookHandler) -> None:
        """Route the event types this reconciler handles."""
        webhook_handler.register_handler(ACCOUNT_UPDATED, self.handle_account_updated)
        webhook_handler.register_handler(CAPABILITY_UPDATED, self.handle_capability_updated)
        webhook_handler.register_handler(ACCOUNT_DEAUTHORIZED, self.handle_account_deauthorized)

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch an event by type; other types are ignored."""
        handlers = {
            ACCOUNT_UPDATED: self.handle_account_updated,
            CAPABILITY_UPDATED: self.handle_capability_updated,
            ACCOUNT_DEAUTHORIZED: self.handle_account_deauthorized,
        }
        handler = handlers.get(event.get("type", ""))
        if handler is None:
            return _ignored("unhandled_event_type", event_type=event.get("type"))
        return await handler(event)

    async def _merchant_account_for(
        self, stripe_account_id: Optional[str], alive_only: bool = False
    ) -> Optional[MerchantAccount]:
        if not stripe_account_id:
            return None
        stmt = (
            select(MerchantAccount)
            .where(MerchantAccount.charge_processor_id == STRIPE_CHARGE_PROCESSOR_ID)
            .where(MerchantAccount.charge_processor_merchant_id == stripe_account_id)
            .order_by(MerchantAccount.created_at.desc())
            .limit(1)
        )
        if alive_only:
            stmt = stmt.where(MerchantAccount.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _open_requests(self, creator_id: uuid.UUID) -> List[ComplianceInfoRequest]:
        stmt = (
            select(ComplianceInfoRequest)
            .where(ComplianceInfoRequest.creator_id == creator_id)
            .where(ComplianceInfoRequest.state == ComplianceInfoRequest.REQUESTED)
            .order_by(ComplianceInfoRequest.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def handle_account_updated(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reconcile an ``account.updated`` event.

        Raises:
            MalformedEventError: If the event does not carry an account
            UnknownAccountError: If no merchant account has the Stripe id
        """
        event_id = event.get("id")
        data = event.get("data") or {}
        payload = data.get("object") or {}
        if payload.get("object") != "account":
            raise MalformedEventError(event_id, "account")

        account = VendorAccount.model_validate(payload)
        previous_attributes = data.get("previous_attributes") or {}
        log = logger.bind(event_id=event_id, stripe_account_id=account.id)

        if account.type in UNPROVISIONED_ACCOUNT_TYPES:
            log.info("account_event_ignored_unprovisioned_type", account_type=account.type)
            return _ignored("unprovisioned_account_type")

        merchant_account = await self._merchant_account_for(account.id)
        if merchant_account is None:
            raise UnknownAccountError(account.id)
        if not merchant_account.alive or not merchant_account.charge_processor_alive:
            log.info(
                "account_event_ignored_not_alive",
                merchant_account_id=str(merchant_account.id),
            )
            return _ignored("merchant_account_not_alive")

        creator = await self.db.get(Creator, merchant_account.creator_id)

        if account.default_currency and account.country:
            merchant_account.currency = account.default_currency
            merchant_account.country = account.country

        persons: Optional[List[VendorPerson]] = None
        if account.business_type != "individual" or person_requirement_ids(
            account.requirements, account.future_requirements
        ):
            persons = await self.stripe_client.list_persons(account.id, limit=PERSON_LOOKUP_LIMIT)

        verification_status = self._update_verification(merchant_account, account, persons)

        result = await self._reconcile_requirements(
            event_id,
            creator,
            account.requirements,
            account.future_requirements,
            known_person_ids=[person.id for person in persons or []],
            account=account,
            previous_attributes=previous_attributes,
        )
        result["verification_status"] = verification_status
        await self.db.flush()

        log.info("account_event_reconciled", **result)
        return result

    def _update_verification(
        self,
        merchant_account: MerchantAccount,
        account: VendorAccount,
        persons: Optional[List[VendorPerson]],
    ) -> Optional[str]:
        if account.business_type == "individual":
            person = account.individual
        else:
            person = persons[0] if persons else None
        status = person.verification.status if person else None

        if status == "verified":
            merchant_account.charge_processor_verified_at = (
                merchant_account.charge_processor_verified_at or utcnow()
            )
        elif status == "unverified":
            merchant_account.charge_processor_verified_at = None
        return status

    async def handle_capability_updated(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reconcile a ``capability.updated`` event.

        Capability events arrive for accounts this service does not manage,
        so an unknown account is a no-op.
        """
        event_id = event.get("id")
        payload = (event.get("data") or {}).get("object") or {}
        if payload.get("object") != "capability":
            raise MalformedEventError(event_id, "capability")

        capability = VendorCapability.model_validate(payload)
        merchant_account = await self._merchant_account_for(capability.account, alive_only=True)
        if merchant_account is None or not merchant_account.charge_processor_alive:
            logger.info(
                "capability_event_ignored_unknown_account",
                event_id=event_id,
                stripe_account_id=capability.account,
            )
            return _ignored("unknown_account")

        creator = await self.db.get(Creator, merchant_account.creator_id)

        known_person_ids: List[str] = []
        if person_requirement_ids(capability.requirements, capability.future_requirements):
            persons = await self.stripe_client.list_persons(
                capability.account, limit=PERSON_LOOKUP_LIMIT
            )
            known_person_ids = [person.id for person in persons]

        result = await self._reconcile_requirements(
            event_id,
            creator,
            capability.requirements,
            capability.future_requirements,
            known_person_ids=known_person_ids,
        )
        result["capability"] = capability.id
        await self.db.flush()

        logger.info("capability_event_reconciled", event_id=event_id, **result)
        return result

    async def handle_account_deauthorized(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Deactivate the merchant account the platform lost access to."""
        event_id = event.get("id")
        payload = (event.get("data") or {}).get("object") or {}
        stripe_account_id = event.get("account") or event.get("user_id")
        if not stripe_account_id and payload.get("object") == "account":
            stripe_account_id = payload.get("id")
        if not stripe_account_id:
            raise MalformedEventError(event_id, "account")

        merchant_account = await self._merchant_account_for(stripe_account_id, alive_only=True)
        if merchant_account is None:
            logger.info(
                "deauthorization_ignored_unknown_account",
                event_id=event_id,
                stripe_account_id=stripe_account_id,
            )
            return _ignored("unknown_account")

        merchant_account.deactivate()
        creator = await self.db.get(Creator, merchant_account.creator_id)
        notified = False
        if creator is not None and creator.merchant_migration_enabled:
            self.notifier.enqueue(
                creator.id,
                NotificationKind.ACCOUNT_DEAUTHORIZED,
                charge_processor_id=STRIPE_CHARGE_PROCESSOR_ID,
            )
            notified = True
        await self.db.flush()

        logger.info(
            "merchant_account_deauthorized",
            event_id=event_id,
            merchant_account_id=str(merchant_account.id),
            notified=notified,
        )
        return {"status": "deauthorized", "notified": notified}

    async def _reconcile_requirements(
        self,
        event_id: Optional[str],
        creator: Creator,
        requirements: Requirements,
        future_requirements: Requirements,
        *,
        known_person_ids: List[str],
        account: Optional[VendorAccount] = None,
        previous_attributes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Apply one set of requirement tiers to the creator's compliance state.

        ``account`` is only given for whole-account events; capability events
        skip the steps that need the full account picture.
        """
        now = utcnow()
        parsed = parse_requirements(requirements, future_requirements, known_person_ids)
        open_requests = await self._open_requests(creator.id)
        notifiable = creator.status not in SILENCED_CREATOR_STATUSES

        if account is not None:
            still_needed = {requirement.field for requirement in parsed}
            for request in open_requests:
                if request.field_needed not in still_needed:
                    request.mark_provided(now)
            open_requests = [request for request in open_requests if request.is_requested]
            if not parsed:
                logger.info("compliance_requests_cleared", creator_id=str(creator.id))

        suspended = self._apply_suspensions(creator, parsed, notifiable)
        notifiable = notifiable and not suspended

        remediation_fields = self._apply_remediations(
            event_id, creator, parsed, open_requests, notifiable
        )

        kyc = [requirement for requirement in parsed if requirement.kind is RequirementKind.KYC]
        if account is not None:
            kyc = await self._sync_bank_account(creator, kyc, open_requests, now)
            self._apply_enablement_transitions(
                creator, account, previous_attributes or {}, bool(parsed), notifiable
            )

        new_requests = self._persist_kyc_requests(event_id, creator, kyc, open_requests)
        email = None
        if notifiable:
            email = self._send_kyc_email(
                creator, kyc, open_requests + new_requests, bool(new_requests), now
            )

        return {
            "status": "reconciled",
            "requirements": len(parsed),
            "new_requests": [request.field_needed for request in new_requests],
            "remediation_requests": remediation_fields,
            "suspended": suspended,
            "email": email,
        }

    def _apply_suspensions(
        self, creator: Creator, parsed: List[ParsedRequirement], notifiable: bool
    ) -> bool:
        appeals = [r for r in parsed if r.kind is RequirementKind.SUSPENSION]
        if not appeals or creator.status == "suspended_for_risk":
            return False

        creator.suspend_for_risk()
        logger.warning(
            "creator_suspended_for_stripe_risk",
            creator_id=str(creator.id),
            requirements=[r.stripe_field for r in appeals],
        )
        if notifiable:
            self.notifier.enqueue(creator.id, NotificationKind.SUSPENDED_DUE_TO_RISK)
        return True

    def _apply_remediations(
        self,
        event_id: Optional[str],
        creator: Creator,
        parsed: List[ParsedRequirement],
        open_requests: List[ComplianceInfoRequest],
        notifiable: bool,
    ) -> List[str]:
        open_fields = {request.field_needed for request in open_requests}
        created: List[str] = []
        for requirement in parsed:
            if requirement.kind is not RequirementKind.REMEDIATION or requirement.field in open_fields:
                continue
            request = ComplianceInfoRequest(
                creator_id=creator.id,
                field_needed=requirement.field,
                only_needs_field_to_be_partially_provided=False,
                state=ComplianceInfoRequest.REQUESTED,
                due_at=requirement.due_at,
                stripe_event_id=event_id,
                emails_sent_at=[],
            )
            self.db.add(request)
            open_requests.append(request)
            created.append(requirement.field)
            metrics.record_compliance_request(RequirementKind.REMEDIATION.value)

        if created and notifiable:
            self.notifier.enqueue(creator.id, NotificationKind.REMEDIATION, fields=created)
        return created

    async def _sync_bank_account(
        self,
        creator: Creator,
        kyc: List[ParsedRequirement],
        open_requests: List[ComplianceInfoRequest],
        now: datetime,
    ) -> List[ParsedRequirement]:
        """Resolve a bank-account-only requirement through bank sync."""
        if not kyc or not all(requirement.is_bank_account for requirement in kyc):
            return kyc
        try:
            synced = await self.account_manager.update_bank_account(creator.id)
        except (NotReadyError, VendorError) as e:
            logger.warning("bank_account_sync_failed", creator_id=str(creator.id), error=str(e))
            return kyc
        if not synced:
            return kyc
        for request in open_requests:
            if request.is_requested and request.field_needed == ComplianceFields.BANK_ACCOUNT:
                request.mark_provided(now)
        return []

    def _apply_enablement_transitions(
        self,
        creator: Creator,
        account: VendorAccount,
        previous_attributes: Dict[str, Any],
        fields_needed: bool,
        notifiable: bool,
    ) -> None:
        due_to_requirements = (
            fields_needed and account.requirements.disabled_reason in REQUIREMENT_DISABLED_REASONS
        )

        charges_newly_disabled = (
            account.charges_enabled is False and previous_attributes.get("charges_enabled") is True
        )
        if charges_newly_disabled and due_to_requirements and notifiable:
            self.notifier.enqueue(
                creator.id,
                NotificationKind.CHARGES_DISABLED,
                disabled_reason=account.requirements.disabled_reason,
            )

        if account.payouts_enabled:
            creator.payouts_paused_internally = False
        elif account.payouts_enabled is False and not creator.payouts_paused_internally:
            creator.payouts_paused_internally = True
            logger.info("creator_payouts_paused", creator_id=str(creator.id))
            payouts_newly_disabled = previous_attributes.get("payouts_enabled") is True
            if payouts_newly_disabled and due_to_requirements and notifiable:
                self.notifier.enqueue(
                    creator.id,
                    NotificationKind.PAYOUTS_DISABLED,
                    disabled_reason=account.requirements.disabled_reason,
                )

    def _persist_kyc_requests(
        self,
        event_id: Optional[str],
        creator: Creator,
        kyc: List[ParsedRequirement],
        open_requests: List[ComplianceInfoRequest],
    ) -> List[ComplianceInfoRequest]:
        new_requests: List[ComplianceInfoRequest] = []
        for requirement in kyc:
            existing = next(
                (request for request in open_requests if request.field_needed == requirement.field),
                None,
            )
            if existing is not None:
                # A full value also satisfies a partial one, never the reverse.
                if not requirement.partial:
                    existing.only_needs_field_to_be_partially_provided = False
                if requirement.due_at is not None:
                    existing.due_at = requirement.due_at
                if requirement.error is not None:
                    existing.verification_error = dict(requirement.error)
                continue

            request = ComplianceInfoRequest(
                creator_id=creator.id,
                field_needed=requirement.field,
                only_needs_field_to_be_partially_provided=requirement.partial,
                state=ComplianceInfoRequest.REQUESTED,
                due_at=requirement.due_at,
                stripe_event_id=event_id,
                verification_error=dict(requirement.error) if requirement.error else None,
                emails_sent_at=[],
            )
            self.db.add(request)
            new_requests.append(request)
            metrics.record_compliance_request(RequirementKind.KYC.value)
        return new_requests

    def _send_kyc_email(
        self,
        creator: Creator,
        kyc: List[ParsedRequirement],
        requests: List[ComplianceInfoRequest],
        has_new_requests: bool,
        now: datetime,
    ) -> Optional[str]:
        """
        Send one email about every open KYC request.

        Returns:
            Optional[str]: The template sent, or None when nothing was sent
        """
        open_kyc = [
            request
            for request in requests
            if request.is_requested and intervention_category(request.field_needed) is None
        ]
        if not open_kyc:
            return None
        # Stripe's bank requirement is satisfied by bank sync, not by the creator.
        if all(request.field_needed == ComplianceFields.BANK_ACCOUNT for request in open_kyc):
            return None

        window = timedelta(days=self.settings.kyc_email_resend_window_days)
        if not has_new_requests and any(request.emailed_within(window, now) for request in open_kyc):
            logger.info("kyc_email_suppressed", creator_id=str(creator.id))
            return None

        errors = [(requirement.field, requirement.error) for requirement in kyc if requirement.error]
        document_error = next(
            (item for item in errors if is_document_verification_error(item[1]["code"])), None
        )
        if document_error is not None:
            kind = NotificationKind.DOCUMENT_VERIFICATION_FAILED
            details = {"field": document_error[0], "reason": document_error[1]["reason"]}
        elif errors:
            kind = NotificationKind.IDENTITY_VERIFICATION_FAILED
            details = {"field": errors[0][0], "reason": errors[0][1]["reason"]}
        else:
            kind = NotificationKind.MORE_KYC_NEEDED
            fields: List[str] = []
            for request in open_kyc:
                if request.field_needed not in fields:
                    fields.append(request.field_needed)
            details = {"fields": fields}

        self.notifier.enqueue(creator.id, kind, **details)
        for request in open_kyc:
            request.record_email_sent(now)
        return kind.value

    async def expire_overdue_requests(self, now: Optional[datetime] = None) -> int:
        """
        Expire open requests whose due date has passed.

        Returns:
            int: Number of requests expired
        """
        now = now or utcnow()
        stmt = (
            select(ComplianceInfoRequest)
            .where(ComplianceInfoRequest.state == ComplianceInfoRequest.REQUESTED)
            .where(ComplianceInfoRequest.due_at.is_not(None))
            .where(ComplianceInfoRequest.due_at < now)
        )
        result = await self.db.execute(stmt)
        expired = 0
        for request in result.scalars().all():
            request.mark_expired(now)
            expired += 1
        await self.db.flush()

        logger.info("compliance_requests_expired", count=expired)
        return expired
