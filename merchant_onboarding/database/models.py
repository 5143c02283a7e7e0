"""SQLAlchemy database models for merchant onboarding."""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from merchant_onboarding.domain.fields import VERIFICATION_ERROR_MESSAGES
from merchant_onboarding.domain.profiles import (
    BankAccountDetails,
    ComplianceProfile,
    TermsAcceptance,
)

JSONDocument = JSON().with_variant(JSONB(), "postgresql")

STRIPE_CHARGE_PROCESSOR_ID = "stripe"


def utcnow() -> datetime:
    """Current time as naive UTC, the convention of every timestamp column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_epoch(seconds: Optional[int]) -> Optional[datetime]:
    if seconds is None:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Creator(Base):
    """
    A seller on the platform.

    Only the attributes onboarding needs are kept here.
    """

    __tablename__ = "creators"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    business_profile_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    payouts_paused_internally: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    merchant_migration_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'deleted', 'suspended_for_fraud', 'suspended_for_risk')",
            name="valid_creator_status",
        ),
    )

    def suspend_for_risk(self) -> None:
        self.status = "suspended_for_risk"

    def __repr__(self) -> str:
        """String representation of Creator."""
        return f"<Creator(id={self.id}, status={self.status})>"


class ComplianceProfileRecord(Base):
    """
    Versioned compliance profiles.

    A new row is written for every change. The row with ``deleted_at`` unset
    is the current one; older rows are kept so updates can be diffed against
    what Stripe last received.
    """

    __tablename__ = "compliance_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id"), nullable=False, index=True
    )
    data: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def to_snapshot(self) -> ComplianceProfile:
        return ComplianceProfile.model_validate(
            {**self.data, "id": str(self.id), "creator_id": str(self.creator_id)}
        )

    def __repr__(self) -> str:
        """String representation of ComplianceProfileRecord."""
        return f"<ComplianceProfileRecord(id={self.id}, creator_id={self.creator_id})>"


class BankAccount(Base):
    """Payout destination; vendor ids are set once Stripe accepted it."""

    __tablename__ = "bank_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id"), nullable=False, index=True
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False)
    routing_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    account_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    account_holder_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_connect_account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_external_account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_fingerprint: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def to_snapshot(self) -> BankAccountDetails:
        return BankAccountDetails(
            id=str(self.id),
            creator_id=str(self.creator_id),
            country=self.country,
            currency=self.currency,
            account_number=self.account_number,
            routing_number=self.routing_number,
            account_type=self.account_type,
            account_holder_name=self.account_holder_name,
            stripe_external_account_id=self.stripe_external_account_id,
            stripe_fingerprint=self.stripe_fingerprint,
        )

    def __repr__(self) -> str:
        """String representation of BankAccount."""
        return f"<BankAccount(id={self.id}, creator_id={self.creator_id}, country={self.country})>"


class TosAgreement(Base):
    """Terms of service acceptance. Immutable once written."""

    __tablename__ = "tos_agreements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id"), nullable=False, index=True
    )
    ip: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_snapshot(self) -> TermsAcceptance:
        return TermsAcceptance(id=str(self.id), ip=self.ip, accepted_at=self.created_at)


class MerchantAccount(Base):
    """
    The creator's account at the payment processor.

    ``charge_processor_alive_at`` is only set once provisioning fully
    succeeded; events for accounts without it are ignored.
    """

    __tablename__ = "merchant_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id"), nullable=False, index=True
    )
    charge_processor_id: Mapped[str] = mapped_column(
        String(32), nullable=False, default=STRIPE_CHARGE_PROCESSOR_ID
    )
    charge_processor_merchant_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    charge_processor_alive_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    charge_processor_verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    charge_processor_deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    @property
    def alive(self) -> bool:
        return self.deleted_at is None

    @property
    def charge_processor_alive(self) -> bool:
        return self.charge_processor_alive_at is not None and self.charge_processor_deleted_at is None

    def mark_deleted(self) -> None:
        self.deleted_at = self.deleted_at or utcnow()

    def deactivate(self) -> None:
        now = utcnow()
        self.deleted_at = self.deleted_at or now
        self.charge_processor_deleted_at = self.charge_processor_deleted_at or now
        self.charge_processor_alive_at = None

    def __repr__(self) -> str:
        """String representation of MerchantAccount."""
        return (
            f"<MerchantAccount(id={self.id}, creator_id={self.creator_id}, "
            f"merchant_id={self.charge_processor_merchant_id})>"
        )


class ComplianceInfoRequest(Base):
    """
    A verification requirement Stripe is waiting on.

    States: requested -> provided | expired. Only created from webhook
    requirements, never speculatively.
    """

    __tablename__ = "compliance_info_requests"

    REQUESTED = "requested"
    PROVIDED = "provided"
    EXPIRED = "expired"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id"), nullable=False, index=True
    )
    field_needed: Mapped[str] = mapped_column(String(255), nullable=False)
    only_needs_field_to_be_partially_provided: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=REQUESTED)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    provided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    stripe_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    verification_error: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONDocument, nullable=True
    )
    emails_sent_at: Mapped[List[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "state IN ('requested', 'provided', 'expired')",
            name="valid_compliance_request_state",
        ),
        Index("idx_compliance_requests_creator_state", "creator_id", "state"),
    )

    @property
    def is_requested(self) -> bool:
        return self.state == self.REQUESTED

    def mark_provided(self, at: Optional[datetime] = None) -> None:
        if not self.is_requested:
            raise ValueError(f"Cannot mark a {self.state} request as provided")
        self.state = self.PROVIDED
        self.provided_at = at or utcnow()

    def mark_expired(self, at: Optional[datetime] = None) -> None:
        if not self.is_requested:
            raise ValueError(f"Cannot mark a {self.state} request as expired")
        self.state = self.EXPIRED
        self.expired_at = at or utcnow()

    def record_email_sent(self, at: Optional[datetime] = None) -> None:
        # Reassigned, not appended, so the JSON column is flagged dirty.
        self.emails_sent_at = [*(self.emails_sent_at or []), (at or utcnow()).isoformat()]

    @property
    def last_email_sent_at(self) -> Optional[datetime]:
        if not self.emails_sent_at:
            return None
        return max(datetime.fromisoformat(sent_at) for sent_at in self.emails_sent_at)

    def emailed_within(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        last = self.last_email_sent_at
        return last is not None and (now or utcnow()) - last < window

    @property
    def verification_error_message(self) -> Optional[str]:
        if not self.verification_error:
            return None
        if self.verification_error.get("message"):
            return self.verification_error["message"]
        return VERIFICATION_ERROR_MESSAGES.get(
            self.verification_error.get("code", ""), self.verification_error.get("reason")
        )

    def __repr__(self) -> str:
        """String representation of ComplianceInfoRequest."""
        return (
            f"<ComplianceInfoRequest(id={self.id}, field={self.field_needed}, "
            f"state={self.state})>"
        )


class OutboxEvent(Base):
    """
    Transactional outbox events table.

    Creator notifications are written in the same transaction as the
    compliance changes that caused them, then delivered by the publisher.
    """

    __tablename__ = "outbox_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    aggregate_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_outbox_aggregate", "aggregate_id", "aggregate_type"),
    )

    def __repr__(self) -> str:
        """String representation of OutboxEvent."""
        return (
            f"<OutboxEvent(id={self.id}, type={self.event_type}, "
            f"published={self.published})>"
        )
