"""
Stripe Connect API client with retry logic and error classification.

Implements:
- Typed decoding of account, person and list responses
- Exponential backoff for transient errors on read calls
- Circuit breaker pattern
- Single-shot mutating calls (create, update, delete)
"""
import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import stripe
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from merchant_onboarding.config import get_settings
from merchant_onboarding.integrations.vendor_objects import VendorAccount, VendorPerson, as_mapping
from merchant_onboarding.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class VendorErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class VendorError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: VendorErrorType,
        original_error: Optional[Exception] = None,
        code: Optional[str] = None,
    ):
        """
        Initialize vendor error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
            code: Stripe error code, when Stripe returned one
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.original_error = original_error
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.error_type != VendorErrorType.PERMANENT


class VendorRejectionError(VendorError):
    """Stripe refused the request itself (invalid parameters, declined account)."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, VendorErrorType.PERMANENT, original_error, code)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, VendorError) and error.retryable


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Prevents cascading failures by temporarily stopping requests
    when the transient error rate exceeds threshold.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    def before_call(self) -> None:
        """
        Raises:
            VendorError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self.state = "half_open"
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise VendorError(
                    "Circuit breaker is open",
                    VendorErrorType.TRANSIENT,
                )

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = "closed"
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold:
            self.state = "open"
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )


class StripeClient:
    """
    Wrapper for the Stripe Connect account API.

    Features:
    - Automatic retry with exponential backoff for reads
    - Circuit breaker pattern
    - Comprehensive error classification
    - Responses decoded into typed vendor objects
    """

    def __init__(self, retry_wait: Optional[Any] = None) -> None:
        """
        Initialize Stripe client.

        Args:
            retry_wait: Optional tenacity wait strategy for retried reads
        """
        settings = get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = CircuitBreaker()
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=16)

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> VendorErrorType:
        """
        Classify Stripe error for retry logic.

        Args:
            error: Stripe error

        Returns:
            VendorErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return VendorErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return VendorErrorType.TRANSIENT
        elif isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
            ),
        ):
            return VendorErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return VendorErrorType.TRANSIENT

    def _translate_error(self, operation: str, error: stripe.StripeError) -> VendorError:
        error_type = self._classify_error(error)
        message = getattr(error, "user_message", None) or str(error)
        code = getattr(error, "code", None)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=code,
            error_message=message,
            request_id=getattr(error, "request_id", None),
        )
        metrics.record_vendor_error(error_type.value)

        if error_type == VendorErrorType.PERMANENT:
            return VendorRejectionError(message, original_error=error, code=code)
        return VendorError(message, error_type, original_error=error, code=code)

    async def _call(self, operation: str, func: Callable[[], Any]) -> Any:
        """Run one blocking SDK call in the default executor."""
        self.circuit_breaker.before_call()
        start_time = time.time()
        try:
            result = await asyncio.get_running_loop().run_in_executor(None, func)
        except stripe.StripeError as e:
            vendor_error = self._translate_error(operation, e)
            if vendor_error.retryable:
                self.circuit_breaker.on_failure()
            metrics.record_vendor_request(operation, "error", time.time() - start_time)
            raise vendor_error from e

        self.circuit_breaker.on_success()
        metrics.record_vendor_request(operation, "success", time.time() - start_time)
        return result

    async def _call_with_retries(self, operation: str, func: Callable[[], Any]) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.settings.vendor_retry_max_attempts),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                return await self._call(operation, func)

    async def create_account(
        self, params: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> VendorAccount:
        """
        Create a custom connected account.

        Args:
            params: Account creation payload
            idempotency_key: Optional idempotency key

        Returns:
            VendorAccount: Created account

        Raises:
            VendorError: If account creation fails
        """
        logger.info(
            "creating_stripe_account",
            country=params.get("country"),
            business_type=params.get("business_type"),
        )

        def _create() -> Any:
            kwargs: Dict[str, Any] = dict(params)
            if idempotency_key:
                kwargs["idempotency_key"] = idempotency_key
            return stripe.Account.create(**kwargs)

        response = await self._call("create_account", _create)
        account = VendorAccount.model_validate(as_mapping(response))
        logger.info("stripe_account_created", stripe_account_id=account.id)
        return account

    async def retrieve_account(self, account_id: str) -> VendorAccount:
        """
        Retrieve a connected account by ID.

        Raises:
            VendorError: If retrieval fails
        """
        logger.info("retrieving_stripe_account", stripe_account_id=account_id)

        def _retrieve() -> Any:
            return stripe.Account.retrieve(account_id)

        return VendorAccount.model_validate(
            as_mapping(await self._call_with_retries("retrieve_account", _retrieve))
        )

    async def update_account(self, account_id: str, params: Dict[str, Any]) -> VendorAccount:
        """
        Update a connected account.

        Raises:
            VendorError: If the update fails
        """
        logger.info(
            "updating_stripe_account",
            stripe_account_id=account_id,
            sections=sorted(params),
        )

        def _modify() -> Any:
            return stripe.Account.modify(account_id, **params)

        response = await self._call("update_account", _modify)
        return VendorAccount.model_validate(as_mapping(response))

    async def delete_account(self, account_id: str) -> bool:
        """Delete a connected account. Returns whether Stripe deleted it."""
        logger.info("deleting_stripe_account", stripe_account_id=account_id)

        def _delete() -> Any:
            return stripe.Account.delete(account_id)

        result = as_mapping(await self._call("delete_account", _delete))
        return bool(result.get("deleted"))

    async def create_person(self, account_id: str, params: Dict[str, Any]) -> VendorPerson:
        """Create a person (company representative) on an account."""
        logger.info("creating_stripe_person", stripe_account_id=account_id)

        def _create() -> Any:
            return stripe.Account.create_person(account_id, **params)

        response = await self._call("create_person", _create)
        return VendorPerson.model_validate(as_mapping(response))

    async def update_person(
        self, account_id: str, person_id: str, params: Dict[str, Any]
    ) -> VendorPerson:
        """Update a person on an account."""
        logger.info(
            "updating_stripe_person",
            stripe_account_id=account_id,
            stripe_person_id=person_id,
        )

        def _modify() -> Any:
            return stripe.Account.modify_person(account_id, person_id, **params)

        response = await self._call("update_person", _modify)
        return VendorPerson.model_validate(as_mapping(response))

    async def list_persons(self, account_id: str, limit: int = 10) -> List[VendorPerson]:
        """List the persons attached to an account."""
        logger.info("listing_stripe_persons", stripe_account_id=account_id, limit=limit)

        def _list() -> Any:
            return stripe.Account.list_persons(account_id, limit=limit)

        listing = as_mapping(await self._call_with_retries("list_persons", _list))
        return [VendorPerson.model_validate(as_mapping(person)) for person in listing.get("data", [])]
