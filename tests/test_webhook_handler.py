"""
Unit tests for webhook signature verification and routing.
"""
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

import pytest

from merchant_onboarding.integrations.webhook_handler import (
    WebhookError,
    WebhookHandler,
    WebhookSignatureError,
)

SECRET = "whsec_test_handler_secret"


def sign(payload: str, secret: str = SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


EVENT: Dict[str, Any] = {
    "id": "evt_1Test",
    "object": "event",
    "type": "account.updated",
    "data": {"object": {"id": "acct_1", "object": "account"}},
}


class TestWebhookHandler:
    """Test suite for WebhookHandler."""

    @pytest.mark.unit
    def test_valid_signature_returns_event(self) -> None:
        handler = WebhookHandler(secret=SECRET)
        payload = json.dumps(EVENT)

        event = handler.verify_signature(payload.encode("utf-8"), sign(payload))

        assert event == EVENT

    @pytest.mark.unit
    def test_wrong_secret_is_rejected(self) -> None:
        handler = WebhookHandler(secret=SECRET)
        payload = json.dumps(EVENT)

        with pytest.raises(WebhookSignatureError):
            handler.verify_signature(payload.encode("utf-8"), sign(payload, secret="whsec_other"))

    @pytest.mark.unit
    def test_stale_timestamp_is_rejected(self) -> None:
        handler = WebhookHandler(secret=SECRET)
        payload = json.dumps(EVENT)

        with pytest.raises(WebhookSignatureError):
            handler.verify_signature(
                payload.encode("utf-8"), sign(payload, timestamp=int(time.time()) - 3600)
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_routes_to_registered_handler(self) -> None:
        handler = WebhookHandler(secret=SECRET)
        seen = []

        async def on_account_updated(event: Dict[str, Any]) -> Dict[str, Any]:
            seen.append(event["id"])
            return {"status": "reconciled"}

        handler.register_handler("account.updated", on_account_updated)
        result = await handler.process_event(EVENT)

        assert seen == ["evt_1Test"]
        assert result == {
            "status": "success",
            "event_id": "evt_1Test",
            "event_type": "account.updated",
            "result": {"status": "reconciled"},
        }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unrouted_event_is_ignored(self) -> None:
        handler = WebhookHandler(secret=SECRET)

        result = await handler.process_event({"id": "evt_2", "type": "payout.paid"})

        assert result["status"] == "ignored"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handler_failure_is_wrapped(self) -> None:
        handler = WebhookHandler(secret=SECRET)

        async def boom(event: Dict[str, Any]) -> None:
            raise RuntimeError("database unavailable")

        handler.register_handler("account.updated", boom)

        with pytest.raises(WebhookError) as exc_info:
            await handler.process_event(EVENT)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
