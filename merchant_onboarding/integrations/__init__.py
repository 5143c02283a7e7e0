"""External service integrations."""
from .stripe_client import (
    StripeClient,
    VendorError,
    VendorErrorType,
    VendorRejectionError,
)
from .webhook_handler import WebhookError, WebhookHandler, WebhookSignatureError

__all__ = [
    "StripeClient",
    "VendorError",
    "VendorErrorType",
    "VendorRejectionError",
    "WebhookError",
    "WebhookHandler",
    "WebhookSignatureError",
]
