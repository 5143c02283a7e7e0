"""FastAPI application and routes."""
from .main import app
from .schemas import (
    ExpireRequestsResponse,
    HealthCheckResponse,
    MerchantAccountResponse,
    WebhookResponse,
)

__all__ = [
    "app",
    "ExpireRequestsResponse",
    "HealthCheckResponse",
    "MerchantAccountResponse",
    "WebhookResponse",
]
