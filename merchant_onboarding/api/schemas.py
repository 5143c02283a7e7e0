"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="Processing status (success, ignored)")
    event_id: Optional[str] = Field(default=None, description="Stripe event ID")
    event_type: Optional[str] = Field(default=None, description="Stripe event type")
    result: Optional[Dict[str, Any]] = Field(default=None, description="Reconciliation outcome")


class MerchantAccountResponse(BaseModel):
    """Response schema for a provisioned merchant account."""

    id: str = Field(..., description="Merchant account ID")
    creator_id: str = Field(..., description="Creator ID")
    stripe_account_id: Optional[str] = Field(default=None, description="Stripe account ID")
    country: str = Field(..., description="ISO alpha-2 country code")
    currency: str = Field(..., description="Settlement currency")
    charge_processor_alive_at: Optional[datetime] = Field(
        default=None, description="When the account became usable"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "0b6f1c1e-7d3a-4c55-9a57-7a1b7c0fd3e2",
                    "creator_id": "123e4567-e89b-12d3-a456-426614174000",
                    "stripe_account_id": "acct_1Nv0FGQ9RKHgCVdK",
                    "country": "US",
                    "currency": "usd",
                    "charge_processor_alive_at": "2024-01-15T10:30:00",
                }
            ]
        }
    )


class ExpireRequestsResponse(BaseModel):
    """Response schema for expiring overdue compliance requests."""

    expired: int = Field(..., description="Number of requests expired")


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual check results")
    message: Optional[str] = Field(default=None, description="Status message")
