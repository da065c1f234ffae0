"""Pydantic v2 request/response schemas for billing endpoints.

The client application speaks camelCase JSON; fields are snake_case in Python
and aliased on the wire.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request schemas ---


class CreateSubscriptionRequest(CamelModel):
    """Request to subscribe a user with a card collected by the client."""

    payment_method_id: str
    price_id: str
    user_id: str
    save_card: bool = False
    user_email: str | None = None
    user_name: str | None = None


class CancelSubscriptionRequest(CamelModel):
    """Request to cancel a subscription at the end of its period."""

    subscription_id: str
    user_id: str


# --- Response schemas ---


class CreateSubscriptionResponse(CamelModel):
    success: bool = True
    subscription_id: str
    customer_id: str
    client_secret: str
    status: str


class CancelSubscriptionResponse(CamelModel):
    success: bool = True
    message: str


class PaymentMethodResponse(CamelModel):
    """Card summary as listed by Stripe."""

    id: str
    brand: str | None
    last4: str | None
    exp_month: int | None
    exp_year: int | None


class PaymentMethodsResponse(CamelModel):
    """``success`` is omitted when the user has no Stripe customer yet."""

    success: bool | None = None
    payment_methods: list[PaymentMethodResponse]


class ErrorResponse(CamelModel):
    success: bool = False
    error: str


class StatusResponse(CamelModel):
    status: str
    message: str
    timestamp: str


class WebhookAck(CamelModel):
    received: bool = True
