"""Subscription API endpoints: create, cancel, and list saved cards."""

import logging

from fastapi import APIRouter, Depends

from payrelay.api.deps import error_response, get_orchestrator
from payrelay.billing.orchestrator import SubscriptionOrchestrator
from payrelay.schemas.billing import (
    CancelSubscriptionRequest,
    CancelSubscriptionResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    ErrorResponse,
    PaymentMethodResponse,
    PaymentMethodsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["subscriptions"])


@router.post(
    "/create-subscription",
    response_model=CreateSubscriptionResponse,
    responses={400: {"model": ErrorResponse}},
)
async def create_subscription(
    body: CreateSubscriptionRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
):
    """Create a Stripe subscription and mirror it to the user's record."""
    try:
        result = await orchestrator.create_subscription(
            user_id=body.user_id,
            payment_method_id=body.payment_method_id,
            price_id=body.price_id,
            user_email=body.user_email,
            user_name=body.user_name,
            save_card=body.save_card,
        )
    except Exception as e:
        logger.error("Subscription creation error for user %s: %s", body.user_id, e)
        return error_response(e)

    return CreateSubscriptionResponse(
        subscription_id=result.subscription_id,
        customer_id=result.customer_id,
        client_secret=result.client_secret,
        status=result.status,
    )


@router.post(
    "/cancel-subscription",
    response_model=CancelSubscriptionResponse,
    responses={400: {"model": ErrorResponse}},
)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
):
    """Cancel a subscription at the end of the current billing period."""
    try:
        await orchestrator.cancel_subscription(body.subscription_id, body.user_id)
    except Exception as e:
        logger.error("Cancel subscription error for %s: %s", body.subscription_id, e)
        return error_response(e)

    return CancelSubscriptionResponse(
        message="Subscription will be cancelled at period end"
    )


@router.get(
    "/payment-methods/{user_id}",
    response_model=PaymentMethodsResponse,
    response_model_exclude_unset=True,
    responses={400: {"model": ErrorResponse}},
)
async def list_payment_methods(
    user_id: str,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
):
    """List the user's cards as Stripe currently has them."""
    try:
        cards = await orchestrator.list_payment_methods(user_id)
    except Exception as e:
        logger.error("Error fetching payment methods for user %s: %s", user_id, e)
        return error_response(e)

    if cards is None:
        return PaymentMethodsResponse(payment_methods=[])

    return PaymentMethodsResponse(
        success=True,
        payment_methods=[
            PaymentMethodResponse(
                id=card.id,
                brand=card.brand,
                last4=card.last4,
                exp_month=card.exp_month,
                exp_year=card.exp_year,
            )
            for card in cards
        ],
    )
