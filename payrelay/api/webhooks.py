"""Stripe webhook endpoint: receives and reconciles Stripe events."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse

from payrelay.api.deps import get_reconciler
from payrelay.billing.webhooks import WebhookReconciler
from payrelay.schemas.billing import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    """Receive a Stripe event.

    Any failure answers 400 so that Stripe retries the delivery; a handled,
    ignored, or unmatched event answers 200.
    """
    # Raw bytes are required for signature verification.
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        await reconciler.handle(payload, sig_header)
    except Exception as e:
        logger.exception("Webhook error: %s", e)
        return PlainTextResponse(
            f"Webhook Error: {e}",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    return WebhookAck()
