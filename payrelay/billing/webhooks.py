"""Stripe webhook event handlers: reconcile Firestore with Stripe's lifecycle events."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import stripe

from payrelay.billing.stripe_client import StripeGateway
from payrelay.ledger import SERVER_TIMESTAMP, FirestoreLedger

logger = logging.getLogger(__name__)

EventHandler = Callable[[FirestoreLedger, stripe.Event], Awaitable[None]]


def _minor_to_major(amount: int | None) -> float:
    """Convert a Stripe amount in the smallest currency unit (cents) to units."""
    return (amount or 0) / 100


async def _find_user_for_customer(
    ledger: FirestoreLedger, customer_id: str | None
) -> str | None:
    """First user linked to ``customer_id``; collisions are logged, not resolved."""
    if not customer_id:
        return None
    user_ids = await ledger.find_user_ids_by_customer(customer_id)
    if not user_ids:
        return None
    if len(user_ids) > 1:
        logger.warning(
            "Stripe customer %s is linked to several users, updating %s",
            customer_id,
            user_ids[0],
        )
    return user_ids[0]


async def handle_invoice_payment_succeeded(
    ledger: FirestoreLedger, event: stripe.Event
) -> None:
    """Handle invoice.payment_succeeded: mark active and record the payment."""
    invoice = event.data.object
    customer_id = getattr(invoice, "customer", None)

    user_id = await _find_user_for_customer(ledger, customer_id)
    if user_id is None:
        logger.warning(
            "No user found for Stripe customer %s (invoice %s)",
            customer_id,
            invoice.id,
        )
        return

    await ledger.append_payment_history(
        user_id,
        entry={
            "date": datetime.now(timezone.utc).isoformat(),
            "amount": _minor_to_major(getattr(invoice, "amount_paid", None)),
            "invoiceId": invoice.id,
        },
        fields={
            "subscriptionStatus": "active",
            "lastPayment": SERVER_TIMESTAMP,
        },
    )
    logger.info("Invoice %s paid: user %s marked active", invoice.id, user_id)


async def handle_invoice_payment_failed(
    ledger: FirestoreLedger, event: stripe.Event
) -> None:
    """Handle invoice.payment_failed: logged only, nothing is written."""
    invoice = event.data.object
    # TODO: notify the user once an email/push channel exists.
    logger.info(
        "Payment failed for customer %s (invoice %s)",
        getattr(invoice, "customer", None),
        invoice.id,
    )


async def handle_subscription_deleted(
    ledger: FirestoreLedger, event: stripe.Event
) -> None:
    """Handle customer.subscription.deleted: the period ended, mark cancelled."""
    stripe_sub = event.data.object
    customer_id = getattr(stripe_sub, "customer", None)

    user_id = await _find_user_for_customer(ledger, customer_id)
    if user_id is None:
        logger.warning(
            "No user found for Stripe customer %s (subscription %s deleted)",
            customer_id,
            stripe_sub.id,
        )
        return

    await ledger.update_user(
        user_id,
        {
            "subscriptionStatus": "cancelled",
            "subscriptionEndedAt": SERVER_TIMESTAMP,
        },
    )
    logger.info("Subscription %s deleted: user %s marked cancelled", stripe_sub.id, user_id)


# Map event types to handler functions
EVENT_HANDLERS: dict[str, EventHandler] = {
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.deleted": handle_subscription_deleted,
}


class WebhookReconciler:
    """Authenticate an inbound Stripe event and apply it to Firestore.

    Errors propagate to the caller, which answers with a 4xx so that Stripe
    redelivers. An unknown event type or an unmatched customer is not an error.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        ledger: FirestoreLedger,
        dedup_enabled: bool = False,
        handlers: dict[str, EventHandler] | None = None,
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.dedup_enabled = dedup_enabled
        self.handlers = EVENT_HANDLERS if handlers is None else handlers

    async def handle(self, payload: bytes, sig_header: str | None) -> stripe.Event:
        event = self.gateway.construct_event(payload, sig_header)
        event_type = getattr(event, "type", None)
        event_id = getattr(event, "id", None)
        logger.info("Webhook event: %s (id=%s)", event_type, event_id)

        handler = self.handlers.get(event_type)
        if handler is None:
            logger.debug("Unhandled webhook event type: %s", event_type)
            return event

        claimed = False
        if self.dedup_enabled and event_id:
            if not await self.ledger.claim_event(event_id, event_type):
                return event
            claimed = True

        try:
            await handler(self.ledger, event)
        except Exception:
            # Let Stripe's redelivery run the handler again.
            if claimed:
                await self.ledger.release_event(event_id)
            raise
        return event
