"""Async Stripe API wrapper for the payment relay."""

import json
import logging

import stripe
from stripe import StripeClient

from payrelay.config import Settings

logger = logging.getLogger(__name__)


def build_stripe_client(secret_key: str) -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        secret_key,
        http_client=stripe.HTTPXClient(),
    )


def _user_metadata(user_id: str) -> dict[str, str]:
    return {"userId": user_id, "firebaseUid": user_id}


class StripeGateway:
    """The subset of the Stripe API the relay drives.

    One instance is built at startup and shared by the orchestrator and the
    webhook reconciler.
    """

    def __init__(self, client: StripeClient, webhook_secret: str = "") -> None:
        self._client = client
        self._webhook_secret = webhook_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            build_stripe_client(settings.stripe_secret_key),
            webhook_secret=settings.stripe_webhook_secret,
        )

    @property
    def verifies_signatures(self) -> bool:
        return bool(self._webhook_secret)

    # --- Customers ---

    async def retrieve_customer(self, customer_id: str) -> stripe.Customer:
        """Retrieve a Stripe customer by ID."""
        return await self._client.v1.customers.retrieve_async(customer_id)

    async def create_customer(
        self,
        email: str | None,
        name: str | None,
        payment_method_id: str,
        user_id: str,
    ) -> stripe.Customer:
        """Create a Stripe customer linked to a user record."""
        logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
        customer = await self._client.v1.customers.create_async(
            params={
                "email": email,
                "name": name,
                "payment_method": payment_method_id,
                "metadata": _user_metadata(user_id),
            }
        )
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer

    async def set_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> stripe.Customer:
        """Make the payment method the customer's default for invoices."""
        return await self._client.v1.customers.update_async(
            customer_id,
            params={"invoice_settings": {"default_payment_method": payment_method_id}},
        )

    # --- Payment methods ---

    async def attach_payment_method(
        self, payment_method_id: str, customer_id: str
    ) -> stripe.PaymentMethod:
        return await self._client.v1.payment_methods.attach_async(
            payment_method_id,
            params={"customer": customer_id},
        )

    async def retrieve_payment_method(
        self, payment_method_id: str
    ) -> stripe.PaymentMethod:
        return await self._client.v1.payment_methods.retrieve_async(payment_method_id)

    async def list_card_payment_methods(
        self, customer_id: str
    ) -> list[stripe.PaymentMethod]:
        """List a customer's card payment methods, in Stripe's order."""
        result = await self._client.v1.payment_methods.list_async(
            params={"customer": customer_id, "type": "card"}
        )
        return list(result.data)

    # --- Subscriptions ---

    async def create_subscription(
        self, customer_id: str, price_id: str, user_id: str
    ) -> stripe.Subscription:
        """Create an incomplete subscription whose first invoice the client confirms.

        Since Stripe API 2025-03-31 (basil) invoices no longer carry
        ``payment_intent``; the client secret is on the expandable
        ``confirmation_secret`` instead.
        """
        logger.info(
            "Creating subscription for customer %s, price %s",
            customer_id,
            price_id,
        )
        return await self._client.v1.subscriptions.create_async(
            params={
                "customer": customer_id,
                "items": [{"price": price_id}],
                "payment_behavior": "default_incomplete",
                "expand": ["latest_invoice.confirmation_secret"],
                "metadata": _user_metadata(user_id),
            }
        )

    async def cancel_at_period_end(self, subscription_id: str) -> stripe.Subscription:
        """Flag a subscription to end when the current period runs out."""
        logger.info("Scheduling cancellation of subscription %s", subscription_id)
        return await self._client.v1.subscriptions.update_async(
            subscription_id,
            params={"cancel_at_period_end": True},
        )

    # --- Webhooks ---

    def construct_event(self, payload: bytes, sig_header: str | None) -> stripe.Event:
        """Verify and construct a Stripe webhook event (synchronous).

        Without a configured signing secret the payload is parsed as plain
        JSON; there is no authenticity guarantee in that mode.
        """
        if self._webhook_secret:
            return self._client.construct_event(
                payload, sig_header or "", self._webhook_secret
            )

        logger.warning("Webhook signing secret not configured, skipping verification")
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Webhook payload must be a JSON object")
        return stripe.Event.construct_from(data, None)
