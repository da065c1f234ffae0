"""Subscription orchestrator: sequences Stripe calls and Firestore writes."""

import logging
from dataclasses import dataclass

import stripe

from payrelay.billing.stripe_client import StripeGateway
from payrelay.config import Settings
from payrelay.ledger import SERVER_TIMESTAMP, FirestoreLedger

logger = logging.getLogger(__name__)

_ALREADY_ATTACHED = "already been attached"


class SubscriptionOwnershipError(ValueError):
    """The subscription ID is not the one recorded for the user."""


class MissingClientSecretError(RuntimeError):
    """Stripe returned a subscription without a confirmable invoice."""


@dataclass(frozen=True)
class SubscriptionResult:
    subscription_id: str
    customer_id: str
    client_secret: str
    status: str


@dataclass(frozen=True)
class CardSummary:
    id: str
    brand: str | None
    last4: str | None
    exp_month: int | None
    exp_year: int | None


def _extract_client_secret(subscription: stripe.Subscription) -> str:
    """Client secret of the subscription's first invoice.

    Requires ``latest_invoice.confirmation_secret`` to have been expanded.
    """
    invoice = getattr(subscription, "latest_invoice", None)
    confirmation = getattr(invoice, "confirmation_secret", None)
    secret = getattr(confirmation, "client_secret", None)
    if not secret:
        raise MissingClientSecretError(
            f"Subscription {subscription.id} has no invoice payment to confirm"
        )
    return secret


def _is_already_attached(error: stripe.StripeError) -> bool:
    message = getattr(error, "user_message", None) or str(error)
    return _ALREADY_ATTACHED in message


def _card_summary(payment_method: stripe.PaymentMethod) -> CardSummary:
    card = getattr(payment_method, "card", None)
    return CardSummary(
        id=payment_method.id,
        brand=getattr(card, "brand", None),
        last4=getattr(card, "last4", None),
        exp_month=getattr(card, "exp_month", None),
        exp_year=getattr(card, "exp_year", None),
    )


class SubscriptionOrchestrator:
    """Create and cancel subscriptions, list saved cards."""

    def __init__(
        self, gateway: StripeGateway, ledger: FirestoreLedger, settings: Settings
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.settings = settings

    async def _resolve_customer(
        self,
        user_id: str,
        payment_method_id: str,
        user_email: str | None,
        user_name: str | None,
    ) -> str:
        """Reuse the stored Stripe customer if Stripe still knows it, else create one."""
        existing_id = await self.ledger.get_customer_id(user_id)
        if existing_id:
            try:
                customer = await self.gateway.retrieve_customer(existing_id)
            except stripe.StripeError as e:
                logger.info("Customer %s not retrievable (%s), creating new", existing_id, e)
            else:
                if not getattr(customer, "deleted", False):
                    logger.info("Found existing customer %s", customer.id)
                    return customer.id
                logger.info("Customer %s was deleted, creating new", existing_id)

        customer = await self.gateway.create_customer(
            email=user_email,
            name=user_name,
            payment_method_id=payment_method_id,
            user_id=user_id,
        )
        # Progress marker: a retried request reuses this customer.
        await self.ledger.update_user(user_id, {"stripeCustomerId": customer.id})
        return customer.id

    async def _attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        try:
            await self.gateway.attach_payment_method(payment_method_id, customer_id)
        except stripe.InvalidRequestError as e:
            if not _is_already_attached(e):
                raise
            logger.info("Payment method %s already attached to %s", payment_method_id, customer_id)
        else:
            logger.info("Payment method %s attached to %s", payment_method_id, customer_id)

    async def _save_card(self, user_id: str, payment_method_id: str) -> None:
        payment_method = await self.gateway.retrieve_payment_method(payment_method_id)
        card = _card_summary(payment_method)
        await self.ledger.add_payment_method(
            user_id,
            {
                "paymentMethodId": payment_method_id,
                "brand": card.brand,
                "last4": card.last4,
                "expMonth": card.exp_month,
                "expYear": card.exp_year,
                "isDefault": True,
                "createdAt": SERVER_TIMESTAMP,
            },
        )

    async def create_subscription(
        self,
        user_id: str,
        payment_method_id: str,
        price_id: str,
        user_email: str | None = None,
        user_name: str | None = None,
        save_card: bool = False,
    ) -> SubscriptionResult:
        """Subscribe a user to ``price_id`` using ``payment_method_id``.

        Steps are not transactional: a failure part-way leaves earlier
        side effects (customer, attached card) in place.
        """
        logger.info("Creating subscription for user %s", user_id)

        customer_id = await self._resolve_customer(
            user_id, payment_method_id, user_email, user_name
        )
        await self._attach_payment_method(payment_method_id, customer_id)
        await self.gateway.set_default_payment_method(customer_id, payment_method_id)

        subscription = await self.gateway.create_subscription(
            customer_id=customer_id, price_id=price_id, user_id=user_id
        )
        client_secret = _extract_client_secret(subscription)

        await self.ledger.update_user(
            user_id,
            {
                "stripeCustomerId": customer_id,
                "subscriptionId": subscription.id,
                "subscriptionStatus": subscription.status,
                "subscriptionUpdatedAt": SERVER_TIMESTAMP,
            },
        )

        if save_card:
            await self._save_card(user_id, payment_method_id)

        await self.ledger.add_payment_log(
            {
                "userId": user_id,
                "customerId": customer_id,
                "subscriptionId": subscription.id,
                "amount": self.settings.subscription_amount,
                "currency": self.settings.subscription_currency,
                "status": subscription.status,
                "timestamp": SERVER_TIMESTAMP,
            }
        )

        logger.info(
            "Subscription %s created for user %s (status=%s)",
            subscription.id,
            user_id,
            subscription.status,
        )
        return SubscriptionResult(
            subscription_id=subscription.id,
            customer_id=customer_id,
            client_secret=client_secret,
            status=subscription.status,
        )

    async def cancel_subscription(self, subscription_id: str, user_id: str) -> None:
        """Cancel at period end; the deletion webhook later marks it cancelled."""
        if self.settings.enforce_subscription_ownership:
            user = await self.ledger.get_user(user_id) or {}
            if user.get("subscriptionId") != subscription_id:
                logger.warning(
                    "User %s tried to cancel subscription %s it does not own",
                    user_id,
                    subscription_id,
                )
                raise SubscriptionOwnershipError(
                    "Subscription does not belong to this user"
                )

        await self.gateway.cancel_at_period_end(subscription_id)
        await self.ledger.update_user(
            user_id,
            {
                "subscriptionStatus": "canceling",
                "cancelAtPeriodEnd": True,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("Subscription %s for user %s set to cancel at period end", subscription_id, user_id)

    async def list_payment_methods(self, user_id: str) -> list[CardSummary] | None:
        """Cards on file at Stripe, or None when the user has no customer yet."""
        customer_id = await self.ledger.get_customer_id(user_id)
        if not customer_id:
            return None
        payment_methods = await self.gateway.list_card_payment_methods(customer_id)
        return [_card_summary(pm) for pm in payment_methods]
