"""Create the subscription product and its monthly price in Stripe test mode.

Run once:
    python -m payrelay.billing.scripts.create_stripe_price

Prints the price ID the client application sends as ``priceId``.
"""

import asyncio

from payrelay.billing.stripe_client import build_stripe_client
from payrelay.config import settings


async def main() -> None:
    if not settings.stripe_secret_key:
        print("ERROR: STRIPE_SECRET_KEY is not set in .env")
        return

    client = build_stripe_client(settings.stripe_secret_key)
    unit_amount = round(settings.subscription_amount * 100)

    product = await client.v1.products.create_async(
        params={
            "name": f"{settings.app_name} Membership",
            "description": "Monthly membership",
        }
    )
    price = await client.v1.prices.create_async(
        params={
            "product": product.id,
            "unit_amount": unit_amount,
            "currency": settings.subscription_currency,
            "recurring": {"interval": "month"},
        }
    )
    print(f"Created product: {product.name} ({product.id})")
    print(
        f"  Price: {settings.subscription_amount:.2f} "
        f"{settings.subscription_currency.upper()}/mo ({price.id})"
    )
    print(f"\nUse priceId={price.id} when calling /api/create-subscription")


if __name__ == "__main__":
    asyncio.run(main())
