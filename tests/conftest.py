"""Shared test configuration and fixtures.

Firestore is replaced by an in-memory ``FakeLedger`` with the same async
interface as ``payrelay.ledger.FirestoreLedger``; Stripe is replaced by a
``StripeGateway`` mock. The FastAPI app is exercised through httpx without
running its lifespan, so no real clients are ever built.
"""

from collections import defaultdict
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payrelay.api.deps import get_orchestrator, get_reconciler
from payrelay.billing.orchestrator import SubscriptionOrchestrator
from payrelay.billing.stripe_client import StripeGateway
from payrelay.billing.webhooks import WebhookReconciler
from payrelay.config import Settings
from payrelay.main import app


class FakeLedger:
    """Dict-backed stand-in for FirestoreLedger that counts mutations."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.payment_methods: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.payment_logs: list[dict[str, Any]] = []
        self.processed_events: dict[str, str] = {}
        self.mutations = 0

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        return dict(user) if user is not None else None

    async def get_customer_id(self, user_id: str) -> str | None:
        return (self.users.get(user_id) or {}).get("stripeCustomerId") or None

    async def update_user(self, user_id: str, fields: dict[str, Any]) -> None:
        self.mutations += 1
        self.users.setdefault(user_id, {}).update(fields)

    async def append_payment_history(
        self, user_id: str, entry: dict[str, Any], fields: dict[str, Any]
    ) -> None:
        self.mutations += 1
        user = self.users.setdefault(user_id, {})
        user.update(fields)
        user.setdefault("paymentHistory", []).append(entry)

    async def find_user_ids_by_customer(
        self, customer_id: str, limit: int = 2
    ) -> list[str]:
        matches = [
            user_id
            for user_id, data in self.users.items()
            if data.get("stripeCustomerId") == customer_id
        ]
        return matches[:limit]

    async def add_payment_method(self, user_id: str, data: dict[str, Any]) -> str:
        self.mutations += 1
        self.payment_methods[user_id].append(data)
        return f"pmdoc_{len(self.payment_methods[user_id])}"

    async def add_payment_log(self, data: dict[str, Any]) -> str:
        self.mutations += 1
        self.payment_logs.append(data)
        return f"log_{len(self.payment_logs)}"

    async def claim_event(self, event_id: str, event_type: str) -> bool:
        if event_id in self.processed_events:
            return False
        self.mutations += 1
        self.processed_events[event_id] = event_type
        return True

    async def release_event(self, event_id: str) -> None:
        self.mutations += 1
        self.processed_events.pop(event_id, None)


class StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects)."""

    def __getitem__(self, key: str):
        return getattr(self, key)


def make_card(pm_id: str = "pm_1", brand: str = "visa", last4: str = "4242") -> StripeObj:
    return StripeObj(
        id=pm_id,
        card=StripeObj(brand=brand, last4=last4, exp_month=12, exp_year=2030),
    )


def make_subscription(
    sub_id: str = "sub_1",
    status: str = "incomplete",
    client_secret: str = "pi_1_secret_abc",
) -> StripeObj:
    return StripeObj(
        id=sub_id,
        status=status,
        latest_invoice=StripeObj(
            id="in_1",
            confirmation_secret=StripeObj(
                client_secret=client_secret, type="payment_intent"
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, stripe_webhook_secret="whsec_test_secret")


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def gateway() -> MagicMock:
    """StripeGateway mock; async methods become AsyncMocks via the spec."""
    gw = MagicMock(spec=StripeGateway)
    gw.retrieve_customer.return_value = StripeObj(id="cus_existing")
    gw.create_customer.return_value = StripeObj(id="cus_new")
    gw.attach_payment_method.return_value = make_card()
    gw.set_default_payment_method.return_value = StripeObj(id="cus_new")
    gw.create_subscription.return_value = make_subscription()
    gw.retrieve_payment_method.return_value = make_card()
    gw.list_card_payment_methods.return_value = [make_card()]
    gw.cancel_at_period_end.return_value = StripeObj(
        id="sub_1", cancel_at_period_end=True
    )
    return gw


@pytest.fixture
def orchestrator(gateway, ledger, test_settings) -> SubscriptionOrchestrator:
    return SubscriptionOrchestrator(gateway, ledger, test_settings)


@pytest.fixture
def reconciler(gateway, ledger) -> WebhookReconciler:
    return WebhookReconciler(gateway, ledger)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(orchestrator, reconciler) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the fake collaborators."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_reconciler] = lambda: reconciler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
