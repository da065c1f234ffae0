"""Firestore ledger: the relay's view of user records and payment documents.

Only individual fields of ``users/{userId}`` are ever written; the documents
themselves belong to the client application.
"""

import logging
from typing import Any

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore
from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger(__name__)

USERS = "users"
PAYMENT_METHODS = "payment_methods"
PAYMENT_LOGS = "payment_logs"
PROCESSED_EVENTS = "processed_webhook_events"

# Resolved by Firestore to the commit time of the write.
SERVER_TIMESTAMP = firestore.SERVER_TIMESTAMP


class FirestoreLedger:
    """Async Firestore access for user, payment-method, log and event documents."""

    def __init__(self, db: AsyncClient) -> None:
        self._db = db

    def _user(self, user_id: str):
        return self._db.collection(USERS).document(user_id)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        snapshot = await self._user(user_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def get_customer_id(self, user_id: str) -> str | None:
        """Stripe customer ID stored on the user record, if any."""
        data = await self.get_user(user_id)
        return (data or {}).get("stripeCustomerId") or None

    async def update_user(self, user_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into the user record, creating it if needed."""
        await self._user(user_id).set(fields, merge=True)

    async def append_payment_history(
        self, user_id: str, entry: dict[str, Any], fields: dict[str, Any]
    ) -> None:
        """Apply ``fields`` and append ``entry`` to ``paymentHistory`` in one write."""
        await self._user(user_id).set(
            {**fields, "paymentHistory": firestore.ArrayUnion([entry])},
            merge=True,
        )

    async def find_user_ids_by_customer(
        self, customer_id: str, limit: int = 2
    ) -> list[str]:
        """IDs of user records linked to a Stripe customer.

        Customer IDs are expected to be unique; the default limit of two is
        enough for the caller to notice a collision.
        """
        query = (
            self._db.collection(USERS)
            .where(filter=FieldFilter("stripeCustomerId", "==", customer_id))
            .limit(limit)
        )
        snapshots = await query.get()
        return [snapshot.id for snapshot in snapshots]

    async def add_payment_method(self, user_id: str, data: dict[str, Any]) -> str:
        _, ref = await self._user(user_id).collection(PAYMENT_METHODS).add(data)
        return ref.id

    async def add_payment_log(self, data: dict[str, Any]) -> str:
        _, ref = await self._db.collection(PAYMENT_LOGS).add(data)
        return ref.id

    async def claim_event(self, event_id: str, event_type: str) -> bool:
        """Record a webhook event as processed.

        Returns False when the event was already claimed by an earlier delivery.
        """
        ref = self._db.collection(PROCESSED_EVENTS).document(event_id)
        try:
            await ref.create({"type": event_type, "processedAt": SERVER_TIMESTAMP})
        except AlreadyExists:
            logger.info("Webhook event %s already processed", event_id)
            return False
        return True

    async def release_event(self, event_id: str) -> None:
        """Forget a claimed event so a redelivery is processed again."""
        await self._db.collection(PROCESSED_EVENTS).document(event_id).delete()
