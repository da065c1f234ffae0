"""Tests for FirestoreLedger against a mocked Firestore AsyncClient."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from payrelay.ledger import PROCESSED_EVENTS, USERS, FirestoreLedger


@pytest.fixture
def db() -> MagicMock:
    return MagicMock()


@pytest.fixture
def firestore_ledger(db) -> FirestoreLedger:
    return FirestoreLedger(db)


def _doc(db: MagicMock) -> MagicMock:
    return db.collection.return_value.document.return_value


class TestUserRecord:
    async def test_get_customer_id(self, firestore_ledger, db):
        _doc(db).get = AsyncMock(
            return_value=SimpleNamespace(exists=True, to_dict=lambda: {"stripeCustomerId": "cus_1"})
        )

        assert await firestore_ledger.get_customer_id("u1") == "cus_1"
        db.collection.assert_called_with(USERS)
        db.collection.return_value.document.assert_called_with("u1")

    async def test_get_customer_id_missing_user(self, firestore_ledger, db):
        _doc(db).get = AsyncMock(return_value=SimpleNamespace(exists=False, to_dict=lambda: None))

        assert await firestore_ledger.get_customer_id("u1") is None

    async def test_update_user_merges(self, firestore_ledger, db):
        _doc(db).set = AsyncMock()

        await firestore_ledger.update_user("u1", {"subscriptionStatus": "active"})

        _doc(db).set.assert_awaited_once_with({"subscriptionStatus": "active"}, merge=True)

    async def test_append_payment_history_uses_array_union(self, firestore_ledger, db):
        _doc(db).set = AsyncMock()
        entry = {"date": "2026-01-01T00:00:00+00:00", "amount": 9.99, "invoiceId": "in_1"}

        await firestore_ledger.append_payment_history(
            "u1", entry, {"subscriptionStatus": "active"}
        )

        (data,), kwargs = _doc(db).set.await_args
        assert kwargs == {"merge": True}
        assert data["subscriptionStatus"] == "active"
        assert isinstance(data["paymentHistory"], firestore.ArrayUnion)


class TestQueries:
    async def test_find_user_ids_by_customer(self, firestore_ledger, db):
        query = db.collection.return_value.where.return_value.limit.return_value
        query.get = AsyncMock(return_value=[SimpleNamespace(id="u1"), SimpleNamespace(id="u2")])

        assert await firestore_ledger.find_user_ids_by_customer("cus_1") == ["u1", "u2"]
        db.collection.return_value.where.return_value.limit.assert_called_once_with(2)


class TestAppendOnlyCollections:
    async def test_add_payment_log(self, firestore_ledger, db):
        db.collection.return_value.add = AsyncMock(
            return_value=(None, SimpleNamespace(id="log_1"))
        )

        assert await firestore_ledger.add_payment_log({"amount": 9.99}) == "log_1"

    async def test_add_payment_method_goes_to_subcollection(self, firestore_ledger, db):
        sub = _doc(db).collection.return_value
        sub.add = AsyncMock(return_value=(None, SimpleNamespace(id="pmdoc_1")))

        assert await firestore_ledger.add_payment_method("u1", {"last4": "4242"}) == "pmdoc_1"
        _doc(db).collection.assert_called_once_with("payment_methods")


class TestEventClaims:
    async def test_first_claim_succeeds(self, firestore_ledger, db):
        _doc(db).create = AsyncMock()

        assert await firestore_ledger.claim_event("evt_1", "invoice.payment_succeeded") is True
        db.collection.assert_called_with(PROCESSED_EVENTS)

    async def test_repeat_claim_fails(self, firestore_ledger, db):
        _doc(db).create = AsyncMock(side_effect=AlreadyExists("exists"))

        assert await firestore_ledger.claim_event("evt_1", "invoice.payment_succeeded") is False

    async def test_release_deletes_claim(self, firestore_ledger, db):
        _doc(db).delete = AsyncMock()

        await firestore_ledger.release_event("evt_1")

        _doc(db).delete.assert_awaited_once_with()
