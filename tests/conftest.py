"""Pytest configuration and shared fixtures."""
import json
import threading

import fakeredis
import httpx
import mongomock
import pytest
from bson import ObjectId
from flask_login import FlaskLoginClient

from ticketing import create_app
from ticketing.auth import ADMIN, USER, Principal
from ticketing.cache import CacheStore
from ticketing.config import Settings
from ticketing.db import ensure_indexes
from ticketing.errors import iso_now
from ticketing.inventory import InventoryLedger
from ticketing.payments import PaymentSettlement, RazorpayClient
from ticketing.purchases import PurchaseCoordinator
from ticketing.tickets import TicketCatalog

KEY_ID = "rzp_test_key"
KEY_SECRET = "rzp_test_secret"


class SerializedCollection:
    """mongomock runs find-and-modify as a separate find and update; a MongoDB
    server applies both to the document atomically. Serialize writes so threaded
    tests see server semantics."""

    def __init__(self, collection):
        self._collection = collection
        self._lock = threading.Lock()

    def find_one_and_update(self, *args, **kwargs):
        with self._lock:
            return self._collection.find_one_and_update(*args, **kwargs)

    def update_one(self, *args, **kwargs):
        with self._lock:
            return self._collection.update_one(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["ticketing_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    yield client
    client.flushall()


@pytest.fixture
def cache(redis_client) -> CacheStore:
    return CacheStore(redis_client)


@pytest.fixture
def orders():
    """Requests the fake Razorpay endpoint received."""
    return []


@pytest.fixture
def processor(orders) -> RazorpayClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        orders.append({"url": str(request.url), "headers": dict(request.headers), "body": body})
        return httpx.Response(
            200,
            json={
                "id": f"order_{len(orders):04d}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body.get("receipt"),
                "status": "created",
            },
        )

    return RazorpayClient(KEY_ID, KEY_SECRET, transport=httpx.MockTransport(handler))


@pytest.fixture
def ledger(db) -> InventoryLedger:
    return InventoryLedger(db["tickets"])


@pytest.fixture
def catalog(db, cache) -> TicketCatalog:
    return TicketCatalog(db["events"], db["tickets"], cache)


@pytest.fixture
def coordinator(ledger, db, cache) -> PurchaseCoordinator:
    return PurchaseCoordinator(ledger, db["purchases"], cache)


@pytest.fixture
def settlement(processor, db, coordinator) -> PaymentSettlement:
    return PaymentSettlement(processor, KEY_SECRET, db["payments"], coordinator)


def _principal(db, role: str) -> Principal:
    doc = {"_id": ObjectId(), "role": role, "created_at": iso_now()}
    db["users"].insert_one(doc)
    return Principal(doc)


@pytest.fixture
def admin(db) -> Principal:
    return _principal(db, ADMIN)


@pytest.fixture
def other_admin(db) -> Principal:
    return _principal(db, ADMIN)


@pytest.fixture
def user(db) -> Principal:
    return _principal(db, USER)


@pytest.fixture
def other_user(db) -> Principal:
    return _principal(db, USER)


@pytest.fixture
def event_id(db, admin) -> ObjectId:
    return db["events"].insert_one(
        {"admin": admin.oid, "events": {"title": "Launch night", "active": True}}
    ).inserted_id


@pytest.fixture
def make_ticket(db, admin, event_id):
    def make(ticket_type: str = "VIP", price: float = 100.0, available: int = 5, event=None) -> ObjectId:
        return db["tickets"].insert_one(
            {
                "event_id": event or event_id,
                "organizer_id": admin.oid,
                "ticket_type": ticket_type,
                "price": price,
                "tickets_available": available,
                "created_at": iso_now(),
                "updated_at": iso_now(),
            }
        ).inserted_id

    return make


@pytest.fixture
def app(db, cache, processor):
    settings = Settings(
        redis_url="",
        session_protection="basic",
        secret_key="test-secret-key",
        razorpay_key_id=KEY_ID,
        razorpay_key_secret=KEY_SECRET,
        testing=True,
    )
    application = create_app(settings, db=db, cache=cache, processor=processor)
    application.test_client_class = FlaskLoginClient
    return application


@pytest.fixture
def client_for(app):
    def make(principal=None):
        if principal is None:
            return app.test_client()
        return app.test_client(user=principal)

    return make


@pytest.fixture
def serialized_ledger(db) -> InventoryLedger:
    return InventoryLedger(SerializedCollection(db["tickets"]))
