"""MongoDB connection and indexes."""
from __future__ import annotations

import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger("ticketing.db")


def connect(uri: str, db_name: str) -> Database:
    try:
        client = MongoClient(
            uri,
            serverSelectionTimeoutMS=3000,
            connectTimeoutMS=3000,
            socketTimeoutMS=5000,
            retryWrites=True,
        )
        # Verify connectivity early (will raise if unreachable)
        client.admin.command("ping")
    except Exception as e:
        logger.exception("MongoDB connection failed")
        raise RuntimeError(f"MongoDB connection failed: {e}") from e
    return client[db_name]


def ensure_indexes(db: Database) -> None:
    db["tickets"].create_index([("event_id", ASCENDING), ("ticket_type", ASCENDING)], unique=True)
    db["purchases"].create_index([("user_id", ASCENDING), ("purchased_at", DESCENDING)])
    db["purchases"].create_index([("payment.order_ids", ASCENDING)])
    for field in ("razorpay_payment_id", "razorpay_order_id", "razorpay_signature"):
        db["payments"].create_index([(field, ASCENDING)], unique=True)
