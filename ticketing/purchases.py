"""Purchase pipeline: validate, reserve, record, invalidate.

A purchase attempt moves VALIDATING -> RESERVING -> RECORDING -> COMMITTED.
Any stage may end in REJECTED. If RECORDING fails after the reservation went
through, the tickets are released again before the handler returns, so a
failed attempt leaves availability exactly where it started.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ticketing.auth import Principal
from ticketing.cache import CacheStore, purchase_key, purchases_key, ticket_key, tickets_key
from ticketing.errors import forbidden, iso_now, not_found
from ticketing.inventory import (InsufficientInventory, InventoryLedger, InvalidQuantity,
                                 Reserved, check_quantity)
from ticketing.serializers import public_purchase

logger = logging.getLogger("ticketing.purchases")

PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"


class Stage(enum.Enum):
    VALIDATING = "validating"
    RESERVING = "reserving"
    RECORDING = "recording"
    COMMITTED = "committed"
    REJECTED = "rejected"
    RELEASED = "released"


class Reason(enum.Enum):
    INVALID_INPUT = (400, "invalid_input")
    NOT_FOUND = (404, "not_found")
    INSUFFICIENT_INVENTORY = (400, "insufficient_inventory")
    PERSISTENCE_FAILURE = (500, "persistence_failure")

    @property
    def status(self) -> int:
        return self.value[0]

    @property
    def code(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class PurchaseRecord:
    id: ObjectId
    user_id: ObjectId
    event_id: ObjectId
    ticket_id: ObjectId
    ticket_type: str
    quantity: int
    unit_price: float
    total_price: float
    purchased_at: str
    payment_status: str = PAYMENT_PENDING
    order_id: Optional[str] = None
    order_ids: Tuple[str, ...] = ()

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "PurchaseRecord":
        payment = doc.get("payment") or {}
        return cls(
            id=doc["_id"],
            user_id=doc["user_id"],
            event_id=doc["event_id"],
            ticket_id=doc["ticket_id"],
            ticket_type=doc.get("ticket_type", ""),
            quantity=int(doc.get("quantity", 0)),
            unit_price=float(doc.get("unit_price", 0.0)),
            total_price=float(doc.get("total_price", 0.0)),
            purchased_at=doc.get("purchased_at", ""),
            payment_status=payment.get("status", PAYMENT_PENDING),
            order_id=payment.get("order_id"),
            order_ids=tuple(payment.get("order_ids") or ()),
        )


@dataclass(frozen=True)
class Committed:
    record: PurchaseRecord


@dataclass(frozen=True)
class Rejected:
    reason: Reason
    message: str
    stage: Stage

    @property
    def status(self) -> int:
        return self.reason.status


PurchaseOutcome = Union[Committed, Rejected]


class PurchaseCoordinator:
    def __init__(self, ledger: InventoryLedger, purchases: Collection, cache: CacheStore) -> None:
        self._ledger = ledger
        self._purchases = purchases
        self._cache = cache

    def purchase(self, principal: Principal, ticket_id: ObjectId, ticket_type: str,
                 quantity: int) -> PurchaseOutcome:
        stage = Stage.VALIDATING
        try:
            check_quantity(quantity)
        except InvalidQuantity:
            return self._reject(Reason.INVALID_INPUT, "ticketsQuantity must be a positive integer", stage)

        ticket = self._ledger.get_ticket(ticket_id)
        if ticket is None:
            return self._reject(Reason.NOT_FOUND, "no tickets found", stage)
        if ticket.ticket_type != ticket_type:
            return self._reject(Reason.INVALID_INPUT, "invalid ticket type", stage)
        # Early exit only; the guarded decrement below is what actually decides.
        if quantity > ticket.tickets_available:
            return self._reject(Reason.INSUFFICIENT_INVENTORY, "tickets not available", stage)

        stage = self._advance(stage, Stage.RESERVING, ticket_id)
        result = self._ledger.reserve(ticket_id, quantity)
        if isinstance(result, InsufficientInventory):
            return self._reject(Reason.INSUFFICIENT_INVENTORY, "tickets not available", stage)
        if not isinstance(result, Reserved):
            return self._reject(Reason.NOT_FOUND, "no tickets found", stage)
        reserved = result.ticket

        stage = self._advance(stage, Stage.RECORDING, ticket_id)
        unit_price = reserved.price
        doc = {
            "user_id": principal.oid,
            "event_id": reserved.event_id,
            "ticket_id": reserved.id,
            "ticket_type": reserved.ticket_type,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_price": round(unit_price * quantity, 2),
            "purchased_at": iso_now(),
            "payment": {"status": PAYMENT_PENDING, "order_id": None, "order_ids": []},
        }
        try:
            res = self._purchases.insert_one(doc)
        except PyMongoError:
            logger.exception("Failed to record purchase of %d x %s; releasing", quantity, ticket_id)
            self._compensate(ticket_id, quantity)
            # a read between reserve and release may have cached the reduced count
            self._cache.invalidate(tickets_key(reserved.event_id), ticket_key(reserved.id))
            return self._reject(Reason.PERSISTENCE_FAILURE, "purchase failed, try again later",
                                Stage.RELEASED)

        doc["_id"] = res.inserted_id
        self._cache.invalidate(
            tickets_key(reserved.event_id),
            ticket_key(reserved.id),
            purchases_key(principal.id),
        )
        self._advance(stage, Stage.COMMITTED, ticket_id)
        logger.info("Purchase %s committed: user=%s ticket=%s qty=%d remaining=%d",
                    res.inserted_id, principal.id, ticket_id, quantity, reserved.tickets_available)
        return Committed(PurchaseRecord.from_doc(doc))

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        def load() -> Optional[List[Dict[str, Any]]]:
            docs = self._purchases.find({"user_id": ObjectId(user_id)}).sort("purchased_at", -1)
            return [public_purchase(PurchaseRecord.from_doc(d)) for d in docs] or None

        purchases = self._cache.fetch(purchases_key(user_id), load)
        if not purchases:
            raise not_found("no tickets found")
        return purchases

    def get(self, principal: Principal, purchase_id: ObjectId) -> Dict[str, Any]:
        def load() -> Optional[Dict[str, Any]]:
            doc = self._purchases.find_one({"_id": purchase_id})
            return public_purchase(PurchaseRecord.from_doc(doc)) if doc else None

        purchase = self._cache.fetch(purchase_key(purchase_id), load)
        if purchase is None:
            raise not_found("no tickets found")
        if purchase["userId"] != principal.id:
            raise forbidden("you are not authorized to view this purchase")
        return purchase

    def find_record(self, purchase_id: ObjectId) -> Optional[PurchaseRecord]:
        doc = self._purchases.find_one({"_id": purchase_id})
        return PurchaseRecord.from_doc(doc) if doc else None

    def attach_order(self, purchase_id: ObjectId, order_id: str) -> Optional[PurchaseRecord]:
        """Remember a processor order opened for this purchase.

        Every order id is kept, so a payment against an earlier checkout of the
        same purchase still finds it.
        """
        return self._update_payment(
            {"_id": purchase_id},
            {"$set": {"payment.order_id": order_id}, "$addToSet": {"payment.order_ids": order_id}},
        )

    def annotate_payment(self, query: Dict[str, Any], **payment: Any) -> Optional[PurchaseRecord]:
        """Set fields of the payment annotation, the one mutable part of a record."""
        fields = {f"payment.{k}": v for k, v in payment.items()}
        return self._update_payment(query, {"$set": fields})

    def _update_payment(self, query: Dict[str, Any], update: Dict[str, Any]) -> Optional[PurchaseRecord]:
        doc = self._purchases.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        if doc is None:
            return None
        record = PurchaseRecord.from_doc(doc)
        self._cache.invalidate(purchase_key(record.id), purchases_key(record.user_id))
        return record

    def _compensate(self, ticket_id: ObjectId, quantity: int) -> None:
        try:
            self._ledger.release(ticket_id, quantity)
        except PyMongoError:
            logger.exception("Release of %d x %s failed; availability is short until corrected",
                             quantity, ticket_id)

    def _advance(self, current: Stage, nxt: Stage, ticket_id: ObjectId) -> Stage:
        logger.debug("purchase %s: %s -> %s", ticket_id, current.value, nxt.value)
        return nxt

    def _reject(self, reason: Reason, message: str, stage: Stage) -> Rejected:
        logger.info("Purchase rejected at %s: %s", stage.value, message)
        return Rejected(reason, message, stage)
