"""Authoritative per-ticket availability.

Request handlers run concurrently and share nothing in memory, so every
decrement is a single guarded ``find_one_and_update``: the filter only matches
while enough tickets remain, and MongoDB applies the match and the ``$inc`` to
the document atomically. Two buyers racing for the last seat cannot both match.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.collection import Collection

from ticketing.errors import iso_now

logger = logging.getLogger("ticketing.inventory")


@dataclass(frozen=True)
class Ticket:
    id: ObjectId
    event_id: ObjectId
    organizer_id: ObjectId
    ticket_type: str
    price: float
    tickets_available: int

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Ticket":
        return cls(
            id=doc["_id"],
            event_id=doc["event_id"],
            organizer_id=doc["organizer_id"],
            ticket_type=doc.get("ticket_type", ""),
            price=float(doc.get("price", 0.0)),
            tickets_available=int(doc.get("tickets_available", 0)),
        )


@dataclass(frozen=True)
class Reserved:
    ticket: Ticket


@dataclass(frozen=True)
class InsufficientInventory:
    ticket_id: ObjectId
    requested: int
    available: int


@dataclass(frozen=True)
class TicketNotFound:
    ticket_id: ObjectId


ReserveResult = Union[Reserved, InsufficientInventory, TicketNotFound]


class InvalidQuantity(ValueError):
    pass


def check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(f"quantity must be a positive integer, got {quantity!r}")
    return quantity


class InventoryLedger:
    def __init__(self, tickets: Collection) -> None:
        self._tickets = tickets

    def get_ticket(self, ticket_id: ObjectId) -> Optional[Ticket]:
        doc = self._tickets.find_one({"_id": ticket_id})
        return Ticket.from_doc(doc) if doc else None

    def reserve(self, ticket_id: ObjectId, quantity: int) -> ReserveResult:
        """Take ``quantity`` tickets if that many remain; otherwise change nothing."""
        check_quantity(quantity)
        updated = self._tickets.find_one_and_update(
            {"_id": ticket_id, "tickets_available": {"$gte": quantity}},
            {"$inc": {"tickets_available": -quantity}, "$set": {"updated_at": iso_now()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return Reserved(Ticket.from_doc(updated))

        current = self._tickets.find_one({"_id": ticket_id}, {"tickets_available": 1})
        if current is None:
            return TicketNotFound(ticket_id)
        available = int(current.get("tickets_available", 0))
        logger.info("Reservation refused for ticket %s: requested=%d available=%d",
                    ticket_id, quantity, available)
        return InsufficientInventory(ticket_id, quantity, available)

    def release(self, ticket_id: ObjectId, quantity: int) -> None:
        """Give back tickets taken by ``reserve`` after a later step failed."""
        check_quantity(quantity)
        res = self._tickets.update_one(
            {"_id": ticket_id},
            {"$inc": {"tickets_available": quantity}, "$set": {"updated_at": iso_now()}},
        )
        if res.matched_count == 0:
            logger.warning("Release of %d for ticket %s matched nothing (deleted?)", quantity, ticket_id)
        else:
            logger.info("Released %d tickets back to %s", quantity, ticket_id)
