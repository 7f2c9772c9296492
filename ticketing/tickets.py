"""Organizer-side ticket management and the cached ticket read paths."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ticketing.auth import Principal
from ticketing.cache import CacheStore, ticket_key, tickets_key
from ticketing.errors import ApiError, conflict, forbidden, iso_now, not_found
from ticketing.inventory import Ticket
from ticketing.serializers import public_ticket

logger = logging.getLogger("ticketing.tickets")

EDITABLE_FIELDS = ("ticket_type", "price", "tickets_available")


class TicketCatalog:
    def __init__(self, events: Collection, tickets: Collection, cache: CacheStore) -> None:
        self._events = events
        self._tickets = tickets
        self._cache = cache

    def create(self, principal: Principal, event_id: ObjectId, ticket_type: str,
               price: float, tickets_available: int) -> Ticket:
        """Add a ticket type to an event the principal organizes.

        Events belong to the event service; only ``admin`` and ``events.active``
        are read here. An event without the flag counts as active.
        """
        event = self._events.find_one({"_id": event_id}, {"admin": 1, "events.active": 1})
        if not event:
            raise not_found("event not found")
        if not (event.get("events") or {}).get("active", True):
            raise ApiError("event is inactive", 400, "event_inactive")
        if str(event.get("admin")) != principal.id:
            raise forbidden("you are not authorized to create tickets")

        doc = {
            "event_id": event_id,
            "organizer_id": principal.oid,
            "ticket_type": ticket_type,
            "price": price,
            "tickets_available": tickets_available,
            "created_at": iso_now(),
            "updated_at": iso_now(),
        }
        try:
            res = self._tickets.insert_one(doc)
        except DuplicateKeyError:
            raise conflict(f"This ticket type {ticket_type} exists, please use a different type",
                           {"field": "ticketType"})
        self._cache.invalidate(tickets_key(event_id))
        doc["_id"] = res.inserted_id
        logger.info("Ticket %s (%s) created for event %s", res.inserted_id, ticket_type, event_id)
        return Ticket.from_doc(doc)

    def update(self, principal: Principal, ticket_id: ObjectId, updates: Dict[str, Any]) -> Ticket:
        existing = self._owned(principal, ticket_id, "update")
        fields = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
        if not fields:
            return existing

        fields["updated_at"] = iso_now()
        try:
            doc = self._tickets.find_one_and_update(
                {"_id": ticket_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise conflict(f"This ticket type {fields.get('ticket_type')} exists, please use a different type",
                           {"field": "ticketType"})
        if doc is None:
            raise not_found("no tickets found")
        self._cache.invalidate(tickets_key(existing.event_id), ticket_key(ticket_id))
        return Ticket.from_doc(doc)

    def delete(self, principal: Principal, ticket_id: ObjectId) -> None:
        existing = self._owned(principal, ticket_id, "delete")
        res = self._tickets.delete_one({"_id": ticket_id})
        if res.deleted_count == 0:
            raise not_found("no tickets found")
        self._cache.invalidate(tickets_key(existing.event_id), ticket_key(ticket_id))
        logger.info("Ticket %s deleted by %s", ticket_id, principal.id)

    def list_for_event(self, event_id: ObjectId) -> List[Dict[str, Any]]:
        def load() -> Optional[List[Dict[str, Any]]]:
            docs = list(self._tickets.find({"event_id": event_id}).sort("price", 1))
            return [public_ticket(Ticket.from_doc(d)) for d in docs] or None

        tickets = self._cache.fetch(tickets_key(event_id), load)
        if not tickets:
            raise not_found("no tickets found with this event")
        return tickets

    def get(self, ticket_id: ObjectId) -> Dict[str, Any]:
        def load() -> Optional[Dict[str, Any]]:
            doc = self._tickets.find_one({"_id": ticket_id})
            return public_ticket(Ticket.from_doc(doc)) if doc else None

        ticket = self._cache.fetch(ticket_key(ticket_id), load)
        if ticket is None:
            raise not_found("ticket not found")
        return ticket

    def _owned(self, principal: Principal, ticket_id: ObjectId, action: str) -> Ticket:
        doc = self._tickets.find_one({"_id": ticket_id})
        if not doc:
            raise not_found("no tickets found")
        ticket = Ticket.from_doc(doc)
        if str(ticket.organizer_id) != principal.id:
            raise forbidden(f"you are not authorized to {action} this ticket")
        return ticket
