"""Public JSON shapes. Everything here must be JSON-safe, since it is also what
the cache stores."""
from __future__ import annotations

from typing import Any, Dict

from ticketing.inventory import Ticket


def public_ticket(t: Ticket) -> Dict[str, Any]:
    return {
        "id": str(t.id),
        "eventId": str(t.event_id),
        "createdBy": str(t.organizer_id),
        "type": t.ticket_type,
        "price": t.price,
        "ticketsAvailable": t.tickets_available,
    }


def public_purchase(p) -> Dict[str, Any]:
    return {
        "id": str(p.id),
        "userId": str(p.user_id),
        "eventId": str(p.event_id),
        "ticketId": str(p.ticket_id),
        "ticketType": p.ticket_type,
        "ticketsQuantity": p.quantity,
        "unitPrice": p.unit_price,
        "price": p.total_price,
        "purchasedAt": p.purchased_at,
        "paymentStatus": p.payment_status,
    }


def public_payment(p) -> Dict[str, Any]:
    return {
        "id": str(p.id),
        "userId": str(p.user_id),
        "razorpay_payment_id": p.payment_id,
        "razorpay_order_id": p.order_id,
        "createdAt": p.created_at,
    }
