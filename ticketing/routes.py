"""HTTP routes. Parsing and status mapping only; the services do the work."""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app
from flask_login import login_required

from ticketing.auth import ADMIN, current_principal, require_roles
from ticketing.errors import (ApiError, conflict, ok, require_json, require_str, safe_float, safe_int,
                              to_oid)
from ticketing.payments import DuplicateSignature, PaymentGatewayError, SignatureMismatch
from ticketing.purchases import Rejected
from ticketing.serializers import public_payment, public_ticket

logger = logging.getLogger("ticketing.routes")

api = Blueprint("api", __name__)


def services():
    return current_app.extensions["ticketing"]


@api.get("/health")
def health():
    return ok("up")


# -------------------------
# Tickets
# -------------------------
@api.post("/tickets/<event_id>")
@require_roles(ADMIN)
def create_ticket(event_id: str):
    data = require_json()
    ticket_type = require_str(data, "ticketType")
    price = safe_float(data.get("price"), "price", min_value=0.0)
    available = safe_int(data.get("ticketsAvailable"), "ticketsAvailable", min_value=0)
    eid = to_oid(event_id, "event id")

    ticket = services().catalog.create(current_principal(), eid, ticket_type, price, available)
    return ok("ticket created successfully", {"ticket": public_ticket(ticket)}, 201)


@api.put("/tickets/<ticket_id>")
@require_roles(ADMIN)
def update_ticket(ticket_id: str):
    data = require_json()
    tid = to_oid(ticket_id, "ticket id")

    updates: Dict[str, Any] = {}
    if "ticketType" in data:
        updates["ticket_type"] = require_str(data, "ticketType")
    if "price" in data:
        updates["price"] = safe_float(data.get("price"), "price", min_value=0.0)
    if "ticketsAvailable" in data:
        updates["tickets_available"] = safe_int(data.get("ticketsAvailable"), "ticketsAvailable", min_value=0)
    if not updates:
        raise ApiError("nothing to update", 400, "validation_error")

    ticket = services().catalog.update(current_principal(), tid, updates)
    return ok("ticket updated successfully", {"ticket": public_ticket(ticket)})


@api.delete("/tickets/<ticket_id>")
@require_roles(ADMIN)
def delete_ticket(ticket_id: str):
    tid = to_oid(ticket_id, "ticket id")
    services().catalog.delete(current_principal(), tid)
    return ok("tickets deleted successfully")


@api.get("/tickets/event/<event_id>")
@login_required
def list_event_tickets(event_id: str):
    eid = to_oid(event_id, "event id")
    return ok("successful", {"tickets": services().catalog.list_for_event(eid)})


@api.get("/tickets/<ticket_id>")
@login_required
def get_ticket(ticket_id: str):
    tid = to_oid(ticket_id, "ticket id")
    return ok("successful", {"ticket": services().catalog.get(tid)})


# -------------------------
# Purchases
# -------------------------
@api.post("/purchase/<ticket_id>")
@login_required
def purchase(ticket_id: str):
    data = require_json()
    ticket_type = require_str(data, "ticketType")
    qty = safe_int(data.get("ticketsQuantity"), "ticketsQuantity", min_value=1)
    tid = to_oid(ticket_id, "ticket id")

    outcome = services().purchases.purchase(current_principal(), tid, ticket_type, qty)
    if isinstance(outcome, Rejected):
        raise ApiError(outcome.message, outcome.status, outcome.reason.code)

    record = outcome.record
    return ok(
        "purchase successful",
        {
            "data": {
                "id": str(record.id),
                "ticketType": record.ticket_type,
                "quantity": record.quantity,
                "price": record.total_price,
            }
        },
        201,
    )


@api.get("/purchases")
@login_required
def my_purchases():
    return ok("successful", {"tickets": services().purchases.list_for_user(current_principal().id)})


@api.get("/purchases/<purchase_id>")
@login_required
def get_purchase(purchase_id: str):
    pid = to_oid(purchase_id, "purchase id")
    return ok("successful", {"ticket": services().purchases.get(current_principal(), pid)})


# -------------------------
# Payment
# -------------------------
@api.post("/payment/checkout/<purchase_id>")
@login_required
def checkout(purchase_id: str):
    pid = to_oid(purchase_id, "purchase id")
    try:
        order = services().payments.checkout(current_principal(), pid)
    except PaymentGatewayError:
        logger.exception("Checkout failed for purchase %s", purchase_id)
        raise ApiError("payment gateway unavailable, try again later", 502, "payment_gateway_error")
    return ok("order created", {"order": order})


@api.get("/payment/key")
@login_required
def payment_key():
    return ok("successful", {"key": services().payments.key_id})


@api.post("/payment/verify")
@login_required
def verify_payment():
    data = require_json()
    payment_id = require_str(data, "razorpay_payment_id")
    order_id = require_str(data, "razorpay_order_id")
    signature = require_str(data, "razorpay_signature")

    result = services().payments.settle(current_principal(), order_id, payment_id, signature)
    if isinstance(result, SignatureMismatch):
        raise ApiError("payment failed", 400, "signature_mismatch")
    if isinstance(result, DuplicateSignature):
        raise conflict("payment already recorded")
    return ok("payment successful", {"payment": public_payment(result)})
