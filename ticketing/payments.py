"""Razorpay settlement: order creation, signature verification, payment records.

Verification is local and deterministic: Razorpay signs ``order_id|payment_id``
with the account's key secret (HMAC-SHA256, hex). A mismatch is final. A
signature that has already been recorded is a conflict, not a second payment.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx
from bson import ObjectId
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ticketing.auth import Principal
from ticketing.errors import ApiError, forbidden, iso_now, not_found
from ticketing.purchases import PAYMENT_PAID, PurchaseCoordinator

logger = logging.getLogger("ticketing.payments")


class PaymentGatewayError(Exception):
    pass


class RazorpayClient:
    """Just enough of the Razorpay Orders API."""

    def __init__(self, key_id: str, key_secret: str, base_url: str = "https://api.razorpay.com/v1",
                 timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.key_id = key_id
        self._key_secret = key_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def create_order(self, amount: int, currency: str, receipt: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"amount": amount, "currency": currency}
        if receipt:
            payload["receipt"] = receipt
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport,
                              auth=(self.key_id, self._key_secret)) as client:
                resp = client.post(f"{self._base_url}/orders", json=payload)
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"payment gateway unreachable: {exc}") from exc
        if resp.status_code >= 400:
            logger.warning("Razorpay order creation failed: status=%s body=%s", resp.status_code, resp.text)
            raise PaymentGatewayError(f"payment gateway rejected order ({resp.status_code})")
        return resp.json()


@dataclass(frozen=True)
class PaymentRecord:
    id: ObjectId
    user_id: ObjectId
    payment_id: str
    order_id: str
    signature: str
    created_at: str


@dataclass(frozen=True)
class Verified:
    order_id: str
    payment_id: str


@dataclass(frozen=True)
class SignatureMismatch:
    order_id: str


@dataclass(frozen=True)
class DuplicateSignature:
    signature: str


SettleResult = Union[PaymentRecord, SignatureMismatch, DuplicateSignature]


def sign(order_id: str, payment_id: str, secret: str) -> str:
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class PaymentSettlement:
    def __init__(self, processor: RazorpayClient, key_secret: str, payments: Collection,
                 purchases: PurchaseCoordinator, currency: str = "INR") -> None:
        self._processor = processor
        self._key_secret = key_secret
        self._payments = payments
        self._purchases = purchases
        self.currency = currency

    @property
    def key_id(self) -> str:
        return self._processor.key_id

    def create_order(self, amount: int, currency: str, receipt: Optional[str] = None) -> Dict[str, Any]:
        return self._processor.create_order(amount, currency, receipt)

    def checkout(self, principal: Principal, purchase_id: ObjectId) -> Dict[str, Any]:
        """Open a processor order for a purchase and remember its id on the record."""
        record = self._purchases.find_record(purchase_id)
        if record is None:
            raise not_found("purchased ticket not found")
        if str(record.user_id) != principal.id:
            raise forbidden("you are not authorized to pay for this purchase")
        if record.payment_status == PAYMENT_PAID:
            raise ApiError("purchase is already paid", 409, "conflict")

        # amounts are in the currency's smallest unit (paise)
        amount = int(round(record.total_price * 100))
        order = self.create_order(amount, self.currency, receipt=str(record.id))
        self._purchases.attach_order(record.id, order["id"])
        logger.info("Order %s opened for purchase %s amount=%d", order["id"], record.id, amount)
        return order

    def verify(self, order_id: str, payment_id: str, signature: str) -> Union[Verified, SignatureMismatch]:
        expected = sign(order_id, payment_id, self._key_secret)
        if not hmac.compare_digest(expected, signature or ""):
            logger.warning("Signature mismatch for order %s", order_id)
            return SignatureMismatch(order_id)
        return Verified(order_id, payment_id)

    def record_payment(self, user_id: ObjectId, payment_id: str, order_id: str,
                       signature: str) -> Union[PaymentRecord, DuplicateSignature]:
        doc = {
            "user_id": user_id,
            "razorpay_payment_id": payment_id,
            "razorpay_order_id": order_id,
            "razorpay_signature": signature,
            "created_at": iso_now(),
        }
        try:
            res = self._payments.insert_one(doc)
        except DuplicateKeyError:
            logger.warning("Duplicate payment submission for order %s", order_id)
            # an earlier attempt may have stored the payment but failed to mark the purchase
            self._mark_paid(payment_id, order_id)
            return DuplicateSignature(signature)

        self._mark_paid(payment_id, order_id)
        return PaymentRecord(
            id=res.inserted_id,
            user_id=user_id,
            payment_id=payment_id,
            order_id=order_id,
            signature=signature,
            created_at=doc["created_at"],
        )

    def _mark_paid(self, payment_id: str, order_id: str) -> None:
        try:
            paid = self._purchases.annotate_payment({"payment.order_ids": order_id}, status=PAYMENT_PAID)
        except PyMongoError:
            logger.exception("Payment %s stored but purchase for order %s not marked paid", payment_id, order_id)
            raise
        if paid is None:
            logger.warning("Payment %s recorded but no purchase holds order %s", payment_id, order_id)

    def settle(self, principal: Principal, order_id: str, payment_id: str, signature: str) -> SettleResult:
        verdict = self.verify(order_id, payment_id, signature)
        if isinstance(verdict, SignatureMismatch):
            return verdict
        return self.record_payment(principal.oid, payment_id, order_id, signature)
