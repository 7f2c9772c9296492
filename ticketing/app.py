"""Application factory.

Wires MongoDB, the Redis cache and the payment processor into the services the
routes use. Tests pass their own ``db``/``cache``/``processor``.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from flask import Flask, Response, jsonify, request
from pymongo.database import Database
from werkzeug.exceptions import HTTPException

from ticketing.auth import init_auth
from ticketing.cache import CacheStore, build_cache
from ticketing.config import Settings, configure_logging
from ticketing.db import connect, ensure_indexes
from ticketing.errors import ApiError, fail
from ticketing.inventory import InventoryLedger
from ticketing.payments import PaymentSettlement, RazorpayClient
from ticketing.purchases import PurchaseCoordinator
from ticketing.tickets import TicketCatalog

logger = logging.getLogger("ticketing")


@dataclass
class Services:
    settings: Settings
    db: Database
    cache: CacheStore
    ledger: InventoryLedger
    catalog: TicketCatalog
    purchases: PurchaseCoordinator
    payments: PaymentSettlement


def build_services(settings: Settings, db: Database, cache: CacheStore,
                   processor: RazorpayClient) -> Services:
    ledger = InventoryLedger(db["tickets"])
    purchases = PurchaseCoordinator(ledger, db["purchases"], cache)
    return Services(
        settings=settings,
        db=db,
        cache=cache,
        ledger=ledger,
        catalog=TicketCatalog(db["events"], db["tickets"], cache),
        purchases=purchases,
        payments=PaymentSettlement(
            processor,
            settings.razorpay_key_secret,
            db["payments"],
            purchases,
            currency=settings.payment_currency,
        ),
    )


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None,
               cache: Optional[CacheStore] = None,
               processor: Optional[RazorpayClient] = None) -> Flask:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if db is None:
        db = connect(settings.mongo_uri, settings.mongo_db)
    ensure_indexes(db)
    if cache is None:
        cache = build_cache(settings.redis_url, settings.cache_ttl_seconds)
    if processor is None:
        processor = RazorpayClient(settings.razorpay_key_id, settings.razorpay_key_secret,
                                   settings.razorpay_base_url)

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=settings.secret_key,
        SESSION_COOKIE_SECURE=settings.session_cookie_secure,
        SESSION_COOKIE_SAMESITE=settings.session_cookie_samesite,
        SESSION_COOKIE_HTTPONLY=True,
        TESTING=settings.testing,
    )
    app.extensions["ticketing"] = build_services(settings, db, cache, processor)
    init_auth(app, settings.session_protection)
    _register_hooks(app)
    _register_error_handlers(app)

    from ticketing.routes import api

    app.register_blueprint(api, url_prefix="/api/v1")
    return app


def _register_hooks(app: Flask) -> None:
    # Attach a request id for debugging/traceability.
    @app.before_request
    def attach_request_id():
        rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.environ["request_id"] = rid

    @app.after_request
    def add_security_headers(resp: Response):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["X-Request-Id"] = request.environ.get("request_id", "")
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        if err.status >= 500:
            logger.error("Request %s failed: %s", request.environ.get("request_id", ""), err.message)
        return fail(err)

    @app.errorhandler(404)
    def handle_404(_):
        return jsonify({"status": False, "message": f"This path {request.path} doesn't exist",
                        "code": "not_found"}), 404

    @app.errorhandler(405)
    def handle_405(_):
        return jsonify({"status": False, "message": "Method not allowed.", "code": "method_not_allowed"}), 405

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return jsonify({"status": False, "message": e.description, "code": e.name.lower().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e: Exception):
        rid = request.environ.get("request_id", "")
        logger.exception("Unhandled error (request_id=%s): %s", rid, e)
        return (
            jsonify(
                {
                    "status": False,
                    "message": "Something went wrong",
                    "code": "internal_error",
                    "request_id": rid,
                }
            ),
            500,
        )
