"""Session principal and role guards (Flask-Login).

Sessions are issued elsewhere; this side only loads the signed-in user's id and
role from the ``users`` collection and enforces who may call what.
"""
from __future__ import annotations

import functools
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from flask import Flask, current_app, jsonify
from flask_login import LoginManager, UserMixin, current_user

from ticketing.errors import forbidden

ADMIN = "ADMIN"
USER = "USER"

login_manager = LoginManager()


class Principal(UserMixin):
    def __init__(self, doc: Dict[str, Any]):
        self.doc = doc
        self.id = str(doc["_id"])
        self.role = doc.get("role", USER)

    @property
    def oid(self) -> ObjectId:
        return ObjectId(self.id)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


@login_manager.user_loader
def load_user(user_id: str) -> Optional[Principal]:
    users = current_app.extensions["ticketing"].db["users"]
    try:
        doc = users.find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None
    return Principal(doc) if doc else None


@login_manager.unauthorized_handler
def unauthorized():
    # JSON only
    return jsonify({"status": False, "message": "unauthorized access", "code": "unauthorized"}), 401


def init_auth(app: Flask, session_protection: str) -> None:
    login_manager.init_app(app)
    login_manager.session_protection = session_protection
    app.config["SESSION_PROTECTION"] = session_protection


def require_roles(*roles: str):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if current_user.role not in roles:
                raise forbidden("you are not authorized")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def current_principal() -> Principal:
    return current_user._get_current_object()
