"""Event ticketing backend: ticket inventory, purchases and payment settlement."""
from ticketing.app import create_app

__all__ = ["create_app"]
