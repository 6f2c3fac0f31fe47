# rsvp_app/routers/__init__.py

from . import responses

__all__ = [
    "responses",
]
