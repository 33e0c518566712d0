"""HTTP and websocket surface for Parley."""

from .api import create_app

__all__ = ["create_app"]
