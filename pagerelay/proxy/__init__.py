"""
HTTP surface: aiohttp app, handlers and the health document.
"""

from pagerelay.proxy.health import build_health_document
from pagerelay.proxy.server import create_app

__all__ = ["build_health_document", "create_app"]
