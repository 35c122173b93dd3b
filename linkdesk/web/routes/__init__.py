"""LinkDesk API route modules.

Each module exports a ``router`` (APIRouter) included by ``linkdesk.web.app``.
"""

from linkdesk.web.routes import admin, health, orders, share, streams

__all__ = ["admin", "health", "orders", "share", "streams"]
