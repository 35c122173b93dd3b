"""Domain exceptions raised by LinkDesk services.

Each carries the HTTP status the web layer should answer with; the
application exception handler in ``linkdesk.web.app`` does the mapping.
"""

from __future__ import annotations


class LinkDeskError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(LinkDeskError):
    status_code = 404


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__("Order not found", details={"orderId": str(order_id)})


class ValidationError(LinkDeskError):
    status_code = 400


class OrderStateError(ValidationError):
    """Order is not in a status that allows the requested transition."""


class EmptyOrderError(ValidationError):
    def __init__(self, order_id):
        super().__init__(
            "Order has no line items to confirm", details={"orderId": str(order_id)}
        )


class PermissionDeniedError(LinkDeskError):
    status_code = 403


class ConflictError(LinkDeskError):
    status_code = 409


class ShareLinkNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Share link not found")


class ShareLinkExpiredError(LinkDeskError):
    status_code = 410

    def __init__(self):
        super().__init__("Share link has expired")


class EnrichmentError(LinkDeskError):
    """Target page keyword/description generation failed."""

    status_code = 502


class MigrationError(LinkDeskError):
    pass
