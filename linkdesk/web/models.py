"""Request models for the LinkDesk web API.

Usage:
    from linkdesk.web.models import ConfirmOrderRequest

    @router.post("/api/orders/{order_id}/confirm")
    async def confirm(order_id: UUID, body: ConfirmOrderRequest):
        ...
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from linkdesk.models import LineItemInput, LineItemUpdate


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Orders
# ============================================================================


class ConfirmOrderRequest(_CamelModel):
    """Used by: POST /api/orders/{order_id}/confirm"""

    assigned_to: Optional[UUID] = Field(default=None, alias="assignedTo")


class AddLineItemsRequest(_CamelModel):
    """Used by: POST /api/orders/{order_id}/line-items"""

    items: list[LineItemInput] = Field(default_factory=list)
    reason: Optional[str] = None


class UpdateLineItemsRequest(_CamelModel):
    """Used by: PATCH /api/orders/{order_id}/line-items"""

    updates: list[LineItemUpdate] = Field(default_factory=list)
    reason: Optional[str] = None


class DeleteLineItemsRequest(_CamelModel):
    """Used by: DELETE /api/orders/{order_id}/line-items"""

    item_ids: list[UUID] = Field(default_factory=list, alias="itemIds")
    reason: Optional[str] = None


# ============================================================================
# Share links
# ============================================================================


class CreateShareLinkRequest(_CamelModel):
    """Used by: POST /api/orders/{order_id}/share"""

    expiry_days: Optional[int] = Field(default=None, alias="expiryDays", ge=1, le=90)


class ClaimSignupRequest(_CamelModel):
    """Used by: POST /api/orders/claim/{token}/signup"""

    email: str
    password: str
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    phone: Optional[str] = None


# ============================================================================
# Admin repairs
# ============================================================================


class RepairRequest(_CamelModel):
    """Used by the admin fix endpoints. Dry run unless told otherwise."""

    dry_run: bool = Field(default=True, alias="dryRun")
    limit: Optional[int] = Field(default=None, ge=1, le=10000)


class MigrationApplyRequest(_CamelModel):
    """Used by: POST /api/admin/migrations/apply"""

    dry_run: bool = Field(default=True, alias="dryRun")
    limit: Optional[int] = Field(default=None, ge=1)


class MigrationRollbackRequest(_CamelModel):
    """Used by: POST /api/admin/migrations/rollback"""

    name: str
    dry_run: bool = Field(default=True, alias="dryRun")
