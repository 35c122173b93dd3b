"""LinkDesk domain enums and Pydantic models shared across services and routes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    DRAFT = "draft"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    SITES_READY = "sites_ready"
    CLIENT_REVIEWING = "client_reviewing"
    CLIENT_APPROVED = "client_approved"
    INVOICED = "invoiced"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_PROCESSING = "payment_processing"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class OrderState(str, Enum):
    """Fine-grained workflow state within a status."""

    CONFIGURING = "configuring"
    ANALYZING = "analyzing"
    SITES_READY = "sites_ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Account users may still edit line items in these statuses
EDITABLE_STATUSES = frozenset(
    {
        OrderStatus.DRAFT.value,
        OrderStatus.PENDING_CONFIRMATION.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.SITES_READY.value,
        OrderStatus.CLIENT_REVIEWING.value,
        OrderStatus.CLIENT_APPROVED.value,
        OrderStatus.INVOICED.value,
    }
)

PAYMENT_LOCKED_STATUSES = frozenset(
    {
        OrderStatus.PAYMENT_PENDING.value,
        OrderStatus.PAYMENT_PROCESSING.value,
        OrderStatus.PAID.value,
        OrderStatus.IN_PROGRESS.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.REFUNDED.value,
        OrderStatus.PARTIALLY_REFUNDED.value,
    }
)

INACTIVE_LINE_ITEM_STATUSES = frozenset({"cancelled", "refunded"})
DELIVERED_LINE_ITEM_STATUSES = frozenset({"delivered", "completed"})
PENDING_LINE_ITEM_STATUSES = frozenset({"draft", "pending_selection"})


class UserType(str, Enum):
    """Who is behind a session."""

    INTERNAL = "internal"
    ACCOUNT = "account"


class QualificationStatus(str, Enum):
    """AI qualification verdict for a candidate domain."""

    PENDING = "pending"
    HIGH_QUALITY = "high_quality"
    GOOD_QUALITY = "good_quality"
    MARGINAL_QUALITY = "marginal_quality"
    DISQUALIFIED = "disqualified"


class BenchmarkReason(str, Enum):
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_SUBMITTED = "order_submitted"
    MANUAL_UPDATE = "manual_update"
    CLIENT_REVISION = "client_revision"


def order_tag(order_id: UUID | str) -> str:
    """Tag linking a bulk analysis project back to the order that created it."""
    return f"order:{order_id}"


class SessionUser(BaseModel):
    """Authenticated caller resolved from the session cookie."""

    user_id: UUID
    user_type: UserType
    email: str | None = None
    role: str | None = None

    @property
    def is_internal(self) -> bool:
        return self.user_type == UserType.INTERNAL


class ProjectSummary(BaseModel):
    """Bulk analysis project created or reused during confirmation."""

    id: UUID
    name: str
    client_id: UUID
    client_name: str
    reused: bool = False
    target_page_ids: list[UUID] = Field(default_factory=list)


class ConfirmationResult(BaseModel):
    """Outcome of a successful order confirmation."""

    order: dict[str, Any]
    projects: list[ProjectSummary]
    project_target_pages: dict[str, list[str]]
    enrichment_failures: list[str] = Field(default_factory=list)
    benchmark_created: bool = False
    confirmed_at: datetime

    @property
    def projects_created(self) -> int:
        return sum(1 for p in self.projects if not p.reused)


class LineItemInput(BaseModel):
    """A link to add to an order."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: UUID | None = Field(default=None, alias="clientId")
    target_page_id: UUID | None = Field(default=None, alias="targetPageId")
    target_page_url: str | None = Field(default=None, alias="targetPageUrl")
    anchor_text: str | None = Field(default=None, alias="anchorText")
    status: str | None = None
    assigned_domain: str | None = Field(default=None, alias="assignedDomain")
    assigned_domain_id: UUID | None = Field(default=None, alias="assignedDomainId")
    estimated_price: int | None = Field(default=None, alias="estimatedPrice")
    wholesale_price: int | None = Field(default=None, alias="wholesalePrice")
    metadata: dict[str, Any] = Field(default_factory=dict)


class LineItemUpdate(BaseModel):
    """Field changes for one existing line item.

    Only fields present in the payload are applied; an explicit null clears
    the value.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    status: str | None = None
    client_id: UUID | None = Field(default=None, alias="clientId")
    target_page_url: str | None = Field(default=None, alias="targetPageUrl")
    anchor_text: str | None = Field(default=None, alias="anchorText")
    assigned_domain: str | None = Field(default=None, alias="assignedDomain")
    assigned_domain_id: UUID | None = Field(default=None, alias="assignedDomainId")
    estimated_price: int | None = Field(default=None, alias="estimatedPrice")
    wholesale_price: int | None = Field(default=None, alias="wholesalePrice")
    approved_price: int | None = Field(default=None, alias="approvedPrice")
    metadata: dict[str, Any] | None = None
    reason: str | None = None
