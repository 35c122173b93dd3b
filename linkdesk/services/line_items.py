"""Order line items: listing with summary stats and adding, editing or cancelling links."""

from __future__ import annotations

import logging
from collections import Counter
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.core.errors import PermissionDeniedError, ValidationError
from linkdesk.db.models import ClientModel, OrderLineItemModel, OrderModel, utcnow
from linkdesk.models import (
    DELIVERED_LINE_ITEM_STATUSES,
    EDITABLE_STATUSES,
    INACTIVE_LINE_ITEM_STATUSES,
    PAYMENT_LOCKED_STATUSES,
    PENDING_LINE_ITEM_STATUSES,
    LineItemInput,
    LineItemUpdate,
    SessionUser,
)
from linkdesk.services.orders import check_order_access, get_order
from linkdesk.services.serializers import line_item_to_dict

logger = logging.getLogger(__name__)


def item_value(item: OrderLineItemModel) -> int:
    return item.approved_price or item.estimated_price or 0


def summarize_line_items(items: list[OrderLineItemModel], client_names: dict[UUID, str]) -> dict:
    by_client: Counter[str] = Counter()
    for item in items:
        name = client_names.get(item.client_id) or f"Client {str(item.client_id)[:8]}"
        by_client[name] += 1

    return {
        "total": len(items),
        "byStatus": dict(Counter(item.status for item in items)),
        "byClient": dict(by_client),
        "totalValue": sum(item_value(item) for item in items),
        "deliveredCount": sum(1 for i in items if i.status in DELIVERED_LINE_ITEM_STATUSES),
        "pendingCount": sum(1 for i in items if i.status in PENDING_LINE_ITEM_STATUSES),
    }


async def list_line_items(
    session: AsyncSession,
    order_id: UUID,
    user: SessionUser,
    status: str | None = None,
    client_id: UUID | None = None,
) -> dict:
    """Line items of an order plus summary counts, optionally filtered."""
    order = await get_order(session, order_id)
    check_order_access(order, user)

    stmt = (
        select(OrderLineItemModel, ClientModel.name)
        .outerjoin(ClientModel, ClientModel.id == OrderLineItemModel.client_id)
        .where(OrderLineItemModel.order_id == order_id)
        .order_by(OrderLineItemModel.display_order, OrderLineItemModel.added_at)
    )
    if status:
        stmt = stmt.where(OrderLineItemModel.status == status)
    if client_id:
        stmt = stmt.where(OrderLineItemModel.client_id == client_id)

    rows = (await session.execute(stmt)).all()
    items = [item for item, _ in rows]
    client_names = {item.client_id: name for item, name in rows if name}

    return {
        "orderId": str(order_id),
        "lineItems": [line_item_to_dict(i, include_internal=user.is_internal) for i in items],
        "summary": summarize_line_items(items, client_names),
    }


_DENIED_MESSAGES = {
    "add": "Cannot add line items to this order",
    "edit": "Cannot edit line items for this order",
    "delete": "Cannot delete line items from this order",
}


def check_can_modify_items(order: OrderModel, user: SessionUser, action: str = "add") -> None:
    """Account users may change links on their own order until payment starts.

    ``action`` is one of ``add``, ``edit`` or ``delete`` and only shapes
    the error messages.

    Raises:
        PermissionDeniedError: Not the order's account
        ValidationError: Order status no longer allows edits
    """
    if user.is_internal:
        return
    if order.account_id is None or order.account_id != user.user_id:
        raise PermissionDeniedError(_DENIED_MESSAGES[action])

    if order.status in EDITABLE_STATUSES:
        return
    if order.status in PAYMENT_LOCKED_STATUSES:
        raise ValidationError(
            f"Cannot {action} line items once payment process begins. "
            f"Current status: '{order.status}'. Please contact support for assistance."
        )
    raise ValidationError(f"Cannot {action} line items in status: '{order.status}'")


async def _recompute_total(session: AsyncSession, order: OrderModel) -> None:
    items = (
        await session.execute(
            select(OrderLineItemModel).where(OrderLineItemModel.order_id == order.id)
        )
    ).scalars().all()
    order.total_retail = sum(
        item_value(i) for i in items if i.status not in INACTIVE_LINE_ITEM_STATUSES
    )
    order.updated_at = utcnow()


async def add_line_items(
    session: AsyncSession,
    order_id: UUID,
    items: list[LineItemInput],
    user: SessionUser,
    reason: str | None = None,
) -> list[OrderLineItemModel]:
    """Append links to an order and recompute its retail total.

    The caller commits.
    """
    if not items:
        raise ValidationError("items array is required")

    order = await get_order(session, order_id)
    check_can_modify_items(order, user, "add")

    for item in items:
        if item.client_id is None:
            raise ValidationError("clientId is required for each line item")

    last_order = (
        await session.execute(
            select(func.max(OrderLineItemModel.display_order)).where(
                OrderLineItemModel.order_id == order_id
            )
        )
    ).scalar()
    next_display_order = -1 if last_order is None else last_order

    now = utcnow()
    created = []
    for item in items:
        next_display_order += 1
        metadata = dict(item.metadata)
        metadata.setdefault("inclusionStatus", "included")
        assigned_domain = item.assigned_domain or metadata.get("assignedDomain")

        line_item = OrderLineItemModel(
            order_id=order_id,
            client_id=item.client_id,
            target_page_id=item.target_page_id,
            target_page_url=item.target_page_url,
            anchor_text=item.anchor_text,
            status=item.status or "draft",
            assigned_domain=assigned_domain,
            assigned_domain_id=item.assigned_domain_id,
            assigned_at=now if assigned_domain else None,
            estimated_price=item.estimated_price,
            wholesale_price=item.wholesale_price or metadata.get("wholesalePrice"),
            item_metadata=metadata,
            added_by=user.user_id,
            added_at=now,
            display_order=next_display_order,
        )
        session.add(line_item)
        created.append(line_item)
    await session.flush()
    await _recompute_total(session, order)

    logger.info(
        "Added %d line items to order %s (%s)",
        len(created),
        order_id,
        reason or "Line items added to order",
    )
    return created


# Plain column edits, tracked as {"from": old, "to": new}
_EDITABLE_FIELDS = (
    "status",
    "client_id",
    "target_page_url",
    "anchor_text",
    "estimated_price",
    "wholesale_price",
    "approved_price",
)


def _apply_update(item: OrderLineItemModel, update: LineItemUpdate) -> dict:
    """Apply the fields present in ``update`` and return what changed."""
    provided = update.model_fields_set
    if "client_id" in provided and update.client_id is None:
        raise ValidationError(f"clientId cannot be cleared on line item {item.id}")
    changes = {}

    for name in _EDITABLE_FIELDS:
        if name not in provided:
            continue
        new = getattr(update, name)
        old = getattr(item, name)
        if new != old:
            setattr(item, name, new)
            changes[name] = {"from": old, "to": new}

    if provided & {"assigned_domain_id", "assigned_domain"}:
        old_domain = item.assigned_domain
        item.assigned_domain_id = update.assigned_domain_id
        item.assigned_domain = update.assigned_domain
        item.assigned_at = utcnow()
        changes["assignedDomain"] = {"from": old_domain, "to": update.assigned_domain}
        if item.status == "draft" and "status" not in changes:
            item.status = "pending_selection"
            changes["status"] = {"from": "draft", "to": "pending_selection"}

    if "metadata" in provided and update.metadata is not None:
        old_metadata = dict(item.item_metadata or {})
        merged = {**old_metadata, **update.metadata}
        if merged != old_metadata:
            item.item_metadata = merged
            changes["metadata"] = {"from": old_metadata, "to": merged}

    return changes


async def update_line_items(
    session: AsyncSession,
    order_id: UUID,
    updates: list[LineItemUpdate],
    user: SessionUser,
    reason: str | None = None,
) -> list[tuple[OrderLineItemModel, dict]]:
    """Apply batched field edits and recompute the order's retail total.

    Ids not on this order are skipped. Items whose payload matches their
    current values are left untouched. Returns ``(item, changes)`` for
    each item that changed. The caller commits.
    """
    if not updates:
        raise ValidationError("updates array is required")

    order = await get_order(session, order_id)
    check_can_modify_items(order, user, "edit")

    ids = [u.id for u in updates]
    items = {
        item.id: item
        for item in (
            await session.execute(
                select(OrderLineItemModel).where(
                    OrderLineItemModel.order_id == order_id, OrderLineItemModel.id.in_(ids)
                )
            )
        ).scalars()
    }

    updated = []
    for update in updates:
        item = items.get(update.id)
        if item is None:
            logger.warning("Line item %s not found on order %s, skipping", update.id, order_id)
            continue
        changes = _apply_update(item, update)
        if not changes:
            continue
        item.modified_at = utcnow()
        updated.append((item, changes))
        logger.info(
            "Line item %s changed %s (%s)",
            item.id,
            sorted(changes),
            reason or update.reason or "Line item updated",
        )

    if updated:
        await session.flush()
        await _recompute_total(session, order)
    return updated


async def delete_line_items(
    session: AsyncSession,
    order_id: UUID,
    item_ids: list[UUID],
    user: SessionUser,
    reason: str | None = None,
) -> list[OrderLineItemModel]:
    """Cancel line items and recompute the order's retail total.

    Rows are kept with status ``cancelled`` and the cancellation recorded in
    their metadata. Ids not on this order are skipped. The caller commits.
    """
    if not item_ids:
        raise ValidationError("itemIds array is required")

    order = await get_order(session, order_id)
    check_can_modify_items(order, user, "delete")

    items = (
        await session.execute(
            select(OrderLineItemModel).where(
                OrderLineItemModel.order_id == order_id, OrderLineItemModel.id.in_(item_ids)
            )
        )
    ).scalars().all()

    now = utcnow()
    reason = reason or "Line item cancelled"
    cancelled = []
    for item in items:
        if item.status == "cancelled":
            continue
        item.item_metadata = {
            **(item.item_metadata or {}),
            "cancelledFromStatus": item.status,
            "cancelledAt": now.isoformat(),
            "cancelledBy": str(user.user_id),
            "cancellationReason": reason,
        }
        item.status = "cancelled"
        item.modified_at = now
        cancelled.append(item)

    if cancelled:
        await session.flush()
        await _recompute_total(session, order)
    logger.info("Cancelled %d line items on order %s (%s)", len(cancelled), order_id, reason)
    return cancelled
