"""Order routes: confirmation, line items, benchmarks and share-link management."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from linkdesk.core.errors import LinkDeskError
from linkdesk.db.connection import get_session
from linkdesk.models import ConfirmationResult, SessionUser
from linkdesk.services import benchmarks, line_items, share_links
from linkdesk.services.order_confirmation import confirm_order
from linkdesk.services.orders import check_order_access, get_order
from linkdesk.services.serializers import line_item_to_dict
from linkdesk.web.auth import get_current_user, require_internal
from linkdesk.web.models import (
    AddLineItemsRequest,
    ConfirmOrderRequest,
    CreateShareLinkRequest,
    DeleteLineItemsRequest,
    UpdateLineItemsRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _confirmation_response(result: ConfirmationResult) -> dict:
    return {
        "success": True,
        "order": result.order,
        "projectsCreated": result.projects_created,
        "projects": [
            {
                "id": str(p.id),
                "name": p.name,
                "clientId": str(p.client_id),
                "clientName": p.client_name,
                "reused": p.reused,
                "targetPageIds": [str(t) for t in p.target_page_ids],
            }
            for p in result.projects
        ],
        "projectTargetPages": result.project_target_pages,
        "enrichmentFailures": result.enrichment_failures,
        "benchmarkCreated": result.benchmark_created,
    }


@router.post("/{order_id}/confirm")
async def confirm(
    order_id: UUID,
    body: Optional[ConfirmOrderRequest] = None,
    user: SessionUser = Depends(require_internal),
):
    """Confirm a pending order and create its bulk analysis projects."""
    assigned_to = body.assigned_to if body else None
    try:
        async with get_session() as session:
            result = await confirm_order(
                session, order_id, confirmed_by=user.user_id, assigned_to=assigned_to
            )
    except LinkDeskError:
        raise
    except Exception as e:
        logger.exception("Failed to confirm order %s", order_id)
        raise HTTPException(status_code=500, detail=f"Failed to confirm order: {e}") from e

    return _confirmation_response(result)


@router.get("/{order_id}/benchmarks")
async def list_benchmarks(order_id: UUID, user: SessionUser = Depends(require_internal)):
    async with get_session() as session:
        await get_order(session, order_id)
        history = await benchmarks.get_benchmark_history(session, order_id)

    latest = next((b for b in history if b.is_latest), None)
    return {
        "orderId": str(order_id),
        "latest": benchmarks.benchmark_to_dict(latest) if latest else None,
        "history": [benchmarks.benchmark_to_dict(b) for b in history],
    }


@router.get("/{order_id}/line-items")
async def get_line_items(
    order_id: UUID,
    status: Optional[str] = Query(default=None),
    client_id: Optional[UUID] = Query(default=None, alias="clientId"),
    user: SessionUser = Depends(get_current_user),
):
    async with get_session() as session:
        return await line_items.list_line_items(
            session, order_id, user, status=status, client_id=client_id
        )


@router.post("/{order_id}/line-items")
async def create_line_items(
    order_id: UUID,
    body: AddLineItemsRequest,
    user: SessionUser = Depends(get_current_user),
):
    async with get_session() as session:
        created = await line_items.add_line_items(
            session, order_id, body.items, user, reason=body.reason
        )
        payload = [line_item_to_dict(i, include_internal=user.is_internal) for i in created]

    return {
        "success": True,
        "message": f"{len(payload)} line items added",
        "lineItems": payload,
    }


@router.patch("/{order_id}/line-items")
async def edit_line_items(
    order_id: UUID,
    body: UpdateLineItemsRequest,
    user: SessionUser = Depends(get_current_user),
):
    async with get_session() as session:
        updated = await line_items.update_line_items(
            session, order_id, body.updates, user, reason=body.reason
        )
        payload = [
            {**line_item_to_dict(item, include_internal=user.is_internal), "changes": changes}
            for item, changes in updated
        ]

    return {
        "success": True,
        "message": f"{len(payload)} line items updated",
        "lineItems": payload,
    }


@router.delete("/{order_id}/line-items")
async def cancel_line_items(
    order_id: UUID,
    body: DeleteLineItemsRequest,
    user: SessionUser = Depends(get_current_user),
):
    async with get_session() as session:
        cancelled = await line_items.delete_line_items(
            session, order_id, body.item_ids, user, reason=body.reason
        )
        payload = [line_item_to_dict(i, include_internal=user.is_internal) for i in cancelled]

    return {
        "success": True,
        "message": f"{len(payload)} line items cancelled",
        "lineItems": payload,
    }


@router.post("/{order_id}/share")
async def create_share(
    order_id: UUID,
    body: Optional[CreateShareLinkRequest] = None,
    user: SessionUser = Depends(get_current_user),
):
    """Issue a share link for the order (internal staff or the owning account)."""
    async with get_session() as session:
        order = await get_order(session, order_id)
        check_order_access(order, user)
        record = await share_links.create_share_link(
            session, order, expiry_days=body.expiry_days if body else None
        )

    return {
        "success": True,
        "shareToken": record.token,
        "shareUrl": f"/orders/claim/{record.token}",
        "expiresAt": record.expires_at.isoformat(),
    }


@router.delete("/{order_id}/share")
async def delete_share(order_id: UUID, user: SessionUser = Depends(get_current_user)):
    async with get_session() as session:
        order = await get_order(session, order_id)
        check_order_access(order, user)
        revoked = await share_links.revoke_share_link(session, order)

    return {"success": True, "revoked": revoked}
