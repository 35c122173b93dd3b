"""Order lookup and access checks shared by the order services."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.core.errors import OrderNotFoundError, PermissionDeniedError
from linkdesk.db.models import OrderModel
from linkdesk.models import SessionUser


async def get_order(session: AsyncSession, order_id: UUID) -> OrderModel:
    order = await session.get(OrderModel, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def check_order_access(order: OrderModel, user: SessionUser) -> None:
    """Internal users see every order; account users only their own."""
    if user.is_internal:
        return
    if order.account_id is None or order.account_id != user.user_id:
        raise PermissionDeniedError("Access denied to this order")
