import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.db.connection import get_session
from linkdesk.db.models import OrderStatusHistoryModel

logger = logging.getLogger(__name__)


async def log_status_change(
    order_id: UUID,
    old_status: str | None,
    new_status: str,
    changed_by: str | UUID | None = None,
    notes: str | None = None,
    session: AsyncSession | None = None,
) -> OrderStatusHistoryModel:
    """Record an order status transition in the audit trail.

    Args:
        order_id: Order whose status changed
        old_status: Previous status (None for newly created orders)
        new_status: Status after the change
        changed_by: User ID of actor
        notes: Free-form reason
        session: Optional existing DB session. If None, creates a new one.
    """
    # Convert changed_by to UUID if string
    if isinstance(changed_by, str):
        try:
            changed_by = UUID(changed_by)
        except ValueError:
            changed_by = None

    entry = OrderStatusHistoryModel(
        order_id=order_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        notes=notes,
    )

    if session:
        session.add(entry)
        # Caller is responsible for commit if session provided
    else:
        async with get_session() as new_session:
            new_session.add(entry)

    logger.info(
        "Order %s status %s -> %s (by %s)", order_id, old_status, new_status, changed_by
    )
    return entry
