"""Order confirmation.

Moves an order from ``pending_confirmation`` to ``confirmed`` and sets up one
bulk analysis project per client so domain analysis can start. Everything up
to the status change happens in a single transaction; the benchmark snapshot
is taken afterwards and is allowed to fail.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.core.audit_logger import log_status_change
from linkdesk.core.errors import EmptyOrderError, OrderNotFoundError, OrderStateError
from linkdesk.db.models import (
    BulkAnalysisProjectModel,
    ClientModel,
    OrderLineItemModel,
    OrderModel,
    TargetPageModel,
    utcnow,
)
from linkdesk.models import (
    BenchmarkReason,
    ConfirmationResult,
    OrderState,
    OrderStatus,
    ProjectSummary,
    order_tag,
)
from linkdesk.services.benchmarks import create_order_benchmark
from linkdesk.services.serializers import order_to_dict
from linkdesk.services.target_page_enrichment import TargetPageEnricher, needs_enrichment

logger = logging.getLogger(__name__)


def project_name(order_id: UUID, client_name: str) -> str:
    return f"Order #{str(order_id)[:8]} - {client_name}"


def project_tags(order_id: UUID, link_count: int, target_page_ids: list[UUID]) -> list[str]:
    tags = ["order", f"{link_count} links", order_tag(order_id)]
    tags.extend(f"target-page:{page_id}" for page_id in target_page_ids)
    return tags


async def find_order_project(
    session: AsyncSession, order_id: UUID, client_id: UUID
) -> BulkAnalysisProjectModel | None:
    """Return the project already created for (order, client), if any.

    Matches on ``source_order_id`` first, then on the ``order:<id>`` tag for
    projects created before the column existed.
    """
    result = await session.execute(
        select(BulkAnalysisProjectModel)
        .where(
            BulkAnalysisProjectModel.client_id == client_id,
            or_(
                BulkAnalysisProjectModel.source_order_id == order_id,
                BulkAnalysisProjectModel.source_order_id.is_(None),
            ),
        )
        .order_by(BulkAnalysisProjectModel.created_at)
    )
    projects = result.scalars().all()

    for project in projects:
        if project.source_order_id == order_id:
            return project

    tag = order_tag(order_id)
    for project in projects:
        if tag in (project.tags or []):
            return project
    return None


async def _enrich_target_pages(
    pages: list[TargetPageModel], enricher: TargetPageEnricher
) -> list[str]:
    """Backfill keywords/descriptions page by page. Returns ids that failed."""
    failures = []
    if not enricher.enabled:
        if any(needs_enrichment(p) for p in pages):
            logger.info("Target page enrichment disabled; skipping %d pages", len(pages))
        return failures

    for page in pages:
        if not needs_enrichment(page):
            continue
        try:
            updated = await enricher.enrich(page)
            logger.info("Enriched target page %s: %s", page.id, ", ".join(updated))
        except Exception as e:
            logger.warning("Failed to enrich target page %s (%s): %s", page.id, page.url, e)
            failures.append(str(page.id))
    return failures


async def confirm_order(
    session: AsyncSession,
    order_id: UUID,
    confirmed_by: UUID,
    assigned_to: UUID | None = None,
    enricher: TargetPageEnricher | None = None,
) -> ConfirmationResult:
    """Confirm a pending order and materialize its bulk analysis projects.

    Args:
        session: Database session; committed on success, rolled back on failure
        order_id: Order to confirm
        confirmed_by: Internal user performing the confirmation
        assigned_to: Internal user who will handle the order (defaults to confirmed_by)
        enricher: Target page enricher (defaults to the configured LLM enricher)

    Raises:
        OrderNotFoundError: Order does not exist
        OrderStateError: Order is not pending confirmation
        EmptyOrderError: Order has no line items
    """
    order = await session.get(OrderModel, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)

    if order.status != OrderStatus.PENDING_CONFIRMATION.value:
        raise OrderStateError(
            f"Order cannot be confirmed from status '{order.status}'",
            details={"orderId": str(order_id), "status": order.status},
        )

    line_items = (
        await session.execute(
            select(OrderLineItemModel)
            .where(OrderLineItemModel.order_id == order_id)
            .order_by(OrderLineItemModel.display_order, OrderLineItemModel.added_at)
        )
    ).scalars().all()
    if not line_items:
        raise EmptyOrderError(order_id)

    enricher = enricher or TargetPageEnricher()
    now = utcnow()

    try:
        items_by_client: dict[UUID, list[OrderLineItemModel]] = defaultdict(list)
        for item in line_items:
            items_by_client[item.client_id].append(item)

        clients = {
            c.id: c
            for c in (
                await session.execute(
                    select(ClientModel).where(ClientModel.id.in_(list(items_by_client)))
                )
            ).scalars()
        }

        page_ids = {item.target_page_id for item in line_items if item.target_page_id}
        pages: list[TargetPageModel] = []
        if page_ids:
            pages = list(
                (
                    await session.execute(
                        select(TargetPageModel).where(TargetPageModel.id.in_(list(page_ids)))
                    )
                ).scalars()
            )
        enrichment_failures = await _enrich_target_pages(pages, enricher)

        summaries: list[ProjectSummary] = []
        for client_id, items in items_by_client.items():
            client = clients.get(client_id)
            client_name = client.name if client else f"Client {str(client_id)[:8]}"

            client_page_ids = []
            for item in items:
                if item.target_page_id and item.target_page_id not in client_page_ids:
                    client_page_ids.append(item.target_page_id)

            project = await find_order_project(session, order_id, client_id)
            reused = project is not None
            if project is None:
                project = BulkAnalysisProjectModel(
                    client_id=client_id,
                    name=project_name(order_id, client_name),
                    description=f"Domains for {len(items)} links ordered in order {order_id}",
                    tags=project_tags(order_id, len(items), client_page_ids),
                    source_order_id=order_id,
                    created_by=confirmed_by,
                )
                session.add(project)
                await session.flush()
                logger.info("Created project %s for order %s client %s", project.id, order_id, client_id)
            else:
                if project.source_order_id is None:
                    project.source_order_id = order_id
                logger.info("Reusing project %s for order %s client %s", project.id, order_id, client_id)

            for item in items:
                # Reassign so the JSON column is flagged dirty
                item.item_metadata = {
                    **(item.item_metadata or {}),
                    "bulkAnalysisProjectId": str(project.id),
                }

            summaries.append(
                ProjectSummary(
                    id=project.id,
                    name=project.name,
                    client_id=client_id,
                    client_name=client_name,
                    reused=reused,
                    target_page_ids=client_page_ids,
                )
            )

        old_status = order.status
        order.status = OrderStatus.CONFIRMED.value
        order.state = OrderState.ANALYZING.value
        order.assigned_to = assigned_to or confirmed_by
        order.approved_at = now
        order.updated_at = now
        await log_status_change(
            order_id,
            old_status,
            order.status,
            changed_by=confirmed_by,
            notes=f"Order confirmed; {len(summaries)} analysis projects",
            session=session,
        )

        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Order confirmation failed for %s; rolled back", order_id)
        raise

    # Serialize now; a failed benchmark rollback would expire the instance
    order_data = order_to_dict(order)

    benchmark_created = False
    try:
        await create_order_benchmark(session, order_id, confirmed_by, BenchmarkReason.ORDER_CONFIRMED)
        await session.commit()
        benchmark_created = True
    except Exception as e:
        await session.rollback()
        logger.warning("Failed to create benchmark for order %s: %s", order_id, e)

    return ConfirmationResult(
        order=order_data,
        projects=summaries,
        project_target_pages={
            str(s.id): [str(p) for p in s.target_page_ids] for s in summaries
        },
        enrichment_failures=enrichment_failures,
        benchmark_created=benchmark_created,
        confirmed_at=now,
    )
