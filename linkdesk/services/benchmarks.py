"""Order benchmark snapshots.

A benchmark freezes what the client asked for when the order was confirmed
so later deliveries can be compared against it. Benchmarks are versioned per
order; exactly one version carries ``is_latest``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.core.errors import OrderNotFoundError
from linkdesk.db.models import (
    ClientModel,
    OrderBenchmarkModel,
    OrderLineItemModel,
    OrderModel,
)
from linkdesk.models import INACTIVE_LINE_ITEM_STATUSES, BenchmarkReason

logger = logging.getLogger(__name__)


async def create_order_benchmark(
    session: AsyncSession,
    order_id: UUID,
    captured_by: UUID | None,
    reason: BenchmarkReason = BenchmarkReason.ORDER_CONFIRMED,
) -> OrderBenchmarkModel:
    """Snapshot the order's requested links per client and target page.

    Raises:
        OrderNotFoundError: If the order does not exist
    """
    order = await session.get(OrderModel, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)

    rows = (
        await session.execute(
            select(OrderLineItemModel, ClientModel.name)
            .join(ClientModel, ClientModel.id == OrderLineItemModel.client_id)
            .where(OrderLineItemModel.order_id == order_id)
            .order_by(OrderLineItemModel.display_order, OrderLineItemModel.added_at)
        )
    ).all()

    clients: dict[UUID, dict] = {}
    pages: dict[UUID, dict[str, dict]] = defaultdict(dict)
    unique_domains: set[str] = set()

    for item, client_name in rows:
        if item.status in INACTIVE_LINE_ITEM_STATUSES:
            continue
        group = clients.setdefault(
            item.client_id,
            {"clientId": str(item.client_id), "clientName": client_name, "linkCount": 0},
        )
        group["linkCount"] += 1

        url = item.target_page_url or "unassigned"
        page = pages[item.client_id].setdefault(
            url,
            {
                "url": url,
                "pageId": str(item.target_page_id) if item.target_page_id else None,
                "requestedLinks": 0,
                "requestedDomains": [],
            },
        )
        page["requestedLinks"] += 1
        if item.assigned_domain:
            unique_domains.add(item.assigned_domain)
            page["requestedDomains"].append(
                {
                    "domainId": str(item.assigned_domain_id) if item.assigned_domain_id else None,
                    "domain": item.assigned_domain,
                    "retailPrice": item.estimated_price or 0,
                    "wholesalePrice": item.wholesale_price or 0,
                    "anchorText": item.anchor_text,
                }
            )

    client_groups = []
    for client_id, group in clients.items():
        group["targetPages"] = list(pages[client_id].values())
        client_groups.append(group)

    benchmark_data = {
        "orderTotal": order.total_retail or 0,
        "orderWholesale": order.total_wholesale or 0,
        "clientGroups": client_groups,
        "totalRequestedLinks": sum(g["linkCount"] for g in client_groups),
        "totalClients": len(client_groups),
        "totalTargetPages": sum(len(g["targetPages"]) for g in client_groups),
        "totalUniqueDomains": len(unique_domains),
    }

    previous = (
        await session.execute(
            select(OrderBenchmarkModel.version)
            .where(OrderBenchmarkModel.order_id == order_id)
            .order_by(OrderBenchmarkModel.version.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    await session.execute(
        update(OrderBenchmarkModel)
        .where(OrderBenchmarkModel.order_id == order_id)
        .values(is_latest=False)
    )

    reason_value = BenchmarkReason(reason).value
    benchmark = OrderBenchmarkModel(
        order_id=order_id,
        version=(previous or 0) + 1,
        is_latest=True,
        captured_by=captured_by,
        capture_reason=reason_value,
        benchmark_type="initial",
        benchmark_data=benchmark_data,
        notes=(
            "Initial benchmark created at order confirmation"
            if reason_value in (BenchmarkReason.ORDER_CONFIRMED.value, BenchmarkReason.ORDER_SUBMITTED.value)
            else None
        ),
    )
    session.add(benchmark)
    await session.flush()

    logger.info("Created benchmark v%s for order %s", benchmark.version, order_id)
    return benchmark


async def get_latest_benchmark(session: AsyncSession, order_id: UUID) -> OrderBenchmarkModel | None:
    result = await session.execute(
        select(OrderBenchmarkModel).where(
            OrderBenchmarkModel.order_id == order_id,
            OrderBenchmarkModel.is_latest.is_(True),
        )
    )
    return result.scalars().first()


async def get_benchmark_history(session: AsyncSession, order_id: UUID) -> list[OrderBenchmarkModel]:
    result = await session.execute(
        select(OrderBenchmarkModel)
        .where(OrderBenchmarkModel.order_id == order_id)
        .order_by(OrderBenchmarkModel.version.desc())
    )
    return list(result.scalars().all())


def benchmark_to_dict(benchmark: OrderBenchmarkModel) -> dict:
    return {
        "id": str(benchmark.id),
        "orderId": str(benchmark.order_id),
        "version": benchmark.version,
        "isLatest": benchmark.is_latest,
        "capturedBy": str(benchmark.captured_by) if benchmark.captured_by else None,
        "captureReason": benchmark.capture_reason,
        "benchmarkType": benchmark.benchmark_type,
        "benchmarkData": benchmark.benchmark_data,
        "notes": benchmark.notes,
        "capturedAt": benchmark.captured_at.isoformat() if benchmark.captured_at else None,
    }
