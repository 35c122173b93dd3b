"""Share links: public, token-based views of an order.

A share token lets an unauthenticated prospect look at the order and the
candidate domains analysed for it, then sign up and take ownership of the
order. Tokens expire; usage is recorded per token.
"""

from __future__ import annotations

import logging
import secrets
from collections import defaultdict
from datetime import timedelta
from uuid import UUID

import bcrypt
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.config import get_config
from linkdesk.core.errors import (
    ConflictError,
    ShareLinkExpiredError,
    ShareLinkNotFoundError,
    ValidationError,
)
from linkdesk.db.models import (
    AccountModel,
    BulkAnalysisDomainModel,
    BulkAnalysisProjectModel,
    ClientModel,
    OrderLineItemModel,
    OrderModel,
    OrderShareTokenModel,
    TargetPageModel,
    utcnow,
)
from linkdesk.models import INACTIVE_LINE_ITEM_STATUSES, QualificationStatus, order_tag
from linkdesk.services.serializers import (
    client_to_dict,
    domain_to_dict,
    line_item_to_dict,
    order_to_dict,
    project_to_dict,
    target_page_to_dict,
)

logger = logging.getLogger(__name__)

SHARE_PERMISSIONS = ["view", "claim"]
MIN_PASSWORD_LENGTH = 8

# Window around order creation used when no project is linked to the order
FALLBACK_BEFORE = timedelta(days=1)
FALLBACK_AFTER = timedelta(days=7)


def generate_share_token() -> str:
    """64 hex chars (32 random bytes)."""
    return secrets.token_hex(32)


async def create_share_link(
    session: AsyncSession,
    order: OrderModel,
    expiry_days: int | None = None,
) -> OrderShareTokenModel:
    """Issue a fresh share token for the order, replacing any previous one."""
    if expiry_days is None:
        expiry_days = get_config().share.token_expiry_days
    if expiry_days <= 0:
        raise ValidationError("Expiry must be at least one day")

    if order.share_token:
        await _expire_tokens(session, order.id)

    now = utcnow()
    record = OrderShareTokenModel(
        token=generate_share_token(),
        order_id=order.id,
        permissions=list(SHARE_PERMISSIONS),
        expires_at=now + timedelta(days=expiry_days),
    )
    session.add(record)

    order.share_token = record.token
    order.share_expires_at = record.expires_at
    order.updated_at = now
    await session.flush()

    logger.info("Created share link for order %s (expires %s)", order.id, record.expires_at)
    return record


async def revoke_share_link(session: AsyncSession, order: OrderModel) -> bool:
    """Invalidate the order's share token. Returns False if there was none."""
    if not order.share_token:
        return False

    await _expire_tokens(session, order.id)
    order.share_token = None
    order.share_expires_at = None
    order.updated_at = utcnow()
    await session.flush()

    logger.info("Revoked share link for order %s", order.id)
    return True


async def _expire_tokens(session: AsyncSession, order_id: UUID) -> None:
    now = utcnow()
    await session.execute(
        update(OrderShareTokenModel)
        .where(OrderShareTokenModel.order_id == order_id, OrderShareTokenModel.expires_at > now)
        .values(expires_at=now)
    )


async def resolve_share_token(session: AsyncSession, token: str) -> OrderModel:
    """Find the order a share token points to.

    Raises:
        ShareLinkNotFoundError: No order carries this token
        ShareLinkExpiredError: The token is past its expiry
    """
    if not token:
        raise ShareLinkNotFoundError()

    order = (
        await session.execute(select(OrderModel).where(OrderModel.share_token == token))
    ).scalars().first()
    if order is None:
        raise ShareLinkNotFoundError()

    if order.share_expires_at is not None and order.share_expires_at < utcnow():
        raise ShareLinkExpiredError()
    return order


async def record_token_use(session: AsyncSession, token: str, ip: str | None) -> None:
    record = await session.get(OrderShareTokenModel, token)
    if record is None:
        # Tokens issued before usage tracking have no row
        return
    record.used_at = utcnow()
    record.used_by_ip = ip
    record.use_count = (record.use_count or 0) + 1


async def find_share_projects(
    session: AsyncSession, order: OrderModel, client_ids: list[UUID]
) -> dict[UUID, list[BulkAnalysisProjectModel]]:
    """Projects holding candidate domains for the order, grouped by client.

    Projects linked to the order (column or tag) win. Only when the order has
    none at all do we fall back to the client's projects created from one day
    before to seven days after the order.
    """
    if not client_ids:
        return {}

    candidates = (
        await session.execute(
            select(BulkAnalysisProjectModel)
            .where(
                BulkAnalysisProjectModel.client_id.in_(client_ids),
                or_(
                    BulkAnalysisProjectModel.source_order_id == order.id,
                    BulkAnalysisProjectModel.source_order_id.is_(None),
                ),
            )
            .order_by(BulkAnalysisProjectModel.created_at)
        )
    ).scalars().all()

    tag = order_tag(order.id)
    by_client: dict[UUID, list[BulkAnalysisProjectModel]] = defaultdict(list)
    for project in candidates:
        if project.source_order_id == order.id or tag in (project.tags or []):
            by_client[project.client_id].append(project)

    if by_client:
        return dict(by_client)

    window_start = order.created_at - FALLBACK_BEFORE
    window_end = order.created_at + FALLBACK_AFTER
    fallback = (
        await session.execute(
            select(BulkAnalysisProjectModel)
            .where(
                BulkAnalysisProjectModel.client_id.in_(client_ids),
                BulkAnalysisProjectModel.created_at >= window_start,
                BulkAnalysisProjectModel.created_at <= window_end,
            )
            .order_by(BulkAnalysisProjectModel.created_at)
        )
    ).scalars().all()
    if fallback:
        logger.info(
            "No projects linked to order %s; using %d projects from the creation window",
            order.id,
            len(fallback),
        )
    for project in fallback:
        by_client[project.client_id].append(project)
    return dict(by_client)


async def get_claim_view(session: AsyncSession, token: str, ip: str | None = None) -> dict:
    """Public view of a shared order, grouped by client.

    Raises:
        ShareLinkNotFoundError: Unknown token
        ShareLinkExpiredError: Expired token; no order data is returned
    """
    order = await resolve_share_token(session, token)
    await record_token_use(session, token, ip)

    rows = (
        await session.execute(
            select(OrderLineItemModel, ClientModel, TargetPageModel)
            .join(ClientModel, ClientModel.id == OrderLineItemModel.client_id)
            .outerjoin(TargetPageModel, TargetPageModel.id == OrderLineItemModel.target_page_id)
            .where(
                OrderLineItemModel.order_id == order.id,
                OrderLineItemModel.status.not_in(list(INACTIVE_LINE_ITEM_STATUSES)),
            )
            .order_by(OrderLineItemModel.display_order, OrderLineItemModel.added_at)
        )
    ).all()

    groups: dict[UUID, dict] = {}
    assigned_ids: set[UUID] = set()
    assigned_names: set[str] = set()
    for item, client, page in rows:
        group = groups.setdefault(
            client.id, {"client": client_to_dict(client), "lineItems": [], "projects": []}
        )
        entry = line_item_to_dict(item, include_internal=False)
        entry["targetPage"] = target_page_to_dict(page) if page else None
        group["lineItems"].append(entry)
        if item.assigned_domain_id:
            assigned_ids.add(item.assigned_domain_id)
        if item.assigned_domain:
            assigned_names.add(item.assigned_domain.lower())

    projects_by_client = await find_share_projects(session, order, list(groups))
    project_ids = [p.id for projects in projects_by_client.values() for p in projects]

    domains_by_client: dict[UUID, list[BulkAnalysisDomainModel]] = defaultdict(list)
    if project_ids:
        domains = (
            await session.execute(
                select(BulkAnalysisDomainModel)
                .where(
                    BulkAnalysisDomainModel.project_id.in_(project_ids),
                    BulkAnalysisDomainModel.qualification_status
                    != QualificationStatus.DISQUALIFIED.value,
                )
                .order_by(BulkAnalysisDomainModel.domain)
            )
        ).scalars().all()
        for domain in domains:
            domains_by_client[domain.client_id].append(domain)

    total_domains = 0
    for client_id, group in groups.items():
        group["projects"] = [project_to_dict(p) for p in projects_by_client.get(client_id, [])]
        available = []
        for domain in domains_by_client.get(client_id, []):
            entry = domain_to_dict(domain)
            entry["isAssigned"] = (
                domain.id in assigned_ids or domain.domain.lower() in assigned_names
            )
            available.append(entry)
        group["availableDomains"] = available
        total_domains += len(available)

    view_order = order_to_dict(order, include_internal=False)
    view_order["shareExpiresAt"] = order.share_expires_at.isoformat() if order.share_expires_at else None

    return {
        "order": view_order,
        "clientGroups": list(groups.values()),
        "totals": {
            "lineItems": len(rows),
            "clients": len(groups),
            "availableDomains": total_domains,
            "totalRetail": order.total_retail or 0,
        },
    }


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


async def signup_and_claim(
    session: AsyncSession,
    token: str,
    email: str,
    password: str,
    contact_name: str | None = None,
    company_name: str | None = None,
    phone: str | None = None,
) -> AccountModel:
    """Create an account from a share link and hand the order over to it.

    The share token is consumed; the caller commits and starts the session.

    Raises:
        ShareLinkNotFoundError / ShareLinkExpiredError: Bad token
        ValidationError: Password too short or email missing
        ConflictError: Email already registered, or order already owned
    """
    order = await resolve_share_token(session, token)

    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if order.account_id is not None:
        raise ConflictError("This order has already been claimed")

    existing = (
        await session.execute(
            select(AccountModel.id).where(func.lower(AccountModel.email) == email)
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("An account with this email already exists")

    account = AccountModel(
        email=email,
        password_hash=hash_password(password),
        contact_name=contact_name,
        company_name=company_name,
        phone=phone,
        role="viewer",
        status="active",
    )
    session.add(account)
    await session.flush()

    order.account_id = account.id
    await session.execute(
        update(ClientModel)
        .where(
            ClientModel.id.in_(
                select(OrderLineItemModel.client_id).where(OrderLineItemModel.order_id == order.id)
            ),
            ClientModel.account_id.is_(None),
        )
        .values(account_id=account.id)
    )
    await revoke_share_link(session, order)

    logger.info("Order %s claimed by new account %s", order.id, account.id)
    return account
