"""SQLAlchemy async database models for LinkDesk.

Maps to the PostgreSQL schema; every column type used here also works on
SQLite so the test suite can run against an in-memory database.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store UTC without tzinfo."""
    return datetime.utcnow()


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# ============================================================================
# Accounts, staff and clients
# ============================================================================


class AccountModel(Base):
    """Client login account (external customer)."""

    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(Text)
    contact_name: Mapped[str | None] = mapped_column(Text)
    company_name: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="viewer")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class UserModel(Base):
    """Internal staff member."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class ClientModel(Base):
    """End customer on whose behalf links are placed."""

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    website: Mapped[str | None] = mapped_column(Text)
    account_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), index=True
    )
    created_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class TargetPageModel(Base):
    """Client URL that placed content should link to."""

    __tablename__ = "target_pages"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")

    # Lazily backfilled by target page enrichment
    keywords: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


# ============================================================================
# Orders
# ============================================================================


class OrderModel(Base):
    """A client's purchase request. Monetary amounts are stored in cents."""

    __tablename__ = "orders"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), index=True
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft", index=True)
    state: Mapped[str | None] = mapped_column(String(50), default="configuring")

    subtotal_retail: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_retail: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_wholesale: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    assigned_to: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    internal_notes: Mapped[str | None] = mapped_column(Text)

    share_token: Mapped[str | None] = mapped_column(String(128), unique=True)
    share_expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class OrderLineItemModel(Base):
    """One purchased link placement within an order."""

    __tablename__ = "order_line_items"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True
    )
    target_page_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("target_pages.id", ondelete="SET NULL")
    )
    target_page_url: Mapped[str | None] = mapped_column(Text)
    anchor_text: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    assigned_domain_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bulk_analysis_domains.id", ondelete="SET NULL")
    )
    assigned_domain: Mapped[str | None] = mapped_column(Text)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime)

    estimated_price: Mapped[int | None] = mapped_column(Integer)
    wholesale_price: Mapped[int | None] = mapped_column(Integer)
    approved_price: Mapped[int | None] = mapped_column(Integer)

    # Free-form bag; "metadata" is reserved on declarative classes
    item_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    added_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    modified_at: Mapped[datetime | None] = mapped_column(DateTime, onupdate=utcnow)

    __table_args__ = (Index("idx_line_items_order_client", "order_id", "client_id"),)


class OrderStatusHistoryModel(Base):
    """Audit trail of order status transitions."""

    __tablename__ = "order_status_history"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status: Mapped[str | None] = mapped_column(String(50))
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    notes: Mapped[str | None] = mapped_column(Text)


class OrderShareTokenModel(Base):
    """Usage tracking for order share links."""

    __tablename__ = "order_share_tokens"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime)
    used_by_ip: Mapped[str | None] = mapped_column(String(64))
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class OrderBenchmarkModel(Base):
    """Versioned snapshot of what an order asked for at confirmation time."""

    __tablename__ = "order_benchmarks"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    captured_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    capture_reason: Mapped[str] = mapped_column(String(50), nullable=False)
    benchmark_type: Mapped[str] = mapped_column(String(50), nullable=False, default="initial")
    benchmark_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    notes: Mapped[str | None] = mapped_column(Text)
    captured_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("order_id", "version", name="uq_order_benchmark_version"),)


# ============================================================================
# Bulk analysis
# ============================================================================


class BulkAnalysisProjectModel(Base):
    """Per-client workspace of candidate domains.

    ``tags`` holds ``order:<orderId>`` for projects created by order
    confirmation. ``source_order_id`` carries the same link as a real column
    with a per-client uniqueness constraint; legacy rows only have the tag.
    """

    __tablename__ = "bulk_analysis_projects"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    source_order_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="SET NULL"), index=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    created_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("source_order_id", "client_id", name="uq_project_order_client"),
    )


class BulkAnalysisDomainModel(Base):
    """Candidate publishing domain evaluated inside a project."""

    __tablename__ = "bulk_analysis_domains"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bulk_analysis_projects.id", ondelete="CASCADE"),
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(Text, nullable=False)
    qualification_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="pending"
    )
    ai_qualification_reasoning: Mapped[str | None] = mapped_column(Text)
    suggested_target_url: Mapped[str | None] = mapped_column(Text)
    target_match_data: Mapped[dict | None] = mapped_column(JSON)
    has_dataforseo_results: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    domain_rating: Mapped[int | None] = mapped_column(Integer)
    traffic: Mapped[int | None] = mapped_column(Integer)
    retail_price: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_bulk_domains_client_domain", "client_id", "domain"),)


# ============================================================================
# Publisher marketplace
# ============================================================================


class PublisherModel(Base):
    """Publisher account; shadow publishers are unclaimed placeholders."""

    __tablename__ = "publishers"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    company_name: Mapped[str | None] = mapped_column(Text)
    account_status: Mapped[str] = mapped_column(String(50), nullable=False, default="shadow")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class WebsiteModel(Base):
    """Publishing website; ``domain`` is stored normalized."""

    __tablename__ = "websites"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    domain_rating: Mapped[int | None] = mapped_column(Integer)
    total_traffic: Mapped[int | None] = mapped_column(Integer)
    guest_post_cost: Mapped[float | None] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class PublisherOfferingModel(Base):
    """Something a publisher sells, e.g. ``Guest Post - example.com``."""

    __tablename__ = "publisher_offerings"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    publisher_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    offering_type: Mapped[str] = mapped_column(String(50), nullable=False, default="guest_post")
    offering_name: Mapped[str | None] = mapped_column(Text)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class PublisherOfferingRelationshipModel(Base):
    """Links a publisher's offering to the website it is sold on."""

    __tablename__ = "publisher_offering_relationships"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    publisher_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    website_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("websites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    offering_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("publisher_offerings.id", ondelete="CASCADE"), index=True
    )
    relationship_type: Mapped[str] = mapped_column(String(50), nullable=False, default="contact")
    verification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="claimed")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


# ============================================================================
# Migration registry
# ============================================================================


class MigrationRecordModel(Base):
    """Canonical record of applied SQL migrations."""

    __tablename__ = "migrations"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    checksum: Mapped[str | None] = mapped_column(String(64))
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
