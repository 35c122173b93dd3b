"""Pytest configuration and fixtures for LinkDesk tests.

Provides an in-memory SQLite database and a small factory for seeding it.
"""

from __future__ import annotations

import os
from datetime import datetime
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.pop("REDIS_URL", None)
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("LINKDESK_AUTH_DISABLED", None)

from linkdesk.config import reset_config  # noqa: E402
from linkdesk.db.models import (  # noqa: E402
    Base,
    BulkAnalysisDomainModel,
    BulkAnalysisProjectModel,
    ClientModel,
    OrderLineItemModel,
    OrderModel,
    PublisherModel,
    PublisherOfferingModel,
    PublisherOfferingRelationshipModel,
    TargetPageModel,
    WebsiteModel,
)


@pytest.fixture(autouse=True)
def fresh_config():
    """Re-read the environment for every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def staff_id() -> UUID:
    """Internal user performing actions."""
    return uuid4()


@pytest_asyncio.fixture()
async def db_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine) -> AsyncSession:
    SessionLocal = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()


class DataFactory:
    """Seeds rows with sensible defaults; every method flushes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _add(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def client(self, name: str = "Acme Dental", **kwargs) -> ClientModel:
        return await self._add(ClientModel(name=name, website=f"https://{name.split()[0].lower()}.com", **kwargs))

    async def target_page(self, client: ClientModel, url: str | None = None, **kwargs) -> TargetPageModel:
        return await self._add(
            TargetPageModel(client_id=client.id, url=url or f"{client.website}/services", **kwargs)
        )

    async def order(self, status: str = "pending_confirmation", **kwargs) -> OrderModel:
        return await self._add(OrderModel(status=status, **kwargs))

    async def line_item(
        self,
        order: OrderModel,
        client: ClientModel,
        page: TargetPageModel | None = None,
        **kwargs,
    ) -> OrderLineItemModel:
        kwargs.setdefault("status", "draft")
        kwargs.setdefault("estimated_price", 25000)
        return await self._add(
            OrderLineItemModel(
                order_id=order.id,
                client_id=client.id,
                target_page_id=page.id if page else None,
                target_page_url=page.url if page else None,
                **kwargs,
            )
        )

    async def project(self, client: ClientModel, name: str = "Analysis", **kwargs) -> BulkAnalysisProjectModel:
        kwargs.setdefault("tags", [])
        return await self._add(BulkAnalysisProjectModel(client_id=client.id, name=name, **kwargs))

    async def domain(
        self, project: BulkAnalysisProjectModel, domain: str, **kwargs
    ) -> BulkAnalysisDomainModel:
        kwargs.setdefault("qualification_status", "high_quality")
        return await self._add(
            BulkAnalysisDomainModel(
                project_id=project.id, client_id=project.client_id, domain=domain, **kwargs
            )
        )

    async def publisher(self, email: str | None = None) -> PublisherModel:
        return await self._add(PublisherModel(email=email or f"{uuid4().hex[:8]}@publisher.test"))

    async def website(self, domain: str) -> WebsiteModel:
        return await self._add(WebsiteModel(domain=domain))

    async def offering(self, publisher: PublisherModel, name: str | None, **kwargs) -> PublisherOfferingModel:
        return await self._add(
            PublisherOfferingModel(publisher_id=publisher.id, offering_name=name, **kwargs)
        )

    async def relationship(
        self,
        offering: PublisherOfferingModel,
        website: WebsiteModel,
        created_at: datetime | None = None,
        **kwargs,
    ) -> PublisherOfferingRelationshipModel:
        if created_at is not None:
            kwargs["created_at"] = created_at
        return await self._add(
            PublisherOfferingRelationshipModel(
                publisher_id=offering.publisher_id,
                website_id=website.id,
                offering_id=offering.id,
                **kwargs,
            )
        )


@pytest.fixture
def factory(db_session) -> DataFactory:
    return DataFactory(db_session)
