"""Database layer for LinkDesk with async SQLAlchemy."""

from linkdesk.db.connection import get_session, init_db
from linkdesk.db.models import (
    AccountModel,
    Base,
    BulkAnalysisDomainModel,
    BulkAnalysisProjectModel,
    ClientModel,
    MigrationRecordModel,
    OrderBenchmarkModel,
    OrderLineItemModel,
    OrderModel,
    OrderShareTokenModel,
    OrderStatusHistoryModel,
    PublisherModel,
    PublisherOfferingModel,
    PublisherOfferingRelationshipModel,
    TargetPageModel,
    UserModel,
    WebsiteModel,
)

__all__ = [
    "Base",
    "AccountModel",
    "UserModel",
    "ClientModel",
    "TargetPageModel",
    "OrderModel",
    "OrderLineItemModel",
    "OrderStatusHistoryModel",
    "OrderShareTokenModel",
    "OrderBenchmarkModel",
    "BulkAnalysisProjectModel",
    "BulkAnalysisDomainModel",
    "PublisherModel",
    "WebsiteModel",
    "PublisherOfferingModel",
    "PublisherOfferingRelationshipModel",
    "MigrationRecordModel",
    "get_session",
    "init_db",
]
