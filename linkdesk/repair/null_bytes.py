"""Find and strip NUL characters from free-text columns.

LLM output and scraped pages occasionally carry ``\\x00`` (or its JSON escape
``\\u0000``), which PostgreSQL refuses in text values and which breaks
exports downstream. The scan runs in Python over keyset-paged batches so it
behaves the same on every backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.db.models import (
    BulkAnalysisDomainModel,
    OrderLineItemModel,
    PublisherOfferingModel,
    TargetPageModel,
)

logger = logging.getLogger(__name__)

NULL_SEQUENCES = ("\x00", "\\u0000")
SCAN_BATCH_SIZE = 1000


@dataclass(frozen=True)
class TextColumn:
    model: type
    attribute: str

    @property
    def label(self) -> str:
        return f"{self.model.__tablename__}.{self.attribute}"


TEXT_COLUMNS = (
    TextColumn(TargetPageModel, "description"),
    TextColumn(TargetPageModel, "keywords"),
    TextColumn(BulkAnalysisDomainModel, "ai_qualification_reasoning"),
    TextColumn(OrderLineItemModel, "anchor_text"),
    TextColumn(PublisherOfferingModel, "offering_name"),
)


def has_null_bytes(value: str | None) -> bool:
    return bool(value) and any(seq in value for seq in NULL_SEQUENCES)


def strip_null_bytes(value: str) -> str:
    """Remove NUL sequences until none remain.

    Removing one escape can join its neighbours into a new one, so a
    single replace pass is not enough.
    """
    while has_null_bytes(value):
        for seq in NULL_SEQUENCES:
            value = value.replace(seq, "")
    return value


@dataclass
class ColumnReport:
    column: str
    record_ids: list[str] = field(default_factory=list)
    fixed: int = 0

    def to_dict(self) -> dict:
        return {"column": self.column, "affected": len(self.record_ids), "recordIds": self.record_ids, "fixed": self.fixed}


@dataclass
class NullByteReport:
    dry_run: bool
    columns: list[ColumnReport] = field(default_factory=list)

    @property
    def total_affected(self) -> int:
        return sum(len(c.record_ids) for c in self.columns)

    @property
    def total_fixed(self) -> int:
        return sum(c.fixed for c in self.columns)

    def to_dict(self) -> dict:
        return {
            "dryRun": self.dry_run,
            "totalAffected": self.total_affected,
            "totalFixed": self.total_fixed,
            "columns": [c.to_dict() for c in self.columns],
        }


async def _scan_column(session: AsyncSession, column: TextColumn, limit: int | None) -> list:
    """Ids of rows whose value contains a NUL sequence, up to ``limit``."""
    model = column.model
    attr = getattr(model, column.attribute)
    found = []
    last_id = None

    while True:
        stmt = select(model.id, attr).where(attr.is_not(None)).order_by(model.id).limit(SCAN_BATCH_SIZE)
        if last_id is not None:
            stmt = stmt.where(model.id > last_id)
        rows = (await session.execute(stmt)).all()
        if not rows:
            break

        for record_id, value in rows:
            if has_null_bytes(value):
                found.append(record_id)
                if limit is not None and len(found) >= limit:
                    return found
        last_id = rows[-1][0]
        if len(rows) < SCAN_BATCH_SIZE:
            break
    return found


async def scan_null_bytes(session: AsyncSession, limit: int | None = None) -> NullByteReport:
    """Report, per registered column, the records containing NUL characters."""
    report = NullByteReport(dry_run=True)
    for column in TEXT_COLUMNS:
        ids = await _scan_column(session, column, limit)
        report.columns.append(ColumnReport(column.label, [str(i) for i in ids]))
        if ids:
            logger.info("Found %d records with null bytes in %s", len(ids), column.label)
    return report


async def fix_null_bytes(
    session: AsyncSession, dry_run: bool = True, limit: int = 100
) -> NullByteReport:
    """Strip NUL characters from at most ``limit`` records.

    Dry run only reports. The caller commits.
    """
    report = NullByteReport(dry_run=dry_run)
    remaining = limit

    for column in TEXT_COLUMNS:
        column_report = ColumnReport(column.label)
        report.columns.append(column_report)
        if remaining <= 0:
            continue

        ids = await _scan_column(session, column, remaining)
        column_report.record_ids = [str(i) for i in ids]
        remaining -= len(ids)
        if dry_run:
            continue

        for record_id in ids:
            record = await session.get(column.model, record_id)
            value = getattr(record, column.attribute)
            if has_null_bytes(value):
                setattr(record, column.attribute, strip_null_bytes(value))
                column_report.fixed += 1

    if not dry_run:
        await session.flush()
        logger.info("Stripped null bytes from %d records", report.total_fixed)
    return report
