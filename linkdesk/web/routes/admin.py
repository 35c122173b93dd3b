"""Admin data-repair and migration routes (internal staff only).

Every fix endpoint defaults to a dry run; send ``{"dryRun": false}`` to
write changes.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from linkdesk.config import get_config
from linkdesk.db.connection import get_session
from linkdesk.db.migrations import runner
from linkdesk.models import SessionUser
from linkdesk.repair.null_bytes import fix_null_bytes, scan_null_bytes
from linkdesk.repair.publisher_offerings import (
    diagnose_offering_relationships,
    fix_offering_relationships,
)
from linkdesk.web.auth import require_internal
from linkdesk.web.models import MigrationApplyRequest, MigrationRollbackRequest, RepairRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _limit(value: Optional[int]) -> int:
    return value or get_config().repair.batch_limit


@router.get("/null-bytes")
async def null_byte_scan(
    limit: Optional[int] = Query(default=None, ge=1),
    user: SessionUser = Depends(require_internal),
):
    async with get_session() as session:
        report = await scan_null_bytes(session, limit=limit)
    return report.to_dict()


@router.post("/null-bytes/fix")
async def null_byte_fix(
    body: Optional[RepairRequest] = None,
    user: SessionUser = Depends(require_internal),
):
    body = body or RepairRequest()
    async with get_session() as session:
        report = await fix_null_bytes(session, dry_run=body.dry_run, limit=_limit(body.limit))
    logger.info("Null byte fix by %s (dry_run=%s)", user.email, body.dry_run)
    return report.to_dict()


@router.get("/publisher-offerings/diagnose")
async def offerings_diagnose(user: SessionUser = Depends(require_internal)):
    async with get_session() as session:
        diagnosis = await diagnose_offering_relationships(session)
    return diagnosis.to_dict()


@router.post("/publisher-offerings/fix")
async def offerings_fix(
    body: Optional[RepairRequest] = None,
    user: SessionUser = Depends(require_internal),
):
    body = body or RepairRequest()
    async with get_session() as session:
        report = await fix_offering_relationships(
            session, dry_run=body.dry_run, limit=_limit(body.limit)
        )
    logger.info("Offering relationship fix by %s (dry_run=%s)", user.email, body.dry_run)
    return report.to_dict()


@router.get("/migrations")
async def migrations_status(user: SessionUser = Depends(require_internal)):
    async with get_session() as session:
        migrations = await runner.migration_status(session)
    return {
        "migrations": migrations,
        "pending": [m["name"] for m in migrations if not m["applied"]],
    }


@router.post("/migrations/apply")
async def migrations_apply(
    body: Optional[MigrationApplyRequest] = None,
    user: SessionUser = Depends(require_internal),
):
    body = body or MigrationApplyRequest()
    async with get_session() as session:
        report = await runner.apply_migrations(session, dry_run=body.dry_run, limit=body.limit)
    return report.to_dict()


@router.post("/migrations/rollback")
async def migrations_rollback(
    body: MigrationRollbackRequest,
    user: SessionUser = Depends(require_internal),
):
    async with get_session() as session:
        report = await runner.rollback_migration(session, body.name, dry_run=body.dry_run)
    return report.to_dict()
