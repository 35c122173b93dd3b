"""Plain SQL migration runner.

Migrations are ``.sql`` files applied in file-name order. A migration named
``0002_foo`` may ship a ``0002_foo.rollback.sql`` companion. Applied
migrations are recorded in the ``migrations`` table together with a
checksum of the file so edits after the fact are visible in the status.

Older deployments tracked migrations in ``migration_history``; its entries
are copied into ``migrations`` the first time the runner writes to the
database. Dry runs and status reads merge them in memory instead.

Statements are split on ``;``. Dollar-quoted bodies are not supported.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy import inspect, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.config import get_config
from linkdesk.core.errors import MigrationError, NotFoundError, ValidationError
from linkdesk.db.models import MigrationRecordModel, utcnow

logger = logging.getLogger(__name__)

LEGACY_TABLE = "migration_history"
ROLLBACK_SUFFIX = ".rollback.sql"


@dataclass(frozen=True)
class Migration:
    name: str
    path: Path

    @property
    def rollback_path(self) -> Path:
        return self.path.with_name(f"{self.name}{ROLLBACK_SUFFIX}")

    @property
    def has_rollback(self) -> bool:
        return self.rollback_path.exists()

    @property
    def sql(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @property
    def rollback_sql(self) -> str:
        return self.rollback_path.read_text(encoding="utf-8")

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


@dataclass
class MigrationRunReport:
    dry_run: bool
    applied: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    statements: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "dryRun": self.dry_run,
            "applied": self.applied,
            "pending": self.pending,
            "statements": self.statements if self.dry_run else {},
        }


def split_statements(sql: str) -> list[str]:
    """Split a SQL script into statements, dropping ``--`` comment lines."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


def discover_migrations(directory: Path | None = None) -> list[Migration]:
    directory = directory or get_config().migrations_dir
    if not directory.exists():
        return []
    return [
        Migration(name=path.stem, path=path)
        for path in sorted(directory.glob("*.sql"))
        if not path.name.endswith(ROLLBACK_SUFFIX)
    ]


async def _table_exists(session: AsyncSession, name: str) -> bool:
    return await session.run_sync(lambda s: inspect(s.connection()).has_table(name))


async def _legacy_entries(session: AsyncSession) -> list[tuple[str, datetime]]:
    if not await _table_exists(session, LEGACY_TABLE):
        return []
    rows = (
        await session.execute(text(f"SELECT migration_name, executed_at FROM {LEGACY_TABLE}"))
    ).all()
    entries = []
    for name, executed_at in rows:
        if isinstance(executed_at, str):
            executed_at = datetime.fromisoformat(executed_at)
        entries.append((name, executed_at or utcnow()))
    return entries


async def ensure_registry(session: AsyncSession) -> int:
    """Create the ``migrations`` table and absorb legacy history.

    Returns the number of legacy entries copied over.
    """
    await session.run_sync(
        lambda s: MigrationRecordModel.__table__.create(s.connection(), checkfirst=True)
    )
    legacy = await _legacy_entries(session)
    if not legacy:
        return 0

    known = set((await session.execute(select(MigrationRecordModel.name))).scalars().all())
    copied = 0
    for name, applied_at in legacy:
        if name in known:
            continue
        session.add(MigrationRecordModel(name=name, applied_at=applied_at))
        known.add(name)
        copied += 1

    if copied:
        await session.commit()
        logger.info("Copied %d entries from %s into migrations", copied, LEGACY_TABLE)
    return copied


async def applied_migrations(
    session: AsyncSession, read_only: bool = False
) -> dict[str, MigrationRecordModel]:
    """Registry entries by name.

    With ``read_only`` nothing is created or copied: a missing ``migrations``
    table reads as empty and legacy entries are merged in memory as
    unsaved records.
    """
    if not read_only:
        await ensure_registry(session)
    elif not await _table_exists(session, MigrationRecordModel.__tablename__):
        return {
            name: MigrationRecordModel(name=name, applied_at=applied_at)
            for name, applied_at in await _legacy_entries(session)
        }

    records = (await session.execute(select(MigrationRecordModel))).scalars().all()
    applied = {r.name: r for r in records}
    if read_only:
        for name, applied_at in await _legacy_entries(session):
            applied.setdefault(name, MigrationRecordModel(name=name, applied_at=applied_at))
    return applied


async def pending_migrations(
    session: AsyncSession, directory: Path | None = None, read_only: bool = False
) -> list[Migration]:
    applied = await applied_migrations(session, read_only=read_only)
    return [m for m in discover_migrations(directory) if m.name not in applied]


async def apply_migrations(
    session: AsyncSession,
    dry_run: bool = True,
    limit: int | None = None,
    directory: Path | None = None,
) -> MigrationRunReport:
    """Apply pending migrations in order, committing after each one.

    A dry run only reads: it neither creates the registry nor copies legacy
    history.

    Raises:
        MigrationError: A migration failed; it is rolled back and later ones
            are not attempted
    """
    pending = await pending_migrations(session, directory, read_only=dry_run)
    batch = pending if limit is None else pending[:limit]
    report = MigrationRunReport(dry_run=dry_run, pending=[m.name for m in pending])

    for migration in batch:
        statements = split_statements(migration.sql)
        if dry_run:
            report.statements[migration.name] = statements
            continue

        logger.info("Applying migration %s (%d statements)", migration.name, len(statements))
        try:
            for statement in statements:
                await session.execute(text(statement))
            session.add(MigrationRecordModel(name=migration.name, checksum=migration.checksum))
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Migration %s failed: %s", migration.name, e)
            raise MigrationError(
                f"Migration {migration.name} failed: {e}", details={"migration": migration.name}
            ) from e

        report.applied.append(migration.name)
        report.pending.remove(migration.name)

    return report


async def rollback_migration(
    session: AsyncSession,
    name: str,
    dry_run: bool = True,
    directory: Path | None = None,
) -> MigrationRunReport:
    """Run a migration's rollback script and forget it was applied.

    Raises:
        NotFoundError: No migration file with that name
        ValidationError: Not applied, or no rollback script
        MigrationError: The rollback SQL failed
    """
    migration = next((m for m in discover_migrations(directory) if m.name == name), None)
    if migration is None:
        raise NotFoundError(f"Unknown migration: {name}")

    applied = await applied_migrations(session, read_only=dry_run)
    record = applied.get(name)
    if record is None:
        raise ValidationError(f"Migration {name} has not been applied")
    if not migration.has_rollback:
        raise ValidationError(f"Migration {name} has no rollback script")

    report = MigrationRunReport(dry_run=dry_run)
    statements = split_statements(migration.rollback_sql)
    if dry_run:
        report.statements[name] = statements
        return report

    logger.warning("Rolling back migration %s", name)
    try:
        for statement in statements:
            await session.execute(text(statement))
        await session.delete(record)
        await session.commit()
    except Exception as e:
        await session.rollback()
        raise MigrationError(f"Rollback of {name} failed: {e}", details={"migration": name}) from e

    report.applied.append(name)
    return report


async def migration_status(session: AsyncSession, directory: Path | None = None) -> list[dict]:
    """One row per known migration: files on disk plus registry-only entries.

    Read-only; see ``applied_migrations``.
    """
    applied = await applied_migrations(session, read_only=True)
    rows = []
    seen = set()

    for migration in discover_migrations(directory):
        record = applied.get(migration.name)
        checksum = migration.checksum
        rows.append(
            {
                "name": migration.name,
                "applied": record is not None,
                "appliedAt": record.applied_at.isoformat() if record else None,
                "checksumMatches": (
                    None if record is None or record.checksum is None else record.checksum == checksum
                ),
                "hasRollback": migration.has_rollback,
            }
        )
        seen.add(migration.name)

    for name, record in sorted(applied.items()):
        if name not in seen:
            rows.append(
                {
                    "name": name,
                    "applied": True,
                    "appliedAt": record.applied_at.isoformat(),
                    "checksumMatches": None,
                    "hasRollback": False,
                }
            )
    return rows
