"""Repair publisher offering -> website relationships.

Every offering should be sold on exactly one website through exactly one
relationship row. Imports of shadow publishers left two kinds of damage:
offerings with several relationship rows, and offerings with none at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.db.models import (
    PublisherOfferingModel,
    PublisherOfferingRelationshipModel,
    WebsiteModel,
)
from linkdesk.utils.domains import domain_from_offering_name

logger = logging.getLogger(__name__)


@dataclass
class OfferingDiagnosis:
    duplicates: list[dict] = field(default_factory=list)
    orphans: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "duplicateCount": len(self.duplicates),
            "orphanCount": len(self.orphans),
            "duplicates": self.duplicates,
            "orphans": self.orphans,
        }


@dataclass
class OfferingRepairReport:
    dry_run: bool
    duplicates_resolved: int = 0
    relationships_removed: int = 0
    orphans_linked: int = 0
    actions: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "dryRun": self.dry_run,
            "duplicatesResolved": self.duplicates_resolved,
            "relationshipsRemoved": self.relationships_removed,
            "orphansLinked": self.orphans_linked,
            "actions": self.actions,
            "skipped": self.skipped,
        }


def _keep_order(rel: PublisherOfferingRelationshipModel):
    # Verified first, then oldest
    return (rel.verification_status != "verified", rel.created_at, str(rel.id))


async def _duplicate_offering_ids(session: AsyncSession, limit: int | None = None) -> list:
    stmt = (
        select(PublisherOfferingRelationshipModel.offering_id)
        .where(PublisherOfferingRelationshipModel.offering_id.is_not(None))
        .group_by(PublisherOfferingRelationshipModel.offering_id)
        .having(func.count(PublisherOfferingRelationshipModel.id) > 1)
        .order_by(PublisherOfferingRelationshipModel.offering_id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def _orphan_offerings(
    session: AsyncSession, limit: int | None = None
) -> list[PublisherOfferingModel]:
    stmt = (
        select(PublisherOfferingModel)
        .outerjoin(
            PublisherOfferingRelationshipModel,
            PublisherOfferingRelationshipModel.offering_id == PublisherOfferingModel.id,
        )
        .where(PublisherOfferingRelationshipModel.id.is_(None))
        .order_by(PublisherOfferingModel.created_at, PublisherOfferingModel.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def _relationships_for(session: AsyncSession, offering_id) -> list[PublisherOfferingRelationshipModel]:
    result = await session.execute(
        select(PublisherOfferingRelationshipModel).where(
            PublisherOfferingRelationshipModel.offering_id == offering_id
        )
    )
    return sorted(result.scalars().all(), key=_keep_order)


async def _website_for_domain(session: AsyncSession, domain: str) -> WebsiteModel | None:
    result = await session.execute(select(WebsiteModel).where(WebsiteModel.domain == domain))
    return result.scalars().first()


async def diagnose_offering_relationships(session: AsyncSession) -> OfferingDiagnosis:
    diagnosis = OfferingDiagnosis()

    for offering_id in await _duplicate_offering_ids(session):
        offering = await session.get(PublisherOfferingModel, offering_id)
        rels = await _relationships_for(session, offering_id)
        diagnosis.duplicates.append(
            {
                "offeringId": str(offering_id),
                "offeringName": offering.offering_name if offering else None,
                "relationshipCount": len(rels),
                "relationshipIds": [str(r.id) for r in rels],
                "websiteIds": sorted({str(r.website_id) for r in rels}),
            }
        )

    for offering in await _orphan_offerings(session):
        domain = domain_from_offering_name(offering.offering_name)
        website = await _website_for_domain(session, domain) if domain else None
        diagnosis.orphans.append(
            {
                "offeringId": str(offering.id),
                "offeringName": offering.offering_name,
                "publisherId": str(offering.publisher_id),
                "derivedDomain": domain,
                "websiteId": str(website.id) if website else None,
            }
        )

    logger.info(
        "Offering diagnosis: %d duplicated, %d orphaned",
        len(diagnosis.duplicates),
        len(diagnosis.orphans),
    )
    return diagnosis


async def fix_offering_relationships(
    session: AsyncSession, dry_run: bool = True, limit: int = 100
) -> OfferingRepairReport:
    """Collapse duplicate relationships and link orphaned offerings.

    At most ``limit`` offerings are handled per pass, duplicates first.
    The caller commits.
    """
    report = OfferingRepairReport(dry_run=dry_run)
    remaining = limit

    for offering_id in await _duplicate_offering_ids(session, remaining):
        rels = await _relationships_for(session, offering_id)
        keep, extra = rels[0], rels[1:]
        report.actions.append(
            {
                "action": "dedupe",
                "offeringId": str(offering_id),
                "keptRelationshipId": str(keep.id),
                "removedRelationshipIds": [str(r.id) for r in extra],
            }
        )
        report.duplicates_resolved += 1
        report.relationships_removed += len(extra)
        if not dry_run:
            for rel in extra:
                await session.delete(rel)
    remaining -= report.duplicates_resolved

    if remaining > 0:
        for offering in await _orphan_offerings(session, remaining):
            domain = domain_from_offering_name(offering.offering_name)
            if domain is None:
                report.skipped.append(
                    {
                        "offeringId": str(offering.id),
                        "offeringName": offering.offering_name,
                        "reason": "Could not derive a domain from the offering name",
                    }
                )
                continue

            website = await _website_for_domain(session, domain)
            if website is None:
                report.skipped.append(
                    {
                        "offeringId": str(offering.id),
                        "offeringName": offering.offering_name,
                        "reason": f"No website found for domain {domain}",
                    }
                )
                continue

            report.actions.append(
                {
                    "action": "link",
                    "offeringId": str(offering.id),
                    "publisherId": str(offering.publisher_id),
                    "websiteId": str(website.id),
                    "domain": domain,
                }
            )
            report.orphans_linked += 1
            if not dry_run:
                session.add(
                    PublisherOfferingRelationshipModel(
                        publisher_id=offering.publisher_id,
                        website_id=website.id,
                        offering_id=offering.id,
                        internal_notes="Linked by offering relationship repair",
                    )
                )

    if not dry_run:
        await session.flush()
        logger.info(
            "Offering repair: removed %d duplicate relationships, linked %d orphans, skipped %d",
            report.relationships_removed,
            report.orphans_linked,
            len(report.skipped),
        )
    return report
