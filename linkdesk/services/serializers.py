"""camelCase JSON views of ORM rows for API responses."""

from __future__ import annotations

from datetime import datetime

from linkdesk.db.models import (
    BulkAnalysisDomainModel,
    BulkAnalysisProjectModel,
    ClientModel,
    OrderLineItemModel,
    OrderModel,
    TargetPageModel,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str(value) -> str | None:
    return str(value) if value is not None else None


def order_to_dict(order: OrderModel, *, include_internal: bool = True) -> dict:
    data = {
        "id": str(order.id),
        "accountId": _str(order.account_id),
        "status": order.status,
        "state": order.state,
        "subtotalRetail": order.subtotal_retail,
        "totalRetail": order.total_retail,
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
        "approvedAt": _iso(order.approved_at),
    }
    if include_internal:
        data.update(
            {
                "totalWholesale": order.total_wholesale,
                "createdBy": _str(order.created_by),
                "assignedTo": _str(order.assigned_to),
                "internalNotes": order.internal_notes,
                "shareExpiresAt": _iso(order.share_expires_at),
            }
        )
    return data


def client_to_dict(client: ClientModel) -> dict:
    return {"id": str(client.id), "name": client.name, "website": client.website}


def target_page_to_dict(page: TargetPageModel) -> dict:
    return {
        "id": str(page.id),
        "url": page.url,
        "keywords": page.keywords,
        "description": page.description,
    }


def line_item_to_dict(item: OrderLineItemModel, *, include_internal: bool = True) -> dict:
    data = {
        "id": str(item.id),
        "orderId": str(item.order_id),
        "clientId": str(item.client_id),
        "targetPageId": _str(item.target_page_id),
        "targetPageUrl": item.target_page_url,
        "anchorText": item.anchor_text,
        "status": item.status,
        "assignedDomainId": _str(item.assigned_domain_id),
        "assignedDomain": item.assigned_domain,
        "estimatedPrice": item.estimated_price,
        "approvedPrice": item.approved_price,
        "metadata": item.item_metadata or {},
        "displayOrder": item.display_order,
        "addedAt": _iso(item.added_at),
    }
    if include_internal:
        data["wholesalePrice"] = item.wholesale_price
        data["addedBy"] = _str(item.added_by)
    return data


def project_to_dict(project: BulkAnalysisProjectModel) -> dict:
    return {
        "id": str(project.id),
        "clientId": str(project.client_id),
        "name": project.name,
        "description": project.description,
        "tags": project.tags or [],
        "sourceOrderId": _str(project.source_order_id),
        "createdAt": _iso(project.created_at),
    }


def domain_to_dict(domain: BulkAnalysisDomainModel) -> dict:
    return {
        "id": str(domain.id),
        "projectId": _str(domain.project_id),
        "domain": domain.domain,
        "qualificationStatus": domain.qualification_status,
        "aiQualificationReasoning": domain.ai_qualification_reasoning,
        "suggestedTargetUrl": domain.suggested_target_url,
        "targetMatchData": domain.target_match_data,
        "hasDataforseoResults": domain.has_dataforseo_results,
        "domainRating": domain.domain_rating,
        "traffic": domain.traffic,
        "retailPrice": domain.retail_price,
    }
