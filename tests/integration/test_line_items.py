"""Integration tests for listing, adding, editing and cancelling order line items."""

from __future__ import annotations

from uuid import uuid4

import pytest

from linkdesk.core.errors import OrderNotFoundError, PermissionDeniedError, ValidationError
from linkdesk.models import LineItemInput, LineItemUpdate, SessionUser, UserType
from linkdesk.services.line_items import (
    add_line_items,
    delete_line_items,
    list_line_items,
    update_line_items,
)


@pytest.fixture
def staff(staff_id) -> SessionUser:
    return SessionUser(user_id=staff_id, user_type=UserType.INTERNAL, email="ops@linkdesk.io")


@pytest.fixture
def account_user() -> SessionUser:
    return SessionUser(user_id=uuid4(), user_type=UserType.ACCOUNT, email="owner@client.com")


@pytest.mark.asyncio
async def test_list_returns_items_and_summary(db_session, factory, staff):
    acme = await factory.client("Acme Dental")
    birch = await factory.client("Birch Legal")
    order = await factory.order()
    await factory.line_item(order, acme, display_order=0)
    await factory.line_item(order, acme, status="delivered", approved_price=30000, display_order=1)
    await factory.line_item(order, birch, status="pending_selection", display_order=2)

    result = await list_line_items(db_session, order.id, staff)

    assert result["orderId"] == str(order.id)
    assert len(result["lineItems"]) == 3
    summary = result["summary"]
    assert summary["total"] == 3
    assert summary["byStatus"] == {"draft": 1, "delivered": 1, "pending_selection": 1}
    assert summary["byClient"] == {"Acme Dental": 2, "Birch Legal": 1}
    assert summary["totalValue"] == 25000 + 30000 + 25000
    assert summary["deliveredCount"] == 1
    assert summary["pendingCount"] == 2


@pytest.mark.asyncio
async def test_list_filters_by_status_and_client(db_session, factory, staff):
    acme = await factory.client("Acme Dental")
    birch = await factory.client("Birch Legal")
    order = await factory.order()
    await factory.line_item(order, acme)
    await factory.line_item(order, acme, status="delivered")
    await factory.line_item(order, birch)

    by_status = await list_line_items(db_session, order.id, staff, status="delivered")
    by_client = await list_line_items(db_session, order.id, staff, client_id=birch.id)

    assert by_status["summary"]["total"] == 1
    assert [i["clientId"] for i in by_client["lineItems"]] == [str(birch.id)]


@pytest.mark.asyncio
async def test_list_denies_other_accounts(db_session, factory, account_user):
    order = await factory.order(account_id=uuid4())

    with pytest.raises(PermissionDeniedError):
        await list_line_items(db_session, order.id, account_user)


@pytest.mark.asyncio
async def test_list_unknown_order(db_session, staff):
    with pytest.raises(OrderNotFoundError):
        await list_line_items(db_session, uuid4(), staff)


@pytest.mark.asyncio
async def test_add_appends_in_display_order_and_updates_total(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order(total_retail=25000)
    await factory.line_item(order, client, display_order=4)

    created = await add_line_items(
        db_session,
        order.id,
        [
            LineItemInput(clientId=client.id, anchorText="best dentist", estimatedPrice=30000),
            LineItemInput(
                clientId=client.id,
                estimatedPrice=20000,
                metadata={"assignedDomain": "dentalblog.com", "inclusionStatus": "saved_for_later"},
            ),
        ],
        staff,
    )

    assert [i.display_order for i in created] == [5, 6]
    assert created[0].item_metadata == {"inclusionStatus": "included"}
    assert created[0].status == "draft"
    assert created[0].added_by == staff.user_id
    assert created[1].assigned_domain == "dentalblog.com"
    assert created[1].assigned_at is not None
    assert created[1].item_metadata["inclusionStatus"] == "saved_for_later"
    assert order.total_retail == 25000 + 30000 + 20000


@pytest.mark.asyncio
async def test_add_to_empty_order_starts_at_zero(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order()

    created = await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], staff)

    assert created[0].display_order == 0


@pytest.mark.asyncio
async def test_add_requires_items_and_client(db_session, factory, staff):
    order = await factory.order()

    with pytest.raises(ValidationError, match="items array is required"):
        await add_line_items(db_session, order.id, [], staff)

    with pytest.raises(ValidationError, match="clientId is required"):
        await add_line_items(db_session, order.id, [LineItemInput(anchorText="x")], staff)


@pytest.mark.asyncio
async def test_account_can_add_to_own_editable_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="draft", account_id=account_user.user_id)

    created = await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], account_user)

    assert len(created) == 1


@pytest.mark.asyncio
async def test_account_cannot_add_to_foreign_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="draft", account_id=uuid4())

    with pytest.raises(PermissionDeniedError, match="Cannot add line items to this order"):
        await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], account_user)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["payment_pending", "paid", "completed"])
async def test_account_blocked_once_payment_begins(db_session, factory, account_user, status):
    client = await factory.client()
    order = await factory.order(status=status, account_id=account_user.user_id)

    with pytest.raises(ValidationError, match="once payment process begins"):
        await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], account_user)


@pytest.mark.asyncio
async def test_account_blocked_on_cancelled_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="cancelled", account_id=account_user.user_id)

    with pytest.raises(ValidationError, match="Cannot add line items in status: 'cancelled'"):
        await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], account_user)


@pytest.mark.asyncio
async def test_internal_user_bypasses_status_rules(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order(status="paid", account_id=uuid4())

    created = await add_line_items(db_session, order.id, [LineItemInput(clientId=client.id)], staff)

    assert len(created) == 1


# ============================================================================
# Editing
# ============================================================================


@pytest.mark.asyncio
async def test_update_tracks_changes_and_recomputes_total(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order(total_retail=50000)
    first = await factory.line_item(order, client, anchor_text="old anchor", item_metadata={"a": 1})
    second = await factory.line_item(order, client)

    updated = await update_line_items(
        db_session,
        order.id,
        [
            LineItemUpdate(id=first.id, anchorText="new anchor", estimatedPrice=40000, metadata={"b": 2}),
            LineItemUpdate(id=second.id, approvedPrice=30000),
        ],
        staff,
        reason="client feedback",
    )

    changes = {item.id: c for item, c in updated}
    assert changes[first.id]["anchor_text"] == {"from": "old anchor", "to": "new anchor"}
    assert changes[first.id]["estimated_price"] == {"from": 25000, "to": 40000}
    assert changes[first.id]["metadata"]["to"] == {"a": 1, "b": 2}
    assert changes[second.id] == {"approved_price": {"from": None, "to": 30000}}
    assert first.item_metadata == {"a": 1, "b": 2}
    assert first.modified_at is not None
    assert order.total_retail == 40000 + 30000


@pytest.mark.asyncio
async def test_update_skips_unchanged_and_foreign_items(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order(total_retail=25000)
    other_order = await factory.order()
    item = await factory.line_item(order, client, anchor_text="same")
    foreign = await factory.line_item(other_order, client, anchor_text="keep")

    updated = await update_line_items(
        db_session,
        order.id,
        [LineItemUpdate(id=item.id, anchorText="same"), LineItemUpdate(id=foreign.id, anchorText="x")],
        staff,
    )

    assert updated == []
    assert foreign.anchor_text == "keep"
    assert order.total_retail == 25000


@pytest.mark.asyncio
async def test_update_assigning_domain_moves_draft_to_pending_selection(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order()
    item = await factory.line_item(order, client)

    [(updated, changes)] = await update_line_items(
        db_session, order.id, [LineItemUpdate(id=item.id, assignedDomain="dentalblog.com")], staff
    )

    assert updated.assigned_domain == "dentalblog.com"
    assert updated.assigned_at is not None
    assert updated.status == "pending_selection"
    assert changes["status"] == {"from": "draft", "to": "pending_selection"}


@pytest.mark.asyncio
async def test_update_rejects_clearing_client(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order()
    item = await factory.line_item(order, client)

    with pytest.raises(ValidationError, match="clientId cannot be cleared"):
        await update_line_items(db_session, order.id, [LineItemUpdate(id=item.id, clientId=None)], staff)

    assert item.client_id == client.id


@pytest.mark.asyncio
async def test_update_requires_updates(db_session, factory, staff):
    order = await factory.order()

    with pytest.raises(ValidationError, match="updates array is required"):
        await update_line_items(db_session, order.id, [], staff)


@pytest.mark.asyncio
async def test_account_cannot_edit_foreign_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="draft", account_id=uuid4())
    item = await factory.line_item(order, client)

    with pytest.raises(PermissionDeniedError, match="Cannot edit line items for this order"):
        await update_line_items(
            db_session, order.id, [LineItemUpdate(id=item.id, anchorText="x")], account_user
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["payment_processing", "paid", "refunded"])
async def test_account_edit_blocked_once_payment_begins(db_session, factory, account_user, status):
    client = await factory.client()
    order = await factory.order(status=status, account_id=account_user.user_id)
    item = await factory.line_item(order, client, anchor_text="keep")

    with pytest.raises(ValidationError, match="Cannot edit line items once payment process begins"):
        await update_line_items(
            db_session, order.id, [LineItemUpdate(id=item.id, anchorText="x")], account_user
        )

    assert item.anchor_text == "keep"


@pytest.mark.asyncio
async def test_account_can_edit_own_invoiced_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="invoiced", account_id=account_user.user_id)
    item = await factory.line_item(order, client)

    updated = await update_line_items(
        db_session, order.id, [LineItemUpdate(id=item.id, anchorText="new")], account_user
    )

    assert len(updated) == 1


# ============================================================================
# Cancelling
# ============================================================================


@pytest.mark.asyncio
async def test_delete_cancels_and_recomputes_total(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order(total_retail=75000)
    kept = await factory.line_item(order, client, estimated_price=30000)
    dropped = await factory.line_item(order, client, estimated_price=20000)
    other = await factory.line_item(order, client, estimated_price=25000)

    cancelled = await delete_line_items(
        db_session, order.id, [dropped.id, other.id], staff, reason="client changed plans"
    )

    assert {i.id for i in cancelled} == {dropped.id, other.id}
    assert dropped.status == "cancelled"
    assert dropped.item_metadata["cancelledFromStatus"] == "draft"
    assert dropped.item_metadata["cancellationReason"] == "client changed plans"
    assert dropped.item_metadata["cancelledBy"] == str(staff.user_id)
    assert kept.status == "draft"
    assert order.total_retail == 30000


@pytest.mark.asyncio
async def test_delete_skips_foreign_and_already_cancelled(db_session, factory, staff):
    client = await factory.client()
    order = await factory.order()
    other_order = await factory.order()
    done = await factory.line_item(order, client, status="cancelled")
    foreign = await factory.line_item(other_order, client)

    cancelled = await delete_line_items(db_session, order.id, [done.id, foreign.id], staff)

    assert cancelled == []
    assert foreign.status == "draft"


@pytest.mark.asyncio
async def test_delete_requires_item_ids(db_session, factory, staff):
    order = await factory.order()

    with pytest.raises(ValidationError, match="itemIds array is required"):
        await delete_line_items(db_session, order.id, [], staff)


@pytest.mark.asyncio
async def test_account_cannot_delete_from_foreign_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="draft", account_id=uuid4())
    item = await factory.line_item(order, client)

    with pytest.raises(PermissionDeniedError, match="Cannot delete line items from this order"):
        await delete_line_items(db_session, order.id, [item.id], account_user)


@pytest.mark.asyncio
async def test_account_delete_blocked_once_paid(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="paid", account_id=account_user.user_id)
    item = await factory.line_item(order, client)

    with pytest.raises(ValidationError, match="Cannot delete line items once payment process begins"):
        await delete_line_items(db_session, order.id, [item.id], account_user)

    assert item.status == "draft"


@pytest.mark.asyncio
async def test_account_delete_blocked_on_cancelled_order(db_session, factory, account_user):
    client = await factory.client()
    order = await factory.order(status="cancelled", account_id=account_user.user_id)
    item = await factory.line_item(order, client)

    with pytest.raises(ValidationError, match="Cannot delete line items in status: 'cancelled'"):
        await delete_line_items(db_session, order.id, [item.id], account_user)
