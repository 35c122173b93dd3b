"""Tests for linkdesk.web.routes.orders."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from linkdesk.core.errors import (
    EmptyOrderError,
    OrderNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from linkdesk.models import ConfirmationResult, ProjectSummary


def _result(order_id, client_id):
    project_id = uuid4()
    return ConfirmationResult(
        order={"id": str(order_id), "status": "confirmed"},
        projects=[
            ProjectSummary(
                id=project_id,
                name="Order #abcd1234 - Acme Dental",
                client_id=client_id,
                client_name="Acme Dental",
            )
        ],
        project_target_pages={str(project_id): []},
        benchmark_created=True,
        confirmed_at=datetime(2024, 5, 1),
    )


class TestConfirmOrder:
    def test_requires_session(self, client):
        response = client.post(f"/api/orders/{uuid4()}/confirm")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_account_users_are_rejected_before_db(self, client, account_user, fake_session):
        with patch("linkdesk.web.routes.orders.get_session", fake_session):
            response = client.post(f"/api/orders/{uuid4()}/confirm")

        assert response.status_code == 403
        assert response.json() == {"error": "Internal access required"}
        assert fake_session.calls == []

    def test_success_payload(self, client, internal_user, fake_session):
        order_id, client_id = uuid4(), uuid4()
        confirm = AsyncMock(return_value=_result(order_id, client_id))

        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.confirm_order", confirm
        ):
            response = client.post(
                f"/api/orders/{order_id}/confirm", json={"assignedTo": str(internal_user.user_id)}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["projectsCreated"] == 1
        assert body["projects"][0]["clientId"] == str(client_id)
        assert body["benchmarkCreated"] is True
        kwargs = confirm.await_args.kwargs
        assert kwargs["confirmed_by"] == internal_user.user_id
        assert kwargs["assigned_to"] == internal_user.user_id

    def test_not_found_maps_to_404(self, client, internal_user, fake_session):
        order_id = uuid4()
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.confirm_order",
            AsyncMock(side_effect=OrderNotFoundError(order_id)),
        ):
            response = client.post(f"/api/orders/{order_id}/confirm")

        assert response.status_code == 404
        assert response.json()["error"] == "Order not found"

    def test_empty_order_maps_to_400(self, client, internal_user, fake_session):
        order_id = uuid4()
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.confirm_order",
            AsyncMock(side_effect=EmptyOrderError(order_id)),
        ):
            response = client.post(f"/api/orders/{order_id}/confirm")

        assert response.status_code == 400
        assert response.json()["error"] == "Order has no line items to confirm"

    def test_unexpected_error_maps_to_500(self, client, internal_user, fake_session):
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.confirm_order",
            AsyncMock(side_effect=RuntimeError("db exploded")),
        ):
            response = client.post(f"/api/orders/{uuid4()}/confirm")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to confirm order: db exploded"}

    def test_malformed_order_id_is_400(self, client, internal_user, fake_session):
        with patch("linkdesk.web.routes.orders.get_session", fake_session):
            response = client.post("/api/orders/not-a-uuid/confirm")

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request: path.order_id")
        assert fake_session.calls == []


class TestLineItems:
    def test_list_passes_filters(self, client, account_user, fake_session):
        order_id, client_id = uuid4(), uuid4()
        listing = AsyncMock(return_value={"orderId": str(order_id), "lineItems": [], "summary": {}})

        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.list_line_items", listing
        ):
            response = client.get(
                f"/api/orders/{order_id}/line-items",
                params={"status": "draft", "clientId": str(client_id)},
            )

        assert response.status_code == 200
        assert response.json()["orderId"] == str(order_id)
        assert listing.await_args.kwargs == {"status": "draft", "client_id": client_id}

    def test_forbidden_maps_to_403(self, client, account_user, fake_session):
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.list_line_items",
            AsyncMock(side_effect=PermissionDeniedError("Access denied to this order")),
        ):
            response = client.get(f"/api/orders/{uuid4()}/line-items")

        assert response.status_code == 403
        assert response.json() == {"error": "Access denied to this order"}

    def test_add_returns_created_items(self, client, internal_user, fake_session):
        client_id = uuid4()
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.add_line_items",
            AsyncMock(return_value=[MagicMock(), MagicMock()]),
        ) as add, patch(
            "linkdesk.web.routes.orders.line_item_to_dict", return_value={"id": "x"}
        ):
            response = client.post(
                f"/api/orders/{uuid4()}/line-items",
                json={"items": [{"clientId": str(client_id)}, {"clientId": str(client_id)}]},
            )

        assert response.status_code == 200
        assert response.json()["message"] == "2 line items added"
        items = add.await_args.args[2]
        assert items[0].client_id == client_id

    def test_patch_returns_changes(self, client, account_user, fake_session):
        item_id = uuid4()
        changes = {"anchor_text": {"from": "old", "to": "new"}}
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.update_line_items",
            AsyncMock(return_value=[(MagicMock(), changes)]),
        ) as update, patch(
            "linkdesk.web.routes.orders.line_item_to_dict", return_value={"id": str(item_id)}
        ):
            response = client.patch(
                f"/api/orders/{uuid4()}/line-items",
                json={"updates": [{"id": str(item_id), "anchorText": "new"}], "reason": "typo"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "1 line items updated"
        assert body["lineItems"] == [{"id": str(item_id), "changes": changes}]
        updates = update.await_args.args[2]
        assert updates[0].id == item_id
        assert updates[0].model_fields_set == {"id", "anchor_text"}
        assert update.await_args.kwargs == {"reason": "typo"}

    def test_patch_payment_locked_maps_to_400(self, client, account_user, fake_session):
        message = "Cannot edit line items once payment process begins. Current status: 'paid'."
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.update_line_items",
            AsyncMock(side_effect=ValidationError(message)),
        ):
            response = client.patch(
                f"/api/orders/{uuid4()}/line-items", json={"updates": [{"id": str(uuid4())}]}
            )

        assert response.status_code == 400
        assert response.json() == {"error": message}

    def test_delete_cancels_items(self, client, internal_user, fake_session):
        item_ids = [uuid4(), uuid4()]
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.line_items.delete_line_items",
            AsyncMock(return_value=[MagicMock(), MagicMock()]),
        ) as delete, patch(
            "linkdesk.web.routes.orders.line_item_to_dict", return_value={"status": "cancelled"}
        ):
            response = client.request(
                "DELETE",
                f"/api/orders/{uuid4()}/line-items",
                json={"itemIds": [str(i) for i in item_ids]},
            )

        assert response.status_code == 200
        assert response.json()["message"] == "2 line items cancelled"
        assert delete.await_args.args[2] == item_ids


class TestShareManagement:
    def test_create_share_link(self, client, internal_user, fake_session):
        record = MagicMock(token="ab" * 32, expires_at=datetime(2024, 5, 8))
        with patch("linkdesk.web.routes.orders.get_session", fake_session), patch(
            "linkdesk.web.routes.orders.get_order", AsyncMock(return_value=MagicMock())
        ), patch(
            "linkdesk.web.routes.orders.share_links.create_share_link", AsyncMock(return_value=record)
        ) as create:
            response = client.post(f"/api/orders/{uuid4()}/share", json={"expiryDays": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["shareUrl"] == f"/orders/claim/{'ab' * 32}"
        assert body["expiresAt"] == "2024-05-08T00:00:00"
        assert create.await_args.kwargs == {"expiry_days": 3}

    def test_create_share_link_rejects_bad_expiry(self, client, internal_user):
        response = client.post(f"/api/orders/{uuid4()}/share", json={"expiryDays": 0})

        assert response.status_code == 400
        body = response.json()
        assert body["error"].startswith("Invalid request: expiryDays")
        assert body["details"][0]["loc"] == ["body", "expiryDays"]
