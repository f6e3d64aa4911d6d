"""Tests for the HTTP API."""

from tableorder.core.config import settings
from tableorder.core.rate_limit import limiter
from tableorder.services.order_service import now_ms
from tableorder.services.sync_service import sanitize_document

CN1_PAYLOAD = "10.7769,106.7009-5"


def _submit(client, **overrides):
    body = {
        "branch_id": "cn1",
        "table_number": 5,
        "items": [{"menu_item_id": "m1", "quantity": 2}],
        "payment_method": "CASH",
    }
    body.update(overrides)
    return client.post("/api/v1/orders", json=body)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_ready(self, client):
        data = client.get("/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"]["store"] == "healthy"


class TestCatalog:
    def test_state_hides_orders_and_admins_from_customers(self, client):
        data = client.get("/api/v1/state").json()
        assert "admins" not in data
        assert "orders" not in data
        assert [b["id"] for b in data["branches"]] == ["cn1", "cn2"]

    def test_state_includes_orders_for_staff(self, client, kitchen_headers):
        _submit(client)
        data = client.get("/api/v1/state", headers=kitchen_headers).json()
        assert len(data["orders"]) == 1

    def test_branch_menu(self, client):
        data = client.get("/api/v1/branches/cn1/menu").json()
        assert {m["id"] for m in data["items"]} == {"m1", "m2", "m4", "m5"}
        assert [m["id"] for m in data["featured"]] == ["m1"]
        assert {g["id"] for g in data["toppingGroups"]} == {"g1", "g2"}

    def test_unknown_branch_menu(self, client):
        assert client.get("/api/v1/branches/zz/menu").status_code == 404


class TestCheckIn:
    def test_accepted(self, client):
        response = client.post("/api/v1/checkin", json={
            "payload": CN1_PAYLOAD, "latitude": 10.7769, "longitude": 106.7009,
        })
        assert response.status_code == 200
        assert response.json()["branch_id"] == "cn1"
        assert response.json()["table_number"] == "5"

    def test_out_of_range(self, client):
        response = client.post("/api/v1/checkin", json={
            "payload": CN1_PAYLOAD, "latitude": 10.7769 + 150 / 111195, "longitude": 106.7009,
        })
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "out_of_range"
        assert 149 < data["distance_meters"] < 151
        assert data["allowed_meters"] == 100

    def test_bad_payload(self, client):
        response = client.post("/api/v1/checkin", json={"payload": "abc-5", "latitude": 1, "longitude": 2})
        assert response.status_code == 400
        assert response.json()["code"] == "qr_payload_invalid"

    def test_permission_denied(self, client):
        response = client.post("/api/v1/checkin", json={"payload": CN1_PAYLOAD, "geolocation_error": "denied"})
        assert response.json()["code"] == "geolocation_denied"


class TestOrders:
    def test_submit(self, client, store):
        response = _submit(client)
        assert response.status_code == 201
        data = response.json()
        assert data["total"] == 90000
        assert data["status"] == "NEW"
        assert data["tableNumber"] == 5
        assert sanitize_document(store.read_all()).order(data["id"]) is not None

    def test_client_prices_are_ignored(self, client):
        response = _submit(client, items=[{"menu_item_id": "m1", "quantity": 1, "price": 1}])
        assert response.json()["total"] == 45000

    def test_validation_errors(self, client):
        assert _submit(client, items=[]).json()["reason"] == "EMPTY_CART"
        assert _submit(client, branch_id=None).json()["reason"] == "NO_BRANCH"
        response = _submit(client, table_number=None)
        assert response.status_code == 422
        assert response.json()["reason"] == "NO_TABLE"

    def test_topping_validation(self, client):
        response = _submit(client, items=[{"menu_item_id": "m5", "topping_ids": ["t1"]}])
        assert response.status_code == 422
        assert response.json()["reason"] == "TOPPING_SELECTION"
        assert response.json()["menu_item_id"] == "m5"

    def test_unknown_item(self, client):
        assert _submit(client, items=[{"menu_item_id": "nope"}]).status_code == 422

    def test_unknown_topping_rejected(self, client):
        response = _submit(client, items=[{"menu_item_id": "m5", "topping_ids": ["t3", "ghost"]}])
        assert response.status_code == 422
        assert response.json()["reason"] == "TOPPING_SELECTION"

    def test_item_from_another_branch_rejected(self, client):
        response = _submit(client, branch_id="cn2", items=[{"menu_item_id": "m2"}])
        assert response.status_code == 422
        assert response.json()["reason"] == "ITEM_UNAVAILABLE"

    def test_note_is_escaped(self, client):
        data = _submit(client, note="<b>no onion</b>").json()
        assert data["note"] == "&lt;b&gt;no onion&lt;/b&gt;"

    def test_get_order(self, client):
        order_id = _submit(client).json()["id"]
        assert client.get(f"/api/v1/orders/{order_id}").json()["id"] == order_id
        assert client.get("/api/v1/orders/missing").status_code == 404

    def test_list_requires_staff(self, client, kitchen_headers):
        assert client.get("/api/v1/orders").status_code == 403
        assert client.get("/api/v1/orders", headers={"X-Client-Role": "kitchen"}).status_code == 401
        assert client.get("/api/v1/orders", headers={"X-Client-Role": "chef"}).status_code == 400

    def test_list_today(self, client, admin_headers):
        _submit(client)
        _submit(client, items=[{"menu_item_id": "m4"}])
        data = client.get("/api/v1/orders", headers=admin_headers).json()
        assert data["total"] == 2
        assert data["revenue"] == 90000 + 250000
        assert data["new_orders_count"] == 2


class TestStatusChanges:
    def test_kitchen_completes(self, client, kitchen_headers):
        order_id = _submit(client).json()["id"]
        response = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "COMPLETED"},
                               headers=kitchen_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

    def test_kitchen_cannot_mark_paid(self, client, kitchen_headers):
        order_id = _submit(client).json()["id"]
        client.post(f"/api/v1/orders/{order_id}/status", json={"status": "COMPLETED"}, headers=kitchen_headers)
        response = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "PAID"},
                               headers=kitchen_headers)
        assert response.status_code == 403

    def test_invalid_transition(self, client, admin_headers):
        order_id = _submit(client).json()["id"]
        response = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "PAID"},
                               headers=admin_headers)
        assert response.status_code == 409

    def test_cancel_goes_through_confirmation(self, client, admin_headers):
        order_id = _submit(client).json()["id"]
        response = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "CANCELLED"},
                               headers=admin_headers)
        assert response.status_code == 202
        confirmation_id = response.json()["confirmation_id"]
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "NEW"

        response = client.post(f"/api/v1/confirmations/{confirmation_id}", json={"confirmed": True},
                               headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["result"]["status"] == "CANCELLED"
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "CANCELLED"

    def test_dismissed_cancel(self, client, admin_headers):
        order_id = _submit(client).json()["id"]
        confirmation_id = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "CANCELLED"},
                                      headers=admin_headers).json()["confirmation_id"]
        response = client.post(f"/api/v1/confirmations/{confirmation_id}", json={"confirmed": False},
                               headers=admin_headers)
        assert response.json()["confirmed"] is False
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "NEW"
        assert client.post(f"/api/v1/confirmations/{confirmation_id}", json={"confirmed": True},
                           headers=admin_headers).status_code == 404


    def test_kitchen_cannot_confirm_admin_cancel(self, client, admin_headers, kitchen_headers):
        order_id = _submit(client).json()["id"]
        confirmation_id = client.post(f"/api/v1/orders/{order_id}/status", json={"status": "CANCELLED"},
                                      headers=admin_headers).json()["confirmation_id"]
        response = client.post(f"/api/v1/confirmations/{confirmation_id}", json={"confirmed": True},
                               headers=kitchen_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "confirmation_not_permitted"
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "NEW"

class TestOrderEdit:
    def test_edit_operations(self, client, admin_headers):
        order_id = _submit(client).json()["id"]
        response = client.patch(f"/api/v1/orders/{order_id}", headers=admin_headers, json={"operations": [
            {"op": "change_quantity", "index": 0, "delta": 1},
            {"op": "add_item", "menu_item_id": "m4"},
            {"op": "set_table", "table_number": "7"},
        ]})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 45000 * 3 + 250000
        assert data["tableNumber"] == 7

    def test_edit_requires_admin(self, client, kitchen_headers):
        order_id = _submit(client).json()["id"]
        response = client.patch(f"/api/v1/orders/{order_id}", headers=kitchen_headers,
                                json={"operations": [{"op": "set_table", "table_number": 2}]})
        assert response.status_code == 403

    def test_bad_line_index(self, client, admin_headers):
        order_id = _submit(client).json()["id"]
        response = client.patch(f"/api/v1/orders/{order_id}", headers=admin_headers,
                                json={"operations": [{"op": "set_note", "index": 9, "note": "x"}]})
        assert response.status_code == 422


class TestKitchenQueue:
    def test_queue_oldest_first_with_urgency(self, client, kitchen_headers, store):
        now = now_ms()
        store.replace_subtree("orders", [
            {"id": "fresh", "branchId": "cn1", "tableNumber": 2, "status": "NEW", "timestamp": now - 100_000,
             "items": [{"menuItemId": "m1", "quantity": 1, "price": 45000}]},
            {"id": "late", "branchId": "cn1", "tableNumber": 3, "status": "NEW", "timestamp": now - 700_000,
             "items": [{"menuItemId": "m1", "quantity": 1, "price": 45000}]},
            {"id": "done", "branchId": "cn1", "tableNumber": 4, "status": "COMPLETED", "timestamp": now,
             "items": [{"menuItemId": "m1", "quantity": 1, "price": 45000}]},
        ])
        data = client.get("/api/v1/kitchen/queue", headers=kitchen_headers).json()
        assert [t["order"]["id"] for t in data["items"]] == ["late", "fresh"]
        assert [t["urgency"] for t in data["items"]] == ["overdue", "normal"]
        assert data["new_orders_count"] == 2
        assert data["kitchen_settings"]["notificationRepeatCount"] == 1


class TestAuthRoutes:
    def test_login(self, client):
        response = client.post("/api/v1/auth/login", json={"username": "admin", "password": "123"})
        assert response.status_code == 200
        assert response.json()["session"] == "active"

    def test_wrong_password(self, client):
        response = client.post("/api/v1/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"


    def test_login_is_rate_limited(self, client):
        limiter.enabled = True
        limiter.reset()
        try:
            allowed = int(settings.login_rate_limit.split("/")[0])
            body = {"username": "admin", "password": "nope"}
            codes = [client.post("/api/v1/auth/login", json=body).status_code for _ in range(allowed + 1)]
        finally:
            limiter.reset()
            limiter.enabled = False
        assert codes[:allowed] == [401] * allowed
        assert codes[-1] == 429

class TestAdmin:
    def test_reset_with_confirmation(self, client, admin_headers, store):
        _submit(client)
        response = client.post("/api/v1/admin/reset", headers=admin_headers)
        assert response.status_code == 202
        assert "orders" in store.read_all()

        confirmation_id = response.json()["confirmation_id"]
        client.post(f"/api/v1/confirmations/{confirmation_id}", json={"confirmed": True}, headers=admin_headers)
        assert "orders" not in store.read_all()

    def test_reset_admin_only(self, client, kitchen_headers):
        assert client.post("/api/v1/admin/reset", headers=kitchen_headers).status_code == 403

    def test_table_qr(self, client, admin_headers):
        data = client.get("/api/v1/admin/branches/cn1/tables/5/qr", headers=admin_headers).json()
        assert data["data"] == CN1_PAYLOAD
        assert data["qr_data"]

        data = client.get("/api/v1/admin/branches/cn1/tables/5/qr?target=url&format=svg",
                          headers=admin_headers).json()
        assert "branchId=cn1" in data["data"] and "table=5" in data["data"]
        assert "<svg" in data["qr_data"]
