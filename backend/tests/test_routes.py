"""
Tests for API route endpoints.

Exercises the HTTP surface through the ASGI app: envelopes, auth guards,
checkout, admin review, chat, the Binance Pay webhook and WebSocket auth.
"""
import json
import time

import pytest
from sqlalchemy import select
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from config import settings
from db_models import Order
from main import app
from services import binance_pay_service


async def _add_to_cart(client, headers, product_id, variant_id=None, quantity=1):
    body = {"productId": product_id, "quantity": quantity}
    if variant_id is not None:
        body["variantId"] = variant_id
    response = await client.post("/cart/items", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _manual_checkout(client, headers, png_bytes):
    response = await client.post(
        "/checkout/manual",
        files={"proof": ("pago.png", png_bytes, "image/png")},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestHealthEndpoint:

    @pytest.mark.api
    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["version"] == settings.app_version


class TestAuthEndpoints:

    @pytest.mark.api
    async def test_signup_and_me(self, client):
        response = await client.post(
            "/auth/signup",
            json={"email": "New@Example.com", "password": "long-password", "fullName": "New Buyer"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["user"]["email"] == "new@example.com"
        assert body["user"]["role"] == "customer"
        assert body["tokenType"] == "Bearer"

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
        assert me.status_code == 200
        assert me.json()["data"]["is_admin"] is False
        assert me.json()["data"]["full_name"] == "New Buyer"

    @pytest.mark.api
    async def test_duplicate_signup_envelope(self, client, customer):
        response = await client.post("/auth/signup", json={"email": "buyer@example.com", "password": "long-password"})
        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "conflict"

    @pytest.mark.api
    async def test_short_password_is_422(self, client):
        response = await client.post("/auth/signup", json={"email": "a@example.com", "password": "short"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "request_validation"

    @pytest.mark.api
    async def test_overlong_password_is_422(self, client):
        response = await client.post("/auth/signup", json={"email": "a@example.com", "password": "a" * 100})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "request_validation"

    @pytest.mark.api
    async def test_multibyte_password_over_72_bytes_is_400(self, client, customer, auth_header):
        password = "ñ" * 40  # 40 characters, 80 UTF-8 bytes

        signup = await client.post("/auth/signup", json={"email": "a@example.com", "password": password})
        assert signup.status_code == 400
        assert signup.json()["error"]["code"] == "validation"

        update = await client.put("/auth/password", json={"password": password}, headers=auth_header(customer))
        assert update.status_code == 400

        reset = await client.post("/auth/reset-password", json={"token": "t" * 32, "password": password})
        assert reset.status_code == 400
        assert "72 bytes" in reset.json()["error"]["message"]

    @pytest.mark.api
    async def test_login(self, client, customer):
        ok = await client.post("/auth/login", json={"email": "buyer@example.com", "password": "correct-horse"})
        assert ok.status_code == 200
        assert ok.json()["user"]["id"] == customer.id

        bad = await client.post("/auth/login", json={"email": "buyer@example.com", "password": "nope"})
        assert bad.status_code == 401
        assert bad.json()["error"]["code"] == "unauthorized"

    @pytest.mark.api
    async def test_login_rate_limited(self, client):
        for _ in range(20):
            await client.post("/auth/login", json={"email": "x@example.com", "password": "whatever"})
        response = await client.post("/auth/login", json={"email": "x@example.com", "password": "whatever"})
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["error"]["code"] == "ratelimit"

    @pytest.mark.api
    async def test_me_requires_token(self, client):
        response = await client.get("/auth/me")
        assert response.status_code == 401

    @pytest.mark.api
    async def test_password_reset_demo_flow(self, client, customer, monkeypatch):
        monkeypatch.setattr(settings, "demo_mode", True)
        forgot = await client.post("/auth/forgot-password", json={"email": "buyer@example.com"})
        token = forgot.json()["data"]["reset_token"]

        unknown = await client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
        assert unknown.status_code == 200
        assert "reset_token" not in unknown.json()["data"]

        reset = await client.post("/auth/reset-password", json={"token": token, "password": "a-new-password"})
        assert reset.status_code == 200

        login = await client.post("/auth/login", json={"email": "buyer@example.com", "password": "a-new-password"})
        assert login.status_code == 200

    @pytest.mark.api
    async def test_update_password(self, client, customer, auth_header):
        response = await client.put("/auth/password", json={"password": "changed-pass"}, headers=auth_header(customer))
        assert response.status_code == 200
        login = await client.post("/auth/login", json={"email": "buyer@example.com", "password": "changed-pass"})
        assert login.status_code == 200


class TestCatalogEndpoints:

    @pytest.mark.api
    async def test_list_and_detail(self, client, make_product):
        base = await make_product("Roblox", price=12.5, category="game_reloads")
        await make_product("PSN", variants=[("$10", 10.0)])

        listing = await client.get("/products", params={"category": "game_reloads"})
        assert [p["name"] for p in listing.json()["data"]] == ["Roblox"]

        detail = await client.get(f"/products/{base.id}")
        assert detail.json()["data"]["variants"] == [
            {"id": "base", "product_id": base.id, "name": "Standard", "price": 12.5}
        ]

    @pytest.mark.api
    async def test_unknown_product_404(self, client):
        response = await client.get("/products/999")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "notfound"


class TestCartAndCheckout:

    @pytest.mark.api
    async def test_cart_requires_sign_in(self, client):
        assert (await client.get("/cart")).status_code == 401

    @pytest.mark.api
    async def test_quote_and_manual_checkout(self, client, make_product, customer, auth_header, fixed_rate, png_bytes):
        headers = auth_header(customer)
        product = await make_product("PSN", variants=[("$10", 10.0), ("$25", 25.0)])
        cart = await _add_to_cart(client, headers, product.id, variant_id=product.variants[0].id, quantity=2)
        assert cart["total"] == 20.0

        quote = (await client.get("/checkout/quote", headers=headers)).json()["data"]
        assert quote["total_usdt"] == 20.0
        assert quote["total_ves"] == 800.0
        assert quote["payment_details"]["bank"] == settings.bank_name

        order = await _manual_checkout(client, headers, png_bytes)
        assert order["status"] == "pending"
        assert order["total_ves"] == 800.0
        assert order["items"][0]["name"] == "PSN - $10"

        assert (await client.get("/cart", headers=headers)).json()["data"]["items"] == []

        history = (await client.get("/orders", headers=headers)).json()
        assert history["meta"]["total"] == 1
        assert history["data"][0]["id"] == order["id"]

    @pytest.mark.api
    async def test_manual_checkout_rejects_svg_proof(self, client, make_product, customer, auth_header, fixed_rate):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        response = await client.post(
            "/checkout/manual",
            files={"proof": ("pago.svg", b"<svg onload=\"alert(1)\"/>", "image/svg+xml")},
            headers=headers,
        )
        assert response.status_code == 400
        assert (await client.get("/orders", headers=headers)).json()["meta"]["total"] == 0

    @pytest.mark.api
    async def test_binance_checkout_uses_request_origin(self, client, make_product, customer, auth_header, binance_api):
        headers = auth_header(customer)
        product = await make_product("Google Play", price=15.0)
        await _add_to_cart(client, headers, product.id, quantity=2)

        response = await client.post("/checkout/binance", headers={**headers, "Origin": "https://shop.example"})
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["checkout_url"] == "https://pay.binance.com/checkout/x"

        sent = json.loads(binance_api[0].content)
        assert sent["orderAmount"] == "30.00"
        assert sent["returnUrl"] == f"https://shop.example/payment/success?tradeNo={data['trade_no']}"
        assert sent["cancelUrl"] == f"https://shop.example/payment/cancel?tradeNo={data['trade_no']}"

        order = (await client.get(f"/orders/{data['order_id']}", headers=headers)).json()["data"]
        assert order["status"] == "pending"
        assert order["payment_method"] == "binance_pay"
        assert (await client.get("/cart", headers=headers)).json()["data"]["items"] == []

    @pytest.mark.api
    async def test_binance_checkout_falls_back_to_public_url(self, client, make_product, customer, auth_header, binance_api):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)

        response = await client.post("/checkout/binance", headers=headers)
        assert response.status_code == 201
        sent = json.loads(binance_api[0].content)
        assert sent["returnUrl"].startswith("http://test/payment/success?tradeNo=")

    @pytest.mark.api
    async def test_manual_checkout_without_proof(self, client, make_product, customer, auth_header, fixed_rate):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        response = await client.post("/checkout/manual", headers=headers)
        assert response.status_code == 400

    @pytest.mark.api
    async def test_manual_checkout_empty_cart(self, client, customer, auth_header, fixed_rate, png_bytes):
        response = await client.post(
            "/checkout/manual",
            files={"proof": ("pago.png", png_bytes, "image/png")},
            headers=auth_header(customer),
        )
        assert response.status_code == 400
        assert "Cart is empty" in response.json()["error"]["message"]

    @pytest.mark.api
    async def test_rate_outage_is_502(self, client, make_product, customer, auth_header, rate_unavailable):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        response = await client.get("/checkout/quote", headers=headers)
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "upstreamservice"

    @pytest.mark.api
    async def test_other_users_order_is_404(
        self, client, make_product, customer, other_customer, auth_header, fixed_rate, png_bytes
    ):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        order = await _manual_checkout(client, headers, png_bytes)

        response = await client.get(f"/orders/{order['id']}", headers=auth_header(other_customer))
        assert response.status_code == 404


class TestAdminEndpoints:

    @pytest.mark.api
    async def test_customer_forbidden(self, client, customer, auth_header):
        response = await client.get("/admin/orders", headers=auth_header(customer))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "permissiondenied"

    @pytest.mark.api
    async def test_review_flow(self, client, make_product, customer, admin_user, auth_header, fixed_rate, png_bytes):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        order = await _manual_checkout(client, headers, png_bytes)

        admin_headers = auth_header(admin_user)
        pending = await client.get("/admin/orders", params={"status": "pending"}, headers=admin_headers)
        assert [o["id"] for o in pending.json()["data"]] == [order["id"]]

        approve = await client.patch(
            f"/admin/orders/{order['id']}/status", json={"status": "approved"}, headers=admin_headers
        )
        assert approve.status_code == 200
        assert approve.json()["data"]["status"] == "approved"
        assert approve.json()["data"]["reviewed_by"] == admin_user.id

        again = await client.patch(
            f"/admin/orders/{order['id']}/status", json={"status": "approved"}, headers=admin_headers
        )
        assert again.status_code == 409

        mine = await client.get(f"/orders/{order['id']}", headers=headers)
        assert mine.json()["data"]["status"] == "approved"

    @pytest.mark.api
    async def test_catalog_management(self, client, admin_user, auth_header, png_bytes):
        headers = auth_header(admin_user)
        created = await client.post(
            "/admin/products",
            json={"name": "Valorant Points", "price": 0, "category": "game_reloads"},
            headers=headers,
        )
        assert created.status_code == 201
        product_id = created.json()["data"]["id"]

        variant = await client.post(
            f"/admin/products/{product_id}/variants", json={"name": "475 VP", "price": 4.99}, headers=headers
        )
        assert variant.status_code == 201

        detail = (await client.get(f"/products/{product_id}")).json()["data"]
        assert detail["price"] == 4.99
        assert [v["name"] for v in detail["variants"]] == ["475 VP"]

        image = await client.post(
            f"/admin/products/{product_id}/image",
            files={"file": ("cover.png", png_bytes, "image/png")},
            headers=headers,
        )
        assert image.status_code == 200
        assert image.json()["data"]["image_url"].startswith(f"http://test/uploads/product-images/{product_id}/")

        updated = await client.patch(
            f"/admin/products/{product_id}", json={"stockStatus": "out_of_stock"}, headers=headers
        )
        assert updated.json()["data"]["stock_status"] == "out_of_stock"

        deleted = await client.delete(f"/admin/products/{product_id}", headers=headers)
        assert deleted.status_code == 200
        assert (await client.get(f"/products/{product_id}")).status_code == 404


    @pytest.mark.api
    async def test_image_upload_extension_follows_content_type(self, client, make_product, admin_user, auth_header):
        headers = auth_header(admin_user)
        product = await make_product()

        html_named = await client.post(
            f"/admin/products/{product.id}/image",
            files={"file": ("x.html", b"<script>alert(1)</script>", "image/png")},
            headers=headers,
        )
        assert html_named.status_code == 200
        url = html_named.json()["data"]["image_url"]
        assert url.endswith(".png")

        svg = await client.post(
            f"/admin/products/{product.id}/image",
            files={"file": ("logo.svg", b"<svg/>", "image/svg+xml")},
            headers=headers,
        )
        assert svg.status_code == 400
        assert svg.json()["error"]["code"] == "validation"

class TestChatEndpoints:

    @pytest.mark.api
    async def test_buyer_and_admin_chat(
        self, client, make_product, customer, other_customer, admin_user, auth_header, fixed_rate, png_bytes
    ):
        headers = auth_header(customer)
        product = await make_product()
        await _add_to_cart(client, headers, product.id)
        order = await _manual_checkout(client, headers, png_bytes)
        url = f"/orders/{order['id']}/messages"

        sent = await client.post(url, json={"content": "Ya pagué"}, headers=headers)
        assert sent.status_code == 201
        reply = await client.post(url, json={"content": "Recibido"}, headers=auth_header(admin_user))
        assert reply.status_code == 201

        thread = (await client.get(url, headers=headers)).json()["data"]
        assert [m["content"] for m in thread] == ["Ya pagué", "Recibido"]

        outsider = await client.get(url, headers=auth_header(other_customer))
        assert outsider.status_code == 404


class TestBinanceWebhook:

    def _signed_request(self, body: dict):
        payload = json.dumps(body)
        ts = str(int(time.time() * 1000))
        nonce = "n" * 32
        return payload, {
            "Content-Type": "application/json",
            "BinancePay-Timestamp": ts,
            "BinancePay-Nonce": nonce,
            "BinancePay-Signature": binance_pay_service.sign(ts, nonce, payload),
        }

    @pytest.mark.api
    async def test_missing_headers_400(self, client, binance_keys):
        response = await client.post("/payments/binance/webhook", content="{}")
        assert response.status_code == 400

    @pytest.mark.api
    async def test_bad_signature_401(self, client, binance_keys):
        payload, headers = self._signed_request({"bizType": "PAY"})
        headers["BinancePay-Signature"] = "DEADBEEF"
        response = await client.post("/payments/binance/webhook", content=payload, headers=headers)
        assert response.status_code == 401

    @pytest.mark.api
    async def test_pay_success_acknowledged(self, client, db_session, customer, binance_keys):
        order = Order(
            user_id=customer.id,
            payment_method="binance_pay",
            status="pending",
            total=5.0,
            total_usdt=5.0,
            merchant_trade_no="abc123",
        )
        db_session.add(order)
        await db_session.commit()

        payload, headers = self._signed_request(
            {"bizType": "PAY", "bizStatus": "PAY_SUCCESS", "data": json.dumps({"merchantTradeNo": "abc123"})}
        )
        response = await client.post("/payments/binance/webhook", content=payload, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"returnCode": "SUCCESS", "returnMessage": None}

        stored = (await db_session.execute(select(Order).where(Order.id == order.id))).scalar_one()
        assert stored.status == "approved"

    @pytest.mark.api
    async def test_unknown_order_still_acknowledged(self, client, binance_keys):
        payload, headers = self._signed_request(
            {"bizType": "PAY", "bizStatus": "PAY_SUCCESS", "data": {"merchantTradeNo": "missing"}}
        )
        response = await client.post("/payments/binance/webhook", content=payload, headers=headers)
        assert response.json()["returnCode"] == "SUCCESS"


class TestWebSocketAuth:

    @pytest.mark.api
    @pytest.mark.parametrize("query", ["", "?token=garbage"])
    def test_admin_feed_rejects_missing_or_bad_token(self, query):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/admin/orders{query}"):
                pass
        assert exc_info.value.code == 1008

    @pytest.mark.api
    def test_admin_feed_rejects_customer_role(self):
        from middleware.auth import issue_access_token

        token = issue_access_token(user_id=1, role="customer")
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/admin/orders?token={token}"):
                pass
        assert exc_info.value.code == 1008


class TestRealtimeFeeds:
    """WebSocket feeds against a running app (Starlette TestClient)."""

    @pytest.mark.api
    def test_admin_feed_receives_status_change(self, live_client, seed_user, seed_order, auth_header):
        from middleware.auth import issue_access_token

        admin = seed_user("admin@example.com", role="admin")
        order = seed_order(seed_user("buyer@example.com"))
        token = issue_access_token(user_id=admin.id, role="admin")

        with live_client.websocket_connect(f"/ws/admin/orders?token={token}") as ws:
            response = live_client.patch(
                f"/admin/orders/{order.id}/status", json={"status": "approved"}, headers=auth_header(admin)
            )
            assert response.status_code == 200
            event = ws.receive_json()

        assert event["type"] == "order_changed"
        assert event["event"] == "UPDATE"
        assert event["topic"] == "orders"
        assert event["order"]["id"] == order.id
        assert event["order"]["status"] == "approved"
        assert event["order"]["reviewed_by"] == admin.id

    @pytest.mark.api
    def test_order_feed_delivers_messages_to_owner_and_admin(self, live_client, seed_user, seed_order, auth_header):
        from middleware.auth import issue_access_token

        buyer = seed_user("buyer@example.com")
        admin = seed_user("admin@example.com", role="admin")
        order = seed_order(buyer)
        url = f"/ws/orders/{order.id}/messages"

        with live_client.websocket_connect(f"{url}?token={issue_access_token(user_id=buyer.id, role=buyer.role)}") as owner_ws:
            with live_client.websocket_connect(f"{url}?token={issue_access_token(user_id=admin.id, role=admin.role)}") as admin_ws:
                sent = live_client.post(
                    f"/orders/{order.id}/messages", json={"content": "Ya pagué"}, headers=auth_header(buyer)
                )
                assert sent.status_code == 201
                to_owner = owner_ws.receive_json()
                to_admin = admin_ws.receive_json()

        for event in (to_owner, to_admin):
            assert event["type"] == "message_created"
            assert event["topic"] == f"messages:{order.id}"
            assert event["message"]["content"] == "Ya pagué"
            assert event["message"]["order_id"] == order.id

    @pytest.mark.api
    def test_order_feed_rejects_other_customer_and_unknown_order(self, live_client, seed_user, seed_order):
        from middleware.auth import issue_access_token

        order = seed_order(seed_user("buyer@example.com"))
        outsider = seed_user("someone@example.com")
        token = issue_access_token(user_id=outsider.id, role=outsider.role)

        for path in (f"/ws/orders/{order.id}/messages", "/ws/orders/999/messages"):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with live_client.websocket_connect(f"{path}?token={token}"):
                    pass
            assert exc_info.value.code == 1008
