"""
HTTP surface tests

Tests cover:
1. Health and checkout
2. Webhook authentication (SMS bearer, card HMAC) and crypto mismatch handling
3. Admin reconciliation and manual order review
4. Seller payout requests with Idempotency-Key replay, admin payout review
5. Cron endpoints
"""

import hashlib
import hmac
import json
from datetime import datetime, timedelta

import pytest

from app.extensions import db as _db
from app.ledger import attach_crypto_invoice, mark_cancelled, request_payout, sweep_matured_holdings
from app.models import Order, Payout, Product, ReconciliationSignal, User


def _card_signature(body: bytes, secret: str = "card-secret") -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


SMS_AUTH = {"Authorization": "Bearer sms-secret"}


class TestHealthAndCheckout:
    def test_health(self, client):
        r = client.get("/api/health")
        assert r.status_code == 200
        body = r.get_json()
        assert body["ok"] is True
        assert body["db"] == "ok"

    def test_manual_checkout(self, client, product, seller):
        r = client.post(
            "/api/orders/checkout",
            json={
                "items": [{"id": product.id, "quantity": 2}],
                "paymentMethod": "manual",
                "customerName": "Buyer",
                "customerEmail": "buyer@example.com",
                "transactionRef": "123456789",
            },
        )

        assert r.status_code == 201
        order = r.get_json()["order"]
        assert order["total_amount"] == 200.0
        assert order["seller_amount"] == 180.0
        assert order["transaction_ref"] == "123456789"
        assert order["customer_email"] == "buyer@example.com"

    def test_free_checkout_is_completed(self, client, db, seller):
        freebie = Product(user_id=seller.id, title="Sample pack", price=0.0)
        db.session.add(freebie)
        db.session.commit()

        r = client.post("/api/orders/checkout", json={"items": [{"id": freebie.id}], "paymentMethod": "free"})

        assert r.status_code == 201
        order = r.get_json()["order"]
        assert order["status"] == "COMPLETED"
        assert order["is_paid"] is True
        assert order["total_amount"] == 0.0

    def test_checkout_validation_error(self, client):
        r = client.post("/api/orders/checkout", json={"items": []})
        assert r.status_code == 400
        assert r.get_json()["code"] == "validation_error"

    def test_crypto_requires_its_own_endpoint(self, client, product):
        r = client.post("/api/orders/checkout", json={"items": [{"id": product.id}], "paymentMethod": "crypto"})
        assert r.status_code == 400

    def test_crypto_checkout_unconfigured(self, client, product):
        r = client.post("/api/orders/crypto/checkout", json={"items": [{"id": product.id}]})
        assert r.status_code == 503

    def test_order_status(self, client, make_order):
        order = make_order()

        r = client.get(f"/api/orders/{order['order_number']}")
        missing = client.get("/api/orders/ORD-NOPE")

        assert r.status_code == 200
        assert r.get_json()["status"] == "PENDING"
        assert missing.status_code == 404


class TestSmsWebhook:
    def test_requires_bearer(self, client):
        r = client.post("/api/webhooks/sms", json={"text": "Transfer 123456789"})
        assert r.status_code == 401

    def test_unconfigured_secret(self, app, client):
        app.config["SMS_WEBHOOK_SECRET"] = ""
        r = client.post("/api/webhooks/sms", json={"text": "Transfer 123456789"}, headers=SMS_AUTH)
        assert r.status_code == 500

    def test_empty_body(self, client):
        r = client.post("/api/webhooks/sms", json={}, headers=SMS_AUTH)
        assert r.status_code == 400

    def test_matches_order(self, client, make_order):
        order = make_order(transaction_ref="123456789")

        r = client.post(
            "/api/webhooks/sms",
            json={"text": "شكرا، تم تحويل 123456789 بنجاح", "sender": "BANK"},
            headers=SMS_AUTH,
        )

        assert r.status_code == 200
        assert r.get_json()["matchedOrderNumbers"] == [order["order_number"]]
        assert _db.session.get(Order, order["id"]).status == "PAID"

    def test_unparseable_message_still_accepted(self, client):
        r = client.post("/api/webhooks/sms", json={"text": "hello there"}, headers=SMS_AUTH)
        assert r.status_code == 200
        assert r.get_json()["code"] == "unparseable_signal"


class TestCardWebhook:
    def _post(self, client, payload, signature=None):
        body = json.dumps(payload).encode("utf-8")
        return client.post(
            "/api/webhooks/card",
            data=body,
            content_type="application/json",
            headers={"X-Signature": signature if signature is not None else _card_signature(body)},
        )

    def test_bad_signature(self, client, make_order):
        order = make_order(channel="card", payment_reference="cs_1")

        r = self._post(client, {"event": "charge.success", "data": {"reference": "cs_1"}}, signature="deadbeef")

        assert r.status_code == 400
        assert _db.session.get(Order, order["id"]).status == "PENDING"

    def test_signed_event_confirms_order(self, client, make_order):
        order = make_order(channel="card", payment_reference="cs_1")

        r = self._post(client, {"id": "evt_1", "event": "charge.success", "data": {"reference": "cs_1"}})

        assert r.status_code == 200
        assert r.get_json()["credited"] is True
        assert _db.session.get(Order, order["id"]).status == "PAID"

    def test_payment_for_cancelled_order_goes_to_inbox(self, client, make_order):
        order = make_order(channel="card", payment_reference="cs_1")
        mark_cancelled(order["id"], "abandoned")

        r = self._post(client, {"id": "evt_1", "event": "charge.success", "data": {"reference": "cs_1"}})

        assert r.status_code == 409
        assert r.get_json()["code"] == "invalid_state"
        assert _db.session.get(Order, order["id"]).status == "CANCELLED"
        sig = ReconciliationSignal.query.one()
        assert sig.source == "card"
        assert sig.needs_operator

    def test_other_events_ignored(self, client):
        r = self._post(client, {"event": "charge.failed", "data": {"reference": "cs_1"}})
        assert r.status_code == 200
        assert r.get_json()["ignored"] is True

    def test_unconfigured_secret(self, app, client):
        app.config["CARD_WEBHOOK_SECRET"] = ""
        r = self._post(client, {"event": "charge.success", "data": {"reference": "cs_1"}}, signature="x")
        assert r.status_code == 500


class TestCoinremitterWebhook:
    def test_invoice_mismatch_is_rejected(self, client, make_order):
        order = make_order(channel="crypto")
        other = make_order(channel="crypto")
        attach_crypto_invoice(order["id"], "INV-1")

        r = client.post(
            "/api/webhooks/coinremitter",
            data={"invoice_id": "INV-1", "status": "Paid", "custom_data1": str(other["id"])},
        )

        assert r.status_code == 404
        assert _db.session.get(Order, order["id"]).status == "PENDING"
        assert _db.session.get(Order, other["id"]).status == "PENDING"

    def test_paid_form_post(self, client, make_order):
        order = make_order(channel="crypto")
        attach_crypto_invoice(order["id"], "INV-1")

        r = client.post(
            "/api/webhooks/coinremitter",
            data={"invoice_id": "INV-1", "status": "Paid", "custom_data1": str(order["id"])},
        )

        assert r.status_code == 200
        assert _db.session.get(Order, order["id"]).status == "COMPLETED"


class TestAdminReconcile:
    def test_admin_only(self, client, seller, auth_header):
        r = client.post("/api/admin/reconcile", json={"references": ["123456789"]}, headers=auth_header(seller))
        assert r.status_code == 403

    def test_references(self, client, admin, auth_header, make_order):
        order = make_order(transaction_ref="123456789")

        r = client.post("/api/admin/reconcile", json={"references": ["123456789"]}, headers=auth_header(admin))

        assert r.status_code == 200
        assert r.get_json()["outcome"] == "matched"
        assert _db.session.get(Order, order["id"]).verified_by == admin.id

    def test_text(self, client, admin, auth_header, make_order):
        make_order(transaction_ref="123456789")

        r = client.post("/api/admin/reconcile", json={"text": "got 123456789 today"}, headers=auth_header(admin))

        assert r.status_code == 200
        assert r.get_json()["matchedCount"] == 1

    def test_missing_input(self, client, admin, auth_header):
        r = client.post("/api/admin/reconcile", json={}, headers=auth_header(admin))
        assert r.status_code == 400

    def test_signal_inbox(self, client, admin, auth_header):
        client.post("/api/webhooks/sms", json={"text": "Transfer 555555555 received"}, headers=SMS_AUTH)

        listed = client.get("/api/admin/reconcile/signals", headers=auth_header(admin))
        items = listed.get_json()["items"]
        resolved = client.post(f"/api/admin/reconcile/signals/{items[0]['id']}/resolve", headers=auth_header(admin))
        after = client.get("/api/admin/reconcile/signals", headers=auth_header(admin))

        assert len(items) == 1
        assert items[0]["unmatched_refs"] == ["555555555"]
        assert resolved.status_code == 200
        assert after.get_json()["items"] == []


class TestManualOrdersAdmin:
    def test_list_pending(self, client, admin, auth_header, make_order):
        make_order()
        make_order(channel="card")

        r = client.get("/api/admin/manual-orders", headers=auth_header(admin))

        assert r.status_code == 200
        assert len(r.get_json()["items"]) == 1

    def test_approve(self, client, admin, auth_header, make_order, seller):
        order = make_order()

        r = client.post(f"/api/admin/manual-orders/{order['id']}/approve", headers=auth_header(admin))

        assert r.status_code == 200
        assert _db.session.get(User, seller.id).pending_balance == 90.0

    def test_reject_needs_reason(self, client, admin, auth_header, make_order):
        order = make_order()

        missing = client.post(f"/api/admin/manual-orders/{order['id']}/reject", json={}, headers=auth_header(admin))
        ok = client.post(
            f"/api/admin/manual-orders/{order['id']}/reject", json={"reason": "no transfer"}, headers=auth_header(admin)
        )

        assert missing.status_code == 400
        assert ok.status_code == 200
        assert _db.session.get(Order, order["id"]).status == "CANCELLED"

    def test_reject_paid_order_conflicts(self, client, admin, auth_header, paid_order):
        order = paid_order()
        r = client.post(
            f"/api/admin/manual-orders/{order['id']}/reject", json={"reason": "late"}, headers=auth_header(admin)
        )
        assert r.status_code == 409
        assert r.get_json()["code"] == "invalid_state"


class TestPayoutRoutes:
    @pytest.fixture
    def funded_seller(self, paid_order, seller):
        paid_order()
        sweep_matured_holdings(now=datetime.utcnow() + timedelta(days=8))
        return seller

    def test_balance_requires_auth(self, client):
        assert client.get("/api/seller/balance").status_code == 401

    def test_balance(self, client, funded_seller, auth_header):
        r = client.get("/api/seller/balance", headers=auth_header(funded_seller))
        assert r.status_code == 200
        assert r.get_json()["balance"]["available"] == 90.0

    def test_idempotent_request(self, client, funded_seller, auth_header):
        headers = {**auth_header(funded_seller), "Idempotency-Key": "k-1"}

        first = client.post("/api/seller/payouts", json={"amount": 60}, headers=headers)
        second = client.post("/api/seller/payouts", json={"amount": 60}, headers=headers)
        reused = client.post("/api/seller/payouts", json={"amount": 70}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.get_json() == first.get_json()
        assert reused.status_code == 409
        assert Payout.query.count() == 1
        assert _db.session.get(User, funded_seller.id).available_balance == 30.0

    def test_insufficient_funds(self, client, funded_seller, auth_header):
        r = client.post("/api/seller/payouts", json={"amount": 500}, headers=auth_header(funded_seller))
        assert r.status_code == 400
        assert r.get_json()["code"] == "insufficient_funds"

    def test_settings_roundtrip(self, client, seller, auth_header):
        r = client.post(
            "/api/seller/payout-settings",
            json={"payoutMethod": "paypal", "paypalEmail": "me@pay.example"},
            headers=auth_header(seller),
        )
        got = client.get("/api/seller/payout-settings", headers=auth_header(seller))

        assert r.status_code == 200
        assert got.get_json()["payout_method"] == "paypal"
        assert got.get_json()["paypal_email"] == "me@pay.example"

    def test_admin_approve_twice(self, client, funded_seller, admin, auth_header):
        payout = request_payout(funded_seller.id, 90).data["payout"]

        first = client.post(f"/api/admin/payouts/{payout['id']}/approve", json={}, headers=auth_header(admin))
        second = client.post(f"/api/admin/payouts/{payout['id']}/approve", json={}, headers=auth_header(admin))

        assert first.status_code == 200
        assert first.get_json()["allocated_amount"] == 90.0
        assert second.status_code == 409
        assert second.get_json()["code"] == "already_processed"

    def test_admin_list_and_action(self, client, funded_seller, admin, auth_header):
        payout = request_payout(funded_seller.id, 90).data["payout"]

        listed = client.get("/api/admin/payouts", headers=auth_header(admin))
        acted = client.post(
            "/api/admin/payouts/action",
            json={"payoutId": payout["id"], "action": "reject", "reason": "wrong iban"},
            headers=auth_header(admin),
        )

        assert [p["id"] for p in listed.get_json()["items"]] == [payout["id"]]
        assert acted.status_code == 200
        assert _db.session.get(Payout, payout["id"]).status == "REJECTED"

    def test_seller_cannot_approve(self, client, funded_seller, auth_header):
        payout = request_payout(funded_seller.id, 90).data["payout"]
        r = client.post(f"/api/admin/payouts/{payout['id']}/approve", headers=auth_header(funded_seller))
        assert r.status_code == 403


class TestCron:
    def test_requires_secret(self, client):
        assert client.post("/api/cron/sweep-holdings").status_code == 401
        assert client.post("/api/cron/dispatch-events", headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_cron_secret(self, client):
        r = client.post("/api/cron/dispatch-events", headers={"Authorization": "Bearer cron-secret"})
        assert r.status_code == 200
        assert r.get_json()["ok"] is True

    def test_admin_token(self, client, admin, auth_header):
        r = client.post("/api/cron/audit-balances", headers=auth_header(admin))
        assert r.status_code == 200
        assert r.get_json()["anomalies"] == 0

    def test_sweep(self, client, paid_order, seller):
        order = paid_order()
        o = _db.session.get(Order, order["id"])
        o.available_at = datetime.utcnow() - timedelta(seconds=5)
        _db.session.commit()

        r = client.post("/api/cron/sweep-holdings", headers={"Authorization": "Bearer cron-secret"})

        assert r.status_code == 200
        assert r.get_json()["swept"] == 1
