"""
Payout tests

Tests cover:
1. Payout request validation and the available-balance lock
2. Admin approve / reject transitions
3. FIFO allocation with a carried remainder, and sweep_all
4. Balance conservation across the whole flow
"""

from datetime import datetime, timedelta

import pytest

from app.extensions import db as _db
from app.ledger import (
    apply_admin_action,
    approve_payout,
    get_seller_balance,
    list_payouts,
    reject_payout,
    request_payout,
    sweep_matured_holdings,
    update_payout_settings,
)
from app.models import AuditLog, LedgerEvent, Order, Payout, User


@pytest.fixture
def available_orders(paid_order):
    """Pay ``n`` orders of 90 and release them into available."""

    def _make(n):
        orders = [paid_order() for _ in range(n)]
        res = sweep_matured_holdings(now=datetime.utcnow() + timedelta(days=8))
        assert res.data["swept"] == n
        return orders

    return _make


def _available(user_id):
    return round(_db.session.get(User, user_id).available_balance, 2)


def _request(seller, amount):
    res = request_payout(seller.id, amount)
    assert res.ok, res.to_dict()
    return res.data["payout"]


class TestRequestPayout:
    """Seller cash-out requests."""

    def test_locks_available_funds(self, available_orders, seller):
        available_orders(1)

        res = request_payout(seller.id, 60)

        assert res.ok and res.changed
        assert res.retry_safe is False
        payout = res.data["payout"]
        assert payout["status"] == "PENDING"
        assert payout["amount"] == 60.0
        assert payout["method"] == "bank"
        assert payout["payout_number"].startswith("PAYOUT-")
        assert _available(seller.id) == 30.0
        assert LedgerEvent.query.filter_by(kind="payout.requested").count() == 1

    def test_below_minimum(self, available_orders, seller):
        available_orders(1)

        res = request_payout(seller.id, 49.99)

        assert not res.ok
        assert res.code == "validation_error"
        assert res.data["minimum"] == 50.0
        assert _available(seller.id) == 90.0

    @pytest.mark.parametrize("amount", [0, -10, "abc", None, "nan"])
    def test_invalid_amount(self, seller, amount):
        res = request_payout(seller.id, amount)
        assert not res.ok
        assert res.code == "validation_error"

    def test_one_cent_over_available(self, available_orders, seller):
        available_orders(1)

        res = request_payout(seller.id, 90.01)

        assert not res.ok
        assert res.code == "insufficient_funds"
        assert res.data["available"] == 90.0
        assert Payout.query.count() == 0
        assert _available(seller.id) == 90.0

    def test_exact_available_amount(self, available_orders, seller):
        available_orders(1)

        res = request_payout(seller.id, 90)

        assert res.ok
        assert _available(seller.id) == 0.0

    def test_second_request_cannot_spend_locked_funds(self, available_orders, seller):
        available_orders(1)
        _request(seller, 60)

        res = request_payout(seller.id, 60)

        assert res.code == "insufficient_funds"
        assert Payout.query.count() == 1

    def test_no_payout_method(self, other_seller):
        res = request_payout(other_seller.id, 60)
        assert not res.ok
        assert res.code == "validation_error"

    def test_method_details_snapshot(self, available_orders, seller):
        available_orders(1)
        payout = _request(seller, 60)

        update_payout_settings(seller.id, "paypal", {"paypal_email": "seller@pay.example"})

        stored = _db.session.get(Payout, payout["id"])
        assert stored.method == "bank"
        assert stored.method_details_dict()["account_number"] == "0011223344"


class TestPayoutSettings:
    @pytest.mark.parametrize(
        "method, details",
        [
            ("cash", {}),
            ("bank", {"bank_name": "No Number Bank"}),
            ("paypal", {"paypal_email": "not-an-email"}),
            ("crypto", {"crypto_wallet": "short"}),
        ],
    )
    def test_rejected(self, seller, method, details):
        res = update_payout_settings(seller.id, method, details)
        assert not res.ok
        assert res.code == "validation_error"
        assert _db.session.get(User, seller.id).payout_method == "bank"

    def test_crypto_wallet(self, seller):
        res = update_payout_settings(seller.id, "crypto", {"crypto_wallet": "TXyz1234567890abcdef"})
        assert res.ok
        assert res.data["method_details"] == {"wallet": "TXyz1234567890abcdef"}

    def test_nested_bank_details(self, other_seller):
        res = update_payout_settings(other_seller.id, "bank", {"bank_details": {"iban": "EG380019000500000000263180002"}})
        assert res.ok
        assert _db.session.get(User, other_seller.id).bank_details_dict() == {"iban": "EG380019000500000000263180002"}


class TestApproveReject:
    """Admin transitions on a PENDING payout."""

    def test_approve_once(self, available_orders, seller, admin):
        orders = available_orders(1)
        payout = _request(seller, 90)

        first = approve_payout(payout["id"], admin.id, transaction_id="TX-1")
        second = approve_payout(payout["id"], admin.id)

        assert first.ok
        assert first.data["order_ids"] == [orders[0]["id"]]
        assert first.data["allocated_amount"] == 90.0
        assert first.data["unallocated_amount"] == 0.0
        assert not second.ok
        assert second.code == "already_processed"
        assert second.http_status == 409

        stored = _db.session.get(Payout, payout["id"])
        assert stored.status == "COMPLETED"
        assert stored.transaction_id == "TX-1"
        assert stored.approved_by == admin.id
        o = _db.session.get(Order, orders[0]["id"])
        assert o.payout_status == "paid_out"
        assert o.payout_id == payout["id"]
        assert AuditLog.query.filter_by(action="payout_approved").count() == 1

    def test_reject_restores_available(self, available_orders, seller, admin):
        available_orders(1)
        payout = _request(seller, 60)

        res = reject_payout(payout["id"], admin.id, "account name mismatch")
        again = reject_payout(payout["id"], admin.id, "account name mismatch")

        assert res.ok
        assert again.code == "already_processed"
        assert _available(seller.id) == 90.0
        stored = _db.session.get(Payout, payout["id"])
        assert stored.status == "REJECTED"
        assert stored.rejection_reason == "account name mismatch"

    def test_reject_needs_reason(self, available_orders, seller, admin):
        available_orders(1)
        payout = _request(seller, 60)

        res = reject_payout(payout["id"], admin.id, "   ")

        assert res.code == "validation_error"
        assert _db.session.get(Payout, payout["id"]).status == "PENDING"

    def test_rejected_payout_cannot_be_approved(self, available_orders, seller, admin):
        available_orders(1)
        payout = _request(seller, 60)
        reject_payout(payout["id"], admin.id, "duplicate")

        res = approve_payout(payout["id"], admin.id)

        assert res.code == "already_processed"
        assert _available(seller.id) == 90.0

    def test_unknown_payout(self, admin):
        res = approve_payout(999, admin.id)
        assert res.code == "payout_not_found"
        assert res.http_status == 404


class TestAdminAction:
    def test_paid_action(self, available_orders, seller, admin):
        available_orders(1)
        payout = _request(seller, 90)

        res = apply_admin_action({"payoutId": payout["id"], "action": "paid", "transactionId": "W-9"}, admin.id)

        assert res.ok
        assert _db.session.get(Payout, payout["id"]).status == "PAID"

    def test_reject_action(self, available_orders, seller, admin):
        available_orders(1)
        payout = _request(seller, 90)

        res = apply_admin_action({"payout_id": payout["id"], "action": "reject", "reason": "fraud check"}, admin.id)

        assert res.ok
        assert _available(seller.id) == 90.0

    def test_unknown_action(self, admin):
        res = apply_admin_action({"payoutId": 1, "action": "refund"}, admin.id)
        assert not res.ok
        assert res.code == "validation_error"


class TestAllocation:
    """Which orders a payout settles."""

    def test_fifo_carries_remainder(self, available_orders, seller, admin):
        first_order, second_order = available_orders(2)

        p1 = _request(seller, 100)
        r1 = approve_payout(p1["id"], admin.id)
        assert r1.data["order_ids"] == [first_order["id"]]
        assert r1.data["unallocated_amount"] == 10.0
        assert _db.session.get(Order, second_order["id"]).payout_status == "available"

        p2 = _request(seller, 80)
        r2 = approve_payout(p2["id"], admin.id)
        assert r2.data["order_ids"] == [second_order["id"]]
        assert r2.data["unallocated_amount"] == 0.0

    def test_fifo_links_nothing_when_budget_too_small(self, available_orders, seller, admin):
        order = available_orders(1)[0]
        payout = _request(seller, 50)

        res = approve_payout(payout["id"], admin.id)

        assert res.ok
        assert res.data["order_ids"] == []
        assert res.data["unallocated_amount"] == 50.0
        assert _db.session.get(Order, order["id"]).payout_status == "available"

    def test_sweep_all(self, app, available_orders, seller, admin):
        app.config["PAYOUT_ALLOCATION"] = "sweep_all"
        orders = available_orders(2)
        payout = _request(seller, 60)

        res = approve_payout(payout["id"], admin.id)

        assert sorted(res.data["order_ids"]) == sorted(o["id"] for o in orders)
        assert res.data["allocated_amount"] == 180.0

    def test_pending_orders_never_allocated(self, paid_order, available_orders, seller, admin):
        available_orders(1)
        held = paid_order()
        payout = _request(seller, 90)

        approve_payout(payout["id"], admin.id)

        assert _db.session.get(Order, held["id"]).payout_status == "pending"


class TestSellerBalance:
    def test_conservation(self, available_orders, paid_order, seller, admin):
        available_orders(3)
        paid_order()
        approved = _request(seller, 100)
        approve_payout(approved["id"], admin.id)
        rejected = _request(seller, 60)
        reject_payout(rejected["id"], admin.id, "wrong account")
        _request(seller, 70)

        bal = get_seller_balance(seller.id)

        assert bal["pending"] == 90.0
        assert bal["available"] == 100.0
        assert bal["locked"] == 70.0
        assert bal["withdrawn"] == 100.0
        assert bal["total"] == 360.0
        assert round(bal["pending"] + bal["available"] + bal["locked"] + bal["withdrawn"], 2) == bal["total"]
        assert bal["payout_method"] == "bank"
        assert bal["currency"] == "USD"

    def test_unknown_seller(self, app):
        assert get_seller_balance(4040) is None

    def test_list_payouts(self, available_orders, seller, admin):
        available_orders(2)
        p1 = _request(seller, 60)
        _request(seller, 60)
        approve_payout(p1["id"], admin.id)

        assert len(list_payouts(seller_id=seller.id)) == 2
        assert [p.id for p in list_payouts(status="completed")] == [p1["id"]]
