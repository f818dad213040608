"""
Order lifecycle tests

Tests cover:
1. Checkout pricing and commission split
2. Idempotent payment confirmation
3. Cancellation rules
4. Holding-period sweep
"""

from datetime import datetime, timedelta

from app.extensions import db as _db
from app.ledger import create_order, mark_cancelled, mark_paid, sweep_matured_holdings
from app.models import BalanceEntry, LedgerEvent, Order, Product, User


def _balances(user_id):
    u = _db.session.get(User, user_id)
    return round(u.pending_balance, 2), round(u.available_balance, 2), round(u.total_earnings, 2)


class TestCreateOrder:
    """Checkout pricing."""

    def test_commission_split(self, make_order, seller):
        """100 at 10% -> fee 10, seller 90, PENDING with a 7 day hold."""
        order = make_order()

        assert order["total_amount"] == 100.0
        assert order["platform_fee"] == 10.0
        assert order["seller_amount"] == 90.0
        assert order["status"] == "PENDING"
        assert order["payout_status"] == "pending"
        assert order["seller_id"] == seller.id
        assert order["order_number"].startswith("ORD-")

        created = datetime.fromisoformat(order["created_at"])
        available = datetime.fromisoformat(order["available_at"])
        assert available - created == timedelta(days=7)

    def test_quantity_multiplies_price(self, make_order):
        order = make_order(quantity=3)
        assert order["total_amount"] == 300.0
        assert order["platform_fee"] == 30.0
        assert order["seller_amount"] == 270.0

    def test_manual_reference_is_normalized(self, make_order):
        order = make_order(transaction_ref="  12 34 56 789 ")
        assert order["transaction_ref"] == "123456789"

    def test_items_from_two_sellers_rejected(self, db, product, other_seller):
        other = Product(user_id=other_seller.id, title="Other", price=20.0)
        db.session.add(other)
        db.session.commit()

        res = create_order([{"id": product.id}, {"id": other.id}], "manual")

        assert not res.ok
        assert res.code == "validation_error"
        assert Order.query.count() == 0

    def test_unknown_product_rejected(self, app):
        res = create_order([{"id": 999}], "manual")
        assert not res.ok
        assert res.code == "validation_error"

    def test_unknown_channel_rejected(self, product):
        res = create_order([{"id": product.id}], "barter")
        assert not res.ok
        assert res.code == "validation_error"

    def test_zero_amount_on_paid_channel_rejected(self, db, seller):
        freebie = Product(user_id=seller.id, title="Free", price=0.0)
        db.session.add(freebie)
        db.session.commit()

        res = create_order([{"id": freebie.id}], "manual")
        assert not res.ok
        assert res.code == "validation_error"

        res = create_order([{"id": freebie.id}], "free")
        assert res.ok
        assert res.data["order"]["total_amount"] == 0.0

    def test_free_checkout_completes_immediately(self, db, seller):
        """Nothing to collect: COMPLETED at creation, no balance moves."""
        freebie = Product(user_id=seller.id, title="Free", price=0.0)
        db.session.add(freebie)
        db.session.commit()

        res = create_order([{"id": freebie.id}], "free")

        assert res.ok
        order = res.data["order"]
        assert order["status"] == "COMPLETED"
        assert order["is_paid"] is True
        assert _db.session.get(Order, order["id"]).paid_at is not None
        assert _balances(seller.id) == (0.0, 0.0, 0.0)
        assert BalanceEntry.query.count() == 0
        assert LedgerEvent.query.filter_by(kind="order.paid", order_id=order["id"]).count() == 1

    def test_free_channel_with_priced_cart_rejected(self, product):
        res = create_order([{"id": product.id}], "free")
        assert not res.ok
        assert res.code == "validation_error"

    def test_create_is_not_retry_safe(self, product):
        res = create_order([{"id": product.id}], "manual")
        assert res.ok
        assert res.retry_safe is False


class TestMarkPaid:
    """Payment confirmation credits the seller exactly once."""

    def test_credits_pending_and_earnings(self, make_order, seller):
        order = make_order()

        res = mark_paid(order["id"])

        assert res.ok and res.changed
        assert res.data["credited"] is True
        assert _balances(seller.id) == (90.0, 0.0, 90.0)
        o = _db.session.get(Order, order["id"])
        assert o.status == "PAID"
        assert o.is_paid is True
        assert o.paid_at is not None

    def test_second_call_is_a_no_op(self, make_order, seller):
        order = make_order()
        mark_paid(order["id"])

        again = mark_paid(order["id"])

        assert again.ok
        assert again.changed is False
        assert again.data["credited"] is False
        assert _balances(seller.id) == (90.0, 0.0, 90.0)
        assert BalanceEntry.query.filter_by(user_id=seller.id, kind="order_paid").count() == 1
        assert LedgerEvent.query.filter_by(kind="order.paid").count() == 1

    def test_completed_status_for_crypto_proof(self, make_order):
        order = make_order(channel="crypto")
        res = mark_paid(order["id"], {"status": "COMPLETED", "crypto_status": "Paid"})
        assert res.ok and res.changed
        o = _db.session.get(Order, order["id"])
        assert o.status == "COMPLETED"
        assert o.crypto_status == "Paid"

    def test_admin_verification_is_audited(self, make_order, admin):
        order = make_order()
        res = mark_paid(order["id"], {"verified_by": admin.id})
        assert res.ok
        o = _db.session.get(Order, order["id"])
        assert o.verified_by == admin.id
        assert o.verified_at is not None

    def test_cancelled_order_cannot_be_paid(self, make_order, seller):
        order = make_order()
        mark_cancelled(order["id"], "no transfer")

        res = mark_paid(order["id"])

        assert not res.ok
        assert res.code == "invalid_state"
        assert _balances(seller.id) == (0.0, 0.0, 0.0)

    def test_unknown_order(self, app):
        res = mark_paid(424242)
        assert not res.ok
        assert res.code == "order_not_found"
        assert res.http_status == 404


class TestMarkCancelled:
    """Only PENDING orders can be rejected."""

    def test_cancel_pending(self, make_order, admin):
        order = make_order()

        res = mark_cancelled(order["id"], "transfer not found", actor_id=admin.id)

        assert res.ok
        o = _db.session.get(Order, order["id"])
        assert o.status == "CANCELLED"
        assert o.rejection_reason == "transfer not found"
        assert LedgerEvent.query.filter_by(kind="order.cancelled").count() == 1

    def test_paid_order_is_never_reversed(self, paid_order, seller):
        order = paid_order()

        res = mark_cancelled(order["id"], "changed my mind")

        assert not res.ok
        assert res.code == "invalid_state"
        assert _db.session.get(Order, order["id"]).status == "PAID"
        assert _balances(seller.id) == (90.0, 0.0, 90.0)


class TestSweepMaturedHoldings:
    """pending -> available once the holding period is over."""

    def test_nothing_moves_before_maturity(self, paid_order, seller):
        paid_order()

        res = sweep_matured_holdings(now=datetime.utcnow() + timedelta(days=6))

        assert res.ok
        assert res.data["swept"] == 0
        assert _balances(seller.id) == (90.0, 0.0, 90.0)

    def test_matured_order_released_once(self, paid_order, seller):
        order = paid_order()
        later = datetime.utcnow() + timedelta(days=7, minutes=1)

        first = sweep_matured_holdings(now=later)
        second = sweep_matured_holdings(now=later)

        assert first.data["swept"] == 1
        assert first.data["released_amount"] == 90.0
        assert second.data["swept"] == 0
        assert second.changed is False
        assert _balances(seller.id) == (0.0, 90.0, 90.0)
        assert _db.session.get(Order, order["id"]).payout_status == "available"

    def test_unpaid_orders_are_not_swept(self, make_order, seller):
        make_order()

        res = sweep_matured_holdings(now=datetime.utcnow() + timedelta(days=30))

        assert res.data["processed"] == 0
        assert _balances(seller.id) == (0.0, 0.0, 0.0)

    def test_journal_matches_balances(self, paid_order, seller):
        paid_order()
        paid_order()
        sweep_matured_holdings(now=datetime.utcnow() + timedelta(days=8))

        entries = BalanceEntry.query.filter_by(user_id=seller.id).all()
        available = sum(e.amount if e.direction == "credit" else -e.amount for e in entries if e.bucket == "available")
        pending = sum(e.amount if e.direction == "credit" else -e.amount for e in entries if e.bucket == "pending")
        assert round(available, 2) == 180.0
        assert round(pending, 2) == 0.0
