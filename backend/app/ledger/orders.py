"""Order lifecycle: checkout, payment confirmation, cancellation, holding sweep."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.config import escrow_settings
from app.extensions import db
from app.ledger import events
from app.ledger.errors import InvalidStateError, LedgerError, OrderNotFoundError, ValidationError
from app.ledger.results import ledger_operation
from app.ledger.states import (
    ORDER_PAYOUT_TRANSITIONS,
    ORDER_TRANSITIONS,
    PAID_STATUSES,
    OrderStatus,
    PaymentChannel,
    PayoutStatus,
    sources_for,
)
from app.ledger.store import _now, atomic, credit_pending, guarded_update, money, release_pending
from app.models import AuditLog, Order, OrderItem, Product
from app.utils.commission import split_commission
from app.utils.references import normalize_reference


def _order_number() -> str:
    return f"ORD-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def _load_order(order_id) -> Order:
    try:
        oid = int(order_id)
    except (TypeError, ValueError):
        raise OrderNotFoundError(f"order {order_id!r} not found")
    order = db.session.get(Order, oid)
    if not order:
        raise OrderNotFoundError(f"order {oid} not found", order_id=oid)
    return order


def _current_status(order_id: int) -> str | None:
    return db.session.execute(select(Order.status).where(Order.id == int(order_id))).scalar_one_or_none()


def _resolve_items(items) -> tuple[int, list[dict], float]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("items required")

    seller_ids = set()
    lines = []
    total = 0.0
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        try:
            product_id = int(raw.get("id"))
        except (TypeError, ValueError):
            raise ValidationError("item id required")
        try:
            quantity = int(raw.get("quantity") or 1)
        except (TypeError, ValueError):
            raise ValidationError("quantity must be an integer")
        if quantity < 1:
            raise ValidationError("quantity must be >= 1")

        product = db.session.get(Product, product_id)
        if not product or not product.is_active:
            raise ValidationError(f"product {product_id} is not available", product_id=product_id)
        seller_ids.add(int(product.user_id))
        price = money(product.price)
        total += price * quantity
        lines.append({"product_id": product_id, "item_type": product.kind or "product", "quantity": quantity, "price": price})

    if not seller_ids:
        raise ValidationError("no resolvable seller for items")
    if len(seller_ids) > 1:
        raise ValidationError("items belong to more than one seller", seller_ids=sorted(seller_ids))
    return seller_ids.pop(), lines, money(total)


@ledger_operation("create_order", idempotent=False)
def create_order(items, channel, buyer: dict | None = None) -> dict:
    """Price the cart, split the commission and open a PENDING order.

    Free checkouts (zero-priced cart) are COMPLETED at once.

    ``buyer`` carries the buyer/channel metadata collected at checkout
    (customer_name, customer_email, customer_phone, buyer_id,
    transaction_ref, payment_reference, payment_provider, country,
    sender_phone, payment_notes).
    """
    buyer = buyer or {}
    settings = escrow_settings()
    try:
        channel = PaymentChannel((channel or "").strip().lower())
    except ValueError:
        raise ValidationError(f"unsupported payment channel {channel!r}")

    seller_id, lines, total = _resolve_items(items)
    platform_fee, seller_amount = split_commission(total, settings.platform_fee_percentage)

    if channel != PaymentChannel.FREE and (total <= 0 or seller_amount <= 0):
        raise ValidationError("order amount must be positive for a paid channel", total=total)
    if channel == PaymentChannel.FREE and total > 0:
        raise ValidationError("free checkout with a priced cart", total=total)

    now = _now()
    transaction_ref = normalize_reference(buyer.get("transaction_ref")) or None
    payment_reference = (str(buyer.get("payment_reference") or "").strip() or None)
    buyer_id = buyer.get("buyer_id")

    order = Order(
        order_number=_order_number(),
        buyer_id=int(buyer_id) if buyer_id else None,
        seller_id=seller_id,
        customer_name=(buyer.get("customer_name") or "")[:120],
        customer_email=(buyer.get("customer_email") or "")[:255],
        customer_phone=(buyer.get("customer_phone") or "")[:32],
        total_amount=total,
        platform_fee=platform_fee,
        seller_amount=seller_amount,
        currency=settings.currency,
        status=OrderStatus.PENDING.value,
        payout_status=PayoutStatus.PENDING.value,
        payment_method=channel.value,
        payment_provider=(buyer.get("payment_provider") or None),
        payment_country=(buyer.get("country") or None),
        transaction_ref=transaction_ref,
        sender_phone=(buyer.get("sender_phone") or None),
        payment_notes=((buyer.get("payment_notes") or "")[:400] or None),
        payment_reference=payment_reference,
        available_at=now + timedelta(days=settings.holding_period_days),
        created_at=now,
        updated_at=now,
    )
    order.items = [OrderItem(**line) for line in lines]

    with atomic():
        db.session.add(order)
        if channel == PaymentChannel.FREE:
            # nothing to collect: settle in the same transaction
            db.session.flush()
            apply_payment(order, paid_status=OrderStatus.COMPLETED)

    current_app.logger.info(
        "order %s created: channel=%s seller=%s total=%.2f fee=%.2f seller_amount=%.2f",
        order.order_number, channel.value, seller_id, total, platform_fee, seller_amount,
    )
    return {"order": order.to_dict()}


@ledger_operation("attach_crypto_invoice")
def attach_crypto_invoice(order_id, invoice_id: str) -> dict:
    invoice_id = (invoice_id or "").strip()
    if not invoice_id:
        raise ValidationError("invoice_id required")
    with atomic():
        order = _load_order(order_id)
        moved = guarded_update(
            Order,
            order.id,
            [
                Order.status == OrderStatus.PENDING.value,
                Order.payment_method == PaymentChannel.CRYPTO.value,
                Order.crypto_invoice_id.is_(None),
            ],
            {"crypto_invoice_id": invoice_id, "updated_at": _now()},
        )
        if not moved:
            stored = db.session.execute(select(Order.crypto_invoice_id).where(Order.id == order.id)).scalar_one_or_none()
            if stored == invoice_id:
                return {"changed": False, "order_id": int(order.id), "invoice_id": invoice_id}
            raise InvalidStateError(f"order {order.order_number} cannot take invoice {invoice_id}")
    return {"order_id": int(order.id), "invoice_id": invoice_id}


def apply_payment(
    order: Order,
    *,
    paid_status: OrderStatus = OrderStatus.PAID,
    verified_by: int | None = None,
    crypto_status: str | None = None,
) -> bool:
    """Confirm payment on ``order`` inside the caller's transaction.

    Returns True when this call moved the order and credited the seller,
    False when the order was already paid (duplicate delivery).
    """
    if paid_status.value not in PAID_STATUSES:
        raise ValidationError(f"{paid_status.value} is not a paid status")

    now = _now()
    values = {"status": paid_status.value, "is_paid": True, "paid_at": now, "updated_at": now}
    if verified_by is not None:
        values["verified_by"] = int(verified_by)
        values["verified_at"] = now
    if crypto_status is not None:
        values["crypto_status"] = crypto_status[:32]

    moved = guarded_update(
        Order,
        order.id,
        [Order.status.in_(sources_for(ORDER_TRANSITIONS, paid_status))],
        values,
    )
    if not moved:
        current = _current_status(order.id)
        if current in PAID_STATUSES:
            current_app.logger.info("order %s already %s; payment confirmation ignored", order.order_number, current)
            return False
        raise InvalidStateError(
            f"order {order.order_number} is {current}, cannot be paid",
            order_number=order.order_number,
            status=current,
        )

    if float(order.seller_amount or 0.0) > 0:
        if not credit_pending(
            order.seller_id,
            order.seller_amount,
            reference=f"order:{int(order.id)}",
            note=f"Order {order.order_number} paid",
        ):
            raise InvalidStateError(f"seller {order.seller_id} missing for order {order.order_number}")

    events.emit(
        events.ORDER_PAID,
        order_id=order.id,
        seller_id=order.seller_id,
        order_number=order.order_number,
        seller_amount=float(order.seller_amount or 0.0),
        status=paid_status.value,
        customer_email=order.customer_email or "",
    )
    current_app.logger.info(
        "order %s -> %s, seller %s pending += %.2f",
        order.order_number, paid_status.value, order.seller_id, float(order.seller_amount or 0.0),
    )
    return True


@ledger_operation("mark_paid")
def mark_paid(order_id, proof: dict | None = None) -> dict:
    """Confirm an order's payment. Safe to call any number of times.

    ``proof`` may carry ``verified_by`` (admin id), ``status``
    (PAID or COMPLETED) and ``crypto_status``.
    """
    proof = proof or {}
    try:
        paid_status = OrderStatus((proof.get("status") or OrderStatus.PAID.value).upper())
    except ValueError:
        raise ValidationError(f"unknown status {proof.get('status')!r}")

    with atomic():
        order = _load_order(order_id)
        verified_by = proof.get("verified_by")
        credited = apply_payment(
            order,
            paid_status=paid_status,
            verified_by=verified_by,
            crypto_status=proof.get("crypto_status"),
        )
        if credited and verified_by is not None:
            AuditLog.record(
                "order_approved",
                actor_user_id=int(verified_by),
                target_type="order",
                target_id=int(order.id),
                meta={"order_number": order.order_number, "seller_amount": float(order.seller_amount or 0.0)},
            )
    return {"changed": credited, "credited": credited, "order_id": int(order.id), "order_number": order.order_number}


@ledger_operation("mark_cancelled")
def mark_cancelled(order_id, reason: str = "", actor_id: int | None = None) -> dict:
    """Reject a PENDING order. Paid orders are never reversed here."""
    with atomic():
        order = _load_order(order_id)
        now = _now()
        values = {
            "status": OrderStatus.CANCELLED.value,
            "rejection_reason": (reason or "")[:400] or None,
            "updated_at": now,
        }
        if actor_id is not None:
            values["verified_by"] = int(actor_id)
            values["verified_at"] = now
        moved = guarded_update(
            Order,
            order.id,
            [Order.status.in_(sources_for(ORDER_TRANSITIONS, OrderStatus.CANCELLED))],
            values,
        )
        if not moved:
            current = _current_status(order.id)
            raise InvalidStateError(
                f"order {order.order_number} is {current}, cannot be cancelled",
                order_number=order.order_number,
                status=current,
            )
        events.emit(
            events.ORDER_CANCELLED,
            order_id=order.id,
            seller_id=order.seller_id,
            order_number=order.order_number,
            reason=reason or "",
            customer_email=order.customer_email or "",
        )
        AuditLog.record(
            "order_rejected",
            actor_user_id=actor_id,
            target_type="order",
            target_id=int(order.id),
            meta={"order_number": order.order_number, "reason": reason or ""},
        )
    current_app.logger.info("order %s cancelled by %s", order.order_number, actor_id)
    return {"order_id": int(order.id), "order_number": order.order_number}


@ledger_operation("sweep_matured_holdings")
def sweep_matured_holdings(now: datetime | None = None, limit: int = 500) -> dict:
    """Release every paid order whose holding period is over.

    Each order moves in its own transaction behind a ``payout_status =
    pending`` guard, so concurrent sweepers release an order at most once.
    """
    now = now or _now()
    log = current_app.logger
    paid = sorted(PAID_STATUSES)
    from_state = sources_for(ORDER_PAYOUT_TRANSITIONS, PayoutStatus.AVAILABLE)

    ids = db.session.execute(
        select(Order.id)
        .where(
            Order.payout_status.in_(from_state),
            Order.status.in_(paid),
            Order.available_at <= now,
        )
        .order_by(Order.available_at.asc(), Order.id.asc())
        .limit(int(limit))
    ).scalars().all()

    swept = 0
    skipped = 0
    errors = 0
    released_amount = 0.0

    for oid in ids:
        try:
            with atomic():
                seller_id, seller_amount, order_number = db.session.execute(
                    select(Order.seller_id, Order.seller_amount, Order.order_number).where(Order.id == oid)
                ).one()
                moved = guarded_update(
                    Order,
                    oid,
                    [
                        Order.payout_status.in_(from_state),
                        Order.status.in_(paid),
                        Order.available_at <= now,
                    ],
                    {"payout_status": PayoutStatus.AVAILABLE.value, "updated_at": now},
                )
                if not moved:
                    skipped += 1
                    continue
                if float(seller_amount or 0.0) > 0 and not release_pending(
                    seller_id,
                    seller_amount,
                    reference=f"order:{int(oid)}",
                    note=f"Holding period over for {order_number}",
                ):
                    raise InvalidStateError(f"pending balance of seller {seller_id} cannot cover {order_number}")
            swept += 1
            released_amount += float(seller_amount or 0.0)
        except LedgerError as e:
            errors += 1
            log.error("holding sweep skipped order %s: %s", oid, e.message)
        except SQLAlchemyError:
            errors += 1
            log.exception("holding sweep failed on order %s", oid)

    if swept or errors:
        log.info("holding sweep: swept=%s skipped=%s errors=%s released=%.2f", swept, skipped, errors, released_amount)
    return {
        "changed": swept > 0,
        "processed": len(ids),
        "swept": swept,
        "skipped": skipped,
        "errors": errors,
        "released_amount": money(released_amount),
        "ts": now.isoformat(),
    }


def get_order_by_number(order_number: str) -> Order | None:
    return Order.query.filter_by(order_number=(order_number or "").strip()).first()
