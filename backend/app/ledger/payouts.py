"""Seller payouts: request, admin approve/reject, and order allocation.

Approval links orders to the payout under one of two policies:

``fifo``
    Oldest ``available`` orders are linked while their cumulative
    seller_amount fits the seller's cash-out budget (this payout plus any
    remainder earlier payouts left unallocated). The first order that does
    not fit stops the walk; what is left is stored on the payout as
    ``unallocated_amount`` and becomes part of the next approval's budget.

``sweep_all``
    Every available order of the seller with no payout yet is swept to
    ``paid_out``, whatever the payout amount. This is an approximate
    cash-out, not an allocation.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select

from app.config import escrow_settings
from app.extensions import db
from app.ledger import events
from app.ledger.errors import (
    AlreadyProcessedError,
    InsufficientFundsError,
    PayoutNotFoundError,
    ValidationError,
)
from app.ledger.results import ledger_operation
from app.ledger.states import (
    ORDER_PAYOUT_TRANSITIONS,
    PAID_STATUSES,
    PAYOUT_TRANSITIONS,
    PayoutRequestStatus,
    PayoutStatus,
    sources_for,
)
from app.ledger.store import CENT_TOLERANCE, _now, atomic, guarded_update, lock_available, money, unlock_available
from app.models import AuditLog, Order, Payout, User

SETTLED_PAYOUT_STATUSES = (PayoutRequestStatus.COMPLETED.value, PayoutRequestStatus.PAID.value)


def _load_seller(seller_id) -> User:
    try:
        uid = int(seller_id)
    except (TypeError, ValueError):
        raise ValidationError("seller id required")
    user = db.session.get(User, uid)
    if not user:
        raise ValidationError(f"seller {uid} not found", seller_id=uid)
    return user


def _load_payout(payout_id, *, for_update: bool = False) -> Payout:
    try:
        pid = int(payout_id)
    except (TypeError, ValueError):
        raise PayoutNotFoundError(f"payout {payout_id!r} not found")
    q = select(Payout).where(Payout.id == pid)
    if for_update:
        q = q.with_for_update()
    payout = db.session.execute(q).scalar_one_or_none()
    if not payout:
        raise PayoutNotFoundError(f"payout {pid} not found", payout_id=pid)
    return payout


def _payout_number() -> str:
    return f"PAYOUT-{datetime.utcnow():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6].upper()}"


def _method_details(user: User) -> dict:
    method = user.payout_method
    if method == "bank":
        return user.bank_details_dict()
    if method == "paypal":
        return {"email": user.paypal_email or ""}
    if method == "crypto":
        return {"wallet": user.crypto_wallet or ""}
    return {}


def _parse_amount(amount) -> float:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("amount must be a number")
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError("amount must be a finite number")
    return money(value)


@ledger_operation("update_payout_settings")
def update_payout_settings(seller_id, method: str, details: dict | None = None) -> dict:
    """Store where the seller wants to be paid. Checked at request time, snapshotted then."""
    settings = escrow_settings()
    details = details or {}
    method = (method or "").strip().lower()
    if method not in settings.payout_methods:
        raise ValidationError(f"unsupported payout method {method!r}", allowed=list(settings.payout_methods))

    values = {"payout_method": method}
    if method == "bank":
        bank = details.get("bank_details") if isinstance(details.get("bank_details"), dict) else details
        bank = {k: str(v).strip() for k, v in (bank or {}).items() if v not in (None, "")}
        if not bank.get("account_number") and not bank.get("iban"):
            raise ValidationError("bank payouts need an account_number or iban")
        values["bank_details"] = json.dumps(bank)
    elif method == "paypal":
        email = (details.get("paypal_email") or details.get("email") or "").strip()
        if "@" not in email:
            raise ValidationError("a valid paypal_email is required")
        values["paypal_email"] = email[:255]
    elif method == "crypto":
        wallet = (details.get("crypto_wallet") or details.get("wallet") or "").strip()
        if len(wallet) < 10:
            raise ValidationError("a valid crypto_wallet is required")
        values["crypto_wallet"] = wallet[:255]

    with atomic():
        user = _load_seller(seller_id)
        for k, v in values.items():
            setattr(user, k, v)
    return {"seller_id": int(user.id), "payout_method": method, "method_details": _method_details(user)}


@ledger_operation("request_payout", idempotent=False)
def request_payout(seller_id, amount) -> dict:
    """Open a PENDING payout and move ``amount`` out of available in one step.

    The balance check is the guarded decrement itself, so two concurrent
    requests can never both spend the same available funds.
    """
    settings = escrow_settings()
    amt = _parse_amount(amount)
    if amt <= 0:
        raise ValidationError("amount must be positive")
    if amt < settings.min_payout_amount:
        raise ValidationError(
            f"minimum payout is {settings.min_payout_amount:.2f}", minimum=settings.min_payout_amount
        )

    with atomic():
        user = _load_seller(seller_id)
        if not user.payout_method:
            raise ValidationError("set a payout method before requesting a payout")
        if user.payout_method not in settings.payout_methods:
            raise ValidationError(f"payout method {user.payout_method!r} is no longer supported")

        payout = Payout(
            payout_number=_payout_number(),
            seller_id=int(user.id),
            amount=amt,
            currency=settings.currency,
            method=user.payout_method,
            method_details=json.dumps(_method_details(user)),
            status=PayoutRequestStatus.PENDING.value,
        )
        db.session.add(payout)
        db.session.flush()

        if not lock_available(user.id, amt, reference=f"payout:{int(payout.id)}", note=f"Payout {payout.payout_number} requested"):
            available = db.session.execute(
                select(User.available_balance).where(User.id == user.id)
            ).scalar_one()
            raise InsufficientFundsError(
                f"available balance {float(available or 0.0):.2f} is below {amt:.2f}",
                available=float(available or 0.0),
                requested=amt,
            )

        events.emit(
            events.PAYOUT_REQUESTED,
            payout_id=payout.id,
            seller_id=user.id,
            payout_number=payout.payout_number,
            amount=amt,
            method=payout.method,
        )
        data = payout.to_dict()

    current_app.logger.info("payout %s requested by seller %s: %.2f via %s", data["payout_number"], seller_id, amt, data["method"])
    return {"payout": data}


def _settled_budget(seller_id: int, payout: Payout) -> float:
    """This payout plus whatever earlier settled payouts left unallocated."""
    settled = db.session.execute(
        select(func.coalesce(func.sum(Payout.amount), 0.0)).where(
            Payout.seller_id == seller_id,
            Payout.status.in_(SETTLED_PAYOUT_STATUSES),
            Payout.id != payout.id,
        )
    ).scalar_one()
    allocated = db.session.execute(
        select(func.coalesce(func.sum(Order.seller_amount), 0.0)).where(
            Order.seller_id == seller_id,
            Order.payout_status == PayoutStatus.PAID_OUT.value,
        )
    ).scalar_one()
    return money(float(settled) + float(payout.amount or 0.0) - float(allocated))


def _available_unlinked(seller_id: int):
    return db.session.execute(
        select(Order.id, Order.seller_amount)
        .where(
            Order.seller_id == seller_id,
            Order.payout_status == PayoutStatus.AVAILABLE.value,
            Order.status.in_(sorted(PAID_STATUSES)),
            Order.payout_id.is_(None),
        )
        .order_by(Order.available_at.asc(), Order.id.asc())
    ).all()


def _link_order(order_id: int, payout_id: int, now: datetime) -> bool:
    return guarded_update(
        Order,
        order_id,
        [
            Order.payout_status.in_(sources_for(ORDER_PAYOUT_TRANSITIONS, PayoutStatus.PAID_OUT)),
            Order.payout_id.is_(None),
        ],
        {"payout_status": PayoutStatus.PAID_OUT.value, "payout_id": int(payout_id), "paid_out_at": now, "updated_at": now},
    )


def _allocate(payout: Payout, policy: str, now: datetime) -> tuple[list[int], float, float]:
    seller_id = int(payout.seller_id)
    candidates = _available_unlinked(seller_id)
    linked = []
    allocated = 0.0

    if policy == "sweep_all":
        for oid, amount in candidates:
            if _link_order(oid, payout.id, now):
                linked.append(int(oid))
                allocated += float(amount or 0.0)
        return linked, money(allocated), money(float(payout.amount or 0.0) - allocated)

    budget = _settled_budget(seller_id, payout)
    for oid, amount in candidates:
        amount = float(amount or 0.0)
        if allocated + amount > budget + CENT_TOLERANCE:
            break
        if _link_order(oid, payout.id, now):
            linked.append(int(oid))
            allocated += amount
    return linked, money(allocated), money(budget - allocated)


@ledger_operation("approve_payout")
def approve_payout(
    payout_id,
    admin_id: int,
    transaction_id: str | None = None,
    notes: str | None = None,
    final_status: PayoutRequestStatus = PayoutRequestStatus.COMPLETED,
) -> dict:
    """PENDING -> COMPLETED (or PAID) and link orders to the payout, atomically."""
    if final_status not in (PayoutRequestStatus.COMPLETED, PayoutRequestStatus.PAID):
        raise ValidationError(f"{final_status.value} is not an approval status")
    policy = escrow_settings().payout_allocation

    with atomic():
        payout = _load_payout(payout_id, for_update=True)
        # serialise approvals per seller so budgets are computed once at a time
        db.session.execute(select(User.id).where(User.id == payout.seller_id).with_for_update())

        now = _now()
        moved = guarded_update(
            Payout,
            payout.id,
            [Payout.status.in_(sources_for(PAYOUT_TRANSITIONS, final_status))],
            {
                "status": final_status.value,
                "approved_by": int(admin_id),
                "approved_at": now,
                "processed_at": now,
                "transaction_id": (transaction_id or "").strip()[:128] or None,
                "admin_notes": (notes or "").strip()[:400] or None,
                "updated_at": now,
            },
        )
        if not moved:
            current = db.session.execute(select(Payout.status).where(Payout.id == payout.id)).scalar_one()
            raise AlreadyProcessedError(
                f"payout {payout.payout_number} is already {current}",
                payout_number=payout.payout_number,
                status=current,
            )

        linked, allocated, unallocated = _allocate(payout, policy, now)
        guarded_update(
            Payout, payout.id, [], {"allocated_amount": allocated, "unallocated_amount": unallocated}
        )
        events.emit(
            events.PAYOUT_APPROVED,
            payout_id=payout.id,
            seller_id=payout.seller_id,
            payout_number=payout.payout_number,
            amount=float(payout.amount or 0.0),
            transaction_id=transaction_id or "",
            order_ids=linked,
        )
        AuditLog.record(
            "payout_approved",
            actor_user_id=int(admin_id),
            target_type="payout",
            target_id=int(payout.id),
            meta={
                "payout_number": payout.payout_number,
                "amount": float(payout.amount or 0.0),
                "policy": policy,
                "order_ids": linked,
                "allocated": allocated,
                "unallocated": unallocated,
            },
        )
        payout_number = payout.payout_number

    current_app.logger.info(
        "payout %s approved by %s: policy=%s orders=%s allocated=%.2f unallocated=%.2f",
        payout_number, admin_id, policy, linked, allocated, unallocated,
    )
    return {
        "payout_id": int(payout_id),
        "payout_number": payout_number,
        "status": final_status.value,
        "order_ids": linked,
        "allocated_amount": allocated,
        "unallocated_amount": unallocated,
    }


@ledger_operation("reject_payout")
def reject_payout(payout_id, admin_id: int, reason: str) -> dict:
    """PENDING -> REJECTED; the locked amount goes back to available."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("a rejection reason is required")

    with atomic():
        payout = _load_payout(payout_id, for_update=True)
        now = _now()
        moved = guarded_update(
            Payout,
            payout.id,
            [Payout.status.in_(sources_for(PAYOUT_TRANSITIONS, PayoutRequestStatus.REJECTED))],
            {
                "status": PayoutRequestStatus.REJECTED.value,
                "rejected_by": int(admin_id),
                "rejected_at": now,
                "processed_at": now,
                "rejection_reason": reason[:400],
                "updated_at": now,
            },
        )
        if not moved:
            current = db.session.execute(select(Payout.status).where(Payout.id == payout.id)).scalar_one()
            raise AlreadyProcessedError(
                f"payout {payout.payout_number} is already {current}",
                payout_number=payout.payout_number,
                status=current,
            )

        amount = float(payout.amount or 0.0)
        if not unlock_available(
            payout.seller_id, amount, reference=f"payout:{int(payout.id)}", note=f"Payout {payout.payout_number} rejected"
        ):
            raise ValidationError(f"seller {payout.seller_id} missing for payout {payout.payout_number}")
        events.emit(
            events.PAYOUT_REJECTED,
            payout_id=payout.id,
            seller_id=payout.seller_id,
            payout_number=payout.payout_number,
            amount=amount,
            reason=reason,
        )
        AuditLog.record(
            "payout_rejected",
            actor_user_id=int(admin_id),
            target_type="payout",
            target_id=int(payout.id),
            meta={"payout_number": payout.payout_number, "amount": amount, "reason": reason},
        )
        payout_number = payout.payout_number

    current_app.logger.info("payout %s rejected by %s, %.2f returned to available", payout_number, admin_id, amount)
    return {"payout_id": int(payout_id), "payout_number": payout_number, "status": PayoutRequestStatus.REJECTED.value}


_APPROVE_ACTIONS = {
    "approve": PayoutRequestStatus.COMPLETED,
    "complete": PayoutRequestStatus.COMPLETED,
    "paid": PayoutRequestStatus.PAID,
}


def apply_admin_action(payload: dict, admin_id: int):
    """Dispatch ``{payoutId, action, reason?, transactionId?, notes?}``."""
    payload = payload or {}
    action = str(payload.get("action") or "").strip().lower()
    payout_id = payload.get("payoutId") or payload.get("payout_id")
    if action in _APPROVE_ACTIONS:
        return approve_payout(
            payout_id,
            admin_id,
            transaction_id=payload.get("transactionId") or payload.get("transaction_id"),
            notes=payload.get("notes") or payload.get("adminNotes"),
            final_status=_APPROVE_ACTIONS[action],
        )
    if action == "reject":
        return reject_payout(payout_id, admin_id, payload.get("reason") or "")
    return _unknown_action(action)


@ledger_operation("apply_admin_action")
def _unknown_action(action: str) -> dict:
    raise ValidationError(f"unknown payout action {action!r}", allowed=sorted([*_APPROVE_ACTIONS, "reject"]))


def get_seller_balance(seller_id: int) -> dict | None:
    user = db.session.get(User, int(seller_id))
    if not user:
        return None

    def _payout_sum(statuses) -> float:
        return money(
            db.session.execute(
                select(func.coalesce(func.sum(Payout.amount), 0.0)).where(
                    Payout.seller_id == user.id, Payout.status.in_(statuses)
                )
            ).scalar_one()
        )

    return {
        **user.balance_dict(),
        "locked": _payout_sum([PayoutRequestStatus.PENDING.value]),
        "withdrawn": _payout_sum(list(SETTLED_PAYOUT_STATUSES)),
        "currency": escrow_settings().currency,
        "payout_method": user.payout_method,
        "method_details": _method_details(user),
    }


def list_payouts(*, seller_id: int | None = None, status: str | None = None, limit: int = 100) -> list[Payout]:
    q = Payout.query
    if seller_id is not None:
        q = q.filter(Payout.seller_id == int(seller_id))
    if status:
        q = q.filter(Payout.status == status.upper())
    return q.order_by(Payout.created_at.desc(), Payout.id.desc()).limit(int(limit)).all()
