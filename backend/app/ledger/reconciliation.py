"""Reconciliation: turn external payment signals into confirmed orders.

Every signal is matched closed-world: each reference ends up matched,
already confirmed, unmatched or ambiguous, and the outcome is stored as a
ReconciliationSignal so an operator can always see money that could not be
placed. Crediting goes through ``orders.apply_payment``, whose PENDING guard
makes repeated deliveries of the same signal harmless.

Tie-breaks:
  - a reference that resolves to more than one live manual order is
    ambiguous and credits nothing;
  - a free-text message whose numbers resolve to more than one pending
    order is ambiguous as a whole and credits nothing.
"""

from __future__ import annotations

import json
from collections import defaultdict

from flask import current_app
from sqlalchemy import select

from app.extensions import db
from app.ledger import events
from app.ledger.errors import (
    InvalidStateError,
    OrderNotFoundError,
    UnparseableSignalError,
    UpstreamTimeoutError,
    ValidationError,
)
from app.ledger.orders import apply_payment
from app.ledger.results import MatchResult, ledger_operation
from app.ledger.states import PAID_STATUSES, OrderStatus, PaymentChannel
from app.ledger.store import _now, atomic, guarded_update
from app.models import Order, ReconciliationSignal, WebhookEvent
from app.utils import coinremitter_client
from app.utils.references import extract_references, normalize_references

CRYPTO_PAID_STATUSES = frozenset({"paid", "over paid"})


def _group_manual_candidates(refs: list[str]) -> dict[str, list[Order]]:
    rows = (
        Order.query.filter(
            Order.transaction_ref.in_(refs),
            Order.payment_method == PaymentChannel.MANUAL.value,
            Order.status != OrderStatus.CANCELLED.value,
        )
        .order_by(Order.id.asc())
        .all()
    )
    grouped = defaultdict(list)
    for o in rows:
        grouped[o.transaction_ref].append(o)
    return grouped


def _confirm(order_id: int, order_number: str, result: MatchResult, ref: str, verified_by=None) -> None:
    try:
        with atomic():
            order = db.session.get(Order, int(order_id))
            credited = apply_payment(order, paid_status=OrderStatus.PAID, verified_by=verified_by)
    except InvalidStateError:
        # cancelled between lookup and write
        result.unmatched_refs.append(ref)
        return
    if credited:
        result.matched_order_numbers.append(order_number)
    else:
        result.already_confirmed_order_numbers.append(order_number)


def _outcome(result: MatchResult, *, strict: bool) -> str:
    if result.ambiguous_refs and not result.matched_order_numbers:
        return "ambiguous"
    if result.matched_order_numbers:
        if result.ambiguous_refs or (strict and result.unmatched_refs):
            return "partial"
        return "matched"
    if result.already_confirmed_order_numbers and not result.unmatched_refs:
        return "already_confirmed"
    return "unmatched"


def _record_signal(source: str, result: MatchResult, *, raw_text: str | None = None, sender: str | None = None) -> None:
    with atomic():
        sig = ReconciliationSignal(
            source=source,
            raw_text=raw_text,
            sender=(sender or None),
            extracted_refs=json.dumps(result.extracted_refs),
            matched_order_numbers=json.dumps(result.matched_order_numbers),
            already_confirmed_order_numbers=json.dumps(result.already_confirmed_order_numbers),
            unmatched_refs=json.dumps(result.unmatched_refs),
            ambiguous_refs=json.dumps(result.ambiguous_refs),
            outcome=result.outcome,
        )
        db.session.add(sig)
        db.session.flush()
        if sig.needs_operator:
            events.emit(
                events.RECONCILIATION_UNMATCHED,
                signal_id=sig.id,
                source=source,
                outcome=result.outcome,
                unmatched_refs=result.unmatched_refs,
                ambiguous_refs=result.ambiguous_refs,
                raw_text=(raw_text or "")[:500],
            )
        signal_id = int(sig.id)
    result.signal_id = signal_id
    log = current_app.logger
    if result.outcome in ("matched", "already_confirmed"):
        log.info("reconciliation %s signal %s: %s %s", source, signal_id, result.outcome, result.matched_order_numbers)
    else:
        log.warning(
            "reconciliation %s signal %s needs an operator: outcome=%s unmatched=%s ambiguous=%s",
            source, signal_id, result.outcome, result.unmatched_refs, result.ambiguous_refs,
        )


def _record_unplaced(source: str, reference: str, raw_text: str) -> MatchResult:
    """Surface a provider-confirmed payment no order can take.

    Provider retries of the same payment reuse the open signal.
    """
    result = MatchResult(outcome="unmatched", extracted_refs=[reference], unmatched_refs=[reference])
    existing = db.session.execute(
        select(ReconciliationSignal.id).where(
            ReconciliationSignal.source == source,
            ReconciliationSignal.extracted_refs == json.dumps([reference]),
            ReconciliationSignal.outcome == "unmatched",
            ReconciliationSignal.resolved_at.is_(None),
        )
    ).scalars().first()
    if existing is not None:
        result.signal_id = int(existing)
        current_app.logger.info("reconciliation %s: %s already open as signal %s", source, reference, existing)
        return result
    _record_signal(source, result, raw_text=raw_text)
    return result


def _match_references(refs: list[str], *, verified_by=None, strict: bool) -> MatchResult:
    result = MatchResult(outcome="", extracted_refs=list(refs))
    grouped = _group_manual_candidates(refs)

    pending = []
    for ref in refs:
        candidates = grouped.get(ref, [])
        if not candidates:
            result.unmatched_refs.append(ref)
        elif len(candidates) > 1:
            result.ambiguous_refs.append(ref)
        elif candidates[0].status in PAID_STATUSES:
            result.already_confirmed_order_numbers.append(candidates[0].order_number)
        else:
            pending.append((ref, int(candidates[0].id), candidates[0].order_number))

    if not strict and len({oid for _, oid, _ in pending}) > 1:
        # one message, several pending orders: refuse to guess
        result.ambiguous_refs.extend(ref for ref, _, _ in pending)
        pending = []

    for ref, oid, number in pending:
        _confirm(oid, number, result, ref, verified_by=verified_by)

    result.outcome = _outcome(result, strict=strict)
    return result


@ledger_operation("match_by_explicit_references")
def match_by_explicit_references(refs, *, verified_by=None) -> dict:
    """Operator-supplied references; each one is matched on its own."""
    if isinstance(refs, str) or not isinstance(refs, (list, tuple)):
        raise ValidationError("references must be a list")
    clean = normalize_references(refs)
    if not clean:
        raise ValidationError("no usable references supplied")

    result = _match_references(clean, verified_by=verified_by, strict=True)
    _record_signal("references", result, raw_text=", ".join(str(r) for r in refs)[:2000])
    return {"changed": result.matched_count > 0, **result.to_dict()}


@ledger_operation("match_by_free_text")
def match_by_free_text(raw_message: str, *, sender: str | None = None, source: str = "sms") -> dict:
    """Bank / wallet SMS text: pull 6-12 digit candidates and match them."""
    text = (raw_message or "").strip()
    if not text:
        raise ValidationError("message text required")

    refs = extract_references(text)
    if not refs:
        result = MatchResult(outcome="unparseable")
        _record_signal(source, result, raw_text=text[:2000], sender=sender)
        raise UnparseableSignalError("no reference number found in message", **result.to_dict())

    result = _match_references(refs, strict=False)
    _record_signal(source, result, raw_text=text[:2000], sender=sender)
    return {"changed": result.matched_count > 0, **result.to_dict()}


def _verified_crypto_status(invoice_id: str, claimed_status: str) -> str:
    """Ask the provider for the invoice status when credentials are set.

    Runs before any ledger transaction; a timeout aborts with nothing written.
    """
    if not coinremitter_client.is_configured():
        return claimed_status
    check = coinremitter_client.get_invoice(invoice_id)
    if not check.get("ok"):
        if check.get("timeout"):
            raise UpstreamTimeoutError(check.get("error") or "invoice lookup timed out", invoice_id=invoice_id)
        raise OrderNotFoundError(f"provider does not know invoice {invoice_id}", invoice_id=invoice_id)
    return check.get("status") or ""


def _normalize_status(status_text: str) -> str:
    return " ".join((status_text or "").lower().split())


@ledger_operation("match_by_crypto_webhook")
def match_by_crypto_webhook(invoice_id: str, status_text: str, custom_order_id=None) -> dict:
    """CoinRemitter notification for an invoice created at crypto checkout.

    The order named by the payload must carry the same invoice id, otherwise
    the call fails closed with OrderNotFoundError and nothing changes.
    """
    invoice_id = (invoice_id or "").strip()
    if not invoice_id:
        raise ValidationError("invoice_id required")
    status_text = (_verified_crypto_status(invoice_id, status_text or "") or "").strip()
    status_norm = _normalize_status(status_text)

    try:
        with atomic():
            if custom_order_id not in (None, ""):
                try:
                    order = db.session.get(Order, int(custom_order_id))
                except (TypeError, ValueError):
                    order = None
            else:
                order = Order.query.filter_by(crypto_invoice_id=invoice_id).first()
            if not order or order.crypto_invoice_id != invoice_id:
                current_app.logger.warning(
                    "crypto webhook rejected: invoice %s does not belong to order %s", invoice_id, custom_order_id
                )
                raise OrderNotFoundError("order not found or invoice mismatch", invoice_id=invoice_id)

            event_id = f"{invoice_id}:{status_norm or 'unknown'}"
            seen = db.session.execute(
                select(WebhookEvent.id).where(WebhookEvent.provider == "coinremitter", WebhookEvent.event_id == event_id)
            ).first()
            if seen:
                return {"changed": False, "replayed": True, "order_number": order.order_number, "credited": False}
            db.session.add(WebhookEvent(provider="coinremitter", event_id=event_id[:128], order_id=int(order.id)))

            credited = False
            if status_norm in CRYPTO_PAID_STATUSES:
                credited = apply_payment(order, paid_status=OrderStatus.COMPLETED, crypto_status=status_text)
            else:
                guarded_update(Order, order.id, [], {"crypto_status": status_text[:32] or None, "updated_at": _now()})
            order_number = order.order_number
    except InvalidStateError as e:
        # paid at the provider but the order can no longer take it
        result = _record_unplaced("crypto", invoice_id, f"crypto invoice {invoice_id} {status_text}: {e.message}")
        raise InvalidStateError(e.message, **{**e.details, **result.to_dict()})

    return {"changed": True, "credited": credited, "order_number": order_number, "crypto_status": status_text}


@ledger_operation("match_by_card_reference")
def match_by_card_reference(reference: str, *, event_id: str | None = None) -> dict:
    """Card checkout completed for the session ``reference``."""
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("reference required")
    replay_key = (event_id or f"charge:{reference}")[:128]

    try:
        with atomic():
            seen = db.session.execute(
                select(WebhookEvent.id).where(WebhookEvent.provider == "card", WebhookEvent.event_id == replay_key)
            ).first()
            if seen:
                return {"changed": False, "replayed": True, "credited": False}
            order = Order.query.filter_by(payment_reference=reference).first()
            if order is not None:
                if order.payment_method != PaymentChannel.CARD.value:
                    raise ValidationError(f"order {order.order_number} is not a card order")
                db.session.add(WebhookEvent(provider="card", event_id=replay_key, order_id=int(order.id)))
                credited = apply_payment(order, paid_status=OrderStatus.PAID)
                order_number = order.order_number
    except InvalidStateError as e:
        result = _record_unplaced("card", reference, f"card payment reference {reference}: {e.message}")
        raise InvalidStateError(e.message, **{**e.details, **result.to_dict()})

    if order is None:
        result = _record_unplaced("card", reference, f"card payment reference {reference}")
        raise OrderNotFoundError(f"no card order for reference {reference}", **result.to_dict())
    return {"changed": credited, "credited": credited, "order_number": order_number}


def list_signals(*, open_only: bool = True, limit: int = 100) -> list[ReconciliationSignal]:
    q = ReconciliationSignal.query
    if open_only:
        q = q.filter(
            ReconciliationSignal.resolved_at.is_(None),
            ReconciliationSignal.outcome.in_(("partial", "unmatched", "ambiguous", "unparseable")),
        )
    return q.order_by(ReconciliationSignal.created_at.desc()).limit(int(limit)).all()


@ledger_operation("resolve_signal")
def resolve_signal(signal_id, admin_id: int) -> dict:
    with atomic():
        moved = guarded_update(
            ReconciliationSignal,
            int(signal_id),
            [ReconciliationSignal.resolved_at.is_(None)],
            {"resolved_at": _now(), "resolved_by": int(admin_id)},
        )
        if not moved:
            exists = db.session.get(ReconciliationSignal, int(signal_id))
            if not exists:
                raise ValidationError(f"signal {signal_id} not found")
            return {"changed": False, "signal_id": int(signal_id)}
    return {"signal_id": int(signal_id)}
