from __future__ import annotations

import html
from typing import Any, Dict

import requests
from flask import current_app

TELEGRAM_API = "https://api.telegram.org/bot"

# Ledger events an operator has to act on; these also go to the Telegram chat.
OPERATOR_KINDS = ("reconciliation.unmatched", "payout.requested")


def _timeout() -> float:
    return float(current_app.config.get("NOTIFY_TIMEOUT") or 10)


def post_event(envelope: Dict[str, Any]) -> tuple[bool, str]:
    """POST one ledger event envelope to NOTIFY_WEBHOOK_URL.

    With no URL configured there is nobody to tell, so the event counts as sent.
    """
    url = (current_app.config.get("NOTIFY_WEBHOOK_URL") or "").strip()
    if not url:
        return True, "webhook_not_configured"
    try:
        r = requests.post(url, json=envelope, timeout=_timeout())
        if 200 <= r.status_code < 300:
            return True, "sent"
        return False, f"webhook_http_{r.status_code}"
    except requests.RequestException as e:
        return False, f"webhook_exception:{e}"


def send_telegram(text: str) -> tuple[bool, str]:
    token = (current_app.config.get("TELEGRAM_BOT_TOKEN") or "").strip()
    chat = (current_app.config.get("TELEGRAM_CHAT_ID") or "").strip()
    if not token or not chat:
        return True, "telegram_not_configured"
    try:
        r = requests.post(
            f"{TELEGRAM_API}{token}/sendMessage",
            json={"chat_id": chat, "text": text, "parse_mode": "HTML"},
            timeout=_timeout(),
        )
        j = r.json() if r.content else {}
    except requests.RequestException as e:
        return False, f"telegram_exception:{e}"
    except ValueError:
        return False, f"telegram_http_{r.status_code}"
    if j.get("ok"):
        return True, "sent"
    return False, f"telegram_error:{j.get('description') or r.status_code}"


def telegram_text(envelope: Dict[str, Any]) -> str:
    data = envelope.get("data") or {}
    kind = envelope.get("kind") or ""
    if kind == "reconciliation.unmatched":
        refs = ", ".join([*data.get("unmatched_refs", []), *data.get("ambiguous_refs", [])]) or "none"
        lines = [
            "<b>Payment signal needs review</b>",
            f"Source: {html.escape(str(data.get('source') or ''))}",
            f"Outcome: {html.escape(str(data.get('outcome') or ''))}",
            f"References: {html.escape(refs)}",
            f"Signal: #{data.get('signal_id')}",
        ]
        raw = (data.get("raw_text") or "").strip()
        if raw:
            lines.append(f"Text: {html.escape(raw[:300])}")
        return "\n".join(lines)
    if kind == "payout.requested":
        return "\n".join(
            [
                "<b>New payout request</b>",
                f"Payout: {html.escape(str(data.get('payout_number') or ''))}",
                f"Seller: #{envelope.get('seller_id')}",
                f"Amount: {float(data.get('amount') or 0.0):.2f}",
                f"Method: {html.escape(str(data.get('method') or ''))}",
            ]
        )
    return f"<b>{html.escape(kind)}</b> #{envelope.get('event_id')}"
