from __future__ import annotations

import requests
from flask import current_app

COINREMITTER_BASE = "https://coinremitter.com/api/v3"


def _creds() -> tuple[str, str, str]:
    cfg = current_app.config
    return (
        (cfg.get("COINREMITTER_API_KEY") or "").strip(),
        (cfg.get("COINREMITTER_PASSWORD") or "").strip(),
        (cfg.get("COINREMITTER_COIN") or "USDTTRC20").strip(),
    )


def is_configured() -> bool:
    api_key, password, _ = _creds()
    return bool(api_key and password)


def _post(action: str, payload: dict) -> dict:
    api_key, password, coin = _creds()
    if not api_key or not password:
        return {"ok": False, "error": "COINREMITTER_API_KEY/COINREMITTER_PASSWORD not set"}
    timeout = float(current_app.config.get("COINREMITTER_TIMEOUT") or 10)
    body = {"api_key": api_key, "password": password, **payload}
    try:
        r = requests.post(f"{COINREMITTER_BASE}/{coin}/{action}", json=body, timeout=timeout)
    except requests.Timeout:
        return {"ok": False, "timeout": True, "error": f"coinremitter {action} timed out"}
    except requests.RequestException as e:
        return {"ok": False, "timeout": True, "error": f"coinremitter {action} failed: {e}"}
    try:
        j = r.json() if r.content else {}
    except ValueError:
        return {"ok": False, "error": f"HTTP {r.status_code}: non-JSON body"}
    if 200 <= r.status_code < 300 and int(j.get("flag") or 0) == 1:
        return {"ok": True, "data": j.get("data") or {}}
    return {"ok": False, "error": j.get("msg") or f"HTTP {r.status_code}"}


def create_invoice(*, amount: float, currency: str, order_id: int, order_number: str, notify_url: str) -> dict:
    res = _post(
        "create-invoice",
        {
            "amount": float(amount),
            "currency": currency,
            "notify_url": notify_url,
            "name": f"Order {order_number}",
            "expire_time": "30",
            "custom_data1": str(int(order_id)),
        },
    )
    if not res.get("ok"):
        return res
    data = res["data"]
    return {
        "ok": True,
        "invoice_id": str(data.get("invoice_id") or ""),
        "url": data.get("url") or "",
        "status": data.get("status") or "Pending",
    }


def get_invoice(invoice_id: str) -> dict:
    """Provider's own view of an invoice; used to verify webhook claims."""
    res = _post("get-invoice", {"invoice_id": invoice_id})
    if not res.get("ok"):
        return res
    data = res["data"]
    return {
        "ok": True,
        "invoice_id": str(data.get("invoice_id") or invoice_id),
        "status": data.get("status") or "",
        "custom_data1": str(data.get("custom_data1") or ""),
    }
