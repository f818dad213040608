from __future__ import annotations

from flask import current_app

from app.ledger.orders import sweep_matured_holdings


def run_holding_sweep(*, limit: int = 500) -> dict:
    """Release matured holdings into sellers' available balances.

    Safe to run from several workers at once; each order is released at most once.
    """
    res = sweep_matured_holdings(limit=limit)
    if not res.ok:
        current_app.logger.error("holding sweep aborted: %s %s", res.code, res.message)
    return res.to_dict()
