from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from app.jobs.balance_auditor import audit_seller_balances
from app.jobs.event_dispatcher import dispatch_pending_events
from app.jobs.holding_sweep import run_holding_sweep

scheduler = BackgroundScheduler()


def _in_context(app, fn):
    def job():
        with app.app_context():
            fn()

    job.__name__ = fn.__name__
    return job


def start_scheduler(app) -> BackgroundScheduler:
    """Run the ledger jobs in-process. Opt-in via ENABLE_SCHEDULER=1."""
    if scheduler.running:
        return scheduler

    scheduler.add_job(
        _in_context(app, run_holding_sweep),
        "interval",
        minutes=15,
        id="holding_sweep",
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        _in_context(app, dispatch_pending_events),
        "interval",
        minutes=1,
        id="dispatch_events",
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        _in_context(app, audit_seller_balances),
        "cron",
        hour=3,
        id="audit_balances",
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    app.logger.info("ledger scheduler started: %s", [j.id for j in scheduler.get_jobs()])
    return scheduler
