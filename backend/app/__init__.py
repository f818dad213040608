import logging
import os

from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import Config, EscrowSettings
from app.extensions import db, migrate, cors
from app.segments.segment_orders_api import orders_bp
from app.segments.segment_payment_webhooks import webhooks_bp
from app.segments.segment_reconciliation_admin import recon_bp
from app.segments.segment_manual_orders_admin import manual_orders_bp
from app.segments.segment_payouts import seller_bp, admin_payouts_bp
from app.segments.segment_cron import cron_bp


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    env = (os.getenv("ESCROW_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (app.config.get("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16 or secret == "dev-secret":
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO))

    # Fail fast on a bad escrow configuration
    EscrowSettings.from_mapping(app.config)

    # Ensure instance dir exists for SQLite paths
    os.makedirs(Config.INSTANCE_DIR, exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Register API routes
    app.register_blueprint(orders_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(recon_bp)
    app.register_blueprint(manual_orders_bp)
    app.register_blueprint(seller_bp)
    app.register_blueprint(admin_payouts_bp)
    app.register_blueprint(cron_bp)

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            db.session.rollback()
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "escrow-ledger",
            "env": env,
            "db": db_state,
        })

    if app.config.get("ENABLE_SCHEDULER"):
        from app.jobs.scheduler import start_scheduler

        start_scheduler(app)

    return app
