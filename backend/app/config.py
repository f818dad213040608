from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name) or default
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


class Config:
    # Base directory of the backend (one level above this `app` package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, "instance")
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    _default_sqlite_path = os.path.join(INSTANCE_DIR, "escrow.db").replace("\\", "/")
    _db_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or f"sqlite:///{_default_sqlite_path}"
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

    # CORS: comma-separated origins for web builds
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Escrow / commission collaborator
    PLATFORM_FEE_PERCENTAGE = _env_float("PLATFORM_FEE_PERCENTAGE", 10)
    HOLDING_PERIOD_DAYS = _env_float("HOLDING_PERIOD_DAYS", 7)
    MIN_PAYOUT_AMOUNT = _env_float("MIN_PAYOUT_AMOUNT", 50)
    PAYOUT_METHODS = _env_list("PAYOUT_METHODS", "bank,paypal,crypto")
    ESCROW_CURRENCY = (os.getenv("ESCROW_CURRENCY") or "USD").strip().upper()
    # fifo | sweep_all
    PAYOUT_ALLOCATION = (os.getenv("PAYOUT_ALLOCATION") or "fifo").strip().lower()

    # Inbound webhook / cron secrets
    SMS_WEBHOOK_SECRET = os.getenv("SMS_WEBHOOK_SECRET", "")
    CARD_WEBHOOK_SECRET = os.getenv("CARD_WEBHOOK_SECRET", "")
    CRON_SECRET = os.getenv("CRON_SECRET", "")

    # Crypto provider
    COINREMITTER_API_KEY = os.getenv("COINREMITTER_API_KEY", "")
    COINREMITTER_PASSWORD = os.getenv("COINREMITTER_PASSWORD", "")
    COINREMITTER_COIN = os.getenv("COINREMITTER_COIN", "USDTTRC20")
    COINREMITTER_TIMEOUT = _env_float("COINREMITTER_TIMEOUT", 10)

    # Outbound notifications
    NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")
    TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "")

    ENABLE_SCHEDULER = (os.getenv("ENABLE_SCHEDULER") or "0").strip() == "1"


@dataclass(frozen=True)
class EscrowSettings:
    """Read-only commission/holding configuration consumed by the ledger."""

    platform_fee_percentage: float = 10.0
    holding_period_days: float = 7.0
    min_payout_amount: float = 50.0
    payout_methods: tuple[str, ...] = ("bank", "paypal", "crypto")
    currency: str = "USD"
    payout_allocation: str = "fifo"

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "EscrowSettings":
        methods = cfg.get("PAYOUT_METHODS") or cls.payout_methods
        if isinstance(methods, str):
            methods = tuple(p.strip().lower() for p in methods.split(",") if p.strip())
        allocation = (cfg.get("PAYOUT_ALLOCATION") or "fifo").strip().lower()
        if allocation not in ("fifo", "sweep_all"):
            raise RuntimeError(f"PAYOUT_ALLOCATION must be fifo or sweep_all, got {allocation!r}")
        fee = float(cfg.get("PLATFORM_FEE_PERCENTAGE", cls.platform_fee_percentage))
        if fee < 0 or fee >= 100:
            raise RuntimeError("PLATFORM_FEE_PERCENTAGE must be in [0, 100)")
        return cls(
            platform_fee_percentage=fee,
            holding_period_days=float(cfg.get("HOLDING_PERIOD_DAYS", cls.holding_period_days)),
            min_payout_amount=float(cfg.get("MIN_PAYOUT_AMOUNT", cls.min_payout_amount)),
            payout_methods=tuple(methods),
            currency=(cfg.get("ESCROW_CURRENCY") or cls.currency),
            payout_allocation=allocation,
        )


def escrow_settings() -> EscrowSettings:
    from flask import current_app

    return EscrowSettings.from_mapping(current_app.config)
