# backend/fashionmart/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fashionmart.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///fashionmart.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity provider: bearer tokens are HS256 JWTs whose "sub" is the user id
    IDENTITY_TOKEN_SECRET = os.environ.get("IDENTITY_TOKEN_SECRET", "fashionmart-dev-identity-secret")
    IDENTITY_TOKEN_TTL_SECONDS = int(os.environ.get("IDENTITY_TOKEN_TTL_SECONDS", str(60 * 60 * 24)))
    IDENTITY_WEBHOOK_SECRET = os.environ.get("IDENTITY_WEBHOOK_SECRET", "")
    # Create a customer on first authenticated contact when the token carries an email
    AUTO_PROVISION_USERS = _env_flag("AUTO_PROVISION_USERS", "true")

    # Payment provider: "stripe" or "fake" (local, always succeeds).
    # Unset is only allowed with DEBUG or TESTING, where it means "fake".
    PAYMENT_PROVIDER = os.environ.get("PAYMENT_PROVIDER", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_API_BASE = os.environ.get("STRIPE_API_BASE", "https://api.stripe.com")
    PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10"))

    # Uploads
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads"))
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_MB", "5")) * 1024 * 1024

    # Business switches
    RESTOCK_ON_RETURN_APPROVAL = _env_flag("RESTOCK_ON_RETURN_APPROVAL")
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "5"))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
