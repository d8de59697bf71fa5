# backend/stoq/config.py
from __future__ import annotations
import os


def _csv(value: str | None) -> set[str]:
    return {part.strip() for part in (value or "").split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stoq.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stoq.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Storefront origins allowed to call the API from a browser
    CORS_ALLOWED_ORIGINS = _csv(os.environ.get("CORS_ALLOWED_ORIGINS")) or {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }

    # Seller block printed on every invoice document
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "STOQ Wholesale")
    COMPANY_ADDRESS = os.environ.get("COMPANY_ADDRESS", "")
    COMPANY_HST_NUMBER = os.environ.get("COMPANY_HST_NUMBER", "")
    DEFAULT_INVOICE_TERMS = os.environ.get(
        "DEFAULT_INVOICE_TERMS",
        "All sales are final unless otherwise agreed in writing.\n"
        "Buyer is responsible for return shipping costs for any reason.",
    )


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
