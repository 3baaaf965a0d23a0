# backend/orderpay/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key (also signs identity tokens)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/orderpay.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderpay.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Bounded wait on a locked database instead of failing immediately
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 5}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Shared secrets checked on X-API-KEY. Empty means every request is rejected.
    API_KEY = os.environ.get("API_KEY", "")
    ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY", "")

    # Authoritative product list
    ITEM_API_URL = os.environ.get("ITEM_API_URL", "")
    ITEM_API_TIMEOUT = float(os.environ.get("ITEM_API_TIMEOUT", "10"))

    # Hosted payment page for prepaid orders
    CONSUMER_SITE_BASE_URL = os.environ.get("CONSUMER_SITE_BASE_URL", "http://localhost:5173")
    CONSUMER_CORS_ORIGINS = _csv(os.environ.get("CONSUMER_CORS_ORIGINS", "*"))

    IDENTITY_TOKEN_MAX_AGE = int(os.environ.get("IDENTITY_TOKEN_MAX_AGE", "3600"))

    # Storage statement-size limit for multi-row inserts
    UPSERT_BATCH_SIZE = 10
